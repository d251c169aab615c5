"""
主协调器

整合所有服务层组件，实现解析、下载、安装的流程编排。
"""

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from loguru import logger

from tarium.models import DownloadData, Mod, Profile
from tarium.services import ModManager, ModResolver, ReleaseSource, VersionMatcher
from tarium.download import DownloadManager
from tarium.installer import ArchiveInstaller, InstallReport
from tarium.exceptions import ConfigValidationError, DownloadError, ResolveError, TariumError

DEFAULT_PARALLEL_TASKS = 50


class ResolutionContext:
    """
    一次运行共享的解析上下文

    所有解析任务共用同一个信号量，它是整个运行期间唯一的并发上限。
    """

    def __init__(self, parallel_tasks: int = DEFAULT_PARALLEL_TASKS):
        if parallel_tasks < 1:
            raise ConfigValidationError("parallel_tasks 必须大于 0")
        self.parallel_tasks = parallel_tasks
        self.semaphore = asyncio.Semaphore(parallel_tasks)


@dataclass
class UpgradeReport:
    """一次升级的结果"""

    resolve_failed: bool = False
    install_failed: bool = False
    downloaded: List[str] = field(default_factory=list)
    download_failures: List[Tuple[str, DownloadError]] = field(default_factory=list)
    install_report: Optional[InstallReport] = None

    @property
    def failed(self) -> bool:
        return self.resolve_failed or self.install_failed or bool(self.download_failures)


class TariumOrchestrator:
    """Tarium 主协调器"""

    def __init__(
        self,
        client: ReleaseSource,
        context: Optional[ResolutionContext] = None,
        matcher: Optional[VersionMatcher] = None,
        download_manager: Optional[DownloadManager] = None,
        installer_factory: Callable[[Path], ArchiveInstaller] = ArchiveInstaller,
    ):
        self.client = client
        self.context = context or ResolutionContext()
        self.resolver = ModResolver(client, matcher)
        self.download_manager = download_manager or DownloadManager()
        self.installer_factory = installer_factory
        self.failures: List[Tuple[str, TariumError]] = []

    async def _resolve_one(
        self, mod: Mod, profile: Profile, pad_len: int
    ) -> Tuple[Mod, Optional[DownloadData]]:
        async with self.context.semaphore:
            try:
                download_data = await self.resolver.resolve(mod, profile.filters)
            except TariumError as e:
                self.failures.append((mod.name, e))
                logger.error(f"× {mod.name:<{pad_len}}  {e.message}")
                return mod, None
            except Exception as e:
                error = ResolveError(
                    f"解析时发生意外错误: {e.__class__.__name__}: {e}",
                    context={"mod": mod.name},
                )
                self.failures.append((mod.name, error))
                logger.error(f"× {mod.name:<{pad_len}}  {error.message}")
                logger.opt(exception=e).debug(f"{mod.name} 解析异常")
                return mod, None
        logger.info(f"✓ {mod.name:<{pad_len}}  {download_data.filename}")
        return mod, download_data

    async def resolve_all(
        self, profile: Profile, mods: Optional[Sequence[Mod]] = None
    ) -> List[Tuple[Mod, DownloadData]]:
        """
        并发解析全部模组，结果按完成顺序返回

        单个模组失败不会中断其他模组，失败记录在 self.failures 中。
        """
        mods = list(profile.mods if mods is None else mods)
        self.failures = []
        if not mods:
            return []

        logger.info("正在确定最新的兼容版本")
        pad_len = min(max(20, max(len(m.name) for m in mods)), 50)

        tasks = [
            asyncio.create_task(self._resolve_one(mod, profile, pad_len))
            for mod in mods
        ]
        results: List[Tuple[Mod, DownloadData]] = []
        for future in asyncio.as_completed(tasks):
            mod, download_data = await future
            if download_data is not None:
                results.append((mod, download_data))
        return results

    async def get_downloadables(
        self, profile: Profile
    ) -> Tuple[List[DownloadData], bool]:
        """
        获取配置档案中全部模组的下载信息

        Returns:
            (下载信息列表, 是否有模组解析失败)
        """
        resolved = await self.resolve_all(profile)
        return [data for _, data in resolved], bool(self.failures)

    def _install(
        self, profile: Profile, downloads: Optional[Dict[str, str]] = None
    ) -> InstallReport:
        installer = self.installer_factory(profile.output_dir)
        report = installer.install_all()
        installed = {r.archive.name: r.installed_files for r in report.results}
        updated = ModManager.update_mod_files(profile, installed, downloads)
        logger.debug(f"更新了 {updated} 个模组的文件记录")
        return report

    async def upgrade(self, profile: Profile, local_only: bool = False) -> UpgradeReport:
        """
        升级配置档案

        普通模式下解析并下载已启用模组的最新文件，然后安装；
        本地模式下只从 MODS 目录恢复归档并重新安装。
        """
        report = UpgradeReport()
        output_dir = profile.output_dir

        if local_only:
            logger.info(f"本地模式：从 {output_dir} 的 MODS 目录重新安装")
            installer = self.installer_factory(output_dir)
            installer.ensure_required_dirs()
            restored = installer.restore_from_store()
            logger.info(f"从 MODS 目录恢复了 {restored} 个归档")
            report.install_report = await asyncio.to_thread(self._install, profile)
            report.install_failed = report.install_report.failed
            return report

        enabled = [m for m in profile.mods if m.enabled]
        resolved = await self.resolve_all(profile, enabled)
        report.resolve_failed = bool(self.failures)

        downloads = {mod.name: data.filename for mod, data in resolved}
        to_download = self.download_manager.clean(output_dir, [d for _, d in resolved])

        if to_download:
            logger.info(f"下载 {len(to_download)} 个文件")
            report.downloaded, report.download_failures = (
                await self.download_manager.download_all(output_dir, to_download)
            )
        else:
            logger.info("所有模组都是最新的")

        report.install_report = await asyncio.to_thread(
            self._install, profile, downloads
        )
        report.install_failed = report.install_report.failed

        if report.failed:
            logger.warning("部分模组处理失败")
        else:
            logger.success("升级完成")
        return report

    async def close(self):
        await self.download_manager.close()
        close = getattr(self.client, "close", None)
        if close is not None:
            await close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
