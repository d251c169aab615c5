"""
模组管理服务

添加、查找、删除、启用和禁用配置档案中的模组，并在安装后更新模组文件记录。
"""

from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from loguru import logger

from tarium.models import Filter, Mod, ModIdentifier, Profile
from tarium.services.mod_resolver import ModResolver
from tarium.services.mod_state import ModStateManager
from tarium.exceptions import (
    AlreadyAddedError,
    DoesNotExistError,
    FilterError,
    IncompatibleError,
    ModManagementError,
    ModNotFoundError,
    TariumError,
)


def parse_identifier(text: str, pin: Optional[int] = None) -> ModIdentifier:
    """
    解析 owner/repo 形式的 GitHub 仓库标识

    Raises:
        ModManagementError: 格式无效
    """
    parts = text.strip().split("/")
    if len(parts) != 2 or not all(p.strip() for p in parts):
        raise ModManagementError(
            f"无效的模组标识 '{text}'，应为 owner/repo 形式",
            context={"identifier": text},
        )
    owner, repo = (p.strip() for p in parts)
    return ModIdentifier(owner, repo, pin)


def _archive_stem(name: str) -> str:
    return Path(name).stem.lower()


class ModManager:
    """模组管理器"""

    def __init__(self, resolver: Optional[ModResolver] = None):
        # 启用、禁用、删除不需要访问网络，可以不提供解析器
        self.resolver = resolver

    def find(self, profile: Profile, query: str) -> Mod:
        """按名称、owner/repo 或 slug 查找模组"""
        for mod in profile.mods:
            if mod.matches_query(query):
                return mod
        raise ModNotFoundError(query)

    def _check_not_added(self, profile: Profile, identifier: ModIdentifier):
        for mod in profile.mods:
            if (
                mod.identifier == identifier
                or mod.identifier.unpinned() == identifier.unpinned()
                or mod.name.lower() == identifier.repo.lower()
            ):
                raise AlreadyAddedError(mod.name)

    async def _check_compatible(
        self, identifier: ModIdentifier, filters: List[Filter]
    ):
        if self.resolver is None:
            raise ModManagementError("兼容性检查需要模组解析器")
        candidates = await self.resolver.fetch_candidates(
            identifier.owner, identifier.repo
        )
        if not candidates:
            raise DoesNotExistError(identifier.full_name)
        try:
            await self.resolver.matcher.select_latest(
                candidates, filters, key=lambda c: c[0]
            )
        except FilterError as e:
            raise IncompatibleError(e)

    async def add_one(
        self,
        profile: Profile,
        identifier: ModIdentifier,
        perform_checks: bool = True,
        override_filters: bool = False,
        filters: Optional[List[Filter]] = None,
    ) -> Mod:
        """
        添加单个模组

        Raises:
            AlreadyAddedError: 模组已在配置档案中
            IncompatibleError: 没有兼容的文件
            DoesNotExistError: 仓库不存在或没有可用的发布
        """
        self._check_not_added(profile, identifier)
        filters = list(filters or [])

        # 锁定版本的模组不做兼容性检查
        if perform_checks and not identifier.is_pinned:
            effective = filters if override_filters else profile.filters + filters
            await self._check_compatible(identifier, effective)

        mod = profile.push_mod(
            name=identifier.repo,
            identifier=identifier,
            slug=identifier.repo,
            override_filters=override_filters,
            filters=filters,
        )
        logger.success(f"✓ 已添加 {mod.name} ({identifier})")
        return mod

    async def add(
        self,
        profile: Profile,
        identifiers: Iterable[ModIdentifier],
        perform_checks: bool = True,
        override_filters: bool = False,
        filters: Optional[List[Filter]] = None,
    ) -> Tuple[List[Mod], List[Tuple[str, TariumError]]]:
        """
        添加多个模组，单个失败不影响其他模组

        Returns:
            (成功添加的模组, [(标识, 错误)])
        """
        successes: List[Mod] = []
        failures: List[Tuple[str, TariumError]] = []
        for identifier in identifiers:
            try:
                mod = await self.add_one(
                    profile, identifier, perform_checks, override_filters, filters
                )
            except TariumError as e:
                failures.append((str(identifier), e))
                logger.error(f"× {identifier}  {e.message}")
                continue
            successes.append(mod)
        return successes, failures

    def remove(self, profile: Profile, names: Sequence[str]) -> List[Mod]:
        """
        删除模组：删除已安装的文件、禁用目录和模组记录

        Raises:
            ModNotFoundError: 找不到模组
            ModManagementError: 删除文件失败
        """
        mods = [self.find(profile, name) for name in names]
        state = ModStateManager(profile.output_dir)
        removed = []
        for mod in mods:
            for file in mod.files:
                path = profile.output_dir / file
                if path.is_file():
                    try:
                        path.unlink()
                    except OSError as e:
                        raise ModManagementError(
                            f"无法删除 {mod.name} 的文件 {file}: {e}",
                            context={"mod": mod.name, "path": str(path)},
                        )
            state.cleanup(mod.name)
            profile.mods.remove(mod)
            removed.append(mod)
            logger.info(f"已删除 {mod.name}")
        return removed

    def enable(self, profile: Profile, names: Sequence[str]) -> List[Mod]:
        """启用模组，已启用的模组会被跳过"""
        mods = [self.find(profile, name) for name in names]
        state = ModStateManager(profile.output_dir)
        changed = []
        for mod in mods:
            if mod.enabled:
                logger.warning(f"{mod.name} 已经是启用状态")
                continue
            state.enable(mod.name, mod.files)
            mod.enabled = True
            changed.append(mod)
            logger.success(f"✓ 已启用 {mod.name}")
        return changed

    def disable(self, profile: Profile, names: Sequence[str]) -> List[Mod]:
        """禁用模组，已禁用的模组会被跳过"""
        mods = [self.find(profile, name) for name in names]
        state = ModStateManager(profile.output_dir)
        changed = []
        for mod in mods:
            if not mod.enabled:
                logger.warning(f"{mod.name} 已经是禁用状态")
                continue
            state.disable(mod.name, mod.files)
            mod.enabled = False
            changed.append(mod)
            logger.success(f"✓ 已禁用 {mod.name}")
        return changed

    @staticmethod
    def update_mod_files(
        profile: Profile,
        installed: Mapping[str, List[str]],
        downloads: Optional[Mapping[str, str]] = None,
    ) -> int:
        """
        根据安装结果更新已启用模组的文件记录

        Args:
            profile: 配置档案
            installed: 归档文件名 -> 安装的相对路径列表
            downloads: 模组名 -> 本次下载的归档文件名

        Returns:
            更新了文件记录的模组数量
        """
        downloads = downloads or {}
        updated = 0
        for mod in profile.mods:
            if not mod.enabled:
                continue

            archives = []
            archive = downloads.get(mod.name)
            if archive is not None and archive in installed:
                archives.append(archive)
            else:
                # 没有下载关联时按归档名包含模组名匹配
                archives = [
                    name for name in installed if mod.name.lower() in _archive_stem(name)
                ]

            files: Dict[str, None] = {}
            for name in archives:
                for file in installed[name]:
                    files[file] = None
            if files:
                mod.files = sorted(files)
                updated += 1
                logger.debug(f"{mod.name}: 记录了 {len(files)} 个文件")
        return updated
