"""
归档安装器

解压下载好的归档到临时目录，规范化目录结构，合并到输出目录，
最后把处理过的归档移动到持久化存储目录，重复运行不会重复处理。
"""

import os
import shutil
import stat
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple, Union

from loguru import logger

from tarium.installer.archive import ArchiveFormat, extract_archive
from tarium.exceptions import ArchiveError, ArchiveMoveError, MergeError

TEMP_DIR_NAME = ".extract_tmp"
ARCHIVE_STORE_NAME = "MODS"
LOADER_DIR_NAME = "BepInEx"
USER_DIR_NAME = "user"
PLUGINS_DIR = Path(LOADER_DIR_NAME, "plugins")
USER_MODS_DIR = Path(USER_DIR_NAME, "mods")

# 按顺序合并到输出目录的已知子目录
KNOWN_SUBTREES = (LOADER_DIR_NAME, USER_DIR_NAME)
PLUGIN_EXTENSIONS = (".dll",)

FILE_MODE = 0o644
DIR_MODE = 0o755


def normalize_permissions(path: Path):
    """把权限设为固定值：文件 rw-r--r--，目录 rwxr-xr-x；Windows 上只去掉只读标志"""
    try:
        if os.name == "nt":
            mode = path.stat().st_mode
            if not mode & stat.S_IWRITE:
                os.chmod(path, mode | stat.S_IWRITE)
        else:
            os.chmod(path, DIR_MODE if path.is_dir() else FILE_MODE)
    except OSError as e:
        logger.debug(f"无法修改权限 {path}: {e}")


def normalize_tree(root: Path):
    """规范化整个目录树的权限"""
    if not root.exists():
        return
    normalize_permissions(root)
    for dirpath, dirnames, filenames in os.walk(root):
        for name in dirnames + filenames:
            normalize_permissions(Path(dirpath, name))


def collapse_wrapper(scratch: Path, archive_stem: str) -> Path:
    """
    折叠与归档同名的单层包装目录

    只有当临时目录中恰好有一个条目，且它是与归档同名的目录时，
    才把该目录当作真正的根目录。
    """
    entries = list(scratch.iterdir())
    if len(entries) == 1 and entries[0].is_dir() and entries[0].name == archive_stem:
        logger.debug(f"折叠同名包装目录: {entries[0]}")
        return entries[0]
    return scratch


@dataclass
class InstallResult:
    """单个归档的安装结果"""

    archive: Path
    components: int = 0
    installed_files: List[str] = field(default_factory=list)
    stored_path: Optional[Path] = None

    @property
    def is_empty(self) -> bool:
        return self.components == 0


@dataclass
class InstallReport:
    """一批归档的安装报告"""

    results: List[InstallResult] = field(default_factory=list)
    errors: List[Tuple[Path, ArchiveError]] = field(default_factory=list)
    move_errors: List[Tuple[Path, ArchiveMoveError]] = field(default_factory=list)

    @property
    def failed(self) -> bool:
        return bool(self.errors)

    def files_for(self, archive_name: str) -> List[str]:
        for result in self.results:
            if result.archive.name == archive_name:
                return list(result.installed_files)
        return []


class ArchiveInstaller:
    """归档安装器，绑定到一个配置档案的输出目录"""

    def __init__(self, output_dir: Union[str, Path]):
        self.output_dir = Path(output_dir)

    @property
    def temp_root(self) -> Path:
        return self.output_dir / TEMP_DIR_NAME

    @property
    def archive_store(self) -> Path:
        return self.output_dir / ARCHIVE_STORE_NAME

    @property
    def plugins_dir(self) -> Path:
        return self.output_dir / PLUGINS_DIR

    def ensure_required_dirs(self):
        """创建输出目录约定的子目录"""
        for directory in (
            self.output_dir,
            self.plugins_dir,
            self.output_dir / USER_MODS_DIR,
            self.archive_store,
        ):
            if not directory.exists():
                try:
                    directory.mkdir(parents=True, exist_ok=True)
                except OSError as e:
                    raise ArchiveError(
                        f"无法创建目录 {directory}: {e}",
                        context={"path": str(directory)},
                    )
                logger.debug(f"已创建目录: {directory}")

    def _relative(self, path: Path) -> str:
        return path.relative_to(self.output_dir).as_posix()

    def _copy_file(self, src: Path, dst: Path, installed: List[str]):
        dst.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(src, dst)
        normalize_permissions(dst)
        installed.append(self._relative(dst))

    def _copy_tree(self, src: Path, dst: Path, installed: List[str]):
        """递归复制目录，覆盖已有文件"""
        for dirpath, _, filenames in os.walk(src):
            target_dir = dst / Path(dirpath).relative_to(src)
            target_dir.mkdir(parents=True, exist_ok=True)
            normalize_permissions(target_dir)
            for name in filenames:
                self._copy_file(Path(dirpath, name), target_dir / name, installed)

    def merge(self, root: Path) -> Tuple[int, List[str]]:
        """
        把规范化后的根目录合并到输出目录

        Returns:
            (安装的组件数, 安装的相对路径列表)

        Raises:
            MergeError: 复制过程中发生文件系统错误
        """
        components = 0
        installed: List[str] = []

        try:
            for name in KNOWN_SUBTREES:
                src = root / name
                if src.is_dir():
                    self._copy_tree(src, self.output_dir / name, installed)
                    logger.debug(f"已安装 {name} 目录")
                    components += 1
                else:
                    logger.trace(f"归档中没有 {name} 目录")

            # 根目录下的插件文件放入 BepInEx/plugins
            self.plugins_dir.mkdir(parents=True, exist_ok=True)
            plugin_count = 0
            for entry in sorted(root.iterdir()):
                if entry.is_file() and entry.suffix.lower() in PLUGIN_EXTENSIONS:
                    self._copy_file(entry, self.plugins_dir / entry.name, installed)
                    plugin_count += 1
            if plugin_count:
                logger.debug(f"已安装 {plugin_count} 个插件文件")
                components += 1
        except OSError as e:
            raise MergeError(
                f"合并到输出目录失败: {e}",
                context={"root": str(root), "output_dir": str(self.output_dir)},
            )

        return components, installed

    def _remove_scratch(self, scratch: Path):
        try:
            shutil.rmtree(scratch)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"无法删除临时目录 {scratch}: {e}")

    def install_archive(self, archive_path: Path) -> InstallResult:
        """
        解压并合并单个归档（不移动归档）

        Raises:
            ExtractError: 解压失败，临时目录保留
            MergeError: 合并失败，临时目录已删除
        """
        archive_path = Path(archive_path)
        fmt = ArchiveFormat.from_path(archive_path)
        scratch = self.temp_root / archive_path.stem

        # 保证每次都是干净的解压
        if scratch.exists():
            logger.debug(f"删除已存在的临时目录: {scratch}")
            shutil.rmtree(scratch)
        scratch.mkdir(parents=True)

        logger.debug(f"解压 {archive_path.name} -> {scratch}")
        extract_archive(archive_path, scratch, fmt)
        normalize_tree(scratch)

        try:
            root = collapse_wrapper(scratch, archive_path.stem)
            components, installed = self.merge(root)
        finally:
            self._remove_scratch(scratch)

        result = InstallResult(
            archive=archive_path, components=components, installed_files=installed
        )
        if result.is_empty:
            logger.warning(
                f"'{archive_path.name}' 中没有找到可安装的组件，可能是无法识别的目录结构"
            )
        else:
            logger.debug(f"'{archive_path.name}' 安装了 {components} 个组件")
        return result

    def move_to_store(self, archive_path: Path) -> Path:
        """
        把处理过的归档移动到存储目录，已存在则替换

        Raises:
            ArchiveMoveError: 重命名和复制都失败
        """
        target = self.archive_store / archive_path.name
        try:
            if target.exists():
                target.unlink()
            try:
                os.rename(archive_path, target)
            except OSError:
                # 跨文件系统时回退到复制后删除
                logger.debug(f"重命名失败，改为复制: {archive_path} -> {target}")
                shutil.copyfile(archive_path, target)
                archive_path.unlink()
                normalize_permissions(target)
        except OSError as e:
            raise ArchiveMoveError(
                f"无法把 {archive_path.name} 移动到 {ARCHIVE_STORE_NAME}: {e}",
                context={"archive": str(archive_path), "target": str(target)},
            )
        return target

    def restore_from_store(self) -> int:
        """
        把存储目录中有、输出目录中没有的归档复制回输出目录，以便重新安装

        Returns:
            复制的归档数量
        """
        if not self.archive_store.is_dir():
            logger.warning(f"没有找到 {ARCHIVE_STORE_NAME} 目录，无可安装的本地归档")
            return 0

        count = 0
        for path in sorted(self.archive_store.iterdir()):
            if not path.is_file() or ArchiveFormat.from_path(path) is None:
                continue
            target = self.output_dir / path.name
            if not target.exists():
                logger.debug(f"从 {ARCHIVE_STORE_NAME} 复制归档: {path.name}")
                shutil.copyfile(path, target)
                count += 1
        return count

    def pending_archives(self, archive_dir: Optional[Path] = None) -> List[Path]:
        archive_dir = Path(archive_dir) if archive_dir else self.output_dir
        if not archive_dir.is_dir():
            return []
        return [
            p
            for p in sorted(archive_dir.iterdir())
            if p.is_file() and ArchiveFormat.from_path(p) is not None
        ]

    def install_all(self, archive_dir: Optional[Path] = None) -> InstallReport:
        """
        依次安装目录中的全部归档

        同一输出目录的归档必须顺序处理，避免并发合并到同一子目录。
        单个归档失败不会中断其他归档。
        """
        self.ensure_required_dirs()
        report = InstallReport()

        for path in self.pending_archives(archive_dir):
            try:
                result = self.install_archive(path)
            except ArchiveError as e:
                report.errors.append((path, e))
                logger.error(f"× 安装 {path.name} 失败: {e.message}")
                continue
            except OSError as e:
                error = ArchiveError(f"安装失败: {e}", context={"archive": str(path)})
                report.errors.append((path, error))
                logger.error(f"× 安装 {path.name} 失败: {e}")
                continue

            report.results.append(result)
            try:
                result.stored_path = self.move_to_store(path)
                logger.success(f"✓ 已安装并归档 {path.name}")
            except ArchiveMoveError as e:
                report.move_errors.append((path, e))
                logger.warning(f"已安装 {path.name}，但移动失败: {e.message}")

        if report.move_errors:
            logger.warning(
                f"{len(report.move_errors)} 个归档已安装，但无法移动到 {ARCHIVE_STORE_NAME} 目录"
            )
        return report
