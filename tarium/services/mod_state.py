"""
模组启用状态管理

在输出目录（启用）和 disabled-mods/<模组名>/（禁用）之间移动模组文件。
"""

import os
import shutil
from pathlib import Path
from typing import List, Sequence, Union

from loguru import logger

from tarium.exceptions import ModStateError

DISABLED_DIR_NAME = "disabled-mods"

_UNSAFE_CHARS = '/\\:*?"<>|'


def sanitize_filename(name: str) -> str:
    """把文件系统不安全的字符替换为下划线，其他字符（包括空格）保持不变"""
    return "".join("_" if c in _UNSAFE_CHARS else c for c in name)


class ModStateManager:
    """绑定到某个配置档案输出目录的无状态辅助类"""

    def __init__(self, output_dir: Union[str, Path]):
        self.output_dir = Path(output_dir)

    @property
    def disabled_dir(self) -> Path:
        return self.output_dir / DISABLED_DIR_NAME

    @property
    def enabled_dir(self) -> Path:
        return self.output_dir

    def mod_disabled_dir(self, mod_name: str) -> Path:
        return self.disabled_dir / sanitize_filename(mod_name)

    def ensure_disabled_dir(self):
        try:
            self.disabled_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ModStateError(
                f"无法创建禁用模组目录: {e}",
                context={"path": str(self.disabled_dir)},
            )

    def _move(self, src: Path, dst: Path):
        try:
            dst.parent.mkdir(parents=True, exist_ok=True)
            os.rename(src, dst)
        except OSError as e:
            raise ModStateError(
                f"无法移动文件 {src} -> {dst}: {e}",
                context={"src": str(src), "dst": str(dst)},
            )

    def disable(self, mod_name: str, files: Sequence[str]) -> List[str]:
        """
        把模组文件移动到禁用目录

        不存在的文件会被跳过。

        Returns:
            实际移动的相对路径
        """
        self.ensure_disabled_dir()
        target = self.mod_disabled_dir(mod_name)
        try:
            target.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ModStateError(
                f"无法创建模组禁用目录: {e}", context={"path": str(target)}
            )

        moved = []
        for file in files:
            src = self.enabled_dir / file
            if src.exists():
                self._move(src, target / file)
                moved.append(file)
        logger.debug(f"禁用 '{mod_name}': 移动了 {len(moved)}/{len(files)} 个文件")
        return moved

    def enable(self, mod_name: str, files: Sequence[str]) -> List[str]:
        """
        把模组文件从禁用目录移回输出目录

        移回后，如果模组的禁用目录为空则将其删除。

        Returns:
            实际移动的相对路径
        """
        source = self.mod_disabled_dir(mod_name)
        moved = []
        for file in files:
            src = source / file
            if src.exists():
                self._move(src, self.enabled_dir / file)
                moved.append(file)

        if source.is_dir():
            try:
                self._prune_empty_dirs(source)
                if not any(source.iterdir()):
                    source.rmdir()
            except OSError as e:
                raise ModStateError(
                    f"无法删除空的模组禁用目录: {e}", context={"path": str(source)}
                )
        logger.debug(f"启用 '{mod_name}': 移动了 {len(moved)}/{len(files)} 个文件")
        return moved

    @staticmethod
    def _prune_empty_dirs(root: Path):
        """删除 root 下因文件移走而留下的空子目录（不包括 root 本身）"""
        for dirpath, _, _ in sorted(os.walk(root), key=lambda w: len(w[0]), reverse=True):
            path = Path(dirpath)
            if path != root and not any(path.iterdir()):
                path.rmdir()

    def is_enabled(self, files: Sequence[str]) -> bool:
        """只要有任何一个文件存在于输出目录中就认为已启用"""
        return any((self.enabled_dir / f).exists() for f in files)

    def list_disabled(self) -> List[str]:
        """列出禁用目录下的模组名"""
        if not self.disabled_dir.exists():
            return []
        try:
            return sorted(p.name for p in self.disabled_dir.iterdir() if p.is_dir())
        except OSError as e:
            raise ModStateError(
                f"无法读取禁用模组目录: {e}", context={"path": str(self.disabled_dir)}
            )

    def cleanup(self, mod_name: str):
        """删除模组的整个禁用目录（删除模组记录时使用）"""
        target = self.mod_disabled_dir(mod_name)
        if target.exists():
            try:
                shutil.rmtree(target)
            except OSError as e:
                raise ModStateError(
                    f"无法删除模组禁用目录: {e}", context={"path": str(target)}
                )
