"""
Tarium 安装层

包含归档格式识别、解压和合并到输出目录的安装器。
"""

from tarium.installer.archive import ArchiveFormat, extract_archive, is_supported_archive
from tarium.installer.installer import (
    ArchiveInstaller,
    InstallReport,
    InstallResult,
    collapse_wrapper,
    normalize_tree,
)

__all__ = [
    "ArchiveFormat",
    "extract_archive",
    "is_supported_archive",
    "ArchiveInstaller",
    "InstallReport",
    "InstallResult",
    "collapse_wrapper",
    "normalize_tree",
]
