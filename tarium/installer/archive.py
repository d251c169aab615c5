"""
归档格式

按扩展名识别归档格式并解压到指定目录。
"""

import zipfile
from enum import Enum
from pathlib import Path
from typing import Optional, Union

import py7zr

from tarium.exceptions import ExtractError


class ArchiveFormat(Enum):
    """支持的归档格式"""

    ZIP = ".zip"
    SEVEN_ZIP = ".7z"

    @classmethod
    def from_path(cls, path: Union[str, Path]) -> Optional["ArchiveFormat"]:
        """根据扩展名识别格式，不支持的扩展名返回 None"""
        suffix = Path(path).suffix.lower()
        for fmt in cls:
            if fmt.value == suffix:
                return fmt
        return None


def is_supported_archive(path: Union[str, Path]) -> bool:
    return ArchiveFormat.from_path(path) is not None


def extract_archive(
    archive_path: Path, dest: Path, fmt: Optional[ArchiveFormat] = None
) -> None:
    """
    解压归档到 dest

    Raises:
        ExtractError: 归档损坏或格式不受支持
    """
    fmt = fmt or ArchiveFormat.from_path(archive_path)
    if fmt is None:
        raise ExtractError(
            f"不支持的归档格式: {archive_path.suffix}",
            context={"archive": str(archive_path)},
        )

    try:
        if fmt is ArchiveFormat.ZIP:
            with zipfile.ZipFile(archive_path, "r") as zf:
                zf.extractall(dest)
        elif fmt is ArchiveFormat.SEVEN_ZIP:
            with py7zr.SevenZipFile(archive_path, mode="r") as archive:
                archive.extractall(path=dest)
    except Exception as e:
        raise ExtractError(
            f"解压 {archive_path.name} 失败: {e}",
            context={"archive": str(archive_path), "format": fmt.value},
        )
