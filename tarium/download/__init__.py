"""
Tarium 下载层

包含下载管理和下载统计。
"""

from tarium.download.manager import DownloadManager, DownloadStats

__all__ = [
    "DownloadManager",
    "DownloadStats",
]
