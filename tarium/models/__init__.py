"""
Tarium 数据模型包

包含配置模型和 API 模型定义。
"""

from tarium.models.config import (
    ReleaseChannel,
    FilterKind,
    Filter,
    ModIdentifier,
    Mod,
    Profile,
    TariumConfig,
    game_versions,
)
from tarium.models.api import (
    GitHubAsset,
    GitHubRelease,
    Metadata,
    DownloadData,
)

__all__ = [
    # 配置模型
    "ReleaseChannel",
    "FilterKind",
    "Filter",
    "ModIdentifier",
    "Mod",
    "Profile",
    "TariumConfig",
    "game_versions",
    # API 模型
    "GitHubAsset",
    "GitHubRelease",
    "Metadata",
    "DownloadData",
]
