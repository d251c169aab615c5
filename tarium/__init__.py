"""
Tarium - SPT 模组管理工具

从 GitHub Releases 解析、下载并安装模组。
"""

__version__ = "0.1.0"

from tarium.exceptions import TariumError
from tarium.models import Filter, Mod, ModIdentifier, Profile, TariumConfig

__all__ = [
    "__version__",
    "TariumError",
    "Filter",
    "Mod",
    "ModIdentifier",
    "Profile",
    "TariumConfig",
]
