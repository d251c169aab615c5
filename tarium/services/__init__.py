"""
Tarium 服务层

包含业务逻辑服务：GitHub 客户端、模组解析、版本匹配、模组状态和配置档案管理。
"""

from tarium.services.api_client import GitHubClient, ReleaseSource
from tarium.services.mod_resolver import ModResolver
from tarium.services.version_matcher import VersionGroupCache, VersionMatcher
from tarium.services.mod_state import ModStateManager
from tarium.services.mod_manager import ModManager, parse_identifier

__all__ = [
    "GitHubClient",
    "ReleaseSource",
    "ModResolver",
    "VersionGroupCache",
    "VersionMatcher",
    "ModStateManager",
    "ModManager",
    "parse_identifier",
]
