"""
配置数据模型

定义配置文件中持久化的数据类：过滤器、模组、配置档案。
序列化格式与旧版 JSON 配置保持一致。
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from tarium.exceptions import ConfigValidationError


class ReleaseChannel(Enum):
    """发布渠道，按稳定性排序: Release > Beta > Alpha"""

    RELEASE = "Release"
    BETA = "Beta"
    ALPHA = "Alpha"

    @property
    def stability(self) -> int:
        return _CHANNEL_STABILITY[self]

    def accepts(self, other: "ReleaseChannel") -> bool:
        """当 other 至少与本渠道一样稳定时返回 True"""
        return other.stability >= self.stability

    def __str__(self) -> str:
        return self.value


_CHANNEL_STABILITY = {
    ReleaseChannel.ALPHA: 0,
    ReleaseChannel.BETA: 1,
    ReleaseChannel.RELEASE: 2,
}


class FilterKind(Enum):
    """过滤器类型"""

    GAME_VERSION_STRICT = "GameVersionStrict"
    GAME_VERSION_MINOR = "GameVersionMinor"
    RELEASE_CHANNEL = "ReleaseChannel"
    FILENAME = "Filename"
    TITLE = "Title"
    DESCRIPTION = "Description"


_FILTER_LABELS = {
    FilterKind.GAME_VERSION_STRICT: "Game Version",
    FilterKind.GAME_VERSION_MINOR: "Game Version Minor",
    FilterKind.RELEASE_CHANNEL: "Release Channel",
    FilterKind.FILENAME: "Filename",
    FilterKind.TITLE: "Title",
    FilterKind.DESCRIPTION: "Description",
}

VERSION_FILTER_KINDS = (FilterKind.GAME_VERSION_STRICT, FilterKind.GAME_VERSION_MINOR)
PATTERN_FILTER_KINDS = (FilterKind.FILENAME, FilterKind.TITLE, FilterKind.DESCRIPTION)


@dataclass(frozen=True)
class Filter:
    """
    兼容性过滤器

    value 的类型取决于 kind:
    版本类为 tuple[str, ...]，发布渠道为 ReleaseChannel，其余为正则字符串。
    """

    kind: FilterKind
    value: Union[Tuple[str, ...], ReleaseChannel, str]

    @classmethod
    def game_version_strict(cls, versions: List[str]) -> "Filter":
        return cls(FilterKind.GAME_VERSION_STRICT, tuple(versions))

    @classmethod
    def game_version_minor(cls, versions: List[str]) -> "Filter":
        return cls(FilterKind.GAME_VERSION_MINOR, tuple(versions))

    @classmethod
    def release_channel(cls, channel: ReleaseChannel) -> "Filter":
        return cls(FilterKind.RELEASE_CHANNEL, channel)

    @classmethod
    def filename(cls, pattern: str) -> "Filter":
        return cls(FilterKind.FILENAME, pattern)

    @classmethod
    def title(cls, pattern: str) -> "Filter":
        return cls(FilterKind.TITLE, pattern)

    @classmethod
    def description(cls, pattern: str) -> "Filter":
        return cls(FilterKind.DESCRIPTION, pattern)

    @property
    def versions(self) -> List[str]:
        if self.kind not in VERSION_FILTER_KINDS:
            raise TypeError(f"{self.kind.value} 不是版本过滤器")
        return list(self.value)

    def __str__(self) -> str:
        label = _FILTER_LABELS[self.kind]
        if self.kind in VERSION_FILTER_KINDS:
            return f"{label} ({', '.join(self.value)})"
        return f"{label} ({self.value})"

    def to_dict(self) -> Dict[str, Any]:
        if self.kind in VERSION_FILTER_KINDS:
            return {self.kind.value: list(self.value)}
        if self.kind is FilterKind.RELEASE_CHANNEL:
            return {self.kind.value: self.value.value}
        return {self.kind.value: self.value}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Filter":
        if not isinstance(data, dict) or len(data) != 1:
            raise ConfigValidationError(f"无效的过滤器: {data!r}")
        (key, value), = data.items()
        try:
            kind = FilterKind(key)
        except ValueError:
            raise ConfigValidationError(f"未知的过滤器类型: {key}")

        if kind in VERSION_FILTER_KINDS:
            if isinstance(value, str):
                value = [value]
            return cls(kind, tuple(str(v) for v in value))
        if kind is FilterKind.RELEASE_CHANNEL:
            try:
                return cls(kind, ReleaseChannel(value))
            except ValueError:
                raise ConfigValidationError(f"未知的发布渠道: {value}")
        if not isinstance(value, str):
            raise ConfigValidationError(f"{key} 过滤器需要正则字符串")
        return cls(kind, value)


def game_versions(filters: List[Filter]) -> Optional[List[str]]:
    """返回第一个版本过滤器中的游戏版本（如果存在）"""
    for f in filters:
        if f.kind in VERSION_FILTER_KINDS:
            return f.versions
    return None


@dataclass(frozen=True)
class ModIdentifier:
    """GitHub 仓库标识，pin 不为空时锁定到某个具体的资源 ID"""

    owner: str
    repo: str
    pin: Optional[int] = None

    @property
    def is_pinned(self) -> bool:
        return self.pin is not None

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"

    def unpinned(self) -> "ModIdentifier":
        return ModIdentifier(self.owner, self.repo)

    def __str__(self) -> str:
        if self.is_pinned:
            return f"{self.full_name}@{self.pin}"
        return self.full_name

    def to_dict(self) -> Dict[str, Any]:
        if self.is_pinned:
            return {"PinnedGitHubRepository": [[self.owner, self.repo], self.pin]}
        return {"GitHubRepository": [self.owner, self.repo]}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ModIdentifier":
        if isinstance(data, dict):
            try:
                if "GitHubRepository" in data:
                    owner, repo = data["GitHubRepository"]
                    return cls(owner, repo)
                if "PinnedGitHubRepository" in data:
                    (owner, repo), pin = data["PinnedGitHubRepository"]
                    return cls(owner, repo, int(pin))
            except (TypeError, ValueError) as e:
                raise ConfigValidationError(f"无效的模组标识: {data!r} ({e})")
        raise ConfigValidationError(f"无效的模组标识: {data!r}")


@dataclass
class Mod:
    """
    被跟踪的模组
    """

    name: str
    identifier: ModIdentifier
    slug: Optional[str] = None
    enabled: bool = True
    files: List[str] = field(default_factory=list)
    filters: List[Filter] = field(default_factory=list)
    override_filters: bool = False

    def effective_filters(self, profile_filters: List[Filter]) -> List[Filter]:
        """
        计算实际生效的过滤器

        override_filters 为真时仅使用模组自身的过滤器，
        否则先应用配置档案的过滤器，再追加模组过滤器。
        """
        if self.override_filters:
            return list(self.filters)
        return list(profile_filters) + list(self.filters)

    def matches_query(self, query: str) -> bool:
        """按名称、owner/repo 或 slug（不区分大小写）匹配"""
        q = query.lower()
        return (
            self.name.lower() == q
            or self.identifier.full_name.lower() == q
            or (self.slug is not None and self.slug.lower() == q)
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "name": self.name,
            "identifier": self.identifier.to_dict(),
        }
        if self.slug is not None:
            data["slug"] = self.slug
        data["enabled"] = self.enabled
        if self.files:
            data["files"] = list(self.files)
        if self.filters:
            data["filters"] = [f.to_dict() for f in self.filters]
        if self.override_filters:
            data["override_filters"] = True
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Mod":
        try:
            name = data["name"]
            identifier = ModIdentifier.from_dict(data["identifier"])
        except (KeyError, TypeError, ValueError) as e:
            raise ConfigValidationError(f"模组配置缺少字段: {e}")
        return cls(
            name=name,
            identifier=identifier,
            slug=data.get("slug"),
            enabled=data.get("enabled", True),
            files=list(data.get("files", [])),
            filters=[Filter.from_dict(f) for f in data.get("filters", [])],
            override_filters=data.get("override_filters", False),
        )


def _cut_patch(version: str) -> str:
    """去掉补丁段，例如 3.10.2 -> 3.10；没有补丁段的版本保持不变"""
    if version.count(".") < 2:
        return version
    return version[: version.rfind(".")]


@dataclass
class Profile:
    """
    配置档案：一个被管理的安装目标
    """

    name: str
    output_dir: Path
    filters: List[Filter] = field(default_factory=list)
    mods: List[Mod] = field(default_factory=list)

    def __post_init__(self):
        self.output_dir = Path(self.output_dir)
        if not self.output_dir.is_absolute():
            raise ConfigValidationError(
                f"输出目录必须是绝对路径: {self.output_dir}",
                context={"profile": self.name},
            )

    @classmethod
    def new(
        cls,
        name: str,
        output_dir: Union[str, Path],
        versions: List[str],
        strict: bool = True,
    ) -> "Profile":
        """创建配置档案，并把游戏版本转换为过滤器（去掉补丁段）"""
        versions = [_cut_patch(v) for v in versions]
        version_filter = (
            Filter.game_version_strict(versions)
            if strict
            else Filter.game_version_minor(versions)
        )
        return cls(name=name, output_dir=Path(output_dir), filters=[version_filter])

    def game_versions(self) -> Optional[List[str]]:
        return game_versions(self.filters)

    def push_mod(
        self,
        name: str,
        identifier: ModIdentifier,
        slug: Optional[str] = None,
        override_filters: bool = False,
        filters: Optional[List[Filter]] = None,
    ) -> Mod:
        mod = Mod(
            name=name,
            identifier=identifier,
            slug=slug,
            filters=list(filters or []),
            override_filters=override_filters,
        )
        self.mods.append(mod)
        return mod

    def sort_mods(self):
        self.mods.sort(key=lambda m: m.name.lower())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "output_dir": str(self.output_dir),
            "filters": [f.to_dict() for f in self.filters],
            "mods": [m.to_dict() for m in self.mods],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Profile":
        try:
            name = data["name"]
            output_dir = data["output_dir"]
        except (KeyError, TypeError) as e:
            raise ConfigValidationError(f"配置档案缺少字段: {e}")
        return cls(
            name=name,
            output_dir=Path(output_dir),
            filters=[Filter.from_dict(f) for f in data.get("filters", [])],
            mods=[Mod.from_dict(m) for m in data.get("mods", [])],
        )


@dataclass
class TariumConfig:
    """进程级配置：配置档案列表和当前激活的档案"""

    active_profile: int = 0
    profiles: List[Profile] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if self.active_profile != 0:
            data["active_profile"] = self.active_profile
        if self.profiles:
            data["profiles"] = [p.to_dict() for p in self.profiles]
        return data

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "TariumConfig":
        data = data or {}
        if not isinstance(data, dict):
            raise ConfigValidationError("配置文件顶层必须是对象")
        active = data.get("active_profile", 0)
        if not isinstance(active, int) or active < 0:
            raise ConfigValidationError(f"active_profile 配置无效: {active!r}")
        return cls(
            active_profile=active,
            profiles=[Profile.from_dict(p) for p in data.get("profiles", [])],
        )
