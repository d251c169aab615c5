"""
API 数据模型

定义 API 相关的数据类，包括 GitHub 发布信息、候选文件元数据和下载信息。
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path, PurePath
from typing import List, Optional

from tarium.models.config import ModIdentifier, ReleaseChannel


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    # GitHub 返回 ISO 8601，末尾为 Z
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


@dataclass
class GitHubAsset:
    """GitHub 发布附件"""

    id: int
    name: str
    browser_download_url: str
    size: int

    @classmethod
    def from_github(cls, data: dict) -> "GitHubAsset":
        return cls(
            id=data["id"],
            name=data["name"],
            browser_download_url=data["browser_download_url"],
            size=data.get("size", 0),
        )


@dataclass
class GitHubRelease:
    """
    GitHub 发布信息。

    assets 为 None 表示列表接口没有携带附件，需要单独获取。
    """

    id: int
    tag_name: str
    name: Optional[str] = None
    body: Optional[str] = None
    published_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    prerelease: bool = False
    draft: bool = False
    assets: Optional[List[GitHubAsset]] = None

    @property
    def title(self) -> str:
        return self.name or self.tag_name

    @property
    def release_date(self) -> datetime:
        return self.published_at or self.created_at or datetime.now(timezone.utc)

    @property
    def channel(self) -> ReleaseChannel:
        return ReleaseChannel.BETA if self.prerelease else ReleaseChannel.RELEASE

    @classmethod
    def from_github(cls, data: dict) -> "GitHubRelease":
        """
        将 GitHub API 返回的发布信息转换为 GitHubRelease 对象。
        """
        assets = data.get("assets")
        return cls(
            id=data["id"],
            tag_name=data.get("tag_name", ""),
            name=data.get("name"),
            body=data.get("body"),
            published_at=_parse_timestamp(data.get("published_at")),
            created_at=_parse_timestamp(data.get("created_at")),
            prerelease=data.get("prerelease", False),
            draft=data.get("draft", False),
            assets=None
            if assets is None
            else [GitHubAsset.from_github(a) for a in assets],
        )


@dataclass
class Metadata:
    """
    一个候选发布文件的元数据
    """

    title: str
    description: str
    filename: str
    release_date: datetime
    channel: ReleaseChannel = ReleaseChannel.RELEASE
    game_versions: List[str] = field(default_factory=list)


@dataclass
class DownloadData:
    """已解析、可下载的文件"""

    download_url: str
    # 相对于输出目录的路径，默认就是文件名
    output: PurePath
    length: int
    dependencies: List[ModIdentifier] = field(default_factory=list)
    conflicts: List[ModIdentifier] = field(default_factory=list)

    def __post_init__(self):
        self.output = PurePath(self.output)

    @property
    def filename(self) -> str:
        return self.output.name

    def destination(self, output_dir: Path) -> Path:
        return Path(output_dir) / self.output

    @classmethod
    def from_asset(cls, asset: GitHubAsset) -> "DownloadData":
        return cls(
            download_url=asset.browser_download_url,
            output=PurePath(asset.name),
            length=asset.size,
        )
