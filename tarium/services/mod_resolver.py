"""
模组解析服务

把模组标识解析为唯一的可下载文件：获取发布、提取候选、应用过滤器。
"""

from typing import List, Optional, Sequence, Tuple

from loguru import logger

from tarium.models import DownloadData, Filter, GitHubRelease, Metadata, Mod
from tarium.services.api_client import ReleaseSource
from tarium.services.version_matcher import (
    VersionMatcher,
    extract_versions,
    is_known_version,
    strip_last_segment,
)
from tarium.exceptions import (
    APIError,
    APINotFoundError,
    DistributionDeniedError,
    DoesNotExistError,
    FilterError,
    IncompatibleError,
    InvalidPinError,
)

ARCHIVE_EXTENSIONS = (".zip", ".7z")

Candidate = Tuple[Metadata, DownloadData]


def is_archive_name(name: str) -> bool:
    return name.lower().endswith(ARCHIVE_EXTENSIONS)


def game_versions_for(release_title: str, asset_name: str) -> List[str]:
    """
    从发布标题和附件文件名中提取游戏版本

    较长的提取结果优先，去重后只保留已知版本族，并去掉补丁段。
    """
    found = [extract_versions(release_title), extract_versions(asset_name)]
    found.sort(key=len, reverse=True)

    versions: List[str] = []
    for group in found:
        for version in group:
            if not is_known_version(version):
                continue
            version = strip_last_segment(version)
            if version not in versions:
                versions.append(version)
    return versions


def from_github_releases(releases: Sequence[GitHubRelease]) -> List[Candidate]:
    """把 GitHub 发布转换为 (元数据, 下载信息) 候选列表，保持原有顺序"""
    candidates: List[Candidate] = []
    for release in releases:
        if release.draft:
            continue
        for asset in release.assets or []:
            # 只考虑能处理的归档文件
            if not is_archive_name(asset.name):
                continue
            metadata = Metadata(
                title=release.title,
                description=release.body or "",
                filename=asset.name,
                release_date=release.release_date,
                channel=release.channel,
                game_versions=game_versions_for(release.title, asset.name),
            )
            candidates.append((metadata, DownloadData.from_asset(asset)))
    return candidates


class ModResolver:
    """模组解析器"""

    def __init__(self, client: ReleaseSource, matcher: Optional[VersionMatcher] = None):
        self.client = client
        self.matcher = matcher or VersionMatcher()

    async def fetch_candidates(self, owner: str, repo: str) -> List[Candidate]:
        """获取仓库的全部候选文件"""
        project = f"{owner}/{repo}"
        try:
            releases = await self.client.list_releases(owner, repo)
            for release in releases:
                if release.assets is None and not release.draft:
                    release.assets = await self.client.list_release_assets(
                        owner, repo, release.id
                    )
        except APINotFoundError:
            raise DoesNotExistError(project)
        except APIError as e:
            if e.status == 451:
                raise DistributionDeniedError(project)
            raise

        candidates = from_github_releases(releases)
        logger.debug(f"{project}: {len(releases)} 个发布, {len(candidates)} 个候选文件")
        return candidates

    async def resolve(self, mod: Mod, profile_filters: List[Filter]) -> DownloadData:
        """
        解析模组的可下载文件

        Args:
            mod: 模组
            profile_filters: 配置档案的过滤器

        Returns:
            唯一选中的 DownloadData

        Raises:
            DistributionDeniedError, IncompatibleError, DoesNotExistError,
            InvalidPinError, APIError
        """
        identifier = mod.identifier

        # 锁定版本的模组直接获取对应附件
        if identifier.is_pinned:
            try:
                asset = await self.client.get_release_asset(
                    identifier.owner, identifier.repo, identifier.pin
                )
            except APINotFoundError:
                raise DoesNotExistError(str(identifier))
            except APIError as e:
                if e.status == 451:
                    raise DistributionDeniedError(str(identifier))
                raise
            if not is_archive_name(asset.name):
                raise InvalidPinError(
                    f"锁定的附件不是可安装的归档: {asset.name}",
                    context={"identifier": str(identifier)},
                )
            return DownloadData.from_asset(asset)

        candidates = await self.fetch_candidates(identifier.owner, identifier.repo)
        if not candidates:
            raise DoesNotExistError(identifier.full_name)

        filters = mod.effective_filters(profile_filters)
        try:
            _, download_data = await self.matcher.select_latest(
                candidates, filters, key=lambda c: c[0]
            )
        except FilterError as e:
            raise IncompatibleError(e)
        return download_data
