import asyncio
import zipfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

import py7zr

from tarium.models import GitHubAsset, GitHubRelease, Metadata, ReleaseChannel
from tarium.services.api_client import ReleaseSource
from tarium.exceptions import APINotFoundError

BASE_DATE = datetime(2025, 1, 1, tzinfo=timezone.utc)

FileContents = Dict[str, Union[str, bytes]]


def make_metadata(
    filename: str = "mod.zip",
    game_versions: Optional[List[str]] = None,
    channel: ReleaseChannel = ReleaseChannel.RELEASE,
    title: str = "",
    description: str = "",
    days_ago: int = 0,
) -> Metadata:
    return Metadata(
        title=title,
        description=description,
        filename=filename,
        release_date=BASE_DATE - timedelta(days=days_ago),
        channel=channel,
        game_versions=list(game_versions or []),
    )


def make_asset(asset_id: int, name: str, size: int = 100) -> GitHubAsset:
    return GitHubAsset(
        id=asset_id,
        name=name,
        browser_download_url=f"https://example.invalid/download/{name}",
        size=size,
    )


def make_release(
    release_id: int,
    tag: str,
    assets: Optional[List[GitHubAsset]] = None,
    name: Optional[str] = None,
    prerelease: bool = False,
    draft: bool = False,
    body: str = "",
) -> GitHubRelease:
    return GitHubRelease(
        id=release_id,
        tag_name=tag,
        name=name,
        body=body,
        published_at=BASE_DATE - timedelta(days=release_id),
        prerelease=prerelease,
        draft=draft,
        assets=assets,
    )


class FakeReleaseSource(ReleaseSource):
    """内存中的发布源，记录调用和并发数"""

    def __init__(
        self,
        releases: Optional[Dict[Tuple[str, str], List[GitHubRelease]]] = None,
        assets: Optional[Dict[int, List[GitHubAsset]]] = None,
        errors: Optional[Dict[Tuple[str, str], Exception]] = None,
        delays: Optional[Dict[Tuple[str, str], float]] = None,
    ):
        self.releases = releases or {}
        self.assets = assets or {}
        self.errors = errors or {}
        self.delays = delays or {}
        self.calls: List[Tuple[str, tuple]] = []
        self.active = 0
        self.max_active = 0

    async def list_releases(self, owner: str, repo: str) -> List[GitHubRelease]:
        self.calls.append(("list_releases", (owner, repo)))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.delays.get((owner, repo), 0))
            if (owner, repo) in self.errors:
                raise self.errors[(owner, repo)]
            return list(self.releases.get((owner, repo), []))
        finally:
            self.active -= 1

    async def list_release_assets(
        self, owner: str, repo: str, release_id: int
    ) -> List[GitHubAsset]:
        self.calls.append(("list_release_assets", (owner, repo, release_id)))
        return list(self.assets.get(release_id, []))

    async def get_release_asset(self, owner: str, repo: str, asset_id: int) -> GitHubAsset:
        self.calls.append(("get_release_asset", (owner, repo, asset_id)))
        if (owner, repo) in self.errors:
            raise self.errors[(owner, repo)]
        for release_assets in self.assets.values():
            for asset in release_assets:
                if asset.id == asset_id:
                    return asset
        for releases in self.releases.values():
            for release in releases:
                for asset in release.assets or []:
                    if asset.id == asset_id:
                        return asset
        raise APINotFoundError("资源不存在 (状态码: 404)")


def make_zip(path: Path, files: FileContents) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(path, "w") as zf:
        for name, content in files.items():
            zf.writestr(name, content)
    return path


def make_7z(path: Path, files: FileContents, staging: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with py7zr.SevenZipFile(path, "w") as archive:
        for name, content in files.items():
            src = staging / name
            src.parent.mkdir(parents=True, exist_ok=True)
            if isinstance(content, str):
                content = content.encode()
            src.write_bytes(content)
            archive.write(src, name)
    return path

