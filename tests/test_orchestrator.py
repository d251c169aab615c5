"""Tests for concurrent resolution and the upgrade flow."""

import asyncio
from pathlib import Path
from typing import Dict

import aiohttp
import pytest

from tarium.download import DownloadManager
from tarium.exceptions import APIServerError, DoesNotExistError, ResolveError
from tarium.models import DownloadData, ModIdentifier, Profile
from tarium.orchestrator import ResolutionContext, TariumOrchestrator
from tests.helpers import FakeReleaseSource, make_asset, make_release, make_zip


class FakeDownloadManager(DownloadManager):
    """把预先准备好的归档字节写入输出目录"""

    def __init__(self, payloads: Dict[str, bytes]):
        super().__init__()
        self.payloads = payloads
        self.downloaded = []

    async def download(self, data: DownloadData, output_dir: Path, update=None) -> Path:
        path = data.destination(output_dir)
        path.write_bytes(self.payloads[data.filename])
        self.downloaded.append(data.filename)
        self.stats.completed += 1
        return path


def _profile(output_dir: Path, *repos: str) -> Profile:
    profile = Profile.new("default", output_dir, ["3.10"])
    for repo in repos:
        profile.push_mod(repo, ModIdentifier("owner", repo))
    return profile


def _source(*repos: str, delays=None) -> FakeReleaseSource:
    return FakeReleaseSource(
        releases={
            ("owner", repo): [make_release(i + 1, "v1", [make_asset(i + 1, f"{repo}-3.10.zip")])]
            for i, repo in enumerate(repos)
        },
        delays=delays,
    )


class TestResolutionContext:
    def test_default_size(self) -> None:
        assert ResolutionContext().parallel_tasks == 50


class TestGetDownloadables:
    @pytest.mark.asyncio
    async def test_semaphore_caps_concurrency(self, output_dir: Path) -> None:
        repos = [f"Mod{i}" for i in range(6)]
        source = _source(*repos, delays={("owner", r): 0.02 for r in repos})
        orchestrator = TariumOrchestrator(source, ResolutionContext(2))

        downloadables, failed = await orchestrator.get_downloadables(_profile(output_dir, *repos))
        assert not failed
        assert len(downloadables) == 6
        assert source.max_active == 2

    @pytest.mark.asyncio
    async def test_failure_does_not_abort_batch(self, output_dir: Path) -> None:
        source = _source("Good")
        orchestrator = TariumOrchestrator(source, ResolutionContext(4))

        downloadables, failed = await orchestrator.get_downloadables(
            _profile(output_dir, "Good", "Missing")
        )
        assert failed
        assert [d.filename for d in downloadables] == ["Good-3.10.zip"]
        (name, error), = orchestrator.failures
        assert name == "Missing"
        assert isinstance(error, DoesNotExistError)

    @pytest.mark.asyncio
    async def test_network_error_does_not_abort_batch(self, output_dir: Path) -> None:
        source = _source("Good")
        source.errors[("owner", "Flaky")] = aiohttp.ClientConnectionError("connection reset")
        orchestrator = TariumOrchestrator(source, ResolutionContext(4))

        downloadables, failed = await orchestrator.get_downloadables(
            _profile(output_dir, "Good", "Flaky")
        )
        assert failed
        assert [d.filename for d in downloadables] == ["Good-3.10.zip"]
        (name, error), = orchestrator.failures
        assert name == "Flaky"
        assert isinstance(error, ResolveError)
        assert "ClientConnectionError" in error.message

    @pytest.mark.asyncio
    async def test_failed_task_releases_permit(self, output_dir: Path) -> None:
        source = _source("Good")
        source.errors[("owner", "Broken")] = APIServerError("服务器错误 (状态码: 502)")
        source.errors[("owner", "Crash")] = RuntimeError("boom")
        context = ResolutionContext(1)
        orchestrator = TariumOrchestrator(source, context)

        downloadables, failed = await asyncio.wait_for(
            orchestrator.get_downloadables(_profile(output_dir, "Broken", "Crash", "Good")),
            timeout=5,
        )
        assert failed
        assert [d.filename for d in downloadables] == ["Good-3.10.zip"]
        assert sorted(name for name, _ in orchestrator.failures) == ["Broken", "Crash"]
        assert not context.semaphore.locked()

    @pytest.mark.asyncio
    async def test_completion_order(self, output_dir: Path) -> None:
        source = _source("Slow", "Fast", delays={("owner", "Slow"): 0.05})
        orchestrator = TariumOrchestrator(source, ResolutionContext(4))

        resolved = await orchestrator.resolve_all(_profile(output_dir, "Slow", "Fast"))
        assert [mod.name for mod, _ in resolved] == ["Fast", "Slow"]

    @pytest.mark.asyncio
    async def test_empty_profile(self, output_dir: Path) -> None:
        orchestrator = TariumOrchestrator(FakeReleaseSource())
        assert await orchestrator.get_downloadables(_profile(output_dir)) == ([], False)


class TestUpgrade:
    def _payload(self, tmp_path: Path, name: str, files) -> bytes:
        return make_zip(tmp_path / "src" / name, files).read_bytes()

    @pytest.mark.asyncio
    async def test_downloads_installs_and_tracks_files(
        self, output_dir: Path, tmp_path: Path
    ) -> None:
        payload = self._payload(tmp_path, "MyMod-3.10.zip", {"MyMod.dll": b"a"})
        source = FakeReleaseSource(
            releases={
                ("owner", "MyMod"): [
                    make_release(1, "v1", [make_asset(1, "MyMod-3.10.zip", size=len(payload))])
                ]
            }
        )
        downloads = FakeDownloadManager({"MyMod-3.10.zip": payload})
        orchestrator = TariumOrchestrator(source, download_manager=downloads)
        profile = _profile(output_dir, "MyMod")

        report = await orchestrator.upgrade(profile)
        assert not report.failed
        assert (output_dir / "BepInEx/plugins/MyMod.dll").exists()
        assert (output_dir / "MODS/MyMod-3.10.zip").exists()
        assert profile.mods[0].files == ["BepInEx/plugins/MyMod.dll"]

        # 第二次升级时归档已在 MODS 中，不会重复下载
        report = await orchestrator.upgrade(profile)
        assert not report.failed
        assert downloads.downloaded == ["MyMod-3.10.zip"]
        assert profile.mods[0].files == ["BepInEx/plugins/MyMod.dll"]

    @pytest.mark.asyncio
    async def test_resolve_failure_reported(self, output_dir: Path) -> None:
        orchestrator = TariumOrchestrator(
            FakeReleaseSource(), download_manager=FakeDownloadManager({})
        )
        report = await orchestrator.upgrade(_profile(output_dir, "Missing"))
        assert report.resolve_failed
        assert report.failed

    @pytest.mark.asyncio
    async def test_disabled_mods_not_resolved(self, output_dir: Path) -> None:
        source = _source("MyMod")
        profile = _profile(output_dir, "MyMod")
        profile.mods[0].enabled = False
        orchestrator = TariumOrchestrator(source, download_manager=FakeDownloadManager({}))

        report = await orchestrator.upgrade(profile)
        assert not report.failed
        assert source.calls == []

    @pytest.mark.asyncio
    async def test_local_only_reinstalls_from_store(self, output_dir: Path) -> None:
        make_zip(output_dir / "MODS" / "MyMod-3.10.zip", {"MyMod.dll": b"a"})
        source = FakeReleaseSource()
        orchestrator = TariumOrchestrator(source, download_manager=FakeDownloadManager({}))
        profile = _profile(output_dir, "MyMod")

        report = await orchestrator.upgrade(profile, local_only=True)
        assert not report.failed
        assert source.calls == []
        assert (output_dir / "BepInEx/plugins/MyMod.dll").exists()
        assert profile.mods[0].files == ["BepInEx/plugins/MyMod.dll"]

    @pytest.mark.asyncio
    async def test_install_failure_reported(self, output_dir: Path) -> None:
        (output_dir / "broken.zip").write_bytes(b"garbage")
        orchestrator = TariumOrchestrator(
            FakeReleaseSource(), download_manager=FakeDownloadManager({})
        )
        report = await orchestrator.upgrade(_profile(output_dir), local_only=True)
        assert report.install_failed
