"""Tests for the filter engine: version matching, channels, patterns and selection."""

import pytest

from tarium.exceptions import FilterEmptyError, InvalidPatternError, NoCompatibleFilesError
from tarium.models import Filter, ReleaseChannel
from tarium.services.version_matcher import (
    VersionGroupCache,
    VersionMatcher,
    extract_versions,
    is_known_version,
    strip_last_segment,
)
from tests.helpers import make_metadata


# ---------------------------------------------------------------------------
# version helpers
# ---------------------------------------------------------------------------


class TestExtractVersions:
    def test_full_version(self) -> None:
        assert extract_versions("SPT 3.10.2") == ["3.10.2"]

    def test_missing_components_become_wildcards(self) -> None:
        assert extract_versions("v3.10") == ["3.10.x"]
        assert extract_versions("for 3") == ["3.x.x"]

    def test_wildcard_components(self) -> None:
        assert extract_versions("3.9.X") == ["3.9.X"]

    def test_multiple_versions_in_order(self) -> None:
        assert extract_versions("MyMod-1.2.0-SPT-3.10") == ["1.2.0", "3.10.x"]

    def test_no_versions(self) -> None:
        assert extract_versions("MyMod.zip") == []


class TestKnownVersion:
    def test_exact_and_patch(self) -> None:
        assert is_known_version("3.10")
        assert is_known_version("3.10.2")
        assert is_known_version("3.9.x")

    def test_component_boundary(self) -> None:
        assert not is_known_version("3.100.0")
        assert not is_known_version("3.1.0")
        assert not is_known_version("1.2.0")

    def test_strip_last_segment(self) -> None:
        assert strip_last_segment("3.10.2") == "3.10"
        assert strip_last_segment("3.10.x") == "3.10"
        assert strip_last_segment("3.10") == "3.10"


# ---------------------------------------------------------------------------
# matches
# ---------------------------------------------------------------------------


class TestGameVersionStrict:
    @pytest.mark.asyncio
    async def test_wildcard_request_matches_bare_version(self) -> None:
        matcher = VersionMatcher()
        f = Filter.game_version_strict(["3.10.x"])
        assert await matcher.matches(f, make_metadata(game_versions=["3.10"]))

    @pytest.mark.asyncio
    async def test_bare_request_matches_wildcard_version(self) -> None:
        matcher = VersionMatcher()
        f = Filter.game_version_strict(["3.10"])
        assert await matcher.matches(f, make_metadata(game_versions=["3.10.x"]))

    @pytest.mark.asyncio
    async def test_different_version_does_not_match(self) -> None:
        matcher = VersionMatcher()
        f = Filter.game_version_strict(["3.11"])
        assert not await matcher.matches(f, make_metadata(game_versions=["3.10"]))

    @pytest.mark.asyncio
    async def test_any_requested_version(self) -> None:
        matcher = VersionMatcher()
        f = Filter.game_version_strict(["3.9", "3.11"])
        assert await matcher.matches(f, make_metadata(game_versions=["3.11"]))

    @pytest.mark.asyncio
    async def test_empty_metadata_versions(self) -> None:
        matcher = VersionMatcher()
        f = Filter.game_version_strict(["3.10"])
        assert not await matcher.matches(f, make_metadata(game_versions=[]))


class TestGameVersionMinor:
    @pytest.mark.asyncio
    async def test_default_provider_matches_nothing(self) -> None:
        matcher = VersionMatcher()
        f = Filter.game_version_minor(["3.10"])
        assert not await matcher.matches(f, make_metadata(game_versions=["3.10"]))

    @pytest.mark.asyncio
    async def test_injected_groups_expand_request(self) -> None:
        cache = VersionGroupCache(lambda: [["3.10", "3.11"], ["3.9"]])
        matcher = VersionMatcher(cache)
        f = Filter.game_version_minor(["3.10"])
        assert await matcher.matches(f, make_metadata(game_versions=["3.11"]))
        assert not await matcher.matches(f, make_metadata(game_versions=["3.9"]))

    @pytest.mark.asyncio
    async def test_provider_called_once(self) -> None:
        calls = []

        async def provider():
            calls.append(1)
            return [["3.10"]]

        matcher = VersionMatcher(VersionGroupCache(provider))
        f = Filter.game_version_minor(["3.10"])
        for _ in range(3):
            assert await matcher.matches(f, make_metadata(game_versions=["3.10.x"]))
        assert len(calls) == 1


class TestReleaseChannel:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "required, actual, expected",
        [
            (ReleaseChannel.RELEASE, ReleaseChannel.RELEASE, True),
            (ReleaseChannel.RELEASE, ReleaseChannel.BETA, False),
            (ReleaseChannel.BETA, ReleaseChannel.RELEASE, True),
            (ReleaseChannel.BETA, ReleaseChannel.ALPHA, False),
            (ReleaseChannel.ALPHA, ReleaseChannel.ALPHA, True),
            (ReleaseChannel.ALPHA, ReleaseChannel.RELEASE, True),
        ],
    )
    async def test_stability_order(self, required, actual, expected) -> None:
        matcher = VersionMatcher()
        f = Filter.release_channel(required)
        assert await matcher.matches(f, make_metadata(channel=actual)) is expected


class TestPatterns:
    @pytest.mark.asyncio
    async def test_filename_search(self) -> None:
        matcher = VersionMatcher()
        assert await matcher.matches(Filter.filename(r"client"), make_metadata("Mod-client.zip"))
        assert not await matcher.matches(Filter.filename(r"^client"), make_metadata("Mod-client.zip"))

    @pytest.mark.asyncio
    async def test_title_and_description(self) -> None:
        matcher = VersionMatcher()
        meta = make_metadata(title="Release 1.2", description="Works with SPT")
        assert await matcher.matches(Filter.title(r"1\.2"), meta)
        assert await matcher.matches(Filter.description("SPT"), meta)
        assert not await matcher.matches(Filter.description("Fika"), meta)

    @pytest.mark.asyncio
    async def test_invalid_pattern(self) -> None:
        matcher = VersionMatcher()
        with pytest.raises(InvalidPatternError):
            await matcher.matches(Filter.filename("(unclosed"), make_metadata())


# ---------------------------------------------------------------------------
# filter / select_latest
# ---------------------------------------------------------------------------


class TestSelectLatest:
    @pytest.mark.asyncio
    async def test_no_candidates(self) -> None:
        matcher = VersionMatcher()
        with pytest.raises(NoCompatibleFilesError):
            await matcher.select_latest([], [Filter.game_version_strict(["3.10"])])
        with pytest.raises(NoCompatibleFilesError):
            await matcher.select_latest([], [])

    @pytest.mark.asyncio
    async def test_no_filters_returns_first(self) -> None:
        matcher = VersionMatcher()
        candidates = [make_metadata("a.zip"), make_metadata("b.zip")]
        assert await matcher.select_latest(candidates, []) is candidates[0]

    @pytest.mark.asyncio
    async def test_newest_matching_candidate(self) -> None:
        matcher = VersionMatcher()
        candidates = [
            make_metadata("a.zip", ["3.10"]),
            make_metadata("b.zip", ["3.11"]),
            make_metadata("c.zip", ["3.10", "3.11"]),
        ]
        selected = await matcher.select_latest(
            candidates, [Filter.game_version_strict(["3.10"])]
        )
        assert selected is candidates[0]

    @pytest.mark.asyncio
    async def test_skips_until_all_filters_pass(self) -> None:
        matcher = VersionMatcher()
        candidates = [
            make_metadata("a.zip", ["3.11"], ReleaseChannel.BETA),
            make_metadata("b.zip", ["3.11"]),
        ]
        filters = [
            Filter.game_version_strict(["3.11"]),
            Filter.release_channel(ReleaseChannel.RELEASE),
        ]
        assert await matcher.select_latest(candidates, filters) is candidates[1]

    @pytest.mark.asyncio
    async def test_filter_empty_names_every_impossible_filter(self) -> None:
        matcher = VersionMatcher()
        candidates = [make_metadata("a.zip", ["3.10"])]
        filters = [
            Filter.game_version_strict(["3.9"]),
            Filter.filename("a"),
            Filter.title("nothing"),
        ]
        with pytest.raises(FilterEmptyError) as exc_info:
            await matcher.select_latest(candidates, filters)
        assert exc_info.value.filters == ["Game Version (3.9)", "Title (nothing)"]

    @pytest.mark.asyncio
    async def test_no_single_candidate_passes_all(self) -> None:
        matcher = VersionMatcher()
        candidates = [
            make_metadata("a.zip", ["3.10"], ReleaseChannel.BETA),
            make_metadata("b.zip", ["3.11"]),
        ]
        filters = [
            Filter.game_version_strict(["3.10"]),
            Filter.release_channel(ReleaseChannel.RELEASE),
        ]
        with pytest.raises(NoCompatibleFilesError):
            await matcher.select_latest(candidates, filters)

    @pytest.mark.asyncio
    async def test_key_extracts_metadata(self) -> None:
        matcher = VersionMatcher()
        candidates = [
            (make_metadata("a.zip", ["3.9"]), "first"),
            (make_metadata("b.zip", ["3.10"]), "second"),
        ]
        selected = await matcher.select_latest(
            candidates, [Filter.game_version_strict(["3.10"])], key=lambda c: c[0]
        )
        assert selected[1] == "second"

    @pytest.mark.asyncio
    async def test_filter_preserves_order(self) -> None:
        matcher = VersionMatcher()
        candidates = [
            make_metadata("c.zip", ["3.10"]),
            make_metadata("a.zip", ["3.11"]),
            make_metadata("b.zip", ["3.10"]),
        ]
        result = await matcher.filter(Filter.game_version_strict(["3.10"]), candidates)
        assert [m.filename for m in result] == ["c.zip", "b.zip"]
