"""
版本匹配服务

实现过滤器求值、游戏版本提取与通配符等价匹配、候选文件选择。
"""

import asyncio
import re
from typing import Awaitable, Callable, Iterable, List, Optional, Sequence, TypeVar, Union

from loguru import logger

from tarium.models import Filter, FilterKind, Metadata
from tarium.exceptions import (
    FilterEmptyError,
    InvalidPatternError,
    NoCompatibleFilesError,
)

T = TypeVar("T")

VERSION_RE = re.compile(
    r"""
    \b
    v?                                  # 可选的前缀 v
    (?P<major>\d+)
    (?:\.(?P<minor>\d+|[xX*]))?         # 可选的次版本或通配符
    (?:\.(?P<patch>\d+|[xX*]))?         # 可选的补丁版本或通配符
    \b
    """,
    re.VERBOSE | re.IGNORECASE,
)

KNOWN_VERSIONS = ("3.11", "3.10", "3.9")

WILDCARD = "x"

VersionGroups = List[List[str]]
VersionGroupProvider = Callable[[], Union[VersionGroups, Awaitable[VersionGroups]]]


def extract_versions(text: str) -> List[str]:
    """
    从字符串中提取形如版本号的片段，并规范化为 MAJOR.MINOR.PATCH

    缺失的段使用通配符 x 补齐，例如 "v3.10" -> "3.10.x"。
    """
    versions = []
    for match in VERSION_RE.finditer(text):
        minor = match.group("minor") or WILDCARD
        patch = match.group("patch") or WILDCARD
        versions.append(f"{match.group('major')}.{minor}.{patch}")
    return versions


def is_known_version(version: str, known: Sequence[str] = KNOWN_VERSIONS) -> bool:
    """判断版本是否属于目标程序已知的版本族"""
    return any(version == k or version.startswith(k + ".") for k in known)


def strip_last_segment(version: str) -> str:
    """去掉补丁段或通配符段，只保留次版本粒度"""
    if version.count(".") == 2:
        return version[: version.rfind(".")]
    return version


def _equivalent_match(requested: str, available: Sequence[str]) -> Optional[str]:
    """
    双向通配符等价匹配

    X.Y.x 同时匹配 X.Y；X.Y 同时匹配 X.Y.x。
    返回命中的可用版本，没有命中返回 None。
    """
    if requested in available:
        return requested
    if requested.endswith(".x"):
        trimmed = requested[:-2]
        if trimmed in available:
            return trimmed
    elif requested.count(".") == 1:
        with_x = f"{requested}.x"
        if with_x in available:
            return with_x
    return None


def stub_version_groups() -> VersionGroups:
    """版本分组数据源尚未接入，返回一个空分组"""
    logger.warning("版本分组数据源未配置，GameVersionMinor 过滤器将不会匹配任何版本")
    return [[]]


class VersionGroupCache:
    """
    次版本兼容分组缓存

    数据源只在第一次使用时调用一次，之后结果在本实例的生命周期内复用。
    """

    def __init__(self, provider: Optional[VersionGroupProvider] = None):
        self._provider = provider or stub_version_groups
        self._groups: Optional[VersionGroups] = None
        self._lock = asyncio.Lock()

    async def get(self) -> VersionGroups:
        if self._groups is not None:
            logger.trace(f"版本分组缓存命中 ({len(self._groups)} 组)")
            return self._groups
        async with self._lock:
            if self._groups is None:
                groups = self._provider()
                if asyncio.iscoroutine(groups) or isinstance(groups, asyncio.Future):
                    groups = await groups
                self._groups = [list(g) for g in groups]
                logger.debug(f"版本分组已初始化 ({len(self._groups)} 组)")
        return self._groups


class VersionMatcher:
    """过滤器引擎"""

    def __init__(self, version_groups: Optional[VersionGroupCache] = None):
        self.version_groups = version_groups or VersionGroupCache()

    async def expand_minor(self, versions: Sequence[str]) -> List[str]:
        """把请求的版本扩展为其所在的全部次版本兼容分组"""
        expanded: List[str] = []
        for group in await self.version_groups.get():
            if any(v in versions for v in group):
                expanded.extend(group)
        return expanded

    async def matches(self, filter_: Filter, metadata: Metadata) -> bool:
        """
        检查元数据是否通过过滤器

        Raises:
            InvalidPatternError: 正则表达式无法编译
        """
        kind = filter_.kind

        if kind is FilterKind.GAME_VERSION_STRICT:
            result = any(
                _equivalent_match(v, metadata.game_versions) is not None
                for v in filter_.versions
            )
        elif kind is FilterKind.GAME_VERSION_MINOR:
            expanded = await self.expand_minor(filter_.versions)
            result = any(
                _equivalent_match(v, metadata.game_versions) is not None
                for v in expanded
            )
            logger.trace(
                f"次版本扩展: {filter_.versions} -> {expanded}, "
                f"元数据版本 {metadata.game_versions}"
            )
        elif kind is FilterKind.RELEASE_CHANNEL:
            result = filter_.value.accepts(metadata.channel)
        elif kind is FilterKind.FILENAME:
            result = self._search(filter_.value, metadata.filename)
        elif kind is FilterKind.TITLE:
            result = self._search(filter_.value, metadata.title)
        elif kind is FilterKind.DESCRIPTION:
            result = self._search(filter_.value, metadata.description)
        else:
            raise TypeError(f"未处理的过滤器类型: {kind}")

        logger.trace(f"过滤器 {filter_} 对 '{metadata.filename}' 的结果: {result}")
        return result

    @staticmethod
    def _search(pattern: str, text: str) -> bool:
        try:
            compiled = re.compile(pattern)
        except re.error as e:
            raise InvalidPatternError(pattern, str(e))
        return compiled.search(text) is not None

    async def filter(
        self,
        filter_: Filter,
        candidates: Iterable[T],
        key: Callable[[T], Metadata] = lambda c: c,
    ) -> List[T]:
        """保留通过过滤器的候选，顺序不变"""
        results = []
        total = 0
        for candidate in candidates:
            total += 1
            if await self.matches(filter_, key(candidate)):
                results.append(candidate)
        logger.debug(f"过滤器 {filter_}: {len(results)}/{total} 个候选通过")
        return results

    async def select_latest(
        self,
        candidates: Sequence[T],
        filters: Sequence[Filter],
        key: Callable[[T], Metadata] = lambda c: c,
    ) -> T:
        """
        从候选中选择第一个通过全部过滤器的文件

        候选必须已经按偏好排序（例如最新的在前）。

        Raises:
            NoCompatibleFilesError: 没有候选，或没有候选同时通过全部过滤器
            FilterEmptyError: 某些过滤器单独应用时不匹配任何候选
        """
        candidates = list(candidates)
        logger.debug(f"选择候选: {len(candidates)} 个候选, 过滤器 {[str(f) for f in filters]}")

        if not candidates:
            raise NoCompatibleFilesError()

        # 先找出单独就不匹配任何候选的过滤器
        empty_filters = []
        for f in filters:
            has_match = False
            for candidate in candidates:
                if await self.matches(f, key(candidate)):
                    has_match = True
                    break
            if not has_match:
                empty_filters.append(str(f))

        if empty_filters:
            raise FilterEmptyError(empty_filters)

        for candidate in candidates:
            passes_all = True
            for f in filters:
                if not await self.matches(f, key(candidate)):
                    passes_all = False
                    break
            if passes_all:
                logger.debug(f"选中候选: {key(candidate).filename}")
                return candidate

        raise NoCompatibleFilesError()
