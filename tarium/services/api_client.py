"""
API 客户端抽象

提供统一的发布信息来源接口，以及基于 aiohttp 的 GitHub REST 客户端。
"""

import asyncio
import os
from abc import ABC, abstractmethod
from typing import Any, List, Optional

import aiohttp
from loguru import logger

from tarium.models import GitHubAsset, GitHubRelease
from tarium.exceptions import (
    APIError,
    APINotFoundError,
    APIRateLimitError,
    APIServerError,
)


GITHUB_BASE_URL = "https://api.github.com"
GITHUB_API_VERSION = "2022-11-28"


class ReleaseSource(ABC):
    """发布信息来源"""

    @abstractmethod
    async def list_releases(self, owner: str, repo: str) -> List[GitHubRelease]:
        """
        列出仓库的发布，按 API 返回的顺序（最新的在前）。
        """

    @abstractmethod
    async def list_release_assets(
        self, owner: str, repo: str, release_id: int
    ) -> List[GitHubAsset]:
        """
        列出某个发布的附件。
        """

    @abstractmethod
    async def get_release_asset(
        self, owner: str, repo: str, asset_id: int
    ) -> GitHubAsset:
        """
        通过 ID 获取单个附件（用于锁定版本的模组）。
        """


class GitHubClient(ReleaseSource):
    """GitHub REST API 客户端"""

    def __init__(
        self,
        token: Optional[str] = None,
        session: Optional[aiohttp.ClientSession] = None,
        base_url: str = GITHUB_BASE_URL,
        per_page: int = 30,
    ):
        self.token = token or os.environ.get("GITHUB_TOKEN") or None
        self.base_url = base_url.rstrip("/")
        self.per_page = per_page
        self._session = session
        self._owned_session = session is None

    @property
    def session(self) -> aiohttp.ClientSession:
        """获取或创建 aiohttp session"""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owned_session = True
        return self._session

    def _headers(self) -> dict:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": GITHUB_API_VERSION,
            "User-Agent": "tarium",
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _request(self, endpoint: str, params: Optional[dict] = None) -> Any:
        """发送 API 请求"""
        url = f"{self.base_url}{endpoint}"
        logger.debug(f"[GitHub] GET {url} {params or ''}")
        try:
            async with self.session.get(
                url, params=params, headers=self._headers()
            ) as response:
                if response.status == 200:
                    return await response.json()
                self._raise_for_status(endpoint, response)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise APIError(
                f"请求失败: {e.__class__.__name__}: {e}",
                context={"endpoint": endpoint},
            )

    def _raise_for_status(self, endpoint: str, response: aiohttp.ClientResponse):
        """把非 200 响应转换为对应的异常"""
        context = {"endpoint": endpoint}
        if response.status == 404:
            raise APINotFoundError(
                "资源不存在 (状态码: 404)", context=context, response=response
            )
        if response.status in (403, 429) and (
            response.headers.get("X-RateLimit-Remaining") == "0"
            or response.status == 429
        ):
            raise APIRateLimitError(
                f"已达到 API 速率限制 (状态码: {response.status})，"
                "可以设置 GITHUB_TOKEN 提高限额",
                context=context,
                response=response,
            )
        if response.status >= 500:
            raise APIServerError(
                f"服务器错误 (状态码: {response.status})",
                context=context,
                response=response,
            )
        raise APIError(
            f"API 请求失败 (状态码: {response.status})",
            context=context,
            response=response,
        )

    async def list_releases(self, owner: str, repo: str) -> List[GitHubRelease]:
        """获取仓库的发布列表"""
        response = await self._request(
            f"/repos/{owner}/{repo}/releases", {"per_page": self.per_page}
        )
        return [GitHubRelease.from_github(r) for r in response]

    async def list_release_assets(
        self, owner: str, repo: str, release_id: int
    ) -> List[GitHubAsset]:
        """获取某个发布的附件列表"""
        response = await self._request(
            f"/repos/{owner}/{repo}/releases/{release_id}/assets",
            {"per_page": self.per_page},
        )
        return [GitHubAsset.from_github(a) for a in response]

    async def get_release_asset(
        self, owner: str, repo: str, asset_id: int
    ) -> GitHubAsset:
        """获取单个附件"""
        response = await self._request(
            f"/repos/{owner}/{repo}/releases/assets/{asset_id}"
        )
        return GitHubAsset.from_github(response)

    async def close(self):
        """关闭客户端"""
        if self._owned_session and self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self):
        """异步上下文管理器入口"""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """异步上下文管理器出口"""
        await self.close()
