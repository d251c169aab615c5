"""
下载管理器

把解析好的 DownloadData 下载到配置档案的输出目录，支持并发控制、重试和下载统计。
"""

import asyncio
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple

import aiofiles
import aiohttp
from loguru import logger

from tarium.models import DownloadData
from tarium.exceptions import DownloadError, DownloadFileError, DownloadNetworkError

ARCHIVE_STORE_NAME = "MODS"
PART_SUFFIX = ".part"
CHUNK_SIZE = 8192


@dataclass
class DownloadStats:
    """下载统计"""

    total: int = 0
    completed: int = 0
    failed: int = 0
    skipped: int = 0
    bytes_downloaded: int = 0


def _same_size(path: Path, length: int) -> bool:
    try:
        return path.is_file() and path.stat().st_size == length
    except OSError:
        return False


class DownloadManager:
    """下载管理器"""

    def __init__(
        self,
        max_concurrent: int = 5,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        session: Optional[aiohttp.ClientSession] = None,
        progress_callback: Optional[Callable[[str, int], None]] = None,
    ):
        self.max_concurrent = max_concurrent
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.stats = DownloadStats()
        self._session = session
        self._owned_session = session is None
        self._progress_callback = progress_callback
        self._failed_downloads: List[str] = []

    @property
    def session(self) -> aiohttp.ClientSession:
        """获取或创建 aiohttp session"""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owned_session = True
        return self._session

    def clean(
        self, output_dir: Path, to_download: Sequence[DownloadData]
    ) -> List[DownloadData]:
        """
        去掉已经存在的下载

        输出目录或 MODS 存储目录中已有同名且大小一致的归档时跳过该下载。
        """
        output_dir = Path(output_dir)
        store = output_dir / ARCHIVE_STORE_NAME
        remaining = []
        for data in to_download:
            if _same_size(data.destination(output_dir), data.length) or _same_size(
                store / data.filename, data.length
            ):
                self.stats.skipped += 1
                logger.info(f"[跳过] '{data.filename}' 已存在")
                continue
            remaining.append(data)
        return remaining

    async def download(
        self,
        data: DownloadData,
        output_dir: Path,
        update: Optional[Callable[[int], None]] = None,
    ) -> Path:
        """
        下载单个文件

        先写入 <文件名>.part，完成后原子替换到目标位置。

        Returns:
            下载完成的文件路径

        Raises:
            DownloadNetworkError: 网络错误或非 200 响应
            DownloadFileError: 本地文件写入失败
        """
        file_path = data.destination(output_dir)
        part_path = file_path.with_name(file_path.name + PART_SUFFIX)
        filename = data.filename

        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise DownloadFileError(
                f"无法创建下载目录: {e}", context={"path": str(file_path.parent)}
            )

        logger.info(f"[开始] 下载: {filename}")

        for attempt in range(self.max_retries + 1):
            try:
                async with self.session.get(data.download_url) as response:
                    if response.status != 200:
                        raise DownloadNetworkError(
                            f"HTTP {response.status}",
                            context={"url": data.download_url, "status": response.status},
                        )

                    try:
                        async with aiofiles.open(part_path, "wb") as f:
                            async for chunk in response.content.iter_chunked(CHUNK_SIZE):
                                await f.write(chunk)
                                self.stats.bytes_downloaded += len(chunk)
                                if update:
                                    update(len(chunk))
                                if self._progress_callback:
                                    self._progress_callback(filename, len(chunk))
                    except OSError as e:
                        raise DownloadFileError(
                            f"写入文件失败: {e}", context={"path": str(part_path)}
                        )

                try:
                    os.replace(part_path, file_path)
                    if os.name != "nt":
                        os.chmod(file_path, 0o644)
                except OSError as e:
                    raise DownloadFileError(
                        f"无法移动下载文件: {e}", context={"path": str(file_path)}
                    )

                self.stats.completed += 1
                logger.success(f"[完成] '{filename}' 下载完成")
                return file_path

            except (DownloadError, aiohttp.ClientError, asyncio.TimeoutError) as e:
                # 清理不完整的文件
                if part_path.exists():
                    try:
                        part_path.unlink()
                    except OSError:
                        logger.debug(f"无法删除不完整的文件: {part_path}")

                if attempt < self.max_retries and not isinstance(e, DownloadFileError):
                    delay = self.retry_delay * (2**attempt)
                    logger.warning(
                        f"[重试] 下载 '{filename}' 失败 (第 {attempt + 1} 次): {e}. "
                        f"{delay:.1f}s 后重试..."
                    )
                    await asyncio.sleep(delay)
                    continue

                self.stats.failed += 1
                self._failed_downloads.append(filename)
                logger.error(f"[错误] 下载 '{filename}' 最终失败: {e}")
                if isinstance(e, DownloadError):
                    raise
                raise DownloadNetworkError(
                    f"下载失败: {filename}",
                    context={"url": data.download_url, "error": str(e)},
                )

        raise DownloadError(f"下载失败: {filename}")

    async def download_all(
        self, output_dir: Path, to_download: Sequence[DownloadData]
    ) -> Tuple[List[str], List[Tuple[str, DownloadError]]]:
        """
        并发下载全部文件，同时进行的下载数不超过 max_concurrent

        Returns:
            (成功的文件名列表, [(文件名, 错误)])
        """
        self.stats.total += len(to_download)
        if not to_download:
            return [], []

        logger.info(f"[启动] 下载 {len(to_download)} 个文件，最大并发数: {self.max_concurrent}")
        semaphore = asyncio.Semaphore(self.max_concurrent)

        async def _task(data: DownloadData) -> Tuple[DownloadData, Optional[DownloadError]]:
            async with semaphore:
                try:
                    await self.download(data, output_dir)
                except DownloadError as e:
                    return data, e
                return data, None

        completed: List[str] = []
        failures: List[Tuple[str, DownloadError]] = []
        for future in asyncio.as_completed([_task(d) for d in to_download]):
            data, error = await future
            if error is None:
                completed.append(data.filename)
            else:
                failures.append((data.filename, error))
        return completed, failures

    def get_stats(self) -> DownloadStats:
        """获取下载统计"""
        return self.stats

    def get_failed(self) -> List[str]:
        """获取失败的下载列表"""
        return self._failed_downloads.copy()

    async def close(self):
        if self._owned_session and self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
