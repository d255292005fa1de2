"""图片大小校验与下载

在调用模型之前用 HEAD（或 Range GET）探测图片大小，超过上限直接拒绝；
下载时边读边计数，超过上限立即中止。
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional, Union

import httpx

from grading_agent.config.settings import MAX_IMAGE_SIZE_MB
from grading_agent.utils.errors import ImageSizeError

logger = logging.getLogger(__name__)

MAX_IMAGE_SIZE = MAX_IMAGE_SIZE_MB * 1024 * 1024

ImageSource = Union[str, Path, bytes]


def is_url(source: str) -> bool:
    return source.startswith(("http://", "https://"))


def _parse_int(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value.strip())
    except ValueError:
        return None


def _total_from_content_range(value: Optional[str]) -> Optional[int]:
    # 形如 "bytes 0-0/12345"
    if not value or "/" not in value:
        return None
    return _parse_int(value.rsplit("/", 1)[1])


class ImageFetcher:
    """图片获取服务"""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        max_size_bytes: int = MAX_IMAGE_SIZE,
        timeout: float = 60.0,
    ):
        self._client = client
        self._owns_client = client is None
        self.max_size_bytes = max_size_bytes
        self.timeout = timeout

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout, follow_redirects=True)
            self._owns_client = True
        return self._client

    async def close(self) -> None:
        if self._owns_client and self._client and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    def _size_error(self, size: int) -> ImageSizeError:
        limit_mb = self.max_size_bytes / 1024 / 1024
        return ImageSizeError(
            f"Image size exceeds maximum allowed size of {limit_mb:g}MB. "
            f"Image size: {size / 1024 / 1024:.2f}MB",
            size_bytes=size,
        )

    def check_size(self, size: Optional[int]) -> None:
        if size is not None and size > self.max_size_bytes:
            raise self._size_error(size)

    async def _probe_size(self, url: str) -> Optional[int]:
        client = await self._get_client()
        response = await client.head(url)
        if response.is_success:
            return _parse_int(response.headers.get("content-length"))

        # HEAD 不被支持时，用 Range 请求只取 1 个字节
        async with client.stream("GET", url, headers={"Range": "bytes=0-0"}) as ranged:
            total = _total_from_content_range(ranged.headers.get("content-range"))
            if total is None and ranged.status_code == 200:
                total = _parse_int(ranged.headers.get("content-length"))
            return total

    async def validate_image_size(self, url: str) -> None:
        """下载前校验图片大小

        探测失败（网络错误等）只记录警告，实际下载时仍会再次校验。

        Raises:
            ImageSizeError: 图片超过大小上限
        """
        try:
            size = await self._probe_size(url)
        except httpx.HTTPError as e:
            logger.warning(f"图片大小预检失败，继续处理: {url}, error={e}")
            return
        self.check_size(size)

    async def download(self, url: str) -> bytes:
        """下载图片，超过大小上限立即中止"""
        client = await self._get_client()
        async with client.stream("GET", url) as response:
            if not response.is_success:
                raise httpx.HTTPStatusError(
                    f"Failed to download image: {response.status_code} {response.reason_phrase}",
                    request=response.request,
                    response=response,
                )
            declared = _parse_int(response.headers.get("content-length"))
            if declared is not None and declared > self.max_size_bytes:
                logger.warning(f"图片大小超过限制: {declared} bytes (max: {self.max_size_bytes})")
                raise self._size_error(declared)

            buffer = bytearray()
            async for chunk in response.aiter_bytes():
                buffer.extend(chunk)
                if len(buffer) > self.max_size_bytes:
                    logger.warning(f"图片下载内容超过限制: >{self.max_size_bytes} bytes")
                    raise self._size_error(len(buffer))
        return bytes(buffer)

    async def load(self, source: ImageSource) -> bytes:
        """从 URL、本地路径或字节读取图片"""
        if isinstance(source, bytes):
            data = source
        elif isinstance(source, str) and is_url(source):
            return await self.download(source)
        else:
            data = await asyncio.to_thread(Path(source).read_bytes)
        self.check_size(len(data))
        return data
