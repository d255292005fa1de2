"""图片大小校验与下载单元测试"""

import httpx
import pytest

from grading_agent.services.image_fetcher import ImageFetcher
from grading_agent.utils.errors import ImageSizeError

MB = 1024 * 1024


def _fetcher(handler, max_size_bytes=10 * MB) -> ImageFetcher:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ImageFetcher(client, max_size_bytes=max_size_bytes)


class TestValidateImageSize:
    """测试下载前的大小预检"""

    @pytest.mark.asyncio
    async def test_head_within_limit(self):
        def handler(request):
            assert request.method == "HEAD"
            return httpx.Response(200, headers={"Content-Length": str(2 * MB)})

        await _fetcher(handler).validate_image_size("http://img/a.jpg")

    @pytest.mark.asyncio
    async def test_head_over_limit(self):
        def handler(request):
            return httpx.Response(200, headers={"Content-Length": str(12 * MB)})

        with pytest.raises(ImageSizeError) as exc_info:
            await _fetcher(handler).validate_image_size("http://img/a.jpg")

        assert str(exc_info.value) == (
            "Image size exceeds maximum allowed size of 10MB. Image size: 12.00MB"
        )
        assert exc_info.value.size_bytes == 12 * MB

    @pytest.mark.asyncio
    async def test_range_fallback_when_head_unsupported(self):
        methods = []

        def handler(request):
            methods.append(request.method)
            if request.method == "HEAD":
                return httpx.Response(405)
            assert request.headers["Range"] == "bytes=0-0"
            return httpx.Response(206, headers={"Content-Range": f"bytes 0-0/{11 * MB}"}, content=b"x")

        with pytest.raises(ImageSizeError):
            await _fetcher(handler).validate_image_size("http://img/a.jpg")
        assert methods == ["HEAD", "GET"]

    @pytest.mark.asyncio
    async def test_unknown_size_passes(self):
        def handler(request):
            if request.method == "HEAD":
                return httpx.Response(404)
            return httpx.Response(404)

        await _fetcher(handler).validate_image_size("http://img/a.jpg")

    @pytest.mark.asyncio
    async def test_network_error_only_warns(self):
        def handler(request):
            raise httpx.ConnectError("unreachable", request=request)

        await _fetcher(handler).validate_image_size("http://img/a.jpg")


class TestDownload:
    """测试图片下载"""

    @pytest.mark.asyncio
    async def test_download_returns_bytes(self):
        def handler(request):
            return httpx.Response(200, content=b"image-bytes")

        assert await _fetcher(handler).download("http://img/a.jpg") == b"image-bytes"

    @pytest.mark.asyncio
    async def test_download_aborts_when_body_exceeds_limit(self):
        def handler(request):
            return httpx.Response(200, content=b"x" * 2048)

        with pytest.raises(ImageSizeError):
            await _fetcher(handler, max_size_bytes=1024).download("http://img/a.jpg")

    @pytest.mark.asyncio
    async def test_download_http_error(self):
        def handler(request):
            return httpx.Response(404)

        with pytest.raises(httpx.HTTPStatusError):
            await _fetcher(handler).download("http://img/missing.jpg")

    @pytest.mark.asyncio
    async def test_load_bytes_checks_size(self):
        fetcher = ImageFetcher(max_size_bytes=4)
        assert await fetcher.load(b"abcd") == b"abcd"
        with pytest.raises(ImageSizeError):
            await fetcher.load(b"abcde")
