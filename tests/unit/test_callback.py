"""回调服务单元测试"""

import json

import httpx
import pytest

from grading_agent.models.grading import CallbackPayload
from grading_agent.services.callback import CallbackService
from grading_agent.utils.errors import CallbackError

CALLBACK_URL = "http://example.com/callback"


class _RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def _build_service(handler, sleep=None) -> CallbackService:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return CallbackService(client, sleep=sleep or _RecordingSleep())


class TestSendCallback:
    """测试回调投递"""

    @pytest.mark.asyncio
    async def test_success_first_attempt(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200)

        sleep = _RecordingSleep()
        service = _build_service(handler, sleep)
        payload = CallbackPayload(grading_sheet_id=7, status="failed", failure_reason="boom")
        await service.send_callback(CALLBACK_URL, payload)

        assert len(requests) == 1
        body = json.loads(requests[0].content)
        assert body == {"gradingSheetId": 7, "status": "failed", "failureReason": "boom"}
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_retry_then_success(self):
        """前两次 500，第三次 200：共 3 次请求，等待 1s、2s"""
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(500 if calls <= 2 else 200)

        sleep = _RecordingSleep()
        service = _build_service(handler, sleep)
        await service.send_callback(CALLBACK_URL, {"gradingSheetId": 1, "status": "completed"})

        assert calls == 3
        assert sleep.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_exhaustion_raises_callback_error(self):
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(503)

        sleep = _RecordingSleep()
        service = _build_service(handler, sleep)
        with pytest.raises(CallbackError) as exc_info:
            await service.send_callback(CALLBACK_URL, {"gradingSheetId": 1, "status": "failed"})

        assert calls == 4
        assert sleep.delays == [1.0, 2.0, 4.0]
        assert exc_info.value.attempts == 4
        assert str(exc_info.value).startswith("Callback failed after 4 attempts:")

    @pytest.mark.asyncio
    async def test_network_error_is_retried(self):
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            if calls == 1:
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(204)

        sleep = _RecordingSleep()
        service = _build_service(handler, sleep)
        await service.send_callback(CALLBACK_URL, {"gradingSheetId": 2, "status": "completed"})

        assert calls == 2
        assert sleep.delays == [1.0]

    @pytest.mark.asyncio
    async def test_custom_retry_count(self):
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(400)

        service = _build_service(handler)
        with pytest.raises(CallbackError, match="after 1 attempts"):
            await service.send_callback(CALLBACK_URL, {"gradingSheetId": 3, "status": "failed"}, retries=0)

        assert calls == 1
