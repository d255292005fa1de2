"""回调服务

以 JSON POST 把批改结果投递到调用方提供的 webhook，失败时指数退避重试。
"""

import logging
from typing import Any, Dict, Optional, Union

import httpx

from grading_agent.models.grading import CallbackPayload
from grading_agent.utils.errors import CallbackError
from grading_agent.utils.retry import RetryOutcome, RetryPolicy, SleepFunc, retry_async

logger = logging.getLogger(__name__)

DEFAULT_CALLBACK_RETRIES = 3


class CallbackService:
    """回调投递服务"""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        *,
        timeout: float = 30.0,
        default_retries: int = DEFAULT_CALLBACK_RETRIES,
        sleep: Optional[SleepFunc] = None,
    ):
        self._client = client
        self._owns_client = client is None
        self.timeout = timeout
        self.default_retries = default_retries
        self._sleep = sleep

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout)
            self._owns_client = True
        return self._client

    async def close(self) -> None:
        if self._owns_client and self._client and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    def build_policy(self, retries: int) -> RetryPolicy:
        """第 n 次失败后等待 2^n 秒（1s, 2s, 4s ...），共 retries + 1 次尝试"""
        return RetryPolicy.from_retries(
            retries,
            initial_interval=1.0,
            backoff_coefficient=2.0,
            retry_on=(httpx.HTTPError,),
        )

    async def send_callback(
        self,
        url: str,
        payload: Union[CallbackPayload, Dict[str, Any]],
        retries: Optional[int] = None,
    ) -> None:
        """投递回调

        Args:
            url: 回调地址
            payload: 回调内容
            retries: 重试次数，默认 3（共 4 次尝试）

        Raises:
            CallbackError: 所有尝试均失败
        """
        body = payload.to_json_dict() if isinstance(payload, CallbackPayload) else payload
        policy = self.build_policy(self.default_retries if retries is None else retries)
        client = await self._get_client()

        async def _post() -> None:
            response = await client.post(url, json=body)
            response.raise_for_status()

        outcome = RetryOutcome()
        kwargs = {"sleep": self._sleep} if self._sleep is not None else {}
        try:
            await retry_async(
                _post,
                policy,
                outcome=outcome,
                description=f"回调 {url} (gradingSheetId={body.get('gradingSheetId')})",
                **kwargs,
            )
        except httpx.HTTPError as e:
            raise CallbackError(
                f"Callback failed after {outcome.attempts} attempts: {e}",
                attempts=outcome.attempts,
            ) from e

        logger.info(
            f"回调投递成功: gradingSheetId={body.get('gradingSheetId')}, "
            f"status={body.get('status')}, attempts={outcome.attempts}"
        )
