"""Chat-completions client for OpenAI-compatible APIs (DashScope compatible mode)."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

import httpx

from grading_agent.config.settings import LLMConfig

logger = logging.getLogger(__name__)


@dataclass
class LLMMessage:
    """LLM message."""

    role: str
    content: Union[str, List[Dict[str, Any]]]


@dataclass
class LLMResponse:
    """LLM response."""

    content: str
    model: str
    usage: Optional[Dict[str, int]] = None
    finish_reason: Optional[str] = None


class UnifiedLLMClient:
    """Client for OpenAI-compatible ``/chat/completions`` endpoints.

    The client is created once at process start and shared by every chat
    model adapter; pass ``http_client`` to reuse an existing connection pool.
    """

    def __init__(self, config: LLMConfig, http_client: Optional[httpx.AsyncClient] = None) -> None:
        self.config = config
        self._client = http_client
        self._owns_client = http_client is None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            # 视觉识别耗时较长，超时由 LLM_HTTP_TIMEOUT 控制
            self._client = httpx.AsyncClient(timeout=self.config.timeout)
            self._owns_client = True
        return self._client

    async def close(self) -> None:
        if self._owns_client and self._client and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    def _build_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
        }

    @staticmethod
    async def _safe_read_response_text(response: Optional[httpx.Response]) -> str:
        if response is None:
            return "<no response>"
        try:
            body = await response.aread()
            return body.decode("utf-8", errors="replace")
        except httpx.HTTPError:
            return "<unreadable response>"

    @staticmethod
    def _format_messages(messages: List[LLMMessage]) -> List[Dict[str, Any]]:
        formatted: List[Dict[str, Any]] = []
        for msg in messages:
            if isinstance(msg.content, str):
                formatted.append({"role": msg.role, "content": msg.content})
                continue

            normalized = []
            for item in msg.content:
                if isinstance(item, dict) and item.get("type") == "image_url":
                    image_url = item.get("image_url")
                    if isinstance(image_url, str):
                        normalized.append({**item, "image_url": {"url": image_url}})
                        continue
                normalized.append(item)
            formatted.append({"role": msg.role, "content": normalized})
        return formatted

    async def invoke(
        self,
        *,
        messages: List[LLMMessage],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        model: Optional[str] = None,
        **kwargs: Any,
    ) -> LLMResponse:
        """Send one chat completion request.

        Extra keyword arguments (for example ``response_format``) are merged
        into the request payload as-is.
        """
        resolved_model = model or self.config.model
        client = await self._get_client()
        payload = {
            "model": resolved_model,
            "messages": self._format_messages(messages),
            "temperature": self.config.temperature if temperature is None else temperature,
            "max_tokens": max_tokens or self.config.max_tokens,
            **kwargs,
        }

        logger.debug(
            "[LLM] invoke model=%s messages=%s structured=%s",
            resolved_model,
            len(messages),
            "response_format" in kwargs,
        )

        try:
            response = await client.post(
                f"{self.config.base_url}/chat/completions",
                headers=self._build_headers(),
                json=payload,
            )
            response.raise_for_status()
            data = response.json()

            choice = (data.get("choices") or [{}])[0]
            content = choice.get("message", {}).get("content") or ""
            usage = data.get("usage", {}) or {}

            logger.debug("[LLM] response chars=%s tokens=%s", len(content), usage)
            return LLMResponse(
                content=content,
                model=resolved_model,
                usage=usage,
                finish_reason=choice.get("finish_reason"),
            )
        except httpx.HTTPStatusError as exc:
            text = await self._safe_read_response_text(exc.response)
            logger.error("[LLM] HTTP error %s: %s", exc.response.status_code, text)
            raise
        except httpx.HTTPError as exc:
            logger.error("[LLM] invoke failed: %s", exc)
            raise
