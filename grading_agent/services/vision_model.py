from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Protocol, Sequence

from langchain_core.messages import BaseMessage, HumanMessage
from langchain_google_genai import ChatGoogleGenerativeAI

from grading_agent.config.settings import LLMConfig, LLMProvider
from grading_agent.services.llm_client import LLMMessage, UnifiedLLMClient

logger = logging.getLogger(__name__)


@dataclass
class _SimpleMessage:
    content: Any


@dataclass
class StructuredOutput:
    """结构化输出调用的结果

    parsed 为按 schema 解析出的对象（失败或为空时为 None），
    raw_text 为模型未经结构化处理的原始文本，供回退解析使用。
    """

    parsed: Optional[Dict[str, Any]]
    raw_text: str = ""


class VisionChatModel(Protocol):
    async def ainvoke(self, messages: Iterable[BaseMessage]) -> Any: ...

    async def ainvoke_structured(
        self, messages: Iterable[BaseMessage], schema: Dict[str, Any]
    ) -> StructuredOutput: ...


def build_vision_message(image_urls: Sequence[str], prompt: str) -> HumanMessage:
    """构造图片在前、文本在后的多模态消息"""
    content: List[Any] = [{"type": "image_url", "image_url": {"url": url}} for url in image_urls]
    content.append({"type": "text", "text": prompt})
    return HumanMessage(content=content)


def message_text(content: Any) -> str:
    """将模型返回的 content（字符串或分段列表）拼接为文本"""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for item in content:
            if isinstance(item, str):
                parts.append(item)
            elif isinstance(item, dict) and item.get("type") == "text":
                parts.append(item.get("text", ""))
        return "".join(parts)
    return "" if content is None else str(content)


def _resolve_role(message: BaseMessage) -> str:
    role = getattr(message, "type", None) or getattr(message, "role", None)
    if role in ("human", "user"):
        return "user"
    if role in ("ai", "assistant"):
        return "assistant"
    if role == "system":
        return "system"
    return "user"


class OpenAICompatibleChatAdapter:
    """Adapts langchain messages to the OpenAI-compatible chat-completions client."""

    def __init__(
        self,
        client: UnifiedLLMClient,
        *,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> None:
        self._client = client
        self._model = model
        self._temperature = temperature
        self._max_tokens = max_tokens

    def _convert_messages(self, messages: Iterable[BaseMessage]) -> list[LLMMessage]:
        converted: list[LLMMessage] = []
        for message in messages:
            role = _resolve_role(message)
            content = getattr(message, "content", "")
            converted.append(LLMMessage(role=role, content=content))
        return converted

    async def ainvoke(self, messages: Iterable[BaseMessage], **kwargs: Any) -> _SimpleMessage:
        response = await self._client.invoke(
            messages=self._convert_messages(messages),
            model=self._model,
            temperature=self._temperature,
            max_tokens=self._max_tokens,
            **kwargs,
        )
        return _SimpleMessage(response.content)

    async def ainvoke_structured(
        self, messages: Iterable[BaseMessage], schema: Dict[str, Any]
    ) -> StructuredOutput:
        response_format = {
            "type": "json_schema",
            "json_schema": {
                "name": schema.get("title", "result"),
                "schema": schema,
            },
        }
        response = await self.ainvoke(messages, response_format=response_format)
        raw_text = message_text(response.content)
        try:
            parsed = json.loads(raw_text) if raw_text.strip() else None
        except json.JSONDecodeError:
            logger.debug("结构化输出不是合法 JSON，交由回退解析处理")
            parsed = None
        return StructuredOutput(parsed=parsed if isinstance(parsed, dict) else None, raw_text=raw_text)


class GeminiChatAdapter:
    """ChatGoogleGenerativeAI wrapper exposing the same structured-output call."""

    def __init__(self, llm: ChatGoogleGenerativeAI) -> None:
        self._llm = llm

    async def ainvoke(self, messages: Iterable[BaseMessage]) -> Any:
        return await self._llm.ainvoke(list(messages))

    async def ainvoke_structured(
        self, messages: Iterable[BaseMessage], schema: Dict[str, Any]
    ) -> StructuredOutput:
        runnable = self._llm.with_structured_output(schema, include_raw=True)
        result = await runnable.ainvoke(list(messages))
        raw = result.get("raw")
        parsed = result.get("parsed")
        if result.get("parsing_error"):
            logger.warning(f"Gemini 结构化输出解析失败: {result['parsing_error']}")
        raw_text = message_text(raw.content) if raw is not None else ""
        return StructuredOutput(parsed=parsed if isinstance(parsed, dict) else None, raw_text=raw_text)


def create_chat_model(
    config: LLMConfig,
    *,
    client: Optional[UnifiedLLMClient] = None,
    max_tokens: Optional[int] = None,
) -> VisionChatModel:
    """按配置创建视觉对话模型

    Args:
        config: 模型配置
        client: 共享的 OpenAI 兼容客户端（DashScope 模式下必需复用时传入）
        max_tokens: 覆盖默认输出长度
    """
    resolved_max_tokens = max_tokens or config.max_tokens
    if config.provider == LLMProvider.GOOGLE:
        return GeminiChatAdapter(
            ChatGoogleGenerativeAI(
                model=config.model,
                google_api_key=config.api_key,
                temperature=config.temperature,
                max_output_tokens=resolved_max_tokens,
            )
        )

    return OpenAICompatibleChatAdapter(
        client or UnifiedLLMClient(config),
        model=config.model,
        temperature=config.temperature,
        max_tokens=resolved_max_tokens,
    )
