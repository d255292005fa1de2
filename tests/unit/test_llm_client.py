"""OpenAI 兼容客户端与模型适配器单元测试"""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from langchain_core.messages import AIMessage, HumanMessage

from grading_agent.config.settings import LLMConfig
from grading_agent.services.llm_client import LLMMessage, UnifiedLLMClient
from grading_agent.services.vision_model import (
    GeminiChatAdapter,
    OpenAICompatibleChatAdapter,
    build_vision_message,
    message_text,
)


def _config(**overrides) -> LLMConfig:
    values = {
        "api_key": "sk-test",
        "base_url": "https://llm.example.com/v1",
        "model": "qwen-vl-max-latest",
    }
    values.update(overrides)
    return LLMConfig(**values)


def _client(handler, **overrides) -> UnifiedLLMClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return UnifiedLLMClient(_config(**overrides), http_client=http_client)


def _completion(content, finish_reason="stop"):
    return {
        "choices": [{"message": {"content": content}, "finish_reason": finish_reason}],
        "usage": {"prompt_tokens": 10, "completion_tokens": 5},
    }


class TestUnifiedLLMClient:
    """测试 chat/completions 调用"""

    @pytest.mark.asyncio
    async def test_invoke_posts_payload(self):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["url"] = str(request.url)
            captured["auth"] = request.headers["Authorization"]
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json=_completion("hello"))

        client = _client(handler)
        response = await client.invoke(messages=[LLMMessage(role="user", content="hi")])

        assert response.content == "hello"
        assert response.finish_reason == "stop"
        assert captured["url"] == "https://llm.example.com/v1/chat/completions"
        assert captured["auth"] == "Bearer sk-test"
        body = captured["body"]
        assert body["model"] == "qwen-vl-max-latest"
        assert body["temperature"] == 0.1
        assert body["max_tokens"] == 4096
        assert body["messages"] == [{"role": "user", "content": "hi"}]

    @pytest.mark.asyncio
    async def test_invoke_overrides_and_extra_kwargs(self):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json=_completion("{}"))

        client = _client(handler)
        await client.invoke(
            messages=[LLMMessage(role="user", content="hi")],
            temperature=0.5,
            max_tokens=8192,
            response_format={"type": "json_object"},
        )

        body = captured["body"]
        assert body["temperature"] == 0.5
        assert body["max_tokens"] == 8192
        assert body["response_format"] == {"type": "json_object"}

    @pytest.mark.asyncio
    async def test_string_image_url_normalized(self):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json=_completion("ok"))

        client = _client(handler)
        await client.invoke(
            messages=[
                LLMMessage(
                    role="user",
                    content=[{"type": "image_url", "image_url": "http://img/a.jpg"}],
                )
            ]
        )

        part = captured["body"]["messages"][0]["content"][0]
        assert part["image_url"] == {"url": "http://img/a.jpg"}

    @pytest.mark.asyncio
    async def test_http_error_reraised(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, json={"error": "invalid api key"})

        client = _client(handler)
        with pytest.raises(httpx.HTTPStatusError):
            await client.invoke(messages=[LLMMessage(role="user", content="hi")])


class TestOpenAICompatibleChatAdapter:
    """测试消息适配与结构化输出"""

    @pytest.mark.asyncio
    async def test_ainvoke_converts_human_message(self):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json=_completion("识别结果"))

        adapter = OpenAICompatibleChatAdapter(_client(handler), model="qwen-vl-plus", max_tokens=1024)
        response = await adapter.ainvoke([build_vision_message(["http://img/a.jpg"], "请识别")])

        assert response.content == "识别结果"
        body = captured["body"]
        assert body["model"] == "qwen-vl-plus"
        assert body["max_tokens"] == 1024
        content = body["messages"][0]["content"]
        assert body["messages"][0]["role"] == "user"
        assert content[0] == {"type": "image_url", "image_url": {"url": "http://img/a.jpg"}}
        assert content[1] == {"type": "text", "text": "请识别"}

    @pytest.mark.asyncio
    async def test_structured_output_parsed(self):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json=_completion('{"regions": [], "scores": []}'))

        adapter = OpenAICompatibleChatAdapter(_client(handler))
        schema = {"title": "RecognitionResult", "type": "object"}
        output = await adapter.ainvoke_structured([HumanMessage(content="x")], schema)

        assert output.parsed == {"regions": [], "scores": []}
        response_format = captured["body"]["response_format"]
        assert response_format["type"] == "json_schema"
        assert response_format["json_schema"]["name"] == "RecognitionResult"
        assert response_format["json_schema"]["schema"] == schema

    @pytest.mark.asyncio
    async def test_structured_output_invalid_json_keeps_raw_text(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=_completion("```json\n{\"regions\": []}\n```"))

        adapter = OpenAICompatibleChatAdapter(_client(handler))
        output = await adapter.ainvoke_structured([HumanMessage(content="x")], {"title": "R"})

        assert output.parsed is None
        assert output.raw_text.startswith("```json")


class TestGeminiChatAdapter:
    """测试 Gemini 结构化输出结果解包"""

    @staticmethod
    def _adapter(result):
        runnable = SimpleNamespace(ainvoke=AsyncMock(return_value=result))
        llm = SimpleNamespace(
            ainvoke=AsyncMock(return_value=AIMessage(content="纯文本")),
            with_structured_output=MagicMock(return_value=runnable),
        )
        return GeminiChatAdapter(llm), llm, runnable

    @pytest.mark.asyncio
    async def test_parsed_and_raw_text(self):
        raw = AIMessage(content='{"regions": [], "scores": []}')
        adapter, llm, runnable = self._adapter(
            {"raw": raw, "parsed": {"regions": [], "scores": []}, "parsing_error": None}
        )
        schema = {"title": "RecognitionResult", "type": "object"}
        message = HumanMessage(content="x")

        output = await adapter.ainvoke_structured([message], schema)

        assert output.parsed == {"regions": [], "scores": []}
        assert output.raw_text == '{"regions": [], "scores": []}'
        llm.with_structured_output.assert_called_once_with(schema, include_raw=True)
        runnable.ainvoke.assert_awaited_once_with([message])

    @pytest.mark.asyncio
    async def test_parsing_error_keeps_raw_text(self):
        raw = AIMessage(content=[{"type": "text", "text": "```json\n{\"regions\": []}\n```"}])
        adapter, _, _ = self._adapter(
            {"raw": raw, "parsed": None, "parsing_error": ValueError("invalid json")}
        )

        output = await adapter.ainvoke_structured([HumanMessage(content="x")], {"title": "R"})

        assert output.parsed is None
        assert output.raw_text.startswith("```json")

    @pytest.mark.asyncio
    async def test_missing_raw_and_non_dict_parsed(self):
        adapter, _, _ = self._adapter({"raw": None, "parsed": ["not", "a", "dict"], "parsing_error": None})

        output = await adapter.ainvoke_structured([HumanMessage(content="x")], {"title": "R"})

        assert output.parsed is None
        assert output.raw_text == ""

    @pytest.mark.asyncio
    async def test_ainvoke_passes_messages(self):
        adapter, llm, _ = self._adapter({})
        message = HumanMessage(content="x")

        response = await adapter.ainvoke(iter([message]))

        assert response.content == "纯文本"
        llm.ainvoke.assert_awaited_once_with([message])


def test_build_vision_message_images_first():
    message = build_vision_message(["http://img/1.jpg", "http://img/2.jpg"], "提示词")
    assert [part["type"] for part in message.content] == ["image_url", "image_url", "text"]


@pytest.mark.parametrize(
    "content,expected",
    [
        ("plain", "plain"),
        ([{"type": "text", "text": "a"}, {"type": "image_url"}, "b"], "ab"),
        (None, ""),
    ],
)
def test_message_text(content, expected):
    assert message_text(content) == expected
