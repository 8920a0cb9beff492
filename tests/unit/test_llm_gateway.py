"""Tests for the async LLM gateway."""
from __future__ import annotations

import asyncio

import httpx
import pytest
from langchain_core.prompts import ChatPromptTemplate
from pydantic import BaseModel

from conftest import FakeLlmClient, FakeResponse
from llm_gateway import LlmTransportError, LlmValidationError, call, chat, runnable


class Echo(BaseModel):
    value: str


def test_call_parses_fenced_json(route):
    client = FakeLlmClient(['```json\n{"value": "hi"}\n```'])

    result = asyncio.run(call("Say hi", Echo, cfg=route, client=client))

    assert result == Echo(value="hi")
    request = client.requests[0]
    assert request["url"] == "http://llm.test/v1/chat/completions"
    assert request["json"]["model"] == "test-model"
    assert request["json"]["response_format"] == {"type": "json_object"}
    assert request["json"]["messages"][0]["role"] == "system"
    assert request["json"]["messages"][-1] == {"role": "user", "content": "Say hi"}
    assert request["timeout"] == 5


def test_validation_retry_appends_hint(route):
    client = FakeLlmClient(['{"other": 1}', '{"value": "second"}'])

    result = asyncio.run(call("task", Echo, cfg=route, client=client))

    assert result.value == "second"
    assert len(client.requests) == 2
    hint = client.requests[1]["json"]["messages"][-1]
    assert hint["role"] == "system"
    assert "failed validation" in hint["content"]


def test_validation_exhausted_raises(route):
    client = FakeLlmClient(["not json at all"])

    with pytest.raises(LlmValidationError):
        asyncio.run(call("task", Echo, cfg=route, client=client))

    assert len(client.requests) == route.max_retries + 1


def test_error_status_is_transport_error(route):
    client = FakeLlmClient([FakeResponse({"error": "overloaded"}, status_code=503)])

    with pytest.raises(LlmTransportError, match="503"):
        asyncio.run(call("task", Echo, cfg=route, client=client))

    assert len(client.requests) == 1


def test_transport_exception_is_wrapped(route):
    client = FakeLlmClient([httpx.ConnectError("refused")])

    with pytest.raises(LlmTransportError) as excinfo:
        asyncio.run(call("task", Echo, cfg=route, client=client))

    assert isinstance(excinfo.value.__cause__, httpx.ConnectError)


def test_missing_content_is_validation_error(route):
    client = FakeLlmClient([FakeResponse({"choices": []})])

    with pytest.raises(LlmValidationError, match="missing content"):
        asyncio.run(call("task", Echo, cfg=route, client=client))


def test_api_key_and_extra_headers(route, monkeypatch):
    monkeypatch.setenv("TEST_LLM_KEY", "secret")
    keyed = route.model_copy(update={"api_key_env": "TEST_LLM_KEY", "extra_headers": {"X-Study": "coffee"}})
    client = FakeLlmClient(['{"value": "ok"}'])

    asyncio.run(call("task", Echo, cfg=keyed, client=client))

    headers = client.requests[0]["headers"]
    assert headers["Authorization"] == "Bearer secret"
    assert headers["X-Study"] == "coffee"


def test_chat_passes_content_parts_through(route):
    parts = [
        {"type": "text", "text": "Read this"},
        {"type": "image_url", "image_url": {"url": "data:image/png;base64,AAAA"}},
    ]
    client = FakeLlmClient(['{"value": "seen"}'])

    asyncio.run(chat([{"role": "user", "content": parts}], Echo, cfg=route, client=client))

    assert client.requests[0]["json"]["messages"][-1]["content"] == parts


def test_runnable_accepts_prompt_values(route):
    prompt = ChatPromptTemplate.from_messages([("system", "Be brief"), ("human", "Echo {word}")])
    client = FakeLlmClient(['{"value": "bird"}'])
    chain = prompt | runnable(route, Echo, client=client)

    result = asyncio.run(chain.ainvoke({"word": "bird"}))

    assert result.value == "bird"
    messages = client.requests[0]["json"]["messages"]
    assert messages[-2] == {"role": "system", "content": "Be brief"}
    assert messages[-1] == {"role": "user", "content": "Echo bird"}


def test_sequential_route_serialises_calls(route):
    sequential = route.model_copy(update={"sequential": True, "name": "sequential-test"})
    client = FakeLlmClient(['{"value": "ok"}'])

    async def _both():
        return await asyncio.gather(
            call("a", Echo, cfg=sequential, client=client),
            call("b", Echo, cfg=sequential, client=client),
        )

    results = asyncio.run(_both())

    assert [item.value for item in results] == ["ok", "ok"]
    assert len(client.requests) == 2
