"""Tests for the LLM API client."""

import json

import httpx
import pytest

from app import config
from app.services import llm_service
from app.services.llm_service import PreviousExchange, build_messages


def _install(monkeypatch, handler) -> list:
    """Route llm_service traffic to ``handler``; returns the captured requests."""
    seen = []

    def recording(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return handler(request)

    monkeypatch.setattr(llm_service, "transport", httpx.MockTransport(recording))
    return seen


def _api(request: httpx.Request) -> httpx.Response:
    if request.url.path.endswith("/embeddings"):
        inputs = json.loads(request.content)["input"]
        return httpx.Response(200, json={"data": [{"embedding": [0.1, 0.2]} for _ in inputs]})
    if request.url.path.endswith("/chat/completions"):
        return httpx.Response(200, json={"choices": [{"message": {"content": "Generated answer"}}]})
    if request.url.path.endswith("/models"):
        return httpx.Response(200, json={"data": []})
    return httpx.Response(404)


async def test_get_embeddings_posts_model_and_input(monkeypatch) -> None:
    seen = _install(monkeypatch, _api)

    result = await llm_service.get_embeddings(["a", "b"])

    assert result == [[0.1, 0.2], [0.1, 0.2]]
    body = json.loads(seen[0].content)
    assert body == {"model": config.EMBEDDING_MODEL, "input": ["a", "b"]}
    assert seen[0].headers["Authorization"] == "Bearer test-key"
    assert str(seen[0].url) == "https://llm.test/v1/embeddings"


async def test_generate_chat_response_sends_history_and_embeds_reply(monkeypatch) -> None:
    seen = _install(monkeypatch, _api)

    response = await llm_service.generate_chat_response(
        "How do I reset it?",
        [PreviousExchange(query="What is it?", response="A router.")],
        model="gpt-4o-mini",
        temperature=0.5,
        max_tokens=100,
        system_prompt="Be helpful.",
    )

    assert response.content == "Generated answer"
    assert response.sources == ["Previous Conversations"]
    assert response.embedding == [0.1, 0.2]

    chat = json.loads(seen[0].content)
    assert chat["model"] == "gpt-4o-mini"
    assert chat["temperature"] == 0.5
    assert chat["max_tokens"] == 100
    assert chat["stream"] is False
    assert [m["role"] for m in chat["messages"]] == ["system", "user", "assistant", "user"]

    embed = json.loads(seen[1].content)
    assert embed["input"] == ["Generated answer"]


async def test_generate_without_history_has_no_sources(monkeypatch) -> None:
    _install(monkeypatch, _api)

    response = await llm_service.generate_chat_response(
        "hi", model="m", temperature=1.0, max_tokens=10, system_prompt="s"
    )

    assert response.sources == []


@pytest.mark.parametrize("missing", ["model", "temperature", "max_tokens", "system_prompt"])
async def test_generate_requires_every_option(monkeypatch, missing) -> None:
    seen = _install(monkeypatch, _api)
    options = {"model": "m", "temperature": 0.0, "max_tokens": 10, "system_prompt": "s"}
    options[missing] = None

    with pytest.raises(ValueError):
        await llm_service.generate_chat_response("hi", **options)
    assert seen == []


async def test_http_error_becomes_value_error(monkeypatch) -> None:
    _install(monkeypatch, lambda request: httpx.Response(429, text="rate limited"))

    with pytest.raises(ValueError, match="429"):
        await llm_service.get_embedding("x")


async def test_connect_error_becomes_connection_error(monkeypatch) -> None:
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    _install(monkeypatch, refuse)

    with pytest.raises(ConnectionError):
        await llm_service.get_embedding("x")


async def test_missing_api_key(monkeypatch) -> None:
    monkeypatch.setattr(config, "OPENAI_API_KEY", None)

    with pytest.raises(ValueError, match="OPENAI_API_KEY"):
        await llm_service.get_embedding("x")


async def test_check_connection(monkeypatch) -> None:
    _install(monkeypatch, _api)
    assert await llm_service.check_connection() is True

    _install(monkeypatch, lambda request: httpx.Response(401))
    assert await llm_service.check_connection() is False


def test_build_messages_appends_external_context() -> None:
    messages = build_messages("Where is it?", "sys", [], context="Docs say: the basement.")

    assert len(messages) == 2
    assert messages[1]["content"].startswith("Context from external sources:\nDocs say: the basement.")
    assert messages[1]["content"].endswith("Question: Where is it?")
