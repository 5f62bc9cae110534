# tests/test_ai_client.py
import json

import httpx
import pytest

import config
from services import ai_client
from services.ai_client import AIConfigurationError, call_ai_api, extract_choice_content, model_candidates


def test_extract_choice_content_variants():
    assert extract_choice_content({"choices": [{"message": {"content": "hola"}}]}) == "hola"
    assert extract_choice_content({"choices": [{"text": "texto"}]}) == "texto"
    assert extract_choice_content({"choices": [{"content": "plano"}]}) == "plano"
    with pytest.raises(ValueError):
        extract_choice_content({"choices": []})
    with pytest.raises(ValueError):
        extract_choice_content({"choices": [{"delta": {}}]})


def test_model_candidates_per_provider(monkeypatch):
    assert model_candidates() == ["grok-3", "grok-3-mini"]
    monkeypatch.setattr(config, "AI_PROVIDER", "openai")
    monkeypatch.setattr(config, "OPENAI_MODEL", "gpt-4o")
    monkeypatch.setattr(config, "OPENAI_FALLBACK_MODEL", "gpt-4o")
    assert model_candidates() == ["gpt-4o"]


async def test_call_grok_posts_chat_completion(monkeypatch):
    captured = {}

    def handler(request):
        captured["auth"] = request.headers["Authorization"]
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"model": "grok-3", "choices": [{"message": {"content": "[]"}}]})

    real_client = httpx.AsyncClient
    monkeypatch.setattr(
        ai_client.httpx, "AsyncClient", lambda **kwargs: real_client(transport=httpx.MockTransport(handler), **kwargs)
    )

    answer = await call_ai_api("Genera preguntas", system_prompt="Eres experto", max_tokens=50)

    assert answer == "[]"
    assert captured["auth"] == "Bearer test-key"
    assert captured["body"]["model"] == "grok-3"
    assert captured["body"]["max_tokens"] == 50
    assert [m["role"] for m in captured["body"]["messages"]] == ["system", "user"]


async def test_call_grok_raises_on_http_error(monkeypatch):
    real_client = httpx.AsyncClient
    monkeypatch.setattr(
        ai_client.httpx,
        "AsyncClient",
        lambda **kwargs: real_client(transport=httpx.MockTransport(lambda r: httpx.Response(503)), **kwargs),
    )
    with pytest.raises(httpx.HTTPStatusError):
        await call_ai_api("hola")


async def test_missing_key_is_a_configuration_error(monkeypatch):
    monkeypatch.setattr(config, "XAI_API_KEY", None)
    with pytest.raises(AIConfigurationError):
        await call_ai_api("hola")

    monkeypatch.setattr(config, "AI_PROVIDER", "openai")
    monkeypatch.setattr(config, "OPENAI_API_KEY", None)
    with pytest.raises(AIConfigurationError):
        await call_ai_api("hola")
