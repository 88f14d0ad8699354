import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from src.dream_pipeline.config import PipelineSettings, supports_json_mode
from src.dream_pipeline.errors import GenerationError
from src.dream_pipeline.generation import OpenAIGenerationBackend


def fake_response(content, model="served-model", prompt_tokens=12, completion_tokens=34, finish_reason="stop"):
    return SimpleNamespace(
        model=model,
        choices=[SimpleNamespace(message=SimpleNamespace(content=content), finish_reason=finish_reason)],
        usage=SimpleNamespace(prompt_tokens=prompt_tokens, completion_tokens=completion_tokens),
    )


def fake_client(create):
    return SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))


MESSAGES = [{"role": "user", "content": "hi"}]


def test_complete_returns_content_usage_and_served_model():
    create = AsyncMock(return_value=fake_response("hello"))
    backend = OpenAIGenerationBackend(PipelineSettings(model_chain=["openai/gpt-4o-mini"]), client=fake_client(create))

    completion = asyncio.run(backend.complete(MESSAGES, temperature=0.7, max_tokens=50))

    assert completion.content == "hello"
    assert completion.model == "served-model"
    assert completion.usage.total_tokens == 46
    kwargs = create.await_args.kwargs
    assert kwargs["model"] == "openai/gpt-4o-mini"
    assert kwargs["max_tokens"] == 50
    assert "response_format" not in kwargs


def test_json_mode_only_for_supporting_models():
    create = AsyncMock(return_value=fake_response("{}"))
    backend = OpenAIGenerationBackend(PipelineSettings(), client=fake_client(create))

    asyncio.run(backend.complete(MESSAGES, temperature=0.2, max_tokens=10, model="openai/gpt-4o-mini", json_mode=True))
    assert create.await_args.kwargs["response_format"] == {"type": "json_object"}

    asyncio.run(
        backend.complete(MESSAGES, temperature=0.2, max_tokens=10, model="meta-llama/llama-4-scout:free", json_mode=True)
    )
    assert "response_format" not in create.await_args.kwargs


def test_router_headers_are_sent():
    create = AsyncMock(return_value=fake_response("ok"))
    settings = PipelineSettings(http_referer="https://example.org", app_title="Dreams")
    backend = OpenAIGenerationBackend(settings, client=fake_client(create))

    asyncio.run(backend.complete(MESSAGES, temperature=0.2, max_tokens=10))

    assert create.await_args.kwargs["extra_headers"] == {"HTTP-Referer": "https://example.org", "X-Title": "Dreams"}


def test_request_failure_is_wrapped():
    create = AsyncMock(side_effect=RuntimeError("connection reset"))
    backend = OpenAIGenerationBackend(PipelineSettings(), client=fake_client(create))

    with pytest.raises(GenerationError) as exc:
        asyncio.run(backend.complete(MESSAGES, temperature=0.2, max_tokens=10, model="m"))

    assert exc.value.code == "GENERATION_FAILED"
    assert exc.value.model == "m"
    assert "connection reset" in exc.value.message


def test_empty_content_is_an_error():
    create = AsyncMock(return_value=fake_response("", finish_reason="length"))
    backend = OpenAIGenerationBackend(PipelineSettings(), client=fake_client(create))

    with pytest.raises(GenerationError, match="finish_reason=length"):
        asyncio.run(backend.complete(MESSAGES, temperature=0.2, max_tokens=10, model="m"))


def test_supports_json_mode():
    assert supports_json_mode("openai/gpt-4o")
    assert not supports_json_mode("google/gemma-2-9b-it:free")
