"""Tests for the generation client (mocked gateway) and response parsing."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest

from app.config import settings
from app.core.exceptions import GenerationErrorCode, InsightGenerationError
from app.models.ai import AiSystemPrompt
from app.services.ai_service import AIService, load_agent_config, parse_insights_json


def _completion(text):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=text))])


def _service_with_gateway(create):
    ai = AIService()
    ai._gateway_client = MagicMock()
    ai._gateway_client.chat.completions.create = create
    return ai


def test_parse_plain_json():
    assert parse_insights_json('[{"title": "a"}]') == [{"title": "a"}]


def test_parse_strips_json_fence():
    text = '```json\n[{"title": "a"}]\n```'
    assert parse_insights_json(text) == [{"title": "a"}]


def test_parse_strips_bare_fence_and_whitespace():
    assert parse_insights_json("  ```\n[]\n```  ") == []


def test_parse_non_json_is_malformed():
    with pytest.raises(InsightGenerationError) as exc_info:
        parse_insights_json("Here are your insights: ...")
    assert exc_info.value.code is GenerationErrorCode.MALFORMED_RESPONSE


def test_parse_object_is_returned_as_is():
    """Shape checks belong to the caller; a JSON object is still valid JSON."""
    assert parse_insights_json('{"insights": []}') == {"insights": []}


@pytest.mark.asyncio
async def test_generate_requires_gateway_key(monkeypatch):
    monkeypatch.setattr(settings, "OPENROUTER_API_KEY", "")
    with pytest.raises(InsightGenerationError) as exc_info:
        await AIService().generate_response("some/model", "prompt")
    assert exc_info.value.code is GenerationErrorCode.NOT_CONFIGURED


@pytest.mark.asyncio
async def test_generate_sends_system_instruction_as_prior_turn():
    create = AsyncMock(return_value=_completion("[]"))
    ai = _service_with_gateway(create)

    text = await ai.generate_response("google/gemini-2.0-flash-001", "the prompt", system_instruction="Be concise.")

    assert text == "[]"
    kwargs = create.await_args.kwargs
    assert kwargs["model"] == "google/gemini-2.0-flash-001"
    assert kwargs["messages"] == [
        {"role": "assistant", "content": "Be concise."},
        {"role": "user", "content": "the prompt"},
    ]


@pytest.mark.asyncio
async def test_generate_without_system_instruction_sends_only_prompt():
    create = AsyncMock(return_value=_completion("[]"))
    ai = _service_with_gateway(create)

    await ai.generate_response("m", "p", history=[{"role": "user", "parts": "earlier"}])

    assert create.await_args.kwargs["messages"] == [
        {"role": "user", "content": "earlier"},
        {"role": "user", "content": "p"},
    ]


@pytest.mark.asyncio
async def test_generate_wraps_upstream_errors():
    request = httpx.Request("POST", "https://openrouter.ai/api/v1/chat/completions")
    create = AsyncMock(side_effect=openai.APIConnectionError(request=request))
    ai = _service_with_gateway(create)

    with pytest.raises(InsightGenerationError) as exc_info:
        await ai.generate_response("m", "p")
    assert exc_info.value.code is GenerationErrorCode.UPSTREAM_ERROR
    assert create.await_count == 1  # no retry


@pytest.mark.asyncio
async def test_generate_empty_choices_returns_empty_text():
    ai = _service_with_gateway(AsyncMock(return_value=SimpleNamespace(choices=[])))
    assert await ai.generate_response("m", "p") == ""


@pytest.mark.asyncio
async def test_agent_config_defaults(session_factory):
    async with session_factory() as db:
        config = await load_agent_config(db, "personal_insights_agent")
    assert config.system_instruction == ""
    assert config.model == settings.INSIGHTS_DEFAULT_MODEL


@pytest.mark.asyncio
async def test_agent_config_from_table(session_factory, seed):
    await seed(
        AiSystemPrompt(
            agent_type="personal_insights_agent",
            system_instruction="You are a learning coach.",
            model="anthropic/some-model",
        )
    )
    async with session_factory() as db:
        config = await load_agent_config(db, "personal_insights_agent")
    assert config.system_instruction == "You are a learning coach."
    assert config.model == "anthropic/some-model"


@pytest.mark.asyncio
async def test_embedding_returns_none_without_providers(monkeypatch):
    monkeypatch.setattr(settings, "GOOGLE_GEMINI_API_KEY", "")
    monkeypatch.setattr(settings, "OPENAI_API_KEY", "")
    assert await AIService().generate_embedding("some text") is None
    assert await AIService().generate_embedding("   ") is None
