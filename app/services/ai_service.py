"""
AI Service - generation through the OpenRouter gateway (OpenAI-compatible) and
embeddings through Google Gemini (primary) / OpenAI (fallback).

Configure via .env:
  OPENROUTER_API_KEY=...
  GOOGLE_GEMINI_API_KEY=...
  OPENAI_API_KEY=...
"""
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, List, Optional

import openai
from openai import AsyncOpenAI
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import GenerationErrorCode, InsightGenerationError
from app.models.ai import AiSystemPrompt

logger = logging.getLogger(__name__)

EMBEDDING_DIM = 768  # Gemini text-embedding-004 / OpenAI text-embedding-3-small@768d

_FENCE_OPEN = re.compile(r"^```(?:json)?\n?")
_FENCE_CLOSE = re.compile(r"\n?```$")


@dataclass
class AgentConfig:
    system_instruction: str
    model: str


async def load_agent_config(db: AsyncSession, agent_type: str) -> AgentConfig:
    """Per-agent system instruction and model; defaults when no row is configured."""
    result = await db.execute(select(AiSystemPrompt).where(AiSystemPrompt.agent_type == agent_type))
    row = result.scalar_one_or_none()
    return AgentConfig(
        system_instruction=(row.system_instruction if row else None) or "",
        model=(row.model if row else None) or settings.INSIGHTS_DEFAULT_MODEL,
    )


def parse_insights_json(text: str) -> Any:
    """Strip an optional ```json fence and parse the rest as JSON."""
    cleaned = (text or "").strip()
    if cleaned.startswith("```"):
        cleaned = _FENCE_OPEN.sub("", cleaned, count=1)
        cleaned = _FENCE_CLOSE.sub("", cleaned, count=1)
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise InsightGenerationError(
            GenerationErrorCode.MALFORMED_RESPONSE,
            f"Model returned non-JSON output: {exc.msg} at position {exc.pos}",
        ) from exc


class AIService:
    """Text generation and embeddings used by the insights pipeline."""

    def __init__(self):
        self._gateway_client = None
        self._openai_client = None

    def _get_gateway(self) -> Optional[AsyncOpenAI]:
        if not self._gateway_client and settings.OPENROUTER_API_KEY:
            self._gateway_client = AsyncOpenAI(
                api_key=settings.OPENROUTER_API_KEY,
                base_url=settings.OPENROUTER_BASE_URL,
                default_headers={"HTTP-Referer": settings.SITE_URL, "X-Title": settings.SITE_NAME},
            )
        return self._gateway_client

    def _get_openai(self) -> Optional[AsyncOpenAI]:
        if not self._openai_client and settings.OPENAI_API_KEY:
            self._openai_client = AsyncOpenAI(api_key=settings.OPENAI_API_KEY)
        return self._openai_client

    async def generate_response(
        self,
        model: str,
        prompt: str,
        history: Optional[List[dict]] = None,
        system_instruction: str = "",
    ) -> str:
        """Single completion call. No retry; upstream failures raise InsightGenerationError.

        `history` items are {"role": "user" | "model", "parts": str}. A system
        instruction is sent as the first prior model turn.
        """
        client = self._get_gateway()
        if not client:
            raise InsightGenerationError(
                GenerationErrorCode.NOT_CONFIGURED, "OPENROUTER_API_KEY is not configured"
            )

        turns = list(history or [])
        if system_instruction:
            turns.insert(0, {"role": "model", "parts": system_instruction})
        messages = [
            {"role": "assistant" if t["role"] == "model" else "user", "content": t["parts"]}
            for t in turns
        ]
        messages.append({"role": "user", "content": prompt})

        try:
            response = await client.chat.completions.create(model=model, messages=messages)
        except openai.APIError as exc:
            raise InsightGenerationError(
                GenerationErrorCode.UPSTREAM_ERROR, f"Generation request failed: {exc}"
            ) from exc

        if not response.choices:
            return ""
        return response.choices[0].message.content or ""

    async def generate_embedding(self, text: str) -> Optional[List[float]]:
        """Generate a 768-dimensional embedding vector for context storage.

        Uses Google Gemini text-embedding-004 (primary) with OpenAI
        text-embedding-3-small at 768 dims as fallback.
        Returns None if both providers fail.
        """
        # Trim to avoid hitting API token limits
        text = text[:8000].strip()
        if not text:
            return None

        # --- Primary: Gemini text-embedding-004 (768 dims) ---
        try:
            import google.generativeai as genai
            if settings.GOOGLE_GEMINI_API_KEY:
                genai.configure(api_key=settings.GOOGLE_GEMINI_API_KEY)
                result = genai.embed_content(
                    model=settings.EMBEDDING_MODEL,
                    content=text,
                    task_type="retrieval_document",
                )
                return result["embedding"]
        except Exception:
            logger.warning("Gemini embedding failed; trying OpenAI", exc_info=True)

        # --- Fallback: OpenAI text-embedding-3-small at 768 dims ---
        try:
            openai_client = self._get_openai()
            if openai_client:
                resp = await openai_client.embeddings.create(
                    model="text-embedding-3-small",
                    input=text,
                    dimensions=EMBEDDING_DIM,
                )
                return resp.data[0].embedding
        except Exception:
            logger.warning("OpenAI embedding failed", exc_info=True)

        return None
