"""Generation Backend Module

Chat-completion access for the three interpretation stages.

A backend performs exactly one request against one model and either
returns a ``Completion`` or raises ``GenerationError``. Model rotation and
output repair live one level up, in ``structured_output``.

Key features:
  - AsyncOpenAI client pointed at any OpenAI-compatible router (OpenRouter by default)
  - JSON-mode hint sent only to models that accept ``response_format``
  - Empty replies treated as request failures so the chain rotates
"""

import logging
from typing import Dict, List, Optional, Protocol

from openai import AsyncOpenAI

from .config import PipelineSettings, supports_json_mode
from .errors import GenerationError
from .models import Completion, Usage

logger = logging.getLogger(__name__)

Message = Dict[str, str]


class GenerationBackend(Protocol):
    async def complete(
        self,
        messages: List[Message],
        *,
        temperature: float,
        max_tokens: int,
        model: Optional[str] = None,
        json_mode: bool = False,
    ) -> Completion:
        ...


class OpenAIGenerationBackend:
    """``GenerationBackend`` backed by the OpenAI SDK.

    Args:
        settings: Connection settings (API key, base URL, router headers)
        client: Pre-built AsyncOpenAI client; created from settings if omitted
    """

    def __init__(self, settings: PipelineSettings, client: Optional[AsyncOpenAI] = None):
        self.settings = settings
        self.client = client or AsyncOpenAI(api_key=settings.api_key, base_url=settings.base_url)
        self.default_model = settings.model_chain[0] if settings.model_chain else None

    async def complete(
        self,
        messages: List[Message],
        *,
        temperature: float,
        max_tokens: int,
        model: Optional[str] = None,
        json_mode: bool = False,
    ) -> Completion:
        model = model or self.default_model
        if not model:
            raise GenerationError("No model configured for generation")

        payload = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if json_mode and supports_json_mode(model):
            payload["response_format"] = {"type": "json_object"}
        headers = self.settings.extra_headers()
        if headers:
            payload["extra_headers"] = headers

        try:
            logger.debug(
                "Generation request model=%s temperature=%.2f max_tokens=%d json_mode=%s",
                model, temperature, max_tokens, "response_format" in payload,
            )
            response = await self.client.chat.completions.create(**payload)
        except Exception as e:
            raise GenerationError(f"Request to {model} failed: {type(e).__name__}: {e}", model=model) from e

        choice = response.choices[0] if response and response.choices else None
        text = choice.message.content if choice is not None else None
        if not isinstance(text, str) or not text.strip():
            raise GenerationError(
                f"Model {model} returned empty content "
                f"(finish_reason={choice.finish_reason if choice is not None else 'N/A'})",
                model=model,
            )

        usage = Usage()
        if getattr(response, "usage", None) is not None:
            usage = Usage(
                prompt_tokens=response.usage.prompt_tokens or 0,
                completion_tokens=response.usage.completion_tokens or 0,
            )

        return Completion(content=text, model=getattr(response, "model", None) or model, usage=usage)
