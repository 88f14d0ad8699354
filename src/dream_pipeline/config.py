"""Pipeline Configuration Module

Environment-driven settings for generation, retrieval and the optional
quality layers. Values are read once into a ``PipelineSettings`` object
that is passed explicitly to the components that need it.

Environment variables:
  OPENROUTER_API_KEY / OPENAI_API_KEY: API key for the generation backend
  GENERATION_BASE_URL: OpenAI-compatible endpoint (default: OpenRouter)
  GENERATION_HTTP_REFERER / GENERATION_APP_TITLE: optional router headers
  DREAM_MODEL_CHAIN: comma-separated fallback chain, tried in order
  DREAM_MODEL_CHAIN_<PERSONA>: per-persona override (e.g. DREAM_MODEL_CHAIN_JUNG)
  RETRIEVAL_THRESHOLD: minimum similarity for vector retrieval (default: 0.3)
  RETRIEVAL_TOP_K: maximum fragments returned (default: 10)
  VARIETY_HISTORY_SIZE: per-persona anti-repetition window (default: 5)
  ENABLE_DEBATE: '1' to add the internal debate section to prompts
  ENABLE_QUALITY_CHECKS: '0' to skip post-generation QA scoring
  USE_FALLBACK_RESPONSE: '1' to return a canned interpretation when generation is exhausted
"""

import os
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict


DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"

DEFAULT_MODEL_CHAIN = [
    "meta-llama/llama-4-scout:free",
    "meta-llama/llama-3.1-8b-instruct:free",
    "google/gemma-2-9b-it:free",
]

# Models that reject response_format={"type": "json_object"}
NO_JSON_MODE_PREFIXES = (
    "meta-llama/llama-4-scout",
    "meta-llama/llama-4-maverick",
    "google/gemma",
)

RELEVANCE_MAX_TOKENS_BY_MODEL = {
    "google/gemini-2.5-flash": 1500,
}


def _env_flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str) -> List[str]:
    raw = os.getenv(name, "")
    return [item.strip() for item in raw.split(",") if item.strip()]


class PipelineSettings(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    api_key: Optional[str] = None
    base_url: str = DEFAULT_BASE_URL
    http_referer: Optional[str] = None
    app_title: Optional[str] = None

    model_chain: List[str] = DEFAULT_MODEL_CHAIN
    persona_model_chains: Dict[str, List[str]] = {}

    relevance_temperature: float = 0.3
    relevance_max_tokens: int = 800
    relevance_max_tokens_by_model: Dict[str, int] = RELEVANCE_MAX_TOKENS_BY_MODEL
    interpretation_temperature: float = 0.7
    interpretation_max_tokens: int = 3000
    formatting_temperature: float = 0.2
    formatting_max_tokens: int = 2000

    retrieval_threshold: float = 0.3
    retrieval_top_k: int = 10

    variety_history_size: int = 5
    enable_debate: bool = False
    enable_quality_checks: bool = True
    use_fallback_response: bool = False

    def model_chain_for(self, persona_key: str) -> List[str]:
        """Fallback chain for a persona, honouring per-persona overrides."""
        return list(self.persona_model_chains.get(persona_key) or self.model_chain)

    def extra_headers(self) -> Dict[str, str]:
        headers: Dict[str, str] = {}
        if self.http_referer:
            headers["HTTP-Referer"] = self.http_referer
        if self.app_title:
            headers["X-Title"] = self.app_title
        return headers

    @classmethod
    def from_env(cls, personas: Optional[List[str]] = None) -> "PipelineSettings":
        """Build settings from environment variables.

        Args:
            personas: Persona keys to look up DREAM_MODEL_CHAIN_<KEY> overrides for

        Returns:
            PipelineSettings populated from the environment, defaults elsewhere
        """
        persona_chains: Dict[str, List[str]] = {}
        for key in personas or ["freud", "jung", "mary", "lakshmi"]:
            chain = _env_list(f"DREAM_MODEL_CHAIN_{key.upper()}")
            if chain:
                persona_chains[key] = chain

        return cls(
            api_key=os.getenv("OPENROUTER_API_KEY") or os.getenv("OPENAI_API_KEY"),
            base_url=os.getenv("GENERATION_BASE_URL", DEFAULT_BASE_URL),
            http_referer=os.getenv("GENERATION_HTTP_REFERER"),
            app_title=os.getenv("GENERATION_APP_TITLE"),
            model_chain=_env_list("DREAM_MODEL_CHAIN") or list(DEFAULT_MODEL_CHAIN),
            persona_model_chains=persona_chains,
            retrieval_threshold=float(os.getenv("RETRIEVAL_THRESHOLD", "0.3")),
            retrieval_top_k=int(os.getenv("RETRIEVAL_TOP_K", "10")),
            variety_history_size=int(os.getenv("VARIETY_HISTORY_SIZE", "5")),
            enable_debate=_env_flag("ENABLE_DEBATE"),
            enable_quality_checks=_env_flag("ENABLE_QUALITY_CHECKS", "1"),
            use_fallback_response=_env_flag("USE_FALLBACK_RESPONSE"),
        )


def supports_json_mode(model: str) -> bool:
    return not model.startswith(NO_JSON_MODE_PREFIXES)
