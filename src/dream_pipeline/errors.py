"""Error Taxonomy Module

Exception types raised across the interpretation pipeline. Every error
carries a stable machine-readable code so callers (HTTP controllers,
queue workers) can surface a structured error object instead of a
stack trace.

Codes:
  UNKNOWN_PERSONA: requested persona is not registered
  GENERATION_FAILED: a single backend request failed (network, quota, empty reply)
  PARSE_FAILED: generated text could not be coerced into structured data
  GENERATION_EXHAUSTED: every model in the fallback chain failed
  STAGE_FAILED: a pipeline stage reported failure for another reason
  VALIDATION_FAILED: mandatory validation of the final result failed
"""

from typing import Any, Dict, List, Optional


UNKNOWN_PERSONA = "UNKNOWN_PERSONA"
GENERATION_FAILED = "GENERATION_FAILED"
PARSE_FAILED = "PARSE_FAILED"
GENERATION_EXHAUSTED = "GENERATION_EXHAUSTED"
STAGE_FAILED = "STAGE_FAILED"
VALIDATION_FAILED = "VALIDATION_FAILED"


class DreamPipelineError(Exception):
    """Base class for all pipeline errors."""

    code = STAGE_FAILED

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Serializable error object for user-facing responses."""
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class GenerationError(DreamPipelineError):
    """A single request to the generation backend failed."""

    code = GENERATION_FAILED

    def __init__(self, message: str, model: Optional[str] = None):
        super().__init__(message, details={"model": model} if model else None)
        self.model = model


class StructuredOutputError(DreamPipelineError):
    """No repair strategy produced a JSON object from the raw text."""

    code = PARSE_FAILED

    def __init__(self, message: str, strategies: Optional[List[str]] = None, raw: str = ""):
        super().__init__(
            message,
            details={"strategies": list(strategies or []), "preview": raw[:200]},
        )
        self.strategies = list(strategies or [])
        self.raw = raw


class GenerationExhaustedError(DreamPipelineError):
    """Every model in the fallback chain failed to produce usable output."""

    code = GENERATION_EXHAUSTED

    def __init__(self, models: List[str], last_error: Optional[BaseException] = None):
        message = (
            f"Failed to generate valid output after trying all models {models}. "
            f"last_error={type(last_error).__name__ if last_error else 'N/A'}: {last_error}"
        )
        super().__init__(message, details={"models": list(models)})
        self.models = list(models)
        self.last_error = last_error


class InterpretationError(DreamPipelineError):
    """Fatal failure of an interpretation request."""


class UnknownPersonaError(InterpretationError):
    code = UNKNOWN_PERSONA

    def __init__(self, persona: str, available: List[str]):
        super().__init__(
            f"Interpreter not found: {persona}. "
            f"Available interpreters: {', '.join(available)}",
            details={"persona": persona, "available": list(available)},
        )
        self.persona = persona
        self.available = list(available)
