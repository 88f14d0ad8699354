"""Structured Output Module

Turns generated text into structured data, with two levels of retry:

  1. Repair within one response: an ordered list of pure text strategies,
     each applied on top of the previous one, until the result parses as a
     JSON object.
  2. Rotation across responses: if a model's reply cannot be repaired (or
     the request itself fails), the next model in the fallback chain is
     asked, strictly in order.

Repair strategies:
  - direct: the raw text as-is
  - strip_code_fences: remove Markdown ``` fences
  - object_span: keep the first '{' through the last '}'
  - syntax_repair: drop trailing commas, convert single-quoted strings,
    escape stray inner double quotes and raw control characters
"""

import json
import logging
import re
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict

from .errors import GenerationExhaustedError, StructuredOutputError
from .generation import GenerationBackend, Message
from .models import Completion, Usage

logger = logging.getLogger(__name__)

CODE_FENCE_RE = re.compile(r"```[ \t]*(?:json|JSON)?[ \t]*")

# characters that may legitimately follow a closing quote
_CLOSERS = set("}]:")
# characters that may start the next value or key after a comma
_VALUE_STARTS = set("\"'{[]}-0123456789")
_LITERAL_RE = re.compile(r"(?:true|false|null)\b")
_CONTROL_ESCAPES = {"\n": "\\n", "\r": "\\r", "\t": "\\t"}


def strip_code_fences(text: str) -> str:
    return CODE_FENCE_RE.sub("", text).strip()


def extract_object_span(text: str) -> str:
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        return text
    return text[start : end + 1]


def _skip_space(text: str, index: int) -> int:
    while index < len(text) and text[index].isspace():
        index += 1
    return index


def _next_significant(text: str, index: int) -> str:
    index = _skip_space(text, index)
    return text[index] if index < len(text) else ""


def _closes_string(text: str, index: int) -> bool:
    """Whether a quote just before ``index`` ends the string it is in.

    A comma only counts as a separator when a key or value follows it;
    ``"wise", you see`` stays inside the string.
    """
    index = _skip_space(text, index)
    if index >= len(text) or text[index] in _CLOSERS:
        return True
    if text[index] != ",":
        return False
    index = _skip_space(text, index + 1)
    if index >= len(text):
        return True
    return text[index] in _VALUE_STARTS or bool(_LITERAL_RE.match(text, index))


def repair_syntax(text: str) -> str:
    """
    Fix the usual ways generated JSON goes wrong.

    Walks the text once, tracking whether it is inside a string:
      - strings opened with ' are re-emitted with "
      - a quote inside a string only closes it when followed by } ] : the
        end of the text, or a comma that leads into another key or value;
        any other quote is escaped
      - raw newlines and tabs inside strings are escaped
      - a comma directly before } or ] is dropped
    """
    out: List[str] = []
    quote: Optional[str] = None
    i = 0
    n = len(text)

    while i < n:
        ch = text[i]

        if quote is None:
            if ch == '"' or ch == "'":
                quote = ch
                out.append('"')
            elif ch == "," and _next_significant(text, i + 1) in ("}", "]"):
                pass
            else:
                out.append(ch)
            i += 1
            continue

        if ch == "\\" and i + 1 < n:
            nxt = text[i + 1]
            if nxt == "'":
                out.append("'")
            else:
                out.append(ch + nxt)
            i += 2
            continue

        if ch == quote:
            if _closes_string(text, i + 1):
                out.append('"')
                quote = None
            elif quote == '"':
                out.append('\\"')
            else:
                # apostrophe inside a single-quoted string
                out.append("'")
        elif ch == '"':
            out.append('\\"')
        elif ch in _CONTROL_ESCAPES:
            out.append(_CONTROL_ESCAPES[ch])
        else:
            out.append(ch)
        i += 1

    return "".join(out)


def _direct(text: str) -> str:
    return text


REPAIR_STRATEGIES: Tuple[Tuple[str, Callable[[str], str]], ...] = (
    ("direct", _direct),
    ("strip_code_fences", strip_code_fences),
    ("object_span", extract_object_span),
    ("syntax_repair", repair_syntax),
)


def parse_structured(
    raw: str,
    strategies: Sequence[Tuple[str, Callable[[str], str]]] = REPAIR_STRATEGIES,
) -> Dict[str, Any]:
    """
    Parse generated text into a JSON object.

    Each strategy is applied to the output of the previous one; the first
    candidate that parses to an object wins.

    Raises:
        StructuredOutputError: If no strategy yields a JSON object
    """
    if not raw or not raw.strip():
        raise StructuredOutputError("Empty response; nothing to parse", strategies=[], raw=raw or "")

    candidate = raw
    tried: List[str] = []
    last_error: Optional[Exception] = None

    for name, strategy in strategies:
        candidate = strategy(candidate)
        tried.append(name)
        try:
            parsed = json.loads(candidate)
        except ValueError as e:
            last_error = e
            continue
        if isinstance(parsed, dict):
            if name != "direct":
                logger.debug("Parsed structured output after strategy=%s", name)
            return parsed
        last_error = ValueError(f"expected a JSON object, got {type(parsed).__name__}")

    raise StructuredOutputError(
        f"Could not parse structured output ({last_error})",
        strategies=tried,
        raw=raw,
    )


class StructuredCompletion(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True, protected_namespaces=())

    data: Any
    model: str
    usage: Usage = Usage()
    attempts: int = 1


async def generate_structured(
    backend: GenerationBackend,
    messages: List[Message],
    models: Sequence[str],
    *,
    temperature: float,
    max_tokens: int,
    max_tokens_by_model: Optional[Dict[str, int]] = None,
    validator: Optional[Callable[[Dict[str, Any]], Any]] = None,
) -> StructuredCompletion:
    """
    Generate a JSON object, rotating through ``models`` on failure.

    Each model gets one request. A request error, an unrepairable reply or
    a ``validator`` rejection moves on to the next model.

    Args:
        backend: Generation backend
        messages: Chat messages
        models: Fallback chain, tried strictly in order
        temperature: Sampling temperature
        max_tokens: Completion budget
        max_tokens_by_model: Per-model budget overrides
        validator: Optional callable turning the parsed dict into the final
            value; any exception it raises counts as a parse failure

    Returns:
        StructuredCompletion with the data, the model that produced it and
        the tokens spent across all attempts

    Raises:
        GenerationExhaustedError: If every model failed
    """
    overrides = max_tokens_by_model or {}
    usage = Usage()
    last_error: Optional[Exception] = None

    for attempt, model in enumerate(models, start=1):
        logger.info("Structured generation attempt %d/%d model=%s", attempt, len(models), model)
        try:
            completion = await backend.complete(
                messages,
                temperature=temperature,
                max_tokens=overrides.get(model, max_tokens),
                model=model,
                json_mode=True,
            )
        except Exception as e:
            last_error = e
            logger.warning(
                "Model request failed, trying next model model=%s attempt=%d/%d error_type=%s error=%s",
                model, attempt, len(models), type(e).__name__, e,
            )
            continue

        usage = usage + completion.usage
        try:
            data = parse_structured(completion.content)
            if validator is not None:
                data = validator(data)
        except Exception as e:
            last_error = e
            logger.warning(
                "Structured output rejected, trying next model model=%s attempt=%d/%d error_type=%s preview=%r",
                model, attempt, len(models), type(e).__name__, completion.content[:200],
            )
            continue

        logger.info("✓ Structured output parsed model=%s attempt=%d", completion.model, attempt)
        return StructuredCompletion(data=data, model=completion.model, usage=usage, attempts=attempt)

    logger.error("All models in chain failed to produce structured output: %s", list(models))
    raise GenerationExhaustedError(list(models), last_error) from last_error


async def generate_text(
    backend: GenerationBackend,
    messages: List[Message],
    models: Sequence[str],
    *,
    temperature: float,
    max_tokens: int,
) -> Completion:
    """Free-text generation with the same in-order model rotation."""
    usage = Usage()
    last_error: Optional[Exception] = None

    for attempt, model in enumerate(models, start=1):
        try:
            completion = await backend.complete(
                messages,
                temperature=temperature,
                max_tokens=max_tokens,
                model=model,
            )
        except Exception as e:
            last_error = e
            logger.warning(
                "Text generation failed, trying next model model=%s attempt=%d/%d error_type=%s error=%s",
                model, attempt, len(models), type(e).__name__, e,
            )
            continue

        usage = usage + completion.usage
        if not completion.content.strip():
            last_error = ValueError(f"empty content from {model}")
            logger.warning("Model %s returned empty text; trying next model", model)
            continue

        return Completion(content=completion.content, model=completion.model, usage=usage)

    logger.error("All models in chain failed to generate text: %s", list(models))
    raise GenerationExhaustedError(list(models), last_error) from last_error
