"""Response Standardizer Module

Maps every persona's formatted interpretation onto one canonical shape.

Dispatch is on the explicit ``interpreter_core.type`` tag. Fields with no
canonical home are moved into ``additional_info`` rather than dropped.
Standardization is total: any valid persona result produces a valid
``CanonicalInterpretation``.
"""

import logging
import re
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from pydantic import ValidationError

from .models import (
    CanonicalInterpretation,
    CoreBase,
    FormattedInterpretation,
    FreudianCore,
    GenerationMetadata,
    JungianCore,
    NeuroscientificCore,
    VedanticCore,
)

logger = logging.getLogger(__name__)

TOPIC_PUNCTUATION = re.compile(r"[.,!?;:]")
TOPIC_PADDING = "reveals hidden patterns within you"
DEFAULT_TOPIC = "Unconscious communication through symbolic imagery"
MIN_TOPIC_WORDS = 5
MAX_TOPIC_WORDS = 9
TRUNCATED_TOPIC_WORDS = 8

MIN_QUICK_TAKE_CHARS = 20
DEFAULT_QUICK_TAKE = "Your dream carries a message worth exploring."

MAX_SYMBOLS = 10
MAX_SYMBOL_WORDS = 3
MAX_SYMBOL_CHARS = 30
SYMBOL_KEYS = ("symbol", "name", "element")

FIRST_SENTENCE = re.compile(r"^\s*(.+?[.!?])(?:\s|$)", re.S)

DEFAULT_REFLECTIONS = {
    "freudian": "What forbidden wishes might this dream be expressing?",
    "jungian": "What aspect of your Self is seeking recognition through this dream?",
    "neuroscientific": "How might this dream reflect your brain's processing of recent experiences?",
    "vedantic": "What is your soul being invited to release or embrace through this dream?",
}

DEFAULT_SYMBOLS = {
    "freudian": ["house", "door", "passage"],
    "jungian": ["shadow", "self", "threshold"],
    "neuroscientific": ["memory", "emotion", "sleep"],
    "vedantic": ["lotus", "light", "path"],
}
GENERIC_SYMBOLS = ["dream", "journey", "transformation"]


def _latent_content(core: FreudianCore) -> Optional[str]:
    return core.psychoanalytic_elements.latent_content


def _primary_archetype(core: JungianCore) -> Optional[str]:
    return core.archetypal_dynamics.primary_archetype


def _memory_consolidation(core: NeuroscientificCore) -> Optional[str]:
    return core.memory_consolidation


def _soul_lesson(core: VedanticCore) -> Optional[str]:
    return core.spiritual_dynamics.soul_lesson


PROMINENT_FIELD: Dict[str, Callable[[Any], Optional[str]]] = {
    "freudian": _latent_content,
    "jungian": _primary_archetype,
    "neuroscientific": _memory_consolidation,
    "vedantic": _soul_lesson,
}


def _freudian_summary(core: FreudianCore) -> Dict[str, Any]:
    work = core.psychoanalytic_elements.dream_work
    parts = [
        f"{label}: {value}"
        for label, value in (
            ("Condensation", work.condensation),
            ("Displacement", work.displacement),
            ("Symbolization", work.symbolization),
            ("Secondary revision", work.secondary_revision),
        )
        if value
    ]
    return {"dreamWork": " ".join(parts)} if parts else {}


def _jungian_summary(core: JungianCore) -> Dict[str, Any]:
    value = core.archetypal_dynamics.compensatory_function
    return {"dreamWork": value} if value else {}


def _neuroscientific_summary(core: NeuroscientificCore) -> Dict[str, Any]:
    parts = [p for p in (core.sleep_stage, core.emotional_regulation) if p]
    if core.brain_processes:
        parts.append("Brain processes: " + ", ".join(core.brain_processes))
    return {"dreamWork": " ".join(parts)} if parts else {}


def _vedantic_summary(core: VedanticCore) -> Dict[str, Any]:
    value = core.spiritual_dynamics.karmic_pattern
    return {"dreamWork": value} if value else {}


DREAM_WORK_SUMMARY: Dict[str, Callable[[Any], Dict[str, Any]]] = {
    "freudian": _freudian_summary,
    "jungian": _jungian_summary,
    "neuroscientific": _neuroscientific_summary,
    "vedantic": _vedantic_summary,
}


def create_dream_topic(text: Optional[str]) -> str:
    """Short topic phrase of 5-9 words."""
    words = TOPIC_PUNCTUATION.sub("", text or "").split()
    if not words:
        return DEFAULT_TOPIC
    if len(words) > MAX_TOPIC_WORDS:
        return " ".join(words[:TRUNCATED_TOPIC_WORDS])
    if len(words) < MIN_TOPIC_WORDS:
        return " ".join(words + TOPIC_PADDING.split())
    return " ".join(words)


def first_sentence(text: Optional[str]) -> Optional[str]:
    if not text:
        return None
    match = FIRST_SENTENCE.match(text)
    return match.group(1).strip() if match else text.strip()


def normalize_symbol(value: Any) -> Optional[str]:
    """Reduce a generated symbol (string or dict) to a short lowercase token."""
    if isinstance(value, dict):
        value = next((value[k] for k in SYMBOL_KEYS if value.get(k)), None)
    if not isinstance(value, str):
        return None
    words = re.sub(r"[^\w\s'-]", " ", value.lower()).split()
    if not words:
        return None
    token = " ".join(words[:MAX_SYMBOL_WORDS])
    if len(token) > MAX_SYMBOL_CHARS:
        token = token[:MAX_SYMBOL_CHARS].rstrip()
    return token or None


def collect_symbols(*sources: Iterable[Any]) -> List[str]:
    """Flatten, normalize and dedupe symbols from sources in priority order."""
    tokens: Dict[str, None] = {}
    for source in sources:
        for value in source:
            token = normalize_symbol(value)
            if token:
                tokens.setdefault(token, None)
    return list(tokens)[:MAX_SYMBOLS]


class ResponseStandardizer:
    """Builds ``CanonicalInterpretation`` objects from persona results."""

    def standardize(
        self,
        formatted: FormattedInterpretation,
        *,
        persona_key: str,
        generation_metadata: GenerationMetadata,
        theme_names: Sequence[str] = (),
    ) -> CanonicalInterpretation:
        core = formatted.interpreter_core
        try:
            return self._standardize(formatted, core, persona_key, generation_metadata, theme_names)
        except ValidationError:
            logger.exception(
                "Standardization of dream_id=%s failed; returning minimal canonical result",
                formatted.dream_id,
            )
            return self._minimal(formatted, core, persona_key, generation_metadata, theme_names)

    def _standardize(
        self,
        formatted: FormattedInterpretation,
        core: CoreBase,
        persona_key: str,
        generation_metadata: GenerationMetadata,
        theme_names: Sequence[str],
    ) -> CanonicalInterpretation:
        core_type = core.type
        interpretation = (formatted.interpretation or "").strip() or (formatted.full_interpretation or "").strip()

        topic_source = formatted.dream_topic or core.primary_insight or interpretation
        quick_take = self._quick_take(formatted, core, interpretation)

        stage_symbols: List[str] = []
        if formatted.stage_metadata.interpretation_metadata is not None:
            stage_symbols = formatted.stage_metadata.interpretation_metadata.symbols
        symbols = collect_symbols(
            formatted.symbols,
            stage_symbols,
            theme_names,
            DEFAULT_SYMBOLS.get(core_type, []),
            GENERIC_SYMBOLS,
        )

        return CanonicalInterpretation(
            dream_id=formatted.dream_id,
            persona=persona_key,
            dream_topic=create_dream_topic(topic_source),
            interpretation=interpretation,
            quick_take=quick_take,
            symbols=symbols,
            emotional_tone=formatted.emotional_tone,
            core=core,
            practical_guidance=list(formatted.practical_guidance),
            self_reflection=(formatted.self_reflection or "").strip() or DEFAULT_REFLECTIONS.get(
                core_type, DEFAULT_REFLECTIONS["jungian"]
            ),
            generation_metadata=generation_metadata,
            authenticity_markers=formatted.authenticity_markers,
            additional_info=self._additional_info(formatted, core),
        )

    def _quick_take(self, formatted: FormattedInterpretation, core: CoreBase, interpretation: str) -> str:
        prominent = PROMINENT_FIELD.get(core.type)
        candidates = [
            formatted.quick_take,
            core.primary_insight,
            prominent(core) if prominent else None,
            first_sentence(interpretation),
        ]
        cleaned = [c.strip() for c in candidates if c and c.strip()]
        for candidate in cleaned:
            if len(candidate) >= MIN_QUICK_TAKE_CHARS:
                return candidate
        return max(cleaned, key=len) if cleaned else DEFAULT_QUICK_TAKE

    def _additional_info(self, formatted: FormattedInterpretation, core: CoreBase) -> Dict[str, Any]:
        info: Dict[str, Any] = dict(formatted.model_extra or {})
        if formatted.full_interpretation:
            info["fullInterpretation"] = formatted.full_interpretation
        stage = formatted.stage_metadata
        if stage.relevance_assessment is not None or stage.interpretation_metadata is not None:
            info["stageMetadata"] = stage.model_dump(by_alias=True, exclude_none=True)
        summary = DREAM_WORK_SUMMARY.get(core.type)
        if summary is not None:
            info.update(summary(core))
        return info

    def _minimal(
        self,
        formatted: FormattedInterpretation,
        core: CoreBase,
        persona_key: str,
        generation_metadata: GenerationMetadata,
        theme_names: Sequence[str],
    ) -> CanonicalInterpretation:
        return CanonicalInterpretation(
            dream_id=formatted.dream_id,
            persona=persona_key,
            dream_topic=DEFAULT_TOPIC,
            interpretation=formatted.interpretation or formatted.full_interpretation or "",
            quick_take=DEFAULT_QUICK_TAKE,
            symbols=collect_symbols(theme_names, DEFAULT_SYMBOLS.get(core.type, []), GENERIC_SYMBOLS),
            emotional_tone=formatted.emotional_tone,
            core=type(core)(),
            self_reflection=DEFAULT_REFLECTIONS.get(core.type, DEFAULT_REFLECTIONS["jungian"]),
            generation_metadata=generation_metadata,
        )
