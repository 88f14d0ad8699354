"""Persona Strategy Base Module

Shared machinery for every interpreter persona. A persona turns one
``InterpretationContext`` into a formatted interpretation in three stages:

  1. assess_relevance: pick the themes and knowledge fragments that matter
     (low temperature, JSON)
  2. generate_full_interpretation: write the interpretation in the
     persona's voice (higher temperature, free text)
  3. format_to_json: reshape the interpretation into the persona's
     structured result (lowest temperature, JSON)

Stages never raise for generation or parse failures; they return a
``StageResult`` and leave the abort-or-fallback decision to the caller.

Subclasses provide the prompts, the voice, the core schema and the
persona-specific heuristics as class attributes.
"""

import json
import logging
import re
import uuid
from string import Template
from typing import Any, Dict, List, Optional, Pattern, Sequence, Type

from ..config import PipelineSettings
from ..debate import build_debate_section, split_debate
from ..errors import STAGE_FAILED, GenerationExhaustedError
from ..generation import GenerationBackend, Message
from ..models import (
    AuthenticityMarkers,
    CoreBase,
    EmotionalTone,
    FormattedInterpretation,
    FragmentSelection,
    FullInterpretationResult,
    InterpretationContext,
    InterpretationRequest,
    PersonaMetadata,
    Personality,
    RelevanceAssessment,
    RetrievedFragment,
    StageMetadata,
    StageResult,
    ValidationReport,
)
from ..structured_output import generate_structured, generate_text

logger = logging.getLogger(__name__)

DEFAULT_REASON = "Selected during relevance assessment"
MIN_INTERPRETATION_CHARS = 50
MIN_QUICK_TAKE_CHARS = 20
MAX_SYMBOLS = 10
MAX_INSIGHTS = 5
INSIGHT_SENTENCES = 3

JSON_ONLY = (
    "Return ONLY valid JSON without any markdown formatting, code blocks, or additional text. "
    "Do not wrap the JSON in ```json blocks. Start your response with { and end with }."
)

STAGE_TASKS = {
    "relevance": (
        "Your task is to assess the relevance of provided knowledge fragments and themes "
        "to the dream. " + JSON_ONLY
    ),
    "interpretation": (
        "Your task is to provide a comprehensive dream interpretation using your unique "
        "perspective and expertise."
    ),
    "formatting": "Your task is to format the interpretation into a structured JSON response. " + JSON_ONLY,
}

SYMBOL_PATTERNS = [
    re.compile(r"symbols? of (\w+)", re.I),
    re.compile(r"(\w+) represents?", re.I),
    re.compile(r"(\w+) symbolizes?", re.I),
]
SENTENCE_RE = re.compile(r"[^.!?]+[.!?]+")

# words the generic symbol patterns catch that are never dream symbols
SYMBOL_STOPWORDS = {"this", "that", "which", "what", "it", "dream", "also", "often", "here", "there", "image"}

CORE_ALIASES = ("interpretationCore", "interpretation_core", "interpreter_core", "core")


def _clamp_relevance(value: Any, default: float = 0.5) -> float:
    if value is None or isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if number > 1.0:
        # some models answer on a 0-10 or 0-100 scale
        number = number / 100.0 if number > 10.0 else number / 10.0
    return max(0.0, min(1.0, number))


def _blank(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, dict):
        return {k: _blank(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_blank(v) for v in value]
    return value


class BasePersona:
    """Template for an interpreter persona.

    Args:
        backend: Generation backend shared by all stages
        settings: Stage temperatures, token budgets, model chains and flags
    """

    key: str = ""
    core_type: str = ""
    core_model: Type[CoreBase] = CoreBase
    metadata: PersonaMetadata
    personality: Personality

    relevance_template: Template
    interpretation_template: Template
    formatting_template: Template

    fragment_limit: int = 5
    symbol_vocabulary: Sequence[str] = ()
    insight_patterns: Sequence[Pattern[str]] = ()

    opening_approaches: Sequence[str] = ()
    structural_patterns: Sequence[str] = ()
    vocabulary_anchors: Sequence[str] = ()
    static_forbidden_openings: Sequence[str] = ()

    default_symbols: Sequence[str] = ()
    default_reflection: str = "What is this dream inviting you to notice?"
    fallback_template: Template = Template(
        "Your dream about $themes carries a message worth sitting with. "
        "Even without a full reading, notice which image stayed with you after waking."
    )
    fallback_quick_take: str = "Your dream is asking you to pay closer attention to what stays with you."
    fallback_guidance: Sequence[str] = ("Write the dream down and note the feelings it left behind",)

    def __init__(self, backend: GenerationBackend, settings: PipelineSettings):
        self.backend = backend
        self.settings = settings

    # -- prompts -----------------------------------------------------------

    @property
    def model_chain(self) -> List[str]:
        return self.settings.model_chain_for(self.key)

    def system_prompt(self, stage: str) -> str:
        p = self.personality
        voice = (
            f"{p.voice_signature}\n"
            f"Tone: {p.tone}. Vocabulary: {p.vocabulary}."
        )
        if p.signature_phrases:
            voice += "\nCharacteristic phrases: " + "; ".join(p.signature_phrases)
        return f"You are {self.metadata.name}, {self.metadata.description}.\n{voice}\n\n{STAGE_TASKS[stage]}"

    def _messages(self, stage: str, prompt: str) -> List[Message]:
        return [
            {"role": "system", "content": self.system_prompt(stage)},
            {"role": "user", "content": prompt},
        ]

    def build_relevance_prompt(self, context: InterpretationContext) -> str:
        fragments = [
            {"id": f.id, "content": f.content, "relevance": round(f.relevance, 3)}
            for f in context.fragments
        ]
        return self.relevance_template.safe_substitute(
            dream=context.request.dream_text,
            themes=", ".join(context.theme_names) or "none identified",
            fragments=json.dumps(fragments, ensure_ascii=False),
            concepts="\n".join(context.concept_hints) or "none",
            fragment_limit=self.fragment_limit,
        )

    def style_section(self, context: InterpretationContext) -> str:
        d = context.directions
        lines = []
        if d.opening:
            lines.append(f"Opening approach: {d.opening}")
        if d.structure:
            lines.append(f"Structure: {d.structure}")
        if d.vocabulary_anchor:
            lines.append(f"Let this idea anchor your vocabulary: {d.vocabulary_anchor}")
        lines.extend(context.forbidden_openings)
        if not lines:
            return ""
        return "STYLE DIRECTIONS:\n" + "\n".join(f"- {line}" for line in lines)

    def build_interpretation_prompt(
        self, context: InterpretationContext, relevance: RelevanceAssessment
    ) -> str:
        fragments = [
            {"content": f.content, "relevance": f.relevance, "reason": f.reason}
            for f in relevance.relevant_fragments
        ]
        user_context = (
            context.request.user_context.model_dump(by_alias=True, exclude_none=True)
            if context.request.user_context
            else {}
        )
        prompt = self.interpretation_template.safe_substitute(
            dream=context.request.dream_text,
            relevant_themes=", ".join(relevance.relevant_themes or context.theme_names) or "none identified",
            relevant_fragments=json.dumps(fragments, ensure_ascii=False),
            focus_areas=", ".join(relevance.focus_areas) or "your own judgement",
            user_context=json.dumps(user_context, ensure_ascii=False),
            concepts=", ".join(context.concepts) or "none",
        )
        sections = [prompt, self.style_section(context)]
        if self.settings.enable_debate:
            sections.append(build_debate_section(self.key, self.personality))
        return "\n\n".join(s for s in sections if s)

    def build_formatting_prompt(
        self, context: InterpretationContext, full: FullInterpretationResult
    ) -> str:
        return self.formatting_template.safe_substitute(
            dream=context.request.dream_text,
            dream_id=context.request.dream_id,
            interpretation=full.interpretation,
            symbols=", ".join(full.symbols) or "none identified",
            key_insights="\n".join(full.key_insights),
            core_structure=json.dumps(self.get_core_structure(), indent=2),
        )

    # -- stage 1 -----------------------------------------------------------

    async def assess_relevance(self, context: InterpretationContext) -> StageResult[RelevanceAssessment]:
        messages = self._messages("relevance", self.build_relevance_prompt(context))
        try:
            result = await generate_structured(
                self.backend,
                messages,
                self.model_chain,
                temperature=self.settings.relevance_temperature,
                max_tokens=self.settings.relevance_max_tokens,
                max_tokens_by_model=self.settings.relevance_max_tokens_by_model,
                validator=lambda data: self.build_relevance_assessment(data, context.fragments),
            )
        except GenerationExhaustedError as e:
            logger.error("Relevance assessment failed for persona=%s: %s", self.key, e)
            return StageResult[RelevanceAssessment].fail(e.message, e.code)

        return StageResult[RelevanceAssessment].ok(result.data, model=result.model, usage=result.usage)

    def relink_fragment(
        self, fragment_id: Optional[str], content: str, supplied: Sequence[RetrievedFragment]
    ) -> Optional[RetrievedFragment]:
        """Find the supplied fragment a generated selection refers to."""
        if fragment_id:
            for f in supplied:
                if f.id == fragment_id:
                    return f
        if not content:
            return None
        for f in supplied:
            if f.content == content:
                return f
        for f in supplied:
            if f.content and (content in f.content or f.content in content):
                return f
        return None

    def build_relevance_assessment(
        self, data: Dict[str, Any], supplied: Sequence[RetrievedFragment]
    ) -> RelevanceAssessment:
        raw_items = data.get("relevantFragments", data.get("relevant_fragments")) or []
        if isinstance(raw_items, dict):
            raw_items = [raw_items]

        selections: List[FragmentSelection] = []
        for item in raw_items:
            if isinstance(item, str):
                item = {"content": item}
            if not isinstance(item, dict):
                continue
            content = str(item.get("content") or "").strip()
            match = self.relink_fragment(item.get("id") or item.get("fragmentId"), content, supplied)
            if match is None:
                logger.debug("Unmatched fragment excerpt from relevance stage: %r", content[:80])
            selections.append(
                FragmentSelection(
                    fragment_id=match.id if match else f"unknown-{uuid.uuid4().hex[:9]}",
                    content=content or (match.content if match else ""),
                    relevance=_clamp_relevance(item.get("relevance")),
                    reason=str(item.get("reason") or DEFAULT_REASON),
                    linked=match is not None,
                )
            )

        return RelevanceAssessment(
            relevant_themes=data.get("relevantThemes", data.get("relevant_themes")) or [],
            relevant_fragments=selections[: self.fragment_limit],
            focus_areas=data.get("focusAreas", data.get("focus_areas")) or [],
        )

    # -- stage 2 -----------------------------------------------------------

    async def generate_full_interpretation(
        self, context: InterpretationContext, relevance: RelevanceAssessment
    ) -> StageResult[FullInterpretationResult]:
        messages = self._messages("interpretation", self.build_interpretation_prompt(context, relevance))
        try:
            completion = await generate_text(
                self.backend,
                messages,
                self.model_chain,
                temperature=self.settings.interpretation_temperature,
                max_tokens=self.settings.interpretation_max_tokens,
            )
        except GenerationExhaustedError as e:
            logger.error("Full interpretation failed for persona=%s: %s", self.key, e)
            return StageResult[FullInterpretationResult].fail(e.message, e.code)

        text, trace = split_debate(completion.content)
        if not text:
            return StageResult[FullInterpretationResult].fail(
                "Interpretation text was empty", STAGE_FAILED, usage=completion.usage
            )

        result = self.extract_interpretation_data(text)
        result.debate = trace
        return StageResult[FullInterpretationResult].ok(result, model=completion.model, usage=completion.usage)

    def extract_symbols(self, text: str) -> List[str]:
        found: Dict[str, None] = {}
        for pattern in SYMBOL_PATTERNS:
            for match in pattern.finditer(text):
                token = match.group(1).lower()
                if len(token) > 2 and token not in SYMBOL_STOPWORDS:
                    found.setdefault(token, None)
        lowered = text.lower()
        for symbol in self.symbol_vocabulary:
            if re.search(rf"\b{re.escape(symbol)}\b", lowered):
                found.setdefault(symbol, None)
        return list(found)[:MAX_SYMBOLS]

    def extract_insights(self, text: str) -> List[str]:
        insights = [s.strip() for s in SENTENCE_RE.findall(text)[:INSIGHT_SENTENCES]]
        for pattern in self.insight_patterns:
            insights.extend(m.group(0).strip() for m in pattern.finditer(text))
        return insights[:MAX_INSIGHTS]

    def extract_interpretation_data(self, text: str) -> FullInterpretationResult:
        return FullInterpretationResult(
            interpretation=text,
            symbols=self.extract_symbols(text),
            key_insights=self.extract_insights(text),
        )

    # -- stage 3 -----------------------------------------------------------

    async def format_to_json(
        self,
        context: InterpretationContext,
        full: FullInterpretationResult,
        relevance: RelevanceAssessment,
    ) -> StageResult[FormattedInterpretation]:
        messages = self._messages("formatting", self.build_formatting_prompt(context, full))
        try:
            result = await generate_structured(
                self.backend,
                messages,
                self.model_chain,
                temperature=self.settings.formatting_temperature,
                max_tokens=self.settings.formatting_max_tokens,
                validator=lambda data: self.build_formatted(data, context.request, full, relevance),
            )
        except GenerationExhaustedError as e:
            logger.error("JSON formatting failed for persona=%s: %s", self.key, e)
            return StageResult[FormattedInterpretation].fail(e.message, e.code)

        return StageResult[FormattedInterpretation].ok(result.data, model=result.model, usage=result.usage)

    def build_formatted(
        self,
        data: Dict[str, Any],
        request: InterpretationRequest,
        full: FullInterpretationResult,
        relevance: RelevanceAssessment,
    ) -> FormattedInterpretation:
        """Reconcile generated field names and merge stage metadata.

        Raises:
            pydantic.ValidationError: If the result does not fit the schema
        """
        data = dict(data)

        if "interpreterCore" not in data:
            aliases = CORE_ALIASES + (f"{self.core_type}Core", f"{self.key}Core")
            for alias in aliases:
                if alias in data:
                    data["interpreterCore"] = data.pop(alias)
                    break

        core = data.get("interpreterCore")
        core = dict(core) if isinstance(core, dict) else {}
        if core.get("type") != self.core_type:
            if core.get("type"):
                logger.debug("Replacing core type %r with %r", core.get("type"), self.core_type)
            core["type"] = self.core_type
        data["interpreterCore"] = core

        interpretation = data.get("interpretation")
        if isinstance(interpretation, list):
            interpretation = "\n\n".join(str(p) for p in interpretation if p)
        if not isinstance(interpretation, str) or not interpretation.strip():
            interpretation = full.interpretation
        data["interpretation"] = interpretation

        tone = data.get("emotionalTone")
        if isinstance(tone, str):
            data["emotionalTone"] = {"primary": tone}
        elif tone is not None and not isinstance(tone, dict):
            data.pop("emotionalTone")

        for snake in ("dream_id", "full_interpretation", "authenticity_markers", "stage_metadata"):
            data.pop(snake, None)
        data["dreamId"] = request.dream_id
        data["fullInterpretation"] = full.interpretation
        data["authenticityMarkers"] = AuthenticityMarkers()
        data["stageMetadata"] = StageMetadata(
            relevance_assessment=relevance,
            interpretation_metadata=full,
        )

        return FormattedInterpretation.model_validate(data)

    # -- validation and structure -----------------------------------------

    def get_core_structure(self) -> Dict[str, Any]:
        """Empty core skeleton shown to the formatter."""
        return _blank(self.core_model().model_dump(by_alias=True))

    def validate_core(self, core: CoreBase) -> List[str]:
        """Persona-specific structural checks; advisory only."""
        if getattr(core, "type", None) != self.core_type:
            return [f"Invalid core type: {getattr(core, 'type', None)} (expected '{self.core_type}')"]
        return []

    def validate(self, interpretation: FormattedInterpretation) -> ValidationReport:
        errors: List[str] = []
        if not interpretation.dream_id:
            errors.append("Missing dreamId")
        if len((interpretation.interpretation or "").strip()) < MIN_INTERPRETATION_CHARS:
            errors.append("Interpretation too short")

        warnings: List[str] = []
        if not interpretation.symbols:
            warnings.append("No symbols identified")
        if len(interpretation.quick_take or "") < MIN_QUICK_TAKE_CHARS:
            warnings.append("Quick take too short or missing")
        warnings.extend(self.validate_core(interpretation.interpreter_core))

        if warnings:
            logger.warning(
                "Validation warnings dream_id=%s persona=%s: %s",
                interpretation.dream_id, self.key, warnings,
            )
        return ValidationReport(is_valid=not errors, errors=errors, warnings=warnings)

    # -- canned fallback ---------------------------------------------------

    def fallback_interpretation(self, request: InterpretationRequest) -> FormattedInterpretation:
        """Persona-flavoured stand-in used when generation cannot complete."""
        names = [t.name.lower() for t in request.themes]
        themes = ", ".join(names) or "the images you described"
        text = self.fallback_template.safe_substitute(themes=themes)
        core = self.core_model(
            primary_insight=self.fallback_quick_take,
            key_pattern=f"Recurring images: {themes}",
            personal_guidance=self.fallback_guidance[0] if self.fallback_guidance else None,
        )
        return FormattedInterpretation(
            dream_id=request.dream_id,
            interpretation=text,
            quick_take=self.fallback_quick_take,
            symbols=names or list(self.default_symbols),
            emotional_tone=EmotionalTone(),
            interpreter_core=core,
            practical_guidance=list(self.fallback_guidance),
            self_reflection=self.default_reflection,
            full_interpretation=text,
        )
