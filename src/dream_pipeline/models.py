"""Data Models Module

Defines Pydantic models for every artefact that flows through the
interpretation pipeline: requests, the classified knowledge corpus,
per-stage results, the persona-specific interpretation cores and the
canonical result handed to persistence.

Wire-facing models serialize with camelCase aliases (``dreamTopic``,
``interpreterCore``) and accept snake_case or camelCase on input, so
generated JSON can be validated directly.
"""

from enum import Enum
from typing import Annotated, Any, Dict, Generic, List, Literal, Optional, TypeVar, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel


T = TypeVar("T")

_TEXT_KEYS = ("symbol", "name", "element", "text", "title", "value", "description")


def _coerce_text(value: Any) -> Optional[str]:
    """Flatten loosely-typed generated values into a single string."""
    if value is None:
        return None
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (list, tuple)):
        parts = [_coerce_text(v) for v in value]
        return "; ".join(p for p in parts if p)
    if isinstance(value, dict):
        return "; ".join(f"{k}: {_coerce_text(v)}" for k, v in value.items() if v)
    return str(value)


def _coerce_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    if isinstance(value, dict):
        value = list(value.values())
    items: List[str] = []
    for item in value:
        if isinstance(item, dict):
            text = next(
                (str(item[k]) for k in _TEXT_KEYS if item.get(k)),
                _coerce_text(item),
            )
        else:
            text = _coerce_text(item)
        if text:
            items.append(text.strip())
    return items


Text = Annotated[Optional[str], BeforeValidator(_coerce_text)]
StrList = Annotated[List[str], BeforeValidator(_coerce_str_list)]


class CamelModel(BaseModel):
    """Base model with camelCase aliases for JSON exchanged with generators."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class GeneratedModel(CamelModel):
    """Model filled from generated JSON; an explicit null falls back to the field default."""

    @model_validator(mode="before")
    @classmethod
    def _nulls_as_defaults(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None}
        return data


# ---------------------------------------------------------------------------
# Requests and reference data
# ---------------------------------------------------------------------------


class ThemeScore(CamelModel):
    model_config = ConfigDict(frozen=True)

    code: str
    name: str
    relevance: float = Field(default=1.0, ge=0.0, le=1.0)


class UserContext(CamelModel):
    model_config = ConfigDict(frozen=True)

    age: Optional[int] = None
    life_situation: Optional[str] = None
    emotional_state: Optional[str] = None


class InterpretationRequest(CamelModel):
    """One interpretation job. Immutable for the lifetime of a run."""

    model_config = ConfigDict(frozen=True)

    dream_id: str
    user_id: str
    dream_text: str
    persona: str
    themes: List[ThemeScore] = []
    user_context: Optional[UserContext] = None

    @property
    def theme_codes(self) -> List[str]:
        return [t.code for t in self.themes]


class Theme(CamelModel):
    """Dream-theme taxonomy entry (static reference data)."""

    model_config = ConfigDict(frozen=True)

    code: str
    name: str
    description: Optional[str] = None
    embedding: Optional[List[float]] = None


class ContentType(str, Enum):
    THEORY = "theory"
    SYMBOL = "symbol"
    CASE_STUDY = "case_study"
    DREAM_EXAMPLE = "dream_example"
    TECHNIQUE = "technique"
    DEFINITION = "definition"
    BIOGRAPHY = "biography"
    METHODOLOGY = "methodology"
    PRACTICE = "practice"


class ClassificationResult(CamelModel):
    model_config = ConfigDict(frozen=True)

    content_type: ContentType
    confidence: float = Field(ge=0.0, le=1.0)
    secondary_types: List[ContentType] = []
    topics: List[str] = []
    keywords: List[str] = []
    has_symbols: bool = False
    has_examples: bool = False
    has_case_study: bool = False
    has_exercise: bool = False
    applicable_themes: List[str] = []
    mapped_concepts: List[str] = []


class KnowledgeFragment(CamelModel):
    """Classified excerpt from a source text.

    Created once at ingestion time and read-only afterwards. ``persona``
    scopes a fragment to one interpreter; ``None`` means shared.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    source_id: str
    chapter: Optional[str] = None
    content: str
    persona: Optional[str] = None
    content_type: ContentType = ContentType.THEORY
    classification: Optional[ClassificationResult] = None
    embedding: Optional[List[float]] = None

    @property
    def applicable_themes(self) -> List[str]:
        return list(self.classification.applicable_themes) if self.classification else []


class RetrievedFragment(CamelModel):
    fragment: KnowledgeFragment
    relevance: float = Field(ge=0.0, le=1.0)
    method: Literal["vector", "hybrid", "keyword"] = "keyword"

    @property
    def id(self) -> str:
        return self.fragment.id

    @property
    def content(self) -> str:
        return self.fragment.content


class RetrievalConstraints(CamelModel):
    top_k: Optional[int] = None
    threshold: Optional[float] = None
    content_types: Optional[List[ContentType]] = None
    dream_text: Optional[str] = None
    exclude_ids: List[str] = []


# ---------------------------------------------------------------------------
# Stage artefacts
# ---------------------------------------------------------------------------


class Usage(CamelModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens

    def __add__(self, other: "Usage") -> "Usage":
        return Usage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
        )


class Completion(CamelModel):
    content: str
    model: str
    usage: Usage = Usage()


class FragmentSelection(CamelModel):
    fragment_id: str
    content: str
    relevance: float = Field(default=0.5, ge=0.0, le=1.0)
    reason: str = "Selected during relevance assessment"
    linked: bool = True


class RelevanceAssessment(CamelModel):
    relevant_themes: StrList = []
    relevant_fragments: List[FragmentSelection] = []
    focus_areas: StrList = []


class DebateTrace(CamelModel):
    """Debug-only record of the internal debate behind an interpretation."""

    hypothesis_a: str = ""
    hypothesis_b: str = ""
    hypothesis_c: str = ""
    evaluation: str = "No evaluation provided"
    selected: str = "Unknown"


class FullInterpretationResult(CamelModel):
    interpretation: str
    symbols: List[str] = []
    key_insights: List[str] = []
    debate: Optional[DebateTrace] = None


class StageResult(BaseModel, Generic[T]):
    """Outcome of one pipeline stage: data on success, an error otherwise."""

    success: bool
    data: Optional[T] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    model: Optional[str] = None
    usage: Usage = Usage()

    @model_validator(mode="after")
    def _exactly_one_outcome(self):
        if self.success and self.data is None:
            raise ValueError("successful stage result requires data")
        if self.success and self.error:
            raise ValueError("successful stage result cannot carry an error")
        if not self.success and not self.error:
            raise ValueError("failed stage result requires an error message")
        return self

    @classmethod
    def ok(cls, data: Any, model: Optional[str] = None, usage: Optional[Usage] = None):
        return cls(success=True, data=data, model=model, usage=usage or Usage())

    @classmethod
    def fail(cls, error: str, error_code: Optional[str] = None, usage: Optional[Usage] = None):
        return cls(success=False, error=error, error_code=error_code, usage=usage or Usage())


class StyleDirections(CamelModel):
    opening: Optional[str] = None
    structure: Optional[str] = None
    vocabulary_anchor: Optional[str] = None


class InterpretationContext(BaseModel):
    """Per-request state shared by the three stages of one run."""

    request: InterpretationRequest
    fragments: List[RetrievedFragment] = []
    concepts: List[str] = []
    concept_hints: List[str] = []
    directions: StyleDirections = StyleDirections()
    forbidden_openings: List[str] = []

    @property
    def theme_names(self) -> List[str]:
        return [t.name for t in self.request.themes]


# ---------------------------------------------------------------------------
# Persona cores (tagged union on ``type``)
# ---------------------------------------------------------------------------


class CoreBase(GeneratedModel):
    primary_insight: Text = None
    key_pattern: Text = None
    personal_guidance: Text = None


class DreamWork(GeneratedModel):
    condensation: Text = None
    displacement: Text = None
    symbolization: Text = None
    secondary_revision: Text = None


class PsychoanalyticElements(GeneratedModel):
    manifest_content: Text = None
    latent_content: Text = None
    dream_work: DreamWork = DreamWork()
    primary_drive: Text = None
    defense_mechanisms: StrList = Field(
        default=[],
        validation_alias=AliasChoices(
            "defenseMechanisms", "defensesMechanisms", "defense_mechanisms"
        ),
    )
    developmental_stage: Text = None
    complex_identified: Text = None


class TherapeuticConsiderations(GeneratedModel):
    resistance: Text = None
    transference: Text = None
    working_through: Text = None


class FreudianCore(CoreBase):
    type: Literal["freudian"] = "freudian"
    psychoanalytic_elements: PsychoanalyticElements = PsychoanalyticElements()
    therapeutic_considerations: TherapeuticConsiderations = TherapeuticConsiderations()


class ArchetypalDynamics(GeneratedModel):
    primary_archetype: Text = None
    shadow_elements: Text = None
    anima_animus: Text = None
    self_archetype: Text = None
    compensatory_function: Text = None


class IndividuationInsights(GeneratedModel):
    current_stage: Text = None
    developmental_task: Text = None
    integration_opportunity: Text = None


class JungianCore(CoreBase):
    type: Literal["jungian"] = "jungian"
    archetypal_dynamics: ArchetypalDynamics = ArchetypalDynamics()
    individuation_insights: IndividuationInsights = IndividuationInsights()
    complexes_identified: StrList = []
    collective_themes: StrList = []


class NeuroscientificCore(CoreBase):
    type: Literal["neuroscientific"] = "neuroscientific"
    brain_processes: StrList = []
    memory_consolidation: Text = None
    emotional_regulation: Text = None
    sleep_stage: Text = None


class SpiritualDynamics(GeneratedModel):
    karmic_pattern: Text = None
    dharmic_guidance: Text = None
    soul_lesson: Text = None
    spiritual_stage: Text = None
    divine_guidance: Text = None


class VedanticCore(CoreBase):
    type: Literal["vedantic"] = "vedantic"
    spiritual_dynamics: SpiritualDynamics = SpiritualDynamics()
    chakra_influences: StrList = []
    sanskrit_concepts: StrList = []
    karmic_themes: StrList = []
    sadhana_recommendations: StrList = []


InterpretationCore = Annotated[
    Union[FreudianCore, JungianCore, NeuroscientificCore, VedanticCore],
    Field(discriminator="type"),
]


# ---------------------------------------------------------------------------
# Formatted and canonical results
# ---------------------------------------------------------------------------


_INTENSITY_WORDS = {"low": 0.3, "mild": 0.3, "moderate": 0.5, "medium": 0.5, "high": 0.8, "intense": 0.9}


class EmotionalTone(GeneratedModel):
    primary: str = "contemplative"
    secondary: Optional[str] = None
    intensity: float = 0.5

    @field_validator("intensity", mode="before")
    @classmethod
    def _normalize_intensity(cls, value: Any) -> float:
        if isinstance(value, str):
            word = value.strip().lower()
            if word in _INTENSITY_WORDS:
                return _INTENSITY_WORDS[word]
            try:
                value = float(word)
            except ValueError:
                return 0.5
        if value is None:
            return 0.5
        value = float(value)
        if value > 1.0:
            # 0-10 scale
            value = value / 10.0
        return max(0.0, min(1.0, value))


class AuthenticityMarkers(GeneratedModel):
    personal_engagement: float = 0.9
    vocabulary_authenticity: float = 0.9
    conceptual_depth: float = 0.9
    therapeutic_value: float = 0.9


class StageMetadata(CamelModel):
    relevance_assessment: Optional[RelevanceAssessment] = None
    interpretation_metadata: Optional[FullInterpretationResult] = None


class FormattedInterpretation(GeneratedModel):
    """Stage-3 persona result. Unknown generated fields are kept as extras."""

    model_config = ConfigDict(extra="allow")

    dream_id: str = ""
    interpretation: str = ""
    dream_topic: Text = None
    quick_take: Text = None
    symbols: List[Union[str, Dict[str, Any]]] = []
    emotional_tone: EmotionalTone = EmotionalTone()
    interpreter_core: InterpretationCore
    practical_guidance: StrList = []
    self_reflection: Text = None
    full_interpretation: Optional[str] = None
    authenticity_markers: AuthenticityMarkers = AuthenticityMarkers()
    stage_metadata: StageMetadata = StageMetadata()

    @field_validator("symbols", mode="before")
    @classmethod
    def _symbols_as_list(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return [s.strip() for s in value.split(",") if s.strip()]
        return value


class ValidationReport(BaseModel):
    is_valid: bool
    errors: List[str] = []
    warnings: List[str] = []


class QualityCheckResult(CamelModel):
    name: str
    severity: Literal["error", "warning"]
    passed: bool
    message: str = ""


class QualityReport(CamelModel):
    score: int
    passed: bool
    checks: List[QualityCheckResult] = []
    suggestions: List[str] = []


class GenerationMetadata(CamelModel):
    model: str
    models_by_stage: Dict[str, str] = {}
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    stages_completed: List[str] = []
    knowledge_fragments_used: int = 0
    total_fragments_retrieved: int = 0
    processing_time_ms: int = 0
    fallback_used: bool = False
    debate: Optional[DebateTrace] = None


class CanonicalInterpretation(CamelModel):
    """Normalized result produced for every persona."""

    dream_id: str
    persona: str
    dream_topic: str
    interpretation: str
    quick_take: str
    symbols: List[str] = Field(min_length=3, max_length=10)
    emotional_tone: EmotionalTone
    core: InterpretationCore
    practical_guidance: List[str] = []
    self_reflection: str
    generation_metadata: GenerationMetadata
    authenticity_markers: AuthenticityMarkers = AuthenticityMarkers()
    quality: Optional[QualityReport] = None
    additional_info: Dict[str, Any] = {}

    @field_validator("symbols")
    @classmethod
    def _short_tokens(cls, value: List[str]) -> List[str]:
        for token in value:
            if not token or len(token) > 30 or len(token.split()) > 3:
                raise ValueError(f"symbol is not a short token: {token!r}")
        return value


class PersonaMetadata(BaseModel):
    key: str
    name: str
    description: str
    core_type: str
    strengths: List[str] = []
    limitations: List[str] = []
    key_quote: Optional[str] = None


class Personality(BaseModel):
    tone: str
    vocabulary: str
    voice_signature: str
    signature_phrases: List[str] = []
