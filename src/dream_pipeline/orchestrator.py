"""Stage Orchestrator Module

Runs one interpretation request end to end:

  1. Resolve the persona
  2. Retrieve knowledge fragments for the request's themes
  3. Build the per-request context (concepts, style directions, forbidden openings)
  4. Run relevance assessment, full interpretation and JSON formatting in order
  5. Validate, score and standardize the result

Key features:
- Stages run strictly in order; a failed stage stops the run
- Retrieval problems never abort a request
- Exhausted generation is fatal unless the canned fallback is enabled
- All collaborators are injected, so one orchestrator serves many concurrent requests
"""

import logging
import time
from typing import Dict, Iterable, List, Optional

from .config import PipelineSettings
from .embeddings import embed_query
from .errors import STAGE_FAILED, VALIDATION_FAILED, InterpretationError
from .generation import GenerationBackend, OpenAIGenerationBackend
from .models import (
    CanonicalInterpretation,
    FormattedInterpretation,
    GenerationMetadata,
    InterpretationContext,
    InterpretationRequest,
    KnowledgeFragment,
    RetrievalConstraints,
    RetrievedFragment,
    StageResult,
    StyleDirections,
    Theme,
    Usage,
)
from .personas.base import BasePersona
from .personas.registry import PersonaRegistry
from .quality import QualityAssurance
from .retriever import KnowledgeRetriever, QueryEmbedder
from .standardizer import ResponseStandardizer
from .themes import DEFAULT_THEMES, ConceptMapper
from .variety import VariantTracker

logger = logging.getLogger(__name__)

STAGES = ["relevance_assessment", "full_interpretation", "json_formatting"]


class _RunState:
    """Bookkeeping for one request: models, usage and stages completed."""

    def __init__(self) -> None:
        self.started = time.perf_counter()
        self.models_by_stage: Dict[str, str] = {}
        self.usage = Usage()
        self.stages_completed: List[str] = []

    def record(self, stage: str, result: StageResult) -> None:
        self.usage = self.usage + result.usage
        if result.success:
            self.stages_completed.append(stage)
            if result.model:
                self.models_by_stage[stage] = result.model

    @property
    def elapsed_ms(self) -> int:
        return int((time.perf_counter() - self.started) * 1000)


class Orchestrator:
    """Coordinates retrieval and the three persona stages for each request.

    Args:
        registry: Persona registry
        retriever: Knowledge retriever over the classified corpus
        settings: Pipeline settings (flags and fallback behaviour)
        tracker: Anti-repetition tracker shared across requests
        standardizer: Canonical result builder
        quality: Post-generation QA scorer
        mapper: Theme to concept mapper
    """

    def __init__(
        self,
        registry: PersonaRegistry,
        retriever: KnowledgeRetriever,
        settings: PipelineSettings,
        tracker: VariantTracker,
        standardizer: Optional[ResponseStandardizer] = None,
        quality: Optional[QualityAssurance] = None,
        mapper: Optional[ConceptMapper] = None,
    ):
        self.registry = registry
        self.retriever = retriever
        self.settings = settings
        self.tracker = tracker
        self.standardizer = standardizer or ResponseStandardizer()
        self.quality = quality or QualityAssurance()
        self.mapper = mapper or ConceptMapper()

    @classmethod
    def from_settings(
        cls,
        settings: Optional[PipelineSettings] = None,
        fragments: Iterable[KnowledgeFragment] = (),
        themes: Optional[Iterable[Theme]] = None,
        backend: Optional[GenerationBackend] = None,
        embedder: Optional[QueryEmbedder] = None,
    ) -> "Orchestrator":
        """
        Wire a ready-to-use orchestrator from settings.

        Args:
            settings: Pipeline settings; read from the environment if omitted
            fragments: Classified knowledge corpus
            themes: Theme taxonomy (default: DEFAULT_THEMES)
            backend: Generation backend; an OpenAIGenerationBackend if omitted
            embedder: Query embedder for themes and dream text (default: embed_query)

        Returns:
            Orchestrator with its registry, retriever and tracker built from settings
        """
        settings = settings or PipelineSettings.from_env()
        retriever = KnowledgeRetriever(
            fragments,
            DEFAULT_THEMES if themes is None else themes,
            embedder=embedder or embed_query,
            threshold=settings.retrieval_threshold,
            top_k=settings.retrieval_top_k,
        )
        registry = PersonaRegistry(backend or OpenAIGenerationBackend(settings), settings)
        tracker = VariantTracker(capacity=settings.variety_history_size)
        logger.info(
            "Built orchestrator: %d fragments, models=%s, threshold=%.2f, top_k=%d",
            retriever.corpus_size, settings.model_chain, settings.retrieval_threshold, settings.retrieval_top_k,
        )
        return cls(registry, retriever, settings, tracker)

    async def orchestrate(self, request: InterpretationRequest) -> CanonicalInterpretation:
        """
        Interpret one dream with the requested persona.

        Args:
            request: Interpretation request

        Returns:
            CanonicalInterpretation for the request

        Raises:
            UnknownPersonaError: If the persona is not registered
            InterpretationError: If a stage fails or validation fails and
                the canned fallback is disabled
        """
        state = _RunState()
        persona = self.registry.get(request.persona)
        logger.info(
            "Interpreting dream_id=%s persona=%s themes=%s",
            request.dream_id, persona.key, request.theme_codes,
        )

        fragments = await self.retriever.retrieve(
            request.theme_codes,
            persona.key,
            RetrievalConstraints(dream_text=request.dream_text),
        )
        logger.info("Retrieved %d knowledge fragments for dream_id=%s", len(fragments), request.dream_id)

        context = self.build_context(request, persona, fragments)

        # Stage 1
        relevance = await persona.assess_relevance(context)
        state.record(STAGES[0], relevance)
        if not relevance.success:
            return self._stage_failed(persona, request, fragments, state, STAGES[0], relevance)
        logger.info("✓ Stage 1 complete: %d fragments selected", len(relevance.data.relevant_fragments))

        # Stage 2
        full = await persona.generate_full_interpretation(context, relevance.data)
        state.record(STAGES[1], full)
        if not full.success:
            return self._stage_failed(persona, request, fragments, state, STAGES[1], full)
        logger.info("✓ Stage 2 complete: %d chars", len(full.data.interpretation))

        # Stage 3
        formatted = await persona.format_to_json(context, full.data, relevance.data)
        state.record(STAGES[2], formatted)
        if not formatted.success:
            return self._stage_failed(persona, request, fragments, state, STAGES[2], formatted)
        logger.info("✓ Stage 3 complete for dream_id=%s", request.dream_id)

        report = persona.validate(formatted.data)
        if not report.is_valid:
            message = f"Interpretation validation failed: {', '.join(report.errors)}"
            if self.settings.use_fallback_response:
                logger.warning("%s; using fallback for dream_id=%s", message, request.dream_id)
                return self._fallback(persona, request, fragments, state)
            logger.error(message)
            raise InterpretationError(message, code=VALIDATION_FAILED, details={"errors": report.errors})

        self.tracker.track_opening(persona.key, full.data.interpretation)

        linked = [s for s in relevance.data.relevant_fragments if s.linked]
        linked_ids = {s.fragment_id for s in linked}
        used = [f for f in fragments if f.fragment.id in linked_ids]
        metadata = GenerationMetadata(
            model=formatted.model or state.models_by_stage.get(STAGES[1], "unknown"),
            models_by_stage=state.models_by_stage,
            prompt_tokens=state.usage.prompt_tokens,
            completion_tokens=state.usage.completion_tokens,
            total_tokens=state.usage.total_tokens,
            stages_completed=state.stages_completed,
            knowledge_fragments_used=len(linked),
            total_fragments_retrieved=len(fragments),
            processing_time_ms=state.elapsed_ms,
            debate=full.data.debate,
        )
        result = self.standardizer.standardize(
            formatted.data,
            persona_key=persona.key,
            generation_metadata=metadata,
            theme_names=context.theme_names,
        )

        if self.settings.enable_quality_checks:
            result.quality = self.quality.evaluate(persona.key, result.interpretation, used)

        logger.info(
            "✓ Interpretation complete dream_id=%s persona=%s model=%s tokens=%d time=%dms",
            request.dream_id, persona.key, metadata.model, metadata.total_tokens, metadata.processing_time_ms,
        )
        return result

    def build_context(
        self,
        request: InterpretationRequest,
        persona: BasePersona,
        fragments: List[RetrievedFragment],
    ) -> InterpretationContext:
        """Assemble concepts, style picks and forbidden openings for one run."""
        mapping = self.mapper.map_themes_to_concepts(request.theme_codes)

        directions = StyleDirections(
            opening=self._pick(persona.opening_approaches, persona.key, "opening"),
            structure=self._pick(persona.structural_patterns, persona.key, "structure"),
            vocabulary_anchor=self._pick(persona.vocabulary_anchors, persona.key, "vocabulary"),
        )
        forbidden = self.tracker.get_forbidden_openings(persona.key, persona.static_forbidden_openings)

        return InterpretationContext(
            request=request,
            fragments=fragments,
            concepts=mapping.concepts,
            concept_hints=mapping.hints,
            directions=directions,
            forbidden_openings=forbidden,
        )

    def _pick(self, candidates, persona_key: str, category: str) -> Optional[str]:
        if not candidates:
            return None
        return self.tracker.pick_unique(list(candidates), persona_key, category)

    def _stage_failed(
        self,
        persona: BasePersona,
        request: InterpretationRequest,
        fragments: List[RetrievedFragment],
        state: _RunState,
        stage: str,
        result: StageResult,
    ) -> CanonicalInterpretation:
        message = f"Stage {stage} failed for persona {persona.key}: {result.error}"
        if self.settings.use_fallback_response:
            logger.warning("%s; using fallback for dream_id=%s", message, request.dream_id)
            return self._fallback(persona, request, fragments, state)
        logger.error(message)
        raise InterpretationError(
            message,
            code=result.error_code or STAGE_FAILED,
            details={"stage": stage, "persona": persona.key},
        )

    def _fallback(
        self,
        persona: BasePersona,
        request: InterpretationRequest,
        fragments: List[RetrievedFragment],
        state: _RunState,
    ) -> CanonicalInterpretation:
        formatted: FormattedInterpretation = persona.fallback_interpretation(request)
        metadata = GenerationMetadata(
            model="fallback",
            models_by_stage=state.models_by_stage,
            prompt_tokens=state.usage.prompt_tokens,
            completion_tokens=state.usage.completion_tokens,
            total_tokens=state.usage.total_tokens,
            stages_completed=state.stages_completed,
            knowledge_fragments_used=0,
            total_fragments_retrieved=len(fragments),
            processing_time_ms=state.elapsed_ms,
            fallback_used=True,
        )
        return self.standardizer.standardize(
            formatted,
            persona_key=persona.key,
            generation_metadata=metadata,
            theme_names=[t.name for t in request.themes],
        )
