"""Knowledge Retrieval Module

Returns the knowledge fragments most relevant to a dream's themes for a
given persona, ranked by descending relevance.

Retrieval paths:
  - Vector: mean of the theme embeddings searched against a similarity
    backend, optionally blended with the dream-text embedding
    (0.7 theme similarity + 0.3 dream similarity)
  - Keyword fallback: scoring fragment text against each theme's code,
    label and description vocabulary, used when no embeddings are
    available or the vector path fails

Retrieval failures never abort an interpretation: the retriever logs
and degrades to the keyword path, then to an empty result.
"""

import logging
import re
import threading
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Protocol, Sequence

import numpy as np
from pydantic import BaseModel

from .embeddings import cosine_similarities, mean_vector
from .models import KnowledgeFragment, RetrievalConstraints, RetrievedFragment, Theme

logger = logging.getLogger(__name__)

QueryEmbedder = Callable[[str], Awaitable[List[float]]]

THEME_WEIGHT = 0.7
DREAM_WEIGHT = 0.3

COMMON_WORDS = {
    "the", "and", "for", "with", "from", "that", "this", "into", "onto", "about",
    "your", "their", "being", "some", "other", "such", "like", "more", "most",
    "very", "just", "than", "then", "when", "where", "which", "while", "what",
}
GENERIC_DREAM_WORDS = {
    "dream", "dreams", "dreaming", "dreamer", "sleep", "night", "image", "images",
    "symbol", "symbols", "feeling", "feelings", "experience", "experiences",
}
WORD_RE = re.compile(r"[a-z][a-z\-']+")


class SearchHit(BaseModel):
    fragment_id: str
    score: float
    source_id: Optional[str] = None


class SimilaritySearchBackend(Protocol):
    async def search(
        self,
        vector: Sequence[float],
        scope: Optional[str],
        threshold: float,
        top_k: int,
    ) -> List[SearchHit]:
        ...


class InMemoryVectorIndex:
    """Cosine-similarity search over fragment embeddings held in memory.

    Fragments scoped to a persona are only visible to that persona;
    unscoped fragments are visible to all.
    """

    def __init__(self, fragments: Iterable[KnowledgeFragment]):
        embedded = [f for f in fragments if f.embedding]
        self._fragments = embedded
        self._matrix = (
            np.asarray([f.embedding for f in embedded], dtype=np.float32)
            if embedded
            else np.zeros((0, 0), dtype=np.float32)
        )

    def __len__(self) -> int:
        return len(self._fragments)

    async def search(
        self,
        vector: Sequence[float],
        scope: Optional[str],
        threshold: float,
        top_k: int,
    ) -> List[SearchHit]:
        if not self._fragments:
            return []
        if len(vector) != self._matrix.shape[1]:
            raise ValueError(
                f"Query dimension {len(vector)} does not match index dimension "
                f"{self._matrix.shape[1]}"
            )

        scores = cosine_similarities(vector, self._matrix)
        hits = [
            SearchHit(fragment_id=f.id, score=float(s), source_id=f.source_id)
            for f, s in zip(self._fragments, scores)
            if s >= threshold and (scope is None or f.persona in (None, scope))
        ]
        hits.sort(key=lambda h: h.score, reverse=True)
        return hits[:top_k]


def theme_vocabulary(theme: Theme) -> List[str]:
    """Keywords used to match fragment text against a theme.

    The code itself, label words longer than two characters, and the first
    three distinctive description words longer than three characters.
    """
    words: Dict[str, None] = {theme.code.lower().replace("_", " "): None}
    for word in WORD_RE.findall(theme.name.lower()):
        if len(word) > 2 and word not in COMMON_WORDS:
            words.setdefault(word, None)
    if theme.description:
        described = [
            w for w in WORD_RE.findall(theme.description.lower())
            if len(w) > 3 and w not in COMMON_WORDS and w not in GENERIC_DREAM_WORDS
        ]
        for word in described[:3]:
            words.setdefault(word, None)
    return list(words)


class KnowledgeRetriever:
    """Theme-driven retrieval over a read-only fragment corpus.

    Args:
        fragments: Classified corpus (never mutated)
        themes: Theme taxonomy used for vocabularies and stored embeddings
        search_backend: Similarity search backend; defaults to an in-memory
            index when any fragment carries an embedding
        embedder: Async function embedding a text; used for themes without a
            stored embedding and for the dream-text blend
        threshold: Minimum vector similarity
        top_k: Maximum fragments returned
    """

    def __init__(
        self,
        fragments: Iterable[KnowledgeFragment],
        themes: Iterable[Theme],
        search_backend: Optional[SimilaritySearchBackend] = None,
        embedder: Optional[QueryEmbedder] = None,
        threshold: float = 0.3,
        top_k: int = 10,
    ):
        self._fragments: Dict[str, KnowledgeFragment] = {f.id: f for f in fragments}
        self._themes: Dict[str, Theme] = {t.code: t for t in themes}
        if search_backend is None:
            index = InMemoryVectorIndex(self._fragments.values())
            search_backend = index if len(index) else None
        self.search_backend = search_backend
        self.embedder = embedder
        self.threshold = threshold
        self.top_k = top_k

        self._vector_cache: Dict[str, List[float]] = {}
        self._cache_lock = threading.Lock()

    @property
    def corpus_size(self) -> int:
        return len(self._fragments)

    async def retrieve(
        self,
        theme_codes: Sequence[str],
        persona: Optional[str],
        constraints: Optional[RetrievalConstraints] = None,
    ) -> List[RetrievedFragment]:
        """
        Retrieve fragments for a dream's themes.

        Args:
            theme_codes: Theme codes detected in the dream
            persona: Persona key used to scope fragments (None = all)
            constraints: Optional top_k / threshold / content-type filters and
                the dream text for hybrid scoring

        Returns:
            Fragments ordered by descending relevance; empty if there are
            no usable theme codes or nothing matches.
        """
        constraints = constraints or RetrievalConstraints()
        codes = [c.strip() for c in theme_codes if c and c.strip()]
        if not codes:
            logger.info("No theme codes supplied; skipping retrieval")
            return []

        top_k = constraints.top_k or self.top_k

        if self.search_backend is not None:
            try:
                results = await self._vector_retrieve(codes, persona, constraints)
                if results is not None:
                    return self._finalize(results, constraints, top_k)
            except Exception as e:
                logger.warning(
                    "Vector retrieval failed for themes=%s persona=%s (%s: %s); "
                    "falling back to keyword scoring",
                    codes, persona, type(e).__name__, e,
                )

        try:
            results = self._keyword_retrieve(codes, persona)
            logger.info(
                "Keyword retrieval returned %d fragments for themes=%s",
                len(results), codes,
            )
            return self._finalize(results, constraints, top_k)
        except Exception:
            logger.exception("Keyword retrieval failed for themes=%s; returning no fragments", codes)
            return []

    async def _theme_vector(self, code: str) -> Optional[List[float]]:
        with self._cache_lock:
            cached = self._vector_cache.get(code)
        if cached is not None:
            return cached

        theme = self._themes.get(code)
        vector: Optional[List[float]] = None
        if theme is not None and theme.embedding:
            vector = list(theme.embedding)
        elif self.embedder is not None:
            text = f"{theme.name}: {theme.description or ''}" if theme else code.replace("_", " ")
            vector = await self.embedder(text)

        if vector is not None:
            with self._cache_lock:
                self._vector_cache.setdefault(code, vector)
        return vector

    async def _vector_retrieve(
        self,
        codes: List[str],
        persona: Optional[str],
        constraints: RetrievalConstraints,
    ) -> Optional[List[RetrievedFragment]]:
        vectors = [v for v in [await self._theme_vector(c) for c in codes] if v is not None]
        if not vectors:
            logger.info("No theme embeddings available for %s; using keyword path", codes)
            return None

        threshold = constraints.threshold if constraints.threshold is not None else self.threshold
        # over-fetch so content-type and exclusion filters still leave top_k
        fetch = (constraints.top_k or self.top_k) * 2
        query = mean_vector(vectors)
        theme_hits = await self.search_backend.search(query, persona, threshold, fetch)

        method = "vector"
        scores: Dict[str, float] = {h.fragment_id: h.score for h in theme_hits}

        if constraints.dream_text and self.embedder is not None:
            dream_vector = await self.embedder(constraints.dream_text)
            dream_hits = await self.search_backend.search(dream_vector, persona, threshold, fetch)
            dream_scores = {h.fragment_id: h.score for h in dream_hits}
            scores = {
                fid: THEME_WEIGHT * scores.get(fid, 0.0) + DREAM_WEIGHT * dream_scores.get(fid, 0.0)
                for fid in set(scores) | set(dream_scores)
            }
            method = "hybrid"

        results = []
        for fid, score in scores.items():
            fragment = self._fragments.get(fid)
            if fragment is None:
                logger.debug("Search hit %s is not in the loaded corpus; skipping", fid)
                continue
            results.append(
                RetrievedFragment(
                    fragment=fragment,
                    relevance=max(0.0, min(1.0, score)),
                    method=method,
                )
            )
        logger.info(
            "✓ %s retrieval matched %d fragments for themes=%s persona=%s",
            method, len(results), codes, persona,
        )
        return results

    def _keyword_retrieve(self, codes: List[str], persona: Optional[str]) -> List[RetrievedFragment]:
        vocabularies: Dict[str, List[str]] = {}
        for code in codes:
            theme = self._themes.get(code) or Theme(code=code, name=code.replace("_", " "))
            vocabularies[code] = theme_vocabulary(theme)

        results: List[RetrievedFragment] = []
        for fragment in self._fragments.values():
            if persona is not None and fragment.persona not in (None, persona):
                continue
            text = fragment.content.lower()
            tags = set(fragment.applicable_themes)
            best = 0.0
            for code, vocab in vocabularies.items():
                score = 5.0 if code in tags else 0.0
                code_term = vocab[0]
                score += 5.0 * len(re.findall(rf"\b{re.escape(code_term)}\b", text))
                for word in vocab[1:]:
                    score += len(re.findall(rf"\b{re.escape(word)}\b", text))
                min_score = max(1, min(3, len(vocab) // 3))
                if score >= min_score:
                    best = max(best, score)
            if best > 0:
                results.append(
                    RetrievedFragment(fragment=fragment, relevance=min(1.0, best / 10.0), method="keyword")
                )
        return results

    def _finalize(
        self,
        results: List[RetrievedFragment],
        constraints: RetrievalConstraints,
        top_k: int,
    ) -> List[RetrievedFragment]:
        excluded = set(constraints.exclude_ids)
        allowed = set(constraints.content_types) if constraints.content_types else None
        kept = [
            r for r in results
            if r.id not in excluded and (allowed is None or r.fragment.content_type in allowed)
        ]
        kept.sort(key=lambda r: (-r.relevance, r.id))
        return kept[:top_k]
