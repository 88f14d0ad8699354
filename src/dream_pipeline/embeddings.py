"""Embeddings Module

Vector embeddings for knowledge fragments (batch, at ingestion time) and
for retrieval queries (single text, at interpretation time), plus the
numpy similarity helpers the retriever ranks with.

Key features:
  - Character-based truncation to stay inside the model context window
  - Batched ingestion calls with dimension consistency checks
  - Exponential backoff on rate limits; fail fast on exhausted quota
  - Async query embedding for the interpretation path
  - Deterministic fake vectors for offline development and tests

Environment variables:
  OPENAI_API_KEY: API key for the embeddings endpoint
  EMBEDDING_MODEL: Embedding model name (default: text-embedding-3-small)
  USE_FAKE_EMBEDDINGS: Set to '1' to use deterministic fake vectors
  MAX_EMBEDDING_CHARS: Maximum characters per text (default: 8000)
"""

import hashlib
import logging
import os
import time
from typing import List, Optional, Sequence

import numpy as np
import openai
from openai import AsyncOpenAI, OpenAI

logger = logging.getLogger(__name__)

EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "text-embedding-3-small")
USE_FAKE_EMBEDDINGS = os.getenv("USE_FAKE_EMBEDDINGS", "0") == "1"
FAKE_EMBEDDING_DIM = 64

# ~4 chars per token keeps 8000 chars far below the 8191-token input limit
MAX_EMBEDDING_CHARS = int(os.getenv("MAX_EMBEDDING_CHARS", "8000"))

# Created on first use so importing this module never requires credentials
client: Optional[OpenAI] = None
async_client: Optional[AsyncOpenAI] = None


def _get_client() -> OpenAI:
    global client
    if client is None:
        client = OpenAI(api_key=os.getenv("OPENAI_API_KEY"))
    return client


def _get_async_client() -> AsyncOpenAI:
    global async_client
    if async_client is None:
        async_client = AsyncOpenAI(api_key=os.getenv("OPENAI_API_KEY"))
    return async_client


def _truncate_for_embedding(text: str, max_chars: int = MAX_EMBEDDING_CHARS) -> str:
    """
    Cut text down to the embedding character budget.

    Long texts are cut at ``max_chars`` and then pulled back to the last
    space, as long as that space sits in the final 20% of the kept text.

    Args:
        text: Input text
        max_chars: Maximum characters to keep

    Returns:
        Text of at most ``max_chars`` characters
    """
    if not text:
        return ""
    if len(text) <= max_chars:
        return text

    kept = text[:max_chars]
    last_space = kept.rfind(" ")
    if last_space > int(max_chars * 0.8):
        kept = kept[:last_space]

    logger.debug("Truncated text for embedding: %d -> %d chars", len(text), len(kept))
    return kept


def fake_embedding(text: str, dim: int = FAKE_EMBEDDING_DIM) -> List[float]:
    """Deterministic unit vector derived from the text hash."""
    seed = int.from_bytes(hashlib.sha256(text.encode("utf-8")).digest()[:8], "big")
    vec = np.random.default_rng(seed).standard_normal(dim)
    return (vec / np.linalg.norm(vec)).tolist()


def embed_texts(
    texts: List[str],
    model: str = EMBEDDING_MODEL,
    batch_size: int = 50,
    max_chars: int = MAX_EMBEDDING_CHARS,
) -> List[List[float]]:
    """
    Embed a list of fragment texts.

    Args:
        texts: Texts to embed
        model: Embedding model (default: text-embedding-3-small)
        batch_size: Texts per API call
        max_chars: Character limit applied to each text

    Returns:
        One embedding vector per input text, in input order

    Raises:
        ValueError: If the API returns vectors of differing dimension
        openai.OpenAIError: On API failures (re-raised after logging)
    """
    if not texts:
        logger.debug("embed_texts called with no texts")
        return []

    if USE_FAKE_EMBEDDINGS:
        logger.warning("USE_FAKE_EMBEDDINGS=1; returning deterministic fake vectors")
        return [fake_embedding(t) for t in texts]

    prepared = [_truncate_for_embedding(t, max_chars) for t in texts]
    vectors: List[List[float]] = []
    api = _get_client()

    try:
        for start in range(0, len(prepared), batch_size):
            batch = prepared[start : start + batch_size]
            logger.debug(
                "Embedding batch [%d:%d] with model=%s",
                start, start + len(batch), model,
            )
            response = api.embeddings.create(model=model, input=batch)
            vectors.extend(list(item.embedding) for item in response.data)

        if vectors:
            dim = len(vectors[0])
            for idx, vec in enumerate(vectors):
                if len(vec) != dim:
                    raise ValueError(
                        f"Inconsistent embedding dimension at index {idx}: "
                        f"expected {dim}, got {len(vec)}"
                    )

        logger.info(
            "✓ Embedded %d texts (dim=%d)",
            len(vectors), len(vectors[0]) if vectors else 0,
        )
        return vectors

    except Exception:
        logger.exception("Failed to embed %d texts", len(texts))
        raise


def embed_texts_with_retry(
    texts: List[str],
    model: str = EMBEDDING_MODEL,
    batch_size: int = 50,
    max_chars: int = MAX_EMBEDDING_CHARS,
    max_retries: int = 5,
    sleep=time.sleep,
) -> List[List[float]]:
    """
    ``embed_texts`` with exponential backoff on rate limiting.

    Quota exhaustion is not retried: waiting does not restore quota.
    """
    attempt = 0
    while True:
        try:
            return embed_texts(texts, model=model, batch_size=batch_size, max_chars=max_chars)
        except openai.RateLimitError as e:
            attempt += 1
            if getattr(e, "code", None) == "insufficient_quota" or "insufficient_quota" in str(e):
                logger.error("Embedding quota exhausted, not retrying: %s", e)
                raise
            if attempt > max_retries:
                logger.error("Giving up after %d rate-limited attempts: %s", max_retries, e)
                raise

            wait = 2 ** attempt
            logger.warning(
                "Rate limited by embeddings API (attempt %d/%d); retrying in %ds",
                attempt, max_retries, wait,
            )
            sleep(wait)


async def embed_query(text: str, model: str = EMBEDDING_MODEL) -> List[float]:
    """Embed one query text (dream narrative or theme description)."""
    if USE_FAKE_EMBEDDINGS:
        return fake_embedding(text)

    api = _get_async_client()
    response = await api.embeddings.create(model=model, input=[_truncate_for_embedding(text)])
    return list(response.data[0].embedding)


def cosine_similarities(query: Sequence[float], matrix: np.ndarray) -> np.ndarray:
    """Cosine similarity of one query vector against every row of ``matrix``."""
    q = np.asarray(query, dtype=np.float32)
    q_norm = np.linalg.norm(q)
    if q_norm == 0 or matrix.size == 0:
        return np.zeros(matrix.shape[0], dtype=np.float32)
    row_norms = np.linalg.norm(matrix, axis=1)
    row_norms[row_norms == 0] = 1.0
    return (matrix @ q) / (row_norms * q_norm)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    return float(cosine_similarities(a, np.asarray([b], dtype=np.float32))[0])


def mean_vector(vectors: Sequence[Sequence[float]]) -> List[float]:
    return np.mean(np.asarray(vectors, dtype=np.float32), axis=0).tolist()
