"""
Knowledge Ingestion Pipeline

Turns raw source excerpts into the classified knowledge corpus the
retriever reads, optionally with vector embeddings.

Features:
- Dual output format (with and without embeddings)
- Timestamped versioning for idempotent processing
- Deduplication by fragment id
- Progress tracking and structured logging
"""

import json
import logging
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from .classifier import ContentClassifier
from .embeddings import embed_texts_with_retry
from .fragments import to_knowledge_fragment
from .loaders import load_raw_fragments
from .models import KnowledgeFragment
from .themes import ConceptMapper

logger = logging.getLogger(__name__)


def embed_fragments(
    fragments: List[KnowledgeFragment],
    batch_size: int = 100,
) -> List[KnowledgeFragment]:
    """
    Attach embeddings to fragments, processing in batches.

    Args:
        fragments: Classified fragments
        batch_size: Number of fragments to embed per batch

    Returns:
        New fragment objects carrying their embedding
    """
    if not fragments:
        logger.warning("No fragments to embed")
        return []

    embedded: List[KnowledgeFragment] = []
    total_batches = (len(fragments) + batch_size - 1) // batch_size
    logger.info(
        "Embedding %d fragments in %d batches (batch_size=%d)",
        len(fragments), total_batches, batch_size,
    )

    for batch_idx in range(0, len(fragments), batch_size):
        batch = fragments[batch_idx:batch_idx + batch_size]
        batch_num = (batch_idx // batch_size) + 1
        start_time = time.time()
        try:
            vectors = embed_texts_with_retry([f.content for f in batch], batch_size=batch_size)
        except Exception:
            logger.exception("Failed to generate embeddings for batch %d", batch_num)
            raise

        elapsed = time.time() - start_time
        logger.info(
            "✓ Batch %d/%d embeddings generated (%.2fs, %.2fs per fragment)",
            batch_num, total_batches, elapsed, elapsed / len(batch),
        )
        embedded.extend(f.model_copy(update={"embedding": v}) for f, v in zip(batch, vectors))

    logger.info("✓ Embedded %d fragments total", len(embedded))
    return embedded


def _write_fragments(path: Path, fragments: List[KnowledgeFragment]) -> None:
    records = [f.model_dump(mode="json", by_alias=True, exclude_none=True) for f in fragments]
    with path.open("w", encoding="utf-8") as f:
        json.dump(records, f, ensure_ascii=False, indent=2)


def run_ingestion(
    input_path: Union[Path, str] = "data/raw_fragments.json",
    output_dir: Union[Path, str] = "output",
    limit: Optional[int] = None,
    dry_run: bool = False,
    skip_embeddings: bool = False,
    keep_history: bool = True,
    batch_size: int = 100,
) -> Tuple[int, int, Dict[str, Path]]:
    """
    Run the knowledge ingestion pipeline.

    Pipeline Steps:
    1. Load raw excerpts from JSON
    2. Clean and classify into knowledge fragments
    3. Deduplicate by fragment id
    4. Save the corpus (without embeddings)
    5. Generate embeddings and save the embedded corpus (unless skip_embeddings)

    Args:
        input_path: Path to input JSON file with raw excerpts
        output_dir: Directory for all output files
        limit: Maximum excerpts to process (None = all)
        dry_run: Process everything but write no files
        skip_embeddings: If True, only write the classified corpus
        keep_history: If True, write timestamped files; if False, overwrite
        batch_size: Fragments per embedding batch

    Returns:
        Tuple of (total_raw_excerpts, processed_fragments, output_paths_dict)

    Raises:
        FileNotFoundError: If input_path doesn't exist
        json.JSONDecodeError: If input file is invalid JSON
    """
    input_path = Path(input_path)
    output_dir = Path(output_dir)

    run_timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    job_start = time.time()
    logger.debug("Starting ingestion run: ingestion_%s", run_timestamp)

    # ========== STEP 1: LOAD RAW EXCERPTS ==========
    t0 = time.time()
    logger.info("STEP 1/5: Loading raw excerpts")
    try:
        raw_items = load_raw_fragments(input_path)
    except FileNotFoundError:
        logger.exception("Input file not found: %s", input_path)
        raise
    except json.JSONDecodeError:
        logger.exception("Invalid JSON in input file: %s", input_path)
        raise
    total_raw = len(raw_items)
    logger.info("✓ Loaded %d raw excerpts in %.2fs", total_raw, time.time() - t0)

    if limit is not None:
        logger.info("Applying limit: %d excerpts", limit)
        raw_items = raw_items[:limit]

    # ========== STEP 2: CLEAN AND CLASSIFY ==========
    t1 = time.time()
    logger.info("STEP 2/5: Classifying %d excerpts", len(raw_items))
    classifier = ContentClassifier(mapper=ConceptMapper())
    fragments: List[KnowledgeFragment] = []
    skipped_count = 0
    log_interval = max(1, len(raw_items) // 10)

    try:
        for idx, raw in enumerate(raw_items, start=1):
            if idx == 1 or idx == len(raw_items) or idx % log_interval == 0:
                logger.info(
                    "Classify progress: %d/%d (%.1f%%) - Success: %d, Skipped: %d",
                    idx, len(raw_items), (idx / len(raw_items)) * 100,
                    len(fragments), skipped_count,
                )
            fragment = to_knowledge_fragment(raw, classifier)
            if fragment is None:
                skipped_count += 1
                continue
            fragments.append(fragment)
    except Exception:
        logger.exception("Failed during fragment classification")
        raise

    logger.info(
        "✓ Classification completed in %.2fs (success=%d, skipped=%d)",
        time.time() - t1, len(fragments), skipped_count,
    )

    # ========== STEP 3: DEDUPLICATE BY ID ==========
    logger.info("STEP 3/5: Deduplicating fragments by id")
    seen_ids = set()
    deduped: List[KnowledgeFragment] = []
    duplicate_count = 0
    for fragment in fragments:
        if fragment.id in seen_ids:
            logger.warning("Duplicate fragment id detected: %s. Keeping first occurrence.", fragment.id)
            duplicate_count += 1
            continue
        seen_ids.add(fragment.id)
        deduped.append(fragment)
    fragments = deduped
    logger.info("✓ Deduplication removed %d duplicates, kept %d unique", duplicate_count, len(fragments))

    output_paths: Dict[str, Path] = {}
    if dry_run:
        logger.info("DRY RUN: skipping write of corpus and embeddings")
        return total_raw, len(fragments), output_paths

    # ========== STEP 4: SAVE CORPUS ==========
    output_dir.mkdir(parents=True, exist_ok=True)
    suffix = f"_{run_timestamp}" if keep_history else ""
    logger.info("STEP 4/5: Saving classified corpus (without embeddings)")
    corpus_path = output_dir / f"corpus{suffix}.json"
    try:
        _write_fragments(corpus_path, fragments)
    except Exception:
        logger.exception("Failed to save corpus")
        raise
    output_paths["corpus"] = corpus_path
    logger.info("✓ Wrote %d fragments to %s", len(fragments), corpus_path.name)

    metadata: Dict[str, Any] = {
        "timestamp": run_timestamp,
        "input_file": str(input_path),
        "total_raw": total_raw,
        "processed": len(fragments),
        "skipped": skipped_count,
        "duplicates_removed": duplicate_count,
        "embeddings_generated": not skip_embeddings,
    }

    # ========== STEP 5: EMBED AND SAVE ==========
    if skip_embeddings:
        logger.info("STEP 5/5: Skipping embedding generation (skip_embeddings=True)")
    else:
        logger.info("STEP 5/5: Generating embeddings")
        embedded = embed_fragments(fragments, batch_size=batch_size)
        embedded_path = output_dir / f"corpus_embedded{suffix}.json"
        try:
            _write_fragments(embedded_path, embedded)
        except Exception:
            logger.exception("Failed to save embedded corpus")
            raise
        output_paths["embedded"] = embedded_path
        logger.info("✓ Wrote %d embedded fragments to %s", len(embedded), embedded_path.name)

    metadata["outputs"] = {k: str(v) for k, v in output_paths.items()}
    metadata["duration_seconds"] = time.time() - job_start
    _save_metadata(output_dir, suffix, metadata)

    logger.debug("Ingestion completed: %d raw → %d fragments", total_raw, len(fragments))
    return total_raw, len(fragments), output_paths


def _save_metadata(output_dir: Path, suffix: str, metadata: Dict[str, Any]) -> None:
    """Save ingestion run metadata."""
    meta_path = output_dir / f"run_metadata{suffix}.json"
    try:
        with meta_path.open("w", encoding="utf-8") as f:
            json.dump(metadata, f, ensure_ascii=False, indent=2)
        logger.info("✓ Saved: %s", meta_path.name)
    except OSError:
        logger.warning("Failed to save metadata (non-fatal)", exc_info=True)
