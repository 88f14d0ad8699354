"""Corpus Validation Script

Validates that an ingested knowledge corpus conforms to the fragment schema:
  - id and content present and non-empty
  - content type is a known type
  - classification confidence lies in [0, 1]
  - embeddings (when present) are finite and share one dimension

Usage:
    python -m src.dream_pipeline.scripts.validate_corpus \\
        --path output/corpus_embedded.json \\
        --expected-dim 1536

Exits with code 0 on success, 1 on validation failure, 2 on argument error.
"""

import argparse
import json
import math
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from src.dream_pipeline.models import ContentType

VALID_CONTENT_TYPES = {t.value for t in ContentType}


def load_fragments(path: Path) -> List[Dict[str, Any]]:
    """Load fragment records from a JSON array or a {"fragments": [...]} object."""
    with path.open("r", encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get("fragments")
    if not isinstance(data, list):
        raise ValueError("Top-level JSON is not a list of fragments.")
    return data


def is_finite_number(x: Any) -> bool:
    return isinstance(x, (int, float)) and not isinstance(x, bool) and math.isfinite(x)


def validate_fragment(
    fragment: Dict[str, Any],
    idx: int,
    expected_dim: Optional[int],
) -> Tuple[List[str], List[str]]:
    """Validate a single fragment record.

    Returns:
        (errors, warnings)
    """
    errors: List[str] = []
    warnings: List[str] = []

    if not isinstance(fragment, dict):
        return [f"[idx={idx}] fragment should be an object, got {type(fragment).__name__}"], warnings

    fid = fragment.get("id")
    if fid is None or (isinstance(fid, str) and not fid.strip()):
        errors.append(f"[idx={idx}] missing 'id'")

    content = fragment.get("content")
    if not isinstance(content, str) or not content.strip():
        errors.append(f"[idx={idx}] missing or empty 'content'")

    content_type = fragment.get("contentType", fragment.get("content_type"))
    if content_type is None:
        warnings.append(f"[idx={idx}] missing 'contentType'")
    elif content_type not in VALID_CONTENT_TYPES:
        errors.append(f"[idx={idx}] unknown contentType {content_type!r}")

    classification = fragment.get("classification")
    if isinstance(classification, dict):
        confidence = classification.get("confidence")
        if not is_finite_number(confidence) or not 0.0 <= confidence <= 1.0:
            errors.append(f"[idx={idx}] classification.confidence {confidence!r} not in [0, 1]")
    elif classification is None:
        warnings.append(f"[idx={idx}] missing 'classification'")

    embedding = fragment.get("embedding")
    if embedding is not None:
        if not isinstance(embedding, list):
            errors.append(f"[idx={idx}] 'embedding' should be a list, got {type(embedding).__name__}")
        else:
            if expected_dim is not None and len(embedding) != expected_dim:
                errors.append(f"[idx={idx}] embedding length {len(embedding)} != expected_dim {expected_dim}")
            for j, v in enumerate(embedding):
                if not is_finite_number(v):
                    errors.append(f"[idx={idx}] embedding[{j}] is not a finite number (got {v!r})")
                    break

    return errors, warnings


def check_dimensions(fragments: List[Dict[str, Any]]) -> List[str]:
    """All embedded fragments must share one dimension."""
    dims = {
        len(f["embedding"])
        for f in fragments
        if isinstance(f, dict) and isinstance(f.get("embedding"), list)
    }
    if len(dims) > 1:
        return [f"inconsistent embedding dimensions: {sorted(dims)}"]
    return []


def main(argv: Optional[List[str]] = None) -> None:
    """Validate a corpus file.

    Raises:
        SystemExit: With code 0 on success, 1 on validation failure,
            2 on argument error
    """
    parser = argparse.ArgumentParser(description="Validate a knowledge corpus JSON file.")
    parser.add_argument("--path", type=str, required=True, help="Path to corpus JSON file")
    parser.add_argument(
        "--expected-dim",
        type=int,
        default=None,
        help="Expected embedding dimensionality (e.g. 1536). Not enforced if omitted.",
    )
    args = parser.parse_args(argv)

    try:
        fragments = load_fragments(Path(args.path))
    except (OSError, ValueError) as e:
        print(f"FAILED TO LOAD FILE: {e}")
        raise SystemExit(1)

    all_errors: List[str] = []
    all_warnings: List[str] = []
    for idx, fragment in enumerate(fragments):
        errors, warnings = validate_fragment(fragment, idx, args.expected_dim)
        all_errors.extend(errors)
        all_warnings.extend(warnings)
    all_errors.extend(check_dimensions(fragments))

    if all_errors:
        print("VALIDATION FAILED:\n")
        for err in all_errors:
            print(err)
        print(f"\nTotal errors: {len(all_errors)}")
        if all_warnings:
            print(f"Total warnings: {len(all_warnings)}")
        raise SystemExit(1)

    print("VALIDATION PASSED")
    print(f"Total fragments: {len(fragments)}")
    if all_warnings:
        print("\nWarnings (non-fatal):")
        for w in all_warnings:
            print(w)
        print(f"\nTotal warnings: {len(all_warnings)}")

    raise SystemExit(0)


if __name__ == "__main__":
    main()
