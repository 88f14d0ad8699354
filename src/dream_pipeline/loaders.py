"""Data Loader Module

Utilities to load raw knowledge excerpts, an ingested corpus and the
theme taxonomy from JSON files. Raw excerpts may be a flat array or
wrapped in a 'fragments' or 'results' key.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Union

from .models import KnowledgeFragment, Theme

logger = logging.getLogger(__name__)


def _read_json(path: Union[str, Path]) -> Any:
    path = Path(path)
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)


def _unwrap(data: Any, *keys: str) -> List[Dict[str, Any]]:
    if isinstance(data, list):
        return data
    for key in keys:
        if data.get(key):
            return data[key]
    return []


def load_raw_fragments(path: Union[str, Path]) -> List[Dict[str, Any]]:
    """Load raw knowledge excerpts from a JSON file.

    Supports flexible input formats:
      - Direct list of excerpts: [{...}, {...}, ...]
      - Wrapped in 'fragments' key: {"fragments": [...]}
      - Wrapped in 'results' key: {"results": [...]}

    Args:
        path: File path to JSON file containing raw excerpts

    Returns:
        List of raw excerpt dictionaries

    Raises:
        FileNotFoundError: If file does not exist
        json.JSONDecodeError: If file is not valid JSON
    """
    return _unwrap(_read_json(path), "fragments", "results")


def load_corpus(path: Union[str, Path]) -> List[KnowledgeFragment]:
    """Load an ingested corpus (with or without embeddings)."""
    records = _unwrap(_read_json(path), "fragments")
    fragments = [KnowledgeFragment.model_validate(r) for r in records]
    logger.info("Loaded %d knowledge fragments from %s", len(fragments), path)
    return fragments


def load_themes(path: Union[str, Path]) -> List[Theme]:
    """Load the theme taxonomy ({"themes": [...]} or a flat list)."""
    records = _unwrap(_read_json(path), "themes")
    return [Theme.model_validate(r) for r in records]
