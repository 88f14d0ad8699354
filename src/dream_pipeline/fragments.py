"""Fragment Building Module

Text cleaning and classification for turning raw source excerpts into
``KnowledgeFragment`` records.

Key responsibilities:
  - Clean excerpt text (HTML entities and tags, markdown links, rules, whitespace)
  - Resolve the owning persona from the source's interpreter tag
  - Classify the content and attach the classification
  - Reject excerpts with no usable text
"""

import hashlib
import html
import logging
import re
from typing import Any, Dict, Optional

from .classifier import ContentClassifier
from .models import ContentType, KnowledgeFragment

logger = logging.getLogger(__name__)

# Regex patterns (define at module level for performance)
TAG_RE = re.compile(r"<[^>]+>")
LINK_PATTERN = re.compile(r"\[([^\]]+)\]\([^\)]+\)")  # Markdown links
HORIZONTAL_RULE = re.compile(r"^[\*\-]{3,}$", re.MULTILINE)  # ***, ---
MULTIPLE_NEWLINES = re.compile(r"\n{3,}")
MULTIPLE_SPACES = re.compile(r"[ \t]{2,}")

# Source tags for shared material map to None
PERSONA_TAGS: Dict[str, Optional[str]] = {
    "jung": "jung",
    "freud": "freud",
    "mary": "mary",
    "neuroscientist": "mary",
    "lakshmi": "lakshmi",
    "universal": None,
    "shared": None,
}


def clean_text(text: str) -> str:
    """
    Clean one raw excerpt.

    Steps:
    1. Unescape HTML entities (&amp; → &, &lt; → <, etc.)
    2. Strip HTML tags
    3. Clean markdown links [text](url) → text
    4. Remove decorative horizontal rules (*** or ---)
    5. Normalize whitespace (runs of spaces, 3+ newlines)

    Returns:
        Cleaned text, or empty string if nothing remains
    """
    if not text:
        return ""

    text = html.unescape(text)
    text = TAG_RE.sub("", text)
    text = LINK_PATTERN.sub(r"\1", text)
    text = HORIZONTAL_RULE.sub("", text)
    text = MULTIPLE_SPACES.sub(" ", text)
    text = MULTIPLE_NEWLINES.sub("\n\n", text)
    return text.strip()


def fragment_id(raw: Dict[str, Any], content: str) -> str:
    """Source id if present, else a stable hash of source and content."""
    raw_id = raw.get("id") or raw.get("_id") or raw.get("external_id")
    if raw_id is not None and str(raw_id).strip():
        return str(raw_id).strip()
    source = str(raw.get("source") or raw.get("source_id") or "")
    return hashlib.sha1(f"{source}\n{content}".encode("utf-8")).hexdigest()[:16]


def resolve_persona(raw: Dict[str, Any]) -> Optional[str]:
    tag = raw.get("persona") or raw.get("interpreter_type") or raw.get("interpreter")
    if not tag:
        return None
    tag = str(tag).strip().lower()
    if tag not in PERSONA_TAGS:
        logger.warning("Unknown interpreter tag %r; treating fragment as shared", tag)
        return None
    return PERSONA_TAGS[tag]


def to_knowledge_fragment(
    raw: Dict[str, Any],
    classifier: ContentClassifier,
) -> Optional[KnowledgeFragment]:
    """
    Convert one raw excerpt into a classified ``KnowledgeFragment``.

    An explicit, valid ``content_type`` on the excerpt wins over the
    classifier's primary type.

    Returns:
        The fragment, or None if the excerpt has no usable text.
    """
    content = clean_text(raw.get("content") or raw.get("text") or "")
    if not content:
        logger.warning(
            "to_knowledge_fragment: rejecting excerpt with empty text. raw_id=%r",
            raw.get("id") or raw.get("_id"),
        )
        return None

    classification = classifier.classify(content)
    content_type = classification.content_type
    declared = raw.get("content_type") or raw.get("contentType")
    if declared:
        try:
            content_type = ContentType(str(declared).strip().lower())
        except ValueError:
            logger.debug("Ignoring unknown content_type %r", declared)

    return KnowledgeFragment(
        id=fragment_id(raw, content),
        source_id=str(raw.get("source") or raw.get("source_id") or "unknown"),
        chapter=raw.get("chapter") or None,
        content=content,
        persona=resolve_persona(raw),
        content_type=content_type,
        classification=classification,
    )
