# tests/test_fragments.py

import logging

import pytest

from src.dream_pipeline.classifier import ContentClassifier
from src.dream_pipeline.fragments import (
    clean_text,
    fragment_id,
    resolve_persona,
    to_knowledge_fragment,
)
from src.dream_pipeline.models import ContentType

DREAM_TEXT = (
    "I had a dream about a house. In the dream I was climbing the stairs "
    "when suddenly the walls began to melt."
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("Fish &amp; chips", "Fish & chips"),
        ("<p>The <b>owl</b> watches</p>", "The owl watches"),
        ("&lt;i&gt;Anima&lt;/i&gt; rises", "Anima rises"),
        ("See [the owl](https://example.com/owl) at night", "See the owl at night"),
        ("Shadow\n***\nSelf", "Shadow\n\nSelf"),
        ("too    many \t spaces", "too many spaces"),
        ("one\n\n\n\n\ntwo", "one\n\ntwo"),
        ("   ", ""),
        ("", ""),
        (None, ""),
    ],
)
def test_clean_text(raw, expected):
    assert clean_text(raw) == expected


def test_fragment_id_prefers_source_ids():
    assert fragment_id({"id": " kb-1 "}, "text") == "kb-1"
    assert fragment_id({"_id": 42}, "text") == "42"
    assert fragment_id({"external_id": "ext-7"}, "text") == "ext-7"


def test_fragment_id_hash_is_stable_and_content_sensitive():
    raw = {"source": "man-and-his-symbols"}

    first = fragment_id(raw, "The owl sees in the dark.")
    second = fragment_id(raw, "The owl sees in the dark.")
    other = fragment_id(raw, "The snake sheds its skin.")

    assert first == second
    assert len(first) == 16
    assert first != other


@pytest.mark.parametrize(
    "raw, expected",
    [
        ({"persona": "jung"}, "jung"),
        ({"persona": " Neuroscientist "}, "mary"),
        ({"interpreter_type": "lakshmi"}, "lakshmi"),
        ({"interpreter": "shared"}, None),
        ({"persona": "universal"}, None),
        ({}, None),
    ],
)
def test_resolve_persona(raw, expected):
    assert resolve_persona(raw) == expected


def test_unknown_interpreter_tag_is_shared_and_logged(caplog):
    caplog.set_level(logging.WARNING)

    assert resolve_persona({"persona": "hillman"}) is None
    assert "Unknown interpreter tag 'hillman'" in caplog.text


def test_to_knowledge_fragment_classifies_clean_text():
    raw = {
        "id": "kb-house",
        "source": "dream-journal",
        "chapter": "",
        "persona": "freud",
        "content": "<p>" + DREAM_TEXT + "</p>",
    }

    fragment = to_knowledge_fragment(raw, ContentClassifier())

    assert fragment.id == "kb-house"
    assert fragment.source_id == "dream-journal"
    assert fragment.chapter is None
    assert fragment.persona == "freud"
    assert fragment.content == DREAM_TEXT
    assert fragment.content_type == ContentType.DREAM_EXAMPLE
    assert fragment.classification.content_type == ContentType.DREAM_EXAMPLE
    assert fragment.embedding is None


def test_declared_content_type_wins():
    raw = {"id": "kb-def", "text": DREAM_TEXT, "content_type": " Definition "}

    fragment = to_knowledge_fragment(raw, ContentClassifier())

    assert fragment.content_type == ContentType.DEFINITION
    # the classification keeps the classifier's own opinion
    assert fragment.classification.content_type == ContentType.DREAM_EXAMPLE
    assert fragment.source_id == "unknown"


def test_unknown_declared_content_type_is_ignored():
    raw = {"id": "kb-poem", "content": DREAM_TEXT, "contentType": "poem"}

    fragment = to_knowledge_fragment(raw, ContentClassifier())

    assert fragment.content_type == ContentType.DREAM_EXAMPLE


def test_empty_excerpt_is_rejected(caplog):
    caplog.set_level(logging.WARNING)

    assert to_knowledge_fragment({"id": "kb-empty", "content": "<p> </p>"}, ContentClassifier()) is None
    assert "rejecting excerpt with empty text" in caplog.text
