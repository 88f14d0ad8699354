import asyncio
import json

import pytest

from src.dream_pipeline import structured_output
from src.dream_pipeline.errors import (
    GENERATION_EXHAUSTED,
    GenerationError,
    GenerationExhaustedError,
    StructuredOutputError,
)
from src.dream_pipeline.structured_output import (
    extract_object_span,
    generate_structured,
    generate_text,
    parse_structured,
    repair_syntax,
    strip_code_fences,
)

from tests.helpers import ScriptedBackend

MESSAGES = [{"role": "user", "content": "format this"}]


# ---------------------------------------------------------------------------
# Repair corpus
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "raw, expected",
    [
        ('{"a": 1, "b": [1, 2,],}', {"a": 1, "b": [1, 2]}),
        ('```json\n{"symbols": ["owl"]}\n```', {"symbols": ["owl"]}),
        ("{'name': 'owl', 'count': 2}", {"name": "owl", "count": 2}),
        ('{"text": "the "wise" owl", "n": 1}', {"text": 'the "wise" owl', "n": 1}),
        ('{"text": "line one\nline two"}', {"text": "line one\nline two"}),
        ('Here is your JSON: {"a": {"b": true}} Hope this helps!', {"a": {"b": True}}),
        ("{'note': 'the owl\\'s gaze'}", {"note": "the owl's gaze"}),
        ('{"path": "the dreamer\'s path"}', {"path": "the dreamer's path"}),
        ('{"text": "the owl is "wise", you see", "n": 1}', {"text": 'the owl is "wise", you see', "n": 1}),
        ("{'symbols': ['owl', 'forest'], 'lucid': true}", {"symbols": ["owl", "forest"], "lucid": True}),
    ],
    ids=[
        "trailing-commas",
        "code-fenced",
        "single-quoted",
        "unescaped-inner-quotes",
        "raw-newline",
        "prose-wrapped",
        "escaped-apostrophe",
        "apostrophe-in-double-quotes",
        "inner-quote-before-comma-in-prose",
        "single-quoted-array-and-literal",
    ],
)
def test_parse_structured_repairs_common_defects(raw, expected):
    assert parse_structured(raw) == expected


def test_parse_structured_valid_json_untouched():
    assert parse_structured('{"a": "b, }"}') == {"a": "b, }"}


def test_parse_structured_rejects_empty():
    with pytest.raises(StructuredOutputError) as exc:
        parse_structured("   ")
    assert exc.value.code == "PARSE_FAILED"


def test_parse_structured_rejects_non_object():
    with pytest.raises(StructuredOutputError) as exc:
        parse_structured("[1, 2, 3]")
    assert "syntax_repair" in exc.value.strategies


def test_parse_structured_rejects_prose():
    with pytest.raises(StructuredOutputError):
        parse_structured("I could not produce an interpretation for this dream.")


def test_individual_strategies():
    assert strip_code_fences("```\n{}\n```") == "{}"
    assert extract_object_span("noise {\"a\": 1} tail") == '{"a": 1}'
    assert extract_object_span("no braces") == "no braces"
    assert json.loads(repair_syntax('[1, 2, ]')) == [1, 2]


# ---------------------------------------------------------------------------
# Model rotation
# ---------------------------------------------------------------------------


def test_structured_succeeds_on_last_model_after_failures():
    backend = ScriptedBackend(
        [
            "definitely not json",
            GenerationError("upstream 503", model="model-b"),
            '{"ok": true}',
        ]
    )

    result = asyncio.run(
        generate_structured(backend, MESSAGES, ["model-a", "model-b", "model-c"], temperature=0.2, max_tokens=100)
    )

    assert result.data == {"ok": True}
    assert result.model == "model-c"
    assert result.attempts == 3
    assert [c["model"] for c in backend.calls] == ["model-a", "model-b", "model-c"]
    assert all(c["json_mode"] for c in backend.calls)
    # usage from the unparseable reply is still counted
    assert result.usage.prompt_tokens == 20


def test_structured_exhausted_when_every_model_fails():
    backend = ScriptedBackend(["nope", "still nope", GenerationError("timeout")])

    with pytest.raises(GenerationExhaustedError) as exc:
        asyncio.run(
            generate_structured(backend, MESSAGES, ["model-a", "model-b", "model-c"], temperature=0.2, max_tokens=100)
        )

    assert exc.value.code == GENERATION_EXHAUSTED
    assert exc.value.models == ["model-a", "model-b", "model-c"]
    assert isinstance(exc.value.last_error, GenerationError)
    assert len(backend.calls) == 3


def test_structured_validator_rejection_moves_to_next_model():
    backend = ScriptedBackend(['{"kind": "wrong"}', '{"kind": "right"}'])

    def validator(data):
        if data["kind"] != "right":
            raise ValueError("wrong kind")
        return data["kind"]

    result = asyncio.run(
        generate_structured(backend, MESSAGES, ["model-a", "model-b"], temperature=0.2, max_tokens=100, validator=validator)
    )

    assert result.data == "right"
    assert result.model == "model-b"


def test_structured_per_model_token_budget():
    backend = ScriptedBackend(['{"a": 1}'])

    asyncio.run(
        generate_structured(
            backend,
            MESSAGES,
            ["model-a"],
            temperature=0.3,
            max_tokens=800,
            max_tokens_by_model={"model-a": 1500},
        )
    )

    assert backend.calls[0]["max_tokens"] == 1500
    assert backend.calls[0]["temperature"] == 0.3


def test_structured_stops_at_first_success():
    backend = ScriptedBackend(['{"a": 1}', '{"a": 2}'])

    result = asyncio.run(generate_structured(backend, MESSAGES, ["model-a", "model-b"], temperature=0.2, max_tokens=10))

    assert result.data == {"a": 1}
    assert len(backend.calls) == 1


def test_text_generation_skips_empty_replies():
    backend = ScriptedBackend(["   ", "A real interpretation."])

    completion = asyncio.run(generate_text(backend, MESSAGES, ["model-a", "model-b"], temperature=0.7, max_tokens=10))

    assert completion.content == "A real interpretation."
    assert completion.model == "model-b"
    assert completion.usage.completion_tokens == 10
    assert not any(c["json_mode"] for c in backend.calls)


def test_text_generation_exhausted():
    backend = ScriptedBackend([GenerationError("boom"), ""])

    with pytest.raises(GenerationExhaustedError):
        asyncio.run(generate_text(backend, MESSAGES, ["model-a", "model-b"], temperature=0.7, max_tokens=10))


def test_module_exposes_ordered_strategies():
    names = [name for name, _ in structured_output.REPAIR_STRATEGIES]
    assert names == ["direct", "strip_code_fences", "object_span", "syntax_repair"]
