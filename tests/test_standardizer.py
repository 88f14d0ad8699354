import json

import pytest

from src.dream_pipeline.models import (
    CanonicalInterpretation,
    FormattedInterpretation,
    GenerationMetadata,
    JungianCore,
)
from src.dream_pipeline.standardizer import (
    DEFAULT_QUICK_TAKE,
    DEFAULT_REFLECTIONS,
    DEFAULT_TOPIC,
    ResponseStandardizer,
    collect_symbols,
    create_dream_topic,
    normalize_symbol,
)

from tests.helpers import jung_formatted_json

METADATA = GenerationMetadata(model="model-a")


def standardize(data, persona_key="jung", theme_names=()):
    formatted = FormattedInterpretation.model_validate(data)
    return ResponseStandardizer().standardize(
        formatted,
        persona_key=persona_key,
        generation_metadata=METADATA,
        theme_names=theme_names,
    )


# ---------------------------------------------------------------------------
# One case per core type
# ---------------------------------------------------------------------------


def test_jungian_result():
    result = standardize(json.loads(jung_formatted_json()), theme_names=["Forest", "Owl"])

    assert isinstance(result, CanonicalInterpretation)
    assert isinstance(result.core, JungianCore)
    assert result.dream_id == "dream-owl-1"
    assert result.dream_topic == "Meeting the wise owl in the forest"
    assert result.quick_take.startswith("Your psyche is sending")
    assert result.symbols[:4] == ["owl", "dark forest", "branch", "forest"]
    assert len(result.symbols) == 10
    assert result.self_reflection == "What is the owl asking you to notice?"
    assert result.additional_info["dreamWork"] == "Balances over-reliance on reason"
    assert result.generation_metadata.model == "model-a"


def test_freudian_result_uses_latent_content_and_dream_work():
    result = standardize(
        {
            "dreamId": "dream-house-1",
            "interpretation": (
                "The house you wander is your own body, and every locked door is a wish "
                "you have not allowed yourself to name."
            ),
            "interpreterCore": {
                "type": "freudian",
                "psychoanalyticElements": {
                    "latentContent": "A wish for recognition from the father",
                    "dreamWork": {
                        "condensation": "Two houses merge",
                        "displacement": "Anger moved onto the door",
                    },
                },
            },
        },
        persona_key="freud",
    )

    assert result.quick_take == "A wish for recognition from the father"
    assert result.dream_topic == "The house you wander is your own body"
    assert result.symbols == ["house", "door", "passage", "dream", "journey", "transformation"]
    assert result.self_reflection == DEFAULT_REFLECTIONS["freudian"]
    assert result.additional_info["dreamWork"] == (
        "Condensation: Two houses merge Displacement: Anger moved onto the door"
    )


def test_neuroscientific_result():
    result = standardize(
        {
            "dreamId": "dream-teeth-1",
            "interpretation": "Your teeth crumbling reflects a brain rehearsing threat. It is common.",
            "quickTake": "Short",
            "symbols": "teeth, mirror",
            "interpreterCore": {
                "type": "neuroscientific",
                "brainProcesses": ["amygdala activation", "hippocampal replay"],
                "sleepStage": "REM",
                "memoryConsolidation": "Your brain is filing away yesterday's stress",
            },
        },
        persona_key="mary",
    )

    assert result.quick_take == "Your brain is filing away yesterday's stress"
    assert result.symbols[:2] == ["teeth", "mirror"]
    assert result.additional_info["dreamWork"] == (
        "REM Brain processes: amygdala activation, hippocampal replay"
    )


def test_vedantic_result_falls_back_to_longest_short_candidate():
    result = standardize(
        {
            "dreamId": "dream-lotus-1",
            "interpretation": "Lotus rising. The water is still.",
            "quickTake": "Let go now",
            "interpreterCore": {
                "type": "vedantic",
                "spiritualDynamics": {"soulLesson": "Surrender", "karmicPattern": "Old attachment"},
            },
        },
        persona_key="lakshmi",
    )

    assert result.quick_take == "Lotus rising."
    assert result.symbols[:3] == ["lotus", "light", "path"]
    assert result.additional_info["dreamWork"] == "Old attachment"
    assert result.self_reflection == DEFAULT_REFLECTIONS["vedantic"]


def test_empty_result_still_standardizes():
    result = standardize({"dreamId": "d-empty", "interpreterCore": {"type": "jungian"}})

    assert result.quick_take == DEFAULT_QUICK_TAKE
    assert result.dream_topic == DEFAULT_TOPIC
    assert result.symbols == ["shadow", "self", "threshold", "dream", "journey", "transformation"]


def test_unknown_fields_move_to_additional_info():
    data = json.loads(jung_formatted_json())
    data["culturalContext"] = "Owls as Athena's companions"
    data["fullInterpretation"] = "A longer version of the interpretation."
    data["stageMetadata"] = {"interpretationMetadata": {"interpretation": "raw", "symbols": ["moon"]}}

    result = standardize(data)

    assert result.additional_info["culturalContext"] == "Owls as Athena's companions"
    assert result.additional_info["fullInterpretation"] == "A longer version of the interpretation."
    assert result.additional_info["stageMetadata"]["interpretationMetadata"]["symbols"] == ["moon"]
    assert "moon" in result.symbols


def test_interpretation_falls_back_to_full_interpretation():
    result = standardize(
        {
            "dreamId": "d1",
            "interpretation": "  ",
            "fullInterpretation": "The snake sheds what no longer fits.",
            "interpreterCore": {"type": "jungian"},
        }
    )

    assert result.interpretation == "The snake sheds what no longer fits."


def test_validation_failure_returns_minimal_result(monkeypatch):
    monkeypatch.setattr(ResponseStandardizer, "_quick_take", lambda self, *args: None)

    result = standardize(json.loads(jung_formatted_json()), theme_names=["Owl"])

    assert result.quick_take == DEFAULT_QUICK_TAKE
    assert result.dream_topic == DEFAULT_TOPIC
    assert result.symbols[0] == "owl"
    assert result.core == JungianCore()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "text, expected",
    [
        ("Owl", "Owl reveals hidden patterns within you"),
        ("The owl, the forest and you!", "The owl the forest and you"),
        (
            "one two three four five six seven eight nine ten eleven",
            "one two three four five six seven eight",
        ),
        ("", DEFAULT_TOPIC),
        (None, DEFAULT_TOPIC),
    ],
)
def test_create_dream_topic(text, expected):
    assert create_dream_topic(text) == expected


@pytest.mark.parametrize(
    "value, expected",
    [
        ("Owl", "owl"),
        ({"name": "Golden Key!"}, "golden key"),
        ("A very long symbol phrase here", "a very long"),
        ("supercalifragilisticexpialidocious", "supercalifragilisticexpialidoc"),
        ("!!!", None),
        (5, None),
        ({"meaning": "no symbol key"}, None),
    ],
)
def test_normalize_symbol(value, expected):
    assert normalize_symbol(value) == expected


def test_collect_symbols_dedupes_in_priority_order_and_caps():
    symbols = collect_symbols(["Owl", "owl"], ["OWL", "moon"], [f"s{i}" for i in range(20)])

    assert symbols[:2] == ["owl", "moon"]
    assert len(symbols) == 10
