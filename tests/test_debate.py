import json

from src.dream_pipeline.debate import DEBATE_MARKER, build_debate_section, split_debate
from src.dream_pipeline.personas.archetypal import JungPersona


def test_section_includes_persona_focus_and_marker():
    section = build_debate_section("jung", JungPersona.personality)

    assert "JUNGIAN DEBATE FOCUS" in section
    assert JungPersona.personality.tone in section
    assert DEBATE_MARKER in section
    assert "Do NOT default to A" in section


def test_section_for_unknown_persona_has_no_focus():
    section = build_debate_section("hillman", JungPersona.personality)

    assert "DEBATE FOCUS" not in section
    assert "UNIQUENESS" in section


def test_split_without_marker():
    assert split_debate("  The owl watches.  ") == ("The owl watches.", None)


def test_split_with_trace():
    trailer = json.dumps(
        {
            "_debug_hypothesis_a": "Shadow",
            "_debug_hypothesis_b": "Anima",
            "_debug_hypothesis_c": "Compensation",
            "_debug_evaluation": "C speaks to this dream's imagery",
            "_debug_selected": "C",
        }
    )

    text, trace = split_debate(f"The owl watches.\n{DEBATE_MARKER}\n```json\n{trailer}\n```")

    assert text == "The owl watches."
    assert trace.hypothesis_c == "Compensation"
    assert trace.evaluation == "C speaks to this dream's imagery"
    assert trace.selected == "C"


def test_unparseable_trace_is_dropped():
    text, trace = split_debate(f"The owl watches.\n{DEBATE_MARKER}\nI could not decide.")

    assert text == "The owl watches."
    assert trace is None
