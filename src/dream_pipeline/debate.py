"""Internal Debate Module

Optional prompt section asking the generator to draft three competing
interpretations, score them against a fixed rubric and keep the best one.
The hypotheses and the selection are returned after a marker line and
kept only as debug metadata.
"""

import logging
from typing import Optional, Tuple

from .errors import StructuredOutputError
from .models import DebateTrace, Personality
from .structured_output import parse_structured

logger = logging.getLogger(__name__)

DEBATE_MARKER = "---DEBATE---"

QUALITY_CRITERIA = [
    "UNIQUENESS: Avoids generic, predictable interpretations. Finds fresh angles.",
    "PERSONAL RELEVANCE: Connects specifically to this dreamer's life context and situation.",
    "CHARACTER VOICE: Authentically reflects the interpreter's personality and expertise.",
    "INSIGHT DEPTH: Provides genuine 'aha moments' rather than surface observations.",
    "ENGAGEMENT FACTOR: Makes the dreamer feel the reading was written for them alone.",
    "ACTIONABLE VALUE: Offers practical wisdom the dreamer can actually use.",
    "EMOTIONAL RESONANCE: Touches something real and meaningful in the dreamer's experience.",
]

PERSONA_GUIDANCE = {
    "freud": (
        "FREUDIAN DEBATE FOCUS:\n"
        "- Hypothesis A: the defense mechanisms at work (what is repressed, and how?)\n"
        "- Hypothesis B: libidinal or aggressive drives behind the dream symbols\n"
        "- Hypothesis C: childhood regression versus present-day conflict\n"
        "- Each hypothesis MUST analyse the specific symbols of THIS dream"
    ),
    "jung": (
        "JUNGIAN DEBATE FOCUS:\n"
        "- Hypothesis A: shadow integration (which rejected aspects ask to be acknowledged?)\n"
        "- Hypothesis B: anima/animus dynamics in the dream figures\n"
        "- Hypothesis C: the compensatory function (which conscious attitude is balanced?)\n"
        "- Each hypothesis MUST address the specific symbols of THIS dream, not generic concepts"
    ),
    "mary": (
        "NEUROSCIENTIST DEBATE FOCUS:\n"
        "- Hypothesis A: memory consolidation of recent and remote experiences\n"
        "- Hypothesis B: emotional regulation and limbic processing\n"
        "- Hypothesis C: threat simulation and rehearsal of difficult situations\n"
        "- Each hypothesis MUST explain why the brain produced THESE particular images"
    ),
    "lakshmi": (
        "VEDANTIC DEBATE FOCUS:\n"
        "- Hypothesis A: the karmic pattern asking to be completed\n"
        "- Hypothesis B: the dharmic guidance offered for the present path\n"
        "- Hypothesis C: the soul lesson and the stage of spiritual awakening\n"
        "- Each hypothesis MUST honour the specific images of THIS dream"
    ),
}


def build_debate_section(persona_key: str, personality: Personality) -> str:
    """Prompt section describing the internal debate for one persona."""
    criteria = "\n".join(f"- {c}" for c in QUALITY_CRITERIA)
    guidance = PERSONA_GUIDANCE.get(persona_key, "")
    return f"""
INTERNAL DEBATE PROCESS:

Before writing, consider 3 distinctly different interpretations of this dream
in your own voice ({personality.tone}). Each hypothesis should be about 75 words
and address the actual dream content, symbols and context.

Rate each hypothesis (A, B, C) against these criteria:
{criteria}

Select the strongest hypothesis on its merits, not its position. Do NOT default to A.
Write your final interpretation from the winning hypothesis.

{guidance}

After the interpretation, output a line containing only {DEBATE_MARKER} followed by
a JSON object with these keys:
"_debug_hypothesis_a", "_debug_hypothesis_b", "_debug_hypothesis_c",
"_debug_evaluation" (why the winner was chosen) and "_debug_selected" (A, B or C).
""".strip()


def split_debate(text: str) -> Tuple[str, Optional[DebateTrace]]:
    """
    Separate an interpretation from its trailing debate trace.

    Returns:
        (interpretation, trace); trace is None when there is no marker or
        the trace cannot be parsed
    """
    if DEBATE_MARKER not in text:
        return text.strip(), None

    body, _, trailer = text.partition(DEBATE_MARKER)
    try:
        data = parse_structured(trailer)
    except StructuredOutputError as e:
        logger.warning("Dropping unparseable debate trace: %s", e)
        return body.strip(), None

    trace = DebateTrace(
        hypothesis_a=str(data.get("_debug_hypothesis_a") or ""),
        hypothesis_b=str(data.get("_debug_hypothesis_b") or ""),
        hypothesis_c=str(data.get("_debug_hypothesis_c") or ""),
        evaluation=str(data.get("_debug_evaluation") or "No evaluation provided"),
        selected=str(data.get("_debug_selected") or "Unknown"),
    )
    return body.strip(), trace
