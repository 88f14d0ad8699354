"""Quality Assurance Module

Post-generation rule checks for a finished interpretation. Each check is
tagged error or warning; the report scores the result and lists
remediation phrases for failed checks. Nothing here modifies content.

Scoring:
  score = max(0, 100 - 20 * failed errors - 10 * failed warnings)
  passed = no failed error checks and score >= 70
"""

import logging
import re
from typing import Callable, Dict, List, Optional, Sequence

from pydantic import BaseModel

from .models import QualityCheckResult, QualityReport, RetrievedFragment

logger = logging.getLogger(__name__)

PASSING_SCORE = 70
ERROR_PENALTY = 20
WARNING_PENALTY = 10

MIN_WORDS = 100
MAX_WORDS = 450

GENERIC_OPENINGS = [
    re.compile(r"^\s*The mechanisms at work", re.I),
    re.compile(r"^\s*What we have here", re.I),
    re.compile(r"^\s*This dream reveals", re.I),
    re.compile(r"^\s*Your dream shows", re.I),
]

FORBIDDEN_PHRASES: Dict[str, List[str]] = {
    "freud": ["oedipus complex", "wolf man", "rat man", "manifest vs latent content", "what we have here"],
    "jung": ["your unconscious is telling you", "this is a classic archetype"],
    "mary": ["studies show that dreams mean", "your brain is trying to tell you"],
    "lakshmi": ["bad karma", "you are being punished"],
}

TERMINOLOGY: Dict[str, List[str]] = {
    "freud": [
        "repression", "displacement", "condensation", "libido", "cathexis",
        "dream-work", "unconscious", "defense", "transference", "id", "ego", "superego",
    ],
    "jung": [
        "archetype", "archetypal", "shadow", "anima", "animus", "self", "persona",
        "individuation", "collective unconscious", "complex", "compensatory",
    ],
    "mary": [
        "rem", "hippocampus", "amygdala", "prefrontal", "memory consolidation",
        "neural", "cortex", "neurotransmitter", "limbic", "sleep stage",
    ],
    "lakshmi": [
        "karma", "dharma", "atman", "chakra", "soul", "divine", "maya",
        "sadhana", "consciousness", "samskara",
    ],
}

TERMINOLOGY_CHECK_NAMES = {
    "freud": "psychoanalytic_terminology",
    "jung": "archetypal_terminology",
    "mary": "neuroscience_terminology",
    "lakshmi": "spiritual_terminology",
}

FREUD_VOICE_MARKERS = [
    re.compile(r"\bI (detect|observe|must|find|see)\b", re.I),
    re.compile(r"\bIt is (clear|evident|apparent) that\b", re.I),
    re.compile(r"\bThis (reveals|demonstrates|indicates)\b", re.I),
    re.compile(r"\byou (are|have|experience)\b", re.I),
]
DREAM_WORK_RE = re.compile(r"\b(condensation|displacement|symboli[sz]ation|secondary revision|dream-work)\b", re.I)

SUGGESTIONS = {
    "interpretation_length": f"Keep the interpretation between {MIN_WORDS} and {MAX_WORDS} words",
    "no_generic_openings": "Start with a unique, dream-specific opening rather than template language",
    "forbidden_phrases": "Remove cliched phrases and use more original formulations",
    "rag_integration": "Integrate more concepts from the retrieved knowledge passages",
    "psychoanalytic_terminology": "Include more technical psychoanalytic terms naturally in the interpretation",
    "archetypal_terminology": "Name the archetypal dynamics at work using Jungian vocabulary",
    "neuroscience_terminology": "Ground the reading in the specific brain processes involved",
    "spiritual_terminology": "Weave in the Vedantic concepts that illuminate the dream",
    "dream_work_present": "Explain which dream-work mechanisms transformed the latent content",
    "voice_authenticity": 'Use more direct address ("you") and authoritative statements ("I detect")',
}


class QualityCheck(BaseModel):
    name: str
    severity: str
    check: Callable[[str, Sequence[RetrievedFragment]], bool]


def _word_count(text: str) -> int:
    return len(text.split())


def _has_terms(terms: Sequence[str], minimum: int = 2) -> Callable[[str, Sequence[RetrievedFragment]], bool]:
    patterns = [re.compile(rf"\b{re.escape(t)}\b", re.I) for t in terms]

    def check(text: str, fragments: Sequence[RetrievedFragment]) -> bool:
        return sum(1 for p in patterns if p.search(text)) >= minimum

    return check


def _no_forbidden(phrases: Sequence[str]) -> Callable[[str, Sequence[RetrievedFragment]], bool]:
    def check(text: str, fragments: Sequence[RetrievedFragment]) -> bool:
        lowered = text.lower()
        return not any(p in lowered for p in phrases)

    return check


def _length_ok(text: str, fragments: Sequence[RetrievedFragment]) -> bool:
    return MIN_WORDS <= _word_count(text) <= MAX_WORDS


def _no_generic_opening(text: str, fragments: Sequence[RetrievedFragment]) -> bool:
    return not any(p.search(text) for p in GENERIC_OPENINGS)


def _uses_fragments(text: str, fragments: Sequence[RetrievedFragment]) -> bool:
    if not fragments:
        return True
    lowered = text.lower()
    for fragment in fragments:
        keywords = [w for w in re.findall(r"[a-z\-]+", fragment.content.lower()) if len(w) > 5]
        if any(k in lowered for k in keywords):
            return True
    return False


def _dream_work_present(text: str, fragments: Sequence[RetrievedFragment]) -> bool:
    return DREAM_WORK_RE.search(text) is not None


def _freud_voice(text: str, fragments: Sequence[RetrievedFragment]) -> bool:
    return any(p.search(text) for p in FREUD_VOICE_MARKERS)


def checks_for(persona_key: str) -> List[QualityCheck]:
    """Common checks plus the persona's own battery."""
    checks = [
        QualityCheck(name="interpretation_length", severity="warning", check=_length_ok),
        QualityCheck(name="no_generic_openings", severity="error", check=_no_generic_opening),
        QualityCheck(
            name="forbidden_phrases",
            severity="error",
            check=_no_forbidden(FORBIDDEN_PHRASES.get(persona_key, [])),
        ),
        QualityCheck(name="rag_integration", severity="warning", check=_uses_fragments),
    ]
    if persona_key in TERMINOLOGY:
        checks.append(
            QualityCheck(
                name=TERMINOLOGY_CHECK_NAMES[persona_key],
                severity="warning",
                check=_has_terms(TERMINOLOGY[persona_key]),
            )
        )
    if persona_key == "freud":
        checks.append(QualityCheck(name="dream_work_present", severity="warning", check=_dream_work_present))
        checks.append(QualityCheck(name="voice_authenticity", severity="warning", check=_freud_voice))
    return checks


class QualityAssurance:
    """Runs the check battery and scores the result."""

    def __init__(self, passing_score: int = PASSING_SCORE):
        self.passing_score = passing_score

    def evaluate(
        self,
        persona_key: str,
        interpretation: str,
        fragments_used: Optional[Sequence[RetrievedFragment]] = None,
    ) -> QualityReport:
        text = interpretation or ""
        fragments = list(fragments_used or [])

        results: List[QualityCheckResult] = []
        for check in checks_for(persona_key):
            passed = bool(check.check(text, fragments))
            results.append(
                QualityCheckResult(
                    name=check.name,
                    severity=check.severity,
                    passed=passed,
                    message="" if passed else SUGGESTIONS.get(check.name, ""),
                )
            )

        failed = [r for r in results if not r.passed]
        errors = sum(1 for r in failed if r.severity == "error")
        warnings = len(failed) - errors
        score = max(0, 100 - ERROR_PENALTY * errors - WARNING_PENALTY * warnings)
        passed = errors == 0 and score >= self.passing_score

        if not passed:
            logger.warning(
                "QA checks failed persona=%s score=%d failed=%s",
                persona_key, score, [r.name for r in failed],
            )
        else:
            logger.info("✓ QA passed persona=%s score=%d", persona_key, score)

        return QualityReport(
            score=score,
            passed=passed,
            checks=results,
            suggestions=[SUGGESTIONS[r.name] for r in failed if r.name in SUGGESTIONS],
        )
