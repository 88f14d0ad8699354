"""Content Classification Module

Scores arbitrary text against a fixed set of content categories
(theory, symbol, case study, dream example, ...) using weighted
pattern matching plus contextual boosts, and extracts topics, keywords
and content flags for each knowledge fragment.

Key features:
  - Pluggable scoring: any ``ContentScorer`` can replace the regex rules
  - Minimum-confidence default when no signal is found
  - Topic detection with thresholds scaled by keyword-group size
  - Keyword harvesting (capitalised phrases, quoted and defined terms)
  - Optional theme backfill through a ``ConceptMapper``

The classifier holds no mutable state, so identical text always
produces an identical ClassificationResult.
"""

import re
from typing import Dict, List, Optional, Pattern, Protocol, Sequence, Tuple

from .models import ClassificationResult, ContentType
from .themes import ConceptMapper


def _compile(patterns: Sequence[str]) -> List[Pattern[str]]:
    return [re.compile(p, re.IGNORECASE) for p in patterns]


CONTENT_PATTERNS: Dict[ContentType, List[Pattern[str]]] = {
    ContentType.THEORY: _compile([
        r"theoretical framework", r"hypothesis", r"principle of", r"concept of",
        r"theory suggests", r"according to (the )?theory", r"fundamental principle",
        r"theoretical basis", r"conceptual framework", r"psychodynamic",
        r"cognitive model", r"neurobiological", r"phenomenological",
    ]),
    ContentType.SYMBOL: _compile([
        r"symbol(izes?|ic|ism|ically)", r"represents?", r"archetype", r"meaning of",
        r"signifies?", r"stands for", r"symbolic meaning", r"interpretation of",
        r"symbolically", r"metaphor", r"allegory", r"embodies", r"personifies",
        r"manifestation of",
    ]),
    ContentType.CASE_STUDY: _compile([
        r"patient", r"case study", r"clinical", r"session", r"therapy", r"treatment",
        r"analyzed?", r"diagnosis", r"case of", r"presented with", r"client",
        r"analysand", r"therapeutic", r"intervention",
    ]),
    ContentType.DREAM_EXAMPLE: _compile([
        r"dreamt?", r"in (the|my|her|his) dream", r"dream(ed|ing) (of|about)",
        r"nightmare", r"had a dream", r"dream content", r"dream report", r"REM sleep",
        r"lucid dream", r"recurring dream", r"vivid dream", r"dream sequence",
        r"dream narrative", r"in this dream",
    ]),
    ContentType.TECHNIQUE: _compile([
        r"technique", r"method", r"approach", r"practice", r"exercise", r"procedure",
        r"how to", r"steps to", r"guide to", r"instruction",
    ]),
    ContentType.DEFINITION: _compile([
        r"defined? as", r"meaning", r"refers? to", r"is called", r"known as",
        r"definition of", r"can be described as", r"is a term", r"denotes",
    ]),
    ContentType.BIOGRAPHY: _compile([
        r"was born", r"life", r"childhood", r"personal", r"biography", r"early years",
        r"grew up", r"background", r"history",
    ]),
    ContentType.METHODOLOGY: _compile([
        r"research", r"study", r"experiment", r"data", r"findings?", r"results?",
        r"analysis", r"method(ology)?", r"scientific", r"empirical",
    ]),
    ContentType.PRACTICE: _compile([
        r"meditation", r"visualization", r"breathing", r"ritual", r"ceremony",
        r"spiritual practice", r"yoga", r"mindfulness", r"contemplation", r"prayer",
    ]),
}

# (pattern, {content type: boost})
CONTEXTUAL_BOOSTS: List[Tuple[Pattern[str], Dict[ContentType, float]]] = [
    (
        re.compile(r"\b(Patient [A-Z]|Case \d+|Mr\.|Mrs\.|Miss|Ms\.|Dr\.)", re.IGNORECASE),
        {ContentType.CASE_STUDY: 2},
    ),
    (
        re.compile(
            r"\b(furthermore|moreover|consequently|thus|therefore|hypothesis|postulate|paradigm|framework)\b",
            re.IGNORECASE,
        ),
        {ContentType.THEORY: 1},
    ),
    (
        re.compile(
            r"\b(first|second|then|next|finally|begin by|start with|continue|repeat)\b",
            re.IGNORECASE,
        ),
        {ContentType.PRACTICE: 1, ContentType.TECHNIQUE: 1},
    ),
    (
        re.compile(
            r"\b(I was|I found myself|suddenly|then I|in the dream|I dreamed|I saw myself)\b",
            re.IGNORECASE,
        ),
        {ContentType.DREAM_EXAMPLE: 2},
    ),
    (
        re.compile(
            r"\b(represents|symbolizes|signifies|embodies|manifests|expresses)\b",
            re.IGNORECASE,
        ),
        {ContentType.SYMBOL: 1},
    ),
]

TOPIC_KEYWORDS: Dict[str, List[str]] = {
    "archetypes": [
        "archetype", "shadow", "anima", "animus", "self", "persona", "hero",
        "mother", "father", "child", "wise old", "trickster", "maiden", "crone",
        "warrior", "lover", "magician", "king", "queen", "fool", "orphan",
        "caregiver", "creator", "destroyer", "ruler", "sage", "innocent",
        "explorer", "rebel", "everyman", "jester", "mentor", "shapeshifter",
    ],
    "individuation": [
        "individuation", "self-realization", "wholeness", "integration",
        "transformation", "becoming", "self-actualization", "personal growth",
        "psychological development", "inner journey", "self-discovery",
        "authentic self", "true nature", "inner work", "soul-making",
    ],
    "unconscious": [
        "unconscious", "subconscious", "repression", "collective unconscious",
        "personal unconscious", "preconscious", "subliminal", "hidden",
        "suppressed", "buried", "latent", "underlying", "depths", "psyche",
        "inner world", "shadow material", "unconscious content",
    ],
    "psychoanalysis": [
        "psychoanalysis", "freudian", "oedipal", "oedipus", "electra", "libido",
        "ego", "id", "superego", "defense mechanism", "repression", "denial",
        "projection", "displacement", "sublimation", "regression", "fixation",
        "transference", "countertransference", "resistance", "catharsis",
        "primary process", "secondary process", "pleasure principle",
        "reality principle", "death drive", "eros", "thanatos",
    ],
    "sexuality": [
        "sexual", "sexuality", "erotic", "libido", "desire", "attraction",
        "intimate", "sensual", "passionate", "lust", "arousal", "seduction",
        "phallic", "genital", "oral", "anal", "polymorphous", "perverse",
        "fetish", "taboo", "forbidden", "incest", "castration",
    ],
    "dreams": [
        "dream", "nightmare", "rem", "sleep", "lucid", "manifest", "latent",
        "dream work", "condensation", "displacement", "symbolization",
        "secondary revision", "day residue", "wish fulfillment", "oneiric",
        "hypnagogic", "hypnopompic", "dream recall", "dream journal",
        "recurring", "prophetic", "precognitive", "telepathic", "shared dream",
    ],
    "common_dream_themes": [
        "falling", "flying", "chase", "chased", "naked", "nude", "exposed",
        "teeth falling", "death", "dying", "birth", "pregnancy", "baby",
        "exam", "test", "unprepared", "late", "lost", "trapped", "escape",
        "drowning", "suffocating", "paralyzed", "frozen", "running",
        "hiding", "fighting", "war", "violence", "accident", "disaster",
        "apocalypse", "end of world", "transformation", "metamorphosis",
    ],
    "symbols": [
        "symbol", "symbolism", "meaning", "interpretation", "image", "metaphor",
        "representation", "sign", "emblem", "icon", "allegory", "analogy",
        "correspondence", "association", "connotation", "significance",
    ],
    "nature_symbols": [
        "water", "ocean", "sea", "lake", "river", "rain", "flood", "wave",
        "fire", "flame", "burning", "blaze", "heat", "volcano", "sun",
        "earth", "ground", "soil", "mountain", "valley", "cave", "forest",
        "air", "wind", "breeze", "sky", "cloud", "storm", "lightning",
        "tree", "flower", "garden", "wilderness", "desert", "jungle",
    ],
    "animal_symbols": [
        "animal", "creature", "beast", "snake", "serpent", "dragon",
        "bird", "eagle", "owl", "raven", "dove", "phoenix", "butterfly",
        "wolf", "dog", "cat", "lion", "tiger", "bear", "horse", "deer",
        "spider", "scorpion", "fish", "whale", "dolphin", "shark",
        "elephant", "monkey", "fox", "rabbit", "mouse", "rat",
    ],
    "object_symbols": [
        "house", "home", "room", "door", "window", "wall", "stairs",
        "bridge", "road", "path", "journey", "vehicle", "car", "train",
        "mirror", "key", "lock", "box", "container", "vessel", "cup",
        "sword", "weapon", "tool", "clock", "time", "money", "treasure",
        "book", "letter", "map", "compass", "light", "lamp", "candle",
    ],
    "body_symbols": [
        "body", "face", "eyes", "mouth", "teeth", "tongue", "hair",
        "hands", "feet", "legs", "arms", "heart", "brain", "blood",
        "skin", "bones", "naked", "clothed", "wounded", "healing",
        "pregnant", "birth", "death", "corpse", "skeleton",
    ],
    "therapy": [
        "therapy", "analysis", "treatment", "session", "patient", "client",
        "therapeutic", "healing", "cure", "intervention", "process",
        "breakthrough", "insight", "realization", "cathartic", "release",
        "integration", "resolution", "working through", "processing",
    ],
    "neuroscience": [
        "brain", "neural", "cortex", "neuron", "cognitive", "neurological",
        "synaptic", "neurotransmitter", "hippocampus", "amygdala", "thalamus",
        "prefrontal", "limbic", "dopamine", "serotonin", "gaba", "rem sleep",
        "sleep cycle", "circadian", "melatonin", "brainwave", "eeg", "fmri",
        "neuroplasticity", "connectivity", "activation", "inhibition",
    ],
    "spirituality": [
        "spiritual", "meditation", "consciousness", "enlightenment", "awakening",
        "transcendent", "divine", "sacred", "holy", "mystical", "numinous",
        "soul", "spirit", "essence", "higher self", "cosmic", "universal",
        "oneness", "unity", "bliss", "ecstasy", "revelation", "epiphany",
        "kundalini", "chakra", "aura", "energy", "vibration", "frequency",
    ],
    "spiritual_practices": [
        "yoga", "meditation", "prayer", "mantra", "chanting", "ritual",
        "ceremony", "shamanic", "vision quest", "sweat lodge", "fasting",
        "pilgrimage", "retreat", "silence", "solitude", "contemplation",
        "mindfulness", "presence", "awareness", "breathing", "pranayama",
        "visualization", "affirmation", "intention", "manifestation",
    ],
    "emotions": [
        "fear", "anxiety", "terror", "panic", "dread", "worry", "stress",
        "anger", "rage", "fury", "frustration", "irritation", "resentment",
        "sadness", "grief", "sorrow", "melancholy", "depression", "despair",
        "joy", "happiness", "bliss", "ecstasy", "euphoria", "pleasure",
        "love", "compassion", "empathy", "affection", "tenderness",
        "shame", "guilt", "embarrassment", "humiliation", "regret",
        "jealousy", "envy", "longing", "desire", "hope", "anticipation",
    ],
    "psychological_states": [
        "conscious", "unconscious", "subconscious", "altered state",
        "trance", "hypnotic", "dissociation", "depersonalization",
        "flow state", "peak experience", "liminal", "threshold",
        "vulnerable", "defensive", "resistant", "open", "receptive",
        "integrated", "fragmented", "split", "whole", "balanced",
    ],
    "mythology": [
        "myth", "mythology", "mythological", "legend", "folklore", "fairy tale",
        "gods", "goddess", "heroes", "heroine", "deity", "pantheon",
        "creation myth", "origin story", "epic", "saga", "odyssey",
        "underworld", "afterlife", "heaven", "hell", "purgatory",
        "quest", "grail", "golden fleece", "ambrosia", "nectar",
    ],
    "cultural_symbols": [
        "cross", "crucifix", "star", "crescent", "yin yang", "mandala",
        "pentagram", "hexagram", "ankh", "om", "lotus", "rose",
        "crown", "throne", "scepter", "temple", "altar", "sanctuary",
        "labyrinth", "maze", "spiral", "circle", "square", "triangle",
        "pyramid", "obelisk", "totem", "talisman", "amulet",
    ],
    "relationships": [
        "mother", "father", "parent", "child", "sibling", "family",
        "lover", "partner", "spouse", "marriage", "divorce", "separation",
        "friend", "enemy", "stranger", "ancestor", "descendant",
        "teacher", "student", "mentor", "guide", "authority", "peer",
        "connection", "bond", "attachment", "intimacy", "distance",
    ],
    "life_stages": [
        "birth", "infancy", "childhood", "adolescence", "youth", "adulthood",
        "midlife", "old age", "death", "rebirth", "initiation", "rite of passage",
        "transition", "transformation", "metamorphosis", "evolution",
        "beginning", "ending", "cycle", "season", "phase", "stage",
    ],
}

_TOPIC_PATTERNS: Dict[str, List[Pattern[str]]] = {
    topic: [re.compile(rf"\b{re.escape(k)}\b") for k in keywords]
    for topic, keywords in TOPIC_KEYWORDS.items()
}

PERSONA_TOPICS: Dict[str, List[str]] = {
    "jung": ["archetypes", "individuation", "unconscious", "symbols",
             "mythology", "dreams", "spirituality", "life_stages"],
    "freud": ["psychoanalysis", "sexuality", "unconscious", "dreams",
              "therapy", "emotions", "relationships", "common_dream_themes"],
    "mary": ["neuroscience", "dreams", "emotions", "psychological_states",
             "common_dream_themes", "therapy"],
    "lakshmi": ["spirituality", "spiritual_practices", "dreams", "symbols",
                "mythology", "cultural_symbols", "life_stages", "emotions"],
}

CONTENT_TYPE_DESCRIPTIONS: Dict[ContentType, str] = {
    ContentType.THEORY: "Theoretical concepts and frameworks",
    ContentType.SYMBOL: "Symbolic meanings and interpretations",
    ContentType.CASE_STUDY: "Clinical cases and patient analyses",
    ContentType.DREAM_EXAMPLE: "Dream narratives and examples",
    ContentType.TECHNIQUE: "Methods and therapeutic techniques",
    ContentType.DEFINITION: "Definitions and explanations of terms",
    ContentType.BIOGRAPHY: "Biographical and personal information",
    ContentType.METHODOLOGY: "Research methods and scientific approaches",
    ContentType.PRACTICE: "Spiritual or therapeutic practices",
}

KEYWORD_STOPWORDS = {
    "The", "And", "But", "For", "With", "This", "That", "These", "Those",
    "What", "When", "Where", "Which", "While",
}
TECHNICAL_TERMS = [
    "complex", "syndrome", "disorder", "mechanism", "process", "phenomenon",
    "principle", "theory", "concept", "archetype", "pattern", "dynamic",
    "function", "structure", "system",
]

CAPITALIZED_PHRASE = re.compile(r"[A-Z][a-z]+(?:\s+[A-Z][a-z]+)*")
QUOTED_TERM = re.compile(r'"([^"]+)"')
DEFINED_TERM = re.compile(
    r"(?:called|known as|termed|referred to as)\s+[\"']?([^\"',.\n]+)[\"']?",
    re.IGNORECASE,
)
TECHNICAL_TERM = re.compile(
    rf"\b(\w+)\s+({'|'.join(TECHNICAL_TERMS)})\b", re.IGNORECASE
)
DREAM_SUBJECT = re.compile(
    r"dream(?:ed|t|ing)?\s+(?:of|about)\s+(\w+(?:\s+\w+){0,2})", re.IGNORECASE
)

HAS_SYMBOLS = re.compile(
    r"\b(symbol|archetype|represents?|signifies?|meaning of|interpretation|metaphor|embodies)\b",
    re.IGNORECASE,
)
HAS_EXAMPLES = re.compile(
    r"\b(for example|for instance|such as|like|consider|let us|imagine|suppose)\b|e\.g\.|i\.e\.",
    re.IGNORECASE,
)
HAS_CASE_STUDY = re.compile(
    r"\b(patient|case|clinical|therapy session|analysis of|treatment|client|analysand)\b",
    re.IGNORECASE,
)
HAS_EXERCISE = re.compile(
    r"\b(exercise|practice|try this|meditation|technique|visualization|breathing|imagine yourself|close your eyes)\b",
    re.IGNORECASE,
)

DEFAULT_CONFIDENCE = 0.3
MAX_TOPICS = 8
MAX_KEYWORDS = 20


class ContentScorer(Protocol):
    """Anything that can score text per content type."""

    def score(self, text: str) -> Dict[ContentType, float]:
        ...


class PatternScorer:
    """Rule-based scorer: one point per matching pattern plus contextual boosts."""

    def __init__(
        self,
        patterns: Optional[Dict[ContentType, List[Pattern[str]]]] = None,
        boosts: Optional[List[Tuple[Pattern[str], Dict[ContentType, float]]]] = None,
    ):
        self.patterns = patterns if patterns is not None else CONTENT_PATTERNS
        self.boosts = boosts if boosts is not None else CONTEXTUAL_BOOSTS

    def score(self, text: str) -> Dict[ContentType, float]:
        scores: Dict[ContentType, float] = {t: 0.0 for t in ContentType}
        for content_type, patterns in self.patterns.items():
            scores[content_type] += sum(1 for p in patterns if p.search(text))
        for pattern, boosts in self.boosts:
            if pattern.search(text):
                for content_type, amount in boosts.items():
                    scores[content_type] += amount
        return scores


def _variance(values: Sequence[float]) -> float:
    mean = sum(values) / len(values)
    return sum((v - mean) ** 2 for v in values) / len(values)


def calculate_confidence(
    ranked: Sequence[Tuple[ContentType, float]],
    dominance_margin: float = 1.5,
) -> float:
    """Confidence of the top-ranked type given the full score ranking.

    Args:
        ranked: (type, score) pairs sorted by descending score
        dominance_margin: Ratio over the runner-up that earns a confidence boost

    Returns:
        Confidence in [0, 1], rounded to two decimals. Returns the
        minimum default (0.3) when no pattern matched at all.
    """
    total = sum(score for _, score in ranked)
    if total == 0:
        return DEFAULT_CONFIDENCE

    primary = ranked[0][1]
    confidence = max(0.4, primary / total)

    if len(ranked) > 1 and primary > ranked[1][1] * dominance_margin:
        confidence = min(confidence + 0.15, 1.0)

    if len(ranked) > 2 and _variance([s for _, s in ranked[:3]]) < 0.5:
        confidence *= 0.9

    if primary > 2:
        confidence = min(confidence + 0.1, 1.0)

    return round(confidence, 2)


def extract_topics(text: str, max_topics: int = MAX_TOPICS) -> List[str]:
    lower = text.lower()
    found: List[Tuple[str, int]] = []
    for topic, patterns in _TOPIC_PATTERNS.items():
        hits = sum(len(p.findall(lower)) for p in patterns)
        # big groups match more easily, so need fewer hits
        threshold = 1 if len(patterns) > 20 else 2
        if hits >= threshold:
            found.append((topic, hits))
    found.sort(key=lambda item: item[1], reverse=True)
    return [topic for topic, _ in found[:max_topics]]


def extract_keywords(text: str, max_keywords: int = MAX_KEYWORDS) -> List[str]:
    keywords: Dict[str, None] = {}

    for phrase in CAPITALIZED_PHRASE.findall(text):
        if len(phrase) > 3 and phrase not in KEYWORD_STOPWORDS:
            keywords.setdefault(phrase.lower(), None)

    for term in QUOTED_TERM.findall(text):
        cleaned = term.lower().strip()
        if len(cleaned) > 3 and len(cleaned.split()) <= 3:
            keywords.setdefault(cleaned, None)

    for term in DEFINED_TERM.findall(text):
        cleaned = term.strip().lower()
        if len(cleaned) > 3:
            keywords.setdefault(cleaned, None)

    for word, term in TECHNICAL_TERM.findall(text):
        keywords.setdefault(f"{word} {term}".lower(), None)

    for subject in DREAM_SUBJECT.findall(text):
        cleaned = subject.strip().lower()
        if len(cleaned) > 3:
            keywords.setdefault(cleaned, None)

    return [kw for kw in keywords if 3 < len(kw) < 50][:max_keywords]


def content_type_description(content_type: ContentType) -> str:
    return CONTENT_TYPE_DESCRIPTIONS.get(content_type, "General content")


def persona_topics(persona: str) -> List[str]:
    """Topic groups most relevant to a persona (all groups if unknown)."""
    return list(PERSONA_TOPICS.get(persona, TOPIC_KEYWORDS))


class ContentClassifier:
    """Classifies knowledge fragments by content type, topics and keywords.

    Args:
        scorer: Content-type scorer; defaults to the regex ``PatternScorer``
        mapper: Optional concept mapper used to backfill applicable themes
        dominance_margin: Ratio over the runner-up that boosts confidence
    """

    def __init__(
        self,
        scorer: Optional[ContentScorer] = None,
        mapper: Optional[ConceptMapper] = None,
        dominance_margin: float = 1.5,
    ):
        self.scorer = scorer or PatternScorer()
        self.mapper = mapper
        self.dominance_margin = dominance_margin

    def classify(self, text: str) -> ClassificationResult:
        """Classify a piece of text.

        Args:
            text: Raw or cleaned fragment text

        Returns:
            ClassificationResult with primary type, confidence, secondary
            types, topics, keywords, content flags and (when a mapper is
            configured) applicable themes and mapped concepts.
        """
        text = text or ""
        scores = self.scorer.score(text)
        order = {t: i for i, t in enumerate(ContentType)}
        ranked = sorted(scores.items(), key=lambda item: (-item[1], order[item[0]]))

        primary_type, primary_score = ranked[0]
        secondary = [
            t for t, s in ranked[1:] if s > 0 and s >= primary_score * 0.3
        ]

        applicable_themes: List[str] = []
        mapped_concepts: List[str] = []
        if self.mapper is not None:
            inference = self.mapper.infer_from_content(text)
            applicable_themes = inference.themes
            mapped_concepts = inference.concepts

        return ClassificationResult(
            content_type=primary_type,
            confidence=calculate_confidence(ranked, self.dominance_margin),
            secondary_types=secondary,
            topics=extract_topics(text),
            keywords=extract_keywords(text),
            has_symbols=bool(HAS_SYMBOLS.search(text)),
            has_examples=bool(HAS_EXAMPLES.search(text)),
            has_case_study=bool(HAS_CASE_STUDY.search(text)),
            has_exercise=bool(HAS_EXERCISE.search(text)),
            applicable_themes=applicable_themes,
            mapped_concepts=mapped_concepts,
        )
