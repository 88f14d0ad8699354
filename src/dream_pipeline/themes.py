"""Theme Taxonomy & Concept Mapper

Static mapping from dream-theme codes to interpretive concepts and
guidance hints. Used at query time to give persona prompts an
interpretive frame for the detected themes, and at ingestion time to
backfill applicable themes for fragments that carry no explicit tags.

Unknown theme codes are not an error: they simply map to nothing.
"""

import logging
import re
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel

from .models import Theme

logger = logging.getLogger(__name__)


class Concept(BaseModel):
    name: str
    description: str
    related_archetypes: List[str] = []
    psychological_process: Optional[str] = None


class ThemeMapping(BaseModel):
    theme_code: str
    concepts: List[Concept]
    interpretive_approach: str


class ConceptMapping(BaseModel):
    concepts: List[str] = []
    hints: List[str] = []


class ContentInference(BaseModel):
    concepts: List[str] = []
    themes: List[str] = []
    context: str = ""


SHADOW = Concept(
    name="Shadow",
    description="The rejected and hidden aspects of the personality",
    related_archetypes=["Dark Double", "Enemy", "Trickster"],
    psychological_process="Integration of rejected aspects",
)
ANIMA_ANIMUS = Concept(
    name="Anima/Animus",
    description="The contrasexual aspect of the psyche",
    related_archetypes=["Wise Woman", "Wise Old Man", "Lover"],
    psychological_process="Integration of opposite gender qualities",
)
SELF = Concept(
    name="Self",
    description="The unified whole of conscious and unconscious",
    related_archetypes=["Mandala", "Divine Child", "Wise Old Man/Woman"],
    psychological_process="Individuation",
)
PERSONA = Concept(
    name="Persona",
    description="The mask we present to the world",
    related_archetypes=["Mask", "Actor", "Social Role"],
    psychological_process="Social adaptation vs authentic self",
)
COLLECTIVE_UNCONSCIOUS = Concept(
    name="Collective Unconscious",
    description="Shared psychic material of humanity",
    related_archetypes=["Great Mother", "Hero", "Trickster"],
    psychological_process="Connection to universal human experience",
)
WISE_OLD_MAN = Concept(
    name="Wise Old Man",
    description="The archetype of meaning, guidance and inner knowing",
    related_archetypes=["Sage", "Hermit", "Guide"],
    psychological_process="Receiving guidance from the deeper psyche",
)
GREAT_MOTHER = Concept(
    name="Great Mother",
    description="The nourishing and devouring ground of life",
    related_archetypes=["Earth Mother", "Witch", "Nature"],
    psychological_process="Relationship to origins and containment",
)
INDIVIDUATION = Concept(
    name="Individuation",
    description="The lifelong process of becoming who one truly is",
    related_archetypes=["Hero", "Self"],
    psychological_process="Integration of conscious and unconscious",
)
PROJECTION = Concept(
    name="Projection",
    description="Seeing our unconscious contents in others",
    psychological_process="Withdrawing projections",
)

CORE_CONCEPTS: Dict[str, Concept] = {
    c.name: c
    for c in (
        SHADOW,
        ANIMA_ANIMUS,
        SELF,
        PERSONA,
        COLLECTIVE_UNCONSCIOUS,
        WISE_OLD_MAN,
        GREAT_MOTHER,
        INDIVIDUATION,
    )
}


def _mapping(code: str, concepts: List[Concept], approach: str) -> ThemeMapping:
    return ThemeMapping(theme_code=code, concepts=concepts, interpretive_approach=approach)


DEFAULT_MAPPINGS: Dict[str, ThemeMapping] = {
    m.theme_code: m
    for m in (
        _mapping(
            "forest",
            [
                COLLECTIVE_UNCONSCIOUS,
                Concept(
                    name="Descent into the Unknown",
                    description="Entering the dark wood where the known path ends",
                    related_archetypes=["Hero", "Wanderer"],
                    psychological_process="Encounter with unconscious contents",
                ),
                GREAT_MOTHER,
            ],
            "The dark forest is the realm of the unconscious, where the ego loses its "
            "familiar path and must trust what grows beyond the light of awareness.",
        ),
        _mapping(
            "owl",
            [
                WISE_OLD_MAN,
                Concept(
                    name="Nocturnal Wisdom",
                    description="Knowledge that sees in darkness",
                    related_archetypes=["Athena", "Sage"],
                    psychological_process="Intuition emerging from the unconscious",
                ),
                SELF,
            ],
            "The owl carries the wisdom that sees in the dark: a messenger of the Self "
            "bringing knowledge the conscious mind already holds but has not yet claimed.",
        ),
        _mapping(
            "wisdom",
            [WISE_OLD_MAN, SELF, INDIVIDUATION],
            "Dreams of inner knowing point to the guiding function of the Self and the "
            "wise figure who speaks what the dreamer has not dared to say aloud.",
        ),
        _mapping(
            "water",
            [
                COLLECTIVE_UNCONSCIOUS,
                Concept(
                    name="Emotional Depths",
                    description="The fluid realm of feeling and the unconscious",
                    related_archetypes=["Great Mother", "Baptism"],
                    psychological_process="Immersion in and renewal through feeling",
                ),
            ],
            "Water is the commonest symbol of the unconscious: its clarity, depth and "
            "movement describe the dreamer's relationship to what lies beneath.",
        ),
        _mapping(
            "snake",
            [
                Concept(
                    name="Transformation Symbol",
                    description="The snake as symbol of renewal and transformation",
                    related_archetypes=["Ouroboros", "Kundalini"],
                    psychological_process="Psychic transformation and renewal",
                ),
                SHADOW,
            ],
            "The snake is one of the most ancient symbols of transformation, representing "
            "both the dangerous and healing aspects of the unconscious.",
        ),
        _mapping(
            "death",
            [
                Concept(
                    name="Psychic Death and Rebirth",
                    description="The death of old attitudes and birth of new consciousness",
                    psychological_process="Transformation of personality",
                ),
                SELF,
            ],
            "Death in dreams rarely means physical death but rather the end of a "
            "psychological attitude that must die for new growth.",
        ),
        _mapping(
            "shadow",
            [SHADOW],
            "Direct encounter with the shadow: the dark double that contains all we "
            "refuse to acknowledge about ourselves.",
        ),
        _mapping(
            "betrayal",
            [
                SHADOW,
                Concept(
                    name="Projection",
                    description="Seeing our own capacity for betrayal in others",
                    psychological_process="Recognizing our own shadow",
                ),
            ],
            "Betrayal dreams often reveal where we betray ourselves or project our own "
            "shadow onto others.",
        ),
        _mapping(
            "ex_partner",
            [
                ANIMA_ANIMUS,
                Concept(
                    name="Unlived Life",
                    description="Aspects of self projected onto past relationships",
                    psychological_process="Reclaiming projections",
                ),
            ],
            "Former partners in dreams often represent unlived aspects of our own "
            "personality we projected onto them.",
        ),
        _mapping(
            "house",
            [
                SELF,
                Concept(
                    name="Structure of the Psyche",
                    description="Floors and rooms as levels of consciousness",
                    psychological_process="Exploring unknown rooms of the personality",
                ),
            ],
            "The house is an image of the psyche itself; cellars, attics and hidden rooms "
            "show levels of the personality awaiting exploration.",
        ),
        _mapping(
            "flying",
            [
                Concept(
                    name="Spiritual Liberation",
                    description="Rising above earthly limitations",
                    related_archetypes=["Spirit", "Puer Aeternus"],
                    psychological_process="Transcendent function",
                ),
                Concept(
                    name="Inflation",
                    description="Identification with archetypal powers",
                    psychological_process="Need for grounding",
                ),
            ],
            "Flying can represent spiritual liberation or dangerous inflation: rising "
            "above limitations or losing touch with reality.",
        ),
        _mapping(
            "falling",
            [
                Concept(
                    name="Loss of Ego Control",
                    description="Surrender to unconscious forces",
                    psychological_process="Letting go of conscious control",
                ),
                SHADOW,
            ],
            "Falling represents the necessary descent into the unconscious, the loss of "
            "ego control that precedes transformation.",
        ),
        _mapping(
            "being_chased",
            [
                SHADOW,
                Concept(
                    name="Repressed Content",
                    description="Unconscious content demanding attention",
                    psychological_process="Confronting what we flee from",
                ),
            ],
            "What chases us in dreams is often what we refuse to face in ourselves: the "
            "shadow demanding integration.",
        ),
        _mapping(
            "climate_change",
            [
                COLLECTIVE_UNCONSCIOUS,
                Concept(
                    name="World Soul (Anima Mundi)",
                    description="The suffering of the collective soul of the world",
                    psychological_process="Awakening to collective responsibility",
                ),
            ],
            "Climate anxiety in dreams reflects the collective awareness of our "
            "disconnection from nature and the world soul.",
        ),
        _mapping(
            "ai",
            [SHADOW, COLLECTIVE_UNCONSCIOUS],
            "The fear of artificial intelligence replacing human consciousness reflects "
            "the shadow of our technological age.",
        ),
        _mapping(
            "virtual_reality",
            [
                PERSONA,
                Concept(
                    name="Reality vs Illusion",
                    description="The boundary between inner and outer reality",
                    psychological_process="Distinguishing authentic experience from projection",
                ),
            ],
            "Virtual reality in dreams is a modern form of the ancient question of "
            "illusion and reality, the persona we construct versus authentic being.",
        ),
        _mapping(
            "social_media",
            [PERSONA, PROJECTION],
            "Social media dreams reveal the inflation of the persona and the projection "
            "of our unconscious onto the collective digital screen.",
        ),
    )
}

# Keyword sniffing vocabulary for content-to-concept inference
CONCEPT_KEYWORDS: Dict[str, List[str]] = {
    "Shadow": ["shadow", "dark side", "rejected", "repressed"],
    "Anima/Animus": ["anima", "animus", "contrasexual", "inner woman", "inner man"],
    "Self": ["the self", "individuation", "wholeness", "mandala"],
    "Persona": ["persona", "mask", "social face", "public image"],
    "Collective Unconscious": ["collective unconscious", "archetype", "universal", "primordial"],
    "Wise Old Man": ["wise old man", "sage", "wise man", "old man"],
    "Great Mother": ["great mother", "earth mother", "devouring mother"],
    "Individuation": ["individuation", "becoming whole"],
}

THEME_KEYWORDS: Dict[str, List[str]] = {
    "forest": ["forest", "woods", "trees", "woodland"],
    "owl": ["owl", "owls"],
    "wisdom": ["wisdom", "wise", "knowing", "insight"],
    "water": ["water", "ocean", "river", "sea", "flood", "lake"],
    "snake": ["snake", "serpent"],
    "death": ["death", "dying", "corpse", "funeral"],
    "shadow": ["shadow", "dark version", "evil twin", "double"],
    "betrayal": ["betrayal", "betrayed", "cheating", "unfaithful"],
    "ex_partner": ["ex-partner", "ex partner", "former lover", "ex-wife", "ex-husband"],
    "house": ["house", "home", "room", "cellar", "attic"],
    "flying": ["flying", "flight", "soaring"],
    "falling": ["falling", "fall", "plunging"],
    "being_chased": ["chased", "chasing", "pursued", "pursuit"],
    "climate_change": ["climate", "global warming", "wildfire", "melting ice"],
    "ai": ["artificial intelligence", "robot", "machine consciousness"],
    "virtual_reality": ["virtual reality", "simulation", "headset"],
    "social_media": ["social media", "instagram", "facebook", "followers"],
}


def _contains(text: str, phrase: str) -> bool:
    return re.search(rf"\b{re.escape(phrase)}\b", text) is not None


class ConceptMapper:
    """Lookup service over theme mappings and the concept catalogue."""

    def __init__(
        self,
        mappings: Optional[Dict[str, ThemeMapping]] = None,
        concept_keywords: Optional[Dict[str, List[str]]] = None,
        theme_keywords: Optional[Dict[str, List[str]]] = None,
    ):
        self.mappings = dict(DEFAULT_MAPPINGS if mappings is None else mappings)
        self.concept_keywords = concept_keywords or CONCEPT_KEYWORDS
        self.theme_keywords = theme_keywords or THEME_KEYWORDS

    def mapping_for(self, theme_code: str) -> Optional[ThemeMapping]:
        return self.mappings.get(theme_code)

    def concepts_for(self, theme_code: str) -> List[Concept]:
        mapping = self.mappings.get(theme_code)
        return list(mapping.concepts) if mapping else []

    def approach_for(self, theme_code: str) -> Optional[str]:
        mapping = self.mappings.get(theme_code)
        return mapping.interpretive_approach if mapping else None

    def themes_for_concept(self, concept_name: str) -> List[str]:
        return [
            code
            for code, mapping in self.mappings.items()
            if any(c.name == concept_name for c in mapping.concepts)
        ]

    def map_themes_to_concepts(self, theme_codes: Iterable[str]) -> ConceptMapping:
        """Collect concept names and interpretive hints for a dream's themes.

        Order follows the input codes; duplicates are dropped. Codes with no
        mapping contribute nothing.
        """
        concepts: Dict[str, None] = {}
        hints: List[str] = []
        for code in theme_codes:
            mapping = self.mappings.get(code)
            if mapping is None:
                logger.debug("No concept mapping for theme %s", code)
                continue
            for concept in mapping.concepts:
                concepts.setdefault(concept.name, None)
            if mapping.interpretive_approach not in hints:
                hints.append(mapping.interpretive_approach)
        return ConceptMapping(concepts=list(concepts), hints=hints)

    def infer_from_content(self, content: str) -> ContentInference:
        """Best-effort concept and theme detection by keyword sniffing.

        Used to backfill ``applicable_themes`` for fragments ingested
        without explicit theme tags.
        """
        text = " ".join(content.lower().split())
        if not text:
            return ContentInference()

        concepts: Dict[str, None] = {}
        themes: Dict[str, None] = {}

        for concept, keywords in self.concept_keywords.items():
            if any(_contains(text, k) for k in keywords):
                concepts.setdefault(concept, None)
                for code in self.themes_for_concept(concept):
                    themes.setdefault(code, None)

        for code, keywords in self.theme_keywords.items():
            if any(_contains(text, k) for k in keywords):
                themes.setdefault(code, None)

        context = ""
        if concepts:
            context = f"Content discusses {', '.join(concepts)}"
        return ContentInference(concepts=list(concepts), themes=list(themes), context=context)


DEFAULT_THEMES: List[Theme] = [
    Theme(code="forest", name="Forest", description="Woods, dark forests, losing or finding a path among trees"),
    Theme(code="owl", name="Owl", description="Owls, night birds and messengers of hidden knowledge"),
    Theme(code="wisdom", name="Wisdom", description="Inner knowing, guidance and wise figures offering answers"),
    Theme(code="water", name="Water", description="Oceans, rivers, floods and immersion in deep water"),
    Theme(code="snake", name="Snake", description="Snakes and serpents, biting, shedding skin or coiling"),
    Theme(code="death", name="Death", description="Dying, funerals, corpses and endings"),
    Theme(code="shadow", name="Shadow Figure", description="Dark doubles, menacing strangers and hidden selves"),
    Theme(code="betrayal", name="Betrayal", description="Being betrayed, cheated on or deceived by someone close"),
    Theme(code="ex_partner", name="Ex-Partner", description="Former lovers, ex partners and old relationships returning"),
    Theme(code="house", name="House", description="Houses, hidden rooms, cellars and attics"),
    Theme(code="flying", name="Flying", description="Flying, floating or soaring above the ground"),
    Theme(code="falling", name="Falling", description="Falling from heights, losing footing or plunging downward"),
    Theme(code="being_chased", name="Being Chased", description="Being pursued, hunted or chased by a threat"),
    Theme(code="climate_change", name="Climate Change", description="Environmental collapse, wildfires and rising seas"),
    Theme(code="ai", name="Artificial Intelligence", description="Robots, machines and artificial minds"),
    Theme(code="virtual_reality", name="Virtual Reality", description="Simulations, headsets and unreal worlds"),
    Theme(code="social_media", name="Social Media", description="Feeds, followers and public exposure online"),
]
