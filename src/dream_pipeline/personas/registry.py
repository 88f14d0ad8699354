"""Persona Registry Module

Maps persona keys and their aliases to configured persona instances.
"""

import logging
from typing import Dict, List, Optional, Type

from ..config import PipelineSettings
from ..errors import UnknownPersonaError
from ..generation import GenerationBackend
from ..models import PersonaMetadata
from .archetypal import JungPersona
from .base import BasePersona
from .devotional import LakshmiPersona
from .neuroscientific import MaryPersona
from .psychoanalytic import FreudPersona

logger = logging.getLogger(__name__)

PERSONA_CLASSES: List[Type[BasePersona]] = [FreudPersona, JungPersona, MaryPersona, LakshmiPersona]

ALIASES = {
    "freudian": "freud",
    "psychoanalytic": "freud",
    "jungian": "jung",
    "archetypal": "jung",
    "neuroscientific": "mary",
    "neuroscientist": "mary",
    "vedantic": "lakshmi",
    "devotional": "lakshmi",
}


class PersonaRegistry:
    """Holds one instance of each persona, sharing a backend and settings."""

    def __init__(
        self,
        backend: GenerationBackend,
        settings: PipelineSettings,
        persona_classes: Optional[List[Type[BasePersona]]] = None,
        aliases: Optional[Dict[str, str]] = None,
    ):
        self._personas: Dict[str, BasePersona] = {}
        for cls in persona_classes or PERSONA_CLASSES:
            self._personas[cls.key] = cls(backend, settings)
        self._aliases = dict(ALIASES if aliases is None else aliases)
        logger.debug("Registered personas: %s", list(self._personas))

    @property
    def keys(self) -> List[str]:
        return list(self._personas)

    def resolve(self, name: str) -> Optional[str]:
        key = (name or "").strip().lower()
        key = self._aliases.get(key, key)
        return key if key in self._personas else None

    def get(self, name: str) -> BasePersona:
        """
        Look up a persona by key or alias (case-insensitive).

        Raises:
            UnknownPersonaError: If no persona matches
        """
        key = self.resolve(name)
        if key is None:
            raise UnknownPersonaError(name, self.keys)
        return self._personas[key]

    def metadata(self) -> List[PersonaMetadata]:
        return [p.metadata for p in self._personas.values()]
