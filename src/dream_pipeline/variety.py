"""Variety Tracking Module

Keeps interpretations from sounding alike by remembering, per persona,
which stylistic variants (opening approach, structural pattern,
vocabulary anchor) and which opening words were used recently.

The history is advisory: losing it only reduces stylistic diversity. It is
process-wide state shared by concurrent requests, so every mutation happens
under one lock; a tracker instance is injected wherever it is needed.
"""

import logging
import random
import threading
from collections import deque
from typing import Deque, Dict, Iterable, List, Optional, Sequence, Tuple, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

OPENING_WORDS = 3


class VariantTracker:
    """Bounded per-persona history of stylistic choices.

    Args:
        capacity: Picks remembered per (persona, category)
        opening_capacity: Opening phrases remembered per persona
        rng: Random source for the rotation start; a fresh ``random.Random``
            if omitted
    """

    def __init__(self, capacity: int = 5, opening_capacity: int = 10, rng: Optional[random.Random] = None):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self.opening_capacity = opening_capacity
        self._rng = rng or random.Random()
        self._history: Dict[Tuple[str, str], Deque[str]] = {}
        self._openings: Dict[str, Deque[str]] = {}
        self._lock = threading.Lock()

    def _history_for(self, persona_key: str, category: str) -> Deque[str]:
        key = (persona_key, category)
        if key not in self._history:
            self._history[key] = deque(maxlen=self.capacity)
        return self._history[key]

    def pick_unique(self, candidates: Sequence[T], persona_key: str, category: str = "default") -> T:
        """
        Pick a candidate not used recently by this persona.

        Candidates are scanned from a random starting point. When every
        candidate is in recent history, the oldest half of the history is
        dropped (at least one entry) and the scan repeats, so a pick is
        always made.

        Raises:
            ValueError: If ``candidates`` is empty
        """
        if not candidates:
            raise ValueError("Cannot pick from an empty candidate list")

        with self._lock:
            history = self._history_for(persona_key, category)
            start = self._rng.randrange(len(candidates))
            rotated = list(candidates[start:]) + list(candidates[:start])

            while True:
                recent = set(history)
                choice = next((c for c in rotated if str(c) not in recent), None)
                if choice is not None:
                    break
                drop = max(1, len(history) // 2)
                logger.debug(
                    "All %d candidates recently used by %s/%s; forgetting %d oldest",
                    len(candidates), persona_key, category, drop,
                )
                for _ in range(drop):
                    history.pop()

            history.appendleft(str(choice))
            return choice

    def track_opening(self, persona_key: str, text: str) -> Optional[str]:
        """Remember the first words of an interpretation."""
        words = (text or "").strip().lower().split()
        if not words:
            return None
        opening = " ".join(words[:OPENING_WORDS])
        with self._lock:
            if persona_key not in self._openings:
                self._openings[persona_key] = deque(maxlen=self.opening_capacity)
            self._openings[persona_key].appendleft(opening)
        return opening

    def recent_openings(self, persona_key: str) -> List[str]:
        with self._lock:
            return list(self._openings.get(persona_key, ()))

    def get_forbidden_openings(self, persona_key: str, static: Iterable[str] = ()) -> List[str]:
        """Negative prompt constraints built from recent and always-banned openings."""
        phrases: Dict[str, None] = {}
        for phrase in list(static) + self.recent_openings(persona_key):
            phrases.setdefault(phrase, None)
        return [f'Do NOT start with "{phrase}"' for phrase in phrases]

    def reset(self) -> None:
        with self._lock:
            self._history.clear()
            self._openings.clear()
