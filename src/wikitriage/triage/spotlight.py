"""Operator-set author spotlight (temporary priority boost)."""

from __future__ import annotations

import logging
import time
from typing import Callable, Dict, List

logger = logging.getLogger(__name__)


class AuthorSpotlight:
    """Authors the operator wants to see first, each until an expiry time."""

    def __init__(self, duration_seconds: float = 3600.0, clock: Callable[[], float] = time.monotonic) -> None:
        self.duration_seconds = duration_seconds
        self._clock = clock
        self._expires: Dict[str, float] = {}

    def add(self, author: str) -> None:
        self._expires[author] = self._clock() + self.duration_seconds
        logger.info(f"Spotlighting {author} for {self.duration_seconds:.0f}s")

    def remove(self, author: str) -> None:
        self._expires.pop(author, None)

    def is_boosted(self, author: str) -> bool:
        expires = self._expires.get(author)
        if expires is None:
            return False
        if self._clock() >= expires:
            del self._expires[author]
            return False
        return True

    def active(self) -> List[str]:
        return [author for author in list(self._expires) if self.is_boosted(author)]

    def clear(self) -> None:
        self._expires.clear()


__all__ = ["AuthorSpotlight"]
