"""Exponential backoff for the feed poll loop.

The delay after the n-th consecutive failure is ``base * multiplier**(n-1)``
capped at the ceiling; a success resets it to the base interval.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class PollBackoff:
    """Tracks consecutive poll failures and the delay they imply.

    Attributes:
        base_delay_seconds: Normal refresh interval
        max_delay_seconds: Ceiling for the retry delay
        backoff_multiplier: Growth factor per consecutive failure
        failures: Consecutive failures since the last success
    """

    base_delay_seconds: float = 2.0
    max_delay_seconds: float = 120.0
    backoff_multiplier: float = 2.0
    failures: int = 0

    def uncapped_delay(self) -> float:
        if self.failures == 0:
            return self.base_delay_seconds
        return self.base_delay_seconds * (self.backoff_multiplier ** (self.failures - 1))

    @property
    def delay(self) -> float:
        """Delay before the next poll attempt."""
        return min(self.uncapped_delay(), self.max_delay_seconds)

    @property
    def exhausted(self) -> bool:
        """True once failures have pushed the delay to the ceiling."""
        return self.failures > 0 and self.uncapped_delay() >= self.max_delay_seconds

    def record_failure(self) -> float:
        self.failures += 1
        return self.delay

    def record_success(self) -> float:
        self.failures = 0
        return self.delay


__all__ = ["PollBackoff"]
