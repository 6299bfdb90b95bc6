from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator


@dataclass(frozen=True)
class ReconnectPolicy:
    """
    Capped exponential backoff with a bounded number of attempts.

    With the defaults the waits before each attempt are 1, 2, 4, 5, 5 seconds.
    """
    initial_delay: float = 1.0
    max_delay: float = 5.0
    max_attempts: int = 5

    def delay(self, attempt: int) -> float:
        """Wait before the given 1-based attempt."""
        if attempt < 1:
            raise ValueError(f"attempt must be >= 1, got {attempt}")
        return min(self.initial_delay * (2 ** (attempt - 1)), self.max_delay)

    def delays(self) -> Iterator[float]:
        for attempt in range(1, self.max_attempts + 1):
            yield self.delay(attempt)
