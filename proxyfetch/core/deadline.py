"""Total time budget shared by all phases of one fetch."""

from __future__ import annotations

import time
from typing import Optional

from proxyfetch.core.errors import FetchTimeout


class Deadline:
    """Tracks the time left of a budget; ``None`` means unbounded."""

    def __init__(self, budget: Optional[float] = None):
        if budget is not None and budget <= 0:
            raise ValueError("Timeout budget must be positive")
        self.budget = budget
        self._expires = time.monotonic() + budget if budget else None

    def remaining(self, phase: str) -> Optional[float]:
        """Seconds left, raising ``FetchTimeout`` for ``phase`` once spent."""
        if self._expires is None:
            return None
        left = self._expires - time.monotonic()
        if left <= 0:
            raise FetchTimeout(phase, self.budget)
        return left
