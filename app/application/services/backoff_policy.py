"""Exponential backoff with jitter for sync retries."""

from __future__ import annotations

import math
import random
from collections.abc import Callable

DEFAULT_BASE_DELAY_SECONDS = 5.0
DEFAULT_MAX_DELAY_SECONDS = 3600.0
JITTER_FRACTION = 0.2
# Longest provider-requested wait honoured (one day).
MAX_RETRY_AFTER_SECONDS = 86400.0


def compute_delay(
    attempt_number: int,
    base: float = DEFAULT_BASE_DELAY_SECONDS,
    max_delay: float = DEFAULT_MAX_DELAY_SECONDS,
    *,
    random_fn: Callable[[], float] = random.random,
) -> float:
    """Return the retry delay in seconds for the given attempt (starting at 1).

    delay = base * 2^(attempt - 1), perturbed by up to +/-10% (a 20% band)
    so accounts that fail together do not retry together, then capped at
    max_delay.
    """
    attempt = max(attempt_number, 1)
    # Cap the exponent so huge attempt numbers cannot overflow float math.
    delay = base * (2 ** min(attempt - 1, 64))
    jitter = delay * JITTER_FRACTION * (random_fn() - 0.5)
    return min(delay + jitter, max_delay)


class BackoffPolicy:
    """Backoff policy bound to configured base and max delay."""

    def __init__(
        self,
        base_seconds: float = DEFAULT_BASE_DELAY_SECONDS,
        max_seconds: float = DEFAULT_MAX_DELAY_SECONDS,
        random_fn: Callable[[], float] = random.random,
    ) -> None:
        if base_seconds <= 0:
            raise ValueError("base_seconds must be positive")
        if max_seconds < base_seconds:
            raise ValueError("max_seconds must be >= base_seconds")
        self.base_seconds = base_seconds
        self.max_seconds = max_seconds
        self._random = random_fn

    def compute_delay(self, attempt_number: int) -> float:
        """Return the jittered, capped delay for attempt_number."""
        return compute_delay(
            attempt_number,
            self.base_seconds,
            self.max_seconds,
            random_fn=self._random,
        )

    def resolve_delay(
        self, attempt_number: int, retry_after_seconds: float | None = None
    ) -> float:
        """Return retry_after_seconds when the provider gave one, else the computed backoff.

        The provider value is clamped to [0, MAX_RETRY_AFTER_SECONDS]; a
        non-finite value is ignored.
        """
        if retry_after_seconds is not None and math.isfinite(retry_after_seconds):
            return min(max(float(retry_after_seconds), 0.0), MAX_RETRY_AFTER_SECONDS)
        return self.compute_delay(attempt_number)
