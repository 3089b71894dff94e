"""Bounded retry with exponential backoff and jitter."""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Retry schedule shared by LLM invocations and checkpoint I/O.

    ``max_retries`` counts retries, so an operation runs at most
    ``max_retries + 1`` times.
    """

    max_retries: int = 3
    initial_delay: float = 1.0
    max_delay: float = 32.0
    backoff_multiplier: float = 2.0
    jitter_percent: float = 0.2

    def delay_for(self, attempt: int, rng: Callable[[], float] = random.random) -> float:
        """Delay before retry number ``attempt`` (0-indexed)."""
        base = min(self.initial_delay * (self.backoff_multiplier**attempt), self.max_delay)
        if self.jitter_percent <= 0:
            return base
        spread = base * self.jitter_percent
        return max(0.0, base + (rng() * 2 - 1) * spread)

    def schedule(self) -> list[float]:
        """Base delays without jitter, mostly useful for diagnostics."""
        return [
            min(self.initial_delay * (self.backoff_multiplier**i), self.max_delay)
            for i in range(self.max_retries)
        ]

    def call(
        self,
        operation: Callable[[], T],
        *,
        retry_on: tuple[type[BaseException], ...],
        description: str = "operation",
        sleep: Callable[[float], None] = time.sleep,
        on_retry: Callable[[BaseException, int, float], None] | None = None,
    ) -> tuple[T, int]:
        """Run ``operation`` and return ``(result, attempts)``.

        Exceptions outside ``retry_on`` propagate immediately. Once the retry
        budget is spent the last retryable exception is re-raised.
        """
        attempt = 0
        while True:
            try:
                return operation(), attempt + 1
            except retry_on as exc:
                if attempt >= self.max_retries:
                    logger.warning(
                        "Retries exhausted",
                        extra={"operation": description, "attempts": attempt + 1},
                    )
                    raise
                delay = self.delay_for(attempt)
                logger.info(
                    "Retrying after transient failure",
                    extra={
                        "operation": description,
                        "attempt": attempt + 1,
                        "delay_seconds": round(delay, 3),
                        "error": str(exc),
                    },
                )
                if on_retry is not None:
                    on_retry(exc, attempt + 1, delay)
                sleep(delay)
                attempt += 1
