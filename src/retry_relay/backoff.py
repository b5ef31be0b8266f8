"""BackoffPolicy — fixed per-stage delays with bounded jitter."""

from __future__ import annotations

import random
from collections.abc import Sequence
from dataclasses import dataclass


@dataclass(frozen=True)
class StageDelay:
    """Delay of one retry stage: ``base_ms`` plus up to ``jitter_ms`` at random."""

    base_ms: int
    jitter_ms: int = 0

    def __post_init__(self) -> None:
        if self.base_ms < 0 or self.jitter_ms < 0:
            raise ValueError("base_ms and jitter_ms must be >= 0")


class BackoffPolicy:
    """Computes how long a message waits before its next stage may process it."""

    def __init__(
        self,
        delays: Sequence[StageDelay],
        *,
        rng: random.Random | None = None,
    ) -> None:
        """Configure per-stage delays.

        Args:
            delays: One entry per retry stage, stage 1 first.
            rng: Optional random source for jitter (tests inject a seeded one).
                When omitted a fresh generator is used for every computation.
        """
        if not delays:
            raise ValueError("at least one retry stage delay is required")
        self._delays = tuple(delays)
        self._rng = rng

    @classmethod
    def three_stage(
        cls,
        *,
        retry_1_ms: int,
        retry_2_ms: int,
        retry_3_base_ms: int,
        retry_3_jitter_ms: int,
        rng: random.Random | None = None,
    ) -> BackoffPolicy:
        """Two fixed stages followed by a jittered final stage."""
        return cls(
            [
                StageDelay(retry_1_ms),
                StageDelay(retry_2_ms),
                StageDelay(retry_3_base_ms, retry_3_jitter_ms),
            ],
            rng=rng,
        )

    @property
    def max_stage(self) -> int:
        return len(self._delays)

    def bounds(self, stage: int) -> tuple[int, int]:
        """Inclusive (min, max) delay in ms that *stage* can produce."""
        delay = self._delay(stage)
        return delay.base_ms, delay.base_ms + delay.jitter_ms

    def next_delay(self, stage: int) -> int:
        """Return the delay in ms before a message at *stage* becomes eligible."""
        delay = self._delay(stage)
        if delay.jitter_ms == 0:
            return delay.base_ms
        rng = self._rng or random.Random()  # noqa: S311
        return delay.base_ms + rng.randint(0, delay.jitter_ms)

    def _delay(self, stage: int) -> StageDelay:
        if not 1 <= stage <= self.max_stage:
            raise ValueError(f"stage must be between 1 and {self.max_stage}, got {stage}")
        return self._delays[stage - 1]
