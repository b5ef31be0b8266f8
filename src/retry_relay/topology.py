"""Stage number to topic mapping."""

from __future__ import annotations

from dataclasses import dataclass, field

INTAKE_STAGE = 0


@dataclass(frozen=True)
class StageTopology:
    """Maps stage numbers to topic names.

    Stage 0 is the intake topic, stage ``n`` (1-based) is ``retries[n - 1]``
    and every stage past the last retry topic is the dead-letter topic.
    """

    intake: str = "main"
    retries: tuple[str, ...] = field(default=("retry-1", "retry-2", "retry-3"))
    dead_letter: str = "deadletter"

    def __post_init__(self) -> None:
        names = self.all_topics()
        if any(not name for name in names):
            raise ValueError("topic names must not be empty")
        if len(set(names)) != len(names):
            raise ValueError(f"topic names must be unique: {names}")

    @property
    def max_retry_stage(self) -> int:
        return len(self.retries)

    def topic_for(self, stage: int) -> str:
        """Destination of *stage*; stages past the last retry go to dead letter."""
        if stage < INTAKE_STAGE:
            raise ValueError(f"stage must be >= 0, got {stage}")
        if stage == INTAKE_STAGE:
            return self.intake
        if stage <= self.max_retry_stage:
            return self.retries[stage - 1]
        return self.dead_letter

    def stage_name(self, stage: int) -> str:
        """Human-readable stage identity used in logs and consumer group ids."""
        if stage == INTAKE_STAGE:
            return "main"
        if stage <= self.max_retry_stage:
            return f"retry{stage}"
        return "deadletter"

    def all_topics(self) -> list[str]:
        return [self.intake, *self.retries, self.dead_letter]
