"""RetryRouter — decides and performs the next hop of a failed message."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from .exceptions import RoutingError
from .utils import epoch_ms

if TYPE_CHECKING:
    from collections.abc import Callable

    from .backoff import BackoffPolicy
    from .envelope import MessageEnvelope
    from .headers import RetryMetadata
    from .ports import IEnvelopePublisher
    from .topology import StageTopology

logger = logging.getLogger("retry_relay.router")


@dataclass(frozen=True)
class RoutingDecision:
    """Outcome of one hop: where the message went and what it carried."""

    stage: int
    topic: str
    metadata: RetryMetadata
    delay_ms: int | None
    dead_lettered: bool


class RetryRouter:
    """Single decision point for failed messages.

    A message failing at stage ``n`` is published to stage ``n + 1`` with a
    fresh not-before stamp, or to the dead-letter topic once ``n + 1`` is past
    the last retry stage. Key and payload are never modified.

    ``route`` returns only after the publisher confirmed the write; callers
    must not commit the original record before that.
    """

    def __init__(
        self,
        publisher: IEnvelopePublisher,
        topology: StageTopology,
        backoff: BackoffPolicy,
        *,
        clock: Callable[[], int] = epoch_ms,
    ) -> None:
        if backoff.max_stage != topology.max_retry_stage:
            raise ValueError(
                f"backoff defines {backoff.max_stage} stages but topology has "
                f"{topology.max_retry_stage} retry topics"
            )
        self._publisher = publisher
        self._topology = topology
        self._backoff = backoff
        self._clock = clock

    @property
    def topology(self) -> StageTopology:
        return self._topology

    def plan(
        self, envelope: MessageEnvelope, failed_stage: int, error: str
    ) -> RoutingDecision:
        """Compute the next hop for *envelope* without publishing it."""
        metadata = envelope.metadata
        origin = (
            metadata.origin_topic
            or envelope.topic
            or self._topology.topic_for(failed_stage)
        )
        target = failed_stage + 1
        if target <= self._topology.max_retry_stage:
            delay = self._backoff.next_delay(target)
            outgoing = metadata.next_hop(
                stage=target,
                not_before_epoch_ms=self._clock() + delay,
                origin_topic=origin,
                error=error,
            )
            return RoutingDecision(
                stage=target,
                topic=self._topology.topic_for(target),
                metadata=outgoing,
                delay_ms=delay,
                dead_lettered=False,
            )
        last_stage = (
            metadata.retry_stage if metadata.retry_stage is not None else failed_stage
        )
        outgoing = metadata.dead_letter(
            stage=last_stage, origin_topic=origin, error=error
        )
        return RoutingDecision(
            stage=last_stage,
            topic=self._topology.dead_letter,
            metadata=outgoing,
            delay_ms=None,
            dead_lettered=True,
        )

    async def route(
        self, envelope: MessageEnvelope, failed_stage: int, error: str
    ) -> RoutingDecision:
        """Publish *envelope* to its next stage and wait for the acknowledgement.

        Raises:
            RoutingError: the publish failed; the original record must stay
                uncommitted.
        """
        decision = self.plan(envelope, failed_stage, error)
        outgoing = envelope.with_metadata(decision.metadata)
        try:
            await self._publisher.publish(decision.topic, outgoing)
        except Exception as e:
            raise RoutingError(
                f"Failed to route message key={envelope.key!r} to "
                f"{decision.topic}: {e}",
                topic=decision.topic,
            ) from e

        if decision.dead_lettered:
            logger.error(
                "Routed message key=%s to DLQ %s. Origin: %s, RetryStage: %s, Error: %s",
                envelope.key,
                decision.topic,
                decision.metadata.origin_topic,
                decision.stage,
                error,
            )
        else:
            logger.warning(
                "Routed message key=%s to %s with delay %sms. Origin: %s, Error: %s",
                envelope.key,
                decision.topic,
                decision.delay_ms,
                decision.metadata.origin_topic,
                error,
            )
        return decision
