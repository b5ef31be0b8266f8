"""InMemoryPublisher — IEnvelopePublisher with assertion helpers for tests."""

from __future__ import annotations

from ..envelope import MessageEnvelope
from ..exceptions import MessagingConnectionError
from ..ports import IEnvelopePublisher
from .broker import InMemoryBroker


class InMemoryPublisher(IEnvelopePublisher):
    """In-memory publisher that appends to a shared broker.

    Pass the same InMemoryBroker to InMemoryMessageSource so published
    envelopes reach the next stage. ``fail_next`` simulates an unavailable
    broker; ``get_published`` and ``assert_published`` support assertions.
    """

    def __init__(self, broker: InMemoryBroker | None = None) -> None:
        """If broker is None, a new broker is created (no source connection)."""
        self._broker = broker or InMemoryBroker()
        self._published: list[tuple[str, MessageEnvelope]] = []
        self._failures = 0
        self.closed = False

    def fail_next(self, times: int = 1) -> None:
        """Make the next *times* publishes raise MessagingConnectionError."""
        self._failures += times

    async def publish(self, topic: str, envelope: MessageEnvelope) -> None:
        if self._failures:
            self._failures -= 1
            raise MessagingConnectionError(f"broker unavailable for topic {topic}")
        await self._broker.append(topic, envelope)
        self._published.append((topic, envelope))

    async def close(self) -> None:
        self.closed = True

    def get_published(self, topic: str | None = None) -> list[MessageEnvelope]:
        """Return envelopes published so far, optionally only for *topic*."""
        return [e for t, e in self._published if topic is None or t == topic]

    def assert_published(self, topic: str, count: int = 1) -> None:
        """Assert that exactly *count* envelopes were published to *topic*."""
        published = self.get_published(topic)
        assert len(published) == count, (
            f"Expected {count} message(s) on {topic!r}, got {len(published)}. "
            f"Published: {[t for t, _ in self._published]}"
        )

    @property
    def broker(self) -> InMemoryBroker:
        """Return the broker (e.g. to pass to InMemoryMessageSource)."""
        return self._broker
