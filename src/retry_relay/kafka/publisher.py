"""KafkaEnvelopePublisher — IEnvelopePublisher with key-partitioned writes."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from aiokafka import AIOKafkaProducer
from aiokafka.errors import KafkaError

from ..exceptions import MessagingConnectionError
from ..ports import IEnvelopePublisher

if TYPE_CHECKING:
    from ..envelope import MessageEnvelope
    from .connection import KafkaConnectionManager


class KafkaEnvelopePublisher(IEnvelopePublisher):
    """Kafka adapter implementing IEnvelopePublisher.

    One producer is shared by the router and the synthetic producer; it is
    created lazily on first publish. ``publish`` waits for the broker
    acknowledgement (``send_and_wait``).
    """

    def __init__(self, connection: KafkaConnectionManager) -> None:
        """Configure publisher.

        Args:
            connection: Shared connection config.
        """
        self._connection = connection
        self._producer: AIOKafkaProducer | None = None
        self._lock = asyncio.Lock()

    async def _get_producer(self) -> AIOKafkaProducer:
        """Create or return existing producer."""
        async with self._lock:
            if self._producer is not None:
                return self._producer
            producer = AIOKafkaProducer(**self._connection.producer_config())
            try:
                await producer.start()
            except KafkaError as e:
                raise MessagingConnectionError(f"Cannot start producer: {e}") from e
            self._producer = producer
            return producer

    async def publish(self, topic: str, envelope: MessageEnvelope) -> None:
        """Publish key, payload and retry headers of *envelope* to *topic*."""
        producer = await self._get_producer()
        key = envelope.key_bytes()
        try:
            await producer.send_and_wait(
                topic,
                value=envelope.payload,
                key=key,
                headers=envelope.metadata.to_headers(),
            )
        except KafkaError as e:
            raise MessagingConnectionError(f"Publish to {topic} failed: {e}") from e

    async def close(self) -> None:
        """Flush and stop the producer."""
        async with self._lock:
            if self._producer is not None:
                producer, self._producer = self._producer, None
                await producer.stop()

    async def health_check(self) -> bool:
        """Return True if the cluster is reachable."""
        return await self._connection.health_check()
