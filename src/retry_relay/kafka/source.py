"""KafkaMessageSource — one stage's consumer with manual offset commit."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from aiokafka import AIOKafkaConsumer, TopicPartition
from aiokafka.errors import KafkaError

from ..envelope import MessageEnvelope, decode_key
from ..exceptions import MessagingConnectionError
from ..headers import RetryMetadata
from ..ports import IMessageSource

if TYPE_CHECKING:
    from .connection import KafkaConnectionManager


def _record_to_envelope(record: Any) -> MessageEnvelope:
    return MessageEnvelope(
        key=decode_key(record.key),
        payload=record.value or b"",
        metadata=RetryMetadata.from_headers(record.headers),
        topic=record.topic,
        partition=record.partition,
        offset=record.offset,
    )


class KafkaMessageSource(IMessageSource):
    """Kafka adapter implementing IMessageSource for a single stage topic.

    Auto-commit is disabled; ``commit`` commits ``offset + 1`` of the given
    record and ``rewind`` seeks the partition back to the record so it is
    fetched again. New groups start from the earliest offset.
    """

    def __init__(
        self,
        connection: KafkaConnectionManager,
        topic: str,
        *,
        group_id: str,
    ) -> None:
        """Configure the source.

        Args:
            connection: Shared connection config.
            topic: Stage topic to read.
            group_id: Consumer group; one per stage.
        """
        self._connection = connection
        self.topic = topic
        self.group_id = group_id
        self._consumer: AIOKafkaConsumer | None = None

    def _require_consumer(self) -> AIOKafkaConsumer:
        if self._consumer is None:
            raise MessagingConnectionError(f"Consumer for {self.topic} is not started")
        return self._consumer

    async def start(self) -> None:
        if self._consumer is not None:
            return
        consumer = AIOKafkaConsumer(
            self.topic, **self._connection.consumer_config(self.group_id)
        )
        try:
            await consumer.start()
        except KafkaError as e:
            raise MessagingConnectionError(
                f"Cannot start consumer for {self.topic}: {e}"
            ) from e
        self._consumer = consumer

    async def stop(self) -> None:
        if self._consumer is not None:
            consumer, self._consumer = self._consumer, None
            await consumer.stop()

    async def receive(self) -> MessageEnvelope:
        consumer = self._require_consumer()
        try:
            record = await consumer.getone()
        except KafkaError as e:
            raise MessagingConnectionError(f"Consume error on {self.topic}: {e}") from e
        return _record_to_envelope(record)

    async def commit(self, envelope: MessageEnvelope) -> None:
        consumer = self._require_consumer()
        if envelope.offset is None or envelope.partition is None:
            return
        tp = TopicPartition(envelope.topic or self.topic, envelope.partition)
        try:
            await consumer.commit({tp: envelope.offset + 1})
        except KafkaError as e:
            raise MessagingConnectionError(
                f"Commit failed on {self.topic}@{envelope.offset}: {e}"
            ) from e

    async def rewind(self, envelope: MessageEnvelope) -> None:
        consumer = self._require_consumer()
        if envelope.offset is None or envelope.partition is None:
            return
        tp = TopicPartition(envelope.topic or self.topic, envelope.partition)
        try:
            consumer.seek(tp, envelope.offset)
        except (KafkaError, ValueError) as e:
            # Partition no longer assigned; the group's committed offset
            # still points at the record.
            raise MessagingConnectionError(
                f"Rewind failed on {self.topic}@{envelope.offset}: {e}"
            ) from e

    async def health_check(self) -> bool:
        """Return True if the cluster is reachable."""
        return await self._connection.health_check()
