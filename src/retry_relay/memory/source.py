"""InMemoryMessageSource — IMessageSource over an InMemoryBroker topic."""

from __future__ import annotations

from typing import TYPE_CHECKING

from ..ports import IMessageSource

if TYPE_CHECKING:
    from ..envelope import MessageEnvelope
    from .broker import InMemoryBroker


class InMemoryMessageSource(IMessageSource):
    """Reads one topic of a shared broker for one consumer group.

    Starts at the group's committed offset; ``rewind`` moves the read
    position back so an uncommitted record is delivered again.
    """

    def __init__(self, broker: InMemoryBroker, topic: str, group_id: str) -> None:
        self._broker = broker
        self.topic = topic
        self.group_id = group_id
        self._position = 0
        self.started = False

    async def start(self) -> None:
        self._position = self._broker.committed(self.topic, self.group_id)
        self.started = True

    async def stop(self) -> None:
        self.started = False

    async def receive(self) -> MessageEnvelope:
        envelope = await self._broker.wait_for(self.topic, self._position)
        self._position += 1
        return envelope

    async def commit(self, envelope: MessageEnvelope) -> None:
        if envelope.offset is not None:
            self._broker.commit(self.topic, self.group_id, envelope.offset)

    async def rewind(self, envelope: MessageEnvelope) -> None:
        if envelope.offset is not None and envelope.offset < self._position:
            self._position = envelope.offset
