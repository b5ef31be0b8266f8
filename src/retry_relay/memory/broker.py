"""In-memory broker for testing — per-topic logs with committed offsets."""

from __future__ import annotations

import asyncio

from ..envelope import MessageEnvelope


class InMemoryBroker:
    """Shared broker: append-only single-partition logs keyed by topic.

    Committed offsets are tracked per ``(topic, group_id)`` so a source
    recreated for the same group resumes after the last committed record,
    like a restarted Kafka consumer.
    """

    def __init__(self) -> None:
        self._logs: dict[str, list[MessageEnvelope]] = {}
        self._committed: dict[tuple[str, str], int] = {}
        self._changed = asyncio.Condition()

    async def append(self, topic: str, envelope: MessageEnvelope) -> MessageEnvelope:
        """Append *envelope* to *topic* and wake waiting sources."""
        async with self._changed:
            log = self._logs.setdefault(topic, [])
            stored = envelope.model_copy(
                update={"topic": topic, "partition": 0, "offset": len(log)}
            )
            log.append(stored)
            self._changed.notify_all()
        return stored

    async def wait_for(self, topic: str, position: int) -> MessageEnvelope:
        """Block until *topic* has a record at *position* and return it."""
        async with self._changed:
            await self._changed.wait_for(
                lambda: len(self._logs.get(topic, [])) > position
            )
            return self._logs[topic][position]

    def records(self, topic: str) -> list[MessageEnvelope]:
        """Return every record appended to *topic* so far."""
        return list(self._logs.get(topic, []))

    def committed(self, topic: str, group_id: str) -> int:
        """Next offset *group_id* will read from *topic* after a restart."""
        return self._committed.get((topic, group_id), 0)

    def commit(self, topic: str, group_id: str, offset: int) -> None:
        key = (topic, group_id)
        self._committed[key] = max(self._committed.get(key, 0), offset + 1)

    def clear(self) -> None:
        """Drop all records and offsets (for test teardown)."""
        self._logs.clear()
        self._committed.clear()
