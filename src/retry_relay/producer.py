"""SyntheticProducer — demo traffic generator for the intake topic."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING

from .employees.models import EmployeeUpdate
from .envelope import MessageEnvelope
from .ports import IBackgroundWorker
from .serialization import PayloadSerializer
from .utils import epoch_ms

if TYPE_CHECKING:
    from collections.abc import Callable

    from .ports import IEnvelopePublisher

logger = logging.getLogger("retry_relay.producer")


class SyntheticProducer(IBackgroundWorker):
    """Publishes an employee update to the intake topic every ``interval``.

    Employee ids cycle through ``1..employee_count``; each message carries
    ``firstName = "Name_<counter>"`` and the current time as ``syncTime``.
    Intake messages carry no retry headers.
    """

    def __init__(
        self,
        publisher: IEnvelopePublisher,
        topic: str,
        *,
        interval: float = 10.0,
        employee_count: int = 5,
        error_pause: float = 1.0,
        serializer: PayloadSerializer | None = None,
        clock: Callable[[], int] = epoch_ms,
    ) -> None:
        if employee_count < 1:
            raise ValueError("employee_count must be >= 1")
        self._publisher = publisher
        self._topic = topic
        self._interval = interval
        self._employee_count = employee_count
        self._error_pause = error_pause
        self._serializer = serializer or PayloadSerializer()
        self._clock = clock
        self._counter = 0
        self._running = False
        self._task: asyncio.Task[None] | None = None

    @property
    def produced(self) -> int:
        return self._counter

    def next_update(self) -> EmployeeUpdate:
        return EmployeeUpdate(
            employee_id=self._counter % self._employee_count + 1,
            first_name=f"Name_{self._counter}",
            sync_time=self._clock(),
        )

    async def produce_once(self) -> EmployeeUpdate:
        """Publish one message (useful in tests)."""
        update = self.next_update()
        envelope = MessageEnvelope(
            key=str(update.employee_id),
            payload=self._serializer.serialize(update),
        )
        await self._publisher.publish(self._topic, envelope)
        logger.info(
            "Produced message #%d to %s: employee_id=%s, first_name=%s",
            self._counter,
            self._topic,
            update.employee_id,
            update.first_name,
        )
        self._counter += 1
        return update

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._run_loop(), name="synthetic-producer")
        logger.info(
            "SyntheticProducer started. Producing messages every %.1fs", self._interval
        )

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError, asyncio.TimeoutError):
                await asyncio.wait_for(self._task, timeout=5.0)
            self._task = None
        logger.info("SyntheticProducer stopped after %d messages", self._counter)

    async def _run_loop(self) -> None:
        while self._running:
            try:
                await self.produce_once()
            except Exception:
                logger.exception("Error producing message")
                await asyncio.sleep(self._error_pause)
                continue
            await asyncio.sleep(self._interval)
