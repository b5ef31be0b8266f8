"""StagedConsumer — one retry stage's receive/gate/parse/apply/route loop."""

from __future__ import annotations

import asyncio
import contextlib
import enum
import logging
from typing import TYPE_CHECKING

from .employees.models import UpdateOutcome
from .exceptions import (
    MessagingError,
    MessagingSerializationError,
    RecordNotFoundError,
    RoutingError,
)
from .ports import IBackgroundWorker
from .serialization import PayloadSerializer
from .topology import INTAKE_STAGE
from .utils import epoch_ms

if TYPE_CHECKING:
    from collections.abc import Callable

    from .employees.models import EmployeeUpdate
    from .envelope import MessageEnvelope
    from .ports import IEmployeeStore, IMessageSource
    from .router import RetryRouter

logger = logging.getLogger("retry_relay.consumer")


class MessageOutcome(str, enum.Enum):
    """What happened to one received record."""

    APPLIED = "applied"
    STALE = "stale"
    NOT_FOUND = "not_found"
    MALFORMED = "malformed"
    RETRY_SCHEDULED = "retry_scheduled"
    DEAD_LETTERED = "dead_lettered"
    ROUTING_FAILED = "routing_failed"
    DEFERRED = "deferred"

    @property
    def committed(self) -> bool:
        return self not in (MessageOutcome.ROUTING_FAILED, MessageOutcome.DEFERRED)


_STORE_OUTCOMES = {
    UpdateOutcome.APPLIED: MessageOutcome.APPLIED,
    UpdateOutcome.STALE: MessageOutcome.STALE,
    UpdateOutcome.NOT_FOUND: MessageOutcome.NOT_FOUND,
}


def describe_failure(exc: BaseException) -> str:
    """Human-readable failure description carried in ``x-last-error``."""
    return str(exc) or type(exc).__name__


class StagedConsumer(IBackgroundWorker):
    """Processes one stage of the retry chain, one record at a time.

    Per record:

    1. **Receive** the next record from the stage's source.
    2. **Gate** (retry stages): wait until the record's not-before time.
    3. **Parse** the payload; malformed payloads are committed and dropped.
    4. **Apply** the update. Success and non-retryable outcomes are
       committed; failures are handed to the :class:`RetryRouter` and the
       record is committed only after the hand-off was acknowledged.

    ``stop()`` lets a running store call or publish finish. Waiting for the
    next record or for the gate is aborted, and a gated record is rewound
    uncommitted so it is delivered again after restart.

    Usage::

        consumer = StagedConsumer(
            stage=1,
            source=KafkaMessageSource(connection, "retry-1", group_id="demo-retry1"),
            router=router,
            store=store,
        )
        await consumer.start()
        ...
        await consumer.stop()
    """

    def __init__(
        self,
        stage: int,
        source: IMessageSource,
        router: RetryRouter,
        store: IEmployeeStore,
        *,
        serializer: PayloadSerializer | None = None,
        gate_enabled: bool | None = None,
        retry_on_not_found: bool = False,
        error_backoff: float = 1.0,
        stop_timeout: float = 30.0,
        clock: Callable[[], int] = epoch_ms,
        name: str | None = None,
    ) -> None:
        """Configure one stage.

        Args:
            stage: Stage number this consumer reads (0 = intake).
            source: Exclusively owned source of the stage's records.
            router: Shared router used for failed records.
            store: Business-update collaborator.
            serializer: Payload parser; default PayloadSerializer().
            gate_enabled: Enforce not-before stamps. Defaults to True for
                retry stages and False for intake.
            retry_on_not_found: Route NOT_FOUND outcomes like failures
                instead of committing them.
            error_backoff: Seconds to pause after a transient error.
            stop_timeout: Seconds stop() waits for the running step.
            clock: Epoch-milliseconds clock used by the gate.
            name: Stage identity for logs; defaults to the topology's name.
        """
        if stage < INTAKE_STAGE:
            raise ValueError(f"stage must be >= 0, got {stage}")
        self.stage = stage
        self.name = name or router.topology.stage_name(stage)
        self._source = source
        self._router = router
        self._store = store
        self._serializer = serializer or PayloadSerializer()
        self._gate_enabled = stage > INTAKE_STAGE if gate_enabled is None else gate_enabled
        self._retry_on_not_found = retry_on_not_found
        self._error_backoff = error_backoff
        self._stop_timeout = stop_timeout
        self._clock = clock
        self._stopping = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start the source and the processing loop.

        Source start-up errors propagate; they are fatal to the service.
        """
        if self._task is not None:
            return
        self._stopping.clear()
        await self._source.start()
        self._task = asyncio.create_task(self.run(), name=f"consumer-{self.name}")
        logger.info(
            "%s consumer started, subscribed to %s",
            self.name,
            self._router.topology.topic_for(self.stage),
        )

    async def stop(self) -> None:
        """Request shutdown, wait for the running step, then stop the source."""
        self._stopping.set()
        task, self._task = self._task, None
        if task is not None:
            try:
                await asyncio.wait_for(asyncio.shield(task), timeout=self._stop_timeout)
            except asyncio.TimeoutError:
                logger.warning(
                    "%s consumer did not stop within %.1fs; cancelling",
                    self.name,
                    self._stop_timeout,
                )
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        await self._source.stop()
        logger.info("%s consumer stopped", self.name)

    async def run(self) -> None:
        """Process records until stop() is requested. The source must be started."""
        while not self._stopping.is_set():
            try:
                outcome = await self.run_once()
            except MessagingError as e:
                logger.error("Consume error in %s consumer: %s", self.name, e)
                await self._pause(self._error_backoff)
            except Exception:
                logger.exception("Unexpected error in %s consumer", self.name)
                await self._pause(self._error_backoff)
            else:
                if outcome is MessageOutcome.ROUTING_FAILED:
                    await self._pause(self._error_backoff)

    async def run_once(self) -> MessageOutcome | None:
        """Receive and handle a single record; None when stopped while waiting."""
        envelope = await self._receive()
        if envelope is None:
            return None
        return await self.handle(envelope)

    async def handle(self, envelope: MessageEnvelope) -> MessageOutcome:
        """Run one received record through gate, parse, apply and routing."""
        metadata = envelope.metadata
        logger.info(
            "%s consumer received message: key=%s, retry_stage=%s, origin=%s",
            self.name,
            envelope.key,
            metadata.retry_stage,
            metadata.origin_topic,
        )

        if self._gate_enabled and not await self._wait_until_eligible(envelope):
            await self._source.rewind(envelope)
            logger.info(
                "%s consumer stopping; message key=%s left for redelivery",
                self.name,
                envelope.key,
            )
            return MessageOutcome.DEFERRED

        try:
            return await self._process(envelope)
        except Exception:
            await self._release(envelope)
            raise

    async def _process(self, envelope: MessageEnvelope) -> MessageOutcome:
        try:
            record = self._serializer.deserialize(envelope.payload)
        except MessagingSerializationError as e:
            logger.error(
                "%s consumer failed to deserialize message key=%s, dropping: %s",
                self.name,
                envelope.key,
                e,
            )
            await self._source.commit(envelope)
            return MessageOutcome.MALFORMED

        try:
            result = await self._apply(record)
        except Exception as e:  # noqa: BLE001
            logger.error(
                "%s consumer failed to process message for employee %s: %s",
                self.name,
                record.employee_id,
                describe_failure(e),
            )
            return await self._route(envelope, e)

        outcome = _STORE_OUTCOMES[result]
        await self._source.commit(envelope)
        if result is UpdateOutcome.APPLIED:
            logger.info(
                "%s consumer successfully processed message for employee %s",
                self.name,
                record.employee_id,
            )
        else:
            logger.warning(
                "%s consumer did not apply update for employee %s (%s); not retrying",
                self.name,
                record.employee_id,
                result.value,
            )
        return outcome

    async def _release(self, envelope: MessageEnvelope) -> None:
        """Rewind a record whose handling raised so a later commit cannot skip it."""
        try:
            await self._source.rewind(envelope)
        except MessagingError as e:
            logger.error(
                "%s consumer could not rewind message key=%s: %s",
                self.name,
                envelope.key,
                e,
            )

    async def _apply(self, record: EmployeeUpdate) -> UpdateOutcome:
        result = await self._store.apply_update(record)
        if result is UpdateOutcome.NOT_FOUND and self._retry_on_not_found:
            raise RecordNotFoundError("Employee", record.employee_id)
        return result

    async def _route(
        self, envelope: MessageEnvelope, exc: BaseException
    ) -> MessageOutcome:
        try:
            decision = await self._router.route(
                envelope, self.stage, describe_failure(exc)
            )
        except RoutingError as e:
            logger.error(
                "%s consumer could not hand off message key=%s; "
                "leaving it uncommitted: %s",
                self.name,
                envelope.key,
                e,
            )
            await self._source.rewind(envelope)
            return MessageOutcome.ROUTING_FAILED
        await self._source.commit(envelope)
        if decision.dead_lettered:
            return MessageOutcome.DEAD_LETTERED
        return MessageOutcome.RETRY_SCHEDULED

    async def _receive(self) -> MessageEnvelope | None:
        receive = asyncio.ensure_future(self._source.receive())
        stopping = asyncio.ensure_future(self._stopping.wait())
        try:
            await asyncio.wait(
                {receive, stopping}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            stopping.cancel()
            if not receive.done():
                receive.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await receive
        if receive.cancelled():
            return None
        return receive.result()

    async def _wait_until_eligible(self, envelope: MessageEnvelope) -> bool:
        """Sleep until the not-before stamp; False if stop() interrupted the wait."""
        not_before = envelope.metadata.not_before_epoch_ms
        if not_before is None:
            return True
        remaining = not_before - self._clock()
        if remaining <= 0:
            return True
        logger.info(
            "%s consumer: message key=%s arrived early, waiting %sms before processing",
            self.name,
            envelope.key,
            remaining,
        )
        while remaining > 0:
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=remaining / 1000)
            except asyncio.TimeoutError:
                remaining = not_before - self._clock()
                continue
            return False
        return True

    async def _pause(self, seconds: float) -> None:
        if seconds <= 0:
            return
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(self._stopping.wait(), timeout=seconds)
