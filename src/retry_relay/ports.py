"""Ports — the capabilities the retry chain consumes from its collaborators."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .employees.models import EmployeeUpdate, UpdateOutcome
    from .envelope import MessageEnvelope


@runtime_checkable
class IMessageSource(Protocol):
    """
    Port for reading one stage's records from the broker.

    Each stage consumer owns its source exclusively. Offsets are committed
    manually; nothing is committed unless :meth:`commit` is called.
    """

    async def start(self) -> None: ...

    async def stop(self) -> None: ...

    async def receive(self) -> MessageEnvelope:
        """Wait for and return the next record (with broker coordinates)."""
        ...

    async def commit(self, envelope: MessageEnvelope) -> None:
        """Acknowledge *envelope* so it is never redelivered to this stage."""
        ...

    async def rewind(self, envelope: MessageEnvelope) -> None:
        """Return an uncommitted *envelope* so the next receive delivers it again."""
        ...


@runtime_checkable
class IEnvelopePublisher(Protocol):
    """
    Port for publishing envelopes to a stage destination.

    ``publish`` returns only after the broker acknowledged the write and must
    be safe to call concurrently from several stages.
    """

    async def publish(self, topic: str, envelope: MessageEnvelope) -> None: ...

    async def close(self) -> None: ...


@runtime_checkable
class IEmployeeStore(Protocol):
    """
    Port for the durable employee store.

    ``apply_update`` is idempotent: an update whose ``sync_time`` is not newer
    than the stored one returns ``UpdateOutcome.STALE`` instead of raising.
    Infrastructure failures raise.
    """

    async def apply_update(self, record: EmployeeUpdate) -> UpdateOutcome: ...


@runtime_checkable
class IBackgroundWorker(Protocol):
    """
    General lifecycle protocol for background workers.

    Used by: ``StagedConsumer``, ``SyntheticProducer``.
    """

    async def start(self) -> None:
        """Start the background process."""
        ...

    async def stop(self) -> None:
        """Stop the background process gracefully."""
        ...
