"""Service bootstrap: wires the stage consumers, router, producer and store."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
from typing import TYPE_CHECKING

from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from .consumer import StagedConsumer
from .employees.database import SQLAlchemyEmployeeStore, create_schema, seed_employees
from .kafka import (
    KafkaConnectionManager,
    KafkaEnvelopePublisher,
    KafkaMessageSource,
    TopicProvisioner,
)
from .producer import SyntheticProducer
from .router import RetryRouter
from .topology import INTAKE_STAGE

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

    from .ports import IBackgroundWorker, IEmployeeStore, IEnvelopePublisher
    from .settings import RetryRelaySettings

logger = logging.getLogger("retry_relay.app")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

DEMO_EMPLOYEE_IDS = [1, 2, 3, 4, 5]


def configure_logging(level: str = "INFO") -> None:
    """Install a single stream handler on the root logger."""
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT, force=True)


class RetryRelayService:
    """Runs every stage of the retry chain in one process.

    Start-up order: provision topics, start the stage consumers together,
    then the synthetic producer. Provisioning or consumer start-up failures
    abort start-up. Shutdown stops the producer first, then every consumer
    after its running step, then closes the shared publisher.
    """

    def __init__(
        self,
        consumers: list[StagedConsumer],
        publisher: IEnvelopePublisher,
        *,
        producer: SyntheticProducer | None = None,
        provisioner: TopicProvisioner | None = None,
        engine: AsyncEngine | None = None,
        seed: bool = False,
    ) -> None:
        self.consumers = consumers
        self.publisher = publisher
        self.producer = producer
        self._provisioner = provisioner
        self._engine = engine
        self._seed = seed
        self._started: list[IBackgroundWorker] = []

    @classmethod
    def from_settings(cls, settings: RetryRelaySettings) -> RetryRelayService:
        """Build the Kafka + SQLAlchemy service described by *settings*."""
        topology = settings.topology()
        connection = KafkaConnectionManager(settings.bootstrap_server_list())
        publisher = KafkaEnvelopePublisher(connection)
        router = RetryRouter(publisher, topology, settings.backoff_policy())

        engine = create_async_engine(settings.database_url)
        store: IEmployeeStore = SQLAlchemyEmployeeStore(
            async_sessionmaker(engine, expire_on_commit=False)
        )

        consumers = []
        for stage in range(INTAKE_STAGE, topology.max_retry_stage + 1):
            source = KafkaMessageSource(
                connection,
                topology.topic_for(stage),
                group_id=f"{settings.group_id}-{topology.stage_name(stage)}",
            )
            consumers.append(
                StagedConsumer(
                    stage,
                    source,
                    router,
                    store,
                    retry_on_not_found=settings.retry_on_not_found,
                    error_backoff=settings.error_backoff_ms / 1000,
                )
            )

        producer = None
        if settings.producer_enabled:
            producer = SyntheticProducer(
                publisher,
                topology.intake,
                interval=settings.producer_interval_ms / 1000,
                employee_count=len(DEMO_EMPLOYEE_IDS),
            )

        return cls(
            consumers,
            publisher,
            producer=producer,
            provisioner=TopicProvisioner(connection, topology),
            engine=engine,
            seed=settings.seed_employees,
        )

    async def start(self) -> None:
        try:
            if self._engine is not None and self._seed:
                await create_schema(self._engine)
                created = await seed_employees(self._engine, DEMO_EMPLOYEE_IDS)
                if created:
                    logger.info("Seeded %d employee rows", created)
            if self._provisioner is not None:
                await self._provisioner.ensure_topics()
            results = await asyncio.gather(
                *(c.start() for c in self.consumers), return_exceptions=True
            )
            self._started.extend(
                c for c, r in zip(self.consumers, results) if r is None
            )
            for result in results:
                if isinstance(result, BaseException):
                    raise result
            if self.producer is not None:
                await self.producer.start()
                self._started.append(self.producer)
        except Exception:
            await self.stop()
            raise
        logger.info("Retry relay started with %d stage consumers", len(self.consumers))

    async def stop(self) -> None:
        workers, self._started = self._started, []
        if self.producer is not None and self.producer in workers:
            await self.producer.stop()
            workers.remove(self.producer)
        results = await asyncio.gather(
            *(w.stop() for w in workers), return_exceptions=True
        )
        for worker, result in zip(workers, results):
            if isinstance(result, Exception):
                logger.error("Error stopping %r: %s", worker, result)
        await self.publisher.close()
        if self._engine is not None:
            await self._engine.dispose()
        logger.info("Retry relay stopped")

    async def run(self, stop_event: asyncio.Event | None = None) -> None:
        """Start, wait for SIGINT/SIGTERM (or *stop_event*), then stop."""
        stop_event = stop_event or asyncio.Event()
        loop = asyncio.get_running_loop()
        signals = (signal.SIGINT, signal.SIGTERM)
        for sig in signals:
            with contextlib.suppress(NotImplementedError, RuntimeError):
                loop.add_signal_handler(sig, stop_event.set)
        try:
            await self.start()
            try:
                await stop_event.wait()
            finally:
                await self.stop()
        finally:
            for sig in signals:
                with contextlib.suppress(NotImplementedError, RuntimeError):
                    loop.remove_signal_handler(sig)
