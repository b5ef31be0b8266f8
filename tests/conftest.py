"""Pytest fixtures for retry-relay tests."""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable

import pytest

from retry_relay.backoff import BackoffPolicy
from retry_relay.consumer import StagedConsumer
from retry_relay.employees import InMemoryEmployeeStore
from retry_relay.memory import InMemoryBroker, InMemoryMessageSource, InMemoryPublisher
from retry_relay.router import RetryRouter
from retry_relay.topology import StageTopology


async def _wait_until(
    predicate: Callable[[], bool], timeout: float = 5.0, interval: float = 0.01
) -> None:
    """Poll *predicate* until it holds or fail the test after *timeout* seconds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            pytest.fail(f"condition not met within {timeout}s")
        await asyncio.sleep(interval)


@pytest.fixture
def wait_until() -> Callable[..., Awaitable[None]]:
    return _wait_until


@pytest.fixture
def topology() -> StageTopology:
    return StageTopology()


@pytest.fixture
def backoff() -> BackoffPolicy:
    """Short delays so gated stages stay fast in tests."""
    return BackoffPolicy.three_stage(
        retry_1_ms=20,
        retry_2_ms=40,
        retry_3_base_ms=30,
        retry_3_jitter_ms=20,
        rng=random.Random(7),
    )


@pytest.fixture
def broker() -> InMemoryBroker:
    return InMemoryBroker()


@pytest.fixture
def publisher(broker: InMemoryBroker) -> InMemoryPublisher:
    return InMemoryPublisher(broker)


@pytest.fixture
def store() -> InMemoryEmployeeStore:
    s = InMemoryEmployeeStore()
    for employee_id in range(1, 6):
        s.seed(employee_id)
    return s


@pytest.fixture
def router(
    publisher: InMemoryPublisher, topology: StageTopology, backoff: BackoffPolicy
) -> RetryRouter:
    return RetryRouter(publisher, topology, backoff)


@pytest.fixture
def make_consumer(
    broker: InMemoryBroker,
    router: RetryRouter,
    store: InMemoryEmployeeStore,
    topology: StageTopology,
) -> Callable[..., StagedConsumer]:
    def _make(stage: int, **kwargs: object) -> StagedConsumer:
        source = InMemoryMessageSource(
            broker,
            topology.topic_for(stage),
            group_id=f"test-{topology.stage_name(stage)}",
        )
        kwargs.setdefault("error_backoff", 0.01)
        return StagedConsumer(stage, source, router, store, **kwargs)  # type: ignore[arg-type]

    return _make
