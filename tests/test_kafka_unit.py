"""Unit tests for the Kafka adapters with mocked aiokafka clients (no real broker)."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from aiokafka import TopicPartition
from aiokafka.errors import KafkaConnectionError, TopicAlreadyExistsError

from retry_relay.envelope import MessageEnvelope
from retry_relay.exceptions import MessagingConnectionError
from retry_relay.headers import RetryMetadata
from retry_relay.kafka import (
    KafkaConnectionManager,
    KafkaEnvelopePublisher,
    KafkaMessageSource,
    TopicProvisioner,
)
from retry_relay.topology import StageTopology


@pytest.fixture
def mock_connection() -> MagicMock:
    conn = MagicMock()
    conn.producer_config.return_value = {"bootstrap_servers": "localhost:9092"}
    conn.consumer_config.return_value = {"bootstrap_servers": "localhost:9092"}
    conn.health_check = AsyncMock(return_value=True)
    return conn


@pytest.fixture
def mock_producer() -> MagicMock:
    prod = MagicMock()
    prod.start = AsyncMock()
    prod.stop = AsyncMock()
    prod.send_and_wait = AsyncMock()
    return prod


@pytest.fixture
def mock_consumer() -> MagicMock:
    cons = MagicMock()
    cons.start = AsyncMock()
    cons.stop = AsyncMock()
    cons.getone = AsyncMock()
    cons.commit = AsyncMock()
    cons.seek = MagicMock()
    return cons


# ── Connection ───────────────────────────────────────────────────────


def test_connection_configs() -> None:
    conn = KafkaConnectionManager(["k1:9092", "k2:9092"], group_id="x", client_id="c")

    assert conn.bootstrap_servers == ["k1:9092", "k2:9092"]
    assert conn.producer_config()["client_id"] == "c"
    stage = conn.consumer_config("demo-retry2")
    assert stage["group_id"] == "demo-retry2"
    assert stage["enable_auto_commit"] is False
    assert stage["auto_offset_reset"] == "earliest"
    assert stage["client_id"] == "c"
    assert "group_id" not in conn.producer_config()
    assert "group_id" not in conn.admin_config()


@pytest.mark.asyncio
async def test_connection_health_check_false_when_unreachable() -> None:
    admin = MagicMock()
    admin.start = AsyncMock(side_effect=KafkaConnectionError())
    admin.close = AsyncMock()
    conn = KafkaConnectionManager("localhost:1")
    with patch.object(conn, "admin_client", return_value=admin):
        assert await conn.health_check() is False


@pytest.mark.asyncio
async def test_connection_health_check_closes_admin_on_metadata_failure() -> None:
    admin = MagicMock()
    admin.start = AsyncMock()
    admin.list_topics = AsyncMock(side_effect=KafkaConnectionError())
    admin.close = AsyncMock()
    conn = KafkaConnectionManager("localhost:9092")
    with patch.object(conn, "admin_client", return_value=admin):
        assert await conn.health_check() is False

    admin.close.assert_awaited_once()


# ── Publisher ────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_publish_sends_key_payload_and_headers(
    mock_connection: MagicMock, mock_producer: MagicMock
) -> None:
    meta = RetryMetadata(
        retry_stage=1, not_before_epoch_ms=1_700_000_005_000, origin_topic="main"
    )
    with patch(
        "retry_relay.kafka.publisher.AIOKafkaProducer",
        return_value=mock_producer,
    ):
        publisher = KafkaEnvelopePublisher(mock_connection)
        await publisher.publish(
            "retry-1", MessageEnvelope(key="3", payload=b"{}", metadata=meta)
        )

    mock_producer.send_and_wait.assert_called_once()
    args, kwargs = mock_producer.send_and_wait.call_args
    assert args == ("retry-1",)
    assert kwargs["key"] == b"3"
    assert kwargs["value"] == b"{}"
    assert kwargs["headers"] == meta.to_headers()


@pytest.mark.asyncio
async def test_publish_without_key_or_headers(
    mock_connection: MagicMock, mock_producer: MagicMock
) -> None:
    with patch(
        "retry_relay.kafka.publisher.AIOKafkaProducer",
        return_value=mock_producer,
    ):
        publisher = KafkaEnvelopePublisher(mock_connection)
        await publisher.publish("main", MessageEnvelope(payload=b"x"))

    kwargs = mock_producer.send_and_wait.call_args[1]
    assert kwargs["key"] is None
    assert kwargs["headers"] == []


@pytest.mark.asyncio
async def test_producer_created_once_and_closed(
    mock_connection: MagicMock, mock_producer: MagicMock
) -> None:
    with patch(
        "retry_relay.kafka.publisher.AIOKafkaProducer",
        return_value=mock_producer,
    ) as factory:
        publisher = KafkaEnvelopePublisher(mock_connection)
        await publisher.publish("main", MessageEnvelope(payload=b"1"))
        await publisher.publish("main", MessageEnvelope(payload=b"2"))
        await publisher.close()
        await publisher.close()

    factory.assert_called_once()
    mock_producer.start.assert_awaited_once()
    mock_producer.stop.assert_awaited_once()


@pytest.mark.asyncio
async def test_publish_failure_raises_connection_error(
    mock_connection: MagicMock, mock_producer: MagicMock
) -> None:
    mock_producer.send_and_wait.side_effect = KafkaConnectionError()
    with patch(
        "retry_relay.kafka.publisher.AIOKafkaProducer",
        return_value=mock_producer,
    ):
        publisher = KafkaEnvelopePublisher(mock_connection)
        with pytest.raises(MessagingConnectionError, match="retry-2"):
            await publisher.publish("retry-2", MessageEnvelope(payload=b"x"))


@pytest.mark.asyncio
async def test_publisher_health_check_delegates(mock_connection: MagicMock) -> None:
    publisher = KafkaEnvelopePublisher(mock_connection)
    assert await publisher.health_check() is True


# ── Source ───────────────────────────────────────────────────────────


def _record(
    offset: int = 7,
    headers: list[tuple[str, bytes]] | None = None,
    key: bytes | None = b"3",
) -> SimpleNamespace:
    return SimpleNamespace(
        topic="retry-1",
        partition=0,
        offset=offset,
        key=key,
        value=b'{"employeeId": 3}',
        headers=headers or [],
    )


@pytest.mark.asyncio
async def test_source_start_disables_auto_commit(mock_consumer: MagicMock) -> None:
    conn = KafkaConnectionManager("localhost:9092")
    with patch(
        "retry_relay.kafka.source.AIOKafkaConsumer",
        return_value=mock_consumer,
    ) as factory:
        source = KafkaMessageSource(conn, "retry-1", group_id="demo-retry1")
        await source.start()
        await source.start()

    factory.assert_called_once()
    args, kwargs = factory.call_args
    assert args == ("retry-1",)
    assert kwargs["group_id"] == "demo-retry1"
    assert kwargs["enable_auto_commit"] is False
    assert kwargs["auto_offset_reset"] == "earliest"


@pytest.mark.asyncio
async def test_source_start_failure(
    mock_connection: MagicMock, mock_consumer: MagicMock
) -> None:
    mock_consumer.start.side_effect = KafkaConnectionError()
    with patch(
        "retry_relay.kafka.source.AIOKafkaConsumer",
        return_value=mock_consumer,
    ):
        source = KafkaMessageSource(mock_connection, "main", group_id="g")
        with pytest.raises(MessagingConnectionError, match="main"):
            await source.start()


@pytest.mark.asyncio
async def test_source_receive_decodes_record(
    mock_connection: MagicMock, mock_consumer: MagicMock
) -> None:
    meta = RetryMetadata(retry_stage=1, not_before_epoch_ms=123, origin_topic="main")
    mock_consumer.getone.return_value = _record(headers=meta.to_headers())
    with patch(
        "retry_relay.kafka.source.AIOKafkaConsumer",
        return_value=mock_consumer,
    ):
        source = KafkaMessageSource(mock_connection, "retry-1", group_id="g")
        await source.start()
        envelope = await source.receive()

    assert envelope.key == "3"
    assert envelope.payload == b'{"employeeId": 3}'
    assert envelope.metadata == meta
    assert (envelope.topic, envelope.partition, envelope.offset) == ("retry-1", 0, 7)


@pytest.mark.asyncio
async def test_source_commit_next_offset(
    mock_connection: MagicMock, mock_consumer: MagicMock
) -> None:
    mock_consumer.getone.return_value = _record(offset=7)
    with patch(
        "retry_relay.kafka.source.AIOKafkaConsumer",
        return_value=mock_consumer,
    ):
        source = KafkaMessageSource(mock_connection, "retry-1", group_id="g")
        await source.start()
        envelope = await source.receive()
        await source.commit(envelope)

    mock_consumer.commit.assert_awaited_once_with({TopicPartition("retry-1", 0): 8})


@pytest.mark.asyncio
async def test_source_rewind_seeks_to_record(
    mock_connection: MagicMock, mock_consumer: MagicMock
) -> None:
    mock_consumer.getone.return_value = _record(offset=7)
    with patch(
        "retry_relay.kafka.source.AIOKafkaConsumer",
        return_value=mock_consumer,
    ):
        source = KafkaMessageSource(mock_connection, "retry-1", group_id="g")
        await source.start()
        envelope = await source.receive()
        await source.rewind(envelope)

    mock_consumer.seek.assert_called_once_with(TopicPartition("retry-1", 0), 7)


@pytest.mark.asyncio
async def test_source_receive_error_is_wrapped(
    mock_connection: MagicMock, mock_consumer: MagicMock
) -> None:
    mock_consumer.getone.side_effect = KafkaConnectionError()
    with patch(
        "retry_relay.kafka.source.AIOKafkaConsumer",
        return_value=mock_consumer,
    ):
        source = KafkaMessageSource(mock_connection, "main", group_id="g")
        await source.start()
        with pytest.raises(MessagingConnectionError):
            await source.receive()


@pytest.mark.asyncio
async def test_source_requires_start(mock_connection: MagicMock) -> None:
    source = KafkaMessageSource(mock_connection, "main", group_id="g")
    with pytest.raises(MessagingConnectionError, match="not started"):
        await source.receive()


@pytest.mark.asyncio
async def test_source_stop_releases_consumer(
    mock_connection: MagicMock, mock_consumer: MagicMock
) -> None:
    with patch(
        "retry_relay.kafka.source.AIOKafkaConsumer",
        return_value=mock_consumer,
    ):
        source = KafkaMessageSource(mock_connection, "main", group_id="g")
        await source.start()
        await source.stop()
        await source.stop()

    mock_consumer.stop.assert_awaited_once()


# ── Provisioning ─────────────────────────────────────────────────────


def _admin(existing: list[str]) -> MagicMock:
    admin = MagicMock()
    admin.start = AsyncMock()
    admin.close = AsyncMock()
    admin.list_topics = AsyncMock(return_value=existing)
    admin.create_topics = AsyncMock()
    return admin


@pytest.mark.asyncio
async def test_provisioner_creates_missing_topics() -> None:
    admin = _admin(["main", "retry-1"])
    conn = MagicMock()
    conn.admin_client.return_value = admin

    created = await TopicProvisioner(conn, StageTopology()).ensure_topics()

    assert created == ["retry-2", "retry-3", "deadletter"]
    new_topics = admin.create_topics.call_args[0][0]
    assert [t.name for t in new_topics] == created
    assert all(t.num_partitions == 1 for t in new_topics)
    admin.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_provisioner_noop_when_all_exist() -> None:
    admin = _admin(StageTopology().all_topics())
    conn = MagicMock()
    conn.admin_client.return_value = admin

    assert await TopicProvisioner(conn, StageTopology()).ensure_topics() == []
    admin.create_topics.assert_not_called()


@pytest.mark.asyncio
async def test_provisioner_tolerates_concurrent_creation() -> None:
    admin = _admin([])
    admin.create_topics.side_effect = TopicAlreadyExistsError()
    conn = MagicMock()
    conn.admin_client.return_value = admin

    created = await TopicProvisioner(conn, StageTopology()).ensure_topics()
    assert len(created) == 5


@pytest.mark.asyncio
async def test_provisioner_unreachable_cluster() -> None:
    admin = _admin([])
    admin.start.side_effect = KafkaConnectionError()
    conn = MagicMock()
    conn.admin_client.return_value = admin

    with pytest.raises(MessagingConnectionError, match="provisioning"):
        await TopicProvisioner(conn, StageTopology()).ensure_topics()


@pytest.mark.asyncio
async def test_non_utf8_key_is_republished_unchanged(
    mock_connection: MagicMock, mock_consumer: MagicMock, mock_producer: MagicMock
) -> None:
    mock_consumer.getone.return_value = _record(key=b"\xff\x01")
    with patch(
        "retry_relay.kafka.source.AIOKafkaConsumer",
        return_value=mock_consumer,
    ), patch(
        "retry_relay.kafka.publisher.AIOKafkaProducer",
        return_value=mock_producer,
    ):
        source = KafkaMessageSource(mock_connection, "retry-1", group_id="g")
        await source.start()
        received = await source.receive()
        publisher = KafkaEnvelopePublisher(mock_connection)
        await publisher.publish("retry-2", received.with_metadata(RetryMetadata()))

    assert mock_producer.send_and_wait.call_args[1]["key"] == b"\xff\x01"
