"""Staged retry-with-backoff and dead-letter routing for Kafka consumers."""

from __future__ import annotations

from .backoff import BackoffPolicy, StageDelay
from .consumer import MessageOutcome, StagedConsumer
from .employees import EmployeeUpdate, InMemoryEmployeeStore, UpdateOutcome
from .envelope import MessageEnvelope
from .exceptions import (
    ConfigurationError,
    InfrastructureError,
    MessagingConnectionError,
    MessagingError,
    MessagingSerializationError,
    PersistenceError,
    RecordNotFoundError,
    RetryRelayError,
    RoutingError,
)
from .headers import RetryMetadata
from .memory import InMemoryBroker, InMemoryMessageSource, InMemoryPublisher
from .producer import SyntheticProducer
from .router import RetryRouter, RoutingDecision
from .serialization import PayloadSerializer
from .topology import StageTopology

__all__ = [
    "BackoffPolicy",
    "ConfigurationError",
    "EmployeeUpdate",
    "InMemoryBroker",
    "InMemoryEmployeeStore",
    "InMemoryMessageSource",
    "InMemoryPublisher",
    "InfrastructureError",
    "MessageEnvelope",
    "MessageOutcome",
    "MessagingConnectionError",
    "MessagingError",
    "MessagingSerializationError",
    "PayloadSerializer",
    "PersistenceError",
    "RecordNotFoundError",
    "RetryMetadata",
    "RetryRelayError",
    "RetryRouter",
    "RoutingDecision",
    "RoutingError",
    "StageDelay",
    "StageTopology",
    "StagedConsumer",
    "SyntheticProducer",
]
