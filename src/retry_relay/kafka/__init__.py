"""Kafka transport adapters (aiokafka)."""

from __future__ import annotations

from .connection import KafkaConnectionManager
from .provisioning import TopicProvisioner
from .publisher import KafkaEnvelopePublisher
from .source import KafkaMessageSource

__all__ = [
    "KafkaConnectionManager",
    "KafkaEnvelopePublisher",
    "KafkaMessageSource",
    "TopicProvisioner",
]
