"""In-memory messaging adapters for testing."""

from __future__ import annotations

from .broker import InMemoryBroker
from .publisher import InMemoryPublisher
from .source import InMemoryMessageSource

__all__ = [
    "InMemoryBroker",
    "InMemoryMessageSource",
    "InMemoryPublisher",
]
