"""Exceptions for retry-relay."""

from __future__ import annotations


class RetryRelayError(Exception):
    """Root exception for the entire retry-relay service."""


class ConfigurationError(RetryRelayError):
    """Raised when required configuration is missing or invalid."""


class InfrastructureError(RetryRelayError):
    """Base class for all infrastructure-related errors."""


class PersistenceError(InfrastructureError):
    """Raised when the employee store cannot apply an update."""


class RecordNotFoundError(RetryRelayError):
    """Raised when an update targets a record the store does not hold.

    Only raised when not-found outcomes are configured as retryable.
    """

    def __init__(self, entity_type: str, entity_id: object) -> None:
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} with id={entity_id!r} not found")


class MessagingError(InfrastructureError):
    """Base class for all messaging-related infrastructure errors."""


class MessagingConnectionError(MessagingError):
    """Raised when connectivity to the message broker fails."""


class MessagingSerializationError(MessagingError):
    """Raised when a message payload cannot be serialized or parsed."""


class RoutingError(MessagingError):
    """Raised when a failed message could not be handed off to its next stage."""

    def __init__(self, message: str, topic: str | None = None) -> None:
        self.topic = topic
        super().__init__(message)
