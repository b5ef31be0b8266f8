"""MessageEnvelope — immutable key/payload/metadata triple moving between stages."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from .headers import RetryMetadata

# Keys that are not valid UTF-8 survive decode/encode byte for byte.
_KEY_ERRORS = "surrogateescape"


def decode_key(raw: bytes | str | None) -> str | None:
    """Broker key bytes to ``MessageEnvelope.key``; reversible via ``key_bytes``."""
    if raw is None or isinstance(raw, str):
        return raw
    return raw.decode("utf-8", errors=_KEY_ERRORS)


class MessageEnvelope(BaseModel):
    """Immutable wrapper for a message crossing a stage boundary.

    ``key`` and ``payload`` pass through every stage unmodified; only
    ``metadata`` changes from hop to hop. ``topic``, ``partition`` and
    ``offset`` are set on received envelopes and identify the broker record
    for commit and rewind; they are never published.

    Keys read from the broker go through :func:`decode_key`, so a key that
    is not valid UTF-8 is published again with its original bytes (and
    therefore lands on the same partition).
    """

    model_config = ConfigDict(frozen=True)

    key: str | None = None
    payload: bytes = b""
    metadata: RetryMetadata = Field(default_factory=RetryMetadata)
    topic: str | None = None
    partition: int | None = None
    offset: int | None = None

    def key_bytes(self) -> bytes | None:
        if self.key is None:
            return None
        return self.key.encode("utf-8", errors=_KEY_ERRORS)

    def with_metadata(self, metadata: RetryMetadata) -> MessageEnvelope:
        """Return an outgoing copy carrying *metadata* and no broker coordinates."""
        return MessageEnvelope(key=self.key, payload=self.payload, metadata=metadata)
