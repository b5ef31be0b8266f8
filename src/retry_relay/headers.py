"""Header codec — retry metadata carried on every message envelope.

Integer fields use fixed-width little-endian encoding (4 bytes for the retry
stage, 8 bytes for timestamps). String fields are UTF-8 of any length.
Decoding is lenient: a missing, truncated or otherwise malformed value
decodes to ``None`` instead of raising, and callers apply stage defaults.
"""

from __future__ import annotations

import enum
import struct
from collections.abc import Iterable, Mapping
from typing import Union

from pydantic import BaseModel, ConfigDict, Field

RETRY_STAGE_HEADER = "x-retry-stage"
NOT_BEFORE_HEADER = "x-not-before-epoch-ms"
ORIGIN_TOPIC_HEADER = "x-origin-topic"
LAST_ERROR_HEADER = "x-last-error"

HeaderValue = Union[int, str]
RawHeaders = Union[Mapping[str, bytes], Iterable[tuple[str, bytes]]]

_INT32 = struct.Struct("<i")
_INT64 = struct.Struct("<q")


class HeaderField(str, enum.Enum):
    """Wire-visible header fields with their value encoding."""

    RETRY_STAGE = RETRY_STAGE_HEADER
    NOT_BEFORE_EPOCH_MS = NOT_BEFORE_HEADER
    ORIGIN_TOPIC = ORIGIN_TOPIC_HEADER
    LAST_ERROR = LAST_ERROR_HEADER

    @property
    def fixed_width(self) -> struct.Struct | None:
        if self is HeaderField.RETRY_STAGE:
            return _INT32
        if self is HeaderField.NOT_BEFORE_EPOCH_MS:
            return _INT64
        return None


def encode(field: HeaderField, value: HeaderValue) -> bytes:
    """Encode *value* for *field*.

    Raises ``TypeError`` for a value of the wrong kind and ``ValueError``
    (via ``struct.error``) when an integer does not fit its width.
    """
    codec = field.fixed_width
    if codec is not None:
        if isinstance(value, bool) or not isinstance(value, int):
            raise TypeError(f"{field.value} expects an int, got {type(value).__name__}")
        try:
            return codec.pack(value)
        except struct.error as e:
            raise ValueError(f"{field.value} value {value} out of range") from e
    if not isinstance(value, str):
        raise TypeError(f"{field.value} expects a str, got {type(value).__name__}")
    return value.encode("utf-8")


def decode(raw: bytes | None, field: HeaderField) -> HeaderValue | None:
    """Decode *raw* for *field*; return ``None`` when the value is unusable."""
    if raw is None:
        return None
    codec = field.fixed_width
    if codec is not None:
        if len(raw) != codec.size:
            return None
        return int(codec.unpack(raw)[0])
    try:
        return bytes(raw).decode("utf-8")
    except UnicodeDecodeError:
        return None


def _first_values(headers: RawHeaders | None) -> dict[str, bytes]:
    if not headers:
        return {}
    items = headers.items() if isinstance(headers, Mapping) else headers
    found: dict[str, bytes] = {}
    for key, value in items:
        if key not in found and value is not None:
            found[key] = value
    return found


class RetryMetadata(BaseModel):
    """Immutable retry metadata of one envelope.

    A new instance is produced for every hop; see :meth:`next_hop` and
    :meth:`dead_letter`.
    """

    model_config = ConfigDict(frozen=True)

    retry_stage: int | None = Field(default=None, ge=0)
    not_before_epoch_ms: int | None = None
    origin_topic: str | None = None
    last_error: str | None = None

    @classmethod
    def from_headers(cls, headers: RawHeaders | None) -> RetryMetadata:
        """Read metadata from transport headers (mapping or key/value pairs).

        Unknown headers are ignored and the first occurrence of a repeated
        header wins.
        """
        values = _first_values(headers)

        def _int(field: HeaderField) -> int | None:
            value = decode(values.get(field.value), field)
            return value if isinstance(value, int) else None

        def _str(field: HeaderField) -> str | None:
            value = decode(values.get(field.value), field)
            return value if isinstance(value, str) else None

        stage = _int(HeaderField.RETRY_STAGE)
        return cls(
            retry_stage=stage if stage is not None and stage >= 0 else None,
            not_before_epoch_ms=_int(HeaderField.NOT_BEFORE_EPOCH_MS),
            origin_topic=_str(HeaderField.ORIGIN_TOPIC),
            last_error=_str(HeaderField.LAST_ERROR),
        )

    def to_headers(self) -> list[tuple[str, bytes]]:
        """Encode the present fields as transport headers."""
        headers: list[tuple[str, bytes]] = []
        pairs: list[tuple[HeaderField, HeaderValue | None]] = [
            (HeaderField.RETRY_STAGE, self.retry_stage),
            (HeaderField.NOT_BEFORE_EPOCH_MS, self.not_before_epoch_ms),
            (HeaderField.ORIGIN_TOPIC, self.origin_topic),
            (HeaderField.LAST_ERROR, self.last_error),
        ]
        for field, value in pairs:
            if value is not None:
                headers.append((field.value, encode(field, value)))
        return headers

    @property
    def stage(self) -> int:
        """Retry stage, treating an absent header as intake (0)."""
        return self.retry_stage or 0

    def next_hop(
        self,
        *,
        stage: int,
        not_before_epoch_ms: int,
        origin_topic: str,
        error: str,
    ) -> RetryMetadata:
        """Metadata for a retry hop. An existing origin topic is kept."""
        return RetryMetadata(
            retry_stage=stage,
            not_before_epoch_ms=not_before_epoch_ms,
            origin_topic=self.origin_topic or origin_topic,
            last_error=error,
        )

    def dead_letter(
        self, *, stage: int, origin_topic: str, error: str
    ) -> RetryMetadata:
        """Metadata for the terminal hop; it carries no not-before stamp."""
        return RetryMetadata(
            retry_stage=stage,
            not_before_epoch_ms=None,
            origin_topic=self.origin_topic or origin_topic,
            last_error=error,
        )
