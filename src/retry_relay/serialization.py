"""PayloadSerializer — JSON roundtrip for employee update payloads."""

from __future__ import annotations

import json

from pydantic import ValidationError

from .employees.models import EmployeeUpdate
from .exceptions import MessagingSerializationError


class PayloadSerializer:
    """Serialize/deserialize :class:`EmployeeUpdate` to/from JSON bytes.

    Output uses camelCase keys (``employeeId``, ``firstName``, ``syncTime``);
    input also accepts the PascalCase names emitted by older producers.
    """

    def serialize(self, update: EmployeeUpdate) -> bytes:
        """Encode *update* to UTF-8 JSON bytes."""
        data = update.model_dump(mode="json", by_alias=True)
        return json.dumps(data).encode("utf-8")

    def deserialize(self, raw: bytes | None) -> EmployeeUpdate:
        """Decode JSON bytes; any malformed input raises MessagingSerializationError."""
        if not raw:
            raise MessagingSerializationError("empty payload")
        try:
            data = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, ValueError, RecursionError) as e:
            # ValueError covers JSONDecodeError and over-long integer literals;
            # RecursionError comes from deeply nested arrays or objects.
            raise MessagingSerializationError(str(e) or type(e).__name__) from e
        if not isinstance(data, dict):
            raise MessagingSerializationError(
                f"expected a JSON object, got {type(data).__name__}"
            )
        try:
            return EmployeeUpdate.model_validate(data)
        except ValidationError as e:
            raise MessagingSerializationError(str(e)) from e
