"""Small shared helpers."""

from __future__ import annotations

import time


def epoch_ms() -> int:
    """Current wall-clock time in milliseconds since the Unix epoch."""
    return time.time_ns() // 1_000_000
