"""Employee store adapters (in-memory and SQLAlchemy)."""

from __future__ import annotations

from .memory import EmployeeRecord, InMemoryEmployeeStore
from .models import EmployeeUpdate, UpdateOutcome

__all__ = [
    "EmployeeRecord",
    "EmployeeUpdate",
    "InMemoryEmployeeStore",
    "UpdateOutcome",
]
