"""Dict-backed employee store for unit tests and local runs."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

from ..exceptions import PersistenceError
from .models import EmployeeUpdate, UpdateOutcome


@dataclass(frozen=True)
class EmployeeRecord:
    employee_id: int
    first_name: str
    sync_time: int


class InMemoryEmployeeStore:
    """In-memory implementation of ``IEmployeeStore``.

    Records are keyed by ``employee_id``. Use :meth:`fail_next` to make the
    next update calls raise, simulating an unavailable database.
    """

    def __init__(self, records: list[EmployeeRecord] | None = None) -> None:
        self._records: dict[int, EmployeeRecord] = {}
        self._lock = asyncio.Lock()
        self._failures: list[BaseException] = []
        self.calls: list[EmployeeUpdate] = []
        for record in records or []:
            self._records[record.employee_id] = record

    def seed(self, employee_id: int, first_name: str = "", sync_time: int = 0) -> None:
        self._records[employee_id] = EmployeeRecord(employee_id, first_name, sync_time)

    def get(self, employee_id: int) -> EmployeeRecord | None:
        return self._records.get(employee_id)

    def fail_next(self, times: int = 1, error: str = "db down") -> None:
        """Make the next *times* calls to apply_update raise PersistenceError."""
        self._failures.extend(PersistenceError(error) for _ in range(times))

    async def apply_update(self, record: EmployeeUpdate) -> UpdateOutcome:
        async with self._lock:
            self.calls.append(record)
            if self._failures:
                raise self._failures.pop(0)
            current = self._records.get(record.employee_id)
            if current is None:
                return UpdateOutcome.NOT_FOUND
            if current.sync_time >= record.sync_time:
                return UpdateOutcome.STALE
            self._records[record.employee_id] = EmployeeRecord(
                record.employee_id, record.first_name, record.sync_time
            )
            return UpdateOutcome.APPLIED
