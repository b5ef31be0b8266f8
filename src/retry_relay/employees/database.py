"""SQLAlchemyEmployeeStore — conditional, version-guarded employee updates."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from sqlalchemy import (
    BigInteger,
    Column,
    Integer,
    MetaData,
    String,
    Table,
    select,
    update,
)
from sqlalchemy.exc import SQLAlchemyError

from ..exceptions import PersistenceError
from .models import EmployeeUpdate, UpdateOutcome

if TYPE_CHECKING:
    from collections.abc import Callable

    from sqlalchemy.ext.asyncio import AsyncEngine

    AsyncSessionFactory = Callable[[], Any]

logger = logging.getLogger("retry_relay.employees")

metadata = MetaData()

employees = Table(
    "employees",
    metadata,
    Column("employee_id", Integer, primary_key=True, autoincrement=False),
    Column("first_name", String(100), nullable=False, default=""),
    Column("sync_time", BigInteger, nullable=False, default=0),
)


class SQLAlchemyEmployeeStore:
    """
    SQLAlchemy implementation of ``IEmployeeStore``.

    Each update is a single ``UPDATE ... WHERE employee_id = :id AND
    sync_time < :sync_time`` so concurrent stages never overwrite a newer
    version. When no row is affected, an existence check tells a stale update
    apart from a missing employee.
    """

    def __init__(self, session_factory: AsyncSessionFactory) -> None:
        self._session_factory = session_factory

    async def apply_update(self, record: EmployeeUpdate) -> UpdateOutcome:
        stmt = (
            update(employees)
            .where(employees.c.employee_id == record.employee_id)
            .where(employees.c.sync_time < record.sync_time)
            .values(first_name=record.first_name, sync_time=record.sync_time)
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                await session.commit()
                if result.rowcount:
                    logger.info(
                        "Updated employee %s with first_name %r at sync_time %s",
                        record.employee_id,
                        record.first_name,
                        record.sync_time,
                    )
                    return UpdateOutcome.APPLIED
                exists = await session.execute(
                    select(employees.c.employee_id).where(
                        employees.c.employee_id == record.employee_id
                    )
                )
                outcome = (
                    UpdateOutcome.STALE
                    if exists.first() is not None
                    else UpdateOutcome.NOT_FOUND
                )
        except SQLAlchemyError as e:
            logger.error("Error updating employee %s: %s", record.employee_id, e)
            raise PersistenceError(str(e)) from e
        logger.warning(
            "No rows updated for employee %s (%s)", record.employee_id, outcome.value
        )
        return outcome

    async def get(self, employee_id: int) -> dict[str, Any] | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(employees).where(employees.c.employee_id == employee_id)
            )
            row = result.mappings().first()
            return dict(row) if row is not None else None


async def create_schema(engine: AsyncEngine) -> None:
    """Create the employees table if it does not exist."""
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)


async def seed_employees(engine: AsyncEngine, employee_ids: list[int]) -> int:
    """Insert placeholder rows for *employee_ids* that are not present yet."""
    async with engine.begin() as conn:
        result = await conn.execute(select(employees.c.employee_id))
        existing = {row[0] for row in result}
        missing = [i for i in employee_ids if i not in existing]
        if missing:
            await conn.execute(
                employees.insert(),
                [{"employee_id": i, "first_name": "", "sync_time": 0} for i in missing],
            )
    return len(missing)
