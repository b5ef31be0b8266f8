"""Employee update record and the outcome of applying it."""

from __future__ import annotations

import enum

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class EmployeeUpdate(BaseModel):
    """Business payload: set an employee's first name as of ``sync_time``.

    ``sync_time`` (epoch ms) is the record version; stores only apply an
    update that is strictly newer than what they hold.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    employee_id: int = Field(
        validation_alias=AliasChoices("employeeId", "EmployeeID", "employee_id"),
        serialization_alias="employeeId",
    )
    first_name: str = Field(
        validation_alias=AliasChoices("firstName", "FirstName", "first_name"),
        serialization_alias="firstName",
    )
    sync_time: int = Field(
        validation_alias=AliasChoices("syncTime", "SyncTime", "sync_time"),
        serialization_alias="syncTime",
    )


class UpdateOutcome(str, enum.Enum):
    APPLIED = "applied"
    STALE = "stale"
    NOT_FOUND = "not_found"

    @property
    def applied(self) -> bool:
        return self is UpdateOutcome.APPLIED
