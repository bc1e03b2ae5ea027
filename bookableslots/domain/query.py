"""
Validated filter arguments for the aggregation operation.
"""

from datetime import date, datetime
from typing import Any, Dict, List, Optional

import pendulum
from pendulum import DateTime
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .exceptions import MissingParamsError


class SlotQuery(BaseModel):
    """
    Filter for one aggregation call.

    Accepts snake_case field names or the scheduling API's PascalCase names
    (``SessionTypeIds``, ``ProgramId``, ``StartDate``, ...).

    Defaults: no location or staff restriction, no limit, offset 0.
    At least one of session_type_ids / program_id and both dates are
    required; see ``ensure_complete``.
    """
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    session_type_ids: List[int] = Field(default_factory=list, alias="SessionTypeIds")
    program_id: Optional[int] = Field(default=None, alias="ProgramId")
    start_date: Optional[datetime] = Field(default=None, alias="StartDate")
    end_date: Optional[datetime] = Field(default=None, alias="EndDate")
    location_ids: List[int] = Field(default_factory=list, alias="LocationIds")
    staff_ids: List[int] = Field(default_factory=list, alias="StaffIds")
    limit: Optional[int] = Field(default=None, ge=0, alias="Limit")
    offset: int = Field(default=0, ge=0, alias="Offset")

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def parse_datetime(cls, value: Any) -> Optional[DateTime]:
        """Accept ISO strings, datetimes and dates; normalise to pendulum."""
        if value is None or value == "":
            return None
        if isinstance(value, DateTime):
            return value
        if isinstance(value, datetime):
            return pendulum.instance(value)
        if isinstance(value, date):
            return pendulum.datetime(value.year, value.month, value.day)
        if isinstance(value, str):
            parsed = pendulum.parse(value)
            if not isinstance(parsed, DateTime):
                raise ValueError(f"Could not parse datetime: {value}")
            return parsed
        raise ValueError(f"Unsupported datetime value: {value!r}")

    @field_validator("start_date", "end_date", mode="after")
    @classmethod
    def ensure_pendulum(cls, value: Optional[datetime]) -> Optional[DateTime]:
        if value is None or isinstance(value, DateTime):
            return value
        return pendulum.instance(value)

    @field_validator("session_type_ids", "location_ids", "staff_ids", mode="before")
    @classmethod
    def parse_id_list(cls, value: Any) -> List[Any]:
        """Allow a single id or a comma-separated string."""
        if value is None:
            return []
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        if isinstance(value, int):
            return [value]
        return list(value)

    @model_validator(mode="after")
    def validate_date_order(self) -> "SlotQuery":
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("EndDate must not be before StartDate")
        return self

    def missing_params(self) -> List[str]:
        missing: List[str] = []
        if not self.session_type_ids and self.program_id is None:
            missing.append("SessionTypeIds or ProgramId")
        if self.start_date is None:
            missing.append("StartDate")
        if self.end_date is None:
            missing.append("EndDate")
        return missing

    def ensure_complete(self) -> None:
        """
        Raises:
            MissingParamsError: If a required filter is absent
        """
        missing = self.missing_params()
        if missing:
            raise MissingParamsError(missing)

    def with_session_types(self, session_type_ids: List[int]) -> "SlotQuery":
        return self.model_copy(update={"session_type_ids": list(session_type_ids)})

    def echo(self) -> Dict[str, Any]:
        """Query parameters as echoed back in response metadata."""
        return {
            "programId": self.program_id,
            "sessionTypeIds": list(self.session_type_ids),
            "locationIds": list(self.location_ids),
            "staffIds": list(self.staff_ids),
            "startDate": self.start_date.to_iso8601_string() if self.start_date else None,
            "endDate": self.end_date.to_iso8601_string() if self.end_date else None,
        }
