"""
Domain models for availability, offerings and the unified slot composite.
"""

from dataclasses import dataclass, field
from datetime import time
from typing import Any, Dict, List, Optional

from pendulum import DateTime

from .increment_filter import format_increments


@dataclass(frozen=True)
class AvailabilitySlot:
    """
    One bookable appointment window as reported by the scheduling API.

    Invariant: start must be before end.
    """
    session_type_id: int
    staff_id: int
    location_id: int
    start_date_time: DateTime
    end_date_time: DateTime
    bookable_end_date_time: Optional[DateTime] = None
    every_mins: Optional[int] = None

    def __post_init__(self):
        if self.start_date_time >= self.end_date_time:
            raise ValueError(
                f"Start time {self.start_date_time} must be before end time {self.end_date_time}"
            )

    def slot_id(self) -> str:
        """
        Deterministic composite identifier.

        Format: {session_type_id}-{staff_id}-{location_id}-{YYYY-MM-DD}-{HHMMSS}
        """
        start = self.start_date_time
        return "-".join(
            [
                str(self.session_type_id),
                str(self.staff_id),
                str(self.location_id),
                start.to_date_string(),
                start.to_time_string().replace(":", ""),
            ]
        )


@dataclass(frozen=True)
class BusinessHourIncrement:
    """
    A time-of-day at which a session may start.

    ``session_type_id`` is None when the increment applies to every session
    type of the batched request.
    """
    time: time
    session_type_id: Optional[int] = None

    def applies_to(self, session_type_id: int) -> bool:
        return self.session_type_id is None or self.session_type_id == session_type_id


@dataclass(frozen=True)
class Offering:
    """A priced, sellable service matched to slots by its free-text name."""
    id: str
    name: str
    price: Optional[float] = None
    online_price: Optional[float] = None
    sell_online: bool = False
    duration: Optional[int] = None
    session_type_id: Optional[int] = None

    def applies_to(self, session_type_id: int) -> bool:
        return self.session_type_id is None or self.session_type_id == session_type_id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "price": self.price,
            "onlinePrice": self.online_price,
            "sellOnline": self.sell_online,
            "duration": self.duration,
        }


@dataclass(frozen=True)
class SessionType:
    id: int
    name: str
    program_id: Optional[int] = None


@dataclass(frozen=True)
class StaffMember:
    id: int
    full_name: str
    bio: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.full_name, "bio": self.bio}


@dataclass(frozen=True)
class Location:
    id: int
    name: str
    address: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "address": self.address}


@dataclass(frozen=True)
class ReferenceData:
    """
    Lookup tables for session types, staff and locations.

    Held for the duration of a single aggregation call.
    """
    session_types: Dict[int, SessionType] = field(default_factory=dict)
    staff: Dict[int, StaffMember] = field(default_factory=dict)
    locations: Dict[int, Location] = field(default_factory=dict)

    def treatment_name(self, session_type_id: int) -> str:
        session_type = self.session_types.get(session_type_id)
        return session_type.name if session_type else ""

    def staff_member(self, staff_id: int) -> Optional[StaffMember]:
        return self.staff.get(staff_id)

    def location(self, location_id: int) -> Optional[Location]:
        return self.locations.get(location_id)

    def session_type_ids_for_program(self, program_id: int) -> List[int]:
        """Return ids of session types belonging to a program, in table order."""
        return [
            session_type.id
            for session_type in self.session_types.values()
            if session_type.program_id == program_id
        ]


@dataclass(frozen=True)
class UnifiedSlot:
    """
    An availability window joined with its increments, offerings and reference data.

    Invariant: every active time lies within [start_date_time, end_date_time).
    """
    slot_id: str
    availability: AvailabilitySlot
    treatment_name: str
    active_times: List[time]
    offerings: List[Offering]
    staff: Optional[StaffMember] = None
    location: Optional[Location] = None

    def to_dict(self) -> Dict[str, Any]:
        availability = self.availability
        bookable_end = availability.bookable_end_date_time
        return {
            "id": self.slot_id,
            "sessionTypeId": availability.session_type_id,
            "treatmentName": self.treatment_name,
            "staffId": availability.staff_id,
            "staff": self.staff.to_dict() if self.staff else None,
            "locationId": availability.location_id,
            "location": self.location.to_dict() if self.location else None,
            "startDateTime": availability.start_date_time.to_iso8601_string(),
            "endDateTime": availability.end_date_time.to_iso8601_string(),
            "bookableEndDateTime": bookable_end.to_iso8601_string() if bookable_end else None,
            "everyMins": availability.every_mins,
            "activeTimes": format_increments(self.active_times),
            "offerings": [offering.to_dict() for offering in self.offerings],
        }
