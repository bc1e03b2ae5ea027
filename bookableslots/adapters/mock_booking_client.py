"""
Mock scheduling API client for running without credentials.
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from ..domain.models import AvailabilitySlot, BusinessHourIncrement, Offering, ReferenceData
from ..domain.query import SlotQuery
from .booking_client import (
    parse_availability,
    parse_increment,
    parse_location,
    parse_offering,
    parse_session_type,
    parse_staff_member,
)


class MockBookingClient:
    """
    Mock client that serves scheduling API payloads from mock_booking_data.json.

    The file uses the same record shapes as the real API, so the same parsers
    apply. Filters are applied locally the way the API would apply them.
    """

    def __init__(self, data_file: Optional[Path] = None, timezone: str = "UTC"):
        """
        Initialize the mock client.

        Args:
            data_file: Optional path to a payload file; defaults to the bundled one
            timezone: Timezone of the naive timestamps in the file
        """
        self.data_file = data_file or Path(__file__).parent / "mock_booking_data.json"
        self.timezone = timezone
        self._load_data()

    def _load_data(self) -> None:
        """Load mock payloads from the JSON file."""
        if self.data_file.exists():
            with open(self.data_file, "r", encoding="utf-8") as f:
                self.data: Dict[str, List[Any]] = json.load(f)
        else:
            self.data = {}

    def resolve_token(self, token: Optional[str] = None) -> str:
        return token or "mock_access_token_12345"

    def fetch_availability(self, query: SlotQuery, token: Optional[str] = None) -> List[AvailabilitySlot]:
        slots = [parse_availability(item, self.timezone) for item in self.data.get("Availabilities", [])]
        return [
            slot
            for slot in slots
            if (not query.session_type_ids or slot.session_type_id in query.session_type_ids)
            and (not query.location_ids or slot.location_id in query.location_ids)
            and (not query.staff_ids or slot.staff_id in query.staff_ids)
            and (query.start_date is None or slot.end_date_time > query.start_date)
            and (query.end_date is None or slot.start_date_time < query.end_date)
        ]

    def fetch_increments(
        self,
        session_type_ids: Sequence[int],
        token: Optional[str] = None,
    ) -> List[BusinessHourIncrement]:
        increments = [parse_increment(item) for item in self.data.get("ActiveSessionTimes", [])]
        selected = [
            increment
            for increment in increments
            if increment.session_type_id is None or increment.session_type_id in session_type_ids
        ]
        return sorted(selected, key=lambda increment: increment.time)

    def fetch_offerings(self, session_type_ids: Sequence[int], token: Optional[str] = None) -> List[Offering]:
        offerings = [parse_offering(item) for item in self.data.get("Services", [])]
        return [
            offering
            for offering in offerings
            if offering.session_type_id is None or offering.session_type_id in session_type_ids
        ]

    def fetch_reference_data(
        self,
        session_type_ids: Sequence[int] = (),
        program_id: Optional[int] = None,
        location_ids: Sequence[int] = (),
        staff_ids: Sequence[int] = (),
        token: Optional[str] = None,
    ) -> ReferenceData:
        session_types = [parse_session_type(item) for item in self.data.get("SessionTypes", [])]
        if program_id is not None:
            session_types = [session_type for session_type in session_types if session_type.program_id == program_id]

        staff = [parse_staff_member(item) for item in self.data.get("StaffMembers", [])]
        if staff_ids:
            staff = [member for member in staff if member.id in staff_ids]

        locations = [parse_location(item) for item in self.data.get("Locations", [])]

        return ReferenceData(
            session_types={session_type.id: session_type for session_type in session_types},
            staff={member.id: member for member in staff},
            locations={location.id: location for location in locations},
        )

    def test_connection(self, token: Optional[str] = None) -> Dict[str, Any]:
        """
        Mock connection test.

        Returns:
            Mock site data
        """
        return {"Id": -99, "Name": "Mock Wellness Studio"}
