"""
Application service that aggregates bookable slots.

The service drives a booking client adapter to fetch availability, business
hour increments and priced offerings, then joins them per availability window
using the domain-level increment filter and offering matcher. The booking
dependency is expressed as a protocol so a stub or the mock client can stand
in for the real API.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import time
from typing import Dict, List, Optional, Protocol, Sequence, Tuple

from ..domain.exceptions import MissingParamsError
from ..domain.increment_filter import filter_increments
from ..domain.models import (
    AvailabilitySlot,
    BusinessHourIncrement,
    Offering,
    ReferenceData,
    UnifiedSlot,
)
from ..domain.offering_matcher import match_offerings
from ..domain.query import SlotQuery
from ..domain.response_builder import UnifiedResponse, build_response, paginate

logger = logging.getLogger(__name__)


class BookingClientProtocol(Protocol):
    """Protocol describing the booking client behaviour needed by the service."""

    def resolve_token(self, token: Optional[str] = None) -> str:
        """Return the given token or obtain one."""

    def fetch_reference_data(
        self,
        session_type_ids: Sequence[int] = (),
        program_id: Optional[int] = None,
        location_ids: Sequence[int] = (),
        staff_ids: Sequence[int] = (),
        token: Optional[str] = None,
    ) -> ReferenceData:
        """Return session type, staff and location lookup tables."""

    def fetch_availability(self, query: SlotQuery, token: Optional[str] = None) -> List[AvailabilitySlot]:
        """Return availability windows matching the query."""

    def fetch_increments(
        self,
        session_type_ids: Sequence[int],
        token: Optional[str] = None,
    ) -> List[BusinessHourIncrement]:
        """Return booking increments for the session types."""

    def fetch_offerings(self, session_type_ids: Sequence[int], token: Optional[str] = None) -> List[Offering]:
        """Return priced offerings for the session types."""


class SlotAggregatorService:
    """
    Orchestrates the fetch phase and the per-slot build phase.

    One call issues one availability, one increments and one offerings
    request no matter how many slots come back. Any failure aborts the call.
    """

    def __init__(self, booking_client: BookingClientProtocol) -> None:
        self._booking_client = booking_client

    async def get_unified_bookable_slots(
        self,
        query: SlotQuery,
        token: Optional[str] = None,
    ) -> UnifiedResponse:
        """
        Fetch, join and paginate bookable slots for the query.

        Raises:
            MissingParamsError: If session types/program or dates are missing
            MissingCredentialsError, AuthError, UpstreamError: From the client
        """
        query.ensure_complete()

        access_token = await asyncio.to_thread(self._booking_client.resolve_token, token)

        reference = await asyncio.to_thread(
            self._booking_client.fetch_reference_data,
            session_type_ids=list(query.session_type_ids),
            program_id=None if query.session_type_ids else query.program_id,
            location_ids=list(query.location_ids),
            staff_ids=list(query.staff_ids),
            token=access_token,
        )

        session_type_ids = self.resolve_session_types(query, reference)
        resolved_query = query.with_session_types(session_type_ids)

        if not session_type_ids:
            logger.info("Program %s has no session types; nothing to fetch", query.program_id)
            return build_response([], query.limit, query.offset, 0, resolved_query.echo())

        logger.info("Aggregating slots for session types %s", session_type_ids)

        availability, increments, offerings = await self.fetch_datasets(resolved_query, access_token)

        slots = self.build_slots(
            availability=availability,
            increments=increments,
            offerings=offerings,
            reference=reference,
        )
        page = paginate(slots, query.limit, query.offset)

        logger.debug("Built %d slots, returning %d", len(slots), len(page))

        return build_response(
            page,
            requested_limit=query.limit,
            requested_offset=query.offset,
            total_before_slice=len(slots),
            query_echo=resolved_query.echo(),
        )

    @staticmethod
    def resolve_session_types(query: SlotQuery, reference: ReferenceData) -> List[int]:
        """Explicit session type ids win; otherwise look them up by program."""
        if query.session_type_ids:
            return list(query.session_type_ids)

        if query.program_id is None:
            raise MissingParamsError(["SessionTypeIds or ProgramId"])

        return reference.session_type_ids_for_program(query.program_id)

    async def fetch_datasets(
        self,
        query: SlotQuery,
        token: str,
    ) -> Tuple[List[AvailabilitySlot], List[BusinessHourIncrement], List[Offering]]:
        """Issue the three independent fetches concurrently."""
        session_type_ids = list(query.session_type_ids)

        availability, increments, offerings = await asyncio.gather(
            asyncio.to_thread(self._booking_client.fetch_availability, query, token),
            asyncio.to_thread(self._booking_client.fetch_increments, session_type_ids, token),
            asyncio.to_thread(self._booking_client.fetch_offerings, session_type_ids, token),
        )

        return availability, increments, offerings

    def build_slots(
        self,
        *,
        availability: Sequence[AvailabilitySlot],
        increments: Sequence[BusinessHourIncrement],
        offerings: Sequence[Offering],
        reference: ReferenceData,
    ) -> List[UnifiedSlot]:
        """Join every availability window, in upstream order, into a unified slot."""
        increments_by_type: Dict[int, List[time]] = {}
        offerings_by_type: Dict[int, List[Offering]] = {}
        slots: List[UnifiedSlot] = []

        for window in availability:
            session_type_id = window.session_type_id

            if session_type_id not in increments_by_type:
                increments_by_type[session_type_id] = [
                    increment.time for increment in increments if increment.applies_to(session_type_id)
                ]
                offerings_by_type[session_type_id] = [
                    offering for offering in offerings if offering.applies_to(session_type_id)
                ]

            staff = reference.staff_member(window.staff_id)
            treatment_name = reference.treatment_name(session_type_id)

            slots.append(
                UnifiedSlot(
                    slot_id=window.slot_id(),
                    availability=window,
                    treatment_name=treatment_name,
                    active_times=filter_increments(
                        increments_by_type[session_type_id],
                        window.start_date_time,
                        window.end_date_time,
                    ),
                    offerings=match_offerings(
                        offerings_by_type[session_type_id],
                        treatment_name,
                        staff.full_name if staff else "",
                    ),
                    staff=staff,
                    location=reference.location(window.location_id),
                )
            )

        return slots
