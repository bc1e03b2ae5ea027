"""
Domain layer - Slot joining logic without I/O.
"""

from .exceptions import (
    AuthError,
    BookableSlotsError,
    MissingCredentialsError,
    MissingParamsError,
    UpstreamError,
)
from .increment_filter import filter_increments
from .models import (
    AvailabilitySlot,
    BusinessHourIncrement,
    Location,
    Offering,
    ReferenceData,
    SessionType,
    StaffMember,
    UnifiedSlot,
)
from .offering_matcher import match_offerings
from .query import SlotQuery
from .response_builder import UnifiedResponse, build_response, paginate

__all__ = [
    "AuthError",
    "BookableSlotsError",
    "MissingCredentialsError",
    "MissingParamsError",
    "UpstreamError",
    "filter_increments",
    "AvailabilitySlot",
    "BusinessHourIncrement",
    "Location",
    "Offering",
    "ReferenceData",
    "SessionType",
    "StaffMember",
    "UnifiedSlot",
    "match_offerings",
    "SlotQuery",
    "UnifiedResponse",
    "build_response",
    "paginate",
]
