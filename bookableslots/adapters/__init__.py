"""
Adapters layer - External integrations (scheduling API).
"""

from .booking_client import BookingClient
from .mock_booking_client import MockBookingClient
from .token_provider import TokenProvider

__all__ = ["BookingClient", "MockBookingClient", "TokenProvider"]
