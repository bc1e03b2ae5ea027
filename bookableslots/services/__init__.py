"""
Service layer helpers that orchestrate adapters and domain logic.
"""

from .slot_aggregator import BookingClientProtocol, SlotAggregatorService

__all__ = ["BookingClientProtocol", "SlotAggregatorService"]
