"""
Pagination and response envelope for aggregated slots.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from .models import UnifiedSlot


@dataclass(frozen=True)
class Pagination:
    requested_limit: Optional[int]
    requested_offset: int
    page_size: int
    total_before_slice: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "requestedLimit": self.requested_limit,
            "requestedOffset": self.requested_offset,
            "pageSize": self.page_size,
            "totalBeforeSlice": self.total_before_slice,
        }


@dataclass(frozen=True)
class UnifiedResponse:
    slots: List[UnifiedSlot]
    total: int
    pagination: Pagination
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "slots": [slot.to_dict() for slot in self.slots],
            "total": self.total,
            "pagination": self.pagination.to_dict(),
            "metadata": dict(self.metadata),
        }


def paginate(
    slots: Sequence[UnifiedSlot],
    limit: Optional[int],
    offset: Optional[int],
) -> List[UnifiedSlot]:
    """Apply offset then limit; a missing limit keeps everything after the offset."""
    start = offset or 0
    if limit is None:
        return list(slots[start:])
    return list(slots[start:start + limit])


def build_response(
    slots: Sequence[UnifiedSlot],
    requested_limit: Optional[int],
    requested_offset: Optional[int],
    total_before_slice: int,
    query_echo: Dict[str, Any],
) -> UnifiedResponse:
    """
    Wrap already-sliced slots with pagination and query metadata.

    ``total`` is the count after slicing. ``query_echo`` is copied verbatim.
    """
    slot_list = list(slots)
    return UnifiedResponse(
        slots=slot_list,
        total=len(slot_list),
        pagination=Pagination(
            requested_limit=requested_limit,
            requested_offset=requested_offset or 0,
            page_size=len(slot_list),
            total_before_slice=total_before_slice,
        ),
        metadata=dict(query_echo),
    )
