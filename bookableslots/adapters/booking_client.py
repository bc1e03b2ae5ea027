"""
Scheduling API client for fetching availability, increments, offerings and reference data.
"""

from __future__ import annotations

import logging
from datetime import time
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, TypeVar

import pendulum
import requests
from pendulum import DateTime

from ..config import AppConfig
from ..domain.exceptions import MissingCredentialsError, UpstreamError
from ..domain.models import (
    AvailabilitySlot,
    BusinessHourIncrement,
    Location,
    Offering,
    ReferenceData,
    SessionType,
    StaffMember,
)
from ..domain.query import SlotQuery
from .http import error_details, format_upstream_datetime, upstream_headers
from .token_provider import TokenProvider

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Largest page the API serves; increments, offerings and reference tables fit in one
MAX_PAGE_SIZE = 200

MALFORMED = "MalformedResponse"


class BookingClient:
    """
    Client for the scheduling API read endpoints.

    Every fetch issues exactly one request per resource and returns parsed
    domain records. Nothing is cached: availability is always fresh.
    """

    AVAILABILITY_PATH = "/appointment/bookableitems"
    INCREMENTS_PATH = "/appointment/activesessiontimes"
    OFFERINGS_PATH = "/sale/services"
    SESSION_TYPES_PATH = "/site/sessiontypes"
    STAFF_PATH = "/staff/staff"
    LOCATIONS_PATH = "/site/locations"
    SITES_PATH = "/site/sites"

    def __init__(
        self,
        base_url: str,
        api_key: str,
        site_id: str,
        token_provider: Optional[TokenProvider] = None,
        timeout_seconds: float = 30.0,
        timezone: str = "UTC",
    ):
        """
        Initialize the client.

        Args:
            base_url: Scheduling API base URL
            api_key: Developer API key
            site_id: Business site identifier
            token_provider: Used when a call is made without a token
            timeout_seconds: Per-request transport timeout
            timezone: Timezone of the site's naive timestamps
        """
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.site_id = site_id
        self.token_provider = token_provider
        self.timeout_seconds = timeout_seconds
        self.timezone = timezone

    @classmethod
    def from_config(cls, config: AppConfig, token_provider: Optional[TokenProvider] = None) -> "BookingClient":
        return cls(
            base_url=config.upstream.base_url,
            api_key=config.upstream.api_key,
            site_id=config.upstream.site_id,
            token_provider=token_provider or TokenProvider.from_config(config),
            timeout_seconds=config.upstream.timeout_seconds,
            timezone=config.timezone,
        )

    def resolve_token(self, token: Optional[str] = None) -> str:
        """
        Return ``token`` or obtain one from the token provider.

        Raises:
            MissingCredentialsError: If no token is given and no provider is configured
            AuthError: If the provider cannot issue a token
        """
        if token:
            return token
        if self.token_provider is None:
            raise MissingCredentialsError(["access token (no token provider configured)"])
        return self.token_provider.get_access_token()

    def fetch_availability(self, query: SlotQuery, token: Optional[str] = None) -> List[AvailabilitySlot]:
        """
        Get bookable availability windows matching the query.

        Returns:
            AvailabilitySlot objects in upstream order
        """
        params: Dict[str, Any] = {
            "request.sessionTypeIds": list(query.session_type_ids),
            "request.locationIds": list(query.location_ids),
            "request.staffIds": list(query.staff_ids),
        }
        if query.start_date is not None:
            params["request.startDate"] = format_upstream_datetime(query.start_date)
        if query.end_date is not None:
            params["request.endDate"] = format_upstream_datetime(query.end_date)
        # Rows up to the end of the requested page; the caller slices the page itself
        page_end = query.offset + query.limit if query.limit is not None else MAX_PAGE_SIZE
        params["request.limit"] = min(max(page_end, 1), MAX_PAGE_SIZE)
        params["request.offset"] = 0

        status, data = self._get(self.AVAILABILITY_PATH, params, token)
        items = self._records(
            data,
            "Availabilities",
            self.AVAILABILITY_PATH,
            status,
            expect_partial=query.limit is not None and page_end <= MAX_PAGE_SIZE,
        )
        return self._parse_all(
            items,
            lambda item: parse_availability(item, self.timezone),
            self.AVAILABILITY_PATH,
            status,
        )

    def fetch_increments(
        self,
        session_type_ids: Sequence[int],
        token: Optional[str] = None,
    ) -> List[BusinessHourIncrement]:
        """
        Get the business-hour booking increments for the given session types.

        Returns:
            Increments sorted by time of day
        """
        params = {
            "request.sessionTypeIds": list(session_type_ids),
            "request.limit": MAX_PAGE_SIZE,
        }
        status, data = self._get(self.INCREMENTS_PATH, params, token)
        items = self._records(data, "ActiveSessionTimes", self.INCREMENTS_PATH, status)
        increments = self._parse_all(items, parse_increment, self.INCREMENTS_PATH, status)
        return sorted(increments, key=lambda increment: increment.time)

    def fetch_offerings(self, session_type_ids: Sequence[int], token: Optional[str] = None) -> List[Offering]:
        """Get priced services sellable for the given session types."""
        params = {
            "request.sessionTypeIds": list(session_type_ids),
            "request.limit": MAX_PAGE_SIZE,
        }
        status, data = self._get(self.OFFERINGS_PATH, params, token)
        items = self._records(data, "Services", self.OFFERINGS_PATH, status)
        return self._parse_all(items, parse_offering, self.OFFERINGS_PATH, status)

    def fetch_reference_data(
        self,
        session_type_ids: Sequence[int] = (),
        program_id: Optional[int] = None,
        location_ids: Sequence[int] = (),
        staff_ids: Sequence[int] = (),
        token: Optional[str] = None,
    ) -> ReferenceData:
        """
        Get session type, staff and location lookup tables.

        Session types are narrowed to ``program_id`` when given. Staff are
        narrowed to ``staff_ids`` when given. Locations are always the full
        site list.
        """
        session_type_params: Dict[str, Any] = {"request.limit": MAX_PAGE_SIZE}
        if program_id is not None:
            session_type_params["request.programIDs"] = [program_id]
        status, data = self._get(self.SESSION_TYPES_PATH, session_type_params, token)
        session_types = self._parse_all(
            self._records(data, "SessionTypes", self.SESSION_TYPES_PATH, status),
            parse_session_type,
            self.SESSION_TYPES_PATH,
            status,
        )

        staff_params: Dict[str, Any] = {
            "request.staffIds": list(staff_ids),
            "request.limit": MAX_PAGE_SIZE,
        }
        status, data = self._get(self.STAFF_PATH, staff_params, token)
        staff = self._parse_all(
            self._records(data, "StaffMembers", self.STAFF_PATH, status),
            parse_staff_member,
            self.STAFF_PATH,
            status,
        )

        status, data = self._get(self.LOCATIONS_PATH, {"request.limit": MAX_PAGE_SIZE}, token)
        locations = self._parse_all(
            self._records(data, "Locations", self.LOCATIONS_PATH, status),
            parse_location,
            self.LOCATIONS_PATH,
            status,
        )

        logger.debug(
            "Reference data: %d session types, %d staff, %d locations (requested session types %s, locations %s)",
            len(session_types),
            len(staff),
            len(locations),
            list(session_type_ids),
            list(location_ids),
        )

        return ReferenceData(
            session_types={session_type.id: session_type for session_type in session_types},
            staff={member.id: member for member in staff},
            locations={location.id: location for location in locations},
        )

    def test_connection(self, token: Optional[str] = None) -> Dict[str, Any]:
        """
        Test the connection and authentication by fetching the site record.

        Returns:
            Site data
        """
        _, data = self._get(self.SITES_PATH, {}, token)
        sites = data.get("Sites") or []
        return sites[0] if sites and isinstance(sites[0], dict) else {}

    def _get(self, path: str, params: Dict[str, Any], token: Optional[str]) -> Tuple[int, Dict[str, Any]]:
        """
        GET ``path`` and return the status code with the decoded JSON object.

        A 401 drops the rejected token from the provider cache so the next
        call issues a fresh one.
        """
        missing = [name for name, value in (("api_key", self.api_key), ("site_id", self.site_id)) if not value]
        if missing:
            raise MissingCredentialsError(missing)

        access_token = self.resolve_token(token)
        url = f"{self.base_url}{path}"
        # Empty list filters mean "no restriction"; leave them out
        clean_params = {key: value for key, value in params.items() if value not in (None, [])}

        logger.debug("GET %s %s", path, clean_params)

        try:
            response = requests.get(
                url,
                headers=upstream_headers(self.api_key, self.site_id, access_token),
                params=clean_params,
                timeout=self.timeout_seconds,
            )
        except requests.exceptions.RequestException as exc:
            logger.warning("Request to %s failed: %s", path, exc)
            raise UpstreamError(None, "TransportError", f"Request to {path} failed: {exc}") from exc

        if not response.ok:
            code, message = error_details(response)
            logger.warning("Upstream %s returned %s (%s)", path, response.status_code, code)
            if response.status_code == 401 and self.token_provider is not None:
                self.token_provider.invalidate(access_token)
            raise UpstreamError(response.status_code, code, message)

        try:
            data = response.json()
        except ValueError as exc:
            raise UpstreamError(response.status_code, MALFORMED, f"{path} returned invalid JSON") from exc

        if not isinstance(data, dict):
            raise UpstreamError(response.status_code, MALFORMED, f"{path} returned a non-object payload")

        return response.status_code, data

    @staticmethod
    def _records(
        data: Dict[str, Any],
        key: str,
        path: str,
        status: int,
        expect_partial: bool = False,
    ) -> List[Any]:
        """
        Return the record list under ``key``.

        Logs a warning when ``PaginationResponse.TotalResults`` reports more
        rows than were returned, unless a partial page was asked for.
        """
        records = data.get(key)
        if not isinstance(records, list):
            raise UpstreamError(status, MALFORMED, f"{path} response missing '{key}' list")

        pagination = data.get("PaginationResponse")
        total = pagination.get("TotalResults") if isinstance(pagination, dict) else None
        if not expect_partial and isinstance(total, int) and total > len(records):
            logger.warning(
                "%s returned %d of %d records; the rest were not fetched",
                path,
                len(records),
                total,
            )

        return records

    @staticmethod
    def _parse_all(items: List[Any], parser: Callable[[Any], T], path: str, status: int) -> List[T]:
        """Parse every record; one bad record fails the whole payload."""
        parsed: List[T] = []
        for index, item in enumerate(items):
            try:
                parsed.append(parser(item))
            except (KeyError, TypeError, ValueError) as exc:
                raise UpstreamError(status, MALFORMED, f"{path} record {index} could not be parsed: {exc}") from exc
        return parsed


def _nested_id(item: Dict[str, Any], nested_key: str, flat_key: str) -> int:
    nested = item.get(nested_key)
    if isinstance(nested, dict) and nested.get("Id") is not None:
        return int(nested["Id"])
    return int(item[flat_key])


def _optional_float(value: Any) -> Optional[float]:
    return None if value is None else float(value)


def _optional_int(value: Any) -> Optional[int]:
    return None if value is None else int(value)


def parse_datetime(value: str, timezone: str) -> DateTime:
    """
    Parse an API timestamp.

    Naive timestamps are site-local and interpreted in ``timezone``.
    """
    dt = pendulum.parse(value, tz=timezone)

    if isinstance(dt, DateTime):
        return dt

    raise ValueError(f"Could not parse datetime: {value}")


def parse_availability(item: Dict[str, Any], timezone: str) -> AvailabilitySlot:
    """
    Parse one bookable item.

    Item format:
    {
        "Staff": {"Id": 100000001, ...},
        "SessionType": {"Id": 12, "Name": "...", "DefaultTimeLength": 60},
        "Location": {"Id": 1, ...},
        "StartDateTime": "2026-11-02T16:00:00",
        "EndDateTime": "2026-11-02T22:00:00",
        "BookableEndDateTime": "2026-11-02T21:00:00"
    }
    """
    session_type = item.get("SessionType") if isinstance(item.get("SessionType"), dict) else {}
    every_mins = item.get("EveryMins")
    if every_mins is None:
        every_mins = session_type.get("DefaultTimeLength")

    bookable_end = item.get("BookableEndDateTime")

    return AvailabilitySlot(
        session_type_id=_nested_id(item, "SessionType", "SessionTypeId"),
        staff_id=_nested_id(item, "Staff", "StaffId"),
        location_id=_nested_id(item, "Location", "LocationId"),
        start_date_time=parse_datetime(item["StartDateTime"], timezone),
        end_date_time=parse_datetime(item["EndDateTime"], timezone),
        bookable_end_date_time=parse_datetime(bookable_end, timezone) if bookable_end else None,
        every_mins=_optional_int(every_mins),
    )


def parse_increment(item: Any) -> BusinessHourIncrement:
    """Parse "06:00:00" or {"SessionTypeId": 12, "Time": "06:00:00"}."""
    if isinstance(item, str):
        return BusinessHourIncrement(time=time.fromisoformat(item))

    return BusinessHourIncrement(
        time=time.fromisoformat(item["Time"]),
        session_type_id=_optional_int(item.get("SessionTypeId")),
    )


def parse_offering(item: Dict[str, Any]) -> Offering:
    return Offering(
        id=str(item["Id"]),
        name=str(item.get("Name") or ""),
        price=_optional_float(item.get("Price")),
        online_price=_optional_float(item.get("OnlinePrice")),
        sell_online=bool(item.get("SellOnline", False)),
        duration=_optional_int(item.get("Duration")),
        session_type_id=_optional_int(item.get("SessionTypeId")),
    )


def parse_session_type(item: Dict[str, Any]) -> SessionType:
    return SessionType(
        id=int(item["Id"]),
        name=str(item.get("Name") or ""),
        program_id=_optional_int(item.get("ProgramId")),
    )


def parse_staff_member(item: Dict[str, Any]) -> StaffMember:
    """Full name is first + last name, falling back to the display name."""
    parts = [str(item.get(key) or "").strip() for key in ("FirstName", "LastName")]
    full_name = " ".join(part for part in parts if part)
    if not full_name:
        full_name = str(item.get("DisplayName") or item.get("Name") or "").strip()

    return StaffMember(id=int(item["Id"]), full_name=full_name, bio=str(item.get("Bio") or ""))


def parse_location(item: Dict[str, Any]) -> Location:
    address_parts = [
        str(item.get(key) or "").strip()
        for key in ("Address", "Address2", "City", "StateProvCode", "PostalCode")
    ]
    return Location(
        id=int(item["Id"]),
        name=str(item.get("Name") or ""),
        address=", ".join(part for part in address_parts if part),
    )
