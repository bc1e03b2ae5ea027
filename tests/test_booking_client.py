"""
Tests for the scheduling API client.
"""

import json
from datetime import time
from typing import Any, Dict, List

import pytest
import requests

from bookableslots.adapters.booking_client import BookingClient, parse_staff_member
from bookableslots.domain.exceptions import AuthError, MissingCredentialsError, UpstreamError
from bookableslots.domain.query import SlotQuery

BASE_URL = "https://api.example.test/public/v6"


class _FakeResponse:
    def __init__(self, status_code: int = 200, payload: Any = None, text: str | None = None) -> None:
        self.status_code = status_code
        self._payload = payload
        self.text = text if text is not None else json.dumps(payload)
        self.reason = "OK" if status_code < 400 else "Error"

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def json(self) -> Any:
        if self._payload is None:
            raise ValueError("No JSON object could be decoded")
        return self._payload


class _FakeTokenProvider:
    def __init__(self, token: str = "issued-token", error: Exception | None = None) -> None:
        self.token = token
        self.error = error
        self.calls = 0
        self.invalidated: List[str | None] = []

    def invalidate(self, token: str | None = None) -> None:
        self.invalidated.append(token)

    def get_access_token(self, force_refresh: bool = False) -> str:
        self.calls += 1
        if self.error:
            raise self.error
        return self.token


def _client(token_provider=None) -> BookingClient:
    return BookingClient(
        base_url=BASE_URL,
        api_key="api-key",
        site_id="-99",
        token_provider=token_provider,
        timeout_seconds=5,
    )


def _install(monkeypatch: pytest.MonkeyPatch, responses: Dict[str, _FakeResponse]) -> List[Dict[str, Any]]:
    calls: List[Dict[str, Any]] = []

    def fake_get(url, headers=None, params=None, timeout=None):  # type: ignore[no-untyped-def]
        calls.append({"url": url, "headers": headers, "params": params, "timeout": timeout})
        path = url[len(BASE_URL):]
        if path not in responses:
            raise AssertionError(f"Unexpected request: {url}")
        return responses[path]

    monkeypatch.setattr("bookableslots.adapters.booking_client.requests.get", fake_get)
    return calls


AVAILABILITY_PAYLOAD = {
    "Availabilities": [
        {
            "Staff": {"Id": 100000001},
            "SessionType": {"Id": 12, "Name": "Deep tissue massage", "DefaultTimeLength": 60},
            "Location": {"Id": 1},
            "StartDateTime": "2026-11-02T16:00:00",
            "EndDateTime": "2026-11-02T22:00:00",
            "BookableEndDateTime": "2026-11-02T21:00:00",
        }
    ]
}


class TestFetchAvailability:
    """Tests for fetch_availability."""

    def test_parses_slots_and_sends_filters(self, monkeypatch: pytest.MonkeyPatch) -> None:
        calls = _install(monkeypatch, {"/appointment/bookableitems": _FakeResponse(payload=AVAILABILITY_PAYLOAD)})
        query = SlotQuery(
            SessionTypeIds=[12, 15],
            StartDate="2026-11-02T00:00:00Z",
            EndDate="2026-11-09T00:00:00Z",
            StaffIds=[100000001],
            Limit=10,
            Offset=20,
        )

        slots = _client().fetch_availability(query, token="given-token")

        assert len(slots) == 1
        slot = slots[0]
        assert slot.session_type_id == 12
        assert slot.staff_id == 100000001
        assert slot.location_id == 1
        assert slot.start_date_time.hour == 16
        assert slot.bookable_end_date_time.hour == 21
        assert slot.every_mins == 60

        params = calls[0]["params"]
        assert params["request.sessionTypeIds"] == [12, 15]
        assert params["request.staffIds"] == [100000001]
        assert "request.locationIds" not in params
        assert params["request.startDate"] == "2026-11-02T00:00:00Z"
        assert params["request.endDate"] == "2026-11-09T00:00:00Z"
        assert params["request.limit"] == 30
        assert params["request.offset"] == 0

        headers = calls[0]["headers"]
        assert headers["Authorization"] == "Bearer given-token"
        assert headers["Api-Key"] == "api-key"
        assert headers["SiteId"] == "-99"
        assert calls[0]["timeout"] == 5

    def test_flat_ids_are_accepted(self, monkeypatch: pytest.MonkeyPatch) -> None:
        payload = {
            "Availabilities": [
                {
                    "SessionTypeId": 12,
                    "StaffId": 7,
                    "LocationId": 2,
                    "StartDateTime": "2026-11-02T09:00:00",
                    "EndDateTime": "2026-11-02T10:00:00",
                }
            ]
        }
        _install(monkeypatch, {"/appointment/bookableitems": _FakeResponse(payload=payload)})

        slots = _client().fetch_availability(SlotQuery(SessionTypeIds=[12]), token="t")

        assert (slots[0].staff_id, slots[0].location_id) == (7, 2)
        assert slots[0].bookable_end_date_time is None

    def test_full_page_requested_without_limit(self, monkeypatch: pytest.MonkeyPatch) -> None:
        calls = _install(monkeypatch, {"/appointment/bookableitems": _FakeResponse(payload=AVAILABILITY_PAYLOAD)})
        query = SlotQuery(SessionTypeIds=[12], StartDate="2026-11-02T00:00:00Z", EndDate="2026-11-09T00:00:00Z")

        _client().fetch_availability(query, token="t")

        assert calls[0]["params"]["request.limit"] == 200
        assert calls[0]["params"]["request.offset"] == 0

    @pytest.mark.parametrize(
        ("limit", "offset", "expected"),
        [
            (0, 0, 1),
            (150, 100, 200),
            (1, 1, 2),
        ],
    )
    def test_requested_rows_are_bounded(self, monkeypatch: pytest.MonkeyPatch, limit, offset, expected) -> None:
        calls = _install(monkeypatch, {"/appointment/bookableitems": _FakeResponse(payload=AVAILABILITY_PAYLOAD)})

        _client().fetch_availability(SlotQuery(SessionTypeIds=[12], Limit=limit, Offset=offset), token="t")

        assert calls[0]["params"]["request.limit"] == expected

    def test_cut_off_results_are_logged(self, monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture) -> None:
        payload = dict(AVAILABILITY_PAYLOAD, PaginationResponse={"RequestedLimit": 200, "TotalResults": 450})
        _install(monkeypatch, {"/appointment/bookableitems": _FakeResponse(payload=payload)})

        with caplog.at_level("WARNING", logger="bookableslots.adapters.booking_client"):
            slots = _client().fetch_availability(SlotQuery(SessionTypeIds=[12]), token="t")

        assert len(slots) == 1
        assert "returned 1 of 450 records" in caplog.text

    def test_requested_partial_page_is_not_logged(
        self,
        monkeypatch: pytest.MonkeyPatch,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        payload = dict(AVAILABILITY_PAYLOAD, PaginationResponse={"RequestedLimit": 1, "TotalResults": 40})
        _install(monkeypatch, {"/appointment/bookableitems": _FakeResponse(payload=payload)})

        with caplog.at_level("WARNING", logger="bookableslots.adapters.booking_client"):
            _client().fetch_availability(SlotQuery(SessionTypeIds=[12], Limit=1), token="t")

        assert "records" not in caplog.text

    def test_unparseable_record_is_malformed(self, monkeypatch: pytest.MonkeyPatch) -> None:
        payload = {"Availabilities": [{"SessionType": {"Id": 12}, "StartDateTime": "2026-11-02T09:00:00"}]}
        _install(monkeypatch, {"/appointment/bookableitems": _FakeResponse(payload=payload)})

        with pytest.raises(UpstreamError) as exc_info:
            _client().fetch_availability(SlotQuery(SessionTypeIds=[12]), token="t")

        assert exc_info.value.upstream_code == "MalformedResponse"
        assert exc_info.value.http_status == 200


class TestUpstreamErrors:
    """Error decoding for non-2xx and broken responses."""

    def test_error_body_is_decoded(self, monkeypatch: pytest.MonkeyPatch) -> None:
        body = {"Error": {"Code": "InvalidSessionType", "Message": "Session type 99 not found."}}
        _install(monkeypatch, {"/sale/services": _FakeResponse(status_code=400, payload=body)})

        with pytest.raises(UpstreamError) as exc_info:
            _client().fetch_offerings([99], token="t")

        error = exc_info.value
        assert error.http_status == 400
        assert error.upstream_code == "InvalidSessionType"
        assert error.message == "Session type 99 not found."

    def test_non_json_error_keeps_text(self, monkeypatch: pytest.MonkeyPatch) -> None:
        _install(monkeypatch, {"/sale/services": _FakeResponse(status_code=502, text="Bad gateway")})

        with pytest.raises(UpstreamError) as exc_info:
            _client().fetch_offerings([12], token="t")

        assert exc_info.value.http_status == 502
        assert exc_info.value.upstream_code is None
        assert exc_info.value.message == "Bad gateway"

    def test_timeout_becomes_upstream_error(self, monkeypatch: pytest.MonkeyPatch) -> None:
        def fake_get(url, headers=None, params=None, timeout=None):  # type: ignore[no-untyped-def]
            raise requests.exceptions.Timeout("read timed out")

        monkeypatch.setattr("bookableslots.adapters.booking_client.requests.get", fake_get)

        with pytest.raises(UpstreamError) as exc_info:
            _client().fetch_increments([12], token="t")

        assert exc_info.value.http_status is None
        assert exc_info.value.upstream_code == "TransportError"

    def test_invalid_json_is_malformed(self, monkeypatch: pytest.MonkeyPatch) -> None:
        _install(monkeypatch, {"/appointment/activesessiontimes": _FakeResponse(payload=None, text="<html>")})

        with pytest.raises(UpstreamError) as exc_info:
            _client().fetch_increments([12], token="t")

        assert exc_info.value.upstream_code == "MalformedResponse"

    def test_missing_list_key_is_malformed(self, monkeypatch: pytest.MonkeyPatch) -> None:
        _install(monkeypatch, {"/appointment/activesessiontimes": _FakeResponse(payload={"Other": []})})

        with pytest.raises(UpstreamError, match="ActiveSessionTimes") as exc_info:
            _client().fetch_increments([12], token="t")

        assert exc_info.value.http_status == 200

    def test_truncated_offerings_are_logged(
        self,
        monkeypatch: pytest.MonkeyPatch,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        payload = {"Services": [{"Id": 1, "Name": "Facial"}], "PaginationResponse": {"TotalResults": 250}}
        _install(monkeypatch, {"/sale/services": _FakeResponse(payload=payload)})

        with caplog.at_level("WARNING", logger="bookableslots.adapters.booking_client"):
            _client().fetch_offerings([15], token="t")

        assert "/sale/services returned 1 of 250 records" in caplog.text


class TestTokenHandling:
    """Token resolution before each request."""

    def test_token_obtained_from_provider(self, monkeypatch: pytest.MonkeyPatch) -> None:
        calls = _install(monkeypatch, {"/sale/services": _FakeResponse(payload={"Services": []})})
        provider = _FakeTokenProvider()

        _client(token_provider=provider).fetch_offerings([12])

        assert provider.calls == 1
        assert calls[0]["headers"]["Authorization"] == "Bearer issued-token"

    def test_given_token_skips_provider(self, monkeypatch: pytest.MonkeyPatch) -> None:
        _install(monkeypatch, {"/sale/services": _FakeResponse(payload={"Services": []})})
        provider = _FakeTokenProvider()

        _client(token_provider=provider).fetch_offerings([12], token="given")

        assert provider.calls == 0

    def test_auth_error_propagates(self, monkeypatch: pytest.MonkeyPatch) -> None:
        calls = _install(monkeypatch, {})
        provider = _FakeTokenProvider(error=AuthError("Authentication failed: bad password", http_status=401))

        with pytest.raises(AuthError):
            _client(token_provider=provider).fetch_offerings([12])

        assert calls == []

    def test_rejected_token_is_invalidated(self, monkeypatch: pytest.MonkeyPatch) -> None:
        body = {"Error": {"Code": "DeniedAccess", "Message": "Access token expired."}}
        _install(monkeypatch, {"/sale/services": _FakeResponse(status_code=401, payload=body)})
        provider = _FakeTokenProvider()

        with pytest.raises(UpstreamError) as exc_info:
            _client(token_provider=provider).fetch_offerings([12], token="issued-token")

        assert exc_info.value.http_status == 401
        assert provider.invalidated == ["issued-token"]

    def test_other_errors_keep_token(self, monkeypatch: pytest.MonkeyPatch) -> None:
        _install(monkeypatch, {"/sale/services": _FakeResponse(status_code=500, payload={})})
        provider = _FakeTokenProvider()

        with pytest.raises(UpstreamError):
            _client(token_provider=provider).fetch_offerings([12])

        assert provider.invalidated == []

    def test_no_token_and_no_provider(self) -> None:
        with pytest.raises(MissingCredentialsError):
            _client().fetch_offerings([12])

    def test_missing_api_key(self) -> None:
        client = BookingClient(base_url=BASE_URL, api_key="", site_id="-99")

        with pytest.raises(MissingCredentialsError) as exc_info:
            client.fetch_offerings([12], token="t")

        assert exc_info.value.missing == ["api_key"]


def test_fetch_increments_parses_and_sorts(monkeypatch: pytest.MonkeyPatch) -> None:
    payload = {
        "ActiveSessionTimes": [
            "10:00:00",
            {"SessionTypeId": 14, "Time": "09:45:00"},
            "09:00:00",
        ]
    }
    calls = _install(monkeypatch, {"/appointment/activesessiontimes": _FakeResponse(payload=payload)})

    increments = _client().fetch_increments([12, 14], token="t")

    assert [increment.time for increment in increments] == [time(9, 0), time(9, 45), time(10, 0)]
    assert increments[1].session_type_id == 14
    assert increments[0].session_type_id is None
    assert calls[0]["params"]["request.sessionTypeIds"] == [12, 14]


def test_fetch_offerings_parses_prices(monkeypatch: pytest.MonkeyPatch) -> None:
    payload = {
        "Services": [
            {
                "Id": 1190,
                "Name": "Deep tissue Massage - Katia Phillips - 90min",
                "Price": 150,
                "OnlinePrice": 140.0,
                "SellOnline": True,
                "Duration": 90,
            },
            {"Id": "1300", "Name": "Signature Facial - Marco"},
        ]
    }
    _install(monkeypatch, {"/sale/services": _FakeResponse(payload=payload)})

    offerings = _client().fetch_offerings([12], token="t")

    assert offerings[0].id == "1190"
    assert offerings[0].price == 150.0
    assert offerings[0].online_price == 140.0
    assert offerings[0].sell_online is True
    assert offerings[0].duration == 90
    assert offerings[1].price is None
    assert offerings[1].sell_online is False


def test_fetch_reference_data(monkeypatch: pytest.MonkeyPatch) -> None:
    calls = _install(
        monkeypatch,
        {
            "/site/sessiontypes": _FakeResponse(
                payload={"SessionTypes": [{"Id": 12, "Name": "Deep tissue massage", "ProgramId": 2}]}
            ),
            "/staff/staff": _FakeResponse(
                payload={
                    "StaffMembers": [
                        {"Id": 100000001, "FirstName": "Katia Narain", "LastName": "Phillips", "Bio": "Therapist"}
                    ]
                }
            ),
            "/site/locations": _FakeResponse(
                payload={"Locations": [{"Id": 1, "Name": "Downtown Studio", "Address": "12 Harbour Street", "City": "SLO"}]}
            ),
        },
    )

    reference = _client().fetch_reference_data(program_id=2, staff_ids=[100000001], token="t")

    assert reference.treatment_name(12) == "Deep tissue massage"
    assert reference.staff_member(100000001).full_name == "Katia Narain Phillips"
    assert reference.location(1).address == "12 Harbour Street, SLO"
    assert calls[0]["params"]["request.programIDs"] == [2]
    assert calls[1]["params"]["request.staffIds"] == [100000001]


def test_staff_name_falls_back_to_display_name() -> None:
    member = parse_staff_member({"Id": 3, "DisplayName": "Jo"})

    assert member.full_name == "Jo"
