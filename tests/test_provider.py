from __future__ import annotations

import asyncio

import pytest

from location_service.errors import ProviderError, ProviderUnavailable
from location_service.models import GeoPoint
from location_service.services.provider import (
    AUTOCOMPLETE_ENDPOINT,
    DETAILS_ENDPOINT,
    DISTANCE_ENDPOINT,
    ProviderClient,
)


class FakeHandle:
    """Stands in for ProviderHandle: records requests, replays canned payloads."""

    def __init__(self, responses):
        self.responses = responses
        self.requests = []
        self.closed = False

    async def get_json(self, endpoint, params):
        self.requests.append((endpoint, dict(params)))
        response = self.responses[endpoint]
        if isinstance(response, Exception):
            raise response
        return response

    async def close(self):
        self.closed = True


def _run(coro):
    return asyncio.run(coro)


AUTOCOMPLETE_OK = {
    "status": "OK",
    "predictions": [
        {
            "place_id": "ChIJ-kigali",
            "description": "Kigali Convention Centre, Kigali, Rwanda",
            "structured_formatting": {"main_text": "Kigali Convention Centre", "secondary_text": "Kigali, Rwanda"},
        },
        {
            "place_id": "ChIJ-kimironko",
            "description": "Kimironko Market, Kigali, Rwanda",
            "structured_formatting": {"main_text": "Kimironko Market", "secondary_text": "Kigali, Rwanda"},
        },
    ],
}


def test_search_places_maps_predictions():
    handle = FakeHandle({AUTOCOMPLETE_ENDPOINT: AUTOCOMPLETE_OK})
    results = _run(ProviderClient(handle).search_places("kigali", "RW"))

    assert [r.place_id for r in results] == ["ChIJ-kigali", "ChIJ-kimironko"]
    assert results[0].main_text == "Kigali Convention Centre"
    assert results[0].secondary_text == "Kigali, Rwanda"
    endpoint, params = handle.requests[0]
    assert endpoint == AUTOCOMPLETE_ENDPOINT
    assert params == {"input": "kigali", "components": "country:rw"}


def test_search_places_without_country_bias():
    handle = FakeHandle({AUTOCOMPLETE_ENDPOINT: AUTOCOMPLETE_OK})
    _run(ProviderClient(handle).search_places("kigali", None))
    assert "components" not in handle.requests[0][1]


def test_search_places_blank_query_makes_no_request():
    handle = FakeHandle({})
    assert _run(ProviderClient(handle).search_places("   ", "RW")) == []
    assert handle.requests == []


def test_search_places_zero_results_is_empty_not_error():
    handle = FakeHandle({AUTOCOMPLETE_ENDPOINT: {"status": "ZERO_RESULTS", "predictions": []}})
    assert _run(ProviderClient(handle).search_places("nowhere", "RW")) == []


def test_search_places_error_status_raises():
    handle = FakeHandle({AUTOCOMPLETE_ENDPOINT: {"status": "REQUEST_DENIED", "error_message": "API key invalid"}})
    with pytest.raises(ProviderError) as exc_info:
        _run(ProviderClient(handle).search_places("kigali", "RW"))
    assert exc_info.value.status == "REQUEST_DENIED"
    assert "API key invalid" in str(exc_info.value)


def test_search_places_rate_limit_is_transient():
    handle = FakeHandle({AUTOCOMPLETE_ENDPOINT: {"status": "OVER_QUERY_LIMIT"}})
    with pytest.raises(ProviderUnavailable):
        _run(ProviderClient(handle).search_places("kigali", "RW"))


def test_place_details_ok():
    handle = FakeHandle(
        {
            DETAILS_ENDPOINT: {
                "status": "OK",
                "result": {
                    "geometry": {"location": {"lat": -1.9536, "lng": 30.0606}},
                    "formatted_address": "KG 2 Roundabout, Kigali, Rwanda",
                },
            }
        }
    )
    detail = _run(ProviderClient(handle).get_place_details("ChIJ-kigali"))

    assert detail.location == GeoPoint(lat=-1.9536, lng=30.0606)
    assert detail.address == "KG 2 Roundabout, Kigali, Rwanda"
    assert detail.approximate is False
    assert handle.requests[0][1] == {"place_id": "ChIJ-kigali", "fields": "geometry,formatted_address"}


def test_place_details_not_found_is_none():
    handle = FakeHandle({DETAILS_ENDPOINT: {"status": "NOT_FOUND"}})
    assert _run(ProviderClient(handle).get_place_details("ChIJ-gone")) is None


def test_place_details_invalid_request_raises():
    handle = FakeHandle({DETAILS_ENDPOINT: {"status": "INVALID_REQUEST"}})
    with pytest.raises(ProviderError):
        _run(ProviderClient(handle).get_place_details("???"))


def test_place_details_without_geometry_raises():
    handle = FakeHandle({DETAILS_ENDPOINT: {"status": "OK", "result": {"formatted_address": "somewhere"}}})
    with pytest.raises(ProviderError):
        _run(ProviderClient(handle).get_place_details("ChIJ-x"))


def _matrix(distance, duration, element_status="OK", status="OK"):
    return {
        "status": status,
        "rows": [
            {
                "elements": [
                    {
                        "status": element_status,
                        "distance": {"text": "5.6 km", "value": distance},
                        "duration": {"text": "12 mins", "value": duration},
                    }
                ]
            }
        ],
    }


def test_compute_distance_uses_driving_metric_and_floors_values():
    handle = FakeHandle({DISTANCE_ENDPOINT: _matrix(5612.9, 731.7)})
    result = _run(
        ProviderClient(handle).compute_distance(GeoPoint(lat=-1.9441, lng=30.0619), GeoPoint(lat=-1.9706, lng=30.1044))
    )

    assert result.distance_meters == 5612
    assert result.duration_seconds == 731
    assert result.approximate is False
    params = handle.requests[0][1]
    assert params == {
        "origins": "-1.9441,30.0619",
        "destinations": "-1.9706,30.1044",
        "mode": "driving",
        "units": "metric",
    }


def test_compute_distance_by_address_passes_text():
    handle = FakeHandle({DISTANCE_ENDPOINT: _matrix(12000, 1500)})
    result = _run(ProviderClient(handle).compute_distance_by_address("Kigali", "Huye"))
    assert result.distance_meters == 12000
    assert handle.requests[0][1]["origins"] == "Kigali"
    assert handle.requests[0][1]["destinations"] == "Huye"


def test_compute_distance_element_failure_raises():
    handle = FakeHandle({DISTANCE_ENDPOINT: _matrix(0, 0, element_status="ZERO_RESULTS")})
    with pytest.raises(ProviderError):
        _run(ProviderClient(handle).compute_distance_by_address("Kigali", "Atlantis"))


def test_compute_distance_empty_matrix_raises():
    handle = FakeHandle({DISTANCE_ENDPOINT: {"status": "OK", "rows": []}})
    with pytest.raises(ProviderError):
        _run(ProviderClient(handle).compute_distance_by_address("Kigali", "Huye"))


def test_transport_errors_propagate():
    handle = FakeHandle({DISTANCE_ENDPOINT: ProviderUnavailable("connection reset")})
    with pytest.raises(ProviderUnavailable):
        _run(ProviderClient(handle).compute_distance_by_address("Kigali", "Huye"))


def test_probe_rejects_denied_key():
    handle = FakeHandle({AUTOCOMPLETE_ENDPOINT: {"status": "REQUEST_DENIED"}})
    with pytest.raises(ProviderError):
        _run(ProviderClient(handle).probe())


def test_aclose_closes_handle():
    handle = FakeHandle({})
    _run(ProviderClient(handle).aclose())
    assert handle.closed is True
