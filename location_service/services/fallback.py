from __future__ import annotations

import math
from typing import List, Sequence

from location_service.models import DistanceResult, GeoPoint, PlaceCandidate, PlaceDetail

EARTH_RADIUS_M = 6371000.0
SECONDS_PER_KM = 120.0

# Kigali city centre
REFERENCE_POINT = GeoPoint(lat=-1.9441, lng=30.0619)

FALLBACK_ID_PREFIX = "fallback-"

# Small fixed set of localities the query is templated against.
# Order matters: it is the order of the returned candidates.
DEFAULT_LOCALITIES: tuple[str, ...] = (
    "Kigali, Rwanda",
    "Remera, Kigali, Rwanda",
    "Nyarugenge, Kigali, Rwanda",
)

_PLACE_ID_STEP_DEG = 0.001


def haversine_m(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in meters on a sphere of radius EARTH_RADIUS_M."""
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = math.sin(d_lat / 2) ** 2 + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def is_fallback_place_id(place_id: str) -> bool:
    return place_id.startswith(FALLBACK_ID_PREFIX)


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


class FallbackEngine:
    """Network-free stand-in for the mapping provider.

    Every method is a pure function of its arguments and the engine's
    constants, so the same input always yields the same answer.
    """

    def __init__(
        self,
        *,
        seconds_per_km: float = SECONDS_PER_KM,
        reference_point: GeoPoint = REFERENCE_POINT,
        localities: Sequence[str] = DEFAULT_LOCALITIES,
    ) -> None:
        if not localities:
            raise ValueError("FallbackEngine needs at least one locality")
        self.seconds_per_km = seconds_per_km
        self.reference_point = reference_point
        self.localities = tuple(localities)

    def search(self, query: str) -> List[PlaceCandidate]:
        q = query.strip()
        if not q:
            return []
        return [
            PlaceCandidate(
                place_id=f"{FALLBACK_ID_PREFIX}{q}-{n}",
                description=f"{q} - {locality}",
                main_text=q,
                secondary_text=locality,
            )
            for n, locality in enumerate(self.localities, start=1)
        ]

    def place_detail(self, place_id: str) -> PlaceDetail:
        # same id => same offset => same point
        offset = len(place_id) * _PLACE_ID_STEP_DEG
        ref = self.reference_point
        point = GeoPoint(
            lat=_clamp(ref.lat + offset, -90.0, 90.0),
            lng=_clamp(ref.lng + offset, -180.0, 180.0),
        )
        return PlaceDetail(
            location=point,
            address=f"Approximate location for {place_id}",
            approximate=True,
        )

    def distance(self, origin: GeoPoint, destination: GeoPoint) -> DistanceResult:
        meters = round(haversine_m(origin.lat, origin.lng, destination.lat, destination.lng))
        seconds = round((meters / 1000) * self.seconds_per_km)
        return DistanceResult(distance_meters=meters, duration_seconds=seconds, approximate=True)

    def locate_address(self, address: str) -> GeoPoint:
        """Synthesized point for a free-text address (first fallback candidate)."""
        candidates = self.search(address)
        if not candidates:
            return self.reference_point
        return self.place_detail(candidates[0].place_id).location

    def distance_by_address(self, origin_address: str, destination_address: str) -> DistanceResult:
        if origin_address.strip() == destination_address.strip():
            return DistanceResult(distance_meters=0, duration_seconds=0, approximate=True)
        return self.distance(self.locate_address(origin_address), self.locate_address(destination_address))
