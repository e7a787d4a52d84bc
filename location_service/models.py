from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field, computed_field

from location_service.services.units import format_duration, meters_to_kilometers, seconds_to_hours


class GeoPoint(BaseModel):
    lat: float = Field(..., ge=-90.0, le=90.0)
    lng: float = Field(..., ge=-180.0, le=180.0)

    def as_param(self) -> str:
        return f"{self.lat},{self.lng}"


class PlaceCandidate(BaseModel):
    place_id: str
    description: str
    main_text: str = ""
    secondary_text: str = ""


class PlaceDetail(BaseModel):
    location: GeoPoint
    address: str = ""
    approximate: bool = Field(False, description="True when synthesized locally instead of provider-verified")


class DistanceResult(BaseModel):
    distance_meters: int = Field(..., ge=0)
    duration_seconds: int = Field(..., ge=0)
    approximate: bool = False

    @computed_field
    @property
    def distance_km(self) -> float:
        return meters_to_kilometers(self.distance_meters)

    @computed_field
    @property
    def duration_hours(self) -> float:
        return seconds_to_hours(self.duration_seconds)

    @computed_field
    @property
    def duration_text(self) -> str:
        return format_duration(self.duration_seconds)


class Readiness(BaseModel):
    configured: bool
    ready: bool
    state: str
    last_error: Optional[str] = None
    init_attempts: int = 0
