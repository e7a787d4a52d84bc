from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request

from location_service.config import get_settings
from location_service.models import DistanceResult, GeoPoint, PlaceCandidate, PlaceDetail
from location_service.services.resolver import LocationResolver, build_resolver

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting %s v%s", settings.app_name, settings.version)
    resolver = build_resolver(get_settings())
    app.state.resolver = resolver
    resolver.warm_up()
    try:
        yield
    finally:
        await resolver.aclose()


app = FastAPI(
    title=settings.app_name,
    version=settings.version,
    description="Place search, place resolution and travel distances with a local fallback.",
    lifespan=lifespan,
)


def get_resolver(request: Request) -> LocationResolver:
    return request.app.state.resolver


@app.get("/", tags=["Root"])
async def root():
    return {"ok": True, "service": settings.app_name, "version": settings.version}


@app.get("/health", tags=["Healthcheck"])
async def health(resolver: LocationResolver = Depends(get_resolver)):
    return {"ok": True, "maps": resolver.readiness().model_dump()}


@app.get("/api/places/search", response_model=List[PlaceCandidate], tags=["Api Places"])
async def api_search(
    q: str = Query("", description="Free-text place query"),
    country: Optional[str] = Query(None, min_length=2, max_length=2, description="ISO 3166-1 alpha-2 bias"),
    resolver: LocationResolver = Depends(get_resolver),
):
    return await resolver.search(q, country)


@app.get("/api/places/{place_id}", response_model=PlaceDetail, tags=["Api Places"])
async def api_place_detail(place_id: str, resolver: LocationResolver = Depends(get_resolver)):
    detail = await resolver.resolve(place_id)
    if detail is None:
        raise HTTPException(status_code=404, detail="Place not found")
    return detail


@app.get("/api/distance", response_model=DistanceResult, tags=["Api Distance"])
async def api_distance(
    origin_lat: float = Query(..., ge=-90.0, le=90.0),
    origin_lng: float = Query(..., ge=-180.0, le=180.0),
    destination_lat: float = Query(..., ge=-90.0, le=90.0),
    destination_lng: float = Query(..., ge=-180.0, le=180.0),
    resolver: LocationResolver = Depends(get_resolver),
):
    origin = GeoPoint(lat=origin_lat, lng=origin_lng)
    destination = GeoPoint(lat=destination_lat, lng=destination_lng)
    return await resolver.distance(origin, destination)


@app.get("/api/distance/by-address", response_model=DistanceResult, tags=["Api Distance"])
async def api_distance_by_address(
    origin: str = Query(..., min_length=1),
    destination: str = Query(..., min_length=1),
    resolver: LocationResolver = Depends(get_resolver),
):
    return await resolver.distance_by_address(origin, destination)
