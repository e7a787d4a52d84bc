from __future__ import annotations

import asyncio
import logging
import math
from typing import Any, Dict, List, Optional

import aiohttp

from location_service.config import Settings
from location_service.errors import ConfigurationMissing, ProviderError, ProviderUnavailable
from location_service.models import DistanceResult, GeoPoint, PlaceCandidate, PlaceDetail

logger = logging.getLogger(__name__)

AUTOCOMPLETE_ENDPOINT = "place/autocomplete/json"
DETAILS_ENDPOINT = "place/details/json"
DISTANCE_ENDPOINT = "distancematrix/json"

DETAIL_FIELDS = ("geometry", "formatted_address")

# Statuses Google uses for "try again later" rather than "your request is wrong".
TRANSIENT_STATUSES = {"OVER_QUERY_LIMIT", "UNKNOWN_ERROR"}
NOT_FOUND_STATUSES = {"NOT_FOUND", "ZERO_RESULTS"}


class ProviderHandle:
    """Connection to the Google Maps web services: one HTTP session plus the key."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        *,
        api_key: str,
        base_url: str,
        timeout_s: float,
    ) -> None:
        self.session = session
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s

    async def get_json(self, endpoint: str, params: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.base_url}/{endpoint}"
        query = {**params, "key": self.api_key}
        timeout = aiohttp.ClientTimeout(total=self.timeout_s)

        try:
            async with self.session.get(url, params=query, timeout=timeout) as resp:
                if resp.status == 429 or resp.status >= 500:
                    raise ProviderUnavailable(f"{endpoint} answered HTTP {resp.status}")
                resp.raise_for_status()
                data = await resp.json(content_type=None)
        except aiohttp.ClientResponseError as e:
            raise ProviderError(endpoint, f"HTTP {e.status}") from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ProviderUnavailable(f"{endpoint} request failed: {e!r}") from e
        except ValueError as e:
            raise ProviderUnavailable(f"{endpoint} returned a non-JSON body") from e

        if not isinstance(data, dict):
            raise ProviderUnavailable(f"{endpoint} returned an unexpected payload")
        return data

    async def close(self) -> None:
        if not self.session.closed:
            await self.session.close()


def _status_error(operation: str, data: Dict[str, Any]) -> Exception:
    status = data.get("status")
    message = str(data.get("error_message") or "")
    if status in TRANSIENT_STATUSES:
        return ProviderUnavailable(f"{operation} failed with status {status}")
    return ProviderError(operation, status, message)


class ProviderClient:
    """Translates the three lookups into Google Maps request/response shapes.

    Raises ProviderError / ProviderUnavailable; deciding what to do about them
    is the resolver's job.
    """

    def __init__(self, handle: ProviderHandle) -> None:
        self.handle = handle

    async def search_places(self, query: str, country_bias: Optional[str] = None) -> List[PlaceCandidate]:
        q = query.strip()
        if not q:
            return []

        params: Dict[str, Any] = {"input": q}
        if country_bias:
            params["components"] = f"country:{country_bias.strip().lower()}"

        data = await self.handle.get_json(AUTOCOMPLETE_ENDPOINT, params)
        status = data.get("status")
        if status == "ZERO_RESULTS":
            return []
        if status != "OK":
            raise _status_error("autocomplete", data)

        candidates: list[PlaceCandidate] = []
        seen: set[str] = set()
        for prediction in data.get("predictions") or []:
            place_id = prediction.get("place_id")
            if not place_id or place_id in seen:
                continue
            seen.add(place_id)
            fmt = prediction.get("structured_formatting") or {}
            description = str(prediction.get("description") or "")
            candidates.append(
                PlaceCandidate(
                    place_id=str(place_id),
                    description=description,
                    main_text=str(fmt.get("main_text") or description),
                    secondary_text=str(fmt.get("secondary_text") or ""),
                )
            )
        return candidates

    async def get_place_details(self, place_id: str) -> Optional[PlaceDetail]:
        data = await self.handle.get_json(
            DETAILS_ENDPOINT,
            {"place_id": place_id, "fields": ",".join(DETAIL_FIELDS)},
        )
        status = data.get("status")
        if status in NOT_FOUND_STATUSES:
            return None
        if status != "OK":
            raise _status_error("place details", data)

        result = data.get("result") or {}
        location = (result.get("geometry") or {}).get("location") or {}
        if location.get("lat") is None or location.get("lng") is None:
            raise ProviderError("place details", status, "result has no geometry")

        return PlaceDetail(
            location=GeoPoint(lat=float(location["lat"]), lng=float(location["lng"])),
            address=str(result.get("formatted_address") or ""),
        )

    async def compute_distance(self, origin: GeoPoint, destination: GeoPoint) -> DistanceResult:
        return await self._distance_matrix(origin.as_param(), destination.as_param())

    async def compute_distance_by_address(self, origin_address: str, destination_address: str) -> DistanceResult:
        return await self._distance_matrix(origin_address, destination_address)

    async def _distance_matrix(self, origin: str, destination: str) -> DistanceResult:
        data = await self.handle.get_json(
            DISTANCE_ENDPOINT,
            {
                "origins": origin,
                "destinations": destination,
                "mode": "driving",
                "units": "metric",
            },
        )
        status = data.get("status")
        if status != "OK":
            raise _status_error("distance matrix", data)

        try:
            element = data["rows"][0]["elements"][0]
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderError("distance matrix", status, "empty matrix") from e

        element_status = element.get("status")
        if element_status != "OK":
            raise ProviderError("distance matrix element", element_status)

        try:
            meters = math.floor(float(element["distance"]["value"]))
            seconds = math.floor(float(element["duration"]["value"]))
        except (KeyError, TypeError, ValueError) as e:
            raise ProviderError("distance matrix element", element_status, "missing distance/duration") from e

        return DistanceResult(distance_meters=max(0, meters), duration_seconds=max(0, seconds))

    async def probe(self) -> None:
        """Cheap autocomplete call that proves the key is accepted."""
        data = await self.handle.get_json(AUTOCOMPLETE_ENDPOINT, {"input": "test"})
        if data.get("status") not in ("OK", "ZERO_RESULTS"):
            raise _status_error("autocomplete probe", data)

    async def aclose(self) -> None:
        await self.handle.close()


def make_provider_loader(settings: Settings):
    """Build the bootstrap routine: open a session, optionally probe, hand back a client."""

    async def load() -> ProviderClient:
        if not settings.maps_configured:
            raise ConfigurationMissing("maps_api_key is not set")

        session = aiohttp.ClientSession()
        client = ProviderClient(
            ProviderHandle(
                session,
                api_key=str(settings.maps_api_key).strip(),
                base_url=str(settings.maps_base_url),
                timeout_s=settings.http_timeout_s,
            )
        )
        try:
            if settings.provider_probe_on_init:
                await client.probe()
        except BaseException:
            # timed out, cancelled or rejected: drop the half-built handle
            await client.aclose()
            raise
        logger.info("Maps provider session ready (%s)", settings.maps_base_url)
        return client

    return load
