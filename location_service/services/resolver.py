from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, List, Optional, TypeVar, Union

from location_service.config import Settings
from location_service.errors import LocationServiceError
from location_service.models import DistanceResult, GeoPoint, PlaceCandidate, PlaceDetail, Readiness
from location_service.services.bootstrap import Bootstrapper, InitStatusTracker, Loader
from location_service.services.cache import TTLCache, make_cache_key
from location_service.services.fallback import FallbackEngine, is_fallback_place_id
from location_service.services.inflight import InFlightRegistry
from location_service.services.provider import ProviderClient, make_provider_loader

logger = logging.getLogger(__name__)

T = TypeVar("T")
Location = Union[GeoPoint, str]

DEFAULT_CALL_TIMEOUT_S = 8.0


class LocationResolver:
    """Single entry point for place search, place resolution and distances.

    Every public method returns a value of its declared type and never raises:
    when the provider is not configured, not ready, failing or slow, the
    answer comes from the FallbackEngine instead.
    """

    def __init__(
        self,
        *,
        configured: bool,
        bootstrapper: Optional[Bootstrapper] = None,
        fallback: Optional[FallbackEngine] = None,
        default_country_bias: Optional[str] = None,
        call_timeout_s: float = DEFAULT_CALL_TIMEOUT_S,
        cache: Optional[TTLCache[List[PlaceCandidate]]] = None,
    ) -> None:
        if configured and bootstrapper is None:
            raise ValueError("a configured resolver needs a bootstrapper")
        self.configured = configured
        self.bootstrapper = bootstrapper
        self.fallback = fallback or FallbackEngine()
        self.default_country_bias = default_country_bias
        self.call_timeout_s = call_timeout_s
        self._cache: TTLCache[List[PlaceCandidate]] = cache if cache is not None else TTLCache(ttl_s=0, max_size=0)
        self._searches: InFlightRegistry[List[PlaceCandidate]] = InFlightRegistry()
        self.tracker = bootstrapper.tracker if bootstrapper else InitStatusTracker(configured=False)
        self._warm_up_task: Optional[asyncio.Task] = None

        if not configured:
            logger.info("Maps API key not configured; location lookups use local fallback")

    # public API

    async def search(self, query: str, country_bias: Optional[str] = None) -> List[PlaceCandidate]:
        q = (query or "").strip()
        if not q:
            return []
        country = country_bias if country_bias is not None else self.default_country_bias

        key = make_cache_key("search", q.lower(), (country or "").lower())
        cached = self._cache.get(key)
        if cached is not None:
            return list(cached)

        async def provider_call(client: ProviderClient) -> List[PlaceCandidate]:
            results = await self._searches.run(key, lambda: client.search_places(q, country))
            self._cache.put(key, results)
            return list(results)

        return await self._dispatch("search", provider_call, lambda: self.fallback.search(q))

    async def resolve(self, place_id: str) -> Optional[PlaceDetail]:
        pid = (place_id or "").strip()
        if not pid:
            return None
        if is_fallback_place_id(pid):
            return self.fallback.place_detail(pid)

        return await self._dispatch(
            "resolve",
            lambda client: client.get_place_details(pid),
            lambda: self.fallback.place_detail(pid),
        )

    async def distance(self, origin: Location, destination: Location) -> DistanceResult:
        if isinstance(origin, GeoPoint) and isinstance(destination, GeoPoint):
            return await self._dispatch(
                "distance",
                lambda client: client.compute_distance(origin, destination),
                lambda: self.fallback.distance(origin, destination),
            )

        origin_text = origin.as_param() if isinstance(origin, GeoPoint) else str(origin)
        destination_text = destination.as_param() if isinstance(destination, GeoPoint) else str(destination)

        def fallback_call() -> DistanceResult:
            if isinstance(origin, GeoPoint) or isinstance(destination, GeoPoint):
                # keep real coordinates where we have them
                a = origin if isinstance(origin, GeoPoint) else self.fallback.locate_address(origin_text)
                b = destination if isinstance(destination, GeoPoint) else self.fallback.locate_address(destination_text)
                return self.fallback.distance(a, b)
            return self.fallback.distance_by_address(origin_text, destination_text)

        return await self._dispatch(
            "distance",
            lambda client: client.compute_distance_by_address(origin_text, destination_text),
            fallback_call,
        )

    async def distance_by_address(self, origin_address: str, destination_address: str) -> DistanceResult:
        return await self.distance(origin_address, destination_address)

    def readiness(self) -> Readiness:
        return self.tracker.snapshot()

    def warm_up(self) -> None:
        """Start provider initialization in the background (app startup)."""
        if not self.configured or self.bootstrapper is None:
            return
        if self._warm_up_task is None or self._warm_up_task.done():
            self._warm_up_task = asyncio.ensure_future(self.bootstrapper.ensure_ready())

    async def aclose(self) -> None:
        if self._warm_up_task is not None and not self._warm_up_task.done():
            self._warm_up_task.cancel()
        if self.bootstrapper is not None:
            await self.bootstrapper.aclose()
        self._cache.clear()

    # dispatch policy

    async def _dispatch(
        self,
        operation: str,
        provider_call: Callable[[ProviderClient], Awaitable[T]],
        fallback_call: Callable[[], T],
    ) -> T:
        if not self.configured or self.bootstrapper is None:
            return fallback_call()

        init_error = await self.bootstrapper.ensure_ready()
        if init_error is not None:
            logger.debug("%s: provider not ready (%s), using fallback", operation, init_error)
            return fallback_call()

        client: Any = self.bootstrapper.handle
        try:
            return await asyncio.wait_for(provider_call(client), timeout=self.call_timeout_s)
        except asyncio.TimeoutError:
            logger.warning("%s: provider call timed out after %.1fs, using fallback", operation, self.call_timeout_s)
            self.tracker.record_error(TimeoutError(f"{operation} timed out after {self.call_timeout_s:g}s"))
        except LocationServiceError as e:
            logger.warning("%s: provider call failed (%s), using fallback", operation, e)
            self.tracker.record_error(e)
        except Exception as e:
            logger.exception("%s: unexpected provider failure, using fallback", operation)
            self.tracker.record_error(e)
        return fallback_call()


def build_resolver(settings: Settings, *, loader: Optional[Loader] = None) -> LocationResolver:
    """Wire a resolver from settings. ``loader`` overrides the real provider bootstrap."""
    fallback = FallbackEngine(
        seconds_per_km=settings.fallback_seconds_per_km,
        reference_point=GeoPoint(lat=settings.fallback_reference_lat, lng=settings.fallback_reference_lng),
    )
    cache: TTLCache[List[PlaceCandidate]] = TTLCache(ttl_s=settings.cache_ttl_s, max_size=settings.cache_max_size)

    bootstrapper = None
    if settings.maps_configured:
        bootstrapper = Bootstrapper(
            loader or make_provider_loader(settings),
            init_timeout_s=settings.init_timeout_s,
            retry_cooldown_s=settings.init_retry_cooldown_s,
            tracker=InitStatusTracker(configured=True),
            close_handle=_close_client,
        )

    return LocationResolver(
        configured=settings.maps_configured,
        bootstrapper=bootstrapper,
        fallback=fallback,
        default_country_bias=settings.default_country_bias,
        call_timeout_s=settings.http_timeout_s,
        cache=cache,
    )


async def _close_client(client: Any) -> None:
    close = getattr(client, "aclose", None)
    if close is not None:
        await close()
