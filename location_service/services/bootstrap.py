from __future__ import annotations

import asyncio
import enum
import logging
import time
from typing import Any, Awaitable, Callable, Optional

from location_service.errors import InitError, InitFailed, InitTimeout
from location_service.models import Readiness
from location_service.services.inflight import InFlightRegistry

logger = logging.getLogger(__name__)

BOOTSTRAP_KEY = "bootstrap"
DEFAULT_INIT_TIMEOUT_S = 15.0


class ProviderState(str, enum.Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    FAILED = "failed"


class InitStatusTracker:
    """Read-only view of provider health for diagnostics (health endpoint, logs)."""

    def __init__(self, *, configured: bool) -> None:
        self.configured = configured
        self.state = ProviderState.UNINITIALIZED
        self.last_error: Optional[str] = None
        self.init_attempts = 0

    def record_state(self, state: ProviderState, error: Optional[BaseException] = None) -> None:
        self.state = state
        if error is not None:
            self.last_error = str(error)
        elif state is ProviderState.READY:
            self.last_error = None

    def record_error(self, error: BaseException) -> None:
        self.last_error = str(error) or error.__class__.__name__

    def snapshot(self) -> Readiness:
        return Readiness(
            configured=self.configured,
            ready=self.configured and self.state is ProviderState.READY,
            state=self.state.value if self.configured else "not_configured",
            last_error=self.last_error,
            init_attempts=self.init_attempts,
        )


Loader = Callable[[], Awaitable[Any]]


class Bootstrapper:
    """Runs the provider's one-time initialization, at most once concurrently.

    ``ensure_ready()`` never raises: it returns None when the provider handle
    is usable and an InitError otherwise. Concurrent callers share a single
    attempt; a caller that gives up waiting does not cancel it.
    """

    def __init__(
        self,
        loader: Loader,
        *,
        init_timeout_s: float = DEFAULT_INIT_TIMEOUT_S,
        retry_cooldown_s: float = 0.0,
        tracker: Optional[InitStatusTracker] = None,
        close_handle: Optional[Callable[[Any], Awaitable[None]]] = None,
    ) -> None:
        self._loader = loader
        self.init_timeout_s = init_timeout_s
        self.retry_cooldown_s = retry_cooldown_s
        self.tracker = tracker or InitStatusTracker(configured=True)
        self._close_handle = close_handle

        self._lock = asyncio.Lock()
        self._inflight: InFlightRegistry[Optional[InitError]] = InFlightRegistry()
        self._state = ProviderState.UNINITIALIZED
        self._handle: Any = None
        self._last_error: Optional[InitError] = None
        self._failed_at: Optional[float] = None
        self.attempts = 0
        self._closed = False

    @property
    def state(self) -> ProviderState:
        return self._state

    @property
    def handle(self) -> Any:
        return self._handle

    @property
    def last_error(self) -> Optional[InitError]:
        return self._last_error

    async def ensure_ready(self) -> Optional[InitError]:
        if self._state is ProviderState.READY:
            return None

        if self._closed:
            return InitFailed("maps provider is closed")

        async with self._lock:
            if self._state is ProviderState.READY:
                return None
            if self._in_cooldown():
                return self._last_error
            task = self._inflight.get_or_start(BOOTSTRAP_KEY, self._attempt)

        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            if not task.cancelled():
                raise
            # the attempt itself was cancelled by aclose(), not this caller
            return InitFailed("provider initialization was cancelled")

    def _in_cooldown(self) -> bool:
        if self._state is not ProviderState.FAILED or self._failed_at is None:
            return False
        return (time.monotonic() - self._failed_at) < self.retry_cooldown_s

    async def _attempt(self) -> Optional[InitError]:
        async with self._lock:
            self.attempts += 1
            self.tracker.init_attempts = self.attempts
            self._commit(ProviderState.INITIALIZING)

        logger.info("Initializing maps provider (attempt %d)", self.attempts)
        try:
            handle = await asyncio.wait_for(self._loader(), timeout=self.init_timeout_s)
        except asyncio.TimeoutError:
            error: InitError = InitTimeout(self.init_timeout_s)
        except asyncio.CancelledError:
            # only the owning task itself can be cancelled here (shutdown)
            error = InitFailed("provider initialization was cancelled")
            async with self._lock:
                self._commit(ProviderState.FAILED, error=error)
            raise
        except Exception as e:
            error = InitFailed(f"provider initialization failed: {e}")
        else:
            async with self._lock:
                if not self._closed:
                    self._commit(ProviderState.READY, handle=handle)
                    handle = None
            if handle is not None:
                # closed while the loader was finishing
                await self._dispose(handle)
                return InitFailed("maps provider is closed")
            logger.info("Maps provider ready")
            return None

        logger.warning("Maps provider unavailable, falling back: %s", error)
        async with self._lock:
            self._commit(ProviderState.FAILED, error=error)
        return error

    def _commit(
        self,
        state: ProviderState,
        *,
        handle: Any = None,
        error: Optional[InitError] = None,
    ) -> None:
        # single mutation point for the provider state cell; caller holds the lock
        self._state = state
        if state is ProviderState.READY:
            self._handle = handle
            self._last_error = None
            self._failed_at = None
        elif state is ProviderState.FAILED:
            self._handle = None
            self._last_error = error
            self._failed_at = time.monotonic()
        elif state is ProviderState.UNINITIALIZED:
            self._handle = None
            self._last_error = None
            self._failed_at = None
        self.tracker.record_state(state, error)

    async def reset(self) -> None:
        """Drop the handle and go back to UNINITIALIZED (tests, key rotation)."""
        async with self._lock:
            handle = self._handle
            self._commit(ProviderState.UNINITIALIZED)
        await self._dispose(handle)

    async def aclose(self) -> None:
        """Stop for good: cancel a running attempt, then close the handle."""
        self._closed = True
        task = self._inflight.get(BOOTSTRAP_KEY)
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        await self.reset()

    async def _dispose(self, handle: Any) -> None:
        if handle is None or self._close_handle is None:
            return
        try:
            await self._close_handle(handle)
        except Exception:
            logger.exception("Failed to close maps provider handle")
