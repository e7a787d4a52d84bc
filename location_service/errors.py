from __future__ import annotations

from typing import Optional


class LocationServiceError(Exception):
    """Base class for everything the resolver absorbs before it reaches a caller."""


class ConfigurationMissing(LocationServiceError):
    pass


class InitError(LocationServiceError):
    """Provider bootstrap did not produce a usable handle."""


class InitTimeout(InitError):
    def __init__(self, timeout_s: float) -> None:
        super().__init__(f"provider initialization timed out after {timeout_s:g}s")
        self.timeout_s = timeout_s


class InitFailed(InitError):
    pass


class ProviderUnavailable(LocationServiceError):
    """Provider could not be reached or answered with a transient failure (network, 5xx, 429)."""


class ProviderError(LocationServiceError):
    """Provider answered with a definitive error status."""

    def __init__(self, operation: str, status: Optional[str], message: str = "") -> None:
        text = f"{operation} failed with status {status}"
        if message:
            text = f"{text}: {message}"
        super().__init__(text)
        self.operation = operation
        self.status = status
