from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import AnyHttpUrl
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """App configuration (env-friendly).

    Tip: create a .env file and put MAPS_API_KEY there. Without a key every
    lookup is answered locally by the fallback engine.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "Location Resolution API"
    version: str = "0.1.0"
    log_level: str = "INFO"

    maps_api_key: Optional[str] = None
    maps_base_url: AnyHttpUrl = "https://maps.googleapis.com/maps/api"
    default_country_bias: Optional[str] = "RW"

    # per provider call
    http_timeout_s: float = 8.0
    # provider bootstrap (session + warm-up probe)
    init_timeout_s: float = 15.0
    init_retry_cooldown_s: float = 0.0
    provider_probe_on_init: bool = True

    # 120 s/km is roughly 30 km/h of city traffic.
    fallback_seconds_per_km: float = 120.0
    fallback_reference_lat: float = -1.9441
    fallback_reference_lng: float = 30.0619

    cache_ttl_s: float = 120.0
    cache_max_size: int = 512

    @property
    def maps_configured(self) -> bool:
        return bool(self.maps_api_key and self.maps_api_key.strip())


@lru_cache
def get_settings() -> Settings:
    return Settings()
