"""
Runtime configuration for the venue stats engine and its HTTP surface.
"""

from __future__ import annotations

import os
from typing import Optional

from pydantic import BaseModel

from .ranges import PRESETS


class EngineConfig(BaseModel):
    timezone: str = "UTC"
    """Timezone whose midnights delimit days; naive timestamps are read in it."""

    default_preset: str = "today"
    """Preset used when a request does not name one."""

    max_workers: int = 4
    """Threads used to fan out per-venue decomposition (1 runs it inline)."""


class CacheConfig(BaseModel):
    enable: bool = True
    max_entries: int = 128
    ttl_seconds: int = 60
    """Seconds a snapshot stays fresh; 0 keeps it until evicted or invalidated."""


class DatabaseConfig(BaseModel):
    url: Optional[str] = None


class VenueStatsConfig(BaseModel):
    """Configuration for the venue stats service."""

    engine: EngineConfig = EngineConfig()
    cache: CacheConfig = CacheConfig()
    database: DatabaseConfig = DatabaseConfig()
    log_level: str = "INFO"


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def load_config() -> VenueStatsConfig:
    cfg = VenueStatsConfig()

    default_preset = os.getenv("VENUE_STATS_DEFAULT_PRESET", cfg.engine.default_preset)
    if default_preset not in PRESETS or default_preset == "custom":
        default_preset = cfg.engine.default_preset

    cfg.engine = EngineConfig(
        timezone=os.getenv("VENUE_STATS_TIMEZONE", cfg.engine.timezone),
        default_preset=default_preset,
        max_workers=max(1, _env_int("VENUE_STATS_MAX_WORKERS", cfg.engine.max_workers)),
    )
    cfg.cache = CacheConfig(
        enable=_env_bool("VENUE_STATS_CACHE_ENABLE", cfg.cache.enable),
        max_entries=max(1, _env_int("VENUE_STATS_CACHE_MAX_ENTRIES", cfg.cache.max_entries)),
        ttl_seconds=max(0, _env_int("VENUE_STATS_CACHE_TTL_SECONDS", cfg.cache.ttl_seconds)),
    )
    cfg.database = DatabaseConfig(url=os.getenv("VENUE_STATS_DATABASE_URL", cfg.database.url))
    cfg.log_level = os.getenv("VENUE_STATS_LOG_LEVEL", cfg.log_level).upper()
    return cfg
