"""
Core Module - Configuration.

============================================================
PURPOSE
============================================================
All configuration for the ingestion pipeline, read from the
environment (and an optional .env file).

- Frozen dataclasses, one per concern
- Go-style duration strings ("10s", "5m", "1h30m") or seconds
- Invalid values fail fast with ConfigurationError

============================================================
"""

import os
import re
import socket
from dataclasses import dataclass, field
from typing import Mapping, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

from core.constants import (
    DEFAULT_CONSUMER_GROUP,
    DEFAULT_LOCAL_TIMEZONE,
    DEFAULT_STREAM_KEY,
)
from core.exceptions import ConfigurationError


_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h)")
_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


def parse_duration(value: str, key: str = "duration") -> float:
    """
    Parse a duration into seconds.

    Accepts plain numbers (seconds) and Go-style strings such as
    "500ms", "10s", "5m" or "1h30m".

    Raises:
        ConfigurationError: If the value cannot be parsed
    """
    text = value.strip().lower()
    if not text:
        raise ConfigurationError("Empty duration", config_key=key, actual_value=value)

    try:
        return float(text)
    except ValueError:
        pass

    position = 0
    total = 0.0
    for match in _DURATION_PART.finditer(text):
        if match.start() != position:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        position = match.end()

    if position != len(text):
        raise ConfigurationError(
            f"Invalid duration '{value}'", config_key=key, actual_value=value
        )
    return total


# ============================================================
# SETTINGS
# ============================================================

@dataclass(frozen=True)
class DatabaseSettings:
    """Relational store connection."""

    url: str = "sqlite:///traffic.db"
    pool_size: int = 10
    max_overflow: int = 20
    pool_recycle_seconds: int = 1800
    echo: bool = False


@dataclass(frozen=True)
class StreamSettings:
    """Durable stream and consumer-group identity."""

    redis_url: str = "redis://localhost:6379/0"
    stream_key: str = DEFAULT_STREAM_KEY
    consumer_group: str = DEFAULT_CONSUMER_GROUP
    consumer_name: str = "processor-local"
    block_ms: int = 2000
    read_count: int = 10
    max_length: Optional[int] = None
    claim_idle_ms: int = 0
    error_backoff_seconds: float = 1.0
    max_delivery_attempts: int = 5


@dataclass(frozen=True)
class SourceSettings:
    """External feeds polled by the collector."""

    api_key: str = ""
    data_source_mode: str = "real"
    accident_api_url: str = "https://data.ex.co.kr/openapi/burstInfo/realTimeSms"
    simulator_api_url: str = "http://localhost:8080/api/traffic"
    tollgate_api_url: str = "https://data.ex.co.kr/openapi/trafficapi/trafficIc"
    road_status_api_url: str = (
        "https://data.ex.co.kr/openapi/odtraffic/trafficAmountByRealtime"
    )
    accident_interval_seconds: float = 10.0
    tollgate_interval_seconds: float = 900.0
    road_status_interval_seconds: float = 300.0
    http_timeout_seconds: float = 30.0
    max_retries: int = 3
    replay_seed_file: Optional[str] = None
    enabled_sources: tuple = ("incident", "tollgate_traffic", "road_status")


@dataclass(frozen=True)
class SchedulerSettings:
    """Aggregation jobs."""

    snapshot_interval_seconds: float = 300.0
    local_timezone: str = DEFAULT_LOCAL_TIMEZONE

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.local_timezone)


@dataclass(frozen=True)
class PipelineSettings:
    """Top-level settings bundle."""

    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    stream: StreamSettings = field(default_factory=StreamSettings)
    sources: SourceSettings = field(default_factory=SourceSettings)
    scheduler: SchedulerSettings = field(default_factory=SchedulerSettings)
    incident_dedup_strategy: str = "upsert"
    log_level: str = "INFO"
    log_format: str = "text"


# ============================================================
# LOADING
# ============================================================

def _get_int(env: Mapping[str, str], key: str, default: Optional[int]) -> Optional[int]:
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(
            f"{key} must be an integer", config_key=key, actual_value=raw, cause=e
        ) from e


def _get_duration(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    return parse_duration(raw, key)


def _default_consumer_name() -> str:
    return f"processor-{socket.gethostname()}"


def load_settings(env: Optional[Mapping[str, str]] = None) -> PipelineSettings:
    """
    Build settings from environment variables.

    Args:
        env: Mapping to read from. When omitted, a .env file is
            loaded (if present) and os.environ is used.

    Returns:
        PipelineSettings

    Raises:
        ConfigurationError: On invalid values
    """
    if env is None:
        load_dotenv()
        env = os.environ

    database = DatabaseSettings(
        url=env.get("DATABASE_URL") or DatabaseSettings.url,
        pool_size=_get_int(env, "DB_POOL_SIZE", DatabaseSettings.pool_size),
        max_overflow=_get_int(env, "DB_MAX_OVERFLOW", DatabaseSettings.max_overflow),
        echo=env.get("DB_ECHO", "false").lower() == "true",
    )

    stream = StreamSettings(
        redis_url=env.get("REDIS_URL") or StreamSettings.redis_url,
        stream_key=env.get("STREAM_KEY") or DEFAULT_STREAM_KEY,
        consumer_group=env.get("CONSUMER_GROUP") or DEFAULT_CONSUMER_GROUP,
        consumer_name=env.get("CONSUMER_NAME") or _default_consumer_name(),
        block_ms=_get_int(env, "STREAM_BLOCK_MS", StreamSettings.block_ms),
        read_count=_get_int(env, "STREAM_READ_COUNT", StreamSettings.read_count),
        max_length=_get_int(env, "STREAM_MAX_LEN", None),
        claim_idle_ms=_get_int(env, "CLAIM_IDLE_MS", 0),
        max_delivery_attempts=_get_int(
            env, "MAX_DELIVERY_ATTEMPTS", StreamSettings.max_delivery_attempts
        ),
    )

    mode = (env.get("DATA_SOURCE_MODE") or "real").lower()
    if mode not in ("real", "sim", "replay"):
        raise ConfigurationError(
            "DATA_SOURCE_MODE must be one of real, sim, replay",
            config_key="DATA_SOURCE_MODE",
            actual_value=mode,
        )

    if mode == "replay" and not env.get("REPLAY_SEED_FILE"):
        raise ConfigurationError(
            "REPLAY_SEED_FILE is required when DATA_SOURCE_MODE=replay",
            config_key="REPLAY_SEED_FILE",
        )

    enabled = env.get("ENABLED_SOURCES")
    sources = SourceSettings(
        api_key=env.get("OPENAPI_KEY", ""),
        data_source_mode=mode,
        accident_api_url=env.get("ACCIDENT_API_URL") or SourceSettings.accident_api_url,
        simulator_api_url=env.get("SIMULATOR_API_URL") or SourceSettings.simulator_api_url,
        tollgate_api_url=env.get("TOLLGATE_API_URL") or SourceSettings.tollgate_api_url,
        road_status_api_url=(
            env.get("ROAD_STATUS_API_URL") or SourceSettings.road_status_api_url
        ),
        accident_interval_seconds=_get_duration(env, "ACCIDENT_INTERVAL", 10.0),
        tollgate_interval_seconds=_get_duration(env, "TOLLGATE_INTERVAL", 900.0),
        road_status_interval_seconds=_get_duration(env, "ROAD_STATUS_INTERVAL", 300.0),
        http_timeout_seconds=_get_duration(env, "HTTP_TIMEOUT", 30.0),
        max_retries=_get_int(env, "FETCH_MAX_RETRIES", 3),
        replay_seed_file=env.get("REPLAY_SEED_FILE") or None,
        enabled_sources=(
            tuple(s.strip() for s in enabled.split(",") if s.strip())
            if enabled
            else SourceSettings.enabled_sources
        ),
    )

    scheduler = SchedulerSettings(
        snapshot_interval_seconds=_get_duration(env, "SNAPSHOT_INTERVAL", 300.0),
        local_timezone=env.get("LOCAL_TIMEZONE") or DEFAULT_LOCAL_TIMEZONE,
    )
    try:
        ZoneInfo(scheduler.local_timezone)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ConfigurationError(
            "Unknown LOCAL_TIMEZONE",
            config_key="LOCAL_TIMEZONE",
            actual_value=scheduler.local_timezone,
            cause=e,
        ) from e

    strategy = (env.get("INCIDENT_DEDUP_STRATEGY") or "upsert").lower()
    if strategy not in ("upsert", "check_then_insert"):
        raise ConfigurationError(
            "INCIDENT_DEDUP_STRATEGY must be upsert or check_then_insert",
            config_key="INCIDENT_DEDUP_STRATEGY",
            actual_value=strategy,
        )

    return PipelineSettings(
        database=database,
        stream=stream,
        sources=sources,
        scheduler=scheduler,
        incident_dedup_strategy=strategy,
        log_level=(env.get("LOG_LEVEL") or "INFO").upper(),
        log_format=(env.get("LOG_FORMAT") or "text").lower(),
    )
