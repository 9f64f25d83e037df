"""
Data Ingestion - Ingestion Service.

============================================================
RESPONSIBILITY
============================================================
Orchestrates all data collection activities.

- Builds the collectors enabled by configuration
- Runs one independent polling loop per source
- Reports ingestion health and metrics

============================================================
DESIGN PRINCIPLES
============================================================
- Single entry point for data collection
- No business logic - coordination only
- All data flows to the stream, never to the store
- Failure isolation between sources

============================================================
WORKFLOW
============================================================
1. Initialize all configured collectors
2. Start one loop per collector; each collects immediately,
   then once per polling interval
3. Each cycle fetches, normalizes and publishes one batch
4. Loops exit at the next interval boundary after shutdown

============================================================
"""

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import httpx

from core.clock import ClockProtocol, SystemClock
from core.config import PipelineSettings
from core.constants import KIND_INCIDENT, KIND_ROAD_STATUS, KIND_TOLLGATE_TRAFFIC
from data_ingestion.collectors.base import BaseCollector
from data_ingestion.collectors.incident_api import IncidentApiCollector
from data_ingestion.collectors.road_status_api import RoadStatusApiCollector
from data_ingestion.collectors.seed_replay import SeedReplayCollector
from data_ingestion.collectors.tollgate_api import TollgateApiCollector
from data_ingestion.types import (
    IncidentApiConfig,
    IngestionMetrics,
    IngestionResult,
    IngestionStatus,
    RoadStatusApiConfig,
    SeedReplayConfig,
    TollgateApiConfig,
)
from streaming.publisher import StreamPublisher


# ============================================================
# CONFIGURATION
# ============================================================


@dataclass
class IngestionServiceConfig:
    """Configuration for the ingestion service."""

    # Enabled sources, by record kind
    enabled_sources: List[str] = field(default_factory=lambda: [
        KIND_INCIDENT,
        KIND_TOLLGATE_TRAFFIC,
        KIND_ROAD_STATUS,
    ])

    # real, sim or replay (incident source only)
    data_source_mode: str = "real"

    # Collector-specific configs
    incident_config: Optional[IncidentApiConfig] = None
    replay_config: Optional[SeedReplayConfig] = None
    tollgate_config: Optional[TollgateApiConfig] = None
    road_status_config: Optional[RoadStatusApiConfig] = None

    @classmethod
    def from_settings(cls, settings: PipelineSettings) -> "IngestionServiceConfig":
        """Build collector configs from pipeline settings."""
        sources = settings.sources
        tz_name = settings.scheduler.local_timezone
        mode = sources.data_source_mode

        incident_config = None
        replay_config = None
        if mode == "replay":
            replay_config = SeedReplayConfig(
                source_name="seed_replay",
                polling_interval_seconds=sources.accident_interval_seconds,
                max_retries=1,
                seed_file=sources.replay_seed_file or "",
                local_timezone=tz_name,
            )
        else:
            incident_config = IncidentApiConfig(
                source_name="incident_api",
                polling_interval_seconds=sources.accident_interval_seconds,
                max_retries=sources.max_retries,
                timeout_seconds=sources.http_timeout_seconds,
                api_key=sources.api_key,
                base_url=(
                    sources.accident_api_url if mode == "real" else sources.simulator_api_url
                ),
                publish_source=mode,
            )

        return cls(
            enabled_sources=list(sources.enabled_sources),
            data_source_mode=mode,
            incident_config=incident_config,
            replay_config=replay_config,
            tollgate_config=TollgateApiConfig(
                source_name="tollgate_api",
                polling_interval_seconds=sources.tollgate_interval_seconds,
                max_retries=sources.max_retries,
                timeout_seconds=sources.http_timeout_seconds,
                api_key=sources.api_key,
                base_url=sources.tollgate_api_url,
                local_timezone=tz_name,
            ),
            road_status_config=RoadStatusApiConfig(
                source_name="road_status_api",
                polling_interval_seconds=sources.road_status_interval_seconds,
                max_retries=sources.max_retries,
                timeout_seconds=sources.http_timeout_seconds,
                api_key=sources.api_key,
                base_url=sources.road_status_api_url,
                local_timezone=tz_name,
            ),
        )


# ============================================================
# INGESTION SERVICE
# ============================================================


class IngestionService:
    """
    Orchestrates all data collection activities.

    ============================================================
    USAGE
    ============================================================
    ```python
    service = IngestionService(config, publisher)

    # Run single cycle
    results = await service.run_collection_cycle()

    # Or run continuously until shutdown is set
    await service.start(shutdown)
    ```

    ============================================================
    """

    def __init__(
        self,
        config: IngestionServiceConfig,
        publisher: StreamPublisher,
        clock: Optional[ClockProtocol] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        """
        Initialize the ingestion service.

        Args:
            config: Service configuration
            publisher: Stream publisher shared by all collectors
            clock: Clock (defaults to system clock)
            http_client: Shared HTTP client for the API collectors
            rng: Random source for the replay collector
        """
        self._config = config
        self._publisher = publisher
        self._clock = clock or SystemClock()
        self._http_client = http_client
        self._rng = rng
        self._logger = logging.getLogger("ingestion_service")

        self._collectors: Dict[str, BaseCollector] = {}
        self._shutdown = asyncio.Event()
        self._metrics = IngestionMetrics()
        self._results: List[IngestionResult] = []

        self._initialize_collectors()

    def _initialize_collectors(self) -> None:
        """Initialize enabled collectors."""
        builders: Dict[str, Callable[[], Optional[BaseCollector]]] = {
            KIND_INCIDENT: self._build_incident_collector,
            KIND_TOLLGATE_TRAFFIC: self._build_tollgate_collector,
            KIND_ROAD_STATUS: self._build_road_status_collector,
        }
        for name in self._config.enabled_sources:
            builder = builders.get(name)
            if builder is None:
                self._logger.warning(f"Unknown source: {name}")
                continue

            collector = builder()
            if collector is None:
                self._logger.warning(f"No config for source: {name}")
                continue

            self._collectors[name] = collector
            self._logger.info(
                f"Initialized collector: {name} ({collector.source_name}, "
                f"every {collector.polling_interval_seconds}s)"
            )

    def _build_incident_collector(self) -> Optional[BaseCollector]:
        if self._config.data_source_mode == "replay":
            if self._config.replay_config is None:
                return None
            return SeedReplayCollector(
                self._config.replay_config, self._publisher, self._clock, rng=self._rng
            )
        if self._config.incident_config is None:
            return None
        return IncidentApiCollector(
            self._config.incident_config, self._publisher, self._clock, self._http_client
        )

    def _build_tollgate_collector(self) -> Optional[BaseCollector]:
        if self._config.tollgate_config is None:
            return None
        return TollgateApiCollector(
            self._config.tollgate_config, self._publisher, self._clock, self._http_client
        )

    def _build_road_status_collector(self) -> Optional[BaseCollector]:
        if self._config.road_status_config is None:
            return None
        return RoadStatusApiCollector(
            self._config.road_status_config, self._publisher, self._clock, self._http_client
        )

    # =========================================================
    # COLLECTION EXECUTION
    # =========================================================

    async def run_collection_cycle(self) -> List[IngestionResult]:
        """
        Run a single collection cycle for all collectors.

        Returns:
            List of ingestion results from all collectors
        """
        results = await asyncio.gather(*[
            self._run_collector(name, collector)
            for name, collector in self._collectors.items()
        ])

        published = sum(r.records_published for r in results)
        self._logger.info(
            f"Collection cycle completed. Published: {published}, "
            f"Failed sources: {sum(1 for r in results if r.status == IngestionStatus.FAILED)}"
        )
        return list(results)

    async def _run_collector(
        self,
        name: str,
        collector: BaseCollector,
    ) -> IngestionResult:
        """Run a single collector with error isolation."""
        try:
            result = await collector.collect()
        except Exception as e:
            self._logger.exception(f"Collector {name} failed")
            result = IngestionResult(
                source=collector.source_name,
                status=IngestionStatus.FAILED,
                errors=[str(e)],
            )
            result.mark_complete(self._clock.now())

        self._metrics.record_result(result)
        self._results.append(result)
        del self._results[:-100]
        return result

    async def _collector_loop(self, name: str, collector: BaseCollector) -> None:
        """Collect now, then once per interval, until shutdown."""
        self._logger.info(f"Collector loop {name} started")
        while not self._shutdown.is_set():
            await self._run_collector(name, collector)
            try:
                await asyncio.wait_for(
                    self._shutdown.wait(), timeout=collector.polling_interval_seconds
                )
            except asyncio.TimeoutError:
                pass
        self._logger.info(f"Collector loop {name} stopped")

    # =========================================================
    # CONTINUOUS OPERATION
    # =========================================================

    async def start(self, shutdown: Optional[asyncio.Event] = None) -> None:
        """
        Run all collector loops until shutdown.

        Args:
            shutdown: Shared shutdown event; the service's own event
                is used when omitted
        """
        if shutdown is not None:
            self._shutdown = shutdown

        if not self._collectors:
            self._logger.warning("No collectors enabled")
            return

        self._logger.info("Ingestion service started")
        await asyncio.gather(*[
            self._collector_loop(name, collector)
            for name, collector in self._collectors.items()
        ])
        self._logger.info("Ingestion service stopped")

    def stop(self) -> None:
        """Signal all collector loops to stop."""
        self._shutdown.set()

    # =========================================================
    # HEALTH & METRICS
    # =========================================================

    def get_health_status(self) -> Dict[str, Any]:
        """
        Get aggregated health status.

        Returns:
            Health status dictionary
        """
        return {
            "running": not self._shutdown.is_set(),
            "total_runs": self._metrics.total_runs,
            "last_run_at": (
                self._metrics.last_run_at.isoformat() if self._metrics.last_run_at else None
            ),
            "collectors": {
                name: collector.get_health_status()
                for name, collector in self._collectors.items()
            },
        }

    def get_metrics(self) -> IngestionMetrics:
        """Get aggregated metrics."""
        return self._metrics

    def get_recent_results(self, limit: int = 10) -> List[IngestionResult]:
        """Get recent ingestion results."""
        return self._results[-limit:]

    def get_collector_names(self) -> List[str]:
        """Get list of registered collector names."""
        return list(self._collectors.keys())

    def get_collector(self, name: str) -> Optional[BaseCollector]:
        """Get collector by name."""
        return self._collectors.get(name)
