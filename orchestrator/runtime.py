"""
Orchestrator - Runtime.

============================================================
RESPONSIBILITY
============================================================
Wires every component from settings and runs the requested
process role.

Roles:
  collector  - collector loops, publishing to the stream
  processor  - consumer-group reader feeding the writer
  scheduler  - snapshot and daily rollup loops
  all        - everything above in one process

============================================================
LIFECYCLE
============================================================
1. Build components
2. Startup checks (store and/or stream, by role)
   -> StartupError, the process exits non-zero
3. Run loops until SIGINT/SIGTERM sets the shutdown event
   (or run one cycle with --once)
4. Close the HTTP client, the Redis client and the engine

============================================================
"""

import asyncio
import logging
import random
import signal
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional, Sequence

import httpx
from sqlalchemy import Engine
from sqlalchemy.orm import sessionmaker

from aggregation import AggregationScheduler, DailyRollup, SnapshotRollup
from core.clock import ClockProtocol, SystemClock
from core.config import PipelineSettings
from core.exceptions import StartupError, StreamError
from data_ingestion.ingestion_service import IngestionService, IngestionServiceConfig
from data_processing.writer import RecordWriter
from database.engine import (
    DatabasePersistenceError,
    create_database_engine,
    get_session_factory,
    initialize_database,
)
from streaming import RedisStreamTransport, StreamConsumer, StreamPublisher, StreamTransport


logger = logging.getLogger("orchestrator.runtime")


ROLE_COLLECTOR = "collector"
ROLE_PROCESSOR = "processor"
ROLE_SCHEDULER = "scheduler"
ROLE_ALL = "all"

ROLES = (ROLE_COLLECTOR, ROLE_PROCESSOR, ROLE_SCHEDULER, ROLE_ALL)

_EXPANDED_ROLES = {
    ROLE_COLLECTOR: (ROLE_COLLECTOR,),
    ROLE_PROCESSOR: (ROLE_PROCESSOR,),
    ROLE_SCHEDULER: (ROLE_SCHEDULER,),
    ROLE_ALL: (ROLE_COLLECTOR, ROLE_PROCESSOR, ROLE_SCHEDULER),
}


def expand_role(role: str) -> Sequence[str]:
    """Concrete roles run by a role name."""
    try:
        return _EXPANDED_ROLES[role]
    except KeyError:
        raise ValueError(f"Unknown role: {role}") from None


# ============================================================
# COMPONENTS
# ============================================================

@dataclass
class PipelineRuntime:
    """Every long-lived component of one process."""

    settings: PipelineSettings
    clock: ClockProtocol
    engine: Engine
    session_factory: sessionmaker
    transport: StreamTransport
    http_client: httpx.AsyncClient
    publisher: StreamPublisher
    ingestion: IngestionService
    writer: RecordWriter
    consumer: StreamConsumer
    scheduler: AggregationScheduler
    daily: DailyRollup
    shutdown: asyncio.Event = field(default_factory=asyncio.Event)

    def get_health_status(self) -> Dict[str, Any]:
        return {
            "ingestion": self.ingestion.get_health_status(),
            "consumer": self.consumer.get_health_status(),
            "scheduler": self.scheduler.get_health_status(),
        }


def build_runtime(
    settings: PipelineSettings,
    clock: Optional[ClockProtocol] = None,
    transport: Optional[StreamTransport] = None,
    engine: Optional[Engine] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    rng: Optional[random.Random] = None,
) -> PipelineRuntime:
    """
    Build all components from settings.

    Nothing connects here; connections are opened lazily and
    checked by startup_checks.
    """
    clock = clock or SystemClock()
    engine = engine or create_database_engine(settings.database)
    session_factory = get_session_factory(engine)
    transport = transport or RedisStreamTransport.from_url(settings.stream.redis_url)
    http_client = http_client or httpx.AsyncClient(
        timeout=settings.sources.http_timeout_seconds
    )
    tz = settings.scheduler.tz
    stream = settings.stream

    publisher = StreamPublisher(
        transport,
        stream_key=stream.stream_key,
        source=settings.sources.data_source_mode,
        clock=clock,
        max_length=stream.max_length,
    )
    ingestion = IngestionService(
        IngestionServiceConfig.from_settings(settings),
        publisher,
        clock=clock,
        http_client=http_client,
        rng=rng,
    )
    writer = RecordWriter(
        session_factory,
        clock=clock,
        incident_strategy=settings.incident_dedup_strategy,
        local_timezone=tz,
    )
    consumer = StreamConsumer(
        transport,
        writer.handle_entry,
        stream_key=stream.stream_key,
        group=stream.consumer_group,
        consumer_name=stream.consumer_name,
        read_count=stream.read_count,
        block_ms=stream.block_ms,
        claim_idle_ms=stream.claim_idle_ms,
        error_backoff_seconds=stream.error_backoff_seconds,
        max_delivery_attempts=stream.max_delivery_attempts,
    )
    daily = DailyRollup(session_factory, clock=clock, local_timezone=tz)
    scheduler = AggregationScheduler(
        SnapshotRollup(session_factory, clock=clock),
        daily,
        snapshot_interval_seconds=settings.scheduler.snapshot_interval_seconds,
        clock=clock,
    )

    return PipelineRuntime(
        settings=settings,
        clock=clock,
        engine=engine,
        session_factory=session_factory,
        transport=transport,
        http_client=http_client,
        publisher=publisher,
        ingestion=ingestion,
        writer=writer,
        consumer=consumer,
        scheduler=scheduler,
        daily=daily,
    )


# ============================================================
# STARTUP
# ============================================================

def needs_store(roles: Sequence[str]) -> bool:
    return ROLE_PROCESSOR in roles or ROLE_SCHEDULER in roles


def needs_stream(roles: Sequence[str]) -> bool:
    return ROLE_COLLECTOR in roles or ROLE_PROCESSOR in roles


async def startup_checks(runtime: PipelineRuntime, roles: Sequence[str]) -> None:
    """
    Verify the dependencies the roles need.

    Raises:
        StartupError: If the store or the stream is unreachable
    """
    if needs_store(roles):
        try:
            initialize_database(runtime.engine)
        except DatabasePersistenceError as e:
            raise StartupError(f"Store unavailable: {e}", component="store", cause=e) from e

    if needs_stream(roles):
        try:
            await runtime.transport.ping()
        except StreamError as e:
            raise StartupError(f"Stream unavailable: {e}", component="stream", cause=e) from e

    if ROLE_PROCESSOR in roles:
        try:
            await runtime.consumer.start()
        except StreamError as e:
            raise StartupError(
                f"Cannot join consumer group: {e}", component="stream", cause=e
            ) from e

    logger.info(f"Startup checks passed for roles: {', '.join(roles)}")


def install_signal_handlers(shutdown: asyncio.Event) -> None:
    """SIGINT/SIGTERM set the shutdown event."""
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _request_shutdown, shutdown, sig)
        except NotImplementedError:
            # Windows event loops
            signal.signal(sig, lambda signum, frame: loop.call_soon_threadsafe(shutdown.set))


def _request_shutdown(shutdown: asyncio.Event, sig: signal.Signals) -> None:
    logger.info(f"Received {sig.name}, shutting down")
    shutdown.set()


# ============================================================
# EXECUTION
# ============================================================

async def run_once(runtime: PipelineRuntime, roles: Sequence[str]) -> Dict[str, Any]:
    """One collection, processing and rollup cycle, by role."""
    summary: Dict[str, Any] = {}
    if ROLE_COLLECTOR in roles:
        results = await runtime.ingestion.run_collection_cycle()
        summary[ROLE_COLLECTOR] = [result.to_dict() for result in results]
    if ROLE_PROCESSOR in roles:
        handled = await runtime.consumer.run_until_idle()
        summary[ROLE_PROCESSOR] = {
            "entries_handled": handled,
            **runtime.consumer.stats.to_dict(),
        }
    if ROLE_SCHEDULER in roles:
        summary[ROLE_SCHEDULER] = [result.to_dict() for result in runtime.scheduler.run_once()]
    logger.info(f"Single cycle completed: {summary}")
    return summary


async def run_forever(runtime: PipelineRuntime, roles: Sequence[str]) -> None:
    """Run the role loops until the shutdown event is set."""
    tasks: List[Any] = []
    if ROLE_COLLECTOR in roles:
        tasks.append(runtime.ingestion.start(runtime.shutdown))
    if ROLE_PROCESSOR in roles:
        tasks.append(runtime.consumer.run(runtime.shutdown))
    if ROLE_SCHEDULER in roles:
        tasks.append(runtime.scheduler.start(runtime.shutdown))

    logger.info(f"Pipeline running: {', '.join(roles)}")
    await asyncio.gather(*tasks)
    logger.info("Pipeline stopped")


async def close_runtime(runtime: PipelineRuntime) -> None:
    """Release clients and the connection pool."""
    await runtime.http_client.aclose()
    await runtime.transport.close()
    runtime.engine.dispose()
    logger.info("Resources released")


async def run_pipeline(
    settings: PipelineSettings,
    role: str = ROLE_ALL,
    once: bool = False,
    rollup_date: Optional[date] = None,
    runtime: Optional[PipelineRuntime] = None,
) -> int:
    """
    Run one process.

    Returns:
        Exit code: 0 on a clean stop, 1 on startup failure
    """
    roles = expand_role(role)
    runtime = runtime or build_runtime(settings)

    try:
        if rollup_date is not None:
            await startup_checks(runtime, (ROLE_SCHEDULER,))
            result = runtime.scheduler.run_daily(rollup_date)
            return 1 if result.error else 0

        await startup_checks(runtime, roles)
        if once:
            await run_once(runtime, roles)
            return 0

        install_signal_handlers(runtime.shutdown)
        await run_forever(runtime, roles)
        return 0
    except StartupError as e:
        logger.critical(f"Startup failed: {e.to_dict()}")
        return 1
    finally:
        await close_runtime(runtime)
