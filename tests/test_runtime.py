"""
Tests for process wiring, startup checks and the CLI.
"""

from datetime import date
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from core.config import DatabaseSettings, PipelineSettings, SourceSettings, StreamSettings
from core.exceptions import StreamError
from database.engine import (
    DatabaseConnectionError,
    create_database_engine,
    get_session_factory,
)
from orchestrator.cli import create_parser, main, validate_args
from orchestrator.runtime import build_runtime, expand_role, run_pipeline
from storage.repositories import DailyAccidentStatRepository, IncidentRepository


def _settings(db_path) -> PipelineSettings:
    return PipelineSettings(
        database=DatabaseSettings(url=f"sqlite:///{db_path}"),
        stream=StreamSettings(consumer_name="processor-1", error_backoff_seconds=0),
        sources=SourceSettings(enabled_sources=("incident",), max_retries=1),
    )


def _incident_feed(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json={
        "code": "SUCCESS",
        "realTimeSMSList": [{
            "accDate": "2025.01.10",
            "accHour": "22:15:00",
            "accPointNM": "Seoul TG",
            "smsText": "Collision",
            "accType": "A",
        }],
    })


def _runtime(settings, transport, clock):
    return build_runtime(
        settings,
        clock=clock,
        transport=transport,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(_incident_feed)),
    )


class TestRoles:

    def test_all_expands_to_every_role(self):
        assert expand_role("all") == ("collector", "processor", "scheduler")

    def test_unknown_role(self):
        with pytest.raises(ValueError):
            expand_role("dashboard")


class TestRunPipeline:

    @pytest.mark.asyncio
    async def test_single_cycle_end_to_end(self, tmp_path, transport, clock):
        db_path = tmp_path / "traffic.db"
        settings = _settings(db_path)
        runtime = _runtime(settings, transport, clock)

        exit_code = await run_pipeline(settings, role="all", once=True, runtime=runtime)

        assert exit_code == 0
        assert transport.closed
        assert runtime.consumer.stats.entries_acked == 1

        engine = create_database_engine(DatabaseSettings(url=f"sqlite:///{db_path}"))
        try:
            with get_session_factory(engine)() as session:
                assert IncidentRepository(session).count() == 1
                # The clock sits on 2025-01-11 in Seoul, so yesterday was rolled up
                stats = DailyAccidentStatRepository(session).get_for_date(date(2025, 1, 10))
                assert stats == {"A": 1}
        finally:
            engine.dispose()

    @pytest.mark.asyncio
    async def test_stream_unreachable_exits_non_zero(self, tmp_path, transport, clock):
        settings = _settings(tmp_path / "traffic.db")
        transport.ping = AsyncMock(side_effect=StreamError("connection refused", operation="ping"))
        runtime = _runtime(settings, transport, clock)

        exit_code = await run_pipeline(settings, role="collector", once=True, runtime=runtime)

        assert exit_code == 1
        assert transport.closed

    @pytest.mark.asyncio
    async def test_store_unreachable_exits_non_zero(self, tmp_path, transport, clock):
        settings = _settings(tmp_path / "traffic.db")
        runtime = _runtime(settings, transport, clock)

        with patch(
            "orchestrator.runtime.initialize_database",
            side_effect=DatabaseConnectionError("refused"),
        ):
            exit_code = await run_pipeline(settings, role="processor", once=True, runtime=runtime)

        assert exit_code == 1

    @pytest.mark.asyncio
    async def test_collector_role_skips_store_check(self, tmp_path, transport, clock):
        settings = _settings(tmp_path / "traffic.db")
        runtime = _runtime(settings, transport, clock)

        with patch("orchestrator.runtime.initialize_database") as init_db:
            exit_code = await run_pipeline(settings, role="collector", once=True, runtime=runtime)

        assert exit_code == 0
        init_db.assert_not_called()
        assert len(transport.streams["traffic-stream"]) == 1

    @pytest.mark.asyncio
    async def test_rollup_date_runs_only_the_daily_job(self, tmp_path, transport, clock):
        settings = _settings(tmp_path / "traffic.db")
        runtime = _runtime(settings, transport, clock)

        exit_code = await run_pipeline(
            settings, role="all", rollup_date=date(2025, 1, 10), runtime=runtime
        )

        assert exit_code == 0
        assert transport.streams == {}
        recent = runtime.scheduler.get_recent_results()
        assert [r.job for r in recent] == ["daily"]
        assert recent[0].target == "2025-01-10"


class TestCli:

    def test_defaults(self):
        args = create_parser().parse_args([])

        assert args.role == "all"
        assert args.once is False
        assert args.rollup_date is None

    def test_rollup_date_is_parsed(self):
        args = create_parser().parse_args(["--rollup-date", "2025-01-10"])
        assert args.rollup_date == date(2025, 1, 10)

    def test_invalid_rollup_date(self):
        with pytest.raises(SystemExit):
            create_parser().parse_args(["--rollup-date", "10/01/2025"])

    def test_rollup_date_conflicts_with_once(self):
        args = create_parser().parse_args(["--once", "--rollup-date", "2025-01-10"])
        assert validate_args(args) == ["--rollup-date cannot be combined with --once"]

    def test_configuration_error_exits_non_zero(self, monkeypatch):
        monkeypatch.setenv("DATA_SOURCE_MODE", "fake")

        with patch("orchestrator.cli.run_pipeline") as run:
            assert main(["--once"]) == 1
        run.assert_not_called()
