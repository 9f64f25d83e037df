"""
Data Ingestion - Seed Replay Collector.

============================================================
RESPONSIBILITY
============================================================
Replays incidents from a local seed file at a realistic pace,
for demo and load runs without access to the real feed.

- Each poll asks plan_emission how many incidents to emit
- That many seeds are drawn at random and stamped with the
  current local date and time
- Published exactly like real incidents (source "replay")

============================================================
SEED FILE
============================================================
A JSON array of objects in the incident feed shape or the
canonical shape; date and time fields are ignored.

============================================================
"""

import json
import random
from pathlib import Path
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo

from core.clock import ClockProtocol
from core.constants import KIND_INCIDENT
from data_ingestion.collectors.base import BaseCollector
from data_ingestion.normalizers import normalize_incident
from data_ingestion.pacing import EmissionWindow, plan_emission
from data_ingestion.types import (
    FetchError,
    IncidentRecord,
    IngestionSource,
    SeedReplayConfig,
)
from streaming.publisher import StreamPublisher


_DATE_TIME_KEYS = ("accDate", "accHour", "occurred_date", "occurred_time")


class SeedReplayCollector(BaseCollector[IncidentRecord]):
    """Paced replay of seed incidents."""

    def __init__(
        self,
        config: SeedReplayConfig,
        publisher: StreamPublisher,
        clock: Optional[ClockProtocol] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        super().__init__(
            config=config,
            source=IngestionSource.SEED_REPLAY,
            kind=KIND_INCIDENT,
            publisher=publisher,
            clock=clock,
        )
        self._replay_config = config
        self._tz = ZoneInfo(config.local_timezone)
        self._rng = rng or random.Random()
        self._window: Optional[EmissionWindow] = None
        self._seeds: Optional[List[Dict[str, Any]]] = None

    @property
    def window(self) -> Optional[EmissionWindow]:
        return self._window

    def _load_seeds(self) -> List[Dict[str, Any]]:
        if self._seeds is not None:
            return self._seeds

        path = Path(self._replay_config.seed_file)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise FetchError(
                message=f"Cannot read seed file {path}: {e}",
                source=self.source_name,
                recoverable=False,
            ) from e

        if not isinstance(data, list):
            raise FetchError(
                message=f"Seed file {path} must contain a JSON array",
                source=self.source_name,
                recoverable=False,
            )

        self._seeds = [item for item in data if isinstance(item, dict)]
        self._logger.info(f"Loaded {len(self._seeds)} seed incidents from {path}")
        return self._seeds

    async def fetch_data(self) -> List[Dict[str, Any]]:
        seeds = self._load_seeds()
        now = self._clock.now()

        count, self._window = plan_emission(
            self._window,
            now,
            self._rng,
            window_seconds=self._replay_config.window_seconds,
            call_interval_seconds=self._config.polling_interval_seconds,
        )
        self._logger.debug(
            f"Replay window: emitting {count} ({self._window.emitted}/{self._window.target})"
        )
        if count == 0 or not seeds:
            return []

        local_now = now.astimezone(self._tz)
        stamped = []
        for seed in self._rng.sample(seeds, min(count, len(seeds))):
            item = {k: v for k, v in seed.items() if k not in _DATE_TIME_KEYS}
            item["accDate"] = local_now.strftime("%Y.%m.%d")
            item["accHour"] = local_now.strftime("%H:%M:%S")
            item.setdefault("linkId", f"LINK{self._rng.randrange(99999):05d}")
            stamped.append(item)
        return stamped

    def parse_item(self, raw_data: Dict[str, Any]) -> IncidentRecord:
        return normalize_incident(raw_data)
