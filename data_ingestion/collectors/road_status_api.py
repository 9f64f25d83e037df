"""
Data Ingestion - Road Status Collector.

Polls the real-time road traffic status feed (per route, sub-zone
and direction: volume, speed, share ratio, congestion grade) and
publishes the samples to the stream.
"""

from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo

import httpx

from core.clock import ClockProtocol
from core.constants import KIND_ROAD_STATUS
from data_ingestion.collectors.base import BaseCollector
from data_ingestion.normalizers import normalize_road_status
from data_ingestion.types import (
    IngestionSource,
    RoadStatusApiConfig,
    RoadStatusRecord,
)
from streaming.publisher import StreamPublisher


ROAD_STATUS_LIST_FIELD = "list"


class RoadStatusApiCollector(BaseCollector[RoadStatusRecord]):
    """Collector for road-segment status samples."""

    def __init__(
        self,
        config: RoadStatusApiConfig,
        publisher: StreamPublisher,
        clock: Optional[ClockProtocol] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        super().__init__(
            config=config,
            source=IngestionSource.ROAD_STATUS_API,
            kind=KIND_ROAD_STATUS,
            publisher=publisher,
            clock=clock,
            http_client=http_client,
        )
        self._road_config = config
        self._tz = ZoneInfo(config.local_timezone)

    async def fetch_data(self) -> List[Dict[str, Any]]:
        body = await self._get_json(
            self._road_config.base_url,
            {"key": self._road_config.api_key, "type": "json"},
        )
        self._check_response_code(body)
        self._logger.info(f"Road status records: {body.get('count', '?')}")
        return self._list_field(body, ROAD_STATUS_LIST_FIELD)

    def parse_item(self, raw_data: Dict[str, Any]) -> RoadStatusRecord:
        return normalize_road_status(raw_data, self._tz)
