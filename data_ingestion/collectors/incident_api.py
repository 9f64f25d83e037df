"""
Data Ingestion - Incident Feed Collector.

============================================================
RESPONSIBILITY
============================================================
Polls the real-time incident SMS feed (or the simulator that
mimics it) and publishes the incidents to the stream.

============================================================
DATA FLOW
============================================================
1. GET the feed (real: key + paging params; sim: bare URL)
2. Extract realTimeSMSList
3. Normalize each incident
4. Publish one batch per poll

============================================================
"""

from typing import Any, Dict, List, Optional

import httpx

from core.clock import ClockProtocol
from core.constants import KIND_INCIDENT
from data_ingestion.collectors.base import BaseCollector
from data_ingestion.normalizers import normalize_incident
from data_ingestion.types import (
    IncidentApiConfig,
    IncidentRecord,
    IngestionSource,
)
from streaming.publisher import StreamPublisher


INCIDENT_LIST_FIELD = "realTimeSMSList"


class IncidentApiCollector(BaseCollector[IncidentRecord]):
    """
    Collector for the incident feed.

    publish_source is "real" or "sim" and is written to every
    stream entry's source field.
    """

    def __init__(
        self,
        config: IncidentApiConfig,
        publisher: StreamPublisher,
        clock: Optional[ClockProtocol] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        super().__init__(
            config=config,
            source=IngestionSource.INCIDENT_API,
            kind=KIND_INCIDENT,
            publisher=publisher,
            clock=clock,
            http_client=http_client,
        )
        self._incident_config = config

    def _request_params(self) -> Optional[Dict[str, Any]]:
        if self._incident_config.publish_source != "real":
            return None
        return {
            "key": self._incident_config.api_key,
            "type": "json",
            "numOfRows": self._incident_config.num_of_rows,
            "pageNo": 1,
            "sortType": "desc",
            "pagingYn": "Y",
        }

    async def fetch_data(self) -> List[Dict[str, Any]]:
        body = await self._get_json(self._incident_config.base_url, self._request_params())
        if isinstance(body, list):
            return body
        self._check_response_code(body)
        return self._list_field(body, INCIDENT_LIST_FIELD)

    def parse_item(self, raw_data: Dict[str, Any]) -> IncidentRecord:
        return normalize_incident(raw_data)
