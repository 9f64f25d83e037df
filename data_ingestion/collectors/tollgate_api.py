"""
Data Ingestion - Tollgate Traffic Collector.

============================================================
RESPONSIBILITY
============================================================
Collects per-tollgate traffic volumes from the paginated
tollgate traffic feed.

- Page 1 reports the page count (pageSize)
- Pages 2..N are fetched one by one; a failed page is logged
  and skipped, the rest are still fetched
- All pages of one cycle are published as one batch

============================================================
"""

from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo

import httpx

from core.clock import ClockProtocol
from core.constants import KIND_TOLLGATE_TRAFFIC
from data_ingestion.collectors.base import BaseCollector
from data_ingestion.normalizers import normalize_tollgate_traffic
from data_ingestion.types import (
    FetchError,
    IngestionSource,
    TollgateApiConfig,
    TollgateTrafficRecord,
)
from streaming.publisher import StreamPublisher


TOLLGATE_LIST_FIELD = "trafficIc"


class TollgateApiCollector(BaseCollector[TollgateTrafficRecord]):
    """Collector for tollgate traffic volumes."""

    def __init__(
        self,
        config: TollgateApiConfig,
        publisher: StreamPublisher,
        clock: Optional[ClockProtocol] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        super().__init__(
            config=config,
            source=IngestionSource.TOLLGATE_API,
            kind=KIND_TOLLGATE_TRAFFIC,
            publisher=publisher,
            clock=clock,
            http_client=http_client,
        )
        self._tollgate_config = config
        self._tz = ZoneInfo(config.local_timezone)

    def _page_params(self, page_no: int) -> Dict[str, Any]:
        return {
            "key": self._tollgate_config.api_key,
            "type": "json",
            "tmType": 2,
            "numOfRows": self._tollgate_config.num_of_rows,
            "pageNo": page_no,
            "carType": 1,
            "inoutType": 0,
            "tcsType": 2,
        }

    async def _fetch_page(self, page_no: int) -> Dict[str, Any]:
        body = await self._get_json(self._tollgate_config.base_url, self._page_params(page_no))
        self._check_response_code(body)
        return body

    async def fetch_data(self) -> List[Dict[str, Any]]:
        first_page = await self._fetch_page(1)
        try:
            total_pages = int(first_page.get("pageSize") or 1)
        except (TypeError, ValueError):
            total_pages = 1

        self._logger.info(
            f"Tollgate traffic records: {first_page.get('count', '?')} (pages: {total_pages})"
        )

        items = list(self._list_field(first_page, TOLLGATE_LIST_FIELD))
        for page_no in range(2, total_pages + 1):
            try:
                page = await self._fetch_page(page_no)
                items.extend(self._list_field(page, TOLLGATE_LIST_FIELD))
            except FetchError as e:
                self._logger.warning(f"Failed to fetch page {page_no}: {e}")
                self._page_errors.append(f"Page {page_no}: {e}")

        return items

    def parse_item(self, raw_data: Dict[str, Any]) -> TollgateTrafficRecord:
        return normalize_tollgate_traffic(raw_data, self._tz)
