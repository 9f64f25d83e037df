"""
Data Ingestion - Base Collector.

============================================================
PURPOSE
============================================================
Abstract base class for all data collectors.

============================================================
DESIGN PRINCIPLES
============================================================
- No business logic - collection only
- Collectors never touch the store; they publish to the stream
- One bad record never aborts the batch
- Standardized error handling
- Full observability

============================================================
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Generic, List, Mapping, Optional, TypeVar

import httpx

from core.clock import ClockProtocol, SystemClock
from core.constants import CLIENT_USER_AGENT, SUCCESS_CODE
from core.exceptions import MalformedRecord, StreamError
from data_ingestion.types import (
    CollectorConfig,
    FetchError,
    IngestionResult,
    IngestionSource,
    IngestionStatus,
    PublishError,
)
from streaming.publisher import StreamPublisher


T = TypeVar("T")  # Canonical record type


class BaseCollector(ABC, Generic[T]):
    """
    Abstract base class for data collectors.

    ============================================================
    RESPONSIBILITIES
    ============================================================
    - Fetch data from external sources
    - Normalize to canonical records
    - Publish each cycle's batch to the stream
    - Track ingestion metrics
    - Handle errors gracefully

    ============================================================
    LIFECYCLE
    ============================================================
    1. Initialize with config and publisher
    2. Call collect() to run a collection cycle
    3. The batch is published and metrics returned

    ============================================================
    """

    def __init__(
        self,
        config: CollectorConfig,
        source: IngestionSource,
        kind: str,
        publisher: StreamPublisher,
        clock: Optional[ClockProtocol] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        """
        Initialize the collector.

        Args:
            config: Collector configuration
            source: Ingestion source identifier
            kind: Record kind published by this collector
            publisher: Stream publisher
            clock: Clock (defaults to system clock)
            http_client: Shared HTTP client; one is created per request if omitted
        """
        self._config = config
        self._source = source
        self._kind = kind
        self._publisher = publisher
        self._clock = clock or SystemClock()
        self._http_client = http_client
        self._logger = logging.getLogger(f"collector.{source.value}")
        self._page_errors: List[str] = []

    @property
    def source_name(self) -> str:
        """Get the source name."""
        return self._source.value

    @property
    def kind(self) -> str:
        return self._kind

    @property
    def is_enabled(self) -> bool:
        """Check if collector is enabled."""
        return self._config.enabled

    @property
    def polling_interval_seconds(self) -> float:
        return self._config.polling_interval_seconds

    # =========================================================
    # ABSTRACT METHODS - Must be implemented by subclasses
    # =========================================================

    @abstractmethod
    async def fetch_data(self) -> List[Dict[str, Any]]:
        """
        Fetch raw records from the external source.

        Returns:
            List of raw record dictionaries

        Raises:
            FetchError: On network or API errors
        """
        pass

    @abstractmethod
    def parse_item(self, raw_data: Dict[str, Any]) -> T:
        """
        Normalize a raw record into a canonical record.

        Raises:
            MalformedRecord: If the record cannot be normalized
        """
        pass

    # =========================================================
    # COLLECTION WORKFLOW
    # =========================================================

    async def collect(self) -> IngestionResult:
        """
        Run a complete collection cycle.

        This method:
        1. Fetches raw records from the external source
        2. Normalizes each one, skipping malformed records
        3. Publishes the batch as one stream entry
        4. Returns metrics

        Returns:
            IngestionResult with metrics and status
        """
        result = IngestionResult(
            source=self.source_name,
            started_at=self._clock.now(),
        )

        if not self.is_enabled:
            result.status = IngestionStatus.SKIPPED
            result.mark_complete(self._clock.now())
            self._logger.info(f"Collector {self.source_name} is disabled, skipping")
            return result

        self._logger.debug(f"Starting collection for {self.source_name}")
        self._page_errors = []

        try:
            # Step 1: Fetch data
            raw_data_list = await self._fetch_with_retry()
            result.records_fetched = len(raw_data_list)
            for error in self._page_errors:
                result.pages_failed += 1
                result.add_error(error)

            # Step 2: Normalize each record
            records: List[T] = []
            for raw_data in raw_data_list:
                try:
                    records.append(self.parse_item(raw_data))
                except MalformedRecord as e:
                    result.records_skipped += 1
                    self._logger.warning(
                        f"Skipping malformed {self._kind} record from {self.source_name}: "
                        f"{e.message} {e.context}"
                    )

            # Step 3: Publish the batch
            entry_id = await self._publish(records)
            if entry_id is not None:
                result.entry_ids.append(entry_id)
                result.records_published = len(records)

        except FetchError as e:
            result.mark_failed(f"Fetch error: {e}")
            self._logger.error(f"Fetch failed for {self.source_name}: {e}")

        except PublishError as e:
            result.mark_failed(f"Publish error: {e}")
            self._logger.error(f"Publish failed for {self.source_name}: {e}")

        result.mark_complete(self._clock.now())
        self._log_result(result)
        return result

    async def _fetch_with_retry(self) -> List[Dict[str, Any]]:
        """
        Fetch data with retry logic.

        Returns:
            List of raw data dictionaries

        Raises:
            FetchError: After all retries exhausted
        """
        last_error: Optional[Exception] = None
        attempts = max(self._config.max_retries, 1)

        for attempt in range(attempts):
            try:
                return await self.fetch_data()
            except FetchError as e:
                last_error = e
                if not e.recoverable:
                    raise
                if attempt == attempts - 1:
                    break

                wait_time = self._config.retry_base_delay_seconds * (2 ** attempt)  # Exponential backoff
                self._logger.warning(
                    f"Fetch attempt {attempt + 1} failed for {self.source_name}, "
                    f"retrying in {wait_time}s: {e}"
                )
                await asyncio.sleep(wait_time)

        raise FetchError(
            message=f"All {attempts} fetch attempts failed",
            source=self.source_name,
            recoverable=False,
            details={"last_error": str(last_error)},
        )

    async def _publish(self, records: List[T]) -> Optional[str]:
        """Publish one batch; empty batches are a no-op."""
        try:
            return await self._publisher.publish(records, kind=self._kind)
        except StreamError as e:
            raise PublishError(
                message=str(e),
                source=self.source_name,
                details={"records": len(records)},
            ) from e

    def _log_result(self, result: IngestionResult) -> None:
        """Log the ingestion result."""
        log_data = result.to_dict()

        if result.status == IngestionStatus.SUCCESS:
            self._logger.info(f"Collection complete: {log_data}")
        elif result.status == IngestionStatus.PARTIAL:
            self._logger.warning(f"Collection partial: {log_data}")
        else:
            self._logger.error(f"Collection failed: {log_data}")

    # =========================================================
    # HTTP
    # =========================================================

    async def _get_json(self, url: str, params: Optional[Mapping[str, Any]] = None) -> Any:
        """
        GET a JSON document.

        Raises:
            FetchError: On non-2xx status, transport error or invalid JSON
        """
        headers = {"User-Agent": CLIENT_USER_AGENT, "Accept": "application/json"}
        try:
            if self._http_client is not None:
                response = await self._http_client.get(url, params=params, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=self._config.timeout_seconds) as client:
                    response = await client.get(url, params=params, headers=headers)
            response.raise_for_status()
            return response.json()

        except httpx.HTTPStatusError as e:
            raise FetchError(
                message=f"HTTP {e.response.status_code}: {e.response.text[:200]}",
                source=self.source_name,
                recoverable=True,
                details={"status_code": e.response.status_code},
            ) from e
        except httpx.TimeoutException as e:
            raise FetchError(
                message=f"Request timeout: {e}",
                source=self.source_name,
                recoverable=True,
            ) from e
        except httpx.RequestError as e:
            raise FetchError(
                message=f"Request error: {e}",
                source=self.source_name,
                recoverable=True,
            ) from e
        except ValueError as e:
            raise FetchError(
                message=f"Invalid JSON response: {e}",
                source=self.source_name,
                recoverable=True,
            ) from e

    def _check_response_code(self, body: Any) -> None:
        """Reject responses whose result code is present and not SUCCESS."""
        if not isinstance(body, Mapping):
            raise FetchError(
                message="Response is not a JSON object",
                source=self.source_name,
                recoverable=False,
            )
        code = body.get("code")
        if code is not None and code != SUCCESS_CODE:
            raise FetchError(
                message=f"API error: {code} - {body.get('message', '')}",
                source=self.source_name,
                recoverable=False,
                details={"code": code},
            )

    def _list_field(self, body: Mapping[str, Any], key: str) -> List[Dict[str, Any]]:
        items = body.get(key) or []
        if not isinstance(items, list):
            raise FetchError(
                message=f"Field '{key}' is not a list",
                source=self.source_name,
                recoverable=False,
            )
        return items

    def get_health_status(self) -> Dict[str, Any]:
        """
        Get collector health status.

        Returns:
            Health status dictionary
        """
        return {
            "source": self.source_name,
            "kind": self._kind,
            "enabled": self.is_enabled,
            "version": self._config.version,
        }
