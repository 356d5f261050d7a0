"""Event fetcher for the data store REST API, plus local file sources."""

import asyncio
import json
from pathlib import Path
from typing import Any, Mapping

import httpx
import polars as pl
from aiolimiter import AsyncLimiter
from loguru import logger
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
)

from .constants import (
    DEFAULT_MAX_PAGES,
    DEFAULT_PAGE_LIMIT,
    FIRST_PAGE,
    MISSING_DIMENSION_LABEL,
    PROFILES_TABLE,
    STORE_REST_PREFIX,
    FilterDimension,
    LogMessage,
)
from .exceptions import FetchError
from .models import SUBJECT_FIELD, EventSource, ReportFilter

Record = dict[str, Any]


def profile_display_name(profile: Mapping[str, Any]) -> str:
    """Full name, else username, else "Unknown"."""
    return profile.get("full_name") or profile.get("username") or MISSING_DIMENSION_LABEL


class EventFetcher:
    """Fetches raw records from a PostgREST-style data store.

    Attributes:
        base_url: Base URL of the store (without the REST prefix).
        api_key: Key sent as ``apikey`` and bearer token.
        semaphore: Asyncio semaphore limiting concurrent calls to 10.
        rate_limiter: AsyncLimiter limiting calls to 10 per second.
    """

    def __init__(
        self,
        *,
        base_url: str,
        api_key: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        show_progress: bool = True,
    ):
        """Initialize the EventFetcher.

        Args:
            base_url: Base URL of the store.
            api_key: Optional API key.
            transport: Custom httpx transport (used by tests).
            show_progress: Whether to render a progress bar while paging.
        """
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.transport = transport
        self.show_progress = show_progress
        # Limit to 10 concurrent requests and 10 requests per second
        self.semaphore = asyncio.Semaphore(10)
        self.rate_limiter = AsyncLimiter(max_rate=10, time_period=1)

    def _headers(self) -> dict[str, str]:
        if not self.api_key:
            return {}
        return {"apikey": self.api_key, "Authorization": f"Bearer {self.api_key}"}

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(headers=self._headers(), transport=self.transport)

    def table_url(self, table: str) -> str:
        return f"{self.base_url}{STORE_REST_PREFIX}/{table}"

    @staticmethod
    def build_params(
        *,
        source: EventSource,
        report_filter: ReportFilter,
        filter_fields: Mapping[FilterDimension, str],
    ) -> list[tuple[str, str]]:
        """Translate a ReportFilter into store query parameters.

        The date range becomes ``gte``/``lte`` bounds on the source's range
        column, and every active dimension filter an ``eq`` condition.

        Args:
            source: Table and column mapping of the report.
            report_filter: Active filter.
            filter_fields: Event field each filter dimension applies to.

        Returns:
            list[tuple[str, str]]: Query parameters (repeated keys allowed).
        """
        params: list[tuple[str, str]] = [("select", "*")]

        if report_filter.date_range is not None:
            if source.date_column_is_timestamp:
                start, end = (bound.isoformat() for bound in report_filter.date_range.bounds())
            else:
                start, end = report_filter.date_range.query_bounds()
            params.append((source.range_column, f"gte.{start}"))
            params.append((source.range_column, f"lte.{end}"))

        for dimension, value in report_filter.dimension_filters().items():
            field_name = filter_fields.get(dimension)
            if field_name is None:
                continue
            column = source.subject_field if field_name == SUBJECT_FIELD else field_name
            params.append((column, f"eq.{value}"))

        return params

    async def _get_page(
        self,
        client: httpx.AsyncClient,
        url: str,
        params: list[tuple[str, str]],
    ) -> list[Record]:
        async with self.semaphore:
            async with self.rate_limiter:
                response = await client.get(url, params=params)
                response.raise_for_status()

        try:
            data = response.json()
        except ValueError as e:
            raise FetchError(f"Unexpected response from {url}: body is not JSON") from e
        if not isinstance(data, list):
            raise FetchError(f"Unexpected response from {url}: expected a list of records")
        return data

    async def fetch_records(
        self,
        *,
        table: str,
        params: list[tuple[str, str]],
        page_limit: int = DEFAULT_PAGE_LIMIT,
        max_pages: int = DEFAULT_MAX_PAGES,
    ) -> list[Record]:
        """Fetch every record of a query, page by page.

        Stops when a page comes back shorter than ``page_limit`` or when
        ``max_pages`` pages have been read.

        Raises:
            FetchError: On any transport or HTTP error.
        """
        url = self.table_url(table)
        records: list[Record] = []
        page_num = FIRST_PAGE

        with Progress(
            SpinnerColumn(),
            TextColumn("[bold blue]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            TextColumn("[green]{task.fields[records]} records"),
            disable=not self.show_progress,
        ) as progress:
            task = progress.add_task(f"Fetching {table}...", total=max_pages, records=0)

            try:
                async with self._client() as client:
                    while True:
                        if page_num > max_pages:
                            logger.warning(LogMessage.MAX_PAGES_REACHED.format(max_pages))
                            break

                        logger.debug(LogMessage.FETCHING_PAGE.format(table, page_num))
                        page_params = params + [
                            ("limit", str(page_limit)),
                            ("offset", str((page_num - 1) * page_limit)),
                        ]
                        page = await self._get_page(client, url, page_params)
                        records.extend(page)

                        progress.update(task, advance=1, records=len(records))
                        logger.debug(LogMessage.RETRIEVED_RECORDS.format(len(page), len(records)))

                        if len(page) < page_limit:
                            break
                        page_num += 1
            except httpx.HTTPError as e:
                raise FetchError(f"Failed to fetch {table}: {e}") from e

        logger.success(f"Fetched {len(records)} {table} records from {page_num} pages")
        return records

    async def fetch_events(
        self,
        *,
        source: EventSource,
        report_filter: ReportFilter,
        filter_fields: Mapping[FilterDimension, str],
        page_limit: int = DEFAULT_PAGE_LIMIT,
        max_pages: int = DEFAULT_MAX_PAGES,
    ) -> list[Record]:
        """Fetch the raw records a report needs for ``report_filter``."""
        params = self.build_params(
            source=source, report_filter=report_filter, filter_fields=filter_fields
        )
        return await self.fetch_records(
            table=source.table, params=params, page_limit=page_limit, max_pages=max_pages
        )

    async def fetch_profiles(self, *, team_id: str | None = None) -> list[Record]:
        """Fetch public profiles, optionally restricted to one team."""
        params = [("select", "id,full_name,username,team_id")]
        if team_id:
            params.append(("team_id", f"eq.{team_id}"))
        return await self.fetch_records(table=PROFILES_TABLE, params=params)


class LatestRequestGate:
    """Last-write-wins guard for overlapping fetches.

    Every request takes a token from ``begin``; a result may only be applied
    while its token is still the latest one issued.
    """

    def __init__(self) -> None:
        self._latest = 0

    @property
    def latest(self) -> int:
        return self._latest

    def begin(self) -> int:
        self._latest += 1
        return self._latest

    def is_current(self, token: int) -> bool:
        if token == self._latest:
            return True
        logger.debug(LogMessage.STALE_RESULT.format(token, self._latest))
        return False


def load_records_from_file(filepath: Path | str) -> list[Record]:
    """Read raw records from a ``.csv`` or ``.json`` export of a store table.

    CSV columns are read as strings; parsing happens when events are built.

    Raises:
        FetchError: If the file is missing, unsupported or malformed.
    """
    filepath = Path(filepath)
    if not filepath.exists():
        raise FetchError(f"Input file not found: {filepath}")

    suffix = filepath.suffix.lower()
    if suffix == ".csv":
        try:
            df = pl.read_csv(filepath, infer_schema_length=0)
        except pl.exceptions.PolarsError as e:
            raise FetchError(f"Could not read {filepath}: {e}") from e
        records = df.to_dicts()
    elif suffix == ".json":
        try:
            with filepath.open() as f:
                records = json.load(f)
        except json.JSONDecodeError as e:
            raise FetchError(f"Could not read {filepath}: {e}") from e
        if not isinstance(records, list):
            raise FetchError(f"{filepath} must contain a list of records")
    else:
        raise FetchError(f"Unsupported input format '{suffix}', expected .csv or .json")

    logger.info(f"Loaded {len(records)} records from {filepath}")
    return records
