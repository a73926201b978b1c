"""Spreadsheet API client with an on-disk response cache.

The full grid-data response of a large spreadsheet is slow to produce, so
the raw bytes are written to ``<cache_dir>/<spreadsheet_id>`` and reused on
later runs until a refresh is requested.
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import httpx

from datamine_exporter.models import parse_spreadsheet
from datamine_exporter.spreadsheet_document import Spreadsheet
from datamine_exporter.utils.exceptions import (
    CacheError,
    ConfigurationError,
    DownloadError,
)
from datamine_exporter.utils.logging import get_logger, timed_operation

logger = get_logger(__name__)

DEFAULT_BASE_URL = "https://sheets.googleapis.com/v4/spreadsheets/"

ChunkCallback = Callable[[int], None]


class SpreadsheetClient:
    """Read-only client for the grid-data spreadsheet endpoint."""

    def __init__(
        self,
        api_key: str,
        cache_dir: Path,
        *,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            api_key: API key sent as the ``key`` query parameter.
            cache_dir: Directory for cached responses.
            base_url: Spreadsheets endpoint; the spreadsheet id is appended.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport (used by tests).
        """
        self.api_key = api_key
        self.cache_dir = Path(cache_dir)
        self.base_url = base_url if base_url.endswith("/") else f"{base_url}/"
        self.timeout = timeout
        self._transport = transport

    def cache_path(self, spreadsheet_id: str) -> Path:
        """Return the cache file for a spreadsheet, creating the directory."""
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise CacheError(
                f"Failed to create cache directory: {e}", path=str(self.cache_dir)
            ) from e
        return self.cache_dir / spreadsheet_id

    async def get(
        self,
        spreadsheet_id: str,
        *,
        refresh: bool = False,
        on_chunk: ChunkCallback | None = None,
    ) -> Spreadsheet:
        """Fetch (or load from cache) and parse a spreadsheet."""
        data = await self.get_raw(spreadsheet_id, refresh=refresh, on_chunk=on_chunk)
        return parse_spreadsheet(data)

    async def get_raw(
        self,
        spreadsheet_id: str,
        *,
        refresh: bool = False,
        on_chunk: ChunkCallback | None = None,
    ) -> bytes:
        """Return the raw response bytes, using the cache when present.

        Args:
            spreadsheet_id: Spreadsheet to fetch.
            refresh: Ignore an existing cache file and download again.
            on_chunk: Called with the size of every received chunk.

        Raises:
            CacheError: If the cache cannot be read or written.
            ConfigurationError: If a download is needed but no API key is set.
            DownloadError: If the API request fails.
        """
        path = self.cache_path(spreadsheet_id)

        if path.exists() and not refresh:
            logger.info("Using cached spreadsheet", path=str(path))
            try:
                return path.read_bytes()
            except OSError as e:
                raise CacheError(
                    f"Failed reading cached spreadsheet: {e}", path=str(path)
                ) from e

        data = await self._download(spreadsheet_id, on_chunk)

        tmp_path = path.with_name(f"{path.name}.part")
        try:
            tmp_path.write_bytes(data)
            tmp_path.replace(path)
        except OSError as e:
            raise CacheError(
                f"Failed writing spreadsheet to cache: {e}", path=str(path)
            ) from e

        return data

    async def _download(
        self, spreadsheet_id: str, on_chunk: ChunkCallback | None
    ) -> bytes:
        if not self.api_key:
            raise ConfigurationError(
                "An API key is required to download the spreadsheet",
                setting="api_key",
            )

        url = f"{self.base_url}{spreadsheet_id}"
        params = {"includeGridData": "true", "key": self.api_key}
        chunks: list[bytes] = []

        with timed_operation(logger, "spreadsheet_download") as metrics:
            logger.info("Downloading spreadsheet", spreadsheet_id=spreadsheet_id)
            try:
                async with httpx.AsyncClient(
                    timeout=self.timeout,
                    headers={"Accept": "application/json"},
                    transport=self._transport,
                ) as client:
                    async with client.stream("GET", url, params=params) as response:
                        response.raise_for_status()
                        async for chunk in response.aiter_bytes():
                            chunks.append(chunk)
                            metrics.bytes_transferred += len(chunk)
                            if on_chunk is not None:
                                on_chunk(len(chunk))
            except httpx.HTTPStatusError as e:
                raise DownloadError(
                    f"Spreadsheet API returned an error: {e.response.status_code}",
                    status_code=e.response.status_code,
                    details={"spreadsheet_id": spreadsheet_id},
                ) from e
            except httpx.HTTPError as e:
                raise DownloadError(
                    f"Spreadsheet API request failed: {e}",
                    details={"spreadsheet_id": spreadsheet_id},
                ) from e

        return b"".join(chunks)
