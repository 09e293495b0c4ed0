"""
Raw Data Fetcher

Downloads import files and calls remote product APIs. Uses httpx for async
HTTP requests, with tenacity retries on connection failures only; an
upstream error status is never retried here and fails the job.
"""

from pathlib import PurePosixPath
from typing import Any, Dict, List, Literal, Optional, Tuple
from urllib.parse import urlparse

import httpx
import structlog
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
)

from pim_ingestion.errors.exceptions import FetchError
from pim_ingestion.models.import_source import ApiConfig
from pim_ingestion.parsers import create_parser_instance

logger = structlog.get_logger(__name__)

FileFormat = Literal["csv", "excel", "unknown"]

EXTENSION_FORMATS: Dict[str, FileFormat] = {
    ".csv": "csv",
    ".tsv": "csv",
    ".txt": "csv",
    ".xlsx": "excel",
    # Legacy binary workbooks; the excel parser only reads xlsx
    ".xls": "unknown",
}

ZIP_SIGNATURE = b"PK"
OLE2_SIGNATURE = b"\xd0\xcf\x11\xe0"
SNIFF_BYTES = 1000
DELIMITERS = (",", ";", "\t")

_retry_on_connect = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type((httpx.ConnectError, httpx.ConnectTimeout)),
    reraise=True,
)


def detect_file_format(content: bytes, file_name: Optional[str] = None) -> FileFormat:
    """Detect the tabular format of a file.

    The file extension wins when it is known. Otherwise a zip signature
    means a workbook and a delimiter in the first bytes means delimited
    text. Legacy .xls files (OLE2 container) are reported as unknown.
    """
    if file_name:
        extension = PurePosixPath(file_name.lower()).suffix
        if extension in EXTENSION_FORMATS:
            return EXTENSION_FORMATS[extension]

    if content[:2] == ZIP_SIGNATURE:
        return "excel"
    if content[:4] == OLE2_SIGNATURE:
        return "unknown"

    sample = content[:SNIFF_BYTES].decode("utf-8", errors="ignore")
    if any(delimiter in sample for delimiter in DELIMITERS):
        return "csv"

    return "unknown"


async def parse_rows(content: bytes, file_format: str) -> List[Dict[str, Any]]:
    """Parse file content with the parser registered for ``file_format``.

    Raises:
        ParserError: If the format is unsupported or the content is malformed
    """
    parser = create_parser_instance(file_format)
    return await parser.parse(content)


def _file_name_from_url(url: str) -> str:
    return PurePosixPath(urlparse(url).path).name


def build_auth(api_config: ApiConfig) -> Tuple[Dict[str, str], Optional[httpx.BasicAuth]]:
    """Request headers and httpx auth for an API descriptor."""
    headers = dict(api_config.headers)
    auth: Optional[httpx.BasicAuth] = None

    if api_config.auth_type == "bearer":
        headers["Authorization"] = f"Bearer {api_config.auth_token}"
    elif api_config.auth_type == "api_key":
        headers["X-API-Key"] = api_config.auth_token or ""
    elif api_config.auth_type == "basic":
        username, _, password = (api_config.auth_token or "").partition(":")
        auth = httpx.BasicAuth(username, password)

    return headers, auth


class RawDataFetcher:
    """
    Async HTTP client for import data.

    Usage:
        async with RawDataFetcher(timeout=300) as fetcher:
            rows = await fetcher.fetch_rows(url, "products.csv")
    """

    def __init__(self, timeout: float = 300.0):
        self.timeout = httpx.Timeout(timeout, connect=10.0)
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> "RawDataFetcher":
        """Context manager entry - create async client."""
        self._client = httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=True,
            headers={"User-Agent": "pim-ingestion/0.1"},
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit - close async client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get the HTTP client, raising if not initialized."""
        if self._client is None:
            raise FetchError(
                "RawDataFetcher not initialized. Use 'async with RawDataFetcher() as fetcher:'"
            )
        return self._client

    @_retry_on_connect
    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        return await self.client.request(method, url, **kwargs)

    async def fetch_file(self, url: str, file_name: Optional[str] = None) -> Tuple[bytes, FileFormat]:
        """Download a file and detect its format.

        Raises:
            FetchError: On transport failure, error status or empty body
        """
        log = logger.bind(file_url=url, file_name=file_name)
        try:
            response = await self._send("GET", url)
        except httpx.HTTPError as e:
            log.error("file_fetch_failed", error=str(e), error_type=type(e).__name__)
            raise FetchError(f"File fetch failed: {e}") from e

        if not response.is_success:
            log.error("file_fetch_bad_status", status_code=response.status_code)
            raise FetchError(
                f"File fetch failed with status {response.status_code}: {response.reason_phrase}",
                status_code=response.status_code,
            )

        content = response.content
        if not content:
            raise FetchError("File fetch returned an empty body", status_code=response.status_code)

        file_format = detect_file_format(content, file_name or _file_name_from_url(url))
        log.info("file_fetched", size_bytes=len(content), file_format=file_format)
        return content, file_format

    async def fetch_rows(self, url: str, file_name: Optional[str] = None) -> List[Dict[str, Any]]:
        """Download, detect and parse a tabular file."""
        content, file_format = await self.fetch_file(url, file_name)
        return await parse_rows(content, file_format)

    async def fetch_api(self, api_config: ApiConfig) -> List[Dict[str, Any]]:
        """Call a product API and return its items.

        A single JSON object is treated as a one-item list.

        Raises:
            FetchError: On transport failure, error status or a body that
                is not JSON objects
        """
        log = logger.bind(endpoint=api_config.endpoint, method=api_config.method)
        headers, auth = build_auth(api_config)

        request_kwargs: Dict[str, Any] = {"headers": headers, "auth": auth}
        if api_config.method == "GET":
            request_kwargs["params"] = api_config.params
        else:
            request_kwargs["json"] = api_config.params

        try:
            response = await self._send(api_config.method, api_config.endpoint, **request_kwargs)
        except httpx.HTTPError as e:
            log.error("api_fetch_failed", error=str(e), error_type=type(e).__name__)
            raise FetchError(f"API request failed: {e}") from e

        if not response.is_success:
            log.error("api_fetch_bad_status", status_code=response.status_code)
            raise FetchError(
                f"API request failed with status {response.status_code}: {response.reason_phrase}",
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise FetchError(f"API response is not valid JSON: {e}", status_code=response.status_code) from e

        items = payload if isinstance(payload, list) else [payload]
        if not all(isinstance(item, dict) for item in items):
            raise FetchError("API response must be a JSON object or an array of objects")

        log.info("api_data_fetched", items=len(items))
        return items
