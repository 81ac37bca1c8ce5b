"""
Google Sheets Source

Reads cell values through the Sheets v4 REST API with httpx. Authenticates
with an OAuth bearer token when configured, otherwise with an API key.
"""

import logging
from urllib.parse import quote

import httpx

from finquery.config import SheetsSettings
from finquery.models.sheet import RawMatrix
from finquery.sources.base import BaseSheetSource, SheetNotFoundError, SourceTransportError

logger = logging.getLogger(__name__)

# Statuses the API uses for a bad identifier or a sheet that is not shared
_NOT_FOUND_STATUSES = {400, 403, 404}


class GoogleSheetsSource(BaseSheetSource):
    """Sheets v4 `values.get` / `spreadsheets.get` client."""

    def __init__(
        self,
        api_base_url: str = "https://sheets.googleapis.com/v4",
        api_key: str | None = None,
        access_token: str | None = None,
        default_range: str = "A1:Z1000",
        timeout: int = 60,
        client: httpx.AsyncClient | None = None,
    ):
        super().__init__(default_range=default_range)
        self.api_base_url = api_base_url.rstrip("/")
        self._api_key = api_key
        self._access_token = access_token
        self.client = client or httpx.AsyncClient(timeout=float(timeout))

        logger.info(
            "Google Sheets source initialized",
            extra={"api_base_url": self.api_base_url, "auth": self._auth_mode},
        )

    @classmethod
    def from_settings(cls, settings: SheetsSettings) -> "GoogleSheetsSource":
        return cls(
            api_base_url=settings.api_base_url,
            api_key=settings.api_key,
            access_token=settings.access_token,
            default_range=settings.default_range,
            timeout=settings.timeout,
        )

    @property
    def _auth_mode(self) -> str:
        if self._access_token:
            return "bearer"
        if self._api_key:
            return "api_key"
        return "none"

    async def fetch_raw(self, source_id: str, range: str | None = None) -> RawMatrix:
        window = range or self.default_range
        url = (
            f"{self.api_base_url}/spreadsheets/{quote(source_id, safe='')}"
            f"/values/{quote(window, safe='')}"
        )
        payload = await self._get(source_id, url, params={})
        values = payload.get("values") or []
        logger.debug(
            "Fetched sheet values",
            extra={"source_id": source_id, "range": window, "row_count": len(values)},
        )
        return [list(row) for row in values]

    async def fetch_title(self, source_id: str) -> str:
        url = f"{self.api_base_url}/spreadsheets/{quote(source_id, safe='')}"
        payload = await self._get(source_id, url, params={"fields": "properties"})
        return str(payload.get("properties", {}).get("title") or source_id)

    async def close(self) -> None:
        await self.client.aclose()

    async def _get(self, source_id: str, url: str, params: dict[str, str]) -> dict:
        headers = {}
        if self._access_token:
            headers["Authorization"] = f"Bearer {self._access_token}"
        elif self._api_key:
            params = {**params, "key": self._api_key}

        try:
            response = await self.client.get(url, params=params, headers=headers)
        except httpx.TimeoutException as e:
            logger.error(f"Sheets API timeout for {source_id}: {e}")
            raise SourceTransportError(source_id, "request timed out") from e
        except httpx.HTTPError as e:
            logger.error(f"Sheets API transport error for {source_id}: {e}")
            raise SourceTransportError(source_id, str(e) or type(e).__name__) from e

        if response.status_code in _NOT_FOUND_STATUSES:
            logger.warning(
                "Sheet not found or not accessible",
                extra={"source_id": source_id, "status": response.status_code},
            )
            raise SheetNotFoundError(source_id, "sheet not found or not accessible")
        if response.is_error:
            raise SourceTransportError(
                source_id, f"unexpected status {response.status_code} from Sheets API"
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise SourceTransportError(source_id, "response was not valid JSON") from e
        if not isinstance(payload, dict):
            raise SourceTransportError(source_id, "response was not a JSON object")
        return payload
