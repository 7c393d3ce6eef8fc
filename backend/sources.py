# Upstream data sources: the remote clinics table and the static snapshot
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, List, Optional, Protocol

import httpx

logger = logging.getLogger(__name__)

# Request timeout (connect, read) in seconds
REQUEST_TIMEOUT = httpx.Timeout(30.0, connect=10.0)


class SourceError(Exception):
    """Raised when a source cannot be read."""
    def __init__(self, source_id: str, message: str, original_error: Optional[Exception] = None):
        self.source_id = source_id
        self.message = message
        self.original_error = original_error
        super().__init__(f"{source_id}: {message}")


class MalformedPayload(SourceError):
    """Raised when a source answers but the payload is not a JSON array."""


class RowSource(Protocol):
    source_id: str

    async def fetch_rows(self) -> List[Any]:
        ...


def _expect_array(source_id: str, payload: Any) -> List[Any]:
    if not isinstance(payload, list):
        raise MalformedPayload(source_id, f"expected a JSON array, got {type(payload).__name__}")
    return payload


class SupabaseTableSource:
    """
    Full-table query against a PostgREST (Supabase) endpoint.

    Column names are not guaranteed; rows are returned raw and left to the
    normalizer.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        table: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.table = table
        self.source_id = f"table:{table}"
        self._transport = transport

    async def fetch_rows(self) -> List[Any]:
        if not self.base_url or not self.api_key:
            raise SourceError(self.source_id, "remote table is not configured")

        headers = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.api_key}",
            "Accept": "application/json",
        }
        url = f"{self.base_url}/rest/v1/{self.table}"
        try:
            async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT, transport=self._transport) as client:
                response = await client.get(url, params={"select": "*"}, headers=headers)
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPError as e:
            raise SourceError(self.source_id, f"query failed: {e}", e) from e
        except ValueError as e:
            raise MalformedPayload(self.source_id, f"invalid JSON: {e}", e) from e
        return _expect_array(self.source_id, payload)


class StaticSnapshotSource:
    """Pre-serialized clinic array, read from disk or fetched over HTTP."""

    def __init__(self, location: str, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.location = location
        self.source_id = f"snapshot:{location}"
        self._transport = transport

    @property
    def is_remote(self) -> bool:
        return self.location.startswith(("http://", "https://"))

    async def fetch_rows(self) -> List[Any]:
        if self.is_remote:
            payload = await self._fetch_remote()
        else:
            payload = self._read_file()
        return _expect_array(self.source_id, payload)

    async def _fetch_remote(self) -> Any:
        try:
            async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT, transport=self._transport) as client:
                response = await client.get(self.location)
                response.raise_for_status()
                return response.json()
        except httpx.HTTPError as e:
            raise SourceError(self.source_id, f"HTTP error: {e}", e) from e
        except ValueError as e:
            raise MalformedPayload(self.source_id, f"invalid JSON: {e}", e) from e

    def _read_file(self) -> Any:
        path = Path(self.location)
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except OSError as e:
            raise SourceError(self.source_id, f"cannot read file: {e}", e) from e
        except json.JSONDecodeError as e:
            raise MalformedPayload(self.source_id, f"invalid JSON: {e}", e) from e
