"""Supabase backend speaking PostgREST and Edge Functions over HTTP."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx

from ..errors import RemoteError, StageInvocationError
from ..utils.retry import Sleep, schedule_retry
from .base import Filters, RemoteBackend

logger = logging.getLogger(__name__)

RETRYABLE_STATUS = {429, 503}


def _filter_params(filters: Optional[Filters]) -> Dict[str, str]:
    return {column: f"eq.{value}" for column, value in (filters or {}).items()}


def _order_param(column: str, descending: bool) -> str:
    return f"{column}.{'desc' if descending else 'asc'}"


def _parse_content_range(header: Optional[str]) -> int:
    """Extract the total from a ``Content-Range`` header such as ``0-4/5``."""
    if not header or "/" not in header:
        return 0
    total = header.rsplit("/", 1)[1]
    return int(total) if total.isdigit() else 0


class SupabaseBackend(RemoteBackend):
    """Remote backend for a hosted Supabase project."""

    def __init__(
        self,
        url: str,
        key: str,
        timeout: float = 30.0,
        max_retries: int = 3,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        if not url or not key:
            raise ValueError("Supabase url and key are required")
        self.url = url.rstrip("/")
        self.max_retries = max_retries
        self._sleep = sleep
        self._client = httpx.AsyncClient(
            base_url=self.url,
            timeout=timeout,
            transport=transport,
            headers={
                "apikey": key,
                "Authorization": f"Bearer {key}",
                "Content-Type": "application/json",
            },
        )

    async def close(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """Send a request, retrying rate-limit and unavailable responses."""
        attempt = 0
        while True:
            response = await self._client.request(method, path, **kwargs)
            if response.status_code not in RETRYABLE_STATUS or attempt >= self.max_retries:
                return response
            delay = await schedule_retry(attempt, sleep=self._sleep)
            logger.warning(
                f"{method} {path} returned {response.status_code}, "
                f"retried after {delay:.1f}s (attempt {attempt + 1}/{self.max_retries})"
            )
            attempt += 1

    async def _rest(self, method: str, table: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._request(method, f"/rest/v1/{table}", **kwargs)
        except httpx.HTTPError as e:
            raise RemoteError(f"{method} {table} failed: {e}") from e
        if response.is_error:
            raise RemoteError(
                f"{method} {table} failed with {response.status_code}: {response.text}"
            )
        return response

    # ------------------------------------------------------------------
    async def invoke(self, stage_name: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = await self._request(
                "POST", f"/functions/v1/{stage_name}", json=payload
            )
        except httpx.HTTPError as e:
            raise StageInvocationError(stage_name, str(e)) from e

        try:
            body = response.json()
        except ValueError:
            body = None

        if response.is_error:
            message = (
                body.get("message") or body.get("error")
                if isinstance(body, dict)
                else None
            ) or f"HTTP {response.status_code}"
            raise StageInvocationError(stage_name, message)
        if not isinstance(body, dict):
            raise StageInvocationError(stage_name, "response is not a JSON object")
        return body

    async def count_rows(self, table: str, filters: Filters) -> int:
        params = {"select": "id", **_filter_params(filters)}
        response = await self._rest(
            "HEAD", table, params=params, headers={"Prefer": "count=exact"}
        )
        return _parse_content_range(response.headers.get("content-range"))

    async def fetch_one(
        self,
        table: str,
        filters: Filters,
        order: Optional[str] = None,
        descending: bool = False,
    ) -> Optional[Dict[str, Any]]:
        params = {"select": "*", "limit": "1", **_filter_params(filters)}
        if order:
            params["order"] = _order_param(order, descending)
        rows = (await self._rest("GET", table, params=params)).json()
        return rows[0] if rows else None

    async def fetch_all(
        self,
        table: str,
        filters: Optional[Filters] = None,
        order: Optional[str] = None,
        descending: bool = False,
    ) -> List[Dict[str, Any]]:
        params = {"select": "*", **_filter_params(filters)}
        if order:
            params["order"] = _order_param(order, descending)
        return (await self._rest("GET", table, params=params)).json()

    async def insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        rows = (
            await self._rest(
                "POST",
                table,
                json=row,
                headers={"Prefer": "return=representation"},
            )
        ).json()
        if not rows:
            raise RemoteError(f"Insert into {table} returned no row")
        return rows[0]

    async def update(
        self, table: str, values: Dict[str, Any], filters: Filters
    ) -> List[Dict[str, Any]]:
        return (
            await self._rest(
                "PATCH",
                table,
                params=_filter_params(filters),
                json=values,
                headers={"Prefer": "return=representation"},
            )
        ).json()

    async def rpc(self, function: str, args: Dict[str, Any]) -> Any:
        response = await self._rest("POST", f"rpc/{function}", json=args)
        return response.json() if response.content else None
