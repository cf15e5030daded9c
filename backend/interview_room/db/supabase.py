"""
HTTP-only Supabase access (PostgREST over httpx).

The realtime Supabase client pulls in its own websockets pin, which clashes with
the upstream STT/TTS sockets in the same process, so tables are reached through
the REST endpoint instead.
"""

import logging

import httpx

from core.config import SUPABASE_SERVICE_KEY, SUPABASE_TIMEOUT_SEC, SUPABASE_URL

logger = logging.getLogger("interview_room.db.supabase")


class StoreError(Exception):
    pass


class SupabaseRest:
    def __init__(
        self,
        url: str = SUPABASE_URL,
        service_key: str = SUPABASE_SERVICE_KEY,
        timeout_sec: float = SUPABASE_TIMEOUT_SEC,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.url = str(url or "").rstrip("/")
        self.service_key = str(service_key or "")
        self.timeout_sec = timeout_sec
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.url and self.service_key)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=f"{self.url}/rest/v1",
            headers={
                "apikey": self.service_key,
                "Authorization": f"Bearer {self.service_key}",
                "Content-Type": "application/json",
                "Prefer": "return=representation",
            },
            timeout=self.timeout_sec,
            transport=self._transport,
        )

    @staticmethod
    def _eq_filters(filters: dict) -> dict:
        return {str(k): f"eq.{v}" for k, v in (filters or {}).items()}

    async def _request(self, method: str, table: str, params: dict, json_body=None) -> list[dict]:
        try:
            async with self._client() as client:
                response = await client.request(method, f"/{table}", params=params, json=json_body)
        except httpx.HTTPError as exc:
            raise StoreError(f"{method} {table} failed: {exc}") from exc

        if response.status_code >= 400:
            raise StoreError(f"{method} {table} returned {response.status_code}: {response.text[:200]}")

        try:
            data = response.json()
        except ValueError as exc:
            raise StoreError(f"{method} {table} returned invalid JSON") from exc
        if isinstance(data, dict):
            return [data]
        return list(data or [])

    async def select(self, table: str, filters: dict, order: str | None = None, limit: int | None = None) -> list[dict]:
        params = {"select": "*", **self._eq_filters(filters)}
        if order:
            params["order"] = order
        if limit:
            params["limit"] = str(limit)
        return await self._request("GET", table, params)

    async def insert(self, table: str, row: dict) -> dict:
        rows = await self._request("POST", table, {}, json_body=row)
        return rows[0] if rows else dict(row)

    async def update(self, table: str, filters: dict, fields: dict) -> dict | None:
        rows = await self._request("PATCH", table, self._eq_filters(filters), json_body=fields)
        return rows[0] if rows else None
