# Overview: Cloud table store used by sync: a four-verb interface and its PostgREST (Supabase) client.

from __future__ import annotations

from typing import Any, Iterable

import httpx

FILTER_OPS = ("eq", "neq", "gt")

Filter = tuple[str, str, Any]


class CloudStoreError(Exception):
    """Raised when the cloud store rejects a request or cannot be reached."""

    def __init__(self, message: str, *, status_code: int | None = None, details: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.details = details


class CloudStore:
    """
    Minimal table API the sync engine needs.

    filters are (column, op, value) with op in eq / neq / gt.
    """

    def select(self, table: str, filters: Iterable[Filter] = ()) -> list[dict]:
        raise NotImplementedError

    def insert(self, table: str, row: dict) -> None:
        raise NotImplementedError

    def update(self, table: str, row: dict, match: dict) -> None:
        raise NotImplementedError

    def delete(self, table: str, match: dict) -> None:
        raise NotImplementedError

    def test_connection(self) -> dict:
        return {"success": True, "message": "Connected"}

    def close(self) -> None:
        pass


def _format_value(value) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _filter_params(filters: Iterable[Filter]) -> list[tuple[str, str]]:
    params = []
    for column, op, value in filters:
        if op not in FILTER_OPS:
            raise CloudStoreError(f"Unsupported filter operator: {op}")
        params.append((column, f"{op}.{_format_value(value)}"))
    return params


def _match_params(match: dict) -> list[tuple[str, str]]:
    if not match:
        raise CloudStoreError("Refusing to write without a match condition")
    return _filter_params((k, "eq", v) for k, v in match.items())


class SupabaseCloudStore(CloudStore):
    """
    PostgREST client (Supabase /rest/v1) over httpx.

    Inserts are sent with resolution=merge-duplicates so re-pushing a row
    that already reached the cloud updates it instead of failing.
    """

    def __init__(self, url: str, key: str, *, timeout: float = 30.0, transport: httpx.BaseTransport | None = None):
        if not url or not key:
            raise CloudStoreError("Cloud store URL and key are required")
        self.url = url.rstrip("/")
        self.client = httpx.Client(
            base_url=f"{self.url}/rest/v1",
            timeout=timeout,
            transport=transport,
            headers={
                "apikey": key,
                "Authorization": f"Bearer {key}",
                "Content-Type": "application/json",
            },
        )

    def _request(self, method: str, table: str, **kwargs) -> httpx.Response:
        try:
            response = self.client.request(method, f"/{table}", **kwargs)
        except httpx.HTTPError as exc:
            raise CloudStoreError(f"{method} {table} failed: {exc}") from exc

        if response.status_code >= 400:
            try:
                details = response.json()
            except ValueError:
                details = response.text
            message = details.get("message") if isinstance(details, dict) else None
            raise CloudStoreError(
                f"{method} {table} returned {response.status_code}: {message or response.reason_phrase}",
                status_code=response.status_code,
                details=details,
            )
        return response

    def select(self, table: str, filters: Iterable[Filter] = ()) -> list[dict]:
        params = [("select", "*")] + _filter_params(filters)
        response = self._request("GET", table, params=params)
        data = response.json()
        if not isinstance(data, list):
            raise CloudStoreError(f"GET {table} returned an unexpected body")
        return data

    def insert(self, table: str, row: dict) -> None:
        self._request(
            "POST",
            table,
            json=row,
            headers={"Prefer": "resolution=merge-duplicates,return=minimal"},
        )

    def update(self, table: str, row: dict, match: dict) -> None:
        self._request(
            "PATCH",
            table,
            json=row,
            params=_match_params(match),
            headers={"Prefer": "return=minimal"},
        )

    def delete(self, table: str, match: dict) -> None:
        self._request("DELETE", table, params=_match_params(match))

    def test_connection(self) -> dict:
        try:
            self._request("GET", "sync_status", params=[("select", "id"), ("limit", "1")])
        except CloudStoreError as exc:
            return {"success": False, "message": str(exc)}
        return {"success": True, "message": "Connected to cloud store"}

    def close(self) -> None:
        self.client.close()


def cloud_store_from_config(config) -> CloudStore | None:
    """None when SUPABASE_URL / SUPABASE_KEY are not set (local-only mode)."""
    url = config.get("SUPABASE_URL")
    key = config.get("SUPABASE_KEY")
    if not url or not key:
        return None
    return SupabaseCloudStore(url, key, timeout=float(config.get("CLOUD_TIMEOUT_SECONDS", 30)))
