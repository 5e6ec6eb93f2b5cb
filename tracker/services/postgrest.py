"""Supabase store client using PostgREST directly.

Every table operation goes through one request helper that builds the
Supabase headers, maps HTTP failures to StoreError and retries once after a
session refresh when the access token has expired.
"""

from typing import Any, Awaitable, Callable, Iterable, Optional

import httpx

from config import SUPABASE_URL, SUPABASE_ANON_KEY, HTTP_TIMEOUT
from logger import logger
from utils.log_sanitizer import sanitize_for_log

Filter = tuple[str, str, Any]

FILTER_OPERATORS = ("eq", "neq", "gt", "gte", "lt", "lte", "in", "is", "like", "ilike")


class StoreError(Exception):
    """Error returned by the remote store (PostgREST error body or transport failure)."""

    def __init__(
        self,
        message: str = "",
        code: Optional[str] = None,
        details: Optional[str] = None,
        hint: Optional[str] = None,
        status: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details
        self.hint = hint
        self.status = status

    @classmethod
    def from_response(cls, response: httpx.Response) -> "StoreError":
        try:
            body = response.json()
        except ValueError:
            body = None

        if isinstance(body, dict):
            code = body.get("code")
            return cls(
                message=body.get("message") or body.get("msg") or body.get("error_description") or "",
                code=str(code) if code is not None else None,
                details=body.get("details"),
                hint=body.get("hint"),
                status=response.status_code,
            )
        return cls(message=response.text or "", status=response.status_code)

    def to_dict(self) -> dict:
        return {
            "message": self.message,
            "code": self.code,
            "details": self.details,
            "hint": self.hint,
        }


def eq(column: str, value: Any) -> Filter:
    return (column, "eq", value)


def gte(column: str, value: Any) -> Filter:
    return (column, "gte", value)


def lte(column: str, value: Any) -> Filter:
    return (column, "lte", value)


def in_(column: str, values: Iterable[Any]) -> Filter:
    return (column, "in", list(values))


def _format_value(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def build_params(filters: Optional[Iterable[Filter]] = None) -> list[tuple[str, str]]:
    """Render filter triples as PostgREST query params.

    Several filters on one column become repeated params, which PostgREST ANDs.
    """
    params = []
    for column, operator, value in filters or []:
        if operator not in FILTER_OPERATORS:
            raise ValueError(f"Unsupported filter operator: {operator}")
        if operator == "in":
            rendered = ",".join(f'"{_format_value(v)}"' for v in value)
            params.append((column, f"in.({rendered})"))
        else:
            params.append((column, f"{operator}.{_format_value(value)}"))
    return params


class SupabaseStore:
    """Generic table access over the Supabase REST API.

    Usage:
        store = SupabaseStore(access_token=auth.get_access_token, on_unauthorized=auth.refresh_session)
        rows = await store.select("workouts", filters=[eq("user_id", user_id)], order="date", ascending=False)
    """

    def __init__(
        self,
        url: Optional[str] = None,
        api_key: Optional[str] = None,
        access_token: Optional[Callable[[], Optional[str]]] = None,
        on_unauthorized: Optional[Callable[[], Awaitable[Any]]] = None,
        timeout: Optional[float] = None,
    ):
        self.url = (url or SUPABASE_URL or "").rstrip("/")
        self.api_key = api_key or SUPABASE_ANON_KEY
        self.timeout = timeout or HTTP_TIMEOUT
        self._access_token = access_token
        self._on_unauthorized = on_unauthorized

    def _get_rest_url(self) -> str:
        return f"{self.url}/rest/v1"

    def _get_headers(self, prefer: str = "return=representation", single: bool = False) -> dict:
        """Get headers for Supabase API calls."""
        token = self._access_token() if self._access_token else None
        headers = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {token or self.api_key}",
            "Content-Type": "application/json",
            "Prefer": prefer,
        }
        if single:
            headers["Accept"] = "application/vnd.pgrst.object+json"
        return headers

    async def _request(
        self,
        method: str,
        table: str,
        params: Optional[list] = None,
        json: Any = None,
        prefer: str = "return=representation",
        single: bool = False,
        retry: bool = True,
    ) -> Any:
        if not self.url or not self.api_key:
            raise StoreError("Supabase credentials not configured", code="CONFIG")

        try:
            async with httpx.AsyncClient() as client:
                response = await client.request(
                    method,
                    f"{self._get_rest_url()}/{table}",
                    headers=self._get_headers(prefer=prefer, single=single),
                    params=params,
                    json=json,
                    timeout=self.timeout,
                )
        except httpx.HTTPError as e:
            logger.error(f"{method} {table} failed: {e}")
            raise StoreError(str(e), code="NETWORK") from e

        if response.status_code == 401 and retry and self._on_unauthorized:
            # Access token may have expired, refresh and try once more
            logger.warning(f"{method} {table} unauthorized, refreshing session...")
            await self._on_unauthorized()
            return await self._request(method, table, params, json, prefer, single, retry=False)

        if response.status_code >= 400:
            error = StoreError.from_response(response)
            logger.error(
                f"{method} {table} failed - Status: {response.status_code}, "
                f"Body: {sanitize_for_log(response.text)}"
            )
            if json is not None:
                logger.debug(f"Rejected payload: {sanitize_for_log(json)}")
            raise error

        if not response.content:
            return None if single else []
        return response.json()

    async def select(
        self,
        table: str,
        columns: str = "*",
        filters: Optional[Iterable[Filter]] = None,
        order: Optional[str] = None,
        ascending: bool = True,
        single: bool = False,
        limit: Optional[int] = None,
    ) -> Any:
        """Select rows. With ``single`` exactly one row is expected (PGRST116 otherwise)."""
        params = [("select", columns)] + build_params(filters)
        if order:
            params.append(("order", f"{order}.{'asc' if ascending else 'desc'}"))
        if limit is not None:
            params.append(("limit", str(limit)))

        data = await self._request("GET", table, params=params, single=single)
        logger.debug(f"Selected from {table}: {1 if single else len(data or [])} row(s)")
        return data

    async def insert(self, table: str, rows: dict | list[dict], single: bool = False) -> Any:
        """Insert one or many rows, returning the inserted rows."""
        payload = rows if isinstance(rows, list) else [rows]
        data = await self._request("POST", table, json=payload, single=single)
        logger.info(f"Inserted {len(payload)} row(s) into {table}")
        return data

    async def update(self, table: str, patch: dict, filters: Iterable[Filter]) -> list:
        filters = list(filters)
        if not filters:
            raise ValueError("update requires at least one filter")
        data = await self._request("PATCH", table, params=build_params(filters), json=patch)
        logger.info(f"Updated {len(data or [])} row(s) in {table}")
        return data or []

    async def delete(self, table: str, filters: Iterable[Filter]) -> list:
        filters = list(filters)
        if not filters:
            raise ValueError("delete requires at least one filter")
        data = await self._request("DELETE", table, params=build_params(filters))
        logger.info(f"Deleted {len(data or [])} row(s) from {table}")
        return data or []

    async def upsert(self, table: str, rows: dict | list[dict], on_conflict: Optional[str] = None) -> list:
        payload = rows if isinstance(rows, list) else [rows]
        params = [("on_conflict", on_conflict)] if on_conflict else None
        data = await self._request(
            "POST",
            table,
            params=params,
            json=payload,
            prefer="return=representation,resolution=merge-duplicates",
        )
        logger.info(f"Upserted {len(payload)} row(s) into {table}")
        return data or []
