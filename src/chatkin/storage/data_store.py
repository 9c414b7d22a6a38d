"""
Scoped reads against the user's tasks, notes, projects and files.

The data store is Supabase's PostgREST endpoint.  Every request carries the caller's bearer token, so
row-level security limits results to that user's rows; this module never widens a query beyond it.
"""

import logging
from typing import (
    Any,
    Dict,
    List,
    Tuple,
    cast,
)

import httpx

from chatkin.config import settings

logger = logging.getLogger(__name__)


class DataStoreError(RuntimeError):
    """Raised when a read against the data store fails."""


def _literal(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _quoted(value: str) -> str:
    # PostgREST reserves , . : ( ) inside logic trees unless the value is double-quoted
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


class TableQuery:
    """Small builder for a PostgREST ``GET /rest/v1/<table>`` request."""

    def __init__(self, table: str) -> None:
        self.table = table
        self._params: List[Tuple[str, str]] = [("select", "*")]

    def eq(self, column: str, value: Any) -> "TableQuery":
        self._params.append((column, f"eq.{_literal(value)}"))
        return self

    def like(self, column: str, pattern: str) -> "TableQuery":
        self._params.append((column, f"like.{pattern}"))
        return self

    def search(self, columns: List[str], term: str) -> "TableQuery":
        """Case-insensitive substring match on any of *columns*."""
        clauses = ",".join(f"{column}.ilike.{_quoted(f'*{term}*')}" for column in columns)
        self._params.append(("or", f"({clauses})"))
        return self

    def order(self, column: str, descending: bool = True) -> "TableQuery":
        self._params.append(("order", f"{column}.{'desc' if descending else 'asc'}"))
        return self

    def limit(self, count: int) -> "TableQuery":
        self._params.append(("limit", str(count)))
        return self

    def params(self) -> List[Tuple[str, str]]:
        return list(self._params)


class SupabaseDataStore:
    """Executes :class:`TableQuery` objects on behalf of one bearer credential per call."""

    def __init__(
        self,
        base_url: str | None = None,
        anon_key: str | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = (base_url or settings.SUPABASE_URL).rstrip("/")
        self.anon_key = anon_key or settings.SUPABASE_ANON_KEY
        self._client = client

    def _headers(self, auth_token: str) -> Dict[str, str]:
        headers = {"Authorization": f"Bearer {auth_token}", "Accept": "application/json"}
        if self.anon_key:
            headers["apikey"] = self.anon_key
        return headers

    async def fetch(self, query: TableQuery, auth_token: str) -> List[Dict[str, Any]]:
        """Run *query* as the user identified by *auth_token* and return the rows."""
        url = f"{self.base_url}/rest/v1/{query.table}"
        if self._client is not None:
            return await self._get(self._client, url, query, auth_token)
        async with httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT) as client:
            return await self._get(client, url, query, auth_token)

    async def _get(
        self, client: httpx.AsyncClient, url: str, query: TableQuery, auth_token: str
    ) -> List[Dict[str, Any]]:
        logger.debug("Data store query on '%s': %s", query.table, query.params())
        try:
            resp = await client.get(url, params=query.params(), headers=self._headers(auth_token))
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            message = exc.response.text or str(exc)
            try:
                body = exc.response.json()
            except ValueError:
                body = None
            if isinstance(body, dict):
                message = body.get("message", message)
            logger.warning("Data store returned %d for '%s'", exc.response.status_code, query.table)
            raise DataStoreError(message) from exc
        except httpx.HTTPError as exc:
            logger.error("Data store request error: %s", exc)
            raise DataStoreError(str(exc)) from exc

        return cast(List[Dict[str, Any]], resp.json())
