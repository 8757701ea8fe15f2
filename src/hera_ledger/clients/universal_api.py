"""Async client for the HERA universal six-table API."""

import asyncio
import json as jsonlib
from dataclasses import dataclass
from typing import Any, Literal

import httpx
import structlog

from hera_ledger.config import get_settings

logger = structlog.get_logger(__name__)

# Universal tables
ORGANIZATIONS = "core_organizations"
ENTITIES = "core_entities"
DYNAMIC_DATA = "core_dynamic_data"
TRANSACTIONS = "universal_transactions"
TRANSACTION_LINES = "universal_transaction_lines"

FilterOperator = Literal["eq", "gte", "lt", "in"]


class UniversalAPIError(Exception):
    """Base exception for universal API errors."""

    def __init__(self, message: str, status_code: int | None = None, details: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.details = details


class AuthenticationError(UniversalAPIError):
    """Authentication failed."""

    pass


class RateLimitError(UniversalAPIError):
    """Rate limit exceeded."""

    pass


class DuplicateRecordError(UniversalAPIError):
    """A uniqueness constraint rejected the write."""

    pass


@dataclass(frozen=True)
class Filter:
    """A single predicate; filters in one read are ANDed."""

    field: str
    operator: FilterOperator
    value: Any

    @classmethod
    def eq(cls, field: str, value: Any) -> "Filter":
        return cls(field, "eq", value)

    @classmethod
    def gte(cls, field: str, value: Any) -> "Filter":
        return cls(field, "gte", value)

    @classmethod
    def lt(cls, field: str, value: Any) -> "Filter":
        return cls(field, "lt", value)

    @classmethod
    def in_(cls, field: str, values: list[Any]) -> "Filter":
        return cls(field, "in", list(values))

    def to_dict(self) -> dict[str, Any]:
        return {"field": self.field, "operator": self.operator, "value": self.value}


class UniversalAPIClient:
    """Async client for the universal read/create/delete endpoint."""

    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.hera_api_url).rstrip("/")
        self._token = token if token is not None else settings.hera_api_token.get_secret_value()
        self._timeout = timeout if timeout is not None else settings.hera_api_timeout
        self._max_retries = (
            max_retries if max_retries is not None else settings.hera_api_max_retries
        )
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self._timeout))
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "UniversalAPIClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def _get_headers(self) -> dict[str, str]:
        """Get request headers with auth token."""
        headers = {"Content-Type": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    # === Transport ===

    async def _request(
        self,
        method: str,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
        retry_count: int = 0,
    ) -> dict[str, Any]:
        """Make a request against the universal endpoint with retry logic."""
        client = await self._get_client()

        try:
            response = await client.request(
                method=method,
                url=self.base_url,
                params=params,
                content=jsonlib.dumps(json, default=str) if json is not None else None,
                headers=self._get_headers(),
            )
        except httpx.RequestError as e:
            if retry_count < self._max_retries:
                await asyncio.sleep(2**retry_count)  # Exponential backoff
                return await self._request(method, params, json, retry_count + 1)
            raise UniversalAPIError(f"Request failed: {e}") from e

        if response.status_code == 401:
            raise AuthenticationError("Invalid or expired API token", status_code=401)

        if response.status_code == 429:
            retry_after = int(response.headers.get("Retry-After", "60"))
            raise RateLimitError(
                f"Rate limited, retry after {retry_after}s",
                status_code=429,
                details={"retry_after": retry_after},
            )

        if response.status_code >= 400:
            try:
                error_detail = response.json() if response.content else {}
            except ValueError:
                error_detail = {"raw": response.text[:500] if response.text else "empty response"}
            error_cls = DuplicateRecordError if response.status_code == 409 else UniversalAPIError
            raise error_cls(
                f"API error: {response.status_code}",
                status_code=response.status_code,
                details=error_detail,
            )

        body = response.json() if response.content else {}
        if not isinstance(body, dict):
            raise UniversalAPIError("Invalid universal API response format", details=body)
        if body.get("success") is False:
            raise UniversalAPIError(
                body.get("error") or body.get("message") or "Universal API call failed",
                status_code=response.status_code,
                details=body,
            )
        return body

    # === Table Operations ===

    async def read(
        self, table: str, filters: list[Filter] | None = None
    ) -> list[dict[str, Any]]:
        """Read rows from a table; all filters must match."""
        params: dict[str, Any] = {"action": "read", "table": table}
        if filters:
            params["filters"] = jsonlib.dumps([f.to_dict() for f in filters], default=str)
        body = await self._request("GET", params=params)
        data = body.get("data")
        if data is None:
            return []
        if not isinstance(data, list):
            raise UniversalAPIError(f"Expected a list of rows from {table}", details=body)
        return data

    async def create(self, table: str, data: dict[str, Any]) -> dict[str, Any]:
        """Create a single row and return it as stored."""
        body = await self._request(
            "POST", json={"action": "create", "table": table, "data": data}
        )
        created = body.get("data")
        return created if isinstance(created, dict) else {}

    async def create_transaction(
        self, header: dict[str, Any], lines: list[dict[str, Any]]
    ) -> dict[str, Any]:
        """Create a transaction header and its lines in one atomic write."""
        body = await self._request(
            "POST",
            json={
                "action": "create_transaction",
                "table": TRANSACTIONS,
                "data": header,
                "lines": lines,
            },
        )
        created = body.get("data")
        if not isinstance(created, dict) or not created.get("id"):
            raise UniversalAPIError("Transaction create returned no id", details=body)
        logger.debug("transaction_created", transaction_id=created["id"], lines=len(lines))
        return created

    async def delete(self, table: str, record_id: str) -> None:
        """Delete a row by id."""
        await self._request("DELETE", params={"table": table, "id": record_id})
