"""Hosted backend integration (REST tables and identity admin).

Both clients speak plain HTTP through httpx: table operations go to the
PostgREST endpoint (``/rest/v1``), account operations to the auth-admin
endpoint (``/auth/v1``). Requests are authenticated with the service-role
key, which bypasses row-level security for server-side jobs.
"""

import logging
from typing import Any, ClassVar

import httpx
from pydantic import ValidationError as PydanticValidationError

from controle_api.clients.base import DataStoreClient, IdentityProviderClient, Row
from controle_api.exceptions import DataStoreError, IdentityProviderError
from controle_api.models.domain.identity import IdentityUser

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
CONNECT_TIMEOUT = 10.0

USER_AGENT = "ControleEmpresas/1.0"


def _error_message(response: httpx.Response) -> str:
    """Extract a human-readable error message from a backend error response."""
    try:
        body = response.json()
    except ValueError:
        body = None

    if isinstance(body, dict):
        for key in ("message", "msg", "error_description", "error"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value

    text = response.text.strip()
    if text:
        return text
    return f"HTTP {response.status_code} {response.reason_phrase}".strip()


class _SupabaseHTTPClient:
    """Shared HTTP plumbing for both backend clients."""

    # Shared HTTP client for connection reuse
    _http_client: ClassVar[httpx.AsyncClient | None] = None

    def __init__(
        self,
        base_url: str,
        api_key: str,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize client.

        Args:
            base_url: Backend project URL (e.g. 'https://xyz.supabase.co')
            api_key: Key sent as 'apikey' and bearer token
            client: Optional HTTP client (tests inject one with a mock transport)
        """
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self._client = client

    @classmethod
    def _get_http_client(cls) -> httpx.AsyncClient:
        """Get or create shared HTTP client with connection pooling."""
        if cls._http_client is None or cls._http_client.is_closed:
            cls._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(DEFAULT_TIMEOUT, connect=CONNECT_TIMEOUT),
                limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
                headers={"User-Agent": USER_AGENT},
            )
        return cls._http_client

    @classmethod
    async def close_client(cls) -> None:
        """Close the shared HTTP client."""
        if cls._http_client and not cls._http_client.is_closed:
            await cls._http_client.aclose()
            cls._http_client = None

    @property
    def client(self) -> httpx.AsyncClient:
        return self._client or self._get_http_client()

    def _get_headers(self, token: str | None = None) -> dict[str, str]:
        """Get API request headers."""
        return {
            "apikey": self.api_key,
            "Authorization": f"Bearer {token or self.api_key}",
            "Content-Type": "application/json",
        }


class SupabaseDataStore(_SupabaseHTTPClient, DataStoreClient):
    """Table operations against the PostgREST endpoint."""

    def _table_url(self, table: str) -> str:
        return f"{self.base_url}/rest/v1/{table}"

    async def _send(
        self,
        method: str,
        table: str,
        params: dict[str, Any] | None = None,
        json_data: Any = None,
        prefer: str | None = None,
    ) -> httpx.Response:
        headers = self._get_headers()
        if prefer:
            headers["Prefer"] = prefer

        try:
            response = await self.client.request(
                method,
                self._table_url(table),
                params=params,
                json=json_data,
                headers=headers,
            )
        except httpx.HTTPError as e:
            logger.warning(f"Data store request on {table} failed: {e}")
            raise DataStoreError(f"Connection to data store failed: {e}", table=table) from e

        if response.is_error:
            raise DataStoreError(_error_message(response), table=table, status_code=response.status_code)
        return response

    @staticmethod
    def _json(response: httpx.Response, table: str) -> Any:
        """Decode a successful response body, which must be JSON."""
        try:
            return response.json()
        except ValueError as e:
            logger.warning(f"Data store returned a non-JSON body for {table} (HTTP {response.status_code})")
            raise DataStoreError(
                "Data store returned an invalid response",
                table=table,
                status_code=response.status_code,
            ) from e

    async def select_range(self, table: str, start: int, end: int) -> list[Row]:
        response = await self._send(
            "GET",
            table,
            params={"select": "*", "offset": start, "limit": end - start + 1},
        )
        data = self._json(response, table)
        return data if isinstance(data, list) else []

    async def select_one(self, table: str, column: str, value: str) -> Row | None:
        response = await self._send(
            "GET",
            table,
            params={"select": "*", column: f"eq.{value}", "limit": 1},
        )
        data = self._json(response, table)
        return data[0] if isinstance(data, list) and data else None

    async def upsert(self, table: str, rows: list[Row], on_conflict: str = "id") -> None:
        await self._send(
            "POST",
            table,
            params={"on_conflict": on_conflict},
            json_data=rows,
            prefer="resolution=merge-duplicates,return=minimal",
        )

    async def insert(self, table: str, rows: list[Row]) -> None:
        await self._send("POST", table, json_data=rows, prefer="return=minimal")

    async def delete_where_not_equal(self, table: str, column: str, value: str) -> None:
        await self._send("DELETE", table, params={column: f"neq.{value}"}, prefer="return=minimal")


class SupabaseIdentityProvider(_SupabaseHTTPClient, IdentityProviderClient):
    """Account operations against the auth-admin endpoint.

    Credentials required:
        - service role key for admin calls
        - anon key for resolving end-user access tokens
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        anon_key: str | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize identity provider client."""
        super().__init__(base_url, api_key, client)
        self.anon_key = anon_key or api_key

    async def _send(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json_data: Any = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        try:
            response = await self.client.request(
                method,
                f"{self.base_url}/auth/v1{path}",
                params=params,
                json=json_data,
                headers=headers or self._get_headers(),
            )
        except httpx.HTTPError as e:
            logger.warning(f"Identity provider request to {path} failed: {e}")
            raise IdentityProviderError(f"Connection to identity provider failed: {e}") from e

        if response.is_error:
            raise IdentityProviderError(_error_message(response), status_code=response.status_code)
        return response

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        """Decode a successful response body, which must be JSON."""
        try:
            return response.json()
        except ValueError as e:
            logger.warning(f"Identity provider returned a non-JSON body (HTTP {response.status_code})")
            raise IdentityProviderError("Identity provider returned an invalid response") from e

    @staticmethod
    def _to_user(data: Any) -> IdentityUser:
        if not isinstance(data, dict) or not data.get("id"):
            raise IdentityProviderError("Identity provider returned no account")
        try:
            return IdentityUser.model_validate(data)
        except PydanticValidationError as e:
            raise IdentityProviderError("Identity provider returned an invalid account") from e

    async def create_user(self, email: str, password: str, email_confirmed: bool = True) -> IdentityUser:
        response = await self._send(
            "POST",
            "/admin/users",
            json_data={"email": email, "password": password, "email_confirm": email_confirmed},
        )
        data = self._json(response)
        # Newer API versions wrap the account in {"user": {...}}
        user = data.get("user", data) if isinstance(data, dict) else None
        return self._to_user(user)

    async def list_users(self, page: int, per_page: int) -> list[IdentityUser]:
        response = await self._send(
            "GET",
            "/admin/users",
            params={"page": page, "per_page": per_page},
        )
        data = self._json(response)
        users = data.get("users", []) if isinstance(data, dict) else data
        if not isinstance(users, list):
            raise IdentityProviderError("Identity provider returned an invalid user list")
        # Entries without an id cannot be adopted
        return [self._to_user(u) for u in users if isinstance(u, dict) and u.get("id")]

    async def delete_user(self, user_id: str) -> None:
        await self._send("DELETE", f"/admin/users/{user_id}")

    async def get_user(self, access_token: str) -> IdentityUser:
        headers = {
            "apikey": self.anon_key,
            "Authorization": f"Bearer {access_token}",
        }
        response = await self._send("GET", "/user", headers=headers)
        return self._to_user(self._json(response))
