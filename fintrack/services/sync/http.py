"""
REST transport.

Talks to the tracker's API:

    GET  {base_url}/data   -> the whole document
    POST {base_url}/data   -> overwrite the whole document

The session token goes in the Authorization header as-is. A 401 means the
session expired (AuthExpired); the auth collaborator decides what to do
about it. Gateway errors and network failures are transient and retried
by the SyncClient; every other non-2xx status is a plain SyncFailure.
"""

from typing import Any, Callable, Optional

import httpx

from fintrack.services.sync.interface import (
    AuthExpired,
    MalformedSnapshotError,
    SyncConnectionError,
    SyncFailure,
    SyncTransport,
)


TRANSIENT_STATUSES = {502, 503, 504}


class HttpTransport(SyncTransport):
    """Full-document store behind an authenticated REST endpoint."""

    name = "http"

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        token_provider: Optional[Callable[[], Optional[str]]] = None,
        timeout: float = 15.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            base_url: API root, e.g. "http://localhost:3030/api"
            token: Static session token
            token_provider: Callable returning the current token; wins over `token`
            timeout: Per-request timeout in seconds
            client: Pre-built client (tests pass one with a MockTransport)
        """
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._token_provider = token_provider
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @property
    def data_url(self) -> str:
        return f"{self._base_url}/data"

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        token = self._token_provider() if self._token_provider else self._token
        if token:
            headers["Authorization"] = token
        return headers

    async def pull(self) -> dict[str, Any]:
        response = await self._request("GET", self.data_url)
        try:
            data = response.json()
        except ValueError as e:
            raise MalformedSnapshotError(f"Response body is not JSON: {e}")
        if not isinstance(data, dict):
            raise MalformedSnapshotError(
                f"Response body is a {type(data).__name__}, expected an object"
            )
        return data

    async def push(self, document: dict[str, Any]) -> None:
        await self._request("POST", self.data_url, json=document)

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._client.request(
                method,
                url,
                headers=self._headers(),
                **kwargs,
            )
        except httpx.TimeoutException as e:
            raise SyncConnectionError(f"{method} {url} timed out: {e}")
        except httpx.TransportError as e:
            raise SyncConnectionError(f"{method} {url} failed: {e}")

        if response.status_code == 401:
            raise AuthExpired(f"{method} {url} unauthorized", status_code=401)
        if response.status_code in TRANSIENT_STATUSES:
            raise SyncConnectionError(
                f"{method} {url} returned {response.status_code}",
                status_code=response.status_code,
            )
        if not response.is_success:
            raise SyncFailure(
                f"{method} {url} returned {response.status_code}",
                status_code=response.status_code,
            )
        return response

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
