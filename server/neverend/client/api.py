"""HTTP client for the site backend."""

import logging
from typing import Any, Optional

import httpx

from ..core.config import ClientSettings, client_settings

logger = logging.getLogger(__name__)


class ApiResponse:
    """Status and decoded JSON body (``None`` when the body is not JSON)."""

    def __init__(self, status_code: int, data: Any):
        self.status_code = status_code
        self.data = data

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def error_message(self, default: str) -> str:
        """The backend's ``error`` member when present, else ``default``."""
        if isinstance(self.data, dict) and self.data.get("error"):
            return str(self.data["error"])
        return default


class ApiClient:
    """
    Thin async wrapper over ``httpx.AsyncClient`` rooted at the site API.

    The underlying client is created lazily; pass ``transport`` to route
    requests elsewhere (tests use ``httpx.MockTransport``).
    """

    def __init__(
        self,
        settings: Optional[ClientSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or client_settings
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.settings.api_url + "/",
                timeout=httpx.Timeout(self.settings.request_timeout_seconds),
                headers={"Accept": "application/json"},
                transport=self._transport,
            )
        return self._client

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[dict[str, Any]] = None,
        json: Any = None,
        headers: Optional[dict[str, str]] = None,
    ) -> ApiResponse:
        """
        Send one request and decode the body.

        Raises:
            httpx.HTTPError: On transport failures (connection, timeout)
        """
        client = self._get_client()
        response = await client.request(
            method,
            path.lstrip("/"),
            params=params,
            json=json,
            headers=headers,
        )
        try:
            data = response.json()
        except ValueError:
            data = None

        logger.debug(
            "API request completed",
            extra={"method": method, "path": path, "status_code": response.status_code}
        )
        return ApiResponse(response.status_code, data)

    async def get(self, path: str, params: Optional[dict[str, Any]] = None) -> ApiResponse:
        return await self.request("GET", path, params=params)

    async def post(self, path: str, payload: Any, headers: Optional[dict[str, str]] = None) -> ApiResponse:
        return await self.request("POST", path, json=payload, headers=headers)

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
