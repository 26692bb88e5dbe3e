"""
Admin API client used by the bot to talk to the license server.

Every request carries the shared admin secret.
"""

import logging
from typing import Any, Optional

import httpx

logger = logging.getLogger(__name__)


class AdminApiError(Exception):
    """The license server rejected a request or could not be reached."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class AdminApiClient:
    """Thin async client for the license server's admin API."""

    def __init__(
        self,
        base_url: str,
        admin_secret: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize API client.

        Args:
            base_url: License server base URL (e.g., "http://localhost:3000")
            admin_secret: Value sent in the x-admin-secret header
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.base_url = base_url.rstrip('/')
        self.admin_secret = admin_secret
        self.timeout = timeout
        self._transport = transport

    async def _call(
        self,
        method: str,
        path: str,
        json: Optional[dict] = None,
        params: Optional[dict] = None,
    ) -> Any:
        headers = {"x-admin-secret": self.admin_secret}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.request(
                    method,
                    f"{self.base_url}{path}",
                    json=json,
                    params=params,
                    headers=headers,
                )
        except httpx.HTTPError as e:
            logger.error(f"License server request {method} {path} failed: {e}")
            raise AdminApiError("License server is unreachable") from e

        try:
            data = response.json()
        except ValueError:
            raise AdminApiError(
                f"Unexpected response from license server ({response.status_code})",
                response.status_code,
            )

        if isinstance(data, dict) and data.get("error"):
            logger.warning(f"License server {method} {path}: {response.status_code} - {data['error']}")
            raise AdminApiError(data["error"], response.status_code)

        if response.is_error:
            raise AdminApiError(
                f"License server returned {response.status_code}", response.status_code
            )
        return data

    async def create(self, owner: str, expires_at: Optional[str] = None, notes: str = "") -> dict:
        return await self._call(
            "POST", "/api/create",
            json={"owner": owner, "expires_at": expires_at, "notes": notes},
        )

    async def revoke(self, key: str) -> dict:
        return await self._call("POST", "/api/revoke", json={"key": key})

    async def list_licenses(self, limit: Optional[int] = None) -> list[dict]:
        params = {"limit": limit} if limit is not None else None
        return await self._call("GET", "/api/list", params=params)

    async def lookup(self, owner: str) -> list[dict]:
        return await self._call("GET", "/api/lookup", params={"owner": owner})

    async def validate(self, key: str, ip: Optional[str] = None) -> dict:
        return await self._call("POST", "/api/validate", json={"key": key, "ip": ip})
