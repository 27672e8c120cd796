"""Thin async request helper for the marketplace backend.

Injects the base URL and the bearer token into every call and returns the
decoded JSON body. Errors are not caught here: ``httpx.HTTPStatusError``
and transport errors propagate to the component that issued the call.
"""

import logging
from typing import Any

import httpx

from roomscout.config import settings

logger = logging.getLogger(__name__)


def unwrap_data(body: Any) -> Any:
    """Return ``body["data"]`` for enveloped responses, else the body itself."""
    if isinstance(body, dict) and "data" in body:
        return body["data"]
    return body


class MarketplaceClient:
    """Marketplace API client with base-URL and header injection."""

    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        timeout: float | None = None,
    ):
        self.base_url = (base_url or settings.api_base_url).rstrip("/")
        self.token = settings.api_token if token is None else token
        self.timeout = timeout or settings.request_timeout

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> Any:
        async with httpx.AsyncClient(
            base_url=self.base_url, headers=self._headers(), timeout=self.timeout,
        ) as client:
            resp = await client.request(method, path, params=params, json=json)
            resp.raise_for_status()
            if not resp.content:
                return None
            return resp.json()

    async def get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        return await self.request("GET", path, params=params)

    async def post(self, path: str, json: Any = None) -> Any:
        return await self.request("POST", path, json=json)

    async def patch(self, path: str, json: Any = None) -> Any:
        return await self.request("PATCH", path, json=json)
