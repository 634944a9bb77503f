from __future__ import annotations

import logging

import httpx

logger = logging.getLogger(__name__)


class UsersServiceClient:
    """Implements application.ports.existence.UserDirectory over HTTP."""

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def user_exists(self, user_id: int) -> bool:
        """Raises httpx errors on transport failures and 5xx answers."""
        response = await self._client.get(f"/users/{user_id}/exists")
        if response.status_code == httpx.codes.NOT_FOUND:
            return False
        response.raise_for_status()
        body = response.json()
        return bool(body.get("exists", False))
