"""Request/response side of the client: login and the one-shot history fetch."""
from __future__ import annotations

import logging

import httpx

from relay_chat.application.exceptions import AuthenticationError
from relay_chat.infrastructure.ws.protocol import MessagePayload

logger = logging.getLogger(__name__)


class ChatHttpClient:
    def __init__(
        self,
        base_url: str,
        *,
        client: httpx.AsyncClient | None = None,
        cookie_name: str = "authToken",
        timeout: float = 10.0,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)
        self._cookie_name = cookie_name
        self._token: str | None = None
        self.user: dict | None = None

    @property
    def token(self) -> str | None:
        return self._token or self._client.cookies.get(self._cookie_name)

    async def login(self, username: str, password: str) -> dict:
        """Log in and remember the session token.

        Returns:
            The ``{"id", "username"}`` user record.

        Raises:
            AuthenticationError: The relay rejected the credentials.
        """
        resp = await self._client.post(
            "/api/auth/login", json={"username": username, "password": password},
        )
        if resp.status_code == httpx.codes.UNAUTHORIZED:
            raise AuthenticationError(resp.json().get("detail", "Invalid credentials"))
        resp.raise_for_status()
        self._token = resp.cookies.get(self._cookie_name) or self._client.cookies.get(self._cookie_name)
        self.user = resp.json()["user"]
        logger.info("Logged in as %s", self.user["username"])
        return self.user

    async def fetch_history(self, limit: int | None = None) -> list[MessagePayload]:
        params = {"limit": limit} if limit is not None else None
        resp = await self._client.get("/api/messages", params=params, headers=self._auth_headers())
        if resp.status_code == httpx.codes.UNAUTHORIZED:
            raise AuthenticationError("Session expired")
        resp.raise_for_status()
        return [MessagePayload.model_validate(item) for item in resp.json()]

    async def logout(self) -> None:
        try:
            resp = await self._client.post("/api/auth/logout")
            resp.raise_for_status()
        finally:
            self._token = None
            self.user = None
            self._client.cookies.delete(self._cookie_name)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _auth_headers(self) -> dict[str, str]:
        token = self.token
        return {"Authorization": f"Bearer {token}"} if token else {}
