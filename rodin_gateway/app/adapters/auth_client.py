"""
Rodin token client for Gateway.
"""

import asyncio
import time
from typing import Callable, Optional

import httpx

from shared.errors import AuthenticationError
from shared.logging import get_logger


class RodinAuthClient:
    """Obtains and caches the bearer token for the Rodin B2B API."""

    def __init__(
        self,
        base_url: str,
        username: Optional[str],
        password: Optional[str],
        *,
        token_ttl_seconds: float = 3000,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.base_url = base_url.rstrip("/")
        self.username = username
        self.password = password
        self.token_ttl_seconds = token_ttl_seconds
        self.timeout = timeout
        self.transport = transport
        self.logger = get_logger("gateway.rodin_auth")
        self._clock = clock
        self._token: Optional[str] = None
        self._token_obtained_at = 0.0
        self._lock = asyncio.Lock()

    async def get_token(self) -> str:
        """Return a cached token, logging in again once it is older than the TTL."""
        if self._token_is_fresh():
            return self._token  # type: ignore[return-value]

        async with self._lock:
            if self._token_is_fresh():
                return self._token  # type: ignore[return-value]
            self._token = await self._login()
            self._token_obtained_at = self._clock()
            return self._token

    def invalidate(self) -> None:
        """Forget the cached token (called after Rodin answers 401)."""
        self._token = None

    def _token_is_fresh(self) -> bool:
        return (
            self._token is not None
            and self._clock() - self._token_obtained_at < self.token_ttl_seconds
        )

    async def _login(self) -> str:
        if not self.username or not self.password:
            raise AuthenticationError("Rodin credentials are not configured")

        url = f"{self.base_url}/auth_login.php"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(
                    url,
                    data={"usuario": self.username, "password": self.password},
                )
        except httpx.HTTPError as exc:
            self.logger.error("Rodin login HTTP error", error=str(exc))
            raise AuthenticationError(
                "Rodin authentication service unavailable",
                details={"http_error": str(exc)},
            ) from exc

        if response.status_code != 200:
            self.logger.error("Rodin login rejected", status_code=response.status_code)
            raise AuthenticationError(
                f"Rodin login failed: {response.status_code}",
                details={"status_code": response.status_code},
            )

        try:
            token = response.json().get("token")
        except (ValueError, AttributeError):
            token = None

        if not token:
            self.logger.error("Rodin login returned no token")
            raise AuthenticationError("Could not obtain an authentication token")

        self.logger.info("Rodin token obtained")
        return token
