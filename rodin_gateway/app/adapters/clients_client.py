"""
Rodin customers client for Gateway.
"""

from typing import Any, Dict, List, Optional

import httpx

from shared.circuit_breaker import CircuitBreaker
from shared.errors import AuthenticationError, UpstreamError
from shared.logging import get_logger

from .auth_client import RodinAuthClient


class RodinClientsClient:
    """Lists Rodin customers and resolves a customer by email."""

    def __init__(
        self,
        base_url: str,
        auth: RodinAuthClient,
        circuit_breaker: CircuitBreaker,
        *,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.auth = auth
        self.circuit_breaker = circuit_breaker
        self.timeout = timeout
        self.transport = transport
        self.logger = get_logger("gateway.rodin_clients")

    async def list_clients(
        self,
        page: int = 1,
        client: Optional[str] = None,
        date: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Fetch one page of customers (Rodin usually returns all of them on page 1)."""
        form = {"pagina": page}
        if client:
            form["cliente"] = client
        if date:
            form["fecha"] = date

        async def _request() -> List[Dict[str, Any]]:
            token = await self.auth.get_token()
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as http:
                response = await http.post(
                    f"{self.base_url}/get_clientes.php",
                    data=form,
                    headers={"Authorization": f"Bearer {token}"},
                )

            if response.status_code == 401:
                self.auth.invalidate()
                raise AuthenticationError("Rodin token expired or invalid")
            if response.status_code != 200:
                self.logger.error(
                    "Rodin customers request failed",
                    status_code=response.status_code,
                    page=page,
                )
                raise UpstreamError(
                    f"Rodin customers request failed with status {response.status_code}",
                    details={"status_code": response.status_code},
                )

            try:
                body = response.json()
            except ValueError as exc:
                raise UpstreamError("Rodin customers response is not valid JSON") from exc

            clients = body.get("clientes") if isinstance(body, dict) else None
            return clients if isinstance(clients, list) else []

        try:
            return await self.circuit_breaker.call(_request)
        except (UpstreamError, AuthenticationError):
            raise
        except httpx.HTTPError as exc:
            self.logger.error("Rodin customers HTTP error", error=str(exc))
            raise UpstreamError(
                "Rodin customers service unavailable",
                details={"http_error": str(exc)},
            ) from exc

    async def find_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        """Exact, case-insensitive match on the customer's ``correo`` field."""
        wanted = email.strip().lower()
        clients = await self.list_clients(page=1)
        if not clients:
            self.logger.warning("Rodin returned no customers")
            return None

        for candidate in clients:
            correo = candidate.get("correo") if isinstance(candidate, dict) else None
            if isinstance(correo, str) and correo.strip().lower() == wanted:
                return candidate
        return None
