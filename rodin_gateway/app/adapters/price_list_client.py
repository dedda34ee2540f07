"""
Rodin price-list client for Gateway.

Implements the upstream ``PriceListSource`` used by the price-list
orchestrator: client codes are fetched directly, emails are first resolved
to a client code through the customers API.
"""

from typing import Any, Dict, Optional

import httpx

from shared.circuit_breaker import CircuitBreaker
from shared.errors import AuthenticationError, NotFoundError, UpstreamError, ValidationError
from shared.logging import get_logger

from ..pricing.models import ClientKind
from ..pricing.normalizer import normalize_payload
from ..pricing.strategy import FetchOptions
from .auth_client import RodinAuthClient
from .clients_client import RodinClientsClient


class RodinPriceListClient:
    """Client for ``get_lista_precios.php``."""

    def __init__(
        self,
        base_url: str,
        auth: RodinAuthClient,
        clients: RodinClientsClient,
        circuit_breaker: CircuitBreaker,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.auth = auth
        self.clients = clients
        self.circuit_breaker = circuit_breaker
        self.transport = transport
        self.logger = get_logger("gateway.rodin_price_lists")

    async def fetch_raw_price_list(self, client_kind: ClientKind, key: str, options: FetchOptions) -> Any:
        if client_kind is ClientKind.EMAIL:
            return await self._fetch_by_email(key, options)

        return await self.get_price_list(
            key,
            page=options.page,
            limit=options.limit,
            timeout=options.timeout,
        )

    async def get_price_list(
        self,
        client_code: str,
        *,
        page: int = 1,
        article: Optional[str] = None,
        updated_since: Optional[str] = None,
        limit: Optional[int] = None,
        timeout: float = 30.0,
    ) -> Any:
        """
        Fetch one page of a client's price list.

        Returns the decoded body as Rodin sent it (list, envelope or text).
        When ``limit`` is given, the products are extracted and truncated.
        """
        params: Dict[str, Any] = {"cliente": client_code, "pagina": page}
        if article:
            params["articulo"] = article
        if updated_since:
            params["ultima_actualizacion"] = updated_since

        async def _request() -> Any:
            token = await self.auth.get_token()
            async with httpx.AsyncClient(timeout=timeout, transport=self.transport) as http:
                response = await http.get(
                    f"{self.base_url}/get_lista_precios.php",
                    params=params,
                    headers={
                        "Authorization": f"Bearer {token}",
                        "Accept": "application/json",
                    },
                )
            return self._handle_response(response, client_code)

        self.logger.info("Requesting price list", client_code=client_code, params=params)
        try:
            data = await self.circuit_breaker.call(_request)
        except (UpstreamError, AuthenticationError, NotFoundError, ValidationError):
            raise
        except httpx.HTTPError as exc:
            self.logger.error("Rodin price-list HTTP error", client_code=client_code, error=str(exc))
            raise UpstreamError(
                f"Error fetching price list: {exc}",
                client_id=client_code,
                details={"http_error": type(exc).__name__},
            ) from exc

        if limit is not None:
            return normalize_payload(data).products[:limit]
        return data

    def _handle_response(self, response: httpx.Response, client_code: str) -> Any:
        status = response.status_code
        if status == 401:
            self.auth.invalidate()
            raise AuthenticationError("Rodin token expired or invalid")
        if status == 404:
            raise NotFoundError(f"Client {client_code} not found", details={"client_id": client_code})
        if status == 400:
            raise ValidationError(f"Invalid request for client {client_code}", details={"client_id": client_code})
        if status != 200:
            self.logger.error("Rodin price-list request failed", client_code=client_code, status_code=status)
            raise UpstreamError(
                f"Rodin price-list request failed with status {status}",
                client_id=client_code,
                details={"status_code": status},
            )

        try:
            body = response.json()
        except ValueError:
            # Left to the normalizer, which marks it unparseable
            return response.text

        if isinstance(body, dict) and body.get("error"):
            self.logger.error("Rodin reported an error", client_code=client_code, error=body["error"])
            raise UpstreamError(str(body["error"]), client_id=client_code)

        return body

    async def _fetch_by_email(self, email: str, options: FetchOptions) -> Dict[str, Any]:
        client = await self.clients.find_by_email(email)
        if client is None:
            raise NotFoundError(f"Client with email {email} not found", details={"client_id": email})

        client_code = client.get("cliente")
        if not client_code:
            raise NotFoundError(
                "Client found but has no client code",
                details={"client_id": email},
            )

        self.logger.info("Resolved client by email", email=email, client_code=client_code)
        data = await self.get_price_list(
            str(client_code),
            page=options.page,
            limit=options.limit,
            timeout=options.timeout,
        )
        return {
            "client_code": str(client_code),
            "client_name": client.get("nombre"),
            "price_list": normalize_payload(data).products,
        }
