"""
Uber Eats order fetcher - GET the full order behind a webhook's resource_href.
"""
from __future__ import annotations

from typing import Any, Optional, Protocol
from urllib.parse import urlsplit

import httpx

from app.core.circuit_breaker import CircuitBreaker, get_uber_eats_orders_circuit_breaker
from app.core.config import settings
from app.core.exceptions import FetchError
from app.core.logging import get_logger, log_async_operation
from app.domain.schemas import BearerToken
from app.domain.services.uber_eats.base import UberEatsHttpClient, get_shared_http_client

logger = get_logger(__name__)


class OrderFetcher(Protocol):
    async def fetch_order(self, resource_href: str, token: BearerToken) -> dict[str, Any]:
        ...


def parse_resource_hosts(raw: str) -> Optional[frozenset[str]]:
    """Comma-separated host list; "*" means any host (None)"""
    if raw.strip() == "*":
        return None
    return frozenset(h.strip().lower() for h in raw.split(",") if h.strip())


class UberEatsOrderFetcher(UberEatsHttpClient):
    """Retrieves the order document with the bearer token attached"""

    def __init__(
        self,
        *,
        timeout_seconds: float = 10.0,
        allowed_hosts: Optional[frozenset[str]] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
    ) -> None:
        super().__init__(
            timeout_seconds=timeout_seconds,
            http_client=http_client,
            circuit_breaker=circuit_breaker,
        )
        self._allowed_hosts = allowed_hosts

    @classmethod
    def from_settings(cls, http_client: Optional[httpx.AsyncClient] = None) -> "UberEatsOrderFetcher":
        return cls(
            timeout_seconds=settings.OUTBOUND_TIMEOUT_SECONDS,
            allowed_hosts=parse_resource_hosts(settings.UBER_EATS_RESOURCE_HOSTS),
            http_client=http_client or get_shared_http_client(),
            circuit_breaker=get_uber_eats_orders_circuit_breaker(),
        )

    @log_async_operation("uber_eats.fetch_order")
    async def fetch_order(self, resource_href: str, token: BearerToken) -> dict[str, Any]:
        """
        Raises:
            FetchError: host not allowed, timeout, network error, non-2xx
                response or a body that is not a JSON object.
        """
        host = (urlsplit(resource_href).hostname or "").lower()
        if self._allowed_hosts is not None and host not in self._allowed_hosts:
            # the bearer token must not leave for an unknown host
            raise FetchError(
                f"resource host {host or '<none>'} is not allowed",
                details={"resource_href": resource_href},
            )

        return await self._guarded(lambda: self._get(resource_href, token))

    async def _get(self, resource_href: str, token: BearerToken) -> dict[str, Any]:
        try:
            async with self._client() as client:
                response = await client.get(
                    resource_href,
                    headers={
                        "Authorization": token.authorization_header,
                        "Accept": "application/json",
                    },
                    timeout=self.timeout_seconds,
                )
        except httpx.TimeoutException as exc:
            raise FetchError(
                f"order request timed out after {self.timeout_seconds}s",
                details={"timeout": True, "resource_href": resource_href},
            ) from exc
        except httpx.RequestError as exc:
            raise FetchError(
                f"order request failed: {exc}",
                details={"network_error": True, "resource_href": resource_href},
            ) from exc

        if not response.is_success:
            raise FetchError.from_response(
                "fetch_order",
                response,
                message=f"order endpoint returned status {response.status_code}",
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise FetchError.from_response(
                "fetch_order", response, message="order endpoint returned a non-JSON body"
            ) from exc

        if not isinstance(body, dict):
            raise FetchError(
                "order body is not a JSON object",
                details={"resource_href": resource_href},
            )

        logger.debug(
            "Uber Eats order fetched",
            extra_data={"resource_href": resource_href, "order_id": body.get("id")},
        )
        return body
