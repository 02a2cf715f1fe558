"""
Uber Eats credential broker - client-credentials grant.

``UberEatsCredentialBroker`` performs one token exchange per call, no retry.
``CachingCredentialBroker`` is the opt-in wrapper that reuses a token until
shortly before it expires.
"""
from __future__ import annotations

import asyncio
import time
from typing import Callable, Optional, Protocol

import httpx
from pydantic import ValidationError as PydanticValidationError

from app.core.circuit_breaker import CircuitBreaker, get_uber_eats_auth_circuit_breaker
from app.core.config import settings
from app.core.exceptions import AuthError
from app.core.logging import get_logger, log_async_operation
from app.domain.schemas import BearerToken
from app.domain.services.uber_eats.base import UberEatsHttpClient, get_shared_http_client

logger = get_logger(__name__)


class CredentialBroker(Protocol):
    async def acquire_token(self) -> BearerToken:
        ...


class UberEatsCredentialBroker(UberEatsHttpClient):
    """Exchanges client id/secret for a short-lived bearer token"""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        *,
        token_url: str,
        scope: str = "eats.order",
        timeout_seconds: float = 10.0,
        http_client: Optional[httpx.AsyncClient] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
    ) -> None:
        super().__init__(
            timeout_seconds=timeout_seconds,
            http_client=http_client,
            circuit_breaker=circuit_breaker,
        )
        self._client_id = client_id
        self._client_secret = client_secret
        self._token_url = token_url
        self._scope = scope

    @classmethod
    def from_settings(cls, http_client: Optional[httpx.AsyncClient] = None) -> "UberEatsCredentialBroker":
        return cls(
            settings.UBER_EATS_CLIENT_ID,
            settings.UBER_EATS_CLIENT_SECRET,
            token_url=settings.UBER_EATS_TOKEN_URL,
            scope=settings.UBER_EATS_SCOPE,
            timeout_seconds=settings.OUTBOUND_TIMEOUT_SECONDS,
            http_client=http_client or get_shared_http_client(),
            circuit_breaker=get_uber_eats_auth_circuit_breaker(),
        )

    @log_async_operation("uber_eats.acquire_token")
    async def acquire_token(self) -> BearerToken:
        """
        Request a fresh token.

        Raises:
            AuthError: missing credentials, timeout, network error, non-2xx
                response or a body that is not a valid token document.
        """
        if not self._client_id or not self._client_secret:
            raise AuthError("client credentials are not configured")
        return await self._guarded(self._request_token)

    async def _request_token(self) -> BearerToken:
        form = {
            "client_id": self._client_id,
            "client_secret": self._client_secret,
            "grant_type": "client_credentials",
            "scope": self._scope,
        }

        try:
            async with self._client() as client:
                response = await client.post(
                    self._token_url,
                    data=form,
                    headers={"Accept": "application/json"},
                    timeout=self.timeout_seconds,
                )
        except httpx.TimeoutException as exc:
            raise AuthError(
                f"token request timed out after {self.timeout_seconds}s",
                details={"timeout": True, "timeout_seconds": self.timeout_seconds},
            ) from exc
        except httpx.RequestError as exc:
            raise AuthError(
                f"token request failed: {exc}",
                details={"network_error": True},
            ) from exc

        if not response.is_success:
            raise AuthError.from_response(
                "token",
                response,
                message=f"token endpoint returned status {response.status_code}",
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise AuthError.from_response(
                "token", response, message="token endpoint returned a non-JSON body"
            ) from exc

        if not isinstance(payload, dict):
            raise AuthError("malformed token response", details={"operation": "token"})

        try:
            token = BearerToken.model_validate(payload)
        except PydanticValidationError as exc:
            raise AuthError(
                "malformed token response",
                details={
                    "operation": "token",
                    "fields": [".".join(str(p) for p in err["loc"]) for err in exc.errors()],
                },
            ) from exc

        logger.debug(
            "Uber Eats token acquired",
            extra_data={"scope": token.scope, "expires_in": token.expires_in},
        )
        return token


class CachingCredentialBroker:
    """
    Reuses a token until ``expiry_slack_seconds`` before it expires.

    One refresh at a time: concurrent webhooks that find the token stale wait
    on the same lock and pick up the new token.
    """

    def __init__(
        self,
        broker: CredentialBroker,
        *,
        expiry_slack_seconds: float = 60,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._broker = broker
        self._slack = expiry_slack_seconds
        self._clock = clock
        self._token: Optional[BearerToken] = None
        self._lock = asyncio.Lock()

    def _usable(self, token: Optional[BearerToken]) -> bool:
        return token is not None and not token.is_expired(self._slack, now=self._clock())

    async def acquire_token(self) -> BearerToken:
        token = self._token
        if self._usable(token):
            return token

        async with self._lock:
            if self._usable(self._token):
                return self._token
            self._token = await self._broker.acquire_token()
            return self._token

    def invalidate(self) -> None:
        """Drop the cached token, e.g. after the platform rejected it"""
        self._token = None
