"""
Shared plumbing for the Uber Eats HTTP clients.

Both clients accept an injected ``httpx.AsyncClient`` (tests pass one built on
``httpx.MockTransport``); without one, a short-lived client is opened per call.
``from_settings`` hands them the process-wide client from
``get_shared_http_client`` so connections are pooled across webhooks; the
shutdown hook closes it. Every request is bounded by ``timeout_seconds`` and,
when a breaker is given, routed through it.
"""
from __future__ import annotations

import threading
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, Optional, TypeVar

import httpx

from app.core.circuit_breaker import CircuitBreaker
from app.core.config import settings
from app.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

_shared_client: Optional[httpx.AsyncClient] = None
_shared_client_lock = threading.Lock()


def get_shared_http_client() -> httpx.AsyncClient:
    """Process-wide pooled client for the Uber Eats endpoints"""
    global _shared_client
    with _shared_client_lock:
        if _shared_client is None or _shared_client.is_closed:
            _shared_client = httpx.AsyncClient(timeout=settings.OUTBOUND_TIMEOUT_SECONDS)
        return _shared_client


async def close_shared_http_client() -> None:
    global _shared_client
    with _shared_client_lock:
        client, _shared_client = _shared_client, None
    if client is not None and not client.is_closed:
        await client.aclose()
        logger.info("Uber Eats HTTP client closed")


class UberEatsHttpClient:

    def __init__(
        self,
        *,
        timeout_seconds: float,
        http_client: Optional[httpx.AsyncClient] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
    ) -> None:
        self._timeout_seconds = timeout_seconds
        self._http_client = http_client
        self._circuit_breaker = circuit_breaker

    @property
    def timeout_seconds(self) -> float:
        return self._timeout_seconds

    @asynccontextmanager
    async def _client(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._http_client is not None:
            yield self._http_client
            return
        async with httpx.AsyncClient(timeout=self._timeout_seconds) as client:
            yield client

    async def _guarded(self, func: Callable[[], Awaitable[T]]) -> T:
        if self._circuit_breaker is None:
            return await func()
        return await self._circuit_breaker.execute(func)
