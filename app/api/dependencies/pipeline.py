"""
Dependencies that assemble the ingestion pipeline per request.

The store wraps the request's AsyncSession; the Uber Eats clients are built
from settings. When token caching is on, one CachingCredentialBroker is kept
for the whole process so webhooks share the token.

Tests replace any of these through ``app.dependency_overrides``.
"""
from __future__ import annotations

import threading

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.db.database import get_db
from app.domain.services.ingestion_service import IngestionPipeline
from app.domain.services.order_store import OrderStore
from app.domain.services.platform_adapters import default_adapters
from app.domain.services.uber_eats import (
    CachingCredentialBroker,
    CredentialBroker,
    OrderFetcher,
    UberEatsCredentialBroker,
    UberEatsOrderFetcher,
)

_cached_broker: CachingCredentialBroker | None = None
_lock = threading.Lock()


def get_credential_broker() -> CredentialBroker:
    """Fresh exchange per webhook, or the shared cache when enabled."""
    global _cached_broker
    if not settings.UBER_EATS_TOKEN_CACHE_ENABLED:
        return UberEatsCredentialBroker.from_settings()

    if _cached_broker is None:
        with _lock:
            if _cached_broker is None:
                _cached_broker = CachingCredentialBroker(
                    UberEatsCredentialBroker.from_settings(),
                    expiry_slack_seconds=settings.UBER_EATS_TOKEN_EXPIRY_SLACK_SECONDS,
                )
    return _cached_broker


def reset_credential_cache() -> None:
    """Forget the shared token (tests, credential rotation)"""
    global _cached_broker
    with _lock:
        _cached_broker = None


def get_order_fetcher() -> OrderFetcher:
    return UberEatsOrderFetcher.from_settings()


def get_order_store(db: AsyncSession = Depends(get_db)) -> OrderStore:
    return OrderStore(db)


def get_ingestion_pipeline(
    store: OrderStore = Depends(get_order_store),
    credential_broker: CredentialBroker = Depends(get_credential_broker),
    order_fetcher: OrderFetcher = Depends(get_order_fetcher),
) -> IngestionPipeline:
    return IngestionPipeline(
        store=store,
        adapters=default_adapters(),
        credential_broker=credential_broker,
        order_fetcher=order_fetcher,
    )
