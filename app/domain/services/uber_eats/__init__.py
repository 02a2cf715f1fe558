"""
Uber Eats integration - token exchange and order retrieval.
"""
from app.domain.services.uber_eats.credential_broker import (
    CachingCredentialBroker,
    CredentialBroker,
    UberEatsCredentialBroker,
)
from app.domain.services.uber_eats.order_fetcher import OrderFetcher, UberEatsOrderFetcher

__all__ = [
    "CachingCredentialBroker",
    "CredentialBroker",
    "UberEatsCredentialBroker",
    "OrderFetcher",
    "UberEatsOrderFetcher",
]
