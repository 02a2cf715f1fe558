"""
Domain Services
"""
from app.domain.services.ingestion_service import IngestionPipeline
from app.domain.services.order_store import OrderStore
from app.domain.services.platform_adapters import (
    DidiFoodAdapter,
    PlatformAdapter,
    RappiAdapter,
    UberEatsAdapter,
    default_adapters,
)

__all__ = [
    "IngestionPipeline",
    "OrderStore",
    "PlatformAdapter",
    "UberEatsAdapter",
    "RappiAdapter",
    "DidiFoodAdapter",
    "default_adapters",
]
