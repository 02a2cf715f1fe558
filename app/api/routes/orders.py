"""
Order API Routes - read access to stored orders
"""
from fastapi import APIRouter, Depends

from app.api.dependencies.pipeline import get_order_store
from app.domain.schemas import StoredOrder
from app.domain.services.order_store import OrderStore

router = APIRouter()


@router.get(
    "/{order_id}",
    response_model=StoredOrder,
    summary="Get a stored order",
    description="Lookup by the internal id. 404 when no such order exists.",
)
async def get_order(
    order_id: int,
    store: OrderStore = Depends(get_order_store),
) -> StoredOrder:
    return await store.get_by_id(order_id)
