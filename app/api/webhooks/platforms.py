"""
Delivery platform webhooks - Uber Eats, Rappi, Didi Food.

Always HTTP 200 with ``{"status": "success" | "error", "message": ...}``;
platforms are not told to retry through status codes.
"""
from typing import Any

from fastapi import APIRouter, Depends, Request

from app.api.dependencies.pipeline import get_ingestion_pipeline
from app.core.logging import get_logger
from app.domain.schemas import Platform
from app.domain.services.ingestion_service import IngestionPipeline

logger = get_logger(__name__)

router = APIRouter()


async def _read_body(request: Request) -> Any:
    """Parsed JSON body, or None so the adapter reports it as invalid"""
    try:
        return await request.json()
    except ValueError:
        logger.warning(
            "Webhook body is not valid JSON",
            extra_data={"path": request.url.path},
        )
        return None


async def _handle(platform: Platform, request: Request, pipeline: IngestionPipeline) -> dict[str, str]:
    body = await _read_body(request)
    result = await pipeline.handle_webhook(platform, body)
    return result.to_response()


_RESPONSES = {
    200: {
        "description": "Processed, or rejected with a reason in `message`",
        "content": {
            "application/json": {
                "examples": {
                    "success": {"value": {"status": "success", "message": "Rappi order processed"}},
                    "error": {"value": {"status": "error", "message": "Invalid Rappi order structure: missing code"}},
                }
            }
        },
    }
}


@router.post(
    "/uber-eats",
    summary="Webhook - Uber Eats order events",
    description=(
        "Receives `orders.notification` / `orders.cancel` events, exchanges "
        "client credentials for a token and fetches the order from `resource_href`."
    ),
    responses=_RESPONSES,
)
async def uber_eats_webhook(
    request: Request,
    pipeline: IngestionPipeline = Depends(get_ingestion_pipeline),
) -> dict[str, str]:
    return await _handle(Platform.UBER_EATS, request, pipeline)


@router.post(
    "/rappi",
    summary="Webhook - Rappi orders",
    description="The body is the Rappi order; `code` and `total` are required.",
    responses=_RESPONSES,
)
async def rappi_webhook(
    request: Request,
    pipeline: IngestionPipeline = Depends(get_ingestion_pipeline),
) -> dict[str, str]:
    return await _handle(Platform.RAPPI, request, pipeline)


@router.post(
    "/didi-food",
    summary="Webhook - Didi Food orders",
    description="The body is the Didi Food order; `orderNumber` and `merchantId` are required.",
    responses=_RESPONSES,
)
async def didi_food_webhook(
    request: Request,
    pipeline: IngestionPipeline = Depends(get_ingestion_pipeline),
) -> dict[str, str]:
    return await _handle(Platform.DIDI_FOOD, request, pipeline)
