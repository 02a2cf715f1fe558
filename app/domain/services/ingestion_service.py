"""
Ingestion Pipeline - webhook body in, stored order (or error body) out.

Rappi and Didi Food post the order itself: adapter -> store.
Uber Eats posts an event envelope: envelope check -> token exchange ->
order fetch -> adapter -> store.

Nothing raised inside a run escapes ``handle_webhook``; every failure becomes
``{"status": "error", "message": ...}``. A duplicate (platform, external id)
is reported as AlreadyExists and logged at INFO - platforms redeliver.
"""
from __future__ import annotations

from typing import Any, Mapping, Optional, Protocol

from app.core.exceptions import (
    AppException,
    AuthError,
    ExternalServiceException,
    FetchError,
    OrderConflictError,
    OrderValidationError,
)
from app.core.logging import bind_platform, get_logger
from app.domain.schemas import (
    AlreadyExists,
    Failed,
    NormalizedOrder,
    OrderStatus,
    Platform,
    Stored,
    StoreOutcome,
    UberEatsEventType,
    WebhookResult,
)
from app.domain.services.platform_adapters import PlatformAdapter, default_adapters, parse_uber_eats_event
from app.domain.services.uber_eats import CredentialBroker, OrderFetcher

logger = get_logger(__name__)


class OrderRepository(Protocol):
    async def save(self, platform: Platform, order: NormalizedOrder) -> int:
        ...

    async def update_status(self, platform: Platform, external_order_id: str, status: OrderStatus) -> None:
        ...


class IngestionPipeline:
    """
    Routes one webhook through its platform's steps.

    All collaborators are injected so tests can swap in fakes; the Uber Eats
    pair is only required for Uber Eats webhooks.
    """

    def __init__(
        self,
        store: OrderRepository,
        adapters: Optional[Mapping[Platform, PlatformAdapter]] = None,
        credential_broker: Optional[CredentialBroker] = None,
        order_fetcher: Optional[OrderFetcher] = None,
    ) -> None:
        self._store = store
        self._adapters = dict(adapters) if adapters is not None else default_adapters()
        self._credential_broker = credential_broker
        self._order_fetcher = order_fetcher

    async def handle_webhook(self, platform: Platform, raw_body: Any) -> WebhookResult:
        with bind_platform(platform.value):
            return await self._run(platform, raw_body)

    async def _run(self, platform: Platform, raw_body: Any) -> WebhookResult:
        try:
            if platform is Platform.UBER_EATS:
                return await self._handle_uber_eats(raw_body)
            return await self._ingest(platform, raw_body)
        except OrderValidationError as exc:
            logger.warning(
                "Rejected webhook payload",
                extra_data={"error": exc.message, "details": exc.details},
            )
            return WebhookResult.error(exc.message, Failed(exc))
        except ExternalServiceException as exc:
            logger.error(
                "Platform call failed",
                extra_data={
                    "error_code": exc.error_code.value,
                    "error": exc.message,
                    "details": exc.details,
                },
            )
            return WebhookResult.error(exc.message, Failed(exc))
        except AppException as exc:
            logger.error(
                "Webhook processing failed",
                extra_data={"error_code": exc.error_code.value, "error": exc.message},
            )
            return WebhookResult.error(exc.message, Failed(exc))
        except Exception as exc:
            logger.error(
                "Unexpected error while processing webhook",
                extra_data={"exception_type": type(exc).__name__},
                exc_info=True,
            )
            return WebhookResult.error("Processing failed", Failed(exc))

    async def _handle_uber_eats(self, raw_body: Any) -> WebhookResult:
        event = parse_uber_eats_event(raw_body)
        event_type = UberEatsEventType(event.event_type)

        logger.info(
            "Uber Eats event received",
            extra_data={"event_id": event.event_id, "event_type": event_type.value},
        )

        if self._credential_broker is None or self._order_fetcher is None:
            raise AuthError("Uber Eats client is not configured")

        raw_order = await self._fetch_uber_eats_order(event.resource_href)
        return await self._ingest(Platform.UBER_EATS, raw_order, event_type=event_type)

    async def _fetch_uber_eats_order(self, resource_href: str) -> Any:
        token = await self._credential_broker.acquire_token()
        try:
            return await self._order_fetcher.fetch_order(resource_href, token)
        except FetchError as exc:
            # a cached token may have been revoked or rotated; fresh tokens are not retried
            invalidate = getattr(self._credential_broker, "invalidate", None)
            if exc.details.get("status_code") != 401 or invalidate is None:
                raise

        logger.warning(
            "Uber Eats rejected the cached token, requesting a new one",
            extra_data={"resource_href": resource_href},
        )
        invalidate()
        token = await self._credential_broker.acquire_token()
        return await self._order_fetcher.fetch_order(resource_href, token)

    async def _ingest(
        self,
        platform: Platform,
        raw_order: Any,
        event_type: Optional[UberEatsEventType] = None,
    ) -> WebhookResult:
        adapter = self._adapters.get(platform)
        if adapter is None:
            raise OrderValidationError(f"No adapter registered for {platform.display_name}", platform=platform.value)

        order = adapter.validate(raw_order)
        outcome = await self._store_order(platform, order)

        if isinstance(outcome, Stored):
            logger.info(
                "Order stored",
                extra_data={"external_order_id": order.external_order_id, "record_id": outcome.record_id},
            )
            return WebhookResult.success(f"{platform.display_name} order processed", outcome)

        if event_type is UberEatsEventType.ORDER_CANCEL:
            await self._store.update_status(platform, order.external_order_id, OrderStatus.CANCELLED)
            logger.info(
                "Order cancelled",
                extra_data={"external_order_id": order.external_order_id},
            )
            return WebhookResult.success(f"{platform.display_name} order cancelled", outcome)

        logger.info(
            "Order already stored, ignoring duplicate delivery",
            extra_data={"external_order_id": order.external_order_id},
        )
        return WebhookResult.error(
            f"{platform.display_name} order {order.external_order_id} already processed",
            outcome,
        )

    async def _store_order(self, platform: Platform, order: NormalizedOrder) -> StoreOutcome:
        try:
            record_id = await self._store.save(platform, order)
        except OrderConflictError:
            return AlreadyExists(platform, order.external_order_id)
        return Stored(record_id)
