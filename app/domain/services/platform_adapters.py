"""
Platform schema adapters - one per delivery platform.

Each adapter maps a platform-native order document to the canonical
normalized envelope, or fails with OrderValidationError. Validation is a
presence check on the fields each platform needs to identify an order; the
document itself is kept verbatim.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Mapping, Optional

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from app.core.exceptions import OrderValidationError
from app.domain.schemas import (
    DidiFoodNormalizedOrder,
    DidiFoodOrder,
    NormalizedOrder,
    Platform,
    RappiNormalizedOrder,
    RappiOrder,
    UberEatsEventType,
    UberEatsNormalizedOrder,
    UberEatsOrder,
    UberEatsWebhookEvent,
    utcnow,
)


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, dict, tuple)):
        return not value
    return False


def _describe_errors(exc: PydanticValidationError) -> str:
    """First few pydantic errors as 'field: reason'"""
    parts = []
    for err in exc.errors()[:3]:
        location = ".".join(str(p) for p in err.get("loc", ())) or "payload"
        parts.append(f"{location}: {err.get('msg', 'invalid')}")
    return "; ".join(parts)


class PlatformAdapter(ABC):
    """
    Contract: ``validate(raw_order) -> NormalizedOrder`` or OrderValidationError.

    Subclasses declare their wire model, their normalized variant and which
    fields must be present. Pure - no I/O, no shared state.
    """

    platform: Platform
    wire_model: type[BaseModel]
    normalized_model: type[BaseModel]

    @abstractmethod
    def required_fields(self, order: Any) -> dict[str, Any]:
        """Field name (as reported in errors) -> value found in the document"""

    @abstractmethod
    def external_order_id(self, order: Any) -> Any:
        """Platform-native identifier used as the dedup key"""

    def invalid(self, reason: str, missing: Optional[list[str]] = None) -> OrderValidationError:
        return OrderValidationError(
            f"Invalid {self.platform.display_name} order structure: {reason}",
            platform=self.platform.value,
            missing_fields=missing,
        )

    def validate(self, raw_order: Any, *, now: Optional[datetime] = None) -> NormalizedOrder:
        if not isinstance(raw_order, dict):
            raise self.invalid("payload is not a JSON object")

        try:
            order = self.wire_model.model_validate(raw_order)
        except PydanticValidationError as exc:
            raise self.invalid(_describe_errors(exc)) from exc

        missing = [name for name, value in self.required_fields(order).items() if _is_blank(value)]
        if missing:
            raise self.invalid(f"missing {' or '.join(missing)}", missing)

        return self.normalized_model(
            external_order_id=str(self.external_order_id(order)).strip(),
            raw_payload=dict(raw_order),
            processed_at=now or utcnow(),
            order=order,
        )


class UberEatsAdapter(PlatformAdapter):
    platform = Platform.UBER_EATS
    wire_model = UberEatsOrder
    normalized_model = UberEatsNormalizedOrder

    def required_fields(self, order: UberEatsOrder) -> dict[str, Any]:
        return {"id": order.id, "state": order.lifecycle_state}

    def external_order_id(self, order: UberEatsOrder) -> Any:
        return order.id


class RappiAdapter(PlatformAdapter):
    platform = Platform.RAPPI
    wire_model = RappiOrder
    normalized_model = RappiNormalizedOrder

    def required_fields(self, order: RappiOrder) -> dict[str, Any]:
        return {"code": order.code, "total": order.total}

    def external_order_id(self, order: RappiOrder) -> Any:
        return order.code


class DidiFoodAdapter(PlatformAdapter):
    platform = Platform.DIDI_FOOD
    wire_model = DidiFoodOrder
    normalized_model = DidiFoodNormalizedOrder

    def required_fields(self, order: DidiFoodOrder) -> dict[str, Any]:
        return {"orderNumber": order.order_number, "merchantId": order.merchant_id}

    def external_order_id(self, order: DidiFoodOrder) -> Any:
        return order.order_number


def default_adapters() -> dict[Platform, PlatformAdapter]:
    """One adapter per platform; fails loudly if a platform was added without one"""
    adapters: dict[Platform, PlatformAdapter] = {
        adapter.platform: adapter
        for adapter in (UberEatsAdapter(), RappiAdapter(), DidiFoodAdapter())
    }
    ensure_all_platforms(adapters)
    return adapters


def ensure_all_platforms(adapters: Mapping[Platform, PlatformAdapter]) -> None:
    missing = set(Platform) - set(adapters)
    if missing:
        raise ValueError(f"No adapter registered for: {', '.join(sorted(p.value for p in missing))}")


def parse_uber_eats_event(raw_body: Any) -> UberEatsWebhookEvent:
    """
    Validate the Uber Eats webhook envelope before any outbound call.

    Only orders.notification and orders.cancel continue the pipeline.
    """
    if not isinstance(raw_body, dict):
        raise OrderValidationError(
            "Invalid Uber Eats webhook: payload is not a JSON object",
            platform=Platform.UBER_EATS.value,
        )

    try:
        event = UberEatsWebhookEvent.model_validate(raw_body)
    except PydanticValidationError as exc:
        missing = [
            str(err["loc"][0]) for err in exc.errors()
            if err.get("type") == "missing" and err.get("loc")
        ]
        raise OrderValidationError(
            f"Invalid Uber Eats webhook: {_describe_errors(exc)}",
            platform=Platform.UBER_EATS.value,
            missing_fields=missing or None,
        ) from exc

    try:
        UberEatsEventType(event.event_type)
    except ValueError:
        raise OrderValidationError(
            f"Unsupported Uber Eats event type: {event.event_type}",
            platform=Platform.UBER_EATS.value,
            details={"event_id": event.event_id},
        ) from None

    return event
