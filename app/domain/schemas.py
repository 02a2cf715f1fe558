"""
Order schemas - platform wire shapes, the canonical envelope and pipeline outcomes.

The three platform documents are never merged at the wire level: each has its
own model, and each normalized variant carries its ``platform`` tag so the
union below is discriminated on it.
"""
from __future__ import annotations

import enum
import json
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Platform(str, enum.Enum):
    UBER_EATS = "uber_eats"
    RAPPI = "rappi"
    DIDI_FOOD = "didi_food"

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]

    @property
    def slug(self) -> str:
        """Path segment used by the webhook routes (uber-eats, didi-food...)"""
        return self.value.replace("_", "-")


_DISPLAY_NAMES = {
    Platform.UBER_EATS: "Uber Eats",
    Platform.RAPPI: "Rappi",
    Platform.DIDI_FOOD: "Didi Food",
}


class OrderStatus(str, enum.Enum):
    RECEIVED = "received"
    CANCELLED = "cancelled"


class UberEatsEventType(str, enum.Enum):
    ORDER_NOTIFICATION = "orders.notification"
    ORDER_CANCEL = "orders.cancel"


# ============================================================================
# Wire shapes
# ============================================================================

class _WireModel(BaseModel):
    """Platform document; unknown fields are kept, presence is checked by the adapters"""

    model_config = ConfigDict(extra="allow")


class UberEatsOrder(_WireModel):
    """Order document returned by GET <resource_href>"""

    id: Optional[Union[str, int]] = None
    display_id: Optional[Union[str, int]] = None
    current_state: Optional[str] = None
    state: Optional[str] = None
    status: Optional[str] = None
    store: Optional[dict[str, Any]] = None

    @property
    def lifecycle_state(self) -> Optional[str]:
        # Older payloads carry `state`/`status` instead of `current_state`
        return self.current_state or self.state or self.status


class RappiOrder(_WireModel):
    code: Optional[Union[str, int]] = None
    total: Any = None


class DidiFoodOrder(_WireModel):
    order_number: Optional[Union[str, int]] = Field(default=None, alias="orderNumber")
    merchant_id: Optional[Union[str, int]] = Field(default=None, alias="merchantId")


class UberEatsWebhookEvent(_WireModel):
    """Envelope posted by Uber Eats; the order itself lives behind resource_href"""

    event_id: Optional[str] = None
    event_type: str
    event_time: Optional[int] = None
    resource_href: str
    meta: dict[str, Any] = Field(default_factory=dict)

    @field_validator("resource_href")
    @classmethod
    def validate_resource_href(cls, v: str) -> str:
        v = v.strip()
        if not v.startswith(("http://", "https://")):
            raise ValueError("resource_href must be an http(s) URL")
        return v


# ============================================================================
# Canonical envelope
# ============================================================================

def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """ISO-8601 in UTC with millisecond precision and a Z suffix"""
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class _NormalizedOrderBase(BaseModel):
    external_order_id: str
    raw_payload: dict[str, Any]
    processed_at: datetime = Field(default_factory=utcnow)
    status: OrderStatus = OrderStatus.RECEIVED

    def document(self) -> dict[str, Any]:
        """The stored document: the payload as received plus processedAt"""
        return {**self.raw_payload, "processedAt": format_timestamp(self.processed_at)}


class UberEatsNormalizedOrder(_NormalizedOrderBase):
    platform: Literal[Platform.UBER_EATS] = Platform.UBER_EATS
    order: UberEatsOrder


class RappiNormalizedOrder(_NormalizedOrderBase):
    platform: Literal[Platform.RAPPI] = Platform.RAPPI
    order: RappiOrder


class DidiFoodNormalizedOrder(_NormalizedOrderBase):
    platform: Literal[Platform.DIDI_FOOD] = Platform.DIDI_FOOD
    order: DidiFoodOrder


NormalizedOrder = Annotated[
    Union[UberEatsNormalizedOrder, RappiNormalizedOrder, DidiFoodNormalizedOrder],
    Field(discriminator="platform"),
]


class StoredOrder(BaseModel):
    """An order row as read back from the store"""

    model_config = ConfigDict(from_attributes=True)

    id: int
    platform: Platform
    external_order_id: str
    status: OrderStatus
    created_at: datetime
    updated_at: Optional[datetime] = None
    order_data: dict[str, Any]

    @field_validator("order_data", mode="before")
    @classmethod
    def parse_order_data(cls, v: Any) -> Any:
        if isinstance(v, (str, bytes)):
            return json.loads(v)
        return v


# ============================================================================
# Uber Eats credentials
# ============================================================================

class BearerToken(BaseModel):
    """Client-credentials token; never persisted"""

    model_config = ConfigDict(extra="ignore")

    access_token: str = Field(min_length=1)
    token_type: str = "Bearer"
    expires_in: int
    scope: str = ""
    # monotonic instant the token was received, for expiry checks
    issued_at: float = Field(default_factory=time.monotonic, exclude=True)

    def is_expired(self, slack_seconds: float = 0, now: float | None = None) -> bool:
        current = time.monotonic() if now is None else now
        return current >= self.issued_at + self.expires_in - slack_seconds

    @property
    def authorization_header(self) -> str:
        return f"Bearer {self.access_token}"


# ============================================================================
# Pipeline outcomes
# ============================================================================

@dataclass(frozen=True)
class Stored:
    record_id: int


@dataclass(frozen=True)
class AlreadyExists:
    platform: Platform
    external_order_id: str


@dataclass(frozen=True)
class Failed:
    error: Exception


StoreOutcome = Union[Stored, AlreadyExists, Failed]


@dataclass(frozen=True)
class WebhookResult:
    """What the platform gets back; HTTP status is always 200"""

    status: Literal["success", "error"]
    message: str
    outcome: Optional[StoreOutcome] = None

    @classmethod
    def success(cls, message: str, outcome: Optional[StoreOutcome] = None) -> "WebhookResult":
        return cls(status="success", message=message, outcome=outcome)

    @classmethod
    def error(cls, message: str, outcome: Optional[StoreOutcome] = None) -> "WebhookResult":
        return cls(status="error", message=message, outcome=outcome)

    @property
    def ok(self) -> bool:
        return self.status == "success"

    def to_response(self) -> dict[str, str]:
        return {"status": self.status, "message": self.message}
