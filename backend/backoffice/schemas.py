"""Pydantic schemas for the WooCommerce payload and request/response bodies."""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .models import OrderStatusEnum


# =============================================================================
# WooCommerce payload (input boundary)
# =============================================================================
# Raw orders from /wp-json/wc/v3/orders are validated here before anything
# reaches the converter. Order-level fields are lenient (defaults instead of
# errors); line items are strict so a broken one can be isolated.

class WooAddress(BaseModel):
    """Billing or shipping block of a WooCommerce order."""

    model_config = ConfigDict(extra="ignore")

    first_name: str = ""
    last_name: str = ""
    company: str = ""
    address_1: str = ""
    address_2: str = ""
    city: str = ""
    state: str = ""
    postcode: str = ""
    country: str = ""
    email: str = ""
    phone: str = ""

    @field_validator("*", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        if value is None:
            return ""
        return str(value).strip()


class WooLineItem(BaseModel):
    """One `line_items[]` entry. Validation errors mark the item as unparsable."""

    model_config = ConfigDict(extra="ignore")

    id: Optional[int] = None
    product_id: Optional[int] = None
    name: str = ""
    sku: str = ""
    quantity: int = Field(ge=1)
    price: Decimal = Decimal("0")
    total: Decimal = Decimal("0")

    @field_validator("name", "sku", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        if value is None:
            return ""
        return str(value).strip()

    @field_validator("price", "total", mode="before")
    @classmethod
    def _blank_money(cls, value: Any) -> Any:
        if value is None or value == "":
            return Decimal("0")
        return value


class WooOrder(BaseModel):
    """A WooCommerce order. Only `id` is required."""

    model_config = ConfigDict(extra="ignore")

    id: int
    number: str = ""
    status: str = ""
    date_created: Optional[datetime] = None
    date_created_gmt: Optional[datetime] = None
    billing: WooAddress = Field(default_factory=WooAddress)
    shipping: Optional[WooAddress] = None
    # Validated one by one in the converter
    line_items: List[Any] = Field(default_factory=list)
    # Money fields arrive as strings ("12.50"); parsed by the converter
    subtotal: Any = None
    shipping_total: Any = None
    total_tax: Any = None
    total: Any = None
    customer_note: str = ""
    payment_method: str = ""

    @field_validator("number", "status", "customer_note", "payment_method", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        if value is None:
            return ""
        return str(value).strip()

    @field_validator("date_created", "date_created_gmt", mode="before")
    @classmethod
    def _lenient_datetime(cls, value: Any) -> Optional[datetime]:
        if value in (None, ""):
            return None
        if isinstance(value, datetime):
            parsed = value
        else:
            try:
                parsed = datetime.fromisoformat(str(value))
            except ValueError:
                return None
        if parsed.tzinfo is not None:
            parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
        return parsed

    @field_validator("billing", mode="before")
    @classmethod
    def _default_billing(cls, value: Any) -> Any:
        if not isinstance(value, dict):
            return {}
        return value

    @field_validator("shipping", mode="before")
    @classmethod
    def _optional_shipping(cls, value: Any) -> Any:
        if not isinstance(value, dict):
            return None
        return value

    @field_validator("line_items", mode="before")
    @classmethod
    def _line_items_list(cls, value: Any) -> Any:
        if not isinstance(value, list):
            return []
        return value


# =============================================================================
# Order sync
# =============================================================================

class OrderSyncStatsOut(BaseModel):
    """Counters reported by one sync run."""

    new_orders: int = 0
    updated_orders: int = 0
    unchanged_orders: int = 0
    failed_orders: int = 0
    orders_with_unidentified_items: int = 0
    new_clients: int = 0
    updated_clients: int = 0
    clients_reconciled: int = 0
    duration_seconds: float = 0.0


class OrderSyncResponseOut(BaseModel):
    """Result of POST /orders/sync."""

    success: bool
    stats: OrderSyncStatsOut
    errors: List[str] = Field(default_factory=list)
    message: str = ""

    model_config = {
        "json_schema_extra": {
            "example": {
                "success": True,
                "stats": {
                    "new_orders": 3,
                    "updated_orders": 1,
                    "unchanged_orders": 96,
                    "failed_orders": 0,
                    "orders_with_unidentified_items": 1,
                    "new_clients": 2,
                    "updated_clients": 2,
                    "clients_reconciled": 0,
                    "duration_seconds": 4.2,
                },
                "errors": [],
                "message": "Synced 3 new and 1 updated orders",
            }
        }
    }


class EnqueueSyncResponse(BaseModel):
    """Result of POST /orders/sync/enqueue."""

    job_id: str
    queued: bool


class ReconcileResponse(BaseModel):
    clients_checked: int
    clients_corrected: int
    missing_orders: int


# =============================================================================
# Fulfillment status
# =============================================================================

class OrderStatusUpdate(BaseModel):
    """Payload for changing an order's status from the fulfillment screen."""

    status: OrderStatusEnum = Field(description="New internal status", examples=["shipped"])


class OrderStatusUpdateResponse(BaseModel):
    order_id: str
    status: OrderStatusEnum
    pushed: bool = Field(description="True when WooCommerce accepted the new status")
    external_status: Optional[str] = None
    push_error: Optional[str] = None


# =============================================================================
# Backfill
# =============================================================================

class BackfillRequest(BaseModel):
    """Sent by the product-creation flow right after a product is saved."""

    product_id: str
    product_name: str
    barcode: Optional[str] = None
    price: Optional[Decimal] = None


class BackfillResponse(BaseModel):
    updated_count: int
    error: Optional[str] = None


# =============================================================================
# WooCommerce settings
# =============================================================================

class WooCommerceSettingsIn(BaseModel):
    """Payload for saving WooCommerce credentials.

    Leaving `consumer_secret` out keeps the stored secret.
    """

    store_url: str = Field(min_length=1, examples=["https://shop.example.com"])
    consumer_key: str = Field(min_length=1)
    consumer_secret: Optional[str] = None


class WooCommerceSettingsOut(BaseModel):
    store_url: Optional[str] = None
    consumer_key: Optional[str] = None
    has_consumer_secret: bool = False
    updated_at: Optional[datetime] = None


class ConnectionTestResponse(BaseModel):
    success: bool
    message: Optional[str] = None
    error: Optional[str] = None


# =============================================================================
# Health
# =============================================================================

class HealthResponse(BaseModel):
    status: str = Field(description="Service status", examples=["ok"])
