"""WooCommerce order -> internal order conversion.

WHAT:
    Turns one WooCommerce order payload into the fields of an `Order` row
    (not yet persisted) plus the data needed to resolve its client.

WHY:
    - Sync needs the same conversion for new orders and for change detection
      on existing ones.
    - Line items are split here: SKUs found in the catalog become order items
      priced from our catalog, everything else becomes an unidentified item
      carrying the store's own price and totals.

A single broken line item never aborts the conversion; it is kept as an
unidentified item with whatever fields could be read.

REFERENCES:
    - backoffice/services/status_mapper.py
    - backoffice/services/catalog_matcher.py
    - backoffice/services/order_sync_service.py (caller)
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError
from sqlalchemy.orm import Session

from backoffice.models import OrderSourceEnum, OrderStatusEnum, utcnow
from backoffice.schemas import WooAddress, WooLineItem, WooOrder
from backoffice.services.catalog_matcher import find_product_by_sku
from backoffice.services.status_mapper import to_internal_status

logger = logging.getLogger(__name__)

UNKNOWN_CUSTOMER = "Unknown Customer"
DEFAULT_PAYMENT_METHOD = "other"
CENT = Decimal("0.01")

# Components copied from shipping, falling back to billing one by one
_ADDRESS_COMPONENTS = (
    "first_name",
    "last_name",
    "company",
    "address_1",
    "address_2",
    "city",
    "state",
    "postcode",
    "country",
)


# =============================================================================
# RESULT TYPES
# =============================================================================

@dataclass
class ClientIntent:
    """Who the order should be attributed to (only built when there is an email)."""
    name: str
    email: str
    phone: Optional[str] = None
    address: Optional[Dict[str, str]] = None


@dataclass
class ConvertedOrder:
    """Internal representation of one WooCommerce order."""
    external_id: int
    order_number: str
    customer_name: str
    customer_email: Optional[str]
    order_date: datetime
    status: OrderStatusEnum
    items: List[Dict[str, Any]] = field(default_factory=list)
    unidentified_items: List[Dict[str, Any]] = field(default_factory=list)
    shipping_address: Dict[str, str] = field(default_factory=dict)
    billing_address: Dict[str, str] = field(default_factory=dict)
    subtotal: Decimal = Decimal("0")
    shipping_cost: Decimal = Decimal("0")
    tax: Decimal = Decimal("0")
    total: Decimal = Decimal("0")
    payment_method: str = DEFAULT_PAYMENT_METHOD
    notes: str = ""
    client_intent: Optional[ClientIntent] = None

    @property
    def has_unidentified_items(self) -> bool:
        return len(self.unidentified_items) > 0

    def order_fields(self) -> Dict[str, Any]:
        """Column values for a new `Order` row."""
        return {
            "external_id": self.external_id,
            "order_number": self.order_number,
            "customer_name": self.customer_name,
            "customer_email": self.customer_email,
            "order_date": self.order_date,
            "status": self.status,
            "items": self.items,
            "unidentified_items": self.unidentified_items,
            "has_unidentified_items": self.has_unidentified_items,
            "shipping_address": self.shipping_address,
            "billing_address": self.billing_address,
            "subtotal": self.subtotal,
            "shipping_cost": self.shipping_cost,
            "tax": self.tax,
            "total": self.total,
            "payment_method": self.payment_method,
            "notes": self.notes,
            "source": OrderSourceEnum.woocommerce,
            "packing_slip_printed": False,
        }


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def _parse_money(value: Any, *, field_name: str, order_id: Any = None) -> Decimal:
    """Parse a WooCommerce money value. Absent or non-numeric values become 0.

    WHAT: "12.5" -> Decimal("12.50"), None -> 0, "abc" -> 0 (warning)
    WHY: The store sends amounts as strings and plugins sometimes send junk.
    """
    if value is None or value == "":
        return Decimal("0")
    if isinstance(value, bool):
        logger.warning("[ORDER_CONVERT] Order %s: boolean %s, using 0", order_id, field_name)
        return Decimal("0")
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        logger.warning(
            "[ORDER_CONVERT] Order %s: unparsable %s %r, using 0", order_id, field_name, value
        )
        return Decimal("0")
    if not amount.is_finite():
        logger.warning(
            "[ORDER_CONVERT] Order %s: non-finite %s %r, using 0", order_id, field_name, value
        )
        return Decimal("0")
    return amount.quantize(CENT)


def _parse_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def money_to_json(amount: Decimal) -> float:
    """Money as stored inside JSON item lists (2 decimals)."""
    return float(Decimal(amount).quantize(CENT))


def _address_dict(address: WooAddress) -> Dict[str, str]:
    return address.model_dump()


def _shipping_address(billing: WooAddress, shipping: Optional[WooAddress]) -> Dict[str, str]:
    result = {}
    for component in _ADDRESS_COMPONENTS:
        shipped = getattr(shipping, component, "") if shipping is not None else ""
        result[component] = shipped or getattr(billing, component)
    # Contact details only exist on billing
    result["email"] = billing.email
    result["phone"] = billing.phone
    return result


def _customer_name(billing: WooAddress) -> str:
    name = f"{billing.first_name} {billing.last_name}".strip()
    return name or UNKNOWN_CUSTOMER


def build_order_item(
    product_id: str,
    product_name: str,
    quantity: int,
    price: Decimal,
    wc_product_id: Optional[int] = None,
) -> Dict[str, Any]:
    """A matched order item as stored in `Order.items`."""
    item = {
        "id": uuid.uuid4().hex,
        "product_id": product_id,
        "product_name": product_name,
        "quantity": quantity,
        "price": money_to_json(price),
        "total": money_to_json(Decimal(price) * quantity),
        "picked": False,
    }
    if wc_product_id is not None:
        item["wc_product_id"] = wc_product_id
    return item


def _unidentified_item(line: WooLineItem) -> Dict[str, Any]:
    return {
        "wc_product_id": line.product_id,
        "sku": line.sku,
        "name": line.name,
        "price": money_to_json(line.price),
        "quantity": line.quantity,
        "total": money_to_json(line.total),
    }


def _best_effort_unidentified(raw: Any, order_id: Any) -> Dict[str, Any]:
    """Salvage what we can from a line item that failed validation."""
    if not isinstance(raw, dict):
        return {
            "wc_product_id": None,
            "sku": "",
            "name": str(raw) if raw is not None else "",
            "price": 0.0,
            "quantity": 0,
            "total": 0.0,
        }

    wc_product_id = raw.get("product_id")
    return {
        "wc_product_id": _parse_int(wc_product_id, default=None) if wc_product_id is not None else None,
        "sku": str(raw.get("sku") or "").strip(),
        "name": str(raw.get("name") or "").strip(),
        "price": money_to_json(_parse_money(raw.get("price"), field_name="line price", order_id=order_id)),
        "quantity": _parse_int(raw.get("quantity")),
        "total": money_to_json(_parse_money(raw.get("total"), field_name="line total", order_id=order_id)),
    }


def _split_line_items(db: Session, wc_order: WooOrder):
    items: List[Dict[str, Any]] = []
    unidentified: List[Dict[str, Any]] = []

    for raw in wc_order.line_items:
        try:
            line = WooLineItem.model_validate(raw)
        except ValidationError as e:
            logger.warning(
                "[ORDER_CONVERT] Order %s: malformed line item kept as unidentified (%s)",
                wc_order.id, e.errors()[0].get("msg") if e.errors() else e,
            )
            unidentified.append(_best_effort_unidentified(raw, wc_order.id))
            continue

        product = find_product_by_sku(db, line.sku)
        if product is None:
            unidentified.append(_unidentified_item(line))
            continue

        items.append(build_order_item(
            product_id=product.id,
            product_name=product.name,
            quantity=line.quantity,
            price=Decimal(product.price or 0),
            wc_product_id=line.product_id,
        ))

    return items, unidentified


# =============================================================================
# CONVERSION
# =============================================================================

def convert_woocommerce_order(db: Session, payload: Union[WooOrder, Dict[str, Any]]) -> ConvertedOrder:
    """Convert one WooCommerce order.

    Args:
        db: Session used for catalog lookups only (nothing is written).
        payload: Raw order dict or an already validated `WooOrder`.

    Returns:
        ConvertedOrder with items split into matched and unidentified.

    Raises:
        pydantic.ValidationError: If the order itself has no usable id.
    """
    wc_order = payload if isinstance(payload, WooOrder) else WooOrder.model_validate(payload)

    items, unidentified = _split_line_items(db, wc_order)

    billing = wc_order.billing
    email = billing.email.lower() or None
    customer_name = _customer_name(billing)

    subtotal_raw = wc_order.subtotal
    if subtotal_raw is None or subtotal_raw == "":
        subtotal = sum(
            (Decimal(str(i["total"])) for i in items + unidentified),
            Decimal("0"),
        ).quantize(CENT)
    else:
        subtotal = _parse_money(subtotal_raw, field_name="subtotal", order_id=wc_order.id)

    converted = ConvertedOrder(
        external_id=wc_order.id,
        order_number=wc_order.number or str(wc_order.id),
        customer_name=customer_name,
        customer_email=email,
        order_date=wc_order.date_created_gmt or wc_order.date_created or utcnow(),
        status=to_internal_status(wc_order.status),
        items=items,
        unidentified_items=unidentified,
        shipping_address=_shipping_address(billing, wc_order.shipping),
        billing_address=_address_dict(billing),
        subtotal=subtotal,
        shipping_cost=_parse_money(wc_order.shipping_total, field_name="shipping_total", order_id=wc_order.id),
        tax=_parse_money(wc_order.total_tax, field_name="total_tax", order_id=wc_order.id),
        total=_parse_money(wc_order.total, field_name="total", order_id=wc_order.id),
        payment_method=wc_order.payment_method or DEFAULT_PAYMENT_METHOD,
        notes=wc_order.customer_note,
    )

    if email:
        converted.client_intent = ClientIntent(
            name=customer_name,
            email=email,
            phone=billing.phone or None,
            address=_address_dict(billing),
        )

    if unidentified:
        logger.info(
            "[ORDER_CONVERT] Order %s has %d unidentified item(s)", wc_order.id, len(unidentified)
        )

    return converted
