"""Resolve unidentified order items once a matching product exists.

WHAT:
    Called by the product-creation flow. Scans orders flagged with
    unidentified items and turns every item matching the new product (SKU
    equals barcode, or same name, both case-insensitive) into a regular
    order item.

WHY:
    Orders synced before a product was added to the catalog keep their
    unmatched lines; this closes the gap without waiting for a re-sync.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from backoffice.models import ActivityEntityEnum, ActivityTypeEnum, Order, utcnow
from backoffice.services.activity_logger import SYSTEM_ACTOR, Actor, log_activity
from backoffice.services.order_converter import build_order_item

logger = logging.getLogger(__name__)


@dataclass
class BackfillResult:
    updated_count: int = 0
    error: Optional[str] = None


def _norm(value: Optional[str]) -> str:
    return (value or "").strip().lower()


def _matches(item: Dict[str, Any], product_name: str, barcode: str) -> bool:
    sku = _norm(item.get("sku"))
    if barcode and sku and sku == barcode:
        return True
    return _norm(item.get("name")) == product_name


def _quantity(item: Dict[str, Any]) -> int:
    try:
        return int(item.get("quantity") or 0)
    except (TypeError, ValueError):
        return 0


def backfill_unidentified_items(
    db: Session,
    product_id: str,
    product_name: str,
    barcode: Optional[str] = None,
    price: Optional[Decimal] = None,
    actor: Actor = SYSTEM_ACTOR,
) -> BackfillResult:
    """Move unidentified items matching the product into the orders' items.

    Args:
        product_id: Id of the newly created product
        product_name: Its name (matched case-insensitively)
        barcode: Its barcode (matched against the item SKU)
        price: Its price; when None the unidentified item's own price is kept

    Returns:
        BackfillResult with the number of orders changed. Failures are
        reported in `error`, never raised.
    """
    if not product_id or not product_name:
        return BackfillResult(error="Product ID and name are required")

    name_key = _norm(product_name)
    barcode_key = _norm(barcode)
    result = BackfillResult()

    try:
        orders = (
            db.query(Order)
            .filter(Order.has_unidentified_items.is_(True))
            .order_by(Order.order_date)
            .all()
        )

        for order in orders:
            remaining = []
            added = []
            for item in order.unidentified_items or []:
                quantity = _quantity(item)
                # Lines without a usable quantity stay unidentified
                if quantity < 1 or not _matches(item, name_key, barcode_key):
                    remaining.append(item)
                    continue

                unit_price = Decimal(str(price)) if price is not None else Decimal(str(item.get("price") or 0))
                new_item = build_order_item(
                    product_id=product_id,
                    product_name=product_name,
                    quantity=quantity,
                    price=unit_price,
                    wc_product_id=item.get("wc_product_id"),
                )
                new_item["backfilled"] = True
                added.append(new_item)

            if not added:
                continue

            order.items = list(order.items or []) + added
            order.unidentified_items = remaining
            order.has_unidentified_items = bool(remaining)
            order.updated_at = utcnow()
            order_id, label = order.id, f"Order #{order.order_number}"
            db.commit()

            result.updated_count += 1
            logger.info(
                "[BACKFILL] %s: resolved %d item(s) with product %s, %d still unidentified",
                label, len(added), product_id, len(remaining),
            )
            log_activity(db, ActivityTypeEnum.updated, ActivityEntityEnum.order, order_id, label, actor)

    except Exception as e:
        db.rollback()
        logger.exception("[BACKFILL] Scan failed for product %s", product_id)
        result.error = str(e) or "An unknown error occurred"

    return result
