"""Catalog lookup by WooCommerce SKU.

WooCommerce SKUs are stored on our products as `barcode`.
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.orm import Session

from backoffice.models import Product

logger = logging.getLogger(__name__)


def find_product_by_sku(db: Session, sku: Optional[str]) -> Optional[Product]:
    """Return the catalog product whose barcode equals `sku`, or None.

    Empty SKUs never hit the database. When several products share the same
    barcode the oldest one wins and a warning is logged.
    """
    if sku is None:
        return None
    sku = sku.strip()
    if not sku:
        return None

    matches = (
        db.query(Product)
        .filter(Product.barcode == sku)
        .order_by(Product.created_at, Product.id)
        .limit(2)
        .all()
    )
    if not matches:
        return None

    if len(matches) > 1:
        logger.warning(
            "[CATALOG] Duplicate barcode %r on products %s and %s, using the first",
            sku, matches[0].id, matches[1].id,
        )
    return matches[0]
