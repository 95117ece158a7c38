"""WooCommerce order sync service.

WHAT:
    Pulls recent orders from WooCommerce and upserts them into our store:
    - New orders are converted, persisted and linked to their client
    - Existing orders are re-converted and written only when something
      material changed (status, items, totals, client)
    - Client aggregates are reconciled after every batch

WHY:
    - Enables both HTTP endpoints and the ARQ cron job to share the same logic
    - Sync is polled and re-runs over the same orders constantly; every step
      is idempotent and unchanged orders cost no writes and no activity noise
    - One bad order never aborts the batch

REFERENCES:
    - backoffice/services/woocommerce_client.py (API client)
    - backoffice/services/order_converter.py (payload -> order fields)
    - backoffice/services/client_resolver.py, client_stats.py (clients)
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from backoffice.models import (
    ActivityEntityEnum,
    ActivityTypeEnum,
    Order,
    OrderSourceEnum,
    utcnow,
)
from backoffice.schemas import WooOrder
from backoffice.services.activity_logger import Actor, log_activity
from backoffice.services.client_resolver import ClientResolution, resolve_client
from backoffice.services.client_stats import link_order, reconcile_all, unlink_order
from backoffice.services.order_converter import ConvertedOrder, convert_woocommerce_order
from backoffice.services.platform_credentials import (
    MISSING_CREDENTIALS_MESSAGE,
    ConfigurationError,
    PlatformCredentials,
)
from backoffice.services.woocommerce_client import WooCommerceAPIError, WooCommerceClient
from backoffice.telemetry import capture_exception, capture_message

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


# =============================================================================
# RESPONSE SCHEMAS
# =============================================================================
# WHAT: Dataclasses for sync response formatting
# WHY: Routers and the worker render the same structure

@dataclass
class OrderSyncStats:
    """Statistics from one order sync run."""
    new_orders: int = 0
    updated_orders: int = 0
    unchanged_orders: int = 0
    failed_orders: int = 0
    orders_with_unidentified_items: int = 0
    new_clients: int = 0
    updated_clients: int = 0
    clients_reconciled: int = 0
    duration_seconds: float = 0.0


@dataclass
class OrderSyncResponse:
    """Response from an order sync run."""
    success: bool
    stats: OrderSyncStats
    errors: List[str] = field(default_factory=list)
    message: str = ""


def configuration_failure(error: ConfigurationError, duration_seconds: float = 0.0) -> OrderSyncResponse:
    """Result for a sync that cannot start; the error text is shown as-is."""
    message = str(error)
    stats = OrderSyncStats(duration_seconds=duration_seconds)
    return OrderSyncResponse(success=False, stats=stats, errors=[message], message=message)


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def find_synced_order(db: Session, external_id: int) -> Optional[Order]:
    """Natural-key lookup: (source=woocommerce, external_id)."""
    return (
        db.query(Order)
        .filter(
            Order.source == OrderSourceEnum.woocommerce,
            Order.external_id == external_id,
        )
        .first()
    )


def _money(value: Any) -> Decimal:
    return Decimal(str(value or 0)).quantize(CENT)


def _item_key(item: Dict[str, Any]) -> str:
    # Local bookkeeping (id, picked, backfilled) is not part of the comparison
    comparable = {k: v for k, v in item.items() if k not in ("id", "picked", "backfilled")}
    return json.dumps(comparable, sort_keys=True, default=str)


def _signature(items: List[Dict[str, Any]]) -> List[str]:
    return sorted(_item_key(i) for i in items or [])


def _reapply_backfills(
    existing_items: List[Dict[str, Any]],
    items: List[Dict[str, Any]],
    unidentified: List[Dict[str, Any]],
) -> None:
    """Keep items resolved by the backfill resolved.

    An item backfilled by name still looks unidentified to the converter
    (its SKU does not match any barcode). Move it back into `items` using the
    stored item, matched on WooCommerce product id and quantity.
    """
    for stored in existing_items:
        if not stored.get("backfilled"):
            continue
        for candidate in unidentified:
            if (
                candidate.get("wc_product_id") == stored.get("wc_product_id")
                and candidate.get("quantity") == stored.get("quantity")
            ):
                unidentified.remove(candidate)
                items.append(dict(stored))
                break


def _carry_over_item_state(existing_items: List[Dict[str, Any]], items: List[Dict[str, Any]]) -> None:
    """Preserve ids and picked flags of items whose product and quantity are unchanged."""
    available = [dict(i) for i in existing_items or []]
    for item in items:
        for stored in available:
            if (
                stored.get("product_id") == item.get("product_id")
                and stored.get("quantity") == item.get("quantity")
            ):
                item["id"] = stored.get("id", item["id"])
                item["picked"] = bool(stored.get("picked", False))
                available.remove(stored)
                break


def _resolve_for(db: Session, converted: ConvertedOrder) -> Optional[ClientResolution]:
    intent = converted.client_intent
    if intent is None:
        return None
    return resolve_client(
        db,
        name=intent.name,
        email=intent.email,
        phone=intent.phone,
        address=intent.address,
    )


def _count_client(stats: OrderSyncStats, resolution: Optional[ClientResolution]) -> None:
    if resolution is None:
        return
    if resolution.is_new_client:
        stats.new_clients += 1
    else:
        stats.updated_clients += 1


# =============================================================================
# PER-ORDER PROCESSING
# =============================================================================

def _create_order(
    db: Session,
    converted: ConvertedOrder,
    actor: Actor,
    stats: OrderSyncStats,
) -> None:
    order = Order(**converted.order_fields())
    db.add(order)
    # Assigns the order id, needed before the client can be linked
    db.flush()

    resolution = _resolve_for(db, converted)
    if resolution is not None:
        order.client_id = resolution.client_id
        link_order(db, resolution.client_id, order.id, order.total, order.order_date)

    order_id, label = order.id, f"Order #{order.order_number}"
    db.commit()

    stats.new_orders += 1
    if converted.has_unidentified_items:
        stats.orders_with_unidentified_items += 1
    _count_client(stats, resolution)

    logger.info(f"[ORDER_SYNC] Created {label} (WooCommerce {converted.external_id})")
    log_activity(db, ActivityTypeEnum.added, ActivityEntityEnum.order, order_id, label, actor)


def _update_order(
    db: Session,
    existing: Order,
    converted: ConvertedOrder,
    actor: Actor,
    stats: OrderSyncStats,
) -> bool:
    """Apply material changes to an existing order. Returns False when unchanged."""
    resolution = _resolve_for(db, converted)
    # Without an email the current link is kept
    client_id = resolution.client_id if resolution is not None else existing.client_id

    existing_items = [dict(i) for i in existing.items or []]
    items = [dict(i) for i in converted.items]
    unidentified = [dict(u) for u in converted.unidentified_items]
    _reapply_backfills(existing_items, items, unidentified)
    _carry_over_item_state(existing_items, items)

    changes: Dict[str, Any] = {}
    if existing.status != converted.status:
        changes["status"] = converted.status
    if _signature(existing.items) != _signature(items):
        changes["items"] = items
    if _signature(existing.unidentified_items) != _signature(unidentified):
        changes["unidentified_items"] = unidentified
    if bool(existing.has_unidentified_items) != bool(unidentified):
        changes["has_unidentified_items"] = bool(unidentified)
    if _money(existing.total) != _money(converted.total):
        changes["subtotal"] = converted.subtotal
        changes["shipping_cost"] = converted.shipping_cost
        changes["tax"] = converted.tax
        changes["total"] = converted.total
    if client_id != existing.client_id:
        changes["client_id"] = client_id

    if not changes:
        # Idempotent; heals a link lost to an earlier partial failure
        if client_id and link_order(db, client_id, existing.id, existing.total, existing.order_date):
            logger.info(f"[ORDER_SYNC] Re-linked order {existing.id} to client {client_id}")
        db.commit()
        return False

    previous_client_id = existing.client_id
    for name, value in changes.items():
        setattr(existing, name, value)
    existing.updated_at = utcnow()

    if "client_id" in changes and previous_client_id:
        unlink_order(db, previous_client_id, existing.id)
    if client_id:
        # No-op when already linked; total changes are picked up by reconcile_all
        link_order(db, client_id, existing.id, existing.total, existing.order_date)

    order_id, label = existing.id, f"Order #{existing.order_number}"
    db.commit()

    stats.updated_orders += 1
    if unidentified and ("unidentified_items" in changes or "has_unidentified_items" in changes):
        stats.orders_with_unidentified_items += 1
    if "client_id" in changes:
        _count_client(stats, resolution)

    logger.info(f"[ORDER_SYNC] Updated {label}: {', '.join(sorted(changes))}")
    log_activity(db, ActivityTypeEnum.updated, ActivityEntityEnum.order, order_id, label, actor)
    return True


def sync_one_order(
    db: Session,
    payload: Dict[str, Any],
    actor: Actor,
    stats: OrderSyncStats,
) -> str:
    """Upsert a single WooCommerce order.

    Returns:
        "new", "updated" or "unchanged"

    Raises:
        Any conversion or persistence error; the batch loop handles it.
    """
    wc_order = WooOrder.model_validate(payload)
    existing = find_synced_order(db, wc_order.id)
    converted = convert_woocommerce_order(db, wc_order)

    if existing is None:
        _create_order(db, converted, actor, stats)
        return "new"

    if _update_order(db, existing, converted, actor, stats):
        return "updated"

    stats.unchanged_orders += 1
    return "unchanged"


# =============================================================================
# BATCH
# =============================================================================

async def sync_woocommerce_orders(
    db: Session,
    credentials: Optional[PlatformCredentials],
    actor: Actor,
    *,
    client: Optional[WooCommerceClient] = None,
    per_page: int = 100,
    max_pages: int = 1,
) -> OrderSyncResponse:
    """Sync recent WooCommerce orders.

    WHAT:
        1. Fetch up to `max_pages` pages of orders (newest first)
        2. Upsert each order (see sync_one_order), committing per order
        3. Reconcile all client aggregates

    Args:
        db: Database session
        credentials: Resolved WooCommerce credentials (None when not configured)
        actor: Who triggered the sync (recorded on activities)
        client: Optional pre-built API client (tests inject one)
        per_page: Orders per page (WooCommerce caps this at 100)
        max_pages: Page cap for one run

    Returns:
        OrderSyncResponse; `success` is False only when the batch could not
        be fetched at all.
    """
    start_time = time.time()
    stats = OrderSyncStats()
    errors: List[str] = []

    logger.info(f"[ORDER_SYNC] Starting order sync (actor={actor.uid}, max_pages={max_pages})")

    try:
        if credentials is None or not credentials.is_complete:
            raise ConfigurationError(MISSING_CREDENTIALS_MESSAGE)
        client = client or WooCommerceClient.from_credentials(credentials)
        payloads = await client.get_all_orders(per_page=per_page, max_pages=max_pages)
    except ConfigurationError as e:
        logger.error(f"[ORDER_SYNC] {e}")
        return configuration_failure(e, time.time() - start_time)
    except WooCommerceAPIError as e:
        error_msg = f"Failed to fetch orders from WooCommerce: {e}"
        logger.error(f"[ORDER_SYNC] {error_msg}")
        capture_exception(e, extra={"status_code": e.status_code})
        stats.duration_seconds = time.time() - start_time
        return OrderSyncResponse(success=False, stats=stats, errors=[error_msg], message=error_msg)

    logger.info(f"[ORDER_SYNC] Fetched {len(payloads)} orders from WooCommerce")

    for payload in payloads:
        external_id = payload.get("id") if isinstance(payload, dict) else None
        try:
            sync_one_order(db, payload, actor, stats)
        except Exception as e:
            db.rollback()
            stats.failed_orders += 1
            error_msg = f"Error processing order {external_id}: {e}"
            logger.error(f"[ORDER_SYNC] {error_msg}")
            errors.append(error_msg)
            capture_exception(e, extra={"external_id": external_id})

    try:
        reconcile = reconcile_all(db)
        stats.clients_reconciled = reconcile.clients_corrected
    except Exception as e:
        db.rollback()
        error_msg = f"Client reconciliation failed: {e}"
        logger.exception(f"[ORDER_SYNC] {error_msg}")
        errors.append(error_msg)
        capture_exception(e)

    stats.duration_seconds = time.time() - start_time

    message = (
        f"Synced {stats.new_orders} new and {stats.updated_orders} updated orders "
        f"({stats.unchanged_orders} unchanged)"
    )
    if stats.failed_orders:
        message += f", {stats.failed_orders} failed"
        capture_message(
            f"Order sync finished with {stats.failed_orders} failed order(s)",
            level="warning",
            extra={"errors": errors[:10]},
        )

    logger.info(
        f"[ORDER_SYNC] Completed in {stats.duration_seconds:.2f}s: "
        f"{stats.new_orders} new, {stats.updated_orders} updated, "
        f"{stats.unchanged_orders} unchanged, {stats.failed_orders} failed, "
        f"{stats.orders_with_unidentified_items} with unidentified items, "
        f"{stats.new_clients} new clients, {stats.clients_reconciled} clients reconciled"
    )

    return OrderSyncResponse(success=True, stats=stats, errors=errors, message=message)
