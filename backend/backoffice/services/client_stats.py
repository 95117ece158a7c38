"""Client order aggregates.

WHAT:
    Keeps `Client.total_orders`, `total_spent`, `average_order_value` and
    `last_order_date` in line with the orders listed in `Client.order_ids`.

WHY:
    Sync runs over the same orders again and again. `order_ids` is what
    makes linking idempotent (an order already listed is never counted
    twice), and `reconcile_all` rebuilds every aggregate from the orders
    themselves so any drift heals on the next run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.orm import Session

from backoffice.models import Client, Order, OrderSourceEnum, utcnow

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


@dataclass
class ReconcileStats:
    clients_checked: int = 0
    clients_corrected: int = 0
    missing_orders: int = 0


def _money(value) -> Decimal:
    return Decimal(str(value or 0)).quantize(CENT)


def _average(total_spent: Decimal, total_orders: int) -> Decimal:
    if total_orders <= 0:
        return Decimal("0.00")
    return (total_spent / total_orders).quantize(CENT)


def _lock_client(db: Session, client_id: str) -> Optional[Client]:
    # Row lock serializes concurrent read-modify-write of order_ids (no-op on SQLite)
    return (
        db.query(Client)
        .filter(Client.id == client_id)
        .with_for_update()
        .one_or_none()
    )


def link_order(
    db: Session,
    client_id: str,
    order_id: str,
    order_total,
    order_date: Optional[datetime] = None,
) -> bool:
    """Count `order_id` towards the client's aggregates exactly once.

    Returns True when the order was linked, False when it already was (or
    the client does not exist). Flushes; the caller commits so the list and
    the aggregates land in the same transaction.
    """
    client = _lock_client(db, client_id)
    if client is None:
        logger.warning("[CLIENT_STATS] Cannot link order %s: client %s not found", order_id, client_id)
        return False

    order_ids: List[str] = list(client.order_ids or [])
    if order_id in order_ids:
        return False

    order_ids.append(order_id)
    total_spent = _money(client.total_spent) + _money(order_total)

    client.order_ids = order_ids
    # Recomputed from the list, which also undoes the creation pre-increment
    client.total_orders = len(order_ids)
    client.total_spent = total_spent
    client.average_order_value = _average(total_spent, len(order_ids))
    order_date = order_date or utcnow()
    if client.last_order_date is None or order_date > client.last_order_date:
        client.last_order_date = order_date
    db.flush()

    logger.debug(
        "[CLIENT_STATS] Linked order %s to client %s (orders=%d, spent=%s)",
        order_id, client_id, client.total_orders, total_spent,
    )
    return True


def unlink_order(db: Session, client_id: str, order_id: str) -> bool:
    """Remove `order_id` from the client and rebuild its aggregates."""
    client = _lock_client(db, client_id)
    if client is None:
        return False

    order_ids = list(client.order_ids or [])
    if order_id not in order_ids:
        return False

    order_ids.remove(order_id)
    client.order_ids = order_ids
    reconcile_client(db, client)
    db.flush()
    logger.debug("[CLIENT_STATS] Unlinked order %s from client %s", order_id, client_id)
    return True


def reconcile_client(db: Session, client: Client) -> tuple[bool, int]:
    """Recompute one client's aggregates strictly from its linked orders.

    Order ids whose order no longer exists are dropped from the list.

    Returns:
        (changed, missing_count)
    """
    order_ids = list(client.order_ids or [])
    orders = []
    if order_ids:
        orders = db.query(Order).filter(Order.id.in_(order_ids)).all()

    found = {o.id for o in orders}
    kept_ids = [oid for oid in order_ids if oid in found]
    missing = len(order_ids) - len(kept_ids)
    if missing:
        logger.warning(
            "[CLIENT_STATS] Client %s references %d missing order(s), dropping them",
            client.id, missing,
        )

    total_orders = len(orders)
    total_spent = sum((_money(o.total) for o in orders), Decimal("0.00"))
    average = _average(total_spent, total_orders)
    last_order_date = max((o.order_date for o in orders if o.order_date), default=client.last_order_date)

    changed = (
        kept_ids != order_ids
        or client.total_orders != total_orders
        or _money(client.total_spent) != total_spent
        or _money(client.average_order_value) != average
        or client.last_order_date != last_order_date
    )
    if not changed:
        return False, missing

    client.order_ids = kept_ids
    client.total_orders = total_orders
    client.total_spent = total_spent
    client.average_order_value = average
    client.last_order_date = last_order_date
    return True, missing


def reconcile_all(db: Session) -> ReconcileStats:
    """Self-healing pass over every client with linked orders.

    Also zeroes WooCommerce-created clients that never got an order linked
    (creation pre-increments their count). Safe to run at any time.
    """
    stats = ReconcileStats()

    for client in db.query(Client).order_by(Client.id).all():
        if not client.order_ids:
            if client.source != OrderSourceEnum.woocommerce or not (
                client.total_orders or _money(client.total_spent)
            ):
                continue

        stats.clients_checked += 1
        changed, missing = reconcile_client(db, client)
        stats.missing_orders += missing
        if changed:
            stats.clients_corrected += 1
            client.updated_at = utcnow()
            logger.info(
                "[CLIENT_STATS] Corrected client %s: orders=%d spent=%s",
                client.id, client.total_orders, client.total_spent,
            )

    db.commit()
    logger.info(
        "[CLIENT_STATS] Reconciled %d client(s), corrected %d",
        stats.clients_checked, stats.clients_corrected,
    )
    return stats
