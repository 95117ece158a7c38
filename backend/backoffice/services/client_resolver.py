"""Find-or-create clients from WooCommerce billing data.

WHAT:
    Resolves the client an order belongs to by email, creating the client on
    first sight and refreshing its contact details afterwards.

WHY:
    Orders only carry billing data; the client record is ours. Attaching the
    order id to the client (and counting it) is done separately by
    client_stats.link_order once the order row exists.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from backoffice.models import Client, OrderSourceEnum, utcnow
from backoffice.services.order_converter import UNKNOWN_CUSTOMER

logger = logging.getLogger(__name__)

SYNC_AUTHOR = "woocommerce-sync"


@dataclass
class ClientResolution:
    """Outcome of resolve_client."""
    client_id: str
    created: bool
    # Order count stored on the client before this order is linked
    # (1 for a client created just now, see _create_client)
    previous_order_count: int

    @property
    def is_new_client(self) -> bool:
        """Counts as a new client in sync stats while it has at most one order."""
        return self.created or self.previous_order_count <= 1


def normalize_email(email: Optional[str]) -> Optional[str]:
    if not email:
        return None
    email = email.strip().lower()
    return email or None


def find_client_by_email(db: Session, email: str) -> Optional[Client]:
    return (
        db.query(Client)
        .filter(func.lower(Client.email) == email)
        .order_by(Client.created_at)
        .first()
    )


def _has_content(address: Optional[Dict[str, str]]) -> bool:
    return bool(address) and any(v for v in address.values())


def _create_client(
    db: Session,
    name: str,
    email: str,
    phone: Optional[str],
    address: Optional[Dict[str, str]],
) -> Optional[Client]:
    client = Client(
        name=name,
        email=email,
        phone=phone or None,
        address=address if _has_content(address) else None,
        source=OrderSourceEnum.woocommerce,
        is_active=True,
        # Pre-incremented for the order being synced; link_order recomputes it
        total_orders=1,
        total_spent=0,
        average_order_value=0,
        order_ids=[],
        created_by=SYNC_AUTHOR,
        updated_by=SYNC_AUTHOR,
    )
    db.add(client)
    # A concurrent sync creating the same email fails here on the unique
    # index; the order is retried on the next run.
    db.flush()
    return client


def _apply_updates(
    client: Client,
    name: str,
    phone: Optional[str],
    address: Optional[Dict[str, str]],
) -> bool:
    """Write only non-blank values that differ from what is stored."""
    changed = False
    if name and name != UNKNOWN_CUSTOMER and name != client.name:
        client.name = name
        changed = True
    if phone and phone != client.phone:
        client.phone = phone
        changed = True
    if _has_content(address) and address != client.address:
        client.address = dict(address)
        changed = True
    if changed:
        client.updated_at = utcnow()
        client.updated_by = SYNC_AUTHOR
    return changed


def resolve_client(
    db: Session,
    name: str,
    email: Optional[str],
    phone: Optional[str] = None,
    address: Optional[Dict[str, str]] = None,
) -> Optional[ClientResolution]:
    """Find or create the client for `email`.

    Returns None when there is no email (guest checkout); the order is then
    stored without a client link.

    Changes are flushed, not committed; the caller owns the transaction.
    """
    email = normalize_email(email)
    if not email:
        return None

    client = find_client_by_email(db, email)
    if client is None:
        client = _create_client(db, name, email, phone, address)
        logger.info("[CLIENT_RESOLVE] Created client %s for %s", client.id, email)
        return ClientResolution(client_id=client.id, created=True, previous_order_count=client.total_orders)

    previous = client.total_orders or 0
    if _apply_updates(client, name, phone, address):
        db.flush()
        logger.debug("[CLIENT_RESOLVE] Updated contact details of client %s", client.id)

    return ClientResolution(client_id=client.id, created=False, previous_order_count=previous)
