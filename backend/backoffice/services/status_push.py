"""Push internal order status changes back to WooCommerce.

WHAT:
    - push_order_status: send one status to the store (best effort)
    - update_order_status_for_fulfillment: change the internal status, then push

WHY:
    Our store is the system of record. A failed push is reported to the
    caller but never undoes the internal change; the next successful push
    or a manual fix on the store brings WooCommerce back in line.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Union

from sqlalchemy.orm import Session

from backoffice.models import (
    ActivityEntityEnum,
    ActivityTypeEnum,
    Order,
    OrderSourceEnum,
    OrderStatusEnum,
    utcnow,
)
from backoffice.services.activity_logger import Actor, log_activity
from backoffice.services.platform_credentials import MISSING_CREDENTIALS_MESSAGE, PlatformCredentials
from backoffice.services.status_mapper import to_external_status
from backoffice.services.woocommerce_client import WooCommerceAPIError, WooCommerceClient
from backoffice.telemetry import capture_exception

logger = logging.getLogger(__name__)


@dataclass
class StatusPushResult:
    success: bool
    external_status: Optional[str] = None
    error: Optional[str] = None


@dataclass
class FulfillmentStatusResult:
    order: Order
    push: Optional[StatusPushResult] = None


async def push_order_status(
    credentials: Optional[PlatformCredentials],
    external_id: int,
    internal_status: Union[OrderStatusEnum, str],
    *,
    client: Optional[WooCommerceClient] = None,
) -> StatusPushResult:
    """Send `internal_status` (mapped to the store vocabulary) for one order.

    Never raises; failures come back as `success=False` with a message.
    """
    external_status = to_external_status(internal_status)

    if credentials is None or not credentials.is_complete:
        logger.warning("[STATUS_PUSH] Skipping order %s: credentials not configured", external_id)
        return StatusPushResult(success=False, external_status=external_status, error=MISSING_CREDENTIALS_MESSAGE)

    client = client or WooCommerceClient.from_credentials(credentials)
    try:
        await client.update_order_status(external_id, external_status)
    except WooCommerceAPIError as e:
        logger.error("[STATUS_PUSH] Failed to push %s for order %s: %s", external_status, external_id, e)
        capture_exception(e, extra={"external_id": external_id, "status": external_status})
        return StatusPushResult(success=False, external_status=external_status, error=str(e))

    logger.info("[STATUS_PUSH] Order %s set to %s on WooCommerce", external_id, external_status)
    return StatusPushResult(success=True, external_status=external_status)


async def update_order_status_for_fulfillment(
    db: Session,
    order_id: str,
    new_status: Union[OrderStatusEnum, str],
    actor: Actor,
    credentials: Optional[PlatformCredentials],
    *,
    client: Optional[WooCommerceClient] = None,
) -> Optional[FulfillmentStatusResult]:
    """Change an order's status from a fulfillment action.

    The internal status is committed first; the push to WooCommerce only
    happens for orders that came from it.

    Returns:
        None when the order does not exist.
    """
    order = db.get(Order, order_id)
    if order is None:
        return None

    status = OrderStatusEnum(new_status)
    if status != order.status:
        order.status = status
        order.updated_at = utcnow()
        if status in (OrderStatusEnum.shipped, OrderStatusEnum.completed) and order.fulfilled_at is None:
            order.fulfilled_at = utcnow()
            order.fulfilled_by = actor.uid
        db.commit()
        log_activity(
            db,
            ActivityTypeEnum.updated,
            ActivityEntityEnum.order,
            order.id,
            f"Order #{order.order_number}",
            actor,
        )

    result = FulfillmentStatusResult(order=order)
    if order.source == OrderSourceEnum.woocommerce and order.external_id is not None:
        result.push = await push_order_status(credentials, order.external_id, status, client=client)
    return result
