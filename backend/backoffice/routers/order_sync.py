"""Order synchronization endpoints.

WHAT:
    Thin HTTP wrappers for the order sync, status push-back, backfill and
    client reconciliation services.

WHY:
    - Routers handle auth + request parsing only
    - Business logic reused by both HTTP calls and the ARQ worker
    - Services report failures in their result; only request-level problems
      (unknown order, unauthenticated) become HTTP errors

REFERENCES:
    - backoffice/services/order_sync_service.py
    - backoffice/services/status_push.py
    - backoffice/services/unidentified_backfill.py
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from backoffice.database import get_db
from backoffice.deps import Settings, get_current_actor, get_settings
from backoffice.schemas import (
    BackfillRequest,
    BackfillResponse,
    EnqueueSyncResponse,
    OrderStatusUpdate,
    OrderStatusUpdateResponse,
    OrderSyncResponseOut,
    OrderSyncStatsOut,
    ReconcileResponse,
)
from backoffice.services.activity_logger import Actor
from backoffice.services.client_stats import reconcile_all
from backoffice.services.order_sync_service import (
    OrderSyncResponse,
    configuration_failure,
    sync_woocommerce_orders,
)
from backoffice.services.platform_credentials import (
    ConfigurationError,
    PlatformCredentials,
    load_platform_credentials,
)
from backoffice.services.status_push import update_order_status_for_fulfillment
from backoffice.services.unidentified_backfill import backfill_unidentified_items
from backoffice.services.woocommerce_client import WooCommerceClient

logger = logging.getLogger(__name__)


# =============================================================================
# Helpers
# =============================================================================

def _to_api_response(result: OrderSyncResponse) -> OrderSyncResponseOut:
    """Convert the service dataclass to the API response model."""
    return OrderSyncResponseOut(
        success=result.success,
        stats=OrderSyncStatsOut(
            new_orders=result.stats.new_orders,
            updated_orders=result.stats.updated_orders,
            unchanged_orders=result.stats.unchanged_orders,
            failed_orders=result.stats.failed_orders,
            orders_with_unidentified_items=result.stats.orders_with_unidentified_items,
            new_clients=result.stats.new_clients,
            updated_clients=result.stats.updated_clients,
            clients_reconciled=result.stats.clients_reconciled,
            duration_seconds=round(result.stats.duration_seconds, 3),
        ),
        errors=result.errors,
        message=result.message,
    )


def _credentials_or_none(db: Session) -> Optional[PlatformCredentials]:
    try:
        return load_platform_credentials(db)
    except ConfigurationError as e:
        logger.warning("[ORDER_SYNC] %s", e)
        return None


# =============================================================================
# Router setup
# =============================================================================

router = APIRouter(prefix="/orders", tags=["Orders"])


@router.post("/sync", response_model=OrderSyncResponseOut)
async def sync_orders(
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    settings: Settings = Depends(get_settings),
) -> OrderSyncResponseOut:
    """Pull recent orders from WooCommerce and upsert them.

    Missing credentials or an unreachable store come back as
    `success=false` with the reason in `message`.
    """
    logger.info("[ORDER_SYNC] HTTP sync requested by %s", actor.uid)

    try:
        credentials = load_platform_credentials(db)
    except ConfigurationError as e:
        logger.warning("[ORDER_SYNC] %s", e)
        return _to_api_response(configuration_failure(e))

    client = WooCommerceClient.from_credentials(
        credentials, timeout=settings.WOOCOMMERCE_TIMEOUT_SECONDS
    )

    result = await sync_woocommerce_orders(
        db,
        credentials,
        actor,
        client=client,
        per_page=settings.ORDER_SYNC_PAGE_SIZE,
        max_pages=settings.ORDER_SYNC_MAX_PAGES,
    )
    return _to_api_response(result)


@router.post("/sync/enqueue", response_model=EnqueueSyncResponse, status_code=status.HTTP_202_ACCEPTED)
async def enqueue_order_sync(
    actor: Actor = Depends(get_current_actor),
) -> EnqueueSyncResponse:
    """Queue a sync on the ARQ worker. Triggers while one is queued collapse into it."""
    from backoffice.workers.arq_enqueue import enqueue_order_sync_job

    job_id = await enqueue_order_sync_job(actor)
    return EnqueueSyncResponse(job_id=job_id or "", queued=job_id is not None)


@router.post("/{order_id}/status", response_model=OrderStatusUpdateResponse)
async def update_order_status(
    order_id: str,
    payload: OrderStatusUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> OrderStatusUpdateResponse:
    """Change an order's status and push it to WooCommerce.

    The internal change is kept even when the push fails (`pushed=false`).
    """
    credentials = _credentials_or_none(db)
    result = await update_order_status_for_fulfillment(db, order_id, payload.status, actor, credentials)
    if result is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")

    push = result.push
    return OrderStatusUpdateResponse(
        order_id=order_id,
        status=result.order.status,
        pushed=bool(push and push.success),
        external_status=push.external_status if push else None,
        push_error=push.error if push else None,
    )


@router.post("/backfill-unidentified", response_model=BackfillResponse)
def backfill_unidentified(
    payload: BackfillRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> BackfillResponse:
    """Resolve unidentified items of existing orders against a newly created product."""
    result = backfill_unidentified_items(
        db,
        product_id=payload.product_id,
        product_name=payload.product_name,
        barcode=payload.barcode,
        price=payload.price,
        actor=actor,
    )
    return BackfillResponse(updated_count=result.updated_count, error=result.error)


@router.post("/reconcile-clients", response_model=ReconcileResponse)
def reconcile_clients(
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> ReconcileResponse:
    """Rebuild every client's order aggregates from its linked orders."""
    logger.info("[CLIENT_STATS] Reconciliation requested by %s", actor.uid)
    stats = reconcile_all(db)
    return ReconcileResponse(
        clients_checked=stats.clients_checked,
        clients_corrected=stats.clients_corrected,
        missing_orders=stats.missing_orders,
    )
