"""WooCommerce settings endpoints (store URL and API keys)."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from backoffice.database import get_db
from backoffice.deps import get_current_actor
from backoffice.schemas import ConnectionTestResponse, WooCommerceSettingsIn, WooCommerceSettingsOut
from backoffice.services.activity_logger import Actor
from backoffice.services import platform_credentials as credentials_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/settings/woocommerce", tags=["Settings"])


def _to_out(row) -> WooCommerceSettingsOut:
    if row is None:
        return WooCommerceSettingsOut()
    return WooCommerceSettingsOut(
        store_url=row.store_url,
        consumer_key=row.consumer_key,
        has_consumer_secret=bool(row.consumer_secret_enc),
        updated_at=row.updated_at,
    )


@router.get("", response_model=WooCommerceSettingsOut)
def get_woocommerce_settings(
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> WooCommerceSettingsOut:
    """Return the stored settings. The secret itself is never returned."""
    return _to_out(credentials_service.get_platform_settings(db))


@router.put("", response_model=WooCommerceSettingsOut)
def save_woocommerce_settings(
    payload: WooCommerceSettingsIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> WooCommerceSettingsOut:
    row = credentials_service.save_platform_credentials(
        db,
        store_url=payload.store_url,
        consumer_key=payload.consumer_key,
        consumer_secret=payload.consumer_secret,
        updated_by=actor.uid,
    )
    return _to_out(row)


@router.post("/test", response_model=ConnectionTestResponse)
async def test_woocommerce_settings(
    payload: WooCommerceSettingsIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> ConnectionTestResponse:
    """Check credentials against the store before saving them.

    When `consumer_secret` is omitted the stored secret is used.
    """
    secret = payload.consumer_secret
    if not secret:
        try:
            secret = credentials_service.load_platform_credentials(db).consumer_secret
        except credentials_service.ConfigurationError:
            secret = ""

    credentials = credentials_service.PlatformCredentials(
        store_url=payload.store_url.strip().rstrip("/"),
        consumer_key=payload.consumer_key.strip(),
        consumer_secret=secret,
    )
    result = await credentials_service.test_woocommerce_connection(credentials)
    return ConnectionTestResponse(**result)
