"""WooCommerce credentials: storage, loading and connection test.

WHAT:
    - save_platform_credentials: persist store URL + key, encrypting the secret
    - load_platform_credentials: single loader used before every sync / push
    - test_woocommerce_connection: verify credentials against the store

WHY:
    Sync and push-back receive a resolved `PlatformCredentials` value instead
    of reading settings themselves, so a missing configuration is reported
    once, at the call boundary.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx
from sqlalchemy.orm import Session

from backoffice.models import PlatformSettings, utcnow
from backoffice.security import decrypt_secret, encrypt_secret
from backoffice.services.woocommerce_client import WooCommerceAPIError, WooCommerceClient

logger = logging.getLogger(__name__)

SETTINGS_ID = "global_settings"
MISSING_CREDENTIALS_MESSAGE = (
    "WooCommerce credentials are not configured. "
    "Set the store URL, consumer key and consumer secret in Settings."
)


class ConfigurationError(Exception):
    """Raised when WooCommerce credentials are missing or unusable."""


@dataclass(frozen=True)
class PlatformCredentials:
    store_url: str
    consumer_key: str
    consumer_secret: str = ""

    @property
    def is_complete(self) -> bool:
        return bool(self.store_url and self.consumer_key and self.consumer_secret)

    def __repr__(self) -> str:
        return f"PlatformCredentials(store_url={self.store_url!r}, consumer_key={self.consumer_key!r})"


def get_platform_settings(db: Session) -> Optional[PlatformSettings]:
    return db.get(PlatformSettings, SETTINGS_ID)


def save_platform_credentials(
    db: Session,
    store_url: str,
    consumer_key: str,
    consumer_secret: Optional[str] = None,
    updated_by: Optional[str] = None,
) -> PlatformSettings:
    """Create or update the settings row. A missing secret keeps the stored one."""
    row = get_platform_settings(db)
    if row is None:
        row = PlatformSettings(id=SETTINGS_ID)
        db.add(row)

    row.store_url = store_url.strip().rstrip("/")
    row.consumer_key = consumer_key.strip()
    if consumer_secret:
        row.consumer_secret_enc = encrypt_secret(consumer_secret.strip(), context="woocommerce:consumer_secret")
    row.updated_at = utcnow()
    row.updated_by = updated_by

    db.commit()
    db.refresh(row)
    logger.info("[WOO_SETTINGS] Credentials saved for %s", row.store_url)
    return row


def load_platform_credentials(db: Session) -> PlatformCredentials:
    """Resolve the WooCommerce credentials for one sync / push call.

    Raises:
        ConfigurationError: If any part is missing or the secret cannot be decrypted.
    """
    row = get_platform_settings(db)
    if row is None or not row.store_url or not row.consumer_key or not row.consumer_secret_enc:
        raise ConfigurationError(MISSING_CREDENTIALS_MESSAGE)

    try:
        secret = decrypt_secret(row.consumer_secret_enc, context="woocommerce:consumer_secret")
    except ValueError as e:
        raise ConfigurationError(
            "Stored WooCommerce consumer secret cannot be decrypted. Please save it again."
        ) from e

    return PlatformCredentials(
        store_url=row.store_url,
        consumer_key=row.consumer_key,
        consumer_secret=secret,
    )


async def test_woocommerce_connection(
    credentials: PlatformCredentials,
    *,
    client: Optional[WooCommerceClient] = None,
) -> Dict[str, Any]:
    """Check that the store answers with these credentials.

    Returns:
        {"success": True, "message": ...} or {"success": False, "error": ...}
    """
    if not credentials.is_complete:
        return {"success": False, "error": MISSING_CREDENTIALS_MESSAGE}

    client = client or WooCommerceClient.from_credentials(credentials)
    try:
        info = await client.get_store_info()
    except WooCommerceAPIError as e:
        logger.warning("[WOO_SETTINGS] Connection test failed for %s: %s", credentials.store_url, e)
        if e.status_code == 401:
            error = "Authentication failed: Invalid credentials"
        elif e.status_code == 404:
            error = "Store not found: Please check the URL"
        elif e.status_code is None:
            error = "Network error: Unable to connect to the server"
        else:
            error = f"Error: {e}"
        return {"success": False, "error": error}
    except httpx.InvalidURL:
        return {"success": False, "error": "Store not found: Please check the URL"}

    name = info.get("name") or "WooCommerce store"
    return {"success": True, "message": f"Connected to {name}"}
