"""WooCommerce REST API client.

WHAT:
    Wrapper for the WooCommerce REST API (wc/v3) with:
    - Basic authentication with the consumer key/secret
    - Page-number pagination (X-WP-TotalPages)
    - Bounded timeouts, error handling and retries

WHY:
    Encapsulates all WooCommerce interaction for the sync and status
    push-back services.

REFERENCES:
    - WooCommerce REST API: https://woocommerce.github.io/woocommerce-rest-api-docs/
    - Orders: GET /wp-json/wc/v3/orders, PUT /wp-json/wc/v3/orders/<id>
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple

import httpx

logger = logging.getLogger(__name__)

DEFAULT_API_VERSION = "wc/v3"
DEFAULT_TIMEOUT = 30.0  # seconds
DEFAULT_PER_PAGE = 100  # WooCommerce maximum


class WooCommerceAPIError(Exception):
    """Custom exception for WooCommerce API errors."""

    def __init__(self, message: str, status_code: Optional[int] = None, errors: Optional[List] = None):
        super().__init__(message)
        self.status_code = status_code
        self.errors = errors or []


class WooCommerceClient:
    """REST client for a single WooCommerce store.

    WHAT: Handles all communication with the store's REST API
    WHY: Centralized API access with pagination, retries and error handling

    Usage:
        client = WooCommerceClient(
            store_url="https://shop.example.com",
            consumer_key="ck_xxx",
            consumer_secret="cs_xxx",
        )
        orders, total_pages = await client.get_orders(page=1)
    """

    def __init__(
        self,
        store_url: str,
        consumer_key: str,
        consumer_secret: str,
        api_version: str = DEFAULT_API_VERSION,
        timeout: float = DEFAULT_TIMEOUT,
        retry_backoff: float = 1.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize WooCommerce client.

        Args:
            store_url: Store root URL (e.g., "https://shop.example.com")
            consumer_key: REST API consumer key (ck_...)
            consumer_secret: REST API consumer secret (cs_...)
            api_version: REST namespace (default: wc/v3)
            timeout: Per-request timeout in seconds
            retry_backoff: Base delay between retries (linear backoff)
            transport: Optional httpx transport (tests pass a MockTransport)
        """
        self.store_url = store_url.rstrip("/")
        self.consumer_key = consumer_key
        self.consumer_secret = consumer_secret
        self.api_version = api_version
        self.timeout = timeout
        self.retry_backoff = retry_backoff
        self.base_url = f"{self.store_url}/wp-json/{api_version}"
        self._transport = transport

        logger.info(f"[WOO_CLIENT] Initialized for {self.store_url} (API version: {api_version})")

    @classmethod
    def from_credentials(cls, credentials, **kwargs) -> "WooCommerceClient":
        """Build a client from a resolved `PlatformCredentials`."""
        return cls(
            store_url=credentials.store_url,
            consumer_key=credentials.consumer_key,
            consumer_secret=credentials.consumer_secret,
            **kwargs,
        )

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text[:200] or response.reason_phrase
        if isinstance(body, dict) and body.get("message"):
            return str(body["message"])
        return response.reason_phrase

    @staticmethod
    def _retry_after(response: httpx.Response, default: float) -> float:
        """Seconds from a numeric Retry-After header; HTTP-date values use the default."""
        try:
            return max(0.0, float(response.headers.get("Retry-After", default)))
        except ValueError:
            return default

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
        retries: int = 3,
    ) -> httpx.Response:
        """Send a request with retry logic.

        WHAT: Retries 429, 5xx and transport errors (timeouts included);
              other 4xx responses fail immediately.
        WHY: All WooCommerce calls go through this method

        Raises:
            WooCommerceAPIError: If the request fails after all retries
        """
        url = f"{self.base_url}/{path}" if path else self.base_url
        last_error: Optional[str] = None
        last_status: Optional[int] = None

        for attempt in range(retries):
            try:
                async with httpx.AsyncClient(
                    timeout=self.timeout,
                    auth=(self.consumer_key, self.consumer_secret),
                    transport=self._transport,
                ) as client:
                    response = await client.request(method, url, params=params, json=json)

                if response.status_code == 429:
                    retry_after = self._retry_after(response, 2 * self.retry_backoff)
                    last_error, last_status = "Rate limited", 429
                    logger.warning(
                        f"[WOO_CLIENT] Rate limited, waiting {retry_after}s (attempt {attempt + 1}/{retries})"
                    )
                    if attempt < retries - 1:
                        await asyncio.sleep(retry_after)
                    continue

                if response.status_code >= 500:
                    last_error, last_status = self._error_message(response), response.status_code
                    logger.warning(
                        f"[WOO_CLIENT] HTTP error {response.status_code} on {method} {path or '/'} "
                        f"(attempt {attempt + 1}/{retries})"
                    )
                    if attempt < retries - 1:
                        await asyncio.sleep(self.retry_backoff * (attempt + 1))
                    continue

                if response.status_code >= 400:
                    message = self._error_message(response)
                    logger.error(f"[WOO_CLIENT] HTTP {response.status_code} on {method} {path or '/'}: {message}")
                    raise WooCommerceAPIError(
                        f"WooCommerce returned {response.status_code}: {message}",
                        status_code=response.status_code,
                    )

                return response

            except httpx.InvalidURL as e:
                logger.error(f"[WOO_CLIENT] Invalid store URL {self.store_url}: {e}")
                raise WooCommerceAPIError(f"Invalid store URL: {e}") from e

            except httpx.RequestError as e:
                last_error, last_status = f"{type(e).__name__}: {e}", None
                logger.warning(f"[WOO_CLIENT] Request error: {e} (attempt {attempt + 1}/{retries})")
                if attempt < retries - 1:
                    await asyncio.sleep(self.retry_backoff * (attempt + 1))

        raise WooCommerceAPIError(
            f"Failed after {retries} attempts: {last_error}",
            status_code=last_status,
        )

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise WooCommerceAPIError(
                "Unreadable response from WooCommerce (invalid JSON)",
                status_code=response.status_code,
            ) from e

    # =========================================================================
    # STORE
    # =========================================================================

    async def get_store_info(self) -> Dict[str, Any]:
        """Fetch the API index (used to verify credentials)."""
        data = self._json(await self._request("GET", ""))
        return data if isinstance(data, dict) else {}

    # =========================================================================
    # ORDERS
    # =========================================================================

    async def get_orders(
        self,
        page: int = 1,
        per_page: int = DEFAULT_PER_PAGE,
    ) -> Tuple[List[Dict[str, Any]], int]:
        """Fetch one page of orders, newest first.

        Returns:
            Tuple of (orders, total_pages)
        """
        response = await self._request(
            "GET",
            "orders",
            params={"page": page, "per_page": per_page, "orderby": "date", "order": "desc"},
        )
        data = self._json(response)
        if not isinstance(data, list):
            raise WooCommerceAPIError(
                "Unreadable response from WooCommerce (expected a list of orders)",
                status_code=response.status_code,
            )

        try:
            total_pages = int(response.headers.get("X-WP-TotalPages", "1"))
        except ValueError:
            total_pages = 1

        logger.debug(f"[WOO_CLIENT] Fetched page {page}/{total_pages} ({len(data)} orders)")
        return data, total_pages

    async def get_all_orders(
        self,
        per_page: int = DEFAULT_PER_PAGE,
        max_pages: int = 1,
    ) -> List[Dict[str, Any]]:
        """Fetch up to `max_pages` pages of orders.

        WHAT: Follows X-WP-TotalPages until exhausted or the cap is hit
        WHY: Recent orders come first; older pages rarely change
        """
        all_orders: List[Dict[str, Any]] = []
        page = 1

        while True:
            orders, total_pages = await self.get_orders(page=page, per_page=per_page)
            all_orders.extend(orders)

            if page >= total_pages or page >= max_pages or not orders:
                break
            page += 1

        logger.info(f"[WOO_CLIENT] Fetched {len(all_orders)} orders across {page} page(s)")
        return all_orders

    async def update_order_status(self, order_id: int, status: str) -> Dict[str, Any]:
        """Set the status of one order (the only field this service ever writes)."""
        response = await self._request("PUT", f"orders/{order_id}", json={"status": status})
        data = self._json(response)
        logger.info(f"[WOO_CLIENT] Order {order_id} status set to {status}")
        return data if isinstance(data, dict) else {}
