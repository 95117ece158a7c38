"""WooCommerce <-> internal order status mapping.

WHAT:
    Pure translation between the store's status vocabulary and
    OrderStatusEnum, in both directions.

WHY:
    - Sync needs external -> internal for every fetched order.
    - Fulfillment push-back needs internal -> external.
    - Custom fulfillment statuses exist on the store with a `wc-` prefix,
      while the standard ones travel unprefixed.

No transition rules live here; which status may follow which is a
fulfillment-workflow concern.
"""

from __future__ import annotations

import logging
from typing import Optional, Union

from backoffice.models import OrderStatusEnum

logger = logging.getLogger(__name__)

WC_PREFIX = "wc-"

# Statuses WooCommerce ships with (sent and received without prefix)
STANDARD_STATUSES = frozenset({
    OrderStatusEnum.pending,
    OrderStatusEnum.processing,
    OrderStatusEnum.on_hold,
    OrderStatusEnum.completed,
    OrderStatusEnum.cancelled,
    OrderStatusEnum.refunded,
    OrderStatusEnum.failed,
    OrderStatusEnum.draft,
})

# Custom statuses registered on the store (sent with `wc-` prefix)
CUSTOM_STATUSES = frozenset({
    OrderStatusEnum.received,
    OrderStatusEnum.prepared,
    OrderStatusEnum.shipped,
    OrderStatusEnum.refused,
    OrderStatusEnum.unfulfilled,
})

# Deprecated internal statuses and what they mean today
_DEPRECATED_ALIASES = {
    OrderStatusEnum.packed: OrderStatusEnum.prepared,
}

# External spellings that are not a plain enum value
_EXTERNAL_ALIASES = {
    "checkout-draft": OrderStatusEnum.draft,
}

DEFAULT_STATUS = OrderStatusEnum.processing


def _canonical(status: OrderStatusEnum) -> OrderStatusEnum:
    return _DEPRECATED_ALIASES.get(status, status)


def to_internal_status(external_status: Optional[str]) -> OrderStatusEnum:
    """Map a WooCommerce status string to the internal enum.

    Accepts standard statuses (`processing`), prefixed custom statuses
    (`wc-shipped`) and bare custom names (`shipped`). Anything else maps to
    `processing` with a warning; an unknown status never fails a sync.
    """
    if not external_status:
        logger.warning("[STATUS_MAP] Empty external status, defaulting to %s", DEFAULT_STATUS.value)
        return DEFAULT_STATUS

    value = external_status.strip().lower()
    if value in _EXTERNAL_ALIASES:
        return _EXTERNAL_ALIASES[value]

    if value.startswith(WC_PREFIX):
        value = value[len(WC_PREFIX):]

    try:
        status = OrderStatusEnum(value)
    except ValueError:
        logger.warning(
            "[STATUS_MAP] Unknown external status %r, defaulting to %s",
            external_status, DEFAULT_STATUS.value,
        )
        return DEFAULT_STATUS

    return _canonical(status)


def to_external_status(internal_status: Union[OrderStatusEnum, str]) -> str:
    """Map an internal status to the string WooCommerce expects.

    Custom statuses gain the `wc-` prefix, standard ones pass through and the
    deprecated `packed` is sent as `wc-prepared`. An unrecognized string is
    passed through unchanged so the store can reject it.
    """
    if isinstance(internal_status, OrderStatusEnum):
        status = internal_status
    else:
        try:
            status = OrderStatusEnum(internal_status)
        except ValueError:
            logger.warning("[STATUS_MAP] Unknown internal status %r, sending as-is", internal_status)
            return internal_status

    status = _canonical(status)
    if status in CUSTOM_STATUSES:
        return f"{WC_PREFIX}{status.value}"
    return status.value
