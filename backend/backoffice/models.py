"""SQLAlchemy ORM models and enums.

This module defines the persistent store used by the order synchronization
engine. Orders and clients keep their nested, document-shaped parts (line
items, unidentified items, addresses, linked order ids) in JSON columns so that
each record can be read and written as a single unit, the way the back-office
screens treat them.
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import declarative_base, relationship, validates


# Single Base used by the entire application
Base = declarative_base()


def _new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Naive UTC timestamp (all DateTime columns store naive UTC)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _enum_values(enum_cls):
    return [e.value for e in enum_cls]


# Enums ---------------------------------------------------------

class OrderStatusEnum(str, enum.Enum):
    """Internal order status vocabulary.

    The first eight mirror the standard WooCommerce statuses. The fulfillment
    statuses (received .. unfulfilled) are custom statuses that exist on the
    store with a ``wc-`` prefix.
    """
    pending = "pending"
    processing = "processing"
    on_hold = "on-hold"
    completed = "completed"
    cancelled = "cancelled"
    refunded = "refunded"
    failed = "failed"
    draft = "draft"
    received = "received"
    prepared = "prepared"
    shipped = "shipped"
    refused = "refused"
    unfulfilled = "unfulfilled"
    # Deprecated: replaced by `prepared`, kept so older orders still load
    packed = "packed"


class OrderSourceEnum(str, enum.Enum):
    manual = "manual"
    woocommerce = "woocommerce"


class ActivityTypeEnum(str, enum.Enum):
    added = "added"
    removed = "removed"
    updated = "updated"
    deleted = "deleted"


class ActivityEntityEnum(str, enum.Enum):
    product = "product"
    order = "order"
    client = "client"


# Catalog --------------------------------------------------------

class Product(Base):
    """Catalog product. Read-only from the sync engine's point of view.

    `barcode` holds the value WooCommerce exposes as the line item SKU.
    """
    __tablename__ = "products"

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    barcode = Column(String, nullable=True, index=True)
    price = Column(Numeric(18, 4), nullable=False, default=0)
    quantity = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def __str__(self):
        return f"{self.name} ({self.barcode or 'no barcode'})"


# CRM ------------------------------------------------------------

class Client(Base):
    """Customer record with cached order aggregates.

    `order_ids` is the source of truth for which orders count towards the
    aggregates; `total_orders`, `total_spent` and `average_order_value` are a
    cache of it and can always be rebuilt by the stats reconciler.
    """
    __tablename__ = "clients"

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String, nullable=False)
    email = Column(String, nullable=True, unique=True, index=True)
    phone = Column(String, nullable=True)
    company_name = Column(String, nullable=True)
    address = Column(JSON, nullable=True)
    source = Column(
        Enum(OrderSourceEnum, values_callable=_enum_values),
        nullable=False,
        default=OrderSourceEnum.manual,
    )
    tags = Column(JSON, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    # Aggregates (cache of order_ids)
    total_orders = Column(Integer, nullable=False, default=0)
    total_spent = Column(Numeric(18, 4), nullable=False, default=0)
    average_order_value = Column(Numeric(18, 4), nullable=False, default=0)
    last_order_date = Column(DateTime, nullable=True)
    order_ids = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    created_by = Column(String, nullable=True)
    updated_by = Column(String, nullable=True)

    orders = relationship("Order", back_populates="client")

    def __str__(self):
        return f"{self.name} ({self.email or 'No email'}) - {self.total_spent}"


# Orders ---------------------------------------------------------

class Order(Base):
    """Order document.

    JSON shapes:
        items: [{id, product_id, product_name, quantity, price, total, picked,
                 wc_product_id?, backfilled?}]
        unidentified_items: [{wc_product_id, sku, name, price, quantity, total}]
        shipping_address / billing_address: {first_name, last_name, company,
                 address_1, address_2, city, state, postcode, country, email, phone}

    `has_unidentified_items` is derived from `unidentified_items` and is
    recomputed on every insert/update.
    """
    __tablename__ = "orders"
    __table_args__ = (
        UniqueConstraint("source", "external_id", name="uq_order_source_external_id"),
    )

    id = Column(String(36), primary_key=True, default=_new_id)

    # WooCommerce order id (null for manual orders)
    external_id = Column(Integer, nullable=True, index=True)
    order_number = Column(String, nullable=False)

    client_id = Column(String(36), ForeignKey("clients.id"), nullable=True)
    customer_name = Column(String, nullable=False, default="Unknown Customer")
    customer_email = Column(String, nullable=True)

    order_date = Column(DateTime, nullable=False, default=utcnow)
    status = Column(
        Enum(OrderStatusEnum, values_callable=_enum_values),
        nullable=False,
        default=OrderStatusEnum.processing,
    )

    items = Column(JSON, nullable=False, default=list)
    unidentified_items = Column(JSON, nullable=False, default=list)
    has_unidentified_items = Column(Boolean, nullable=False, default=False, index=True)

    shipping_address = Column(JSON, nullable=True)
    billing_address = Column(JSON, nullable=True)

    subtotal = Column(Numeric(18, 4), nullable=False, default=0)
    shipping_cost = Column(Numeric(18, 4), nullable=False, default=0)
    tax = Column(Numeric(18, 4), nullable=False, default=0)
    total = Column(Numeric(18, 4), nullable=False, default=0)

    payment_method = Column(String, nullable=True)
    notes = Column(Text, nullable=True)
    source = Column(
        Enum(OrderSourceEnum, values_callable=_enum_values),
        nullable=False,
        default=OrderSourceEnum.manual,
    )

    packing_slip_printed = Column(Boolean, nullable=False, default=False)
    fulfilled_at = Column(DateTime, nullable=True)
    fulfilled_by = Column(String, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    client = relationship("Client", back_populates="orders")

    @validates("unidentified_items")
    def _sync_unidentified_flag(self, key, value):
        self.has_unidentified_items = bool(value)
        return value or []

    def __str__(self):
        return f"Order #{self.order_number} - {self.total}"


@event.listens_for(Order, "before_insert")
@event.listens_for(Order, "before_update")
def _enforce_unidentified_flag(mapper, connection, target):
    target.has_unidentified_items = bool(target.unidentified_items)


# Activity log ---------------------------------------------------

class Activity(Base):
    """Append-only activity record shown on the dashboards."""
    __tablename__ = "activities"

    id = Column(String(36), primary_key=True, default=_new_id)
    type = Column(Enum(ActivityTypeEnum, values_callable=_enum_values), nullable=False)
    entity_type = Column(Enum(ActivityEntityEnum, values_callable=_enum_values), nullable=False)
    entity_id = Column(String, nullable=False)
    entity_name = Column(String, nullable=False)
    user_id = Column(String, nullable=False)
    user_name = Column(String, nullable=False)
    quantity = Column(Integer, nullable=True)
    date = Column(DateTime, nullable=False, default=utcnow)


# Integration settings -------------------------------------------

class PlatformSettings(Base):
    """WooCommerce connection settings written by the settings screen.

    The consumer secret is stored encrypted (see security.encrypt_secret).
    """
    __tablename__ = "platform_settings"

    id = Column(String, primary_key=True, default="global_settings")
    store_url = Column(String, nullable=True)
    consumer_key = Column(String, nullable=True)
    consumer_secret_enc = Column(Text, nullable=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    updated_by = Column(String, nullable=True)
