"""Tests for WooCommerce payload -> order conversion (catalog-backed)."""

from datetime import datetime
from decimal import Decimal

from backoffice.models import OrderSourceEnum, OrderStatusEnum
from backoffice.services import order_converter
from backoffice.services.catalog_matcher import find_product_by_sku


def test_items_partition_by_catalog_match(test_db_session, make_product, make_woo_order):
    mug = make_product("Blue Mug", barcode="MUG-BLUE", price="12.00")
    payload = make_woo_order(line_items=[
        {"id": 1, "product_id": 501, "name": "Blue Mug", "sku": "MUG-BLUE", "quantity": 2, "price": "9.00", "total": "18.00"},
        {"id": 2, "product_id": 502, "name": "Red Cap", "sku": "CAP-RED", "quantity": 1, "price": "7.50", "total": "7.50"},
    ])

    converted = order_converter.convert_woocommerce_order(test_db_session, payload)

    assert len(converted.items) == 1
    assert converted.items[0]["product_id"] == mug.id
    assert converted.items[0]["price"] == 12.0
    assert converted.items[0]["total"] == 24.0
    assert converted.items[0]["wc_product_id"] == 501
    assert converted.unidentified_items == [{
        "wc_product_id": 502,
        "sku": "CAP-RED",
        "name": "Red Cap",
        "price": 7.5,
        "quantity": 1,
        "total": 7.5,
    }]
    assert converted.has_unidentified_items is True
    # Subtotal falls back to the sum of item totals
    assert converted.subtotal == Decimal("31.50")


def test_malformed_line_item_is_kept_as_unidentified(test_db_session, make_woo_order):
    payload = make_woo_order(line_items=[
        {"id": 1, "product_id": 501, "name": "Broken", "sku": "X", "quantity": "lots", "price": "abc"},
        "not-a-dict",
    ])

    converted = order_converter.convert_woocommerce_order(test_db_session, payload)

    assert converted.items == []
    assert len(converted.unidentified_items) == 2
    broken = converted.unidentified_items[0]
    assert broken["name"] == "Broken"
    assert broken["quantity"] == 0
    assert broken["price"] == 0.0
    assert converted.unidentified_items[1]["name"] == "not-a-dict"


def test_order_fields_and_defaults(test_db_session, make_woo_order):
    payload = make_woo_order(
        order_id=77,
        status="wc-received",
        email="",
        first_name="",
        last_name="",
        payment_method="",
        total="not-a-number",
        date_created_gmt="",
    )

    converted = order_converter.convert_woocommerce_order(test_db_session, payload)
    fields = converted.order_fields()

    assert fields["external_id"] == 77
    assert fields["status"] == OrderStatusEnum.received
    assert fields["customer_name"] == order_converter.UNKNOWN_CUSTOMER
    assert fields["customer_email"] is None
    assert fields["payment_method"] == order_converter.DEFAULT_PAYMENT_METHOD
    assert fields["total"] == Decimal("0")
    assert fields["source"] == OrderSourceEnum.woocommerce
    assert fields["packing_slip_printed"] is False
    assert fields["order_date"] == datetime(2026, 10, 1, 12, 0)
    assert converted.client_intent is None


def test_shipping_falls_back_to_billing_per_component(test_db_session, make_woo_order):
    payload = make_woo_order(shipping={"first_name": "Max", "address_1": "", "city": "Shelbyville"})

    converted = order_converter.convert_woocommerce_order(test_db_session, payload)

    assert converted.shipping_address["first_name"] == "Max"
    assert converted.shipping_address["last_name"] == "Doe"
    assert converted.shipping_address["address_1"] == "Main Street 1"
    assert converted.shipping_address["city"] == "Shelbyville"
    assert converted.shipping_address["email"] == "jane@example.com"
    assert converted.client_intent.email == "jane@example.com"
    assert converted.client_intent.name == "Jane Doe"


def test_catalog_lookup_prefers_oldest_duplicate(test_db_session, make_product):
    first = make_product("Mug v1", barcode="DUP", created_at=datetime(2026, 1, 1))
    make_product("Mug v2", barcode="DUP", created_at=datetime(2026, 6, 1))

    assert find_product_by_sku(test_db_session, "DUP").id == first.id
    assert find_product_by_sku(test_db_session, " DUP ").id == first.id
    assert find_product_by_sku(test_db_session, "") is None
    assert find_product_by_sku(test_db_session, None) is None
    assert find_product_by_sku(test_db_session, "NOPE") is None
