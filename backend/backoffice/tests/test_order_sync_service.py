"""Tests for the WooCommerce order sync orchestrator.

WHAT: Exercises sync_woocommerce_orders end to end against an in-memory DB
WHY: Sync re-runs over the same orders constantly; these tests pin down
     idempotency, change detection and per-order failure isolation
"""

import asyncio
from decimal import Decimal

from backoffice.models import Activity, Client, Order, OrderSourceEnum, OrderStatusEnum
from backoffice.services import order_sync_service as svc
from backoffice.services.woocommerce_client import WooCommerceAPIError


def _run(db, credentials, actor, client):
    return asyncio.run(svc.sync_woocommerce_orders(db, credentials, actor, client=client))


def _activity_count(db):
    return db.query(Activity).count()


class TestNewOrders:
    def test_creates_order_client_and_activity(
        self, test_db_session, credentials, actor, make_product, make_woo_order, fake_woo_client
    ):
        product = make_product("Blue Mug", barcode="MUG-BLUE", price="12.50")
        woo = fake_woo_client(orders=[make_woo_order(order_id=1001)])

        result = _run(test_db_session, credentials, actor, woo)

        assert result.success is True
        assert result.stats.new_orders == 1
        assert result.stats.new_clients == 1
        assert result.stats.failed_orders == 0
        assert result.message == "Synced 1 new and 0 updated orders (0 unchanged)"

        order = test_db_session.query(Order).one()
        assert order.external_id == 1001
        assert order.source == OrderSourceEnum.woocommerce
        assert order.status == OrderStatusEnum.processing
        assert order.packing_slip_printed is False
        assert order.has_unidentified_items is False
        assert len(order.items) == 1
        item = order.items[0]
        assert item["product_id"] == product.id
        # Catalog price wins over the store's line price
        assert item["price"] == 12.5
        assert item["total"] == 25.0
        assert item["picked"] is False

        client = test_db_session.query(Client).one()
        assert client.email == "jane@example.com"
        assert client.name == "Jane Doe"
        assert client.order_ids == [order.id]
        assert client.total_orders == 1
        assert Decimal(str(client.total_spent)).quantize(Decimal("0.01")) == Decimal("25.00")
        assert order.client_id == client.id

        activity = test_db_session.query(Activity).one()
        assert activity.entity_id == order.id
        assert activity.user_id == actor.uid

    def test_unmatched_lines_become_unidentified(
        self, test_db_session, credentials, actor, make_woo_order, fake_woo_client
    ):
        woo = fake_woo_client(orders=[make_woo_order(order_id=2001)])

        result = _run(test_db_session, credentials, actor, woo)

        assert result.stats.orders_with_unidentified_items == 1
        order = test_db_session.query(Order).one()
        assert order.items == []
        assert order.has_unidentified_items is True
        assert order.unidentified_items[0]["sku"] == "MUG-BLUE"
        assert order.unidentified_items[0]["price"] == 10.0
        assert order.unidentified_items[0]["total"] == 20.0

    def test_guest_order_without_email_has_no_client(
        self, test_db_session, credentials, actor, make_woo_order, fake_woo_client
    ):
        woo = fake_woo_client(orders=[make_woo_order(order_id=3001, email="")])

        result = _run(test_db_session, credentials, actor, woo)

        assert result.stats.new_orders == 1
        assert result.stats.new_clients == 0
        order = test_db_session.query(Order).one()
        assert order.client_id is None
        assert test_db_session.query(Client).count() == 0

    def test_second_order_of_same_customer_reuses_client(
        self, test_db_session, credentials, actor, make_woo_order, fake_woo_client
    ):
        woo = fake_woo_client(orders=[
            make_woo_order(order_id=4001, email="Jane@Example.com"),
            make_woo_order(order_id=4002, email="jane@example.com", total="15.00"),
        ])

        result = _run(test_db_session, credentials, actor, woo)

        assert result.stats.new_orders == 2
        client = test_db_session.query(Client).one()
        assert client.total_orders == 2
        assert len(client.order_ids) == 2
        assert Decimal(str(client.total_spent)).quantize(Decimal("0.01")) == Decimal("40.00")
        assert Decimal(str(client.average_order_value)).quantize(Decimal("0.01")) == Decimal("20.00")


class TestResync:
    def test_unchanged_orders_cost_no_writes(
        self, test_db_session, credentials, actor, make_product, make_woo_order,
        fake_woo_client, write_counter,
    ):
        make_product("Blue Mug", barcode="MUG-BLUE")
        payloads = [
            make_woo_order(order_id=5001),
            make_woo_order(order_id=5002, email="other@example.com", first_name="Max"),
        ]
        _run(test_db_session, credentials, actor, fake_woo_client(orders=payloads))

        order = test_db_session.query(Order).filter(Order.external_id == 5001).one()
        updated_at = order.updated_at
        activities = _activity_count(test_db_session)
        write_counter["writes"] = 0

        result = _run(test_db_session, credentials, actor, fake_woo_client(orders=payloads))

        assert result.success is True
        assert result.stats.new_orders == 0
        assert result.stats.updated_orders == 0
        assert result.stats.unchanged_orders == 2
        assert result.stats.clients_reconciled == 0
        assert write_counter["writes"] == 0, write_counter["statements"]

        test_db_session.expire_all()
        order = test_db_session.query(Order).filter(Order.external_id == 5001).one()
        assert order.updated_at == updated_at
        assert _activity_count(test_db_session) == activities
        assert test_db_session.query(Client).filter(Client.email == "jane@example.com").one().total_orders == 1

    def test_status_change_updates_order(
        self, test_db_session, credentials, actor, make_woo_order, fake_woo_client
    ):
        _run(test_db_session, credentials, actor, fake_woo_client(orders=[make_woo_order(order_id=6001)]))
        activities = _activity_count(test_db_session)

        result = _run(
            test_db_session, credentials, actor,
            fake_woo_client(orders=[make_woo_order(order_id=6001, status="wc-shipped")]),
        )

        assert result.stats.updated_orders == 1
        assert result.stats.unchanged_orders == 0
        order = test_db_session.query(Order).one()
        assert order.status == OrderStatusEnum.shipped
        assert _activity_count(test_db_session) == activities + 1
        # Still counted once on the client
        assert test_db_session.query(Client).one().total_orders == 1

    def test_total_change_is_reconciled_on_client(
        self, test_db_session, credentials, actor, make_woo_order, fake_woo_client
    ):
        _run(test_db_session, credentials, actor, fake_woo_client(orders=[make_woo_order(order_id=6101)]))

        result = _run(
            test_db_session, credentials, actor,
            fake_woo_client(orders=[make_woo_order(order_id=6101, total="40.00")]),
        )

        assert result.stats.updated_orders == 1
        assert result.stats.clients_reconciled == 1
        client = test_db_session.query(Client).one()
        assert client.total_orders == 1
        assert Decimal(str(client.total_spent)).quantize(Decimal("0.01")) == Decimal("40.00")

    def test_picked_flags_survive_resync(
        self, test_db_session, credentials, actor, make_product, make_woo_order, fake_woo_client
    ):
        make_product("Blue Mug", barcode="MUG-BLUE")
        _run(test_db_session, credentials, actor, fake_woo_client(orders=[make_woo_order(order_id=7001)]))

        order = test_db_session.query(Order).one()
        item = dict(order.items[0])
        item["picked"] = True
        order.items = [item]
        test_db_session.commit()

        result = _run(
            test_db_session, credentials, actor,
            fake_woo_client(orders=[make_woo_order(order_id=7001, status="completed")]),
        )

        assert result.stats.updated_orders == 1
        test_db_session.expire_all()
        order = test_db_session.query(Order).one()
        assert order.status == OrderStatusEnum.completed
        assert order.items[0]["id"] == item["id"]
        assert order.items[0]["picked"] is True

    def test_changed_email_moves_order_to_new_client(
        self, test_db_session, credentials, actor, make_woo_order, fake_woo_client
    ):
        _run(test_db_session, credentials, actor, fake_woo_client(orders=[
            make_woo_order(order_id=6301, email="a@x.com", first_name="Ann"),
        ]))
        first = test_db_session.query(Client).filter(Client.email == "a@x.com").one()

        result = _run(test_db_session, credentials, actor, fake_woo_client(orders=[
            make_woo_order(order_id=6301, email="b@x.com", first_name="Bob"),
        ]))

        assert result.stats.updated_orders == 1
        assert result.stats.new_clients == 1
        assert result.stats.updated_clients == 0
        test_db_session.expire_all()
        order = test_db_session.query(Order).one()
        first = test_db_session.get(Client, first.id)
        second = test_db_session.query(Client).filter(Client.email == "b@x.com").one()
        assert order.client_id == second.id
        assert first.total_orders == 0
        assert first.order_ids == []
        assert Decimal(str(first.total_spent)).quantize(Decimal("0.01")) == Decimal("0.00")
        assert second.total_orders == 1
        assert second.order_ids == [order.id]
        assert Decimal(str(second.total_spent)).quantize(Decimal("0.01")) == Decimal("25.00")

    def test_unidentified_count_only_when_unidentified_items_change(
        self, test_db_session, credentials, actor, make_woo_order, fake_woo_client
    ):
        first = _run(test_db_session, credentials, actor, fake_woo_client(orders=[make_woo_order(order_id=6401)]))
        assert first.stats.orders_with_unidentified_items == 1

        status_only = _run(
            test_db_session, credentials, actor,
            fake_woo_client(orders=[make_woo_order(order_id=6401, status="completed")]),
        )
        assert status_only.stats.updated_orders == 1
        assert status_only.stats.orders_with_unidentified_items == 0

        extra_line = make_woo_order(order_id=6401, status="completed", line_items=[
            {"id": 1, "product_id": 501, "name": "Blue Mug", "sku": "MUG-BLUE", "quantity": 2, "price": 10.0, "total": "20.00"},
            {"id": 2, "product_id": 502, "name": "Red Mug", "sku": "MUG-RED", "quantity": 1, "price": 10.0, "total": "10.00"},
        ])
        new_line = _run(test_db_session, credentials, actor, fake_woo_client(orders=[extra_line]))
        assert new_line.stats.updated_orders == 1
        assert new_line.stats.orders_with_unidentified_items == 1

    def test_duplicate_external_id_in_one_batch(
        self, test_db_session, credentials, actor, make_woo_order, fake_woo_client
    ):
        woo = fake_woo_client(orders=[
            make_woo_order(order_id=8001),
            make_woo_order(order_id=8001, status="completed"),
        ])

        result = _run(test_db_session, credentials, actor, woo)

        assert result.stats.new_orders == 1
        assert result.stats.updated_orders == 1
        assert test_db_session.query(Order).count() == 1
        assert test_db_session.query(Order).one().status == OrderStatusEnum.completed
        assert test_db_session.query(Client).one().total_orders == 1


class TestFailures:
    def test_one_bad_order_does_not_abort_batch(
        self, test_db_session, credentials, actor, make_woo_order, fake_woo_client, monkeypatch
    ):
        original = svc.convert_woocommerce_order

        def _flaky_convert(db, payload):
            if payload.id == 9002:
                raise RuntimeError("boom")
            return original(db, payload)

        monkeypatch.setattr(svc, "convert_woocommerce_order", _flaky_convert)
        woo = fake_woo_client(orders=[
            make_woo_order(order_id=9001),
            make_woo_order(order_id=9002),
            make_woo_order(order_id=9003),
        ])

        result = _run(test_db_session, credentials, actor, woo)

        assert result.success is True
        assert result.stats.new_orders == 2
        assert result.stats.failed_orders == 1
        assert result.errors == ["Error processing order 9002: boom"]
        assert result.message.endswith(", 1 failed")
        external_ids = {o.external_id for o in test_db_session.query(Order).all()}
        assert external_ids == {9001, 9003}

    def test_order_without_id_is_counted_as_failed(
        self, test_db_session, credentials, actor, make_woo_order, fake_woo_client
    ):
        broken = make_woo_order(order_id=9101)
        del broken["id"]
        woo = fake_woo_client(orders=[broken, make_woo_order(order_id=9102)])

        result = _run(test_db_session, credentials, actor, woo)

        assert result.stats.failed_orders == 1
        assert result.stats.new_orders == 1

    def test_missing_credentials_fail_fast(self, test_db_session, actor, fake_woo_client):
        woo = fake_woo_client()

        result = _run(test_db_session, None, actor, woo)

        assert result.success is False
        assert "not configured" in result.message
        assert woo.fetch_calls == 0

    def test_incomplete_credentials_fail_fast(self, test_db_session, actor, fake_woo_client):
        from backoffice.services.platform_credentials import PlatformCredentials

        result = _run(
            test_db_session,
            PlatformCredentials(store_url="https://shop.example.com", consumer_key="ck"),
            actor,
            fake_woo_client(),
        )

        assert result.success is False
        assert result.stats.new_orders == 0

    def test_fetch_error_reports_failure(self, test_db_session, credentials, actor, fake_woo_client):
        woo = fake_woo_client(error=WooCommerceAPIError("Failed after 3 attempts: timeout"))

        result = _run(test_db_session, credentials, actor, woo)

        assert result.success is False
        assert result.message.startswith("Failed to fetch orders from WooCommerce")
        assert test_db_session.query(Order).count() == 0

    def test_malformed_store_url_reports_failure(self, test_db_session, actor):
        from backoffice.services.platform_credentials import PlatformCredentials

        bad = PlatformCredentials(
            store_url="https://shop.example.com:abc", consumer_key="ck", consumer_secret="cs",
        )

        result = asyncio.run(svc.sync_woocommerce_orders(test_db_session, bad, actor))

        assert result.success is False
        assert "Invalid store URL" in result.message
        assert test_db_session.query(Order).count() == 0


class TestSyncOneOrder:
    def test_returns_outcome(self, test_db_session, actor, make_woo_order):
        stats = svc.OrderSyncStats()
        payload = make_woo_order(order_id=9901)

        assert svc.sync_one_order(test_db_session, payload, actor, stats) == "new"
        assert svc.sync_one_order(test_db_session, payload, actor, stats) == "unchanged"
        payload["status"] = "cancelled"
        assert svc.sync_one_order(test_db_session, payload, actor, stats) == "updated"

        assert stats.new_orders == 1
        assert stats.unchanged_orders == 1
        assert stats.updated_orders == 1

    def test_find_synced_order_ignores_manual_orders(self, test_db_session):
        test_db_session.add(Order(
            order_number="M-1",
            external_id=42,
            source=OrderSourceEnum.manual,
            status=OrderStatusEnum.pending,
        ))
        test_db_session.commit()

        assert svc.find_synced_order(test_db_session, 42) is None
