"""Tests for client order aggregates (link, unlink, reconcile)."""

from datetime import datetime
from decimal import Decimal

from backoffice.models import Client, Order, OrderSourceEnum, OrderStatusEnum
from backoffice.services import client_stats


def _money(value):
    return Decimal(str(value)).quantize(Decimal("0.01"))


def _client(db, **kwargs):
    defaults = dict(name="Jane Doe", email="jane@example.com", order_ids=[], source=OrderSourceEnum.woocommerce)
    defaults.update(kwargs)
    client = Client(**defaults)
    db.add(client)
    db.commit()
    return client


def _order(db, total, order_date=None, client_id=None):
    order = Order(
        order_number="1",
        total=Decimal(total),
        status=OrderStatusEnum.processing,
        order_date=order_date or datetime(2026, 10, 1, 10, 0),
        client_id=client_id,
    )
    db.add(order)
    db.commit()
    return order


class TestLinkOrder:
    def test_link_is_idempotent(self, test_db_session):
        client = _client(test_db_session)
        order = _order(test_db_session, "30.00")

        assert client_stats.link_order(test_db_session, client.id, order.id, order.total, order.order_date) is True
        assert client_stats.link_order(test_db_session, client.id, order.id, order.total, order.order_date) is False
        test_db_session.commit()

        test_db_session.refresh(client)
        assert client.order_ids == [order.id]
        assert client.total_orders == 1
        assert _money(client.total_spent) == Decimal("30.00")
        assert _money(client.average_order_value) == Decimal("30.00")
        assert client.last_order_date == order.order_date

    def test_link_recomputes_count_from_list(self, test_db_session):
        # Creation pre-increments total_orders; linking the first order must not double it
        client = _client(test_db_session, total_orders=1)
        order = _order(test_db_session, "10.00")

        client_stats.link_order(test_db_session, client.id, order.id, order.total)
        test_db_session.commit()

        assert client.total_orders == 1

    def test_last_order_date_never_moves_backwards(self, test_db_session):
        client = _client(test_db_session)
        newer = _order(test_db_session, "10.00", order_date=datetime(2026, 10, 5))
        older = _order(test_db_session, "20.00", order_date=datetime(2026, 9, 1))

        client_stats.link_order(test_db_session, client.id, newer.id, newer.total, newer.order_date)
        client_stats.link_order(test_db_session, client.id, older.id, older.total, older.order_date)
        test_db_session.commit()

        assert client.last_order_date == datetime(2026, 10, 5)
        assert client.total_orders == 2
        assert _money(client.average_order_value) == Decimal("15.00")

    def test_unknown_client(self, test_db_session):
        assert client_stats.link_order(test_db_session, "missing", "order-1", Decimal("5")) is False

    def test_unlink_rebuilds_aggregates(self, test_db_session):
        client = _client(test_db_session)
        first = _order(test_db_session, "10.00")
        second = _order(test_db_session, "30.00")
        client_stats.link_order(test_db_session, client.id, first.id, first.total)
        client_stats.link_order(test_db_session, client.id, second.id, second.total)
        test_db_session.commit()

        assert client_stats.unlink_order(test_db_session, client.id, second.id) is True
        test_db_session.commit()

        assert client.order_ids == [first.id]
        assert client.total_orders == 1
        assert _money(client.total_spent) == Decimal("10.00")
        assert client_stats.unlink_order(test_db_session, client.id, second.id) is False


class TestReconcile:
    def test_heals_drifted_aggregates(self, test_db_session):
        first = _order(test_db_session, "10.00", order_date=datetime(2026, 9, 1))
        second = _order(test_db_session, "20.00", order_date=datetime(2026, 9, 15))
        client = _client(
            test_db_session,
            order_ids=[first.id, second.id],
            total_orders=7,
            total_spent=Decimal("999.00"),
            average_order_value=Decimal("1.00"),
        )

        stats = client_stats.reconcile_all(test_db_session)

        assert stats.clients_checked == 1
        assert stats.clients_corrected == 1
        assert stats.missing_orders == 0
        test_db_session.refresh(client)
        assert client.total_orders == 2
        assert _money(client.total_spent) == Decimal("30.00")
        assert _money(client.average_order_value) == Decimal("15.00")
        assert client.last_order_date == datetime(2026, 9, 15)

    def test_drops_missing_orders(self, test_db_session):
        order = _order(test_db_session, "12.00")
        client = _client(test_db_session, order_ids=[order.id, "deleted-order"], total_orders=2)

        stats = client_stats.reconcile_all(test_db_session)

        assert stats.missing_orders == 1
        test_db_session.refresh(client)
        assert client.order_ids == [order.id]
        assert client.total_orders == 1

    def test_second_pass_changes_nothing(self, test_db_session):
        order = _order(test_db_session, "12.00")
        _client(test_db_session, order_ids=[order.id], total_orders=3)

        client_stats.reconcile_all(test_db_session)
        stats = client_stats.reconcile_all(test_db_session)

        assert stats.clients_checked == 1
        assert stats.clients_corrected == 0

    def test_zeroes_synced_client_without_orders(self, test_db_session):
        client = _client(test_db_session, total_orders=1)

        stats = client_stats.reconcile_all(test_db_session)

        assert stats.clients_corrected == 1
        test_db_session.refresh(client)
        assert client.total_orders == 0

    def test_skips_manual_clients_without_orders(self, test_db_session):
        _client(test_db_session, source=OrderSourceEnum.manual, total_orders=4)

        stats = client_stats.reconcile_all(test_db_session)

        assert stats.clients_checked == 0
