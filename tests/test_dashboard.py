from datetime import datetime
from decimal import Decimal

import pytest

import dashboard
import orders
from database import parse_object_id

NOW = datetime(2025, 3, 15, 12, 0, 0)


@pytest.fixture
def place(db):
    def _place(customer, lines, status=None, order_date=None):
        order = orders.create_order(db, {
            "customer_id": customer["id"],
            "items": [{"product_id": p["id"], "quantity": q} for p, q in lines],
        })
        if order_date is not None:
            db["order"].update_one({"_id": parse_object_id(order["id"])}, {"$set": {"order_date": order_date}})
        if status is not None:
            orders.update_order_status(db, order["id"], status)
        return order

    return _place


def test_empty_dashboard(db):
    data = dashboard.get_dashboard(db, now=NOW)

    assert data["stats"]["total_transactions"] == 0
    assert data["stats"]["total_revenue"] == Decimal("0.00")
    assert len(data["monthly_data"]) == 12
    assert all(m["transactions"] == 0 for m in data["monthly_data"])
    assert [s["percentage"] for s in data["status_distribution"]] == [0, 0, 0]
    assert data["product_distribution"] == []
    assert data["top_clients"] == []
    assert data["recent_transactions"] == []


def test_stats_count_only_completed_revenue(db, make_customer, make_product, place):
    alice = make_customer()
    make_customer(status="INACTIVE")
    p = make_product(price="100.00", stock=100)
    place(alice, [(p, 1)], status="COMPLETED", order_date=datetime(2025, 3, 2))
    place(alice, [(p, 2)], status="COMPLETED", order_date=datetime(2025, 1, 20))
    place(alice, [(p, 4)], status="CANCELLED", order_date=datetime(2025, 3, 3))
    place(alice, [(p, 8)], order_date=datetime(2025, 3, 4))

    stats = dashboard.get_stats(db, now=NOW)

    assert stats["total_clients"] == 2
    assert stats["active_clients"] == 1
    assert stats["total_products"] == 1
    assert stats["total_transactions"] == 4
    assert stats["completed_transactions"] == 2
    assert stats["pending_transactions"] == 1
    assert stats["total_revenue"] == Decimal("300.00")
    assert stats["monthly_revenue"] == Decimal("100.00")


def test_monthly_series_has_twelve_months(db, make_customer, make_product, place):
    c = make_customer()
    p = make_product(price="10.00", stock=100)
    place(c, [(p, 1)], status="COMPLETED", order_date=datetime(2025, 3, 1))
    place(c, [(p, 2)], order_date=datetime(2025, 3, 10))
    place(c, [(p, 3)], status="COMPLETED", order_date=datetime(2024, 4, 5))
    # outside the window
    place(c, [(p, 5)], status="COMPLETED", order_date=datetime(2024, 3, 31))

    series = dashboard.get_transactions_by_month(db, now=NOW)

    assert [m["month"] for m in series][:2] == ["2024-04", "2024-05"]
    assert series[-1]["month"] == "2025-03"
    assert series[-1]["label"] == "Mar 25"
    assert len(series) == 12
    assert series[-1]["transactions"] == 2
    assert series[-1]["revenue"] == Decimal("10.00")
    assert series[0]["transactions"] == 1
    assert series[0]["revenue"] == Decimal("30.00")
    assert sum(m["transactions"] for m in series) == 3


def test_status_distribution_percentages(db, make_customer, make_product, place):
    c = make_customer()
    p = make_product(stock=100)
    place(c, [(p, 1)], status="COMPLETED")
    place(c, [(p, 1)], status="COMPLETED")
    place(c, [(p, 1)], status="CANCELLED")

    dist = dashboard.get_status_distribution(db)

    assert [(d["status"], d["label"], d["count"], d["percentage"]) for d in dist] == [
        ("COMPLETED", "Processed", 2, 67),
        ("PENDING", "Processing", 0, 0),
        ("CANCELLED", "Declined", 1, 33),
    ]


def test_product_distribution_ranks_by_item_revenue(db, make_customer, make_product, place):
    c = make_customer()
    cheap = make_product(name="Cheap", price="1.00", stock=100)
    dear = make_product(name="Dear", price="50.00", stock=100)
    make_product(name="Unsold")
    place(c, [(cheap, 10), (dear, 1)])
    place(c, [(cheap, 5)], status="CANCELLED")

    dist = dashboard.get_product_distribution(db)

    assert [d["name"] for d in dist] == ["Dear", "Cheap", "Unsold"]
    assert dist[0]["total_revenue"] == Decimal("50.00")
    assert dist[1]["transaction_count"] == 2
    assert dist[1]["total_revenue"] == Decimal("15.00")
    assert dashboard.get_product_distribution(db, limit=1)[0]["name"] == "Dear"


def test_top_clients_by_completed_spend(db, make_customer, make_product, place):
    small = make_customer(name="Small")
    big = make_customer(name="Big")
    p = make_product(price="10.00", stock=100)
    place(small, [(p, 1)], status="COMPLETED")
    place(big, [(p, 5)], status="COMPLETED")
    place(small, [(p, 50)])

    top = dashboard.get_top_clients(db)

    assert [(t["name"], t["transaction_count"], t["total_spent"]) for t in top] == [
        ("Big", 1, Decimal("50.00")),
        ("Small", 1, Decimal("10.00")),
    ]


def test_recent_transactions(db, make_customer, make_product, place):
    c = make_customer(name="Recent Co.")
    a = make_product(price="2.00", stock=100)
    b = make_product(price="3.00", stock=100)
    old = place(c, [(a, 1)], order_date=datetime(2025, 1, 1))
    new = place(c, [(a, 1), (b, 2)], order_date=datetime(2025, 2, 1))

    recent = dashboard.get_recent_transactions(db, limit=10)

    assert [r["id"] for r in recent] == [new["id"], old["id"]]
    assert recent[0]["client_name"] == "Recent Co."
    assert recent[0]["amount"] == Decimal("8.00")
    assert recent[0]["product_count"] == 2
    assert recent[0]["status"] == "PENDING"
    assert recent[0]["date"].startswith("2025-02-01")
    assert len(dashboard.get_recent_transactions(db, limit=1)) == 1
