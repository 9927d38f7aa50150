"""
Dashboard aggregates.

Read-only reporting over customers, products and orders. Everything is
recomputed on each call; the individual aggregates may observe slightly
different snapshots of the data, which is fine for reporting.

Revenue only counts COMPLETED orders.
"""

import logging
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from pymongo import DESCENDING

from database import money, storage_errors, utcnow

logger = logging.getLogger(__name__)

MONTH_NAMES = ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]

STATUS_LABELS = [
    ("COMPLETED", "Processed"),
    ("PENDING", "Processing"),
    ("CANCELLED", "Declined"),
]


def _month_start(now: datetime) -> datetime:
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def _add_months(year: int, month: int, delta: int):
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def _percentage(count: int, total: int) -> int:
    if not total:
        return 0
    value = Decimal(count * 100) / Decimal(total)
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def get_stats(database, now: Optional[datetime] = None) -> dict:
    now = now or utcnow()
    month_start = _month_start(now)
    with storage_errors("computing dashboard stats"):
        customers = database["customer"]
        orders = database["order"]
        completed = list(orders.find({"status": "COMPLETED"}, {"total_amount": 1, "order_date": 1}))
        stats = {
            "total_clients": customers.count_documents({}),
            "active_clients": customers.count_documents({"status": "ACTIVE"}),
            "total_products": database["product"].count_documents({}),
            "total_transactions": orders.count_documents({}),
            "completed_transactions": len(completed),
            "pending_transactions": orders.count_documents({"status": "PENDING"}),
        }

    stats["total_revenue"] = money(sum((money(o.get("total_amount")) for o in completed), Decimal("0")))
    stats["monthly_revenue"] = money(sum(
        (money(o.get("total_amount")) for o in completed if o.get("order_date") and o["order_date"] >= month_start),
        Decimal("0"),
    ))
    return stats


def get_transactions_by_month(database, now: Optional[datetime] = None) -> list:
    """Transaction count and completed revenue for the trailing 12 calendar months."""
    now = now or utcnow()
    first_year, first_month = _add_months(now.year, now.month, -11)
    start = datetime(first_year, first_month, 1)

    buckets = {}
    for offset in range(12):
        buckets[_add_months(first_year, first_month, offset)] = {"transactions": 0, "revenue": Decimal("0")}

    with storage_errors("computing monthly transactions"):
        docs = list(database["order"].find(
            {"order_date": {"$gte": start}}, {"order_date": 1, "total_amount": 1, "status": 1}
        ))

    for doc in docs:
        date = doc["order_date"]
        bucket = buckets.get((date.year, date.month))
        if bucket is None:
            # order_date in the future
            continue
        bucket["transactions"] += 1
        if doc.get("status") == "COMPLETED":
            bucket["revenue"] += money(doc.get("total_amount"))

    return [
        {
            "month": f"{year}-{month:02d}",
            "label": f"{MONTH_NAMES[month - 1]} {str(year)[2:]}",
            "transactions": data["transactions"],
            "revenue": money(data["revenue"]),
        }
        for (year, month), data in buckets.items()
    ]


def get_status_distribution(database) -> list:
    with storage_errors("computing status distribution"):
        orders = database["order"]
        counts = {status: orders.count_documents({"status": status}) for status, _ in STATUS_LABELS}
        total = orders.count_documents({})

    return [
        {
            "status": status,
            "label": label,
            "count": counts[status],
            "percentage": _percentage(counts[status], total),
        }
        for status, label in STATUS_LABELS
    ]


def get_product_distribution(database, limit: int = 8) -> list:
    """Products ranked by revenue from their order items (any order status)."""
    with storage_errors("computing product distribution"):
        products = list(database["product"].find({}, {"name": 1, "sku": 1}))
        orders = list(database["order"].find({}, {"items": 1}))

    totals = {p["_id"]: {"transaction_count": 0, "total_revenue": Decimal("0")} for p in products}
    for order in orders:
        for item in order.get("items", []):
            entry = totals.get(item["product_id"])
            if entry is None:
                continue
            entry["transaction_count"] += 1
            entry["total_revenue"] += money(item.get("unit_price")) * item.get("quantity", 0)

    rows = [
        {
            "id": str(p["_id"]),
            "name": p.get("name"),
            "sku": p.get("sku"),
            "transaction_count": totals[p["_id"]]["transaction_count"],
            "total_revenue": money(totals[p["_id"]]["total_revenue"]),
        }
        for p in products
    ]
    rows.sort(key=lambda r: r["total_revenue"], reverse=True)
    return rows[:limit]


def get_top_clients(database, limit: int = 5) -> list:
    """Customers ranked by what they spent on COMPLETED orders."""
    with storage_errors("computing top clients"):
        customers = list(database["customer"].find({}, {"name": 1, "email": 1}))
        completed = list(database["order"].find({"status": "COMPLETED"}, {"customer_id": 1, "total_amount": 1}))

    spend = {c["_id"]: [0, Decimal("0")] for c in customers}
    for order in completed:
        entry = spend.get(order["customer_id"])
        if entry is not None:
            entry[0] += 1
            entry[1] += money(order.get("total_amount"))

    rows = [
        {
            "id": str(c["_id"]),
            "name": c.get("name"),
            "email": c.get("email"),
            "transaction_count": spend[c["_id"]][0],
            "total_spent": money(spend[c["_id"]][1]),
        }
        for c in customers
    ]
    rows.sort(key=lambda r: r["total_spent"], reverse=True)
    return rows[:limit]


def get_recent_transactions(database, limit: int = 10) -> list:
    with storage_errors("reading recent transactions"):
        orders = list(database["order"].find().sort([("order_date", DESCENDING), ("_id", DESCENDING)]).limit(limit))
        customer_ids = list({o["customer_id"] for o in orders})
        customers = {
            c["_id"]: c for c in database["customer"].find({"_id": {"$in": customer_ids}})
        } if customer_ids else {}

    rows = []
    for order in orders:
        customer = customers.get(order["customer_id"], {})
        rows.append({
            "id": str(order["_id"]),
            "client_name": customer.get("name"),
            "client_email": customer.get("email"),
            "amount": money(order.get("total_amount")),
            "status": order.get("status"),
            "date": order["order_date"].isoformat(),
            "product_count": len(order.get("items", [])),
        })
    return rows


def get_dashboard(database, now: Optional[datetime] = None) -> dict:
    now = now or utcnow()
    logger.debug("Computing dashboard as of %s", now.isoformat())
    return {
        "stats": get_stats(database, now),
        "monthly_data": get_transactions_by_month(database, now),
        "status_distribution": get_status_distribution(database),
        "product_distribution": get_product_distribution(database),
        "top_clients": get_top_clients(database),
        "recent_transactions": get_recent_transactions(database),
    }
