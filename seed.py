"""
Seed the database with demo clients, financial products and transactions.

    python seed.py            # wipe and reseed
    python seed.py --orders 80

Uses DATABASE_URL / DATABASE_NAME like the API.
"""

import argparse
import logging
import random
import sys
from datetime import timedelta

import catalog
import database
import orders
from database import ensure_indexes, utcnow

logger = logging.getLogger(__name__)

CLIENTS = [
    {"name": "Apex Technologies Inc.", "email": "finance@apextech.com", "phone": "(212) 555-0101",
     "address": "350 Park Avenue, New York, NY 10022"},
    {"name": "Sterling Manufacturing Co.", "email": "accounts@sterlingmfg.com", "phone": "(312) 555-0102",
     "address": "200 W Monroe St, Chicago, IL 60606"},
    {"name": "Pacific Logistics Group", "email": "treasury@pacificlog.com", "phone": "(415) 555-0103",
     "address": "555 California St, San Francisco, CA 94104"},
    {"name": "Atlantic Healthcare Systems", "email": "billing@atlantichc.com", "phone": "(617) 555-0104",
     "address": "75 State Street, Boston, MA 02109"},
    {"name": "Riverside Consulting Group", "email": "admin@riversidecg.com", "phone": "(202) 555-0201",
     "address": "1875 K Street NW, Washington, DC 20006"},
    {"name": "Coastal Properties Inc.", "email": "ar@coastalprop.com", "phone": "(619) 555-0206",
     "address": "750 B Street, San Diego, CA 92101", "status": "INACTIVE"},
]

PRODUCTS = [
    {"sku": "LOAN-001", "name": "Business Term Loan", "description": "Fixed-rate term loan origination fee",
     "price": 1250, "stock": 500},
    {"sku": "CARD-001", "name": "Corporate Credit Card", "description": "Annual card fee", "price": 95, "stock": 2000},
    {"sku": "FX-001", "name": "FX Wire Transfer", "description": "International wire fee", "price": 45, "stock": 5000},
    {"sku": "ACCT-001", "name": "Treasury Management Account", "description": "Monthly service fee",
     "price": 75, "stock": 1000},
    {"sku": "ADV-001", "name": "Advisory Session", "description": "Hourly advisory rate", "price": 350, "stock": 300},
]


def seed(db, order_count: int = 40, rng: random.Random = None) -> dict:
    rng = rng or random.Random()
    for name in ("order", "product", "customer"):
        db[name].delete_many({})
    ensure_indexes(db)

    customers = [catalog.create_customer(db, c) for c in CLIENTS]
    products = [catalog.create_product(db, p) for p in PRODUCTS]
    active = [c for c in customers if c["status"] == "ACTIVE"]

    now = utcnow()
    created = 0
    for _ in range(order_count):
        picked = rng.sample(products, rng.randint(1, 3))
        order = orders.create_order(db, {
            "customer_id": rng.choice(active)["id"],
            "items": [{"product_id": p["id"], "quantity": rng.randint(1, 4)} for p in picked],
        })
        # spread over the last year
        order_date = now - timedelta(days=rng.randint(0, 360), minutes=rng.randint(0, 1440))
        db["order"].update_one(
            {"_id": database.parse_object_id(order["id"])},
            {"$set": {"order_date": order_date}},
        )
        roll = rng.random()
        if roll < 0.65:
            orders.update_order_status(db, order["id"], "COMPLETED")
        elif roll < 0.8:
            orders.update_order_status(db, order["id"], "CANCELLED")
        created += 1

    return {"customers": len(customers), "products": len(products), "orders": created}


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Seed demo data")
    parser.add_argument("--orders", type=int, default=40, help="number of transactions to create")
    parser.add_argument("--seed", type=int, default=None, help="random seed")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    if database.db is None:
        logger.error("DATABASE_URL and DATABASE_NAME must be set")
        return 1

    counts = seed(database.db, order_count=args.orders, rng=random.Random(args.seed))
    logger.info("Seeded %(customers)d clients, %(products)d products, %(orders)d transactions", counts)
    return 0


if __name__ == "__main__":
    sys.exit(main())
