"""
Order processor.

Creates orders against the catalog atomically and moves them through
their status lifecycle:

    PENDING -> COMPLETED
    PENDING -> CANCELLED

COMPLETED and CANCELLED are terminal.

Creation either applies every stock decrement and inserts the order, or
leaves the catalog exactly as it found it. Each decrement is a single
conditional update (``stock >= quantity``), so stock never goes negative
no matter how many server processes run. Decrements already applied when
a later step fails are given back before the error propagates. With
MONGO_TRANSACTIONS enabled the same steps run inside a multi-document
transaction instead and the database does the rollback.
"""

import logging
from decimal import Decimal
from typing import List, NamedTuple, Optional, Tuple

from bson import Decimal128, ObjectId
from pymongo import DESCENDING, ReturnDocument
from pymongo.errors import PyMongoError

import config
from database import create_document, money, parse_object_id, serialize_doc, storage_errors, utcnow
from errors import (
    CustomerNotFound,
    InsufficientStock,
    InvalidStatusTransition,
    OrderNotFound,
    ProductNotFound,
    ValidationError,
)
from schemas import Order, OrderStatusUpdate, validate

logger = logging.getLogger(__name__)


class ValidatedOrder(NamedTuple):
    customer_id: ObjectId
    items: List[Tuple[ObjectId, int]]


def validate_create_order(payload) -> ValidatedOrder:
    """Check a create-order request without touching storage.

    Raises ValidationError for an empty item list, quantities below one
    and ids that are not ObjectIds.
    """
    order = validate(Order, payload)
    errors = []

    customer_id = parse_object_id(order.customer_id)
    if customer_id is None:
        errors.append({"field": "customer_id", "message": "Invalid Customer ID"})

    items = []
    for i, item in enumerate(order.items):
        product_id = parse_object_id(item.product_id)
        if product_id is None:
            errors.append({"field": f"items.{i}.product_id", "message": "Invalid Product ID"})
        items.append((product_id, item.quantity))

    if errors:
        raise ValidationError("Validation failed", errors=errors)
    return ValidatedOrder(customer_id, items)


def create_order(database, payload, use_transactions: Optional[bool] = None) -> dict:
    order = validate_create_order(payload)
    if use_transactions is None:
        use_transactions = config.MONGO_TRANSACTIONS

    with storage_errors("creating order"):
        if database["customer"].find_one({"_id": order.customer_id}, {"_id": 1}) is None:
            raise CustomerNotFound()

        if use_transactions:
            with database.client.start_session() as session:
                order_id = session.with_transaction(
                    lambda s: _place_order(database, order, session=s)
                )
        else:
            order_id = _place_order_compensating(database, order)

        doc = database["order"].find_one({"_id": order_id})
        created = _expand(database, [doc])[0]

    logger.info(
        "Created order %s for customer %s: %d item(s), total %s",
        created["id"], created["customer_id"], len(created["items"]), created["total_amount"],
    )
    return created


def _place_order(database, order: ValidatedOrder, session=None, applied=None) -> ObjectId:
    products = database["product"]
    now = utcnow()
    total = Decimal("0.00")
    items = []

    for product_id, quantity in order.items:
        product = products.find_one_and_update(
            {"_id": product_id, "stock": {"$gte": quantity}},
            {"$inc": {"stock": -quantity}, "$set": {"updated_at": now}},
            return_document=ReturnDocument.AFTER,
            session=session,
        )
        if product is None:
            # read after the guarded update missed, so the stock figure is advisory
            current = products.find_one({"_id": product_id}, session=session)
            if current is None:
                raise ProductNotFound(f"Product with ID {product_id} not found")
            raise InsufficientStock(current.get("name", str(product_id)), current.get("stock", 0), quantity)
        if applied is not None:
            applied.append((product_id, quantity))

        # price read in the same atomic step as the decrement
        unit_price = money(product["price"])
        total += unit_price * quantity
        items.append({
            "_id": ObjectId(),
            "product_id": product_id,
            "quantity": quantity,
            "unit_price": Decimal128(unit_price),
        })

    data = {
        "customer_id": order.customer_id,
        "status": "PENDING",
        "total_amount": Decimal128(money(total)),
        "order_date": now,
        "created_at": now,
        "items": items,
    }
    return parse_object_id(create_document(database, "order", data, session=session))


def _place_order_compensating(database, order: ValidatedOrder) -> ObjectId:
    applied = []
    try:
        return _place_order(database, order, applied=applied)
    except Exception:
        if applied:
            logger.warning("Order creation failed, returning stock for %d item(s)", len(applied))
            _return_stock(database, applied)
        raise


def _return_stock(database, items) -> None:
    now = utcnow()
    for product_id, quantity in items:
        try:
            database["product"].update_one(
                {"_id": product_id},
                {"$inc": {"stock": quantity}, "$set": {"updated_at": now}},
            )
        except PyMongoError:
            logger.exception("Could not return %d unit(s) of stock to product %s", quantity, product_id)


def _restock_cancelled(database, order: dict) -> None:
    """Give a cancelled order's quantities back, or put everything back as it was.

    On a storage failure the stock already returned is taken again, the
    order goes back to PENDING and the error propagates.
    """
    products = database["product"]
    now = utcnow()
    returned = []
    try:
        for item in order.get("items", []):
            products.update_one(
                {"_id": item["product_id"]},
                {"$inc": {"stock": item["quantity"]}, "$set": {"updated_at": now}},
            )
            returned.append((item["product_id"], item["quantity"]))
    except PyMongoError:
        logger.exception("Could not restock cancelled order %s, reverting it to PENDING", order["_id"])
        for product_id, quantity in returned:
            result = products.update_one(
                {"_id": product_id, "stock": {"$gte": quantity}},
                {"$inc": {"stock": -quantity}, "$set": {"updated_at": now}},
            )
            if result.matched_count == 0:
                logger.error("Could not take back %d unit(s) of product %s", quantity, product_id)
        database["order"].update_one(
            {"_id": order["_id"], "status": "CANCELLED"},
            {"$set": {"status": "PENDING", "updated_at": now}},
        )
        raise


def update_order_status(database, order_id: str, status: str, restore_stock: Optional[bool] = None) -> dict:
    """Move a PENDING order to COMPLETED or CANCELLED.

    Terminal orders are rejected with InvalidStatusTransition. Cancelling
    gives the ordered quantities back to the products unless restore_stock
    (default RESTORE_STOCK_ON_CANCEL) is off. Totals and items are never
    touched.
    """
    target = validate(OrderStatusUpdate, {"status": status}).status
    oid = parse_object_id(order_id)
    if oid is None:
        raise OrderNotFound()
    if restore_stock is None:
        restore_stock = config.RESTORE_STOCK_ON_CANCEL

    with storage_errors("updating order status"):
        doc = database["order"].find_one_and_update(
            {"_id": oid, "status": "PENDING"},
            {"$set": {"status": target, "updated_at": utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
        if doc is None:
            current = database["order"].find_one({"_id": oid}, {"status": 1})
            if current is None:
                raise OrderNotFound()
            logger.warning("Rejected status change of order %s: %s -> %s", order_id, current["status"], target)
            raise InvalidStatusTransition(current["status"], target)

        if target == "CANCELLED" and restore_stock:
            _restock_cancelled(database, doc)

        updated = _expand(database, [doc])[0]

    logger.info("Order %s is now %s", order_id, target)
    return updated


def list_orders(database, status: Optional[str] = None) -> list:
    filt = {"status": status} if status else {}
    with storage_errors("listing orders"):
        docs = list(database["order"].find(filt).sort([("created_at", DESCENDING), ("_id", DESCENDING)]))
        return _expand(database, docs)


def get_order(database, order_id: str) -> dict:
    oid = parse_object_id(order_id)
    if oid is None:
        raise OrderNotFound()
    with storage_errors("reading order"):
        doc = database["order"].find_one({"_id": oid})
        if doc is None:
            raise OrderNotFound()
        return _expand(database, [doc])[0]


def _expand(database, docs) -> list:
    """Serialize orders with their customer and each item's product nested."""
    customer_ids = {d["customer_id"] for d in docs}
    product_ids = {i["product_id"] for d in docs for i in d.get("items", [])}

    customers = {
        str(c["_id"]): serialize_doc(c)
        for c in database["customer"].find({"_id": {"$in": list(customer_ids)}})
    } if customer_ids else {}
    products = {
        str(p["_id"]): serialize_doc(p)
        for p in database["product"].find({"_id": {"$in": list(product_ids)}})
    } if product_ids else {}

    results = []
    for d in docs:
        order = serialize_doc(d)
        order["customer"] = customers.get(order["customer_id"])
        for item in order.get("items", []):
            item["product"] = products.get(item["product_id"])
        results.append(order)
    return results
