"""
Catalog store: Customer and Product records.

Plain CRUD over the "customer" and "product" collections. Product stock
is also changed by the order processor (see orders.py).
"""

import logging
import re
from typing import Optional

from pymongo import DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from database import (
    create_document,
    get_documents,
    parse_object_id,
    serialize_doc,
    storage_errors,
    to_decimal128,
    utcnow,
)
from errors import Conflict, CustomerNotFound, ProductNotFound, ValidationError
from schemas import Customer, CustomerUpdate, Product, ProductUpdate, validate

logger = logging.getLogger(__name__)

# Keys that may not be cleared by a partial update
_REQUIRED_CUSTOMER_FIELDS = ("name", "email", "status")
_REQUIRED_PRODUCT_FIELDS = ("sku", "name", "price", "stock")


def _changes(model, required) -> dict:
    changes = model.model_dump(exclude_unset=True)
    for key in required:
        if key in changes and changes[key] is None:
            changes.pop(key)
    if not changes:
        raise ValidationError("No fields to update")
    return changes


def _search(q: Optional[str], *fields) -> dict:
    if not q:
        return {}
    pattern = {"$regex": re.escape(q), "$options": "i"}
    return {"$or": [{f: pattern} for f in fields]}


# Customers

def create_customer(database, payload) -> dict:
    customer = validate(Customer, payload)
    with storage_errors("creating customer"):
        try:
            cid = create_document(database, "customer", customer)
        except DuplicateKeyError:
            raise Conflict("A customer with this email already exists")
        logger.info("Created customer %s", cid)
        return serialize_doc(database["customer"].find_one({"_id": parse_object_id(cid)}))


def list_customers(database, q: Optional[str] = None, status: Optional[str] = None) -> list:
    filt = _search(q, "name", "email")
    if status:
        filt["status"] = status
    with storage_errors("listing customers"):
        docs = get_documents(database, "customer", filt, sort=[("created_at", DESCENDING)])
    return [serialize_doc(d) for d in docs]


def find_customer(database, customer_id) -> Optional[dict]:
    """Raw customer document, or None."""
    oid = parse_object_id(customer_id)
    if oid is None:
        return None
    return database["customer"].find_one({"_id": oid})


def get_customer(database, customer_id: str) -> dict:
    with storage_errors("reading customer"):
        doc = find_customer(database, customer_id)
    if doc is None:
        raise CustomerNotFound()
    return serialize_doc(doc)


def update_customer(database, customer_id: str, payload) -> dict:
    oid = parse_object_id(customer_id)
    if oid is None:
        raise CustomerNotFound()
    changes = _changes(validate(CustomerUpdate, payload), _REQUIRED_CUSTOMER_FIELDS)
    changes["updated_at"] = utcnow()
    with storage_errors("updating customer"):
        try:
            doc = database["customer"].find_one_and_update(
                {"_id": oid}, {"$set": changes}, return_document=ReturnDocument.AFTER
            )
        except DuplicateKeyError:
            raise Conflict("A customer with this email already exists")
    if doc is None:
        raise CustomerNotFound()
    return serialize_doc(doc)


def delete_customer(database, customer_id: str) -> None:
    oid = parse_object_id(customer_id)
    if oid is None:
        raise CustomerNotFound()
    with storage_errors("deleting customer"):
        if database["order"].find_one({"customer_id": oid}, {"_id": 1}) is not None:
            raise Conflict("Customer has transactions and cannot be deleted")
        result = database["customer"].delete_one({"_id": oid})
    if result.deleted_count == 0:
        raise CustomerNotFound()
    logger.info("Deleted customer %s", customer_id)


# Products

def create_product(database, payload) -> dict:
    product = validate(Product, payload)
    data = product.model_dump()
    data["price"] = to_decimal128(product.price)
    with storage_errors("creating product"):
        pid = create_document(database, "product", data)
        logger.info("Created product %s (%s)", pid, product.sku)
        return serialize_doc(database["product"].find_one({"_id": parse_object_id(pid)}))


def list_products(database, q: Optional[str] = None) -> list:
    with storage_errors("listing products"):
        docs = get_documents(database, "product", _search(q, "name", "sku"),
                             sort=[("created_at", DESCENDING)])
    return [serialize_doc(d) for d in docs]


def find_product(database, product_id) -> Optional[dict]:
    """Raw product document, or None."""
    oid = parse_object_id(product_id)
    if oid is None:
        return None
    return database["product"].find_one({"_id": oid})


def get_product(database, product_id: str) -> dict:
    with storage_errors("reading product"):
        doc = find_product(database, product_id)
    if doc is None:
        raise ProductNotFound()
    return serialize_doc(doc)


def update_product(database, product_id: str, payload) -> dict:
    oid = parse_object_id(product_id)
    if oid is None:
        raise ProductNotFound()
    changes = _changes(validate(ProductUpdate, payload), _REQUIRED_PRODUCT_FIELDS)
    if "price" in changes:
        changes["price"] = to_decimal128(changes["price"])
    changes["updated_at"] = utcnow()
    with storage_errors("updating product"):
        doc = database["product"].find_one_and_update(
            {"_id": oid}, {"$set": changes}, return_document=ReturnDocument.AFTER
        )
    if doc is None:
        raise ProductNotFound()
    return serialize_doc(doc)


def delete_product(database, product_id: str) -> None:
    oid = parse_object_id(product_id)
    if oid is None:
        raise ProductNotFound()
    with storage_errors("deleting product"):
        if database["order"].find_one({"items.product_id": oid}, {"_id": 1}) is not None:
            raise Conflict("Product is referenced by transactions and cannot be deleted")
        result = database["product"].delete_one({"_id": oid})
    if result.deleted_count == 0:
        raise ProductNotFound()
    logger.info("Deleted product %s", product_id)
