"""
Database helpers

MongoDB connection plus the small conversion helpers every service uses:
ObjectId parsing, Decimal <-> Decimal128, naive-UTC timestamps and
document serialization for JSON responses.

Collections:
- customer
- product
- order (order items are embedded)
"""

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Optional, Union

from bson import Decimal128, ObjectId
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.errors import PyMongoError

import config
from errors import StorageUnavailable, UnexpectedStorageError

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")

_client = None
db = None

if config.DATABASE_URL and config.DATABASE_NAME:
    try:
        _client = MongoClient(config.DATABASE_URL)
        db = _client[config.DATABASE_NAME]
    except PyMongoError:
        logger.exception("Could not create MongoDB client")
        db = None


def get_db():
    """FastAPI dependency returning the database handle."""
    if db is None:
        raise StorageUnavailable()
    return db


def utcnow() -> datetime:
    # MongoDB hands datetimes back naive (UTC), so store them that way too
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_object_id(value: Any) -> Optional[ObjectId]:
    """Return an ObjectId for value, or None when it is not a valid id."""
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return None


def money(value: Union[Decimal, Decimal128, int, float, str, None]) -> Decimal:
    if value is None:
        return Decimal("0.00")
    if isinstance(value, Decimal128):
        value = value.to_decimal()
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def to_decimal128(value) -> Decimal128:
    return Decimal128(money(value))


def ensure_indexes(database) -> None:
    database["customer"].create_index([("email", ASCENDING)], unique=True)
    database["customer"].create_index([("created_at", DESCENDING)])
    database["product"].create_index([("created_at", DESCENDING)])
    database["order"].create_index([("customer_id", ASCENDING)])
    database["order"].create_index([("items.product_id", ASCENDING)])
    database["order"].create_index([("order_date", DESCENDING)])


@contextmanager
def storage_errors(action: str):
    """Turn driver errors into UnexpectedStorageError without leaking details."""
    try:
        yield
    except PyMongoError:
        logger.exception("Storage failure while %s", action)
        raise UnexpectedStorageError()


def create_document(database, collection_name: str, data: Union[BaseModel, dict], session=None) -> str:
    """Insert a document, stamping created_at/updated_at. Returns the new id."""
    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = data.copy()

    now = utcnow()
    data_dict.setdefault("created_at", now)
    data_dict["updated_at"] = now

    result = database[collection_name].insert_one(data_dict, session=session)
    return str(result.inserted_id)


def get_documents(database, collection_name: str, filter_dict: Optional[dict] = None,
                  limit: Optional[int] = None, sort: Optional[list] = None):
    cursor = database[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def _convert(value):
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, Decimal128):
        return value.to_decimal()
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return serialize_doc(value)
    if isinstance(value, list):
        return [_convert(v) for v in value]
    return value


def serialize_doc(doc: dict):
    if not doc:
        return doc
    d = {**doc}
    if "_id" in d:
        d["id"] = str(d.pop("_id"))
    for k, v in list(d.items()):
        d[k] = _convert(v)
    return d
