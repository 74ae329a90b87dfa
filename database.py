"""
Database access

MongoDB connection plus the small document helpers the service builds on.
Collections: order, product and user documents live in "orders", "products"
and "users".
"""
import hashlib
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from bson import ObjectId
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from config import Settings

logger = logging.getLogger(__name__)

ORDERS = "orders"
PRODUCTS = "products"
USERS = "users"


def utcnow() -> datetime:
    # BSON dates carry no zone; store naive UTC everywhere
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_object_id(value: Any) -> Optional[ObjectId]:
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return None


def to_str_id(value: Any) -> Any:
    """Make a stored document JSON friendly: ``_id`` becomes ``id``, ObjectIds become strings."""
    if isinstance(value, dict):
        return {("id" if k == "_id" else k): to_str_id(v) for k, v in value.items()}
    if isinstance(value, list):
        return [to_str_id(v) for v in value]
    if isinstance(value, ObjectId):
        return str(value)
    return value


def payment_key(payment_info: Dict[str, Any]) -> str:
    canonical = json.dumps(payment_info, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def connect(settings: Settings) -> Optional[Database]:
    if not settings.database_url or not settings.database_name:
        logger.warning("DATABASE_URL / DATABASE_NAME not set, running without a database")
        return None
    client = MongoClient(settings.database_url)
    return client[settings.database_name]


def backfill_payment_keys(db: Database) -> int:
    """Give orders stored without a paymentKey one, so they take part in duplicate detection."""
    filled = 0
    missing = db[ORDERS].find({"paymentKey": {"$exists": False}}, {"paymentInfo": 1}).sort("_id", ASCENDING)
    for order in list(missing):
        if order.get("paymentInfo") is None:
            continue
        try:
            db[ORDERS].update_one({"_id": order["_id"]}, {"$set": {"paymentKey": payment_key(order["paymentInfo"])}})
        except DuplicateKeyError:
            logger.warning("Order %s repeats the payment info of an earlier order, left without a key", order["_id"])
            continue
        filled += 1
    if filled:
        logger.info("Backfilled paymentKey on %d orders", filled)
    return filled


def ensure_indexes(db: Database) -> None:
    db[ORDERS].create_index(
        [("paymentKey", ASCENDING)],
        unique=True,
        partialFilterExpression={"paymentKey": {"$exists": True}},
    )
    backfill_payment_keys(db)
    db[ORDERS].create_index([("user", ASCENDING)])
    db[ORDERS].create_index([("orderItems.product", ASCENDING)])
    db[ORDERS].create_index([("createdAt", ASCENDING)])
    db[PRODUCTS].create_index([("vendor", ASCENDING)])


def create_document(db: Database, collection_name: str, data: Dict[str, Any]) -> str:
    """Insert a document, stamping createdAt if absent, and return its id as a string."""
    doc = dict(data)
    doc.setdefault("createdAt", utcnow())
    result = db[collection_name].insert_one(doc)
    return str(result.inserted_id)


def get_documents(
    db: Database,
    collection_name: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    limit: Optional[int] = None,
) -> List[Dict[str, Any]]:
    cursor = db[collection_name].find(filter_dict or {})
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)
