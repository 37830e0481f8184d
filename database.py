"""
MongoDB access for the marketplace.

Collections are named after the lowercase entity (Product -> "product").
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import HTTPException
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database

from errors import ValidationError
from settings import get_settings

logger = logging.getLogger(__name__)

PRODUCTS = "product"
BARGAINS = "bargain"
ORDERS = "order"
NOTIFICATIONS = "notification"
USERS = "user"
COUNTERS = "counter"
CARTS = "cart"

settings = get_settings()

client: Optional[MongoClient] = None
db: Optional[Database] = None

if settings.DATABASE_URL:
    client = MongoClient(settings.DATABASE_URL)
    db = client[settings.DATABASE_NAME]


def get_db() -> Database:
    if db is None:
        raise HTTPException(status_code=503, detail="Database not configured")
    return db


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_object_id(value: Any, label: str = "document") -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        raise ValidationError(f"Invalid {label} ID: {value}")


def serialize(value: Any) -> Any:
    """Make a Mongo document JSON serializable (ObjectId -> str)."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, dict):
        return {k: serialize(v) for k, v in value.items()}
    if isinstance(value, list):
        return [serialize(v) for v in value]
    return value


def create_document(collection_name: str, data: Union[BaseModel, dict], database: Optional[Database] = None) -> str:
    """Insert a document, stamping createdAt/updatedAt. Dicts are updated in place with their _id."""
    database = database if database is not None else get_db()
    doc = data.model_dump() if isinstance(data, BaseModel) else data
    now = utcnow()
    doc.setdefault("createdAt", now)
    doc["updatedAt"] = now
    result = database[collection_name].insert_one(doc)
    return str(result.inserted_id)


def get_documents(
    collection_name: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    limit: Optional[int] = None,
    database: Optional[Database] = None,
) -> List[dict]:
    database = database if database is not None else get_db()
    cursor = database[collection_name].find(filter_dict or {}).sort("createdAt", -1)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def ensure_indexes(database: Database) -> None:
    database[ORDERS].create_index("orderNumber", unique=True)
    database[ORDERS].create_index("bargainRequest")
    database[ORDERS].create_index("user")
    # one open offer per buyer and product
    database[BARGAINS].create_index(
        [("user", ASCENDING), ("product", ASCENDING)],
        unique=True,
        partialFilterExpression={"status": "pending", "product": {"$exists": True}},
        name="one_pending_bargain_per_product",
    )
    database[NOTIFICATIONS].create_index("userId")
    database[CARTS].create_index("user", unique=True)
    logger.info("MongoDB indexes ensured")
