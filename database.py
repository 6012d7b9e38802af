import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from bson import ObjectId
from fastapi import Request
from pymongo import ASCENDING, DESCENDING, MongoClient

from errors import NotFound

logger = logging.getLogger(__name__)

PRODUCTS = "products"
ORDERS = "orders"
USERS = "users"


class Database:
    """Store handle shared by the request handlers. Opened at startup, closed at shutdown."""

    def __init__(self, client: MongoClient, name: str):
        self.client = client
        self.name = name
        self.db = client[name]

    @classmethod
    def connect(cls, url: str, name: str) -> "Database":
        client = MongoClient(url)
        logger.info(f"MongoDB client created for database {name}", extra={"event_type": "db_connect"})
        return cls(client, name)

    def __getitem__(self, collection: str):
        return self.db[collection]

    @property
    def products(self):
        return self.db[PRODUCTS]

    @property
    def orders(self):
        return self.db[ORDERS]

    @property
    def users(self):
        return self.db[USERS]

    def ensure_indexes(self) -> None:
        self.products.create_index([("category", ASCENDING)])
        self.products.create_index([("price", ASCENDING)])
        self.products.create_index([("rating", DESCENDING)])
        self.orders.create_index([("user", ASCENDING), ("createdAt", DESCENDING)])
        self.orders.create_index([("isPaid", ASCENDING)])
        self.orders.create_index([("isDelivered", ASCENDING)])
        self.users.create_index([("email", ASCENDING)], unique=True)

    def close(self) -> None:
        self.client.close()
        logger.info("MongoDB client closed", extra={"event_type": "db_close"})


def get_db(request: Request) -> Database:
    return request.app.state.db


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def touch(data: Dict[str, Any]) -> Dict[str, Any]:
    data["updatedAt"] = utcnow()
    return data


def create_document(db: Database, collection: str, data: Dict[str, Any]) -> Dict[str, Any]:
    now = utcnow()
    doc = {**data, "createdAt": now, "updatedAt": now}
    inserted_id = db[collection].insert_one(doc).inserted_id
    doc["_id"] = inserted_id
    return doc


def get_documents(db: Database, collection: str, filter_dict: Optional[dict] = None,
                  limit: Optional[int] = None, sort: Optional[list] = None,
                  projection: Optional[dict] = None) -> List[dict]:
    cursor = db[collection].find(filter_dict or {}, projection)
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def parse_object_id(value: Any, label: str = "Resource") -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    if not isinstance(value, str) or not ObjectId.is_valid(value):
        raise NotFound(f"{label} not found")
    return ObjectId(value)


def serialize(value: Any) -> Any:
    """Convert a stored document into JSON-ready data. ``_id`` keys are kept."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).isoformat()
    if isinstance(value, dict):
        return {k: serialize(v) for k, v in value.items()}
    if isinstance(value, list):
        return [serialize(v) for v in value]
    return value
