"""
MongoDB access helpers.

`db` is the module-level database handle. It stays None when DATABASE_URL is
not configured, in which case every collection lookup raises StoreError.
"""
import logging
import os
from datetime import datetime, timezone
from typing import Optional

from bson import ObjectId
from bson.errors import InvalidId
from dotenv import load_dotenv
from pymongo import ASCENDING, MongoClient
from pymongo.errors import PyMongoError

from errors import StoreError, ValidationError

load_dotenv()

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

db = None

if DATABASE_URL and DATABASE_NAME:
    try:
        _client = MongoClient(DATABASE_URL)
        db = _client[DATABASE_NAME]
    except PyMongoError as e:
        logger.error("Could not connect to MongoDB: %s", e)
        db = None


def collection(name: str):
    if db is None:
        raise StoreError("Database not configured")
    return db[name]


def ensure_indexes():
    collection("user").create_index([("email", ASCENDING)], unique=True)
    collection("product").create_index([("slug", ASCENDING)], unique=True)
    collection("cart").create_index([("user_id", ASCENDING)], unique=True)
    collection("order").create_index([("items.product_id", ASCENDING)])
    collection("review").create_index([("product_id", ASCENDING)])
    logger.info("Database indexes ensured")


def now() -> datetime:
    return datetime.now(timezone.utc)


def to_object_id(id_str: str) -> ObjectId:
    try:
        return ObjectId(id_str)
    except (InvalidId, TypeError):
        raise ValidationError("Invalid id")


def is_object_id(value: str) -> bool:
    return ObjectId.is_valid(value)


def serialize_doc(doc: Optional[dict]) -> Optional[dict]:
    if not doc:
        return doc
    doc["id"] = str(doc.pop("_id"))
    for k, v in list(doc.items()):
        if isinstance(v, datetime):
            doc[k] = v.isoformat()
    return doc


def create_document(collection_name: str, data) -> str:
    if hasattr(data, "model_dump"):
        data = data.model_dump()
    doc = dict(data)
    doc.setdefault("created_at", now())
    doc.setdefault("updated_at", doc["created_at"])
    result = collection(collection_name).insert_one(doc)
    return str(result.inserted_id)


def get_documents(collection_name: str, filter_dict: Optional[dict] = None, limit: Optional[int] = None, sort=None):
    cursor = collection(collection_name).find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return [serialize_doc(d) for d in cursor]
