import logging
import math
from datetime import datetime, timezone
from typing import Optional

from bson import ObjectId
from fastapi import Request
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database

import config
from errors import InvalidQuery, StoreUnavailable

logger = logging.getLogger(__name__)

# Collection names
USERS = "users"
REQUESTS = "requests"
BLOGS = "blogs"
PAYMENTS = "payments"


def utcnow():
    return datetime.now(timezone.utc)


def connect(url: Optional[str] = None, name: Optional[str] = None) -> Optional[Database]:
    """Build the long-lived database handle. Returns None when no URL is configured."""
    url = url or config.DATABASE_URL
    name = name or config.DATABASE_NAME
    if not url:
        logger.warning("DATABASE_URL not set; database unavailable")
        return None
    client = MongoClient(
        url,
        serverSelectionTimeoutMS=config.DB_TIMEOUT_MS,
        connectTimeoutMS=config.DB_TIMEOUT_MS,
        socketTimeoutMS=config.DB_TIMEOUT_MS,
    )
    return client[name]


def ensure_indexes(db: Database):
    db[USERS].create_index([("email", ASCENDING)], unique=True)
    db[REQUESTS].create_index([("requesterEmail", ASCENDING), ("createdAt", ASCENDING)])
    db[REQUESTS].create_index([("status", ASCENDING)])
    db[BLOGS].create_index([("status", ASCENDING)])


def get_db(request: Request) -> Database:
    """FastAPI dependency handing out the handle built at startup."""
    db = getattr(request.app.state, "db", None)
    if db is None:
        raise StoreUnavailable("Database not available. Check DATABASE_URL and DATABASE_NAME environment variables.")
    return db


def object_id(value: str, what: str = "document") -> ObjectId:
    if not ObjectId.is_valid(value):
        raise InvalidQuery(f"Invalid {what} id")
    return ObjectId(value)


def oid_str(oid):
    return str(oid) if isinstance(oid, ObjectId) else oid


def serialize(doc):
    if not doc:
        return doc
    doc = dict(doc)
    if "_id" in doc:
        doc["_id"] = oid_str(doc["_id"])
    for k, v in list(doc.items()):
        if isinstance(v, ObjectId):
            doc[k] = oid_str(v)
        if isinstance(v, datetime):
            doc[k] = v.isoformat()
    return doc


def paginate(collection, filt: dict, page: int, limit: int, sort=None) -> dict:
    """Slice a filtered, sorted collection into one page plus totals."""
    total = collection.count_documents(filt)
    cursor = collection.find(filt)
    if sort:
        cursor = cursor.sort(sort)
    items = list(cursor.skip((page - 1) * limit).limit(limit))
    return {
        "items": items,
        "total": total,
        "totalPages": math.ceil(total / limit) if limit else 0,
    }


NEWEST_FIRST = [("createdAt", -1), ("_id", -1)]


def count_by(collection, field: str, filt: Optional[dict] = None, known=()) -> dict:
    """Group documents by one field in a single aggregation pass."""
    pipeline = []
    if filt:
        pipeline.append({"$match": filt})
    pipeline.append({"$group": {"_id": f"${field}", "count": {"$sum": 1}}})
    per = {k: 0 for k in known}
    for row in collection.aggregate(pipeline):
        if row["_id"] is None:
            continue
        per[row["_id"]] = row["count"]
    return {"perStatus": per, "total": sum(per.values())}
