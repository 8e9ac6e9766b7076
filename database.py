"""
Mongo storage access for the asset manager.

The client is opened once by the application lifespan and kept on
``app.state``; route handlers receive the database through the ``get_db``
dependency. Collections map a generated ``ObjectId`` to a loosely typed
document, and every document leaving this module has ``_id`` rendered as a
string.
"""
from typing import Any, Dict, List, Optional, Tuple

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import HTTPException, Request
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database

USERS = "users"
PACKAGES = "package_collection"
ASSETS = "asset_collection"
REQUESTS = "request_collection"
PAYMENTS = "payments"
AFFILIATIONS = "affiliations"
ASSIGNED_ASSETS = "assigned_assets"

COLLECTIONS = (USERS, PACKAGES, ASSETS, REQUESTS, PAYMENTS, AFFILIATIONS, ASSIGNED_ASSETS)


def connect(uri: str) -> MongoClient:
    return MongoClient(uri, tz_aware=True)


def ensure_indexes(db: Database) -> None:
    """Create the unique indexes the business rules rely on."""
    db[USERS].create_index([("email", ASCENDING)], unique=True)
    db[PAYMENTS].create_index([("transactionId", ASCENDING)], unique=True)
    db[AFFILIATIONS].create_index(
        [("employeeEmail", ASCENDING), ("hrEmail", ASCENDING)], unique=True
    )


def get_db(request: Request) -> Database:
    db = getattr(request.app.state, "db", None)
    if db is None:
        raise HTTPException(status_code=500, detail="Database not configured")
    return db


def object_id(value: str) -> ObjectId:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise HTTPException(status_code=400, detail="Invalid id")


def serialize(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if doc is None:
        return None
    out = dict(doc)
    if "_id" in out:
        out["_id"] = str(out["_id"])
    return out


def create_document(db: Database, collection: str, data: Dict[str, Any]) -> Dict[str, Any]:
    doc = dict(data)
    result = db[collection].insert_one(doc)
    doc["_id"] = result.inserted_id
    return serialize(doc)


def get_documents(
    db: Database,
    collection: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    sort: Optional[Tuple[str, int]] = None,
    limit: Optional[int] = None,
) -> List[Dict[str, Any]]:
    cursor = db[collection].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(*sort)
    if limit:
        cursor = cursor.limit(limit)
    return [serialize(doc) for doc in cursor]
