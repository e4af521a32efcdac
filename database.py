"""
Database access for the Afrizone store.

A single MongoClient is created at import time when DATABASE_URL is set.
Routes receive the database handle through the `get_db` dependency so tests
can swap in an in-memory database.
"""
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

import structlog
from bson import ObjectId
from bson.errors import InvalidId
from fastapi import HTTPException
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database

logger = structlog.get_logger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME", "afrizone")

_client: Optional[MongoClient] = None
db: Optional[Database] = None

if DATABASE_URL:
    _client = MongoClient(DATABASE_URL)
    db = _client[DATABASE_NAME]


def get_db() -> Database:
    if db is None:
        raise HTTPException(status_code=503, detail="Base de données non configurée")
    return db


def now() -> datetime:
    return datetime.now(timezone.utc)


def to_obj_id(id_str: Any) -> Optional[ObjectId]:
    """Parse an id string, returning None when it is not a valid ObjectId."""
    if isinstance(id_str, ObjectId):
        return id_str
    try:
        return ObjectId(id_str)
    except (InvalidId, TypeError):
        return None


def sanitize(doc: Optional[Dict]) -> Optional[Dict]:
    """Expose `_id` as a string `id`."""
    if not doc:
        return doc
    d = {**doc}
    if "_id" in d:
        d["id"] = str(d.pop("_id"))
    return d


def find_by_id(database: Database, collection_name: str, id_str: Any) -> Optional[Dict]:
    oid = to_obj_id(id_str)
    if oid is None:
        return None
    return database[collection_name].find_one({"_id": oid})


def find_many_by_ids(database: Database, collection_name: str, ids: List[Any], projection: Optional[Dict] = None) -> Dict[str, Dict]:
    """Fetch documents for a list of id strings, keyed by id string."""
    oids = [oid for oid in (to_obj_id(i) for i in set(ids)) if oid is not None]
    if not oids:
        return {}
    cursor = database[collection_name].find({"_id": {"$in": oids}}, projection)
    return {str(doc["_id"]): sanitize(doc) for doc in cursor}


def create_document(database: Database, collection_name: str, data: Union[BaseModel, Dict]) -> str:
    """Insert a document stamped with createdAt/updatedAt and return its id."""
    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = dict(data)
    stamp = now()
    data_dict.setdefault("createdAt", stamp)
    data_dict["updatedAt"] = stamp
    result = database[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def get_documents(database: Database, collection_name: str, filter_dict: Optional[Dict] = None, sort: Optional[List] = None, limit: Optional[int] = None) -> List[Dict]:
    cursor = database[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return [sanitize(doc) for doc in cursor]


def ensure_indexes(database: Database) -> None:
    database["user"].create_index([("email", ASCENDING)], unique=True)
    database["order"].create_index([("user", ASCENDING), ("createdAt", ASCENDING)])
    logger.info("indexes_ensured", database=database.name)
