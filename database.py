"""
MongoDB access for the form service.

Collections:
- "forms"        -> Form documents
- "submissions"  -> Submission documents

Routes receive the database through the `get_db` dependency so tests can
swap in another client with `app.dependency_overrides`.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database

from config import DATABASE_NAME, DATABASE_URL

logger = logging.getLogger(__name__)

FORMS = "forms"
SUBMISSIONS = "submissions"

# MongoClient connects lazily, so building it at import is cheap
client = MongoClient(DATABASE_URL, serverSelectionTimeoutMS=5000)
db = client[DATABASE_NAME]


def get_db() -> Database:
    return db


def utcnow() -> datetime:
    # Mongo hands datetimes back naive; keep ours naive UTC too
    return datetime.now(timezone.utc).replace(tzinfo=None)


def ensure_indexes(database: Database) -> None:
    database[FORMS].create_index([("status", ASCENDING), ("createdAt", DESCENDING)])
    database[SUBMISSIONS].create_index([("formId", ASCENDING), ("createdAt", DESCENDING)])
    database[SUBMISSIONS].create_index([("status", ASCENDING)])
    database[SUBMISSIONS].create_index([("metadata.submittedAt", DESCENDING)])


def parse_object_id(value: str) -> Optional[ObjectId]:
    """Return an ObjectId, or None when `value` cannot be one."""
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        return None


def to_str_id(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not doc:
        return doc
    d = dict(doc)
    if d.get("_id") is not None:
        d["id"] = str(d.pop("_id"))
    # convert nested ObjectIds
    for k, v in list(d.items()):
        if isinstance(v, ObjectId):
            d[k] = str(v)
    return d


def create_document(database: Database, collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    """Insert a document, stamping createdAt/updatedAt. Returns the new id."""
    if isinstance(data, BaseModel):
        data_dict = data.model_dump(by_alias=True)
    else:
        data_dict = dict(data)
    now = utcnow()
    data_dict.setdefault("createdAt", now)
    data_dict.setdefault("updatedAt", now)
    result = database[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def get_documents(
    database: Database,
    collection_name: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    sort: Optional[List[Any]] = None,
    skip: int = 0,
    limit: Optional[int] = None,
    projection: Optional[Dict[str, Any]] = None,
) -> List[Dict[str, Any]]:
    cursor = database[collection_name].find(filter_dict or {}, projection)
    if sort:
        cursor = cursor.sort(sort)
    if skip:
        cursor = cursor.skip(skip)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def increment_counter(
    database: Database,
    collection_name: str,
    doc_id: ObjectId,
    field: str,
    delta: int,
    below: Optional[int] = None,
) -> bool:
    """
    Atomic `$inc` on one counter field. Never a read-modify-write of the document.

    With `below`, the increment only applies while the counter is still under
    that ceiling, so concurrent writers cannot push it past the limit.
    """
    query: Dict[str, Any] = {"_id": doc_id}
    if below is not None:
        query[field] = {"$lt": below}
    res = database[collection_name].update_one(query, {"$inc": {field: delta}})
    return res.matched_count > 0
