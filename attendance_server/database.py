"""
MongoDB access helpers.

The client is created once at startup; route handlers receive the database
through the ``get_db`` dependency so tests can swap in another one.
"""

import logging
from datetime import date, datetime, time
from typing import Any, Dict, List, Optional

from bson import ObjectId
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database

from attendance_server.config import settings
from attendance_server.errors import AppError, BadRequestError

logger = logging.getLogger(__name__)

client: Optional[MongoClient] = None
db: Optional[Database] = None


def connect() -> Database:
    global client, db
    client = MongoClient(settings.MONGODB_URI, serverSelectionTimeoutMS=settings.MONGODB_TIMEOUT_MS)
    db = client[settings.DATABASE_NAME]
    logger.info("MongoDB client created for database %s", settings.DATABASE_NAME)
    return db


def close() -> None:
    global client, db
    if client is not None:
        client.close()
        logger.info("MongoDB connection closed")
    client = None
    db = None


def get_db() -> Database:
    if db is None:
        raise AppError("Database not configured")
    return db


def ensure_indexes(database: Database) -> None:
    database.users.create_index("email", unique=True)
    database.users.create_index("studentId", unique=True, sparse=True)
    database.classes.create_index("code", unique=True)
    database.sections.create_index([("classId", ASCENDING), ("sectionNumber", ASCENDING)], unique=True)
    database.attendance.create_index(
        [("sectionId", ASCENDING), ("studentId", ASCENDING), ("date", ASCENDING)],
        unique=True,
    )
    database.attendance.create_index("studentId")
    database.qrcodes.create_index("token", unique=True)
    logger.info("Database indexes ensured")


def ping(database: Database) -> bool:
    database.command("ping")
    return True


def to_document(model: BaseModel) -> Dict[str, Any]:
    """Dump a pydantic model into something pymongo can store."""
    data = model.model_dump(exclude_none=True)
    for key, value in list(data.items()):
        if isinstance(value, date) and not isinstance(value, datetime):
            data[key] = day_start(value)
    return data


def create_document(database: Database, collection: str, model: BaseModel) -> str:
    data = to_document(model)
    now = datetime.utcnow()
    data["createdAt"] = now
    data["updatedAt"] = now
    result = database[collection].insert_one(data)
    return str(result.inserted_id)


def get_documents(
    database: Database,
    collection: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    limit: int = 0,
    sort: Optional[List[tuple]] = None,
) -> List[Dict[str, Any]]:
    cursor = database[collection].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def oid(id_str: Any) -> ObjectId:
    if isinstance(id_str, ObjectId):
        return id_str
    if not isinstance(id_str, str) or not ObjectId.is_valid(id_str):
        raise BadRequestError("Invalid ID format")
    return ObjectId(id_str)


def day_start(value: date) -> datetime:
    return datetime.combine(value, time.min)


def serialize_value(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, list):
        return [serialize_value(v) for v in value]
    if isinstance(value, dict):
        return {k: serialize_value(v) for k, v in value.items()}
    return value


def serialize_doc(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not doc:
        return doc
    d = dict(doc)
    if "_id" in d:
        d["id"] = str(d.pop("_id"))
    d.pop("password", None)
    return {k: serialize_value(v) for k, v in d.items()}
