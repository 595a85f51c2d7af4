"""
Lookup helpers shared by the routers and the ownership rules for classes.

Admins manage everything. An instructor manages the classes they teach or
created. Students manage nothing.
"""

from typing import Any, Dict, Iterable, List, Tuple

from bson import ObjectId
from pymongo.database import Database

from attendance_server.database import oid
from attendance_server.errors import BadRequestError, ForbiddenError, NotFoundError
from attendance_server.schemas import UserRole

MANAGE_DENIED = "You do not have permission to manage this class"


def find_or_404(db: Database, collection: str, doc_id: Any, label: str) -> Dict[str, Any]:
    doc = db[collection].find_one({"_id": oid(doc_id)})
    if not doc:
        raise NotFoundError(f"{label} not found")
    return doc


def is_admin(user: Dict[str, Any]) -> bool:
    return user.get("role") == UserRole.ADMIN.value


def can_manage_class(user: Dict[str, Any], cls: Dict[str, Any]) -> bool:
    if is_admin(user):
        return True
    if user.get("role") != UserRole.INSTRUCTOR.value:
        return False
    return user["_id"] in (cls.get("instructorId"), cls.get("createdBy"))


def ensure_can_manage_class(user: Dict[str, Any], cls: Dict[str, Any]) -> None:
    if not can_manage_class(user, cls):
        raise ForbiddenError(MANAGE_DENIED)


def load_section(db: Database, section_id: Any) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """Return the section and its class, raising 404 if either is missing."""
    section = find_or_404(db, "sections", section_id, "Section")
    cls = find_or_404(db, "classes", section["classId"], "Class")
    return section, cls


def load_managed_section(db: Database, user: Dict[str, Any], section_id: Any) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    section, cls = load_section(db, section_id)
    ensure_can_manage_class(user, cls)
    return section, cls


def unique_object_ids(ids: Iterable[Any]) -> List[ObjectId]:
    seen = set()
    result = []
    for value in ids:
        object_id = oid(value)
        if object_id not in seen:
            seen.add(object_id)
            result.append(object_id)
    return result


def resolve_student_ids(db: Database, ids: Iterable[Any]) -> List[ObjectId]:
    """Deduplicate ids and check that each one references a student."""
    object_ids = unique_object_ids(ids)
    if not object_ids:
        return object_ids
    found = {
        doc["_id"]
        for doc in db.users.find(
            {"_id": {"$in": object_ids}, "role": UserRole.STUDENT.value},
            {"_id": 1},
        )
    }
    invalid = [str(object_id) for object_id in object_ids if object_id not in found]
    if invalid:
        raise BadRequestError(f"Invalid student IDs: {', '.join(invalid)}")
    return object_ids


def user_summary(user: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": str(user["_id"]),
        "name": user.get("name"),
        "email": user.get("email"),
        "studentId": user.get("studentId"),
    }
