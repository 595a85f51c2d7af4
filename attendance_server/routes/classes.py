import logging
from datetime import datetime
from typing import Any, Dict

from bson import ObjectId
from fastapi import APIRouter, Depends, status
from pymongo.database import Database

from attendance_server.database import create_document, get_db, oid, serialize_doc
from attendance_server.errors import BadRequestError, ConflictError
from attendance_server.permissions import ensure_can_manage_class, find_or_404, is_admin
from attendance_server.schemas import Class, UserRole
from attendance_server.security import allow_to, protect
from attendance_server.validation import CreateClassRequest, UpdateClassRequest

logger = logging.getLogger(__name__)

router = APIRouter(tags=["classes"])


def resolve_instructor(db: Database, instructor_id: str) -> ObjectId:
    instructor = db.users.find_one({"_id": oid(instructor_id), "role": UserRole.INSTRUCTOR.value})
    if not instructor:
        raise BadRequestError("Instructor not found")
    return instructor["_id"]


def visible_class_filter(db: Database, user: Dict[str, Any]) -> Dict[str, Any]:
    if is_admin(user):
        return {}
    if user["role"] == UserRole.INSTRUCTOR.value:
        return {"$or": [{"instructorId": user["_id"]}, {"createdBy": user["_id"]}]}
    class_ids = db.sections.distinct("classId", {"studentIds": user["_id"]})
    return {"_id": {"$in": class_ids}}


@router.post("", status_code=status.HTTP_201_CREATED)
def create_class(
    payload: CreateClassRequest,
    db: Database = Depends(get_db),
    user: Dict[str, Any] = Depends(allow_to(UserRole.ADMIN, UserRole.INSTRUCTOR)),
):
    if db.classes.find_one({"code": payload.code}):
        raise ConflictError("Class code already exists")

    if user["role"] == UserRole.INSTRUCTOR.value:
        instructor_id = user["_id"]
    elif payload.instructorId:
        instructor_id = resolve_instructor(db, payload.instructorId)
    else:
        instructor_id = None

    cls = Class(
        name=payload.name,
        code=payload.code,
        description=payload.description,
        instructorId=instructor_id,
        createdBy=user["_id"],
    )
    class_id = create_document(db, "classes", cls)
    logger.info("Class %s (%s) created by %s", class_id, payload.code, user["_id"])
    return serialize_doc(db.classes.find_one({"_id": ObjectId(class_id)}))


@router.get("")
def list_classes(db: Database = Depends(get_db), user: Dict[str, Any] = Depends(protect)):
    docs = db.classes.find(visible_class_filter(db, user)).sort("code", 1)
    return [serialize_doc(d) for d in docs]


@router.get("/{class_id}")
def get_class(class_id: str, db: Database = Depends(get_db), _: Dict[str, Any] = Depends(protect)):
    cls = find_or_404(db, "classes", class_id, "Class")
    sections = db.sections.find({"classId": cls["_id"]}).sort("sectionNumber", 1)
    result = serialize_doc(cls)
    result["sections"] = [serialize_doc(s) for s in sections]
    return result


@router.put("/{class_id}")
def update_class(
    class_id: str,
    payload: UpdateClassRequest,
    db: Database = Depends(get_db),
    user: Dict[str, Any] = Depends(allow_to(UserRole.ADMIN, UserRole.INSTRUCTOR)),
):
    cls = find_or_404(db, "classes", class_id, "Class")
    ensure_can_manage_class(user, cls)

    updates = payload.model_dump(exclude_none=True)
    if "instructorId" in updates:
        if not is_admin(user):
            raise BadRequestError("Only admins can reassign the instructor")
        updates["instructorId"] = resolve_instructor(db, updates["instructorId"])
    if "code" in updates and db.classes.find_one({"code": updates["code"], "_id": {"$ne": cls["_id"]}}):
        raise ConflictError("Class code already exists")
    if not updates:
        return serialize_doc(cls)

    updates["updatedAt"] = datetime.utcnow()
    db.classes.update_one({"_id": cls["_id"]}, {"$set": updates})
    return serialize_doc(db.classes.find_one({"_id": cls["_id"]}))


@router.delete("/{class_id}")
def delete_class(
    class_id: str,
    db: Database = Depends(get_db),
    user: Dict[str, Any] = Depends(allow_to(UserRole.ADMIN, UserRole.INSTRUCTOR)),
):
    cls = find_or_404(db, "classes", class_id, "Class")
    ensure_can_manage_class(user, cls)

    section_ids = db.sections.distinct("_id", {"classId": cls["_id"]})
    attendance = db.attendance.delete_many({"classId": cls["_id"]})
    db.qrcodes.delete_many({"sectionId": {"$in": section_ids}})
    db.sections.delete_many({"classId": cls["_id"]})
    db.classes.delete_one({"_id": cls["_id"]})
    logger.info(
        "Class %s deleted with %d sections and %d attendance records",
        cls["_id"], len(section_ids), attendance.deleted_count,
    )
    return {"deleted": True, "sections": len(section_ids), "attendance": attendance.deleted_count}
