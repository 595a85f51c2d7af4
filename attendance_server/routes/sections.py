import logging
from datetime import datetime
from typing import Any, Dict

from bson import ObjectId
from fastapi import APIRouter, Depends, status
from pymongo.database import Database

from attendance_server.database import create_document, get_db, serialize_doc
from attendance_server.errors import ConflictError
from attendance_server.permissions import (
    ensure_can_manage_class,
    find_or_404,
    load_managed_section,
    load_section,
    resolve_student_ids,
    user_summary,
)
from attendance_server.schemas import Section, UserRole
from attendance_server.security import allow_to, protect
from attendance_server.validation import (
    AddStudentsToSectionRequest,
    CreateSectionRequest,
    DeleteSectionRequest,
    RemoveStudentsFromSectionRequest,
    UpdateSectionRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["sections"])

managers = allow_to(UserRole.ADMIN, UserRole.INSTRUCTOR)


def ensure_section_number_free(db: Database, class_id: ObjectId, section_number: str, exclude_id=None) -> None:
    query: Dict[str, Any] = {"classId": class_id, "sectionNumber": section_number}
    if exclude_id is not None:
        query["_id"] = {"$ne": exclude_id}
    if db.sections.find_one(query):
        raise ConflictError(f"Section {section_number} already exists for this class")


@router.post("", status_code=status.HTTP_201_CREATED)
def create_section(
    payload: CreateSectionRequest,
    db: Database = Depends(get_db),
    user: Dict[str, Any] = Depends(managers),
):
    cls = find_or_404(db, "classes", payload.classId, "Class")
    ensure_can_manage_class(user, cls)
    ensure_section_number_free(db, cls["_id"], payload.sectionNumber)
    student_ids = resolve_student_ids(db, payload.studentIds or [])

    section = Section(
        classId=cls["_id"],
        sectionNumber=payload.sectionNumber,
        dayNumber=payload.dayNumber,
        studentIds=student_ids,
    )
    section_id = create_document(db, "sections", section)
    logger.info("Section %s created in class %s with %d students", section_id, cls["_id"], len(student_ids))
    return serialize_doc(db.sections.find_one({"_id": ObjectId(section_id)}))


@router.put("")
def update_section(
    payload: UpdateSectionRequest,
    db: Database = Depends(get_db),
    user: Dict[str, Any] = Depends(managers),
):
    section, cls = load_managed_section(db, user, payload.sectionId)

    updates: Dict[str, Any] = {}
    if payload.sectionNumber is not None and payload.sectionNumber != section["sectionNumber"]:
        ensure_section_number_free(db, cls["_id"], payload.sectionNumber, exclude_id=section["_id"])
        updates["sectionNumber"] = payload.sectionNumber
    if payload.dayNumber is not None:
        updates["dayNumber"] = payload.dayNumber
    if payload.studentIds is not None:
        updates["studentIds"] = resolve_student_ids(db, payload.studentIds)

    if updates:
        updates["updatedAt"] = datetime.utcnow()
        db.sections.update_one({"_id": section["_id"]}, {"$set": updates})
    return serialize_doc(db.sections.find_one({"_id": section["_id"]}))


@router.delete("")
def delete_section(
    payload: DeleteSectionRequest,
    db: Database = Depends(get_db),
    user: Dict[str, Any] = Depends(managers),
):
    section, _ = load_managed_section(db, user, payload.sectionId)
    attendance = db.attendance.delete_many({"sectionId": section["_id"]})
    db.qrcodes.delete_many({"sectionId": section["_id"]})
    db.sections.delete_one({"_id": section["_id"]})
    logger.info("Section %s deleted with %d attendance records", section["_id"], attendance.deleted_count)
    return {"deleted": True, "attendance": attendance.deleted_count}


@router.patch("/add-students")
def add_students_to_section(
    payload: AddStudentsToSectionRequest,
    db: Database = Depends(get_db),
    user: Dict[str, Any] = Depends(managers),
):
    section, _ = load_managed_section(db, user, payload.sectionId)
    student_ids = resolve_student_ids(db, payload.studentIds)
    db.sections.update_one(
        {"_id": section["_id"]},
        {"$addToSet": {"studentIds": {"$each": student_ids}}, "$set": {"updatedAt": datetime.utcnow()}},
    )
    return serialize_doc(db.sections.find_one({"_id": section["_id"]}))


@router.patch("/remove-students")
def remove_students_from_section(
    payload: RemoveStudentsFromSectionRequest,
    db: Database = Depends(get_db),
    user: Dict[str, Any] = Depends(managers),
):
    section, _ = load_managed_section(db, user, payload.sectionId)
    student_ids = [ObjectId(s) for s in payload.studentIds]
    db.sections.update_one(
        {"_id": section["_id"]},
        {"$pull": {"studentIds": {"$in": student_ids}}, "$set": {"updatedAt": datetime.utcnow()}},
    )
    return serialize_doc(db.sections.find_one({"_id": section["_id"]}))


@router.get("/class/{class_id}")
def get_sections_by_class(class_id: str, db: Database = Depends(get_db), _: Dict[str, Any] = Depends(protect)):
    cls = find_or_404(db, "classes", class_id, "Class")
    docs = db.sections.find({"classId": cls["_id"]}).sort("sectionNumber", 1)
    return [serialize_doc(d) for d in docs]


@router.get("/{section_id}")
def get_section(section_id: str, db: Database = Depends(get_db), _: Dict[str, Any] = Depends(protect)):
    section, cls = load_section(db, section_id)
    students = db.users.find({"_id": {"$in": section.get("studentIds", [])}}).sort("name", 1)
    result = serialize_doc(section)
    result["class"] = {"id": str(cls["_id"]), "name": cls["name"], "code": cls["code"]}
    result["students"] = [user_summary(s) for s in students]
    return result
