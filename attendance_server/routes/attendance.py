import datetime as dt
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from pymongo.database import Database

from attendance_server.database import day_start, get_db, oid, serialize_doc
from attendance_server.errors import BadRequestError, ForbiddenError
from attendance_server.permissions import ensure_can_manage_class, find_or_404, load_managed_section
from attendance_server.reports import summarize_by_section
from attendance_server.schemas import AttendanceMethod, UserRole
from attendance_server.security import allow_to, protect
from attendance_server.validation import MarkAttendanceRequest, UpdateAttendanceRequest

logger = logging.getLogger(__name__)

router = APIRouter(tags=["attendance"])

managers = allow_to(UserRole.ADMIN, UserRole.INSTRUCTOR)


def today() -> dt.date:
    return dt.datetime.utcnow().date()


def student_report(db: Database, student_id) -> Dict[str, Any]:
    records = list(db.attendance.find({"studentId": student_id}).sort([("date", 1), ("sectionId", 1)]))
    return {
        "studentId": str(student_id),
        "records": [serialize_doc(r) for r in records],
        "summary": summarize_by_section(records),
    }


def load_managed_record(db: Database, user: Dict[str, Any], attendance_id: str) -> Dict[str, Any]:
    record = find_or_404(db, "attendance", attendance_id, "Attendance record")
    cls = find_or_404(db, "classes", record["classId"], "Class")
    ensure_can_manage_class(user, cls)
    return record


@router.post("")
def mark_attendance(
    payload: MarkAttendanceRequest,
    db: Database = Depends(get_db),
    user: Dict[str, Any] = Depends(managers),
):
    section, cls = load_managed_section(db, user, payload.sectionId)
    enrolled = set(section.get("studentIds", []))
    not_enrolled = [e.studentId for e in payload.records if oid(e.studentId) not in enrolled]
    if not_enrolled:
        raise BadRequestError(f"Students not enrolled in this section: {', '.join(not_enrolled)}")

    day = day_start(payload.date or today())
    now = dt.datetime.utcnow()
    created = 0
    for entry in payload.records:
        result = db.attendance.update_one(
            {"sectionId": section["_id"], "studentId": oid(entry.studentId), "date": day},
            {
                "$set": {
                    "classId": cls["_id"],
                    "status": entry.status.value,
                    "method": AttendanceMethod.MANUAL.value,
                    "markedBy": user["_id"],
                    "updatedAt": now,
                },
                "$setOnInsert": {"createdAt": now},
            },
            upsert=True,
        )
        if result.upserted_id is not None:
            created += 1

    logger.info(
        "Attendance for section %s on %s marked by %s: %d entries, %d new",
        section["_id"], day.date(), user["_id"], len(payload.records), created,
    )
    records = db.attendance.find({"sectionId": section["_id"], "date": day}).sort("studentId", 1)
    return {
        "marked": len(payload.records),
        "created": created,
        "updated": len(payload.records) - created,
        "records": [serialize_doc(r) for r in records],
    }


@router.get("/section/{section_id}")
def get_section_attendance(
    section_id: str,
    date: Optional[dt.date] = Query(None, description="Only this day (YYYY-MM-DD)"),
    db: Database = Depends(get_db),
    user: Dict[str, Any] = Depends(managers),
):
    section, _ = load_managed_section(db, user, section_id)
    query: Dict[str, Any] = {"sectionId": section["_id"]}
    if date is not None:
        query["date"] = day_start(date)
    records = db.attendance.find(query).sort([("date", 1), ("studentId", 1)])
    return [serialize_doc(r) for r in records]


@router.get("/me")
def get_my_attendance(
    db: Database = Depends(get_db),
    user: Dict[str, Any] = Depends(allow_to(UserRole.STUDENT)),
):
    return student_report(db, user["_id"])


@router.get("/student/{student_id}")
def get_student_attendance(
    student_id: str,
    db: Database = Depends(get_db),
    user: Dict[str, Any] = Depends(protect),
):
    student = find_or_404(db, "users", student_id, "Student")
    if student.get("role") != UserRole.STUDENT.value:
        raise BadRequestError("User is not a student")
    if user["role"] == UserRole.STUDENT.value and user["_id"] != student["_id"]:
        raise ForbiddenError("Students can only view their own attendance")
    return student_report(db, student["_id"])


@router.patch("/{attendance_id}")
def update_attendance(
    attendance_id: str,
    payload: UpdateAttendanceRequest,
    db: Database = Depends(get_db),
    user: Dict[str, Any] = Depends(managers),
):
    record = load_managed_record(db, user, attendance_id)
    db.attendance.update_one(
        {"_id": record["_id"]},
        {"$set": {"status": payload.status.value, "markedBy": user["_id"], "updatedAt": dt.datetime.utcnow()}},
    )
    return serialize_doc(db.attendance.find_one({"_id": record["_id"]}))


@router.delete("/{attendance_id}")
def delete_attendance(
    attendance_id: str,
    db: Database = Depends(get_db),
    user: Dict[str, Any] = Depends(managers),
):
    record = load_managed_record(db, user, attendance_id)
    db.attendance.delete_one({"_id": record["_id"]})
    return {"deleted": True}
