import datetime as dt
import logging
import re
from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from pymongo.database import Database

from attendance_server.database import day_start, get_db
from attendance_server.errors import BadRequestError, ForbiddenError
from attendance_server.permissions import find_or_404, load_managed_section
from attendance_server.reports import (
    CSV_MEDIA_TYPE,
    XLSX_MEDIA_TYPE,
    section_matrix,
    student_rows,
    to_csv,
    to_xlsx,
)
from attendance_server.schemas import UserRole
from attendance_server.security import allow_to, protect

logger = logging.getLogger(__name__)

router = APIRouter(tags=["export"])

ExportFormat = Literal["xlsx", "csv"]


def safe_filename(value: str) -> str:
    return re.sub(r"[^A-Za-z0-9_.-]+", "_", value).strip("_") or "export"


def date_range_filter(date_from: Optional[dt.date], date_to: Optional[dt.date]) -> Dict[str, Any]:
    if date_from and date_to and date_from > date_to:
        raise BadRequestError("'from' must not be after 'to'")
    bounds: Dict[str, Any] = {}
    if date_from:
        bounds["$gte"] = day_start(date_from)
    if date_to:
        bounds["$lte"] = day_start(date_to)
    return {"date": bounds} if bounds else {}


def file_response(rows: List[List[Any]], fmt: str, title: str, filename: str) -> Response:
    if fmt == "csv":
        body, media_type = to_csv(rows), CSV_MEDIA_TYPE
    else:
        body, media_type = to_xlsx(rows, title), XLSX_MEDIA_TYPE
    return Response(
        content=body.getvalue(),
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}.{fmt}"'},
    )


@router.get("/section/{section_id}")
def export_section_attendance(
    section_id: str,
    format: ExportFormat = Query("xlsx"),
    date_from: Optional[dt.date] = Query(None, alias="from"),
    date_to: Optional[dt.date] = Query(None, alias="to"),
    db: Database = Depends(get_db),
    user: Dict[str, Any] = Depends(allow_to(UserRole.ADMIN, UserRole.INSTRUCTOR)),
):
    """
    Download a section's attendance as a student x day sheet.
    """
    section, cls = load_managed_section(db, user, section_id)
    query = {"sectionId": section["_id"], **date_range_filter(date_from, date_to)}
    records = list(db.attendance.find(query))
    students = list(db.users.find({"_id": {"$in": section.get("studentIds", [])}}).sort("name", 1))

    rows = section_matrix(students, records)
    filename = safe_filename(f"attendance_{cls['code']}_section_{section['sectionNumber']}_{dt.datetime.utcnow().date()}")
    logger.info("Exporting section %s as %s: %d students, %d records", section["_id"], format, len(students), len(records))
    return file_response(rows, format, "Attendance Report", filename)


@router.get("/student/{student_id}")
def export_student_attendance(
    student_id: str,
    format: ExportFormat = Query("xlsx"),
    date_from: Optional[dt.date] = Query(None, alias="from"),
    date_to: Optional[dt.date] = Query(None, alias="to"),
    db: Database = Depends(get_db),
    user: Dict[str, Any] = Depends(protect),
):
    student = find_or_404(db, "users", student_id, "Student")
    if student.get("role") != UserRole.STUDENT.value:
        raise BadRequestError("User is not a student")
    if user["role"] == UserRole.STUDENT.value and user["_id"] != student["_id"]:
        raise ForbiddenError("Students can only export their own attendance")

    query = {"studentId": student["_id"], **date_range_filter(date_from, date_to)}
    records = list(db.attendance.find(query).sort("date", 1))
    classes = {c["_id"]: c for c in db.classes.find({"_id": {"$in": list({r["classId"] for r in records})}})}
    sections = {s["_id"]: s for s in db.sections.find({"_id": {"$in": list({r["sectionId"] for r in records})}})}

    rows = student_rows(records, classes, sections)
    label = student.get("studentId") or str(student["_id"])
    filename = safe_filename(f"attendance_{label}_{dt.datetime.utcnow().date()}")
    return file_response(rows, format, "Student Attendance", filename)
