import base64
import io
import logging
import secrets
from datetime import datetime, timedelta
from typing import Any, Dict

import qrcode
from bson import ObjectId
from fastapi import APIRouter, Depends, status
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from attendance_server.config import settings
from attendance_server.database import create_document, day_start, get_db, serialize_doc
from attendance_server.errors import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from attendance_server.permissions import find_or_404, load_managed_section, load_section
from attendance_server.schemas import AttendanceMethod, AttendanceRecord, AttendanceStatus, QRCode, UserRole
from attendance_server.security import allow_to
from attendance_server.validation import GenerateQRCodeRequest, ScanQRCodeRequest

logger = logging.getLogger(__name__)

router = APIRouter(tags=["qrcodes"])

managers = allow_to(UserRole.ADMIN, UserRole.INSTRUCTOR)


def qr_data_url(data: str) -> str:
    img = qrcode.make(data)
    buf = io.BytesIO()
    img.save(buf)
    return "data:image/png;base64," + base64.b64encode(buf.getvalue()).decode("ascii")


@router.post("/generate", status_code=status.HTTP_201_CREATED)
def generate_qr_code(
    payload: GenerateQRCodeRequest,
    db: Database = Depends(get_db),
    user: Dict[str, Any] = Depends(managers),
):
    section, _ = load_managed_section(db, user, payload.sectionId)
    now = datetime.utcnow()
    db.qrcodes.update_many(
        {"sectionId": section["_id"], "active": True},
        {"$set": {"active": False, "updatedAt": now}},
    )

    minutes = payload.expiresInMinutes or settings.QR_CODE_TTL_MINUTES
    code = QRCode(
        sectionId=section["_id"],
        token=secrets.token_urlsafe(24),
        expiresAt=now + timedelta(minutes=minutes),
        createdBy=user["_id"],
    )
    qr_id = create_document(db, "qrcodes", code)
    logger.info("QR code %s generated for section %s, valid %d minutes", qr_id, section["_id"], minutes)

    doc = serialize_doc(db.qrcodes.find_one({"_id": ObjectId(qr_id)}))
    doc["qrCode"] = qr_data_url(code.token)
    return doc


@router.post("/scan", status_code=status.HTTP_201_CREATED)
def scan_qr_code(
    payload: ScanQRCodeRequest,
    db: Database = Depends(get_db),
    user: Dict[str, Any] = Depends(allow_to(UserRole.STUDENT)),
):
    code = db.qrcodes.find_one({"token": payload.token})
    if not code:
        raise NotFoundError("QR code not found")
    if not code.get("active") or code["expiresAt"] <= datetime.utcnow():
        raise BadRequestError("QR code has expired")

    section, cls = load_section(db, code["sectionId"])
    if user["_id"] not in section.get("studentIds", []):
        raise ForbiddenError("You are not enrolled in this section")

    day = day_start(datetime.utcnow().date())
    if db.attendance.find_one({"sectionId": section["_id"], "studentId": user["_id"], "date": day}):
        raise ConflictError("Attendance already recorded")

    record = AttendanceRecord(
        sectionId=section["_id"],
        classId=cls["_id"],
        studentId=user["_id"],
        date=day,
        status=AttendanceStatus.PRESENT,
        method=AttendanceMethod.QR,
        markedBy=user["_id"],
    )
    try:
        record_id = create_document(db, "attendance", record)
    except DuplicateKeyError:
        # a concurrent scan for the same day got there first
        raise ConflictError("Attendance already recorded")
    logger.info("Student %s checked into section %s by QR", user["_id"], section["_id"])
    return serialize_doc(db.attendance.find_one({"_id": ObjectId(record_id)}))


@router.get("/section/{section_id}")
def get_active_qr_codes(
    section_id: str,
    db: Database = Depends(get_db),
    user: Dict[str, Any] = Depends(managers),
):
    section, _ = load_managed_section(db, user, section_id)
    docs = db.qrcodes.find(
        {"sectionId": section["_id"], "active": True, "expiresAt": {"$gt": datetime.utcnow()}}
    ).sort("createdAt", -1)
    return [serialize_doc(d) for d in docs]


@router.patch("/{qr_code_id}/deactivate")
def deactivate_qr_code(
    qr_code_id: str,
    db: Database = Depends(get_db),
    user: Dict[str, Any] = Depends(managers),
):
    code = find_or_404(db, "qrcodes", qr_code_id, "QR code")
    load_managed_section(db, user, code["sectionId"])
    db.qrcodes.update_one({"_id": code["_id"]}, {"$set": {"active": False, "updatedAt": datetime.utcnow()}})
    return serialize_doc(db.qrcodes.find_one({"_id": code["_id"]}))
