"""
Request body schemas.

Failures are reported by the global handler as 400 responses with one
``{path, message}`` entry per problem.
"""

import datetime as dt
from typing import Annotated, List, Optional

from bson import ObjectId
from pydantic import AfterValidator, BaseModel, EmailStr, Field, StrictInt, StringConstraints

from attendance_server.schemas import AttendanceStatus, UserRole


def check_object_id(value: str) -> str:
    if not value:
        raise ValueError("ID cannot be empty")
    if not ObjectId.is_valid(value):
        raise ValueError("Invalid MongoDB ObjectId")
    return value


def check_not_empty(message: str):
    def validator(value: str) -> str:
        if not value:
            raise ValueError(message)
        return value
    return validator


def check_not_empty_list(value: list) -> list:
    if not value:
        raise ValueError("At least one student ID is required")
    return value


def check_password_bytes(value: str) -> str:
    # bcrypt only accepts up to 72 bytes
    if len(value.encode("utf-8")) > 72:
        raise ValueError("Password cannot be longer than 72 bytes")
    return value


ObjectIdStr = Annotated[str, AfterValidator(check_object_id)]
Password = Annotated[str, StringConstraints(min_length=6, max_length=72), AfterValidator(check_password_bytes)]
SectionNumber = Annotated[str, AfterValidator(check_not_empty("Section number cannot be empty"))]
StudentIdList = Annotated[List[ObjectIdStr], AfterValidator(check_not_empty_list)]
TrimmedStr = Annotated[str, StringConstraints(strip_whitespace=True)]


# -----------------------------
# Auth
# -----------------------------

class RegisterRequest(BaseModel):
    name: Annotated[str, StringConstraints(strip_whitespace=True, min_length=2, max_length=100)]
    email: EmailStr
    password: Password
    role: UserRole = UserRole.STUDENT
    studentId: Optional[TrimmedStr] = None


class LoginRequest(BaseModel):
    email: EmailStr
    password: Annotated[str, AfterValidator(check_not_empty("Password is required"))]


# -----------------------------
# Class
# -----------------------------

class CreateClassRequest(BaseModel):
    name: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
    code: Annotated[str, StringConstraints(strip_whitespace=True, to_upper=True, min_length=1)]
    description: Optional[str] = None
    instructorId: Optional[ObjectIdStr] = None


class UpdateClassRequest(BaseModel):
    name: Optional[Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]] = None
    code: Optional[Annotated[str, StringConstraints(strip_whitespace=True, to_upper=True, min_length=1)]] = None
    description: Optional[str] = None
    instructorId: Optional[ObjectIdStr] = None


# -----------------------------
# Section
# -----------------------------

class CreateSectionRequest(BaseModel):
    classId: ObjectIdStr
    sectionNumber: SectionNumber
    dayNumber: Optional[StrictInt] = Field(None, ge=1)
    studentIds: Optional[List[ObjectIdStr]] = None


class UpdateSectionRequest(BaseModel):
    sectionId: ObjectIdStr
    sectionNumber: Optional[SectionNumber] = None
    dayNumber: Optional[StrictInt] = Field(None, ge=1)
    studentIds: Optional[List[ObjectIdStr]] = None


class DeleteSectionRequest(BaseModel):
    sectionId: ObjectIdStr


class AddStudentsToSectionRequest(BaseModel):
    sectionId: ObjectIdStr
    studentIds: StudentIdList


class RemoveStudentsFromSectionRequest(BaseModel):
    sectionId: ObjectIdStr
    studentIds: StudentIdList


# -----------------------------
# Attendance
# -----------------------------

class AttendanceEntry(BaseModel):
    studentId: ObjectIdStr
    status: AttendanceStatus


class MarkAttendanceRequest(BaseModel):
    sectionId: ObjectIdStr
    date: Optional[dt.date] = None
    records: List[AttendanceEntry] = Field(..., min_length=1)


class UpdateAttendanceRequest(BaseModel):
    status: AttendanceStatus


# -----------------------------
# QR codes
# -----------------------------

class GenerateQRCodeRequest(BaseModel):
    sectionId: ObjectIdStr
    expiresInMinutes: Optional[int] = Field(None, ge=1, le=240)


class ScanQRCodeRequest(BaseModel):
    token: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
