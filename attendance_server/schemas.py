"""
Attendance System Database Schemas

Define MongoDB collection schemas using Pydantic models. Each model maps to
the collection named in its docstring.

- User -> "users"
- Class -> "classes"
- Section -> "sections"
- AttendanceRecord -> "attendance"
- QRCode -> "qrcodes"
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, EmailStr, Field


class UserRole(str, Enum):
    ADMIN = "admin"
    INSTRUCTOR = "instructor"
    STUDENT = "student"


class AttendanceStatus(str, Enum):
    PRESENT = "present"
    ABSENT = "absent"
    LATE = "late"
    EXCUSED = "excused"


class AttendanceMethod(str, Enum):
    MANUAL = "manual"
    QR = "qr"


# Status letters used in exported sheets
STATUS_CODES = {
    AttendanceStatus.PRESENT.value: "P",
    AttendanceStatus.ABSENT.value: "A",
    AttendanceStatus.LATE.value: "L",
    AttendanceStatus.EXCUSED.value: "E",
}

ATTENDED_STATUSES = (AttendanceStatus.PRESENT.value, AttendanceStatus.LATE.value)


class Document(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True, use_enum_values=True, validate_default=True)


class User(Document):
    """
    Registered users of the system
    Collection: "users"
    """
    name: str = Field(..., description="Full name")
    email: EmailStr = Field(..., description="Login email, unique")
    password: str = Field(..., description="bcrypt hash of the password")
    role: UserRole = Field(UserRole.STUDENT, description="Access role")
    studentId: Optional[str] = Field(None, description="University number for students")


class Class(Document):
    """
    A course taught by an instructor
    Collection: "classes"
    """
    name: str = Field(..., description="Course title")
    code: str = Field(..., description="Course code, unique")
    description: Optional[str] = Field(None, description="Course details")
    instructorId: Optional[ObjectId] = Field(None, description="Teaching instructor")
    createdBy: ObjectId = Field(..., description="User who created the class")


class Section(Document):
    """
    A group of enrolled students inside a class
    Collection: "sections"
    """
    classId: ObjectId = Field(..., description="Owning class")
    sectionNumber: str = Field(..., description="Section label, unique per class")
    dayNumber: Optional[int] = Field(None, ge=1, description="Meeting day number")
    studentIds: List[ObjectId] = Field(default_factory=list, description="Enrolled students")


class AttendanceRecord(Document):
    """
    One student's attendance for one section meeting day
    Collection: "attendance"
    """
    sectionId: ObjectId = Field(..., description="Section the record belongs to")
    classId: ObjectId = Field(..., description="Class of the section")
    studentId: ObjectId = Field(..., description="Student the record is for")
    date: datetime = Field(..., description="Meeting day at midnight UTC")
    status: AttendanceStatus = Field(..., description="Attendance status")
    method: AttendanceMethod = Field(AttendanceMethod.MANUAL, description="How it was recorded")
    markedBy: ObjectId = Field(..., description="User who recorded it")


class QRCode(Document):
    """
    Short-lived check-in code for a section
    Collection: "qrcodes"
    """
    sectionId: ObjectId = Field(..., description="Section the code checks into")
    token: str = Field(..., description="Random token encoded in the image")
    expiresAt: datetime = Field(..., description="UTC expiry time")
    active: bool = Field(True, description="False once replaced or deactivated")
    createdBy: ObjectId = Field(..., description="Instructor who generated it")
