import logging
from typing import Any, Dict

from bson import ObjectId
from fastapi import APIRouter, Depends, status
from pymongo.database import Database

from attendance_server.config import settings
from attendance_server.database import create_document, get_db, get_documents, serialize_doc
from attendance_server.errors import BadRequestError, ConflictError, ForbiddenError, UnauthorizedError
from attendance_server.schemas import User, UserRole
from attendance_server.security import allow_to, create_access_token, hash_password, protect, verify_password
from attendance_server.validation import LoginRequest, RegisterRequest

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])


def auth_response(user: Dict[str, Any]) -> Dict[str, Any]:
    token = create_access_token(str(user["_id"]), user["role"])
    return {"token": token, "user": serialize_doc(user)}


@router.post("/register", status_code=status.HTTP_201_CREATED)
def register(payload: RegisterRequest, db: Database = Depends(get_db)):
    email = payload.email.lower()
    if payload.role == UserRole.ADMIN and not settings.ALLOW_ADMIN_REGISTRATION:
        raise ForbiddenError("Admin accounts cannot be self-registered")
    if payload.studentId and payload.role != UserRole.STUDENT:
        raise BadRequestError("Only students can have a student ID")
    if db.users.find_one({"email": email}):
        raise ConflictError("Email already registered")
    if payload.studentId and db.users.find_one({"studentId": payload.studentId}):
        raise ConflictError("Student ID already registered")

    user = User(
        name=payload.name,
        email=email,
        password=hash_password(payload.password),
        role=payload.role,
        studentId=payload.studentId,
    )
    user_id = create_document(db, "users", user)
    doc = db.users.find_one({"_id": ObjectId(user_id)})
    logger.info("Registered %s %s", doc["role"], user_id)
    return auth_response(doc)


@router.post("/login")
def login(payload: LoginRequest, db: Database = Depends(get_db)):
    user = db.users.find_one({"email": payload.email.lower()})
    if not user or not verify_password(payload.password, user["password"]):
        logger.info("Failed login for %s", payload.email)
        raise UnauthorizedError("Invalid email or password")
    return auth_response(user)


@router.get("/me")
def get_me(user: Dict[str, Any] = Depends(protect)):
    return serialize_doc(user)


@router.get("/students")
def get_all_students(
    db: Database = Depends(get_db),
    _: Dict[str, Any] = Depends(allow_to(UserRole.ADMIN, UserRole.INSTRUCTOR)),
):
    docs = get_documents(db, "users", {"role": UserRole.STUDENT.value}, sort=[("name", 1)])
    return [serialize_doc(d) for d in docs]


@router.get("/instructors")
def get_all_instructors(
    db: Database = Depends(get_db),
    _: Dict[str, Any] = Depends(allow_to(UserRole.ADMIN, UserRole.INSTRUCTOR)),
):
    docs = get_documents(db, "users", {"role": UserRole.INSTRUCTOR.value}, sort=[("name", 1)])
    return [serialize_doc(d) for d in docs]
