from __future__ import annotations

import os

os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("JWT_SECRET", "test-secret")

from itertools import count
from typing import Any, Callable, Dict, Optional

import mongomock
import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

from attendance_server.database import create_document, ensure_indexes, get_db
from attendance_server.main import create_app
from attendance_server.schemas import Class, Section, User
from attendance_server.security import create_access_token, hash_password

PASSWORD = "secret123"


@pytest.fixture
def db():
    database = mongomock.MongoClient().attendance_test
    ensure_indexes(database)
    return database


@pytest.fixture
def client(db):
    app = create_app()
    app.dependency_overrides[get_db] = lambda: db
    return TestClient(app)


@pytest.fixture
def make_user(db) -> Callable[..., Dict[str, Any]]:
    seq = count(1)

    def _make(role: str = "student", name: Optional[str] = None, email: Optional[str] = None, student_id: Optional[str] = None):
        n = next(seq)
        user = User(
            name=name or f"{role.title()} {n}",
            email=email or f"{role}{n}@uni.edu",
            password=hash_password(PASSWORD),
            role=role,
            studentId=student_id if student_id is not None else (f"S{n:04d}" if role == "student" else None),
        )
        user_id = create_document(db, "users", user)
        return db.users.find_one({"_id": ObjectId(user_id)})

    return _make


def bearer(user: Dict[str, Any]) -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(str(user['_id']), user['role'])}"}


@pytest.fixture
def auth_headers() -> Callable[[Dict[str, Any]], Dict[str, str]]:
    return bearer


@pytest.fixture
def admin(make_user):
    return make_user("admin", name="Ada Admin")


@pytest.fixture
def instructor(make_user):
    return make_user("instructor", name="Ian Instructor")


@pytest.fixture
def students(make_user):
    return [make_user("student", name=name) for name in ("Alice", "Bob", "Carol")]


@pytest.fixture
def course(db, instructor):
    cls = Class(name="Databases", code="CS340", instructorId=instructor["_id"], createdBy=instructor["_id"])
    return db.classes.find_one({"_id": ObjectId(create_document(db, "classes", cls))})


@pytest.fixture
def section(db, course, students):
    sec = Section(classId=course["_id"], sectionNumber="1", dayNumber=1, studentIds=[s["_id"] for s in students[:2]])
    return db.sections.find_one({"_id": ObjectId(create_document(db, "sections", sec))})
