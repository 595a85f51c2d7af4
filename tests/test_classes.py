from __future__ import annotations

from bson import ObjectId


def test_instructor_creates_class_and_owns_it(client, instructor, auth_headers):
    response = client.post(
        "/api/class",
        json={"name": "Operating Systems", "code": " cs350 "},
        headers=auth_headers(instructor),
    )
    assert response.status_code == 201
    data = response.json()
    assert data["code"] == "CS350"
    assert data["instructorId"] == str(instructor["_id"])
    assert data["createdBy"] == str(instructor["_id"])


def test_admin_assigns_instructor(client, admin, instructor, auth_headers):
    response = client.post(
        "/api/class",
        json={"name": "Compilers", "code": "CS480", "instructorId": str(instructor["_id"])},
        headers=auth_headers(admin),
    )
    assert response.status_code == 201
    assert response.json()["instructorId"] == str(instructor["_id"])


def test_admin_cannot_assign_a_student_as_instructor(client, admin, students, auth_headers):
    response = client.post(
        "/api/class",
        json={"name": "Compilers", "code": "CS480", "instructorId": str(students[0]["_id"])},
        headers=auth_headers(admin),
    )
    assert response.status_code == 400
    assert response.json()["message"] == "Instructor not found"


def test_duplicate_class_code(client, course, instructor, auth_headers):
    response = client.post("/api/class", json={"name": "Other", "code": "cs340"}, headers=auth_headers(instructor))
    assert response.status_code == 409


def test_students_cannot_create_classes(client, students, auth_headers):
    response = client.post("/api/class", json={"name": "X", "code": "X1"}, headers=auth_headers(students[0]))
    assert response.status_code == 403


def test_class_listing_depends_on_role(client, db, admin, instructor, make_user, course, section, students, auth_headers):
    other = make_user("instructor")
    client.post("/api/class", json={"name": "Networks", "code": "CS360"}, headers=auth_headers(other))

    assert {c["code"] for c in client.get("/api/class", headers=auth_headers(admin)).json()} == {"CS340", "CS360"}
    assert [c["code"] for c in client.get("/api/class", headers=auth_headers(instructor)).json()] == ["CS340"]
    # Alice is enrolled in section 1, Carol is not enrolled anywhere
    assert [c["code"] for c in client.get("/api/class", headers=auth_headers(students[0])).json()] == ["CS340"]
    assert client.get("/api/class", headers=auth_headers(students[2])).json() == []


def test_get_class_includes_sections(client, course, section, students, auth_headers):
    response = client.get(f"/api/class/{course['_id']}", headers=auth_headers(students[0]))
    assert response.status_code == 200
    data = response.json()
    assert data["name"] == "Databases"
    assert [s["sectionNumber"] for s in data["sections"]] == ["1"]


def test_get_class_with_bad_ids(client, instructor, auth_headers):
    assert client.get("/api/class/not-an-id", headers=auth_headers(instructor)).status_code == 400
    missing = client.get(f"/api/class/{ObjectId()}", headers=auth_headers(instructor))
    assert missing.status_code == 404
    assert missing.json()["message"] == "Class not found"


def test_update_class_by_owner_only(client, course, make_user, auth_headers, instructor):
    stranger = make_user("instructor")
    denied = client.put(f"/api/class/{course['_id']}", json={"name": "Nope"}, headers=auth_headers(stranger))
    assert denied.status_code == 403

    response = client.put(
        f"/api/class/{course['_id']}",
        json={"name": "Advanced Databases", "description": "Indexes and transactions"},
        headers=auth_headers(instructor),
    )
    assert response.status_code == 200
    assert response.json()["name"] == "Advanced Databases"
    assert response.json()["description"] == "Indexes and transactions"


def test_only_admin_reassigns_instructor(client, course, instructor, admin, make_user, auth_headers):
    other = make_user("instructor")
    denied = client.put(
        f"/api/class/{course['_id']}", json={"instructorId": str(other["_id"])}, headers=auth_headers(instructor)
    )
    assert denied.status_code == 400

    response = client.put(
        f"/api/class/{course['_id']}", json={"instructorId": str(other["_id"])}, headers=auth_headers(admin)
    )
    assert response.status_code == 200
    assert response.json()["instructorId"] == str(other["_id"])


def test_delete_class_cascades(client, db, course, section, instructor, auth_headers, students):
    db.attendance.insert_one({
        "sectionId": section["_id"], "classId": course["_id"], "studentId": students[0]["_id"], "status": "present",
    })
    db.qrcodes.insert_one({"sectionId": section["_id"], "token": "tok", "active": True})

    response = client.delete(f"/api/class/{course['_id']}", headers=auth_headers(instructor))
    assert response.status_code == 200
    assert response.json() == {"deleted": True, "sections": 1, "attendance": 1}
    assert db.classes.count_documents({}) == 0
    assert db.sections.count_documents({}) == 0
    assert db.attendance.count_documents({}) == 0
    assert db.qrcodes.count_documents({}) == 0
