from __future__ import annotations

from bson import ObjectId


def mark(client, section, headers, records, date="2026-09-01"):
    body = {"sectionId": str(section["_id"]), "records": records}
    if date:
        body["date"] = date
    return client.post("/api/attendance", json=body, headers=headers)


def entry(student, status):
    return {"studentId": str(student["_id"]), "status": status}


def test_mark_attendance_creates_records(client, db, section, students, instructor, auth_headers):
    response = mark(
        client, section, auth_headers(instructor),
        [entry(students[0], "present"), entry(students[1], "absent")],
    )
    assert response.status_code == 200
    data = response.json()
    assert data["marked"] == 2
    assert data["created"] == 2
    assert {r["status"] for r in data["records"]} == {"present", "absent"}
    assert all(r["date"].startswith("2026-09-01") for r in data["records"])
    assert db.attendance.count_documents({"method": "manual"}) == 2


def test_marking_again_updates_in_place(client, db, section, students, instructor, auth_headers):
    headers = auth_headers(instructor)
    mark(client, section, headers, [entry(students[0], "absent")])
    response = mark(client, section, headers, [entry(students[0], "late")])
    assert response.json()["created"] == 0
    assert response.json()["updated"] == 1
    assert db.attendance.count_documents({}) == 1
    assert db.attendance.find_one({})["status"] == "late"


def test_mark_attendance_defaults_to_today(client, db, section, students, instructor, auth_headers):
    response = mark(client, section, auth_headers(instructor), [entry(students[0], "present")], date=None)
    assert response.status_code == 200
    assert db.attendance.count_documents({}) == 1


def test_cannot_mark_students_outside_the_section(client, section, students, instructor, auth_headers):
    response = mark(client, section, auth_headers(instructor), [entry(students[2], "present")])
    assert response.status_code == 400
    assert str(students[2]["_id"]) in response.json()["message"]


def test_students_cannot_mark_attendance(client, section, students, auth_headers):
    response = mark(client, section, auth_headers(students[0]), [entry(students[0], "present")])
    assert response.status_code == 403


def test_section_attendance_filtered_by_date(client, section, students, instructor, auth_headers):
    headers = auth_headers(instructor)
    mark(client, section, headers, [entry(students[0], "present")], date="2026-09-01")
    mark(client, section, headers, [entry(students[0], "absent")], date="2026-09-08")

    everything = client.get(f"/api/attendance/section/{section['_id']}", headers=headers)
    assert [r["status"] for r in everything.json()] == ["present", "absent"]

    one_day = client.get(f"/api/attendance/section/{section['_id']}?date=2026-09-08", headers=headers)
    assert [r["status"] for r in one_day.json()] == ["absent"]

    bad = client.get(f"/api/attendance/section/{section['_id']}?date=yesterday", headers=headers)
    assert bad.status_code == 400


def test_student_summary(client, section, students, instructor, auth_headers):
    headers = auth_headers(instructor)
    alice = students[0]
    for day, status in [("2026-09-01", "present"), ("2026-09-02", "late"), ("2026-09-03", "absent"), ("2026-09-04", "excused")]:
        mark(client, section, headers, [entry(alice, status)], date=day)

    response = client.get(f"/api/attendance/student/{alice['_id']}", headers=headers)
    assert response.status_code == 200
    data = response.json()
    assert len(data["records"]) == 4
    assert data["summary"] == [{
        "sectionId": str(section["_id"]),
        "total": 4,
        "present": 1,
        "absent": 1,
        "late": 1,
        "excused": 1,
        "percentage": 50.0,
    }]


def test_students_see_only_their_own_attendance(client, section, students, auth_headers):
    alice, bob = students[0], students[1]
    own = client.get(f"/api/attendance/student/{alice['_id']}", headers=auth_headers(alice))
    assert own.status_code == 200
    assert own.json()["summary"] == []

    other = client.get(f"/api/attendance/student/{bob['_id']}", headers=auth_headers(alice))
    assert other.status_code == 403

    me = client.get("/api/attendance/me", headers=auth_headers(alice))
    assert me.status_code == 200
    assert me.json()["studentId"] == str(alice["_id"])


def test_student_lookup_of_non_student(client, instructor, auth_headers):
    response = client.get(f"/api/attendance/student/{instructor['_id']}", headers=auth_headers(instructor))
    assert response.status_code == 400
    missing = client.get(f"/api/attendance/student/{ObjectId()}", headers=auth_headers(instructor))
    assert missing.status_code == 404


def test_update_and_delete_record(client, db, section, students, instructor, make_user, auth_headers):
    headers = auth_headers(instructor)
    mark(client, section, headers, [entry(students[0], "absent")])
    record_id = str(db.attendance.find_one({})["_id"])

    stranger = make_user("instructor")
    assert client.patch(f"/api/attendance/{record_id}", json={"status": "present"}, headers=auth_headers(stranger)).status_code == 403

    updated = client.patch(f"/api/attendance/{record_id}", json={"status": "excused"}, headers=headers)
    assert updated.status_code == 200
    assert updated.json()["status"] == "excused"

    deleted = client.delete(f"/api/attendance/{record_id}", headers=headers)
    assert deleted.json() == {"deleted": True}
    assert db.attendance.count_documents({}) == 0
    assert client.delete(f"/api/attendance/{record_id}", headers=headers).status_code == 404
