from conftest import due_in


def test_create_derives_priority_and_defaults(client, teacher, make_assignment):
    data = make_assignment(
        teacher,
        title="<b>Lab report</b>",
        dueDate=due_in(1),
        priority="low",
        rubric=[{"name": "Method", "weight": 60}, {"name": "Results", "weight": 40}],
    )
    assert data["title"] == "Lab report"
    assert data["priority"] == "high"
    assert data["status"] == "published"
    assert data["allowLateSubmission"] is True
    assert data["maxAttempts"] == 3
    assert data["teacherId"] == "teacher-1"
    assert data["teacherName"] == "Ms. Rivera"
    assert [c["id"] for c in data["rubric"]] == [f"rubric-{data['id']}-0", f"rubric-{data['id']}-1"]


def test_create_requires_teacher_and_fields(client, teacher, student):
    body = {"title": "T", "description": "D", "dueDate": due_in(3), "difficulty": "easy"}
    assert client.post("/api/assignments", json=body, headers=student).status_code == 403

    res = client.post("/api/assignments", json={"title": "T"}, headers=teacher)
    assert res.status_code == 400
    assert {e["field"] for e in res.json()["errors"]} == {"description", "dueDate", "difficulty"}

    res = client.post("/api/assignments", json={**body, "title": "<p></p>"}, headers=teacher)
    assert res.status_code == 400


def test_status_input_is_limited_to_lifecycle_states(client, teacher):
    body = {"title": "T", "description": "D", "dueDate": due_in(3), "difficulty": "easy", "status": "late"}
    assert client.post("/api/assignments", json=body, headers=teacher).status_code == 400


def test_update_recomputes_priority_and_checks_owner(client, register, teacher, make_assignment):
    other = register("teacher-2", "teacher")
    assignment = make_assignment(teacher, dueDate=due_in(20))
    assert assignment["priority"] == "low"

    res = client.put(f"/api/assignments/{assignment['id']}", json={"dueDate": due_in(4)}, headers=teacher)
    assert res.status_code == 200
    assert res.json()["data"]["priority"] == "medium"

    res = client.put(f"/api/assignments/{assignment['id']}", json={"title": "Mine now"}, headers=other)
    assert res.status_code == 403
    assert client.put("/api/assignments/missing", json={"title": "x"}, headers=teacher).status_code == 404


def test_update_rejects_blank_title_and_description(client, teacher, make_assignment, store):
    assignment = make_assignment(teacher, title="Essay")
    for body in ({"title": "<b></b>"}, {"description": "   "}, {"title": ""}):
        res = client.put(f"/api/assignments/{assignment['id']}", json=body, headers=teacher)
        assert res.status_code == 400
    stored = store.get("assignments", assignment["id"])
    assert stored["title"] == "Essay"
    assert stored["description"]


def test_student_sees_only_visible_assignments(client, teacher, student, make_assignment):
    published = make_assignment(teacher, title="Published")
    draft = make_assignment(teacher, title="Draft", status="draft")
    closed = make_assignment(teacher, title="Closed", status="closed")

    res = client.get("/api/assignments", headers=student)
    ids = {a["id"] for a in res.json()["data"]["data"]}
    assert ids == {published["id"], closed["id"]}

    assert client.get(f"/api/assignments/{draft['id']}", headers=student).status_code == 403
    assert client.get(f"/api/assignments/{published['id']}", headers=student).status_code == 200
    assert client.get("/api/assignments/nope", headers=student).status_code == 404


def test_enrolled_student_sees_only_their_teachers(client, register, teacher, student, make_assignment):
    other = register("teacher-2", "teacher")
    mine = make_assignment(teacher)
    make_assignment(other, title="Elsewhere")

    assert len(client.get("/api/assignments", headers=student).json()["data"]["data"]) == 2

    client.post("/api/auth/enroll", json={"teacherId": "teacher-1"}, headers=student)
    res = client.get("/api/assignments", headers=student)
    assert [a["id"] for a in res.json()["data"]["data"]] == [mine["id"]]


def test_teacher_listing_is_sorted_filtered_and_paginated(client, teacher, make_assignment):
    for day in range(25, 0, -1):
        make_assignment(teacher, title=f"A{day}", dueDate=due_in(day), status="draft" if day % 5 == 0 else "published")

    res = client.get("/api/assignments?limit=10&page=3", headers=teacher)
    page = res.json()["data"]
    assert page["total"] == 25
    assert page["totalPages"] == 3
    assert [a["title"] for a in page["data"]] == ["A21", "A22", "A23", "A24", "A25"]

    res = client.get("/api/assignments?status=draft", headers=teacher)
    assert [a["title"] for a in res.json()["data"]["data"]] == ["A5", "A10", "A15", "A20", "A25"]


def test_delete_cascades_to_submissions(client, teacher, student, make_assignment, submit, store):
    assignment = make_assignment(teacher)
    keep = make_assignment(teacher, title="Keep")
    assert submit(student, assignment["id"]).status_code == 201
    assert submit(student, keep["id"]).status_code == 201

    res = client.delete(f"/api/assignments/{assignment['id']}", headers=teacher)
    assert res.status_code == 200
    assert store.get("assignments", assignment["id"]) is None
    assert [s["assignment_id"] for s in store.query("submissions")] == [keep["id"]]


def test_close_and_publish(client, teacher, student, make_assignment):
    assignment = make_assignment(teacher, status="draft")
    res = client.post(f"/api/assignments/{assignment['id']}/publish", headers=teacher)
    assert res.json()["data"]["status"] == "published"
    res = client.post(f"/api/assignments/{assignment['id']}/close", headers=teacher)
    assert res.json()["data"]["status"] == "closed"
    assert client.post(f"/api/assignments/{assignment['id']}/close", headers=student).status_code == 403


def test_stats(client, teacher, student, make_assignment, submit):
    first = make_assignment(teacher)
    make_assignment(teacher, status="draft")
    make_assignment(teacher, dueDate=due_in(-3))
    submit(student, first["id"])

    teacher_stats = client.get("/api/assignments/stats", headers=teacher).json()["data"]
    assert teacher_stats["totalAssignments"] == 3
    assert teacher_stats["publishedAssignments"] == 2
    assert teacher_stats["draftAssignments"] == 1
    assert teacher_stats["totalSubmissions"] == 1
    assert teacher_stats["pendingGrades"] == 1

    student_stats = client.get("/api/assignments/stats", headers=student).json()["data"]
    assert student_stats["totalAssignments"] == 2
    assert student_stats["submittedCount"] == 1
    assert student_stats["pendingCount"] == 0
    assert student_stats["overdueCount"] == 1
    assert student_stats["averageGrade"] is None
