def announce(client, headers, **body):
    return client.post("/api/announcements", json=body, headers=headers)


def test_create_validation(client, register, teacher, student, make_assignment):
    other = register("teacher-2", "teacher")
    assignment = make_assignment(teacher)

    assert announce(client, teacher, title="Hi").status_code == 400
    assert announce(client, teacher, title="Hi", content="x", type="assignment").status_code == 400
    assert announce(client, teacher, title="Hi", content="x", type="assignment",
                    assignmentId="nope").status_code == 404
    assert announce(client, other, title="Hi", content="x", type="assignment",
                    assignmentId=assignment["id"]).status_code == 403
    assert announce(client, student, title="Hi", content="x", type="global").status_code == 403

    res = announce(client, teacher, title="<h1>Quiz</h1>", content="Friday", type="assignment",
                   assignmentId=assignment["id"])
    assert res.status_code == 201
    assert res.json()["data"]["title"] == "Quiz"
    assert res.json()["data"]["createdBy"] == "teacher-1"
    assert res.json()["data"]["creatorName"] == "Ms. Rivera"


def test_student_listing_and_dismissal(client, teacher, student, make_assignment):
    visible = make_assignment(teacher)
    draft = make_assignment(teacher, status="draft")
    general = announce(client, teacher, title="Welcome", content="Hello", type="global").json()["data"]
    scoped = announce(client, teacher, title="Rubric", content="Posted", type="assignment",
                      assignmentId=visible["id"]).json()["data"]
    announce(client, teacher, title="Hidden", content="Soon", type="assignment", assignmentId=draft["id"])

    res = client.get("/api/announcements", headers=student)
    items = res.json()["data"]["data"]
    assert {a["id"] for a in items} == {general["id"], scoped["id"]}
    assert not any(a["isRead"] for a in items)

    assert client.post(f"/api/announcements/{general['id']}/dismiss", headers=student).status_code == 200
    assert client.post(f"/api/announcements/{general['id']}/dismiss", headers=student).status_code == 200
    assert client.post("/api/announcements/nope/dismiss", headers=student).status_code == 404

    items = client.get("/api/announcements", headers=student).json()["data"]["data"]
    assert {a["id"]: a["isRead"] for a in items} == {general["id"]: True, scoped["id"]: False}

    res = client.get("/api/announcements?type=global", headers=student)
    assert [a["id"] for a in res.json()["data"]["data"]] == [general["id"]]

    res = client.get(f"/api/announcements/{general['id']}", headers=student)
    assert res.json()["data"]["isRead"] is True


def test_teacher_listing_uses_creator(client, register, teacher, make_assignment):
    other = register("teacher-2", "teacher")
    mine = make_assignment(teacher)
    theirs = make_assignment(other)
    announce(client, teacher, title="Mine", content="x", type="assignment", assignmentId=mine["id"])
    announce(client, other, title="Theirs", content="x", type="assignment", assignmentId=theirs["id"])

    res = client.get("/api/announcements?type=assignment", headers=teacher)
    assert [a["title"] for a in res.json()["data"]["data"]] == ["Mine"]

    res = client.get(f"/api/announcements?type=assignment&assignmentId={theirs['id']}", headers=teacher)
    assert [a["title"] for a in res.json()["data"]["data"]] == ["Theirs"]


def test_assignment_announcements(client, teacher, student, make_assignment):
    assignment = make_assignment(teacher)
    draft = make_assignment(teacher, status="draft")
    announce(client, teacher, title="One", content="x", type="assignment", assignmentId=assignment["id"])

    res = client.get(f"/api/announcements/assignment/{assignment['id']}", headers=student)
    assert [a["title"] for a in res.json()["data"]] == ["One"]
    assert client.get(f"/api/announcements/assignment/{draft['id']}", headers=student).status_code == 403
    assert client.get("/api/announcements/assignment/nope", headers=student).status_code == 404


def test_update_and_delete_are_owner_only(client, register, teacher):
    other = register("teacher-2", "teacher")
    item = announce(client, teacher, title="Old", content="x", type="global").json()["data"]

    assert client.put(f"/api/announcements/{item['id']}", json={"title": "Hijack"}, headers=other).status_code == 403
    res = client.put(f"/api/announcements/{item['id']}", json={"title": "New"}, headers=teacher)
    assert res.json()["data"]["title"] == "New"
    assert res.json()["data"]["content"] == "x"

    assert client.delete(f"/api/announcements/{item['id']}", headers=other).status_code == 403
    assert client.delete(f"/api/announcements/{item['id']}", headers=teacher).status_code == 200
    assert client.get(f"/api/announcements/{item['id']}", headers=teacher).status_code == 404
