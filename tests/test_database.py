from database import Collections, DocumentStore


def test_create_refuses_existing_id(store):
    assert store.create(Collections.USERS, "u1", {"name": "A"})
    assert not store.create(Collections.USERS, "u1", {"name": "B"})
    assert store.get(Collections.USERS, "u1") == {"id": "u1", "name": "A"}


def test_compare_and_set_treats_missing_as_none(store):
    store.set(Collections.SUBMISSIONS, "s1", {"current_attempt": 1})
    assert store.compare_and_set(Collections.SUBMISSIONS, "s1", {"grade_id": None}, {"grade_id": "g1"})
    assert not store.compare_and_set(Collections.SUBMISSIONS, "s1", {"grade_id": None}, {"grade_id": "g2"})
    assert store.get(Collections.SUBMISSIONS, "s1")["grade_id"] == "g1"


def test_compare_and_set_on_counter(store):
    store.set(Collections.SUBMISSIONS, "s1", {"current_attempt": 1})
    assert store.compare_and_set(Collections.SUBMISSIONS, "s1", {"current_attempt": 1}, {"current_attempt": 2})
    assert not store.compare_and_set(Collections.SUBMISSIONS, "s1", {"current_attempt": 1}, {"current_attempt": 2})


def test_query_in_runs_one_query_per_chunk(store, monkeypatch):
    for i in range(25):
        store.set(Collections.ASSIGNMENTS, f"a{i}", {"teacher_id": f"t{i}", "status": "published"})
    calls = []
    original = DocumentStore.query

    def spy(self, collection, predicates=None, limit=None):
        calls.append(predicates)
        return original(self, collection, predicates, limit)

    monkeypatch.setattr(DocumentStore, "query", spy)
    docs = store.query_in(Collections.ASSIGNMENTS, "teacher_id", [f"t{i}" for i in range(25)], {"status": "published"})

    assert len(docs) == 25
    assert [len(c["teacher_id"]["$in"]) for c in calls] == [10, 10, 5]
    assert all(c["status"] == "published" for c in calls)


def test_query_is_capped(store):
    capped = DocumentStore(store.db, max_results=3)
    for i in range(5):
        capped.set(Collections.ANNOUNCEMENTS, f"n{i}", {"type": "global"})
    assert len(capped.query(Collections.ANNOUNCEMENTS, {"type": "global"})) == 3


def test_delete_where_counts(store):
    for i in range(3):
        store.set(Collections.SUBMISSIONS, f"s{i}", {"assignment_id": "a1"})
    store.set(Collections.SUBMISSIONS, "other", {"assignment_id": "a2"})
    assert store.delete_where(Collections.SUBMISSIONS, {"assignment_id": "a1"}) == 3
    assert [d["id"] for d in store.query(Collections.SUBMISSIONS)] == ["other"]
