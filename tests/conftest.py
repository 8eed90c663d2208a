from datetime import timedelta

import mongomock
import pytest
from fastapi.testclient import TestClient

from database import DocumentStore
from deps import get_identity_provider, get_object_storage, get_store
from helpers import format_date, utcnow
from identity import IdentityProvider
from main import app
from storage import LocalObjectStorage

SECRET = "test-secret"


def due_in(days: int) -> str:
    return format_date(utcnow() + timedelta(days=days))


@pytest.fixture
def store():
    return DocumentStore(mongomock.MongoClient()["duenow_test"])


@pytest.fixture
def identity(store):
    return IdentityProvider(store, secret_key=SECRET)


@pytest.fixture
def object_storage(tmp_path):
    return LocalObjectStorage(str(tmp_path / "uploads"), signing_key=SECRET, public_base_url="http://testserver")


@pytest.fixture
def client(store, identity, object_storage):
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_identity_provider] = lambda: identity
    app.dependency_overrides[get_object_storage] = lambda: object_storage
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def register(client, identity):
    """Register a profile and return Authorization headers for it."""

    def _register(subject_id, role, name=None):
        email = f"{subject_id}@school.edu"
        res = client.post(
            "/api/auth/register",
            json={"subjectId": subject_id, "name": name or subject_id, "email": email, "role": role},
        )
        assert res.status_code == 201, res.text
        return {"Authorization": f"Bearer {identity.issue_token(subject_id, email)}"}

    return _register


@pytest.fixture
def teacher(register):
    return register("teacher-1", "teacher", "Ms. Rivera")


@pytest.fixture
def student(register):
    return register("student-1", "student", "Sam Lee")


@pytest.fixture
def make_assignment(client):
    def _make(headers, **overrides):
        body = {
            "title": "Essay on photosynthesis",
            "description": "Two pages, cite your sources.",
            "dueDate": due_in(10),
            "difficulty": "medium",
        }
        body.update(overrides)
        res = client.post("/api/assignments", json=body, headers=headers)
        assert res.status_code == 201, res.text
        return res.json()["data"]

    return _make


@pytest.fixture
def submit(client):
    def _submit(headers, assignment_id, text="My answer", **overrides):
        body = {"assignmentId": assignment_id, "textContent": text, "integrityConfirmed": True}
        body.update(overrides)
        return client.post("/api/submissions", json=body, headers=headers)

    return _submit
