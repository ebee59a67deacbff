from pathlib import Path
import os
import uuid
import pytest

# Point the app at a throwaway database before anything imports it.
TEST_DB = Path(__file__).resolve().parents[1] / "test_app.db"
if TEST_DB.exists():
    TEST_DB.unlink()
os.environ["DATABASE_URL"] = f"sqlite:///{TEST_DB}"
os.environ.setdefault("ENV", "dev")

from fastapi.testclient import TestClient  # noqa: E402
from sqlmodel import Session  # noqa: E402

from coursehub.main import app  # noqa: E402
from coursehub.database import engine  # noqa: E402
from coursehub import models, services  # noqa: E402


@pytest.fixture(scope="session")
def client():
    return TestClient(app)


def _unique(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:8]}"


@pytest.fixture
def make_user(client):
    """Register and log in a user; returns (user_json, auth_headers)."""
    def _make(role: str = "STUDENT", **extra):
        username = _unique(role.lower())
        payload = {"username": username, "password": "pw123", "role": role, **extra}
        r = client.post('/auth/register', json=payload)
        assert r.status_code == 200, r.text
        login = client.post('/auth/login', json={"username": username, "password": "pw123"})
        assert login.status_code == 200, login.text
        return r.json(), {"Authorization": f"Bearer {login.json()['access_token']}"}
    return _make


@pytest.fixture
def admin_headers():
    """Administrators cannot self-register, so create one directly."""
    with Session(engine) as session:
        admin = models.User(
            username=_unique("admin"),
            password_hash=services.PWD_CTX.hash("pw123"),
            role=models.Role.ADMIN.value,
        )
        session.add(admin)
        session.commit()
        session.refresh(admin)
        token = services.issue_token(admin)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def course(client, make_user):
    """A fresh course owned by a faculty member: (course_json, faculty_headers)."""
    _, headers = make_user("FACULTY")
    r = client.post('/courses', json={"code": _unique("CS").upper(), "name": "Web Development"}, headers=headers)
    assert r.status_code == 200, r.text
    return r.json(), headers
