from __future__ import annotations

import os

# Settings and the engine are built at import time; point them at an
# in-memory database before anything from the app is imported.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET_KEY"] = "test-secret-key"
os.environ["ENVIRONMENT"] = "test"
os.environ["LEDGER_TIMEZONE"] = "UTC"

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from api.routes import auth as auth_routes
from core.database import ENGINE, SessionLocal
from core.security import hash_password
from main import app as fastapi_app
from models.base import Base
from models.student import Student
from models.teacher import Teacher
from services.broadcast import BroadcastHub


T0 = datetime(2025, 3, 10, 9, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start: datetime = T0) -> None:
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> datetime:
        self.current = self.current + timedelta(seconds=seconds)
        return self.current

    def set(self, value: datetime) -> None:
        self.current = value


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def schema():
    Base.metadata.create_all(ENGINE)
    auth_routes._login_attempts.clear()
    yield
    Base.metadata.drop_all(ENGINE)


@pytest.fixture()
def db(schema):
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def app(schema, clock):
    fastapi_app.state.clock = clock
    fastapi_app.state.hub = BroadcastHub()
    return fastapi_app


@pytest.fixture()
def client(app):
    with TestClient(app) as c:
        yield c


def make_teacher(db, *, name: str = "Ada Lovelace", email: str = "ada@example.com") -> Teacher:
    teacher = Teacher(
        name=name,
        email=email,
        password_hash=hash_password("password123"),
        room_no="B-12",
        phone="555-0100",
        is_available=False,
        last_available_at=None,
    )
    db.add(teacher)
    db.commit()
    db.refresh(teacher)
    return teacher


def make_student(db, *, name: str = "Sam Student", email: str = "sam@example.com") -> Student:
    student = Student(name=name, email=email, password_hash=hash_password("password123"))
    db.add(student)
    db.commit()
    db.refresh(student)
    return student


def register_and_login(
    client: TestClient,
    *,
    role: str = "teacher",
    name: str = "Ada Lovelace",
    email: str = "ada@example.com",
    password: str = "password123",
) -> tuple[str, str]:
    """Create an account over HTTP; returns (account_id, bearer token)."""

    base = "/api/auth" if role == "teacher" else "/api/student/auth"
    r = client.post(f"{base}/register", json={"name": name, "email": email, "password": password})
    assert r.status_code == 201, r.text
    r = client.post(f"{base}/login", json={"email": email, "password": password})
    assert r.status_code == 200, r.text
    # Keep auth explicit per request instead of riding on the login cookie.
    client.cookies.clear()
    body = r.json()
    return body["id"], body["access_token"]


def auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}
