"""
Shared fixtures: an in-memory SQLite database per test, user and course
factories, and an HTTP client bound to that database.
"""
import os

# Must be set before config is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["LOG_FILE"] = ""
os.environ["RATE_LIMIT_PER_MINUTE"] = "100000"
os.environ["RATE_LIMIT_PER_HOUR"] = "100000"
os.environ["SECRET_KEY"] = "test-secret-key"

import pytest
from fastapi.testclient import TestClient

import config
from database.connection import Database
from database.models import Course, UserRole
from core.identity import Identity
from services.auth_service import AuthService

DEFAULT_PASSWORD = "Str0ng!Pass"


@pytest.fixture
def database():
    database = Database("sqlite://")
    database.create_tables()
    config.db = database
    yield database
    config.db = None
    database.engine.dispose()


@pytest.fixture
def db_session(database):
    session = database.SessionLocal()
    yield session
    session.close()


@pytest.fixture
def make_user(db_session):
    counter = {"n": 0}

    def _make_user(role=UserRole.STUDENT, name=None, email=None, password=DEFAULT_PASSWORD):
        counter["n"] += 1
        n = counter["n"]
        return AuthService._create_account(
            db_session,
            name=name or f"{role.value.title()} {n}",
            email=email or f"{role.value.lower()}{n}@university.edu",
            password=password,
            role=role
        )

    return _make_user


@pytest.fixture
def admin(make_user):
    return make_user(UserRole.ADMIN, name="Ada Admin", email="admin@university.edu")


@pytest.fixture
def student(make_user):
    return make_user(UserRole.STUDENT, name="Sam Student", email="sam@university.edu")


@pytest.fixture
def admin_identity(admin):
    return Identity.from_user(admin)


@pytest.fixture
def student_identity(student):
    return Identity.from_user(student)


@pytest.fixture
def make_course(db_session):
    counter = {"n": 0}

    def _make_course(capacity=30, is_active=True, **fields):
        counter["n"] += 1
        course = Course(
            code=fields.pop("code", f"CS{100 + counter['n']}"),
            name=fields.pop("name", f"Course {counter['n']}"),
            credits=fields.pop("credits", 3),
            capacity=capacity,
            is_active=is_active,
            **fields
        )
        db_session.add(course)
        db_session.commit()
        db_session.refresh(course)
        return course

    return _make_course


@pytest.fixture
def client(database):
    from app import app
    return TestClient(app)


def auth_headers(user) -> dict:
    return {"Authorization": f"Bearer {AuthService.create_token(user)}"}


@pytest.fixture
def admin_headers(admin):
    return auth_headers(admin)


@pytest.fixture
def student_headers(student):
    return auth_headers(student)


@pytest.fixture
def headers_for():
    return auth_headers
