"""Shared fixtures: an in-memory SQLite database rebuilt for every test."""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("TIMEZONE", "UTC")

from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from circulation.database import Base, SessionLocal, engine, get_db
from circulation.main import app
from circulation.models import Material, MaterialCopy, User
from circulation.models.enums import AccountState, CopyStatus, Role
from circulation.services.auth import get_password_hash, token_for

JAN_1 = datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)

# Hashing is slow; every fixture user shares one hash
PASSWORD = "correct-horse"
PASSWORD_HASH = get_password_hash(PASSWORD)


@pytest.fixture
def db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def _user(db, email, role, account_state=AccountState.ACTIVE):
    user = User(
        user_fname=email.split("@")[0].title(),
        user_lname="Tester",
        user_email=email,
        user_password_hash=PASSWORD_HASH,
        user_role=role.value,
        account_state=account_state.value,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def make_member(db):
    counter = {"n": 0}

    def factory(email=None, account_state=AccountState.ACTIVE):
        counter["n"] += 1
        return _user(db, email or f"member{counter['n']}@example.org", Role.MEMBER, account_state)
    return factory


@pytest.fixture
def member(make_member):
    return make_member("alice@example.org")


@pytest.fixture
def librarian(db):
    return _user(db, "librarian@example.org", Role.LIBRARIAN)


@pytest.fixture
def make_material(db):
    def factory(title="The Left Hand of Darkness", max_loan_days=None, copies=1,
                copy_status=CopyStatus.AVAILABLE):
        material = Material(title=title, material_type="BOOK", author="Ursula K. Le Guin",
                            max_loan_days=max_loan_days)
        db.add(material)
        db.flush()
        for _ in range(copies):
            db.add(MaterialCopy(
                material_id=material.material_id,
                condition="GOOD",
                status=copy_status.value,
                acquisition_date=JAN_1,
            ))
        db.commit()
        db.refresh(material)
        return material
    return factory


@pytest.fixture
def material(make_material):
    return make_material()


@pytest.fixture
def copy(material):
    return material.copies[0]


@pytest.fixture
def client(db):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    def headers_for(user):
        return {"Authorization": f"Bearer {token_for(user)}"}
    return headers_for
