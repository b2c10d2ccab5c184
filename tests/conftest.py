"""Shared fixtures for API and service tests."""

from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

# Ensure the project root is on sys.path so the flat modules resolve.
_root = Path(__file__).resolve().parent.parent
if str(_root) not in sys.path:
    sys.path.insert(0, str(_root))

# Set env vars BEFORE importing so config picks them up.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SEED_ON_STARTUP"] = "false"
os.environ["AUTH_RATE_LIMIT"] = "1000/minute"
os.environ["SECRET_KEY"] = "test-secret-key-that-is-long-enough-for-hs256"

import main  # noqa: E402
from auth import ADMIN_ROLE, USER_ROLE, get_or_create_role, hash_password, issue_credential  # noqa: E402
from cache import cache  # noqa: E402
from database import Base, SessionLocal, engine  # noqa: E402
from models import ApplicationUser, PortfolioUser, Project, Skill  # noqa: E402

PASSWORD = "secret123"


@pytest.fixture(autouse=True)
def _fresh_database():
    """Every test starts from an empty schema and an empty cache."""
    import models  # noqa: F401
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    cache.clear()
    yield
    cache.clear()


@pytest.fixture()
def db_session():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def client():
    with TestClient(main.app) as c:
        yield c


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


def make_account(db, email="user@example.com", roles=(USER_ROLE,)) -> ApplicationUser:
    account = ApplicationUser(email=email, hashed_password=hash_password(PASSWORD))
    for name in roles:
        account.roles.append(get_or_create_role(db, name))
    db.add(account)
    db.commit()
    db.refresh(account)
    return account


def make_profile(db, name="Jane Doe", account=None) -> PortfolioUser:
    profile = PortfolioUser(
        name=name,
        bio=f"{name} bio",
        profile_image_url="https://img.example.com/p.png",
        application_user_id=account.id if account is not None else None,
    )
    db.add(profile)
    db.commit()
    db.refresh(profile)
    return profile


def make_project(db, title="Portfolio Site") -> Project:
    project = Project(title=title, description=f"{title} description", image_url="https://img.example.com/x.png")
    db.add(project)
    db.commit()
    db.refresh(project)
    return project


def make_skill(db, name="Python", level="Advanced") -> Skill:
    skill = Skill(name=name, level=level)
    db.add(skill)
    db.commit()
    db.refresh(skill)
    return skill


def bearer(account: ApplicationUser) -> dict:
    token, _ = issue_credential(account)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def owner(db_session):
    """An account linked to its own profile; returns (account, profile, headers)."""
    account = make_account(db_session, email="owner@example.com")
    profile = make_profile(db_session, name="Owner Profile", account=account)
    db_session.refresh(account)
    return account, profile, bearer(account)


@pytest.fixture()
def admin_headers(db_session):
    admin = make_account(db_session, email="admin@example.com", roles=(USER_ROLE, ADMIN_ROLE))
    return bearer(admin)


@pytest.fixture()
def stranger_headers(db_session):
    return bearer(make_account(db_session, email="stranger@example.com"))
