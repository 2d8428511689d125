"""Pytest configuration and fixtures."""

import os

# The app module builds its engine at import time: point it at SQLite before importing
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("VIPPAY_JSON_LOGS", "false")

import uuid
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from vippay_api.config.env import PaymentConfig
from vippay_api.db.models import Base, User, UserSession
from vippay_api.db.repo_users import hash_session_token
from vippay_api.db.session import get_db
from vippay_api.main import app

from tests.helpers import TEST_API_KEY, TEST_MCH_ID, TEST_NOTIFY_URL


@pytest.fixture(scope="function")
def db_engine():
    """In-memory SQLite engine shared by every session of one test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture(scope="function")
def db_session(db_engine) -> Session:
    """Create a fresh database session for each test."""
    SessionLocal = sessionmaker(
        autocommit=False, autoflush=False, expire_on_commit=False, bind=db_engine
    )
    session = SessionLocal()
    try:
        yield session
        session.rollback()
    finally:
        session.close()


@pytest.fixture
def payment_config() -> PaymentConfig:
    return PaymentConfig(
        mch_id=TEST_MCH_ID,
        api_key=TEST_API_KEY,
        notify_url=TEST_NOTIFY_URL,
    )


@pytest.fixture
def payment_env(monkeypatch):
    """Complete payment configuration in the environment."""
    monkeypatch.setenv("YUNGOU_MCH_ID", TEST_MCH_ID)
    monkeypatch.setenv("YUNGOU_API_KEY", TEST_API_KEY)
    monkeypatch.setenv("PAYMENT_NOTIFY_URL", TEST_NOTIFY_URL)


@pytest.fixture
def test_client(db_session: Session):
    """TestClient with db_session dependency override."""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass  # Don't close - db_session fixture handles it

    app.dependency_overrides[get_db] = override_get_db
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


@pytest.fixture
def vip_user(db_session: Session) -> User:
    """A user without VIP entitlement."""
    user = User(id="u1", username="tester", vip_order_ids=[])
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture
def session_token(db_session: Session, vip_user: User) -> str:
    """Active login session for vip_user (returns the raw bearer token)."""
    token = f"sess_{uuid.uuid4().hex}"
    db_session.add(
        UserSession(
            user_id=vip_user.id,
            token_hash=hash_session_token(token),
            status="active",
            expires_at=datetime.now(timezone.utc) + timedelta(days=1),
        )
    )
    db_session.commit()
    return token
