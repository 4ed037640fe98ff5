"""Shared fixtures: an in-memory SQLite database and a few users."""
import logging
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("ALLOW_HEADER_AUTH", "true")

import pytest

from app.database import Base, get_engine, get_session_local
from app.models import User
import app.models  # noqa: F401


@pytest.fixture(autouse=True)
def propagate_app_logs():
    # configure_logging() detaches the "app" logger from root, which hides it from caplog
    app_logger = logging.getLogger("app")
    previous = app_logger.propagate
    app_logger.propagate = True
    yield
    app_logger.propagate = previous


@pytest.fixture
def db():
    engine = get_engine()
    Base.metadata.create_all(bind=engine)
    session = get_session_local()()
    try:
        yield session
    finally:
        session.rollback()
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def make_user(db):
    def _make(uid, is_admin=False):
        user = User(id=uid, email=f"{uid}@tradeya.io", display_name=uid.title(), is_admin=is_admin)
        db.add(user)
        db.commit()
        return user
    return _make


@pytest.fixture
def users(make_user):
    """alice, bob and carol."""
    return {uid: make_user(uid) for uid in ("alice", "bob", "carol")}
