import os

# must be set before anything under app/ is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["LOG_FILE"] = ""
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ["AUTH_VERIFY_MODE"] = "header"

import pytest
from fastapi.testclient import TestClient

from app.core.db import Base, SessionLocal, engine
from app.core.geo import Coordinate
import app.core.init_db  # noqa: F401  registers every table


@pytest.fixture
def db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(db):
    from app.main import app

    with TestClient(app) as c:
        yield c


@pytest.fixture
def origin():
    return Coordinate(0.0, 0.0)


def as_user(user_id: str) -> dict:
    return {"X-User-Id": user_id}
