"""Shared test fixtures for poesie."""

import os

# Module-level engines are created on import; keep them off PostgreSQL.
os.environ.setdefault("POESIE_DATABASE_URL", "sqlite://")
os.environ.setdefault("API_DATABASE_URL", "sqlite://")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from ingest_service.sync import Synchronizer
from poesie_core.db.base import Base
from poesie_core.db.store import SqlPoemStore


@pytest.fixture
def engine():
    """In-memory SQLite database with the full schema."""
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def store(session_factory):
    return SqlPoemStore(session_factory)


@pytest.fixture
def sync(store):
    return Synchronizer(store, actor="test")


@pytest.fixture
def client(store):
    """API client whose storage is the in-memory test database."""
    from fastapi.testclient import TestClient

    from api.deps import get_store
    from api.main import app

    app.dependency_overrides[get_store] = lambda: store
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
