from __future__ import annotations

import os
import tempfile

# Settings read the environment on first use; point them at a throwaway home
# before any screener module is imported.
os.environ.setdefault("SCREENER_HOME", tempfile.mkdtemp(prefix="screener-tests-"))
os.environ.setdefault("ANTHROPIC_API_KEY", "test-key")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from screener.config import Settings
from screener.models import Base


@pytest.fixture()
def settings(tmp_path) -> Settings:
    return Settings(
        data_dir=tmp_path,
        database_path=tmp_path / "test.db",
        uploads_dir=tmp_path / "uploads",
        retry_max_attempts=3,
        retry_initial_delay_seconds=0.01,
    )


@pytest.fixture()
def test_db():
    """In-memory SQLite shared across connections via StaticPool."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    TestSession = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return engine, TestSession
