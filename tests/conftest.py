"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest
from loguru import logger
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from memoria.config import get_settings  # noqa: E402
from memoria.db.database import reset_engine  # noqa: E402
from memoria.db.models import Base  # noqa: E402
from memoria.db.repository import CardRepository  # noqa: E402
from memoria.scheduling.models import CardState  # noqa: E402

NOW = datetime(2025, 10, 15, 12, 0, tzinfo=timezone.utc)


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        # Mark based on test file location
        if "unit" in str(item.path):
            item.add_marker(pytest.mark.unit)
        elif "smoke" in str(item.path):
            item.add_marker(pytest.mark.smoke)


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def now():
    """A fixed reference time."""
    return NOW


@pytest.fixture
def db_engine():
    """In-memory SQLite engine with the schema created."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def repository(db_engine):
    """CardRepository bound to the in-memory database."""
    return CardRepository(sessionmaker(bind=db_engine, autoflush=False))


@pytest.fixture
def new_card(now):
    """A never-studied card."""
    return CardState.new(
        "card-001",
        now,
        deck_id="deck-001",
        front="What is the OSI model?",
        back="A 7-layer reference model for network communication",
    )


@pytest.fixture
def cli_env(tmp_path, monkeypatch):
    """Point the configured database at a temporary file for CLI runs."""
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'memoria.db'}")
    monkeypatch.setenv("DEFAULT_USER", "learner-123")
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    get_settings.cache_clear()
    reset_engine()
    yield tmp_path
    reset_engine()
    get_settings.cache_clear()
    logger.remove()
