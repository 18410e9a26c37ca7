"""
Pytest configuration and shared fixtures.
"""

import pytest
from datetime import datetime
from pathlib import Path
from typing import Dict, Any

from storage.repositories.students import StudentRepository
from studentstats.app import Pipeline, build_pipeline
from studentstats.database import dispose_engines, get_session_factory, init_database
from studentstats.env import Settings
from studentstats.logger import get_logger
from studentstats.storage import AggregateStore


@pytest.fixture(autouse=True)
def quiet_logger():
    """Keep the shared logger off stdout and start every test with zeroed metrics."""
    logger = get_logger()
    logger.configure(level="DEBUG", enable_console=False)
    logger.reset_metrics()
    yield logger
    logger.configure(level="DEBUG", enable_console=False)


@pytest.fixture(autouse=True)
def _dispose_engines():
    yield
    dispose_engines()


@pytest.fixture
def db_path(tmp_path) -> Path:
    """Create an initialized temporary database."""
    path = tmp_path / "students.db"
    init_database(path)
    return path


@pytest.fixture
def session_factory(db_path):
    return get_session_factory(db_path)


@pytest.fixture
def repository(session_factory) -> StudentRepository:
    """Repository with no change listener attached."""
    return StudentRepository(session_factory)


@pytest.fixture
def store(session_factory) -> AggregateStore:
    return AggregateStore(session_factory, base_delay=0.01)


@pytest.fixture
def pipeline(db_path) -> Pipeline:
    """Repository wired to the router: every write updates the aggregates."""
    wired = build_pipeline(Settings(db_path=db_path))
    yield wired
    wired.close()


@pytest.fixture
def valid_student() -> Dict[str, Any]:
    """Valid student record."""
    return {
        "full_name": "Asha Gurung",
        "preferred_study_destination": "australia",
        "visa_status": "Applied",
        "assigned_to": "Pawan Sir",
        "service_fee_status": "paid",
        "last_completed_education": "+2",
        "english_proficiency_test": "IELTS",
        "timestamp": datetime(2026, 3, 14, 10, 30),
    }


@pytest.fixture
def unassigned_student() -> Dict[str, Any]:
    """Walk-in with only a name and destination filled in."""
    return {
        "full_name": "Bikash Rai",
        "preferred_study_destination": "usa",
        "timestamp": datetime(2026, 5, 2, 9, 0),
    }


@pytest.fixture
def invalid_student() -> Dict[str, Any]:
    """Invalid student (missing name, non-string dimension)."""
    return {
        "visa_status": 3,
        "timestamp": "yesterday",
    }
