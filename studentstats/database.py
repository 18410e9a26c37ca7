"""
Database schema and connection management.

Uses SQLite with SQLAlchemy for the student collection and for the two
derived documents (dashboard summary, office display list).
"""

import json
import uuid
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterator

from sqlalchemy import JSON, Column, DateTime, String, create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

Base = declarative_base()

SUMMARY_DOC_PATH = "metrics/dashboard"
WELCOME_DOC_PATH = "display/officeTV"


def _new_id() -> str:
    return uuid.uuid4().hex


class Student(Base):
    """Applicant record."""

    __tablename__ = "students"

    id = Column(String, primary_key=True, default=_new_id)
    full_name = Column(String, nullable=False)
    searchable_name = Column(String, nullable=True)
    preferred_study_destination = Column(String, nullable=True)
    visa_status = Column(String, nullable=True)
    assigned_to = Column(String, nullable=True)
    service_fee_status = Column(String, nullable=True)
    last_completed_education = Column(String, nullable=True)
    english_proficiency_test = Column(String, nullable=True)
    timestamp = Column(DateTime, nullable=False, default=datetime.now)
    visa_status_updated_at = Column(DateTime, nullable=True)
    service_fee_updated_at = Column(DateTime, nullable=True)

    def to_snapshot(self) -> Dict[str, Any]:
        return {c.name: getattr(self, c.name) for c in self.__table__.columns}


STUDENT_FIELDS = [c.name for c in Student.__table__.columns]


class Document(Base):
    """Single JSON document addressed by a fixed path."""

    __tablename__ = "documents"

    path = Column(String, primary_key=True)  # collection/doc
    data = Column(JSON, nullable=False, default=dict)
    updated_at = Column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)


def _json_dumps(value: Any) -> str:
    # Sorted keys make identical documents byte-identical on disk.
    return json.dumps(value, sort_keys=True, ensure_ascii=False)


_engines: Dict[str, Engine] = {}

# Execution option naming the BEGIN flavour for a transaction.
BEGIN_MODE = "sqlite_begin_mode"
_WRITE_OPTIONS = {BEGIN_MODE: "IMMEDIATE"}


def get_engine(db_path: Path) -> Engine:
    """
    Get (or create) the engine for a database file.

    Connections run in WAL mode, so an open read transaction never blocks
    a writer. Reads begin DEFERRED; transactions opened through
    write_transaction() begin IMMEDIATE and take SQLite's write lock up
    front, so read-modify-write sequences serialize instead of racing.

    Args:
        db_path: Path to SQLite database file

    Returns:
        SQLAlchemy engine shared by all sessions on that file
    """
    key = str(Path(db_path).resolve())
    engine = _engines.get(key)
    if engine is not None:
        return engine

    engine = create_engine(
        f"sqlite:///{db_path}",
        connect_args={"timeout": 30, "check_same_thread": False},
        json_serializer=_json_dumps,
    )

    @event.listens_for(engine, "connect")
    def _configure_connection(dbapi_connection, connection_record):
        # pysqlite must not issue its own BEGIN; the "begin" hook does.
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _begin(conn):
        mode = conn.get_execution_options().get(BEGIN_MODE, "DEFERRED")
        conn.exec_driver_sql(f"BEGIN {mode}")

    _engines[key] = engine
    return engine


def dispose_engines() -> None:
    """Close pooled connections (useful for testing)."""
    for engine in _engines.values():
        engine.dispose()
    _engines.clear()


def init_database(db_path: Path) -> None:
    """
    Initialize database and create tables.

    Args:
        db_path: Path to SQLite database file
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)
    Base.metadata.create_all(get_engine(db_path))


def get_session_factory(db_path: Path) -> sessionmaker:
    """
    Get a session factory bound to the shared engine.

    Args:
        db_path: Path to SQLite database file

    Returns:
        sessionmaker producing independent sessions (one per thread/task)
    """
    return sessionmaker(bind=get_engine(db_path), expire_on_commit=False)


@contextmanager
def write_transaction(session_factory: sessionmaker) -> Iterator[Session]:
    """
    Open a session whose transaction begins IMMEDIATE.

    Commits on normal exit and rolls back if the block raises. Use it for
    every write; plain sessions are for reads.
    """
    with session_factory() as session, session.begin():
        session.connection(execution_options=_WRITE_OPTIONS)
        yield session
