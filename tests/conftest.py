import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from lessonflow.database import Base

# Import models so Base.metadata is populated for create_all.
import lessonflow.models  # noqa: F401
from tests.factories.lesson_builders import FakeLessonStore, build_lesson


@pytest.fixture(scope="session")
def _unit_engine():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        future=True,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # pysqlite's own transaction handling breaks SAVEPOINT; let SQLAlchemy emit BEGIN
    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(scope="function")
def unit_db(_unit_engine) -> Session:
    """
    Provide a session joined to an outer transaction rolled back after the test.

    Service commits and rollbacks only touch a SAVEPOINT, so tests can assert
    on rows the code under test wrote (or refused to write).
    """
    connection = _unit_engine.connect()
    transaction = connection.begin()
    session = Session(
        bind=connection,
        join_transaction_mode="create_savepoint",
        expire_on_commit=False,
    )
    try:
        yield session
    finally:
        session.close()
        transaction.rollback()
        connection.close()


@pytest.fixture
def make_lesson(unit_db):
    """Persist a lesson and commit it so a service rollback cannot remove it."""

    def _make(**overrides):
        lesson = build_lesson(**overrides)
        unit_db.add(lesson)
        unit_db.commit()
        return lesson

    return _make


@pytest.fixture
def fake_store() -> FakeLessonStore:
    return FakeLessonStore()
