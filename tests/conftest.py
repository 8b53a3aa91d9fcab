"""
Pytest configuration and fixtures.

This file provides pytest-specific configuration and fixtures.
For standard test utilities, see tests/__init__.py
"""

import os
import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database.models import Base


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "db: marks tests as requiring database (deselect with '-m \"not db\"')"
    )


@pytest.fixture
def sqlite_engine():
    """In-memory SQLite database with the full schema, one per test.

    StaticPool keeps every session on the same connection, so the data
    written by one unit of work is visible to the next.
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(sqlite_engine):
    return sessionmaker(bind=sqlite_engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture
def session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(scope="session")
def test_database():
    """
    Session-scoped fixture that automatically manages the test database container.

    Uses testcontainers to start a PostgreSQL container before tests and
    stops it after all tests complete. Falls back to external database if
    TEST_DATABASE_URL is set.
    """
    # If TEST_DATABASE_URL is set, use external database
    external_url = os.environ.get("TEST_DATABASE_URL")
    if external_url:
        from tests import check_db_available
        if check_db_available():
            engine = create_engine(external_url)
            Base.metadata.create_all(engine)
            engine.dispose()
            yield external_url
            return
        else:
            pytest.skip("External database not available")

    # Try to use testcontainers for automatic container management
    try:
        from testcontainers.postgres import PostgresContainer

        postgres = PostgresContainer(
            image="postgres:16-alpine",
            username="testuser",
            password="testpass",
            dbname="hr_platform_test",
            driver="psycopg",
        )
        postgres.start()
    except Exception as e:
        pytest.skip(f"Could not start test database container: {e}")

    try:
        db_url = postgres.get_connection_url()
        os.environ["TEST_DATABASE_URL"] = db_url

        from database.init_db import init_db
        engine = create_engine(db_url)
        init_db(engine)
        engine.dispose()

        print(f"\n✓ Test database started: {db_url}")
        yield db_url
    finally:
        postgres.stop()
        print("\n✓ Test database stopped")


@pytest.fixture(scope="session")
def test_db_url(test_database):
    """Get test database URL."""
    return test_database
