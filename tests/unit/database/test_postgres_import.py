"""
Import path against a real PostgreSQL (testcontainers or TEST_DATABASE_URL).

Run with: pytest -m db
"""
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from database.models import (
    Base,
    EmployeeSkill,
    STATUS_PENDING,
    STATUS_PROCESSING,
)
from database.uow import extraction_uow
from etl.cv.save_service import CVSaveService
from tests.fixtures.cv_payloads import make_cv_payload, FIXTURE_SKILL_IDS
from tests.unit.db_helpers import seed_all, create_extraction, EMPLOYEE_ID, TENANT_ID

pytestmark = pytest.mark.db


@pytest.fixture
def pg_session_factory(test_db_url):
    engine = create_engine(test_db_url)
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
    seed_all(factory)
    yield factory
    engine.dispose()


def test_status_claim_is_exclusive(pg_session_factory):
    extraction_id = create_extraction(pg_session_factory)

    with extraction_uow(pg_session_factory) as repo:
        first = repo.extractions.transition(extraction_id, STATUS_PENDING, STATUS_PROCESSING)
    with extraction_uow(pg_session_factory) as repo:
        second = repo.extractions.transition(extraction_id, STATUS_PENDING, STATUS_PROCESSING)

    assert first is not None
    assert second is None


def test_skill_upsert_on_reimport(pg_session_factory):
    service = CVSaveService()
    extraction_id = create_extraction(pg_session_factory)

    for _ in range(2):
        with extraction_uow(pg_session_factory) as repo:
            stats = service.save(repo, extraction_id, TENANT_ID, EMPLOYEE_ID, make_cv_payload())

    assert stats['skills_saved'] == len(FIXTURE_SKILL_IDS)
    with extraction_uow(pg_session_factory) as repo:
        rows = repo.employees.list_facts(EmployeeSkill, EMPLOYEE_ID)
    assert sorted(row.skill_id for row in rows) == sorted(FIXTURE_SKILL_IDS)
