from datetime import date

import pytest

from database.models import (
    Employee,
    EmployeeSkill,
    EmployeeLanguage,
    EmployeeRole,
    EmployeeProject,
    SOURCE_CV,
    SOURCE_MANUAL,
)
from database.uow import extraction_uow
from tests.unit.db_helpers import (
    seed_all,
    create_extraction,
    TENANT_ID,
    OTHER_TENANT_ID,
    EMPLOYEE_ID,
    COLLEAGUE_ID,
)


@pytest.fixture
def seeded(session_factory):
    seed_all(session_factory)
    return session_factory


@pytest.fixture
def extraction_id(seeded):
    return create_extraction(seeded)


class TestEmployeeLookup:

    def test_get_is_tenant_scoped(self, seeded):
        with extraction_uow(seeded) as repo:
            assert repo.employees.get(TENANT_ID, EMPLOYEE_ID) is not None
            assert repo.employees.get(OTHER_TENANT_ID, EMPLOYEE_ID) is None

    def test_fill_empty_fields_never_overwrites(self, seeded):
        with extraction_uow(seeded) as repo:
            employee = repo.employees.get(TENANT_ID, COLLEAGUE_ID)
            filled = repo.employees.fill_empty_fields(employee, {
                'first_name': 'Giulia',
                'last_name': '',
                'email': 'marco@example.com',
                'phone': None,
            })
        assert filled == ['email']
        with extraction_uow(seeded) as repo:
            employee = repo.db.get(Employee, COLLEAGUE_ID)
            assert employee.first_name == 'Marco'
            assert employee.last_name == 'Rossi'
            assert employee.email == 'marco@example.com'


class TestSkillUpsert:

    def test_upsert_keeps_one_row_and_nulls_do_not_overwrite(self, seeded, extraction_id):
        with extraction_uow(seeded) as repo:
            repo.employees.upsert_skill(EMPLOYEE_ID, TENANT_ID, extraction_id, 276, 5, 2.0, None)
        with extraction_uow(seeded) as repo:
            repo.employees.upsert_skill(EMPLOYEE_ID, TENANT_ID, extraction_id, 276, 8, None, date(2024, 1, 1))

        with extraction_uow(seeded) as repo:
            rows = repo.employees.list_facts(EmployeeSkill, EMPLOYEE_ID)
            assert len(rows) == 1
            assert rows[0].proficiency_level == 8
            assert rows[0].years_experience == 2.0
            assert rows[0].last_used_date == date(2024, 1, 1)

    def test_upsert_converts_manual_row_to_cv_source(self, seeded, extraction_id):
        with extraction_uow(seeded) as repo:
            repo.db.add(EmployeeSkill(
                employee_id=EMPLOYEE_ID, tenant_id=TENANT_ID, skill_id=821,
                proficiency_level=3, source=SOURCE_MANUAL,
            ))
        with extraction_uow(seeded) as repo:
            repo.employees.upsert_skill(EMPLOYEE_ID, TENANT_ID, extraction_id, 821, None, 4.0, None)

        with extraction_uow(seeded) as repo:
            row = repo.employees.list_facts(EmployeeSkill, EMPLOYEE_ID)[0]
            assert row.proficiency_level == 3
            assert row.years_experience == 4.0
            assert row.source == SOURCE_CV
            assert row.extraction_id == extraction_id


class TestLanguageUpsert:

    def test_manual_language_is_updated_in_place(self, seeded, extraction_id):
        with extraction_uow(seeded) as repo:
            repo.db.add(EmployeeLanguage(
                employee_id=EMPLOYEE_ID, tenant_id=TENANT_ID, language_id=2,
                reading_level='B1', writing_level='B1', source=SOURCE_MANUAL,
            ))
        with extraction_uow(seeded) as repo:
            repo.employees.upsert_language(
                EMPLOYEE_ID, TENANT_ID, extraction_id, 2,
                {'reading_level': 'C1', 'writing_level': None}, is_native=False,
            )

        with extraction_uow(seeded) as repo:
            rows = repo.employees.list_facts(EmployeeLanguage, EMPLOYEE_ID)
            assert len(rows) == 1
            assert rows[0].reading_level == 'C1'
            assert rows[0].writing_level == 'B1'


class TestReplaceSets:

    def test_delete_cv_facts_leaves_manual_rows(self, seeded, extraction_id):
        with extraction_uow(seeded) as repo:
            repo.employees.add_facts([
                EmployeeProject(employee_id=EMPLOYEE_ID, tenant_id=TENANT_ID, name='Manual', source=SOURCE_MANUAL),
                EmployeeProject(employee_id=EMPLOYEE_ID, tenant_id=TENANT_ID, extraction_id=extraction_id,
                                name='From CV', source=SOURCE_CV),
            ])
        with extraction_uow(seeded) as repo:
            assert repo.employees.delete_cv_facts(EmployeeProject, EMPLOYEE_ID) == 1
        with extraction_uow(seeded) as repo:
            assert [p.name for p in repo.employees.list_facts(EmployeeProject, EMPLOYEE_ID)] == ['Manual']

    def test_add_facts_with_nothing_to_add(self, seeded):
        with extraction_uow(seeded) as repo:
            assert repo.employees.add_facts([]) == 0


class TestRole:

    def test_set_role_writes_then_updates_single_row(self, seeded, extraction_id):
        with extraction_uow(seeded) as repo:
            assert repo.employees.set_role(EMPLOYEE_ID, TENANT_ID, extraction_id, 3, 31, 'Senior', 12.0)
        with extraction_uow(seeded) as repo:
            assert repo.employees.set_role(EMPLOYEE_ID, TENANT_ID, extraction_id, 4, None, 'Mid', 5.0)
        with extraction_uow(seeded) as repo:
            rows = repo.employees.list_facts(EmployeeRole, EMPLOYEE_ID)
            assert len(rows) == 1
            assert rows[0].role_id == 4
            assert rows[0].sub_role_id is None

    def test_manual_role_is_preserved(self, seeded, extraction_id):
        with extraction_uow(seeded) as repo:
            repo.db.add(EmployeeRole(employee_id=EMPLOYEE_ID, tenant_id=TENANT_ID, role_id=4, source=SOURCE_MANUAL))
        with extraction_uow(seeded) as repo:
            assert repo.employees.set_role(EMPLOYEE_ID, TENANT_ID, extraction_id, 3, 31, 'Senior', 12.0) is False
        with extraction_uow(seeded) as repo:
            assert repo.employees.get_role(EMPLOYEE_ID).role_id == 4
