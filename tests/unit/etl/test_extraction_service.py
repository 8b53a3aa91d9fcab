import uuid
from unittest.mock import MagicMock

import pytest

from core.exceptions import NotAuthorizedError, NotFoundError
from database.models import STATUS_COMPLETED, STATUS_FAILED
from etl.service import CVExtractionService
from tests.unit.db_helpers import (
    seed_all,
    create_extraction,
    hr_principal,
    employee_principal,
    TENANT_ID,
    OTHER_TENANT_ID,
    EMPLOYEE_ID,
    COLLEAGUE_ID,
    EMPLOYEE_USER_ID,
)


@pytest.fixture
def seeded(session_factory):
    seed_all(session_factory)
    return session_factory


@pytest.fixture
def orchestrator():
    return MagicMock()


@pytest.fixture
def service(orchestrator, seeded):
    return CVExtractionService(orchestrator, seeded)


class TestStatus:

    def test_pending_projection(self, service, seeded):
        extraction_id = create_extraction(seeded)

        status = service.get_extraction_status(hr_principal(), extraction_id)

        assert status['extraction_id'] == str(extraction_id)
        assert status['employee_id'] == EMPLOYEE_ID
        assert status['status'] == 'pending'
        assert status['retry_count'] == 0
        assert status['original_filename'] == 'cv.pdf'
        assert 'error_phase' not in status
        assert 'import_stats' not in status

    def test_failed_projection_carries_error(self, service, seeded):
        extraction_id = create_extraction(
            seeded, status=STATUS_FAILED, error_phase='python_extraction', error_message='timeout: 30s',
        )

        status = service.get_extraction_status(hr_principal(), extraction_id)

        assert status['error_phase'] == 'python_extraction'
        assert status['error_message'] == 'timeout: 30s'

    def test_completed_projection_carries_stats(self, service, seeded):
        extraction_id = create_extraction(seeded, status=STATUS_COMPLETED, import_stats={'skills_saved': 3})

        status = service.get_extraction_status(hr_principal(), extraction_id)

        assert status['import_stats'] == {'skills_saved': 3}

    def test_employee_sees_own_cv(self, service, seeded):
        extraction_id = create_extraction(seeded)

        assert service.get_extraction_status(employee_principal(), extraction_id)['status'] == 'pending'

    def test_employee_cannot_see_colleague(self, service, seeded):
        extraction_id = create_extraction(seeded, employee_id=COLLEAGUE_ID)

        with pytest.raises(NotAuthorizedError):
            service.get_extraction_status(employee_principal(), extraction_id)

    def test_other_tenant_hr_is_rejected(self, service, seeded):
        extraction_id = create_extraction(seeded)

        with pytest.raises(NotAuthorizedError):
            service.get_extraction_status(hr_principal(OTHER_TENANT_ID), extraction_id)

    def test_unknown_extraction(self, service):
        with pytest.raises(NotFoundError):
            service.get_extraction_status(hr_principal(), uuid.uuid4())


class TestList:

    def test_limit_is_clamped(self, service, seeded):
        for _ in range(3):
            create_extraction(seeded)

        assert len(service.list_extractions_for_employee(hr_principal(), EMPLOYEE_ID, limit=0)) == 1
        assert len(service.list_extractions_for_employee(hr_principal(), EMPLOYEE_ID, limit=1000)) == 3

    def test_employee_lists_only_own(self, service, seeded):
        create_extraction(seeded)

        assert len(service.list_extractions_for_employee(employee_principal(), EMPLOYEE_ID)) == 1
        with pytest.raises(NotAuthorizedError):
            service.list_extractions_for_employee(employee_principal(), COLLEAGUE_ID)


class TestManualOperations:

    def test_retry_requires_hr(self, service, orchestrator, seeded):
        extraction_id = create_extraction(seeded, status=STATUS_FAILED)

        with pytest.raises(NotAuthorizedError):
            service.retry_failed_extraction(employee_principal(), extraction_id)
        orchestrator.retry_failed.assert_not_called()

    def test_retry_delegates(self, service, orchestrator, seeded):
        extraction_id = create_extraction(seeded, status=STATUS_FAILED)
        orchestrator.retry_failed.return_value = 'pending'

        assert service.retry_failed_extraction(hr_principal(), extraction_id) == 'pending'
        orchestrator.retry_failed.assert_called_once_with(extraction_id, tenant_id=TENANT_ID)

    def test_cancel_delegates(self, service, orchestrator, seeded):
        extraction_id = create_extraction(seeded)
        orchestrator.cancel.return_value = True

        assert service.cancel_extraction(hr_principal(), extraction_id) is True
        orchestrator.cancel.assert_called_once_with(extraction_id)

    def test_cancel_of_other_tenant_is_rejected(self, service, orchestrator, seeded):
        extraction_id = create_extraction(seeded)

        with pytest.raises(NotAuthorizedError):
            service.cancel_extraction(hr_principal(OTHER_TENANT_ID), extraction_id)
        orchestrator.cancel.assert_not_called()

    def test_owner_may_delete(self, service, orchestrator, seeded):
        extraction_id = create_extraction(seeded)

        service.delete_extraction(employee_principal(), extraction_id)

        orchestrator.delete.assert_called_once_with(extraction_id, deleted_by=EMPLOYEE_USER_ID)

    def test_colleague_may_not_delete(self, service, orchestrator, seeded):
        extraction_id = create_extraction(seeded, employee_id=COLLEAGUE_ID)

        with pytest.raises(NotAuthorizedError):
            service.delete_extraction(employee_principal(), extraction_id)
        orchestrator.delete.assert_not_called()

    def test_upload_delegates(self, service, orchestrator):
        orchestrator.upload.return_value = (uuid.uuid4(), 'pending')

        _, status = service.upload_cv(hr_principal(), EMPLOYEE_ID, b'%PDF', 'cv.pdf', 'application/pdf')

        assert status == 'pending'
        orchestrator.upload.assert_called_once_with(hr_principal(), EMPLOYEE_ID, b'%PDF', 'cv.pdf', 'application/pdf')
