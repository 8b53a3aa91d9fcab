import uuid
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from core.config_loader import ExtractionConfig
from core.exceptions import (
    DocumentParseError,
    InvalidInputError,
    LMFailure,
    NotAuthorizedError,
    NotFoundError,
    NotRetryableError,
    SchemaError,
)
from core.llm.interfaces import LLMProvider, LMResult, UsageRecord
from database.models import (
    CVExtraction,
    EmployeeSkill,
    EmployeeEducation,
    LLMUsageLog,
    REPLACE_SET_MODELS,
    STATUS_PENDING,
    STATUS_PROCESSING,
    STATUS_EXTRACTED,
    STATUS_IMPORTING,
    STATUS_COMPLETED,
    STATUS_FAILED,
    PHASE_CONNECTION,
    PHASE_EXTRACTION,
    PHASE_DATABASE_SAVE,
    PHASE_UNKNOWN,
    USAGE_FAILURE,
    USAGE_SUCCESS,
)
from database.repositories import ExtractionRepository
from database.uow import extraction_uow
from etl.cv.parser import ParsedDocument
from etl.cv.save_service import CVSaveService
from etl.orchestrator import CVImportOrchestrator
from etl.usage_logger import LLMUsageLogger
from storage.blob_store import LocalPathBlobStore
from tests.fixtures.cv_payloads import make_cv_payload, payload_without
from tests.unit.db_helpers import (
    seed_all,
    create_extraction,
    hr_principal,
    employee_principal,
    EMPLOYEE_ID,
    COLLEAGUE_ID,
    FOREIGN_EMPLOYEE_ID,
    HR_USER_ID,
)

PDF_BYTES = b"%PDF-1.4 two page curriculum"


class FakeParser:
    """Stands in for DocumentParser so the tests do not need real PDFs."""

    def __init__(self, error=None):
        self.error = error

    def extract_text(self, data, filename, mime_type=None):
        if self.error is not None:
            raise self.error
        return ParsedDocument(text="Giulia Bianchi, Senior Backend Engineer", format="pdf", page_count=2)


class BrokenProvider(LLMProvider):
    provider_name = "openai"

    def _complete(self, system_prompt, user_prompt):
        raise KeyError("content")


def _usage(success=True, error=None):
    return UsageRecord(
        provider="openai",
        model="gpt-4o-mini",
        prompt_tokens=1000,
        completion_tokens=500,
        response_time_ms=900,
        success=success,
        error_message=error,
    )


def _deadlock():
    return OperationalError("INSERT INTO employee_skills ...", {}, Exception("deadlock detected"))


class FlakySaveService:
    """Raises the given errors on the first saves, then saves for real."""

    def __init__(self, *errors):
        self.errors = list(errors)
        self.calls = 0
        self.real = CVSaveService()

    def save(self, *args, **kwargs):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.real.save(*args, **kwargs)


@pytest.fixture
def seeded(session_factory):
    seed_all(session_factory)
    return session_factory


@pytest.fixture
def blob_store(tmp_path):
    return LocalPathBlobStore(base_path=str(tmp_path / "cvs"), temp_path=str(tmp_path / "tmp"))


@pytest.fixture
def extractor():
    extractor = MagicMock()
    extractor.extract_cv.return_value = LMResult(data=make_cv_payload(), usage=_usage())
    return extractor


@pytest.fixture
def config():
    return ExtractionConfig(max_retries=3, max_upload_bytes=1024)


@pytest.fixture
def make_orchestrator(seeded, blob_store, extractor, config):
    def build(**overrides):
        kwargs = dict(
            blob_store=blob_store,
            extractor=extractor,
            config=config,
            usage_logger=LLMUsageLogger(seeded),
            parser=FakeParser(),
            session_factory=seeded,
        )
        kwargs.update(overrides)
        return CVImportOrchestrator(**kwargs)
    return build


@pytest.fixture
def orchestrator(make_orchestrator):
    return make_orchestrator()


def _row(session_factory, extraction_id):
    with extraction_uow(session_factory) as repo:
        return repo.extractions.get(extraction_id, include_deleted=True)


def _count(session_factory, model, **filters):
    with extraction_uow(session_factory) as repo:
        return repo.db.query(model).filter_by(**filters).count()


def _upload(orchestrator, data=PDF_BYTES, filename="cv.pdf", principal=None, employee_id=EMPLOYEE_ID):
    extraction_id, status = orchestrator.upload(
        principal or hr_principal(), employee_id, data, filename, "application/pdf"
    )
    assert status == STATUS_PENDING
    return extraction_id


class TestUpload:

    def test_upload_creates_pending_row_and_blob(self, orchestrator, seeded, blob_store):
        extraction_id = _upload(orchestrator)

        row = _row(seeded, extraction_id)
        assert row.status == STATUS_PENDING
        assert row.file_size_bytes == len(PDF_BYTES)
        assert row.uploaded_by == HR_USER_ID
        assert blob_store.get(row.storage_key).data == PDF_BYTES

    def test_employee_may_upload_own_cv(self, orchestrator):
        _upload(orchestrator, principal=employee_principal())

    def test_employee_uploading_for_colleague_is_rejected(self, orchestrator, seeded, tmp_path):
        with pytest.raises(NotAuthorizedError):
            _upload(orchestrator, principal=employee_principal(employee_id=COLLEAGUE_ID))

        assert _count(seeded, CVExtraction) == 0
        assert not (tmp_path / "cvs").exists()

    def test_employee_of_other_tenant_is_rejected(self, orchestrator, seeded, tmp_path):
        with pytest.raises(NotAuthorizedError):
            _upload(orchestrator, employee_id=FOREIGN_EMPLOYEE_ID)

        assert _count(seeded, CVExtraction) == 0
        assert not (tmp_path / "cvs").exists()

    @pytest.mark.parametrize("data,filename,mime", [
        (b"", "cv.pdf", "application/pdf"),
        (b"x" * 2048, "cv.pdf", "application/pdf"),
        (PDF_BYTES, "", "application/pdf"),
        (PDF_BYTES, "photo.png", "image/png"),
    ])
    def test_invalid_uploads(self, orchestrator, data, filename, mime):
        with pytest.raises(InvalidInputError):
            orchestrator.upload(hr_principal(), EMPLOYEE_ID, data, filename, mime)

    def test_mime_parameters_are_ignored(self, orchestrator, seeded):
        extraction_id, _ = orchestrator.upload(
            hr_principal(), EMPLOYEE_ID, PDF_BYTES, "cv.pdf", "Application/PDF; charset=binary"
        )
        assert _row(seeded, extraction_id).mime_type == "application/pdf"

    def test_upload_is_dispatched(self, make_orchestrator):
        dispatcher = MagicMock()
        orchestrator = make_orchestrator(dispatcher=dispatcher)

        extraction_id = _upload(orchestrator)

        dispatcher.assert_called_once_with(extraction_id)

    def test_failed_dispatch_leaves_row_pending(self, make_orchestrator, seeded):
        orchestrator = make_orchestrator(dispatcher=MagicMock(side_effect=RuntimeError("redis gone")))

        extraction_id = _upload(orchestrator)

        assert _row(seeded, extraction_id).status == STATUS_PENDING

    def test_blob_removed_when_row_cannot_be_created(self, orchestrator, blob_store, monkeypatch, tmp_path):
        def refuse(*args, **kwargs):
            raise OperationalError("INSERT INTO cv_extractions ...", {}, Exception("disk full"))

        monkeypatch.setattr(ExtractionRepository, "create", refuse)

        with pytest.raises(OperationalError):
            _upload(orchestrator)
        assert list((tmp_path / "cvs").rglob("*.pdf")) == []


class TestRun:

    def test_happy_path_completes(self, orchestrator, seeded, extractor):
        extraction_id = _upload(orchestrator)

        assert orchestrator.run(extraction_id) == STATUS_COMPLETED

        row = _row(seeded, extraction_id)
        assert row.status == STATUS_COMPLETED
        assert row.retry_count == 0
        assert row.import_stats['skills_saved'] == 6
        assert row.llm_model_used == "gpt-4o-mini"
        assert row.llm_tokens_used == 1500
        assert row.extracted_text.startswith("Giulia Bianchi")
        assert row.processing_time_seconds is not None
        assert _count(seeded, EmployeeSkill, employee_id=EMPLOYEE_ID) == 6
        extractor.extract_cv.assert_called_once()

    def test_usage_logged_for_successful_call(self, orchestrator, seeded):
        extraction_id = _upload(orchestrator)
        orchestrator.run(extraction_id)

        with extraction_uow(seeded) as repo:
            rows = repo.usage.list_for_entity('cv_extraction', str(extraction_id))
            assert len(rows) == 1
            assert rows[0].status == USAGE_SUCCESS
            assert rows[0].total_tokens == 1500
            assert rows[0].user_id == HR_USER_ID
            assert rows[0].request_metadata == {'format': 'pdf', 'page_count': 2}

    def test_catalog_hints_are_passed_to_extractor(self, orchestrator, extractor):
        orchestrator.run(_upload(orchestrator))

        text, hints = extractor.extract_cv.call_args[0]
        assert text.startswith("Giulia")
        assert {s['id'] for s in hints['skills']} >= {276, 821}
        assert hints['sub_roles'][0]['parent_id'] == 3

    def test_schema_drift_fails_without_derived_rows(self, orchestrator, seeded, extractor):
        extractor.extract_cv.side_effect = SchemaError(
            "'skills' is a required property", usage=_usage(success=False, error="missing skills")
        )
        extraction_id = _upload(orchestrator)

        assert orchestrator.run(extraction_id) == STATUS_FAILED

        row = _row(seeded, extraction_id)
        assert row.error_phase == PHASE_EXTRACTION
        assert row.error_message.startswith("schema:")
        assert row.retry_count == 0
        for model in list(REPLACE_SET_MODELS.values()) + [EmployeeSkill]:
            assert _count(seeded, model, employee_id=EMPLOYEE_ID) == 0
        assert _count(seeded, LLMUsageLog, status=USAGE_FAILURE) == 1
        assert _count(seeded, LLMUsageLog) == 1

    def test_lm_timeout(self, orchestrator, seeded, extractor):
        extractor.extract_cv.side_effect = LMFailure("request timed out", kind="timeout")
        extraction_id = _upload(orchestrator)

        orchestrator.run(extraction_id)

        row = _row(seeded, extraction_id)
        assert row.status == STATUS_FAILED
        assert row.error_message == "timeout: request timed out"

    def test_unreadable_document(self, make_orchestrator, seeded):
        orchestrator = make_orchestrator(parser=FakeParser(DocumentParseError("No text extracted from cv.pdf")))
        extraction_id = _upload(orchestrator)

        assert orchestrator.run(extraction_id) == STATUS_FAILED
        assert _row(seeded, extraction_id).error_phase == PHASE_EXTRACTION

    def test_missing_blob_is_a_connection_failure(self, orchestrator, seeded, blob_store):
        extraction_id = _upload(orchestrator)
        blob_store.delete(_row(seeded, extraction_id).storage_key)

        assert orchestrator.run(extraction_id) == STATUS_FAILED
        assert _row(seeded, extraction_id).error_phase == PHASE_CONNECTION

    def test_unexpected_error_is_unknown_phase(self, orchestrator, seeded, extractor):
        extractor.extract_cv.side_effect = KeyError("surprise")
        extraction_id = _upload(orchestrator)

        assert orchestrator.run(extraction_id) == STATUS_FAILED
        assert _row(seeded, extraction_id).error_phase == PHASE_UNKNOWN

    def test_provider_crash_is_an_extraction_failure_with_usage(self, make_orchestrator, seeded):
        orchestrator = make_orchestrator(extractor=BrokenProvider("gpt-4o-mini"))
        extraction_id = _upload(orchestrator)

        assert orchestrator.run(extraction_id) == STATUS_FAILED

        row = _row(seeded, extraction_id)
        assert row.error_phase == PHASE_EXTRACTION
        assert row.error_message.startswith("provider: Unexpected openai error: KeyError")
        assert _count(seeded, LLMUsageLog) == 1
        assert _count(seeded, LLMUsageLog, status=USAGE_FAILURE) == 1

    def test_impossible_years_do_not_sink_the_import(self, orchestrator, seeded, extractor):
        payload = make_cv_payload(education=[{
            "degree_name": "Master of Science",
            "institution_name": "Politecnico di Milano",
            "start_date": {"year": 0},
            "end_date": {"year": 20190, "month": 7},
        }])
        extractor.extract_cv.return_value = LMResult(data=payload, usage=_usage())
        extraction_id = _upload(orchestrator)

        assert orchestrator.run(extraction_id) == STATUS_COMPLETED

        assert _count(seeded, EmployeeSkill, employee_id=EMPLOYEE_ID) == 6
        with extraction_uow(seeded) as repo:
            education = repo.db.query(EmployeeEducation).filter_by(employee_id=EMPLOYEE_ID).one()
            assert education.start_date is None
            assert education.end_date is None

    def test_second_run_is_a_no_op(self, orchestrator, extractor):
        extraction_id = _upload(orchestrator)

        orchestrator.run(extraction_id)
        assert orchestrator.run(extraction_id) is None

        assert extractor.extract_cv.call_count == 1

    def test_auto_import_off_stops_at_extracted(self, make_orchestrator, seeded):
        orchestrator = make_orchestrator(config=ExtractionConfig(auto_import=False))
        extraction_id = _upload(orchestrator)

        assert orchestrator.run(extraction_id) == STATUS_EXTRACTED
        assert _row(seeded, extraction_id).extraction_result is not None
        assert orchestrator.process(extraction_id) == STATUS_COMPLETED

    def test_process_ignores_finished_rows(self, orchestrator):
        extraction_id = _upload(orchestrator)
        orchestrator.process(extraction_id)

        assert orchestrator.process(extraction_id) is None


class TestImport:

    def test_transient_failure_then_success(self, make_orchestrator, seeded):
        save_service = FlakySaveService(_deadlock())
        orchestrator = make_orchestrator(save_service=save_service)
        extraction_id = _upload(orchestrator)

        assert orchestrator.run(extraction_id) == STATUS_EXTRACTED
        row = _row(seeded, extraction_id)
        assert row.retry_count == 1
        assert row.error_phase is None

        assert orchestrator.import_extraction(extraction_id) == STATUS_COMPLETED
        row = _row(seeded, extraction_id)
        assert row.retry_count == 1
        assert row.import_stats['skills_saved'] == 6
        assert _count(seeded, EmployeeSkill, employee_id=EMPLOYEE_ID) == 6

    def test_retries_exhausted(self, make_orchestrator, seeded, config):
        orchestrator = make_orchestrator(save_service=FlakySaveService(_deadlock(), _deadlock(), _deadlock()))
        extraction_id = _upload(orchestrator)

        orchestrator.run(extraction_id)
        orchestrator.import_extraction(extraction_id)
        assert orchestrator.import_extraction(extraction_id) == STATUS_FAILED

        row = _row(seeded, extraction_id)
        assert row.error_phase == PHASE_DATABASE_SAVE
        assert row.retry_count == config.max_retries
        assert orchestrator.import_extraction(extraction_id) is None

    def test_permanent_failure(self, make_orchestrator, seeded):
        integrity = IntegrityError("INSERT ...", {}, Exception("violates foreign key constraint"))
        orchestrator = make_orchestrator(save_service=FlakySaveService(integrity))
        extraction_id = _upload(orchestrator)

        assert orchestrator.run(extraction_id) == STATUS_FAILED

        row = _row(seeded, extraction_id)
        assert row.error_phase == PHASE_DATABASE_SAVE
        assert row.retry_count == 0
        assert _count(seeded, EmployeeEducation, employee_id=EMPLOYEE_ID) == 0

    def test_replaying_completed_import_is_a_no_op(self, orchestrator, seeded):
        extraction_id = _upload(orchestrator)
        orchestrator.run(extraction_id)
        before = _row(seeded, extraction_id).import_stats

        assert orchestrator.import_extraction(extraction_id) is None
        assert _row(seeded, extraction_id).import_stats == before

    def test_payload_without_skills_imports_no_skills(self, orchestrator, seeded, extractor):
        extractor.extract_cv.return_value = LMResult(data=payload_without("skills"), usage=_usage())
        extraction_id = _upload(orchestrator)

        assert orchestrator.run(extraction_id) == STATUS_COMPLETED
        assert _row(seeded, extraction_id).import_stats['skills_saved'] == 0


class TestRecovery:

    def test_stale_importing_counts_as_transient(self, orchestrator, seeded):
        extraction_id = create_extraction(
            seeded, status=STATUS_IMPORTING, extraction_result=make_cv_payload()
        )

        assert orchestrator.recover_stale_importing(extraction_id) == STATUS_EXTRACTED
        assert _row(seeded, extraction_id).retry_count == 1

    def test_stale_processing_fails(self, orchestrator, seeded):
        extraction_id = create_extraction(seeded, status=STATUS_PROCESSING)

        assert orchestrator.recover_stale_processing(extraction_id) == STATUS_FAILED
        assert _row(seeded, extraction_id).error_phase == PHASE_UNKNOWN


class TestManualOperations:

    def test_retry_after_extraction_failure_restarts_from_pending(self, make_orchestrator, seeded, extractor):
        dispatcher = MagicMock()
        orchestrator = make_orchestrator(dispatcher=dispatcher)
        extractor.extract_cv.side_effect = LMFailure("connection reset", kind="connection")
        extraction_id = _upload(orchestrator)
        orchestrator.run(extraction_id)

        assert orchestrator.retry_failed(extraction_id) == STATUS_PENDING

        row = _row(seeded, extraction_id)
        assert row.status == STATUS_PENDING
        assert row.error_phase is None
        assert row.error_message is None
        assert dispatcher.call_count == 2

    def test_retry_after_save_failure_keeps_result(self, make_orchestrator, seeded):
        integrity = IntegrityError("INSERT ...", {}, Exception("check constraint"))
        orchestrator = make_orchestrator(save_service=FlakySaveService(integrity))
        extraction_id = _upload(orchestrator)
        orchestrator.run(extraction_id)

        assert orchestrator.retry_failed(extraction_id) == STATUS_EXTRACTED
        assert orchestrator.import_extraction(extraction_id) == STATUS_COMPLETED

    def test_retry_requires_failed_status(self, orchestrator):
        extraction_id = _upload(orchestrator)
        with pytest.raises(NotRetryableError):
            orchestrator.retry_failed(extraction_id)

    def test_retry_unknown_extraction(self, orchestrator):
        with pytest.raises(NotFoundError):
            orchestrator.retry_failed(uuid.uuid4())

    def test_cancel_pending(self, orchestrator, seeded):
        extraction_id = _upload(orchestrator)

        assert orchestrator.cancel(extraction_id) is True
        row = _row(seeded, extraction_id)
        assert row.status == STATUS_FAILED
        assert row.error_phase == PHASE_UNKNOWN
        assert orchestrator.cancel(extraction_id) is False

    def test_delete_keeps_shared_blob_until_last_reference(self, orchestrator, seeded, blob_store):
        first = _upload(orchestrator)
        second = _upload(orchestrator)
        storage_key = _row(seeded, first).storage_key
        assert _row(seeded, second).storage_key == storage_key

        assert orchestrator.delete(first, deleted_by=HR_USER_ID) is True
        assert blob_store.get(storage_key).data == PDF_BYTES
        assert _row(seeded, first).deleted_by == HR_USER_ID

        assert orchestrator.delete(second) is True
        with pytest.raises(NotFoundError):
            blob_store.get(storage_key)
        assert orchestrator.delete(second) is False
