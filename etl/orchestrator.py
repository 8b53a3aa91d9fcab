"""
CV Import Orchestrator - the extraction state machine.

    pending -> processing -> extracted -> importing -> completed
                   |                          |
                   +--> failed                +--> extracted (transient, retry_count + 1)
                                              +--> failed (permanent, or retries exhausted)

Every status change goes through ExtractionRepository.transition, a
compare-and-swap on the status column: of two workers racing on the same row
exactly one moves it, the other observes a no-op. Each step runs in its own
short unit of work; the LM call happens between transactions. run and
import_extraction never raise: failures become status transitions.
"""
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

from sqlalchemy import text

from core.auth import Principal, authorize_employee_access
from core.config_loader import ExtractionConfig
from core.exceptions import (
    InvalidInputError,
    NotAuthorizedError,
    NotFoundError,
    NotRetryableError,
    StorageUnavailableError,
    DocumentParseError,
    LMFailure,
    SaveFailure,
    TransientSaveFailure,
    StaleTransitionError,
    classify_db_error,
)
from core.llm.interfaces import LLMProvider
from core.llm.pricing import estimate_cost
from database.models import (
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
)
from database.uow import extraction_uow
from etl.cv.parser import DocumentParser
from etl.cv.save_service import CVSaveService
from etl.usage_logger import LLMUsageLogger, OPERATION_CV_EXTRACTION, ENTITY_CV_EXTRACTION
from storage.blob_store import BlobStore

logger = logging.getLogger(__name__)

MAX_ERROR_MESSAGE = 2000


@dataclass
class _ClaimedExtraction:
    """Fields of a claimed row needed after its transaction has closed."""
    id: uuid.UUID
    tenant_id: uuid.UUID
    employee_id: int
    uploaded_by: Optional[uuid.UUID]
    storage_key: str
    original_filename: str
    mime_type: str
    retry_count: int = 0
    extraction_result: Optional[Dict[str, Any]] = None

    @classmethod
    def from_row(cls, row) -> "_ClaimedExtraction":
        return cls(
            id=row.id,
            tenant_id=row.tenant_id,
            employee_id=row.employee_id,
            uploaded_by=row.uploaded_by,
            storage_key=row.storage_key,
            original_filename=row.original_filename,
            mime_type=row.mime_type,
            retry_count=row.retry_count,
            extraction_result=row.extraction_result,
        )


class CVImportOrchestrator:
    """Drives one extraction through upload, LM extraction and import.

    Usage:
        orchestrator = CVImportOrchestrator(blob_store, extractor, config.extraction)
        extraction_id, status = orchestrator.upload(principal, 91, data, "cv.pdf", "application/pdf")
        orchestrator.process(extraction_id)
    """

    def __init__(
        self,
        blob_store: BlobStore,
        extractor: LLMProvider,
        config: Optional[ExtractionConfig] = None,
        usage_logger: Optional[LLMUsageLogger] = None,
        save_service: Optional[CVSaveService] = None,
        parser: Optional[DocumentParser] = None,
        session_factory=None,
        dispatcher: Optional[Callable[[uuid.UUID], Any]] = None,
    ):
        self.blob_store = blob_store
        self.extractor = extractor
        self.config = config or ExtractionConfig()
        self.session_factory = session_factory
        self.usage_logger = usage_logger or LLMUsageLogger(session_factory)
        self.save_service = save_service or CVSaveService()
        self.parser = parser or DocumentParser()
        self.dispatcher = dispatcher

    def _uow(self):
        return extraction_uow(self.session_factory)

    # ------------------------------------------------------------------
    # Upload
    # ------------------------------------------------------------------

    def upload(
        self,
        principal: Principal,
        employee_id: int,
        data: bytes,
        filename: str,
        mime_type: str,
    ) -> Tuple[uuid.UUID, str]:
        """Store the file, create a pending extraction and hand it to the dispatcher.

        Raises:
            NotAuthorizedError: principal may not act on the employee, or the
                employee does not belong to the principal's tenant
            InvalidInputError: empty, oversized or unsupported upload
            StorageUnavailableError: the blob could not be written
        """
        tenant_id = principal.tenant_id
        authorize_employee_access(principal, tenant_id, employee_id)
        mime_type = self._validate_upload(data, filename, mime_type)

        with self._uow() as repo:
            if repo.employees.get(tenant_id, employee_id) is None:
                logger.warning(f"Upload rejected: employee {employee_id} not in tenant {tenant_id}")
                raise NotAuthorizedError("Employee does not belong to this tenant")

        storage_key = self.blob_store.put(data, filename, mime_type)

        try:
            with self._uow() as repo:
                extraction = repo.extractions.create(
                    tenant_id=tenant_id,
                    employee_id=employee_id,
                    original_filename=filename,
                    file_size_bytes=len(data),
                    mime_type=mime_type,
                    storage_key=storage_key,
                    uploaded_by=principal.user_id,
                )
                extraction_id = extraction.id
        except Exception:
            logger.error(f"Failed to record upload of {filename}; removing unreferenced blob {storage_key}")
            self._delete_blob_if_unreferenced(storage_key)
            raise

        logger.info(
            f"Extraction {extraction_id} created for employee {employee_id} "
            f"({filename}, {len(data)} bytes)"
        )
        self.dispatch(extraction_id)
        return extraction_id, STATUS_PENDING

    def _validate_upload(self, data: bytes, filename: str, mime_type: str) -> str:
        if not data:
            raise InvalidInputError("Uploaded file is empty")
        if len(data) > self.config.max_upload_bytes:
            raise InvalidInputError(
                f"File is {len(data)} bytes; the limit is {self.config.max_upload_bytes} bytes"
            )
        if not filename or not filename.strip():
            raise InvalidInputError("A filename is required")
        mime = (mime_type or '').split(';')[0].strip().lower()
        if mime not in self.config.accepted_mime_types:
            raise InvalidInputError(f"Unsupported file type: {mime_type or 'unknown'}")
        return mime

    def dispatch(self, extraction_id: uuid.UUID) -> None:
        """Hand the extraction to the dispatcher. A failed dispatch leaves it pending for the worker."""
        if self.dispatcher is None:
            return
        try:
            self.dispatcher(extraction_id)
        except Exception:
            logger.exception(f"Dispatch of extraction {extraction_id} failed; the worker will pick it up")

    # ------------------------------------------------------------------
    # Processing entry point
    # ------------------------------------------------------------------

    def process(self, extraction_id: uuid.UUID) -> Optional[str]:
        """Advance the extraction from wherever it currently is. Used by dispatch jobs."""
        with self._uow() as repo:
            row = repo.extractions.get(extraction_id)
            status = row.status if row is not None else None

        if status == STATUS_PENDING:
            return self.run(extraction_id)
        if status == STATUS_EXTRACTED:
            return self.import_extraction(extraction_id)
        logger.debug(f"Extraction {extraction_id}: nothing to do in status {status}")
        return None

    # ------------------------------------------------------------------
    # Extraction phase
    # ------------------------------------------------------------------

    def run(self, extraction_id: uuid.UUID) -> Optional[str]:
        """pending -> processing -> extracted | failed, then import when auto_import is on.

        Returns the status the row was left in, or None when another caller
        owned the row (or it was not pending).
        """
        with self._uow() as repo:
            row = repo.extractions.get(extraction_id)
            if row is None:
                logger.warning(f"Extraction {extraction_id} not found")
                return None
            if row.status != STATUS_PENDING:
                logger.debug(f"Extraction {extraction_id} is {row.status}, not pending; skipping")
                return None
            claimed_row = repo.extractions.transition(extraction_id, STATUS_PENDING, STATUS_PROCESSING)
            if claimed_row is None:
                return None
            claimed = _ClaimedExtraction.from_row(claimed_row)

        started = time.monotonic()

        try:
            blob = self.blob_store.get(claimed.storage_key)
        except (StorageUnavailableError, NotFoundError) as e:
            return self._fail(extraction_id, STATUS_PROCESSING, PHASE_CONNECTION, f"Could not read CV file: {e}")

        try:
            parsed = self.parser.extract_text(blob.data, claimed.original_filename, claimed.mime_type)
            with self._uow() as repo:
                hints = repo.reference.catalog_hints()
            result = self.extractor.extract_cv(parsed.text, hints)
        except LMFailure as e:
            if e.usage is not None:
                self._log_usage(claimed, e.usage)
            return self._fail(extraction_id, STATUS_PROCESSING, PHASE_EXTRACTION, f"{e.kind}: {e}")
        except DocumentParseError as e:
            return self._fail(extraction_id, STATUS_PROCESSING, PHASE_EXTRACTION, str(e))
        except Exception as e:
            logger.exception(f"Extraction {extraction_id}: unexpected error during extraction")
            return self._fail(extraction_id, STATUS_PROCESSING, PHASE_UNKNOWN, f"{type(e).__name__}: {e}")

        usage = result.usage
        self._log_usage(claimed, usage, metadata={'format': parsed.format, 'page_count': parsed.page_count})

        patch = {
            'extracted_text': parsed.text,
            'extraction_result': result.data,
            'llm_model_used': usage.model,
            'llm_tokens_used': usage.total_tokens,
            'llm_cost': estimate_cost(usage.provider, usage.model, usage.prompt_tokens, usage.completion_tokens),
            'processing_time_seconds': round(time.monotonic() - started, 3),
        }
        try:
            with self._uow() as repo:
                moved = repo.extractions.transition(extraction_id, STATUS_PROCESSING, STATUS_EXTRACTED, patch)
        except Exception as e:
            logger.exception(f"Extraction {extraction_id}: could not store extraction result")
            return self._fail(extraction_id, STATUS_PROCESSING, PHASE_UNKNOWN, f"{type(e).__name__}: {e}")

        if moved is None:
            return None
        if not self.config.auto_import:
            return STATUS_EXTRACTED
        return self.import_extraction(extraction_id)

    def _log_usage(self, claimed: _ClaimedExtraction, usage, metadata: Optional[Dict[str, Any]] = None) -> None:
        self.usage_logger.log_usage(
            usage,
            operation_type=OPERATION_CV_EXTRACTION,
            tenant_id=claimed.tenant_id,
            user_id=claimed.uploaded_by,
            entity_type=ENTITY_CV_EXTRACTION,
            entity_id=claimed.id,
            metadata=metadata,
        )

    # ------------------------------------------------------------------
    # Import phase
    # ------------------------------------------------------------------

    def import_extraction(self, extraction_id: uuid.UUID) -> Optional[str]:
        """extracted -> importing -> completed | extracted | failed.

        Returns the resulting status, or None when the row was not at
        extracted (already imported, taken by another worker).
        """
        with self._uow() as repo:
            row = repo.extractions.transition(extraction_id, STATUS_EXTRACTED, STATUS_IMPORTING)
            if row is None:
                return None
            claimed = _ClaimedExtraction.from_row(row)

        try:
            with self._uow() as repo:
                self._apply_import_timeout(repo.db)
                stats = self.save_service.save(
                    repo, claimed.id, claimed.tenant_id, claimed.employee_id, claimed.extraction_result or {}
                )
                done = repo.extractions.transition(
                    extraction_id, STATUS_IMPORTING, STATUS_COMPLETED, {'import_stats': stats}
                )
                if done is None:
                    raise StaleTransitionError(f"Extraction {extraction_id} left importing during the save")
        except StaleTransitionError as e:
            logger.warning(f"{e}; derived rows rolled back")
            return None
        except Exception as e:
            failure = classify_db_error(e)
            if not isinstance(e, SaveFailure):
                logger.error(f"Extraction {extraction_id}: import failed ({type(e).__name__}): {e}")
            return self._handle_save_failure(claimed.id, claimed.retry_count, failure)

        logger.info(
            f"Extraction {extraction_id} completed: {stats['skills_saved']} skills, "
            f"{stats['education_saved']} education, {stats['work_experiences_saved']} work experiences"
        )
        return STATUS_COMPLETED

    def _apply_import_timeout(self, session) -> None:
        """Bound the import transaction on PostgreSQL; a timeout surfaces as a transient error."""
        if session.get_bind().dialect.name != 'postgresql':
            return
        timeout_ms = int(self.config.import_tx_timeout_ms)
        session.execute(text(f"SET LOCAL statement_timeout = {timeout_ms}"))
        session.execute(text(f"SET LOCAL lock_timeout = {timeout_ms}"))

    def _handle_save_failure(self, extraction_id: uuid.UUID, retry_count: int, failure: SaveFailure) -> Optional[str]:
        max_retries = self.config.max_retries
        message = str(failure)[:MAX_ERROR_MESSAGE]

        if not failure.transient:
            return self._fail(extraction_id, STATUS_IMPORTING, PHASE_DATABASE_SAVE, message)

        new_count = retry_count + 1
        if new_count >= max_retries:
            logger.error(f"Extraction {extraction_id}: import failed {new_count} times, giving up")
            return self._fail(
                extraction_id, STATUS_IMPORTING, PHASE_DATABASE_SAVE,
                f"Retries exhausted: {message}", retry_count=min(new_count, max_retries),
            )

        try:
            with self._uow() as repo:
                moved = repo.extractions.transition(
                    extraction_id, STATUS_IMPORTING, STATUS_EXTRACTED, {'retry_count': new_count}
                )
        except Exception:
            logger.exception(f"Extraction {extraction_id}: could not return to extracted after transient failure")
            return None

        if moved is None:
            return None
        logger.warning(
            f"Extraction {extraction_id}: transient import failure ({new_count}/{max_retries}), "
            f"back to extracted: {message}"
        )
        return STATUS_EXTRACTED

    def _fail(
        self,
        extraction_id: uuid.UUID,
        from_status: str,
        phase: str,
        message: str,
        retry_count: Optional[int] = None,
    ) -> Optional[str]:
        patch = {'error_phase': phase, 'error_message': (message or '')[:MAX_ERROR_MESSAGE]}
        if retry_count is not None:
            patch['retry_count'] = retry_count
        try:
            with self._uow() as repo:
                moved = repo.extractions.transition(extraction_id, from_status, STATUS_FAILED, patch)
        except Exception:
            logger.exception(f"Extraction {extraction_id}: could not record failure ({phase}: {message})")
            return None

        if moved is None:
            return None
        logger.error(f"Extraction {extraction_id} failed in {phase}: {message}")
        return STATUS_FAILED

    # ------------------------------------------------------------------
    # Recovery
    # ------------------------------------------------------------------

    def recover_stale_importing(self, extraction_id: uuid.UUID) -> Optional[str]:
        """An import that never finished (worker died) counts as a transient failure."""
        with self._uow() as repo:
            row = repo.extractions.get(extraction_id)
            if row is None or row.status != STATUS_IMPORTING:
                return None
            retry_count = row.retry_count
        return self._handle_save_failure(
            extraction_id, retry_count,
            TransientSaveFailure("Import did not finish; the worker handling it probably stopped"),
        )

    def recover_stale_processing(self, extraction_id: uuid.UUID) -> Optional[str]:
        return self._fail(
            extraction_id, STATUS_PROCESSING, PHASE_UNKNOWN,
            "Extraction did not finish; the worker handling it probably stopped",
        )

    # ------------------------------------------------------------------
    # Manual operations
    # ------------------------------------------------------------------

    def retry_failed(self, extraction_id: uuid.UUID, tenant_id: Optional[uuid.UUID] = None) -> str:
        """failed -> extracted (result kept) or failed -> pending, then dispatch.

        Raises:
            NotFoundError: no such extraction (in this tenant)
            NotRetryableError: the extraction is not failed
        """
        with self._uow() as repo:
            row = (
                repo.extractions.get_for_tenant(tenant_id, extraction_id)
                if tenant_id is not None else repo.extractions.get(extraction_id)
            )
            if row is None:
                raise NotFoundError(f"Extraction {extraction_id} not found")
            if row.status != STATUS_FAILED:
                raise NotRetryableError(f"Extraction {extraction_id} is {row.status}; only failed extractions can be retried")

            target = STATUS_EXTRACTED if row.extraction_result is not None else STATUS_PENDING
            moved = repo.extractions.transition(
                extraction_id, STATUS_FAILED, target, {'error_phase': None, 'error_message': None}
            )
            if moved is None:
                raise NotRetryableError(f"Extraction {extraction_id} changed status concurrently")

        logger.info(f"Extraction {extraction_id}: manual retry from {target}")
        self.dispatch(extraction_id)
        return target

    def cancel(self, extraction_id: uuid.UUID) -> bool:
        """pending -> failed/unknown. Work already in flight cannot be cancelled."""
        return self._fail(extraction_id, STATUS_PENDING, PHASE_UNKNOWN, "Cancelled before processing") == STATUS_FAILED

    def delete(self, extraction_id: uuid.UUID, deleted_by: Optional[uuid.UUID] = None) -> bool:
        """Soft-delete the extraction and drop its blob once nothing else references it."""
        with self._uow() as repo:
            row = repo.extractions.get(extraction_id)
            if row is None:
                return False
            storage_key = row.storage_key
            if not repo.extractions.soft_delete(extraction_id, deleted_by):
                return False

        self._delete_blob_if_unreferenced(storage_key)
        logger.info(f"Extraction {extraction_id} deleted by {deleted_by}")
        return True

    def _delete_blob_if_unreferenced(self, storage_key: str) -> None:
        try:
            with self._uow() as repo:
                references = repo.extractions.count_by_storage_key(storage_key)
            if references == 0:
                self.blob_store.delete(storage_key)
        except Exception:
            logger.exception(f"Could not remove blob {storage_key}; it is left orphaned")
