"""
CVExtractionService - the caller-facing operations of the CV pipeline.

Every operation takes the authenticated Principal first and enforces the
tenant/role rules before touching state. Transport layers (HTTP handlers,
CLI commands) call into this class and map its exceptions onto their own
error responses.
"""
import logging
import uuid
from typing import Any, Dict, List, Tuple

from core.auth import Principal, Role, authorize_employee_access, require_role
from core.exceptions import NotFoundError
from database.uow import extraction_uow
from etl.orchestrator import CVImportOrchestrator
from etl.status import status_projection

logger = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT = 20
MAX_LIST_LIMIT = 100


class CVExtractionService:

    def __init__(self, orchestrator: CVImportOrchestrator, session_factory=None):
        self.orchestrator = orchestrator
        self.session_factory = session_factory

    def upload_cv(
        self,
        principal: Principal,
        employee_id: int,
        data: bytes,
        filename: str,
        mime_type: str,
    ) -> Tuple[uuid.UUID, str]:
        return self.orchestrator.upload(principal, employee_id, data, filename, mime_type)

    def _load_authorized(self, repo, principal: Principal, extraction_id: uuid.UUID):
        row = repo.extractions.get(extraction_id)
        if row is None:
            raise NotFoundError(f"Extraction {extraction_id} not found")
        authorize_employee_access(principal, row.tenant_id, row.employee_id)
        return row

    def get_extraction_status(self, principal: Principal, extraction_id: uuid.UUID) -> Dict[str, Any]:
        """Polling view of one extraction.

        Raises:
            NotFoundError: unknown or deleted extraction
            NotAuthorizedError: other tenant, or an EMPLOYEE asking about someone else's CV
        """
        with extraction_uow(self.session_factory) as repo:
            row = self._load_authorized(repo, principal, extraction_id)
            return status_projection(row)

    def list_extractions_for_employee(
        self,
        principal: Principal,
        employee_id: int,
        limit: int = DEFAULT_LIST_LIMIT,
    ) -> List[Dict[str, Any]]:
        authorize_employee_access(principal, principal.tenant_id, employee_id)
        limit = max(1, min(int(limit), MAX_LIST_LIMIT))
        with extraction_uow(self.session_factory) as repo:
            rows = repo.extractions.list_for_employee(principal.tenant_id, employee_id, limit)
            return [status_projection(row) for row in rows]

    def retry_failed_extraction(self, principal: Principal, extraction_id: uuid.UUID) -> str:
        require_role(principal, Role.HR)
        with extraction_uow(self.session_factory) as repo:
            self._load_authorized(repo, principal, extraction_id)
        return self.orchestrator.retry_failed(extraction_id, tenant_id=principal.tenant_id)

    def cancel_extraction(self, principal: Principal, extraction_id: uuid.UUID) -> bool:
        require_role(principal, Role.HR)
        with extraction_uow(self.session_factory) as repo:
            self._load_authorized(repo, principal, extraction_id)
        return self.orchestrator.cancel(extraction_id)

    def delete_extraction(self, principal: Principal, extraction_id: uuid.UUID) -> bool:
        """HR and above, or the employee the CV belongs to."""
        with extraction_uow(self.session_factory) as repo:
            self._load_authorized(repo, principal, extraction_id)
        return self.orchestrator.delete(extraction_id, deleted_by=principal.user_id)
