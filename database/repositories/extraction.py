import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Dict, Any

from sqlalchemy import select, update, func

from database.models import (
    CVExtraction,
    STATUS_PENDING,
    STATUS_EXTRACTED,
    is_legal_transition,
    utcnow,
)
from database.repositories.base import BaseRepository

logger = logging.getLogger(__name__)

# Columns a transition patch may touch. status and id are owned by the CAS itself.
_PATCHABLE_FIELDS = frozenset({
    'retry_count',
    'error_phase',
    'error_message',
    'llm_model_used',
    'llm_tokens_used',
    'llm_cost',
    'extracted_text',
    'extraction_result',
    'import_stats',
    'processing_time_seconds',
})


class ExtractionRepository(BaseRepository):
    """Single source of truth for extraction state."""

    def create(
        self,
        tenant_id: uuid.UUID,
        employee_id: int,
        original_filename: str,
        file_size_bytes: int,
        mime_type: str,
        storage_key: str,
        uploaded_by: Optional[uuid.UUID] = None,
    ) -> CVExtraction:
        extraction = CVExtraction(
            tenant_id=tenant_id,
            employee_id=employee_id,
            uploaded_by=uploaded_by,
            original_filename=original_filename,
            file_size_bytes=file_size_bytes,
            mime_type=mime_type,
            storage_key=storage_key,
            status=STATUS_PENDING,
            retry_count=0,
        )
        self.db.add(extraction)
        self.db.flush()
        return extraction

    def get(self, extraction_id: uuid.UUID, include_deleted: bool = False) -> Optional[CVExtraction]:
        stmt = select(CVExtraction).where(CVExtraction.id == extraction_id)
        if not include_deleted:
            stmt = stmt.where(CVExtraction.deleted_at.is_(None))
        return self.db.execute(stmt).scalar_one_or_none()

    def get_for_tenant(self, tenant_id: uuid.UUID, extraction_id: uuid.UUID) -> Optional[CVExtraction]:
        stmt = select(CVExtraction).where(
            CVExtraction.id == extraction_id,
            CVExtraction.tenant_id == tenant_id,
            CVExtraction.deleted_at.is_(None),
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def transition(
        self,
        extraction_id: uuid.UUID,
        from_status: str,
        to_status: str,
        patch: Optional[Dict[str, Any]] = None,
    ) -> Optional[CVExtraction]:
        """Conditionally move an extraction from one status to another.

        The UPDATE only matches while the row is still at from_status, so of
        two concurrent callers exactly one wins. The loser gets None.

        Raises:
            ValueError: the edge is not part of the transition graph, or the
                patch names a column the pipeline does not own.
        """
        if not is_legal_transition(from_status, to_status):
            raise ValueError(f"Illegal extraction transition {from_status} -> {to_status}")

        patch = dict(patch or {})
        unknown = set(patch) - _PATCHABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot patch extraction fields: {sorted(unknown)}")

        current = self.db.execute(
            select(CVExtraction.retry_count).where(CVExtraction.id == extraction_id)
        ).scalar_one_or_none()
        if current is not None and 'retry_count' in patch and patch['retry_count'] < current:
            raise ValueError("retry_count may not decrease")

        values = dict(patch)
        values['status'] = to_status
        values['updated_at'] = utcnow()

        result = self.db.execute(
            update(CVExtraction)
            .where(
                CVExtraction.id == extraction_id,
                CVExtraction.status == from_status,
                CVExtraction.deleted_at.is_(None),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )

        if result.rowcount != 1:
            logger.info(
                f"Extraction {extraction_id}: transition {from_status} -> {to_status} lost (row moved on)"
            )
            return None

        logger.info(f"Extraction {extraction_id}: {from_status} -> {to_status}")
        extraction = self.db.get(CVExtraction, extraction_id)
        self.db.refresh(extraction)
        return extraction

    def find_pending(self, limit: int = 5, older_than: Optional[timedelta] = None) -> List[CVExtraction]:
        """Pending uploads, oldest first."""
        stmt = select(CVExtraction).where(
            CVExtraction.status == STATUS_PENDING,
            CVExtraction.deleted_at.is_(None),
        )
        if older_than is not None:
            stmt = stmt.where(CVExtraction.created_at <= datetime.now(timezone.utc) - older_than)
        stmt = stmt.order_by(CVExtraction.created_at.asc()).limit(limit)
        return list(self.db.execute(stmt).scalars().all())

    def find_stuck(
        self,
        max_retries: int,
        older_than: timedelta,
        limit: int = 10,
        status: str = STATUS_EXTRACTED,
    ) -> List[CVExtraction]:
        """Extractions waiting for (another) import attempt, least recently touched first."""
        cutoff = datetime.now(timezone.utc) - older_than
        stmt = (
            select(CVExtraction)
            .where(
                CVExtraction.status == status,
                CVExtraction.retry_count < max_retries,
                CVExtraction.updated_at <= cutoff,
                CVExtraction.deleted_at.is_(None),
            )
            .order_by(CVExtraction.updated_at.asc())
            .limit(limit)
        )
        return list(self.db.execute(stmt).scalars().all())

    def find_stale(self, status: str, older_than: timedelta, limit: int = 10) -> List[CVExtraction]:
        """Rows sitting in an in-flight status longer than any live worker would hold them."""
        cutoff = datetime.now(timezone.utc) - older_than
        stmt = (
            select(CVExtraction)
            .where(
                CVExtraction.status == status,
                CVExtraction.updated_at <= cutoff,
                CVExtraction.deleted_at.is_(None),
            )
            .order_by(CVExtraction.updated_at.asc())
            .limit(limit)
        )
        return list(self.db.execute(stmt).scalars().all())

    def list_for_employee(self, tenant_id: uuid.UUID, employee_id: int, limit: int = 20) -> List[CVExtraction]:
        stmt = (
            select(CVExtraction)
            .where(
                CVExtraction.tenant_id == tenant_id,
                CVExtraction.employee_id == employee_id,
                CVExtraction.deleted_at.is_(None),
            )
            .order_by(CVExtraction.created_at.desc())
            .limit(limit)
        )
        return list(self.db.execute(stmt).scalars().all())

    def count_by_storage_key(self, storage_key: str, exclude_id: Optional[uuid.UUID] = None) -> int:
        stmt = select(func.count(CVExtraction.id)).where(
            CVExtraction.storage_key == storage_key,
            CVExtraction.deleted_at.is_(None),
        )
        if exclude_id is not None:
            stmt = stmt.where(CVExtraction.id != exclude_id)
        return self.db.execute(stmt).scalar_one()

    def soft_delete(self, extraction_id: uuid.UUID, deleted_by: Optional[uuid.UUID]) -> bool:
        result = self.db.execute(
            update(CVExtraction)
            .where(CVExtraction.id == extraction_id, CVExtraction.deleted_at.is_(None))
            .values(deleted_at=utcnow(), deleted_by=deleted_by, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
