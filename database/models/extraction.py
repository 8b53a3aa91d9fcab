import uuid

from sqlalchemy import Column, Integer, BigInteger, Text, TIMESTAMP, ForeignKey, Float, Numeric, Uuid, Index, CheckConstraint

from .base import Base, JSONType, utcnow

# Wire-visible status values
STATUS_PENDING = 'pending'
STATUS_PROCESSING = 'processing'
STATUS_EXTRACTED = 'extracted'
STATUS_IMPORTING = 'importing'
STATUS_COMPLETED = 'completed'
STATUS_FAILED = 'failed'

EXTRACTION_STATUSES = (
    STATUS_PENDING,
    STATUS_PROCESSING,
    STATUS_EXTRACTED,
    STATUS_IMPORTING,
    STATUS_COMPLETED,
    STATUS_FAILED,
)

# Wire-visible error phases
PHASE_CONNECTION = 'python_connection'
PHASE_EXTRACTION = 'python_extraction'
PHASE_DATABASE_SAVE = 'database_save'
PHASE_UNKNOWN = 'unknown'

ERROR_PHASES = (PHASE_CONNECTION, PHASE_EXTRACTION, PHASE_DATABASE_SAVE, PHASE_UNKNOWN)

# from_status -> legal to_statuses. completed is terminal; failed only leaves
# through an explicit manual retry.
ALLOWED_TRANSITIONS = {
    STATUS_PENDING: frozenset({STATUS_PROCESSING, STATUS_FAILED}),
    STATUS_PROCESSING: frozenset({STATUS_EXTRACTED, STATUS_FAILED}),
    STATUS_EXTRACTED: frozenset({STATUS_IMPORTING}),
    STATUS_IMPORTING: frozenset({STATUS_COMPLETED, STATUS_EXTRACTED, STATUS_FAILED}),
    STATUS_COMPLETED: frozenset(),
    STATUS_FAILED: frozenset({STATUS_PENDING, STATUS_EXTRACTED}),
}


def is_legal_transition(from_status: str, to_status: str) -> bool:
    return to_status in ALLOWED_TRANSITIONS.get(from_status, ())


class CVExtraction(Base):
    """
    One CV upload and its lifecycle.

    status only ever changes through ExtractionRepository.transition, a
    compare-and-swap on the current status.
    """
    __tablename__ = 'cv_extractions'

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False)
    employee_id = Column(Integer, ForeignKey('employees.id', ondelete='CASCADE'), nullable=False)
    uploaded_by = Column(Uuid)

    # File metadata
    original_filename = Column(Text, nullable=False)
    file_size_bytes = Column(BigInteger, nullable=False)
    mime_type = Column(Text, nullable=False)
    storage_key = Column(Text, nullable=False)

    # State
    status = Column(Text, nullable=False, default=STATUS_PENDING)
    retry_count = Column(Integer, nullable=False, default=0)
    error_phase = Column(Text)
    error_message = Column(Text)

    # LM bookkeeping
    llm_model_used = Column(Text)
    llm_tokens_used = Column(Integer)
    llm_cost = Column(Numeric(12, 6))

    # Payloads
    extracted_text = Column(Text)
    extraction_result = Column(JSONType)
    import_stats = Column(JSONType)

    # Timing
    processing_time_seconds = Column(Float)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    # Soft delete
    deleted_at = Column(TIMESTAMP(timezone=True))
    deleted_by = Column(Uuid)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'processing', 'extracted', 'importing', 'completed', 'failed')",
            name='ck_cv_extractions_status',
        ),
        CheckConstraint(
            "error_phase IS NULL OR error_phase IN "
            "('python_connection', 'python_extraction', 'database_save', 'unknown')",
            name='ck_cv_extractions_error_phase',
        ),
        Index('idx_cv_extractions_status_updated', 'status', 'updated_at'),
        Index('idx_cv_extractions_employee', 'tenant_id', 'employee_id', 'created_at'),
        Index('idx_cv_extractions_storage_key', 'storage_key'),
    )
