import uuid

from sqlalchemy import Column, Integer, Text, TIMESTAMP, Numeric, Uuid, Index

from .base import Base, JSONType, utcnow

USAGE_SUCCESS = 'success'
USAGE_FAILURE = 'failure'


class LLMUsageLog(Base):
    """
    Append-only record of one language-model call.

    tenant_id/user_id are plain columns rather than foreign keys so that the
    audit trail outlives the rows it describes.
    """
    __tablename__ = 'llm_usage_logs'

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid)
    user_id = Column(Uuid)

    operation_type = Column(Text, nullable=False)  # cv_extraction|assessment_generation|...
    provider = Column(Text, nullable=False)
    model = Column(Text, nullable=False)

    prompt_tokens = Column(Integer, nullable=False, default=0)
    completion_tokens = Column(Integer, nullable=False, default=0)
    total_tokens = Column(Integer, nullable=False, default=0)
    estimated_cost = Column(Numeric(12, 6), nullable=False, default=0)
    response_time_ms = Column(Integer)

    status = Column(Text, nullable=False, default=USAGE_SUCCESS)  # success|failure
    error_message = Column(Text)

    entity_type = Column(Text)
    entity_id = Column(Text)
    request_metadata = Column(JSONType)

    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index('idx_llm_usage_tenant_created', 'tenant_id', 'created_at'),
        Index('idx_llm_usage_entity', 'entity_type', 'entity_id'),
    )
