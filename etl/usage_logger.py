"""
LLM usage accounting.

Every language-model call, successful or not, is appended to the usage log in
its own short transaction. Writing the log must never break the pipeline, so
log_usage swallows its own failures after reporting them.
"""
import logging
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from core.llm.interfaces import UsageRecord
from core.llm.pricing import estimate_cost
from database.models import USAGE_SUCCESS, USAGE_FAILURE
from database.uow import extraction_uow

logger = logging.getLogger(__name__)

OPERATION_CV_EXTRACTION = 'cv_extraction'
ENTITY_CV_EXTRACTION = 'cv_extraction'


class LLMUsageLogger:
    """Append-only usage log writer plus the cost reporting queries."""

    def __init__(self, session_factory=None):
        self.session_factory = session_factory

    def log_usage(
        self,
        usage: UsageRecord,
        operation_type: str = OPERATION_CV_EXTRACTION,
        tenant_id: Optional[uuid.UUID] = None,
        user_id: Optional[uuid.UUID] = None,
        entity_type: Optional[str] = None,
        entity_id: Optional[Any] = None,
        metadata: Optional[Dict[str, Any]] = None,
        estimated_cost: Optional[Decimal] = None,
    ) -> Optional[uuid.UUID]:
        """Record one LM call.

        Args:
            usage: Tokens, latency and outcome reported by the provider adapter
            estimated_cost: Overrides the pricing table when given

        Returns:
            The usage row id, or None when the row could not be written
        """
        if estimated_cost is None:
            estimated_cost = estimate_cost(
                usage.provider, usage.model, usage.prompt_tokens, usage.completion_tokens
            )

        try:
            with extraction_uow(self.session_factory) as repo:
                record = repo.usage.add(
                    tenant_id=tenant_id,
                    user_id=user_id,
                    operation_type=operation_type,
                    provider=usage.provider,
                    model=usage.model,
                    prompt_tokens=usage.prompt_tokens,
                    completion_tokens=usage.completion_tokens,
                    total_tokens=usage.total_tokens,
                    estimated_cost=estimated_cost,
                    response_time_ms=usage.response_time_ms,
                    status=USAGE_SUCCESS if usage.success else USAGE_FAILURE,
                    error_message=(usage.error_message or '')[:2000] or None,
                    entity_type=entity_type,
                    entity_id=str(entity_id) if entity_id is not None else None,
                    request_metadata=metadata,
                )
                record_id = record.id
        except Exception:
            logger.exception(
                f"Failed to record LLM usage for {entity_type}:{entity_id} "
                f"({usage.provider}/{usage.model}, {usage.total_tokens} tokens)"
            )
            return None

        logger.debug(f"Logged LLM usage {record_id}: {usage.total_tokens} tokens, ${estimated_cost}")
        return record_id

    def get_cost_summary(
        self,
        tenant_id: uuid.UUID,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        with extraction_uow(self.session_factory) as repo:
            rows = repo.usage.cost_summary(tenant_id, start, end)
        return {
            'tenant_id': tenant_id,
            'start': start,
            'end': end,
            'total_calls': sum(r['calls'] for r in rows),
            'total_tokens': sum(r['total_tokens'] for r in rows),
            'total_cost': sum((r['total_cost'] for r in rows), Decimal('0')),
            'breakdown': rows,
        }

    def get_failed_operations(self, tenant_id: uuid.UUID, limit: int = 50) -> List[Dict[str, Any]]:
        with extraction_uow(self.session_factory) as repo:
            return [
                {
                    'id': row.id,
                    'operation_type': row.operation_type,
                    'provider': row.provider,
                    'model': row.model,
                    'error_message': row.error_message,
                    'entity_type': row.entity_type,
                    'entity_id': row.entity_id,
                    'created_at': row.created_at,
                }
                for row in repo.usage.failed_operations(tenant_id, limit)
            ]

    def get_top_tenants(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: int = 10,
    ) -> List[Dict[str, Any]]:
        with extraction_uow(self.session_factory) as repo:
            return repo.usage.top_tenants(start, end, limit)
