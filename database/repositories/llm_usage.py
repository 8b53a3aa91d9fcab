import logging
import uuid
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Dict, Any

from sqlalchemy import select, func

from database.models import LLMUsageLog, USAGE_FAILURE
from database.repositories.base import BaseRepository

logger = logging.getLogger(__name__)


class LLMUsageRepository(BaseRepository):
    """Append-only usage log plus the aggregate queries used for cost reporting."""

    def add(self, **fields: Any) -> LLMUsageLog:
        record = LLMUsageLog(**fields)
        self.db.add(record)
        self.db.flush()
        return record

    def list_for_entity(self, entity_type: str, entity_id: str) -> List[LLMUsageLog]:
        stmt = (
            select(LLMUsageLog)
            .where(LLMUsageLog.entity_type == entity_type, LLMUsageLog.entity_id == entity_id)
            .order_by(LLMUsageLog.created_at.asc())
        )
        return list(self.db.execute(stmt).scalars().all())

    def cost_summary(
        self,
        tenant_id: uuid.UUID,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[Dict[str, Any]]:
        """Calls, tokens and cost per (operation_type, model) for one tenant."""
        stmt = select(
            LLMUsageLog.operation_type,
            LLMUsageLog.model,
            func.count(LLMUsageLog.id).label('calls'),
            func.coalesce(func.sum(LLMUsageLog.prompt_tokens), 0).label('prompt_tokens'),
            func.coalesce(func.sum(LLMUsageLog.completion_tokens), 0).label('completion_tokens'),
            func.coalesce(func.sum(LLMUsageLog.total_tokens), 0).label('total_tokens'),
            func.coalesce(func.sum(LLMUsageLog.estimated_cost), 0).label('total_cost'),
            func.avg(LLMUsageLog.response_time_ms).label('avg_response_time_ms'),
        ).where(LLMUsageLog.tenant_id == tenant_id)

        if start is not None:
            stmt = stmt.where(LLMUsageLog.created_at >= start)
        if end is not None:
            stmt = stmt.where(LLMUsageLog.created_at < end)

        stmt = stmt.group_by(LLMUsageLog.operation_type, LLMUsageLog.model).order_by(
            LLMUsageLog.operation_type, LLMUsageLog.model
        )

        summary = []
        for row in self.db.execute(stmt):
            summary.append({
                'operation_type': row.operation_type,
                'model': row.model,
                'calls': int(row.calls),
                'prompt_tokens': int(row.prompt_tokens),
                'completion_tokens': int(row.completion_tokens),
                'total_tokens': int(row.total_tokens),
                'total_cost': Decimal(str(row.total_cost)).quantize(Decimal('0.000001')),
                'avg_response_time_ms': float(row.avg_response_time_ms) if row.avg_response_time_ms is not None else None,
            })
        return summary

    def failed_operations(self, tenant_id: uuid.UUID, limit: int = 50) -> List[LLMUsageLog]:
        stmt = (
            select(LLMUsageLog)
            .where(LLMUsageLog.tenant_id == tenant_id, LLMUsageLog.status == USAGE_FAILURE)
            .order_by(LLMUsageLog.created_at.desc())
            .limit(limit)
        )
        return list(self.db.execute(stmt).scalars().all())

    def top_tenants(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: int = 10,
    ) -> List[Dict[str, Any]]:
        total_cost = func.coalesce(func.sum(LLMUsageLog.estimated_cost), 0).label('total_cost')
        stmt = select(
            LLMUsageLog.tenant_id,
            func.count(LLMUsageLog.id).label('calls'),
            func.coalesce(func.sum(LLMUsageLog.total_tokens), 0).label('total_tokens'),
            total_cost,
        ).where(LLMUsageLog.tenant_id.is_not(None))

        if start is not None:
            stmt = stmt.where(LLMUsageLog.created_at >= start)
        if end is not None:
            stmt = stmt.where(LLMUsageLog.created_at < end)

        stmt = stmt.group_by(LLMUsageLog.tenant_id).order_by(total_cost.desc()).limit(limit)
        return [
            {
                'tenant_id': row.tenant_id,
                'calls': int(row.calls),
                'total_tokens': int(row.total_tokens),
                'total_cost': Decimal(str(row.total_cost)).quantize(Decimal('0.000001')),
            }
            for row in self.db.execute(stmt)
        ]
