#!/usr/bin/env python3
"""
LLM cost report.

Usage:
    python scripts/llm_cost_report.py --tenant <tenant_id> --days 30
    python scripts/llm_cost_report.py --top-tenants 10 --days 7
"""
import argparse
import sys
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from etl.usage_logger import LLMUsageLogger


def print_tenant_report(usage_logger: LLMUsageLogger, tenant_id: uuid.UUID, start: datetime, end: datetime) -> None:
    summary = usage_logger.get_cost_summary(tenant_id, start, end)
    print(f"LLM usage for tenant {tenant_id} from {start:%Y-%m-%d} to {end:%Y-%m-%d}")
    print(f"  calls: {summary['total_calls']}  tokens: {summary['total_tokens']}  cost: ${summary['total_cost']}")
    print()
    print(f"  {'operation':<24} {'model':<32} {'calls':>6} {'tokens':>10} {'cost':>12} {'avg ms':>8}")
    for row in summary['breakdown']:
        avg = f"{row['avg_response_time_ms']:.0f}" if row['avg_response_time_ms'] is not None else '-'
        print(f"  {row['operation_type']:<24} {row['model']:<32} {row['calls']:>6} "
              f"{row['total_tokens']:>10} {row['total_cost']:>12} {avg:>8}")

    failures = usage_logger.get_failed_operations(tenant_id, limit=10)
    if failures:
        print(f"\nLast {len(failures)} failed calls:")
        for failure in failures:
            print(f"  {failure['created_at']} {failure['model']} {failure['entity_id']}: {failure['error_message']}")


def print_top_tenants(usage_logger: LLMUsageLogger, limit: int, start: datetime, end: datetime) -> None:
    print(f"Top {limit} tenants by LLM cost from {start:%Y-%m-%d} to {end:%Y-%m-%d}")
    for rank, row in enumerate(usage_logger.get_top_tenants(start, end, limit), 1):
        print(f"  {rank:>2}. {row['tenant_id']}  calls={row['calls']}  tokens={row['total_tokens']}  cost=${row['total_cost']}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="LLM cost report")
    parser.add_argument("--tenant", type=uuid.UUID, help="Tenant to report on")
    parser.add_argument("--top-tenants", type=int, default=0, help="List the N most expensive tenants instead")
    parser.add_argument("--days", type=int, default=30)
    args = parser.parse_args()

    end = datetime.now(timezone.utc)
    start = end - timedelta(days=args.days)
    usage_logger = LLMUsageLogger()

    if args.top_tenants:
        print_top_tenants(usage_logger, args.top_tenants, start, end)
    elif args.tenant:
        print_tenant_report(usage_logger, args.tenant, start, end)
    else:
        parser.error("either --tenant or --top-tenants is required")
