#!/usr/bin/env python3
"""
Print the state of one CV extraction: status, errors, import stats and how
many derived rows each fact table holds for it.

Usage:
    python scripts/inspect_extraction.py <extraction_id>
    python scripts/inspect_extraction.py <extraction_id> --show-text
"""
import argparse
import json
import sys
import uuid
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from database.models import REPLACE_SET_MODELS, EmployeeSkill, EmployeeRole
from database.uow import extraction_uow
from etl.status import status_projection

FACT_MODELS = dict(REPLACE_SET_MODELS, skill=EmployeeSkill, role=EmployeeRole)


def inspect(extraction_id: uuid.UUID, show_text: bool = False) -> int:
    with extraction_uow() as repo:
        extraction = repo.extractions.get(extraction_id, include_deleted=True)
        if extraction is None:
            print(f"Extraction {extraction_id} not found")
            return 1

        print(f"Extraction {extraction.id}")
        print(f"  tenant:    {extraction.tenant_id}")
        print(f"  employee:  {extraction.employee_id}")
        print(f"  file:      {extraction.original_filename} ({extraction.file_size_bytes} bytes, {extraction.mime_type})")
        print(f"  blob:      {extraction.storage_key}")
        print(f"  status:    {extraction.status} (retries: {extraction.retry_count})")
        if extraction.deleted_at:
            print(f"  deleted:   {extraction.deleted_at} by {extraction.deleted_by}")
        if extraction.error_phase:
            print(f"  error:     [{extraction.error_phase}] {extraction.error_message}")
        if extraction.llm_model_used:
            print(f"  llm:       {extraction.llm_model_used}, {extraction.llm_tokens_used} tokens, ${extraction.llm_cost}")
        if extraction.processing_time_seconds is not None:
            print(f"  time:      {extraction.processing_time_seconds:.2f}s")

        projection = status_projection(extraction)
        if projection.get('import_stats'):
            print("\nImport stats:")
            print(json.dumps(projection['import_stats'], indent=2, default=str))

        print("\nDerived rows carrying this extraction_id:")
        for kind, model in FACT_MODELS.items():
            count = repo.employees.count_facts_for_extraction(model, extraction.id)
            print(f"  {kind:<18} {count}")

        usage_rows = repo.usage.list_for_entity('cv_extraction', str(extraction.id))
        print(f"\nLLM calls: {len(usage_rows)}")
        for row in usage_rows:
            print(f"  {row.created_at} {row.provider}/{row.model} {row.status} "
                  f"{row.total_tokens} tokens ${row.estimated_cost} {row.response_time_ms}ms")

        if show_text and extraction.extracted_text:
            print("\nExtracted text:")
            print(extraction.extracted_text)
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Inspect a CV extraction")
    parser.add_argument("extraction_id", type=uuid.UUID)
    parser.add_argument("--show-text", action="store_true", help="Print the text sent to the model")
    args = parser.parse_args()
    sys.exit(inspect(args.extraction_id, args.show_text))
