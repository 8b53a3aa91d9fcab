#!/usr/bin/env python3
"""
Migration: Create the CV extraction schema

This migration creates:
1. Tenants, employees and the shared reference catalog
2. The cv_extractions table with its status/error_phase CHECK constraints
3. One table per employee fact kind, with the unique
   (employee_id, skill_id) and (employee_id, language_id) keys
4. The llm_usage_logs table
5. A partial index on cv_extractions(status, updated_at) for the worker sweep

Every statement is idempotent; running the migration twice is harmless.
"""

import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from sqlalchemy import create_engine, text
from database.database import DATABASE_URL
from database.init_db import ACTIVE_STATUS_INDEX
from database.models import Base

# Dependents first
DROP_ORDER = [
    'employee_additional_info',
    'employee_roles',
    'employee_domain_knowledge',
    'employee_awards',
    'employee_projects',
    'employee_publications',
    'employee_certifications',
    'employee_languages',
    'employee_soft_skills',
    'employee_skills',
    'employee_work_experiences',
    'employee_education',
    'llm_usage_logs',
    'cv_extractions',
]


def migrate(database_url: str = DATABASE_URL):
    """Create every table of the CV extraction schema."""
    engine = create_engine(database_url)

    Base.metadata.create_all(bind=engine)

    with engine.connect() as conn:
        conn.execute(text(ACTIVE_STATUS_INDEX))
        conn.commit()

    print("Successfully created CV extraction tables")
    print("Successfully created index idx_cv_extractions_active_status")


def rollback(database_url: str = DATABASE_URL):
    """Drop the extraction and employee fact tables. Tenants, employees and the catalog are kept."""
    engine = create_engine(database_url)

    with engine.connect() as conn:
        for table in DROP_ORDER:
            conn.execute(text(f"DROP TABLE IF EXISTS {table}"))
        conn.commit()
        print(f"Successfully dropped {len(DROP_ORDER)} tables")


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Migration for the CV extraction schema")
    parser.add_argument("--rollback", action="store_true", help="Rollback the migration")

    args = parser.parse_args()

    if args.rollback:
        rollback()
    else:
        migrate()
