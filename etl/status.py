"""
Read-only status projection of an extraction, shaped for polling clients.
"""
from typing import Any, Dict

from database.models import CVExtraction, STATUS_COMPLETED, STATUS_FAILED


def status_projection(extraction: CVExtraction) -> Dict[str, Any]:
    """Project an extraction row onto the polling contract.

    error_phase/error_message only appear for failed rows and import_stats
    only for completed ones.
    """
    projection = {
        'extraction_id': str(extraction.id),
        'employee_id': extraction.employee_id,
        'original_filename': extraction.original_filename,
        'status': extraction.status,
        'retry_count': extraction.retry_count,
        'processing_time_seconds': extraction.processing_time_seconds,
        'created_at': extraction.created_at.isoformat() if extraction.created_at else None,
        'updated_at': extraction.updated_at.isoformat() if extraction.updated_at else None,
    }
    if extraction.status == STATUS_FAILED:
        projection['error_phase'] = extraction.error_phase
        projection['error_message'] = extraction.error_message
    if extraction.status == STATUS_COMPLETED:
        projection['import_stats'] = extraction.import_stats
    return projection
