"""
RQ job entry points.

Jobs receive only the extraction id; configuration and wiring are rebuilt in
the worker process from CONFIG_PATH (default config.yaml) and kept for the
lifetime of the process.
"""
import logging
import os
import uuid
from typing import Optional

logger = logging.getLogger(__name__)

_context = None


def _get_context():
    global _context
    if _context is None:
        from core.app_context import AppContext
        from core.config_loader import load_config

        config = load_config(os.environ.get('CONFIG_PATH', 'config.yaml'))
        _context = AppContext.build(config)
    return _context


def process_extraction(extraction_id: str) -> Optional[str]:
    """Advance one extraction (run or import, depending on its status)."""
    ctx = _get_context()
    logger.info(f"Processing extraction {extraction_id}")
    return ctx.orchestrator.process(uuid.UUID(str(extraction_id)))
