import contextlib
import logging

from database.database import SessionLocal
from database.repository import CVRepository

logger = logging.getLogger(__name__)


@contextlib.contextmanager
def extraction_uow(session_factory=None):
    """Per-unit-of-work transaction scope.

    Yields a CVRepository bound to a fresh Session. Commits on success,
    rolls back on exception, always closes.

    Usage:
        with extraction_uow() as repo:
            extraction = repo.extractions.get(extraction_id)
            # perform operations...
        # commit happens automatically on successful exit
    """
    session = (session_factory or SessionLocal)()
    try:
        repo = CVRepository(session)
        yield repo
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
