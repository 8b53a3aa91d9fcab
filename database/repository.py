import logging

from sqlalchemy.orm import Session

from database.repositories import (
    ExtractionRepository,
    EmployeeRepository,
    ReferenceRepository,
    LLMUsageRepository,
)

logger = logging.getLogger(__name__)


class CVRepository:
    """Facade bundling every repository the CV pipeline needs on one Session.

    All sub-repositories share the session, so whatever they write commits or
    rolls back together with the surrounding unit of work.
    """

    def __init__(self, db: Session):
        self.db = db
        self.extractions = ExtractionRepository(db)
        self.employees = EmployeeRepository(db)
        self.reference = ReferenceRepository(db)
        self.usage = LLMUsageRepository(db)

    def commit(self) -> None:
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()
