import logging
import uuid
from datetime import date
from typing import List, Optional, Dict, Any, Type

from sqlalchemy import select, delete, func
from sqlalchemy.dialects import postgresql, sqlite

from database.models import (
    Base,
    Employee,
    EmployeeSkill,
    EmployeeLanguage,
    EmployeeRole,
    SOURCE_CV,
    utcnow,
)
from database.repositories.base import BaseRepository

logger = logging.getLogger(__name__)

# Employee columns the CV import may fill when they are empty
PATCHABLE_EMPLOYEE_FIELDS = ('first_name', 'last_name', 'email', 'phone', 'position')


class EmployeeRepository(BaseRepository):
    """Employees and the facts derived from their CVs, always scoped by tenant."""

    def _insert(self, model: Type[Base]):
        dialect = self.db.get_bind().dialect.name
        if dialect == 'sqlite':
            return sqlite.insert(model)
        return postgresql.insert(model)

    def get(self, tenant_id: uuid.UUID, employee_id: int) -> Optional[Employee]:
        stmt = select(Employee).where(
            Employee.id == employee_id,
            Employee.tenant_id == tenant_id,
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def fill_empty_fields(self, employee: Employee, values: Dict[str, Any]) -> List[str]:
        """Copy values onto the employee only where the employee has nothing yet.

        Returns the names of the fields that were filled.
        """
        filled = []
        for field in PATCHABLE_EMPLOYEE_FIELDS:
            new_value = values.get(field)
            if new_value in (None, ''):
                continue
            current = getattr(employee, field)
            if current is None or (isinstance(current, str) and not current.strip()):
                setattr(employee, field, new_value)
                filled.append(field)
        if filled:
            self.db.flush()
        return filled

    def delete_cv_facts(self, model: Type[Base], employee_id: int) -> int:
        """Remove every CV-sourced row of one fact kind for the employee."""
        result = self.db.execute(
            delete(model)
            .where(model.employee_id == employee_id, model.source == SOURCE_CV)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    def add_facts(self, rows: List[Base]) -> int:
        if not rows:
            return 0
        self.db.add_all(rows)
        self.db.flush()
        return len(rows)

    def upsert_skill(
        self,
        employee_id: int,
        tenant_id: uuid.UUID,
        extraction_id: uuid.UUID,
        skill_id: int,
        proficiency_level: Optional[int],
        years_experience: Optional[float],
        last_used_date: Optional[date],
    ) -> None:
        """Insert or update the (employee_id, skill_id) row.

        Incoming nulls never overwrite stored values.
        """
        stmt = self._insert(EmployeeSkill).values(
            employee_id=employee_id,
            tenant_id=tenant_id,
            extraction_id=extraction_id,
            skill_id=skill_id,
            proficiency_level=proficiency_level,
            years_experience=years_experience,
            last_used_date=last_used_date,
            source=SOURCE_CV,
            created_at=utcnow(),
            updated_at=utcnow(),
        )
        excluded = stmt.excluded
        stmt = stmt.on_conflict_do_update(
            index_elements=['employee_id', 'skill_id'],
            set_={
                'proficiency_level': func.coalesce(excluded.proficiency_level, EmployeeSkill.proficiency_level),
                'years_experience': func.coalesce(excluded.years_experience, EmployeeSkill.years_experience),
                'last_used_date': func.coalesce(excluded.last_used_date, EmployeeSkill.last_used_date),
                'source': excluded.source,
                'extraction_id': excluded.extraction_id,
                'updated_at': excluded.updated_at,
            },
        )
        self.db.execute(stmt)

    def upsert_language(
        self,
        employee_id: int,
        tenant_id: uuid.UUID,
        extraction_id: uuid.UUID,
        language_id: int,
        levels: Dict[str, Optional[str]],
        is_native: bool,
    ) -> None:
        """Insert or update the (employee_id, language_id) row.

        CV-sourced language rows are cleared before this runs, so a conflict
        here means a hand-entered row, which is updated in place.
        """
        stmt = self._insert(EmployeeLanguage).values(
            employee_id=employee_id,
            tenant_id=tenant_id,
            extraction_id=extraction_id,
            language_id=language_id,
            is_native=is_native,
            source=SOURCE_CV,
            created_at=utcnow(),
            updated_at=utcnow(),
            **levels,
        )
        excluded = stmt.excluded
        set_ = {
            'is_native': excluded.is_native,
            'source': excluded.source,
            'extraction_id': excluded.extraction_id,
            'updated_at': excluded.updated_at,
        }
        for column in levels:
            set_[column] = func.coalesce(getattr(excluded, column), getattr(EmployeeLanguage, column))
        stmt = stmt.on_conflict_do_update(index_elements=['employee_id', 'language_id'], set_=set_)
        self.db.execute(stmt)

    def get_role(self, employee_id: int) -> Optional[EmployeeRole]:
        return self.db.execute(
            select(EmployeeRole).where(EmployeeRole.employee_id == employee_id)
        ).scalar_one_or_none()

    def set_role(
        self,
        employee_id: int,
        tenant_id: uuid.UUID,
        extraction_id: uuid.UUID,
        role_id: int,
        sub_role_id: Optional[int],
        seniority: Optional[str],
        years_experience: Optional[float],
    ) -> bool:
        """Write the single role assignment. A hand-entered assignment is left alone.

        Returns True when a row was written.
        """
        existing = self.get_role(employee_id)
        if existing is not None and existing.source != SOURCE_CV:
            logger.info(f"Employee {employee_id}: keeping manually assigned role {existing.role_id}")
            return False

        if existing is None:
            existing = EmployeeRole(employee_id=employee_id, tenant_id=tenant_id)
            self.db.add(existing)

        existing.role_id = role_id
        existing.sub_role_id = sub_role_id
        existing.seniority = seniority
        existing.years_experience = years_experience
        existing.extraction_id = extraction_id
        existing.source = SOURCE_CV
        self.db.flush()
        return True

    def list_facts(self, model: Type[Base], employee_id: int) -> List[Base]:
        return list(self.db.execute(
            select(model).where(model.employee_id == employee_id).order_by(model.id.asc())
        ).scalars().all())

    def count_facts_for_extraction(self, model: Type[Base], extraction_id: uuid.UUID) -> int:
        return self.db.execute(
            select(func.count(model.id)).where(model.extraction_id == extraction_id)
        ).scalar_one()
