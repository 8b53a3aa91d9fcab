import logging
from typing import Any, Dict, List, Optional, Iterable, Set, Type

from sqlalchemy import select, func

from database.models import (
    Base, Skill, Language, Role, SubRole, Certification, EducationDegree, SoftSkill,
)
from database.repositories.base import BaseRepository

logger = logging.getLogger(__name__)


class ReferenceRepository(BaseRepository):
    """Read-only lookups into the shared catalog. Catalog tables carry no tenant_id."""

    def _exists(self, model: Type[Base], item_id: int) -> bool:
        return self.db.execute(
            select(model.id).where(model.id == item_id)
        ).scalar_one_or_none() is not None

    def _id_by_name(self, model: Type[Base], name: str) -> Optional[int]:
        stmt = (
            select(model.id)
            .where(func.lower(model.name) == name.strip().lower())
            .order_by(model.id.asc())
            .limit(1)
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def existing_skill_ids(self, skill_ids: Iterable[int]) -> Set[int]:
        ids = {int(i) for i in skill_ids}
        if not ids:
            return set()
        rows = self.db.execute(select(Skill.id).where(Skill.id.in_(ids))).scalars().all()
        return set(rows)

    def skill_exists(self, skill_id: int) -> bool:
        return self._exists(Skill, skill_id)

    def skill_id_by_name(self, name: str) -> Optional[int]:
        return self._id_by_name(Skill, name)

    def language_id_by_name(self, name: str) -> Optional[int]:
        needle = name.strip().lower()
        stmt = (
            select(Language.id)
            .where(
                (func.lower(Language.name) == needle)
                | (func.lower(Language.native_name) == needle)
                | (func.lower(Language.iso_code) == needle)
            )
            .order_by(Language.id.asc())
            .limit(1)
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def role_exists(self, role_id: int) -> bool:
        return self._exists(Role, role_id)

    def role_id_by_name(self, name: str) -> Optional[int]:
        return self._id_by_name(Role, name)

    def get_sub_role(self, sub_role_id: int) -> Optional[SubRole]:
        return self.db.get(SubRole, sub_role_id)

    def sub_role_by_name(self, name: str) -> Optional[SubRole]:
        stmt = (
            select(SubRole)
            .where(func.lower(SubRole.name) == name.strip().lower())
            .order_by(SubRole.id.asc())
            .limit(1)
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def certification_exists(self, certification_id: int) -> bool:
        return self._exists(Certification, certification_id)

    def certification_id_by_name(self, name: str) -> Optional[int]:
        return self._id_by_name(Certification, name)

    def degree_exists(self, degree_id: int) -> bool:
        return self._exists(EducationDegree, degree_id)

    def degree_id_by_name(self, name: str) -> Optional[int]:
        return self._id_by_name(EducationDegree, name)

    def soft_skill_exists(self, soft_skill_id: int) -> bool:
        return self._exists(SoftSkill, soft_skill_id)

    def soft_skill_id_by_name(self, name: str) -> Optional[int]:
        return self._id_by_name(SoftSkill, name)

    def catalog_hints(self, limit_per_kind: int = 5000) -> Dict[str, List[Dict[str, Any]]]:
        """Id/name excerpts of the catalog for the extraction prompt; empty kinds are omitted."""
        def rows(model):
            stmt = select(model.id, model.name).order_by(model.id.asc()).limit(limit_per_kind)
            return [{'id': r.id, 'name': r.name} for r in self.db.execute(stmt)]

        sub_roles = [
            {'id': r.id, 'name': r.name, 'parent_id': r.role_id}
            for r in self.db.execute(
                select(SubRole.id, SubRole.name, SubRole.role_id).order_by(SubRole.id.asc()).limit(limit_per_kind)
            )
        ]
        hints = {
            'skills': rows(Skill),
            'soft_skills': rows(SoftSkill),
            'roles': rows(Role),
            'sub_roles': sub_roles,
            'education_degrees': rows(EducationDegree),
        }
        return {kind: items for kind, items in hints.items() if items}
