"""
Reference resolution against the shared catalog.

Every resolve_* method returns a catalog primary key or None. A None is a
reference miss: the resolver counts it under its kind and the caller decides
whether the fact is dropped (skills, languages, soft skills, role) or kept
without a catalog link (certifications, degrees).
"""
import logging
from collections import Counter
from typing import Dict, Iterable, Optional, Set, Tuple

from database.repositories import ReferenceRepository

logger = logging.getLogger(__name__)

KIND_SKILL = 'skill'
KIND_LANGUAGE = 'language'
KIND_ROLE = 'role'
KIND_SOFT_SKILL = 'soft_skill'
KIND_CERTIFICATION = 'certification'
KIND_DEGREE = 'degree'


class ReferenceResolver:
    """Per-import resolver. Lookups are cached for the lifetime of one import."""

    def __init__(self, reference: ReferenceRepository):
        self.reference = reference
        self.unresolved: Counter = Counter()
        self._cache: Dict[Tuple[str, str], Optional[int]] = {}

    def miss(self, kind: str, count: int = 1) -> None:
        if count > 0:
            self.unresolved[kind] += count

    def unresolved_counts(self) -> Dict[str, int]:
        return {kind: n for kind, n in sorted(self.unresolved.items()) if n}

    def _cached(self, kind: str, key: str, lookup) -> Optional[int]:
        cache_key = (kind, key)
        if cache_key not in self._cache:
            self._cache[cache_key] = lookup()
        return self._cache[cache_key]

    def _by_id_or_name(self, kind, item_id, name, exists, id_by_name) -> Optional[int]:
        if isinstance(item_id, int) and not isinstance(item_id, bool):
            if self._cached(kind, f'id:{item_id}', lambda: item_id if exists(item_id) else None) is not None:
                return item_id
        if name:
            found = self._cached(kind, f'name:{name.strip().lower()}', lambda: id_by_name(name))
            if found is not None:
                return found
        if item_id is not None or name:
            self.miss(kind)
            logger.debug(f"Unresolved {kind}: id={item_id!r} name={name!r}")
        return None

    def existing_skill_ids(self, skill_ids: Iterable[int]) -> Set[int]:
        """Bulk existence check for LM-provided skill ids; misses are not counted here."""
        return self.reference.existing_skill_ids(skill_ids)

    def resolve_skill(self, skill_id: Optional[int] = None, name: Optional[str] = None) -> Optional[int]:
        return self._by_id_or_name(
            KIND_SKILL, skill_id, name, self.reference.skill_exists, self.reference.skill_id_by_name
        )

    def resolve_language(self, name: Optional[str]) -> Optional[int]:
        if not name:
            return None
        found = self._cached(
            KIND_LANGUAGE, name.strip().lower(), lambda: self.reference.language_id_by_name(name)
        )
        if found is None:
            self.miss(KIND_LANGUAGE)
            logger.debug(f"Unresolved language: {name!r}")
        return found

    def resolve_soft_skill(self, soft_skill_id: Optional[int] = None, name: Optional[str] = None) -> Optional[int]:
        return self._by_id_or_name(
            KIND_SOFT_SKILL, soft_skill_id, name,
            self.reference.soft_skill_exists, self.reference.soft_skill_id_by_name,
        )

    def resolve_certification(self, certification_id: Optional[int] = None, name: Optional[str] = None) -> Optional[int]:
        return self._by_id_or_name(
            KIND_CERTIFICATION, certification_id, name,
            self.reference.certification_exists, self.reference.certification_id_by_name,
        )

    def resolve_degree(self, degree_id: Optional[int] = None, name: Optional[str] = None) -> Optional[int]:
        return self._by_id_or_name(
            KIND_DEGREE, degree_id, name,
            self.reference.degree_exists, self.reference.degree_id_by_name,
        )

    def resolve_role(
        self,
        role_id: Optional[int] = None,
        sub_role_id: Optional[int] = None,
        role_name: Optional[str] = None,
        sub_role_name: Optional[str] = None,
    ) -> Optional[Tuple[int, Optional[int]]]:
        """Resolve to (role_id, sub_role_id).

        A sub-role id that exists decides the role; a role id that exists is
        used without a sub-role; names are the fallback. A sub-role that
        belongs to a different role than an explicit, valid role id is
        discarded.
        """
        valid_role = role_id if isinstance(role_id, int) and self.reference.role_exists(role_id) else None

        sub_role = self.reference.get_sub_role(sub_role_id) if isinstance(sub_role_id, int) else None
        if sub_role is None and sub_role_name:
            sub_role = self.reference.sub_role_by_name(sub_role_name)

        if sub_role is not None:
            if valid_role is None or sub_role.role_id == valid_role:
                return sub_role.role_id, sub_role.id
            return valid_role, None

        if valid_role is not None:
            return valid_role, None

        if role_name:
            found = self.reference.role_id_by_name(role_name)
            if found is not None:
                return found, None

        self.miss(KIND_ROLE)
        logger.debug(
            f"Unresolved role: id={role_id!r} sub_role_id={sub_role_id!r} "
            f"name={role_name!r} sub_role={sub_role_name!r}"
        )
        return None
