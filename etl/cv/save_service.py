"""
CV Save Service - multi-table write of one normalized CV.

The service never opens or commits a transaction: it runs inside the
caller's unit of work so the whole group of writes commits or rolls back
together. Database errors propagate to the orchestrator, which classifies
them.
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from core.exceptions import PermanentSaveFailure
from database.models import (
    EmployeeEducation,
    EmployeeWorkExperience,
    EmployeeSoftSkill,
    EmployeeLanguage,
    EmployeeCertification,
    EmployeePublication,
    EmployeeProject,
    EmployeeAward,
    EmployeeDomainKnowledge,
    EmployeeAdditionalInfo,
    SOURCE_CV,
)
from database.repository import CVRepository
from etl.cv.normalizer import CVNormalizer, NormalizedCV
from etl.cv.resolver import ReferenceResolver, KIND_SKILL

logger = logging.getLogger(__name__)


class CVSaveService:
    """Writes a CV payload onto an employee and returns import statistics.

    Usage:
        with extraction_uow() as repo:
            stats = CVSaveService().save(repo, extraction_id, tenant_id, employee_id, payload)
    """

    def __init__(self, normalizer: Optional[CVNormalizer] = None):
        self.normalizer = normalizer or CVNormalizer()

    def save(
        self,
        repo: CVRepository,
        extraction_id: uuid.UUID,
        tenant_id: uuid.UUID,
        employee_id: int,
        payload: Dict[str, Any],
    ) -> Dict[str, Any]:
        employee = repo.employees.get(tenant_id, employee_id)
        if employee is None:
            raise PermanentSaveFailure(f"Employee {employee_id} not found in tenant {tenant_id}")

        cv = self.normalizer.normalize(payload)
        resolver = ReferenceResolver(repo.reference)
        scope = _FactScope(repo, extraction_id, tenant_id, employee_id)

        # Foreign-key order: scalars, then facts, role and free-form info last
        filled = repo.employees.fill_empty_fields(employee, cv.employee_patch)
        education_saved = self._save_education(scope, cv, resolver)
        work_saved = scope.replace(EmployeeWorkExperience, cv.work_experience)
        skills_saved = self._save_skills(scope, cv, resolver)
        soft_skills_saved = self._save_soft_skills(scope, cv, resolver)
        languages_saved = self._save_languages(scope, cv, resolver)
        certifications_saved = self._save_certifications(scope, cv, resolver)
        publications_saved = scope.replace(EmployeePublication, cv.publications)
        projects_saved = scope.replace(EmployeeProject, cv.projects)
        awards_saved = scope.replace(EmployeeAward, cv.awards)
        domain_saved = scope.replace(EmployeeDomainKnowledge, cv.domain_knowledge)
        roles_saved = self._save_role(scope, cv, resolver)
        additional_saved = scope.replace(EmployeeAdditionalInfo, cv.additional_info)

        stats = {
            'personal_info_updated': bool(filled),
            'personal_info_fields': filled,
            'education_saved': education_saved,
            'work_experiences_saved': work_saved,
            'skills_saved': skills_saved,
            'languages_saved': languages_saved,
            'certifications_saved': certifications_saved,
            'roles_saved': roles_saved,
            'soft_skills_saved': soft_skills_saved,
            'domain_knowledge_saved': domain_saved,
            'publications_saved': publications_saved,
            'projects_saved': projects_saved,
            'awards_saved': awards_saved,
            'additional_info_saved': additional_saved,
            'unresolved': resolver.unresolved_counts(),
            'import_timestamp': datetime.now(timezone.utc).isoformat(),
        }
        logger.info(
            f"Saved CV for employee {employee_id} (extraction {extraction_id}): "
            f"{skills_saved} skills, {education_saved} education, {work_saved} work, "
            f"unresolved={stats['unresolved']}"
        )
        return stats

    def _save_education(self, scope: "_FactScope", cv: NormalizedCV, resolver: ReferenceResolver) -> int:
        rows = []
        for item in cv.education:
            row = dict(item)
            row['degree_id'] = resolver.resolve_degree(item.get('degree_id'), item.get('degree_name'))
            rows.append(row)
        return scope.replace(EmployeeEducation, rows)

    def _save_skills(self, scope: "_FactScope", cv: NormalizedCV, resolver: ReferenceResolver) -> int:
        """Upsert by (employee_id, skill_id); skills missing from this CV are left alone."""
        resolver.miss(KIND_SKILL, cv.skills_without_id)
        known = resolver.existing_skill_ids(item['skill_id'] for item in cv.skills)

        saved = 0
        for item in cv.skills:
            if item['skill_id'] not in known:
                resolver.miss(KIND_SKILL)
                logger.debug(f"Dropping skill {item['skill_id']} ({item.get('skill_name')}): not in catalog")
                continue
            scope.repo.employees.upsert_skill(
                employee_id=scope.employee_id,
                tenant_id=scope.tenant_id,
                extraction_id=scope.extraction_id,
                skill_id=item['skill_id'],
                proficiency_level=item['proficiency_level'],
                years_experience=item['years_experience'],
                last_used_date=item['last_used_date'],
            )
            saved += 1
        return saved

    def _save_soft_skills(self, scope: "_FactScope", cv: NormalizedCV, resolver: ReferenceResolver) -> int:
        rows = []
        seen = set()
        for item in cv.soft_skills:
            soft_skill_id = resolver.resolve_soft_skill(item.get('soft_skill_id'), item.get('name'))
            if soft_skill_id is None or soft_skill_id in seen:
                continue
            seen.add(soft_skill_id)
            rows.append({'soft_skill_id': soft_skill_id, 'evidence': item.get('evidence')})
        return scope.replace(EmployeeSoftSkill, rows)

    def _save_languages(self, scope: "_FactScope", cv: NormalizedCV, resolver: ReferenceResolver) -> int:
        scope.repo.employees.delete_cv_facts(EmployeeLanguage, scope.employee_id)
        saved = 0
        seen = set()
        for item in cv.languages:
            language_id = resolver.resolve_language(item['language_name'])
            if language_id is None or language_id in seen:
                continue
            seen.add(language_id)
            scope.repo.employees.upsert_language(
                employee_id=scope.employee_id,
                tenant_id=scope.tenant_id,
                extraction_id=scope.extraction_id,
                language_id=language_id,
                levels=item['levels'],
                is_native=item['is_native'],
            )
            saved += 1
        return saved

    def _save_certifications(self, scope: "_FactScope", cv: NormalizedCV, resolver: ReferenceResolver) -> int:
        rows = []
        for item in cv.certifications:
            row = dict(item)
            row['certification_id'] = resolver.resolve_certification(
                item.get('certification_id'), item.get('certification_name')
            )
            rows.append(row)
        return scope.replace(EmployeeCertification, rows)

    def _save_role(self, scope: "_FactScope", cv: NormalizedCV, resolver: ReferenceResolver) -> int:
        if cv.role is None:
            return 0
        resolved = resolver.resolve_role(
            role_id=cv.role.get('role_id'),
            sub_role_id=cv.role.get('sub_role_id'),
            role_name=cv.role.get('role_name'),
            sub_role_name=cv.role.get('sub_role_name'),
        )
        if resolved is None:
            return 0
        role_id, sub_role_id = resolved
        written = scope.repo.employees.set_role(
            employee_id=scope.employee_id,
            tenant_id=scope.tenant_id,
            extraction_id=scope.extraction_id,
            role_id=role_id,
            sub_role_id=sub_role_id,
            seniority=cv.role.get('seniority'),
            years_experience=cv.role.get('years_experience'),
        )
        return 1 if written else 0


class _FactScope:
    """The (employee, tenant, extraction) triple every derived row carries."""

    def __init__(self, repo: CVRepository, extraction_id: uuid.UUID, tenant_id: uuid.UUID, employee_id: int):
        self.repo = repo
        self.extraction_id = extraction_id
        self.tenant_id = tenant_id
        self.employee_id = employee_id

    def replace(self, model, rows) -> int:
        """Delete the employee's CV-sourced rows of this kind, then insert the new set."""
        self.repo.employees.delete_cv_facts(model, self.employee_id)
        return self.repo.employees.add_facts([
            model(
                employee_id=self.employee_id,
                tenant_id=self.tenant_id,
                extraction_id=self.extraction_id,
                source=SOURCE_CV,
                **row,
            )
            for row in rows
        ])
