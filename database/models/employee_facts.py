"""
Per-tenant facts derived from a CV.

Every table shares the (employee_id, tenant_id, extraction_id, source)
shape from EmployeeFactMixin. extraction_id points at the import that
last wrote the row; it is null for rows entered by hand.
"""
from sqlalchemy import (
    Column, Integer, Text, TIMESTAMP, ForeignKey, Boolean, Date, Float, Uuid,
    UniqueConstraint, Index
)
from sqlalchemy.orm import declared_attr

from .base import Base, JSONType, utcnow

SOURCE_CV = 'cv_extracted'
SOURCE_MANUAL = 'manual'

DOMAIN_INDUSTRY = 'industry'
DOMAIN_CLIENT_SECTOR = 'client_sector'
DOMAIN_BUSINESS_PROCESS = 'business_process'
DOMAIN_STANDARD = 'standard'

DOMAIN_TYPES = (DOMAIN_INDUSTRY, DOMAIN_CLIENT_SECTOR, DOMAIN_BUSINESS_PROCESS, DOMAIN_STANDARD)


class EmployeeFactMixin:
    id = Column(Integer, primary_key=True, autoincrement=True)
    source = Column(Text, nullable=False, default=SOURCE_CV)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    @declared_attr
    def employee_id(cls):
        return Column(Integer, ForeignKey('employees.id', ondelete='CASCADE'), nullable=False, index=True)

    @declared_attr
    def tenant_id(cls):
        return Column(Uuid, ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False)

    @declared_attr
    def extraction_id(cls):
        return Column(Uuid, ForeignKey('cv_extractions.id', ondelete='SET NULL'))


class EmployeeEducation(EmployeeFactMixin, Base):
    __tablename__ = 'employee_education'

    degree_id = Column(Integer, ForeignKey('education_degrees.id'))
    degree_name = Column(Text, nullable=False)
    institution_name = Column(Text, nullable=False)
    field_of_study = Column(Text)
    start_date = Column(Date)
    end_date = Column(Date)
    is_current = Column(Boolean, nullable=False, default=False)
    grade = Column(Text)


class EmployeeWorkExperience(EmployeeFactMixin, Base):
    __tablename__ = 'employee_work_experiences'

    company_name = Column(Text, nullable=False)
    company_normalized = Column(Text)
    company_location = Column(Text)
    job_title = Column(Text, nullable=False)
    start_date = Column(Date)
    end_date = Column(Date)
    is_current = Column(Boolean, nullable=False, default=False)
    description = Column(Text)
    responsibilities = Column(JSONType)
    achievements = Column(JSONType)
    technologies = Column(JSONType)


class EmployeeSkill(EmployeeFactMixin, Base):
    __tablename__ = 'employee_skills'

    skill_id = Column(Integer, ForeignKey('skills.id'), nullable=False)
    proficiency_level = Column(Integer)  # 0-10
    years_experience = Column(Float)  # 0-60
    last_used_date = Column(Date)

    __table_args__ = (
        UniqueConstraint('employee_id', 'skill_id', name='uq_employee_skills_employee_skill'),
    )


class EmployeeSoftSkill(EmployeeFactMixin, Base):
    __tablename__ = 'employee_soft_skills'

    soft_skill_id = Column(Integer, ForeignKey('soft_skills.id'), nullable=False)
    evidence = Column(Text)


class EmployeeLanguage(EmployeeFactMixin, Base):
    __tablename__ = 'employee_languages'

    language_id = Column(Integer, ForeignKey('languages.id'), nullable=False)
    # CEF levels A1..C2
    listening_level = Column(Text)
    reading_level = Column(Text)
    spoken_interaction_level = Column(Text)
    spoken_production_level = Column(Text)
    writing_level = Column(Text)
    is_native = Column(Boolean, nullable=False, default=False)

    __table_args__ = (
        UniqueConstraint('employee_id', 'language_id', name='uq_employee_languages_employee_language'),
    )


class EmployeeCertification(EmployeeFactMixin, Base):
    __tablename__ = 'employee_certifications'

    certification_id = Column(Integer, ForeignKey('certifications.id'))
    certification_name = Column(Text, nullable=False)
    issuing_organization = Column(Text)
    issue_date = Column(Date)
    expiry_date = Column(Date)
    credential_id = Column(Text)
    credential_url = Column(Text)


class EmployeePublication(EmployeeFactMixin, Base):
    __tablename__ = 'employee_publications'

    title = Column(Text, nullable=False)
    publisher = Column(Text)
    publication_date = Column(Date)
    url = Column(Text)
    description = Column(Text)


class EmployeeProject(EmployeeFactMixin, Base):
    __tablename__ = 'employee_projects'

    name = Column(Text, nullable=False)
    role = Column(Text)
    description = Column(Text)
    start_date = Column(Date)
    end_date = Column(Date)
    url = Column(Text)
    technologies = Column(JSONType)


class EmployeeAward(EmployeeFactMixin, Base):
    __tablename__ = 'employee_awards'

    title = Column(Text, nullable=False)
    issuer = Column(Text)
    award_date = Column(Date)
    description = Column(Text)


class EmployeeDomainKnowledge(EmployeeFactMixin, Base):
    __tablename__ = 'employee_domain_knowledge'

    domain_type = Column(Text, nullable=False)  # industry|client_sector|business_process|standard
    domain_value = Column(Text, nullable=False)

    __table_args__ = (
        Index('idx_edk_employee_type', 'employee_id', 'domain_type'),
    )


class EmployeeRole(EmployeeFactMixin, Base):
    __tablename__ = 'employee_roles'

    role_id = Column(Integer, ForeignKey('roles.id'), nullable=False)
    sub_role_id = Column(Integer, ForeignKey('sub_roles.id'))
    seniority = Column(Text)
    years_experience = Column(Float)

    __table_args__ = (
        UniqueConstraint('employee_id', name='uq_employee_roles_employee'),
    )


class EmployeeAdditionalInfo(EmployeeFactMixin, Base):
    __tablename__ = 'employee_additional_info'

    info_type = Column(Text, nullable=False)  # date_of_birth|nationality|linkedin_url|hobby|...
    info_value = Column(Text, nullable=False)


# Kinds whose whole CV-sourced set is replaced on every import, in write order
REPLACE_SET_MODELS = {
    'education': EmployeeEducation,
    'work_experience': EmployeeWorkExperience,
    'soft_skill': EmployeeSoftSkill,
    'language': EmployeeLanguage,
    'certification': EmployeeCertification,
    'publication': EmployeePublication,
    'project': EmployeeProject,
    'award': EmployeeAward,
    'domain_knowledge': EmployeeDomainKnowledge,
    'additional_info': EmployeeAdditionalInfo,
}
