"""
Shared reference catalog.

These tables are global (no tenant_id) and read-only to the CV pipeline:
facts are linked to catalog rows by id, never by inventing new rows.
"""
from sqlalchemy import Column, Integer, Text, ForeignKey, Index

from .base import Base


class JobFamily(Base):
    __tablename__ = 'job_families'

    id = Column(Integer, primary_key=True)
    name = Column(Text, nullable=False)


class Skill(Base):
    __tablename__ = 'skills'

    id = Column(Integer, primary_key=True)
    name = Column(Text, nullable=False)
    category = Column(Text)

    __table_args__ = (
        Index('idx_skills_name', 'name'),
    )


class Language(Base):
    __tablename__ = 'languages'

    id = Column(Integer, primary_key=True)
    name = Column(Text, nullable=False)
    native_name = Column(Text)
    iso_code = Column(Text)


class Role(Base):
    __tablename__ = 'roles'

    id = Column(Integer, primary_key=True)
    name = Column(Text, nullable=False)
    job_family_id = Column(Integer, ForeignKey('job_families.id'))


class SubRole(Base):
    __tablename__ = 'sub_roles'

    id = Column(Integer, primary_key=True)
    role_id = Column(Integer, ForeignKey('roles.id'), nullable=False)
    name = Column(Text, nullable=False)


class Certification(Base):
    __tablename__ = 'certifications'

    id = Column(Integer, primary_key=True)
    name = Column(Text, nullable=False)
    issuer = Column(Text)


class EducationDegree(Base):
    __tablename__ = 'education_degrees'

    id = Column(Integer, primary_key=True)
    name = Column(Text, nullable=False)
    level = Column(Text)  # bachelor|master|doctorate|diploma|...


class SoftSkill(Base):
    __tablename__ = 'soft_skills'

    id = Column(Integer, primary_key=True)
    name = Column(Text, nullable=False)
