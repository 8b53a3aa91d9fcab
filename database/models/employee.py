from sqlalchemy import Column, Integer, Text, TIMESTAMP, ForeignKey, Boolean, Uuid, Index

from .base import Base, utcnow


class Employee(Base):
    """
    An employee of one tenant.

    Rows are created by HR onboarding; the CV pipeline only fills empty
    scalar fields and writes the derived fact tables hanging off it.
    """
    __tablename__ = 'employees'

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(Uuid, ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False)

    first_name = Column(Text)
    last_name = Column(Text)
    email = Column(Text)
    phone = Column(Text)
    position = Column(Text)
    department_id = Column(Integer)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index('idx_employees_tenant', 'tenant_id'),
    )
