import uuid

from sqlalchemy import Column, Text, TIMESTAMP, Boolean, Uuid

from .base import Base, utcnow


class Tenant(Base):
    __tablename__ = 'tenants'

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    slug = Column(Text, nullable=False, unique=True)
    name = Column(Text, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)
