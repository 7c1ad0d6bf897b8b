from datetime import datetime
from sqlalchemy import Column, String, DateTime, Boolean, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from pkms.db.base import Base, new_id


class Role(Base):
    __tablename__ = "roles"
    __table_args__ = (
        UniqueConstraint("tenant_id", "code", name="uq_roles_tenant_id_code"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    code = Column(String(100), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    # NULL tenant marks a system (global) role
    tenant_id = Column(String(64), index=True)
    is_system = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    menus = relationship("Menu", secondary="role_menus", back_populates="roles")
