from datetime import datetime
from sqlalchemy import Column, String, DateTime, UniqueConstraint

from pkms.db.base import Base, new_id


class UserTenantRole(Base):
    """A user holding a role code inside a tenant ("*" for system administrators)."""

    __tablename__ = "user_tenant_roles"
    __table_args__ = (
        UniqueConstraint("user_id", "tenant_id", "role_code", name="uq_user_tenant_roles_triple"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(64), nullable=False, index=True)
    tenant_id = Column(String(64), nullable=False, index=True)
    role_code = Column(String(100), nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)
