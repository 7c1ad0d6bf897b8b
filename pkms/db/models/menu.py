from datetime import datetime
from sqlalchemy import (
    Column, String, DateTime, Boolean, Integer, Text, ForeignKey, Table, UniqueConstraint,
)
from sqlalchemy.orm import relationship

from pkms.db.base import Base, new_id


role_menus = Table(
    "role_menus",
    Base.metadata,
    Column("role_id", String(36), ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    Column("menu_id", String(36), ForeignKey("menus.id", ondelete="CASCADE"), primary_key=True),
)


class Menu(Base):
    __tablename__ = "menus"
    __table_args__ = (
        UniqueConstraint("tenant_id", "name", name="uq_menus_tenant_id_name"),
        UniqueConstraint("tenant_id", "path", name="uq_menus_tenant_id_path"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(100), nullable=False)
    path = Column(String(255))
    icon = Column(String(100))
    component = Column(String(255))
    sort = Column(Integer, nullable=False, default=0)
    visible = Column(Boolean, nullable=False, default=True)
    is_system = Column(Boolean, nullable=False, default=False)
    # NULL tenant marks a global menu
    tenant_id = Column(String(64), index=True)
    parent_id = Column(String(36), ForeignKey("menus.id"), index=True)
    description = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    parent = relationship("Menu", remote_side=[id], back_populates="children")
    children = relationship("Menu", back_populates="parent", order_by="Menu.sort")
    actions = relationship(
        "MenuAction", back_populates="menu", cascade="all, delete-orphan", order_by="MenuAction.code"
    )
    roles = relationship("Role", secondary=role_menus, back_populates="menus")


class MenuAction(Base):
    __tablename__ = "menu_actions"

    id = Column(String(36), primary_key=True, default=new_id)
    menu_id = Column(String(36), ForeignKey("menus.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    code = Column(String(50), nullable=False)
    resource = Column(String(255), nullable=False)
    method = Column(String(10))
    permission_key = Column(String(100), unique=True, nullable=False, index=True)
    description = Column(Text)
    is_system = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    menu = relationship("Menu", back_populates="actions")
