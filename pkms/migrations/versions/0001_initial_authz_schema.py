"""Initial authorization schema: roles, menus, menu_actions, role_menus,
user_tenant_roles, policy_rules

Revision ID: 0001
Revises: None
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create catalog and policy tables."""

    # --- roles (no FK deps) ---
    op.create_table(
        "roles",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("code", sa.String(100), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("tenant_id", sa.String(64)),
        sa.Column("is_system", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_roles"),
        sa.UniqueConstraint("tenant_id", "code", name="uq_roles_tenant_id_code"),
    )
    op.create_index("ix_roles_code", "roles", ["code"])
    op.create_index("ix_roles_tenant_id", "roles", ["tenant_id"])

    # --- menus (self FK) ---
    op.create_table(
        "menus",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("path", sa.String(255)),
        sa.Column("icon", sa.String(100)),
        sa.Column("component", sa.String(255)),
        sa.Column("sort", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("visible", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_system", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("tenant_id", sa.String(64)),
        sa.Column("parent_id", sa.String(36)),
        sa.Column("description", sa.Text()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_menus"),
        sa.ForeignKeyConstraint(["parent_id"], ["menus.id"], name="fk_menus_parent_id_menus"),
        sa.UniqueConstraint("tenant_id", "name", name="uq_menus_tenant_id_name"),
        sa.UniqueConstraint("tenant_id", "path", name="uq_menus_tenant_id_path"),
    )
    op.create_index("ix_menus_tenant_id", "menus", ["tenant_id"])
    op.create_index("ix_menus_parent_id", "menus", ["parent_id"])

    # --- menu_actions (FK -> menus) ---
    op.create_table(
        "menu_actions",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("menu_id", sa.String(36), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("code", sa.String(50), nullable=False),
        sa.Column("resource", sa.String(255), nullable=False),
        sa.Column("method", sa.String(10)),
        sa.Column("permission_key", sa.String(100), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("is_system", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_menu_actions"),
        sa.ForeignKeyConstraint(
            ["menu_id"],
            ["menus.id"],
            name="fk_menu_actions_menu_id_menus",
            ondelete="CASCADE",
        ),
    )
    op.create_index("ix_menu_actions_menu_id", "menu_actions", ["menu_id"])
    op.create_index(
        "ix_menu_actions_permission_key", "menu_actions", ["permission_key"], unique=True
    )

    # --- role_menus (FK -> roles, menus) ---
    op.create_table(
        "role_menus",
        sa.Column("role_id", sa.String(36), nullable=False),
        sa.Column("menu_id", sa.String(36), nullable=False),
        sa.PrimaryKeyConstraint("role_id", "menu_id", name="pk_role_menus"),
        sa.ForeignKeyConstraint(
            ["role_id"], ["roles.id"], name="fk_role_menus_role_id_roles", ondelete="CASCADE"
        ),
        sa.ForeignKeyConstraint(
            ["menu_id"], ["menus.id"], name="fk_role_menus_menu_id_menus", ondelete="CASCADE"
        ),
    )

    # --- user_tenant_roles (no FK deps; users and tenants live elsewhere) ---
    op.create_table(
        "user_tenant_roles",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("tenant_id", sa.String(64), nullable=False),
        sa.Column("role_code", sa.String(100), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_user_tenant_roles"),
        sa.UniqueConstraint(
            "user_id", "tenant_id", "role_code", name="uq_user_tenant_roles_triple"
        ),
    )
    op.create_index("ix_user_tenant_roles_user_id", "user_tenant_roles", ["user_id"])
    op.create_index("ix_user_tenant_roles_tenant_id", "user_tenant_roles", ["tenant_id"])
    op.create_index("ix_user_tenant_roles_role_code", "user_tenant_roles", ["role_code"])

    # --- policy_rules (casbin rule layout: grant "p" and grouping "g" facts) ---
    op.create_table(
        "policy_rules",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("ptype", sa.String(255), nullable=False),
        sa.Column("v0", sa.String(255)),
        sa.Column("v1", sa.String(255)),
        sa.Column("v2", sa.String(255)),
        sa.Column("v3", sa.String(255)),
        sa.Column("v4", sa.String(255)),
        sa.Column("v5", sa.String(255)),
        sa.PrimaryKeyConstraint("id", name="pk_policy_rules"),
    )
    op.create_index("ix_policy_rules_ptype", "policy_rules", ["ptype"])


def downgrade() -> None:
    """Drop all tables in reverse dependency order."""
    op.drop_table("policy_rules")
    op.drop_table("user_tenant_roles")
    op.drop_table("role_menus")
    op.drop_table("menu_actions")
    op.drop_table("menus")
    op.drop_table("roles")
