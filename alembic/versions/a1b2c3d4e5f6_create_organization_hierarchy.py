"""create_organization_hierarchy

Revision ID: a1b2c3d4e5f6
Revises:
Create Date: 2026-10-17 00:00:00.000000

Initial schema:
  - `organizations` with materialized path columns and a partial unique
    index allowing one active root per tenant.
  - `applications` / `application_modules` catalogue.
  - `entitlement_grants` with a unique index on tenant + application, so a
    racing insert fails and the reconciler updates the winner instead.
"""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic
revision: str = "a1b2c3d4e5f6"
down_revision: str | None = None
branch_labels: str | None = None
depends_on: str | None = None


def upgrade() -> None:
    # 1. Organization hierarchy
    op.create_table(
        "organizations",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("tenant_id", sa.String(64), nullable=False),
        sa.Column("parent_id", sa.String(36), nullable=True),
        sa.Column("type", sa.String(10), nullable=False, server_default="sub"),
        sa.Column("path", sa.Text(), nullable=False),
        sa.Column("level", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("tax_id", sa.String(15), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_by", sa.String(64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_by", sa.String(64), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["parent_id"], ["organizations.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_organizations_tenant_active", "organizations", ["tenant_id", "is_active"], unique=False)
    op.create_index("idx_organizations_parent_id", "organizations", ["parent_id"], unique=False)
    op.create_index("idx_organizations_path", "organizations", ["path"], unique=False)
    op.create_index(
        "uq_organizations_active_root",
        "organizations",
        ["tenant_id"],
        unique=True,
        postgresql_where=sa.text("type = 'root' AND is_active"),
        sqlite_where=sa.text("type = 'root' AND is_active"),
    )

    # 2. Application catalogue
    op.create_table(
        "applications",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("code", sa.String(50), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_applications_code"), "applications", ["code"], unique=True)

    op.create_table(
        "application_modules",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("application_id", sa.String(36), nullable=False),
        sa.Column("code", sa.String(50), nullable=False),
        sa.Column("name", sa.String(200), nullable=True),
        sa.ForeignKeyConstraint(["application_id"], ["applications.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "idx_application_modules_application_id", "application_modules", ["application_id"], unique=False
    )

    # 3. Entitlement grants
    op.create_table(
        "entitlement_grants",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("tenant_id", sa.String(64), nullable=False),
        sa.Column("application_id", sa.String(36), nullable=False),
        sa.Column("is_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("enabled_modules", sa.JSON(), nullable=False),
        sa.Column("subscription_tier", sa.String(50), nullable=False),
        sa.Column("max_users", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "uq_entitlement_grants_tenant_app", "entitlement_grants", ["tenant_id", "application_id"], unique=True
    )


def downgrade() -> None:
    op.drop_index("uq_entitlement_grants_tenant_app", table_name="entitlement_grants")
    op.drop_table("entitlement_grants")

    op.drop_index("idx_application_modules_application_id", table_name="application_modules")
    op.drop_table("application_modules")

    op.drop_index(op.f("ix_applications_code"), table_name="applications")
    op.drop_table("applications")

    op.drop_index("uq_organizations_active_root", table_name="organizations")
    op.drop_index("idx_organizations_path", table_name="organizations")
    op.drop_index("idx_organizations_parent_id", table_name="organizations")
    op.drop_index("idx_organizations_tenant_active", table_name="organizations")
    op.drop_table("organizations")
