"""
Organization model: tenant organization hierarchy.

Each tenant owns at most one active root organization and a tree of
sub-organizations beneath it. The tree is stored as a materialized path:
``path`` lists every id from the root down to the node, dot-separated, and
``level`` is the number of segments in it.
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String, Text, text

from orgtree.database import Base


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrganizationType(str, enum.Enum):
    root = "root"
    sub = "sub"


class Organization(Base):
    __tablename__ = "organizations"

    id = Column(String(36), primary_key=True, default=_new_id)
    tenant_id = Column(String(64), nullable=False)
    parent_id = Column(String(36), ForeignKey("organizations.id", ondelete="RESTRICT"), nullable=True)
    type = Column(String(10), nullable=False, default=OrganizationType.sub.value)
    path = Column(Text, nullable=False)
    level = Column(Integer, nullable=False)

    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    tax_id = Column(String(15), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    created_by = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_by = Column(String(64), nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        Index("idx_organizations_tenant_active", "tenant_id", "is_active"),
        Index("idx_organizations_parent_id", "parent_id"),
        Index("idx_organizations_path", "path"),
        # At most one active root per tenant, even when two creates race.
        Index(
            "uq_organizations_active_root",
            "tenant_id",
            unique=True,
            postgresql_where=text("type = 'root' AND is_active"),
            sqlite_where=text("type = 'root' AND is_active"),
        ),
    )

    @property
    def is_root(self) -> bool:
        return self.type == OrganizationType.root.value

    def __repr__(self):
        return f"<Organization(id={self.id}, tenant_id={self.tenant_id}, path={self.path}, level={self.level})>"
