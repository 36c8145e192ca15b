"""
Application catalogue and per-tenant entitlement grants.

An EntitlementGrant records which application (and which of its modules) a
tenant may use under its current plan. The reconciler keeps at most one row
per (tenant_id, application_id), backed by a unique index so a racing
insert fails and falls back to an update. Rows written before the index
existed are collapsed to the oldest one by the duplicate cleanup.
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import relationship

from orgtree.database import Base


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ApplicationStatus(str, enum.Enum):
    active = "active"
    retired = "retired"


class Application(Base):
    __tablename__ = "applications"

    id = Column(String(36), primary_key=True, default=_new_id)
    code = Column(String(50), nullable=False, unique=True, index=True)  # e.g. "crm", "hr"
    name = Column(String(200), nullable=False)
    status = Column(String(20), nullable=False, default=ApplicationStatus.active.value)

    modules = relationship("ApplicationModule", back_populates="application", lazy="selectin")

    def __repr__(self):
        return f"<Application(id={self.id}, code={self.code})>"


class ApplicationModule(Base):
    __tablename__ = "application_modules"

    id = Column(Integer, primary_key=True, autoincrement=True)
    application_id = Column(String(36), ForeignKey("applications.id", ondelete="CASCADE"), nullable=False)
    code = Column(String(50), nullable=False)
    name = Column(String(200), nullable=True)

    application = relationship("Application", back_populates="modules")

    __table_args__ = (Index("idx_application_modules_application_id", "application_id"),)


GRANT_KEY_INDEX = "uq_entitlement_grants_tenant_app"


class EntitlementGrant(Base):
    __tablename__ = "entitlement_grants"

    id = Column(String(36), primary_key=True, default=_new_id)
    tenant_id = Column(String(64), nullable=False)
    # No FK: grants outlive retired catalogue rows and are reported as orphaned.
    application_id = Column(String(36), nullable=False)
    is_enabled = Column(Boolean, nullable=False, default=True)
    enabled_modules = Column(JSON, nullable=False, default=list)
    subscription_tier = Column(String(50), nullable=False)
    max_users = Column(Integer, nullable=True)  # None means unlimited
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (Index(GRANT_KEY_INDEX, "tenant_id", "application_id", unique=True),)

    def __repr__(self):
        return (
            f"<EntitlementGrant(id={self.id}, tenant_id={self.tenant_id}, "
            f"application_id={self.application_id}, tier={self.subscription_tier})>"
        )
