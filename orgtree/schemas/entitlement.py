"""
Entitlement Schemas
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ReconcileRequest(BaseModel):
    plan_id: str = Field(..., description="Plan key in the access matrix, e.g. 'starter'")
    skip_if_recently_updated: bool = True
    force_update: bool = False


class GrantResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    tenant_id: str
    application_id: str
    is_enabled: bool
    enabled_modules: list[str]
    subscription_tier: str
    max_users: int | None = None
    created_at: datetime
    updated_at: datetime


class ReconcileResponse(BaseModel):
    tenant_id: str
    plan: str
    skipped: bool
    updated: bool
    reason: str | None = None
    inserted: list[str] = Field(default_factory=list)
    modified: list[str] = Field(default_factory=list)
    disabled: list[str] = Field(default_factory=list)
    unchanged: list[str] = Field(default_factory=list)
    duplicates_removed: int = 0


class CleanupResponse(BaseModel):
    tenant_id: str | None = None
    cleaned: bool
    removed_count: int
    tenants_affected: int | None = None
    summary: dict[str, int] | None = None


class ValidationIssue(BaseModel):
    type: str
    count: int
    details: list[dict[str, Any]]


class ValidationReport(BaseModel):
    tenant_id: str
    is_valid: bool
    issues: list[ValidationIssue]
    summary: dict[str, Any]
