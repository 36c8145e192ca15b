"""
Organization Schemas

Pydantic models for organization requests, responses and tree views.
Name and tax id rules are enforced by the hierarchy engine, not here, so a
bulk batch can report them per item.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class OrganizationCreate(BaseModel):
    tenant_id: str | None = Field(
        None, description="Owning tenant; required for a root, must match the parent otherwise"
    )
    parent_id: str | None = Field(None, description="Parent organization; omit to create the tenant root")
    name: str
    description: str | None = None
    tax_id: str | None = None


class OrganizationUpdate(BaseModel):
    name: str | None = None
    description: str | None = None
    tax_id: str | None = None


class OrganizationBulkUpdateItem(OrganizationUpdate):
    organization_id: str


class OrganizationMove(BaseModel):
    new_parent_id: str | None = Field(None, description="New parent; null promotes the node to tenant root")


class OrganizationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    tenant_id: str
    parent_id: str | None
    type: str
    path: str
    level: int
    name: str
    description: str | None = None
    tax_id: str | None = None
    is_active: bool
    created_by: str | None = None
    created_at: datetime
    updated_by: str | None = None
    updated_at: datetime


class OrganizationSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str


class OrganizationDetails(BaseModel):
    organization: OrganizationResponse
    parent: OrganizationSummary | None = None


class OrganizationTreeNode(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    parent_id: str | None
    type: str
    path: str
    level: int
    name: str
    description: str | None = None
    is_active: bool
    created_at: datetime
    children: list[OrganizationTreeNode] = Field(default_factory=list)


class BulkOrganizationCreateRequest(BaseModel):
    items: list[OrganizationCreate] = Field(..., min_length=1)


class BulkOrganizationUpdateRequest(BaseModel):
    items: list[OrganizationBulkUpdateItem] = Field(..., min_length=1)


class BulkOrganizationDeleteRequest(BaseModel):
    organization_ids: list[str] = Field(..., min_length=1)


class BulkItemResult(BaseModel):
    index: int
    input: Any
    organization: OrganizationResponse


class BulkItemError(BaseModel):
    index: int
    input: Any
    error: str
    error_code: str | None = None


class BulkOperationResponse(BaseModel):
    """Per-item outcome of a best-effort batch"""

    total_processed: int
    successful: int
    failed: int
    results: list[BulkItemResult]
    errors: list[BulkItemError]
    message: str | None = None


OrganizationTreeNode.model_rebuild()
