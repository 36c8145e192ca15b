"""
Organization Hierarchy Routes

POST   /api/v1/organizations                      → create root or sub-organization
GET    /api/v1/organizations/tree?tenant_id=...   → tenant forest
GET    /api/v1/organizations/root?tenant_id=...   → tenant root
GET    /api/v1/organizations/{id}                 → organization with its parent
GET    /api/v1/organizations/{id}/children        → direct active children
GET    /api/v1/organizations/{id}/exists?tenant_id=...
PATCH  /api/v1/organizations/{id}                 → update descriptive fields
POST   /api/v1/organizations/{id}/move            → re-parent with subtree
DELETE /api/v1/organizations/{id}                 → soft-delete a leaf
POST   /api/v1/organizations/bulk/{create,update,delete}

Callers are authenticated upstream; the acting user id arrives in the
X-Actor-ID header and is recorded as created_by / updated_by.
"""

from fastapi import APIRouter, Depends, Header, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from orgtree.database import get_db
from orgtree.exceptions import OrganizationNotFoundError
from orgtree.schemas.organization import (
    BulkOperationResponse,
    BulkOrganizationCreateRequest,
    BulkOrganizationDeleteRequest,
    BulkOrganizationUpdateRequest,
    OrganizationCreate,
    OrganizationDetails,
    OrganizationMove,
    OrganizationResponse,
    OrganizationSummary,
    OrganizationTreeNode,
    OrganizationUpdate,
)
from orgtree.services import organization_service
from orgtree.services.bulk_operations_service import bulk_operations_service

router = APIRouter(prefix="/organizations", tags=["Organizations"])


# ── Dependency ─────────────────────────────────────────────────────────────────


async def get_actor_id(x_actor_id: str | None = Header(default=None)) -> str | None:
    """Acting user id from the X-Actor-ID header, if the caller sent one."""
    return x_actor_id


# ── Routes ─────────────────────────────────────────────────────────────────────


@router.post("", response_model=OrganizationResponse, status_code=status.HTTP_201_CREATED)
async def create_organization_route(
    payload: OrganizationCreate,
    db: AsyncSession = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
):
    """
    Create an organization.

    With a parent_id the new node becomes a sub-organization in the parent's
    tenant; a tenant_id sent alongside must name that tenant. Without a
    parent_id it becomes the root of tenant_id.
    """
    if payload.parent_id:
        organization = await organization_service.create_child(
            parent_id=payload.parent_id,
            tenant_id=payload.tenant_id,
            name=payload.name,
            actor_id=actor_id,
            db=db,
            description=payload.description,
            tax_id=payload.tax_id,
        )
    else:
        organization = await organization_service.create_root(
            tenant_id=payload.tenant_id,
            name=payload.name,
            actor_id=actor_id,
            db=db,
            description=payload.description,
            tax_id=payload.tax_id,
        )
    return organization


@router.get("/tree", response_model=list[OrganizationTreeNode])
async def get_tree_route(
    tenant_id: str,
    accessible_ids: list[str] | None = Query(default=None),
    db: AsyncSession = Depends(get_db),
):
    """Active organizations of a tenant as nested trees, optionally limited to an allow-list."""
    return await organization_service.build_tree(tenant_id, db, accessible_ids=accessible_ids)


@router.get("/root", response_model=OrganizationResponse)
async def get_root_route(tenant_id: str, db: AsyncSession = Depends(get_db)):
    root = await organization_service.get_root_organization(tenant_id, db)
    if root is None:
        raise OrganizationNotFoundError(resource_type="Root organization")
    return root


@router.post("/bulk/create", response_model=BulkOperationResponse)
async def bulk_create_route(
    request: BulkOrganizationCreateRequest,
    db: AsyncSession = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
):
    """
    Create many organizations in order. Failures are reported per item and
    do not undo earlier successes.
    """
    result = await bulk_operations_service.bulk_create(request.items, actor_id, db)
    return BulkOperationResponse(**result, message=f"Created {result['successful']} organizations")


@router.post("/bulk/update", response_model=BulkOperationResponse)
async def bulk_update_route(
    request: BulkOrganizationUpdateRequest,
    db: AsyncSession = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
):
    result = await bulk_operations_service.bulk_update(request.items, actor_id, db)
    return BulkOperationResponse(**result, message=f"Updated {result['successful']} organizations")


@router.post("/bulk/delete", response_model=BulkOperationResponse)
async def bulk_delete_route(
    request: BulkOrganizationDeleteRequest,
    db: AsyncSession = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
):
    """List children before their parents; a parent with active children fails."""
    result = await bulk_operations_service.bulk_delete(request.organization_ids, actor_id, db)
    return BulkOperationResponse(**result, message=f"Deleted {result['successful']} organizations")


@router.get("/{organization_id}", response_model=OrganizationDetails)
async def get_organization_route(organization_id: str, db: AsyncSession = Depends(get_db)):
    details = await organization_service.get_organization_details(organization_id, db)
    parent = details["parent"]
    return OrganizationDetails(
        organization=OrganizationResponse.model_validate(details["organization"]),
        parent=OrganizationSummary.model_validate(parent) if parent is not None else None,
    )


@router.get("/{organization_id}/children", response_model=list[OrganizationResponse])
async def list_children_route(organization_id: str, db: AsyncSession = Depends(get_db)):
    await organization_service.get_active_organization(organization_id, db)
    return await organization_service.list_children(organization_id, db)


@router.get("/{organization_id}/exists")
async def organization_exists_route(organization_id: str, tenant_id: str, db: AsyncSession = Depends(get_db)):
    exists = await organization_service.organization_exists(tenant_id, organization_id, db)
    return {"organization_id": organization_id, "tenant_id": tenant_id, "exists": exists}


@router.patch("/{organization_id}", response_model=OrganizationResponse)
async def update_organization_route(
    organization_id: str,
    payload: OrganizationUpdate,
    db: AsyncSession = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
):
    return await organization_service.update_organization(
        organization_id, payload.model_dump(exclude_unset=True), actor_id, db
    )


@router.post("/{organization_id}/move", response_model=OrganizationResponse)
async def move_organization_route(
    organization_id: str,
    payload: OrganizationMove,
    db: AsyncSession = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
):
    """Re-parent an organization; its whole subtree moves with it."""
    return await organization_service.move(organization_id, payload.new_parent_id, actor_id, db)


@router.delete("/{organization_id}", response_model=OrganizationResponse)
async def delete_organization_route(
    organization_id: str,
    db: AsyncSession = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
):
    """Soft-delete an organization that has no active children."""
    return await organization_service.delete(organization_id, actor_id, db)
