"""
Organization Service: tenant hierarchy engine

Creates, relocates and soft-deletes organizations while keeping every
node's materialized path and level consistent with its parent chain.
All functions accept an injected AsyncSession. Operations that write more
than one row (move) run as a single unit of work.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from orgtree.config import settings
from orgtree.database import atomic
from orgtree.exceptions import (
    ConflictError,
    CycleError,
    ErrorCode,
    OrganizationNotFoundError,
    ValidationError,
)
from orgtree.models.organization import Organization, OrganizationType
from orgtree.schemas.organization import OrganizationTreeNode
from orgtree.utils import hierarchy_path
from orgtree.utils.validators import validate_organization_name, validate_tax_id

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = {"name", "description", "tax_id"}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _check_depth(level: int) -> None:
    if level > settings.max_hierarchy_depth:
        raise ValidationError(
            f"Organization hierarchy cannot be deeper than {settings.max_hierarchy_depth} levels",
            field="parent_id",
            error_code=ErrorCode.VALIDATION_MAX_DEPTH,
            details={"level": level, "max_depth": settings.max_hierarchy_depth},
        )


# ── Reads ──────────────────────────────────────────────────────────────────────


async def get_organization(organization_id: str, db: AsyncSession) -> Organization | None:
    """Return an organization by id (active or not), or None if not found."""
    result = await db.execute(select(Organization).where(Organization.id == organization_id))
    return result.scalars().first()


async def get_active_organization(
    organization_id: str,
    db: AsyncSession,
    resource_type: str = "Organization",
    for_update: bool = False,
) -> Organization:
    """
    Return an active organization or raise OrganizationNotFoundError.

    With ``for_update`` the row is locked until the caller's transaction
    ends and its attributes are refreshed from the locked version.
    """
    stmt = select(Organization).where(
        Organization.id == organization_id,
        Organization.is_active.is_(True),
    )
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    result = await db.execute(stmt)
    organization = result.scalars().first()
    if organization is None:
        raise OrganizationNotFoundError(organization_id, resource_type=resource_type)
    return organization


async def get_root_organization(tenant_id: str, db: AsyncSession) -> Organization | None:
    """Return the tenant's active root organization, or None."""
    result = await db.execute(
        select(Organization).where(
            Organization.tenant_id == tenant_id,
            Organization.type == OrganizationType.root.value,
            Organization.is_active.is_(True),
        )
    )
    return result.scalars().first()


async def organization_exists(tenant_id: str, organization_id: str, db: AsyncSession) -> bool:
    """
    Read-only check used before assigning memberships: True only when the
    organization exists, is active and belongs to the tenant.
    """
    result = await db.execute(
        select(func.count())
        .select_from(Organization)
        .where(
            Organization.id == organization_id,
            Organization.tenant_id == tenant_id,
            Organization.is_active.is_(True),
        )
    )
    return result.scalar_one() > 0


async def list_children(parent_id: str, db: AsyncSession) -> list[Organization]:
    """Direct active sub-organizations of ``parent_id``, oldest first."""
    result = await db.execute(
        select(Organization)
        .where(Organization.parent_id == parent_id, Organization.is_active.is_(True))
        .order_by(Organization.created_at)
    )
    return list(result.scalars().all())


async def get_organization_details(organization_id: str, db: AsyncSession) -> dict[str, Any]:
    """Return the organization together with its parent (None for a root)."""
    organization = await get_active_organization(organization_id, db)
    parent = None
    if organization.parent_id is not None:
        parent = await get_organization(organization.parent_id, db)
    return {"organization": organization, "parent": parent}


async def build_tree(
    tenant_id: str,
    db: AsyncSession,
    accessible_ids: list[str] | set[str] | None = None,
) -> list[OrganizationTreeNode]:
    """
    Assemble the tenant's active organizations into a forest.

    ``accessible_ids`` optionally restricts the view to an allow-list. Nodes
    whose parent is not part of the result become roots of the returned
    forest, so a filtered view that hides the real root is still a valid
    set of trees.
    """
    stmt = select(Organization).where(
        Organization.tenant_id == tenant_id,
        Organization.is_active.is_(True),
    )
    if accessible_ids is not None:
        if not accessible_ids:
            return []
        stmt = stmt.where(Organization.id.in_(list(accessible_ids)))
    stmt = stmt.order_by(Organization.level, Organization.created_at)

    result = await db.execute(stmt)
    organizations = result.scalars().all()

    # First pass: index every node by id
    nodes: dict[str, OrganizationTreeNode] = {}
    for organization in organizations:
        nodes[organization.id] = OrganizationTreeNode.model_validate(organization)

    # Second pass: attach to parents
    roots: list[OrganizationTreeNode] = []
    for organization in organizations:
        node = nodes[organization.id]
        parent = nodes.get(organization.parent_id) if organization.parent_id else None
        if parent is not None:
            parent.children.append(node)
        else:
            roots.append(node)
    return roots


# ── Writes ─────────────────────────────────────────────────────────────────────


async def create_root(
    tenant_id: str,
    name: str,
    actor_id: str | None,
    db: AsyncSession,
    description: str | None = None,
    tax_id: str | None = None,
) -> Organization:
    """Create the tenant's root organization (at most one active per tenant)."""
    if not tenant_id:
        raise ValidationError("Tenant id is required to create a root organization", field="tenant_id")
    cleaned_name = validate_organization_name(name)
    tax_id = validate_tax_id(tax_id)

    organization_id = str(uuid.uuid4())
    organization = Organization(
        id=organization_id,
        tenant_id=tenant_id,
        parent_id=None,
        type=OrganizationType.root.value,
        path=hierarchy_path.build_path(None, organization_id),
        level=1,
        name=cleaned_name,
        description=description,
        tax_id=tax_id,
        is_active=True,
        created_by=actor_id,
        updated_by=actor_id,
    )
    # A concurrent winner trips uq_organizations_active_root on commit.
    async with atomic(db, "create_root"):
        existing_root = await get_root_organization(tenant_id, db)
        if existing_root is not None:
            raise ConflictError(
                "A root organization already exists for this tenant. Only one root organization is allowed per tenant.",
                error_code=ErrorCode.CONFLICT_DUPLICATE_ROOT,
                details={"tenant_id": tenant_id, "root_id": existing_root.id},
            )
        db.add(organization)
    logger.info("Root organization created: id=%s tenant=%s", organization.id, tenant_id)
    return organization


async def create_child(
    parent_id: str,
    name: str,
    actor_id: str | None,
    db: AsyncSession,
    description: str | None = None,
    tax_id: str | None = None,
    tenant_id: str | None = None,
) -> Organization:
    """
    Create a sub-organization beneath an active parent.

    The tenant is inherited from the parent. A caller that also names a
    ``tenant_id`` must name the parent's tenant.
    """
    cleaned_name = validate_organization_name(name)
    tax_id = validate_tax_id(tax_id)

    organization_id = str(uuid.uuid4())
    async with atomic(db, "create_child"):
        # Locked so a concurrent delete of the parent waits for this insert
        parent = await get_active_organization(
            parent_id, db, resource_type="Parent organization", for_update=True
        )
        if tenant_id and tenant_id != parent.tenant_id:
            raise ValidationError(
                "Parent organization belongs to a different tenant",
                field="tenant_id",
                error_code=ErrorCode.VALIDATION_TENANT_MISMATCH,
                details={"tenant_id": tenant_id, "parent_id": parent_id},
            )
        _check_depth(parent.level + 1)

        organization = Organization(
            id=organization_id,
            tenant_id=parent.tenant_id,
            parent_id=parent.id,
            type=OrganizationType.sub.value,
            path=hierarchy_path.build_path(parent.path, organization_id),
            level=parent.level + 1,
            name=cleaned_name,
            description=description,
            tax_id=tax_id,
            is_active=True,
            created_by=actor_id,
            updated_by=actor_id,
        )
        db.add(organization)
    logger.info(
        "Sub-organization created: id=%s parent=%s level=%d", organization.id, parent.id, organization.level
    )
    return organization


async def update_organization(
    organization_id: str,
    updates: dict[str, Any],
    actor_id: str | None,
    db: AsyncSession,
) -> Organization:
    """
    Apply a partial update to an organization's descriptive fields.

    Only name, description and tax_id may change here; hierarchy fields
    change through move().
    """
    fields = {key: value for key, value in updates.items() if key in EDITABLE_FIELDS}
    if not fields:
        raise ValidationError("No valid fields to update", details={"allowed_fields": sorted(EDITABLE_FIELDS)})
    if "name" in fields:
        fields["name"] = validate_organization_name(fields["name"])
    if "tax_id" in fields:
        fields["tax_id"] = validate_tax_id(fields["tax_id"])

    async with atomic(db, "update_organization"):
        organization = await get_active_organization(organization_id, db, for_update=True)
        for field, value in fields.items():
            setattr(organization, field, value)
        organization.updated_by = actor_id
        organization.updated_at = _utcnow()
    return organization


async def move(
    organization_id: str,
    new_parent_id: str | None,
    actor_id: str | None,
    db: AsyncSession,
) -> Organization:
    """
    Re-parent an organization together with its whole subtree.

    The node and every strict descendant are rewritten in one transaction:
    each descendant path has its old prefix swapped for the new one and its
    level shifted by the same delta as the moved node. Passing
    ``new_parent_id=None`` promotes the node to tenant root, which is only
    possible when the tenant has no other active root.

    The node, its subtree and the new parent are read with row locks, so
    two moves that would make each other's targets ancestors serialize (or
    one fails with ConflictError) and the loser sees the winner's paths.
    """
    async with atomic(db, "move"):
        node = await get_active_organization(organization_id, db, for_update=True)
        old_path = node.path
        old_level = node.level

        if new_parent_id is not None:
            new_parent = await get_active_organization(
                new_parent_id, db, resource_type="Parent organization", for_update=True
            )
            if new_parent.tenant_id != node.tenant_id:
                raise OrganizationNotFoundError(new_parent_id, resource_type="Parent organization")
            if hierarchy_path.contains_segment(new_parent.path, node.id):
                raise CycleError(node.id, new_parent_id)
            new_path = hierarchy_path.build_path(new_parent.path, node.id)
            new_level = new_parent.level + 1
            new_type = OrganizationType.sub.value
        else:
            if node.is_root:
                return node
            existing_root = await get_root_organization(node.tenant_id, db)
            if existing_root is not None and existing_root.id != node.id:
                raise ConflictError(
                    "Cannot promote organization to root: the tenant already has a root organization",
                    error_code=ErrorCode.CONFLICT_DUPLICATE_ROOT,
                    details={"tenant_id": node.tenant_id, "root_id": existing_root.id},
                )
            new_path = hierarchy_path.build_path(None, node.id)
            new_level = 1
            new_type = OrganizationType.root.value

        delta = new_level - old_level

        result = await db.execute(
            select(Organization)
            .where(
                Organization.tenant_id == node.tenant_id,
                Organization.path.startswith(old_path + hierarchy_path.SEPARATOR, autoescape=True),
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        descendants = list(result.scalars().all())
        deepest = max((d.level for d in descendants), default=old_level)
        _check_depth(deepest + delta)

        now = _utcnow()
        node.parent_id = new_parent_id
        node.path = new_path
        node.level = new_level
        node.type = new_type
        node.updated_by = actor_id
        node.updated_at = now
        for descendant in descendants:
            descendant.path = hierarchy_path.rebase_path(descendant.path, old_path, new_path)
            descendant.level = descendant.level + delta
            descendant.updated_by = actor_id
            descendant.updated_at = now

    logger.info(
        "Organization moved: id=%s parent=%s descendants=%d level_delta=%d",
        node.id,
        new_parent_id,
        len(descendants),
        delta,
    )
    return node


async def delete(organization_id: str, actor_id: str | None, db: AsyncSession) -> Organization:
    """
    Soft-delete a leaf organization.

    Fails with ConflictError while any active child remains; no path is
    rewritten because a leaf has no descendants. The node is locked before
    its children are counted, so a concurrent create_child under it either
    commits first (and is counted) or finds the parent gone.
    """
    async with atomic(db, "delete_organization"):
        organization = await get_active_organization(organization_id, db, for_update=True)

        result = await db.execute(
            select(func.count())
            .select_from(Organization)
            .where(Organization.parent_id == organization_id, Organization.is_active.is_(True))
        )
        active_children = result.scalar_one()
        if active_children:
            raise ConflictError(
                "Cannot delete organization with active sub-organizations",
                error_code=ErrorCode.CONFLICT_HAS_CHILDREN,
                details={"organization_id": organization_id, "active_children": active_children},
            )

        organization.is_active = False
        organization.updated_by = actor_id
        organization.updated_at = _utcnow()
    logger.info("Organization soft-deleted: id=%s", organization_id)
    return organization
