"""
Entitlement Routes

GET    /api/v1/tenants/{tenant_id}/entitlements             → list grants
POST   /api/v1/tenants/{tenant_id}/entitlements/reconcile   → apply a plan
GET    /api/v1/tenants/{tenant_id}/entitlements/validate    → integrity report
POST   /api/v1/tenants/{tenant_id}/entitlements/cleanup     → collapse duplicates
POST   /api/v1/entitlements/cleanup                         → system-wide sweep
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from orgtree.database import get_db
from orgtree.schemas.entitlement import (
    CleanupResponse,
    GrantResponse,
    ReconcileRequest,
    ReconcileResponse,
    ValidationReport,
)
from orgtree.services import entitlement_service

router = APIRouter(tags=["Entitlements"])


@router.get("/tenants/{tenant_id}/entitlements", response_model=list[GrantResponse])
async def list_grants_route(tenant_id: str, db: AsyncSession = Depends(get_db)):
    return await entitlement_service.list_grants(tenant_id, db)


@router.post("/tenants/{tenant_id}/entitlements/reconcile", response_model=ReconcileResponse)
async def reconcile_route(tenant_id: str, request: ReconcileRequest, db: AsyncSession = Depends(get_db)):
    """
    Bring the tenant's grants in line with a plan.

    Safe to call repeatedly: a call that finds the tenant already on the
    plan within the skip window returns skipped=true without writing.
    """
    return await entitlement_service.reconcile(
        tenant_id,
        request.plan_id,
        db,
        skip_if_recently_updated=request.skip_if_recently_updated,
        force_update=request.force_update,
    )


@router.get("/tenants/{tenant_id}/entitlements/validate", response_model=ValidationReport)
async def validate_route(tenant_id: str, db: AsyncSession = Depends(get_db)):
    return await entitlement_service.validate_entitlements(tenant_id, db)


@router.post("/tenants/{tenant_id}/entitlements/cleanup", response_model=CleanupResponse)
async def cleanup_tenant_route(tenant_id: str, db: AsyncSession = Depends(get_db)):
    return await entitlement_service.cleanup_duplicate_grants(tenant_id, db)


@router.post("/entitlements/cleanup", response_model=CleanupResponse)
async def cleanup_all_route(db: AsyncSession = Depends(get_db)):
    return await entitlement_service.cleanup_all_duplicate_grants(db)
