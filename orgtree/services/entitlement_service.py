"""
Entitlement Service: plan-driven application grants

Reconciles a tenant's entitlement grants against the access matrix of a
subscription plan: collapses duplicate rows, inserts missing grants,
updates changed ones in place and disables (never deletes) grants the plan
no longer covers. One reconciliation is one transaction.
"""

import logging
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from orgtree.config import settings
from orgtree.database import atomic
from orgtree.exceptions import ConflictError
from orgtree.models.entitlement import Application, ApplicationStatus, EntitlementGrant
from orgtree.permissions_config.plans import ALL_MODULES, get_plan_access, plan_max_users

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


async def list_grants(tenant_id: str, db: AsyncSession) -> list[EntitlementGrant]:
    """Return every grant row of a tenant, oldest first."""
    result = await db.execute(
        select(EntitlementGrant)
        .where(EntitlementGrant.tenant_id == tenant_id)
        .order_by(EntitlementGrant.created_at, EntitlementGrant.id)
    )
    return list(result.scalars().all())


async def _find_grant(tenant_id: str, application_id: str, db: AsyncSession) -> EntitlementGrant | None:
    result = await db.execute(
        select(EntitlementGrant)
        .where(EntitlementGrant.tenant_id == tenant_id, EntitlementGrant.application_id == application_id)
        .order_by(EntitlementGrant.created_at, EntitlementGrant.id)
    )
    return result.scalars().first()


async def _application_codes(application_ids: set[str], db: AsyncSession) -> dict[str, str]:
    if not application_ids:
        return {}
    result = await db.execute(select(Application.id, Application.code).where(Application.id.in_(application_ids)))
    return {row.id: row.code for row in result}


def _collapse_duplicates(grants: list[EntitlementGrant]) -> list[EntitlementGrant]:
    """Given rows ordered oldest first, return every row after the first per application."""
    seen: set[str] = set()
    extras = []
    for grant in grants:
        if grant.application_id in seen:
            extras.append(grant)
        else:
            seen.add(grant.application_id)
    return extras


async def _remove_duplicates(tenant_id: str, db: AsyncSession) -> int:
    extras = _collapse_duplicates(await list_grants(tenant_id, db))
    for grant in extras:
        await db.delete(grant)
    if extras:
        await db.flush()
        logger.warning("Removed %d duplicate entitlement grant(s) for tenant %s", len(extras), tenant_id)
    return len(extras)


async def _desired_grants(plan_access: dict, db: AsyncSession) -> dict[str, dict[str, Any]]:
    """
    Resolve the plan's application codes to active catalogue rows.

    Returns {application_id: {"code", "enabled_modules"}}. Codes with no
    active application are skipped with a warning.
    """
    codes = list(plan_access.get("applications", []))
    modules_by_code = plan_access.get("modules", {})

    result = await db.execute(
        select(Application).where(
            Application.code.in_(codes),
            Application.status == ApplicationStatus.active.value,
        )
    )
    applications = {application.code: application for application in result.scalars().all()}

    desired = {}
    for code in codes:
        application = applications.get(code)
        if application is None:
            logger.warning("Application code %r is not an active application; skipping", code)
            continue
        modules = modules_by_code.get(code, [])
        if modules == ALL_MODULES:
            modules = [module.code for module in application.modules]
        desired[application.id] = {"code": code, "enabled_modules": sorted(set(modules))}
    return desired


def _recently_reconciled(grants: list[EntitlementGrant], plan_id: str, window_seconds: int) -> bool:
    if not grants:
        return False
    cutoff = _utcnow() - timedelta(seconds=window_seconds)
    return all(
        grant.subscription_tier == plan_id and _as_utc(grant.updated_at) >= cutoff
        for grant in grants
    )


def _apply_plan(
    grant: EntitlementGrant,
    plan_id: str,
    enabled_modules: list[str],
    max_users: int | None,
    now: datetime,
) -> bool:
    """Bring an existing grant in line with the plan; return True when anything changed."""
    changed = (
        grant.subscription_tier != plan_id
        or grant.max_users != max_users
        or set(grant.enabled_modules or []) != set(enabled_modules)
        or not grant.is_enabled
    )
    if changed:
        grant.is_enabled = True
        grant.subscription_tier = plan_id
        grant.max_users = max_users
        grant.enabled_modules = list(enabled_modules)
        grant.updated_at = now
    return changed


async def _insert_grant(db: AsyncSession, **values: Any) -> EntitlementGrant | None:
    """
    Insert a grant inside a savepoint.

    Returns None when a concurrent writer already inserted the same
    (tenant, application) row; the surrounding transaction stays usable.
    """
    grant = EntitlementGrant(**values)
    try:
        async with db.begin_nested():
            db.add(grant)
    except IntegrityError as exc:
        logger.info(
            "Grant insert for tenant %s application %s lost a race; updating instead: %s",
            values.get("tenant_id"),
            values.get("application_id"),
            exc.orig,
        )
        return None
    return grant


async def reconcile(
    tenant_id: str,
    plan_id: str,
    db: AsyncSession,
    skip_if_recently_updated: bool = True,
    force_update: bool = False,
    cleanup_duplicates: bool = True,
) -> dict[str, Any]:
    """
    Apply ``plan_id`` to the tenant's entitlement grants.

    Returns a summary dict. ``skipped`` is True when every grant already
    carries the plan and was written within the skip window, which absorbs
    duplicate triggers such as a webhook retry racing a scheduled job.
    ``updated`` is True when anything was written.
    """
    plan_access = get_plan_access(plan_id)
    max_users = plan_max_users(plan_access)
    summary: dict[str, Any] = {
        "tenant_id": tenant_id,
        "plan": plan_id,
        "skipped": False,
        "updated": False,
        "inserted": [],
        "modified": [],
        "disabled": [],
        "unchanged": [],
        "duplicates_removed": 0,
    }

    async with atomic(db, "reconcile_entitlements"):
        if skip_if_recently_updated and not force_update:
            current = await list_grants(tenant_id, db)
            if _recently_reconciled(current, plan_id, settings.entitlement_skip_window_seconds):
                logger.info("Skipping entitlement reconcile for tenant %s: already on %s", tenant_id, plan_id)
                summary.update(skipped=True, reason="recently_updated")
                return summary

        if cleanup_duplicates:
            summary["duplicates_removed"] += await _remove_duplicates(tenant_id, db)

        desired = await _desired_grants(plan_access, db)
        existing: dict[str, EntitlementGrant] = {}
        for grant in await list_grants(tenant_id, db):
            existing.setdefault(grant.application_id, grant)

        now = _utcnow()
        for application_id, target in desired.items():
            grant = existing.get(application_id)
            if grant is None:
                grant = await _insert_grant(
                    db,
                    tenant_id=tenant_id,
                    application_id=application_id,
                    is_enabled=True,
                    enabled_modules=target["enabled_modules"],
                    subscription_tier=plan_id,
                    max_users=max_users,
                    created_at=now,
                    updated_at=now,
                )
                if grant is not None:
                    summary["inserted"].append(target["code"])
                    continue
                grant = await _find_grant(tenant_id, application_id, db)
                if grant is None:
                    raise ConflictError(
                        "Entitlement grant insert conflicted but no existing row was found",
                        details={"tenant_id": tenant_id, "application_id": application_id},
                    )

            if _apply_plan(grant, plan_id, target["enabled_modules"], max_users, now):
                summary["modified"].append(target["code"])
            else:
                summary["unchanged"].append(target["code"])

        stale = [
            grant
            for application_id, grant in existing.items()
            if application_id not in desired and grant.is_enabled
        ]
        codes = await _application_codes({grant.application_id for grant in stale}, db)
        for grant in stale:
            grant.is_enabled = False
            grant.subscription_tier = plan_id
            grant.updated_at = now
            summary["disabled"].append(codes.get(grant.application_id, grant.application_id))

        if cleanup_duplicates:
            await db.flush()
            summary["duplicates_removed"] += await _remove_duplicates(tenant_id, db)

    summary["updated"] = bool(
        summary["inserted"] or summary["modified"] or summary["disabled"] or summary["duplicates_removed"]
    )
    logger.info(
        "Entitlements reconciled for tenant %s on %s: %d inserted, %d modified, %d disabled, %d duplicates removed",
        tenant_id,
        plan_id,
        len(summary["inserted"]),
        len(summary["modified"]),
        len(summary["disabled"]),
        summary["duplicates_removed"],
    )
    return summary


async def cleanup_duplicate_grants(tenant_id: str, db: AsyncSession) -> dict[str, Any]:
    """Collapse duplicate grant rows of one tenant to the oldest row per application."""
    async with atomic(db, "cleanup_duplicate_grants"):
        removed = await _remove_duplicates(tenant_id, db)
    return {"tenant_id": tenant_id, "cleaned": removed > 0, "removed_count": removed}


async def cleanup_all_duplicate_grants(db: AsyncSession) -> dict[str, Any]:
    """
    System-wide maintenance sweep: collapse duplicate grants across every
    tenant. Intended for one-off cleanup or a scheduled job.
    """
    async with atomic(db, "cleanup_all_duplicate_grants"):
        result = await db.execute(
            select(EntitlementGrant).order_by(
                EntitlementGrant.tenant_id,
                EntitlementGrant.created_at,
                EntitlementGrant.id,
            )
        )
        by_tenant: dict[str, list[EntitlementGrant]] = defaultdict(list)
        for grant in result.scalars().all():
            by_tenant[grant.tenant_id].append(grant)

        summary: dict[str, int] = {}
        for tenant_id, grants in by_tenant.items():
            extras = _collapse_duplicates(grants)
            for grant in extras:
                await db.delete(grant)
            if extras:
                summary[tenant_id] = len(extras)

    removed = sum(summary.values())
    logger.info("Duplicate grant sweep removed %d row(s) across %d tenant(s)", removed, len(summary))
    return {
        "cleaned": removed > 0,
        "removed_count": removed,
        "tenants_affected": len(summary),
        "summary": summary,
    }


async def validate_entitlements(tenant_id: str, db: AsyncSession) -> dict[str, Any]:
    """Report duplicate, orphaned and tier-inconsistent grants without changing anything."""
    grants = await list_grants(tenant_id, db)
    codes = await _application_codes({grant.application_id for grant in grants}, db)

    counts: dict[str, int] = defaultdict(int)
    for grant in grants:
        counts[grant.application_id] += 1
    tiers: dict[str, int] = defaultdict(int)
    for grant in grants:
        tiers[grant.subscription_tier] += 1

    issues = []
    duplicates = [
        {"application_id": app_id, "application_code": codes.get(app_id), "record_count": count}
        for app_id, count in counts.items()
        if count > 1
    ]
    if duplicates:
        issues.append({"type": "duplicates", "count": len(duplicates), "details": duplicates})

    orphaned = [
        {"id": grant.id, "application_id": grant.application_id}
        for grant in grants
        if grant.application_id not in codes
    ]
    if orphaned:
        issues.append({"type": "orphaned", "count": len(orphaned), "details": orphaned})

    if len(tiers) > 1:
        issues.append(
            {
                "type": "inconsistent_tiers",
                "count": len(tiers),
                "details": [{"tier": tier, "grant_count": count} for tier, count in sorted(tiers.items())],
            }
        )

    return {
        "tenant_id": tenant_id,
        "is_valid": not issues,
        "issues": issues,
        "summary": {
            "total_issues": len(issues),
            "has_duplicates": bool(duplicates),
            "has_orphaned": bool(orphaned),
            "has_inconsistent_tiers": len(tiers) > 1,
        },
    }
