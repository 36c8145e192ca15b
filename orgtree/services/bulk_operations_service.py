"""
Bulk Operations Service

Best-effort batches over the single-organization operations. Every item is
attempted on its own: a failing item is recorded with its index and error
and never rolls back or blocks the items after it. Only each individual
operation is atomic, not the batch.
"""

import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from orgtree.exceptions import OrgTreeError
from orgtree.models.organization import Organization
from orgtree.schemas.organization import OrganizationBulkUpdateItem, OrganizationCreate, OrganizationResponse
from orgtree.services import organization_service

logger = logging.getLogger(__name__)


class BulkOperationsService:
    """Service for performing bulk operations on organizations"""

    @staticmethod
    async def _run_batch(
        operation: str,
        items: Sequence[Any],
        handler: Callable[[Any], Awaitable[Organization]],
    ) -> dict[str, Any]:
        results = []
        errors = []

        for index, item in enumerate(items):
            payload = item.model_dump() if hasattr(item, "model_dump") else item
            try:
                organization = await handler(item)
                # Snapshot now; a later item's rollback expires ORM instances.
                results.append(
                    {
                        "index": index,
                        "input": payload,
                        "organization": OrganizationResponse.model_validate(organization),
                    }
                )
            except OrgTreeError as e:
                errors.append({"index": index, "input": payload, "error": e.message, "error_code": e.error_code.value})
            except Exception as e:
                logger.exception("Unexpected error in %s at index %d", operation, index)
                errors.append({"index": index, "input": payload, "error": str(e), "error_code": None})

        logger.info(
            "Bulk %s completed: %d successful, %d failed", operation, len(results), len(errors)
        )
        return {
            "total_processed": len(items),
            "successful": len(results),
            "failed": len(errors),
            "results": results,
            "errors": errors,
        }

    @staticmethod
    async def bulk_create(
        items: Sequence[OrganizationCreate],
        actor_id: str | None,
        db: AsyncSession,
    ) -> dict[str, Any]:
        """
        Create organizations in order.

        Items carrying a parent_id become sub-organizations; items without one
        create the root of their tenant_id. A child item that also names a
        tenant_id is rejected unless it matches the parent's tenant. Earlier
        items in the same batch can be referenced as parents by later ones.
        """

        async def _create(item: OrganizationCreate) -> Organization:
            if item.parent_id:
                return await organization_service.create_child(
                    parent_id=item.parent_id,
                    tenant_id=item.tenant_id,
                    name=item.name,
                    actor_id=actor_id,
                    db=db,
                    description=item.description,
                    tax_id=item.tax_id,
                )
            return await organization_service.create_root(
                tenant_id=item.tenant_id,
                name=item.name,
                actor_id=actor_id,
                db=db,
                description=item.description,
                tax_id=item.tax_id,
            )

        return await BulkOperationsService._run_batch("create", items, _create)

    @staticmethod
    async def bulk_update(
        items: Sequence[OrganizationBulkUpdateItem],
        actor_id: str | None,
        db: AsyncSession,
    ) -> dict[str, Any]:
        """Apply per-item partial updates; only fields explicitly set are changed."""

        async def _update(item: OrganizationBulkUpdateItem) -> Organization:
            updates = item.model_dump(exclude_unset=True, exclude={"organization_id"})
            return await organization_service.update_organization(item.organization_id, updates, actor_id, db)

        return await BulkOperationsService._run_batch("update", items, _update)

    @staticmethod
    async def bulk_delete(
        organization_ids: Sequence[str],
        actor_id: str | None,
        db: AsyncSession,
    ) -> dict[str, Any]:
        """
        Soft-delete organizations in order.

        Order matters: a parent listed before its children fails because its
        children are still active, while children listed first succeed and
        free the parent for a later item.
        """

        async def _delete(organization_id: str) -> Organization:
            return await organization_service.delete(organization_id, actor_id, db)

        return await BulkOperationsService._run_batch("delete", organization_ids, _delete)


# Singleton instance
bulk_operations_service = BulkOperationsService()
