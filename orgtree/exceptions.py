"""
Custom Exception Classes for the organization hierarchy service

This module defines the error kinds raised by the hierarchy engine, the bulk
layer and the entitlement reconciler. Every error carries the HTTP status
the API layer should answer with, plus a machine-readable error code.
"""

from enum import Enum
from typing import Any

from fastapi import status


class ErrorCode(str, Enum):
    """Machine-readable error codes returned in API error bodies"""

    VALIDATION_FAILED = "VALIDATION_FAILED"
    VALIDATION_INVALID_NAME = "VALIDATION_INVALID_NAME"
    VALIDATION_INVALID_TAX_ID = "VALIDATION_INVALID_TAX_ID"
    VALIDATION_MAX_DEPTH = "VALIDATION_MAX_DEPTH"
    VALIDATION_TENANT_MISMATCH = "VALIDATION_TENANT_MISMATCH"
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    RESOURCE_ORGANIZATION_NOT_FOUND = "RESOURCE_ORGANIZATION_NOT_FOUND"
    RESOURCE_PLAN_NOT_FOUND = "RESOURCE_PLAN_NOT_FOUND"
    CONFLICT = "CONFLICT"
    CONFLICT_DUPLICATE_ROOT = "CONFLICT_DUPLICATE_ROOT"
    CONFLICT_HAS_CHILDREN = "CONFLICT_HAS_CHILDREN"
    CONFLICT_CYCLE = "CONFLICT_CYCLE"
    DATABASE_ERROR = "DATABASE_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class OrgTreeError(Exception):
    """Base exception class for all hierarchy and entitlement errors"""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_code: ErrorCode = ErrorCode.UNKNOWN_ERROR,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


# ============================================================================
# Validation Exceptions
# ============================================================================


class ValidationError(OrgTreeError):
    """Raised when input validation fails"""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        error_code: ErrorCode = ErrorCode.VALIDATION_FAILED,
        details: dict[str, Any] | None = None,
    ):
        error_details = details or {}
        if field:
            error_details["field"] = field
        super().__init__(
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            error_code=error_code,
            details=error_details,
        )


# ============================================================================
# Resource Not Found Exceptions
# ============================================================================


class NotFoundError(OrgTreeError):
    """Base class for resource not found errors"""

    def __init__(
        self,
        resource_type: str,
        resource_id: Any | None = None,
        error_code: ErrorCode = ErrorCode.RESOURCE_NOT_FOUND,
    ):
        message = f"{resource_type} not found"
        if resource_id is not None:
            message = f"{resource_type} with id '{resource_id}' not found"
        super().__init__(
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            error_code=error_code,
            details={"resource_type": resource_type, "resource_id": resource_id},
        )


class OrganizationNotFoundError(NotFoundError):
    """Raised when an organization is unknown, inactive or in another tenant"""

    def __init__(self, organization_id: Any | None = None, resource_type: str = "Organization"):
        super().__init__(
            resource_type=resource_type,
            resource_id=organization_id,
            error_code=ErrorCode.RESOURCE_ORGANIZATION_NOT_FOUND,
        )


class PlanNotFoundError(NotFoundError):
    """Raised when a plan is missing from the access matrix"""

    def __init__(self, plan_id: Any | None = None):
        super().__init__(resource_type="Plan", resource_id=plan_id, error_code=ErrorCode.RESOURCE_PLAN_NOT_FOUND)


# ============================================================================
# Conflict Exceptions
# ============================================================================


class ConflictError(OrgTreeError):
    """Raised when an operation conflicts with the current state of the store"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.CONFLICT,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            error_code=error_code,
            details=details or {},
        )


class CycleError(ConflictError):
    """Raised when a move would place a node beneath itself"""

    def __init__(self, node_id: Any, new_parent_id: Any):
        super().__init__(
            message=f"Cannot move organization '{node_id}' beneath its own descendant '{new_parent_id}'",
            error_code=ErrorCode.CONFLICT_CYCLE,
            details={"node_id": node_id, "new_parent_id": new_parent_id},
        )


# ============================================================================
# Database Exceptions
# ============================================================================


class DatabaseError(OrgTreeError):
    """Raised when a database operation fails"""

    def __init__(self, message: str = "A database error occurred", operation: str | None = None):
        details = {"operation": operation} if operation else {}
        super().__init__(
            message=message,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            error_code=ErrorCode.DATABASE_ERROR,
            details=details,
        )
