from .entitlement import GrantResponse, ReconcileRequest, ReconcileResponse, ValidationReport
from .organization import (
    BulkOperationResponse,
    OrganizationCreate,
    OrganizationResponse,
    OrganizationTreeNode,
    OrganizationUpdate,
)
