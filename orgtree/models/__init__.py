from .entitlement import Application, ApplicationModule, ApplicationStatus, EntitlementGrant
from .organization import Organization, OrganizationType

__all__ = [
    "Application",
    "ApplicationModule",
    "ApplicationStatus",
    "EntitlementGrant",
    "Organization",
    "OrganizationType",
]
