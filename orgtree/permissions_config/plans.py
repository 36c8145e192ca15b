from orgtree.exceptions import PlanNotFoundError

# Plan access matrix: which applications and modules each subscription plan
# grants. "*" as a module list means every module registered for the
# application. A users limit of -1 means unlimited.
ALL_MODULES = "*"
UNLIMITED = -1

PLAN_ACCESS_MATRIX = {
    "free": {
        "applications": ["crm", "accounting"],
        "modules": {
            "crm": ["leads", "contacts", "dashboard"],
            "accounting": ["dashboard", "general_ledger", "chart_of_accounts", "invoices", "customers", "reports"],
        },
        "limitations": {"users": 2},
    },
    "starter": {
        "applications": ["crm", "hr", "project_management", "accounting"],
        "modules": {
            "crm": ["leads", "contacts", "accounts", "opportunities", "dashboard"],
            "hr": ["employees", "leave", "dashboard"],
            "project_management": ["projects", "tasks", "team", "dashboard"],
            "accounting": [
                "dashboard", "general_ledger", "chart_of_accounts", "journal_entries",
                "invoices", "customers", "bills", "vendors", "banking", "tax", "reports",
            ],
        },
        "limitations": {"users": 10},
    },
    "professional": {
        "applications": ["crm", "hr", "project_management", "accounting"],
        "modules": {
            "crm": [
                "leads", "contacts", "accounts", "opportunities", "quotations", "invoices",
                "inventory", "product_orders", "tickets", "communications", "calendar", "dashboard",
            ],
            "hr": ["employees", "payroll", "leave", "dashboard"],
            "project_management": [
                "projects", "tasks", "sprints", "time_tracking", "team", "backlog",
                "documents", "reports", "calendar", "kanban", "dashboard",
            ],
            "accounting": ALL_MODULES,
        },
        "limitations": {"users": 50},
    },
    "enterprise": {
        "applications": ["crm", "hr", "affiliateConnect", "project_management", "operations", "accounting"],
        "modules": {
            "crm": ALL_MODULES,
            "hr": ALL_MODULES,
            "affiliateConnect": ALL_MODULES,
            "project_management": ALL_MODULES,
            "operations": ALL_MODULES,
            "accounting": ALL_MODULES,
        },
        "limitations": {"users": UNLIMITED},
    },
}


def get_plan_access(plan_id: str, matrix: dict | None = None) -> dict:
    """
    Returns the access definition for a plan.
    """
    plans = PLAN_ACCESS_MATRIX if matrix is None else matrix
    if plan_id not in plans:
        raise PlanNotFoundError(plan_id)
    return plans[plan_id]


def plan_max_users(plan_access: dict) -> int | None:
    users = plan_access.get("limitations", {}).get("users", UNLIMITED)
    return None if users == UNLIMITED else users
