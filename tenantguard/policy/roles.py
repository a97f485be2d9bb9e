"""
Closed vocabularies for authorization.

Roles, actions and modules are enumerations. The wildcard ("any action",
"any module") is an explicit member rather than a magic string, although
its value stays ``"*"`` so that stored permission lists round-trip.
"""

from enum import Enum


class Role(str, Enum):
    """User roles, highest privilege first."""

    SUPER_ADMIN = "super_admin"
    COMPANY_ADMIN = "company_admin"
    MANAGER = "manager"
    USER = "user"
    VIEWER = "viewer"


# Unrestricted role: exempt from tenant scoping, hierarchy and plan checks
TOP_LEVEL_ROLE = Role.SUPER_ADMIN

# Role whose explicit permission list is never consulted
ADMINISTRATOR_ROLE = Role.COMPANY_ADMIN

# Lowest role treated as elevated for ownership checks
ELEVATED_ROLE = Role.MANAGER


class Action(str, Enum):
    """Actions a guarded route may attempt."""

    ANY = "*"
    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    UPDATE_OWN = "update_own"
    DELETE = "delete"
    MANAGE = "manage"
    ASSIGN = "assign"
    REPORT = "report"


class Module(str, Enum):
    """Functional areas a tenant can have enabled."""

    ANY = "*"
    DASHBOARD = "dashboard"
    USERS = "users"
    COMPANIES = "companies"
    LEADS = "leads"
    CLIENTS = "clients"
    SALES = "sales"
    PRODUCTS = "products"
    FINANCE = "finance"
    SCHEDULE = "schedule"
    TICKETS = "tickets"
    SUPPLIERS = "suppliers"
    ANALYTICS = "analytics"
    GAMIFICATION = "gamification"
    NOTIFICATIONS = "notifications"


def parse_modules(values: list[str] | tuple[str, ...] | None) -> frozenset[Module]:
    """Convert stored module names to members, dropping names no longer defined."""
    modules = set()
    for value in values or ():
        try:
            modules.add(Module(value))
        except ValueError:
            continue
    return frozenset(modules)
