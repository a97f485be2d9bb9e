"""
Authorization policy package.
"""

from tenantguard.policy.plans import (
    ANY_FEATURE,
    UNLIMITED,
    LimitName,
    PlanPolicy,
)
from tenantguard.policy.roles import (
    ADMINISTRATOR_ROLE,
    ELEVATED_ROLE,
    TOP_LEVEL_ROLE,
    Action,
    Module,
    Role,
    parse_modules,
)
from tenantguard.policy.snapshot import (
    DEFAULT_POLICY,
    PolicySnapshot,
    get_policy,
    install_policy,
)

__all__ = [
    # Vocabulary
    "Role",
    "Action",
    "Module",
    "TOP_LEVEL_ROLE",
    "ADMINISTRATOR_ROLE",
    "ELEVATED_ROLE",
    "parse_modules",
    # Plans
    "PlanPolicy",
    "LimitName",
    "UNLIMITED",
    "ANY_FEATURE",
    # Snapshot
    "PolicySnapshot",
    "DEFAULT_POLICY",
    "get_policy",
    "install_policy",
]
