"""
Immutable policy snapshot.

The role hierarchy, role actions, module access and plan tables are read at
request time but never mutated by requests. A reload builds a new snapshot
and swaps the module-level reference in one assignment; readers holding the
old snapshot keep a consistent view.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping

import structlog

from tenantguard.policy.plans import DEFAULT_PLANS, PlanPolicy
from tenantguard.policy.roles import Action, Module, Role

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class PolicySnapshot:
    role_levels: Mapping[Role, int]
    role_actions: Mapping[Role, frozenset[Action]]
    module_roles: Mapping[Module, frozenset[Role]]
    plans: Mapping[str, PlanPolicy]

    def level(self, role: Role) -> int:
        """Hierarchy level; roles missing from the table rank lowest."""
        return self.role_levels.get(role, 0)

    def actions_for(self, role: Role) -> frozenset[Action]:
        return self.role_actions.get(role, frozenset())

    def roles_for_module(self, module: Module) -> frozenset[Role]:
        return self.module_roles.get(module, frozenset())

    def plan(self, name: str | None) -> PlanPolicy | None:
        if name is None:
            return None
        return self.plans.get(name)


_ALL_ROLES = frozenset(Role)
_STAFF = frozenset({Role.SUPER_ADMIN, Role.COMPANY_ADMIN, Role.MANAGER, Role.USER})
_MANAGEMENT = frozenset({Role.SUPER_ADMIN, Role.COMPANY_ADMIN, Role.MANAGER})


DEFAULT_POLICY = PolicySnapshot(
    role_levels=MappingProxyType({
        Role.SUPER_ADMIN: 1000,
        Role.COMPANY_ADMIN: 500,
        Role.MANAGER: 200,
        Role.USER: 100,
        Role.VIEWER: 50,
    }),
    role_actions=MappingProxyType({
        Role.SUPER_ADMIN: frozenset({Action.ANY}),
        Role.COMPANY_ADMIN: frozenset({
            Action.CREATE, Action.READ, Action.UPDATE, Action.DELETE, Action.MANAGE,
        }),
        Role.MANAGER: frozenset({
            Action.CREATE, Action.READ, Action.UPDATE, Action.ASSIGN, Action.REPORT,
        }),
        Role.USER: frozenset({Action.CREATE, Action.READ, Action.UPDATE_OWN}),
        Role.VIEWER: frozenset({Action.READ}),
    }),
    module_roles=MappingProxyType({
        Module.DASHBOARD: _ALL_ROLES,
        Module.USERS: frozenset({Role.SUPER_ADMIN, Role.COMPANY_ADMIN}),
        Module.COMPANIES: frozenset({Role.SUPER_ADMIN}),
        Module.LEADS: _STAFF,
        Module.CLIENTS: _STAFF,
        Module.SALES: _STAFF,
        Module.PRODUCTS: _STAFF,
        Module.FINANCE: _MANAGEMENT,
        Module.SCHEDULE: _STAFF,
        Module.TICKETS: _STAFF,
        Module.SUPPLIERS: _MANAGEMENT,
        Module.ANALYTICS: _MANAGEMENT,
        Module.GAMIFICATION: _STAFF,
        Module.NOTIFICATIONS: _STAFF,
    }),
    plans=DEFAULT_PLANS,
)

_current: PolicySnapshot = DEFAULT_POLICY


def get_policy() -> PolicySnapshot:
    """Current policy snapshot. Callers should fetch it once per decision."""
    return _current


def install_policy(snapshot: PolicySnapshot) -> PolicySnapshot:
    """
    Replace the active snapshot atomically.

    Deployment-time operation; returns the previous snapshot.
    """
    global _current
    previous = _current
    _current = snapshot
    logger.info(
        "policy_installed",
        roles=len(snapshot.role_levels),
        plans=sorted(snapshot.plans),
    )
    return previous
