"""
Subscription plan policy.

Each plan maps resource limits to a numeric ceiling or to ``UNLIMITED``,
and lists the modules and features it enables.
"""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Final, Mapping

from tenantguard.policy.roles import Module


class _Unlimited:
    """Sentinel ceiling that disables a limit check."""

    _instance: "_Unlimited | None" = None

    def __new__(cls) -> "_Unlimited":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNLIMITED"

    def __reduce__(self) -> str:
        return "UNLIMITED"


UNLIMITED: Final = _Unlimited()

Ceiling = int | _Unlimited

ANY_FEATURE = "*"

GIB = 1024 * 1024 * 1024


class LimitName(str, Enum):
    """Resources with plan ceilings."""

    USERS = "users"
    STORAGE = "storage"


@dataclass(frozen=True)
class PlanPolicy:
    name: str
    limits: Mapping[LimitName, Ceiling]
    modules: frozenset[Module] = field(default_factory=frozenset)
    features: frozenset[str] = field(default_factory=frozenset)

    def ceiling(self, limit: LimitName) -> Ceiling:
        """Ceiling for ``limit``; a limit the plan does not mention is unlimited."""
        return self.limits.get(limit, UNLIMITED)

    def allows_module(self, module: Module) -> bool:
        return Module.ANY in self.modules or module in self.modules

    def has_feature(self, feature: str) -> bool:
        return ANY_FEATURE in self.features or feature in self.features


def _plan(
    name: str,
    users: Ceiling,
    storage: Ceiling,
    modules: set[Module],
    features: set[str],
) -> PlanPolicy:
    return PlanPolicy(
        name=name,
        limits=MappingProxyType({LimitName.USERS: users, LimitName.STORAGE: storage}),
        modules=frozenset(modules),
        features=frozenset(features),
    )


DEFAULT_PLANS: Mapping[str, PlanPolicy] = MappingProxyType({
    "starter": _plan(
        "starter",
        users=5,
        storage=1 * GIB,
        modules={
            Module.DASHBOARD, Module.LEADS, Module.CLIENTS,
            Module.SALES, Module.GAMIFICATION,
        },
        features={"basic_reporting", "email_notifications"},
    ),
    "professional": _plan(
        "professional",
        users=25,
        storage=5 * GIB,
        modules={
            Module.DASHBOARD, Module.LEADS, Module.CLIENTS, Module.SALES,
            Module.PRODUCTS, Module.FINANCE, Module.SCHEDULE, Module.TICKETS,
            Module.GAMIFICATION,
        },
        features={
            "advanced_reporting", "email_notifications",
            "sms_notifications", "api_access",
        },
    ),
    "enterprise": _plan(
        "enterprise",
        users=UNLIMITED,
        storage=UNLIMITED,
        modules={Module.ANY},
        features={ANY_FEATURE},
    ),
})
