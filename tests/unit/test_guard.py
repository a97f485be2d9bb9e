"""
Unit tests for the permission guard.
"""

import pytest

from tenantguard.core.exceptions import (
    ActionDeniedError,
    InsufficientRoleError,
    MissingTargetIdError,
    ModuleDeniedError,
    OwnershipDeniedError,
    PlanConfigError,
    PlanLimitExceededError,
    RoleHierarchyViolationError,
)
from tenantguard.features.audit.sink import AuditEventKind
from tenantguard.features.permissions.guard import (
    accessible_modules,
    check_plan_limit,
    check_role_hierarchy,
    require_action,
    require_module,
    require_ownership_or_resource,
    require_roles,
)
from tenantguard.features.tenancy.resolver import OverrideSignals, resolve_tenant_context
from tenantguard.policy import Action, LimitName, Module, Role
from tenantguard.policy.plans import GIB
from tests.fakes import StubUsageCounter
from tests.factories import PrincipalFactory


def context_for(**principal_fields):
    return resolve_tenant_context(PrincipalFactory.build(**principal_fields))


def admin_context():
    return resolve_tenant_context(
        PrincipalFactory.super_admin(), OverrideSignals(bypass=True, target="42")
    )


@pytest.mark.unit
class TestRequireAction:

    @pytest.mark.parametrize("role,action", [
        (Role.COMPANY_ADMIN, Action.DELETE),
        (Role.MANAGER, Action.ASSIGN),
        (Role.USER, Action.UPDATE_OWN),
        (Role.VIEWER, Action.READ),
    ])
    def test_role_actions_allow(self, role, action, audit_sink):
        require_action(context_for(role=role), action, audit_sink=audit_sink)

        assert audit_sink.events == []

    def test_viewer_cannot_create(self, audit_sink):
        ctx = context_for(role=Role.VIEWER, tenant_id=10)

        with pytest.raises(ActionDeniedError):
            require_action(ctx, Action.CREATE, "leads", audit_sink=audit_sink)

        [event] = audit_sink.of_kind(AuditEventKind.ACTION_DENIED)
        assert event.tenant_id == 10
        assert event.details["action"] == "create"
        assert event.details["resource"] == "leads"
        assert event.details["role"] == "viewer"

    def test_user_cannot_delete(self, audit_sink):
        ctx = context_for(role=Role.USER, tenant_id=10)

        with pytest.raises(ActionDeniedError):
            require_action(ctx, Action.DELETE, audit_sink=audit_sink)

        [event] = audit_sink.of_kind(AuditEventKind.ACTION_DENIED)
        assert event.details["action"] == "delete"
        assert event.details["reason"] == "role"

    def test_top_level_allowed_everything(self):
        for action in Action:
            if action is not Action.ANY:
                require_action(admin_context(), action)

    def test_explicit_permissions_narrow_the_role(self, audit_sink):
        """Manager with permissions ['read'] is denied 'update' on 'leads'."""
        ctx = context_for(role=Role.MANAGER, permissions=("read",))

        with pytest.raises(ActionDeniedError):
            require_action(ctx, Action.UPDATE, "leads", audit_sink=audit_sink)

        [event] = audit_sink.events
        assert event.details["reason"] == "permission_list"

    @pytest.mark.parametrize("grants", [("update",), ("update:leads",), ("*",)])
    def test_explicit_permission_forms(self, grants):
        require_action(context_for(role=Role.MANAGER, permissions=grants), Action.UPDATE, "leads")

    def test_resource_grant_does_not_cover_other_resources(self):
        ctx = context_for(role=Role.MANAGER, permissions=("update:leads",))

        with pytest.raises(ActionDeniedError):
            require_action(ctx, Action.UPDATE, "clients")

    def test_explicit_permissions_cannot_widen_the_role(self):
        with pytest.raises(ActionDeniedError):
            require_action(context_for(role=Role.VIEWER, permissions=("*",)), Action.DELETE)

    def test_company_admin_permission_list_ignored(self):
        ctx = context_for(role=Role.COMPANY_ADMIN, permissions=("read",))

        require_action(ctx, Action.DELETE, "leads")

    def test_wildcard_action_not_guardable(self):
        with pytest.raises(ValueError):
            require_action(context_for(), Action.ANY)


@pytest.mark.unit
class TestRequireModule:

    def test_enabled_module_allowed(self):
        require_module(context_for(tenant_modules=frozenset({Module.LEADS})), Module.LEADS)

    def test_disabled_module_denied(self, audit_sink):
        ctx = context_for(tenant_modules=frozenset({Module.LEADS}))

        with pytest.raises(ModuleDeniedError):
            require_module(ctx, Module.FINANCE, audit_sink=audit_sink)

        [event] = audit_sink.of_kind(AuditEventKind.MODULE_DENIED)
        assert event.details["module"] == "finance"

    def test_wildcard_enables_every_module(self):
        require_module(context_for(tenant_modules=frozenset({Module.ANY})), Module.SUPPLIERS)

    def test_explicit_permissions_must_name_module(self):
        ctx = context_for(
            role=Role.USER,
            tenant_modules=frozenset({Module.LEADS, Module.SALES}),
            permissions=("leads", "read"),
        )

        require_module(ctx, Module.LEADS)
        with pytest.raises(ModuleDeniedError):
            require_module(ctx, Module.SALES)

    def test_top_level_bypasses_module_check(self):
        require_module(admin_context(), Module.FINANCE)


@pytest.mark.unit
class TestRoleHierarchy:

    def test_manager_cannot_create_company_admin(self, audit_sink):
        ctx = context_for(role=Role.MANAGER, tenant_id=10)

        with pytest.raises(RoleHierarchyViolationError):
            check_role_hierarchy(ctx, Role.COMPANY_ADMIN, audit_sink=audit_sink)

        [event] = audit_sink.of_kind(AuditEventKind.ROLE_HIERARCHY_VIOLATION)
        assert event.details["actor_level"] == 200
        assert event.details["target_level"] == 500

    def test_equal_level_denied(self):
        with pytest.raises(RoleHierarchyViolationError):
            check_role_hierarchy(context_for(role=Role.COMPANY_ADMIN), Role.COMPANY_ADMIN)

    def test_lower_level_allowed(self):
        check_role_hierarchy(context_for(role=Role.COMPANY_ADMIN), Role.MANAGER)

    def test_top_level_may_create_top_level(self):
        check_role_hierarchy(admin_context(), Role.SUPER_ADMIN)


@pytest.mark.unit
class TestPlanLimits:

    @pytest.fixture
    def starter(self):
        return context_for(role=Role.COMPANY_ADMIN, tenant_id=10, tenant_plan="starter")

    async def test_below_ceiling_allowed(self, starter):
        counter = StubUsageCounter({LimitName.USERS: 4})

        usage = await check_plan_limit(starter, LimitName.USERS, usage_counter=counter)

        assert (usage.current, usage.limit, usage.plan) == (4, 5, "starter")
        assert counter.calls == [(LimitName.USERS, 10)]

    async def test_at_ceiling_denied(self, starter, audit_sink):
        counter = StubUsageCounter({LimitName.USERS: 5})

        with pytest.raises(PlanLimitExceededError) as exc_info:
            await check_plan_limit(
                starter, LimitName.USERS, usage_counter=counter, audit_sink=audit_sink
            )

        assert exc_info.value.details == {"current": 5, "limit": 5, "plan": "starter"}
        assert exc_info.value.status_code == 402
        assert len(audit_sink.of_kind(AuditEventKind.PLAN_LIMIT_EXCEEDED)) == 1

    async def test_increment_counts_toward_ceiling(self, starter):
        counter = StubUsageCounter({LimitName.STORAGE: GIB - 100})

        await check_plan_limit(starter, LimitName.STORAGE, 100, usage_counter=counter)
        with pytest.raises(PlanLimitExceededError):
            await check_plan_limit(starter, LimitName.STORAGE, 101, usage_counter=counter)

    async def test_unlimited_plan_skips_counting(self):
        ctx = context_for(tenant_plan="enterprise")
        counter = StubUsageCounter({LimitName.USERS: 10_000})

        assert await check_plan_limit(ctx, LimitName.USERS, usage_counter=counter) is None
        assert counter.calls == []

    async def test_top_level_skips_counting(self):
        counter = StubUsageCounter({LimitName.USERS: 10_000})

        assert await check_plan_limit(admin_context(), LimitName.USERS, usage_counter=counter) is None
        assert counter.calls == []

    async def test_usage_failure_fails_open(self, starter):
        counter = StubUsageCounter()
        counter.error = RuntimeError("replica unavailable")

        assert await check_plan_limit(starter, LimitName.USERS, usage_counter=counter) is None

    async def test_usage_failure_propagates_when_fail_closed(self, starter):
        counter = StubUsageCounter()
        counter.error = RuntimeError("replica unavailable")

        with pytest.raises(RuntimeError):
            await check_plan_limit(
                starter, LimitName.USERS, usage_counter=counter, allow_on_usage_error=False
            )

    async def test_unknown_plan(self):
        ctx = context_for(tenant_plan="legacy-gold")

        with pytest.raises(PlanConfigError):
            await check_plan_limit(ctx, LimitName.USERS, usage_counter=StubUsageCounter())

    async def test_negative_increment_rejected(self, starter):
        with pytest.raises(ValueError):
            await check_plan_limit(starter, LimitName.USERS, -1, usage_counter=StubUsageCounter())


@pytest.mark.unit
class TestOwnership:

    def test_user_may_address_self(self):
        principal = PrincipalFactory.build(role=Role.USER, id=55)

        require_ownership_or_resource(resolve_tenant_context(principal), "55")

    def test_user_denied_other_user(self, audit_sink):
        ctx = context_for(role=Role.USER, id=55)

        with pytest.raises(OwnershipDeniedError):
            require_ownership_or_resource(ctx, 56, audit_sink=audit_sink)

        [event] = audit_sink.of_kind(AuditEventKind.OWNERSHIP_DENIED)
        assert event.details["target_id"] == "56"

    @pytest.mark.parametrize("role", [Role.MANAGER, Role.COMPANY_ADMIN])
    def test_elevated_roles_may_address_anyone(self, role):
        require_ownership_or_resource(context_for(role=role, id=55), 99)

    @pytest.mark.parametrize("target", [None, ""])
    def test_missing_target(self, target):
        with pytest.raises(MissingTargetIdError):
            require_ownership_or_resource(context_for(), target)


@pytest.mark.unit
class TestRolesAndModules:

    def test_require_roles(self):
        require_roles(context_for(role=Role.MANAGER), Role.MANAGER, Role.COMPANY_ADMIN)
        with pytest.raises(InsufficientRoleError):
            require_roles(context_for(role=Role.USER), Role.MANAGER)

    def test_accessible_modules_intersects_role_and_company(self):
        principal = PrincipalFactory.build(
            role=Role.USER,
            tenant_modules=frozenset({Module.LEADS, Module.FINANCE, Module.USERS}),
        )

        # finance and users are not open to the user role
        assert accessible_modules(principal) == {Module.LEADS}

    def test_accessible_modules_for_top_level(self):
        modules = accessible_modules(PrincipalFactory.super_admin())

        assert Module.COMPANIES in modules
        assert Module.ANY not in modules
