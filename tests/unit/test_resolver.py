"""
Unit tests for tenant context resolution and the query scoping helpers.
"""

from types import SimpleNamespace

import pytest
from sqlalchemy import select

from tenantguard.config import settings
from tenantguard.core.exceptions import (
    CompanyAccessDeniedError,
    InsufficientRoleError,
    InvalidTenantIdError,
    MissingTargetTenantError,
    TenantInactiveError,
)
from tenantguard.features.audit.sink import AuditEventKind
from tenantguard.features.tenancy.dependencies import get_tenant_context
from tenantguard.features.tenancy.resolver import (
    OverrideSignals,
    TenantScope,
    parse_override_signals,
    parse_tenant_id,
    resolve_admin_context,
    resolve_tenant_context,
    validate_company_id,
)
from tenantguard.models import User
from tenantguard.models.tenant import TenantStatus
from tenantguard.policy import Role
from tests.factories import PrincipalFactory


def bypass_to(target: str | None) -> OverrideSignals:
    return OverrideSignals(bypass=True, target=target)


@pytest.mark.unit
class TestResolveTenantContext:
    """Resolution rules per role and override signals."""

    @pytest.mark.parametrize(
        "role", [Role.COMPANY_ADMIN, Role.MANAGER, Role.USER, Role.VIEWER]
    )
    def test_non_top_level_ignores_override(self, role, audit_sink):
        principal = PrincipalFactory.build(role=role, tenant_id=10)

        ctx = resolve_tenant_context(principal, bypass_to("42"), audit_sink=audit_sink)

        assert ctx.tenant_id == 10
        assert ctx.bypass is False
        assert ctx.scope is TenantScope.ISOLATED
        assert audit_sink.events == []

    def test_top_level_override_switches_tenant_and_audits(self, audit_sink):
        admin = PrincipalFactory.super_admin()

        ctx = resolve_tenant_context(
            admin, bypass_to("42"), endpoint="GET /api/v1/users", audit_sink=audit_sink
        )

        assert ctx.tenant_id == 42
        assert ctx.bypass is True
        assert ctx.scope is TenantScope.OVERRIDE

        [event] = audit_sink.of_kind(AuditEventKind.TENANT_OVERRIDE)
        assert event.principal_id == admin.id
        assert event.tenant_id == 42
        assert event.endpoint == "GET /api/v1/users"
        assert event.details["original_tenant_id"] is None
        assert event.details["target_tenant_id"] == 42

    def test_top_level_without_bypass_keeps_own_tenant(self, audit_sink):
        admin = PrincipalFactory.super_admin()

        ctx = resolve_tenant_context(
            admin, OverrideSignals(target="42"), audit_sink=audit_sink
        )

        assert ctx.tenant_id is None
        assert ctx.bypass is False
        assert audit_sink.events == []

    @pytest.mark.parametrize("target", [None, "0"])
    def test_bypass_without_target_is_global(self, target, audit_sink):
        admin = PrincipalFactory.super_admin()

        ctx = resolve_tenant_context(admin, bypass_to(target), audit_sink=audit_sink)

        assert ctx.tenant_id is None
        assert ctx.bypass is True
        assert ctx.is_global
        [event] = audit_sink.events
        assert event.details["scope"] == "global"

    @pytest.mark.parametrize("target", ["abc", "-4", "1.5"])
    def test_malformed_target_rejected(self, target, audit_sink):
        admin = PrincipalFactory.super_admin()

        with pytest.raises(InvalidTenantIdError):
            resolve_tenant_context(admin, bypass_to(target), audit_sink=audit_sink)
        assert audit_sink.events == []

    @pytest.mark.parametrize("status", [TenantStatus.SUSPENDED, TenantStatus.INACTIVE])
    def test_inactive_company_rejected(self, status):
        principal = PrincipalFactory.build(role=Role.USER, tenant_status=status)

        with pytest.raises(TenantInactiveError):
            resolve_tenant_context(principal)

    def test_member_without_company_treated_as_inactive(self):
        principal = PrincipalFactory.build(role=Role.MANAGER, tenant_id=None, tenant_status=None)

        with pytest.raises(TenantInactiveError):
            resolve_tenant_context(principal)

    def test_override_into_suspended_company_allowed(self):
        admin = PrincipalFactory.super_admin()

        ctx = resolve_tenant_context(admin, bypass_to("5"))

        assert ctx.tenant_id == 5


@pytest.mark.unit
class TestOverrideSignals:

    def test_headers_parsed(self):
        signals = parse_override_signals({
            settings.bypass_header: "True",
            settings.target_tenant_header: " 42 ",
        })

        assert signals == OverrideSignals(bypass=True, target="42")

    def test_only_literal_true_enables_bypass(self):
        assert parse_override_signals({settings.bypass_header: "1"}).bypass is False
        assert parse_override_signals({}).present is False

    @pytest.mark.parametrize("raw,expected", [("7", 7), (7, 7), (None, None)])
    def test_parse_tenant_id(self, raw, expected):
        assert parse_tenant_id(raw) == expected

    @pytest.mark.parametrize("raw", ["0", "x", "-1", True])
    def test_parse_tenant_id_rejects(self, raw):
        with pytest.raises(InvalidTenantIdError):
            parse_tenant_id(raw)


@pytest.mark.unit
class TestScopingHelpers:
    """Query augmentation with the resolved tenant."""

    def test_where_added_when_absent(self):
        ctx = resolve_tenant_context(PrincipalFactory.build(tenant_id=10))

        sql, params = ctx.scope_sql("SELECT * FROM leads")

        assert sql == "SELECT * FROM leads WHERE company_id = :tenant_scope_id"
        assert params == {"tenant_scope_id": 10}

    def test_and_added_when_where_present(self):
        ctx = resolve_tenant_context(PrincipalFactory.build(tenant_id=10))

        sql, params = ctx.scope_sql("SELECT * FROM leads where status = :s;", {"s": "open"})

        assert sql == "SELECT * FROM leads where status = :s AND company_id = :tenant_scope_id"
        assert params == {"s": "open", "tenant_scope_id": 10}

    def test_where_inside_identifier_not_mistaken(self):
        ctx = resolve_tenant_context(PrincipalFactory.build(tenant_id=10))

        sql, _ = ctx.scope_sql("SELECT somewhere FROM leads")

        assert sql.endswith("WHERE company_id = :tenant_scope_id")

    def test_reserved_parameter_name(self):
        ctx = resolve_tenant_context(PrincipalFactory.build(tenant_id=10))

        with pytest.raises(ValueError):
            ctx.scope_sql("SELECT 1", {"tenant_scope_id": 3})

    def test_global_scope_leaves_statement_unchanged(self):
        ctx = resolve_tenant_context(PrincipalFactory.super_admin(), bypass_to(None))

        assert ctx.scope_sql("SELECT * FROM leads", {"a": 1}) == ("SELECT * FROM leads", {"a": 1})

    def test_scope_select(self):
        ctx = resolve_tenant_context(PrincipalFactory.build(tenant_id=10))

        statement = ctx.scope_select(select(User.id), User.company_id)

        compiled = statement.compile()
        assert "users.company_id = " in str(compiled)
        assert 10 in compiled.params.values()

    def test_scope_values(self):
        ctx = resolve_tenant_context(PrincipalFactory.build(tenant_id=10))

        assert ctx.scope_values({"name": "Lead"}) == {"name": "Lead", "company_id": 10}

    def test_scope_values_requires_a_company(self):
        ctx = resolve_tenant_context(PrincipalFactory.super_admin(), bypass_to(None))

        with pytest.raises(MissingTargetTenantError):
            ctx.scope_values({"name": "Lead"})


@pytest.mark.unit
class TestAdminContextAndCompanyIds:

    def test_admin_context_requires_top_level(self):
        with pytest.raises(InsufficientRoleError):
            resolve_admin_context(PrincipalFactory.build(role=Role.COMPANY_ADMIN), None)

    def test_admin_context_with_target(self, audit_sink):
        ctx = resolve_admin_context(PrincipalFactory.super_admin(), "9", audit_sink=audit_sink)

        assert (ctx.tenant_id, ctx.scope) == (9, TenantScope.OVERRIDE)
        assert len(audit_sink.of_kind(AuditEventKind.TENANT_OVERRIDE)) == 1

    def test_own_company_id_accepted(self):
        principal = PrincipalFactory.build(tenant_id=10)

        assert validate_company_id("10", principal) == 10

    def test_foreign_company_id_denied(self):
        principal = PrincipalFactory.build(role=Role.COMPANY_ADMIN, tenant_id=10)

        with pytest.raises(CompanyAccessDeniedError):
            validate_company_id("11", principal)

    def test_top_level_may_address_any_company(self):
        assert validate_company_id(11, PrincipalFactory.super_admin()) == 11

    @pytest.mark.parametrize("raw", ["abc", "0", "-2"])
    def test_malformed_company_id(self, raw):
        with pytest.raises(InvalidTenantIdError):
            validate_company_id(raw, PrincipalFactory.build())


def fake_request(headers: dict[str, str]) -> SimpleNamespace:
    return SimpleNamespace(
        state=SimpleNamespace(),
        headers=headers,
        method="GET",
        url=SimpleNamespace(path="/api/v1/users"),
    )


@pytest.mark.unit
class TestTenantContextDependency:

    async def test_resolution_is_idempotent_within_a_request(self, audit_sink):
        admin = PrincipalFactory.super_admin()
        request = fake_request({settings.bypass_header: "true", settings.target_tenant_header: "42"})

        first = await get_tenant_context(request, admin, audit_sink)
        second = await get_tenant_context(request, admin, audit_sink)

        assert second is first
        assert request.state.tenant_id == 42
        assert request.state.tenant_bypass is True
        assert len(audit_sink.of_kind(AuditEventKind.TENANT_OVERRIDE)) == 1
