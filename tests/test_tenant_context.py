"""Tests for tenant context model and service."""

import json
from types import MappingProxyType

import pytest
from sqlalchemy import text

from replyhub.infra.database import get_db_session, init_engine, init_schema
from replyhub.infra.error_handler import TenantNotFoundError
from replyhub.models.tenant import TenantContext, ToneProfile, thaw
from replyhub.services.tenant_context_service import build_tenant_context, get_tenant_context


@pytest.fixture
def tenant_db():
    init_engine("sqlite:///:memory:")
    init_schema()
    with get_db_session() as session:
        session.execute(
            text("""
                INSERT INTO tenants (id, business_name, signature, llm_model, formality, enthusiasm, detail_level, service_types)
                VALUES ('spa', 'Seaside Spa', 'The Spa team', 'gpt-4o', 0.9, 0.2, 0.4, :service_types)
            """),
            {"service_types": json.dumps(["massage", "sauna"])},
        )
        session.execute(
            text("INSERT INTO tenants (id, business_name) VALUES ('bistro', 'Harbour Bistro')")
        )
        session.execute(
            text("INSERT INTO tenant_pricing_rules (tenant_id, service_type, rule) VALUES ('spa', 'massage', :rule)"),
            {"rule": json.dumps({"unit_price": 60, "unit": "hour", "options": {"hot_stones": 15}})},
        )
        session.execute(
            text("""
                INSERT INTO tenant_tool_policies (tenant_id, tool_name, is_enabled)
                VALUES ('spa', 'lookup_record', TRUE), ('spa', 'calculate_price', FALSE),
                       ('bistro', 'check_availability', TRUE)
            """)
        )
        session.execute(
            text("INSERT INTO tenant_templates (tenant_id, category, template) VALUES ('spa', 'complaint', 'We are sorry.')")
        )


class TestTenantContextService:
    """Test tenant context loading."""

    def test_get_tenant_context_structure(self, tenant_db):
        """Test that get_tenant_context returns a fully populated TenantContext."""
        ctx = get_tenant_context("spa")

        assert isinstance(ctx, TenantContext)
        assert ctx.tenant_id == "spa"
        assert ctx.business_name == "Seaside Spa"
        assert ctx.signature == "The Spa team"
        assert ctx.llm_model == "gpt-4o"
        assert ctx.tone == ToneProfile(formality=0.9, enthusiasm=0.2, detail_level=0.4)
        assert ctx.service_types == ("massage", "sauna")
        assert thaw(ctx.pricing_rules) == {"massage": {"unit_price": 60, "unit": "hour", "options": {"hot_stones": 15}}}
        assert ctx.templates["complaint"] == "We are sorry."

    def test_only_enabled_tools_are_allowed(self, tenant_db):
        ctx = get_tenant_context("spa")
        assert ctx.allowed_tools == frozenset({"lookup_record"})

    def test_tenants_are_isolated(self, tenant_db):
        bistro = get_tenant_context("bistro")

        assert bistro.allowed_tools == frozenset({"check_availability"})
        assert dict(bistro.pricing_rules) == {}
        assert dict(bistro.templates) == {}
        assert bistro.service_types == ()
        assert bistro.tone == ToneProfile()

    def test_unknown_tenant(self, tenant_db):
        with pytest.raises(TenantNotFoundError) as exc_info:
            get_tenant_context("nope")
        assert exc_info.value.tenant_id == "nope"


class TestTenantContextModel:
    """TenantContext is deeply immutable."""

    def test_tenant_context_fields(self):
        """Test that TenantContext has all required fields."""
        ctx = build_tenant_context("test", {
            "business_name": "Test Co",
            "tone": {"formality": 1, "enthusiasm": 0},
            "pricing_rules": {"x": {"unit_price": 1, "options": {"a": 2}}},
            "allowed_tools": ["tool1"],
            "service_types": ["x"],
            "signature": "Test Co",
            "templates": {"payment": "Paid."},
        })

        assert ctx.tenant_id == "test"
        assert ctx.tone.formality == 1.0
        assert ctx.tone.detail_level == 0.5
        assert isinstance(ctx.pricing_rules, MappingProxyType)
        assert isinstance(ctx.pricing_rules["x"]["options"], MappingProxyType)
        assert isinstance(ctx.allowed_tools, frozenset)
        assert ctx.service_types == ("x",)
        assert ctx.llm_model is None

    def test_context_cannot_be_mutated(self, tenant_ctx):
        with pytest.raises(AttributeError):
            tenant_ctx.tenant_id = "other"
        with pytest.raises(TypeError):
            tenant_ctx.pricing_rules["massage"] = {}
        with pytest.raises(TypeError):
            tenant_ctx.pricing_rules["massage"]["options"]["free"] = 0

    def test_source_mapping_changes_do_not_leak(self):
        rules = {"massage": {"unit_price": 60}}
        ctx = TenantContext(tenant_id="t", business_name="T", pricing_rules=rules)

        rules["massage"]["unit_price"] = 1

        assert ctx.pricing_rules["massage"]["unit_price"] == 60

    @pytest.mark.parametrize("value", [-0.1, 1.1, "high", True])
    def test_tone_must_be_normalized(self, value):
        with pytest.raises(ValueError):
            ToneProfile(formality=value)

    def test_tenant_id_required(self):
        with pytest.raises(ValueError):
            TenantContext(tenant_id="", business_name="x")
