"""Service to load TenantContext from database."""

import json
from typing import Any, Dict, Mapping

from sqlalchemy import text

from replyhub.infra.database import get_db_session
from replyhub.infra.error_handler import TenantNotFoundError
from replyhub.models.tenant import TenantContext, ToneProfile


def _decode_json(value: Any, default: Any) -> Any:
    """JSON columns come back as str on SQLite and already decoded on PostgreSQL."""
    if value is None:
        return default
    if isinstance(value, (str, bytes)):
        return json.loads(value) if value else default
    return value


def build_tenant_context(tenant_id: str, settings: Mapping[str, Any]) -> TenantContext:
    """
    Build a TenantContext from a plain settings mapping.

    Recognized keys: business_name, tone (formality/enthusiasm/detail_level),
    pricing_rules, allowed_tools, service_types, signature, templates,
    llm_model. Missing keys take neutral defaults.
    """
    tone = settings.get("tone") or {}
    return TenantContext(
        tenant_id=tenant_id,
        business_name=settings.get("business_name") or tenant_id,
        tone=ToneProfile(
            formality=tone.get("formality", 0.5),
            enthusiasm=tone.get("enthusiasm", 0.5),
            detail_level=tone.get("detail_level", 0.5),
        ),
        pricing_rules=settings.get("pricing_rules") or {},
        allowed_tools=frozenset(settings.get("allowed_tools") or ()),
        service_types=tuple(settings.get("service_types") or ()),
        signature=settings.get("signature") or "",
        templates=settings.get("templates") or {},
        llm_model=settings.get("llm_model"),
    )


def get_tenant_context(tenant_id: str) -> TenantContext:
    """
    Load complete TenantContext for a tenant.

    Loads:
    - Tenant base settings (business name, signature, tone, model override)
    - Pricing rules per service type
    - Enabled tool policies
    - Per-category template overrides

    Raises:
        TenantNotFoundError: If no tenant row exists
    """
    with get_db_session(tenant_id) as session:
        # Load tenant base settings
        tenant_row = session.execute(
            text("""
                SELECT id, business_name, signature, llm_model,
                       formality, enthusiasm, detail_level, service_types
                FROM tenants
                WHERE id = :tenant_id
            """),
            {"tenant_id": tenant_id}
        ).fetchone()

        if not tenant_row:
            raise TenantNotFoundError(tenant_id)

        # Load pricing table
        pricing_rows = session.execute(
            text("""
                SELECT service_type, rule
                FROM tenant_pricing_rules
                WHERE tenant_id = :tenant_id
            """),
            {"tenant_id": tenant_id}
        ).fetchall()

        pricing_rules: Dict[str, Any] = {
            row.service_type: _decode_json(row.rule, {}) for row in pricing_rows
        }

        # Load allowed tools (from tenant_tool_policies)
        tool_rows = session.execute(
            text("""
                SELECT tool_name
                FROM tenant_tool_policies
                WHERE tenant_id = :tenant_id AND is_enabled = TRUE
            """),
            {"tenant_id": tenant_id}
        ).fetchall()

        # Load template overrides
        template_rows = session.execute(
            text("""
                SELECT category, template
                FROM tenant_templates
                WHERE tenant_id = :tenant_id
            """),
            {"tenant_id": tenant_id}
        ).fetchall()

        return build_tenant_context(
            tenant_id,
            {
                "business_name": tenant_row.business_name,
                "signature": tenant_row.signature,
                "llm_model": tenant_row.llm_model,
                "tone": {
                    "formality": tenant_row.formality,
                    "enthusiasm": tenant_row.enthusiasm,
                    "detail_level": tenant_row.detail_level,
                },
                "service_types": _decode_json(tenant_row.service_types, []),
                "pricing_rules": pricing_rules,
                "allowed_tools": [row.tool_name for row in tool_rows],
                "templates": {row.category: row.template for row in template_rows},
            },
        )
