"""Tenant context model for runtime tenant configuration."""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, FrozenSet, Mapping, Optional, Tuple


def freeze(value: Any) -> Any:
    """Recursively convert mappings and sequences into read-only equivalents."""
    if isinstance(value, Mapping):
        return MappingProxyType({key: freeze(item) for key, item in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(freeze(item) for item in value)
    if isinstance(value, (set, frozenset)):
        return frozenset(value)
    return value


def thaw(value: Any) -> Any:
    """Inverse of freeze, for serializing into prompts or JSON."""
    if isinstance(value, Mapping):
        return {key: thaw(item) for key, item in value.items()}
    if isinstance(value, tuple):
        return [thaw(item) for item in value]
    if isinstance(value, frozenset):
        return sorted(value)
    return value


@dataclass(frozen=True)
class ToneProfile:
    """Tone parameters, each a normalized scalar in [0, 1]."""
    formality: float = 0.5
    enthusiasm: float = 0.5
    detail_level: float = 0.5

    def __post_init__(self):
        for name in ("formality", "enthusiasm", "detail_level"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(f"{name} must be a number, got {value!r}")
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be between 0 and 1, got {value}")
            object.__setattr__(self, name, float(value))


@dataclass(frozen=True)
class TenantContext:
    """
    Immutable per-request configuration for one tenant.

    Built once per request/session from tenant configuration and passed
    explicitly to every component. Nested mappings are read-only views, so a
    context can be shared across concurrent requests without locking.
    """
    tenant_id: str
    business_name: str
    tone: ToneProfile = field(default_factory=ToneProfile)
    pricing_rules: Mapping[str, Any] = field(default_factory=dict)  # service_type -> rule
    allowed_tools: FrozenSet[str] = frozenset()
    service_types: Tuple[str, ...] = ()
    signature: str = ""
    templates: Mapping[str, str] = field(default_factory=dict)  # category -> template override
    llm_model: Optional[str] = None  # per-tenant model override

    def __post_init__(self):
        if not self.tenant_id:
            raise ValueError("tenant_id is required")
        object.__setattr__(self, "pricing_rules", freeze(self.pricing_rules))
        object.__setattr__(self, "templates", freeze(self.templates))
        object.__setattr__(self, "allowed_tools", frozenset(self.allowed_tools))
        object.__setattr__(self, "service_types", tuple(self.service_types))

    def allows_tool(self, tool_name: str) -> bool:
        return tool_name in self.allowed_tools
