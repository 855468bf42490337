"""Pytest configuration and fixtures."""

import os

import pytest
from dotenv import load_dotenv

# Load test environment variables
load_dotenv()

# Set test environment
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DEBUG", "true")
os.environ["DATABASE_URL"] = "sqlite:///:memory:"

from replyhub.models.tenant import TenantContext, ToneProfile  # noqa: E402

from tests.fakes import FakeClock, SPA_PRICING  # noqa: E402


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def tenant_ctx():
    return TenantContext(
        tenant_id="tenant-a",
        business_name="Seaside Spa",
        tone=ToneProfile(formality=0.8, enthusiasm=0.3, detail_level=0.5),
        pricing_rules=SPA_PRICING,
        allowed_tools=frozenset({"lookup_record", "check_availability", "calculate_price"}),
        service_types=("massage", "sauna"),
        signature="Warm regards,\nThe Seaside Spa team",
    )


@pytest.fixture
def other_tenant_ctx():
    return TenantContext(
        tenant_id="tenant-b",
        business_name="Harbour Bistro",
        pricing_rules={"dinner": {"unit_price": 35, "unit": "guest"}},
        allowed_tools=frozenset({"lookup_record"}),
        service_types=("dinner",),
        signature="Harbour Bistro",
    )
