"""Registry of read-only tools available to the agent loop."""

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Protocol, Sequence

from replyhub.infra.error_handler import ToolExecutionError
from replyhub.models.tenant import TenantContext, thaw
from replyhub.models.tool import ToolDefinition

logger = logging.getLogger(__name__)

MAX_AVAILABILITY_RANGE_DAYS = 62


class ToolDataSource(Protocol):
    """Read-only lookups provided by the surrounding booking system."""

    async def get_record(self, tenant_id: str, record_id: str) -> Optional[Dict[str, Any]]:
        ...

    async def get_available_slots(
        self, tenant_id: str, service_type: str, start_date: date, end_date: date
    ) -> List[str]:
        ...


class InMemoryToolDataSource:
    """
    Data source over plain dicts.

    ``records``: tenant_id -> record_id -> record
    ``slots``: tenant_id -> service_type -> ISO-8601 slot start strings
    """

    def __init__(
        self,
        records: Optional[Dict[str, Dict[str, Dict[str, Any]]]] = None,
        slots: Optional[Dict[str, Dict[str, List[str]]]] = None,
    ):
        self._records = records or {}
        self._slots = slots or {}

    async def get_record(self, tenant_id: str, record_id: str) -> Optional[Dict[str, Any]]:
        record = self._records.get(tenant_id, {}).get(record_id)
        return dict(record) if record is not None else None

    async def get_available_slots(
        self, tenant_id: str, service_type: str, start_date: date, end_date: date
    ) -> List[str]:
        slots = self._slots.get(tenant_id, {}).get(service_type, [])
        return sorted(
            slot for slot in slots
            if start_date <= date.fromisoformat(slot[:10]) <= end_date
        )


ToolHandler = Callable[[TenantContext, ToolDataSource, Dict[str, Any]], Awaitable[Dict[str, Any]]]


@dataclass(frozen=True)
class RegisteredTool:
    definition: ToolDefinition
    handler: ToolHandler


LOOKUP_RECORD = ToolDefinition(
    name="lookup_record",
    description="Look up a booking, customer or order record by its identifier.",
    parameters_schema={
        "type": "object",
        "properties": {
            "record_id": {"type": "string", "description": "Record identifier, e.g. a booking reference"},
        },
        "required": ["record_id"],
        "additionalProperties": False,
    },
)

CHECK_AVAILABILITY = ToolDefinition(
    name="check_availability",
    description="Check whether a service is available between two dates and list the free time slots.",
    parameters_schema={
        "type": "object",
        "properties": {
            "service_type": {"type": "string"},
            "start_date": {"type": "string", "description": "YYYY-MM-DD"},
            "end_date": {"type": "string", "description": "YYYY-MM-DD, inclusive"},
        },
        "required": ["service_type", "start_date", "end_date"],
        "additionalProperties": False,
    },
)

CALCULATE_PRICE = ToolDefinition(
    name="calculate_price",
    description="Calculate the price of a service for a quantity, with optional extras.",
    parameters_schema={
        "type": "object",
        "properties": {
            "service_type": {"type": "string"},
            "quantity": {"type": "number", "description": "Units of the service (hours, nights, people...)"},
            "options": {"type": "array", "items": {"type": "string"}},
        },
        "required": ["service_type", "quantity"],
        "additionalProperties": False,
    },
)


def _to_decimal(value: Any, name: str) -> Decimal:
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ToolExecutionError("calculate_price", f"invalid {name}: {value!r}")


def calculate_price(
    pricing_rules: Mapping[str, Any],
    service_type: str,
    quantity: float,
    options: Sequence[str] = (),
) -> Dict[str, Any]:
    """
    Price a service from the tenant pricing table.

    A rule may define ``base_price``, ``unit_price``, ``unit``, ``options``
    (name -> flat surcharge), ``minimum_charge`` and ``currency``.
    amount = max(base + unit_price * quantity + surcharges, minimum_charge)
    """
    rule = pricing_rules.get(service_type)
    if rule is None:
        raise ToolExecutionError("calculate_price", f"unknown service type '{service_type}'")
    rule = thaw(rule)

    qty = _to_decimal(quantity, "quantity")
    if qty < 0:
        raise ToolExecutionError("calculate_price", "quantity must not be negative")

    base = _to_decimal(rule.get("base_price", 0), "base_price")
    unit_price = _to_decimal(rule.get("unit_price", 0), "unit_price")
    available_options = rule.get("options") or {}

    breakdown = [{"item": "base", "amount": float(base)}]
    if unit_price:
        breakdown.append({"item": f"{qty} x {rule.get('unit', 'unit')}", "amount": float(unit_price * qty)})

    surcharges = Decimal("0")
    for option in options:
        if option not in available_options:
            raise ToolExecutionError("calculate_price", f"unknown option '{option}' for '{service_type}'")
        surcharge = _to_decimal(available_options[option], f"option {option}")
        surcharges += surcharge
        breakdown.append({"item": option, "amount": float(surcharge)})

    amount = base + unit_price * qty + surcharges
    minimum = _to_decimal(rule.get("minimum_charge", 0), "minimum_charge")
    if amount < minimum:
        breakdown.append({"item": "minimum charge adjustment", "amount": float(minimum - amount)})
        amount = minimum

    return {
        "service_type": service_type,
        "quantity": float(qty),
        "amount": float(amount.quantize(Decimal("0.01"))),
        "currency": rule.get("currency", "EUR"),
        "breakdown": breakdown,
    }


def _parse_date(value: str, name: str) -> date:
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        raise ToolExecutionError("check_availability", f"{name} must be YYYY-MM-DD, got {value!r}")


async def _lookup_record(tenant_ctx: TenantContext, data_source: ToolDataSource, args: Dict[str, Any]) -> Dict[str, Any]:
    record = await data_source.get_record(tenant_ctx.tenant_id, args["record_id"])
    if record is None:
        return {"found": False, "record_id": args["record_id"]}
    return {"found": True, "record": record}


async def _check_availability(tenant_ctx: TenantContext, data_source: ToolDataSource, args: Dict[str, Any]) -> Dict[str, Any]:
    start = _parse_date(args["start_date"], "start_date")
    end = _parse_date(args["end_date"], "end_date")
    if end < start:
        raise ToolExecutionError("check_availability", "end_date is before start_date")
    if end - start > timedelta(days=MAX_AVAILABILITY_RANGE_DAYS):
        raise ToolExecutionError("check_availability", f"date range exceeds {MAX_AVAILABILITY_RANGE_DAYS} days")

    slots = await data_source.get_available_slots(tenant_ctx.tenant_id, args["service_type"], start, end)
    return {"available": bool(slots), "slots": slots}


async def _calculate_price(tenant_ctx: TenantContext, data_source: ToolDataSource, args: Dict[str, Any]) -> Dict[str, Any]:
    return calculate_price(
        tenant_ctx.pricing_rules,
        args["service_type"],
        args["quantity"],
        args.get("options") or (),
    )


BUILTIN_TOOLS: List[RegisteredTool] = [
    RegisteredTool(LOOKUP_RECORD, _lookup_record),
    RegisteredTool(CHECK_AVAILABILITY, _check_availability),
    RegisteredTool(CALCULATE_PRICE, _calculate_price),
]


class ToolRegistry:
    """Tools known to the platform; tenants see the subset they are allowed."""

    def __init__(self, data_source: ToolDataSource, tools: Optional[Sequence[RegisteredTool]] = None):
        self.data_source = data_source
        self._tools: Dict[str, RegisteredTool] = {}
        for tool in BUILTIN_TOOLS if tools is None else tools:
            self.register(tool)

    def register(self, tool: RegisteredTool) -> None:
        if not tool.definition.read_only:
            raise ValueError(f"Tool '{tool.definition.name}' is not read-only and cannot be registered")
        self._tools[tool.definition.name] = tool

    def get(self, name: str) -> Optional[RegisteredTool]:
        return self._tools.get(name)

    def get_allowed_tools(self, tenant_ctx: TenantContext) -> List[ToolDefinition]:
        """
        Get tool definitions the tenant may call, in stable name order.

        Names in the tenant policy with no registered implementation are skipped.
        """
        allowed = []
        for name in sorted(tenant_ctx.allowed_tools):
            tool = self._tools.get(name)
            if tool is None:
                logger.warning(f"Tenant {tenant_ctx.tenant_id} allows unknown tool '{name}'")
                continue
            allowed.append(tool.definition)
        return allowed
