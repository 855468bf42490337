"""Tool execution engine for the agent loop."""

import asyncio
import json
import logging
import time
from typing import Any, Dict, List, Optional

from replyhub.infra.error_handler import ToolExecutionError, ToolNotPermittedError
from replyhub.infra.metrics import tool_call_duration, tool_calls_total
from replyhub.infra.timeout import TOOL_EXECUTION_TIMEOUT
from replyhub.logging.event_logger import log_tool_call
from replyhub.models.model_reply import ToolInvocation
from replyhub.models.tenant import TenantContext
from replyhub.models.tool import ToolCall, ToolDefinition
from replyhub.services.tool_registry import ToolRegistry

logger = logging.getLogger(__name__)

_JSON_TYPES = {
    "string": (str,),
    "number": (int, float),
    "integer": (int,),
    "boolean": (bool,),
    "array": (list, tuple),
    "object": (dict,),
}


def validate_tool_arguments(tool_def: ToolDefinition, args: Dict[str, Any]) -> List[str]:
    """
    Validate arguments against the tool's parameter schema.

    Checks required parameters, unknown parameters (when
    additionalProperties is false) and top-level JSON types.

    Returns:
        List of problems (empty if the arguments are valid)
    """
    schema = tool_def.parameters_schema or {}
    properties: Dict[str, Any] = schema.get("properties", {})
    problems = []

    for name in schema.get("required", []):
        if name not in args or args[name] is None:
            problems.append(f"missing required parameter '{name}'")

    for name, value in args.items():
        prop = properties.get(name)
        if prop is None:
            if schema.get("additionalProperties") is False:
                problems.append(f"unknown parameter '{name}'")
            continue
        expected = prop.get("type")
        if expected not in _JSON_TYPES or value is None:
            continue
        # bool is an int subclass but never a valid number
        if isinstance(value, bool) and expected != "boolean":
            problems.append(f"parameter '{name}' must be {expected}")
        elif not isinstance(value, _JSON_TYPES[expected]):
            problems.append(f"parameter '{name}' must be {expected}")

    return problems


def summarize_result(result: Any, limit: int = 4000) -> str:
    """Serialize a tool result for the conversation, bounded in size."""
    encoded = json.dumps(result, default=str)
    if len(encoded) > limit:
        return encoded[:limit] + "...(truncated)"
    return encoded


async def execute_tool_call(
    tenant_ctx: TenantContext,
    registry: ToolRegistry,
    invocation: ToolInvocation,
    timeout: float = TOOL_EXECUTION_TIMEOUT,
    conversation_id: Optional[str] = None,
) -> ToolCall:
    """
    Execute one tool invocation for a tenant.

    Tool failures (unknown tool, invalid arguments, timeout, handler error)
    are recorded on the returned ToolCall so they can be shown to the model.

    Raises:
        ToolNotPermittedError: If the tenant may not call the tool
    """
    if not tenant_ctx.allows_tool(invocation.name):
        raise ToolNotPermittedError(invocation.name, tenant_ctx.tenant_id)

    call = ToolCall(call_id=invocation.call_id, name=invocation.name, arguments=invocation.arguments)
    start_time = time.monotonic()

    try:
        registered = registry.get(invocation.name)
        if registered is None:
            raise ToolExecutionError(invocation.name, "tool is not available")
        if not registered.definition.read_only:
            raise ToolExecutionError(invocation.name, "tool is not read-only")

        problems = validate_tool_arguments(registered.definition, invocation.arguments)
        if problems:
            raise ToolExecutionError(invocation.name, "; ".join(problems))

        try:
            call.result = await asyncio.wait_for(
                registered.handler(tenant_ctx, registry.data_source, dict(invocation.arguments)),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            raise ToolExecutionError(invocation.name, f"timed out after {timeout} seconds")
    except ToolExecutionError as e:
        call.error = e.message
    except Exception as e:
        logger.error(f"Tool {invocation.name} failed: {e}", exc_info=True)
        call.error = f"{invocation.name}: internal error"

    latency = time.monotonic() - start_time
    call.latency_ms = int(latency * 1000)
    status = "success" if call.succeeded else "failure"

    tool_calls_total.labels(tool_name=invocation.name, status=status).inc()
    tool_call_duration.labels(tool_name=invocation.name).observe(latency)
    log_tool_call(
        tenant_id=tenant_ctx.tenant_id,
        tool_name=invocation.name,
        arguments=invocation.arguments,
        status=status,
        error_message=call.error,
        latency_ms=call.latency_ms,
        conversation_id=conversation_id,
    )
    return call
