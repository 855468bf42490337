"""Pipeline event logging as structured JSON records."""

import json
import logging
from typing import Any, Dict, Optional

logger = logging.getLogger("replyhub.events")

MAX_PAYLOAD_CHARS = 2000


def _truncate(payload: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    if not payload:
        return {}
    encoded = json.dumps(payload, default=str)
    if len(encoded) <= MAX_PAYLOAD_CHARS:
        return payload
    return {"truncated": True, "preview": encoded[:MAX_PAYLOAD_CHARS]}


def log_event(
    tenant_id: str,
    event_type: str,
    status: str = "success",
    latency_ms: Optional[int] = None,
    payload: Optional[Dict[str, Any]] = None,
    conversation_id: Optional[str] = None,
) -> None:
    """
    Emit one pipeline event.

    Args:
        tenant_id: Tenant ID
        event_type: Event type (e.g. 'message_classified', 'agent_run_completed')
        status: 'success' | 'failure' | 'fallback'
        latency_ms: Latency in milliseconds
        payload: Additional payload (truncated)
        conversation_id: Optional conversation ID
    """
    level = logging.INFO if status == "success" else logging.WARNING
    logger.log(
        level,
        event_type,
        extra={
            "tenant_id": tenant_id,
            "event_type": event_type,
            "status": status,
            "latency_ms": latency_ms,
            "conversation_id": conversation_id,
            "payload": _truncate(payload),
        },
    )


def log_tool_call(
    tenant_id: str,
    tool_name: str,
    arguments: Dict[str, Any],
    status: str = "success",
    error_message: Optional[str] = None,
    latency_ms: Optional[int] = None,
    conversation_id: Optional[str] = None,
) -> None:
    """
    Emit an audit record for one tool call.

    Error messages are truncated; arguments are logged after validation.
    """
    log_event(
        tenant_id=tenant_id,
        event_type="tool_call",
        status=status,
        latency_ms=latency_ms,
        conversation_id=conversation_id,
        payload={
            "tool_name": tool_name,
            "arguments": arguments,
            "error_message": error_message[:200] if error_message else None,
        },
    )
