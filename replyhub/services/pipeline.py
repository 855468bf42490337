"""Inbound message pipeline: classify, then answer by template or by agent."""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from replyhub.factory import Services
from replyhub.infra.error_handler import (
    MalformedClassificationError,
    RequestCancelledError,
    ToolNotPermittedError,
)
from replyhub.infra.metrics import pipeline_requests_total
from replyhub.logging.event_logger import log_event
from replyhub.models.classification import Category, ClassificationResult
from replyhub.models.message import ConversationMessage
from replyhub.models.tenant import TenantContext
from replyhub.models.tool import ToolCall
from replyhub.services.response_generator import attach_signature

logger = logging.getLogger(__name__)


POLICY_VIOLATION_REPLY = (
    "Thank you for your message. "
    "A member of our team will look into your request and get back to you shortly."
)


class PipelineStatus(str, Enum):
    REPLIED = "replied"
    NO_REPLY = "no_reply"  # spam
    NEEDS_REVIEW = "needs_review"  # malformed classification
    POLICY_VIOLATION = "policy_violation"
    CANCELLED = "cancelled"


class Route(str, Enum):
    TEMPLATE = "template"
    AGENT = "agent"
    NONE = "none"


@dataclass
class PipelineResult:
    """Outcome of handling one inbound message."""
    status: PipelineStatus
    route: Route
    reply: Optional[str] = None
    classification: Optional[ClassificationResult] = None
    agent_state: Optional[str] = None
    tool_calls: List[ToolCall] = field(default_factory=list)
    error: Optional[str] = None
    latency_ms: int = 0


def choose_route(
    services: Services,
    tenant_ctx: TenantContext,
    classification: ClassificationResult,
    conversation_id: Optional[str],
) -> Route:
    """
    Pick the component that answers a classified message.

    General inquiries in a known conversation go to the agent when the tenant
    has at least one usable tool; spam is not answered; everything else uses
    the template generator.
    """
    if classification.category == Category.SPAM:
        return Route.NONE
    if (
        classification.category == Category.GENERAL_INQUIRY
        and conversation_id
        and services.registry.get_allowed_tools(tenant_ctx)
    ):
        return Route.AGENT
    return Route.TEMPLATE


async def handle_inbound_message(
    services: Services,
    tenant_ctx: TenantContext,
    text: str,
    conversation_id: Optional[str] = None,
    cancel_event: Optional[asyncio.Event] = None,
) -> PipelineResult:
    """
    Handle one inbound message end to end.

    Endpoint failures never surface here: each component has already applied
    its fallback. Malformed classifications and tool policy violations are
    returned as typed statuses so the caller can escalate.

    Args:
        services: Shared components
        tenant_ctx: Context of the tenant that owns the message
        text: Raw message text
        conversation_id: Optional conversation the message belongs to
        cancel_event: Set by the caller to abandon the request

    Returns:
        PipelineResult
    """
    async with services.semaphore:
        start_time = time.monotonic()
        result = await _process(services, tenant_ctx, text, conversation_id, cancel_event)
        result.latency_ms = int((time.monotonic() - start_time) * 1000)

    pipeline_requests_total.labels(route=result.route.value, status=result.status.value).inc()
    log_event(
        tenant_id=tenant_ctx.tenant_id,
        event_type="inbound_message_handled",
        status="success" if result.status in (PipelineStatus.REPLIED, PipelineStatus.NO_REPLY) else "failure",
        latency_ms=result.latency_ms,
        conversation_id=conversation_id,
        payload={
            "status": result.status.value,
            "route": result.route.value,
            "category": result.classification.category.value if result.classification else None,
            "is_fallback": result.classification.is_fallback if result.classification else None,
            "tool_calls": len(result.tool_calls),
        },
    )
    return result


async def _process(
    services: Services,
    tenant_ctx: TenantContext,
    text: str,
    conversation_id: Optional[str],
    cancel_event: Optional[asyncio.Event],
) -> PipelineResult:
    try:
        classification = await services.classifier.classify(text, tenant_ctx)
    except MalformedClassificationError as e:
        return PipelineResult(status=PipelineStatus.NEEDS_REVIEW, route=Route.NONE, error=e.message)

    route = choose_route(services, tenant_ctx, classification, conversation_id)

    if route == Route.NONE:
        return PipelineResult(status=PipelineStatus.NO_REPLY, route=route, classification=classification)

    if route == Route.AGENT:
        try:
            run = await services.orchestrator.run(tenant_ctx, conversation_id, text, cancel_event=cancel_event)
        except ToolNotPermittedError as e:
            logger.warning(
                f"Policy violation for tenant {tenant_ctx.tenant_id}: {e.message}",
                extra={"tenant_id": tenant_ctx.tenant_id, "conversation_id": conversation_id},
            )
            return PipelineResult(
                status=PipelineStatus.POLICY_VIOLATION,
                route=route,
                reply=attach_signature(POLICY_VIOLATION_REPLY, tenant_ctx.signature),
                classification=classification,
                error=e.message,
            )
        except RequestCancelledError as e:
            return PipelineResult(
                status=PipelineStatus.CANCELLED,
                route=route,
                classification=classification,
                error=e.message,
            )

        return PipelineResult(
            status=PipelineStatus.REPLIED,
            route=route,
            reply=attach_signature(run.answer, tenant_ctx.signature),
            classification=classification,
            agent_state=run.state.value,
            tool_calls=run.tool_calls,
        )

    reply = await services.response_generator.generate(classification, tenant_ctx)
    if conversation_id:
        await services.memory.extend(
            tenant_ctx,
            conversation_id,
            [ConversationMessage.user(text), ConversationMessage.assistant(reply)],
        )
    return PipelineResult(
        status=PipelineStatus.REPLIED,
        route=route,
        reply=reply,
        classification=classification,
    )
