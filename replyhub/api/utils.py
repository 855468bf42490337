"""API dependencies and response conversion."""

import asyncio
from typing import Optional

from fastapi import HTTPException, Request

from replyhub.api.models import ClassificationResponse, InboundMessageResponse, ToolCallResponse
from replyhub.factory import Services
from replyhub.infra.error_handler import TenantNotFoundError
from replyhub.models.classification import ClassificationResult
from replyhub.models.tenant import TenantContext
from replyhub.services.pipeline import PipelineResult
from replyhub.services.tenant_context_service import get_tenant_context


def get_services(request: Request) -> Services:
    """Services built at startup and stored on the application state."""
    services: Optional[Services] = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=503, detail="Service not initialized")
    return services


async def get_tenant(tenant_id: str) -> TenantContext:
    """Load the tenant's context; a fresh immutable value per request."""
    try:
        return await asyncio.to_thread(get_tenant_context, tenant_id)
    except TenantNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)


def to_classification_response(classification: ClassificationResult) -> ClassificationResponse:
    return ClassificationResponse(
        category=classification.category.value,
        confidence=classification.confidence,
        sentiment=classification.sentiment.value,
        extracted_fields=classification.extracted_fields,
        is_fallback=classification.is_fallback,
    )


def to_inbound_response(result: PipelineResult) -> InboundMessageResponse:
    return InboundMessageResponse(
        status=result.status.value,
        route=result.route.value,
        reply=result.reply,
        classification=to_classification_response(result.classification) if result.classification else None,
        agent_state=result.agent_state,
        tool_calls=[
            ToolCallResponse(
                name=call.name,
                arguments=call.arguments,
                succeeded=call.succeeded,
                error=call.error,
                latency_ms=call.latency_ms,
            )
            for call in result.tool_calls
        ],
        error=result.error,
        latency_ms=result.latency_ms,
    )
