"""Messages API router."""

import asyncio
import contextlib

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from replyhub.api.models import ClassificationResponse, InboundMessageRequest, InboundMessageResponse
from replyhub.api.utils import get_services, get_tenant, to_classification_response, to_inbound_response
from replyhub.factory import Services
from replyhub.infra.error_handler import MalformedClassificationError
from replyhub.models.tenant import TenantContext
from replyhub.services.pipeline import handle_inbound_message

router = APIRouter()

DISCONNECT_POLL_INTERVAL = 1.0


async def _watch_disconnect(request: Request, cancel_event: asyncio.Event) -> None:
    """Set ``cancel_event`` once the client goes away."""
    while not cancel_event.is_set():
        if await request.is_disconnected():
            cancel_event.set()
            return
        await asyncio.sleep(DISCONNECT_POLL_INTERVAL)


@router.post("/v1/tenants/{tenant_id}/messages", tags=["Messages"], response_model=InboundMessageResponse)
async def post_inbound_message(
    body: InboundMessageRequest,
    request: Request,
    tenant_ctx: TenantContext = Depends(get_tenant),
    services: Services = Depends(get_services),
):
    """
    Handle an inbound customer message.

    Processes the message through the pipeline:
    1. Classifies the message for the tenant
    2. Routes general inquiries with a conversation to the tool-using agent
    3. Answers everything else from a tone-adjusted template
    4. Returns the reply with classification and tool call details

    Abandoned requests stop consuming model calls at the next agent step.

    **Example Request:**
    ```json
    {
        "text": "Is the sauna free next Saturday?",
        "conversation_id": "conv-123"
    }
    ```
    """
    cancel_event = asyncio.Event()
    watcher = asyncio.create_task(_watch_disconnect(request, cancel_event))
    try:
        result = await handle_inbound_message(
            services,
            tenant_ctx,
            body.text,
            conversation_id=body.conversation_id,
            cancel_event=cancel_event,
        )
    finally:
        watcher.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await watcher

    return to_inbound_response(result)


@router.post("/v1/tenants/{tenant_id}/classify", tags=["Messages"], response_model=ClassificationResponse)
async def classify_message(
    body: InboundMessageRequest,
    tenant_ctx: TenantContext = Depends(get_tenant),
    services: Services = Depends(get_services),
):
    """
    Classify a message without generating a reply.

    Returns 422 when the model output violates the classification contract.
    """
    try:
        classification = await services.classifier.classify(body.text, tenant_ctx)
    except MalformedClassificationError as e:
        return JSONResponse(status_code=422, content={"detail": e.message, "raw_output": e.raw_output})
    return to_classification_response(classification)
