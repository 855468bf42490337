"""Template-based reply generation with model tone adjustment."""

import logging
from typing import Any, Dict, Mapping

from replyhub.infra.error_handler import CircuitOpenError, EndpointError
from replyhub.infra.metrics import responses_generated_total
from replyhub.models.classification import Category, ClassificationResult
from replyhub.models.model_reply import FinalText
from replyhub.models.tenant import TenantContext
from replyhub.services.model_client import ResilientModelClient
from replyhub.services.prompt_builder import build_tone_messages

logger = logging.getLogger(__name__)


DEFAULT_TEMPLATES: Dict[Category, str] = {
    Category.BOOKING_REQUEST: (
        "Hi {customer_name},\n\n"
        "Thank you for your booking request for {service_type} on {date}. "
        "We are checking availability and will confirm the details with you shortly."
    ),
    Category.BOOKING_MODIFICATION: (
        "Hi {customer_name},\n\n"
        "We have received your request to change {booking_reference}. "
        "We will review the new details ({date}) and get back to you with a confirmation."
    ),
    Category.GENERAL_INQUIRY: (
        "Hi {customer_name},\n\n"
        "Thank you for getting in touch with {business_name}. "
        "We have received your question and will reply with the information you need."
    ),
    Category.COMPLAINT: (
        "Hi {customer_name},\n\n"
        "We are sorry to hear about your experience. "
        "Your message has been passed to our team, who will look into it and contact you personally."
    ),
    Category.CANCELLATION: (
        "Hi {customer_name},\n\n"
        "We have received your cancellation request for {booking_reference}. "
        "We will process it and send you a confirmation, including any refund details."
    ),
    Category.PAYMENT: (
        "Hi {customer_name},\n\n"
        "Thank you for your message about payment for {booking_reference}. "
        "We will check the details and follow up with you shortly."
    ),
}

# Neutral wording for placeholders the classification did not extract
FIELD_DEFAULTS: Dict[str, str] = {
    "customer_name": "there",
    "service_type": "our services",
    "date": "the requested date",
    "start_date": "the requested date",
    "end_date": "the requested date",
    "time": "the requested time",
    "booking_reference": "your booking",
    "party_size": "your group",
    "quantity": "the requested amount",
    "amount": "the amount",
}


class _TemplateFields(dict):
    """Substitution mapping that fills unknown placeholders with neutral wording."""

    def __missing__(self, key: str) -> str:
        return FIELD_DEFAULTS.get(key, "")


def render_template(template: str, fields: Mapping[str, Any], tenant_ctx: TenantContext) -> str:
    values = _TemplateFields({"business_name": tenant_ctx.business_name})
    for key, value in fields.items():
        if value is None or value == "":
            continue
        values[key] = str(value)
    return template.format_map(values)


def attach_signature(body: str, signature: str) -> str:
    """Append the tenant's fixed signature verbatim."""
    if not signature:
        return body
    return f"{body.rstrip()}\n\n{signature}"


def populate_template(classification: ClassificationResult, tenant_ctx: TenantContext) -> str:
    """
    Select the template for the category and substitute extracted fields.

    A tenant override that cannot be rendered falls back to the default template.
    """
    default_template = DEFAULT_TEMPLATES[classification.category]
    template = tenant_ctx.templates.get(classification.category.value, default_template)
    try:
        return render_template(template, classification.extracted_fields, tenant_ctx)
    except (ValueError, IndexError, KeyError, AttributeError) as e:
        logger.error(
            f"Invalid template override for tenant {tenant_ctx.tenant_id} "
            f"category {classification.category.value}: {e}",
            extra={"tenant_id": tenant_ctx.tenant_id},
        )
        return render_template(default_template, classification.extracted_fields, tenant_ctx)


class ResponseGenerator:
    """Turns a classification plus tenant tone into final reply text."""

    def __init__(self, model_client: ResilientModelClient):
        self.model_client = model_client

    async def generate(self, classification: ClassificationResult, tenant_ctx: TenantContext) -> str:
        """
        Generate the reply for a classified message.

        Spam gets no reply (empty string). When the tone-adjustment call fails
        the populated template is used unmodified. The signature is always
        appended by this method, never produced by the model.
        """
        category = classification.category
        if category == Category.SPAM:
            responses_generated_total.labels(category=category.value, mode="skipped").inc()
            return ""

        draft = populate_template(classification, tenant_ctx)

        try:
            reply = await self.model_client.complete(
                build_tone_messages(tenant_ctx, draft),
                model=tenant_ctx.llm_model,
            )
        except (CircuitOpenError, EndpointError) as e:
            logger.warning(
                f"Tone adjustment unavailable for tenant {tenant_ctx.tenant_id}, using template: {e.message}",
                extra={"tenant_id": tenant_ctx.tenant_id},
            )
            responses_generated_total.labels(category=category.value, mode="template_fallback").inc()
            return attach_signature(draft, tenant_ctx.signature)

        if isinstance(reply, FinalText) and reply.text.strip():
            responses_generated_total.labels(category=category.value, mode="restyled").inc()
            return attach_signature(reply.text.strip(), tenant_ctx.signature)

        logger.warning(
            f"Tone adjustment returned no usable text for tenant {tenant_ctx.tenant_id}, using template",
            extra={"tenant_id": tenant_ctx.tenant_id},
        )
        responses_generated_total.labels(category=category.value, mode="template_fallback").inc()
        return attach_signature(draft, tenant_ctx.signature)
