"""Inbound message classifier."""

import json
import logging
from typing import Any, Dict

from pydantic import ValidationError

from replyhub.infra.error_handler import CircuitOpenError, EndpointError, MalformedClassificationError
from replyhub.infra.metrics import classifications_total
from replyhub.models.classification import Category, ClassificationResult, Sentiment
from replyhub.models.model_reply import FinalText
from replyhub.models.tenant import TenantContext
from replyhub.services.model_client import ResilientModelClient
from replyhub.services.prompt_builder import build_classification_messages

logger = logging.getLogger(__name__)


CLASSIFICATION_SCHEMA: Dict[str, Any] = {
    "name": "message_classification",
    "schema": {
        "type": "object",
        "properties": {
            "category": {"type": "string", "enum": [c.value for c in Category]},
            "confidence": {"type": "number", "minimum": 0, "maximum": 1},
            "sentiment": {"type": "string", "enum": [s.value for s in Sentiment]},
            "extracted_fields": {"type": "object"},
        },
        "required": ["category", "confidence", "sentiment", "extracted_fields"],
    },
}


def fallback_classification() -> ClassificationResult:
    """Result used when the endpoint is unavailable; flagged so callers can tell it apart."""
    return ClassificationResult(
        category=Category.GENERAL_INQUIRY,
        confidence=0.0,
        extracted_fields={},
        sentiment=Sentiment.NEUTRAL,
        is_fallback=True,
    )


def parse_classification(raw: str) -> ClassificationResult:
    """
    Parse structured model output into a ClassificationResult.

    Nothing is coerced: a missing category, an unknown category or sentiment,
    a confidence outside [0, 1] or a non-numeric confidence all fail.

    Raises:
        MalformedClassificationError: If the output does not have the required shape
    """
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, TypeError) as e:
        raise MalformedClassificationError(f"Classification is not valid JSON: {e}", raw_output=raw)

    if not isinstance(data, dict):
        raise MalformedClassificationError("Classification must be a JSON object", raw_output=raw)
    if "category" not in data:
        raise MalformedClassificationError("Classification is missing 'category'", raw_output=raw)
    if "confidence" not in data:
        raise MalformedClassificationError("Classification is missing 'confidence'", raw_output=raw)

    confidence = data["confidence"]
    # bool is an int subclass; strings like "0.9" are not accepted either
    if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
        raise MalformedClassificationError(
            f"Classification confidence must be a number, got {confidence!r}", raw_output=raw
        )

    fields = data.get("extracted_fields")
    if fields is None:
        fields = {}
    if not isinstance(fields, dict):
        raise MalformedClassificationError("extracted_fields must be an object", raw_output=raw)

    try:
        return ClassificationResult(
            category=data["category"],
            confidence=confidence,
            extracted_fields=fields,
            sentiment=data.get("sentiment", Sentiment.NEUTRAL.value),
        )
    except ValidationError as e:
        raise MalformedClassificationError(f"Invalid classification: {e}", raw_output=raw)


class Classifier:
    """Turns raw message text into a ClassificationResult."""

    def __init__(self, model_client: ResilientModelClient):
        self.model_client = model_client

    async def classify(self, text: str, tenant_ctx: TenantContext) -> ClassificationResult:
        """
        Classify one inbound message for a tenant.

        Endpoint failures are absorbed and produce ``fallback_classification()``.

        Raises:
            MalformedClassificationError: If the model reply violates the output contract
        """
        messages = build_classification_messages(tenant_ctx, text)
        try:
            reply = await self.model_client.complete(
                messages,
                response_format=CLASSIFICATION_SCHEMA,
                model=tenant_ctx.llm_model,
            )
        except (CircuitOpenError, EndpointError) as e:
            logger.warning(
                f"Classification unavailable for tenant {tenant_ctx.tenant_id}: {e.message}",
                extra={"tenant_id": tenant_ctx.tenant_id},
            )
            classifications_total.labels(category=Category.GENERAL_INQUIRY.value, status="fallback").inc()
            return fallback_classification()

        if not isinstance(reply, FinalText):
            classifications_total.labels(category="none", status="malformed").inc()
            raise MalformedClassificationError(
                f"Expected structured text, model requested tool '{reply.name}'"
            )

        try:
            result = parse_classification(reply.text)
        except MalformedClassificationError as e:
            classifications_total.labels(category="none", status="malformed").inc()
            logger.error(
                f"Malformed classification for tenant {tenant_ctx.tenant_id}: {e.message}",
                extra={"tenant_id": tenant_ctx.tenant_id},
            )
            raise

        classifications_total.labels(category=result.category.value, status="success").inc()
        return result
