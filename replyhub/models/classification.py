"""Classification taxonomy and result model."""

from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field


class Category(str, Enum):
    """Closed set of inbound message categories."""
    BOOKING_REQUEST = "booking-request"
    BOOKING_MODIFICATION = "booking-modification"
    GENERAL_INQUIRY = "general-inquiry"
    COMPLAINT = "complaint"
    CANCELLATION = "cancellation"
    PAYMENT = "payment"
    SPAM = "spam"


class Sentiment(str, Enum):
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"


class ClassificationResult(BaseModel):
    """Structured classification of one inbound message."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    category: Category
    confidence: float = Field(..., ge=0.0, le=1.0)
    extracted_fields: Dict[str, Any] = Field(default_factory=dict)
    sentiment: Sentiment = Sentiment.NEUTRAL
    is_fallback: bool = Field(
        False,
        description="True when the model endpoint was unavailable and no model answer exists",
    )
