"""API request/response models."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


# ============================================================================
# Messages Models
# ============================================================================

class InboundMessageRequest(BaseModel):
    """Request model for an inbound customer message."""
    text: str = Field(..., min_length=1, max_length=20000, example="Do you have a table for 4 on Friday?")
    conversation_id: Optional[str] = Field(
        None,
        max_length=128,
        description="Conversation the message belongs to; enables history and tool use",
    )


class ClassificationResponse(BaseModel):
    """Response model for a classification."""
    category: str = Field(..., example="booking-request")
    confidence: float
    sentiment: str
    extracted_fields: Dict[str, Any] = Field(default_factory=dict)
    is_fallback: bool = False


class ToolCallResponse(BaseModel):
    """Response model for one executed tool call."""
    name: str
    arguments: Dict[str, Any]
    succeeded: bool
    error: Optional[str] = None
    latency_ms: Optional[int] = None


class InboundMessageResponse(BaseModel):
    """Response model for inbound message processing."""
    status: str = Field(..., example="replied")
    route: str = Field(..., example="template")
    reply: Optional[str] = Field(None, description="Reply text; empty for spam and review cases")
    classification: Optional[ClassificationResponse] = None
    agent_state: Optional[str] = None
    tool_calls: List[ToolCallResponse] = Field(default_factory=list)
    error: Optional[str] = None
    latency_ms: int = Field(..., description="Total processing latency in milliseconds")
