"""Canonical tool definition and tool call models."""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class ToolDefinition(BaseModel):
    """Tool exposed to the model: name, description and parameter schema."""
    name: str = Field(..., description="Canonical tool name")
    description: str = Field(..., description="Tool description")
    parameters_schema: Dict[str, Any] = Field(..., description="JSON Schema for parameters")
    read_only: bool = Field(
        default=True,
        description="Only read-only tools may run inside the agent loop",
    )


class ToolCall(BaseModel):
    """One executed tool invocation and its outcome."""
    call_id: str
    name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)
    result: Optional[Any] = None
    error: Optional[str] = None
    latency_ms: Optional[int] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None
