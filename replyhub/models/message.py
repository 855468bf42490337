"""Conversation message models."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class MessageRole(str, Enum):
    """Roles a conversation message can take."""
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"
    SYSTEM = "system"


class ToolCallRef(BaseModel):
    """Reference linking an assistant tool request to its tool result."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Call id assigned by the model endpoint")
    name: str = Field(..., description="Tool name")
    arguments: Dict[str, Any] = Field(default_factory=dict)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ConversationMessage(BaseModel):
    """One entry of a conversation history."""
    model_config = ConfigDict(frozen=True)

    role: MessageRole
    content: str = ""
    tool_call: Optional[ToolCallRef] = Field(
        None,
        description="On assistant messages: the requested call. On tool messages: the call answered.",
    )
    timestamp: datetime = Field(default_factory=_utcnow)
    is_summary: bool = Field(False, description="True for the system message that replaces a summarized prefix")

    @classmethod
    def user(cls, content: str) -> "ConversationMessage":
        return cls(role=MessageRole.USER, content=content)

    @classmethod
    def assistant(cls, content: str) -> "ConversationMessage":
        return cls(role=MessageRole.ASSISTANT, content=content)

    @classmethod
    def system(cls, content: str) -> "ConversationMessage":
        return cls(role=MessageRole.SYSTEM, content=content)
