"""Tagged reply from the model endpoint."""

from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, Field


class TokenUsage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class FinalText(BaseModel):
    """Model answered with text."""
    kind: Literal["final_text"] = "final_text"
    text: str
    usage: Optional[TokenUsage] = None


class ToolInvocation(BaseModel):
    """Model asked for one tool to be run."""
    kind: Literal["tool_call"] = "tool_call"
    call_id: str
    name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)
    usage: Optional[TokenUsage] = None


ModelReply = Annotated[Union[FinalText, ToolInvocation], Field(discriminator="kind")]
