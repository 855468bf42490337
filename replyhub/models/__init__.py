from .classification import Category, ClassificationResult, Sentiment
from .message import ConversationMessage, MessageRole, ToolCallRef
from .model_reply import FinalText, ModelReply, TokenUsage, ToolInvocation
from .tenant import TenantContext, ToneProfile
from .tool import ToolCall, ToolDefinition

__all__ = [
    "Category",
    "ClassificationResult",
    "Sentiment",
    "ConversationMessage",
    "MessageRole",
    "ToolCallRef",
    "FinalText",
    "ModelReply",
    "TokenUsage",
    "ToolInvocation",
    "TenantContext",
    "ToneProfile",
    "ToolCall",
    "ToolDefinition",
]
