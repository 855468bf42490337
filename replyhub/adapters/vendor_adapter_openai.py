"""OpenAI vendor adapter for the Chat Completions API."""

import json
import logging
import uuid
from typing import Any, Dict, List, Optional, Sequence

from openai import AsyncOpenAI

from replyhub.infra.config import config
from replyhub.infra.error_handler import EndpointError, ErrorCategory, wrap_llm_error
from replyhub.models.message import ConversationMessage, MessageRole
from replyhub.models.model_reply import FinalText, ModelReply, TokenUsage, ToolInvocation
from replyhub.models.tool import ToolDefinition

logger = logging.getLogger(__name__)


def build_openai_tools(tools: Sequence[ToolDefinition]) -> List[Dict[str, Any]]:
    """
    Convert canonical ToolDefinition objects to OpenAI tool schema.

    Args:
        tools: List of canonical ToolDefinition objects

    Returns:
        List of OpenAI tool dicts in OpenAI format
    """
    openai_tools = []
    for tool in tools:
        openai_tool = {
            "type": "function",
            "function": {
                "name": tool.name,
                "description": tool.description,
                "parameters": tool.parameters_schema or {},
            }
        }
        openai_tools.append(openai_tool)
    return openai_tools


def build_response_format(response_format: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """
    Convert a ``{"name": ..., "schema": ...}`` request into OpenAI structured output.
    """
    if not response_format:
        return None
    return {
        "type": "json_schema",
        "json_schema": {
            "name": response_format.get("name", "structured_reply"),
            "schema": response_format["schema"],
            "strict": False,
        },
    }


def to_openai_messages(messages: Sequence[ConversationMessage]) -> List[Dict[str, Any]]:
    """
    Convert conversation history to Chat Completions messages.

    Tool results are only valid after the assistant message that requested
    them. A tool message whose request is no longer in the window (it was
    summarized away) is rendered as a system note instead, and a request
    with no stored result is dropped.
    """
    converted: List[Dict[str, Any]] = []
    requested_call_ids = set()
    answered_call_ids = {
        msg.tool_call.id for msg in messages
        if msg.role == MessageRole.TOOL and msg.tool_call is not None
    }

    for msg in messages:
        if msg.role == MessageRole.ASSISTANT and msg.tool_call is not None:
            if msg.tool_call.id not in answered_call_ids:
                continue
            requested_call_ids.add(msg.tool_call.id)
            converted.append({
                "role": "assistant",
                "content": msg.content or None,
                "tool_calls": [
                    {
                        "id": msg.tool_call.id,
                        "type": "function",
                        "function": {
                            "name": msg.tool_call.name,
                            "arguments": json.dumps(msg.tool_call.arguments),
                        },
                    }
                ],
            })
        elif msg.role == MessageRole.TOOL:
            if msg.tool_call is not None and msg.tool_call.id in requested_call_ids:
                converted.append({
                    "role": "tool",
                    "tool_call_id": msg.tool_call.id,
                    "content": msg.content,
                })
            else:
                tool_name = msg.tool_call.name if msg.tool_call else "tool"
                converted.append({
                    "role": "system",
                    "content": f"Earlier result from {tool_name}: {msg.content}",
                })
        else:
            converted.append({"role": msg.role.value, "content": msg.content})

    return converted


def parse_chat_completion(response_obj: Any) -> ModelReply:
    """Map a Chat Completions response to FinalText or ToolInvocation."""
    if not getattr(response_obj, "choices", None):
        raise EndpointError("openai returned no choices", category=ErrorCategory.API_ERROR)

    message = response_obj.choices[0].message
    usage = None
    if getattr(response_obj, "usage", None):
        usage = TokenUsage(
            prompt_tokens=response_obj.usage.prompt_tokens or 0,
            completion_tokens=response_obj.usage.completion_tokens or 0,
            total_tokens=response_obj.usage.total_tokens or 0,
        )

    tool_calls = getattr(message, "tool_calls", None)
    if tool_calls:
        if len(tool_calls) > 1:
            logger.info(f"Model requested {len(tool_calls)} tool calls, using the first")
        tc = tool_calls[0]
        raw_args = tc.function.arguments or "{}"
        try:
            arguments = json.loads(raw_args) if isinstance(raw_args, str) else raw_args
        except json.JSONDecodeError as e:
            raise EndpointError(
                f"openai returned invalid tool arguments for {tc.function.name}: {e}",
                category=ErrorCategory.API_ERROR,
            )
        if not isinstance(arguments, dict):
            raise EndpointError(
                f"openai tool arguments for {tc.function.name} must be an object",
                category=ErrorCategory.API_ERROR,
            )
        return ToolInvocation(
            call_id=tc.id or f"call_{uuid.uuid4().hex[:12]}",
            name=tc.function.name,
            arguments=arguments,
            usage=usage,
        )

    return FinalText(text=message.content or "", usage=usage)


class OpenAIChatTransport:
    """Model transport for OpenAI-compatible Chat Completions endpoints."""

    provider = "openai"

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        client: Optional[AsyncOpenAI] = None,
    ):
        self._api_key = api_key or config.OPENAI_API_KEY
        self._base_url = base_url or config.OPENAI_BASE_URL
        self.model = model or config.LLM_MODEL
        self._client = client

    @property
    def client(self) -> AsyncOpenAI:
        """Lazy initialization of OpenAI client."""
        if self._client is None:
            if not self._api_key:
                raise EndpointError("OPENAI_API_KEY not configured", category=ErrorCategory.AUTH_ERROR)
            # Retries are disabled: the circuit breaker owns failure accounting
            self._client = AsyncOpenAI(api_key=self._api_key, base_url=self._base_url, max_retries=0)
        return self._client

    async def complete(
        self,
        messages: Sequence[ConversationMessage],
        tools: Optional[Sequence[ToolDefinition]] = None,
        response_format: Optional[Dict[str, Any]] = None,
        model: Optional[str] = None,
    ) -> ModelReply:
        """
        Call Chat Completions with messages and optional tools.

        Raises:
            EndpointError: On any transport, API or response-shape failure
        """
        request_params: Dict[str, Any] = {
            "model": model or self.model,
            "messages": to_openai_messages(messages),
        }
        if tools:
            request_params["tools"] = build_openai_tools(tools)
            request_params["tool_choice"] = "auto"
        structured = build_response_format(response_format)
        if structured:
            request_params["response_format"] = structured

        try:
            response_obj = await self.client.chat.completions.create(**request_params)
            return parse_chat_completion(response_obj)
        except Exception as e:
            raise wrap_llm_error(e, self.provider)
