"""Bounded agent loop that interleaves model calls with read-only tool calls."""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from replyhub.infra.config import config
from replyhub.infra.error_handler import (
    CircuitOpenError,
    EndpointError,
    RequestCancelledError,
    ToolNotPermittedError,
)
from replyhub.infra.metrics import agent_iterations, agent_runs_total
from replyhub.infra.timeout import TOOL_EXECUTION_TIMEOUT
from replyhub.logging.event_logger import log_event
from replyhub.models.message import ConversationMessage, MessageRole, ToolCallRef
from replyhub.models.model_reply import FinalText, ToolInvocation
from replyhub.models.tenant import TenantContext
from replyhub.models.tool import ToolCall
from replyhub.services.memory_window import MemoryWindow
from replyhub.services.model_client import ResilientModelClient
from replyhub.services.prompt_builder import build_agent_messages
from replyhub.services.tool_execution_engine import execute_tool_call, summarize_result
from replyhub.services.tool_registry import ToolRegistry

logger = logging.getLogger(__name__)


NEED_MORE_INFO_REPLY = (
    "I need a little more information to answer that. "
    "Could you tell me more about what you are looking for?"
)

ENDPOINT_UNAVAILABLE_REPLY = (
    "I can't look that up right now. "
    "A member of our team will get back to you shortly."
)


class AgentState(str, Enum):
    AWAITING_MODEL = "awaiting_model"
    EXECUTING_TOOL = "executing_tool"
    DONE = "done"
    ABORTED = "aborted"


class AbortReason(str, Enum):
    MAX_ITERATIONS = "max_iterations"
    ENDPOINT_UNAVAILABLE = "endpoint_unavailable"


@dataclass
class AgentRunResult:
    """Outcome of one agent turn."""
    state: AgentState
    answer: str
    model_calls: int = 0
    tool_calls: List[ToolCall] = field(default_factory=list)
    abort_reason: Optional[AbortReason] = None


def _tool_result_message(call: ToolCall) -> ConversationMessage:
    content = summarize_result({"error": call.error}) if call.error else summarize_result(call.result)
    return ConversationMessage(
        role=MessageRole.TOOL,
        content=content,
        tool_call=ToolCallRef(id=call.call_id, name=call.name, arguments=call.arguments),
    )


def _tool_request_message(invocation: ToolInvocation) -> ConversationMessage:
    return ConversationMessage(
        role=MessageRole.ASSISTANT,
        content="",
        tool_call=ToolCallRef(id=invocation.call_id, name=invocation.name, arguments=invocation.arguments),
    )


class ToolOrchestrator:
    """
    Runs one agent turn as an explicit state machine.

    awaiting_model -> (final text) -> done
    awaiting_model -> (tool request) -> executing_tool -> awaiting_model
    any step past ``max_iterations`` model calls -> aborted

    The cancellation event is checked at the top of every model step.
    History is persisted through the MemoryWindow when the turn ends.
    """

    def __init__(
        self,
        model_client: ResilientModelClient,
        memory: MemoryWindow,
        registry: ToolRegistry,
        max_iterations: int = config.AGENT_MAX_ITERATIONS,
        tool_timeout: float = TOOL_EXECUTION_TIMEOUT,
    ):
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        self.model_client = model_client
        self.memory = memory
        self.registry = registry
        self.max_iterations = max_iterations
        self.tool_timeout = tool_timeout

    async def run(
        self,
        tenant_ctx: TenantContext,
        conversation_id: str,
        query: str,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> AgentRunResult:
        """
        Answer a user query, calling tools as the model requests them.

        Raises:
            ToolNotPermittedError: Model requested a tool outside the tenant's allowed set
            RequestCancelledError: ``cancel_event`` was set before a model step
        """
        start_time = time.monotonic()
        history = await self.memory.get_context(tenant_ctx, conversation_id)
        turn: List[ConversationMessage] = [ConversationMessage.user(query)]
        tools = self.registry.get_allowed_tools(tenant_ctx)

        state = AgentState.AWAITING_MODEL
        result = AgentRunResult(state=state, answer="")
        pending: Optional[ToolInvocation] = None

        while state not in (AgentState.DONE, AgentState.ABORTED):
            if state == AgentState.AWAITING_MODEL:
                if cancel_event is not None and cancel_event.is_set():
                    await self._finish(tenant_ctx, conversation_id, turn)
                    agent_runs_total.labels(outcome="cancelled").inc()
                    raise RequestCancelledError(f"Agent run for conversation {conversation_id} was cancelled")

                if result.model_calls >= self.max_iterations:
                    state = self._abort(result, turn, AbortReason.MAX_ITERATIONS, NEED_MORE_INFO_REPLY)
                    continue

                result.model_calls += 1
                try:
                    reply = await self.model_client.complete(
                        build_agent_messages(tenant_ctx, [*history, *turn]),
                        tools=tools or None,
                        model=tenant_ctx.llm_model,
                    )
                except (CircuitOpenError, EndpointError) as e:
                    logger.warning(
                        f"Agent model call failed for tenant {tenant_ctx.tenant_id}: {e.message}",
                        extra={"tenant_id": tenant_ctx.tenant_id, "conversation_id": conversation_id},
                    )
                    state = self._abort(result, turn, AbortReason.ENDPOINT_UNAVAILABLE, ENDPOINT_UNAVAILABLE_REPLY)
                    continue

                if isinstance(reply, FinalText):
                    result.answer = reply.text
                    turn.append(ConversationMessage.assistant(reply.text))
                    state = AgentState.DONE
                    continue

                if not tenant_ctx.allows_tool(reply.name):
                    await self._finish(tenant_ctx, conversation_id, turn)
                    agent_runs_total.labels(outcome="not_permitted").inc()
                    log_event(
                        tenant_id=tenant_ctx.tenant_id,
                        event_type="tool_not_permitted",
                        status="failure",
                        conversation_id=conversation_id,
                        payload={"tool_name": reply.name},
                    )
                    raise ToolNotPermittedError(reply.name, tenant_ctx.tenant_id)

                if result.model_calls >= self.max_iterations:
                    # No model call left to use the tool's result
                    state = self._abort(result, turn, AbortReason.MAX_ITERATIONS, NEED_MORE_INFO_REPLY)
                    continue

                pending = reply
                turn.append(_tool_request_message(reply))
                state = AgentState.EXECUTING_TOOL

            elif state == AgentState.EXECUTING_TOOL:
                call = await execute_tool_call(
                    tenant_ctx,
                    self.registry,
                    pending,
                    timeout=self.tool_timeout,
                    conversation_id=conversation_id,
                )
                result.tool_calls.append(call)
                turn.append(_tool_result_message(call))
                pending = None
                state = AgentState.AWAITING_MODEL

        result.state = state
        await self._finish(tenant_ctx, conversation_id, turn)

        outcome = state.value if result.abort_reason is None else result.abort_reason.value
        agent_runs_total.labels(outcome=outcome).inc()
        agent_iterations.observe(result.model_calls)
        log_event(
            tenant_id=tenant_ctx.tenant_id,
            event_type="agent_run_completed",
            status="success" if state == AgentState.DONE else "fallback",
            latency_ms=int((time.monotonic() - start_time) * 1000),
            conversation_id=conversation_id,
            payload={
                "state": state.value,
                "model_calls": result.model_calls,
                "tools": [call.name for call in result.tool_calls],
                "abort_reason": result.abort_reason.value if result.abort_reason else None,
            },
        )
        return result

    @staticmethod
    def _abort(
        result: AgentRunResult,
        turn: List[ConversationMessage],
        reason: AbortReason,
        reply: str,
    ) -> AgentState:
        result.abort_reason = reason
        result.answer = reply
        turn.append(ConversationMessage.assistant(reply))
        return AgentState.ABORTED

    async def _finish(
        self,
        tenant_ctx: TenantContext,
        conversation_id: str,
        turn: List[ConversationMessage],
    ) -> None:
        await self.memory.extend(tenant_ctx, conversation_id, turn)
