"""Resilient wrapper around the external model endpoint."""

import asyncio
import logging
import time
from typing import Any, Dict, Optional, Protocol, Sequence

from replyhub.infra.circuit_breaker import CircuitBreaker
from replyhub.infra.error_handler import (
    CircuitOpenError,
    EndpointError,
    ErrorCategory,
    wrap_llm_error,
)
from replyhub.infra.metrics import llm_call_duration, llm_calls_total
from replyhub.infra.timeout import LLM_CALL_TIMEOUT
from replyhub.models.message import ConversationMessage
from replyhub.models.model_reply import ModelReply
from replyhub.models.tool import ToolDefinition

logger = logging.getLogger(__name__)


class ModelTransport(Protocol):
    """Provider-specific implementation of one model call."""
    provider: str
    model: str

    async def complete(
        self,
        messages: Sequence[ConversationMessage],
        tools: Optional[Sequence[ToolDefinition]] = None,
        response_format: Optional[Dict[str, Any]] = None,
        model: Optional[str] = None,
    ) -> ModelReply:
        ...


class ResilientModelClient:
    """
    The only path to the model endpoint.

    Every call goes through the injected circuit breaker and carries a
    timeout; a timeout counts as an endpoint failure. The client never
    substitutes an answer of its own: callers own their fallbacks.
    """

    def __init__(
        self,
        transport: ModelTransport,
        circuit_breaker: CircuitBreaker,
        timeout: float = LLM_CALL_TIMEOUT,
    ):
        self.transport = transport
        self.circuit_breaker = circuit_breaker
        self.timeout = timeout

    async def complete(
        self,
        messages: Sequence[ConversationMessage],
        tools: Optional[Sequence[ToolDefinition]] = None,
        response_format: Optional[Dict[str, Any]] = None,
        model: Optional[str] = None,
    ) -> ModelReply:
        """
        Send one request to the model endpoint.

        Args:
            messages: Ordered conversation entries
            tools: Optional tool definitions the model may invoke
            response_format: Optional ``{"name", "schema"}`` requesting structured output
            model: Optional model override (per-tenant)

        Returns:
            FinalText or ToolInvocation

        Raises:
            CircuitOpenError: Circuit is open; the endpoint was not contacted
            EndpointError: Transport/API failure or timeout
        """
        provider = getattr(self.transport, "provider", "unknown")
        model_name = model or getattr(self.transport, "model", "unknown")
        start_time = time.monotonic()

        async def call_endpoint() -> ModelReply:
            try:
                return await asyncio.wait_for(
                    self.transport.complete(
                        messages,
                        tools=tools,
                        response_format=response_format,
                        model=model,
                    ),
                    timeout=self.timeout,
                )
            except asyncio.TimeoutError:
                raise EndpointError(
                    f"{provider} call timed out after {self.timeout} seconds",
                    category=ErrorCategory.TIMEOUT,
                )
            except EndpointError:
                raise
            except Exception as e:
                raise wrap_llm_error(e, provider)

        try:
            reply = await self.circuit_breaker.call_async(call_endpoint)
        except CircuitOpenError:
            llm_calls_total.labels(provider=provider, model=model_name, status="circuit_open").inc()
            logger.warning(f"Model call rejected: circuit '{self.circuit_breaker.name}' is open")
            raise
        except EndpointError as e:
            status = "timeout" if e.category == ErrorCategory.TIMEOUT else "failure"
            llm_calls_total.labels(provider=provider, model=model_name, status=status).inc()
            logger.warning(
                f"Model call failed: {e.message}",
                extra={"category": e.category.value, "status_code": e.status_code},
            )
            raise

        latency = time.monotonic() - start_time
        llm_calls_total.labels(provider=provider, model=model_name, status="success").inc()
        llm_call_duration.labels(provider=provider, model=model_name).observe(latency)
        return reply
