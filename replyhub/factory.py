"""Wiring of the orchestration components into one Services value."""

import asyncio
from dataclasses import dataclass
from typing import Optional

from replyhub.adapters.vendor_adapter_openai import OpenAIChatTransport
from replyhub.infra.circuit_breaker import CircuitBreaker, openai_circuit_breaker
from replyhub.infra.config import config
from replyhub.services.classifier import Classifier
from replyhub.services.conversation_store import ConversationStore, SqlConversationStore
from replyhub.services.memory_window import MemoryWindow
from replyhub.services.model_client import ModelTransport, ResilientModelClient
from replyhub.services.response_generator import ResponseGenerator
from replyhub.services.tool_orchestrator import ToolOrchestrator
from replyhub.services.tool_registry import InMemoryToolDataSource, ToolDataSource, ToolRegistry


@dataclass
class Services:
    """Long-lived components shared by every request."""
    model_client: ResilientModelClient
    classifier: Classifier
    response_generator: ResponseGenerator
    memory: MemoryWindow
    registry: ToolRegistry
    orchestrator: ToolOrchestrator
    semaphore: asyncio.Semaphore


def build_services(
    transport: Optional[ModelTransport] = None,
    circuit_breaker: Optional[CircuitBreaker] = None,
    store: Optional[ConversationStore] = None,
    data_source: Optional[ToolDataSource] = None,
    memory_cap: int = config.MEMORY_WINDOW_CAP,
    max_iterations: int = config.AGENT_MAX_ITERATIONS,
    max_concurrent_requests: int = config.MAX_CONCURRENT_REQUESTS,
) -> Services:
    """
    Build the component graph.

    Defaults target the configured OpenAI-compatible endpoint, the SQL
    conversation store and an empty tool data source. Every component
    shares the same model client, so one circuit breaker guards the endpoint
    for all tenants.
    """
    model_client = ResilientModelClient(
        transport or OpenAIChatTransport(),
        circuit_breaker or openai_circuit_breaker,
    )
    memory = MemoryWindow(store or SqlConversationStore(), model_client, cap=memory_cap)
    registry = ToolRegistry(data_source or InMemoryToolDataSource())

    return Services(
        model_client=model_client,
        classifier=Classifier(model_client),
        response_generator=ResponseGenerator(model_client),
        memory=memory,
        registry=registry,
        orchestrator=ToolOrchestrator(model_client, memory, registry, max_iterations=max_iterations),
        semaphore=asyncio.Semaphore(max_concurrent_requests),
    )
