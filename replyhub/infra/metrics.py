"""Prometheus metrics export."""

from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Pipeline metrics
pipeline_requests_total = Counter(
    "pipeline_requests_total",
    "Total inbound messages handled by the pipeline",
    ["route", "status"],
)

# LLM metrics
llm_calls_total = Counter(
    "llm_calls_total",
    "Total LLM API calls",
    ["provider", "model", "status"],  # status: success, failure, timeout, circuit_open
)

llm_call_duration = Histogram(
    "llm_call_duration_seconds",
    "LLM API call duration in seconds",
    ["provider", "model"],
)

# Circuit breaker metrics
circuit_breaker_state = Gauge(
    "circuit_breaker_state",
    "Circuit breaker state (0=closed, 1=half_open, 2=open)",
    ["service"],
)

circuit_breaker_transitions_total = Counter(
    "circuit_breaker_transitions_total",
    "Circuit breaker state transitions",
    ["service", "to_state"],
)

# Classification metrics
classifications_total = Counter(
    "classifications_total",
    "Total classifications by outcome",
    ["category", "status"],  # status: success, malformed, fallback
)

# Response generation metrics
responses_generated_total = Counter(
    "responses_generated_total",
    "Total generated replies",
    ["category", "mode"],  # mode: restyled, template_fallback, skipped
)

# Tool metrics
tool_calls_total = Counter(
    "tool_calls_total",
    "Total tool calls",
    ["tool_name", "status"],
)

tool_call_duration = Histogram(
    "tool_call_duration_seconds",
    "Tool call duration in seconds",
    ["tool_name"],
)

# Agent loop metrics
agent_runs_total = Counter(
    "agent_runs_total",
    "Total agent loop runs by terminal state",
    ["outcome"],  # done, max_iterations, endpoint_unavailable, not_permitted, cancelled
)

agent_iterations = Histogram(
    "agent_iterations",
    "Model calls per agent run",
    buckets=(1, 2, 3, 5, 8),
)

# Memory window metrics
memory_summaries_total = Counter(
    "memory_summaries_total",
    "Conversation summarizations",
    ["status"],  # success, fallback
)


def get_metrics_response() -> Response:
    """Get Prometheus metrics as HTTP response."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
