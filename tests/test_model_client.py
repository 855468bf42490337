"""Tests for the resilient model client."""

import asyncio

import pytest

from replyhub.infra.circuit_breaker import CircuitBreaker, CircuitState
from replyhub.infra.error_handler import CircuitOpenError, EndpointError, ErrorCategory
from replyhub.models.message import ConversationMessage
from replyhub.models.model_reply import FinalText, ToolInvocation

from tests.fakes import FakeTransport, make_client, text_reply, tool_reply


MESSAGES = [ConversationMessage.user("hello")]


class SlowTransport(FakeTransport):
    """Transport that never answers within the client timeout."""

    async def complete(self, messages, tools=None, response_format=None, model=None):
        self.calls.append({"messages": list(messages)})
        await asyncio.sleep(10)
        return FinalText(text="too late")


class TestResilientModelClient:
    """Circuit breaker and timeout behaviour of the model client."""

    @pytest.mark.asyncio
    async def test_returns_tagged_replies(self):
        transport = FakeTransport([text_reply("hi"), tool_reply("lookup_record", {"record_id": "B-1"})])
        client = make_client(transport)

        first = await client.complete(MESSAGES)
        second = await client.complete(MESSAGES)

        assert isinstance(first, FinalText)
        assert first.text == "hi"
        assert isinstance(second, ToolInvocation)
        assert second.arguments == {"record_id": "B-1"}

    @pytest.mark.asyncio
    async def test_passes_request_through(self):
        transport = FakeTransport()
        client = make_client(transport)
        schema = {"name": "x", "schema": {"type": "object"}}

        await client.complete(MESSAGES, response_format=schema, model="tenant-model")

        assert transport.calls[0]["response_format"] == schema
        assert transport.calls[0]["model"] == "tenant-model"

    @pytest.mark.asyncio
    async def test_sixth_call_rejected_without_contacting_endpoint(self, fake_clock):
        """5 consecutive endpoint errors open the circuit; the 6th call never reaches the transport."""
        transport = FakeTransport([EndpointError("down", category=ErrorCategory.NETWORK)] * 5)
        breaker = CircuitBreaker(failure_threshold=5, recovery_timeout=60, clock=fake_clock)
        client = make_client(transport, breaker)

        for _ in range(5):
            with pytest.raises(EndpointError):
                await client.complete(MESSAGES)

        with pytest.raises(CircuitOpenError):
            await client.complete(MESSAGES)
        assert len(transport.calls) == 5
        assert breaker.state == CircuitState.OPEN

    @pytest.mark.asyncio
    async def test_recovers_after_cooldown(self, fake_clock):
        transport = FakeTransport([EndpointError("down")] * 5, default=text_reply("back"))
        breaker = CircuitBreaker(failure_threshold=5, recovery_timeout=60, clock=fake_clock)
        client = make_client(transport, breaker)

        for _ in range(5):
            with pytest.raises(EndpointError):
                await client.complete(MESSAGES)

        fake_clock.advance(60)
        reply = await client.complete(MESSAGES)

        assert reply.text == "back"
        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_timeout_is_endpoint_failure(self):
        transport = SlowTransport()
        breaker = CircuitBreaker(failure_threshold=1)
        client = make_client(transport, breaker, timeout=0.01)

        with pytest.raises(EndpointError) as exc_info:
            await client.complete(MESSAGES)

        assert exc_info.value.category == ErrorCategory.TIMEOUT
        assert breaker.state == CircuitState.OPEN

    @pytest.mark.asyncio
    async def test_unexpected_transport_exception_is_wrapped(self):
        transport = FakeTransport([ConnectionError("connection refused")])
        breaker = CircuitBreaker(failure_threshold=5)
        client = make_client(transport, breaker)

        with pytest.raises(EndpointError) as exc_info:
            await client.complete(MESSAGES)

        assert exc_info.value.category == ErrorCategory.NETWORK
        assert breaker.failure_count == 1

    @pytest.mark.asyncio
    async def test_success_resets_failures(self):
        transport = FakeTransport([EndpointError("x")] * 4 + [text_reply("ok")])
        breaker = CircuitBreaker(failure_threshold=5)
        client = make_client(transport, breaker)

        for _ in range(4):
            with pytest.raises(EndpointError):
                await client.complete(MESSAGES)
        await client.complete(MESSAGES)

        assert breaker.failure_count == 0

    @pytest.mark.asyncio
    async def test_breaker_shared_between_clients(self, fake_clock):
        """One breaker per endpoint: failures seen by one client reject calls from another."""
        breaker = CircuitBreaker(failure_threshold=2, clock=fake_clock)
        failing = make_client(FakeTransport([EndpointError("x")] * 2), breaker)
        healthy_transport = FakeTransport()
        healthy = make_client(healthy_transport, breaker)

        for _ in range(2):
            with pytest.raises(EndpointError):
                await failing.complete(MESSAGES)

        with pytest.raises(CircuitOpenError):
            await healthy.complete(MESSAGES)
        assert healthy_transport.calls == []
