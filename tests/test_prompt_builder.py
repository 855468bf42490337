"""Tests for prompt builder."""

import pytest

from replyhub.models.message import ConversationMessage, MessageRole, ToolCallRef
from replyhub.models.tenant import TenantContext
from replyhub.services.prompt_builder import (
    CORE_GUARDRAILS_PROMPT,
    SUMMARY_PREFIX,
    build_agent_messages,
    build_classification_messages,
    build_summary_messages,
    build_tone_messages,
    count_tokens,
    describe_level,
    render_transcript,
)


class TestPromptBuilder:
    """Test prompt builder layered stack."""

    def test_classification_stack_order(self, tenant_ctx):
        """Test that the guardrails come first and the customer text last."""
        messages = build_classification_messages(tenant_ctx, "Can I book a massage?")

        assert len(messages) == 3
        assert messages[0].role == MessageRole.SYSTEM
        assert messages[0].content == CORE_GUARDRAILS_PROMPT
        assert messages[1].role == MessageRole.SYSTEM
        assert messages[2].role == MessageRole.USER
        assert messages[2].content == "Can I book a massage?"

    def test_classification_lists_categories_and_vocabulary(self, tenant_ctx):
        instruction = build_classification_messages(tenant_ctx, "x")[1].content

        for category in ["booking-request", "booking-modification", "general-inquiry",
                         "complaint", "cancellation", "payment", "spam"]:
            assert f"- {category}" in instruction
        assert "massage (per hour) [options: aromatherapy, hot_stones]" in instruction
        assert "sauna (per person)" in instruction

    def test_no_service_vocabulary(self):
        """Test prompt builder without tenant pricing or services."""
        ctx = TenantContext(tenant_id="t1", business_name="Plain Co")
        instruction = build_classification_messages(ctx, "x")[1].content

        assert "Services offered: not specified" in instruction
        assert "Pricing vocabulary: not specified" in instruction

    def test_service_types_fall_back_to_pricing_keys(self):
        ctx = TenantContext(tenant_id="t1", business_name="Spa", pricing_rules={"facial": {}, "bath": {}})
        instruction = build_classification_messages(ctx, "x")[1].content
        assert "Services offered: bath, facial" in instruction

    def test_tone_messages_describe_levels(self, tenant_ctx):
        messages = build_tone_messages(tenant_ctx, "draft body")

        assert messages[0].content == CORE_GUARDRAILS_PROMPT
        assert "Formality: high (0.80)" in messages[1].content
        assert "Enthusiasm: low (0.30)" in messages[1].content
        assert "Level of detail: medium (0.50)" in messages[1].content
        assert messages[2].content == "draft body"

    def test_agent_messages_keep_history_order(self, tenant_ctx):
        history = [ConversationMessage.user("a"), ConversationMessage.assistant("b"), ConversationMessage.user("c")]

        messages = build_agent_messages(tenant_ctx, history)

        assert messages[0].content == CORE_GUARDRAILS_PROMPT
        assert "Seaside Spa" in messages[1].content
        assert [m.content for m in messages[2:]] == ["a", "b", "c"]

    @pytest.mark.parametrize("value, label", [(0.0, "low"), (0.5, "medium"), (0.67, "high"), (1.0, "high")])
    def test_describe_level(self, value, label):
        assert describe_level(value).startswith(label)


class TestTranscript:
    """Transcript rendering for summarization."""

    def test_renders_roles_and_tool_calls(self):
        ref = ToolCallRef(id="c1", name="lookup_record", arguments={"record_id": "BK-1"})
        messages = [
            ConversationMessage.user("where is BK-1?"),
            ConversationMessage(role=MessageRole.ASSISTANT, tool_call=ref),
            ConversationMessage(role=MessageRole.TOOL, content='{"found": false}', tool_call=ref),
        ]

        transcript = render_transcript(messages)

        assert transcript.splitlines() == [
            "user: where is BK-1?",
            'assistant requested lookup_record({"record_id": "BK-1"})',
            'tool (lookup_record): {"found": false}',
        ]

    def test_history_truncation(self):
        """Test that the oldest lines are dropped when the token budget is exceeded."""
        summary = ConversationMessage(role=MessageRole.SYSTEM, content=SUMMARY_PREFIX + "earlier", is_summary=True)
        messages = [summary] + [ConversationMessage.user(f"message {i} " + "word " * 20) for i in range(15)]
        budget = count_tokens(summary.content) + 3 * count_tokens(f"user: {messages[1].content}")

        transcript = render_transcript(messages, max_tokens=budget)
        lines = transcript.splitlines()

        assert lines[0] == SUMMARY_PREFIX + "earlier"
        assert len(lines) <= 4
        assert lines[-1].startswith("user: message 14")

    def test_summary_messages(self):
        messages = build_summary_messages([ConversationMessage.user("hello")])

        assert messages[0].content == CORE_GUARDRAILS_PROMPT
        assert messages[-1].role == MessageRole.USER
        assert messages[-1].content == "user: hello"


class TestCountTokens:

    def test_counts_are_positive(self):
        assert count_tokens("hello world") > 0
        assert count_tokens("") == 0
