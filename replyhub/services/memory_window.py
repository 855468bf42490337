"""Bounded per-conversation history with overflow summarization."""

import asyncio
import logging
import weakref
from typing import List, Optional, Sequence, Tuple

from replyhub.infra.config import config
from replyhub.infra.error_handler import CircuitOpenError, EndpointError
from replyhub.infra.metrics import memory_summaries_total
from replyhub.models.message import ConversationMessage, MessageRole
from replyhub.models.model_reply import FinalText
from replyhub.models.tenant import TenantContext
from replyhub.services.conversation_store import ConversationStore
from replyhub.services.model_client import ResilientModelClient
from replyhub.services.prompt_builder import (
    DEFAULT_SUMMARY_TOKEN_BUDGET,
    SUMMARY_PREFIX,
    build_summary_messages,
)

logger = logging.getLogger(__name__)


class MemoryWindow:
    """
    Keeps at most ``cap`` verbatim messages per conversation.

    When stored history holds more than ``cap`` non-summary messages, the
    oldest excess (including any earlier summary) is collapsed by one model
    call into a single system message stored ahead of the recent messages.
    ``get_context`` therefore returns at most ``cap + 1`` messages.

    Reads and writes for one conversation are serialized by a per-conversation
    lock; different conversations never contend.
    """

    def __init__(
        self,
        store: ConversationStore,
        model_client: ResilientModelClient,
        cap: int = config.MEMORY_WINDOW_CAP,
        summary_token_budget: int = DEFAULT_SUMMARY_TOKEN_BUDGET,
    ):
        if cap < 1:
            raise ValueError("cap must be at least 1")
        self.store = store
        self.model_client = model_client
        self.cap = cap
        self.summary_token_budget = summary_token_budget
        self._locks: "weakref.WeakValueDictionary[Tuple[str, str], asyncio.Lock]" = weakref.WeakValueDictionary()

    def _lock_for(self, tenant_id: str, conversation_id: str) -> asyncio.Lock:
        key = (tenant_id, conversation_id)
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    async def get_context(self, tenant_ctx: TenantContext, conversation_id: str) -> List[ConversationMessage]:
        """
        Return the bounded context for a conversation.

        Summarization failure returns the most recent ``cap`` raw messages
        without modifying stored history.
        """
        async with self._lock_for(tenant_ctx.tenant_id, conversation_id):
            history = await self.store.load(tenant_ctx.tenant_id, conversation_id)
            return await self._bounded(tenant_ctx, conversation_id, history)

    async def append(self, tenant_ctx: TenantContext, conversation_id: str, message: ConversationMessage) -> None:
        await self.extend(tenant_ctx, conversation_id, [message])

    async def extend(
        self,
        tenant_ctx: TenantContext,
        conversation_id: str,
        messages: Sequence[ConversationMessage],
    ) -> None:
        """Append messages in order as one write."""
        if not messages:
            return
        async with self._lock_for(tenant_ctx.tenant_id, conversation_id):
            history = await self.store.load(tenant_ctx.tenant_id, conversation_id)
            history.extend(messages)
            await self.store.save(tenant_ctx.tenant_id, conversation_id, history)

    async def _bounded(
        self,
        tenant_ctx: TenantContext,
        conversation_id: str,
        history: List[ConversationMessage],
    ) -> List[ConversationMessage]:
        has_summary = bool(history) and history[0].is_summary
        verbatim_count = len(history) - 1 if has_summary else len(history)
        if verbatim_count <= self.cap:
            return history

        overflow = history[:-self.cap]
        recent = history[-self.cap:]

        summary = await self._summarize(tenant_ctx, overflow)
        if summary is None:
            memory_summaries_total.labels(status="fallback").inc()
            return recent

        collapsed = [summary, *recent]
        await self.store.save(tenant_ctx.tenant_id, conversation_id, collapsed)
        memory_summaries_total.labels(status="success").inc()
        logger.info(
            f"Summarized {len(overflow)} messages for conversation {conversation_id}",
            extra={"tenant_id": tenant_ctx.tenant_id, "conversation_id": conversation_id},
        )
        return collapsed

    async def _summarize(
        self,
        tenant_ctx: TenantContext,
        overflow: Sequence[ConversationMessage],
    ) -> Optional[ConversationMessage]:
        try:
            reply = await self.model_client.complete(
                build_summary_messages(overflow, self.summary_token_budget),
                model=tenant_ctx.llm_model,
            )
        except (CircuitOpenError, EndpointError) as e:
            logger.warning(
                f"Summarization unavailable, returning raw tail: {e.message}",
                extra={"tenant_id": tenant_ctx.tenant_id},
            )
            return None

        if not isinstance(reply, FinalText) or not reply.text.strip():
            logger.warning(
                "Summarization returned no text, returning raw tail",
                extra={"tenant_id": tenant_ctx.tenant_id},
            )
            return None

        return ConversationMessage(
            role=MessageRole.SYSTEM,
            content=SUMMARY_PREFIX + reply.text.strip(),
            is_summary=True,
        )
