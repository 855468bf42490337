"""Conversation history persistence keyed by tenant and conversation id."""

import asyncio
from typing import Dict, List, Protocol, Sequence, Tuple

from sqlalchemy import text

from replyhub.infra.database import get_db_session
from replyhub.models.message import ConversationMessage


class ConversationStore(Protocol):
    """Opaque storage for ordered conversation messages."""

    async def load(self, tenant_id: str, conversation_id: str) -> List[ConversationMessage]:
        ...

    async def save(self, tenant_id: str, conversation_id: str, messages: Sequence[ConversationMessage]) -> None:
        ...


class InMemoryConversationStore:
    """Process-local store; each tenant has its own key space."""

    def __init__(self):
        self._conversations: Dict[Tuple[str, str], Tuple[ConversationMessage, ...]] = {}

    async def load(self, tenant_id: str, conversation_id: str) -> List[ConversationMessage]:
        return list(self._conversations.get((tenant_id, conversation_id), ()))

    async def save(self, tenant_id: str, conversation_id: str, messages: Sequence[ConversationMessage]) -> None:
        self._conversations[(tenant_id, conversation_id)] = tuple(messages)


class SqlConversationStore:
    """
    Conversation store backed by the conversation_messages table.

    Queries run in a worker thread so the event loop is never blocked.
    ``save`` replaces the whole conversation in one transaction.
    """

    async def load(self, tenant_id: str, conversation_id: str) -> List[ConversationMessage]:
        return await asyncio.to_thread(self._load, tenant_id, conversation_id)

    async def save(self, tenant_id: str, conversation_id: str, messages: Sequence[ConversationMessage]) -> None:
        await asyncio.to_thread(self._save, tenant_id, conversation_id, list(messages))

    def _load(self, tenant_id: str, conversation_id: str) -> List[ConversationMessage]:
        with get_db_session(tenant_id) as session:
            rows = session.execute(
                text("""
                    SELECT payload
                    FROM conversation_messages
                    WHERE tenant_id = :tenant_id AND conversation_id = :conversation_id
                    ORDER BY position
                """),
                {"tenant_id": tenant_id, "conversation_id": conversation_id}
            ).fetchall()
            return [ConversationMessage.model_validate_json(row.payload) for row in rows]

    def _save(self, tenant_id: str, conversation_id: str, messages: List[ConversationMessage]) -> None:
        with get_db_session(tenant_id) as session:
            session.execute(
                text("""
                    DELETE FROM conversation_messages
                    WHERE tenant_id = :tenant_id AND conversation_id = :conversation_id
                """),
                {"tenant_id": tenant_id, "conversation_id": conversation_id}
            )
            if messages:
                session.execute(
                    text("""
                        INSERT INTO conversation_messages (tenant_id, conversation_id, position, payload)
                        VALUES (:tenant_id, :conversation_id, :position, :payload)
                    """),
                    [
                        {
                            "tenant_id": tenant_id,
                            "conversation_id": conversation_id,
                            "position": position,
                            "payload": msg.model_dump_json(),
                        }
                        for position, msg in enumerate(messages)
                    ]
                )
