"""
Single-agent chat — Talk to one agent at a time.

WHAT THIS DOES:
Each agent in a chat session keeps its own remote conversation, so talking
to the Painter never leaks into the Art Critic's thread. Unlike the debate,
failures propagate to the caller.

USAGE:
    service = ChatService(catalog, sender, chat_sessions)
    result = await service.chat(ChatParams(agent_title="Painter", message="笔触如何?"))
    result.message, result.chat_id, result.conversation_id
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from app.config import get_settings
from app.models.session import ChatHistoryEntry
from app.services.agents import AgentCatalog
from app.services.debate.protocols import BaseTurnSender
from app.services.session_store import ChatSessionStore

logger = logging.getLogger(__name__)


@dataclass
class ChatParams:
    agent_title: str
    message: str
    file_ids: list[str] = field(default_factory=list)
    session_id: str = "default"
    reset: bool = False


@dataclass
class ChatResult:
    message: str
    chat_id: str
    conversation_id: str


class ChatService:
    """Runs single-agent turns against per-agent remote conversations."""

    def __init__(
        self,
        catalog: AgentCatalog,
        sender: BaseTurnSender,
        sessions: ChatSessionStore,
        max_retries: Optional[int] = None,
    ):
        self.catalog = catalog
        self.sender = sender
        self.sessions = sessions
        self.max_retries = max_retries or get_settings().chat_max_retries

    async def chat(self, params: ChatParams, max_retries: Optional[int] = None) -> ChatResult:
        """
        Send one message to one agent and record the exchange.

        Raises:
            UnknownAgentError: agent_title isn't in the catalog
            AgentTurnError: the remote turn failed
        """
        agent = self.catalog.get(params.agent_title)
        session = self.sessions.get_or_create(params.session_id)
        conversation = session.conversation_for(agent.display_name, agent.bot_id, reset=params.reset)

        logger.info(f"Chat '{params.session_id}' → {agent.display_name}")
        reply = await self.sender.send_turn(
            agent.bot_id,
            session.user_id,
            params.message,
            params.file_ids,
            conversation_id=conversation.conversation_id,
            max_retries=max_retries or self.max_retries,
        )

        conversation.conversation_id = reply.conversation_id
        conversation.last_turn_id = reply.turn_id
        session.history.append(ChatHistoryEntry(
            turn_id=reply.turn_id,
            agent_title=agent.display_name,
            user_message=params.message,
            agent_reply=reply.reply_text,
        ))
        return ChatResult(
            message=reply.reply_text,
            chat_id=reply.turn_id,
            conversation_id=reply.conversation_id,
        )
