"""
In-memory session state for single-agent chat and multi-agent debate.

Both flavors are created lazily on first use of a session id and live for
the lifetime of the process. Timestamps are epoch milliseconds, matching
what the frontend expects.
"""

import time
import uuid
from dataclasses import dataclass, field
from typing import Optional


def now_ms() -> int:
    return int(time.time() * 1000)


def new_user_id() -> str:
    """Platform user id for a new session, e.g. 'user_1a2b3c4d'."""
    return f"user_{uuid.uuid4().hex[:8]}"


# =============================================================================
# SINGLE-AGENT CHAT
# =============================================================================

@dataclass
class AgentConversation:
    """Remote handles for one agent inside a chat session."""
    bot_id: str
    conversation_id: Optional[str] = None
    last_turn_id: Optional[str] = None


@dataclass
class ChatHistoryEntry:
    turn_id: str
    agent_title: str
    user_message: str
    agent_reply: str
    timestamp: int = field(default_factory=now_ms)

    def to_dict(self) -> dict:
        return {
            "id": self.turn_id,
            "agentTitle": self.agent_title,
            "userMessage": self.user_message,
            "agentReply": self.agent_reply,
            "timestamp": self.timestamp,
        }


@dataclass
class ChatSession:
    """Each agent keeps its own remote conversation."""
    session_id: str
    user_id: str = field(default_factory=new_user_id)
    agent_conversations: dict[str, AgentConversation] = field(default_factory=dict)
    history: list[ChatHistoryEntry] = field(default_factory=list)

    def conversation_for(self, agent_title: str, bot_id: str, reset: bool = False) -> AgentConversation:
        """Existing conversation for an agent, or a fresh one when missing or reset."""
        if reset or agent_title not in self.agent_conversations:
            self.agent_conversations[agent_title] = AgentConversation(bot_id=bot_id)
        return self.agent_conversations[agent_title]


# =============================================================================
# MULTI-AGENT DEBATE
# =============================================================================

@dataclass
class DebateHistoryEntry:
    user_message: str
    agent_responses: dict[str, str]
    similarities: dict[str, float]
    timestamp: int = field(default_factory=now_ms)

    def to_dict(self) -> dict:
        return {
            "userMessage": self.user_message,
            "agentResponses": self.agent_responses,
            "similarities": self.similarities,
            "timestamp": self.timestamp,
        }


@dataclass
class DebateSession:
    """
    All agents in a debate share one remote conversation thread.

    agent_last_turns remembers the last turn id each agent produced.
    """
    session_id: str
    user_id: str = field(default_factory=new_user_id)
    conversation_id: Optional[str] = None
    agent_last_turns: dict[str, str] = field(default_factory=dict)
    history: list[DebateHistoryEntry] = field(default_factory=list)

    def reset(self) -> None:
        """Forget remote handles so the next turn starts a fresh conversation. History is kept."""
        self.conversation_id = None
        self.agent_last_turns = {}
