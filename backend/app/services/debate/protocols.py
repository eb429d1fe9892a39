"""
Debate Protocols — Abstract base classes the orchestration depends on.

WHAT THIS IS:
The orchestrator, the dialogue runner and the single-agent chat service only
need two capabilities:
- something that can run one turn against one agent (BaseTurnSender)
- something that can score agents against a message (BaseScorer)

The Coze-backed implementation is CozeConversationClient; the scorer is
RelevanceScorer.

USAGE:
    class ScriptedSender(BaseTurnSender):
        async def send_turn(self, bot_id, user_id, message, file_ids,
                            conversation_id=None, max_retries=None) -> TurnReply:
            return TurnReply(reply_text="...", turn_id="t1", conversation_id="c1")
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass
class TurnReply:
    """Outcome of one successful submit → poll → fetch cycle."""
    reply_text: str
    turn_id: str
    conversation_id: str


class BaseTurnSender(ABC):
    """
    Runs one turn against one remote agent.

    Implementations raise AgentTurnError subclasses on failure.
    """

    @abstractmethod
    async def send_turn(
        self,
        bot_id: str,
        user_id: str,
        message: str,
        file_ids: list[str],
        conversation_id: Optional[str] = None,
        max_retries: Optional[int] = None,
    ) -> TurnReply:
        """
        Send a message and wait for the agent's answer.

        Args:
            bot_id: Remote bot identity
            user_id: Platform user id for the session
            message: Prompt text (possibly augmented with other agents' replies)
            file_ids: Uploaded image file ids to attach
            conversation_id: Existing remote conversation, None starts a fresh one
            max_retries: Poll budget override

        Returns:
            TurnReply with the answer text and the new remote handles
        """
        pass


class BaseScorer(ABC):
    """Scores agents against a message to decide speaking order."""

    @abstractmethod
    def score(self, message: str, agent_name: str) -> float:
        pass

    def rank(self, message: str, agent_names: list[str]) -> list[tuple[str, float]]:
        """Descending by score, ties keep input order."""
        scored = [(name, self.score(message, name)) for name in agent_names]
        return sorted(scored, key=lambda item: item[1], reverse=True)
