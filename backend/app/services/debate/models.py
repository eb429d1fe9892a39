"""
Debate Models — Data structures for the multi-agent debate system.

These dataclasses define the contract between debate components:
- DebateParams: What a debate (or streaming job) is asked to do
- OrderEvent / ReplyEvent / CompleteEvent / ErrorEvent: Steps of a debate turn
- DebateOutcome: The aggregate a batch caller gets back

Every event knows its wire payload (`to_payload()`), which is what the
event stream sends as `data: <json>`.
"""

from dataclasses import dataclass, field
from typing import Optional, Union


@dataclass
class DebateParams:
    """Inputs of one debate turn."""

    agent_names: list[str]
    """Requested agents, in request order"""

    message: str
    """The user's message"""

    file_ids: list[str] = field(default_factory=list)
    """Uploaded artwork image file ids"""

    session_id: str = "default"
    """Debate session to read and update"""

    reset: bool = False
    """Start a fresh remote conversation before this turn"""


@dataclass
class OrderEvent:
    """Speaking order, emitted once before any agent is called."""

    ordered_agents: list[str]
    scores: dict[str, float]

    type = "order"

    def to_payload(self) -> dict:
        return {
            "type": self.type,
            "orderedAgents": self.ordered_agents,
            "similarities": self.scores,
        }


@dataclass
class ReplyEvent:
    """One agent's reply (or the error marker substituted for it)."""

    agent_name: str
    text: str
    score: float
    index: int
    """Position of the agent in the speaking order"""

    is_final: bool
    """True for the last agent of the turn"""

    is_error: bool = False

    type = "response"

    def to_payload(self) -> dict:
        payload = {
            "type": self.type,
            "agentTitle": self.agent_name,
            "response": self.text,
            "similarity": self.score,
            "isComplete": self.is_final,
            "index": self.index,
        }
        if self.is_error:
            payload["isError"] = True
        return payload


@dataclass
class CompleteEvent:
    """Aggregate of the whole turn, emitted last."""

    replies: dict[str, str]
    scores: dict[str, float]
    ordered_agents: list[str]
    conversation_id: Optional[str] = None

    type = "complete"

    def to_payload(self) -> dict:
        return {
            "type": self.type,
            "responses": self.replies,
            "similarities": self.scores,
            "orderedAgents": self.ordered_agents,
            "conversationId": self.conversation_id,
        }


@dataclass
class ErrorEvent:
    """Fatal failure of the whole stream (not a per-agent failure)."""

    message: str

    type = "error"

    def to_payload(self) -> dict:
        return {"type": self.type, "success": False, "error": self.message}


DebateEvent = Union[OrderEvent, ReplyEvent, CompleteEvent, ErrorEvent]


@dataclass
class DebateOutcome:
    """
    Final result of a batch debate turn.

    replies and scores are keyed by agent name; ordered_agents is the
    speaking order that was used.
    """

    replies: dict[str, str]
    scores: dict[str, float]
    ordered_agents: list[str]
    conversation_id: Optional[str] = None
    failed_agents: list[str] = field(default_factory=list)

    @classmethod
    def from_event(cls, event: CompleteEvent, failed_agents: list[str]) -> "DebateOutcome":
        return cls(
            replies=event.replies,
            scores=event.scores,
            ordered_agents=event.ordered_agents,
            conversation_id=event.conversation_id,
            failed_agents=failed_agents,
        )

    @property
    def num_agents(self) -> int:
        return len(self.ordered_agents)

    @property
    def all_failed(self) -> bool:
        return bool(self.ordered_agents) and len(self.failed_agents) == len(self.ordered_agents)
