"""
Error taxonomy for the chat, debate and streaming services.

HIERARCHY:
    ArtChatError
    ├── AgentSelectionError        request-level, raised before any remote call
    │   ├── EmptyAgentSetError
    │   ├── UnknownAgentError
    │   └── DuplicateAgentError
    ├── AgentTurnError             one agent's turn failed
    │   ├── RemoteCallError
    │   │   └── TurnNotFoundError  poll answered 404 (job briefly invisible)
    │   ├── TurnIncompleteError
    │   ├── PollingTimeoutError
    │   └── NoAnswerFoundError
    └── StreamNotFoundError        unknown, expired or already consumed stream id

Debate flows catch AgentTurnError per agent and keep going.
AgentSelectionError and StreamNotFoundError end the request.
"""

from typing import Optional


class ArtChatError(Exception):
    """Base class for every error raised by this service."""


# =============================================================================
# REQUEST VALIDATION
# =============================================================================

class AgentSelectionError(ArtChatError):
    """The requested set of agents can't be used."""


class EmptyAgentSetError(AgentSelectionError):
    def __init__(self):
        super().__init__("需要提供至少一个智能体")


class UnknownAgentError(AgentSelectionError):
    def __init__(self, agent_name: str):
        self.agent_name = agent_name
        super().__init__(f"未找到智能体: {agent_name}")


class DuplicateAgentError(AgentSelectionError):
    def __init__(self, agent_name: str):
        self.agent_name = agent_name
        super().__init__(f"智能体重复: {agent_name}")


# =============================================================================
# PER-AGENT TURN FAILURES
# =============================================================================

class AgentTurnError(ArtChatError):
    """A single submit → poll → fetch cycle failed."""


class RemoteCallError(AgentTurnError):
    """Transport, HTTP or envelope failure from the chat platform."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class TurnNotFoundError(RemoteCallError):
    def __init__(self, turn_id: str):
        self.turn_id = turn_id
        super().__init__(f"对话不存在: {turn_id}", status_code=404)


class TurnIncompleteError(AgentTurnError):
    def __init__(self, status: str, retry_count: int):
        self.status = status
        self.retry_count = retry_count
        super().__init__(f"对话未完成，状态: {status}，重试次数: {retry_count}")


class PollingTimeoutError(AgentTurnError):
    def __init__(self, retry_count: int):
        self.retry_count = retry_count
        super().__init__(f"轮询超时，重试次数: {retry_count}")


class NoAnswerFoundError(AgentTurnError):
    def __init__(self):
        super().__init__("未找到智能体回复")


# =============================================================================
# STREAMING
# =============================================================================

class StreamNotFoundError(ArtChatError):
    def __init__(self, stream_id: str):
        self.stream_id = stream_id
        super().__init__(f"未找到流式辩论会话: {stream_id}")
