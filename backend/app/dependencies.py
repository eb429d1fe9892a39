"""
Service graph and FastAPI dependencies.

All state is in memory and process-wide: the session tables, the streaming
job table and one shared HTTP client. build_services() wires everything once
at startup (see main.lifespan); routes receive the graph through
Depends(get_services), which tests override.
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from app.config import Settings, get_settings
from app.models.session import ChatSession, DebateSession
from app.services.agents import AgentCatalog
from app.services.chat import ChatService
from app.services.conversation import CozeConversationClient
from app.services.coze import CozeClient
from app.services.debate import BaseScorer, BaseTurnSender, DebateOrchestrator
from app.services.dialogue import DialogueRunner
from app.services.scorer import RelevanceScorer
from app.services.session_store import ChatSessionStore, DebateSessionStore, InMemorySessionStore
from app.services.streaming import StreamingRelay


@dataclass
class Services:
    settings: Settings
    coze: CozeClient
    catalog: AgentCatalog
    chat_sessions: ChatSessionStore
    debate_sessions: DebateSessionStore
    chat: ChatService
    orchestrator: DebateOrchestrator
    dialogue: DialogueRunner
    relay: StreamingRelay


def build_services(
    settings: Optional[Settings] = None,
    coze: Optional[CozeClient] = None,
    sender: Optional[BaseTurnSender] = None,
    scorer: Optional[BaseScorer] = None,
) -> Services:
    """
    Wire the service graph.

    Args:
        settings: Defaults to the cached environment settings
        coze: Platform client (tests pass one on a mock transport)
        sender: Turn sender, defaults to the Coze-backed client
        scorer: Relevance scorer, defaults to the keyword heuristic
    """
    settings = settings or get_settings()
    coze = coze or CozeClient(
        api_token=settings.coze_api_token,
        base_url=settings.coze_base_url,
        timeout=settings.http_timeout_seconds,
    )
    sender = sender or CozeConversationClient(
        coze,
        poll_interval=settings.poll_interval_seconds,
        default_max_retries=settings.debate_max_retries,
        not_found_limit=settings.not_found_retry_limit,
    )
    scorer = scorer or RelevanceScorer()
    catalog = AgentCatalog(settings.agent_bot_ids)

    chat_sessions = InMemorySessionStore(ChatSession)
    debate_sessions = InMemorySessionStore(DebateSession)

    chat = ChatService(catalog, sender, chat_sessions, max_retries=settings.chat_max_retries)
    orchestrator = DebateOrchestrator(
        catalog, sender, scorer, debate_sessions,
        max_retries=settings.debate_max_retries,
    )
    dialogue = DialogueRunner(catalog, chat, scorer, max_retries=settings.debate_max_retries)
    relay = StreamingRelay(orchestrator, idle_timeout=settings.stream_idle_timeout_seconds)

    return Services(
        settings=settings,
        coze=coze,
        catalog=catalog,
        chat_sessions=chat_sessions,
        debate_sessions=debate_sessions,
        chat=chat,
        orchestrator=orchestrator,
        dialogue=dialogue,
        relay=relay,
    )


def get_services(request: Request) -> Services:
    """Dependency that returns the service graph built at startup."""
    return request.app.state.services
