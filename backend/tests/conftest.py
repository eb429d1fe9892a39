"""Shared pytest fixtures."""

import asyncio
import json
from typing import Optional

import httpx
import pytest

from app.config import Settings
from app.models.session import ChatSession, DebateSession
from app.services.agents import AgentCatalog
from app.services.chat import ChatService
from app.services.debate import BaseScorer, BaseTurnSender, DebateOrchestrator, TurnReply
from app.services.errors import RemoteCallError
from app.services.session_store import InMemorySessionStore


TEST_BOT_IDS = {
    "Art Critic": "bot_critic",
    "Art Historian": "bot_historian",
    "Painter": "bot_painter",
    "VTS": "bot_vts",
}


class ScriptedSender(BaseTurnSender):
    """
    In-process turn sender.

    Replies "<bot_id> reply #<n>", keeps one remote conversation id per
    conversation chain and records every call. Bots listed in `failures`
    raise the given error; `delays` makes a bot answer later.
    """

    def __init__(
        self,
        failures: Optional[dict[str, Exception]] = None,
        delays: Optional[dict[str, float]] = None,
    ):
        self.failures = failures or {}
        self.delays = delays or {}
        self.calls: list[dict] = []
        self._conversations = 0

    async def send_turn(self, bot_id, user_id, message, file_ids,
                        conversation_id=None, max_retries=None) -> TurnReply:
        self.calls.append({
            "bot_id": bot_id,
            "user_id": user_id,
            "message": message,
            "file_ids": list(file_ids),
            "conversation_id": conversation_id,
            "max_retries": max_retries,
        })
        n = len(self.calls)
        await asyncio.sleep(self.delays.get(bot_id, 0))
        if bot_id in self.failures:
            raise self.failures[bot_id]
        if conversation_id is None:
            self._conversations += 1
            conversation_id = f"conv_{self._conversations}"
        return TurnReply(
            reply_text=f"{bot_id} reply #{n}",
            turn_id=f"turn_{n}",
            conversation_id=conversation_id,
        )


class FixedScorer(BaseScorer):
    """Scores from a table; unknown agents score 0.0."""

    def __init__(self, scores: dict[str, float]):
        self.scores = scores

    def score(self, message, agent_name):
        return self.scores.get(agent_name, 0.0)


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        coze_api_token="test-token",
        coze_base_url="https://coze.test",
        agent_bot_ids=TEST_BOT_IDS,
        poll_interval_seconds=0,
        chat_max_retries=20,
        debate_max_retries=10,
        stream_idle_timeout_seconds=1800,
    )


@pytest.fixture
def catalog() -> AgentCatalog:
    return AgentCatalog(TEST_BOT_IDS)


@pytest.fixture
def sender() -> ScriptedSender:
    return ScriptedSender()


@pytest.fixture
def failing_sender() -> ScriptedSender:
    """The historian's turn always fails."""
    return ScriptedSender(failures={"bot_historian": RemoteCallError("boom")})


@pytest.fixture
def scorer() -> FixedScorer:
    # Critic > Historian > Painter > VTS
    return FixedScorer({"Art Critic": 0.9, "Art Historian": 0.6, "Painter": 0.4, "VTS": 0.2})


@pytest.fixture
def debate_sessions() -> InMemorySessionStore:
    return InMemorySessionStore(DebateSession)


@pytest.fixture
def chat_sessions() -> InMemorySessionStore:
    return InMemorySessionStore(ChatSession)


@pytest.fixture
def orchestrator(catalog, sender, scorer, debate_sessions) -> DebateOrchestrator:
    return DebateOrchestrator(catalog, sender, scorer, debate_sessions, max_retries=10)


@pytest.fixture
def chat_service(catalog, sender, chat_sessions) -> ChatService:
    return ChatService(catalog, sender, chat_sessions, max_retries=20)


# =============================================================================
# Fake chat platform for the HTTP client tests
# =============================================================================

class FakeCozePlatform:
    """
    httpx.MockTransport handler that imitates the chat platform.

    poll_script: statuses returned by successive polls; an int entry is
    returned as that HTTP status code instead (e.g. 404), a None entry as
    a success envelope without data.
    null_data_bots: bots whose submission answers code 0 with null data.
    """

    def __init__(
        self,
        submit_status: str = "in_progress",
        poll_script: Optional[list] = None,
        messages: Optional[list[dict]] = None,
        submit_code: int = 0,
        null_data_bots: Optional[set[str]] = None,
        upload_data: Optional[dict] = None,
    ):
        self.submit_status = submit_status
        self.poll_script = list(poll_script or [])
        self.messages = messages if messages is not None else [
            {"role": "user", "type": "question", "content": "hi"},
            {"role": "assistant", "type": "verbose", "content": "thinking"},
            {"role": "assistant", "type": "answer", "content": "构图很平衡"},
            {"role": "assistant", "type": "follow_up", "content": "还想知道什么?"},
        ]
        self.submit_code = submit_code
        self.null_data_bots = null_data_bots or set()
        self.upload_data = upload_data if upload_data is not None else {"id": "file_42", "bytes": 3}
        self.submitted_bots: list[str] = []
        self.uploads: list[bytes] = []
        self.requests: list[httpx.Request] = []
        self.polls = 0
        self.message_fetches = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path == "/v3/chat":
            if self.submit_code != 0:
                return httpx.Response(200, json={"code": self.submit_code, "msg": "bot not published"})
            bot_id = json.loads(request.content)["bot_id"]
            self.submitted_bots.append(bot_id)
            if bot_id in self.null_data_bots:
                return httpx.Response(200, json={"code": 0, "msg": "", "data": None})
            return httpx.Response(200, json={"code": 0, "msg": "", "data": {
                "id": "turn_1",
                "conversation_id": request.url.params.get("conversation_id", "conv_new"),
                "status": self.submit_status,
            }})
        if path == "/v3/chat/retrieve":
            self.polls += 1
            step = self.poll_script.pop(0) if self.poll_script else "completed"
            if isinstance(step, int):
                return httpx.Response(step, json={"code": step, "msg": "not found"})
            if step is None:
                return httpx.Response(200, json={"code": 0, "msg": ""})
            return httpx.Response(200, json={"code": 0, "msg": "", "data": {"status": step}})
        if path == "/v3/chat/message/list":
            self.message_fetches += 1
            return httpx.Response(200, json={"code": 0, "msg": "", "data": self.messages})
        if path == "/v1/files/upload":
            self.uploads.append(request.read())
            return httpx.Response(200, json={"code": 0, "msg": "", "data": self.upload_data})
        return httpx.Response(404)

    def submitted_body(self, index: int = 0) -> dict:
        submits = [r for r in self.requests if r.url.path == "/v3/chat"]
        return json.loads(submits[index].content)


@pytest.fixture
def make_platform():
    def _make(**kwargs) -> FakeCozePlatform:
        return FakeCozePlatform(**kwargs)
    return _make


@pytest.fixture
def make_sender():
    """Build a ScriptedSender with custom failures or delays."""
    return ScriptedSender
