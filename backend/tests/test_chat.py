"""Tests for single-agent chat and the concurrent dialogue mode."""

import pytest

from app.services.chat import ChatParams, ChatService
from app.services.debate import CompleteEvent, DebateParams, OrderEvent, ReplyEvent
from app.services.dialogue import DialogueRunner
from app.services.errors import RemoteCallError, UnknownAgentError


# =============================================================================
# SINGLE-AGENT CHAT
# =============================================================================

@pytest.mark.asyncio
async def test_chat_records_reply_and_handles(chat_service, sender, chat_sessions):
    result = await chat_service.chat(ChatParams(
        agent_title="Painter", message="笔触如何?", file_ids=["file_1"], session_id="c",
    ))

    assert result.message == "bot_painter reply #1"
    assert result.chat_id == "turn_1"
    assert result.conversation_id == "conv_1"
    assert sender.calls[0]["max_retries"] == 20

    session = chat_sessions.get("c")
    conversation = session.agent_conversations["Painter"]
    assert conversation.conversation_id == "conv_1"
    assert conversation.last_turn_id == "turn_1"
    assert session.history[0].to_dict() == {
        "id": "turn_1",
        "agentTitle": "Painter",
        "userMessage": "笔触如何?",
        "agentReply": "bot_painter reply #1",
        "timestamp": session.history[0].timestamp,
    }


@pytest.mark.asyncio
async def test_each_agent_keeps_its_own_conversation(chat_service, sender):
    await chat_service.chat(ChatParams(agent_title="Painter", message="1", session_id="c"))
    await chat_service.chat(ChatParams(agent_title="Art Critic", message="2", session_id="c"))
    await chat_service.chat(ChatParams(agent_title="Painter", message="3", session_id="c"))

    assert [call["conversation_id"] for call in sender.calls] == [None, None, "conv_1"]


@pytest.mark.asyncio
async def test_reset_drops_the_agent_conversation(chat_service, sender):
    await chat_service.chat(ChatParams(agent_title="Painter", message="1", session_id="c"))
    await chat_service.chat(ChatParams(agent_title="Painter", message="2", session_id="c", reset=True))

    assert sender.calls[1]["conversation_id"] is None


@pytest.mark.asyncio
async def test_chat_errors_propagate(catalog, make_sender, chat_sessions):
    service = ChatService(
        catalog, make_sender(failures={"bot_painter": RemoteCallError("down")}), chat_sessions,
    )

    with pytest.raises(RemoteCallError):
        await service.chat(ChatParams(agent_title="Painter", message="hi", session_id="c"))
    with pytest.raises(UnknownAgentError):
        await service.chat(ChatParams(agent_title="Sculptor", message="hi", session_id="c"))

    assert chat_sessions.get("c").history == []


# =============================================================================
# DIALOGUE
# =============================================================================

@pytest.mark.asyncio
async def test_dialogue_reports_replies_as_they_finish(catalog, make_sender, scorer, chat_sessions):
    # The critic ranks first but answers last
    sender = make_sender(delays={"bot_critic": 0.05, "bot_historian": 0.02, "bot_painter": 0.0})
    runner = DialogueRunner(catalog, ChatService(catalog, sender, chat_sessions), scorer)

    events = [event async for event in runner.steps(DebateParams(
        agent_names=["Painter", "Art Critic", "Art Historian"], message="hi", session_id="d",
    ))]

    assert isinstance(events[0], OrderEvent)
    assert events[0].ordered_agents == ["Art Critic", "Art Historian", "Painter"]
    replies = events[1:-1]
    assert all(isinstance(event, ReplyEvent) for event in replies)
    assert [event.agent_name for event in replies] == ["Painter", "Art Historian", "Art Critic"]
    assert [event.index for event in replies] == [2, 1, 0]
    assert [event.is_final for event in replies] == [False, False, True]

    complete = events[-1]
    assert isinstance(complete, CompleteEvent)
    assert list(complete.replies) == ["Art Critic", "Art Historian", "Painter"]
    # Agents don't see each other: every prompt is the raw message
    assert all(call["message"] == "hi" for call in sender.calls)
    assert len(chat_sessions.get("d").history) == 3


@pytest.mark.asyncio
async def test_dialogue_flags_failed_agents(catalog, failing_sender, scorer, chat_sessions):
    runner = DialogueRunner(catalog, ChatService(catalog, failing_sender, chat_sessions), scorer)

    events = [event async for event in runner.steps(DebateParams(
        agent_names=["Art Critic", "Art Historian"], message="hi",
    ))]

    failed = [event for event in events if isinstance(event, ReplyEvent) and event.is_error]
    assert [event.agent_name for event in failed] == ["Art Historian"]
    assert events[-1].replies["Art Historian"] == "[错误: boom]"


@pytest.mark.asyncio
async def test_dialogue_validates_agents(catalog, sender, scorer, chat_sessions):
    runner = DialogueRunner(catalog, ChatService(catalog, sender, chat_sessions), scorer)

    with pytest.raises(UnknownAgentError):
        async for _ in runner.steps(DebateParams(agent_names=["Nobody"], message="hi")):
            pass
    assert sender.calls == []
