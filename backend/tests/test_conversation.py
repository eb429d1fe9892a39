"""
Tests for the chat platform client and the turn protocol on top of it.

The platform is faked with httpx.MockTransport (see FakeCozePlatform in
conftest.py); polling sleeps are recorded instead of awaited.
"""

import json

import httpx
import pytest

from app.services.conversation import CozeConversationClient, select_answer
from app.services.coze import CozeClient, build_content_items
from app.services.errors import (
    NoAnswerFoundError,
    PollingTimeoutError,
    RemoteCallError,
    TurnIncompleteError,
    TurnNotFoundError,
)


class RecordingSleep:
    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def make_client(platform) -> CozeClient:
    return CozeClient(
        api_token="test-token",
        base_url="https://coze.test",
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(platform)),
    )


def make_sender(platform, sleep=None, max_retries=100) -> CozeConversationClient:
    return CozeConversationClient(
        make_client(platform),
        poll_interval=1.0,
        default_max_retries=max_retries,
        not_found_limit=3,
        sleep=sleep or RecordingSleep(),
    )


# =============================================================================
# CONTENT ITEMS / ANSWER SELECTION
# =============================================================================

def test_content_items_text_then_images():
    items = build_content_items("看这幅画", ["file_1", "", None, "file_2"])

    assert items == [
        {"type": "text", "text": "看这幅画"},
        {"type": "image", "file_id": "file_1"},
        {"type": "image", "file_id": "file_2"},
    ]


def test_select_answer_picks_first_assistant_answer():
    messages = [
        {"role": "assistant", "type": "verbose", "content": "x"},
        {"role": "user", "type": "answer", "content": "not me"},
        {"role": "assistant", "type": "answer", "content": "first"},
        {"role": "assistant", "type": "answer", "content": "second"},
    ]

    assert select_answer(messages) == "first"
    assert select_answer([]) is None


# =============================================================================
# TURN PROTOCOL
# =============================================================================

@pytest.mark.asyncio
async def test_polls_until_completed(make_platform):
    """N in_progress polls then completed → N+1 polls and one message fetch."""
    platform = make_platform(poll_script=["in_progress"] * 4 + ["completed"])
    sleep = RecordingSleep()
    sender = make_sender(platform, sleep=sleep)

    reply = await sender.send_turn("bot_critic", "user_1", "这幅画怎么样?", ["file_1"])

    assert reply.reply_text == "构图很平衡"
    assert reply.turn_id == "turn_1"
    assert reply.conversation_id == "conv_new"
    assert platform.polls == 5
    assert platform.message_fetches == 1
    assert sleep.delays == [1.0] * 5


@pytest.mark.asyncio
async def test_submission_payload_and_auth(make_platform):
    platform = make_platform(submit_status="completed")
    sender = make_sender(platform)

    await sender.send_turn("bot_critic", "user_1", "你好", ["file_1"])

    submit = platform.requests[0]
    assert submit.headers["Authorization"] == "Bearer test-token"
    assert "conversation_id" not in submit.url.params

    body = platform.submitted_body()
    assert body["bot_id"] == "bot_critic"
    assert body["user_id"] == "user_1"
    assert body["auto_save_history"] is True
    message = body["additional_messages"][0]
    assert message["role"] == "user"
    assert message["content_type"] == "object_string"
    assert json.loads(message["content"]) == [
        {"type": "text", "text": "你好"},
        {"type": "image", "file_id": "file_1"},
    ]
    assert all(r.headers["Authorization"] == "Bearer test-token" for r in platform.requests)


@pytest.mark.asyncio
async def test_existing_conversation_is_continued(make_platform):
    platform = make_platform(submit_status="completed")
    sender = make_sender(platform)

    reply = await sender.send_turn("bot_critic", "user_1", "继续", [], conversation_id="conv_9")

    assert platform.requests[0].url.params["conversation_id"] == "conv_9"
    assert reply.conversation_id == "conv_9"
    assert platform.polls == 0


@pytest.mark.asyncio
async def test_three_not_found_polls_fail_without_a_fourth(make_platform):
    platform = make_platform(poll_script=[404, 404, 404, "completed"])
    sender = make_sender(platform)

    with pytest.raises(RemoteCallError):
        await sender.send_turn("bot_critic", "user_1", "hi", [])

    assert platform.polls == 3
    assert platform.message_fetches == 0


@pytest.mark.asyncio
async def test_not_found_then_success_recovers(make_platform):
    platform = make_platform(poll_script=[404, 404, "in_progress", 404, 404, "completed"])
    sender = make_sender(platform)

    reply = await sender.send_turn("bot_critic", "user_1", "hi", [])

    assert reply.reply_text == "构图很平衡"
    assert platform.polls == 6


@pytest.mark.asyncio
async def test_failed_status_is_incomplete(make_platform):
    platform = make_platform(poll_script=["in_progress", "failed"])
    sender = make_sender(platform)

    with pytest.raises(TurnIncompleteError) as exc_info:
        await sender.send_turn("bot_critic", "user_1", "hi", [])

    assert exc_info.value.status == "failed"
    assert platform.message_fetches == 0


@pytest.mark.asyncio
async def test_poll_budget_exhausted(make_platform):
    platform = make_platform(poll_script=["in_progress"] * 10)
    sender = make_sender(platform, max_retries=100)

    with pytest.raises(PollingTimeoutError):
        await sender.send_turn("bot_critic", "user_1", "hi", [], max_retries=4)

    assert platform.polls == 4


@pytest.mark.asyncio
async def test_no_answer_message(make_platform):
    platform = make_platform(
        submit_status="completed",
        messages=[{"role": "assistant", "type": "follow_up", "content": "?"}],
    )
    sender = make_sender(platform)

    with pytest.raises(NoAnswerFoundError):
        await sender.send_turn("bot_critic", "user_1", "hi", [])


@pytest.mark.asyncio
async def test_envelope_error_code(make_platform):
    platform = make_platform(submit_code=4000)
    sender = make_sender(platform)

    with pytest.raises(RemoteCallError, match="bot not published"):
        await sender.send_turn("bot_critic", "user_1", "hi", [])


@pytest.mark.asyncio
async def test_transport_error_becomes_remote_call_error():
    def unreachable(request):
        raise httpx.ConnectError("connection refused", request=request)

    sender = make_sender(unreachable)

    with pytest.raises(RemoteCallError, match="connection refused"):
        await sender.send_turn("bot_critic", "user_1", "hi", [])


# =============================================================================
# RAW CLIENT
# =============================================================================

@pytest.mark.asyncio
async def test_poll_404_is_turn_not_found(make_platform):
    client = make_client(make_platform(poll_script=[404]))

    with pytest.raises(TurnNotFoundError):
        await client.poll_turn("turn_1", "conv_1")


@pytest.mark.asyncio
async def test_upload_file(make_platform):
    platform = make_platform()
    client = make_client(platform)

    uploaded = await client.upload_file(b"jpg", "xrk1.jpeg")

    assert uploaded.file_id == "file_42"
    assert uploaded.file_name == "xrk1.jpeg"
    assert uploaded.bytes == 3
    assert b"xrk1.jpeg" in platform.uploads[0]
    await client.close()


@pytest.mark.asyncio
async def test_upload_without_file_id(make_platform):
    client = make_client(make_platform(upload_data={"bytes": 3}))

    with pytest.raises(RemoteCallError, match="id"):
        await client.upload_file(b"jpg", "artwork.jpg")


# =============================================================================
# MALFORMED RESPONSES
# =============================================================================

@pytest.mark.asyncio
async def test_submission_without_data(make_platform):
    platform = make_platform(null_data_bots={"bot_critic"})
    sender = make_sender(platform)

    with pytest.raises(RemoteCallError):
        await sender.send_turn("bot_critic", "user_1", "hi", [])

    assert platform.polls == 0


@pytest.mark.asyncio
async def test_poll_without_data(make_platform):
    platform = make_platform(poll_script=[None])
    sender = make_sender(platform)

    with pytest.raises(RemoteCallError):
        await sender.send_turn("bot_critic", "user_1", "hi", [])

    assert platform.message_fetches == 0


@pytest.mark.asyncio
async def test_message_list_of_wrong_shape(make_platform):
    sender = make_sender(make_platform(submit_status="completed", messages={"oops": 1}))

    with pytest.raises(RemoteCallError):
        await sender.send_turn("bot_critic", "user_1", "hi", [])


@pytest.mark.asyncio
async def test_non_text_answer_is_skipped(make_platform):
    platform = make_platform(submit_status="completed", messages=[
        "garbage",
        {"role": "assistant", "type": "answer", "content": None},
        {"role": "assistant", "type": "answer", "content": "第二个回答"},
    ])
    sender = make_sender(platform)

    reply = await sender.send_turn("bot_critic", "user_1", "hi", [])

    assert reply.reply_text == "第二个回答"


@pytest.mark.asyncio
async def test_envelope_that_is_not_an_object():
    def handler(request):
        return httpx.Response(200, json=["not", "an", "envelope"])

    with pytest.raises(RemoteCallError):
        await make_client(handler).poll_turn("turn_1", "conv_1")
