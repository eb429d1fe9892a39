"""
Agent Conversation Client — One full turn against one remote agent.

WHAT THIS DOES:
Sends a message (plus optional artwork images) to an agent and waits for
its answer, hiding the platform's async job protocol.

HOW IT WORKS:
1. Submit the message as content items (text + image file ids), attached to
   the existing remote conversation if there is one
2. While the turn is "in_progress": wait, then poll its status
   (rules live in TurnPoller: poll budget, not-found tolerance)
3. Once it settles as "completed", list the turn's messages
4. Return the first assistant message of type "answer"

USAGE:
    sender = CozeConversationClient(CozeClient())
    reply = await sender.send_turn(bot_id, "user_1a2b3c4d", "这幅画怎么样?", ["file_1"])
    reply.reply_text        # the agent's answer
    reply.conversation_id   # pass back in to continue the conversation
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from app.config import get_settings
from app.services.coze import CozeClient, build_content_items
from app.services.debate.protocols import BaseTurnSender, TurnReply
from app.services.errors import NoAnswerFoundError, TurnNotFoundError
from app.services.turn_poller import TurnPoller

logger = logging.getLogger(__name__)


def select_answer(messages: list[dict]) -> Optional[str]:
    """Content of the first assistant answer, or None."""
    for message in messages:
        if (
            message.get("role") == "assistant"
            and message.get("type") == "answer"
            and isinstance(message.get("content"), str)
        ):
            return message["content"]
    return None


class CozeConversationClient(BaseTurnSender):
    """BaseTurnSender backed by the Coze chat platform."""

    def __init__(
        self,
        client: CozeClient,
        poll_interval: Optional[float] = None,
        default_max_retries: Optional[int] = None,
        not_found_limit: Optional[int] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        settings = get_settings()
        self.client = client
        self.poll_interval = (
            settings.poll_interval_seconds if poll_interval is None else poll_interval
        )
        self.default_max_retries = default_max_retries or settings.debate_max_retries
        self.not_found_limit = not_found_limit or settings.not_found_retry_limit
        self._sleep = sleep

    async def send_turn(
        self,
        bot_id: str,
        user_id: str,
        message: str,
        file_ids: list[str],
        conversation_id: Optional[str] = None,
        max_retries: Optional[int] = None,
    ) -> TurnReply:
        submission = await self.client.submit_turn(
            bot_id,
            user_id,
            build_content_items(message, file_ids),
            conversation_id=conversation_id,
        )

        poller = TurnPoller(
            max_retries=max_retries or self.default_max_retries,
            not_found_limit=self.not_found_limit,
        )
        poller.start(submission.status)
        while poller.should_poll:
            await self._sleep(self.poll_interval)
            try:
                status = await self.client.poll_turn(
                    submission.turn_id, submission.conversation_id
                )
            except TurnNotFoundError:
                logger.warning(
                    f"Turn {submission.turn_id} not found "
                    f"({poller.not_found_count + 1}/{poller.not_found_limit})"
                )
                poller.on_not_found()
                continue
            poller.on_status(status)
        poller.raise_for_failure()

        messages = await self.client.list_turn_messages(
            submission.turn_id, submission.conversation_id
        )
        answer = select_answer(messages)
        if answer is None:
            raise NoAnswerFoundError()

        logger.info(
            f"Turn {submission.turn_id} completed after {poller.retry_count} polls "
            f"({len(answer)} chars)"
        )
        return TurnReply(
            reply_text=answer,
            turn_id=submission.turn_id,
            conversation_id=submission.conversation_id,
        )
