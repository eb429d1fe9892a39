"""
Dialogue Runner — Every agent answers the same message at once.

WHAT THIS DOES:
The non-debate mode. Agents don't see each other's replies, so there is no
reason to wait: all turns run concurrently and each reply is reported the
moment it arrives.

HOW IT WORKS:
1. Validate and rank the agents (same scorer as the debate) → OrderEvent
2. Start one single-agent chat per agent (asyncio tasks); each agent keeps
   its own remote conversation in the chat session
3. Yield a ReplyEvent per agent in completion order; `index` is the agent's
   rank position, `is_final` marks the last reply to arrive
4. → CompleteEvent with replies keyed in rank order

A failed agent becomes an error-flagged reply, like in the debate.
If the consumer disconnects, outstanding turns are cancelled.
"""

import asyncio
import logging
from typing import AsyncIterator, Optional

from app.config import get_settings
from app.services.agents import AgentCatalog
from app.services.chat import ChatParams, ChatService
from app.services.debate.models import (
    CompleteEvent,
    DebateEvent,
    DebateParams,
    OrderEvent,
    ReplyEvent,
)
from app.services.debate.orchestrator import LivenessProbe, format_error_reply
from app.services.debate.protocols import BaseScorer
from app.services.errors import AgentTurnError

logger = logging.getLogger(__name__)


class DialogueRunner:
    """Runs all selected agents concurrently on one message."""

    def __init__(
        self,
        catalog: AgentCatalog,
        chat_service: ChatService,
        scorer: BaseScorer,
        max_retries: Optional[int] = None,
    ):
        self.catalog = catalog
        self.chat_service = chat_service
        self.scorer = scorer
        self.max_retries = max_retries or get_settings().debate_max_retries

    async def _run_agent(self, params: DebateParams, name: str, score: float, index: int) -> ReplyEvent:
        try:
            result = await self.chat_service.chat(
                ChatParams(
                    agent_title=name,
                    message=params.message,
                    file_ids=params.file_ids,
                    session_id=params.session_id,
                    reset=params.reset,
                ),
                max_retries=self.max_retries,
            )
        except AgentTurnError as e:
            logger.warning(f"Dialogue agent {name} failed: {e}")
            return ReplyEvent(
                agent_name=name,
                text=format_error_reply(e),
                score=score,
                index=index,
                is_final=False,
                is_error=True,
            )
        return ReplyEvent(
            agent_name=name,
            text=result.message,
            score=score,
            index=index,
            is_final=False,
        )

    async def steps(
        self,
        params: DebateParams,
        is_alive: Optional[LivenessProbe] = None,
    ) -> AsyncIterator[DebateEvent]:
        self.catalog.resolve(params.agent_names)

        ranking = self.scorer.rank(params.message, params.agent_names)
        ordered_agents = [name for name, _ in ranking]
        scores = dict(ranking)
        yield OrderEvent(ordered_agents=ordered_agents, scores=scores)

        tasks = [
            asyncio.create_task(self._run_agent(params, name, score, index))
            for index, (name, score) in enumerate(ranking)
        ]
        replies: dict[str, str] = {}
        try:
            for done_count, next_done in enumerate(asyncio.as_completed(tasks), 1):
                event = await next_done
                event.is_final = done_count == len(tasks)
                replies[event.agent_name] = event.text
                yield event
                if not event.is_final and is_alive is not None and not await is_alive():
                    logger.info(f"Consumer left dialogue '{params.session_id}', cancelling")
                    return
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()

        yield CompleteEvent(
            replies={name: replies[name] for name in ordered_agents},
            scores=scores,
            ordered_agents=ordered_agents,
        )
