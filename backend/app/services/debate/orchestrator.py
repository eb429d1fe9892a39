"""
Debate Orchestrator — Coordinates the multi-agent debate turn.

WHAT THIS DOES:
Main entry point for the debate system. Orders the agents by relevance,
lets each one answer in turn with the earlier answers as context, and
records the turn in the debate session.

HOW IT WORKS:
1. Validate the agent set (before any remote call)
2. Reset the session's remote handles if asked
3. Score every agent and sort descending (stable); this order is frozen
   for the turn → OrderEvent
4. For each agent in order:
   - first agent gets the raw message, later agents get the message plus
     every earlier reply, and are asked to agree or rebut
   - run one turn on the session's shared remote conversation
   - success or failure → ReplyEvent (failures become "[错误: ...]")
5. Append the turn to the session history → CompleteEvent

The loop is sequential: each prompt depends on the replies before it.

ONE LOOP, TWO DRIVERS:
`steps()` is an async generator of events. The batch caller drains it and
keeps the CompleteEvent; the streaming caller forwards every event. Before
each agent call the generator asks the optional liveness probe; if the
consumer is gone it stops without a CompleteEvent and without history.

SHARED CONVERSATION:
All agents of a debate post into the same remote conversation
(session.conversation_id). This is inherited behavior and kept as is.

USAGE:
    orchestrator = DebateOrchestrator(catalog, sender, scorer, debate_sessions)
    outcome = await orchestrator.run_debate(DebateParams(
        agent_names=["Art Critic", "Art Historian"],
        message="这幅画的色彩和构图很有历史感",
    ))
    outcome.ordered_agents   # ["Art Critic", "Art Historian"]
"""

import inspect
import logging
import time
from typing import AsyncIterator, Awaitable, Callable, Optional, Union

from app.config import get_settings
from app.models.session import DebateHistoryEntry, DebateSession
from app.services.agents import Agent, AgentCatalog
from app.services.debate.models import (
    CompleteEvent,
    DebateEvent,
    DebateOutcome,
    DebateParams,
    OrderEvent,
    ReplyEvent,
)
from app.services.debate.protocols import BaseScorer, BaseTurnSender
from app.services.errors import AgentTurnError
from app.services.session_store import DebateSessionStore

logger = logging.getLogger(__name__)

LivenessProbe = Callable[[], Awaitable[bool]]
Emit = Callable[[DebateEvent], Union[None, Awaitable[None]]]


def format_error_reply(error: Exception) -> str:
    """Marker substituted for a failed agent's reply."""
    return f"[错误: {error}]"


def build_context_prompt(
    message: str,
    prior_replies: list[tuple[str, str]],
    agent_name: str,
) -> str:
    """
    Prompt for an agent that speaks after others.

    Quotes the user's message, lists every earlier (agent, reply), then asks
    this agent to react briefly. The first agent gets the raw message.

    Example:
        build_context_prompt("这幅画怎么样?", [("Art Critic", "构图很好")], "Painter")
        # 用户说: "这幅画怎么样?"
        #
        # 其他专家的评论:
        # Art Critic: "构图很好"
        #
        # 请你作为Painter，考虑以上评论，给出自己的看法，可以反驳，也可以支持。（自然简洁回答）
    """
    if not prior_replies:
        return message
    comments = "\n".join(f'{name}: "{reply}"' for name, reply in prior_replies)
    return (
        f'用户说: "{message}"\n\n'
        f"其他专家的评论:\n{comments}\n\n"
        f"请你作为{agent_name}，考虑以上评论，给出自己的看法，可以反驳，也可以支持。（自然简洁回答）"
    )


class DebateOrchestrator:
    """
    Orchestrates one debate turn across several agents.

    Holds no per-request state: everything a turn mutates lives in the
    DebateSession fetched from the store.
    """

    def __init__(
        self,
        catalog: AgentCatalog,
        sender: BaseTurnSender,
        scorer: BaseScorer,
        sessions: DebateSessionStore,
        max_retries: Optional[int] = None,
    ):
        self.catalog = catalog
        self.sender = sender
        self.scorer = scorer
        self.sessions = sessions
        self.max_retries = max_retries or get_settings().debate_max_retries

    def validate(self, agent_names: list[str]) -> list[Agent]:
        """Resolve agent names or raise AgentSelectionError."""
        return self.catalog.resolve(agent_names)

    async def steps(
        self,
        params: DebateParams,
        is_alive: Optional[LivenessProbe] = None,
    ) -> AsyncIterator[DebateEvent]:
        """
        Run one debate turn, yielding an event per step.

        Yields exactly one OrderEvent, one ReplyEvent per agent in speaking
        order, then one CompleteEvent, unless the liveness probe reports the
        consumer gone, in which case the generator just stops.

        Raises:
            AgentSelectionError: before any event or side effect
        """
        agents = {agent.display_name: agent for agent in self.validate(params.agent_names)}
        session = self.sessions.get_or_create(params.session_id)
        if params.reset:
            session.reset()
            logger.info(f"Reset debate session '{params.session_id}'")

        ranking = self.scorer.rank(params.message, list(agents))
        ordered_agents = [name for name, _ in ranking]
        scores = dict(ranking)
        logger.info(
            f"Debate order for session '{params.session_id}': "
            + ", ".join(f"{name} ({score:.2f})" for name, score in ranking)
        )
        yield OrderEvent(ordered_agents=ordered_agents, scores=scores)

        prior_replies: list[tuple[str, str]] = []
        replies: dict[str, str] = {}
        start_time = time.time()

        for index, name in enumerate(ordered_agents):
            if is_alive is not None and not await is_alive():
                logger.info(
                    f"Consumer left debate '{params.session_id}' before {name}, stopping"
                )
                return

            prompt = build_context_prompt(params.message, prior_replies, name)
            event = await self._run_agent_turn(
                session, agents[name], prompt, params.file_ids,
                score=scores[name],
                index=index,
                is_final=index == len(ordered_agents) - 1,
            )
            prior_replies.append((name, event.text))
            replies[name] = event.text
            yield event

        session.history.append(DebateHistoryEntry(
            user_message=params.message,
            agent_responses=dict(replies),
            similarities=dict(scores),
        ))
        logger.info(
            f"Debate complete for session '{params.session_id}': "
            f"{len(ordered_agents)} agents in {time.time() - start_time:.2f}s"
        )
        yield CompleteEvent(
            replies=replies,
            scores=scores,
            ordered_agents=ordered_agents,
            conversation_id=session.conversation_id,
        )

    async def _run_agent_turn(
        self,
        session: DebateSession,
        agent: Agent,
        prompt: str,
        file_ids: list[str],
        score: float,
        index: int,
        is_final: bool,
    ) -> ReplyEvent:
        """One agent's turn; AgentTurnError becomes an error-flagged reply."""
        try:
            reply = await self.sender.send_turn(
                agent.bot_id,
                session.user_id,
                prompt,
                file_ids,
                conversation_id=session.conversation_id,
                max_retries=self.max_retries,
            )
        except AgentTurnError as e:
            logger.warning(f"Agent {agent.display_name} failed: {e}")
            return ReplyEvent(
                agent_name=agent.display_name,
                text=format_error_reply(e),
                score=score,
                index=index,
                is_final=is_final,
                is_error=True,
            )

        session.conversation_id = reply.conversation_id
        session.agent_last_turns[agent.display_name] = reply.turn_id
        return ReplyEvent(
            agent_name=agent.display_name,
            text=reply.reply_text,
            score=score,
            index=index,
            is_final=is_final,
        )

    async def run_debate(self, params: DebateParams) -> DebateOutcome:
        """Batch mode: run the whole turn and return the aggregate."""
        failed_agents: list[str] = []
        async for event in self.steps(params):
            if isinstance(event, ReplyEvent) and event.is_error:
                failed_agents.append(event.agent_name)
            elif isinstance(event, CompleteEvent):
                return DebateOutcome.from_event(event, failed_agents)
        raise RuntimeError("debate ended without a complete event")

    async def run_debate_streaming(
        self,
        params: DebateParams,
        emit: Emit,
        is_alive: Optional[LivenessProbe] = None,
    ) -> None:
        """Streaming mode: hand every event to `emit` (sync or async) as it happens."""
        async for event in self.steps(params, is_alive=is_alive):
            result = emit(event)
            if inspect.isawaitable(result):
                await result
