"""
Debate Module — Multi-agent conversation about an artwork.

Two modes share the same ranking and event vocabulary:
- Debate: agents speak one after another, each seeing the replies before it
- Dialogue: agents answer concurrently, each reported as soon as it finishes

COMPONENTS:
- DebateOrchestrator: Sequential debate turn, batch or streaming
- Dialogue mode lives in app.services.dialogue (DialogueRunner)
- Events (OrderEvent, ReplyEvent, CompleteEvent, ErrorEvent) + DebateOutcome
- BaseTurnSender / BaseScorer: What the orchestration depends on

USAGE:
    from app.services.debate import DebateOrchestrator, DebateParams

    outcome = await orchestrator.run_debate(DebateParams(
        agent_names=["Art Critic", "Painter"],
        message="这幅画的笔触和色彩",
    ))
    print(outcome.ordered_agents, outcome.replies)

    # Streaming: every step as it happens
    async for event in orchestrator.steps(params, is_alive=probe):
        send(event.to_payload())
"""

# Main entry points
from app.services.debate.orchestrator import (
    DebateOrchestrator,
    build_context_prompt,
    format_error_reply,
)

# Data models
from app.services.debate.models import (
    CompleteEvent,
    DebateEvent,
    DebateOutcome,
    DebateParams,
    ErrorEvent,
    OrderEvent,
    ReplyEvent,
)

# Abstract bases
from app.services.debate.protocols import (
    BaseScorer,
    BaseTurnSender,
    TurnReply,
)

__all__ = [
    # Main entry points
    "DebateOrchestrator",
    "build_context_prompt",
    "format_error_reply",
    # Data models
    "CompleteEvent",
    "DebateEvent",
    "DebateOutcome",
    "DebateParams",
    "ErrorEvent",
    "OrderEvent",
    "ReplyEvent",
    # Abstract bases
    "BaseScorer",
    "BaseTurnSender",
    "TurnReply",
]
