"""
Turn Poller — State machine for one remote chat turn.

WHAT THIS DOES:
The chat platform answers asynchronously: a submitted turn starts as
"in_progress" and has to be polled until it settles. This module holds the
rules for that loop without doing any I/O, so the rules can be tested alone.

STATES:
    SUBMITTED ──start()──▶ POLLING ──on_status("completed")──▶ COMPLETED
                              │  ▲
             on_not_found()   │  │ on_status("in_progress")
                              ▼  │
                        NOT_FOUND_RETRY
    Any state ──▶ FAILED(error) on: terminal non-completed status,
                  poll budget exhausted, too many consecutive not-found polls

RULES:
- Every successful poll counts against max_retries and resets the
  not-found counter
- Not-found polls don't use the budget, but the limit-th consecutive one fails
- The caller keeps polling while `should_poll` is True

USAGE:
    poller = TurnPoller(max_retries=100)
    poller.start(submission.status)
    while poller.should_poll:
        await asyncio.sleep(1)
        try:
            poller.on_status(await client.poll_turn(turn_id, conversation_id))
        except TurnNotFoundError:
            poller.on_not_found()
    poller.raise_for_failure()
"""

from enum import Enum
from typing import Optional

from app.services.errors import (
    AgentTurnError,
    PollingTimeoutError,
    RemoteCallError,
    TurnIncompleteError,
)

IN_PROGRESS = "in_progress"
COMPLETED = "completed"


class TurnState(str, Enum):
    SUBMITTED = "submitted"
    POLLING = "polling"
    NOT_FOUND_RETRY = "not_found_retry"
    COMPLETED = "completed"
    FAILED = "failed"


class TurnPoller:
    """Deterministic transitions for the submit → poll → settle cycle."""

    def __init__(self, max_retries: int = 100, not_found_limit: int = 3):
        self.max_retries = max_retries
        self.not_found_limit = not_found_limit
        self.state = TurnState.SUBMITTED
        self.status: Optional[str] = None
        self.retry_count = 0
        self.not_found_count = 0
        self.error: Optional[AgentTurnError] = None

    @property
    def should_poll(self) -> bool:
        return self.state in (TurnState.POLLING, TurnState.NOT_FOUND_RETRY)

    @property
    def finished(self) -> bool:
        return self.state in (TurnState.COMPLETED, TurnState.FAILED)

    def start(self, status: str) -> TurnState:
        """Apply the status returned by the submission."""
        if self.state is not TurnState.SUBMITTED:
            raise RuntimeError(f"start() called in state {self.state.value}")
        return self._settle(status)

    def on_status(self, status: str) -> TurnState:
        """Apply the status from a successful poll."""
        self._require_polling()
        self.retry_count += 1
        self.not_found_count = 0
        return self._settle(status)

    def on_not_found(self) -> TurnState:
        """Apply a poll that answered "not found"."""
        self._require_polling()
        self.not_found_count += 1
        if self.not_found_count >= self.not_found_limit:
            return self._fail(RemoteCallError(
                f"轮询对话状态时出错: 连续 {self.not_found_count} 次未找到对话",
                status_code=404,
            ))
        self.state = TurnState.NOT_FOUND_RETRY
        return self.state

    def raise_for_failure(self) -> None:
        if self.error is not None:
            raise self.error

    def _settle(self, status: str) -> TurnState:
        self.status = status
        if status == COMPLETED:
            self.state = TurnState.COMPLETED
        elif status != IN_PROGRESS:
            self._fail(TurnIncompleteError(status, self.retry_count))
        elif self.retry_count >= self.max_retries:
            self._fail(PollingTimeoutError(self.retry_count))
        else:
            self.state = TurnState.POLLING
        return self.state

    def _fail(self, error: AgentTurnError) -> TurnState:
        self.error = error
        self.state = TurnState.FAILED
        return self.state

    def _require_polling(self) -> None:
        if not self.should_poll:
            raise RuntimeError(f"poll result applied in state {self.state.value}")
