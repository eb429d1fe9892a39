# Session state and API schemas
from app.models.session import (
    ChatSession,
    DebateSession,
)
from app.models.schemas import (
    ChatRequest,
    DebateRequest,
    DebateResponse,
)

__all__ = [
    "ChatSession",
    "DebateSession",
    "ChatRequest",
    "DebateRequest",
    "DebateResponse",
]
