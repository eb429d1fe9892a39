"""
API Routes — The endpoints the art appreciation frontend talks to.

ENDPOINTS:
- POST /api/upload                 → Artwork image (multipart "file") → chat platform file id
- POST /api/chat                   → One message to one agent
- GET  /api/history                → Single-agent chat history
- POST /api/debate                 → Full debate turn, returned at once
- POST /api/debate/stream/init     → Park a streaming debate, returns streamId
- GET  /api/debate/stream/{id}     → Server-Sent Events of that debate
- POST /api/debate/stream          → Streaming debate in one request (no init step)
- POST /api/dialogue/stream        → All agents answer concurrently, streamed
- POST /api/debate/reset           → Forget the debate's remote conversation
- GET  /api/debate/history         → Debate history of a session (unknown → empty)
- GET  /api/debate-history         → Debate history of an existing session (400/404)

FLOW:
1. Upload the artwork images → file ids
2. Debate: init a stream with the agents + message + file ids
3. Open the event stream: order → response × N → complete
"""

import logging
from typing import AsyncIterator, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, Request, UploadFile
from fastapi.responses import StreamingResponse

from app.dependencies import Services, get_services
from app.models.schemas import (
    ChatRequest,
    ChatResponse,
    DebateRequest,
    DebateResponse,
    HistoryResponse,
    ResetRequest,
    StatusResponse,
    StreamInitResponse,
    UploadResponse,
)
from app.services.chat import ChatParams
from app.services.debate import DebateParams
from app.services.errors import (
    AgentSelectionError,
    AgentTurnError,
    RemoteCallError,
    StreamNotFoundError,
)
from app.services.streaming import format_sse, guarded_payloads

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["api"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


def _debate_params(request: DebateRequest) -> DebateParams:
    return DebateParams(
        agent_names=request.agent_titles,
        message=request.message,
        file_ids=request.file_ids,
        session_id=request.session_id,
        reset=request.reset_conversation,
    )


def _liveness_probe(request: Request):
    """True while the client is still connected."""
    async def is_alive() -> bool:
        return not await request.is_disconnected()
    return is_alive


async def _sse(payloads: AsyncIterator[dict]) -> AsyncIterator[str]:
    async for payload in payloads:
        yield format_sse(payload)


def _event_stream(payloads: AsyncIterator[dict]) -> StreamingResponse:
    return StreamingResponse(
        _sse(payloads),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


# =============================================================================
# UPLOAD
# =============================================================================

@router.post("/upload", response_model=UploadResponse)
async def upload(
    file: Optional[UploadFile] = File(default=None),
    services: Services = Depends(get_services),
) -> UploadResponse:
    """
    Forward an uploaded artwork image to the chat platform.

    Example:
        POST /api/upload  (multipart/form-data, field "file")

        Returns {"success": true, "fileData": {"data": {"id": "...", "fileName": "xrk1.jpeg", "bytes": 1234}}}
    """
    if file is None:
        raise HTTPException(status_code=400, detail="没有文件上传")

    file_name = file.filename or "artwork.jpg"
    content = await file.read()
    try:
        uploaded = await services.coze.upload_file(content, file_name)
    except RemoteCallError as e:
        logger.error(f"Upload of {file_name} failed: {e}")
        raise HTTPException(status_code=502, detail=f"上传到Coze API失败: {e}")

    return UploadResponse(file_data={
        "data": {"id": uploaded.file_id, "file_name": uploaded.file_name, "bytes": uploaded.bytes}
    })


# =============================================================================
# SINGLE-AGENT CHAT
# =============================================================================

@router.post("/chat", response_model=ChatResponse)
async def chat(
    request: ChatRequest,
    services: Services = Depends(get_services),
) -> ChatResponse:
    """
    One message to one agent; the agent keeps its own conversation per session.

    Example:
        POST /api/chat
        {"agentTitle": "Painter", "message": "笔触如何?", "sessionId": "abc"}
    """
    try:
        result = await services.chat.chat(ChatParams(
            agent_title=request.agent_title,
            message=request.message,
            file_ids=request.file_ids,
            session_id=request.session_id,
            reset=request.reset_conversation,
        ))
    except AgentSelectionError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except AgentTurnError as e:
        logger.error(f"Chat with {request.agent_title} failed: {e}")
        raise HTTPException(status_code=502, detail=str(e))

    return ChatResponse(
        message=result.message,
        chat_id=result.chat_id,
        conversation_id=result.conversation_id,
    )


@router.get("/history", response_model=HistoryResponse)
async def chat_history(
    session_id: Optional[str] = Query(default=None, alias="sessionId"),
    services: Services = Depends(get_services),
) -> HistoryResponse:
    """Single-agent chat history. The session must exist."""
    if not session_id:
        raise HTTPException(status_code=400, detail="缺少sessionId")
    session = services.chat_sessions.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="会话不存在")
    return HistoryResponse(history=[entry.to_dict() for entry in session.history])


# =============================================================================
# DEBATE
# =============================================================================

@router.post("/debate", response_model=DebateResponse)
async def debate(
    request: DebateRequest,
    services: Services = Depends(get_services),
) -> DebateResponse:
    """
    Run a whole debate turn and return every reply at once.

    Agents that fail still get an entry in `responses` ("[错误: ...]");
    only an empty or unknown agent set fails the request.

    Example:
        POST /api/debate
        {"agentTitles": ["Art Critic", "Art Historian"], "message": "这幅画的色彩和构图很有历史感"}
    """
    try:
        outcome = await services.orchestrator.run_debate(_debate_params(request))
    except AgentSelectionError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if outcome.failed_agents:
        logger.warning(f"Debate finished with failed agents: {outcome.failed_agents}")

    return DebateResponse(
        responses=outcome.replies,
        similarities=outcome.scores,
        ordered_agents=outcome.ordered_agents,
        conversation_id=outcome.conversation_id,
    )


@router.post("/debate/stream/init", response_model=StreamInitResponse)
async def init_debate_stream(
    request: DebateRequest,
    services: Services = Depends(get_services),
) -> StreamInitResponse:
    """
    Validate a streaming debate and park it until the event stream is opened.

    Unopened streams expire after the configured idle timeout (30 minutes).
    """
    try:
        stream_id = services.relay.init_job(_debate_params(request))
    except AgentSelectionError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return StreamInitResponse(stream_id=stream_id)


@router.get("/debate/stream/{stream_id}")
async def open_debate_stream(
    stream_id: str,
    request: Request,
    services: Services = Depends(get_services),
) -> StreamingResponse:
    """
    Server-Sent Events for a parked debate.

    Events, one `data: <json>` each:
        {"type": "order", "orderedAgents": [...], "similarities": {...}}
        {"type": "response", "agentTitle": ..., "response": ..., "similarity": ...,
         "isComplete": bool, "index": int, "isError"?: true}
        {"type": "complete", "responses": {...}, "similarities": {...}, "orderedAgents": [...], "conversationId": ...}
        {"type": "error", "success": false, "error": ...}
    """
    try:
        job = services.relay.open_job(stream_id)
    except StreamNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return _event_stream(services.relay.events(job, is_alive=_liveness_probe(request)))


@router.post("/debate/stream")
async def debate_stream(
    request: DebateRequest,
    http_request: Request,
    services: Services = Depends(get_services),
) -> StreamingResponse:
    """Streaming debate without the init step. Validation errors arrive as an error event."""
    steps = services.orchestrator.steps(
        _debate_params(request), is_alive=_liveness_probe(http_request)
    )
    return _event_stream(guarded_payloads(steps, "debate"))


@router.post("/dialogue/stream")
async def dialogue_stream(
    request: DebateRequest,
    http_request: Request,
    services: Services = Depends(get_services),
) -> StreamingResponse:
    """
    Every agent answers the message independently and concurrently.

    Same event vocabulary as the debate; `response` events arrive in
    completion order, `index` is the agent's rank.
    """
    steps = services.dialogue.steps(
        _debate_params(request), is_alive=_liveness_probe(http_request)
    )
    return _event_stream(guarded_payloads(steps, "dialogue"))


@router.post("/debate/reset", response_model=StatusResponse)
async def reset_debate(
    request: ResetRequest,
    services: Services = Depends(get_services),
) -> StatusResponse:
    """Next debate turn of this session starts a fresh remote conversation."""
    session = services.debate_sessions.get(request.session_id)
    if session is None:
        return StatusResponse(message="会话不存在，无需重置")
    session.reset()
    logger.info(f"Reset debate session '{request.session_id}'")
    return StatusResponse(message="已重置辩论会话")


@router.get("/debate/history", response_model=HistoryResponse)
async def debate_history(
    session_id: str = Query(default="default", alias="sessionId"),
    services: Services = Depends(get_services),
) -> HistoryResponse:
    """Debate history of a session; unknown sessions have an empty history."""
    session = services.debate_sessions.get(session_id)
    history = session.history if session is not None else []
    return HistoryResponse(history=[entry.to_dict() for entry in history])


@router.get("/debate-history", response_model=HistoryResponse)
async def strict_debate_history(
    session_id: Optional[str] = Query(default=None, alias="sessionId"),
    services: Services = Depends(get_services),
) -> HistoryResponse:
    """Debate history of an existing session: 400 without an id, 404 when unknown."""
    if not session_id:
        raise HTTPException(status_code=400, detail="缺少sessionId")
    session = services.debate_sessions.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="辩论会话不存在")
    return HistoryResponse(history=[entry.to_dict() for entry in session.history])
