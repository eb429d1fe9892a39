"""
Pydantic schemas for API request/response validation.

These define the shape of data that goes in and out of the API.
Field names are snake_case in Python; the wire keeps the camelCase the
frontend already speaks (agentTitles, fileIds, sessionId, ...) through aliases.

FLOW OVERVIEW:
==============
1. Frontend uploads artwork images → multipart upload → UploadResponse (file ids)
2. Single agent: ChatRequest → ChatResponse
3. Debate (batch): DebateRequest → DebateResponse
4. Debate (streaming): DebateRequest → StreamInitResponse, then GET the event stream
5. Session housekeeping: ResetRequest, HistoryResponse
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class CamelModel(BaseModel):
    """Accepts both the alias (camelCase) and the field name."""
    model_config = ConfigDict(populate_by_name=True)


# =============================================================================
# UPLOAD
# =============================================================================

class UploadedFileData(CamelModel):
    id: str
    file_name: str = Field(alias="fileName")
    bytes: int


class UploadedFileEnvelope(BaseModel):
    data: UploadedFileData


class UploadResponse(CamelModel):
    """
    USED BY: POST /api/upload
    The id at fileData.data.id goes into fileIds of later chat/debate requests.
    """
    success: bool = True
    file_data: UploadedFileEnvelope = Field(alias="fileData")


# =============================================================================
# SINGLE-AGENT CHAT
# =============================================================================

class ChatRequest(CamelModel):
    agent_title: str = Field(alias="agentTitle")
    message: str
    file_ids: list[str] = Field(default_factory=list, alias="fileIds")
    session_id: str = Field(default="default", alias="sessionId")
    reset_conversation: bool = Field(default=False, alias="resetConversation")


class ChatResponse(CamelModel):
    success: bool = True
    message: str
    chat_id: str = Field(alias="chatId")
    conversation_id: str = Field(alias="conversationId")


# =============================================================================
# DEBATE
# =============================================================================

class DebateRequest(CamelModel):
    """
    USED BY: POST /api/debate, /api/debate/stream/init, /api/debate/stream, /api/dialogue/stream
    """
    agent_titles: list[str] = Field(default_factory=list, alias="agentTitles")
    message: str
    file_ids: list[str] = Field(default_factory=list, alias="fileIds")
    session_id: str = Field(default="default", alias="sessionId")
    reset_conversation: bool = Field(default=False, alias="resetConversation")


class DebateResponse(CamelModel):
    """
    USED BY: POST /api/debate

    Per-agent failures don't fail the request: that agent's entry in
    `responses` holds an "[错误: ...]" marker instead of a reply.
    """
    success: bool = True
    responses: dict[str, str] = Field(description="Reply per agent")
    similarities: dict[str, float] = Field(description="Relevance score per agent (0-1)")
    ordered_agents: list[str] = Field(alias="orderedAgents", description="Speaking order")
    conversation_id: Optional[str] = Field(default=None, alias="conversationId")


class StreamInitResponse(CamelModel):
    success: bool = True
    stream_id: str = Field(alias="streamId")
    message: str = "流式辩论会话已初始化"


class ResetRequest(CamelModel):
    session_id: str = Field(default="default", alias="sessionId")


class StatusResponse(BaseModel):
    success: bool = True
    message: str


class HistoryResponse(BaseModel):
    """History entries keep the camelCase keys produced by the session models."""
    success: bool = True
    history: list[dict]
