"""
Coze chat platform API client.

WHAT THIS DOES:
Talks to the remote chat platform that hosts the art appreciation bots.

HOW IT WORKS:
The platform exposes an async job API:
1. POST /v3/chat              — submit a user message, returns a turn id + status
2. GET  /v3/chat/retrieve     — poll a turn's status
3. GET  /v3/chat/message/list — list the messages a finished turn produced
4. POST /v1/files/upload      — upload an image, returns a file id usable in messages

Every response is wrapped in an envelope: {"code": 0, "msg": "", "data": ...}.
A non-zero code is an error even when the HTTP status is 200.

ERRORS:
- Transport failures, HTTP errors and non-zero envelope codes → RemoteCallError
- Envelope data that is missing or lacks the expected fields → RemoteCallError
- A 404 while polling → TurnNotFoundError (the turn is briefly invisible
  right after submission; the caller decides whether to retry)

USAGE:
    client = CozeClient()
    submission = await client.submit_turn(bot_id, user_id, build_content_items("hi", []))
    status = await client.poll_turn(submission.turn_id, submission.conversation_id)
    messages = await client.list_turn_messages(submission.turn_id, submission.conversation_id)
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from app.config import get_settings
from app.services.errors import RemoteCallError, TurnNotFoundError

logger = logging.getLogger(__name__)


@dataclass
class TurnSubmission:
    """What the platform returns for a freshly submitted turn."""
    turn_id: str
    conversation_id: str
    status: str


@dataclass
class UploadedFile:
    file_id: str
    file_name: str
    bytes: int


def build_content_items(message: str, file_ids: Optional[list[str]]) -> list[dict]:
    """
    One text item followed by one image item per usable file id.

    Example:
        build_content_items("看这幅画", ["file_1"])
        # [{"type": "text", "text": "看这幅画"}, {"type": "image", "file_id": "file_1"}]
    """
    items: list[dict] = [{"type": "text", "text": message}]
    for file_id in file_ids or []:
        if file_id and isinstance(file_id, str):
            items.append({"type": "image", "file_id": file_id})
    return items


def require_fields(data: Any, *fields: str) -> dict:
    """
    Envelope data as a dict carrying every given field.

    Raises:
        RemoteCallError: data is missing, not an object, or lacks a field
    """
    if not isinstance(data, dict):
        raise RemoteCallError(f"响应数据格式错误: {data!r}")
    missing = [name for name in fields if data.get(name) is None]
    if missing:
        raise RemoteCallError(f"响应数据缺少字段: {', '.join(missing)}")
    return data


class CozeClient:
    """
    Async client for the Coze chat platform.

    Pass a prebuilt httpx.AsyncClient to control transport (tests use
    httpx.MockTransport); otherwise one is created lazily.
    """

    def __init__(
        self,
        api_token: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        settings = get_settings()
        self.api_token = settings.coze_api_token if api_token is None else api_token
        self.base_url = (base_url or settings.coze_base_url).rstrip("/")
        self.timeout = timeout or settings.http_timeout_seconds
        self._client: Optional[httpx.AsyncClient] = http_client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client (lazy initialization)."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    @property
    def _auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_token}"}

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[dict] = None,
        json_body: Optional[dict] = None,
        files: Optional[dict] = None,
    ) -> Any:
        """Send one request and unwrap the {code, msg, data} envelope."""
        client = await self._get_client()
        try:
            response = await client.request(
                method,
                f"{self.base_url}{path}",
                params={k: v for k, v in (params or {}).items() if v is not None},
                json=json_body,
                files=files,
                headers=self._auth_headers,
            )
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as e:
            raise RemoteCallError(str(e), status_code=e.response.status_code) from e
        except (httpx.HTTPError, ValueError) as e:
            raise RemoteCallError(str(e)) from e

        if not isinstance(payload, dict):
            raise RemoteCallError(f"响应格式错误: {payload!r}")
        if payload.get("code") != 0:
            raise RemoteCallError(payload.get("msg") or "未知错误")
        return payload.get("data")

    # =========================================================================
    # CHAT TURNS
    # =========================================================================

    async def submit_turn(
        self,
        bot_id: str,
        user_id: str,
        content_items: list[dict],
        conversation_id: Optional[str] = None,
    ) -> TurnSubmission:
        """
        Submit one user message to a bot.

        Without conversation_id the platform starts a fresh conversation.
        The content items are sent as a JSON string ("object_string").
        """
        body = {
            "bot_id": bot_id,
            "user_id": user_id,
            "additional_messages": [
                {
                    "role": "user",
                    "content": json.dumps(content_items, ensure_ascii=False),
                    "content_type": "object_string",
                }
            ],
            "auto_save_history": True,
        }
        data = await self._request(
            "POST", "/v3/chat",
            params={"conversation_id": conversation_id},
            json_body=body,
        )
        data = require_fields(data, "id", "conversation_id", "status")
        submission = TurnSubmission(
            turn_id=data["id"],
            conversation_id=data["conversation_id"],
            status=data["status"],
        )
        logger.info(
            f"Submitted turn {submission.turn_id} to bot {bot_id} "
            f"(conversation {submission.conversation_id}, status {submission.status})"
        )
        return submission

    async def poll_turn(self, turn_id: str, conversation_id: str) -> str:
        """Return the turn's current status (e.g. "in_progress", "completed", "failed")."""
        try:
            data = await self._request(
                "GET", "/v3/chat/retrieve",
                params={"chat_id": turn_id, "conversation_id": conversation_id},
            )
        except RemoteCallError as e:
            if e.status_code == 404:
                raise TurnNotFoundError(turn_id) from e
            raise
        return require_fields(data, "status")["status"]

    async def list_turn_messages(self, turn_id: str, conversation_id: str) -> list[dict]:
        """All messages produced by a turn: answers, follow-ups, tool calls, etc."""
        data = await self._request(
            "GET", "/v3/chat/message/list",
            params={"chat_id": turn_id, "conversation_id": conversation_id},
        )
        if data is None:
            return []
        if not isinstance(data, list):
            raise RemoteCallError(f"响应数据格式错误: {data!r}")
        return [message for message in data if isinstance(message, dict)]

    # =========================================================================
    # FILES
    # =========================================================================

    async def upload_file(self, content: bytes, file_name: str) -> UploadedFile:
        """Upload raw bytes, returns the file id to reference in image content items."""
        data = await self._request(
            "POST", "/v1/files/upload",
            files={"file": (file_name, content)},
        )
        data = require_fields(data, "id")
        uploaded = UploadedFile(
            file_id=data["id"],
            file_name=file_name,
            bytes=data.get("bytes", len(content)),
        )
        logger.info(f"Uploaded {file_name} as file {uploaded.file_id} ({uploaded.bytes} bytes)")
        return uploaded

    async def close(self):
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
