import asyncio
import json
import logging

from fastapi import WebSocket
from starlette.websockets import WebSocketState

from core.logger import log_event

logger = logging.getLogger("interview_room.session.channel")


class ClientChannel:
    """Browser-side socket. Every send checks liveness and is serialized by a per-connection lock."""

    def __init__(self, websocket: WebSocket, session_id: str):
        self.websocket = websocket
        self.session_id = session_id
        self._send_lock = asyncio.Lock()
        self._closed = False

    @property
    def is_open(self) -> bool:
        if self._closed:
            return False
        return (
            self.websocket.application_state == WebSocketState.CONNECTED
            and self.websocket.client_state == WebSocketState.CONNECTED
        )

    async def receive(self) -> dict:
        return await self.websocket.receive()

    async def send(self, payload: dict) -> bool:
        if not self.is_open:
            return False
        try:
            encoded = json.dumps(payload)
        except (TypeError, ValueError) as exc:
            logger.warning("ws payload encode failed | session_id=%s err=%s", self.session_id, exc)
            return False
        try:
            async with self._send_lock:
                await self.websocket.send_text(encoded)
        except Exception as exc:
            logger.warning("ws send failed | session_id=%s err=%s", self.session_id, exc)
            return False
        fields = {
            "message_type": str((payload or {}).get("type") or ("audio" if "audio" in payload else "transcript")),
            "bytes": len(encoded.encode("utf-8")),
        }
        if "message" in payload:
            fields["message"] = payload["message"]
        log_event("ws_interview", "message_sent", self.session_id, **fields)
        return True

    async def send_error(self, message: str) -> bool:
        return await self.send({"type": "error", "message": message})

    async def close(self, code: int = 1000, reason: str = "") -> None:
        if self._closed:
            return
        self._closed = True
        if self.websocket.application_state != WebSocketState.CONNECTED:
            return
        if self.websocket.client_state != WebSocketState.CONNECTED:
            return
        try:
            await self.websocket.close(code=code, reason=reason or None)
        except Exception as exc:
            logger.info("ws close ignored | session_id=%s err=%s", self.session_id, exc)
