import logging
import re
import uuid

from fastapi import APIRouter, WebSocket

from core.logger import log_event
from interview_room.session.channel import ClientChannel
from interview_room.session.dependencies import WsDependencyProvider
from interview_room.session.handshake import CLOSE_INVALID_INTERVIEW_ID
from interview_room.session.orchestrator import InterviewSession

logger = logging.getLogger("interview_room.api.ws_interview")

INVALID_INTERVIEW_ID_ERROR = "Invalid interview ID format"

_UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)

router = APIRouter()

dependency_provider = WsDependencyProvider()


def is_valid_interview_id(value: str) -> bool:
    return bool(_UUID_RE.match(value or ""))


@router.websocket("/api/v1/interviews/ws")
async def interview_ws(websocket: WebSocket):
    session_id = str(uuid.uuid4())
    await websocket.accept()

    interview_id = str(websocket.query_params.get("interviewId") or "").strip() or None
    if interview_id is not None and not is_valid_interview_id(interview_id):
        log_event("ws_interview", "rejected", session_id, reason="invalid_interview_id")
        channel = ClientChannel(websocket, session_id)
        await channel.send_error(INVALID_INTERVIEW_ID_ERROR)
        await channel.close(code=CLOSE_INVALID_INTERVIEW_ID, reason=INVALID_INTERVIEW_ID_ERROR)
        return

    logger.info("WebSocket connected | session_id=%s interview_id=%s", session_id, interview_id)
    session = InterviewSession(websocket, interview_id, dependency_provider, session_id=session_id)
    await session.run()
