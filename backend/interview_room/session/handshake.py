import asyncio
import logging

from pydantic import ValidationError

from interview_room.auth import AuthError, resolve_user_id_from_token
from interview_room.db.interview_repo import STATUS_IN_PROGRESS, InterviewStore
from interview_room.db.supabase import StoreError
from interview_room.prompts import DEFAULT_CATEGORY, normalize_category
from interview_room.schemas import AuthMessage
from interview_room.session.channel import ClientChannel
from interview_room.system_metrics import increment_metric

logger = logging.getLogger("interview_room.session.handshake")

CLOSE_INVALID_INTERVIEW_ID = 4000
CLOSE_UNAUTHORIZED = 4001
CLOSE_FORBIDDEN = 4003
CLOSE_AUTH_TIMEOUT = 4008
CLOSE_HEARTBEAT_TIMEOUT = 1001
CLOSE_SERVER_ERROR = 1011

AUTH_SHAPE_ERROR = 'First message must be { type: "auth", token: "..." }'
AUTH_TIMEOUT_ERROR = "Authentication timeout"
FORBIDDEN_ERROR = "Forbidden: interview does not belong to you"


async def _reject(channel: ClientChannel, message: str, code: int) -> None:
    increment_metric("ws_auth_failures_total")
    await channel.send_error(message)
    await channel.close(code=code, reason=message)


async def authenticate_client(channel: ClientChannel, secret: str, timeout_sec: float) -> str | None:
    """
    Waits for the single auth message. Returns the user id, or None after the
    connection has been rejected (or dropped by the client).
    """
    try:
        message = await asyncio.wait_for(channel.receive(), timeout=timeout_sec)
    except asyncio.TimeoutError:
        logger.warning("auth timeout | session_id=%s timeout_sec=%s", channel.session_id, timeout_sec)
        await _reject(channel, AUTH_TIMEOUT_ERROR, CLOSE_AUTH_TIMEOUT)
        return None

    if message.get("type") == "websocket.disconnect":
        logger.info("client left before auth | session_id=%s", channel.session_id)
        return None

    raw = message.get("text")
    if raw is None:
        await _reject(channel, AUTH_SHAPE_ERROR, CLOSE_UNAUTHORIZED)
        return None

    try:
        auth = AuthMessage.model_validate_json(raw)
    except ValidationError:
        await _reject(channel, AUTH_SHAPE_ERROR, CLOSE_UNAUTHORIZED)
        return None

    try:
        return resolve_user_id_from_token(auth.token, secret)
    except AuthError as exc:
        logger.warning("auth rejected | session_id=%s expired=%s", channel.session_id, exc.expired)
        await _reject(channel, exc.message, CLOSE_UNAUTHORIZED)
        return None


async def initialize_interview(
    channel: ClientChannel,
    interviews: InterviewStore,
    interview_id: str | None,
    user_id: str,
) -> str | None:
    """
    Loads the interview record and marks it in progress. Returns the category,
    or None after closing the connection for an interview owned by someone else.
    Store failures fall back to the default category.
    """
    if not interview_id:
        return DEFAULT_CATEGORY

    try:
        record = await interviews.get(interview_id)
    except StoreError as exc:
        logger.error("interview lookup failed | interview_id=%s err=%s", interview_id, exc)
        return DEFAULT_CATEGORY

    if record is None:
        logger.info("interview record not found | interview_id=%s", interview_id)
        return DEFAULT_CATEGORY

    owner = record.get("user_id")
    if owner is not None and str(owner) != str(user_id):
        logger.warning("interview owner mismatch | interview_id=%s", interview_id)
        await channel.send_error(FORBIDDEN_ERROR)
        await channel.close(code=CLOSE_FORBIDDEN, reason="Forbidden")
        return None

    category = normalize_category(record.get("type"))
    try:
        await interviews.update(interview_id, {"status": STATUS_IN_PROGRESS})
    except StoreError as exc:
        logger.error("interview status update failed | interview_id=%s err=%s", interview_id, exc)
    return category
