import asyncio
import base64
import json
import logging
import time
import uuid

from fastapi import WebSocket, WebSocketDisconnect

from core.logger import log_event
from core.state import SessionPhase
from interview_room.conversation.history import ConversationHistory
from interview_room.conversation.llm import ConversationError
from interview_room.db.interview_repo import STATUS_COMPLETED
from interview_room.db.supabase import StoreError
from interview_room.prompts import DEFAULT_CATEGORY, GREETING_OPENER
from interview_room.session.channel import ClientChannel
from interview_room.session.controller import SessionController
from interview_room.session.dependencies import WsDependencyProvider
from interview_room.session.handshake import (
    CLOSE_HEARTBEAT_TIMEOUT,
    CLOSE_SERVER_ERROR,
    authenticate_client,
    initialize_interview,
)
from interview_room.session.turn import DebounceTimer, PendingUtterance
from interview_room.system_metrics import decrement_metric, increment_metric, record_ws_disconnect

logging.basicConfig(
    format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
    level=logging.INFO,
)

logger = logging.getLogger("interview_room.session")

MIN_UTTERANCE_CHARS = 2

AI_FAILED_ERROR = "AI Processing Failed"
GREETING_FAILED_ERROR = "Failed to start the interview. Please start speaking when you are ready."
STT_FAILED_ERROR = "Voice recognition disconnected. Please toggle your microphone to reconnect."
STT_SERVICE_ERROR = "Voice Service Connection Failed"
SERVER_ERROR = "Internal server error"


class InterviewSession:
    """
    One live interview over one client socket.

    Owns the phase machine (AUTHENTICATING -> GREETING -> IDLE <-> PROCESSING_TURN
    -> CLOSED) and is the only writer to the history, the STT connector and the
    TTS stream of this connection. Every outbound send goes through the channel,
    which drops frames once the client is gone.
    """

    def __init__(
        self,
        websocket: WebSocket,
        interview_id: str | None,
        provider: WsDependencyProvider,
        session_id: str | None = None,
    ):
        self.session_id = session_id or str(uuid.uuid4())
        self.interview_id = interview_id or None
        self.provider = provider
        self.timings = provider.timings()
        self.channel = ClientChannel(websocket, self.session_id)
        self.controller = SessionController()
        self.created_at = time.time()

        self.phase = SessionPhase.AUTHENTICATING
        self.user_id: str | None = None
        self.category = DEFAULT_CATEGORY
        self.has_user_transcript = False

        self.history: ConversationHistory | None = None
        self.pending = PendingUtterance()
        self.debounce = DebounceTimer(self.timings.speech_debounce_sec, self._on_silence)

        self.engine = None
        self.transcripts = None
        self.interviews = None
        self.feedback = None
        self.stt = None
        self.tts = None
        self._wound_down = False

    def _log_event(self, event: str, **fields) -> None:
        log_event("ws_interview", event, self.session_id, interview_id=self.interview_id, **fields)

    def is_alive(self) -> bool:
        return (
            self.phase != SessionPhase.CLOSED
            and not self.controller.stopping
            and self.channel.is_open
        )

    # ================= LIFECYCLE =================

    async def run(self) -> None:
        increment_metric("ws_connections_active")
        increment_metric("ws_connections_total")
        self._log_event("connect")
        try:
            if await self._start():
                self._log_event("session_started", category=self.category)
                await self.controller.stop_event.wait()
        except Exception:
            logger.exception("session setup failed | session_id=%s", self.session_id)
            self.controller.request_stop("server_error")
            await self.channel.send_error(SERVER_ERROR)
            await self.channel.close(code=CLOSE_SERVER_ERROR, reason=SERVER_ERROR)
        finally:
            await self.wind_down()

    async def _start(self) -> bool:
        self.user_id = await authenticate_client(
            self.channel,
            self.provider.jwt_secret,
            self.timings.auth_timeout_sec,
        )
        if self.user_id is None:
            self.controller.request_stop("unauthorized")
            return False

        await self.channel.send({"type": "auth_success"})
        self._log_event("authenticated")

        self.interviews = self.provider.create_interview_store()
        category = await initialize_interview(self.channel, self.interviews, self.interview_id, self.user_id)
        if category is None:
            self.controller.request_stop("forbidden")
            return False
        self.category = category

        self.engine = self.provider.create_conversation_engine()
        self.transcripts = self.provider.create_transcript_store()
        self.feedback = self.provider.create_feedback_service(self.engine, self.transcripts, self.interviews)
        self.history = ConversationHistory.for_category(self.category)
        self.stt = self.provider.create_stt_connector(
            on_fragment=self.on_stt_fragment,
            on_vad_event=self.on_stt_vad_event,
            on_reconnecting=self.on_stt_reconnecting,
            on_failed=self.on_stt_failed,
            on_error=self.on_stt_error,
            is_session_alive=self.is_alive,
        )

        self.phase = SessionPhase.GREETING
        self.controller.create_task(self.receive_loop())
        self.controller.create_task(self.heartbeat_loop())
        self.controller.create_task(self.send_greeting(), cancel_on_stop=False)
        return True

    async def wind_down(self) -> None:
        if self._wound_down:
            return
        self._wound_down = True
        self.phase = SessionPhase.CLOSED
        self.controller.request_stop("other")

        self.debounce.cancel()
        self.pending.clear()
        if self.stt is not None:
            await self.stt.close()
        if self.tts is not None:
            tts, self.tts = self.tts, None
            await tts.close()

        # in-flight turns finish and persist; their sends are dropped
        await self.controller.stop()
        await self.channel.close()

        if self.interview_id and self.has_user_transcript:
            try:
                await self.interviews.update(self.interview_id, {"status": STATUS_COMPLETED})
            except StoreError as exc:
                logger.error("interview completion update failed | interview_id=%s err=%s", self.interview_id, exc)
            await self.feedback.generate(self.interview_id)
            duration_min = (time.time() - self.created_at) / 60.0
            logger.info(
                "interview completed | interview_id=%s duration_min=%.1f",
                self.interview_id,
                duration_min,
            )

        reason = self.controller.stop_reason
        record_ws_disconnect(reason)
        decrement_metric("ws_connections_active")
        self._log_event("disconnect", reason=reason)

    # ================= CLIENT INGEST =================

    async def receive_loop(self) -> None:
        while not self.controller.stopping:
            try:
                message = await self.channel.receive()
            except (WebSocketDisconnect, RuntimeError) as exc:
                logger.info("receive ended | session_id=%s err=%s", self.session_id, exc)
                self.controller.request_stop("client_disconnect")
                return

            if message.get("type") == "websocket.disconnect":
                self.controller.request_stop("client_disconnect")
                return

            audio = message.get("bytes")
            if audio is not None:
                await self.stt.send_audio(audio)
                continue

            text = message.get("text")
            if text is None:
                continue
            size = len(text.encode("utf-8"))
            if size > self.timings.max_text_bytes:
                logger.warning("WS message too large | session_id=%s bytes=%s", self.session_id, size)
                self.controller.request_stop("message_too_large")
                return
            await self.handle_control_message(text)

    async def handle_control_message(self, text: str) -> None:
        try:
            payload = json.loads(text)
        except ValueError:
            logger.warning("ignoring non-JSON text frame | session_id=%s", self.session_id)
            return
        if not isinstance(payload, dict):
            return

        message_type = str(payload.get("type") or "").strip().lower()
        self._log_event("message_received", message_type=message_type or "unknown")
        if message_type == "ping":
            await self.channel.send({"type": "pong"})
        elif message_type == "pong":
            return
        elif message_type == "reset_stt":
            self.stt.reset()

    async def heartbeat_loop(self) -> None:
        # transport pings run in the server; this reclaims sockets whose close never reached us
        while not self.controller.stopping:
            await asyncio.sleep(self.timings.heartbeat_interval_sec)
            if self.controller.stopping:
                return
            if not self.channel.is_open:
                self._log_event("heartbeat_timeout", interval_sec=self.timings.heartbeat_interval_sec)
                await self.channel.close(code=CLOSE_HEARTBEAT_TIMEOUT, reason="Heartbeat timeout")
                self.controller.request_stop("heartbeat_timeout")
                return

    # ================= STT EVENTS =================

    async def on_stt_fragment(self, fragment: str) -> None:
        if not self.is_alive():
            return
        text = self.pending.add(fragment)
        await self.channel.send({"transcript": text, "isFinal": False, "speaker": "user"})
        self.debounce.arm()

    async def on_stt_vad_event(self, signal: str) -> None:
        logger.info("[STT] vad signal=%s | session_id=%s", signal, self.session_id)
        if signal == "END_SPEECH" and self.pending:
            self.debounce.cancel()
            self.controller.create_task(self.finalize_user_speech("vad_end_speech"), cancel_on_stop=False)

    def _on_silence(self) -> None:
        if self.pending and self.is_alive():
            self.controller.create_task(self.finalize_user_speech("silence"), cancel_on_stop=False)

    async def on_stt_reconnecting(self, attempt: int) -> None:
        await self.channel.send({"type": "stt_reconnecting", "attempt": attempt})

    async def on_stt_failed(self) -> None:
        await self.channel.send_error(STT_FAILED_ERROR)

    async def on_stt_error(self, message: str) -> None:
        logger.error("[STT] provider error | session_id=%s detail=%s", self.session_id, message)
        await self.channel.send_error(STT_SERVICE_ERROR)

    # ================= TURNS =================

    async def send_greeting(self) -> None:
        try:
            reply = await self.engine.complete(self.history.with_user_turn(GREETING_OPENER))
        except ConversationError as exc:
            increment_metric("llm_failures_total")
            logger.error("greeting failed | session_id=%s err=%s", self.session_id, exc)
            await self.channel.send_error(GREETING_FAILED_ERROR)
        else:
            increment_metric("llm_turns_total")
            self.history.commit_turn(GREETING_OPENER, reply)
            self.persist("ai", reply)
            await self.channel.send({"transcript": reply, "isFinal": True, "speaker": "ai"})
            await self.speak_text(reply)
        finally:
            if self.phase == SessionPhase.GREETING:
                self.phase = SessionPhase.IDLE
                self._resume_pending()

    async def finalize_user_speech(self, reason: str) -> None:
        if self.phase != SessionPhase.IDLE:
            logger.info("finalize skipped | phase=%s reason=%s", self.phase.value, reason)
            return

        text = self.pending.text.strip()
        if len(text) < MIN_UTTERANCE_CHARS:
            self.pending.clear()
            return

        self.debounce.cancel()
        self.pending.clear()
        self.phase = SessionPhase.PROCESSING_TURN
        self._log_event("turn_finalized", reason=reason, transcript=text)
        try:
            await self.channel.send({"transcript": text, "isFinal": True, "speaker": "user"})
            self.persist("user", text)
            await self.channel.send({"type": "ai_thinking"})

            try:
                reply = await self.engine.complete(self.history.with_user_turn(text))
            except ConversationError as exc:
                increment_metric("llm_failures_total")
                logger.error("turn failed | session_id=%s err=%s", self.session_id, exc)
                await self.channel.send({"type": "ai_done"})
                await self.channel.send_error(AI_FAILED_ERROR)
                return

            increment_metric("llm_turns_total")
            self.history.commit_turn(text, reply)
            self.persist("ai", reply)
            await self.channel.send({"transcript": reply, "isFinal": True, "speaker": "ai"})
            await self.speak_text(reply)
            await self.channel.send({"type": "ai_done"})
        finally:
            if self.phase == SessionPhase.PROCESSING_TURN:
                self.phase = SessionPhase.IDLE
                self._resume_pending()

    def _resume_pending(self) -> None:
        # speech that arrived while busy gets a fresh silence window
        if self.pending and self.is_alive():
            self.debounce.arm()

    # ================= SPEECH OUT =================

    async def speak_text(self, text: str) -> None:
        if not self.is_alive():
            return

        previous, self.tts = self.tts, None
        if previous is not None:
            await previous.close()

        chunks: list[bytes] = []
        stream = None

        async def on_chunk(chunk: bytes) -> None:
            if stream is self.tts:
                chunks.append(chunk)

        async def on_complete() -> None:
            if stream is not self.tts:
                return
            self.tts = None
            if chunks:
                increment_metric("tts_partial_flushes_total" if stream.partial else "tts_utterances_total")
                await self.channel.send({"audio": base64.b64encode(b"".join(chunks)).decode("ascii")})
            self.controller.create_task(stream.close())

        async def on_error(exc: Exception) -> None:
            if stream is self.tts:
                logger.warning("[TTS] utterance failed | session_id=%s err=%s", self.session_id, exc)

        stream = self.provider.create_tts_stream(
            on_chunk=on_chunk,
            on_complete=on_complete,
            on_error=on_error,
        )
        self.tts = stream
        stream.start()
        stream.send_text(text, flush=True)

    # ================= PERSISTENCE =================

    def persist(self, role: str, content: str) -> None:
        if role == "user":
            self.has_user_transcript = True
        if not self.interview_id:
            return
        self.controller.create_task(self._append_transcript(role, content), cancel_on_stop=False)

    async def _append_transcript(self, role: str, content: str) -> None:
        try:
            await self.transcripts.append(self.interview_id, role, content)
        except (StoreError, ValueError) as exc:
            logger.error("transcript write failed | interview_id=%s role=%s err=%s", self.interview_id, role, exc)
