from dataclasses import dataclass

from core.config import (
    JWT_SECRET,
    WS_AUTH_TIMEOUT_SEC,
    WS_HEARTBEAT_INTERVAL_SEC,
    WS_MAX_TEXT_BYTES,
    WS_SPEECH_DEBOUNCE_SEC,
)
from interview_room.conversation.llm import ConversationEngine, build_client
from interview_room.db.interview_repo import InterviewStore
from interview_room.db.transcript_repo import TranscriptStore
from interview_room.services.feedback_service import FeedbackService
from interview_room.services.stt_connector import SpeechToTextConnector
from interview_room.services.tts_connector import TextToSpeechStream


@dataclass
class SessionTimings:
    auth_timeout_sec: float = WS_AUTH_TIMEOUT_SEC
    speech_debounce_sec: float = WS_SPEECH_DEBOUNCE_SEC
    heartbeat_interval_sec: float = WS_HEARTBEAT_INTERVAL_SEC
    max_text_bytes: int = WS_MAX_TEXT_BYTES


class WsDependencyProvider:
    """Builds each session's collaborators. Tests swap the module-level instance."""

    def __init__(self, jwt_secret: str = JWT_SECRET, timings: SessionTimings | None = None):
        self.jwt_secret = jwt_secret
        self._timings = timings or SessionTimings()
        self._llm_client = None

    def timings(self) -> SessionTimings:
        return self._timings

    def create_conversation_engine(self) -> ConversationEngine:
        if self._llm_client is None:
            self._llm_client = build_client()
        return ConversationEngine(client=self._llm_client)

    def create_transcript_store(self) -> TranscriptStore:
        return TranscriptStore()

    def create_interview_store(self) -> InterviewStore:
        return InterviewStore()

    def create_feedback_service(
        self,
        engine: ConversationEngine,
        transcripts: TranscriptStore,
        interviews: InterviewStore,
    ) -> FeedbackService:
        return FeedbackService(engine, transcripts, interviews)

    def create_stt_connector(self, **callbacks) -> SpeechToTextConnector:
        return SpeechToTextConnector(**callbacks)

    def create_tts_stream(self, **callbacks) -> TextToSpeechStream:
        return TextToSpeechStream(**callbacks)
