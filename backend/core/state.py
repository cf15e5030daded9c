# backend/core/state.py

from enum import Enum


class SessionPhase(str, Enum):
    AUTHENTICATING = "authenticating"
    GREETING = "greeting"
    IDLE = "idle"
    PROCESSING_TURN = "processing_turn"
    CLOSED = "closed"


class SttState(str, Enum):
    ABSENT = "absent"
    CONNECTING = "connecting"
    OPEN = "open"
    RECONNECTING = "reconnecting"
    CLOSED = "closed"
    FAILED = "failed"


class TtsState(str, Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"
