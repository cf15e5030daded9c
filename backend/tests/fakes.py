import asyncio
import json

from starlette.websockets import WebSocketState

from interview_room.conversation.llm import ConversationError
from interview_room.session.dependencies import SessionTimings, WsDependencyProvider

TEST_JWT_SECRET = "pytest-secret"

_END = object()


class FakeWebSocket:
    def __init__(self):
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED
        self.sent: list[str] = []
        self.closed_with: int | None = None
        self.incoming: asyncio.Queue = asyncio.Queue()

    async def receive(self) -> dict:
        message = await self.incoming.get()
        if message["type"] == "websocket.disconnect":
            self.client_state = WebSocketState.DISCONNECTED
        return message

    def feed_text(self, payload) -> None:
        text = payload if isinstance(payload, str) else json.dumps(payload)
        self.incoming.put_nowait({"type": "websocket.receive", "text": text})

    def feed_bytes(self, data: bytes) -> None:
        self.incoming.put_nowait({"type": "websocket.receive", "bytes": data})

    def disconnect(self) -> None:
        self.incoming.put_nowait({"type": "websocket.disconnect", "code": 1000})

    async def send_text(self, payload: str) -> None:
        await asyncio.sleep(0)
        self.sent.append(payload)

    async def close(self, code: int = 1000, reason: str | None = None) -> None:
        self.closed_with = code
        self.application_state = WebSocketState.DISCONNECTED
        self.client_state = WebSocketState.DISCONNECTED

    @property
    def messages(self) -> list[dict]:
        return [json.loads(item) for item in self.sent]

    def of_type(self, message_type: str) -> list[dict]:
        return [m for m in self.messages if m.get("type") == message_type]

    def transcripts(self, speaker: str | None = None) -> list[dict]:
        found = [m for m in self.messages if "transcript" in m]
        if speaker is not None:
            found = [m for m in found if m.get("speaker") == speaker]
        return found


class FakeUpstream:
    """Provider-side socket: records sends and yields pushed frames to `async for`."""

    def __init__(self):
        self.sent: list[dict] = []
        self.closed = False
        self._inbox: asyncio.Queue = asyncio.Queue()

    async def send(self, data: str) -> None:
        self.sent.append(json.loads(data))

    async def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._inbox.put_nowait(_END)

    def push(self, message: dict) -> None:
        self._inbox.put_nowait(json.dumps(message))

    def drop(self) -> None:
        self._inbox.put_nowait(_END)

    def fail(self, exc: Exception) -> None:
        self._inbox.put_nowait(exc)

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._inbox.get()
        if item is _END:
            raise StopAsyncIteration
        if isinstance(item, Exception):
            raise item
        return item


class FakeConnect:
    def __init__(self, fail_next: int = 0):
        self.calls: list[tuple[str, dict]] = []
        self.sockets: list[FakeUpstream] = []
        self.fail_next = fail_next

    async def __call__(self, url: str, additional_headers=None):
        self.calls.append((url, dict(additional_headers or {})))
        if self.fail_next > 0:
            self.fail_next -= 1
            raise OSError("connection refused")
        socket = FakeUpstream()
        self.sockets.append(socket)
        return socket

    @property
    def latest(self) -> FakeUpstream:
        return self.sockets[-1]


class FakeConversationEngine:
    def __init__(self, replies=None, fail_on: set[int] | None = None, gate: asyncio.Event | None = None):
        self.calls: list[list[dict]] = []
        self.replies = list(replies or [])
        self.fail_on = set(fail_on or ())
        self.gate = gate

    async def complete(self, messages: list[dict]) -> str:
        self.calls.append([dict(m) for m in messages])
        call_no = len(self.calls)
        if self.gate is not None:
            await self.gate.wait()
        if call_no in self.fail_on:
            raise ConversationError("forced failure")
        if self.replies:
            return self.replies.pop(0)
        return f"reply {call_no}"


class FakeTranscriptStore:
    def __init__(self, messages: list[dict] | None = None):
        self.appended: list[tuple[str, str, str]] = []
        self._messages = list(messages or [])

    async def append(self, interview_id: str, role: str, content: str):
        self.appended.append((interview_id, role, content))
        return {"interview_id": interview_id, "role": role, "content": content}

    async def list(self, interview_id: str) -> list[dict]:
        stored = [{"role": r, "content": c} for (i, r, c) in self.appended if i == interview_id]
        return self._messages + stored


class FakeInterviewStore:
    def __init__(self, records: dict[str, dict] | None = None):
        self.records = dict(records or {})
        self.updates: list[tuple[str, dict]] = []

    async def get(self, interview_id: str):
        return self.records.get(interview_id)

    async def update(self, interview_id: str, fields: dict):
        self.updates.append((interview_id, dict(fields)))
        return {"id": interview_id, **fields}

    def statuses(self, interview_id: str) -> list[str]:
        return [f["status"] for (i, f) in self.updates if i == interview_id and "status" in f]


class FakeFeedbackService:
    def __init__(self):
        self.generated: list[str] = []

    async def generate(self, interview_id: str):
        self.generated.append(interview_id)
        return None


class FakeSttConnector:
    def __init__(self, **callbacks):
        self.callbacks = callbacks
        self.audio: list[bytes] = []
        self.reset_calls = 0
        self.closed = False

    async def send_audio(self, pcm: bytes) -> None:
        self.audio.append(pcm)

    def reset(self) -> None:
        self.reset_calls += 1

    async def close(self) -> None:
        self.closed = True

    async def fragment(self, text: str) -> None:
        await self.callbacks["on_fragment"](text)

    async def vad(self, signal: str) -> None:
        await self.callbacks["on_vad_event"](signal)


class FakeTtsStream:
    """Completes on the first text with a fixed audio payload."""

    audio = b"voice"

    def __init__(self, *, on_chunk, on_complete, on_error, auto_complete: bool = True):
        self._on_chunk = on_chunk
        self._on_complete = on_complete
        self._on_error = on_error
        self.auto_complete = auto_complete
        self.texts: list[str] = []
        self.partial = False
        self.closed = False

    def start(self) -> "FakeTtsStream":
        return self

    def send_text(self, text: str, flush: bool = False) -> None:
        self.texts.append(text)
        if self.auto_complete:
            asyncio.get_running_loop().create_task(self.finish())

    async def finish(self) -> None:
        await self._on_chunk(self.audio)
        await self._on_complete()

    async def close(self) -> None:
        self.closed = True


class FakeProvider(WsDependencyProvider):
    def __init__(
        self,
        engine: FakeConversationEngine | None = None,
        interviews: FakeInterviewStore | None = None,
        timings: SessionTimings | None = None,
        tts_factory=None,
    ):
        super().__init__(
            jwt_secret=TEST_JWT_SECRET,
            timings=timings or SessionTimings(
                auth_timeout_sec=1.0,
                speech_debounce_sec=0.05,
                heartbeat_interval_sec=30.0,
                max_text_bytes=65536,
            ),
        )
        self.engine = engine or FakeConversationEngine()
        self.transcripts = FakeTranscriptStore()
        self.interviews = interviews or FakeInterviewStore()
        self.feedback = FakeFeedbackService()
        self.tts_factory = tts_factory or FakeTtsStream
        self.stt_connectors: list[FakeSttConnector] = []
        self.tts_streams: list = []

    def create_conversation_engine(self):
        return self.engine

    def create_transcript_store(self):
        return self.transcripts

    def create_interview_store(self):
        return self.interviews

    def create_feedback_service(self, engine, transcripts, interviews):
        return self.feedback

    def create_stt_connector(self, **callbacks):
        connector = FakeSttConnector(**callbacks)
        self.stt_connectors.append(connector)
        return connector

    def create_tts_stream(self, **callbacks):
        stream = self.tts_factory(**callbacks)
        self.tts_streams.append(stream)
        return stream

    @property
    def stt(self) -> FakeSttConnector:
        return self.stt_connectors[-1]
