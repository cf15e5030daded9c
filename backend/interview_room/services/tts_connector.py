import asyncio
import base64
import binascii
import json
import logging
from typing import Awaitable, Callable

import websockets

from core.config import ELEVENLABS_API_KEY, ELEVENLABS_MODEL_ID, ELEVENLABS_VOICE_ID
from core.state import TtsState

logger = logging.getLogger("interview_room.tts")

ELEVENLABS_WS_URL = "wss://api.elevenlabs.io"
ELEVENLABS_OUTPUT_FORMAT = "mp3_44100_128"

VOICE_SETTINGS = {
    "stability": 0.5,
    "similarity_boost": 0.75,
    "style": 0,
    "use_speaker_boost": True,
    "speed": 1.0,
}
CHUNK_LENGTH_SCHEDULE = [50, 100, 150, 200]

ChunkFn = Callable[[bytes], Awaitable[None]]
CompleteFn = Callable[[], Awaitable[None]]
ErrorFn = Callable[[Exception], Awaitable[None]]


class TextToSpeechStream:
    """
    One streaming synthesis for one utterance.

    Protocol: open -> BOS (voice settings) -> text with flush -> audio chunks ->
    isFinal -> EOS on close. Text sent before the socket opens is queued and
    flushed right after BOS. If the socket ends without isFinal after at least
    one chunk, completion is still reported once. A stream closed by its caller
    never reports completion.
    """

    def __init__(
        self,
        *,
        on_chunk: ChunkFn,
        on_complete: CompleteFn,
        on_error: ErrorFn,
        api_key: str = ELEVENLABS_API_KEY,
        voice_id: str = ELEVENLABS_VOICE_ID,
        model_id: str = ELEVENLABS_MODEL_ID,
        base_url: str = ELEVENLABS_WS_URL,
        connect_fn=websockets.connect,
    ):
        self._on_chunk = on_chunk
        self._on_complete = on_complete
        self._on_error = on_error
        self.api_key = api_key
        self.voice_id = voice_id
        self.model_id = model_id
        self.base_url = base_url.rstrip("/")
        self._connect_fn = connect_fn

        self.state = TtsState.CONNECTING
        self.got_audio = False
        self.completed = False
        self.partial = False
        self.closed_by_caller = False
        self._outbox: asyncio.Queue = asyncio.Queue()
        self._socket = None
        self._task: asyncio.Task | None = None
        self._writer: asyncio.Task | None = None

    @property
    def url(self) -> str:
        return (
            f"{self.base_url}/v1/text-to-speech/{self.voice_id}/stream-input"
            f"?model_id={self.model_id}&output_format={ELEVENLABS_OUTPUT_FORMAT}&inactivity_timeout=30"
        )

    def start(self) -> "TextToSpeechStream":
        if self._task is None:
            self._task = asyncio.create_task(self._run())
        return self

    def send_text(self, text: str, flush: bool = False) -> None:
        # provider chunking expects a trailing space
        normalized = text if text.endswith(" ") else text + " "
        if self.state != TtsState.OPEN:
            logger.info("[TTS] connection not ready, queuing text")
        self._outbox.put_nowait({
            "text": normalized,
            "try_trigger_generation": True,
            "flush": flush,
        })

    async def _run(self) -> None:
        if not self.api_key:
            await self._fail(RuntimeError("Missing ElevenLabs API Key"))
            return

        try:
            socket = await self._connect_fn(self.url, additional_headers={"xi-api-key": self.api_key})
        except (OSError, asyncio.TimeoutError, websockets.WebSocketException) as exc:
            await self._fail(exc)
            return

        if self.closed_by_caller:
            await socket.close()
            return

        self._socket = socket
        self.state = TtsState.OPEN
        logger.info("[TTS] connected")

        error: Exception | None = None
        try:
            await socket.send(json.dumps({
                "text": " ",
                "voice_settings": VOICE_SETTINGS,
                "generation_config": {"chunk_length_schedule": CHUNK_LENGTH_SCHEDULE},
                "xi-api-key": self.api_key,
            }))
            self._writer = asyncio.create_task(self._drain_outbox(socket))
            async for raw in socket:
                await self._handle_message(raw)
        except websockets.ConnectionClosedOK:
            pass
        except (websockets.ConnectionClosedError, OSError) as exc:
            error = exc
        finally:
            if self._writer is not None:
                self._writer.cancel()
                await asyncio.gather(self._writer, return_exceptions=True)

        self.state = TtsState.CLOSED
        logger.info("[TTS] disconnected")
        if self.closed_by_caller:
            return
        if error is not None:
            logger.error("[TTS] stream error: %s", error)
            await self._on_error(error)
        if self.got_audio and not self.completed:
            logger.warning("[TTS] socket ended before isFinal; flushing partial audio")
            self.completed = True
            self.partial = True
            await self._on_complete()

    async def _drain_outbox(self, socket) -> None:
        while True:
            message = await self._outbox.get()
            try:
                await socket.send(json.dumps(message))
            except websockets.ConnectionClosed as exc:
                # the reader loop sees the same close and reports it
                logger.debug("[TTS] send after close dropped: %s", exc)
                return

    async def _handle_message(self, raw) -> None:
        try:
            message = json.loads(raw)
        except (TypeError, ValueError) as exc:
            logger.error("[TTS] failed to parse message: %s", exc)
            return
        if not isinstance(message, dict):
            return

        audio = message.get("audio")
        if audio:
            try:
                chunk = base64.b64decode(audio)
            except (binascii.Error, ValueError) as exc:
                logger.error("[TTS] invalid audio chunk: %s", exc)
                chunk = b""
            if chunk:
                self.got_audio = True
                await self._on_chunk(chunk)

        if message.get("isFinal") and not self.completed and not self.closed_by_caller:
            logger.info("[TTS] generation complete")
            self.completed = True
            await self._on_complete()

    async def _fail(self, exc: Exception) -> None:
        self.state = TtsState.CLOSED
        if self.closed_by_caller:
            return
        logger.error("[TTS] stream failed: %s", exc)
        await self._on_error(exc)

    async def close(self) -> None:
        if self.closed_by_caller:
            return
        self.closed_by_caller = True

        socket = self._socket
        if self.state == TtsState.OPEN and socket is not None:
            try:
                # EOS
                await socket.send(json.dumps({"text": ""}))
                await socket.close()
            except (OSError, websockets.WebSocketException) as exc:
                logger.debug("[TTS] close ignored: %s", exc)
        elif self._task is not None and not self._task.done() and self._task is not asyncio.current_task():
            self._task.cancel()
        self.state = TtsState.CLOSED
