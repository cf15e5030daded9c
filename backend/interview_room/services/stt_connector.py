import asyncio
import base64
import json
import logging
import time
from typing import Awaitable, Callable

import websockets

from core.config import SARVAM_API_KEY, SARVAM_STT_URL
from core.state import SttState
from interview_room.system_metrics import increment_metric

logging.basicConfig(
	format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
	level=logging.INFO,
)

logger = logging.getLogger("interview_room.stt")

STT_MAX_RECONNECT = 3
STT_BACKOFF_BASE_SEC = 1.0
STT_BACKOFF_CAP_SEC = 8.0
STT_AUDIO_ACTIVE_WINDOW_SEC = 10.0
STT_SAMPLE_RATE = 16000

FragmentFn = Callable[[str], Awaitable[None]]
SignalFn = Callable[[str], Awaitable[None]]
AttemptFn = Callable[[int], Awaitable[None]]
NoticeFn = Callable[[], Awaitable[None]]
ErrorFn = Callable[[str], Awaitable[None]]


def reconnect_delay_sec(attempt: int, base_sec: float = STT_BACKOFF_BASE_SEC, cap_sec: float = STT_BACKOFF_CAP_SEC) -> float:
	return min(base_sec * (2 ** (max(1, attempt) - 1)), cap_sec)


class _UpstreamLink:
	"""One upstream socket generation. Close handling ignores superseded links."""

	def __init__(self):
		self.socket = None
		self.reader_task: asyncio.Task | None = None


class SpeechToTextConnector:
	"""
	Streaming STT connection for one session.

	Connects lazily on the first audio frame, forwards PCM frames, and surfaces
	transcript fragments and VAD signals without interpreting them. Unexpected
	closes are retried with bounded exponential backoff; once retries are
	exhausted the connector stays failed until reset() is called.
	"""

	def __init__(
		self,
		*,
		on_fragment: FragmentFn,
		on_vad_event: SignalFn,
		on_reconnecting: AttemptFn,
		on_failed: NoticeFn,
		on_error: ErrorFn,
		is_session_alive: Callable[[], bool] = lambda: True,
		api_key: str = SARVAM_API_KEY,
		url: str = SARVAM_STT_URL,
		connect_fn=websockets.connect,
		max_reconnect: int = STT_MAX_RECONNECT,
		backoff_base_sec: float = STT_BACKOFF_BASE_SEC,
		backoff_cap_sec: float = STT_BACKOFF_CAP_SEC,
		audio_active_window_sec: float = STT_AUDIO_ACTIVE_WINDOW_SEC,
	):
		self._on_fragment = on_fragment
		self._on_vad_event = on_vad_event
		self._on_reconnecting = on_reconnecting
		self._on_failed = on_failed
		self._on_error = on_error
		self._is_session_alive = is_session_alive
		self.api_key = api_key
		self.url = url
		self._connect_fn = connect_fn
		self.max_reconnect = max(1, int(max_reconnect))
		self.backoff_base_sec = backoff_base_sec
		self.backoff_cap_sec = backoff_cap_sec
		self.audio_active_window_sec = audio_active_window_sec

		self.state = SttState.ABSENT
		self.reconnect_attempts = 0
		self.failed = False
		self.last_audio_sent_at = 0.0
		self._link: _UpstreamLink | None = None
		self._tasks: set[asyncio.Task] = set()
		self._closed = False

	def _spawn(self, coro) -> asyncio.Task:
		task = asyncio.create_task(coro)
		self._tasks.add(task)
		task.add_done_callback(self._tasks.discard)
		return task

	# ==========================
	# AUDIO
	# ==========================

	async def send_audio(self, pcm: bytes) -> None:
		if self._closed:
			return

		self.last_audio_sent_at = time.monotonic()
		if self.failed:
			return

		if self._link is None and self.state != SttState.RECONNECTING:
			if not self.api_key:
				logger.error("[STT] SARVAM_API_KEY not set - speech-to-text will NOT work")
				self.failed = True
				self.state = SttState.FAILED
				await self._on_error("Failed to start voice recognition")
				return
			self.reconnect_attempts = 0
			self._start_connect()
			# frames arriving while the socket opens are dropped
			return

		link = self._link
		if self.state != SttState.OPEN or link is None or link.socket is None:
			return

		if isinstance(pcm, bytearray):
			pcm = bytes(pcm)

		message = {
			"audio": {
				"data": base64.b64encode(pcm).decode("ascii"),
				"sample_rate": STT_SAMPLE_RATE,
				"encoding": "audio/wav",
			}
		}
		try:
			await link.socket.send(json.dumps(message))
		except websockets.ConnectionClosed:
			logger.info("[STT] send on closed socket ignored; close handler will decide on reconnect")

	# ==========================
	# CONNECTION LIFECYCLE
	# ==========================

	def _start_connect(self) -> None:
		link = _UpstreamLink()
		self._link = link
		self.state = SttState.CONNECTING
		link.reader_task = self._spawn(self._run_link(link))

	async def _run_link(self, link: _UpstreamLink) -> None:
		try:
			socket = await self._connect_fn(
				self.url,
				additional_headers={"Api-Subscription-Key": self.api_key},
			)
		except (OSError, asyncio.TimeoutError, websockets.WebSocketException) as exc:
			logger.warning("[STT] connect failed: %s", exc)
			await self._handle_close(link)
			return

		if link is not self._link or self._closed:
			await self._close_socket(socket)
			return

		link.socket = socket
		self.state = SttState.OPEN
		increment_metric("stt_connects_total")
		logger.info("[STT] upstream connected")

		try:
			async for raw in socket:
				await self._handle_message(raw)
		except websockets.ConnectionClosed as exc:
			logger.info("[STT] upstream closed: %s", exc)
		except OSError as exc:
			logger.warning("[STT] upstream read failed: %s", exc)

		await self._handle_close(link)

	async def _handle_message(self, raw) -> None:
		try:
			parsed = json.loads(raw)
		except (TypeError, ValueError) as exc:
			logger.error("[STT] failed to parse message: %s", exc)
			return
		if not isinstance(parsed, dict):
			return

		msg_type = parsed.get("type")
		data = parsed.get("data")
		if not isinstance(data, dict):
			return

		if msg_type == "data":
			self.reconnect_attempts = 0
			text = str(data.get("transcript") or "").strip()
			if text:
				await self._on_fragment(text)
		elif msg_type == "events":
			self.reconnect_attempts = 0
			signal = str(data.get("signal_type") or "").strip()
			if signal:
				await self._on_vad_event(signal)
		elif msg_type == "error":
			logger.error("[STT] server error: %s", data)
			await self._on_error(str(data.get("error") or "Speech-to-text error"))

	async def _handle_close(self, link: _UpstreamLink) -> None:
		if link is not self._link:
			return

		self._link = None
		self.state = SttState.CLOSED
		if self._closed or self.failed or not self._is_session_alive():
			return

		if (time.monotonic() - self.last_audio_sent_at) >= self.audio_active_window_sec:
			logger.info("[STT] closed with no active audio; will reconnect when audio resumes")
			return

		if self.reconnect_attempts < self.max_reconnect:
			self.reconnect_attempts += 1
			attempt = self.reconnect_attempts
			delay = reconnect_delay_sec(attempt, self.backoff_base_sec, self.backoff_cap_sec)
			self.state = SttState.RECONNECTING
			increment_metric("stt_reconnects_total")
			logger.warning(
				"[STT] disconnected; reconnecting (attempt %s/%s) in %.2fs",
				attempt,
				self.max_reconnect,
				delay,
			)
			await self._on_reconnecting(attempt)
			self._spawn(self._reconnect_after(delay))
			return

		self.failed = True
		self.state = SttState.FAILED
		increment_metric("stt_failures_total")
		logger.error("[STT] max reconnect attempts reached")
		await self._on_failed()

	async def _reconnect_after(self, delay: float) -> None:
		await asyncio.sleep(delay)
		if self._closed or self.failed or self.state != SttState.RECONNECTING:
			return
		if not self._is_session_alive():
			return
		self._start_connect()

	def reset(self) -> None:
		"""Client-requested reset: clears the failed flag; the next frame reconnects."""
		self.failed = False
		self.reconnect_attempts = 0
		link = self._link
		self._link = None
		self.state = SttState.ABSENT
		if link is not None:
			self._spawn(self._dispose(link))
		logger.info("[STT] reset by client; will reconnect on next audio")

	async def _dispose(self, link: _UpstreamLink) -> None:
		if link.reader_task and not link.reader_task.done() and link.reader_task is not asyncio.current_task():
			link.reader_task.cancel()
		if link.socket is not None:
			await self._close_socket(link.socket)

	@staticmethod
	async def _close_socket(socket) -> None:
		try:
			await socket.close()
		except (OSError, websockets.WebSocketException) as exc:
			logger.debug("[STT] close ignored: %s", exc)

	async def close(self) -> None:
		"""Session shutdown. Safe to call multiple times."""
		self._closed = True
		link = self._link
		self._link = None
		self.state = SttState.CLOSED

		current = asyncio.current_task()
		pending = [t for t in list(self._tasks) if t is not current]
		for task in pending:
			task.cancel()
		if pending:
			await asyncio.gather(*pending, return_exceptions=True)

		if link is not None and link.socket is not None:
			await self._close_socket(link.socket)
		logger.info("[STT] connector stopped")
