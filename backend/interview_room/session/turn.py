import asyncio
import logging
from typing import Callable

logger = logging.getLogger("interview_room.session.turn")


class PendingUtterance:
    """Fragments of the user's current utterance, joined with single spaces."""

    def __init__(self):
        self._parts: list[str] = []

    def add(self, fragment: str) -> str:
        cleaned = " ".join(str(fragment or "").split())
        if cleaned:
            self._parts.append(cleaned)
        return self.text

    @property
    def text(self) -> str:
        return " ".join(self._parts)

    def clear(self) -> None:
        self._parts = []

    def __bool__(self) -> bool:
        return bool(self.text.strip())


class DebounceTimer:
    """
    Single-slot silence timer. Arming replaces any pending deadline, so at
    most one callback is ever scheduled.
    """

    def __init__(self, delay_sec: float, callback: Callable[[], None]):
        self.delay_sec = delay_sec
        self._callback = callback
        self._handle: asyncio.TimerHandle | None = None

    @property
    def armed(self) -> bool:
        return self._handle is not None

    def arm(self) -> None:
        self.cancel()
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self.delay_sec, self._fire)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        logger.info("silence debounce elapsed | delay_sec=%.2f", self.delay_sec)
        self._callback()
