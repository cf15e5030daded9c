import asyncio
import logging

logger = logging.getLogger("interview_room.session.controller")


class SessionController:
    """
    Task owner for one session.

    Background loops are cancelled on stop; in-flight work created with
    cancel_on_stop=False (LLM turns, transcript writes) is awaited instead so
    its results land in the store even though the client is gone.
    """

    def __init__(self):
        self.stop_event = asyncio.Event()
        self.stop_reason = "other"
        self._cancellable: set[asyncio.Task] = set()
        self._drainable: set[asyncio.Task] = set()

    def request_stop(self, reason: str) -> None:
        if self.stop_event.is_set():
            return
        self.stop_reason = str(reason or "other")
        logger.info("STOP requested: %s", self.stop_reason)
        self.stop_event.set()

    @property
    def stopping(self) -> bool:
        return self.stop_event.is_set()

    def create_task(self, coro, cancel_on_stop: bool = True) -> asyncio.Task:
        task = asyncio.create_task(coro)
        bucket = self._cancellable if cancel_on_stop else self._drainable
        bucket.add(task)
        task.add_done_callback(bucket.discard)
        task.add_done_callback(self._report_failure)
        return task

    @staticmethod
    def _report_failure(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("session task failed: %r", exc, exc_info=exc)

    async def stop(self) -> None:
        if not self.stop_event.is_set():
            self.stop_event.set()

        current = asyncio.current_task()
        cancellable = [t for t in self._cancellable if t is not current]
        for task in cancellable:
            task.cancel()
        await asyncio.gather(*cancellable, return_exceptions=True)

        # draining work may spawn more (a finished turn queues its persistence)
        while True:
            pending = [t for t in self._drainable if t is not current and not t.done()]
            if not pending:
                break
            await asyncio.gather(*pending, return_exceptions=True)
