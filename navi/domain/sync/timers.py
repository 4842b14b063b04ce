from typing import Any, Awaitable, Callable, Optional, Union
import asyncio
import inspect
import structlog

logger = structlog.get_logger(__name__)

TimerCallback = Callable[[], Union[None, Awaitable[Any]]]


class CancellableTimer:
    """One-shot timer with an explicit handle.

    ``schedule`` always cancels the pending run before arming a new one, so
    at most one callback is outstanding. Once the delay has elapsed the
    callback is considered fired and ``cancel`` no longer interrupts it.
    """

    def __init__(self, name: str):
        self.name = name
        self._task: Optional[asyncio.Task] = None
        self._fired = False

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done() and not self._fired

    def schedule(self, delay: float, callback: TimerCallback) -> None:
        self.cancel()
        self._fired = False
        self._task = asyncio.get_running_loop().create_task(self._run(delay, callback))

    def cancel(self) -> bool:
        """Cancel a pending run; returns True if one was cancelled"""

        if not self.pending:
            return False
        self._task.cancel()
        self._task = None
        return True

    async def _run(self, delay: float, callback: TimerCallback) -> None:
        await asyncio.sleep(delay)
        self._fired = True
        try:
            result = callback()
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error("Timer callback failed", timer=self.name, error=str(e))


class PeriodicTask:
    """Runs a coroutine function at a fixed interval until stopped"""

    def __init__(self, name: str, interval: float, callback: Callable[[], Awaitable[Any]]):
        self.name = name
        self.interval = interval
        self.callback = callback
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._loop())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.callback()
            except Exception as e:
                logger.error("Periodic task failed", task=self.name, error=str(e))
