"""
Per-device command queue
One worker drains the plans in submission order, so a later write can never
reach the device before an earlier one, whatever delays either contains.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Iterable, List, Optional

from lightbridge.models.light_state import Send, Wait

log = logging.getLogger(__name__)


class CommandQueue:
    """FIFO of Send/Wait steps for one device

    Queued steps are never cancelled or coalesced: a plan superseded by a
    newer write still runs to completion before the newer one starts.
    """

    def __init__(
        self,
        name: str,
        send: Callable[[Any], Awaitable[bool]],
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        before_send: Optional[Callable[[], None]] = None,
    ):
        self.name = name
        self._send = send
        self._sleep = sleep
        self._before_send = before_send
        self._queue: Optional[asyncio.Queue] = None
        self._worker: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def submit(self, steps: Iterable) -> asyncio.Future:
        """Queue a plan; the future resolves to the per-send results"""
        loop = asyncio.get_running_loop()
        steps = tuple(steps)
        future = loop.create_future()
        if not steps:
            future.set_result([])
            return future

        if not self.running:
            # A worker only stops when closed or when its loop went away
            self._queue = asyncio.Queue()
            self._worker = loop.create_task(self._drain())

        self._queue.put_nowait((steps, future))
        log.debug("QUEUE %s: Queued %d steps (pending plans: %d)", self.name, len(steps), self._queue.qsize())
        return future

    async def _run(self, steps: tuple) -> List[bool]:
        results: List[bool] = []
        for step in steps:
            if isinstance(step, Wait):
                await self._sleep(step.seconds)
            elif isinstance(step, Send):
                if self._before_send:
                    self._before_send()
                results.append(await self._send(step.command))
            else:
                raise TypeError(f"Unknown step: {step!r}")
        return results

    async def _drain(self):
        while True:
            steps, future = await self._queue.get()
            try:
                results = await self._run(steps)
            except asyncio.CancelledError:
                if not future.done():
                    future.cancel()
                raise
            except Exception:
                log.exception("QUEUE %s: Plan failed", self.name)
                results = [False]
            finally:
                self._queue.task_done()

            if not future.done():
                future.set_result(results)

    async def join(self):
        """Wait until every queued plan has been transmitted"""
        if self._queue is not None and self.running:
            await self._queue.join()

    async def close(self):
        """Stop the worker, dropping plans that have not started"""
        if self._worker and not self._worker.done():
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
        self._worker = None

        if self._queue is not None:
            while not self._queue.empty():
                _, future = self._queue.get_nowait()
                self._queue.task_done()
                if not future.done():
                    future.cancel()
