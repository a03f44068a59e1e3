"""Asyncio dispatcher that serializes frame processing per session."""

from __future__ import annotations

import asyncio
from collections.abc import Callable

from loguru import logger

from stitch.errors import DispatcherClosedError
from stitch.reconciler import IngestReport, StreamReconciler
from stitch.types import RawFrame

ReportHandler = Callable[[IngestReport], None]


class SessionDispatcher:
    """One queue and one worker task per session.

    Frames of a session are ingested strictly in submission order; sessions
    progress independently of each other.
    """

    def __init__(
        self,
        reconciler: StreamReconciler,
        *,
        maxsize: int = 0,
        on_report: ReportHandler | None = None,
    ) -> None:
        self.reconciler = reconciler
        self._maxsize = maxsize
        self._on_report = on_report
        self._queues: dict[str, asyncio.Queue[RawFrame]] = {}
        self._workers: dict[str, asyncio.Task[None]] = {}
        self._closed = False
        self._closing: set[str] = set()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def active_sessions(self) -> list[str]:
        return list(self._workers)

    async def submit(self, session_id: str, raw: RawFrame) -> None:
        """Queue one received frame for its session."""

        if self._closed:
            raise DispatcherClosedError(f"dispatcher is stopped; dropped frame for session '{session_id}'")
        if session_id in self._closing:
            raise DispatcherClosedError(f"session '{session_id}' is being disposed; dropped frame")
        await self._queue_for(session_id).put(raw)

    async def join(self, session_id: str | None = None) -> None:
        """Wait until queued frames (of one session, or all) are processed."""

        if session_id is not None:
            queue = self._queues.get(session_id)
            if queue is not None:
                await queue.join()
            return
        for queue in list(self._queues.values()):
            await queue.join()

    async def dispose(self, session_id: str) -> bool:
        """Finish queued frames, stop the session worker and drop its state.

        Frames submitted for the session while it drains are refused.
        """
        self._closing.add(session_id)
        try:
            queue = self._queues.get(session_id)
            if queue is not None:
                await queue.join()
            self._queues.pop(session_id, None)
            worker = self._workers.pop(session_id, None)
            if worker is not None:
                await _cancel(worker)
            return self.reconciler.dispose(session_id)
        finally:
            self._closing.discard(session_id)

    async def stop(self) -> None:
        """Stop accepting frames and cancel every worker."""

        self._closed = True
        workers = list(self._workers.values())
        self._workers.clear()
        self._queues.clear()
        for worker in workers:
            await _cancel(worker)

    async def __aenter__(self) -> SessionDispatcher:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    def _queue_for(self, session_id: str) -> asyncio.Queue[RawFrame]:
        queue = self._queues.get(session_id)
        if queue is None:
            queue = asyncio.Queue(maxsize=self._maxsize)
            self._queues[session_id] = queue
            self._workers[session_id] = asyncio.create_task(
                self._run(session_id, queue),
                name=f"stitch-session:{session_id}",
            )
        return queue

    async def _run(self, session_id: str, queue: asyncio.Queue[RawFrame]) -> None:
        while True:
            raw = await queue.get()
            try:
                report = self.reconciler.ingest(session_id, raw)
                if self._on_report is not None:
                    self._on_report(report)
            except Exception:
                logger.opt(exception=True).error("dispatch.frame_failed session={}", session_id)
            finally:
                queue.task_done()


async def _cancel(task: asyncio.Task[None]) -> None:
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        return
