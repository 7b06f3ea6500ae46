# tipbot/tx_queue.py
"""Single-worker FIFO executor for every chain-mutating call.

All on-chain writes are signed by the one admin account, so two concurrent
submissions would race on its nonce. The queue owns that resource: exactly
one job runs at a time, in enqueue order, and a failing job never stops the
jobs behind it.
"""
from __future__ import annotations

import asyncio
import itertools
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

Job = Callable[[], Awaitable[Any]]
ErrorHandler = Callable[[BaseException], Awaitable[None]]


@dataclass
class _QueuedJob:
    seq: int
    label: str
    job: Job
    on_error: Optional[ErrorHandler]


class TransactionQueue:
    def __init__(self, name: str = "chain-writes"):
        self.name = name
        self._queue: asyncio.Queue[_QueuedJob] | None = None
        self._worker: asyncio.Task | None = None
        self._seq = itertools.count(1)
        self.processed = 0
        self.failed = 0

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def start(self) -> None:
        if self.running:
            return
        if self._queue is None:
            self._queue = asyncio.Queue()
        self._worker = asyncio.get_running_loop().create_task(self._run(), name=f"{self.name}-worker")
        logger.info("TransactionQueue %s started", self.name)

    def enqueue(self, job: Job, *, label: str = "job", on_error: ErrorHandler | None = None) -> int:
        """Fire-and-forget. Returns the job's sequence number."""
        if self._queue is None:
            self._queue = asyncio.Queue()
        item = _QueuedJob(seq=next(self._seq), label=label, job=job, on_error=on_error)
        self._queue.put_nowait(item)
        if not self.running:
            self.start()
        logger.debug("enqueued #%s %s (backlog=%s)", item.seq, label, self._queue.qsize())
        return item.seq

    async def join(self) -> None:
        """Wait until every job enqueued so far has finished."""
        if self._queue is not None:
            await self._queue.join()

    async def stop(self) -> None:
        await self.join()
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None
        logger.info("TransactionQueue %s stopped (processed=%s failed=%s)", self.name, self.processed, self.failed)

    async def _run(self) -> None:
        assert self._queue is not None
        while True:
            item = await self._queue.get()
            try:
                await self._execute(item)
            finally:
                self._queue.task_done()

    async def _execute(self, item: _QueuedJob) -> None:
        try:
            await item.job()
            self.processed += 1
        except asyncio.CancelledError:
            raise
        except Exception as e:
            # no retry: a failed chain write needs a fresh request
            self.failed += 1
            logger.exception("queued job #%s %s failed", item.seq, item.label)
            if item.on_error is not None:
                try:
                    await item.on_error(e)
                except Exception:
                    logger.exception("error handler for job #%s %s failed", item.seq, item.label)
