"""
Request Batcher: Size/Timeout-Triggered Batching

Collects generation requests in a FIFO queue and hands them to the grouped
dispatcher in batches. Two triggers, whichever fires first:
- Size: the queue reaches max_batch_size, flushed before enqueue returns
- Timeout: a recurring timer finds the queue non-empty

At most one flush runs at a time; a flush attempted while another is in
progress (or with an empty queue) is a no-op returning an empty result.
"""

import asyncio
from collections import deque
from datetime import datetime
from typing import Any, Deque, Dict, List, Optional

from loguru import logger

from core.enums import FlushReason
from core.exceptions import GenerationError
from core.models import Batch, BatchResult, GeneratedResult, GenerationRequest
from execution.batch_dispatcher import GroupedDispatcher
from orchestration.task_scheduler import TaskScheduler

FLUSH_TASK_NAME = "batcher:flush"


class RequestBatcher:
    """
    Pending queue in front of the dispatcher.

    Args:
        dispatcher: Processes each flushed batch
        task_scheduler: Hosts the recurring flush timer
        max_batch_size: Size trigger and per-flush cap
        flush_interval: Timer period in seconds
    """

    def __init__(
        self,
        dispatcher: GroupedDispatcher,
        task_scheduler: TaskScheduler,
        max_batch_size: int = 10,
        flush_interval: float = 5.0,
        metrics_collector: Optional[Any] = None,
    ):
        if max_batch_size < 1:
            raise ValueError("max_batch_size must be at least 1")
        if flush_interval <= 0:
            raise ValueError("flush_interval must be positive")

        self.dispatcher = dispatcher
        self.task_scheduler = task_scheduler
        self.max_batch_size = max_batch_size
        self.flush_interval = flush_interval
        self.metrics = metrics_collector

        self._pending: Deque[GenerationRequest] = deque()
        self._waiters: Dict[str, List[asyncio.Future]] = {}
        self._flush_lock = asyncio.Lock()
        self._is_running = False

        # Statistics
        self.batches_processed = 0
        self.requests_processed = 0
        self.last_flush_reason: Optional[FlushReason] = None
        self.last_flush_at: Optional[datetime] = None

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def queue_size(self) -> int:
        return len(self._pending)

    @property
    def is_flushing(self) -> bool:
        return self._flush_lock.locked()

    @property
    def is_running(self) -> bool:
        return self._is_running

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def start(self) -> None:
        """Install the recurring flush timer."""
        if self._is_running:
            return
        self.task_scheduler.schedule_interval(FLUSH_TASK_NAME, self.flush_interval, self._on_timer)
        self._is_running = True
        logger.info(
            f"RequestBatcher started (max_batch_size={self.max_batch_size}, "
            f"flush_interval={self.flush_interval}s)"
        )

    async def stop(self) -> None:
        """Remove the timer and drain whatever is still queued."""
        self.task_scheduler.cancel(FLUSH_TASK_NAME)
        self._is_running = False
        await self.drain()
        logger.info("RequestBatcher stopped")

    async def drain(self) -> None:
        while self._pending:
            if self.is_flushing:
                await asyncio.sleep(0.01)
                continue
            await self.flush(FlushReason.MANUAL)

    async def _on_timer(self) -> None:
        if self._pending:
            await self.flush(FlushReason.TIMEOUT)

    # =========================================================================
    # ENQUEUE / SUBMIT
    # =========================================================================

    async def enqueue(self, request: GenerationRequest) -> str:
        """
        Queue a request and return its id.

        Reaching max_batch_size flushes before this call returns.
        """
        self._pending.append(request)
        self._update_queue_metric()
        logger.debug(f"Enqueued request {request.id} ({request.kind}), queue size {len(self._pending)}")

        if len(self._pending) >= self.max_batch_size:
            await self.flush(FlushReason.SIZE)

        return request.id

    async def submit(self, request: GenerationRequest) -> GeneratedResult:
        """
        Queue a request and wait for the flush that carries it.

        Without a running timer the caller drives flushes itself.
        """
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._waiters.setdefault(request.id, []).append(future)

        await self.enqueue(request)

        while not future.done() and not self._is_running:
            if self.is_flushing:
                await asyncio.sleep(0.01)
                continue
            try:
                await self.flush(FlushReason.MANUAL)
            except Exception:
                # Waiters of the failed batch already carry the error
                if not future.done():
                    raise

        return await future

    # =========================================================================
    # FLUSH
    # =========================================================================

    async def flush(self, reason: FlushReason = FlushReason.MANUAL) -> BatchResult:
        """
        Dispatch up to max_batch_size queued requests, oldest first.

        Returns:
            BatchResult of the dispatched batch, empty when nothing ran
        """
        if self._flush_lock.locked() or not self._pending:
            return BatchResult.empty(reason)

        async with self._flush_lock:
            take = min(self.max_batch_size, len(self._pending))
            batch = Batch(requests=[self._pending.popleft() for _ in range(take)], reason=reason)
            self._update_queue_metric()

            logger.info(
                f"Flushing batch {batch.id[:8]} ({len(batch)} requests, reason={reason.value}, "
                f"{len(self._pending)} remaining)"
            )

            try:
                result = await self.dispatcher.process(batch)
            except Exception as e:
                logger.error(f"Batch {batch.id[:8]} failed: {e}")
                self._fail_waiters(batch, e)
                raise

            self._resolve_waiters(result)

            self.batches_processed += 1
            self.requests_processed += len(batch)
            self.last_flush_reason = reason
            self.last_flush_at = datetime.utcnow()

            if self.metrics:
                self.metrics.record_batch_flush(
                    reason=reason.value,
                    size=len(batch),
                    duration_seconds=result.total_time,
                    cost=result.total_cost,
                )

            return result

    def _resolve_waiters(self, result: BatchResult) -> None:
        for item in result.results:
            futures = self._waiters.get(item.request_id)
            if not futures:
                continue
            future = futures.pop(0)
            if not futures:
                del self._waiters[item.request_id]
            if not future.done():
                future.set_result(item)

    def _fail_waiters(self, batch: Batch, error: Exception) -> None:
        for request in batch.requests:
            for future in self._waiters.pop(request.id, []):
                if not future.done():
                    future.set_exception(
                        GenerationError(
                            f"Batch dispatch failed: {error}",
                            request_id=request.id,
                            generation_step="dispatch",
                            cause=error,
                        )
                    )

    def _update_queue_metric(self) -> None:
        if self.metrics:
            self.metrics.update_queue_size(len(self._pending))

    def get_status(self) -> Dict[str, Any]:
        return {
            "queue_size": self.queue_size,
            "is_flushing": self.is_flushing,
            "is_running": self._is_running,
            "max_batch_size": self.max_batch_size,
            "flush_interval": self.flush_interval,
            "batches_processed": self.batches_processed,
            "requests_processed": self.requests_processed,
            "last_flush_reason": self.last_flush_reason.value if self.last_flush_reason else None,
            "last_flush_at": self.last_flush_at.isoformat() if self.last_flush_at else None,
        }


__all__ = ["FLUSH_TASK_NAME", "RequestBatcher"]
