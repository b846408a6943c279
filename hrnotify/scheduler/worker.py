"""One tick of the delivery worker."""

import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional
from uuid import uuid4

from hrnotify.logging import get_logger
from hrnotify.logging.context import log_context
from hrnotify.notifications.models import QueueProcessResult
from hrnotify.notifications.queue import EmailQueue
from hrnotify.persistence import PersistenceError
from hrnotify.utils.timestamps import utc_now

logger = get_logger(__name__, component="worker")


@dataclass
class WorkerRunResult:
    """Outcome of a single worker tick."""

    started_at: datetime
    finished_at: Optional[datetime] = None
    requeued: int = 0
    batch: QueueProcessResult = field(default_factory=QueueProcessResult)
    skipped: bool = False
    error: Optional[str] = None

    @property
    def duration_seconds(self) -> float:
        if self.finished_at is None:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()


class DeliveryWorker:
    """Recovers abandoned claims, then drains one batch from the queue.

    A tick that starts while the previous one is still running is skipped
    rather than queued behind it.
    """

    def __init__(self, queue: EmailQueue, batch_size: Optional[int] = None):
        self.queue = queue
        self.batch_size = batch_size
        self._lock = threading.Lock()

    def run_once(self) -> WorkerRunResult:
        result = WorkerRunResult(started_at=utc_now())
        run_id = uuid4().hex[:12]

        if not self._lock.acquire(blocking=False):
            with log_context(run_id=run_id):
                logger.warning(
                    "Worker run skipped: previous run still in progress",
                    extra={"event": "worker.run.skipped", "reason": "lock_held"},
                )
            result.skipped = True
            result.finished_at = utc_now()
            return result

        try:
            with log_context(run_id=run_id):
                try:
                    result.requeued = self.queue.requeue_stale()
                except PersistenceError as e:
                    logger.error(
                        f"Stale claim recovery failed: {e}",
                        extra={"event": "worker.requeue_failed"},
                    )

                try:
                    result.batch = self.queue.process_batch(self.batch_size)
                except Exception as e:
                    # Keep the scheduler alive; the next tick retries
                    result.error = str(e)
                    logger.error(
                        f"Worker run failed: {e}",
                        exc_info=True,
                        extra={"event": "worker.run.failed"},
                    )

                result.finished_at = utc_now()
                logger.info(
                    "Worker run finished",
                    extra={
                        "event": "worker.run.finished",
                        "requeued": result.requeued,
                        "processed": result.batch.processed,
                        "sent": result.batch.sent,
                        "failed": result.batch.failed,
                        "duration_seconds": round(result.duration_seconds, 3),
                    },
                )
                return result
        finally:
            self._lock.release()
