"""Scheduling for the background delivery worker."""

from .service import SchedulerService
from .worker import DeliveryWorker, WorkerRunResult

__all__ = [
    "SchedulerService",
    "DeliveryWorker",
    "WorkerRunResult",
]
