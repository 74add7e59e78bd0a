"""Background workers for notification delivery.

Usage:
    from visa_notifications.workers import run_worker_once, run_worker_loop

    # Single run
    result = run_worker_once()

    # Continuous loop
    run_worker_loop(interval_seconds=30)
"""

from visa_notifications.workers.base import ItemOutcome, WorkerBase, WorkerResult, WorkerStatus
from visa_notifications.workers.cleanup_worker import ExpiryCleanupWorker
from visa_notifications.workers.notification_worker import NotificationWorker
from visa_notifications.workers.runner import (
    RunnerResult,
    WorkerRunner,
    configure_worker_logging,
    run_delivery_pass,
    run_worker_loop,
    run_worker_once,
    trigger_delivery,
)

__all__ = [
    "WorkerBase",
    "WorkerResult",
    "WorkerStatus",
    "ItemOutcome",
    "NotificationWorker",
    "ExpiryCleanupWorker",
    "WorkerRunner",
    "RunnerResult",
    "run_worker_once",
    "run_worker_loop",
    "run_delivery_pass",
    "trigger_delivery",
    "configure_worker_logging",
]
