"""Recurring workers run by the scheduler.

- FeedRefreshWorker: Re-fetches every feed, archives vanished episodes and notifies subscribers
- ImportJobCleanupWorker: Removes finished import jobs past their retention window
"""

from blindpod.workflow.workers.base import WorkerInterface, WorkerResult
from blindpod.workflow.workers.cleanup import ImportJobCleanupWorker
from blindpod.workflow.workers.refresh import FeedRefreshWorker

__all__ = [
    "WorkerInterface",
    "WorkerResult",
    "FeedRefreshWorker",
    "ImportJobCleanupWorker",
]
