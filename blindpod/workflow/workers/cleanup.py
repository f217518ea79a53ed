"""Cleanup worker for finished import jobs.

Import job records only exist so a client can poll progress; once a job has
been done for longer than the retention window it is deleted.
"""

import logging

from blindpod.db.models import now_ms
from blindpod.db.repository import PodcastRepositoryInterface
from blindpod.workflow.workers.base import WorkerInterface, WorkerResult

logger = logging.getLogger(__name__)

MS_PER_HOUR = 3600 * 1000


class ImportJobCleanupWorker(WorkerInterface):
    """Worker that deletes import jobs completed before the retention cutoff."""

    def __init__(
        self,
        repository: PodcastRepositoryInterface,
        retention_hours: int = 24,
    ):
        """Initialize the cleanup worker.

        Args:
            repository: Database repository for import job operations.
            retention_hours: How long finished jobs are kept.
        """
        self.repository = repository
        self.retention_hours = retention_hours

    @property
    def name(self) -> str:
        """Human-readable name for this worker."""
        return "ImportJobCleanup"

    def run(self) -> WorkerResult:
        """Delete expired import jobs.

        Returns:
            WorkerResult with the number of jobs deleted.
        """
        result = WorkerResult()
        cutoff = now_ms() - self.retention_hours * MS_PER_HOUR

        try:
            result.processed = self.repository.delete_import_jobs_completed_before(cutoff)
            if result.processed:
                logger.info(f"Deleted {result.processed} expired import jobs")
        except Exception as e:
            logger.exception(f"Import job cleanup failed: {e}")
            result.failed = 1
            result.errors.append(str(e))

        return result
