"""Feed refresh worker.

Re-fetches every stored podcast feed to discover new episodes, archive
removed ones and notify subscribers.
"""

import logging

from blindpod.podcast.feed_sync import FeedSyncService
from blindpod.workflow.workers.base import WorkerInterface, WorkerResult

logger = logging.getLogger(__name__)


class FeedRefreshWorker(WorkerInterface):
    """Worker that refreshes all podcast feeds.

    This worker wraps the FeedSyncService to provide a consistent
    interface for the scheduler.
    """

    def __init__(self, feed_sync_service: FeedSyncService):
        self.feed_sync_service = feed_sync_service

    @property
    def name(self) -> str:
        """Human-readable name for this worker."""
        return "FeedRefresh"

    def run(self) -> WorkerResult:
        """Refresh all podcast feeds.

        Returns:
            WorkerResult with refresh statistics.
        """
        result = WorkerResult()

        try:
            sync_result = self.feed_sync_service.sync_all_podcasts()

            result.processed = sync_result.get("synced", 0)
            result.failed = sync_result.get("failed", 0)

            new_episodes = sync_result.get("new_episodes", 0)
            if new_episodes > 0:
                logger.info(f"Discovered {new_episodes} new episodes")

            for podcast_result in sync_result.get("results", []):
                if podcast_result.get("error"):
                    result.errors.append(
                        f"Podcast {podcast_result.get('podcast_id')}: "
                        f"{podcast_result.get('error')}"
                    )

        except Exception as e:
            logger.exception(f"Feed refresh failed: {e}")
            result.failed = 1
            result.errors.append(str(e))

        return result
