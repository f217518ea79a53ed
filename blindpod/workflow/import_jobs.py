"""Bulk import of many feeds for one user, tracked by an import job record.

The orchestrator subscribes the user to each feed in fixed-size batches on a
thread pool. A failing feed is recorded by title and never aborts the rest.
Progress is persisted after every feed so a client can poll it, and the job
is always closed out as done, even when something unexpected goes wrong.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Union

from blindpod.db.models import JOB_DONE, JOB_RUNNING, ImportJob, now_ms
from blindpod.db.repository import PodcastRepositoryInterface
from blindpod.errors import require_user
from blindpod.podcast.feed_sync import FeedSyncService

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 10
UNTITLED_FEED = "Untitled feed"


@dataclass
class ImportFeed:
    """One feed to import: its URL and the title shown when it fails."""

    url: str
    title: str = ""

    @property
    def display_title(self) -> str:
        return self.title or self.url or UNTITLED_FEED

    @classmethod
    def coerce(cls, value: Union["ImportFeed", dict]) -> "ImportFeed":
        if isinstance(value, cls):
            return value
        return cls(url=value.get("url", ""), title=value.get("title") or "")


@dataclass
class ImportProgress:
    """Thread-safe running totals for one import job."""

    succeeded: int = 0
    failed_titles: List[str] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def record_success(self) -> None:
        with self._lock:
            self.succeeded += 1

    def record_failure(self, title: str) -> None:
        with self._lock:
            self.failed_titles.append(title)

    def snapshot(self) -> dict:
        with self._lock:
            return {
                "succeeded": self.succeeded,
                "failed_titles": list(self.failed_titles),
            }


class ImportOrchestrator:
    """Runs one import job to completion.

    Example:
        orchestrator = ImportOrchestrator(repository, feed_sync_service)
        job = repository.create_import_job(user_id, total=len(feeds))
        orchestrator.run_import(job.id, user_id, feeds, mark_all_listened=True)
    """

    def __init__(
        self,
        repository: PodcastRepositoryInterface,
        feed_sync_service: FeedSyncService,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ):
        """Initialize the orchestrator.

        Args:
            repository: Database repository holding the import job.
            feed_sync_service: Service performing fetch, reconcile and subscribe.
            batch_size: Number of feeds processed concurrently.
        """
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        self.repository = repository
        self.feed_sync_service = feed_sync_service
        self.batch_size = batch_size

    def run_import(
        self,
        job_id: str,
        user_id: str,
        feeds: Iterable[Union[ImportFeed, dict]],
        mark_all_listened: bool = False,
    ) -> Optional[ImportJob]:
        """
        Import every feed for the user and drive the job from running to done.

        Parameters:
            job_id (str): Import job to report progress on.
            user_id (str): The importing user.
            feeds: `ImportFeed` objects or `{"url", "title"}` dicts.
            mark_all_listened (bool): Listen-mark each feed's current episodes for the user.

        Returns:
            Optional[ImportJob]: The job in its final state.
        """
        feed_list = [ImportFeed.coerce(feed) for feed in feeds]
        progress = ImportProgress()

        logger.info(f"Import job {job_id}: starting {len(feed_list)} feeds")
        try:
            self.repository.update_import_job(job_id, status=JOB_RUNNING)

            with ThreadPoolExecutor(
                max_workers=self.batch_size,
                thread_name_prefix="import",
            ) as executor:
                for start in range(0, len(feed_list), self.batch_size):
                    batch = feed_list[start:start + self.batch_size]
                    self._run_batch(executor, job_id, user_id, batch, mark_all_listened, progress)
        finally:
            final = progress.snapshot()
            job = self.repository.update_import_job(
                job_id,
                status=JOB_DONE,
                completed_at=now_ms(),
                **final,
            )
            logger.info(
                f"Import job {job_id}: done, {final['succeeded']} succeeded, "
                f"{len(final['failed_titles'])} failed"
            )

        return job

    def _run_batch(
        self,
        executor: ThreadPoolExecutor,
        job_id: str,
        user_id: str,
        batch: List[ImportFeed],
        mark_all_listened: bool,
        progress: ImportProgress,
    ) -> None:
        futures: dict[Future, ImportFeed] = {
            executor.submit(
                self.feed_sync_service.add_podcast_from_url,
                user_id,
                feed.url,
                mark_all_listened,
            ): feed
            for feed in batch
        }

        for future in as_completed(futures):
            feed = futures[future]
            try:
                future.result()
                progress.record_success()
            except Exception as e:
                logger.warning(f"Import job {job_id}: failed to import '{feed.display_title}': {e}")
                progress.record_failure(feed.display_title)

            self.repository.update_import_job(job_id, **progress.snapshot())


class ImportJobRunner:
    """Accepts import requests and runs them in the background.

    `start_import` returns as soon as the pending job record exists; callers
    poll `get_import_job` for progress. There is no cancellation.
    """

    def __init__(
        self,
        repository: PodcastRepositoryInterface,
        orchestrator: ImportOrchestrator,
        max_concurrent_jobs: int = 2,
    ):
        self.repository = repository
        self.orchestrator = orchestrator
        self._executor = ThreadPoolExecutor(
            max_workers=max_concurrent_jobs,
            thread_name_prefix="import-job",
        )
        self._futures: dict[str, Future] = {}
        self._lock = threading.Lock()

    def start_import(
        self,
        user_id: str,
        feeds: Iterable[Union[ImportFeed, dict]],
        mark_all_listened: bool = False,
    ) -> str:
        """Create a pending import job and schedule it.

        Returns:
            The new job's ID.

        Raises:
            NotAuthenticatedError: If `user_id` is missing.
        """
        require_user(user_id)
        feed_list = [ImportFeed.coerce(feed) for feed in feeds]

        job = self.repository.create_import_job(user_id, total=len(feed_list))
        future = self._executor.submit(
            self.orchestrator.run_import,
            job.id,
            user_id,
            feed_list,
            mark_all_listened,
        )
        with self._lock:
            self._futures[job.id] = future
        future.add_done_callback(lambda f, job_id=job.id: self._on_done(job_id, f))
        return job.id

    def _on_done(self, job_id: str, future: Future) -> None:
        with self._lock:
            self._futures.pop(job_id, None)
        exc = future.exception()
        if exc is not None:
            logger.error(f"Import job {job_id} ended with an error: {exc}", exc_info=exc)

    def get_import_job(self, user_id: str, job_id: str) -> Optional[ImportJob]:
        """Return the job if it exists and belongs to the user, otherwise None."""
        require_user(user_id)
        job = self.repository.get_import_job(job_id)
        if job is None or job.user_id != user_id:
            return None
        return job

    def wait(self, job_id: str, timeout: Optional[float] = None) -> None:
        """Block until a job started by this runner finishes."""
        with self._lock:
            future = self._futures.get(job_id)
        if future is not None:
            future.exception(timeout=timeout)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
