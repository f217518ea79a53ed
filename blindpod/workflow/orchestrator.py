"""Interval scheduler for recurring workers.

Runs the feed refresh and import job cleanup workers on their configured
cadence until interrupted.
"""

import logging
import signal
import threading
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Callable, Dict, List, Optional

from blindpod.workflow.config import WorkflowConfig
from blindpod.workflow.workers.base import WorkerInterface, WorkerResult

logger = logging.getLogger(__name__)


@dataclass
class ScheduledWorker:
    """A worker and how often it runs."""

    worker: WorkerInterface
    interval_seconds: int
    last_run: Optional[float] = None

    def is_due(self, now: float) -> bool:
        return self.last_run is None or now - self.last_run >= self.interval_seconds


@dataclass
class OrchestratorResult:
    """Result of one pass over all workers.

    Attributes:
        started_at: When the run started.
        completed_at: When the run completed.
        worker_results: Results keyed by worker name.
        success: Whether every worker finished without failures.
    """

    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    completed_at: Optional[datetime] = None
    worker_results: Dict[str, WorkerResult] = field(default_factory=dict)
    success: bool = True

    @property
    def duration_seconds(self) -> float:
        """Duration of the run in seconds."""
        if self.completed_at is None:
            return 0.0
        return (self.completed_at - self.started_at).total_seconds()

    @property
    def total_processed(self) -> int:
        return sum(r.processed for r in self.worker_results.values())

    @property
    def total_failed(self) -> int:
        return sum(r.failed for r in self.worker_results.values())


class SchedulerOrchestrator:
    """Runs each registered worker whenever its interval has elapsed.

    Example:
        orchestrator = SchedulerOrchestrator(workflow_config)
        orchestrator.add_worker(FeedRefreshWorker(sync_service),
                                workflow_config.refresh_interval_seconds)
        orchestrator.run()  # until SIGINT/SIGTERM
    """

    def __init__(
        self,
        workflow_config: WorkflowConfig,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.workflow_config = workflow_config
        self._clock = clock
        self._scheduled: List[ScheduledWorker] = []
        self._stop_event = threading.Event()

    def add_worker(self, worker: WorkerInterface, interval_seconds: int) -> None:
        self._scheduled.append(ScheduledWorker(worker=worker, interval_seconds=interval_seconds))

    @property
    def workers(self) -> List[WorkerInterface]:
        return [scheduled.worker for scheduled in self._scheduled]

    def run_worker(self, worker: WorkerInterface) -> WorkerResult:
        """Run a single worker, converting unexpected errors into a failed result."""
        logger.info(f"Running worker: {worker.name}")
        try:
            result = worker.run()
            worker.log_result(result)
            return result
        except Exception:
            logger.exception(f"Worker {worker.name} failed")
            return WorkerResult(failed=1, errors=["Worker execution failed"])

    def run_once(self) -> OrchestratorResult:
        """Run every registered worker once, regardless of interval."""
        result = OrchestratorResult()
        now = self._clock()

        for scheduled in self._scheduled:
            worker_result = self.run_worker(scheduled.worker)
            scheduled.last_run = now
            result.worker_results[scheduled.worker.name] = worker_result

        result.completed_at = datetime.now(UTC)
        result.success = result.total_failed == 0

        logger.info(
            f"Scheduler pass completed in {result.duration_seconds:.1f}s: "
            f"{result.total_processed} processed, {result.total_failed} failed"
        )
        return result

    def run_due(self) -> Dict[str, WorkerResult]:
        """Run the workers whose interval has elapsed."""
        results = {}
        for scheduled in self._scheduled:
            now = self._clock()
            if scheduled.is_due(now):
                results[scheduled.worker.name] = self.run_worker(scheduled.worker)
                scheduled.last_run = now
        return results

    def run(self) -> None:
        """Run the scheduling loop until interrupted."""
        logger.info(
            "Starting scheduler with workers: "
            + ", ".join(f"{s.worker.name} every {s.interval_seconds}s" for s in self._scheduled)
        )
        self._stop_event.clear()

        original_sigint = signal.signal(signal.SIGINT, self._handle_signal)
        original_sigterm = signal.signal(signal.SIGTERM, self._handle_signal)

        try:
            while not self._stop_event.is_set():
                self.run_due()
                self._stop_event.wait(self.workflow_config.idle_wait_seconds)
        finally:
            signal.signal(signal.SIGINT, original_sigint)
            signal.signal(signal.SIGTERM, original_sigterm)
            logger.info("Scheduler stopped")

    def stop(self) -> None:
        """Signal the scheduler to stop gracefully."""
        logger.info("Stopping scheduler...")
        self._stop_event.set()

    def _handle_signal(self, signum, frame) -> None:
        """Handle interrupt signals gracefully."""
        sig_name = signal.Signals(signum).name
        logger.info(f"Received {sig_name}, initiating graceful shutdown...")
        self.stop()
