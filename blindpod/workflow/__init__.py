"""Background work: bulk imports and the recurring refresh/cleanup scheduler."""

from blindpod.workflow.config import WorkflowConfig
from blindpod.workflow.import_jobs import ImportFeed, ImportJobRunner, ImportOrchestrator
from blindpod.workflow.orchestrator import SchedulerOrchestrator
from blindpod.workflow.workers.base import WorkerInterface, WorkerResult

__all__ = [
    "WorkflowConfig",
    "ImportFeed",
    "ImportJobRunner",
    "ImportOrchestrator",
    "SchedulerOrchestrator",
    "WorkerInterface",
    "WorkerResult",
]
