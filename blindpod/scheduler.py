"""Blindpod background scheduler.

Refreshes every podcast feed and purges finished import jobs on an hourly
cadence (configurable through WORKFLOW_* environment variables).
"""

import logging
import sys

from blindpod.argparse_shared import (
    add_log_level_argument,
    add_run_once_argument,
    configure_logging,
    get_base_parser,
)
from blindpod.config import Config
from blindpod.db.factory import create_repository_from_config
from blindpod.podcast.feed_sync import create_feed_sync_service
from blindpod.workflow.config import WorkflowConfig
from blindpod.workflow.orchestrator import SchedulerOrchestrator
from blindpod.workflow.workers import FeedRefreshWorker, ImportJobCleanupWorker


def build_orchestrator(
    config: Config, workflow_config: WorkflowConfig, repository
) -> SchedulerOrchestrator:
    """Create a scheduler with the feed refresh and import cleanup workers registered.

    Args:
        config: Application configuration.
        workflow_config: Scheduler intervals and retention settings.
        repository: Database repository.
    """
    orchestrator = SchedulerOrchestrator(workflow_config)
    orchestrator.add_worker(
        FeedRefreshWorker(create_feed_sync_service(config, repository)),
        workflow_config.refresh_interval_seconds,
    )
    orchestrator.add_worker(
        ImportJobCleanupWorker(
            repository,
            retention_hours=workflow_config.import_job_retention_hours,
        ),
        workflow_config.cleanup_interval_seconds,
    )
    return orchestrator


def main():
    parser = get_base_parser("Blindpod feed refresh scheduler.")
    add_log_level_argument(parser)
    add_run_once_argument(parser)
    args = parser.parse_args()

    configure_logging(args.log_level)

    config = Config(env_file=args.env_file)
    workflow_config = WorkflowConfig.from_env()
    repository = create_repository_from_config(config)

    logging.info("Blindpod scheduler starting...")
    logging.info(f"Database: {config.DATABASE_URL.split('@')[-1]}")
    logging.info(f"Refresh interval: {workflow_config.refresh_interval_seconds}s")
    logging.info(f"Import job retention: {workflow_config.import_job_retention_hours}h")

    try:
        orchestrator = build_orchestrator(config, workflow_config, repository)
        if args.once:
            result = orchestrator.run_once()
            if not result.success:
                sys.exit(1)
        else:
            orchestrator.run()
    except KeyboardInterrupt:
        logging.info("Scheduler interrupted by user")
    except Exception:
        logging.exception("Scheduler failed")
        sys.exit(1)
    finally:
        repository.close()
        logging.info("Database connection closed")


if __name__ == "__main__":
    main()
