"""Configuration for the scheduler and the bulk import runner.

Provides environment-based configuration for intervals, batch sizes and
retention settings.
"""

import os
from dataclasses import dataclass
from typing import Optional


def _get_int_env(
    name: str,
    default: int,
    min_val: Optional[int] = None,
    max_val: Optional[int] = None,
) -> int:
    """Parse an integer from an environment variable with validation.

    Args:
        name: Environment variable name.
        default: Default value if env var is not set.
        min_val: Minimum allowed value (inclusive), or None for no minimum.
        max_val: Maximum allowed value (inclusive), or None for no maximum.

    Returns:
        The parsed and validated integer value.

    Raises:
        ValueError: If the value cannot be parsed as an integer or is out of range.
    """
    raw = os.getenv(name)
    if raw is None:
        return default

    try:
        value = int(raw)
    except ValueError:
        raise ValueError(
            f"Invalid value for {name}: '{raw}' is not a valid integer"
        )

    if min_val is not None and value < min_val:
        raise ValueError(
            f"Invalid value for {name}: {value} must be >= {min_val}"
        )

    if max_val is not None and value > max_val:
        raise ValueError(
            f"Invalid value for {name}: {value} must be <= {max_val}"
        )

    return value


@dataclass
class WorkflowConfig:
    """Configuration for the scheduler orchestrator and import runner.

    All settings can be overridden via environment variables.
    """

    # Recurring jobs
    refresh_interval_seconds: int = 3600  # 1 hour
    cleanup_interval_seconds: int = 3600  # 1 hour
    idle_wait_seconds: int = 30  # Sleep between scheduler checks

    # Bulk import
    import_batch_size: int = 10  # Feeds fetched concurrently per batch
    import_runners: int = 2  # Import jobs running at once
    import_job_retention_hours: int = 24  # Finished jobs kept for polling

    @classmethod
    def from_env(cls) -> "WorkflowConfig":
        """Create configuration from environment variables.

        Returns:
            WorkflowConfig instance with values from environment or defaults.

        Raises:
            ValueError: If any environment variable has an invalid value.
        """
        return cls(
            refresh_interval_seconds=_get_int_env(
                "WORKFLOW_REFRESH_INTERVAL_SECONDS", 3600, min_val=1
            ),
            cleanup_interval_seconds=_get_int_env(
                "WORKFLOW_CLEANUP_INTERVAL_SECONDS", 3600, min_val=1
            ),
            idle_wait_seconds=_get_int_env(
                "WORKFLOW_IDLE_WAIT_SECONDS", 30, min_val=0
            ),
            import_batch_size=_get_int_env(
                "WORKFLOW_IMPORT_BATCH_SIZE", 10, min_val=1, max_val=100
            ),
            import_runners=_get_int_env(
                "WORKFLOW_IMPORT_RUNNERS", 2, min_val=1
            ),
            import_job_retention_hours=_get_int_env(
                "WORKFLOW_IMPORT_JOB_RETENTION_HOURS", 24, min_val=0
            ),
        )
