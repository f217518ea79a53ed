"""Database factory for creating repository instances.

Automatically detects database type from URL and configures appropriately
for SQLite (local development, tests) or PostgreSQL (production).
"""

import logging
import os
from typing import Optional

from .repository import PodcastRepositoryInterface, SQLAlchemyPodcastRepository

logger = logging.getLogger(__name__)

# Default database URL for local development
DEFAULT_DATABASE_URL = "sqlite:///./blindpod.db"


def create_repository(
    database_url: Optional[str] = None,
    pool_size: int = 5,
    max_overflow: int = 10,
    echo: bool = False,
    create_tables: bool = False,
) -> PodcastRepositoryInterface:
    """
    Create a PodcastRepositoryInterface configured from the provided or discovered database URL.

    If `database_url` is not provided, it is read from the `DATABASE_URL` environment variable;
    if that is unset, a local SQLite default is used. Pool settings apply to PostgreSQL and are
    ignored for SQLite.

    Parameters:
        database_url (Optional[str]): SQLAlchemy database URL to use; if None the environment or default is used.
        pool_size (int): Connection pool size for PostgreSQL; ignored for SQLite.
        max_overflow (int): Maximum overflow connections for PostgreSQL; ignored for SQLite.
        echo (bool): If true, enable SQL statement logging.
        create_tables (bool): If true, create any missing tables on startup.

    Returns:
        PodcastRepositoryInterface: A repository instance backed by the resolved database URL.
    """
    if database_url is None:
        database_url = os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL)

    db_type = database_url.split("://")[0] if "://" in database_url else "unknown"
    if "@" in database_url:
        # Hide credentials in log
        logger.info(f"Creating {db_type} repository: ...@{database_url.split('@')[-1]}")
    else:
        logger.info(f"Creating {db_type} repository: {database_url}")

    return SQLAlchemyPodcastRepository(
        database_url=database_url,
        pool_size=pool_size,
        max_overflow=max_overflow,
        echo=echo,
        create_tables=create_tables,
    )


def create_repository_from_config(config, create_tables: bool = False) -> PodcastRepositoryInterface:
    """Build a repository using the database settings on a `Config` instance."""
    return create_repository(
        database_url=get_database_url_from_config(config),
        pool_size=getattr(config, "DB_POOL_SIZE", 5),
        max_overflow=getattr(config, "DB_MAX_OVERFLOW", 10),
        echo=getattr(config, "DB_ECHO", False),
        create_tables=create_tables,
    )


def get_database_url_from_config(config) -> str:
    """
    Retrieve the database URL from a configuration object, falling back to the environment and a default.
    """
    return getattr(config, "DATABASE_URL", None) or os.getenv(
        "DATABASE_URL", DEFAULT_DATABASE_URL
    )
