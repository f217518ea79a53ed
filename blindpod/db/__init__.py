"""Database module for podcast and listening-state persistence.

Provides:
- SQLAlchemy ORM models (User, Podcast, Episode, Subscription, ListenedEpisode, ImportJob)
- Repository interface and implementation
- Factory functions for creating repositories
"""

from .factory import (
    create_repository,
    create_repository_from_config,
    get_database_url_from_config,
)
from .models import (
    Base,
    Episode,
    ImportJob,
    ListenedEpisode,
    Podcast,
    Subscription,
    User,
)
from .repository import (
    PodcastRepositoryInterface,
    SQLAlchemyPodcastRepository,
    Subscriber,
)

__all__ = [
    "Base",
    "User",
    "Podcast",
    "Episode",
    "Subscription",
    "ListenedEpisode",
    "ImportJob",
    "PodcastRepositoryInterface",
    "SQLAlchemyPodcastRepository",
    "Subscriber",
    "create_repository",
    "create_repository_from_config",
    "get_database_url_from_config",
]
