"""SQLAlchemy ORM models for podcasts, episodes and per-user listening state.

All timestamps are stored as integer milliseconds since the Unix epoch (UTC).
"""

import time
import uuid
from typing import List, Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.types import JSON

# Import job states
JOB_PENDING = "pending"
JOB_RUNNING = "running"
JOB_DONE = "done"


def now_ms() -> int:
    """Current time in milliseconds since the epoch."""
    return int(time.time() * 1000)


def _new_id() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class User(Base):
    """Application user.

    Holds the global notification preference; subscriptions, listened marks
    and import jobs are owned by the user and removed with it.
    """

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    email: Mapped[str] = mapped_column(String(256), unique=True, nullable=False)
    name: Mapped[Optional[str]] = mapped_column(String(256))

    notify_on_new_episodes: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default="0"
    )

    created_at: Mapped[int] = mapped_column(BigInteger, default=now_ms)

    subscriptions: Mapped[List["Subscription"]] = relationship(
        "Subscription", back_populates="user", cascade="all, delete-orphan"
    )
    listened_episodes: Mapped[List["ListenedEpisode"]] = relationship(
        "ListenedEpisode", back_populates="user", cascade="all, delete-orphan"
    )
    import_jobs: Mapped[List["ImportJob"]] = relationship(
        "ImportJob", back_populates="user", cascade="all, delete-orphan"
    )

    __table_args__ = (Index("ix_users_email", "email"),)

    def __repr__(self) -> str:
        """Return a concise representation of the User instance."""
        return f"<User(id={self.id}, email={self.email!r})>"


class Podcast(Base):
    """Podcast feed shared by all subscribers.

    The feed URL is the identity; title, description, artwork and author
    always reflect the most recent fetch.
    """

    __tablename__ = "podcasts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)

    feed_url: Mapped[str] = mapped_column(String(2048), unique=True, nullable=False)

    # Metadata from RSS feed
    title: Mapped[str] = mapped_column(String(512), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    image_url: Mapped[Optional[str]] = mapped_column(String(2048))
    author: Mapped[Optional[str]] = mapped_column(String(512))

    last_fetched_at: Mapped[int] = mapped_column(BigInteger, nullable=False, default=now_ms)

    episodes: Mapped[List["Episode"]] = relationship(
        "Episode", back_populates="podcast", cascade="all, delete-orphan"
    )
    subscriptions: Mapped[List["Subscription"]] = relationship(
        "Subscription", back_populates="podcast", cascade="all, delete-orphan"
    )

    __table_args__ = (Index("ix_podcasts_feed_url", "feed_url"),)

    def __repr__(self) -> str:
        """
        Provide a concise developer-facing string representation of the Podcast.

        Returns:
            str: A string in the form "<Podcast(id=<id>, title='<title>')>".
        """
        return f"<Podcast(id={self.id}, title={self.title!r})>"


class Episode(Base):
    """Episode of a podcast.

    Rows are never deleted by a refresh. An episode that disappears from the
    live feed is flagged `archived` instead, which keeps listened history.
    Content is immutable once stored.
    """

    __tablename__ = "episodes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    podcast_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("podcasts.id", ondelete="CASCADE"), nullable=False
    )

    # GUID is unique per podcast
    guid: Mapped[str] = mapped_column(String(2048), nullable=False)

    title: Mapped[str] = mapped_column(String(512), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    audio_url: Mapped[str] = mapped_column(String(2048), nullable=False)
    duration_seconds: Mapped[Optional[int]] = mapped_column(Integer)
    published_at: Mapped[int] = mapped_column(BigInteger, nullable=False)

    archived: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default="0"
    )

    podcast: Mapped["Podcast"] = relationship("Podcast", back_populates="episodes")
    listened_marks: Mapped[List["ListenedEpisode"]] = relationship(
        "ListenedEpisode", back_populates="episode", cascade="all, delete-orphan"
    )

    __table_args__ = (
        UniqueConstraint("podcast_id", "guid", name="uq_episode_podcast_guid"),
        Index("ix_episodes_podcast_id", "podcast_id"),
        Index("ix_episodes_published_at", "published_at"),
    )

    def __repr__(self) -> str:
        """
        Return a concise debug-friendly representation of the Episode instance.

        Returns:
            A string in the format "<Episode(id=<id>, title='<title>')>" representing the instance.
        """
        return f"<Episode(id={self.id}, title={self.title!r})>"


class Subscription(Base):
    """Per-user podcast subscription.

    Links users to podcasts they follow. `subscribed_at` gates new-episode
    notifications: only episodes published after it are announced.
    """

    __tablename__ = "subscriptions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)

    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    podcast_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("podcasts.id", ondelete="CASCADE"), nullable=False
    )

    notifications_enabled: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default="0"
    )
    subscribed_at: Mapped[int] = mapped_column(BigInteger, nullable=False, default=now_ms)

    user: Mapped["User"] = relationship("User", back_populates="subscriptions")
    podcast: Mapped["Podcast"] = relationship("Podcast", back_populates="subscriptions")

    __table_args__ = (
        UniqueConstraint("user_id", "podcast_id", name="uq_user_podcast_subscription"),
        Index("ix_subscriptions_user_id", "user_id"),
        Index("ix_subscriptions_podcast_id", "podcast_id"),
    )

    def __repr__(self) -> str:
        """Return a concise representation of the Subscription instance."""
        return f"<Subscription(user_id={self.user_id}, podcast_id={self.podcast_id})>"


class ListenedEpisode(Base):
    """Marker that a user has listened to an episode.

    Presence of the row means "listened"; there is at most one per
    (user, episode).
    """

    __tablename__ = "listened_episodes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)

    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    episode_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("episodes.id", ondelete="CASCADE"), nullable=False
    )

    listened_at: Mapped[int] = mapped_column(BigInteger, nullable=False, default=now_ms)
    position_seconds: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    user: Mapped["User"] = relationship("User", back_populates="listened_episodes")
    episode: Mapped["Episode"] = relationship("Episode", back_populates="listened_marks")

    __table_args__ = (
        UniqueConstraint("user_id", "episode_id", name="uq_listened_user_episode"),
        Index("ix_listened_episodes_user_id", "user_id"),
    )

    def __repr__(self) -> str:
        """Return a concise representation of the ListenedEpisode instance."""
        return f"<ListenedEpisode(user_id={self.user_id}, episode_id={self.episode_id})>"


class ImportJob(Base):
    """Progress record for one asynchronous bulk import.

    Status moves pending -> running -> done. `succeeded` and
    `failed_titles` only grow while the job runs.
    """

    __tablename__ = "import_jobs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )

    status: Mapped[str] = mapped_column(String(16), nullable=False, default=JOB_PENDING)
    total: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    succeeded: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failed_titles: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)

    started_at: Mapped[int] = mapped_column(BigInteger, nullable=False, default=now_ms)
    completed_at: Mapped[Optional[int]] = mapped_column(BigInteger)

    user: Mapped["User"] = relationship("User", back_populates="import_jobs")

    __table_args__ = (
        Index("ix_import_jobs_user_id", "user_id"),
        Index("ix_import_jobs_status", "status"),
    )

    @property
    def is_done(self) -> bool:
        return self.status == JOB_DONE

    def __repr__(self) -> str:
        """Return a concise representation of the ImportJob instance."""
        return f"<ImportJob(id={self.id}, status={self.status!r}, {self.succeeded}/{self.total})>"
