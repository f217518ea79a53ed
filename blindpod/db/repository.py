"""Repository pattern implementation for podcast and listening-state persistence.

Provides an abstract interface and SQLAlchemy implementation for database operations.
Supports both SQLite (local development, tests) and PostgreSQL (production).

Every write is a single short transaction: either an insert-if-absent guarded by
a unique constraint, or a patch of one record. Concurrent writers racing on the
same unique key are resolved by catching IntegrityError and re-reading.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterable, List, Optional, Set, Tuple

from sqlalchemy import create_engine, exists, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload, sessionmaker

from .models import (
    Base,
    Episode,
    ImportJob,
    ListenedEpisode,
    Podcast,
    Subscription,
    User,
    now_ms,
)

logger = logging.getLogger(__name__)


@dataclass
class Subscriber:
    """A podcast subscriber as seen by the notification engine.

    Attributes:
        user_id: Subscriber's user id.
        email: Address notifications are sent to.
        subscribed_at: When the subscription began (epoch ms).
        notify_enabled: True only if both the user's global preference and
            the subscription's own flag are on.
    """

    user_id: str
    email: str
    subscribed_at: int
    notify_enabled: bool


class PodcastRepositoryInterface(ABC):
    """Abstract interface for podcast and listening-state persistence.

    Implementations must support both SQLite and PostgreSQL backends.
    """

    # --- User Operations ---

    @abstractmethod
    def create_user(
        self,
        email: str,
        name: Optional[str] = None,
        notify_on_new_episodes: bool = False,
    ) -> User:
        """Create a user, returning the existing one if the email is taken.

        Args:
            email: User's email address.
            name: Display name (optional).
            notify_on_new_episodes: Global new-episode email preference.

        Returns:
            User: The created or existing user.
        """
        pass

    @abstractmethod
    def get_user(self, user_id: str) -> Optional[User]:
        """Get a user by ID."""
        pass

    @abstractmethod
    def get_user_by_email(self, email: str) -> Optional[User]:
        """Get a user by email address."""
        pass

    @abstractmethod
    def update_user(self, user_id: str, **kwargs) -> Optional[User]:
        """Update a user's attributes.

        Returns:
            Optional[User]: The updated user if found, None otherwise.
        """
        pass

    @abstractmethod
    def delete_user(self, user_id: str) -> bool:
        """
        Delete a user together with everything the user owns.

        Subscriptions, listened marks and import jobs are removed. Podcasts left
        without any subscriber are deleted along with their episodes.

        Returns:
            bool: `True` if the user existed and was deleted, `False` otherwise.
        """
        pass

    # --- Podcast Operations ---

    @abstractmethod
    def upsert_podcast(
        self,
        feed_url: str,
        title: str,
        description: Optional[str] = None,
        image_url: Optional[str] = None,
        author: Optional[str] = None,
    ) -> Tuple[Podcast, bool]:
        """
        Insert a podcast keyed by feed URL, or overwrite the metadata of the existing one.

        On update the title, description, image URL and author are replaced with
        the given values and `last_fetched_at` is refreshed.

        Parameters:
            feed_url (str): Canonical RSS/Atom feed URL (the podcast's identity).
            title (str): Podcast title from the latest fetch.
            description (Optional[str]): Podcast description.
            image_url (Optional[str]): Artwork URL.
            author (Optional[str]): Author or publisher.

        Returns:
            tuple[Podcast, bool]: The podcast and `True` if it was created by this call.
        """
        pass

    @abstractmethod
    def get_podcast(self, podcast_id: str) -> Optional[Podcast]:
        """
        Retrieve a podcast by its identifier.

        Returns:
            Podcast if a podcast with the given ID exists, `None` otherwise.
        """
        pass

    @abstractmethod
    def get_podcast_by_feed_url(self, feed_url: str) -> Optional[Podcast]:
        """
        Retrieve a podcast matching the given feed URL.

        Returns:
            The matching `Podcast` if found, `None` otherwise.
        """
        pass

    @abstractmethod
    def list_podcasts(self, limit: Optional[int] = None) -> List[Podcast]:
        """Return all stored podcasts ordered by title."""
        pass

    @abstractmethod
    def update_podcast(self, podcast_id: str, **kwargs) -> Optional[Podcast]:
        """
        Update attributes of an existing podcast.

        Returns:
            Optional[Podcast]: The updated Podcast, or `None` if no podcast with `podcast_id` exists.
        """
        pass

    @abstractmethod
    def delete_podcast(self, podcast_id: str) -> bool:
        """Delete a podcast and, by cascade, its episodes, subscriptions and listened marks."""
        pass

    @abstractmethod
    def delete_podcast_if_orphaned(self, podcast_id: str) -> bool:
        """
        Delete a podcast only when no subscription references it.

        Returns:
            bool: `True` if the podcast was deleted.
        """
        pass

    # --- Episode Operations ---

    @abstractmethod
    def get_episode(self, episode_id: str) -> Optional[Episode]:
        """
        Retrieve an episode by its primary key.

        Returns:
            The Episode instance (with its podcast loaded) if found, `None` otherwise.
        """
        pass

    @abstractmethod
    def get_episode_by_guid(self, podcast_id: str, guid: str) -> Optional[Episode]:
        """
        Retrieve an episode by its GUID within the specified podcast.

        Returns:
            Optional[Episode]: The matching Episode if found, `None` otherwise.
        """
        pass

    @abstractmethod
    def list_episodes(
        self,
        podcast_id: str,
        include_archived: bool = True,
        limit: Optional[int] = None,
    ) -> List[Episode]:
        """List a podcast's episodes, newest first."""
        pass

    @abstractmethod
    def get_or_create_episode(
        self,
        podcast_id: str,
        guid: str,
        title: str,
        audio_url: str,
        published_at: int,
        **kwargs,
    ) -> Tuple[Episode, bool]:
        """
        Retrieve an episode by GUID within a podcast, creating it when none exists.

        Existing episodes are returned untouched: stored episode content is immutable.

        Parameters:
            podcast_id (str): ID of the podcast the episode belongs to.
            guid (str): Episode GUID used to identify uniqueness within the podcast.
            title (str): Episode title to use when creating a new episode.
            audio_url (str): URL of the audio enclosure.
            published_at (int): Publish time in epoch milliseconds.
            **kwargs: Optional additional Episode fields (description, duration_seconds).

        Returns:
            tuple[Episode, bool]: `(episode, created)`.
        """
        pass

    @abstractmethod
    def archive_missing_episodes(self, podcast_id: str, present_guids: Set[str]) -> int:
        """
        Flag as archived every non-archived episode whose GUID is not in `present_guids`.

        Never clears the flag and never deletes rows.

        Returns:
            int: Number of episodes newly archived.
        """
        pass

    @abstractmethod
    def archive_episodes(self, episode_ids: Iterable[str]) -> int:
        """Flag the given episodes as archived; returns how many changed."""
        pass

    # --- Subscription Operations ---

    @abstractmethod
    def subscribe_user_to_podcast(
        self, user_id: str, podcast_id: str, notifications_enabled: bool = False
    ) -> Tuple[Subscription, bool]:
        """Subscribe a user to a podcast.

        Args:
            user_id: The user's UUID.
            podcast_id: The podcast's UUID.
            notifications_enabled: Initial per-subscription notification flag.

        Returns:
            tuple[Subscription, bool]: The subscription and `True` if it was created now.
        """
        pass

    @abstractmethod
    def unsubscribe_user_from_podcast(self, user_id: str, podcast_id: str) -> bool:
        """Unsubscribe a user from a podcast.

        Returns:
            bool: True if unsubscribed, False if subscription didn't exist.
        """
        pass

    @abstractmethod
    def get_subscription(self, user_id: str, podcast_id: str) -> Optional[Subscription]:
        """Get the subscription linking a user and a podcast, if any."""
        pass

    @abstractmethod
    def update_subscription(
        self, user_id: str, podcast_id: str, **kwargs
    ) -> Optional[Subscription]:
        """Patch a subscription; returns None when it does not exist."""
        pass

    @abstractmethod
    def is_user_subscribed(self, user_id: str, podcast_id: str) -> bool:
        """Check if a user is subscribed to a podcast."""
        pass

    @abstractmethod
    def get_user_subscriptions(self, user_id: str) -> List[Podcast]:
        """Get all podcasts a user is subscribed to, ordered by title."""
        pass

    @abstractmethod
    def count_subscribers(self, podcast_id: str) -> int:
        """Number of users subscribed to a podcast."""
        pass

    @abstractmethod
    def get_subscribers_for_notification(self, podcast_id: str) -> List[Subscriber]:
        """
        Return every subscriber of a podcast with the data needed to decide on notifications.

        Returns:
            List[Subscriber]: One entry per subscription, with `notify_enabled` already
            combining the user's global preference and the subscription flag.
        """
        pass

    # --- Listened State ---

    @abstractmethod
    def mark_episode_listened(self, user_id: str, episode_id: str) -> bool:
        """
        Insert a listened mark if none exists.

        Returns:
            bool: `True` if a mark was created, `False` if one already existed.
        """
        pass

    @abstractmethod
    def mark_episodes_listened(self, user_id: str, episode_ids: Iterable[str]) -> int:
        """
        Insert listened marks for several episodes in one transaction.

        Episodes already marked, unknown episode ids and duplicate ids in the
        input are skipped.

        Returns:
            int: Number of marks created.
        """
        pass

    @abstractmethod
    def unmark_episode_listened(self, user_id: str, episode_id: str) -> bool:
        """Delete a listened mark; returns False if there was none."""
        pass

    @abstractmethod
    def get_listened_episode_ids(self, user_id: str) -> Set[str]:
        """Return the ids of every episode the user has marked listened."""
        pass

    # --- Feed Views ---

    @abstractmethod
    def get_unlistened_episodes(
        self,
        user_id: str,
        limit: Optional[int] = None,
        podcast_id: Optional[str] = None,
    ) -> List[Episode]:
        """
        Return non-archived, unlistened episodes of the user's subscribed podcasts.

        Parameters:
            user_id (str): The user whose feed is built.
            limit (Optional[int]): Maximum number of episodes; `None` for all.
            podcast_id (Optional[str]): Restrict to one subscribed podcast.

        Returns:
            List[Episode]: Episodes newest first by `published_at`, with `podcast` loaded.
        """
        pass

    @abstractmethod
    def get_archive_episodes(
        self, user_id: str, limit: Optional[int] = None
    ) -> List[Tuple[Episode, bool]]:
        """
        Return all episodes (archived or not) of the user's subscribed podcasts.

        Returns:
            List[tuple[Episode, bool]]: `(episode, listened)` pairs, newest first.
        """
        pass

    # --- Import Jobs ---

    @abstractmethod
    def create_import_job(self, user_id: str, total: int) -> ImportJob:
        """Create a pending import job for a user."""
        pass

    @abstractmethod
    def get_import_job(self, job_id: str) -> Optional[ImportJob]:
        """Get an import job by ID."""
        pass

    @abstractmethod
    def update_import_job(self, job_id: str, **kwargs) -> Optional[ImportJob]:
        """Patch an import job (status, succeeded, failed_titles, completed_at)."""
        pass

    @abstractmethod
    def delete_import_jobs_completed_before(self, cutoff_ms: int) -> int:
        """Delete finished import jobs whose completion time is older than `cutoff_ms`."""
        pass

    # --- Connection Management ---

    @abstractmethod
    def close(self) -> None:
        """
        Close and release all database connections and engine resources used by the repository.
        """
        pass


class SQLAlchemyPodcastRepository(PodcastRepositoryInterface):
    """SQLAlchemy-based implementation of the podcast repository.

    Supports SQLite for local development and PostgreSQL for production.
    """

    def __init__(
        self,
        database_url: str,
        pool_size: int = 5,
        max_overflow: int = 10,
        echo: bool = False,
        create_tables: bool = False,
    ):
        """
        Initialize the repository and configure its SQLAlchemy engine and session factory.

        Parameters:
            database_url (str): SQLAlchemy-compatible database URL.
            pool_size (int): Connection pool size for non-SQLite databases.
            max_overflow (int): Maximum overflow connections for non-SQLite databases.
            echo (bool): If true, enable SQLAlchemy SQL statement logging.
            create_tables (bool): If true, create missing tables from the ORM metadata
                (used by tests and local development; production uses Alembic).
        """
        self.database_url = database_url

        # SQLite doesn't support connection pooling
        if database_url.startswith("sqlite"):
            self.engine = create_engine(
                database_url,
                echo=echo,
                connect_args={"check_same_thread": False},
            )
        else:
            self.engine = create_engine(
                database_url,
                pool_size=pool_size,
                max_overflow=max_overflow,
                echo=echo,
            )

        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False)

        if create_tables:
            Base.metadata.create_all(self.engine)

        logger.info(f"Database initialized: {database_url.split('@')[-1] if '@' in database_url else database_url}")

    def _get_session(self) -> Session:
        """
        Obtain a new SQLAlchemy database session from the repository's session factory.
        """
        return self.SessionLocal()

    # --- User Operations ---

    def create_user(
        self,
        email: str,
        name: Optional[str] = None,
        notify_on_new_episodes: bool = False,
    ) -> User:
        """Create a new user.

        If a user with the same email already exists, returns the existing
        user instead of raising an error.
        """
        with self._get_session() as session:
            user = User(
                email=email,
                name=name,
                notify_on_new_episodes=notify_on_new_episodes,
                created_at=now_ms(),
            )
            session.add(user)
            try:
                session.commit()
                session.refresh(user)
                logger.info(f"Created new user: {user.id}")
                return user
            except IntegrityError:
                session.rollback()
                existing = session.execute(
                    select(User).where(User.email == email)
                ).scalar_one_or_none()
                if existing:
                    return existing
                raise

    def get_user(self, user_id: str) -> Optional[User]:
        """Get a user by ID."""
        with self._get_session() as session:
            return session.get(User, user_id)

    def get_user_by_email(self, email: str) -> Optional[User]:
        """Get a user by email address."""
        with self._get_session() as session:
            stmt = select(User).where(User.email == email)
            return session.scalar(stmt)

    def update_user(self, user_id: str, **kwargs) -> Optional[User]:
        """Update a user's attributes."""
        with self._get_session() as session:
            user = session.get(User, user_id)
            if not user:
                return None

            for key, value in kwargs.items():
                if hasattr(user, key):
                    setattr(user, key, value)

            session.commit()
            session.refresh(user)
            return user

    def delete_user(self, user_id: str) -> bool:
        """
        Delete a user and cascade to owned rows, then drop podcasts nobody follows anymore.
        """
        with self._get_session() as session:
            user = session.get(User, user_id)
            if not user:
                return False

            podcast_ids = list(
                session.scalars(
                    select(Subscription.podcast_id).where(Subscription.user_id == user_id)
                ).all()
            )

            session.delete(user)
            session.flush()

            orphaned = 0
            for podcast_id in podcast_ids:
                if self._has_subscribers(session, podcast_id):
                    continue
                podcast = session.get(Podcast, podcast_id)
                if podcast:
                    session.delete(podcast)
                    orphaned += 1

            session.commit()
            logger.info(f"Deleted user {user_id} ({orphaned} orphaned podcasts removed)")
            return True

    # --- Podcast Operations ---

    def upsert_podcast(
        self,
        feed_url: str,
        title: str,
        description: Optional[str] = None,
        image_url: Optional[str] = None,
        author: Optional[str] = None,
    ) -> Tuple[Podcast, bool]:
        """
        Insert or overwrite a podcast keyed by feed URL.

        If a concurrent writer inserts the same feed URL first, the unique
        constraint fires and the existing row is updated instead.
        """
        fields = {
            "title": title,
            "description": description,
            "image_url": image_url,
            "author": author,
        }

        existing = self._update_podcast_by_feed_url(feed_url, fields)
        if existing:
            return existing, False

        with self._get_session() as session:
            podcast = Podcast(feed_url=feed_url, last_fetched_at=now_ms(), **fields)
            session.add(podcast)
            try:
                session.commit()
                session.refresh(podcast)
                logger.info(f"Created podcast: {title} ({podcast.id})")
                return podcast, True
            except IntegrityError:
                session.rollback()

        # Another writer created the podcast between our check and insert
        existing = self._update_podcast_by_feed_url(feed_url, fields)
        if existing:
            return existing, False
        raise RuntimeError(f"Podcast insert conflicted but no row found for {feed_url}")

    def _update_podcast_by_feed_url(self, feed_url: str, fields: dict) -> Optional[Podcast]:
        with self._get_session() as session:
            podcast = session.scalar(select(Podcast).where(Podcast.feed_url == feed_url))
            if podcast is None:
                return None
            for key, value in fields.items():
                setattr(podcast, key, value)
            podcast.last_fetched_at = now_ms()
            session.commit()
            session.refresh(podcast)
            return podcast

    def get_podcast(self, podcast_id: str) -> Optional[Podcast]:
        """
        Retrieve a podcast by its primary key.
        """
        with self._get_session() as session:
            return session.get(Podcast, podcast_id)

    def get_podcast_by_feed_url(self, feed_url: str) -> Optional[Podcast]:
        """
        Finds the podcast record that matches the given RSS/Atom feed URL.
        """
        with self._get_session() as session:
            stmt = select(Podcast).where(Podcast.feed_url == feed_url)
            return session.scalar(stmt)

    def list_podcasts(self, limit: Optional[int] = None) -> List[Podcast]:
        with self._get_session() as session:
            stmt = select(Podcast).order_by(Podcast.title)
            if limit:
                stmt = stmt.limit(limit)
            return list(session.scalars(stmt).all())

    def update_podcast(self, podcast_id: str, **kwargs) -> Optional[Podcast]:
        """
        Update attributes of an existing podcast.

        Only attributes that exist on the Podcast model are set from `kwargs`.
        """
        with self._get_session() as session:
            podcast = session.get(Podcast, podcast_id)
            if podcast:
                for key, value in kwargs.items():
                    if hasattr(podcast, key):
                        setattr(podcast, key, value)
                session.commit()
                session.refresh(podcast)
                logger.debug(f"Updated podcast {podcast_id}: {kwargs.keys()}")
            return podcast

    def delete_podcast(self, podcast_id: str) -> bool:
        with self._get_session() as session:
            podcast = session.get(Podcast, podcast_id)
            if not podcast:
                return False

            session.delete(podcast)
            session.commit()
            logger.info(f"Deleted podcast: {podcast.title} ({podcast_id})")
            return True

    def delete_podcast_if_orphaned(self, podcast_id: str) -> bool:
        with self._get_session() as session:
            if self._has_subscribers(session, podcast_id):
                return False

            podcast = session.get(Podcast, podcast_id)
            if not podcast:
                return False

            session.delete(podcast)
            session.commit()
            logger.info(f"Deleted podcast with no subscribers: {podcast.title} ({podcast_id})")
            return True

    @staticmethod
    def _has_subscribers(session: Session, podcast_id: str) -> bool:
        return bool(
            session.scalar(
                select(exists().where(Subscription.podcast_id == podcast_id))
            )
        )

    # --- Episode Operations ---

    def get_episode(self, episode_id: str) -> Optional[Episode]:
        """
        Retrieve an episode by its ID.
        """
        with self._get_session() as session:
            stmt = (
                select(Episode)
                .options(joinedload(Episode.podcast))
                .where(Episode.id == episode_id)
            )
            return session.scalars(stmt).unique().first()

    def get_episode_by_guid(self, podcast_id: str, guid: str) -> Optional[Episode]:
        with self._get_session() as session:
            stmt = select(Episode).where(
                Episode.podcast_id == podcast_id, Episode.guid == guid
            )
            return session.scalar(stmt)

    def list_episodes(
        self,
        podcast_id: str,
        include_archived: bool = True,
        limit: Optional[int] = None,
    ) -> List[Episode]:
        with self._get_session() as session:
            stmt = select(Episode).where(Episode.podcast_id == podcast_id)
            if not include_archived:
                stmt = stmt.where(Episode.archived.is_(False))
            stmt = stmt.order_by(Episode.published_at.desc())
            if limit:
                stmt = stmt.limit(limit)
            return list(session.scalars(stmt).all())

    def get_or_create_episode(
        self,
        podcast_id: str,
        guid: str,
        title: str,
        audio_url: str,
        published_at: int,
        **kwargs,
    ) -> Tuple[Episode, bool]:
        """
        Ensure an Episode exists for the given podcast by GUID; create and persist it if missing.

        Uses optimistic creation with IntegrityError handling to avoid race conditions
        in concurrent scenarios.
        """
        existing = self.get_episode_by_guid(podcast_id, guid)
        if existing:
            return existing, False

        with self._get_session() as session:
            episode = Episode(
                podcast_id=podcast_id,
                guid=guid,
                title=title,
                audio_url=audio_url,
                published_at=published_at,
                archived=False,
                **kwargs,
            )
            session.add(episode)
            try:
                session.commit()
                session.refresh(episode)
                logger.debug(f"Created episode: {title} ({episode.id})")
                return episode, True
            except IntegrityError:
                session.rollback()

        # Another process created the episode; fetch and return it
        existing = self.get_episode_by_guid(podcast_id, guid)
        if existing:
            return existing, False
        raise RuntimeError(f"Episode insert conflicted but no row found for guid {guid!r}")

    def archive_missing_episodes(self, podcast_id: str, present_guids: Set[str]) -> int:
        with self._get_session() as session:
            stmt = select(Episode).where(
                Episode.podcast_id == podcast_id,
                Episode.archived.is_(False),
            )
            archived = 0
            for episode in session.scalars(stmt).all():
                if episode.guid not in present_guids:
                    episode.archived = True
                    archived += 1
            if archived:
                session.commit()
                logger.info(f"Archived {archived} episodes no longer in feed for podcast {podcast_id}")
            return archived

    def archive_episodes(self, episode_ids: Iterable[str]) -> int:
        ids = list(set(episode_ids))
        if not ids:
            return 0
        with self._get_session() as session:
            stmt = select(Episode).where(
                Episode.id.in_(ids),
                Episode.archived.is_(False),
            )
            archived = 0
            for episode in session.scalars(stmt).all():
                episode.archived = True
                archived += 1
            session.commit()
            return archived

    # --- Subscription Operations ---

    def subscribe_user_to_podcast(
        self, user_id: str, podcast_id: str, notifications_enabled: bool = False
    ) -> Tuple[Subscription, bool]:
        """Subscribe a user to a podcast."""
        existing = self.get_subscription(user_id, podcast_id)
        if existing:
            return existing, False

        with self._get_session() as session:
            subscription = Subscription(
                user_id=user_id,
                podcast_id=podcast_id,
                notifications_enabled=notifications_enabled,
                subscribed_at=now_ms(),
            )
            session.add(subscription)
            try:
                session.commit()
                session.refresh(subscription)
                logger.info(f"User {user_id} subscribed to podcast {podcast_id}")
                return subscription, True
            except IntegrityError:
                session.rollback()

        existing = self.get_subscription(user_id, podcast_id)
        if existing:
            return existing, False
        raise RuntimeError(
            f"Subscription insert conflicted but no row found for {user_id}/{podcast_id}"
        )

    def unsubscribe_user_from_podcast(self, user_id: str, podcast_id: str) -> bool:
        """Unsubscribe a user from a podcast."""
        with self._get_session() as session:
            subscription = session.scalar(
                select(Subscription).where(
                    Subscription.user_id == user_id,
                    Subscription.podcast_id == podcast_id,
                )
            )
            if not subscription:
                return False

            session.delete(subscription)
            session.commit()
            logger.info(f"User {user_id} unsubscribed from podcast {podcast_id}")
            return True

    def get_subscription(self, user_id: str, podcast_id: str) -> Optional[Subscription]:
        with self._get_session() as session:
            return session.scalar(
                select(Subscription).where(
                    Subscription.user_id == user_id,
                    Subscription.podcast_id == podcast_id,
                )
            )

    def update_subscription(
        self, user_id: str, podcast_id: str, **kwargs
    ) -> Optional[Subscription]:
        with self._get_session() as session:
            subscription = session.scalar(
                select(Subscription).where(
                    Subscription.user_id == user_id,
                    Subscription.podcast_id == podcast_id,
                )
            )
            if not subscription:
                return None

            for key, value in kwargs.items():
                if hasattr(subscription, key):
                    setattr(subscription, key, value)

            session.commit()
            session.refresh(subscription)
            return subscription

    def is_user_subscribed(self, user_id: str, podcast_id: str) -> bool:
        """Check if a user is subscribed to a podcast."""
        return self.get_subscription(user_id, podcast_id) is not None

    def get_user_subscriptions(self, user_id: str) -> List[Podcast]:
        """Get all podcasts a user is subscribed to."""
        with self._get_session() as session:
            stmt = (
                select(Podcast)
                .join(Subscription, Podcast.id == Subscription.podcast_id)
                .where(Subscription.user_id == user_id)
                .order_by(Podcast.title)
            )
            return list(session.scalars(stmt).all())

    def count_subscribers(self, podcast_id: str) -> int:
        with self._get_session() as session:
            return session.scalar(
                select(func.count(Subscription.id)).where(
                    Subscription.podcast_id == podcast_id
                )
            ) or 0

    def get_subscribers_for_notification(self, podcast_id: str) -> List[Subscriber]:
        with self._get_session() as session:
            stmt = (
                select(Subscription, User)
                .join(User, User.id == Subscription.user_id)
                .where(Subscription.podcast_id == podcast_id)
            )
            return [
                Subscriber(
                    user_id=user.id,
                    email=user.email,
                    subscribed_at=subscription.subscribed_at,
                    notify_enabled=bool(
                        user.notify_on_new_episodes and subscription.notifications_enabled
                    ),
                )
                for subscription, user in session.execute(stmt).all()
            ]

    # --- Listened State ---

    def mark_episode_listened(self, user_id: str, episode_id: str) -> bool:
        return self.mark_episodes_listened(user_id, [episode_id]) == 1

    def mark_episodes_listened(self, user_id: str, episode_ids: Iterable[str]) -> int:
        # dict.fromkeys keeps request order while dropping duplicates
        requested = list(dict.fromkeys(episode_ids))
        if not requested:
            return 0

        with self._get_session() as session:
            already = set(
                session.scalars(
                    select(ListenedEpisode.episode_id).where(
                        ListenedEpisode.user_id == user_id,
                        ListenedEpisode.episode_id.in_(requested),
                    )
                ).all()
            )
            known = set(
                session.scalars(select(Episode.id).where(Episode.id.in_(requested))).all()
            )
            to_insert = [
                episode_id
                for episode_id in requested
                if episode_id in known and episode_id not in already
            ]
            if not to_insert:
                return 0

            listened_at = now_ms()
            session.add_all(
                ListenedEpisode(
                    user_id=user_id,
                    episode_id=episode_id,
                    listened_at=listened_at,
                    position_seconds=0,
                )
                for episode_id in to_insert
            )
            try:
                session.commit()
                return len(to_insert)
            except IntegrityError:
                # A concurrent writer marked one of these; fall back to one at a time
                session.rollback()

        created = 0
        for episode_id in to_insert:
            created += self._insert_listened_mark(user_id, episode_id)
        return created

    def _insert_listened_mark(self, user_id: str, episode_id: str) -> int:
        with self._get_session() as session:
            session.add(
                ListenedEpisode(
                    user_id=user_id,
                    episode_id=episode_id,
                    listened_at=now_ms(),
                    position_seconds=0,
                )
            )
            try:
                session.commit()
                return 1
            except IntegrityError:
                session.rollback()
                return 0

    def unmark_episode_listened(self, user_id: str, episode_id: str) -> bool:
        with self._get_session() as session:
            mark = session.scalar(
                select(ListenedEpisode).where(
                    ListenedEpisode.user_id == user_id,
                    ListenedEpisode.episode_id == episode_id,
                )
            )
            if not mark:
                return False
            session.delete(mark)
            session.commit()
            return True

    def get_listened_episode_ids(self, user_id: str) -> Set[str]:
        with self._get_session() as session:
            return set(
                session.scalars(
                    select(ListenedEpisode.episode_id).where(
                        ListenedEpisode.user_id == user_id
                    )
                ).all()
            )

    # --- Feed Views ---

    def get_unlistened_episodes(
        self,
        user_id: str,
        limit: Optional[int] = None,
        podcast_id: Optional[str] = None,
    ) -> List[Episode]:
        listened = exists().where(
            ListenedEpisode.user_id == user_id,
            ListenedEpisode.episode_id == Episode.id,
        )
        with self._get_session() as session:
            stmt = (
                select(Episode)
                .options(joinedload(Episode.podcast))
                .join(Subscription, Subscription.podcast_id == Episode.podcast_id)
                .where(
                    Subscription.user_id == user_id,
                    Episode.archived.is_(False),
                    ~listened,
                )
            )
            if podcast_id:
                stmt = stmt.where(Episode.podcast_id == podcast_id)
            stmt = stmt.order_by(Episode.published_at.desc())
            if limit is not None:
                stmt = stmt.limit(limit)
            return list(session.scalars(stmt).unique().all())

    def get_archive_episodes(
        self, user_id: str, limit: Optional[int] = None
    ) -> List[Tuple[Episode, bool]]:
        with self._get_session() as session:
            stmt = (
                select(Episode, ListenedEpisode.id)
                .options(joinedload(Episode.podcast))
                .join(Subscription, Subscription.podcast_id == Episode.podcast_id)
                .outerjoin(
                    ListenedEpisode,
                    (ListenedEpisode.episode_id == Episode.id)
                    & (ListenedEpisode.user_id == user_id),
                )
                .where(Subscription.user_id == user_id)
                .order_by(Episode.published_at.desc())
            )
            if limit is not None:
                stmt = stmt.limit(limit)
            return [
                (episode, mark_id is not None)
                for episode, mark_id in session.execute(stmt).unique().all()
            ]

    # --- Import Jobs ---

    def create_import_job(self, user_id: str, total: int) -> ImportJob:
        with self._get_session() as session:
            job = ImportJob(
                user_id=user_id,
                total=total,
                succeeded=0,
                failed_titles=[],
                started_at=now_ms(),
            )
            session.add(job)
            session.commit()
            session.refresh(job)
            logger.info(f"Created import job {job.id} for user {user_id} ({total} feeds)")
            return job

    def get_import_job(self, job_id: str) -> Optional[ImportJob]:
        with self._get_session() as session:
            return session.get(ImportJob, job_id)

    def update_import_job(self, job_id: str, **kwargs) -> Optional[ImportJob]:
        with self._get_session() as session:
            job = session.get(ImportJob, job_id)
            if not job:
                return None

            for key, value in kwargs.items():
                if hasattr(job, key):
                    setattr(job, key, value)

            session.commit()
            session.refresh(job)
            return job

    def delete_import_jobs_completed_before(self, cutoff_ms: int) -> int:
        with self._get_session() as session:
            stmt = select(ImportJob).where(
                ImportJob.completed_at.is_not(None),
                ImportJob.completed_at < cutoff_ms,
            )
            deleted = 0
            for job in session.scalars(stmt).all():
                session.delete(job)
                deleted += 1
            if deleted:
                session.commit()
            return deleted

    # --- Connection Management ---

    def close(self) -> None:
        """
        Dispose the SQLAlchemy engine and release database connections and resources.
        """
        self.engine.dispose()
