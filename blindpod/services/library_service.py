"""Per-user library operations: subscriptions, listened state and feed views.

Every operation takes the caller's user id and fails with
NotAuthenticatedError before touching the database when it is missing.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from ..db.models import Podcast, Subscription
from ..db.repository import PodcastRepositoryInterface
from ..errors import NotFoundError, require_user

logger = logging.getLogger(__name__)

DEFAULT_FEED_LIMIT = 100


@dataclass
class FeedPage:
    """One page of a feed view.

    Attributes:
        episodes: For the unlistened feed, Episode objects. For the archive
            feed, `(episode, listened)` tuples.
        has_more: True if entries beyond `limit` exist.
    """

    episodes: list = field(default_factory=list)
    has_more: bool = False


class LibraryService:
    """User-facing subscription and listened-state operations.

    Example:
        library = LibraryService(repository)
        library.mark_listened(user_id, episode_id)
        page = library.unlistened_feed(user_id, limit=50)
    """

    def __init__(self, repository: PodcastRepositoryInterface):
        self.repository = repository

    # --- Subscriptions ---

    def subscribe(self, user_id: str, podcast_id: str) -> Subscription:
        """Subscribe the user to an existing podcast; repeated calls are no-ops.

        Raises:
            NotFoundError: If the podcast does not exist.
        """
        require_user(user_id)
        if not self.repository.get_podcast(podcast_id):
            raise NotFoundError(f"Podcast not found: {podcast_id}")
        subscription, _ = self.repository.subscribe_user_to_podcast(user_id, podcast_id)
        return subscription

    def unsubscribe(self, user_id: str, podcast_id: str) -> bool:
        """Remove the user's subscription; silently does nothing if there is none.

        The podcast and its episodes are deleted once no subscriber remains.

        Returns:
            True if a subscription was removed.
        """
        require_user(user_id)
        removed = self.repository.unsubscribe_user_from_podcast(user_id, podcast_id)
        if removed:
            self.repository.delete_podcast_if_orphaned(podcast_id)
        return removed

    def set_notifications(self, user_id: str, podcast_id: str, enabled: bool) -> Subscription:
        require_user(user_id)
        subscription = self.repository.update_subscription(
            user_id, podcast_id, notifications_enabled=enabled
        )
        if subscription is None:
            raise NotFoundError(f"Not subscribed to podcast: {podcast_id}")
        return subscription

    def subscribed_podcasts(self, user_id: str) -> List[Podcast]:
        require_user(user_id)
        return self.repository.get_user_subscriptions(user_id)

    # --- Listened state ---

    def mark_listened(self, user_id: str, episode_id: str) -> bool:
        """Mark an episode listened. Returns False if it already was.

        Raises:
            NotFoundError: If the episode does not exist.
        """
        require_user(user_id)
        if not self.repository.get_episode(episode_id):
            raise NotFoundError(f"Episode not found: {episode_id}")
        return self.repository.mark_episode_listened(user_id, episode_id)

    def mark_unlistened(self, user_id: str, episode_id: str) -> bool:
        require_user(user_id)
        return self.repository.unmark_episode_listened(user_id, episode_id)

    def mark_many(self, user_id: str, episode_ids: Iterable[str]) -> int:
        """Mark several episodes listened in one batch.

        Ids already marked, unknown ids and duplicates within the request
        are skipped.

        Returns:
            Number of marks created.
        """
        require_user(user_id)
        return self.repository.mark_episodes_listened(user_id, episode_ids)

    def mark_all_for_podcast(self, user_id: str, podcast_id: str) -> int:
        """Mark every non-archived, unlistened episode of one podcast as listened.

        Raises:
            NotFoundError: If the user is not subscribed to the podcast.
        """
        require_user(user_id)
        if not self.repository.is_user_subscribed(user_id, podcast_id):
            raise NotFoundError(f"Not subscribed to podcast: {podcast_id}")

        episodes = self.repository.get_unlistened_episodes(user_id, podcast_id=podcast_id)
        marked = self.repository.mark_episodes_listened(user_id, [e.id for e in episodes])
        logger.info(f"Marked {marked} episodes listened for user {user_id} in podcast {podcast_id}")
        return marked

    def mark_all_for_feed(self, user_id: str) -> int:
        """Mark every non-archived, unlistened episode across all subscriptions as listened."""
        require_user(user_id)
        episodes = self.repository.get_unlistened_episodes(user_id)
        marked = self.repository.mark_episodes_listened(user_id, [e.id for e in episodes])
        logger.info(f"Marked {marked} episodes listened for user {user_id}")
        return marked

    # --- Feed views ---

    def unlistened_feed(self, user_id: str, limit: Optional[int] = DEFAULT_FEED_LIMIT) -> FeedPage:
        """Non-archived, unlistened episodes of subscribed podcasts, newest first."""
        require_user(user_id)
        fetch_limit = limit + 1 if limit is not None else None
        episodes = self.repository.get_unlistened_episodes(user_id, limit=fetch_limit)
        return self._page(episodes, limit)

    def archive_feed(self, user_id: str, limit: Optional[int] = None) -> FeedPage:
        """All episodes of subscribed podcasts, newest first, paired with a listened flag."""
        require_user(user_id)
        fetch_limit = limit + 1 if limit is not None else None
        entries = self.repository.get_archive_episodes(user_id, limit=fetch_limit)
        return self._page(entries, limit)

    @staticmethod
    def _page(items: list, limit: Optional[int]) -> FeedPage:
        if limit is not None and len(items) > limit:
            return FeedPage(episodes=items[:limit], has_more=True)
        return FeedPage(episodes=items, has_more=False)

    # --- Account ---

    def update_notification_preference(self, user_id: str, enabled: bool) -> None:
        """Set the user's global new-episode email preference."""
        require_user(user_id)
        if self.repository.update_user(user_id, notify_on_new_episodes=enabled) is None:
            raise NotFoundError(f"User not found: {user_id}")

    def delete_user(self, user_id: str) -> bool:
        """Delete the user, their subscriptions, marks and import jobs, and orphaned podcasts."""
        require_user(user_id)
        return self.repository.delete_user(user_id)
