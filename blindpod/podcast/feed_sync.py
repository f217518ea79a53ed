"""Feed synchronization service for podcast updates.

Reconciles fetched feeds against stored state: upserts podcast metadata,
inserts episodes not seen before, and archives episodes that vanished from
the live feed. Also hosts the add-by-URL and refresh flows built on top of
the reconciler.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from ..db.models import Episode
from ..db.repository import PodcastRepositoryInterface
from ..errors import FeedFetchError, ValidationError, require_user
from .feed_parser import FeedParser, ParsedPodcast

logger = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    """Outcome of reconciling one fetched feed against the database.

    Attributes:
        podcast_id: ID of the upserted podcast.
        new_episodes: Episodes inserted by this reconcile, in feed order.
        archived_count: Stored episodes newly flagged as archived.
        is_new_podcast: True if the podcast row was created by this reconcile.
    """

    podcast_id: str
    new_episodes: List[Episode] = field(default_factory=list)
    archived_count: int = 0
    is_new_podcast: bool = False


def normalize_feed_url(feed_url: str) -> str:
    """Validate a user-supplied feed URL and return its canonical form.

    `feed://` and `itpc://` schemes are rewritten to `https://`.

    Raises:
        ValidationError: If the URL is empty or not an http(s) URL with a host.
    """
    url = (feed_url or "").strip()
    if not url:
        raise ValidationError("Feed URL is required")

    lowered = url.lower()
    for scheme in ("feed://", "itpc://"):
        if lowered.startswith(scheme):
            url = "https://" + url[len(scheme):]
            break

    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValidationError(f"Invalid feed URL: {feed_url}")
    return url


class FeedSyncService:
    """Service for synchronizing podcast feeds with the database.

    Fetches RSS feeds, detects new episodes, archives vanished ones and
    updates podcast metadata. New episodes found by a refresh are handed to
    the notifier, if one is configured.

    Example:
        sync_service = FeedSyncService(repository)
        result = sync_service.sync_podcast(podcast_id)
        print(f"New episodes: {result['new_episodes']}")
    """

    def __init__(
        self,
        repository: PodcastRepositoryInterface,
        feed_parser: Optional[FeedParser] = None,
        notifier=None,
    ):
        """
        Create a FeedSyncService bound to a repository.

        Parameters:
            repository: Persistence layer for podcasts, episodes and subscriptions.
            feed_parser (Optional[FeedParser]): Fetcher used for all feed requests.
            notifier: Optional object with `notify(podcast, new_episodes)`, invoked
                after a refresh inserts episodes.
        """
        self.repository = repository
        self.feed_parser = feed_parser or FeedParser()
        self.notifier = notifier

    def reconcile(
        self,
        feed_url: str,
        parsed: ParsedPodcast,
        is_refresh: bool = False,
    ) -> ReconcileResult:
        """
        Merge a fetched feed into stored state for one podcast.

        Steps run in order: podcast metadata upsert, insert of unseen episodes,
        then (refresh of an existing podcast only) the archival sweep. Stored
        episodes are never modified except to set `archived`, and the flag is
        never cleared. Re-running with an identical fetch is a no-op apart
        from `last_fetched_at`.

        Parameters:
            feed_url (str): Canonical feed URL identifying the podcast.
            parsed (ParsedPodcast): Normalized feed contents.
            is_refresh (bool): Enables the archival sweep.

        Returns:
            ReconcileResult: Podcast ID, inserted episodes and archive count.
        """
        podcast, created = self.repository.upsert_podcast(
            feed_url=feed_url,
            title=parsed.title,
            description=parsed.description,
            image_url=parsed.image_url,
            author=parsed.author,
        )
        result = ReconcileResult(podcast_id=podcast.id, is_new_podcast=created)

        seen_guids = set()
        for episode_data in parsed.episodes:
            if episode_data.guid in seen_guids:
                continue
            seen_guids.add(episode_data.guid)

            episode, was_created = self.repository.get_or_create_episode(
                podcast_id=podcast.id,
                guid=episode_data.guid,
                title=episode_data.title,
                audio_url=episode_data.audio_url,
                published_at=episode_data.published_at,
                description=episode_data.description,
                duration_seconds=episode_data.duration_seconds,
            )
            if was_created:
                result.new_episodes.append(episode)
                logger.debug(f"Added episode: {episode.title}")

        # A podcast inserted just now has no earlier episode set to compare with
        if is_refresh and not created:
            result.archived_count = self.repository.archive_missing_episodes(
                podcast.id, seen_guids
            )

        logger.info(
            f"Reconciled '{podcast.title}': {len(result.new_episodes)} new, "
            f"{result.archived_count} archived"
        )
        return result

    def add_podcast_from_url(
        self,
        user_id: str,
        feed_url: str,
        mark_all_listened: bool = False,
    ) -> Dict[str, Any]:
        """
        Subscribe a user to the feed at `feed_url`, creating the podcast if needed.

        When `mark_all_listened` is set, every episode inserted by this call is
        archived, and those plus the podcast's existing episodes are
        listen-marked for the user, so a backlog does not flood their
        unlistened feed.

        Parameters:
            user_id (str): The subscribing user.
            feed_url (str): Feed URL as entered by the user.
            mark_all_listened (bool): Treat the inserted backlog as already heard.

        Returns:
            dict: `podcast_id`, `title`, `new_episodes` (count), `marked_listened` (count).

        Raises:
            NotAuthenticatedError: If `user_id` is missing.
            ValidationError: If the URL is malformed (no fetch is attempted).
            FeedFetchError: If the feed cannot be retrieved or parsed.
        """
        require_user(user_id)
        url = normalize_feed_url(feed_url)

        parsed = self.feed_parser.fetch(url)
        reconciled = self.reconcile(url, parsed, is_refresh=False)

        self.repository.subscribe_user_to_podcast(user_id, reconciled.podcast_id)

        marked = 0
        if mark_all_listened:
            episode_ids = [episode.id for episode in reconciled.new_episodes]
            if episode_ids:
                self.repository.archive_episodes(episode_ids)
            # Podcast may already exist with episodes inserted for other subscribers
            episode_ids.extend(
                episode.id
                for episode in self.repository.get_unlistened_episodes(
                    user_id, podcast_id=reconciled.podcast_id
                )
            )
            marked = self.repository.mark_episodes_listened(user_id, episode_ids)

        logger.info(
            f"Added podcast '{parsed.title}' for user {user_id} "
            f"with {len(reconciled.new_episodes)} new episodes"
        )
        return {
            "podcast_id": reconciled.podcast_id,
            "title": parsed.title,
            "new_episodes": len(reconciled.new_episodes),
            "marked_listened": marked,
        }

    def sync_podcast(self, podcast_id: str) -> Dict[str, Any]:
        """
        Refresh a single podcast: fetch, reconcile with archival sweep, notify.

        Parameters:
            podcast_id (str): Identifier of the podcast to synchronize.

        Returns:
            result (dict): Synchronization outcome containing:
                - podcast_id (str): The podcast identifier.
                - new_episodes (int): Number of new episodes added.
                - archived (int): Number of episodes newly archived.
                - notified (int): Notification emails sent.
                - error (str|None): Error message if the sync failed, `None` on success.
        """
        result = {
            "podcast_id": podcast_id,
            "new_episodes": 0,
            "archived": 0,
            "notified": 0,
            "error": None,
        }

        podcast = self.repository.get_podcast(podcast_id)
        if not podcast:
            result["error"] = f"Podcast not found: {podcast_id}"
            return result

        logger.info(f"Syncing podcast: {podcast.title}")

        try:
            parsed = self.feed_parser.fetch(podcast.feed_url)
            reconciled = self.reconcile(podcast.feed_url, parsed, is_refresh=True)
        except FeedFetchError as e:
            logger.error(f"Failed to sync podcast {podcast.title}: {e}")
            result["error"] = str(e)
            return result
        except Exception as e:
            logger.exception(f"Unexpected error syncing podcast {podcast.title}")
            result["error"] = str(e)
            return result

        result["new_episodes"] = len(reconciled.new_episodes)
        result["archived"] = reconciled.archived_count

        if reconciled.new_episodes and self.notifier is not None:
            # Reconcile may have renamed the podcast
            podcast = self.repository.get_podcast(reconciled.podcast_id) or podcast
            # Delivery problems never undo a completed reconcile
            try:
                result["notified"] = self.notifier.notify(podcast, reconciled.new_episodes)
            except Exception:
                logger.exception(f"Notification failed for podcast {podcast.title}")

        logger.info(
            f"Sync complete for '{podcast.title}': {result['new_episodes']} new episodes, "
            f"{result['archived']} archived"
        )
        return result

    def sync_all_podcasts(self) -> Dict[str, Any]:
        """
        Refresh every stored podcast, recording failures and continuing.

        Returns:
            overall_result (dict): Aggregated sync results with keys:
                - synced (int): Number of podcasts successfully synced.
                - failed (int): Number of podcasts that failed to sync.
                - new_episodes (int): Total number of new episodes added across all podcasts.
                - archived (int): Total number of episodes archived.
                - results (list): Per-podcast result dictionaries returned by `sync_podcast`.
        """
        podcasts = self.repository.list_podcasts()

        overall_result = {
            "synced": 0,
            "failed": 0,
            "new_episodes": 0,
            "archived": 0,
            "results": [],
        }

        for podcast in podcasts:
            result = self.sync_podcast(podcast.id)
            overall_result["results"].append(result)

            if result["error"]:
                overall_result["failed"] += 1
            else:
                overall_result["synced"] += 1
                overall_result["new_episodes"] += result["new_episodes"]
                overall_result["archived"] += result["archived"]

        logger.info(
            f"Feed refresh complete: {overall_result['synced']} synced, "
            f"{overall_result['failed']} failed, "
            f"{overall_result['new_episodes']} new episodes"
        )

        return overall_result


def create_feed_sync_service(config, repository: PodcastRepositoryInterface) -> FeedSyncService:
    """Build a FeedSyncService wired with the configured fetcher and email notifier."""
    from ..services.notifications import EmailSenderProvider, NewEpisodeNotifier

    feed_parser = FeedParser(
        user_agent=config.FEED_USER_AGENT,
        timeout=config.FEED_FETCH_TIMEOUT,
    )
    notifier = NewEpisodeNotifier(
        repository=repository,
        sender_provider=EmailSenderProvider.from_config(config),
        config=config,
    )
    return FeedSyncService(repository, feed_parser=feed_parser, notifier=notifier)
