"""New-episode notification decisions and delivery.

The decision of who hears about an episode is a pure function of the new
episodes and the subscriber list. Delivery goes through an email sender that
is built on first use, and each message succeeds or fails on its own.
"""

import logging
import threading
from concurrent.futures import Future
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from ..config import Config
from ..db.repository import PodcastRepositoryInterface, Subscriber
from ..errors import DeliveryError
from .email_service import EmailService, _redact_email

logger = logging.getLogger(__name__)


def select_recipients(
    new_episodes: Sequence, subscribers: Iterable[Subscriber]
) -> List[Tuple[str, object]]:
    """Pair each newly inserted episode with the subscribers who should hear about it.

    A subscriber qualifies for an episode only when notifications are enabled
    and the subscription started strictly before the episode was published,
    so a freshly imported backlog never produces email.

    Args:
        new_episodes: Episodes inserted by a refresh (anything with `published_at`).
        subscribers: Subscribers of the episodes' podcast.

    Returns:
        List of `(email, episode)` pairs, grouped by episode in input order.
    """
    enabled = [s for s in subscribers if s.notify_enabled]
    pairs = []
    for episode in new_episodes:
        for subscriber in enabled:
            if subscriber.subscribed_at < episode.published_at:
                pairs.append((subscriber.email, episode))
    return pairs


class EmailSenderProvider:
    """Builds the email sender on first use and hands out the same instance afterwards.

    Concurrent first callers share one `Future`: exactly one of them runs the
    factory and the others wait on its result. A failed build is not cached,
    so the next caller tries again.
    """

    def __init__(self, factory: Callable[[], EmailService]):
        self._factory = factory
        self._lock = threading.Lock()
        self._future: Optional[Future] = None

    @classmethod
    def from_config(cls, config: Config) -> "EmailSenderProvider":
        return cls(lambda: EmailService(config))

    def get(self) -> EmailService:
        with self._lock:
            builder = self._future is None
            if builder:
                self._future = Future()
            future = self._future

        if builder:
            try:
                future.set_result(self._factory())
            except Exception as e:
                with self._lock:
                    self._future = None
                future.set_exception(e)

        return future.result()


class NewEpisodeNotifier:
    """Emails eligible subscribers about episodes a refresh just inserted."""

    def __init__(
        self,
        repository: PodcastRepositoryInterface,
        sender_provider: EmailSenderProvider,
        config: Optional[Config] = None,
    ):
        self.repository = repository
        self.sender_provider = sender_provider
        self.web_base_url = getattr(config, "WEB_BASE_URL", "") if config else ""
        self.app_name = getattr(config, "RESEND_FROM_NAME", "Blindpod") if config else "Blindpod"

    def notify(self, podcast, new_episodes: Sequence) -> int:
        """
        Send one email per eligible (subscriber, episode) pair.

        Failures are logged per recipient and never raised; they do not stop
        delivery to other recipients.

        Parameters:
            podcast: Podcast the episodes belong to (uses `id` and `title`).
            new_episodes: Episodes inserted by the refresh.

        Returns:
            int: Number of emails handed to the provider successfully.
        """
        if not new_episodes:
            return 0

        subscribers = self.repository.get_subscribers_for_notification(podcast.id)
        pairs = select_recipients(new_episodes, subscribers)
        if not pairs:
            return 0

        try:
            sender = self.sender_provider.get()
        except Exception:
            logger.exception("Email sender unavailable, skipping notifications")
            return 0

        sent = 0
        for email, episode in pairs:
            subject, text = self.build_message(podcast.title, episode.title)
            try:
                sender.send_email(email, subject, text)
                sent += 1
            except DeliveryError as e:
                logger.warning(
                    "Failed to notify %s about '%s': %s",
                    _redact_email(email), episode.title, e,
                )

        logger.info(
            f"Sent {sent}/{len(pairs)} new-episode notifications for '{podcast.title}'"
        )
        return sent

    def build_message(self, podcast_title: str, episode_title: str) -> Tuple[str, str]:
        """Return `(subject, text)` for a new-episode email."""
        subject = f"New episode of {podcast_title}: {episode_title}"

        if self.web_base_url:
            listen_line = f"Listen on {self.app_name}: {self.web_base_url}"
            settings_line = (
                f"To manage notification preferences, visit {self.web_base_url}/settings"
            )
        else:
            listen_line = f"Log in to {self.app_name} to listen."
            settings_line = (
                f"To manage notification preferences, visit your {self.app_name} settings."
            )

        text = "\n".join(
            [
                f'A new episode of "{podcast_title}" is now available:',
                "",
                episode_title,
                "",
                listen_line,
                "",
                "---",
                settings_line,
            ]
        )
        return subject, text
