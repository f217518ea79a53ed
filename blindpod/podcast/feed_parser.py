"""RSS/Atom feed parser for podcast metadata and episodes.

Downloads feeds with httpx and uses the feedparser library to handle the
various feed formats, including iTunes namespace extensions.
"""

import calendar
import logging
import re
import time
from dataclasses import dataclass, field
from typing import List, Optional

import feedparser
import httpx

from ..db.models import now_ms
from ..errors import FeedFetchError

logger = logging.getLogger(__name__)

DEFAULT_PODCAST_TITLE = "Unknown Podcast"
DEFAULT_EPISODE_TITLE = "Untitled Episode"


@dataclass
class ParsedEpisode:
    """Parsed episode data from RSS feed."""

    guid: str
    title: str
    audio_url: str
    # Epoch milliseconds
    published_at: int

    description: Optional[str] = None
    duration_seconds: Optional[int] = None


@dataclass
class ParsedPodcast:
    """Parsed podcast data from RSS feed."""

    feed_url: str
    title: str

    description: Optional[str] = None
    image_url: Optional[str] = None
    author: Optional[str] = None

    episodes: List[ParsedEpisode] = field(default_factory=list)


class FeedParser:
    """Fetcher and parser for podcast RSS/Atom feeds.

    Produces a normalized `ParsedPodcast`. Items without an enclosure URL are
    not playable and are dropped. The parser has no side effects beyond the
    HTTP request.

    Example:
        parser = FeedParser()
        podcast = parser.fetch("https://example.com/feed.xml")
        print(f"Podcast: {podcast.title}")
        for episode in podcast.episodes:
            print(f"  - {episode.title}")
    """

    # User agent for feed requests
    USER_AGENT = "Blindpod/1.0 (+https://blindpod.app)"
    TIMEOUT = 20.0

    def __init__(
        self,
        user_agent: Optional[str] = None,
        timeout: Optional[float] = None,
        http_client: Optional[httpx.Client] = None,
    ):
        """Initialize the feed parser.

        Args:
            user_agent: Custom user agent string for requests
            timeout: Request timeout in seconds
            http_client: Client to issue requests with; a short-lived client is
                created per fetch when omitted
        """
        self.user_agent = user_agent or self.USER_AGENT
        self.timeout = timeout or self.TIMEOUT
        self._http_client = http_client

    def fetch(self, feed_url: str) -> ParsedPodcast:
        """Fetch and parse a podcast feed from URL.

        Args:
            feed_url: URL of the RSS/Atom feed

        Returns:
            ParsedPodcast with podcast and episode data

        Raises:
            FeedFetchError: On network errors, HTTP error statuses, or a document
                that is not a feed
        """
        logger.info(f"Fetching feed: {feed_url}")

        try:
            if self._http_client is not None:
                response = self._get(self._http_client, feed_url)
            else:
                with httpx.Client(timeout=self.timeout, follow_redirects=True) as client:
                    response = self._get(client, feed_url)
        except httpx.HTTPStatusError as e:
            raise FeedFetchError(feed_url, f"HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise FeedFetchError(feed_url, str(e) or e.__class__.__name__) from e

        return self.parse_string(response.content, feed_url)

    def _get(self, client: httpx.Client, feed_url: str) -> httpx.Response:
        response = client.get(
            feed_url,
            headers={"User-Agent": self.user_agent},
            follow_redirects=True,
        )
        response.raise_for_status()
        return response

    def parse_string(self, content, feed_url: str = "") -> ParsedPodcast:
        """Parse a podcast feed from already-retrieved content.

        Args:
            content: RSS/Atom feed content (str or bytes)
            feed_url: Original URL of the feed

        Returns:
            ParsedPodcast with podcast and episode data

        Raises:
            FeedFetchError: If the document contains no feed data
        """
        feed = feedparser.parse(content)

        if feed.bozo and feed.get("bozo_exception"):
            logger.warning(f"Feed parsing warning for {feed_url}: {feed.bozo_exception}")

        if not feed.feed and not feed.entries:
            reason = str(feed.get("bozo_exception") or "no feed data found")
            raise FeedFetchError(feed_url, f"unparsable feed: {reason}")

        return self._parse_feed(feed, feed_url)

    def _parse_feed(self, feed: feedparser.FeedParserDict, feed_url: str) -> ParsedPodcast:
        f = feed.feed

        podcast = ParsedPodcast(
            feed_url=feed_url,
            title=f.get("title") or DEFAULT_PODCAST_TITLE,
            description=self._clean_html(f.get("description") or f.get("subtitle")),
            image_url=self._extract_image_url(f),
            author=f.get("itunes_author") or f.get("author"),
        )

        for entry in feed.entries:
            episode = self._parse_episode(entry)
            if episode:
                podcast.episodes.append(episode)

        logger.info(f"Parsed podcast '{podcast.title}' with {len(podcast.episodes)} episodes")
        return podcast

    def _parse_episode(self, entry: feedparser.FeedParserDict) -> Optional[ParsedEpisode]:
        """Parse a feed entry into a ParsedEpisode.

        Returns:
            ParsedEpisode or None if entry has no enclosure URL
        """
        audio_url = self._extract_enclosure_url(entry)
        if not audio_url:
            logger.debug(f"Skipping entry without enclosure: {entry.get('title')}")
            return None

        # Derived guids can collide between items; such items are treated as one episode
        guid = (
            entry.get("id")
            or entry.get("guid")
            or entry.get("link")
            or entry.get("title")
            or str(now_ms())
        )

        return ParsedEpisode(
            guid=guid,
            title=entry.get("title") or DEFAULT_EPISODE_TITLE,
            audio_url=audio_url,
            published_at=self._parse_published(entry),
            description=self._clean_html(
                entry.get("description") or entry.get("summary")
            ),
            duration_seconds=self.parse_duration(
                entry.get("itunes_duration") or entry.get("duration")
            ),
        )

    def _extract_enclosure_url(self, entry: feedparser.FeedParserDict) -> Optional[str]:
        for enclosure in entry.get("enclosures", []):
            url = enclosure.get("href") or enclosure.get("url")
            if url:
                return url

        for link in entry.get("links", []):
            if link.get("rel") == "enclosure" and link.get("href"):
                return link.get("href")

        return None

    def _parse_published(self, entry: feedparser.FeedParserDict) -> int:
        """Publish time in epoch ms; undated items are stamped with the current time."""
        parsed = entry.get("published_parsed") or entry.get("updated_parsed")
        if parsed:
            try:
                # feedparser normalizes dates to UTC struct_time
                return calendar.timegm(parsed) * 1000
            except (TypeError, ValueError, OverflowError):
                pass
        return int(time.time() * 1000)

    def _extract_image_url(self, feed: feedparser.FeedParserDict) -> Optional[str]:
        """Extract podcast image URL from feed.

        Args:
            feed: Feed dict from feedparser

        Returns:
            Image URL or None
        """
        # Try itunes:image
        if feed.get("itunes_image"):
            if isinstance(feed.itunes_image, dict):
                return feed.itunes_image.get("href")
            return feed.itunes_image

        # Try image element
        if feed.get("image"):
            if isinstance(feed.image, dict):
                return feed.image.get("href") or feed.image.get("url")
            return feed.image

        return None

    @staticmethod
    def parse_duration(value) -> Optional[int]:
        """Parse duration string into seconds.

        Handles various formats:
        - Seconds: "3600"
        - MM:SS: "60:00"
        - HH:MM:SS: "1:00:00"

        Args:
            value: Duration string

        Returns:
            Duration in seconds, or None if the value is missing or invalid
        """
        if not value:
            return None

        parts = str(value).strip().split(":")
        try:
            numbers = [int(part) for part in parts]
        except ValueError:
            return None

        if any(n < 0 for n in numbers):
            return None
        if len(numbers) == 3:
            return numbers[0] * 3600 + numbers[1] * 60 + numbers[2]
        if len(numbers) == 2:
            return numbers[0] * 60 + numbers[1]
        if len(numbers) == 1:
            return numbers[0]
        return None

    def _clean_html(self, text: Optional[str]) -> Optional[str]:
        """Remove HTML tags from text.

        Args:
            text: Text that may contain HTML

        Returns:
            Cleaned text or None
        """
        if not text:
            return None

        clean = re.sub(r"<[^>]+>", "", text)
        clean = clean.replace("&amp;", "&")
        clean = clean.replace("&lt;", "<")
        clean = clean.replace("&gt;", ">")
        clean = clean.replace("&quot;", '"')
        clean = clean.replace("&#39;", "'")
        clean = clean.replace("&nbsp;", " ")
        clean = re.sub(r"\s+", " ", clean).strip()

        return clean if clean else None
