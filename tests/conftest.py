"""
Pytest configuration and fixtures for blindpod tests.

Environment variables are explicitly set to ensure deterministic test behavior
regardless of external environment configuration. No test touches the network:
feeds are parsed from strings or served by a stub parser.
"""

import os
from typing import Dict, Iterable, Optional

import pytest

from blindpod.db.factory import create_repository
from blindpod.errors import FeedFetchError
from blindpod.podcast.feed_parser import ParsedEpisode, ParsedPodcast

# Keep email sending disabled unless a test configures it
os.environ["RESEND_API_KEY"] = ""
os.environ.pop("WEB_BASE_URL", None)

DAY_MS = 24 * 3600 * 1000
BASE_TIME_MS = 1_700_000_000_000


@pytest.fixture
def repository(tmp_path):
    """
    Create a temporary SQLite-backed repository for tests.

    Yields a repository using a SQLite file under the provided temporary path and
    closes it when the fixture is torn down.
    """
    db_path = tmp_path / "test.db"
    repo = create_repository(f"sqlite:///{db_path}", create_tables=True)
    yield repo
    repo.close()


@pytest.fixture
def user(repository):
    """A user with global notifications enabled."""
    return repository.create_user("listener@example.com", name="Listener", notify_on_new_episodes=True)


def make_episode(guid: str, published_at: Optional[int] = None, **kwargs) -> ParsedEpisode:
    """Build a ParsedEpisode with sensible defaults."""
    return ParsedEpisode(
        guid=guid,
        title=kwargs.pop("title", f"Episode {guid}"),
        audio_url=kwargs.pop("audio_url", f"https://cdn.example.com/{guid}.mp3"),
        published_at=published_at if published_at is not None else BASE_TIME_MS,
        **kwargs,
    )


def make_feed(
    feed_url: str,
    guids: Iterable[str],
    title: str = "Test Podcast",
    **kwargs,
) -> ParsedPodcast:
    """Build a ParsedPodcast whose episodes are published one day apart in guid order."""
    episodes = [
        make_episode(guid, published_at=BASE_TIME_MS + i * DAY_MS)
        for i, guid in enumerate(guids)
    ]
    return ParsedPodcast(feed_url=feed_url, title=title, episodes=episodes, **kwargs)


class StubFeedParser:
    """Feed parser double serving canned feeds by URL.

    URLs listed in `failing` raise FeedFetchError; unknown URLs do as well.
    """

    def __init__(self, feeds: Optional[Dict[str, ParsedPodcast]] = None, failing: Iterable[str] = ()):
        self.feeds = dict(feeds or {})
        self.failing = set(failing)
        self.fetched = []

    def fetch(self, feed_url: str) -> ParsedPodcast:
        self.fetched.append(feed_url)
        if feed_url in self.failing:
            raise FeedFetchError(feed_url, "HTTP 500")
        if feed_url not in self.feeds:
            raise FeedFetchError(feed_url, "HTTP 404")
        return self.feeds[feed_url]


@pytest.fixture
def stub_parser():
    return StubFeedParser()
