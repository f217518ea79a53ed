"""Tests for subscription and listened-state operations."""

import pytest

from conftest import make_feed
from blindpod.errors import NotAuthenticatedError, NotFoundError
from blindpod.podcast.feed_sync import FeedSyncService
from blindpod.services.library_service import LibraryService

FEED_URL = "https://example.com/feed.xml"
OTHER_URL = "https://example.com/other.xml"


@pytest.fixture
def library(repository):
    return LibraryService(repository)


@pytest.fixture
def subscribed(repository, stub_parser, user):
    """Subscribe `user` to a three-episode podcast and return its id."""
    stub_parser.feeds[FEED_URL] = make_feed(FEED_URL, ["A", "B", "C"])
    service = FeedSyncService(repository, feed_parser=stub_parser)
    return service.add_podcast_from_url(user.id, FEED_URL)["podcast_id"]


def _episode_id(repository, podcast_id, guid):
    return repository.get_episode_by_guid(podcast_id, guid).id


class TestAuthentication:
    """Every operation requires a user id."""

    @pytest.mark.parametrize(
        "call",
        [
            lambda lib: lib.subscribe("", "p"),
            lambda lib: lib.unsubscribe(None, "p"),
            lambda lib: lib.mark_listened("", "e"),
            lambda lib: lib.mark_many("", ["e"]),
            lambda lib: lib.mark_all_for_feed(""),
            lambda lib: lib.unlistened_feed(""),
            lambda lib: lib.archive_feed(""),
            lambda lib: lib.delete_user(""),
        ],
    )
    def test_missing_user_rejected(self, library, call):
        with pytest.raises(NotAuthenticatedError):
            call(library)


class TestSubscriptions:
    """Tests for subscribing and unsubscribing."""

    def test_subscribe_existing_podcast(self, repository, library, user):
        podcast, _ = repository.upsert_podcast(OTHER_URL, "Other")

        library.subscribe(user.id, podcast.id)
        library.subscribe(user.id, podcast.id)

        assert [p.id for p in library.subscribed_podcasts(user.id)] == [podcast.id]

    def test_subscribe_unknown_podcast(self, library, user):
        with pytest.raises(NotFoundError):
            library.subscribe(user.id, "nonexistent")

    def test_unsubscribe_is_silent_when_not_subscribed(self, library, user):
        assert library.unsubscribe(user.id, "nonexistent") is False

    def test_unsubscribe_removes_orphaned_podcast(self, repository, library, user, subscribed):
        assert library.unsubscribe(user.id, subscribed) is True

        assert repository.get_podcast(subscribed) is None
        assert repository.list_episodes(subscribed) == []

    def test_unsubscribe_keeps_podcast_with_other_subscribers(self, repository, library, user, subscribed):
        other = repository.create_user("other@example.com")
        library.subscribe(other.id, subscribed)

        library.unsubscribe(user.id, subscribed)

        assert repository.get_podcast(subscribed) is not None

    def test_set_notifications(self, repository, library, user, subscribed):
        subscription = library.set_notifications(user.id, subscribed, True)

        assert subscription.notifications_enabled is True
        with pytest.raises(NotFoundError):
            library.set_notifications(user.id, "nonexistent", True)


class TestListenedState:
    """Tests for marking episodes listened."""

    def test_mark_listened_is_idempotent(self, repository, library, user, subscribed):
        episode_id = _episode_id(repository, subscribed, "A")

        assert library.mark_listened(user.id, episode_id) is True
        assert library.mark_listened(user.id, episode_id) is False
        assert repository.get_listened_episode_ids(user.id) == {episode_id}

    def test_mark_listened_unknown_episode(self, library, user):
        with pytest.raises(NotFoundError):
            library.mark_listened(user.id, "nonexistent")

    def test_mark_unlistened(self, repository, library, user, subscribed):
        episode_id = _episode_id(repository, subscribed, "A")
        library.mark_listened(user.id, episode_id)

        assert library.mark_unlistened(user.id, episode_id) is True
        assert library.mark_unlistened(user.id, episode_id) is False

    def test_mark_many_skips_duplicates(self, repository, library, user, subscribed):
        a = _episode_id(repository, subscribed, "A")
        b = _episode_id(repository, subscribed, "B")
        library.mark_listened(user.id, a)

        assert library.mark_many(user.id, [a, b, b]) == 1
        assert library.mark_many(user.id, []) == 0

    def test_mark_many_unknown_episodes(self, repository, library, user):
        assert library.mark_many(user.id, ["no-such-episode-1", "no-such-episode-2"]) == 0
        assert repository.get_listened_episode_ids(user.id) == set()

    def test_mark_all_for_podcast(self, repository, library, user, subscribed):
        library.mark_listened(user.id, _episode_id(repository, subscribed, "A"))

        assert library.mark_all_for_podcast(user.id, subscribed) == 2
        assert library.unlistened_feed(user.id).episodes == []

    def test_mark_all_for_podcast_requires_subscription(self, repository, library, user):
        podcast, _ = repository.upsert_podcast(OTHER_URL, "Other")

        with pytest.raises(NotFoundError):
            library.mark_all_for_podcast(user.id, podcast.id)

    def test_mark_all_for_feed_skips_archived(self, repository, library, user, subscribed):
        archived_id = _episode_id(repository, subscribed, "C")
        repository.archive_episodes([archived_id])

        assert library.mark_all_for_feed(user.id) == 2
        assert archived_id not in repository.get_listened_episode_ids(user.id)


class TestFeedViews:
    """Tests for the unlistened and archive feeds."""

    def test_unlistened_feed_newest_first(self, library, user, subscribed):
        page = library.unlistened_feed(user.id)

        assert [e.guid for e in page.episodes] == ["C", "B", "A"]
        assert page.has_more is False
        assert page.episodes[0].podcast.title == "Test Podcast"

    def test_unlistened_feed_excludes_listened_and_archived(self, repository, library, user, subscribed):
        library.mark_listened(user.id, _episode_id(repository, subscribed, "A"))
        repository.archive_episodes([_episode_id(repository, subscribed, "C")])

        page = library.unlistened_feed(user.id)

        assert [e.guid for e in page.episodes] == ["B"]

    def test_unlistened_feed_has_more(self, library, user, subscribed):
        page = library.unlistened_feed(user.id, limit=2)

        assert [e.guid for e in page.episodes] == ["C", "B"]
        assert page.has_more is True

        exact = library.unlistened_feed(user.id, limit=3)
        assert exact.has_more is False

    def test_archive_feed_lists_everything_with_listened_flag(self, repository, library, user, subscribed):
        a = _episode_id(repository, subscribed, "A")
        c = _episode_id(repository, subscribed, "C")
        library.mark_listened(user.id, a)
        repository.archive_episodes([c])

        page = library.archive_feed(user.id)

        assert [(e.guid, listened) for e, listened in page.episodes] == [
            ("C", False),
            ("B", False),
            ("A", True),
        ]
        assert page.has_more is False

        limited = library.archive_feed(user.id, limit=1)
        assert len(limited.episodes) == 1
        assert limited.has_more is True

    def test_feeds_empty_for_user_without_subscriptions(self, repository, library, subscribed):
        loner = repository.create_user("loner@example.com")

        assert library.unlistened_feed(loner.id).episodes == []
        assert library.archive_feed(loner.id).episodes == []


class TestAccount:
    """Tests for account-level operations."""

    def test_update_notification_preference(self, repository, library, user):
        library.update_notification_preference(user.id, False)

        assert repository.get_user(user.id).notify_on_new_episodes is False

    def test_update_notification_preference_unknown_user(self, library):
        with pytest.raises(NotFoundError):
            library.update_notification_preference("nonexistent", True)

    def test_delete_user(self, repository, library, user, subscribed):
        library.mark_listened(user.id, _episode_id(repository, subscribed, "A"))

        assert library.delete_user(user.id) is True

        assert repository.get_user(user.id) is None
        assert repository.get_podcast(subscribed) is None
        assert library.delete_user(user.id) is False
