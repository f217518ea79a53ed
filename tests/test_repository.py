"""Tests for the podcast repository."""

import pytest

from blindpod.db.models import JOB_DONE, JOB_PENDING, now_ms
from blindpod.db.repository import SQLAlchemyPodcastRepository


@pytest.fixture
def sample_podcast(repository):
    """Create and persist a sample podcast used by tests."""
    podcast, _ = repository.upsert_podcast(
        feed_url="https://example.com/feed.xml",
        title="Test Podcast",
        description="A test podcast",
        author="Test Author",
    )
    return podcast


def _add_episode(repository, podcast_id, guid, published_at=1000):
    episode, _ = repository.get_or_create_episode(
        podcast_id=podcast_id,
        guid=guid,
        title=f"Episode {guid}",
        audio_url=f"https://cdn.example.com/{guid}.mp3",
        published_at=published_at,
    )
    return episode


class TestUserOperations:
    """Tests for user CRUD operations."""

    def test_create_user(self, repository):
        user = repository.create_user("a@example.com", name="A")

        assert user.id is not None
        assert user.email == "a@example.com"
        assert user.notify_on_new_episodes is False

    def test_create_user_duplicate_email_returns_existing(self, repository):
        first = repository.create_user("a@example.com")
        second = repository.create_user("a@example.com", name="Other")

        assert second.id == first.id

    def test_get_user_by_email(self, repository):
        user = repository.create_user("a@example.com")

        assert repository.get_user_by_email("a@example.com").id == user.id
        assert repository.get_user_by_email("missing@example.com") is None

    def test_update_user(self, repository):
        user = repository.create_user("a@example.com")

        updated = repository.update_user(user.id, notify_on_new_episodes=True)

        assert updated.notify_on_new_episodes is True
        assert repository.update_user("nonexistent", name="x") is None

    def test_delete_user_cascades_and_removes_orphaned_podcasts(self, repository, sample_podcast):
        leaving = repository.create_user("leaving@example.com")
        staying = repository.create_user("staying@example.com")
        shared, _ = repository.upsert_podcast("https://example.com/shared.xml", "Shared")
        episode = _add_episode(repository, sample_podcast.id, "ep-1")

        repository.subscribe_user_to_podcast(leaving.id, sample_podcast.id)
        repository.subscribe_user_to_podcast(leaving.id, shared.id)
        repository.subscribe_user_to_podcast(staying.id, shared.id)
        repository.mark_episode_listened(leaving.id, episode.id)
        repository.create_import_job(leaving.id, total=1)

        assert repository.delete_user(leaving.id) is True

        assert repository.get_user(leaving.id) is None
        # Only the leaving user followed sample_podcast
        assert repository.get_podcast(sample_podcast.id) is None
        assert repository.get_episode(episode.id) is None
        # Shared podcast keeps its other subscriber
        assert repository.get_podcast(shared.id) is not None
        assert repository.is_user_subscribed(staying.id, shared.id)
        assert repository.get_listened_episode_ids(leaving.id) == set()

    def test_delete_nonexistent_user(self, repository):
        assert repository.delete_user("nonexistent") is False


class TestPodcastOperations:
    """Tests for podcast operations."""

    def test_upsert_creates_podcast(self, repository):
        podcast, created = repository.upsert_podcast(
            feed_url="https://example.com/feed.xml",
            title="Test Podcast",
        )

        assert created is True
        assert podcast.id is not None
        assert podcast.last_fetched_at > 0

    def test_upsert_overwrites_metadata(self, repository, sample_podcast):
        podcast, created = repository.upsert_podcast(
            feed_url="https://example.com/feed.xml",
            title="Renamed Podcast",
            description=None,
            image_url="https://example.com/art.jpg",
            author="New Author",
        )

        assert created is False
        assert podcast.id == sample_podcast.id
        assert podcast.title == "Renamed Podcast"
        assert podcast.description is None
        assert podcast.image_url == "https://example.com/art.jpg"
        assert podcast.author == "New Author"
        assert podcast.last_fetched_at >= sample_podcast.last_fetched_at

    def test_get_podcast_by_feed_url(self, repository, sample_podcast):
        retrieved = repository.get_podcast_by_feed_url("https://example.com/feed.xml")

        assert retrieved is not None
        assert retrieved.id == sample_podcast.id

    def test_get_nonexistent_podcast(self, repository):
        assert repository.get_podcast("nonexistent-id") is None

    def test_list_podcasts_ordered_by_title(self, repository):
        repository.upsert_podcast("https://example.com/b.xml", "Bravo")
        repository.upsert_podcast("https://example.com/a.xml", "Alpha")

        titles = [p.title for p in repository.list_podcasts()]

        assert titles == ["Alpha", "Bravo"]

    def test_delete_podcast_if_orphaned(self, repository, sample_podcast):
        user = repository.create_user("a@example.com")
        repository.subscribe_user_to_podcast(user.id, sample_podcast.id)

        assert repository.delete_podcast_if_orphaned(sample_podcast.id) is False

        repository.unsubscribe_user_from_podcast(user.id, sample_podcast.id)

        assert repository.delete_podcast_if_orphaned(sample_podcast.id) is True
        assert repository.get_podcast(sample_podcast.id) is None


class TestEpisodeOperations:
    """Tests for episode operations."""

    def test_get_or_create_episode(self, repository, sample_podcast):
        episode, created = repository.get_or_create_episode(
            podcast_id=sample_podcast.id,
            guid="ep-1",
            title="Episode 1",
            audio_url="https://cdn.example.com/1.mp3",
            published_at=1000,
            duration_seconds=60,
        )

        assert created is True
        assert episode.archived is False
        assert episode.duration_seconds == 60

    def test_get_or_create_episode_keeps_existing_content(self, repository, sample_podcast):
        first = _add_episode(repository, sample_podcast.id, "ep-1")

        again, created = repository.get_or_create_episode(
            podcast_id=sample_podcast.id,
            guid="ep-1",
            title="Corrected title",
            audio_url="https://cdn.example.com/other.mp3",
            published_at=2000,
        )

        assert created is False
        assert again.id == first.id
        assert again.title == "Episode ep-1"

    def test_same_guid_in_different_podcasts(self, repository, sample_podcast):
        other, _ = repository.upsert_podcast("https://example.com/other.xml", "Other")

        a = _add_episode(repository, sample_podcast.id, "shared-guid")
        b = _add_episode(repository, other.id, "shared-guid")

        assert a.id != b.id

    def test_get_episode_loads_podcast(self, repository, sample_podcast):
        episode = _add_episode(repository, sample_podcast.id, "ep-1")

        retrieved = repository.get_episode(episode.id)

        assert retrieved.podcast.title == "Test Podcast"

    def test_list_episodes_newest_first(self, repository, sample_podcast):
        _add_episode(repository, sample_podcast.id, "old", published_at=1000)
        _add_episode(repository, sample_podcast.id, "new", published_at=3000)
        _add_episode(repository, sample_podcast.id, "mid", published_at=2000)

        guids = [e.guid for e in repository.list_episodes(sample_podcast.id)]

        assert guids == ["new", "mid", "old"]

    def test_archive_missing_episodes(self, repository, sample_podcast):
        for guid in ("A", "B", "C"):
            _add_episode(repository, sample_podcast.id, guid)

        archived = repository.archive_missing_episodes(sample_podcast.id, {"A", "C"})

        assert archived == 1
        states = {e.guid: e.archived for e in repository.list_episodes(sample_podcast.id)}
        assert states == {"A": False, "B": True, "C": False}

        # Already archived rows are not counted again
        assert repository.archive_missing_episodes(sample_podcast.id, {"A", "C"}) == 0

    def test_archive_episodes(self, repository, sample_podcast):
        a = _add_episode(repository, sample_podcast.id, "A")
        b = _add_episode(repository, sample_podcast.id, "B")

        assert repository.archive_episodes([a.id, b.id, a.id]) == 2
        assert repository.archive_episodes([a.id]) == 0
        assert repository.archive_episodes([]) == 0


class TestSubscriptionOperations:
    """Tests for subscription operations."""

    def test_subscribe_is_idempotent(self, repository, sample_podcast):
        user = repository.create_user("a@example.com")

        first, created = repository.subscribe_user_to_podcast(user.id, sample_podcast.id)
        second, created_again = repository.subscribe_user_to_podcast(user.id, sample_podcast.id)

        assert created is True
        assert created_again is False
        assert first.id == second.id
        assert first.notifications_enabled is False
        assert repository.count_subscribers(sample_podcast.id) == 1

    def test_unsubscribe(self, repository, sample_podcast):
        user = repository.create_user("a@example.com")
        repository.subscribe_user_to_podcast(user.id, sample_podcast.id)

        assert repository.unsubscribe_user_from_podcast(user.id, sample_podcast.id) is True
        assert repository.unsubscribe_user_from_podcast(user.id, sample_podcast.id) is False
        assert repository.is_user_subscribed(user.id, sample_podcast.id) is False

    def test_get_user_subscriptions(self, repository, sample_podcast):
        user = repository.create_user("a@example.com")
        repository.upsert_podcast("https://example.com/other.xml", "Other")
        repository.subscribe_user_to_podcast(user.id, sample_podcast.id)

        podcasts = repository.get_user_subscriptions(user.id)

        assert [p.id for p in podcasts] == [sample_podcast.id]

    def test_subscribers_for_notification_combine_flags(self, repository, sample_podcast):
        both = repository.create_user("both@example.com", notify_on_new_episodes=True)
        global_only = repository.create_user("global@example.com", notify_on_new_episodes=True)
        sub_only = repository.create_user("sub@example.com", notify_on_new_episodes=False)

        repository.subscribe_user_to_podcast(both.id, sample_podcast.id, notifications_enabled=True)
        repository.subscribe_user_to_podcast(global_only.id, sample_podcast.id)
        repository.subscribe_user_to_podcast(sub_only.id, sample_podcast.id, notifications_enabled=True)

        subscribers = {
            s.email: s for s in repository.get_subscribers_for_notification(sample_podcast.id)
        }

        assert set(subscribers) == {"both@example.com", "global@example.com", "sub@example.com"}
        assert subscribers["both@example.com"].notify_enabled is True
        assert subscribers["global@example.com"].notify_enabled is False
        assert subscribers["sub@example.com"].notify_enabled is False
        assert subscribers["both@example.com"].subscribed_at > 0


class TestListenedState:
    """Tests for listened marks and feed queries."""

    def test_mark_episode_listened_is_idempotent(self, repository, sample_podcast):
        user = repository.create_user("a@example.com")
        episode = _add_episode(repository, sample_podcast.id, "ep-1")

        assert repository.mark_episode_listened(user.id, episode.id) is True
        assert repository.mark_episode_listened(user.id, episode.id) is False
        assert repository.get_listened_episode_ids(user.id) == {episode.id}

    def test_mark_episodes_listened_skips_existing_and_duplicates(self, repository, sample_podcast):
        user = repository.create_user("a@example.com")
        a = _add_episode(repository, sample_podcast.id, "A")
        b = _add_episode(repository, sample_podcast.id, "B")
        repository.mark_episode_listened(user.id, a.id)

        created = repository.mark_episodes_listened(user.id, [a.id, b.id, b.id])

        assert created == 1
        assert repository.get_listened_episode_ids(user.id) == {a.id, b.id}

    def test_mark_episodes_listened_ignores_unknown_ids(self, repository, sample_podcast):
        user = repository.create_user("a@example.com")
        a = _add_episode(repository, sample_podcast.id, "A")

        created = repository.mark_episodes_listened(user.id, ["missing-1", a.id, "missing-2"])

        assert created == 1
        assert repository.get_listened_episode_ids(user.id) == {a.id}

    def test_unmark_episode_listened(self, repository, sample_podcast):
        user = repository.create_user("a@example.com")
        episode = _add_episode(repository, sample_podcast.id, "ep-1")
        repository.mark_episode_listened(user.id, episode.id)

        assert repository.unmark_episode_listened(user.id, episode.id) is True
        assert repository.unmark_episode_listened(user.id, episode.id) is False

    def test_get_unlistened_episodes(self, repository, sample_podcast):
        user = repository.create_user("a@example.com")
        other, _ = repository.upsert_podcast("https://example.com/other.xml", "Not followed")
        repository.subscribe_user_to_podcast(user.id, sample_podcast.id)

        listened = _add_episode(repository, sample_podcast.id, "listened", published_at=1000)
        archived = _add_episode(repository, sample_podcast.id, "archived", published_at=2000)
        _add_episode(repository, sample_podcast.id, "fresh", published_at=3000)
        _add_episode(repository, sample_podcast.id, "older", published_at=500)
        _add_episode(repository, other.id, "elsewhere", published_at=4000)

        repository.mark_episode_listened(user.id, listened.id)
        repository.archive_episodes([archived.id])

        episodes = repository.get_unlistened_episodes(user.id)

        assert [e.guid for e in episodes] == ["fresh", "older"]
        assert episodes[0].podcast.title == "Test Podcast"
        assert [e.guid for e in repository.get_unlistened_episodes(user.id, limit=1)] == ["fresh"]

    def test_get_archive_episodes_includes_archived_with_listened_flag(self, repository, sample_podcast):
        user = repository.create_user("a@example.com")
        other_user = repository.create_user("b@example.com")
        repository.subscribe_user_to_podcast(user.id, sample_podcast.id)

        a = _add_episode(repository, sample_podcast.id, "A", published_at=1000)
        b = _add_episode(repository, sample_podcast.id, "B", published_at=2000)
        repository.archive_episodes([b.id])
        repository.mark_episode_listened(user.id, a.id)
        repository.mark_episode_listened(other_user.id, b.id)

        entries = repository.get_archive_episodes(user.id)

        assert [(e.guid, listened) for e, listened in entries] == [("B", False), ("A", True)]
        assert entries[0][0].archived is True


class TestImportJobs:
    """Tests for import job persistence."""

    def test_create_and_update_import_job(self, repository):
        user = repository.create_user("a@example.com")

        job = repository.create_import_job(user.id, total=3)

        assert job.status == JOB_PENDING
        assert job.succeeded == 0
        assert job.failed_titles == []

        updated = repository.update_import_job(
            job.id, status=JOB_DONE, succeeded=2, failed_titles=["Broken"], completed_at=now_ms()
        )

        assert updated.is_done
        assert repository.get_import_job(job.id).failed_titles == ["Broken"]

    def test_delete_import_jobs_completed_before(self, repository):
        user = repository.create_user("a@example.com")
        old = repository.create_import_job(user.id, total=1)
        recent = repository.create_import_job(user.id, total=1)
        running = repository.create_import_job(user.id, total=1)
        repository.update_import_job(old.id, status=JOB_DONE, completed_at=1000)
        repository.update_import_job(recent.id, status=JOB_DONE, completed_at=now_ms())

        deleted = repository.delete_import_jobs_completed_before(now_ms() - 60_000)

        assert deleted == 1
        assert repository.get_import_job(old.id) is None
        assert repository.get_import_job(recent.id) is not None
        assert repository.get_import_job(running.id) is not None


def test_repository_is_sqlalchemy_implementation(repository):
    assert isinstance(repository, SQLAlchemyPodcastRepository)
