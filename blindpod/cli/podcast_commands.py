"""CLI commands for podcast management.

Provides commands for:
- Creating users
- Adding podcasts from feed URLs and bulk-importing feed lists
- Refreshing feeds
- Searching the podcast directory
- Viewing the unlistened feed and the archive
- Marking episodes listened
"""

import argparse
import json
import logging
import sys

from ..argparse_shared import add_log_level_argument, configure_logging
from ..config import Config
from ..db.factory import create_repository_from_config
from ..errors import BlindpodError
from ..podcast.directory_search import DirectorySearchClient
from ..podcast.feed_sync import create_feed_sync_service
from ..services.library_service import LibraryService
from ..workflow.config import WorkflowConfig
from ..workflow.import_jobs import ImportFeed, ImportOrchestrator

logger = logging.getLogger(__name__)


def _require_user_id(repository, email: str) -> str:
    user = repository.get_user_by_email(email)
    if not user:
        print(f"Error: no user with email {email} (create one with add-user)")
        sys.exit(1)
    return user.id


def _format_duration(seconds) -> str:
    if not seconds:
        return "--:--"
    hours, rest = divmod(int(seconds), 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def add_user(args, config: Config):
    """Create a user (or show the existing one with the same email)."""
    repository = create_repository_from_config(config, create_tables=args.create_tables)
    try:
        user = repository.create_user(
            email=args.email,
            name=args.name,
            notify_on_new_episodes=args.notify,
        )
        print(f"\nUser: {user.email}")
        print(f"  ID: {user.id}")
        print(f"  Notifications: {'on' if user.notify_on_new_episodes else 'off'}")
    finally:
        repository.close()


def add_podcast(args, config: Config):
    """
    Subscribe a user to the podcast at the given feed URL.

    On failure the error is printed and the process exits with status 1.
    """
    logger.info(f"Adding podcast from: {args.url}")
    repository = create_repository_from_config(config, create_tables=args.create_tables)

    try:
        user_id = _require_user_id(repository, args.user)
        sync_service = create_feed_sync_service(config, repository)

        try:
            result = sync_service.add_podcast_from_url(
                user_id, args.url, mark_all_listened=args.mark_all_listened
            )
        except BlindpodError as e:
            print(f"Error: {e}")
            sys.exit(1)

        print(f"\nAdded podcast: {result['title']}")
        print(f"  ID: {result['podcast_id']}")
        print(f"  New episodes: {result['new_episodes']}")
        if args.mark_all_listened:
            print(f"  Marked listened: {result['marked_listened']}")

    finally:
        repository.close()


def import_feeds(args, config: Config):
    """
    Import a JSON list of `{"url": ..., "title": ...}` objects for a user.

    Runs the import job in the foreground and prints per-feed failures.
    """
    with open(args.file, encoding="utf-8") as f:
        entries = json.load(f)
    if not isinstance(entries, list):
        print("Error: import file must contain a JSON list of {url, title} objects")
        sys.exit(1)
    feeds = [ImportFeed.coerce(entry) for entry in entries]

    print(f"\nFound {len(feeds)} feeds in {args.file}")
    if args.dry_run:
        print("\n[DRY RUN] Would import the following feeds:")
        for feed in feeds:
            print(f"  - {feed.display_title}: {feed.url}")
        return

    repository = create_repository_from_config(config, create_tables=args.create_tables)
    try:
        user_id = _require_user_id(repository, args.user)
        workflow_config = WorkflowConfig.from_env()
        orchestrator = ImportOrchestrator(
            repository=repository,
            feed_sync_service=create_feed_sync_service(config, repository),
            batch_size=args.batch_size or workflow_config.import_batch_size,
        )

        job = repository.create_import_job(user_id, total=len(feeds))
        job = orchestrator.run_import(job.id, user_id, feeds, args.mark_all_listened)

        print("\nImport complete:")
        print(f"  Total: {job.total}")
        print(f"  Succeeded: {job.succeeded}")
        print(f"  Failed: {len(job.failed_titles)}")
        for title in job.failed_titles:
            print(f"    - {title}")

    finally:
        repository.close()


def refresh_feeds(args, config: Config):
    """Refresh podcast feeds to pick up new episodes and archive removed ones."""
    repository = create_repository_from_config(config, create_tables=args.create_tables)

    try:
        sync_service = create_feed_sync_service(config, repository)

        if args.podcast_id:
            logger.info(f"Refreshing podcast: {args.podcast_id}")
            result = sync_service.sync_podcast(args.podcast_id)

            if result["error"]:
                print(f"Error: {result['error']}")
                sys.exit(1)

            print("\nRefresh complete:")
            print(f"  New episodes: {result['new_episodes']}")
            print(f"  Archived: {result['archived']}")
            print(f"  Notifications sent: {result['notified']}")
        else:
            logger.info("Refreshing all podcasts")
            result = sync_service.sync_all_podcasts()

            print("\nRefresh complete:")
            print(f"  Podcasts refreshed: {result['synced']}")
            print(f"  Podcasts failed: {result['failed']}")
            print(f"  New episodes: {result['new_episodes']}")
            print(f"  Archived: {result['archived']}")

    finally:
        repository.close()


def search_directory(args, config: Config):
    """Search the podcast directory and print feed URLs."""
    client = DirectorySearchClient(
        search_url=config.ITUNES_SEARCH_URL,
        timeout=config.DIRECTORY_SEARCH_TIMEOUT,
    )
    try:
        results = client.search(args.query, limit=args.limit)
    except BlindpodError as e:
        print(f"Error: {e}")
        sys.exit(1)

    print(f"\nFound {len(results)} podcasts:")
    for result in results:
        genre = f" [{result.genre}]" if result.genre else ""
        print(f"  - {result.title} by {result.author or 'Unknown'}{genre}")
        print(f"    {result.feed_url}")


def list_subscriptions(args, config: Config):
    """List the podcasts a user is subscribed to."""
    repository = create_repository_from_config(config, create_tables=args.create_tables)
    try:
        user_id = _require_user_id(repository, args.user)
        podcasts = LibraryService(repository).subscribed_podcasts(user_id)

        print(f"\nSubscribed to {len(podcasts)} podcasts:")
        for podcast in podcasts:
            print(f"  - {podcast.title} ({podcast.id})")
            print(f"    {podcast.feed_url}")
    finally:
        repository.close()


def unsubscribe(args, config: Config):
    """Unsubscribe a user from a podcast."""
    repository = create_repository_from_config(config, create_tables=args.create_tables)
    try:
        user_id = _require_user_id(repository, args.user)
        removed = LibraryService(repository).unsubscribe(user_id, args.podcast_id)
        print("Unsubscribed" if removed else "Not subscribed; nothing to do")
    finally:
        repository.close()


def show_feed(args, config: Config):
    """Print the user's unlistened episodes, newest first."""
    repository = create_repository_from_config(config, create_tables=args.create_tables)
    try:
        user_id = _require_user_id(repository, args.user)
        page = LibraryService(repository).unlistened_feed(user_id, limit=args.limit)

        print(f"\nUnlistened episodes ({len(page.episodes)}{'+' if page.has_more else ''}):")
        for episode in page.episodes:
            print(
                f"  - [{_format_duration(episode.duration_seconds)}] "
                f"{episode.podcast.title}: {episode.title} ({episode.id})"
            )
        if page.has_more:
            print("  ... more episodes not shown (use --limit or the archive command)")
    finally:
        repository.close()


def show_archive(args, config: Config):
    """Print every episode of the user's podcasts with its listened state."""
    repository = create_repository_from_config(config, create_tables=args.create_tables)
    try:
        user_id = _require_user_id(repository, args.user)
        page = LibraryService(repository).archive_feed(user_id, limit=args.limit)

        print(f"\nAll episodes ({len(page.episodes)}{'+' if page.has_more else ''}):")
        for episode, listened in page.episodes:
            marker = "x" if listened else " "
            archived = " (archived)" if episode.archived else ""
            print(f"  [{marker}] {episode.podcast.title}: {episode.title}{archived}")
    finally:
        repository.close()


def mark_all(args, config: Config):
    """Mark all unlistened episodes (optionally of one podcast) as listened."""
    repository = create_repository_from_config(config, create_tables=args.create_tables)
    try:
        user_id = _require_user_id(repository, args.user)
        library = LibraryService(repository)

        try:
            if args.podcast_id:
                marked = library.mark_all_for_podcast(user_id, args.podcast_id)
            else:
                marked = library.mark_all_for_feed(user_id)
        except BlindpodError as e:
            print(f"Error: {e}")
            sys.exit(1)

        print(f"\nMarked {marked} episodes as listened")
    finally:
        repository.close()


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        description="Blindpod podcast management CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--env-file",
        help="Path to .env file",
        default=None,
    )
    parser.add_argument(
        "--create-tables",
        action="store_true",
        help="Create missing database tables before running (development only)",
    )
    add_log_level_argument(parser)

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # add-user command
    user_parser = subparsers.add_parser("add-user", help="Create a user")
    user_parser.add_argument("email", help="User email address")
    user_parser.add_argument("--name", help="Display name")
    user_parser.add_argument(
        "--notify",
        action="store_true",
        help="Enable new-episode email notifications",
    )

    # add command
    add_parser = subparsers.add_parser("add", help="Subscribe to a podcast by feed URL")
    add_parser.add_argument("url", help="RSS feed URL")
    add_parser.add_argument("--user", required=True, help="Email of the subscribing user")
    add_parser.add_argument(
        "--mark-all-listened",
        action="store_true",
        help="Treat existing episodes as already listened",
    )

    # import command
    import_parser = subparsers.add_parser(
        "import",
        help="Import feeds from a JSON list of {url, title} objects",
    )
    import_parser.add_argument("file", help="Path to JSON file")
    import_parser.add_argument("--user", required=True, help="Email of the importing user")
    import_parser.add_argument(
        "--mark-all-listened",
        action="store_true",
        help="Treat existing episodes as already listened",
    )
    import_parser.add_argument(
        "--batch-size",
        type=int,
        help="Number of feeds fetched concurrently",
    )
    import_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be imported without making changes",
    )

    # refresh command
    refresh_parser = subparsers.add_parser("refresh", help="Refresh podcast feeds")
    refresh_parser.add_argument("--podcast-id", help="Refresh a specific podcast by ID")

    # search command
    search_parser = subparsers.add_parser("search", help="Search the podcast directory")
    search_parser.add_argument("query", help="Search terms")
    search_parser.add_argument("--limit", type=int, default=20, help="Maximum results (1-50)")

    # list command
    list_parser = subparsers.add_parser("list", help="List a user's subscriptions")
    list_parser.add_argument("--user", required=True, help="User email")

    # unsubscribe command
    unsub_parser = subparsers.add_parser("unsubscribe", help="Unsubscribe from a podcast")
    unsub_parser.add_argument("podcast_id", help="Podcast ID")
    unsub_parser.add_argument("--user", required=True, help="User email")

    # feed command
    feed_parser = subparsers.add_parser("feed", help="Show unlistened episodes")
    feed_parser.add_argument("--user", required=True, help="User email")
    feed_parser.add_argument("--limit", type=int, default=50, help="Maximum episodes to show")

    # archive command
    archive_parser = subparsers.add_parser("archive", help="Show all episodes with listened state")
    archive_parser.add_argument("--user", required=True, help="User email")
    archive_parser.add_argument("--limit", type=int, help="Maximum episodes to show")

    # mark-all command
    mark_parser = subparsers.add_parser("mark-all", help="Mark unlistened episodes as listened")
    mark_parser.add_argument("--user", required=True, help="User email")
    mark_parser.add_argument("--podcast-id", help="Only mark episodes of this podcast")

    return parser


COMMANDS = {
    "add-user": add_user,
    "add": add_podcast,
    "import": import_feeds,
    "refresh": refresh_feeds,
    "search": search_directory,
    "list": list_subscriptions,
    "unsubscribe": unsubscribe,
    "feed": show_feed,
    "archive": show_archive,
    "mark-all": mark_all,
}


def main():
    """Main entry point for the CLI."""
    parser = create_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    configure_logging(args.log_level)

    # Load configuration
    config = Config(env_file=args.env_file)

    COMMANDS[args.command](args, config)


if __name__ == "__main__":
    main()
