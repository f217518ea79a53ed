"""Podcast feed handling.

Provides functionality for:
- RSS feed fetching and parsing
- Feed reconciliation and refresh
- Podcast directory search
"""

from .directory_search import DirectoryResult, DirectorySearchClient
from .feed_parser import FeedParser, ParsedEpisode, ParsedPodcast
from .feed_sync import FeedSyncService, ReconcileResult, create_feed_sync_service

__all__ = [
    "DirectoryResult",
    "DirectorySearchClient",
    "FeedParser",
    "ParsedPodcast",
    "ParsedEpisode",
    "FeedSyncService",
    "ReconcileResult",
    "create_feed_sync_service",
]
