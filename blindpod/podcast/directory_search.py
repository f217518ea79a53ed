"""Podcast directory search via the iTunes Search API.

Only used to help users find a feed URL; results are not stored.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

import httpx

from ..errors import DirectorySearchError, ValidationError

logger = logging.getLogger(__name__)

ITUNES_SEARCH_URL = "https://itunes.apple.com/search"


@dataclass
class DirectoryResult:
    """A podcast found in the directory."""

    title: str
    author: str
    feed_url: str
    image_url: Optional[str] = None
    genre: Optional[str] = None
    episode_count: Optional[int] = None


class DirectorySearchClient:
    """Client for free-text podcast search.

    Example:
        client = DirectorySearchClient()
        for result in client.search("history", limit=5):
            print(result.title, result.feed_url)
    """

    def __init__(
        self,
        search_url: str = ITUNES_SEARCH_URL,
        timeout: float = 10.0,
        http_client: Optional[httpx.Client] = None,
    ):
        self.search_url = search_url
        self.timeout = timeout
        self._http_client = http_client

    def search(self, query: str, limit: int = 20) -> List[DirectoryResult]:
        """
        Search the directory for podcasts.

        Parameters:
            query (str): Search terms.
            limit (int): Maximum number of results, clamped to 1..50.

        Returns:
            List[DirectoryResult]: Matches that have a feed URL, in directory order.

        Raises:
            ValidationError: If the query is empty.
            DirectorySearchError: If the directory cannot be reached or errors.
        """
        if not query or not query.strip():
            raise ValidationError("Search query cannot be empty")

        params = {
            "term": query.strip(),
            "media": "podcast",
            "entity": "podcast",
            "limit": max(1, min(50, limit)),
        }

        try:
            if self._http_client is not None:
                data = self._get(self._http_client, params)
            else:
                with httpx.Client(timeout=self.timeout) as client:
                    data = self._get(client, params)
        except httpx.TimeoutException as e:
            raise DirectorySearchError("Directory search timed out. Please try again.") from e
        except httpx.HTTPStatusError as e:
            logger.error(f"iTunes API error: {e.response.status_code}")
            raise DirectorySearchError("Directory search service temporarily unavailable") from e
        except (httpx.HTTPError, ValueError) as e:
            logger.exception("Error searching podcasts")
            raise DirectorySearchError("Failed to search podcasts") from e

        results = []
        for item in data.get("results", []):
            # Skip items without a feed URL
            feed_url = item.get("feedUrl")
            if not feed_url:
                continue

            results.append(
                DirectoryResult(
                    title=item.get("collectionName", item.get("trackName", "Unknown")),
                    author=item.get("artistName", ""),
                    feed_url=feed_url,
                    image_url=item.get("artworkUrl600") or item.get("artworkUrl100"),
                    genre=item.get("primaryGenreName"),
                    episode_count=item.get("trackCount"),
                )
            )

        logger.info(f"Directory search for '{params['term']}' returned {len(results)} results")
        return results

    def _get(self, client: httpx.Client, params: dict) -> dict:
        response = client.get(self.search_url, params=params)
        response.raise_for_status()
        return response.json()
