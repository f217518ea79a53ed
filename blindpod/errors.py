"""Exception types shared across the feed sync and library services.

Callers decide per operation whether an error aborts the request
(single add, user actions) or is recorded and skipped (refresh, import).
"""

from typing import Optional


class BlindpodError(Exception):
    """Base class for all application errors."""


class FeedFetchError(BlindpodError):
    """A feed could not be retrieved or parsed.

    Attributes:
        feed_url: URL of the feed that failed.
        reason: Human-readable failure description.
    """

    def __init__(self, feed_url: str, reason: str):
        self.feed_url = feed_url
        self.reason = reason
        super().__init__(f"Failed to fetch feed {feed_url}: {reason}")


class ValidationError(BlindpodError):
    """Input was rejected before any fetch or write was attempted."""


class NotAuthenticatedError(BlindpodError):
    """An operation requiring a user identity was called without one."""

    def __init__(self, message: str = "Not authenticated"):
        super().__init__(message)


class NotFoundError(BlindpodError):
    """A referenced record does not exist or is not visible to the user."""


class DeliveryError(BlindpodError):
    """An outbound email could not be delivered."""

    def __init__(self, recipient: str, reason: Optional[str] = None):
        self.recipient = recipient
        self.reason = reason
        super().__init__(reason or "Email delivery failed")


class DirectorySearchError(BlindpodError):
    """The podcast directory search service failed."""


def require_user(user_id: Optional[str]) -> str:
    """Return the user id, raising NotAuthenticatedError if it is missing."""
    if not user_id:
        raise NotAuthenticatedError()
    return user_id
