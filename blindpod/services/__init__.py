"""User-facing services: library operations, notifications and email."""

from .email_service import EmailService
from .library_service import FeedPage, LibraryService
from .notifications import EmailSenderProvider, NewEpisodeNotifier, select_recipients

__all__ = [
    "EmailService",
    "FeedPage",
    "LibraryService",
    "EmailSenderProvider",
    "NewEpisodeNotifier",
    "select_recipients",
]
