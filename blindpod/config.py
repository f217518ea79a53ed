import os

from dotenv import load_dotenv


class Config:
    def __init__(self, env_file=None):
        """
        Initialize configuration by loading environment variables and setting default attributes.

        Loads environment variables from the provided .env file path when `env_file` is given; otherwise loads from the default environment. After loading, sets configuration attributes (database connection parameters, feed fetching options, directory search endpoint, email settings and the web base URL used in notification emails) using environment values with sensible defaults.
        Parameters:
            env_file (str | None): Optional path to a .env file to load environment variables from. If omitted, the default environment or default .env discovery is used.
        """
        if env_file:
            load_dotenv(env_file)
        else:
            load_dotenv()

        # Feed fetching
        self.FEED_USER_AGENT = os.getenv(
            "FEED_USER_AGENT", "Blindpod/1.0 (+https://blindpod.app)"
        )
        self.FEED_FETCH_TIMEOUT = float(os.getenv("FEED_FETCH_TIMEOUT", "20"))

        # Podcast directory search (iTunes Search API)
        self.ITUNES_SEARCH_URL = os.getenv(
            "ITUNES_SEARCH_URL", "https://itunes.apple.com/search"
        )
        self.DIRECTORY_SEARCH_TIMEOUT = float(os.getenv("DIRECTORY_SEARCH_TIMEOUT", "10"))

        # Web app base URL (used for links in notification emails)
        web_base_url = os.getenv("WEB_BASE_URL", "")
        if web_base_url and not web_base_url.lower().startswith(("http://", "https://")):
            raise ValueError(
                f"WEB_BASE_URL must start with http:// or https://, got: {web_base_url}"
            )
        self.WEB_BASE_URL = web_base_url.rstrip("/") if web_base_url else ""

        # Email configuration (Resend)
        self.RESEND_API_KEY = os.getenv("RESEND_API_KEY", "")
        self.RESEND_FROM_EMAIL = os.getenv("RESEND_FROM_EMAIL", "noreply@blindpod.app")
        self.RESEND_FROM_NAME = os.getenv("RESEND_FROM_NAME", "Blindpod")

        # Database configuration
        self.DATABASE_URL = os.getenv(
            "DATABASE_URL", "sqlite:///./blindpod.db"
        )
        self.DB_POOL_SIZE = int(os.getenv("DB_POOL_SIZE", "3"))
        self.DB_MAX_OVERFLOW = int(os.getenv("DB_MAX_OVERFLOW", "2"))
        self.DB_ECHO = os.getenv("DB_ECHO", "false").lower() == "true"

