"""Tests for environment-based application configuration."""

import os
from unittest.mock import patch

import pytest

from blindpod.config import Config
from blindpod.db.factory import DEFAULT_DATABASE_URL, get_database_url_from_config


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "DATABASE_URL",
        "FEED_USER_AGENT",
        "FEED_FETCH_TIMEOUT",
        "WEB_BASE_URL",
        "DB_ECHO",
        "DB_POOL_SIZE",
    ):
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    config = Config()

    assert config.DATABASE_URL == DEFAULT_DATABASE_URL
    assert config.FEED_USER_AGENT.startswith("Blindpod/")
    assert config.FEED_FETCH_TIMEOUT == 20.0
    assert config.WEB_BASE_URL == ""
    assert config.DB_ECHO is False


def test_env_file(tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text(
        "DATABASE_URL=sqlite:///custom.db\n"
        "FEED_FETCH_TIMEOUT=5\n"
        "DB_POOL_SIZE=7\n"
    )

    # load_dotenv writes into os.environ
    with patch.dict(os.environ):
        config = Config(env_file=str(env_file))

    assert config.DATABASE_URL == "sqlite:///custom.db"
    assert config.FEED_FETCH_TIMEOUT == 5.0
    assert config.DB_POOL_SIZE == 7


def test_web_base_url_trailing_slash_removed(monkeypatch):
    monkeypatch.setenv("WEB_BASE_URL", "https://blindpod.example/")

    assert Config().WEB_BASE_URL == "https://blindpod.example"


def test_web_base_url_requires_scheme(monkeypatch):
    monkeypatch.setenv("WEB_BASE_URL", "blindpod.example")

    with pytest.raises(ValueError, match="WEB_BASE_URL"):
        Config()


def test_database_url_from_config_falls_back_to_env(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "sqlite:///from-env.db")

    class Bare:
        DATABASE_URL = ""

    assert get_database_url_from_config(Bare()) == "sqlite:///from-env.db"
