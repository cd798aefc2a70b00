"""Tests for config loading and saving."""

import stat
from pathlib import Path

import pytest

from likes_downloader.config import (
    AppConfig,
    BlueskyAccount,
    TwitterAccount,
    load_config,
    save_config,
)


@pytest.fixture
def config_path(tmp_path):
    return tmp_path / "config.toml"


class TestConfig:
    def test_save_and_reload(self, config_path):
        config = AppConfig(
            accounts=[
                TwitterAccount(
                    user_name="alice",
                    auth_token="tok",
                    ct0="csrf",
                    page_size=20,
                    path=Path("out/alice"),
                ),
                BlueskyAccount(identifier="bob.bsky.social", password="pw"),
            ],
            proxy="http://127.0.0.1:8080",
            retry_delay=2.0,
        )
        save_config(config, config_path)

        loaded = load_config(config_path)

        assert loaded == config
        assert loaded.accounts[0].platform == "twitter"
        assert loaded.accounts[1].name == "bob.bsky.social"

    def test_file_is_private(self, config_path):
        save_config(AppConfig(), config_path)
        assert stat.S_IMODE(config_path.stat().st_mode) == 0o600

    def test_defaults(self, config_path):
        config_path.write_text(
            '[[accounts]]\nplatform = "bluesky"\nidentifier = "me"\npassword = "pw"\n'
        )

        config = load_config(config_path)

        assert config.proxy is None
        assert config.retry_delay == 5.0
        account = config.accounts[0]
        assert account.page_size == 50
        assert account.concurrency == 50
        assert account.path == Path("media/bluesky")

    def test_missing_file(self, config_path):
        with pytest.raises(FileNotFoundError):
            load_config(config_path)

    def test_missing_credentials(self, config_path):
        config_path.write_text('[[accounts]]\nplatform = "twitter"\nuser_name = "me"\n')
        with pytest.raises(ValueError, match="auth_token"):
            load_config(config_path)

    def test_unknown_platform(self, config_path):
        config_path.write_text('[[accounts]]\nplatform = "myspace"\n')
        with pytest.raises(ValueError, match="myspace"):
            load_config(config_path)

    def test_concurrency_must_be_positive(self, config_path):
        config_path.write_text(
            '[[accounts]]\nplatform = "bluesky"\nidentifier = "me"\n'
            'password = "pw"\nconcurrency = 0\n'
        )
        with pytest.raises(ValueError, match="concurrency"):
            load_config(config_path)
