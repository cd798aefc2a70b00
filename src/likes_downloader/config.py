"""Configuration loading and saving.

Config file location: ~/.config/likes-downloader/config.toml

Schema:
    [network]
    proxy = "http://127.0.0.1:8080"  # optional HTTP CONNECT proxy
    retry_delay = 5.0                # seconds to wait after a 429

    [[accounts]]
    platform = "twitter"
    user_name = "..."
    auth_token = "..."
    ct0 = "..."
    authorization = "Bearer ..."     # optional, defaults to the web client's
    page_size = 100
    concurrency = 50
    path = "media/twitter"

    [[accounts]]
    platform = "bluesky"
    identifier = "someone.bsky.social"
    password = "..."                 # an app password
    page_size = 50
"""

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import ClassVar

import tomli_w

CONFIG_DIR = Path.home() / ".config" / "likes-downloader"
CONFIG_FILE = CONFIG_DIR / "config.toml"

DEFAULT_CONCURRENCY = 50
DEFAULT_RETRY_DELAY = 5.0


@dataclass
class TwitterAccount:
    platform: ClassVar[str] = "twitter"

    user_name: str
    auth_token: str
    ct0: str
    authorization: str | None = None
    page_size: int = 100
    concurrency: int = DEFAULT_CONCURRENCY
    path: Path = Path("media/twitter")

    @property
    def name(self) -> str:
        return self.user_name


@dataclass
class BlueskyAccount:
    platform: ClassVar[str] = "bluesky"

    identifier: str
    password: str
    page_size: int = 50
    concurrency: int = DEFAULT_CONCURRENCY
    path: Path = Path("media/bluesky")

    @property
    def name(self) -> str:
        return self.identifier


Account = TwitterAccount | BlueskyAccount


@dataclass
class AppConfig:
    accounts: list[Account] = field(default_factory=list)
    proxy: str | None = None
    retry_delay: float = DEFAULT_RETRY_DELAY


def _required(data: dict, key: str, position: int) -> str:
    value = data.get(key, "")
    if not value:
        raise ValueError(f"Config accounts[{position}] missing required {key}")
    return str(value)


def _positive_int(data: dict, key: str, default: int, position: int) -> int:
    value = int(data.get(key, default))
    if value < 1:
        raise ValueError(f"Config accounts[{position}].{key} must be at least 1")
    return value


def _parse_account(data: dict, position: int) -> Account:
    platform = data.get("platform", "")
    if platform == "twitter":
        return TwitterAccount(
            user_name=_required(data, "user_name", position),
            auth_token=_required(data, "auth_token", position),
            ct0=_required(data, "ct0", position),
            authorization=data.get("authorization") or None,
            page_size=_positive_int(data, "page_size", 100, position),
            concurrency=_positive_int(
                data, "concurrency", DEFAULT_CONCURRENCY, position
            ),
            path=Path(data.get("path", "media/twitter")),
        )
    if platform == "bluesky":
        return BlueskyAccount(
            identifier=_required(data, "identifier", position),
            password=_required(data, "password", position),
            page_size=_positive_int(data, "page_size", 50, position),
            concurrency=_positive_int(
                data, "concurrency", DEFAULT_CONCURRENCY, position
            ),
            path=Path(data.get("path", "media/bluesky")),
        )
    raise ValueError(f"Config accounts[{position}] has unknown platform {platform!r}")


def load_config(config_path: Path = CONFIG_FILE) -> AppConfig:
    """Load and validate config from TOML file."""
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, "rb") as f:
        data = tomllib.load(f)

    network = data.get("network", {})
    accounts = [
        _parse_account(account, position)
        for position, account in enumerate(data.get("accounts", []))
    ]

    return AppConfig(
        accounts=accounts,
        proxy=network.get("proxy") or None,
        retry_delay=float(network.get("retry_delay", DEFAULT_RETRY_DELAY)),
    )


def _dump_account(account: Account) -> dict:
    if isinstance(account, TwitterAccount):
        data = {
            "platform": account.platform,
            "user_name": account.user_name,
            "auth_token": account.auth_token,
            "ct0": account.ct0,
        }
        if account.authorization:
            data["authorization"] = account.authorization
    else:
        data = {
            "platform": account.platform,
            "identifier": account.identifier,
            "password": account.password,
        }
    data["page_size"] = account.page_size
    data["concurrency"] = account.concurrency
    data["path"] = str(account.path)
    return data


def save_config(config: AppConfig, config_path: Path = CONFIG_FILE) -> None:
    """Write config to TOML file with restricted permissions."""
    config_path.parent.mkdir(parents=True, exist_ok=True)

    network: dict = {"retry_delay": config.retry_delay}
    if config.proxy:
        network["proxy"] = config.proxy

    data = {
        "network": network,
        "accounts": [_dump_account(account) for account in config.accounts],
    }

    with open(config_path, "wb") as f:
        tomli_w.dump(data, f)

    # Restrict permissions, the file contains credentials
    os.chmod(config_path, 0o600)


def config_exists(config_path: Path = CONFIG_FILE) -> bool:
    """Check if config file exists."""
    return config_path.exists()
