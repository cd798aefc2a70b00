"""Build the adapter matching a configured account."""

from ..config import Account, AppConfig, BlueskyAccount, TwitterAccount
from .base import Adapter
from .bluesky import BlueskyAdapter
from .twitter import TwitterAdapter


def create_adapter(account: Account, config: AppConfig) -> Adapter:
    if isinstance(account, TwitterAccount):
        return TwitterAdapter(
            account.user_name,
            account.auth_token,
            account.ct0,
            authorization=account.authorization,
            page_size=account.page_size,
            concurrency=account.concurrency,
            path=account.path,
            proxy=config.proxy,
            retry_delay=config.retry_delay,
        )
    if isinstance(account, BlueskyAccount):
        return BlueskyAdapter(
            account.identifier,
            account.password,
            page_size=account.page_size,
            concurrency=account.concurrency,
            path=account.path,
            proxy=config.proxy,
            retry_delay=config.retry_delay,
        )
    raise ValueError(f"Unsupported account type: {type(account).__name__}")
