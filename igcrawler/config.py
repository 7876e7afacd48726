"""Crawl configuration: defaults, merging, and environment overrides."""

import os
from dataclasses import dataclass, field

from igcrawler.useragent import random_user_agent

DEFAULT_BASE_URL = "https://www.instagram.com"
DEFAULT_CONCURRENCY = 2
# With a 30s error delay this gives up after ~10 minutes of a dead endpoint
DEFAULT_MAX_RETRIES = 20

USER_AGENT_ENV = "IGCRAWLER_USER_AGENT"
MAX_RETRIES_ENV = "IGCRAWLER_MAX_RETRIES"

# Tunables merge() copies; username and base_url identify the crawl and are never merged
MERGED_FIELDS = ("user_agent", "concurrency", "after")


@dataclass
class Config:
    """
    Per-crawl settings.

    after is a unix timestamp; media taken at or before it is skipped and stops
    pagination. 0 means no cutoff. max_retries=None retries transient failures forever.
    """

    username: str = ""
    user_agent: str = field(default_factory=random_user_agent)
    concurrency: int = DEFAULT_CONCURRENCY
    after: int = 0
    base_url: str = DEFAULT_BASE_URL
    max_retries: int | None = DEFAULT_MAX_RETRIES

    def merge(self, other: "Config") -> "Config":
        """
        Copy user_agent, concurrency and after from other where they are non-empty and
        non-zero. Returns self. Build other with user_agent="" to keep this user agent.
        """
        for name in MERGED_FIELDS:
            value = getattr(other, name)
            if value:
                setattr(self, name, value)
        return self

    @property
    def profile_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/{self.username}/"

    @classmethod
    def from_env(cls, **overrides) -> "Config":
        """Build a Config from environment variables, then apply keyword overrides."""
        cfg = cls()
        ua = os.environ.get(USER_AGENT_ENV, "").strip()
        if ua:
            cfg.user_agent = ua
        retries = os.environ.get(MAX_RETRIES_ENV, "").strip()
        if retries:
            # Negative means unbounded
            n = int(retries)
            cfg.max_retries = None if n < 0 else n
        for key, value in overrides.items():
            if value is not None:
                setattr(cfg, key, value)
        return cfg
