"""HTTP fetching with retries on connection issues and 429, and curl-style request logging."""

import logging
import shlex
import threading
import time
from pathlib import Path
from typing import Callable

import httpx

from igcrawler.config import DEFAULT_MAX_RETRIES
from igcrawler.errors import CrawlerError, NotFoundError, RetryLimitExceeded, UnreadableBodyError
from igcrawler.useragent import random_user_agent

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 30.0
# Wait before re-issuing a request after a connection issue or 429
ERROR_DELAY = 30.0

DEFAULT_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}


def curl_command(request: httpx.Request) -> str:
    """Render a request as an equivalent curl invocation (for copy-paste diagnostics)."""
    parts = ["curl", "-X", request.method]
    for key, value in request.headers.items():
        # httpx adds these itself; curl does too
        if key.lower() in ("host", "accept-encoding", "connection", "content-length"):
            continue
        parts += ["-H", f"{key}: {value}"]
    parts.append(str(request.url))
    return " ".join(shlex.quote(p) for p in parts) + " --compressed"


class Fetcher:
    """HTTP fetcher with connection pooling. Reuse for multiple requests; safe across threads."""

    def __init__(
        self,
        *,
        user_agent: str | None = None,
        timeout: float = REQUEST_TIMEOUT,
        error_delay: float = ERROR_DELAY,
        max_retries: int | None = DEFAULT_MAX_RETRIES,
        sleep: Callable[[float], None] = time.sleep,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._user_agent = user_agent or random_user_agent()
        self._timeout = timeout
        self._error_delay = error_delay
        self._max_retries = max_retries
        self._sleep = sleep
        self._transport = transport
        self._client: httpx.Client | None = None
        self._client_lock = threading.Lock()

    @property
    def user_agent(self) -> str:
        return self._user_agent

    def _get_client(self) -> httpx.Client:
        with self._client_lock:
            if self._client is None or self._client.is_closed:
                self._client = httpx.Client(
                    follow_redirects=True,
                    timeout=self._timeout,
                    headers={**DEFAULT_HEADERS, "User-Agent": self._user_agent},
                    transport=self._transport,
                )
            return self._client

    def close(self) -> None:
        if self._client and not self._client.is_closed:
            self._client.close()

    def __enter__(self) -> "Fetcher":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def _retry_or_give_up(self, url: str, attempt: int, cause: BaseException | None) -> None:
        """Sleep before the next attempt, or raise when the retry budget is spent."""
        if self._max_retries is not None and attempt >= self._max_retries:
            raise RetryLimitExceeded(url, attempt + 1) from cause
        self._sleep(self._error_delay)

    def fetch(self, url: str, headers: dict[str, str] | None = None) -> bytes:
        """
        GET url and return the body.

        Connection issues, timeouts and 429 are retried with the same request after
        error_delay seconds. 404 raises NotFoundError at once. Any other status returns
        the body as is.
        """
        client = self._get_client()
        request = client.build_request("GET", url, headers=headers)
        attempt = 0
        while True:
            logger.info(curl_command(request))
            try:
                resp = client.send(request, stream=True)
            except httpx.TransportError as e:
                logger.warning("connection issue: %s", e)
                self._retry_or_give_up(url, attempt, e)
                attempt += 1
                continue
            try:
                if resp.status_code == 429:
                    logger.warning('throttling "%s"', url)
                    self._retry_or_give_up(url, attempt, None)
                    attempt += 1
                    continue
                if resp.status_code == 404:
                    logger.info('not found "%s"', url)
                    raise NotFoundError(url)
                try:
                    return resp.read()
                except httpx.HTTPError as e:
                    raise UnreadableBodyError(url) from e
            finally:
                resp.close()

    def fetch_binary(self, url: str, dest_path: Path) -> Path:
        """Stream url to dest_path. Same retry rules as fetch; returns dest_path."""
        client = self._get_client()
        attempt = 0
        while True:
            logger.info(curl_command(client.build_request("GET", url)))
            try:
                with client.stream("GET", url) as resp:
                    if resp.status_code == 429:
                        logger.warning('throttling "%s"', url)
                        self._retry_or_give_up(url, attempt, None)
                        attempt += 1
                        continue
                    if resp.status_code == 404:
                        raise NotFoundError(url)
                    if resp.is_error:
                        raise CrawlerError(f'HTTP {resp.status_code} for "{url}"')
                    dest_path.parent.mkdir(parents=True, exist_ok=True)
                    with open(dest_path, "wb") as f:
                        for chunk in resp.iter_bytes(chunk_size=65536):
                            f.write(chunk)
                return dest_path
            except httpx.TransportError as e:
                logger.warning("connection issue: %s", e)
                self._retry_or_give_up(url, attempt, e)
                attempt += 1
