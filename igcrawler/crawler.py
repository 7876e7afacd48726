"""
Crawl engine: resolve a profile, then page through its media timeline with a thread pool.

A crawl runs PREPARING -> SEEDING -> DRAINING -> DONE (or FAILED). Workers share four
per-crawl FIFO queues (resources, galleries, videos, pages) and a pending-work counter;
each handler enqueues its follow-up work before it is counted as done, so the pool stops
exactly when the counter drops to zero. The first handler error cancels the crawl.
"""

import hashlib
import json
import logging
import threading
from collections import deque
from concurrent.futures import ThreadPoolExecutor, as_completed
from enum import Enum
from typing import Any, Callable
from urllib.parse import quote_plus

from igcrawler.config import Config
from igcrawler.errors import (
    MissingSignatureSeedError,
    MissingUserIdError,
    PrivateAccountError,
    ProfileImageMissingError,
)
from igcrawler.extractors import extract_query_id, extract_shared_data
from igcrawler.fetcher import Fetcher
from igcrawler.models import (
    MediaEdge,
    MediaType,
    PageItem,
    ProfileView,
    Resource,
    parse_gallery_children,
    parse_profile,
    parse_query_page,
    parse_video_url,
)
from igcrawler.ratelimit import RateGovernor, is_query_request
from igcrawler.store import ResourceStore

logger = logging.getLogger(__name__)

QUERY_PAGE_SIZE = 12
SIGNATURE_HEADER = "x-instagram-gis"


class CrawlState(str, Enum):
    PREPARING = "preparing"
    SEEDING = "seeding"
    DRAINING = "draining"
    DONE = "done"
    FAILED = "failed"


class WorkKind(Enum):
    """Queue kinds, in the order workers look at them."""

    RESOURCE = "resource"
    GALLERY = "gallery"
    VIDEO = "video"
    PAGE = "page"


def sign_params(rhx_gis: str, params: str) -> str:
    """Signature for a query request: md5 of "<rhx_gis>:<params>"."""
    return hashlib.md5(f"{rhx_gis}:{params}".encode("utf-8")).hexdigest()


class Crawler:
    """State for crawling one profile. Not reusable across profiles."""

    def __init__(
        self,
        config: Config,
        *,
        fetcher: Fetcher | None = None,
        governor: RateGovernor | None = None,
        progress_callback: Callable[[Resource], None] | None = None,
    ) -> None:
        self.config = config
        self._owns_fetcher = fetcher is None
        self._fetcher = fetcher or Fetcher(user_agent=config.user_agent, max_retries=config.max_retries)
        self._governor = governor or RateGovernor()
        self._progress = progress_callback
        self.store = ResourceStore()
        self.state = CrawlState.PREPARING

        self.profile: ProfileView | None = None
        self.user_id = ""
        self.query_id = ""
        self.rhx_gis = ""

        self._queues: dict[WorkKind, deque[Any]] = {kind: deque() for kind in WorkKind}
        self._cond = threading.Condition()
        self._pending = 0
        self._error: BaseException | None = None
        self._handlers: dict[WorkKind, Callable[[Any], None]] = {
            WorkKind.RESOURCE: self._handle_resource,
            WorkKind.GALLERY: self._handle_gallery,
            WorkKind.VIDEO: self._handle_video,
            WorkKind.PAGE: self._handle_page,
        }

    @property
    def base_url(self) -> str:
        return self.config.base_url.rstrip("/")

    def close(self) -> None:
        if self._owns_fetcher:
            self._fetcher.close()

    def __enter__(self) -> "Crawler":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def _fetch(self, url: str, headers: dict[str, str] | None = None) -> bytes:
        if is_query_request(url):
            self._governor.throttle()
        return self._fetcher.fetch(url, headers)

    # -- preparing -----------------------------------------------------------

    def prepare(self) -> ProfileView:
        """Fetch the profile page and resolve user id, query id and signature seed."""
        self.state = CrawlState.PREPARING
        try:
            body = self._fetch(self.config.profile_url)
            shared_data = extract_shared_data(body)
            self.query_id = extract_query_id(body, self.base_url, self._fetch)
            profile = parse_profile(shared_data)
            if profile.is_private:
                raise PrivateAccountError(self.config.username)
            if not profile.user_id:
                raise MissingUserIdError()
            if not profile.rhx_gis:
                raise MissingSignatureSeedError()
        except Exception:
            self.state = CrawlState.FAILED
            raise
        self.profile = profile
        self.user_id = profile.user_id
        self.rhx_gis = profile.rhx_gis
        logger.info("prepared %s (user id %s, query id %s)", self.config.username, self.user_id, self.query_id)
        return profile

    # -- queues --------------------------------------------------------------

    def _enqueue(self, kind: WorkKind, item: Any) -> None:
        with self._cond:
            self._queues[kind].append(item)
            self._pending += 1
            self._cond.notify()

    def _next_item(self) -> tuple[WorkKind, Any] | None:
        """Block until there is work; None once the crawl is finished or cancelled."""
        with self._cond:
            while True:
                if self._error is not None:
                    return None
                for kind in WorkKind:
                    queue = self._queues[kind]
                    if queue:
                        return kind, queue.popleft()
                if self._pending == 0:
                    return None
                self._cond.wait()

    def _item_done(self) -> None:
        with self._cond:
            self._pending -= 1
            if self._pending == 0:
                self._cond.notify_all()

    def _fail(self, error: BaseException) -> None:
        with self._cond:
            if self._error is None:
                self._error = error
            self._cond.notify_all()

    @property
    def pending(self) -> int:
        with self._cond:
            return self._pending

    def _worker(self) -> None:
        while True:
            work = self._next_item()
            if work is None:
                return
            kind, item = work
            try:
                self._handlers[kind](item)
            except Exception as e:
                logger.error("%s handler failed on %s: %s", kind.value, item, e)
                self._fail(e)
                return
            finally:
                self._item_done()

    # -- discovery and handlers ------------------------------------------------

    def _post_url(self, shortcode: str) -> str:
        return f"{self.base_url}/p/{shortcode}"

    def discover(self, edge: MediaEdge) -> None:
        """
        Enqueue work for one page of media. A node at or before the cutoff is skipped and
        also stops pagination, whatever the server says about further pages.
        """
        after = self.config.after
        has_next = edge.has_next_page
        for node in edge.nodes:
            if node.timestamp <= after:
                has_next = False
                continue
            if node.is_video:
                self._enqueue(WorkKind.VIDEO, Resource(self._post_url(node.shortcode), node.timestamp, True))
            elif node.typename == MediaType.IMAGE:
                self._enqueue(WorkKind.RESOURCE, Resource(node.display_url, node.timestamp, False))
            elif node.typename == MediaType.SIDECAR:
                self._enqueue(WorkKind.GALLERY, Resource(self._post_url(node.shortcode), node.timestamp, False))
            else:
                logger.debug("skipping media %s of type %r", node.shortcode, node.typename)
        if not has_next:
            return
        if not edge.end_cursor:
            logger.info("feed of %s ends: next page flagged but no cursor", self.config.username)
            return
        self._enqueue(WorkKind.PAGE, PageItem(edge.end_cursor))

    def query_params(self, cursor: str) -> str:
        # id goes in unquoted; the signature is computed over this exact text
        return f'{{"id":{self.user_id},"first":{QUERY_PAGE_SIZE},"after":{json.dumps(cursor)}}}'

    def query_url(self, params: str) -> str:
        return f"{self.base_url}/graphql/query/?query_hash={self.query_id}&variables={quote_plus(params)}"

    def _handle_page(self, page: PageItem) -> None:
        params = self.query_params(page.cursor)
        body = self._fetch(self.query_url(params), {SIGNATURE_HEADER: sign_params(self.rhx_gis, params)})
        self.discover(parse_query_page(body))

    def _handle_gallery(self, post: Resource) -> None:
        if post.timestamp <= self.config.after:
            return
        shared_data = extract_shared_data(self._fetch(post.url))
        for child in parse_gallery_children(shared_data, post.timestamp):
            self._enqueue(WorkKind.RESOURCE, child)

    def _handle_video(self, post: Resource) -> None:
        if post.timestamp <= self.config.after:
            return
        shared_data = extract_shared_data(self._fetch(post.url))
        self._enqueue(WorkKind.RESOURCE, Resource(parse_video_url(shared_data), post.timestamp, True))

    def _handle_resource(self, resource: Resource) -> None:
        self.store.append(resource)
        if self._progress:
            self._progress(resource)

    # -- driving -------------------------------------------------------------

    def seed(self) -> None:
        if self.profile is None:
            raise RuntimeError("prepare() must run before seed()")
        self.state = CrawlState.SEEDING
        self.discover(self.profile.media)

    def drain(self) -> list[Resource]:
        """Run the worker pool until all work is done; raise the first handler error."""
        self.state = CrawlState.DRAINING
        workers = max(1, self.config.concurrency)
        logger.info("crawling %s with %d workers (%d items queued)", self.config.username, workers, self.pending)
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="igcrawler") as executor:
            futs = [executor.submit(self._worker) for _ in range(workers)]
            try:
                for f in as_completed(futs):
                    f.result()
            except BaseException as e:
                # KeyboardInterrupt lands here; stop workers at their next poll so the
                # executor's shutdown does not wait out the rest of the feed
                self._fail(e)
                self.state = CrawlState.FAILED
                raise
        if self._error is not None:
            self.state = CrawlState.FAILED
            raise self._error
        self.state = CrawlState.DONE
        resources = self.store.resources()
        logger.info("crawl of %s done: %d resources", self.config.username, len(resources))
        return resources

    def run(self) -> list[Resource]:
        self.prepare()
        self.seed()
        return self.drain()


def fetch_profile_image(config: Config, *, fetcher: Fetcher | None = None) -> str:
    """HD profile picture URL of config.username."""
    with Crawler(config, fetcher=fetcher) as crawler:
        profile = crawler.prepare()
    if not profile.profile_pic_url:
        raise ProfileImageMissingError()
    return profile.profile_pic_url


def fetch_resources(
    config: Config,
    *,
    fetcher: Fetcher | None = None,
    governor: RateGovernor | None = None,
    progress_callback: Callable[[Resource], None] | None = None,
) -> list[Resource]:
    """
    Every photo/video of config.username newer than config.after.

    Order is whatever order workers recorded them in. Raises the first error hit during
    the crawl; nothing partial is returned.
    """
    with Crawler(config, fetcher=fetcher, governor=governor, progress_callback=progress_callback) as crawler:
        return crawler.run()
