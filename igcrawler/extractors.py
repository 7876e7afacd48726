"""Extract the embedded state blob and the pagination query id from profile/post HTML."""

import re
from typing import Callable
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from igcrawler.errors import CrawlerError, MissingPayloadError, MissingQueryIdError

SHARED_DATA_PREFIX = "window._sharedData"
# Script bundle that carries the profile-page queries
QUERY_BUNDLE_PATH = "/static/bundles/base/ProfilePageContainer.js"
_QUERY_ID_RE = re.compile(r'queryId:"([^"]+)"')
# The media-timeline query is the third queryId literal emitted in the bundle. This
# depends on the bundle's internal layout and breaks when the site reorders it.
QUERY_ID_INDEX = 2


def _soup(html: str | bytes) -> BeautifulSoup:
    return BeautifulSoup(html, "lxml")


def extract_shared_data(html: str | bytes) -> str:
    """Return the JSON text assigned to window._sharedData in a <script> tag."""
    for script in _soup(html).find_all("script"):
        text = script.get_text()
        if not text.startswith(SHARED_DATA_PREFIX):
            continue
        _, _, expr = text.partition("=")
        expr = expr.strip()
        if expr.endswith(";"):
            expr = expr[:-1]
        if expr:
            return expr
    raise MissingPayloadError()


def find_query_bundle_url(html: str | bytes, base_url: str) -> str | None:
    """Absolute URL of the ProfilePageContainer bundle referenced by the page, if any."""
    for script in _soup(html).find_all("script", src=True):
        src = script["src"]
        if QUERY_BUNDLE_PATH in src:
            return urljoin(base_url, src)
    return None


def find_query_ids(script_source: str) -> list[str]:
    """All queryId:"..." literals in emission order."""
    return _QUERY_ID_RE.findall(script_source)


def extract_query_id(
    html: str | bytes,
    base_url: str,
    fetch_script: Callable[[str], bytes],
) -> str:
    """
    Find the bundle script referenced by html, fetch it with fetch_script, and pick the
    media-timeline query id out of it.
    """
    bundle_url = find_query_bundle_url(html, base_url)
    if bundle_url is None:
        raise MissingQueryIdError("no query bundle script on page")
    try:
        raw = fetch_script(bundle_url)
    except CrawlerError as e:
        raise MissingQueryIdError(str(e)) from e
    ids = find_query_ids(raw.decode("utf-8", errors="replace"))
    if len(ids) <= QUERY_ID_INDEX:
        raise MissingQueryIdError(f"expected at least {QUERY_ID_INDEX + 1} queryIds, found {len(ids)}")
    return ids[QUERY_ID_INDEX]
