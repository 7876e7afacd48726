import hashlib
import json
import threading
from typing import Callable

import httpx
import pytest

from igcrawler.config import Config
from igcrawler.fetcher import Fetcher
from igcrawler.ratelimit import RateGovernor

BASE_URL = "https://www.instagram.com"
RHX_GIS = "9f1c0b2d7e3a"
QUERY_ID = "472f257a40c653c64c666ce877d59d2b"
BUNDLE_SRC = "/static/bundles/base/ProfilePageContainer.js/0a1b2c3d.js"
BUNDLE_JS = (
    'e.profilePosts={queryId:"f2405b236d85e8296cf30347c9f08c2a"};'
    'e.taggedPosts={queryId:"ff260833edf142911047af6024eb634a"};'
    f'e.timeline={{queryId:"{QUERY_ID}"}};'
    'e.saved={queryId:"8c86fed24fa03a8a2eea2a70a80c7b6b"};'
)
CDN = "https://cdn.example.com"


def shared_data_html(data: dict, head: str = "") -> str:
    return (
        f"<html><head>{head}</head><body>"
        '<script type="text/javascript">window._sharedData = '
        f"{json.dumps(data)};</script>"
        "</body></html>"
    )


def image(code: str, ts: int) -> dict:
    return {"node": {"__typename": "GraphImage", "is_video": False, "shortcode": code,
                     "taken_at_timestamp": ts, "display_url": f"{CDN}/{code}.jpg"}}


def sidecar(code: str, ts: int) -> dict:
    return {"node": {"__typename": "GraphSidecar", "is_video": False, "shortcode": code,
                     "taken_at_timestamp": ts, "display_url": f"{CDN}/{code}_cover.jpg"}}


def video(code: str, ts: int) -> dict:
    return {"node": {"__typename": "GraphVideo", "is_video": True, "shortcode": code,
                     "taken_at_timestamp": ts, "display_url": f"{CDN}/{code}_thumb.jpg"}}


def edge(nodes: list[dict], cursor: str | None = None, has_next: bool | None = None) -> dict:
    return {
        "count": len(nodes),
        "edges": nodes,
        "page_info": {
            "has_next_page": cursor is not None if has_next is None else has_next,
            "end_cursor": cursor,
        },
    }


class FakeSite:
    """In-memory stand-in for the profile site, served through httpx.MockTransport."""

    def __init__(self) -> None:
        self.profiles: dict[str, str] = {}
        self.rhx_by_user_id: dict[str, str] = {}
        self.pages: dict[tuple[str, str], dict] = {}
        self.posts: dict[str, str] = {}
        self.requests: list[httpx.Request] = []
        # Called with every request before it is answered
        self.on_request: Callable[[httpx.Request], None] | None = None
        self._lock = threading.Lock()

    def add_profile(
        self,
        username: str,
        user_id: str | None,
        media: dict,
        *,
        private: bool = False,
        rhx_gis: str | None = RHX_GIS,
        pic: str = f"{CDN}/profile_hd.jpg",
        bundle: bool = True,
    ) -> None:
        user = {"is_private": private, "profile_pic_url_hd": pic, "edge_owner_to_timeline_media": media}
        if user_id is not None:
            user["id"] = user_id
            self.rhx_by_user_id[user_id] = rhx_gis or ""
        data: dict = {"entry_data": {"ProfilePage": [{"graphql": {"user": user}}]}}
        if rhx_gis is not None:
            data["rhx_gis"] = rhx_gis
        head = f'<script type="text/javascript" src="{BUNDLE_SRC}"></script>' if bundle else ""
        self.profiles[username] = shared_data_html(data, head)

    def add_page(self, user_id: str, cursor: str, media: dict) -> None:
        self.pages[(user_id, cursor)] = media

    def add_gallery(self, code: str, children: list[tuple[str, bool]]) -> None:
        edges = []
        for name, is_video in children:
            node = {"__typename": "GraphVideo" if is_video else "GraphImage", "is_video": is_video,
                    "display_url": f"{CDN}/{name}.jpg"}
            if is_video:
                node["video_url"] = f"{CDN}/{name}.mp4"
            edges.append({"node": node})
        self._add_post(code, {"__typename": "GraphSidecar", "edge_sidecar_to_children": {"edges": edges}})

    def add_video(self, code: str) -> None:
        self._add_post(code, {"__typename": "GraphVideo", "video_url": f"{CDN}/{code}.mp4"})

    def _add_post(self, code: str, media: dict) -> None:
        data = {"entry_data": {"PostPage": [{"graphql": {"shortcode_media": media}}]}}
        self.posts[code] = shared_data_html(data)

    def paths(self) -> list[str]:
        with self._lock:
            return [r.url.path for r in self.requests]

    def query_requests(self) -> list[httpx.Request]:
        with self._lock:
            return [r for r in self.requests if r.url.path == "/graphql/query/"]

    def handler(self, request: httpx.Request) -> httpx.Response:
        with self._lock:
            self.requests.append(request)
        if self.on_request is not None:
            self.on_request(request)
        path = request.url.path
        if path.startswith("/static/bundles/base/ProfilePageContainer.js"):
            return httpx.Response(200, text=BUNDLE_JS)
        if path == "/graphql/query/":
            return self._query(request)
        if path.startswith("/p/"):
            code = path[len("/p/"):].strip("/")
            if code in self.posts:
                return httpx.Response(200, text=self.posts[code])
            return httpx.Response(404, text="not found")
        username = path.strip("/")
        if username in self.profiles:
            return httpx.Response(200, text=self.profiles[username])
        return httpx.Response(404, text="not found")

    def _query(self, request: httpx.Request) -> httpx.Response:
        if request.url.params.get("query_hash") != QUERY_ID:
            return httpx.Response(400, json={"status": "fail"})
        raw = request.url.params["variables"]
        variables = json.loads(raw)
        user_id = str(variables["id"])
        expected = hashlib.md5(f"{self.rhx_by_user_id.get(user_id, '')}:{raw}".encode()).hexdigest()
        if request.headers.get("x-instagram-gis") != expected:
            return httpx.Response(403, text="forbidden")
        media = self.pages.get((user_id, variables["after"]))
        if media is None:
            return httpx.Response(404, text="not found")
        return httpx.Response(200, json={"data": {"user": {"edge_owner_to_timeline_media": media}}})


def build_feed(site: FakeSite, username: str = "feeduser", user_id: str = "123456") -> None:
    """
    Three-page feed, 18 resources in total (newest first):

    seed: image 1000, gallery 990 (2 images + 1 video), video 980, image 970
    c1:   six images 960..910, gallery 900 (2 images)
    c2:   video 890, three images 880..860
    """
    p = username
    site.add_profile(username, user_id, edge(
        [image(f"{p}_i1", 1000), sidecar(f"{p}_g1", 990), video(f"{p}_v1", 980), image(f"{p}_i2", 970)],
        cursor="c1",
    ))
    site.add_gallery(f"{p}_g1", [(f"{p}_g1a", False), (f"{p}_g1b", False), (f"{p}_g1c", True)])
    site.add_video(f"{p}_v1")
    site.add_page(user_id, "c1", edge(
        [image(f"{p}_i{n}", ts) for n, ts in zip(range(3, 9), range(960, 905, -10))]
        + [sidecar(f"{p}_g2", 900)],
        cursor="c2",
    ))
    site.add_gallery(f"{p}_g2", [(f"{p}_g2a", False), (f"{p}_g2b", False)])
    site.add_page(user_id, "c2", edge(
        [video(f"{p}_v2", 890), image(f"{p}_i9", 880), image(f"{p}_i10", 870), image(f"{p}_i11", 860)],
    ))
    site.add_video(f"{p}_v2")


class FakeClock:
    """Monotonic clock that only moves when sleep() is called."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []
        self._lock = threading.Lock()

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        with self._lock:
            self.sleeps.append(seconds)
            self.now += seconds


@pytest.fixture
def site() -> FakeSite:
    return FakeSite()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_fetcher(site, clock):
    fetchers = []

    def _make(**kwargs) -> Fetcher:
        kwargs.setdefault("user_agent", "test-agent/1.0")
        kwargs.setdefault("sleep", clock.sleep)
        kwargs.setdefault("transport", httpx.MockTransport(site.handler))
        f = Fetcher(**kwargs)
        fetchers.append(f)
        return f

    yield _make
    for f in fetchers:
        f.close()


@pytest.fixture
def governor(clock) -> RateGovernor:
    return RateGovernor(sleep=clock.sleep, clock=clock)


@pytest.fixture
def make_config():
    def _make(username: str = "feeduser", **kwargs) -> Config:
        kwargs.setdefault("user_agent", "test-agent/1.0")
        return Config(username=username, base_url=BASE_URL, **kwargs)

    return _make
