import json

import pytest

from capsulizer.config import load_settings
from capsulizer.exceptions import RenderError
from capsulizer.harvest import Harvester
from capsulizer.render import RenderedPage
from capsulizer.store import SqliteCapsuleStore
from capsulizer.throttle import HostThrottle

CAPTURED_AT = "2024-05-01T12:00:00.000Z"


def page_html(jsonld=None, title="", body="", head=""):
    scripts = ""
    for block in ([] if jsonld is None else jsonld if isinstance(jsonld, list) else [jsonld]):
        raw = block if isinstance(block, str) else json.dumps(block)
        scripts += f'<script type="application/ld+json">{raw}</script>'
    return f"<html><head><title>{title}</title>{head}{scripts}</head><body>{body}</body></html>"


class FakeClock:
    """Monotonic clock whose sleep advances time and records the request."""

    def __init__(self, start=100.0):
        self.now = start
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds

    def advance(self, seconds):
        self.now += seconds


class FakeRenderer:
    """url -> html | (html, text) | Exception; unknown urls fail navigation.

    ``redirects`` maps a requested url to the url the page ends up on; the
    content is then looked up under the final url.
    """

    def __init__(self, pages, redirects=None):
        self.pages = pages
        self.redirects = redirects or {}
        self.rendered = []
        self.entered = False
        self.closed = False

    def __enter__(self):
        self.entered = True
        return self

    def __exit__(self, exc_type, exc, tb):
        self.closed = True
        return False

    def render(self, url, timeout_ms):
        self.rendered.append(url)
        final_url = self.redirects.get(url, url)
        page = self.pages.get(final_url)
        if page is None:
            raise RenderError(url, RenderError.NAVIGATION, "404")
        if isinstance(page, Exception):
            raise page
        html, text = page if isinstance(page, tuple) else (page, "")
        return RenderedPage(url=url, html=html, visible_text=text, final_url=final_url)


@pytest.fixture
def make_settings(tmp_path):
    def factory(**overrides):
        base = dict(
            RUNS_DIR=str(tmp_path / "runs"),
            CRAWL_LOG_PATH=str(tmp_path / "crawler.log"),
            DB_PATH=str(tmp_path / "db" / "capsules.sqlite"),
            SNAPSHOTS_DIR=str(tmp_path / "snapshots"),
            PER_HOST_DELAY_MS=0,
        )
        base.update(overrides)
        return load_settings(environ={}, **base)
    return factory


@pytest.fixture
def settings(make_settings):
    return make_settings()


@pytest.fixture
def store(tmp_path):
    with SqliteCapsuleStore(str(tmp_path / "capsules.sqlite")) as s:
        yield s


@pytest.fixture
def make_harvester(store, make_settings):
    def factory(pages, augmenter=None, redirects=None, **overrides):
        renderer = FakeRenderer(pages, redirects)
        harvester = Harvester(
            store, lambda: renderer, make_settings(**overrides),
            throttle=HostThrottle(0), augmenter=augmenter, clock=lambda: CAPTURED_AT,
        )
        return harvester, renderer
    return factory
