import asyncio
import json

import pytest

from shotcrawler.broadcaster import EventBroadcaster
from shotcrawler.capture import EXTRACT_LINKS_SCRIPT
from shotcrawler.config import Settings


class FakeButton:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.clicks = 0

    async def click(self):
        self.clicks += 1
        if self.fail:
            raise RuntimeError("element is not attached to the DOM")


class FakePage:
    def __init__(self, engine: "FakeEngine"):
        self.engine = engine
        self.url = None
        self.closed = False
        self.evaluated = []

    async def goto(self, url, *, wait_until, timeout):
        self.url = url
        self.engine.log.append(("start", url))
        self.engine.goto_calls.append({"url": url, "wait_until": wait_until, "timeout": timeout})
        for _ in range(self.engine.delays.get(url, 1)):
            await asyncio.sleep(0)
        if url in self.engine.fail_navigation:
            raise TimeoutError(f"page.goto: Timeout {timeout}ms exceeded.")

    async def evaluate(self, expression):
        self.evaluated.append(expression)
        if expression == EXTRACT_LINKS_SCRIPT:
            if self.url in self.engine.fail_links:
                raise RuntimeError("Execution context was destroyed")
            return {
                "base": self.engine.bases.get(self.url, self.url),
                "links": list(self.engine.pages.get(self.url, [])),
            }
        return None

    async def query_selector(self, selector):
        return self.engine.overlays.get(selector)

    async def wait_for_load_state(self, state, *, timeout):
        self.engine.idle_waits.append((state, timeout))
        if self.engine.idle_timeout:
            raise TimeoutError(f"Timeout {timeout}ms exceeded.")

    async def screenshot(self, *, full_page, type, quality):
        await asyncio.sleep(0)
        if self.url in self.engine.fail_capture:
            raise RuntimeError("Cannot take screenshot larger than 32767 pixels")
        return self.engine.image_for(self.url)

    async def close(self):
        self.closed = True
        self.engine.open_pages -= 1
        self.engine.log.append(("end", self.url))


class FakeEngine:
    """Serves a fixed site map: url -> raw hrefs found on that page."""

    def __init__(self, pages=None, *, fail_navigation=(), fail_links=(), fail_capture=(),
                 overlays=None, delays=None, idle_timeout=False, fail_start=False, bases=None):
        self.pages = pages or {}
        # url -> document base reported by the page, when it differs
        self.bases = bases or {}
        self.fail_navigation = set(fail_navigation)
        self.fail_links = set(fail_links)
        self.fail_capture = set(fail_capture)
        self.overlays = overlays or {}
        self.delays = delays or {}
        self.idle_timeout = idle_timeout
        self.fail_start = fail_start
        self.log = []
        self.goto_calls = []
        self.idle_waits = []
        self.created_pages = []
        self.open_pages = 0
        self.max_open_pages = 0
        self.started = False
        self.close_calls = 0

    def image_for(self, url):
        return f"jpeg:{url}".encode()

    async def start(self):
        if self.fail_start:
            raise RuntimeError("Executable doesn't exist")
        self.started = True

    async def new_page(self):
        page = FakePage(self)
        self.created_pages.append(page)
        self.open_pages += 1
        self.max_open_pages = max(self.max_open_pages, self.open_pages)
        return page

    async def close(self):
        self.close_calls += 1

    # Helpers for assertions
    def started_urls(self):
        return [url for kind, url in self.log if kind == "start"]


class RecordingObserver:
    def __init__(self):
        self.messages = []

    def write(self, message):
        self.messages.append(message)

    def events(self, event_type=None):
        decoded = [json.loads(m[len("data: "):].strip()) for m in self.messages]
        if event_type is None:
            return decoded
        return [e["data"] for e in decoded if e["type"] == event_type]


@pytest.fixture
def settings():
    return Settings(_env_file=None)


@pytest.fixture
def broadcaster():
    return EventBroadcaster()


@pytest.fixture
def recorder(broadcaster):
    observer = RecordingObserver()
    broadcaster.subscribe(observer)
    return observer


@pytest.fixture
def make_engine():
    return FakeEngine


@pytest.fixture
def fake_button():
    return FakeButton
