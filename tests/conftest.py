"""
Shared test fixtures.

The application is always built with in-memory collaborators: a dict-backed
key-value store, an in-process edge cache and an httpx MockTransport standing
in for the origin server. Nothing touches the network or the filesystem
unless a test asks for it (see tests/test_store.py).
"""

import httpx
import pytest
from fastapi.testclient import TestClient

from edgelink.core.rate_limit import FixedWindowRateLimiter
from edgelink.core.setting import Settings
from edgelink.db.store import MemoryKeyValueStore
from edgelink.main import create_app
from edgelink.services.edge_cache import MemoryResponseCache
from edgelink.services.shortcode import ShortCodeGenerator

APP_ORIGIN = "https://pt-onia.app"
ADMIN_TOKEN = "s3cret-admin-token-0123"
APP_MARKUP = "<!doctype html><html><head><title>Planner</title></head><body></body></html>"

SAME_ORIGIN = {"Origin": APP_ORIGIN}
CROSS_ORIGIN = {"Origin": "https://evil.example"}
BROWSER = {"Accept": "text/html,application/xhtml+xml"}


class ScriptedRandom:
    """Stands in for SystemRandom: hands out words in a fixed order."""

    def __init__(self, words):
        self.words = list(words)
        self.position = 0

    def choice(self, sequence):
        word = self.words[self.position % len(self.words)]
        self.position += 1
        return word


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def origin_handler(request: httpx.Request) -> httpx.Response:
    """Fake origin server: serves the app shell at / and echoes other paths."""
    if request.url.path == "/":
        return httpx.Response(200, text=APP_MARKUP, headers={"Content-Type": "text/html; charset=utf-8"})
    return httpx.Response(
        200,
        json={"path": request.url.path, "query": request.url.query.decode(), "method": request.method},
        headers={"X-Origin": "yes"},
    )


def make_settings(**overrides) -> Settings:
    values = {
        "APP_ORIGIN": APP_ORIGIN,
        "DATABASE_URL": "memory://",
        "ADMIN_TOKEN": ADMIN_TOKEN,
        "STORE_RETRY_DELAY": 0,
        "EDGE_CACHE_URL": None,
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def link_store():
    return MemoryKeyValueStore()


@pytest.fixture
def telemetry_store():
    return MemoryKeyValueStore()


@pytest.fixture
def edge_cache():
    return MemoryResponseCache()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def generator():
    return ShortCodeGenerator(rng=ScriptedRandom(["amber", "coral", "nova"]))


@pytest.fixture
def client(settings, link_store, telemetry_store, edge_cache, clock, generator):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(origin_handler))
    app = create_app(
        settings,
        link_store=link_store,
        telemetry_store=telemetry_store,
        edge_cache=edge_cache,
        rate_limiter=FixedWindowRateLimiter(settings.RATE_LIMITS, clock=clock),
        code_generator=generator,
        http_client=http_client,
    )
    with TestClient(app, follow_redirects=False) as test_client:
        yield test_client
