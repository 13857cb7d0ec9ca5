"""
Tests for short link visits, the edge cache and the origin client.
"""

import httpx
import pytest
from starlette.requests import Request
from starlette.responses import RedirectResponse

from conftest import APP_MARKUP, APP_ORIGIN, make_settings, origin_handler
from edgelink.db.store import MemoryKeyValueStore
from edgelink.services.background_tasks import drain_background_tasks, spawn_background
from edgelink.services.edge_cache import CachedResponse, MemoryResponseCache
from edgelink.services.link_service import LinkService
from edgelink.services.origin_proxy import OriginProxy, embed_link_target
from edgelink.services.redirect_service import RedirectService

URL_A = f"{APP_ORIGIN}/#a"
CACHE_KEY = f"{APP_ORIGIN}/s/amber-coral-nova"


def make_request(accept: str = "*/*") -> Request:
    return Request({
        "type": "http",
        "method": "GET",
        "path": "/s/amber-coral-nova",
        "query_string": b"",
        "headers": [(b"accept", accept.encode())],
    })


def make_redirect_service(links=None, cache=None, handler=origin_handler):
    settings = make_settings()
    store = MemoryKeyValueStore(links or {"code:amber-coral-nova": URL_A})
    origin = OriginProxy(httpx.AsyncClient(transport=httpx.MockTransport(handler)), APP_ORIGIN)
    return RedirectService(LinkService(store, settings), settings, cache=cache, origin=origin)


def unreachable(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("origin down", request=request)


class TestRedirectService:
    """Test the visit branches of /s/<code>."""

    @pytest.mark.asyncio
    async def test_api_client_gets_cacheable_redirect(self):
        cache = MemoryResponseCache()
        service = make_redirect_service(cache=cache)

        response = await service.redirect_or_serve("amber-coral-nova", make_request())
        await drain_background_tasks()

        assert response.status_code == 302
        assert response.headers["location"] == URL_A
        assert response.headers["cache-control"] == "public, max-age=300"
        assert response.headers["vary"] == "Accept"

        cached = await cache.match(CACHE_KEY)
        assert cached is not None
        assert cached.headers["location"] == URL_A

    @pytest.mark.asyncio
    async def test_cache_hit_skips_the_store(self):
        cache = MemoryResponseCache()
        await cache.put(CACHE_KEY, RedirectResponse(f"{APP_ORIGIN}/#cached", status_code=302), ttl=300)
        service = make_redirect_service(cache=cache)

        response = await service.redirect_or_serve("amber-coral-nova", make_request())

        assert response.headers["location"] == f"{APP_ORIGIN}/#cached"

    @pytest.mark.asyncio
    async def test_unknown_and_malformed_codes_go_home(self):
        service = make_redirect_service(cache=MemoryResponseCache())
        for code in ["not-a-real-code", "delta-ember-fjord", ""]:
            response = await service.redirect_or_serve(code, make_request())
            assert response.status_code == 302
            assert response.headers["location"] == f"{APP_ORIGIN}/"
            assert response.headers["cache-control"] == "no-store"

    @pytest.mark.asyncio
    async def test_browser_gets_markup_with_embedded_target(self):
        service = make_redirect_service()

        response = await service.redirect_or_serve("amber-coral-nova", make_request("text/html"))

        assert response.status_code == 200
        body = response.body.decode()
        assert f'<meta name="x-short-link-target" content="{URL_A}">' in body
        assert body.startswith("<!doctype html><html><head><meta")
        assert response.headers["cache-control"] == "private, no-store"

    @pytest.mark.asyncio
    async def test_browser_falls_back_to_redirect_when_origin_unreachable(self):
        service = make_redirect_service(handler=unreachable)

        response = await service.redirect_or_serve("amber-coral-nova", make_request("text/html"))

        assert response.status_code == 302
        assert response.headers["location"] == URL_A

    @pytest.mark.asyncio
    async def test_without_link_store_every_visit_goes_home(self):
        service = RedirectService(None, make_settings())
        response = await service.redirect_or_serve("amber-coral-nova", make_request())
        assert response.headers["location"] == f"{APP_ORIGIN}/"


class TestEdgeCache:
    @pytest.mark.asyncio
    async def test_entries_expire(self):
        now = [0.0]
        cache = MemoryResponseCache(clock=lambda: now[0])
        await cache.put("k", RedirectResponse(URL_A, status_code=302), ttl=10)

        assert await cache.match("k") is not None
        now[0] = 10.0
        assert await cache.match("k") is None

    @pytest.mark.asyncio
    async def test_delete(self):
        cache = MemoryResponseCache()
        await cache.put("k", RedirectResponse(URL_A, status_code=302), ttl=10)
        assert await cache.delete("k") is True
        assert await cache.delete("k") is False

    def test_serialized_form_keeps_status_and_headers(self):
        snapshot = CachedResponse.from_response(RedirectResponse(URL_A, status_code=302))
        restored = CachedResponse.loads(snapshot.dumps()).to_response()
        assert restored.status_code == 302
        assert restored.headers["location"] == URL_A


class TestBackgroundTasks:
    @pytest.mark.asyncio
    async def test_failures_are_logged_not_raised(self, caplog):
        async def boom():
            raise RuntimeError("cache write failed")

        spawn_background(boom(), description="cache test")
        await drain_background_tasks()

        assert "Background task 'cache test' failed" in caplog.text


class TestOriginProxy:
    def test_embed_without_head(self):
        markup = embed_link_target("<p>hi</p>", f'{APP_ORIGIN}/#"quoted"')
        assert markup.startswith('<meta name="x-short-link-target" content="https://pt-onia.app/#&quot;quoted&quot;">')

    @pytest.mark.asyncio
    async def test_fetch_app_markup(self):
        proxy = OriginProxy(httpx.AsyncClient(transport=httpx.MockTransport(origin_handler)), APP_ORIGIN)
        assert await proxy.fetch_app_markup() == APP_MARKUP

    @pytest.mark.asyncio
    async def test_fetch_app_markup_requires_html(self):
        def json_only(request):
            return httpx.Response(200, json={"not": "html"})

        proxy = OriginProxy(httpx.AsyncClient(transport=httpx.MockTransport(json_only)), APP_ORIGIN)
        assert await proxy.fetch_app_markup() is None
