import asyncio
from collections import Counter

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from sitesearch.search.lemmatizer import Lemmatizer
from sitesearch.service import SearchService
from sitesearch.storage.database import MemoryIndexStore
from sitesearch.storage.models import Site
from sitesearch.utils.config import Config, CrawlerConfig, SearchConfig, SiteConfig
from sitesearch.utils.monitoring import MetricsCollector


def html_page(body: str, title: str = "", links=()) -> str:
    anchors = "".join(f'<a href="{href}">{href}</a> ' for href in links)
    return (f"<html><head><title>{title}</title></head>"
            f"<body><p>{body}</p><nav>{anchors}</nav></body></html>")


def make_site_app(pages: dict, hits: Counter) -> web.Application:
    """
    Serve ``pages``: path -> html string, (status, body, content_type) tuple,
    or an async handler.
    """
    async def handler(request: web.Request):
        hits[request.path_qs] += 1
        entry = pages.get(request.path_qs)
        if entry is None:
            return web.Response(status=404, text=html_page("not found"),
                                content_type='text/html')
        if callable(entry):
            return await entry(request)
        if isinstance(entry, tuple):
            status, body, content_type = entry
            return web.Response(status=status, text=body, content_type=content_type)
        return web.Response(text=entry, content_type='text/html')

    app = web.Application()
    app.router.add_route('GET', '/{tail:.*}', handler)
    return app


@pytest.fixture
async def site_server():
    """Factory starting local websites; returns (root_url, hit counter)."""
    servers = []

    async def serve(pages: dict):
        hits = Counter()
        server = TestServer(make_site_app(pages, hits))
        await server.start_server()
        servers.append(server)
        return f"http://{server.host}:{server.port}", hits

    yield serve

    for server in servers:
        await server.close()


@pytest.fixture
async def closed_url():
    """Root URL of a port nothing listens on."""
    server = TestServer(web.Application())
    await server.start_server()
    url = f"http://{server.host}:{server.port}"
    await server.close()
    return url


def make_config(*site_urls, search=None, **crawler) -> Config:
    crawler_settings = dict(delay_base=0, delay_jitter=0, request_timeout=2)
    crawler_settings.update(crawler)
    return Config(
        sites=[SiteConfig(url=url, name=f"Site {i}") for i, url in enumerate(site_urls, 1)],
        crawler=CrawlerConfig(**crawler_settings),
        search=search or SearchConfig()
    )


@pytest.fixture
def lemmatizer():
    return Lemmatizer()


@pytest.fixture
def metrics():
    return MetricsCollector()


@pytest.fixture
async def memory_store():
    store = MemoryIndexStore()
    await store.initialize()
    yield store
    await store.close()


@pytest.fixture
async def service_factory(metrics):
    """Build initialized SearchService instances backed by memory stores."""
    services = []

    async def build(config: Config, store=None) -> SearchService:
        service = SearchService(config, store=store or MemoryIndexStore(), metrics=metrics)
        await service.initialize()
        services.append(service)
        return service

    yield build

    for service in services:
        await service.close()


async def crawl(service: SearchService, timeout: float = 10):
    await service.start_indexing()
    await asyncio.wait_for(service.wait_until_finished(), timeout)


async def add_site(store, url: str, name: str = "Site") -> Site:
    site = Site(url=url, name=name)
    await store.save_site(site)
    return site
