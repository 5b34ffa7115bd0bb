"""
HTTP API over the search service.
"""

import logging
from typing import Optional

from aiohttp import web

from .errors import (AlreadyRunningError, FetchError, InvalidQueryError, NotRunningError,
                     OutOfScopeError, SearchEngineError)
from .service import SearchService


logger = logging.getLogger(__name__)

SERVICE_KEY = web.AppKey('service', SearchService)

ERROR_STATUS = {
    AlreadyRunningError: 409,
    NotRunningError: 409,
    OutOfScopeError: 404,
    InvalidQueryError: 400,
    FetchError: 502,
}


def error_response(message: str, status: int) -> web.Response:
    return web.json_response({'result': False, 'error': message}, status=status)


@web.middleware
async def error_middleware(request: web.Request, handler):
    try:
        return await handler(request)
    except SearchEngineError as e:
        status = ERROR_STATUS.get(type(e), 500)
        logger.info(f"{request.method} {request.path} -> {status}: {e}")
        return error_response(str(e), status)


def _int_param(request: web.Request, name: str) -> Optional[int]:
    value = request.query.get(name)
    if value is None or value == '':
        return None
    try:
        return int(value)
    except ValueError:
        raise InvalidQueryError(f"{name} must be an integer")


async def statistics(request: web.Request) -> web.Response:
    response = await request.app[SERVICE_KEY].get_statistics()
    return web.json_response(response.to_dict())


async def start_indexing(request: web.Request) -> web.Response:
    await request.app[SERVICE_KEY].start_indexing()
    return web.json_response({'result': True})


async def stop_indexing(request: web.Request) -> web.Response:
    await request.app[SERVICE_KEY].stop_indexing()
    return web.json_response({'result': True})


async def _json_url(request: web.Request):
    """URL from a JSON body: either ``{"url": "..."}`` or a bare string."""
    try:
        data = await request.json()
    except ValueError:
        raise InvalidQueryError("Request body is not valid JSON")
    if isinstance(data, dict):
        data = data.get('url')
    if data is not None and not isinstance(data, str):
        raise InvalidQueryError("url must be a string")
    return data


async def index_page(request: web.Request) -> web.Response:
    if request.content_type == 'application/json':
        url = await _json_url(request)
    else:
        form = await request.post()
        url = form.get('url')
        if url is None:
            url = (await request.text()).strip()
    if not url or not str(url).strip():
        raise InvalidQueryError("url is required")

    await request.app[SERVICE_KEY].index_page(str(url).strip())
    return web.json_response({'result': True})


async def search(request: web.Request) -> web.Response:
    response = await request.app[SERVICE_KEY].search(
        request.query.get('query', ''),
        site=request.query.get('site') or None,
        offset=_int_param(request, 'offset'),
        limit=_int_param(request, 'limit')
    )
    return web.json_response(response.to_dict())


def create_app(service: SearchService) -> web.Application:
    """Build the aiohttp application for a service."""
    app = web.Application(middlewares=[error_middleware])
    app[SERVICE_KEY] = service
    app.add_routes([
        web.get('/api/statistics', statistics),
        web.get('/api/startIndexing', start_indexing),
        web.get('/api/stopIndexing', stop_indexing),
        web.post('/api/indexPage', index_page),
        web.get('/api/search', search),
    ])
    return app


async def start_server(service: SearchService, host: str, port: int) -> web.AppRunner:
    """Start serving the API; returns the runner to clean up on shutdown."""
    runner = web.AppRunner(create_app(service))
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    logger.info(f"API listening on http://{host}:{port}")
    return runner
