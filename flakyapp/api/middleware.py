"""Middleware for the application server."""

import time
from typing import Awaitable, Callable

from aiohttp import web

from flakyapp.core.protocols.request_metrics import RequestMetrics

REQUEST_METRICS = web.AppKey("request_metrics", RequestMetrics)

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


@web.middleware
async def request_metrics_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    """Record one count and one latency observation per completed request.

    The label is the status code that actually goes out: the response's
    status, the status of a raised ``HTTPException``, or 500 for anything
    else aiohttp will turn into an internal server error.
    """
    metrics = request.app[REQUEST_METRICS]
    start = time.perf_counter()

    try:
        response = await handler(request)
    except web.HTTPException as exc:
        metrics.observe_request(str(exc.status), time.perf_counter() - start)
        raise
    except Exception:
        metrics.observe_request("500", time.perf_counter() - start)
        raise

    metrics.observe_request(str(response.status), time.perf_counter() - start)
    return response
