"""Application server: one catch-all handler with a configurable failure rate."""

from aiohttp import web

from flakyapp.api.middleware import REQUEST_METRICS, request_metrics_middleware
from flakyapp.core.protocols.request_metrics import RequestMetrics
from flakyapp.core.responder import ResponseGenerator


class AppServer:
    """Builds the aiohttp application serving the flaky endpoint.

    Any method on any path is answered by ``ResponseGenerator`` and counted in
    ``RequestMetrics``.  Binding and shutdown belong to the lifecycle manager.
    """

    def __init__(self, generator: ResponseGenerator, metrics: RequestMetrics):
        """Initialize the application.

        Args:
            generator: Chooses the status and body for each request.
            metrics: Receives one observation per request.
        """
        self.generator = generator
        self.app = web.Application(middlewares=[request_metrics_middleware])
        self.app[REQUEST_METRICS] = metrics
        self.app.router.add_route("*", "/{tail:.*}", self.handle)

    async def handle(self, request: web.Request) -> web.Response:
        outcome = await self.generator.respond()
        return web.Response(status=outcome.status, text=outcome.body)
