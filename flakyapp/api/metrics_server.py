"""Metrics and health server: /metrics, /liveness and /readiness."""

from aiohttp import web

from flakyapp.core.protocols.health_state import HealthState
from flakyapp.core.protocols.metrics_renderer import MetricsRenderer


class MetricsServer:
    """Builds the aiohttp application for scraping and probing.

    ``/readiness`` reflects the shared ``HealthState``; ``/liveness`` answers
    OK for as long as the process can serve at all.
    """

    def __init__(self, renderer: MetricsRenderer, health: HealthState):
        """Initialize the application.

        Args:
            renderer: Serializes collected metrics for ``/metrics``.
            health: Readiness flag consulted by ``/readiness``.
        """
        self.renderer = renderer
        self.health = health
        self.app = web.Application()
        self.app.add_routes(
            [
                web.get("/metrics", self._handle_metrics),
                web.get("/liveness", self._handle_liveness),
                web.get("/readiness", self._handle_readiness),
            ]
        )

    async def _handle_metrics(self, request: web.Request) -> web.Response:
        body = self.renderer.generate()
        # content_type may carry parameters (version, charset), which
        # web.Response rejects in its content_type argument.
        return web.Response(body=body, headers={"Content-Type": self.renderer.content_type})

    async def _handle_liveness(self, request: web.Request) -> web.Response:
        return web.Response(text="OK", status=200)

    async def _handle_readiness(self, request: web.Request) -> web.Response:
        """200 while the process accepts new work, 502 otherwise."""
        if self.health.is_ready():
            return web.Response(text="OK", status=200)
        return web.Response(text="Unhealthy", status=502)
