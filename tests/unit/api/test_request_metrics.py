"""Unit tests for the request metrics adapters and middleware."""

import pytest
from aiohttp import web
from aiohttp.test_utils import TestClient, TestServer

from flakyapp.adapters.metrics_renderer import FakeMetricsRenderer, PrometheusMetricsRenderer
from flakyapp.adapters.request_metrics import FakeRequestMetrics, PrometheusRequestMetrics
from flakyapp.api.middleware import REQUEST_METRICS, request_metrics_middleware
from flakyapp.core.metrics_service import MetricsService
from flakyapp.core.protocols import MetricsRenderer, RequestMetrics


class TestFakeRequestMetrics:
    """Tests for the FakeRequestMetrics test helper."""

    def test_records_and_clears(self):
        """Fake keeps observations in order until cleared."""
        fake = FakeRequestMetrics()
        fake.observe_request("200", 0.01)
        fake.observe_request("500", 0.02)

        assert fake.status_codes() == ["200", "500"]

        fake.clear()
        assert fake.requests == []

    def test_satisfies_protocol(self):
        """FakeRequestMetrics passes the runtime protocol check."""
        assert isinstance(FakeRequestMetrics(), RequestMetrics)


class TestPrometheusRequestMetrics:
    """Tests for the Prometheus adapter."""

    def test_registry_is_separate_from_default(self):
        """Adapter never registers on the global default registry."""
        from prometheus_client import REGISTRY

        adapter = PrometheusRequestMetrics()
        assert adapter.registry is not REGISTRY

    def test_observe_request_increments_counter_per_code(self):
        """Counter is labelled by status code."""
        adapter = PrometheusRequestMetrics()
        adapter.observe_request("500", 0.005)
        adapter.observe_request("500", 0.006)
        adapter.observe_request("200", 0.005)

        output = PrometheusMetricsRenderer(adapter.registry).generate().decode()
        assert 'http_requests_total{code="500"} 2.0' in output
        assert 'http_requests_total{code="200"} 1.0' in output

    def test_histogram_has_five_buckets_plus_inf(self):
        """Duration histogram exposes five buckets plus +Inf."""
        adapter = PrometheusRequestMetrics()
        adapter.observe_request("200", 0.005)

        output = PrometheusMetricsRenderer(adapter.registry).generate().decode()
        buckets = [
            line
            for line in output.splitlines()
            if line.startswith('http_requests_duration_bucket{code="200"')
        ]
        assert len(buckets) == 6
        assert 'le="+Inf"' in buckets[-1]
        assert 'http_requests_duration_count{code="200"} 1.0' in output

    def test_observation_lands_in_10ms_bucket(self):
        """A 5ms observation falls in the 10ms bucket, not the 1ms one."""
        adapter = PrometheusRequestMetrics()
        adapter.observe_request("200", 0.005)

        output = PrometheusMetricsRenderer(adapter.registry).generate().decode()
        assert 'http_requests_duration_bucket{code="200",le="0.001"} 0.0' in output
        assert 'http_requests_duration_bucket{code="200",le="0.01"} 1.0' in output


class TestMetricsRenderers:
    """Tests for the renderer adapters."""

    def test_prometheus_content_type(self):
        """Prometheus renderer emits text exposition bytes."""
        from prometheus_client import CollectorRegistry

        renderer = PrometheusMetricsRenderer(CollectorRegistry())
        assert renderer.content_type.startswith("text/plain")
        assert isinstance(renderer.generate(), bytes)

    def test_fake_counts_generate_calls(self):
        """Fake renderer counts generate() calls."""
        fake = FakeMetricsRenderer()
        fake.generate()
        fake.generate()
        assert fake.generate_calls == 2
        assert isinstance(fake, MetricsRenderer)

    def test_fake_renders_recorded_status_codes(self):
        """Fake renderer shows one total line per recorded status code."""
        requests = FakeRequestMetrics()
        fake = FakeMetricsRenderer(requests)
        for code in ("200", "500", "200"):
            requests.observe_request(code, 0.005)

        output = fake.generate().decode()
        assert output.splitlines()[1:] == [
            'http_requests_total{code="200"} 2',
            'http_requests_total{code="500"} 1',
        ]


class TestMetricsService:
    """Tests for the metrics facade."""

    def test_requests_and_renderer_share_registry(self):
        """Observations show up in the same service's rendered output."""
        service = MetricsService.prometheus(runtime_collectors=False)
        service.requests.observe_request("200", 0.01)

        output = service.renderer.generate().decode()
        assert 'http_requests_total{code="200"} 1.0' in output

    def test_fake_service_renders_what_was_recorded(self):
        """Fake service wires its renderer to its own recorded requests."""
        service = MetricsService.fake()
        service.requests.observe_request("500", 0.005)

        assert service.requests.status_codes() == ["500"]
        assert b'http_requests_total{code="500"} 1' in service.renderer.generate()

    def test_runtime_collectors_exported(self):
        """Process and platform metrics are exported by default."""
        service = MetricsService.prometheus()
        output = service.renderer.generate().decode()
        assert "python_info" in output

    def test_runtime_collectors_optional(self):
        """Runtime collectors can be left out."""
        service = MetricsService.prometheus(runtime_collectors=False)
        output = service.renderer.generate().decode()
        assert "python_info" not in output


# ---------------------------------------------------------------------------
# request_metrics_middleware
# ---------------------------------------------------------------------------


class TestRequestMetricsMiddleware:
    """Tests for request_metrics_middleware using FakeRequestMetrics."""

    @pytest.fixture
    def fake_metrics(self):
        return FakeRequestMetrics()

    @pytest.fixture
    def app(self, fake_metrics):
        async def ok(request):
            return web.Response(text="ok")

        async def boom(request):
            raise RuntimeError("boom")

        async def bad(request):
            raise web.HTTPBadRequest(text="no")

        app = web.Application(middlewares=[request_metrics_middleware])
        app[REQUEST_METRICS] = fake_metrics
        app.router.add_get("/ok", ok)
        app.router.add_get("/boom", boom)
        app.router.add_get("/bad", bad)
        return app

    @pytest.mark.asyncio
    async def test_records_response_status(self, app, fake_metrics):
        """Middleware records the returned response status."""
        async with TestClient(TestServer(app)) as client:
            resp = await client.get("/ok")
            assert resp.status == 200

        assert fake_metrics.status_codes() == ["200"]
        assert fake_metrics.requests[0].duration >= 0

    @pytest.mark.asyncio
    async def test_records_http_exception_status(self, app, fake_metrics):
        """Middleware records the status of a raised HTTPException."""
        async with TestClient(TestServer(app)) as client:
            resp = await client.get("/bad")
            assert resp.status == 400

        assert fake_metrics.status_codes() == ["400"]

    @pytest.mark.asyncio
    async def test_records_unmatched_route(self, app, fake_metrics):
        """Unmatched routes are recorded as 404."""
        async with TestClient(TestServer(app)) as client:
            resp = await client.get("/nowhere")
            assert resp.status == 404

        assert fake_metrics.status_codes() == ["404"]

    @pytest.mark.asyncio
    async def test_unhandled_exception_counts_as_500(self, app, fake_metrics):
        """Unhandled handler errors are recorded as 500."""
        async with TestClient(TestServer(app)) as client:
            resp = await client.get("/boom")
            assert resp.status == 500

        assert fake_metrics.status_codes() == ["500"]
