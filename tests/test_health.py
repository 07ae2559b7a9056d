"""Tests for pinboard_connector.health."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from pinboard_connector.channel import RecordChannel
from pinboard_connector.config import CrawlerConfig
from pinboard_connector.health import create_health_app
from pinboard_connector.models import CrawlerStatus
from pinboard_connector.runner import CrawlerRunner


class StubCrawler:
    """Minimal crawler for health endpoint testing."""

    def __init__(self, details: dict[str, object] | None = None) -> None:
        self.details = details or {}

    async def crawl(
        self,
        output: RecordChannel,
        cancel: asyncio.Event,
        poll_interval: float | None = None,
    ) -> None:
        output.close()

    async def health_check(self) -> dict[str, object]:
        return self.details


@pytest.fixture
def runner(crawler_config: CrawlerConfig) -> CrawlerRunner:
    return CrawlerRunner(crawler_config, StubCrawler(), serve_health=False)


@pytest.fixture
def health_app(runner: CrawlerRunner):
    return create_health_app(runner)


async def _get(app, path: str) -> httpx.Response:
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        return await client.get(path)


class TestHealthEndpoints:
    @pytest.mark.asyncio
    async def test_health_starting(self, health_app, runner: CrawlerRunner):
        runner.status = CrawlerStatus.STARTING
        resp = await _get(health_app, "/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["crawler_name"] == "test-crawler"
        assert data["status"] == "starting"
        assert "uptime_seconds" in data

    @pytest.mark.asyncio
    async def test_health_running(self, health_app, runner: CrawlerRunner):
        runner.status = CrawlerStatus.RUNNING
        runner.records_received = 7
        resp = await _get(health_app, "/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "running"
        assert resp.json()["records_received"] == 7

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status", [CrawlerStatus.DEGRADED, CrawlerStatus.STOPPING, CrawlerStatus.STOPPED]
    )
    async def test_health_unhealthy_returns_503(
        self, health_app, runner: CrawlerRunner, status: CrawlerStatus
    ):
        runner.status = status
        resp = await _get(health_app, "/health")
        assert resp.status_code == 503
        assert resp.json()["status"] == status.value

    @pytest.mark.asyncio
    async def test_ready_when_running(self, health_app, runner: CrawlerRunner):
        runner.status = CrawlerStatus.RUNNING
        resp = await _get(health_app, "/ready")
        assert resp.status_code == 200
        assert resp.json()["ready"] is True

    @pytest.mark.asyncio
    async def test_ready_when_not_running(self, health_app, runner: CrawlerRunner):
        for status in [CrawlerStatus.STARTING, CrawlerStatus.DEGRADED, CrawlerStatus.STOPPED]:
            runner.status = status
            resp = await _get(health_app, "/ready")
            assert resp.status_code == 503
            assert resp.json()["ready"] is False

    @pytest.mark.asyncio
    async def test_health_includes_crawler_details(self, crawler_config: CrawlerConfig):
        crawler = StubCrawler({"state": "waiting", "records_ingested": 42})
        runner = CrawlerRunner(crawler_config, crawler, serve_health=False)
        runner.status = CrawlerStatus.RUNNING

        resp = await _get(create_health_app(runner), "/health")
        data = resp.json()
        assert data["details"]["records_ingested"] == 42
        assert data["details"]["state"] == "waiting"


class TestReadinessFollowsCrawlerState:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("state", ["disconnected", "authenticating", "stopped"])
    async def test_not_ready_while_logged_out(self, crawler_config: CrawlerConfig, state: str):
        runner = CrawlerRunner(crawler_config, StubCrawler({"state": state}), serve_health=False)
        runner.status = CrawlerStatus.RUNNING

        resp = await _get(create_health_app(runner), "/ready")
        assert resp.status_code == 503
        assert resp.json() == {"ready": False, "state": state}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("state", ["polling", "waiting"])
    async def test_ready_while_serving(self, crawler_config: CrawlerConfig, state: str):
        runner = CrawlerRunner(crawler_config, StubCrawler({"state": state}), serve_health=False)
        runner.status = CrawlerStatus.RUNNING

        resp = await _get(create_health_app(runner), "/ready")
        assert resp.status_code == 200
        assert resp.json() == {"ready": True, "state": state}

    @pytest.mark.asyncio
    async def test_serving_state_does_not_override_runner(self, crawler_config: CrawlerConfig):
        runner = CrawlerRunner(crawler_config, StubCrawler({"state": "waiting"}), serve_health=False)
        runner.status = CrawlerStatus.DEGRADED

        resp = await _get(create_health_app(runner), "/ready")
        assert resp.status_code == 503
        assert resp.json()["ready"] is False
