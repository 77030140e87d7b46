"""
Unit tests for instance registry adapters.
"""

import asyncio
import json

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from router.instance_registry import (
    BrokerEndpoint,
    HttpInstanceRegistry,
    JsonFileInstanceRegistry,
    StaticInstanceRegistry,
    parse_brokers,
)


class TestBrokerEndpoint:
    """Tests for BrokerEndpoint parsing."""

    def test_snake_case(self):
        endpoint = BrokerEndpoint.from_dict(
            {
                "broker_id": "b1",
                "web_service_url": "http://b1:8080",
                "web_service_url_tls": "https://b1:8443",
            }
        )
        assert endpoint == BrokerEndpoint("http://b1:8080", "https://b1:8443", "b1")

    def test_load_report_keys(self):
        endpoint = BrokerEndpoint.from_dict(
            {"name": "b2", "webServiceUrl": "http://b2:8080"}
        )
        assert endpoint == BrokerEndpoint("http://b2:8080", None, "b2")

    def test_parse_brokers_rejects_scalar(self):
        with pytest.raises(ValueError):
            parse_brokers("http://b1:8080")


class TestStaticRegistry:
    def test_set_instances_replaces_list(self, brokers):
        registry = StaticInstanceRegistry(brokers)
        snapshot = registry.list_healthy_instances()

        registry.set_instances(brokers[:1])

        assert len(snapshot) == 3
        assert registry.list_healthy_instances() == brokers[:1]


class TestJsonFileRegistry:
    def test_load_and_reload(self, tmp_path):
        path = tmp_path / "brokers.json"
        path.write_text(json.dumps({"brokers": [{"web_service_url": "http://b1:8080"}]}))
        registry = JsonFileInstanceRegistry(str(path))

        assert registry.list_healthy_instances() == [BrokerEndpoint("http://b1:8080")]

        path.write_text(
            json.dumps([{"web_service_url": "http://b1:8080"}, {"webServiceUrl": "http://b2:8080"}])
        )
        registry.reload()
        assert len(registry.list_healthy_instances()) == 2

    def test_missing_file_is_empty(self, tmp_path):
        registry = JsonFileInstanceRegistry(str(tmp_path / "missing.json"))
        assert registry.list_healthy_instances() == []

    def test_invalid_file_keeps_previous(self, tmp_path):
        path = tmp_path / "brokers.json"
        path.write_text(json.dumps([{"web_service_url": "http://b1:8080"}]))
        registry = JsonFileInstanceRegistry(str(path))

        path.write_text("{not json")
        registry.reload()
        assert registry.list_healthy_instances() == [BrokerEndpoint("http://b1:8080")]

    def test_unreadable_path_is_empty(self, tmp_path):
        registry = JsonFileInstanceRegistry(str(tmp_path))

        assert registry.list_healthy_instances() == []
        assert registry.reload() is True

    @pytest.mark.asyncio
    async def test_polling_picks_up_edits(self, tmp_path):
        path = tmp_path / "brokers.json"
        path.write_text(json.dumps([{"web_service_url": "http://b1:8080"}]))
        registry = JsonFileInstanceRegistry(str(path), refresh_interval=0.02)

        await registry.start()
        try:
            path.write_text(
                json.dumps([{"web_service_url": "http://b1:8080"}, {"web_service_url": "http://b2:8080"}])
            )
            await asyncio.sleep(0.1)
            assert registry.list_healthy_instances() == [
                BrokerEndpoint("http://b1:8080"),
                BrokerEndpoint("http://b2:8080"),
            ]
        finally:
            await registry.stop()

        assert registry.running is False


class TestHttpRegistry:
    """Tests for the polling registry against a local aiohttp server."""

    @pytest.mark.asyncio
    async def test_refresh(self):
        state = {"status": 200}

        async def handler(request):
            if state["status"] != 200:
                return web.Response(status=state["status"])
            return web.json_response(
                {"brokers": [{"web_service_url": "http://b1:8080"}]}
            )

        app = web.Application()
        app.router.add_get("/brokers", handler)
        server = TestServer(app)
        await server.start_server()

        registry = HttpInstanceRegistry(str(server.make_url("/brokers")))
        try:
            assert registry.list_healthy_instances() == []
            assert await registry.refresh() is True
            assert registry.list_healthy_instances() == [BrokerEndpoint("http://b1:8080")]

            # failed poll keeps the cached list
            state["status"] = 500
            assert await registry.refresh() is False
            assert registry.list_healthy_instances() == [BrokerEndpoint("http://b1:8080")]
        finally:
            await registry.stop()
            await server.close()

    @pytest.mark.asyncio
    async def test_unreachable(self):
        registry = HttpInstanceRegistry("http://127.0.0.1:1/brokers", timeout=1.0)
        try:
            assert await registry.refresh() is False
            assert registry.list_healthy_instances() == []
        finally:
            await registry.stop()
