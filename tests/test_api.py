from __future__ import annotations

import httpx
import pytest
from fastapi.testclient import TestClient

from api import create_app
from conftest import power_payload, price_payload


def _router(routes: dict):
    """MockTransport handler dispatching on host; values are (status, body) or an exception."""

    def handler(request: httpx.Request) -> httpx.Response:
        result = routes[request.url.host]
        if isinstance(result, Exception):
            raise result
        status, body = result
        return httpx.Response(status, json=body)

    return handler


@pytest.fixture
def make_client(autarco_config, tibber_config, settings, now):
    def _make(routes: dict, **overrides) -> TestClient:
        kwargs = dict(
            autarco=autarco_config,
            tibber=tibber_config,
            settings=settings,
            transport=httpx.MockTransport(_router(routes)),
            clock=lambda: now,
        )
        kwargs.update(overrides)
        return TestClient(create_app(**kwargs))

    return _make


def test_autarco_success_headers_and_body(make_client) -> None:
    routes = {"autarco.test": (200, power_payload())}

    with make_client(routes) as client:
        resp = client.get("/autarco")

    assert resp.status_code == 200
    assert resp.headers["content-type"] == "application/json"
    assert resp.headers["cache-control"] == "private, max-age=60, must-revalidate"
    frames = resp.json()["frames"]
    assert frames[0] == {"index": 0, "text": "450 W", "icon": 33038}
    assert len(frames[1]["chartData"]) == 37


def test_tibber_success_caches_until_next_hour(make_client) -> None:
    routes = {"tibber.test": (200, price_payload(level="CHEAP"))}

    with make_client(routes) as client:
        resp = client.get("/tibber")

    assert resp.status_code == 200
    assert resp.headers["cache-control"] == "private, max-age=2700, must-revalidate"
    assert resp.json() == {
        "frames": [
            {"text": "€ 0,10", "icon": 53296},
            {"chartData": [0, 2, 7, 6, 6, 132]},
        ]
    }


def test_upstream_failure_returns_500_envelope(make_client) -> None:
    routes = {
        "autarco.test": httpx.ConnectError("connection refused"),
        "tibber.test": httpx.ConnectError("connection refused"),
    }

    with make_client(routes) as client:
        for path in ("/autarco", "/tibber"):
            resp = client.get(path)
            assert resp.status_code == 500
            assert resp.headers["content-type"] == "application/json"
            assert resp.json()["kind"] == "transport"
            assert "unreachable" in resp.json()["error"]
            assert "cache-control" not in resp.headers


def test_shape_error_returns_parse_envelope(make_client) -> None:
    routes = {"autarco.test": (200, {"stats": {}})}

    with make_client(routes) as client:
        resp = client.get("/autarco")

    assert resp.status_code == 500
    assert resp.json()["kind"] == "parse"


def test_unexpected_exception_is_reported_not_raised(make_client) -> None:
    routes = {"tibber.test": RuntimeError("boom")}

    with make_client(routes) as client:
        resp = client.get("/tibber")

    assert resp.status_code == 500
    assert resp.json() == {"error": "boom", "kind": "internal"}


def test_unconfigured_feed_is_isolated(make_client, monkeypatch) -> None:
    for var in ("SITE", "USERNAME", "PASSWORD"):
        monkeypatch.delenv(var, raising=False)
    routes = {"tibber.test": (200, price_payload())}

    with make_client(routes, autarco=None) as client:
        broken = client.get("/autarco")
        working = client.get("/tibber")
        health = client.get("/health")

    assert broken.status_code == 500
    assert broken.json()["kind"] == "config"
    assert "SITE" in broken.json()["error"]
    assert working.status_code == 200
    assert health.json()["feeds"] == {"autarco": False, "tibber": True}


def test_repeated_requests_are_byte_identical(make_client) -> None:
    routes = {"tibber.test": (200, price_payload())}

    with make_client(routes) as client:
        first = client.get("/tibber").content
        second = client.get("/tibber").content

    assert first == second
