import sys

import httpx
import pytest
from fastapi.testclient import TestClient


UPSTREAM_BASE = "https://upstream.test/api"

SPORTS = [{"id": "football", "name": "Football"}, {"id": "basketball", "name": "Basketball"}]
MATCHES = [
    {"id": "arsenal-vs-chelsea", "title": "Arsenal vs Chelsea", "category": "football"},
    {"id": "Lakers Celtics", "title": "Lakers vs Celtics", "category": "basketball"},
    {"id": 4242, "title": "Numeric id match", "category": "football"},
    {"title": "No id, dropped"},
]
STREAMS = [{"id": "1", "source": "alpha", "streamNo": 1, "hd": True}]


def upstream_handler(request: httpx.Request) -> httpx.Response:
    path = request.url.path.replace("/api", "", 1)
    if path == "/sports":
        return httpx.Response(200, json=SPORTS)
    if path == "/matches/all":
        return httpx.Response(200, json=MATCHES)
    if path.startswith("/matches/"):
        return httpx.Response(200, json=MATCHES[:1])
    if path == "/stream/alpha/1":
        return httpx.Response(200, json=STREAMS)
    if path.startswith("/stream/"):
        return httpx.Response(404, json={"error": "not found"})
    if path.startswith("/images/badge/missing"):
        return httpx.Response(404)
    if path.startswith("/images/"):
        return httpx.Response(200, content=b"RIFF\x00\x00\x00\x00WEBPVP8 ")
    return httpx.Response(404)


class FakeClock:
    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _fresh_import_app(monkeypatch, *, tmp_path, **env):
    defaults = {
        "STREAMED_API_BASE": UPSTREAM_BASE,
        "IMAGE_CACHE_DIR": (tmp_path / "images").as_posix(),
        "IP_BLOCKER_ENABLED": "true",
        "IP_BLOCKER_STORE": "memory",
        "API_RATE_LIMIT": "1000/minute",
    }
    defaults.update(env)
    for key, value in defaults.items():
        monkeypatch.setenv(key, value)

    # Drop cached imports so the Settings singleton and the gate are rebuilt with our env vars.
    for name in list(sys.modules.keys()):
        if name == "app" or name.startswith("app."):
            sys.modules.pop(name, None)

    import app.main  # noqa: E402

    return app.main


@pytest.fixture()
def upstream_calls():
    return []


@pytest.fixture()
def main_module(monkeypatch, tmp_path, upstream_calls):
    main = _fresh_import_app(monkeypatch, tmp_path=tmp_path)

    from app.services.streamed import StreamedClient, get_streamed_client

    def _recording_handler(request):
        upstream_calls.append(request.url.path)
        return upstream_handler(request)

    transport = httpx.MockTransport(_recording_handler)
    main.app.dependency_overrides[get_streamed_client] = lambda: StreamedClient(
        base_url=UPSTREAM_BASE, transport=transport
    )
    return main


@pytest.fixture()
def client(main_module):
    return TestClient(main_module.app)


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def residential_ip():
    return "81.2.69.160"


@pytest.fixture()
def datacenter_ip():
    # Inside DigitalOcean's 104.131.0.0/16
    return "104.131.7.8"


@pytest.fixture()
def app_factory(monkeypatch, tmp_path):
    """Build an app with extra environment overrides."""

    def _build(**env):
        return _fresh_import_app(monkeypatch, tmp_path=tmp_path, **env).app

    return _build
