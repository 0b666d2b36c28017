"""Tests for the HTTP control routes."""

import asyncio
import json

import pytest
from fastapi.testclient import TestClient

from callvis import __version__
from callvis.api.app import create_app
from callvis.core import service as service_module
from callvis.core.options_store import OptionsStore
from callvis.core.service import ControlService
from callvis.errors import RendererFailed, RendererUnavailable


class BrokenConverter:
    def __init__(self, exc: Exception):
        self.exc = exc

    def convert(self, description: str, fmt: str) -> bytes:
        raise self.exc


@pytest.fixture
def client(service: ControlService) -> TestClient:
    return TestClient(create_app(service))


class TestOptions:
    def test_get_current(self, client: TestClient):
        response = client.get("/options")
        assert response.status_code == 200
        body = response.json()
        assert body["focus"] == "main"
        assert body["group"] == "pkg"

    def test_merge_override(self, client: TestClient, service: ControlService):
        response = client.get("/options", params={"opts": json.dumps({"focus": "lib", "minlen": 4})})
        assert response.status_code == 200
        assert response.json()["minlen"] == 4
        assert service.store.snapshot().focus == "lib"

    @pytest.mark.parametrize("opts", ["{broken", '{"minlen": 0}', "[]"])
    def test_bad_override(self, client: TestClient, service: ControlService, opts):
        response = client.get("/options", params={"opts": opts})
        assert response.status_code == 400
        assert service.store.snapshot().minlen == 2


class TestRender:
    def test_redirects_to_viewer(self, client: TestClient):
        response = client.get("/render", params={"nointer": "false"}, follow_redirects=False)
        assert response.status_code == 303
        assert response.headers["location"] == "/view"

    def test_follow_redirect_serves_artifact(self, client: TestClient):
        response = client.get("/render")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("image/svg+xml")
        assert response.content.startswith(b"<svg>digraph callvis {")
        assert "x-callvis-fingerprint" in response.headers

    def test_module_alias(self, client: TestClient):
        response = client.get("/module", params={"f": "lib"}, follow_redirects=False)
        assert response.status_code == 303
        assert client.get("/options").json()["focus"] == "lib"

    def test_overrides_change_output(self, client: TestClient):
        default = client.get("/render").content
        expanded = client.get("/render", params={"nointer": "false"}).content
        assert b"lib.helper" not in default
        assert b"lib.helper" in expanded

    def test_refresh_recomputes(self, client: TestClient, fake_converter):
        client.get("/render")
        client.get("/render")
        assert fake_converter.calls == 1
        client.get("/render", params={"refresh": "true"})
        assert fake_converter.calls == 2

    def test_unknown_focus(self, client: TestClient):
        response = client.get("/render", params={"focus": "nowhere"}, follow_redirects=False)
        assert response.status_code == 404
        assert "nowhere" in response.json()["detail"]
        # the service keeps answering
        assert client.get("/render").status_code == 200

    def test_invalid_option(self, client: TestClient):
        response = client.get("/render", params={"rankdir": "sideways"}, follow_redirects=False)
        assert response.status_code == 400

    def test_dot_format(self, client: TestClient, fake_converter):
        response = client.get("/render", params={"format": "dot"})
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/vnd.graphviz")
        assert fake_converter.calls == 0


class TestView:
    def test_nothing_rendered_yet(self, client: TestClient):
        assert client.get("/view").status_code == 404

    def test_pending(self, client: TestClient, service: ControlService):
        job = service.trigger()
        response = client.get("/view")
        assert response.status_code == 202
        assert response.json()["status"] == "pending"
        assert response.json()["fingerprint"] == job.fingerprint
        assert response.headers["retry-after"] == "1"

    @pytest.mark.parametrize(
        "exc", [RendererFailed("dot exited with status 1", stderr="bad"), RendererUnavailable("no dot")]
    )
    def test_renderer_errors(self, scenario_graph, cache, exc):
        service = ControlService(scenario_graph, OptionsStore(), cache, BrokenConverter(exc))
        client = TestClient(create_app(service))
        response = client.get("/render")
        assert response.status_code == 502
        assert response.json()["status"] == "failed"
        assert response.json()["error_type"] == type(exc).__name__

    def test_unexpected_error(self, scenario_graph, cache):
        service = ControlService(scenario_graph, OptionsStore(), cache, BrokenConverter(RuntimeError("boom")))
        client = TestClient(create_app(service))
        assert client.get("/render").status_code == 500


class TestHealth:
    def test_health(self, client: TestClient):
        body = client.get("/health").json()
        assert body == {"status": "ok", "version": __version__, "nodes": 4}

    def test_custom_viewer_url(self, service: ControlService):
        client = TestClient(create_app(service, viewer_url="/static/index.html"))
        response = client.get("/render", follow_redirects=False)
        assert response.headers["location"] == "/static/index.html"


def _on_event_loop() -> bool:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return False
    return True


class TestEventLoop:
    """Graph work runs on a worker thread, not on the event loop."""

    def test_render_resolves_focus_off_loop(self, client: TestClient, monkeypatch):
        seen = []
        resolve = service_module.resolve_focus

        def spy(graph, focus):
            seen.append(_on_event_loop())
            return resolve(graph, focus)

        monkeypatch.setattr(service_module, "resolve_focus", spy)
        assert client.get("/render", follow_redirects=False).status_code == 303
        assert seen == [False]

    def test_options_merge_off_loop(self, client: TestClient, service: ControlService, monkeypatch):
        seen = []
        update = service.store.update

        def spy(payload):
            seen.append(_on_event_loop())
            return update(payload)

        monkeypatch.setattr(service.store, "update", spy)
        assert client.get("/options", params={"opts": '{"focus": "lib"}'}).status_code == 200
        assert seen == [False]
