"""Pytest configuration and fixtures for callvis tests."""

import json
import threading
from pathlib import Path

import pytest

from callvis.core.cache import ArtifactCache
from callvis.core.options_store import OptionsStore
from callvis.core.service import ControlService
from callvis.graph.model import GraphModel
from callvis.models.graph import RawCallGraph


class FakeConverter:
    """Stands in for Graphviz: returns a tagged copy of the DOT text.

    Counts invocations and can be made to block until released, so tests
    can hold a computation in flight.
    """

    def __init__(self, block: bool = False):
        self.calls = 0
        self.entered = threading.Event()
        self.release = threading.Event()
        if not block:
            self.release.set()
        self._lock = threading.Lock()

    def available(self) -> bool:
        return True

    def convert(self, description: str, fmt: str) -> bytes:
        with self._lock:
            self.calls += 1
        self.entered.set()
        self.release.wait(timeout=5)
        return f"<{fmt}>".encode() + description.encode()


SCENARIO_GRAPH = {
    "packages": [
        {"path": "app", "name": "main"},
        {"path": "lib"},
        {"path": "fmt", "std": True},
    ],
    "functions": [
        {"id": "app.main", "name": "main", "package": "app"},
        {"id": "lib.Do", "name": "Do", "package": "lib"},
        {"id": "lib.helper", "name": "helper", "package": "lib"},
        {"id": "fmt.Println", "name": "Println", "package": "fmt"},
    ],
    "calls": [
        {"caller": "app.main", "callee": "lib.Do"},
        {"caller": "lib.Do", "callee": "lib.helper"},
        {"caller": "app.main", "callee": "fmt.Println"},
    ],
}

RICH_GRAPH = {
    "packages": [
        {"path": "example.com/app", "name": "main"},
        {"path": "example.com/app/server"},
        {"path": "example.com/app/internal/store"},
        {"path": "example.com/vendor/log"},
        {"path": "net/http", "name": "http", "std": True},
    ],
    "functions": [
        {"id": "example.com/app.main", "name": "main", "package": "example.com/app"},
        {"id": "example.com/app.setup", "name": "setup", "package": "example.com/app"},
        {"id": "example.com/app.TestMain", "name": "TestMain", "package": "example.com/app", "test": True},
        {"id": "example.com/app/server.New", "name": "New", "package": "example.com/app/server"},
        {
            "id": "(*example.com/app/server.Server).Start",
            "name": "Start",
            "package": "example.com/app/server",
            "receiver": "Server",
        },
        {
            "id": "(*example.com/app/server.Server).listen",
            "name": "listen",
            "package": "example.com/app/server",
            "receiver": "Server",
        },
        {"id": "example.com/app/server.route", "name": "route", "package": "example.com/app/server"},
        {"id": "example.com/app/internal/store.Open", "name": "Open", "package": "example.com/app/internal/store"},
        {"id": "example.com/vendor/log.Printf", "name": "Printf", "package": "example.com/vendor/log"},
        {"id": "net/http.ListenAndServe", "name": "ListenAndServe", "package": "net/http"},
    ],
    "calls": [
        {"caller": "example.com/app.main", "callee": "example.com/app.setup"},
        {"caller": "example.com/app.main", "callee": "example.com/app/server.New"},
        {"caller": "example.com/app.main", "callee": "example.com/app/server.New"},
        {"caller": "example.com/app.main", "callee": "(*example.com/app/server.Server).Start", "dynamic": True},
        {"caller": "example.com/app.setup", "callee": "example.com/app/internal/store.Open"},
        {"caller": "example.com/app.setup", "callee": "example.com/vendor/log.Printf"},
        {"caller": "example.com/app.TestMain", "callee": "example.com/app.main"},
        {"caller": "(*example.com/app/server.Server).Start", "callee": "(*example.com/app/server.Server).listen"},
        {"caller": "(*example.com/app/server.Server).listen", "callee": "example.com/app/server.route"},
        {"caller": "(*example.com/app/server.Server).listen", "callee": "net/http.ListenAndServe"},
    ],
}


@pytest.fixture
def scenario_raw() -> RawCallGraph:
    """The two-package app/lib graph plus one std call."""
    return RawCallGraph.model_validate(SCENARIO_GRAPH)


@pytest.fixture
def scenario_graph(scenario_raw: RawCallGraph) -> GraphModel:
    return GraphModel.build(scenario_raw, "app")


@pytest.fixture
def rich_raw() -> RawCallGraph:
    """A graph with methods, tests, std, internal and vendored packages."""
    return RawCallGraph.model_validate(RICH_GRAPH)


@pytest.fixture
def rich_graph(rich_raw: RawCallGraph) -> GraphModel:
    return GraphModel.build(rich_raw, "example.com/app")


@pytest.fixture
def graph_file(tmp_path: Path) -> Path:
    """The scenario graph written as a JSON document."""
    path = tmp_path / "callgraph.json"
    path.write_text(json.dumps(SCENARIO_GRAPH), encoding="utf-8")
    return path


@pytest.fixture
def fake_converter() -> FakeConverter:
    return FakeConverter()


@pytest.fixture
def cache(tmp_path: Path) -> ArtifactCache:
    return ArtifactCache(tmp_path / "cache")


@pytest.fixture
def service(scenario_graph: GraphModel, cache: ArtifactCache, fake_converter: FakeConverter) -> ControlService:
    return ControlService(scenario_graph, OptionsStore(), cache, fake_converter)
