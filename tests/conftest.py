import threading
from collections.abc import Callable

import httpx
import pytest

from esmigrate.client import ClusterClient
from esmigrate.events import ErrorSink

Handler = Callable[[httpx.Request], httpx.Response]


class FakeCluster:
    """In-memory stand-in for a cluster, served through httpx.MockTransport.

    Routes are keyed by (method, path) and hold responses or handler callables,
    used in order; the last one repeats for any further requests.
    """

    def __init__(self, base_url: str = "http://cluster:9200") -> None:
        self.base_url = base_url
        self.requests: list[httpx.Request] = []
        self._routes: dict[tuple[str, str], Handler | list[httpx.Response]] = {}
        self._lock = threading.Lock()

    def on(self, method: str, path: str, *responses: httpx.Response | Handler) -> None:
        self._routes[(method, path)] = list(responses)

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        with self._lock:
            return [r for r in self.requests if r.method == method and r.url.path == path]

    def handle(self, request: httpx.Request) -> httpx.Response:
        with self._lock:
            self.requests.append(request)
            route = self._routes.get((request.method, request.url.path))
            if isinstance(route, list) and route:
                route = route.pop(0) if len(route) > 1 else route[0]
        if route is None or route == []:
            return httpx.Response(404, json={"error": "no route", "status": 404})
        if callable(route):
            return route(request)
        # Fresh copy so a repeated response is never reused across requests
        return httpx.Response(route.status_code, headers=route.headers, content=route.content)

    def client(self) -> ClusterClient:
        return ClusterClient(self.base_url, transport=httpx.MockTransport(self.handle))


def hit(index: str, id: str, source: dict | None = None, type: str = "doc") -> dict:
    return {"_index": index, "_type": type, "_id": id, "_source": source or {"n": id}}


def page(scroll_id: str, hits: list[dict], total: int | None = None) -> httpx.Response:
    return httpx.Response(200, json={
        "_scroll_id": scroll_id,
        "hits": {"total": len(hits) if total is None else total, "hits": hits},
    })


@pytest.fixture
def source():
    return FakeCluster("http://source:9200")


@pytest.fixture
def dest():
    return FakeCluster("http://dest:9200")


@pytest.fixture
def sink():
    return ErrorSink()
