"""
Shared fixtures: fake Elasticsearch endpoints for connector tests.
"""

import json
from typing import Callable, List

import httpx
import pytest

from src.packages.search_client import ESClient, HttpJsonTransport, JsonResponse


class FakeScrollTransport:
    """In-memory scroll API over a fixed list of ids.

    Every cursor token is single use, so a request made with anything but the
    token from the previous response fails like an expired scroll context.
    """

    def __init__(self, ids: List[str], open_status: int = 200):
        self.ids = list(ids)
        self.open_status = open_status
        self.calls = []
        self.cleared = []
        self.closed = False
        self._cursors = {}
        self._page_size = 0

    def post_json(self, url: str, body: str, content_type: str = "application/json") -> JsonResponse:
        request = json.loads(body)
        self.calls.append((url, request))

        if "_search?scroll=" in url:
            if self.open_status != 200:
                return JsonResponse(status=self.open_status, msg="cluster unavailable")
            self._page_size = int(request["size"])
            offset = 0
        elif url.endswith("/_search/scroll"):
            token = request["scroll_id"]
            if token not in self._cursors:
                return JsonResponse(status=404, msg=f"No search context found for id [{token}]")
            offset = self._cursors.pop(token)
        else:
            return JsonResponse(status=400, msg=f"unexpected url {url}")

        page = self.ids[offset:offset + self._page_size]
        token = f"cursor-{len(self.calls)}"
        self._cursors[token] = offset + len(page)
        return JsonResponse(status=200, msg="OK", json={
            "_scroll_id": token,
            "took": 2,
            "hits": {"total": {"value": len(self.ids), "relation": "eq"},
                     "hits": [{"_id": doc_id} for doc_id in page]},
        })

    def delete_json(self, url: str, body: str) -> JsonResponse:
        self.cleared.append((url, json.loads(body)))
        return JsonResponse(status=200, msg="OK", json={"succeeded": True})

    def expire_cursors(self) -> None:
        self._cursors.clear()

    def close(self) -> None:
        self.closed = True


class RecordingHandler:
    """httpx.MockTransport handler returning canned responses and recording requests."""

    def __init__(self, respond: Callable[[httpx.Request], httpx.Response]):
        self.respond = respond
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.respond(request)

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]

    def last_json(self):
        return json.loads(self.last.content)


@pytest.fixture
def collection_ids():
    """25 ids: pages of 10, 10 and 5 at batch size 10."""
    return [f"doc-{i:02d}" for i in range(25)]


@pytest.fixture
def scroll_transport(collection_ids):
    return FakeScrollTransport(collection_ids)


@pytest.fixture
def make_es_client():
    """Build an ESClient whose HTTP calls go to an httpx.MockTransport."""
    def _make(respond: Callable[[httpx.Request], httpx.Response], url: str = "http://localhost:9200/books"):
        handler = RecordingHandler(respond)
        transport = HttpJsonTransport(client=httpx.Client(transport=httpx.MockTransport(handler)))
        return ESClient(url, transport=transport), handler
    return _make
