"""
Tests for the background scroll export and its enqueue backpressure.
"""

import queue
import threading
import time

import pytest

from conftest import FakeScrollTransport
from src.packages.search_client import (
    END_OF_STREAM,
    ScrollExporter,
    SearchResponseParseException,
    SearchTransportException,
    publish_batch,
)

URL = "http://localhost:9200/books/"
ES_BASE = "http://localhost:9200/"


def make_exporter(transport, ids_queue, batch_size=10, **kwargs):
    kwargs.setdefault("enqueue_timeout", 0.05)
    return ScrollExporter(transport, URL, ES_BASE, ids_queue, batch_size, **kwargs)


def drain(ids_queue, delay=0.0, timeout=5.0):
    """Consume batches until END_OF_STREAM, sleeping delay between reads."""
    batches = []
    while True:
        batch = ids_queue.get(timeout=timeout)
        if batch is END_OF_STREAM:
            return batches
        batches.append(batch)
        time.sleep(delay)


class StubQueue:
    """Queue whose put reports Full a fixed number of times."""

    def __init__(self, full_attempts):
        self.full_attempts = full_attempts
        self.timeouts = []
        self.items = []

    def put(self, item, timeout=None):
        self.timeouts.append(timeout)
        if len(self.timeouts) <= self.full_attempts:
            raise queue.Full
        self.items.append(item)

    def qsize(self):
        return len(self.items)


class TestPublishBatch:
    """Test publish_batch."""

    def test_retries_with_timeout_until_accepted(self):
        stub = StubQueue(full_attempts=3)

        assert publish_batch(stub, {"a"}, timeout=1.0) is True

        assert stub.timeouts == [1.0, 1.0, 1.0, 1.0]
        assert stub.items == [{"a"}]

    def test_waits_for_consumer_without_dropping(self):
        ids_queue = queue.Queue(maxsize=1)
        ids_queue.put({"first"})
        threading.Timer(0.2, ids_queue.get).start()

        started = time.monotonic()
        assert publish_batch(ids_queue, {"second"}, timeout=0.05) is True

        assert time.monotonic() - started >= 0.15
        assert ids_queue.get_nowait() == {"second"}

    def test_gives_up_when_cancelled(self):
        ids_queue = queue.Queue(maxsize=1)
        ids_queue.put({"first"})
        cancelled = threading.Event()
        threading.Timer(0.1, cancelled.set).start()

        assert publish_batch(ids_queue, {"second"}, timeout=0.05, cancelled=cancelled) is False
        assert ids_queue.get_nowait() == {"first"}


class TestScrollExporter:
    """Test ScrollExporter paging, termination and failure handling."""

    def test_delivers_every_id_through_capacity_one_queue(self, scroll_transport, collection_ids):
        ids_queue = queue.Queue(maxsize=1)
        exporter = make_exporter(scroll_transport, ids_queue).start()

        batches = drain(ids_queue, delay=0.05)

        assert exporter.wait(5)
        assert exporter.error is None
        assert [len(b) for b in batches] == [10, 10, 5]
        assert sorted(doc_id for b in batches for doc_id in b) == collection_ids
        assert exporter.ids_exported == 25
        assert exporter.batches_published == 3

    def test_pages_in_engine_order(self, scroll_transport, collection_ids):
        ids_queue = queue.Queue()
        make_exporter(scroll_transport, ids_queue).run()

        batches = drain(ids_queue)

        assert batches == [set(collection_ids[0:10]), set(collection_ids[10:20]), set(collection_ids[20:25])]

    def test_request_protocol(self, scroll_transport):
        make_exporter(scroll_transport, queue.Queue()).run()

        (open_url, open_request), *continuations = scroll_transport.calls
        assert open_url == URL + "_search?scroll=10m"
        assert open_request == {"query": {"match_all": {}}, "size": "10", "stored_fields": []}
        # one continuation per non-empty page, the last one returns the empty page
        assert len(continuations) == 3
        for url, request in continuations:
            assert url == ES_BASE + "_search/scroll"
            assert request["scroll"] == "1m"

    def test_each_page_uses_previous_cursor(self, scroll_transport):
        # the fake rejects any token except the latest one, so a clean run proves the chain
        exporter = make_exporter(scroll_transport, queue.Queue())
        exporter.run()

        assert exporter.error is None
        tokens = [request["scroll_id"] for _, request in scroll_transport.calls[1:]]
        assert len(set(tokens)) == len(tokens)

    def test_clears_scroll_when_done(self, scroll_transport):
        make_exporter(scroll_transport, queue.Queue()).run()

        assert len(scroll_transport.cleared) == 1
        url, body = scroll_transport.cleared[0]
        assert url == ES_BASE + "_search/scroll"
        # token returned with the final, empty page
        assert body == {"scroll_id": ["cursor-4"]}

    def test_empty_collection_publishes_only_end_marker(self):
        ids_queue = queue.Queue()
        exporter = make_exporter(FakeScrollTransport([]), ids_queue)

        exporter.run()

        assert ids_queue.get_nowait() is END_OF_STREAM
        assert ids_queue.empty()
        assert exporter.done.is_set()

    def test_duplicate_ids_in_page_collapse(self):
        ids_queue = queue.Queue()
        make_exporter(FakeScrollTransport(["a", "a", "b"]), ids_queue).run()

        assert drain(ids_queue) == [{"a", "b"}]

    def test_open_failure_recorded(self):
        ids_queue = queue.Queue()
        transport = FakeScrollTransport(["a"], open_status=503)
        exporter = make_exporter(transport, ids_queue).start()

        assert exporter.wait(5)
        assert isinstance(exporter.error, SearchTransportException)
        assert exporter.error.status == 503
        assert drain(ids_queue) == []
        assert transport.cleared == []

    def test_expired_cursor_is_fatal(self, collection_ids):
        ids_queue = queue.Queue()

        class ExpiringTransport(FakeScrollTransport):
            def post_json(self, url, body, content_type="application/json"):
                if len(self.calls) == 1:
                    self.expire_cursors()
                return super().post_json(url, body, content_type)

        exporter = make_exporter(ExpiringTransport(collection_ids), ids_queue)
        exporter.run()

        assert isinstance(exporter.error, SearchTransportException)
        assert exporter.error.status == 404
        assert drain(ids_queue) == [set(collection_ids[:10])]

    def test_missing_scroll_id_is_parse_failure(self):
        ids_queue = queue.Queue()

        class NoCursorTransport(FakeScrollTransport):
            def post_json(self, url, body, content_type="application/json"):
                response = super().post_json(url, body, content_type)
                response.json.pop("_scroll_id")
                return response

        exporter = make_exporter(NoCursorTransport(["a"]), ids_queue)
        exporter.run()

        assert isinstance(exporter.error, SearchResponseParseException)
        assert drain(ids_queue) == []

    def test_stop_aborts_blocked_enqueue(self, scroll_transport):
        ids_queue = queue.Queue(maxsize=1)
        exporter = make_exporter(scroll_transport, ids_queue).start()

        deadline = time.monotonic() + 5
        while not ids_queue.full() and time.monotonic() < deadline:
            time.sleep(0.01)
        exporter.stop()

        assert exporter.wait(5)
        assert exporter.cancelled
        assert exporter.error is None
        assert ids_queue.get_nowait() is not END_OF_STREAM
        assert ids_queue.empty()

    def test_start_twice_rejected(self, scroll_transport):
        exporter = make_exporter(scroll_transport, queue.Queue()).start()

        with pytest.raises(RuntimeError):
            exporter.start()
        assert exporter.wait(5)

    def test_wait_joins_thread(self, scroll_transport):
        ids_queue = queue.Queue()
        exporter = make_exporter(scroll_transport, ids_queue).start()

        assert exporter.wait(5)
        assert not exporter._thread.is_alive()

    def test_wait_times_out_while_blocked(self, scroll_transport):
        ids_queue = queue.Queue(maxsize=1)
        exporter = make_exporter(scroll_transport, ids_queue).start()

        assert exporter.wait(0.2) is False
        exporter.stop()
        assert exporter.wait(5)

    def test_batch_size_must_be_positive(self, scroll_transport):
        with pytest.raises(ValueError):
            make_exporter(scroll_transport, queue.Queue(), batch_size=0)
