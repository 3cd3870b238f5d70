"""
Background export of every document id in a collection via the scroll API.
"""

import json
import logging
import queue
import threading
from typing import Any, Optional, Set

from .es_wire import ID_FIELD, current_millis, parse_search_response
from .exceptions import SearchResponseParseException, SearchTransportException

logger = logging.getLogger(__name__)


class _EndOfStream:
    def __repr__(self) -> str:
        return "END_OF_STREAM"


# Published once after the last batch, whether the export finished or failed.
END_OF_STREAM = _EndOfStream()


def publish_batch(
    ids_queue: "queue.Queue",
    batch: Any,
    timeout: float = 1.0,
    cancelled: Optional[threading.Event] = None
) -> bool:
    """Put batch on the queue, retrying every timeout seconds while it is full.

    Returns False only if cancelled is set before the batch is accepted.
    """
    while cancelled is None or not cancelled.is_set():
        try:
            ids_queue.put(batch, timeout=timeout)
            logger.debug(f"id adder: added batch, queue size {ids_queue.qsize()}")
            return True
        except queue.Full:
            logger.debug("waiting to add")
    return False


class ScrollExporter:
    """Pages through a collection with a scroll cursor and publishes id batches.

    Init opens the cursor with a match-all search; Paging publishes each
    non-empty page and asks for the next one with the most recent cursor
    token; an empty page ends the run. Transport or parse failures end it too
    and are kept on `error`. END_OF_STREAM follows the last batch unless the
    run was stopped.
    """

    def __init__(
        self,
        transport,
        url: str,
        es_base: str,
        ids_queue: "queue.Queue",
        batch_size: int,
        scroll_keep_alive: str = "10m",
        continuation_keep_alive: str = "1m",
        enqueue_timeout: float = 1.0,
        id_field: str = ID_FIELD
    ):
        """Initialize exporter; url is the collection url, es_base the engine root, both ending in '/'."""
        if batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self.transport = transport
        self.url = url
        self.es_base = es_base
        self.ids_queue = ids_queue
        self.batch_size = batch_size
        self.scroll_keep_alive = scroll_keep_alive
        self.continuation_keep_alive = continuation_keep_alive
        self.enqueue_timeout = enqueue_timeout
        self.id_field = id_field

        self.error: Optional[BaseException] = None
        self.ids_exported = 0
        self.batches_published = 0
        self.done = threading.Event()
        self._cancelled = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> "ScrollExporter":
        """Run the export on a daemon thread and return immediately."""
        if self._thread is not None:
            raise RuntimeError("Exporter already started")
        self._thread = threading.Thread(target=self.run, name="scroll-exporter", daemon=True)
        self._thread.start()
        logger.info(f"Started id export from {self.url} with batch size {self.batch_size}")
        return self

    def stop(self) -> None:
        """Ask the export to stop; a blocked enqueue gives up at its next attempt."""
        logger.info("Stopping id export")
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Join the export thread; True once the run reached a terminal state."""
        if self._thread is not None:
            self._thread.join(timeout)
        return self.done.wait(0 if self._thread is not None else timeout)

    def run(self) -> None:
        """Export loop; runs on the calling thread when not started via start()."""
        scroll_id: Optional[str] = None
        try:
            root = self._open_scroll()
            while not self.cancelled:
                scroll_id = self._scroll_id(root)
                result_set = parse_search_response(root, current_millis(), self.id_field)
                if len(result_set) == 0:
                    logger.info(
                        f"Id export complete: {self.ids_exported} ids in {self.batches_published} batches")
                    break

                batch: Set[str] = set(result_set.ids)
                if not publish_batch(self.ids_queue, batch, self.enqueue_timeout, self._cancelled):
                    break
                self.batches_published += 1
                self.ids_exported += len(batch)
                root = self._next_page(scroll_id)
        except Exception as e:
            self.error = e
            logger.exception(f"Id export failed after {self.ids_exported} ids: {e}")
        finally:
            if scroll_id is not None:
                self._clear_scroll(scroll_id)
            if not self.cancelled:
                publish_batch(self.ids_queue, END_OF_STREAM, self.enqueue_timeout, self._cancelled)
            self.done.set()

    def _open_scroll(self) -> Any:
        request = {
            "query": {"match_all": {}},
            "size": str(self.batch_size),
            "stored_fields": [],
        }
        url = f"{self.url}_search?scroll={self.scroll_keep_alive}"
        return self._post(url, request)

    def _next_page(self, scroll_id: str) -> Any:
        request = {"scroll": self.continuation_keep_alive, "scroll_id": scroll_id}
        return self._post(f"{self.es_base}_search/scroll", request)

    def _post(self, url: str, request: dict) -> Any:
        response = self.transport.post_json(url, json.dumps(request))
        if response.status != 200:
            raise SearchTransportException(response.msg, status=response.status)
        return response.json

    @staticmethod
    def _scroll_id(root: Any) -> str:
        scroll_id = root.get("_scroll_id") if isinstance(root, dict) else None
        if not isinstance(scroll_id, str) or not scroll_id.strip():
            raise SearchResponseParseException("Scroll response has no '_scroll_id'")
        return scroll_id

    def _clear_scroll(self, scroll_id: str) -> None:
        """Best effort; an uncleared cursor expires after its keep-alive."""
        try:
            response = self.transport.delete_json(
                f"{self.es_base}_search/scroll", json.dumps({"scroll_id": [scroll_id]}))
            if response.status != 200:
                logger.warning(f"Could not clear scroll: {response.msg}")
        except SearchTransportException as e:
            logger.warning(f"Could not clear scroll: {e}")
