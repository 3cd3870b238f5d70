"""
Elasticsearch implementation of the search client.
"""

import json
import logging
import queue
from typing import Any, Collection, Iterable, List, Optional, Set, Tuple

from .es_wire import (
    COPY_TO,
    ID_FIELD,
    build_bulk_index_body,
    build_facet_request,
    build_multi_get_request,
    build_search_query,
    collect_values_for_key,
    current_millis,
    parse_facet_response,
    parse_multi_get_response,
    parse_search_response,
    source_filter_param,
)
from .exceptions import SearchClientConfigurationError, SearchClientException, SearchTransportException
from .models import FacetResult, JsonResponse, QueryRequest, ResultSet, StoredDocument
from .scroll_exporter import ScrollExporter
from .search_client import SearchClient
from .transport import NDJSON_CONTENT_TYPE, HttpJsonTransport

logger = logging.getLogger(__name__)


def parse_connection_string(connection_string: str) -> Tuple[str, str, str]:
    """
    Split a connection string into (url, es_base, collection).
    Expected format: http://localhost:9200/my_collection (trailing slash optional)
    url and es_base always end in '/', collection has none.
    """
    if "://" not in connection_string:
        raise SearchClientConfigurationError(
            "Invalid connection string. Expected format: http://localhost:9200/my_collection")

    url = connection_string if connection_string.endswith("/") else connection_string + "/"
    scheme, rest = url.split("://", 1)
    base = rest[:-1]
    index_of = base.rfind("/")
    if index_of < 0:
        raise SearchClientConfigurationError(
            "can't find / before collection name; should be, e.g.: http://localhost:9200/my_collection")

    collection = base[index_of + 1:]
    if not collection or not base[:index_of]:
        raise SearchClientConfigurationError(
            f"Missing host or collection name in connection string: {connection_string}")

    es_base = f"{scheme}://{base[:index_of + 1]}"
    return url, es_base, collection


class ESClient(SearchClient):
    """Search client talking to a single Elasticsearch collection."""

    def __init__(
        self,
        url: str,
        transport=None,
        scroll_keep_alive: str = "10m",
        continuation_keep_alive: str = "1m",
        enqueue_timeout: float = 1.0
    ):
        """Initialize client for a connection string such as http://localhost:9200/my_collection."""
        self.url, self.es_base, self.es_collection = parse_connection_string(url)
        self.transport = transport or HttpJsonTransport()
        self.scroll_keep_alive = scroll_keep_alive
        self.continuation_keep_alive = continuation_keep_alive
        self.enqueue_timeout = enqueue_timeout
        logger.info(f"Initialized ESClient for collection '{self.es_collection}' at {self.es_base}")

    def search(self, query: QueryRequest) -> ResultSet:
        """Run a best-fields multi_match search and scrape the ranked ids."""
        start = current_millis()
        request = build_search_query(query)
        root = self._post_checked(f"{self.url}_search", json.dumps(request)).json
        result_set = parse_search_response(root, start, self.get_id_field())
        logger.debug(
            f"Search '{query.query}' returned {len(result_set)} ids of {result_set.total_hits} in {result_set.elapsed} ms")
        return result_set

    def facet(self, query: QueryRequest) -> FacetResult:
        """Count documents per value of query.facet_field, including a 'null' bucket."""
        request = build_facet_request(query)
        root = self._post_checked(f"{self.url}_search", json.dumps(request)).json
        return parse_facet_response(root, query.facet_field)

    def add_documents(self, documents: List[StoredDocument]) -> None:
        """Bulk index documents; an item-level failure raises."""
        if len(documents) == 0:
            return
        body = build_bulk_index_body(documents)
        response = self._post_checked(f"{self.url}_bulk", body, NDJSON_CONTENT_TYPE)
        root = response.json
        if isinstance(root, dict) and root.get("errors"):
            raise SearchClientException(f"Bulk index failed: {self._first_bulk_error(root)}")
        logger.info(f"Indexed {len(documents)} documents into '{self.es_collection}'")

    @staticmethod
    def _first_bulk_error(root: dict) -> Any:
        for item in root.get("items", []):
            for action in item.values():
                if isinstance(action, dict) and "error" in action:
                    return action["error"]
        return "unknown error"

    def get_docs(
        self,
        ids: Iterable[str],
        white_list_fields: Collection[str] = (),
        black_list_fields: Collection[str] = ()
    ) -> List[StoredDocument]:
        """Fetch documents with _mget; white_list_fields limits the returned _source."""
        request = build_multi_get_request(ids)
        url = f"{self.url}_doc/_mget{source_filter_param(white_list_fields)}"
        root = self._post_checked(url, json.dumps(request)).json
        return parse_multi_get_response(root, black_list_fields)

    def get_copy_fields(self) -> Set[str]:
        """Destination fields of every copy_to directive in the collection template."""
        try:
            root = self.transport.get_json(f"{self.es_base}_template/{self.es_collection}")
        except SearchTransportException as e:
            if e.status == 404:
                logger.debug(f"No template for collection '{self.es_collection}'")
                return set()
            raise
        if not isinstance(root, dict):
            return set()
        collection_root = root.get(self.es_collection)
        if not isinstance(collection_root, dict):
            return set()
        mappings = collection_root.get("mappings")
        if not isinstance(mappings, dict):
            return set()
        return collect_values_for_key(mappings, COPY_TO)

    def get_id_field(self) -> str:
        return ID_FIELD

    def start_loading_ids(
        self,
        ids_queue: "queue.Queue",
        batch_size: int,
        copier_threads: int = 1,
        filter_queries: Optional[Set[str]] = None
    ) -> ScrollExporter:
        """Start a background scroll export into ids_queue and return the running exporter.

        copier_threads and filter_queries are ignored by this connector.
        """
        if filter_queries:
            logger.debug(f"Ignoring filter queries for Elasticsearch id export: {filter_queries}")
        exporter = ScrollExporter(
            transport=self.transport,
            url=self.url,
            es_base=self.es_base,
            ids_queue=ids_queue,
            batch_size=batch_size,
            scroll_keep_alive=self.scroll_keep_alive,
            continuation_keep_alive=self.continuation_keep_alive,
            enqueue_timeout=self.enqueue_timeout,
            id_field=self.get_id_field(),
        )
        return exporter.start()

    def delete_all(self) -> None:
        """Delete every document in the collection."""
        request = {"query": {"match_all": {}}}
        self._post_checked(f"{self.url}_delete_by_query", json.dumps(request))
        logger.info(f"Deleted all documents from '{self.es_collection}'")

    def _post_checked(self, url: str, body: str, content_type: Optional[str] = None) -> JsonResponse:
        if content_type is None:
            response = self.transport.post_json(url, body)
        else:
            response = self.transport.post_json(url, body, content_type)
        if response.status != 200:
            logger.error(f"POST {url} returned {response.status}: {response.msg}")
            raise SearchTransportException(response.msg, status=response.status)
        return response

    def close(self) -> None:
        self.transport.close()
