"""
Search client connectors

Translate engine-independent queries into a search engine's wire protocol and
stream a collection's ids to consumers through a bounded queue.
"""

from .es_client import ESClient, parse_connection_string
from .exceptions import (
    SearchClientConfigurationError,
    SearchClientException,
    SearchResponseParseException,
    SearchTransportException,
)
from .models import FacetResult, JsonResponse, QueryRequest, ResultSet, StoredDocument
from .scroll_exporter import END_OF_STREAM, ScrollExporter, publish_batch
from .search_client import SearchClient
from .transport import HttpJsonTransport

__all__ = [
    "QueryRequest",
    "ResultSet",
    "FacetResult",
    "StoredDocument",
    "JsonResponse",
    "SearchClient",
    "ESClient",
    "parse_connection_string",
    "HttpJsonTransport",
    "ScrollExporter",
    "publish_batch",
    "END_OF_STREAM",
    "SearchClientException",
    "SearchTransportException",
    "SearchResponseParseException",
    "SearchClientConfigurationError",
]
