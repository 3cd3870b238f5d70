"""
Translation between the engine-independent query model and Elasticsearch JSON.

Every function here is pure: request builders return plain dicts (or NDJSON
text) and response parsers turn decoded JSON into model objects. Required
response containers that are missing raise SearchResponseParseException;
informational values (timings, totals, counts) degrade to None.
"""

import json
import logging
import time
from typing import Any, Dict, Iterable, List, Optional, Set
from urllib.parse import quote_plus

from .exceptions import SearchResponseParseException
from .models import FacetResult, QueryRequest, ResultSet, StoredDocument

logger = logging.getLogger(__name__)

ID_FIELD = "_id"
DOC_TYPE = "_doc"
MISSING_BUCKET_KEY = "null"
COPY_TO = "copy_to"


def current_millis() -> int:
    """Wall clock in milliseconds."""
    return int(time.time() * 1000)


def build_search_query(request: QueryRequest, fields_to_retrieve: Iterable[str] = ()) -> Dict[str, Any]:
    """Build a best-fields multi_match search request.

    Final request structure:
    {
        "query": {
            "multi_match": {
                "query": "...",
                "type": "best_fields",
                "fields": [...],          # request.parameters["qf"]
                "tie_breaker": 0.3        # only if request.parameters["tie"] is set
            }
        },
        "_source": [...],                 # only if fields_to_retrieve is non-empty
        "size": 10                        # only if request.num_results is set
    }
    """
    multi_match: Dict[str, Any] = {
        "query": request.query,
        "type": "best_fields",
        "fields": request.parameters.get("qf"),
    }
    tie = request.parameters.get("tie")
    if tie is not None:
        multi_match["tie_breaker"] = tie

    query_map: Dict[str, Any] = {"query": {"multi_match": multi_match}}

    fields = list(fields_to_retrieve)
    if len(fields) > 0:
        query_map["_source"] = fields
    if request.num_results is not None:
        query_map["size"] = request.num_results
    return query_map


def parse_search_response(root: Any, start: int, id_field: str = ID_FIELD) -> ResultSet:
    """Scrape ids, total hits and timings from a search response.

    start is the wall clock (ms) taken before the request was sent, so elapsed
    covers the whole round trip.
    """
    hits = _require_object(root, "hits")
    query_time = _get_int(root, "took")
    total_hits = _get_total(hits)

    hit_array = hits.get("hits")
    if not isinstance(hit_array, list):
        raise SearchResponseParseException("Search response has no 'hits.hits' array")

    ids: List[str] = []
    for hit in hit_array:
        doc_id = _get_string(hit, id_field)
        if doc_id.strip():
            ids.append(doc_id)

    elapsed = current_millis() - start
    return ResultSet(total_hits=total_hits, query_time=query_time, elapsed=elapsed, ids=ids)


def build_facet_request(request: QueryRequest) -> Dict[str, Any]:
    """Build a zero-size search carrying a terms aggregation on the facet field."""
    facet_field = request.facet_field
    if not facet_field:
        raise ValueError("QueryRequest has no facet_field")
    facet_map: Dict[str, Any] = {
        "aggregations": {
            facet_field: {
                "terms": {
                    "field": facet_field,
                    "missing": MISSING_BUCKET_KEY,
                    "min_doc_count": "0",
                    "size": str(request.facet_limit),
                }
            }
        },
        "size": "0",
    }
    if not request.is_match_all():
        facet_map["query"] = build_search_query(request)["query"]
    return facet_map


def parse_facet_response(root: Any, facet_field: str) -> FacetResult:
    """Read total docs and bucket counts for facet_field."""
    total_docs = _get_total(root.get("hits") if isinstance(root, dict) else None)
    aggregations = _require_object(root, "aggregations")
    field_aggregation = aggregations.get(facet_field)
    if not isinstance(field_aggregation, dict):
        raise SearchResponseParseException(
            f"Facet response has no aggregation for field '{facet_field}'")

    buckets = field_aggregation.get("buckets")
    if not isinstance(buckets, list):
        raise SearchResponseParseException(
            f"Aggregation for field '{facet_field}' has no 'buckets' array")

    counts: Dict[str, Optional[int]] = {}
    for bucket in buckets:
        counts[_get_string(bucket, "key")] = _get_int(bucket, "doc_count")
    return FacetResult(total_docs=total_docs, counts=counts)


def build_multi_get_request(ids: Iterable[str]) -> Dict[str, Any]:
    """Body of an _mget request."""
    return {"ids": list(ids)}


def source_filter_param(white_list_fields: Iterable[str]) -> str:
    """'?_source=a%2Cb' query string for an allow-list, or '' when empty."""
    fields = sorted(white_list_fields)
    if len(fields) == 0:
        return ""
    return "?_source=" + quote_plus(",".join(fields))


def parse_multi_get_response(root: Any, black_list_fields: Iterable[str] = ()) -> List[StoredDocument]:
    """Turn an _mget response into StoredDocuments, skipping deny-listed fields."""
    if not isinstance(root, dict) or not isinstance(root.get("docs"), list):
        raise SearchResponseParseException("Multi-get response has no 'docs' array")

    black_list = set(black_list_fields)
    documents: List[StoredDocument] = []
    for doc in root["docs"]:
        doc_id = _get_string(doc, ID_FIELD)
        source = doc.get("_source") if isinstance(doc, dict) else None
        if not isinstance(source, dict):
            logger.debug(f"Skipping document '{doc_id}': not found or no _source")
            continue

        document = StoredDocument(id=doc_id)
        for name, value in source.items():
            if name in black_list:
                continue
            if isinstance(value, list):
                for element in value:
                    document.add_non_blank_field(name, _scalar_to_string(element))
            else:
                document.add_non_blank_field(name, _scalar_to_string(value))
        documents.append(document)
    return documents


def build_bulk_index_body(documents: Iterable[StoredDocument]) -> str:
    """NDJSON body of index action / source line pairs, in input order."""
    lines: List[str] = []
    for document in documents:
        fields = document.get_fields()
        reserved_id = fields.pop(ID_FIELD, None)
        doc_id = document.id or reserved_id
        if not doc_id:
            raise ValueError(f"Document has no id: {fields}")
        action = {"index": {"_type": DOC_TYPE, ID_FIELD: doc_id}}
        lines.append(json.dumps(action))
        lines.append(json.dumps(fields))
    return "".join(line + "\n" for line in lines)


def collect_values_for_key(tree: Any, key: str) -> Set[str]:
    """Every string found under key anywhere in a nested JSON value."""
    values: Set[str] = set()
    pending = [tree]
    while pending:
        node = pending.pop()
        if isinstance(node, dict):
            for k, v in node.items():
                if k == key:
                    values.update(_strings(v))
                else:
                    pending.append(v)
        elif isinstance(node, list):
            pending.extend(node)
    return values


def _require_object(root: Any, name: str) -> Dict[str, Any]:
    value = root.get(name) if isinstance(root, dict) else None
    if not isinstance(value, dict):
        raise SearchResponseParseException(f"Response has no '{name}' object")
    return value


def _get_total(hits: Any) -> Optional[int]:
    """hits.total is a number before ES 7 and {"value": n, ...} after."""
    if not isinstance(hits, dict):
        return None
    total = hits.get("total")
    if isinstance(total, dict):
        return _get_int(total, "value")
    return _get_int(hits, "total")


def _get_int(obj: Any, name: str) -> Optional[int]:
    if not isinstance(obj, dict):
        return None
    value = obj.get(name)
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        return None
    try:
        return int(value)
    except (ValueError, OverflowError):
        return None


def _get_string(obj: Any, name: str) -> str:
    if not isinstance(obj, dict):
        return ""
    return _scalar_to_string(obj.get(name)) or ""


def _scalar_to_string(value: Any) -> Optional[str]:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    return None


def _strings(value: Any) -> List[str]:
    if isinstance(value, list):
        return [s for s in (_scalar_to_string(v) for v in value) if s is not None]
    s = _scalar_to_string(value)
    return [s] if s is not None else []
