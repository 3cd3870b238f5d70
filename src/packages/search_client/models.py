"""
Data models shared by search client connectors.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

WILDCARD_QUERY = "*:*"


class QueryRequest(BaseModel):
    """Engine-independent query: free text plus named parameters."""
    model_config = ConfigDict(frozen=True)

    query: str = Field(description="Free-text query")
    parameters: Dict[str, Any] = Field(
        default_factory=dict,
        description="Named parameters, e.g. 'qf' (query fields) and 'tie' (tie breaker)")
    facet_field: Optional[str] = Field(default=None, description="Field to facet on")
    facet_limit: int = Field(default=10, ge=0, description="Maximum number of facet buckets")
    num_results: Optional[int] = Field(default=None, ge=0, description="Page size of the search")

    def is_match_all(self) -> bool:
        """True when the query is blank or the wildcard sentinel."""
        return not self.query.strip() or self.query == WILDCARD_QUERY


@dataclass(frozen=True)
class ResultSet:
    """Ranked document ids from a single search. None means 'not reported'."""
    total_hits: Optional[int]
    query_time: Optional[int]  # engine reported, ms
    elapsed: int  # wall clock, ms
    ids: List[str]

    def __len__(self) -> int:
        return len(self.ids)


@dataclass(frozen=True)
class FacetResult:
    """Facet value -> document count."""
    total_docs: Optional[int]
    counts: Dict[str, Optional[int]]


@dataclass
class StoredDocument:
    """Document id plus multi-valued fields."""
    id: str = ""
    fields: Dict[str, List[str]] = field(default_factory=dict)

    def add_non_blank_field(self, name: str, value: Optional[str]) -> None:
        """Append a value under name; blank values are dropped."""
        if value is None or not str(value).strip():
            return
        self.fields.setdefault(name, []).append(str(value))

    def get_fields(self) -> Dict[str, Any]:
        """Fields as a JSON-ready mapping: one value -> scalar, several -> list."""
        return {
            name: values[0] if len(values) == 1 else list(values)
            for name, values in self.fields.items()
        }


@dataclass(frozen=True)
class JsonResponse:
    """Status, message and parsed body of an HTTP call."""
    status: int
    msg: str
    json: Any = None
