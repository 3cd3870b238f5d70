"""
Abstract search client interface used by the evaluation tooling.
"""

import queue
from abc import ABC, abstractmethod
from typing import Collection, Iterable, List, Optional, Set

from .models import FacetResult, QueryRequest, ResultSet, StoredDocument


class SearchClient(ABC):
    """Engine-specific connector: queries, facets, documents and id export."""

    @abstractmethod
    def search(self, query: QueryRequest) -> ResultSet:
        """Run a query and return ranked document ids."""
        pass

    @abstractmethod
    def facet(self, query: QueryRequest) -> FacetResult:
        """Count documents per value of query.facet_field."""
        pass

    @abstractmethod
    def add_documents(self, documents: List[StoredDocument]) -> None:
        pass

    @abstractmethod
    def get_docs(
        self,
        ids: Iterable[str],
        white_list_fields: Collection[str] = (),
        black_list_fields: Collection[str] = ()
    ) -> List[StoredDocument]:
        """Fetch stored documents by id, filtering fields."""
        pass

    @abstractmethod
    def get_copy_fields(self) -> Set[str]:
        """Destination fields of copy directives in the collection mapping."""
        pass

    @abstractmethod
    def get_id_field(self) -> str:
        pass

    @abstractmethod
    def start_loading_ids(
        self,
        ids_queue: "queue.Queue",
        batch_size: int,
        copier_threads: int = 1,
        filter_queries: Optional[Set[str]] = None
    ):
        """Start streaming every id in the collection into ids_queue; returns immediately."""
        pass

    @abstractmethod
    def delete_all(self) -> None:
        pass
