"""
Result types returned by the client
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from vdbclient.exceptions import TransientError
from vdbclient.protocol import COUNT_FIELD


class InsertResult(BaseModel):
    """Outcome of an insert"""
    insert_count: int = Field(..., description="Number of rows inserted")
    ids: List[Any] = Field(default_factory=list, description="Primary keys of inserted rows")


class QueryResults(BaseModel):
    """
    Rows returned by a query

    A query whose output fields are only ``count(*)`` yields one aggregate
    row instead of entity rows; ``count`` reads it.
    """
    rows: List[Dict[str, Any]] = Field(default_factory=list, description="Output rows")

    @property
    def is_count(self) -> bool:
        return len(self.rows) == 1 and set(self.rows[0]) == {COUNT_FIELD}

    @property
    def count(self) -> Optional[int]:
        if not self.is_count:
            return None
        return int(self.rows[0][COUNT_FIELD])

    @property
    def row_count(self) -> int:
        if self.is_count:
            return self.count
        return len(self.rows)

    def __len__(self) -> int:
        return len(self.rows)

    def __iter__(self):
        return iter(self.rows)


class Hit(BaseModel):
    """One ranked match"""
    id: Any = Field(..., description="Primary key")
    score: float = Field(..., description="Distance or similarity, per the metric")
    fields: Dict[str, Any] = Field(default_factory=dict, description="Requested output fields")

    def to_row(self) -> Dict[str, Any]:
        row = {"id": self.id, "score": self.score}
        row.update(self.fields)
        return row


class SearchResult(BaseModel):
    """Ranked matches for one query vector"""
    hits: List[Hit] = Field(default_factory=list)

    @property
    def ids(self) -> List[Any]:
        return [hit.id for hit in self.hits]

    @property
    def scores(self) -> List[float]:
        return [hit.score for hit in self.hits]

    def output_rows(self) -> List[Dict[str, Any]]:
        return [hit.to_row() for hit in self.hits]

    def __len__(self) -> int:
        return len(self.hits)


class SearchResults(BaseModel):
    """One ``SearchResult`` per query vector, in request order"""
    results: List[SearchResult] = Field(default_factory=list)

    @classmethod
    def from_wire(cls, data: List[List[Dict[str, Any]]]) -> "SearchResults":
        groups = []
        try:
            for group in data or []:
                hits = []
                for item in group:
                    item = dict(item)
                    hit_id = item.pop("id")
                    score = item.pop("distance")
                    hits.append(Hit(id=hit_id, score=score, fields=item))
                groups.append(SearchResult(hits=hits))
        except (KeyError, TypeError, ValueError) as e:
            raise TransientError(f"unreadable search results from server: {e}") from e
        return cls(results=groups)

    def __len__(self) -> int:
        return len(self.results)

    def __iter__(self):
        return iter(self.results)

    def __getitem__(self, index: int) -> SearchResult:
        return self.results[index]
