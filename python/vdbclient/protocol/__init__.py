"""
Protocol definitions for vdbclient

Enumerations shared by the schema, request and result layers, plus the
pydantic models of the HTTP/JSON wire messages. Every wire model uses the
server's camelCase field names as aliases; serialize with ``to_wire()``.
"""

from enum import Enum, IntEnum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class DataType(str, Enum):
    """Field data types"""
    BOOL = "Bool"
    INT8 = "Int8"
    INT16 = "Int16"
    INT32 = "Int32"
    INT64 = "Int64"
    FLOAT = "Float"
    DOUBLE = "Double"
    VARCHAR = "VarChar"
    JSON = "JSON"
    FLOAT_VECTOR = "FloatVector"

    @property
    def is_vector(self) -> bool:
        return self is DataType.FLOAT_VECTOR

    @property
    def is_integer(self) -> bool:
        return self in (DataType.INT8, DataType.INT16, DataType.INT32, DataType.INT64)

    @property
    def is_scalar(self) -> bool:
        return not self.is_vector


class IndexType(str, Enum):
    """Index families"""
    # vector (approximate nearest neighbor) indexes
    FLAT = "FLAT"
    IVF_FLAT = "IVF_FLAT"
    IVF_SQ8 = "IVF_SQ8"
    IVF_PQ = "IVF_PQ"
    HNSW = "HNSW"
    DISKANN = "DISKANN"
    AUTOINDEX = "AUTOINDEX"
    # scalar indexes
    TRIE = "Trie"
    STL_SORT = "STL_SORT"
    INVERTED = "INVERTED"

    @property
    def is_vector_index(self) -> bool:
        return self in _VECTOR_INDEXES


_VECTOR_INDEXES = frozenset({
    IndexType.FLAT,
    IndexType.IVF_FLAT,
    IndexType.IVF_SQ8,
    IndexType.IVF_PQ,
    IndexType.HNSW,
    IndexType.DISKANN,
})


class MetricType(str, Enum):
    """Vector similarity metric types"""
    L2 = "L2"
    IP = "IP"
    COSINE = "COSINE"


class ConsistencyLevel(str, Enum):
    """Read guarantees for query and search"""
    STRONG = "Strong"
    SESSION = "Session"
    BOUNDED = "Bounded"
    EVENTUALLY = "Eventually"
    CUSTOMIZED = "Customized"


class LoadState(str, Enum):
    """Serving state of a collection"""
    NOT_EXIST = "LoadStateNotExist"
    NOT_LOADED = "LoadStateNotLoad"
    LOADING = "LoadStateLoading"
    LOADED = "LoadStateLoaded"


class ErrorCode(IntEnum):
    """Error codes carried in the response envelope"""
    SUCCESS = 0
    UNEXPECTED = 1
    SERVICE_UNAVAILABLE = 2
    COLLECTION_NOT_FOUND = 100
    COLLECTION_NOT_LOADED = 101
    COLLECTION_ALREADY_EXISTS = 102
    INDEX_NOT_FOUND = 700
    FIELD_NOT_FOUND = 701
    UNSUPPORTED_INDEX_TYPE = 702
    INVALID_SCHEMA = 1100
    SCHEMA_MISMATCH = 1101
    DIMENSION_MISMATCH = 1102
    INVALID_FILTER = 1103
    INVALID_PARAMETER = 1104
    AUTHENTICATION_FAILED = 1800


class StatusCode(str, Enum):
    """Outcome category of a call"""
    OK = "ok"
    TRANSIENT = "transient"
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    ALREADY_EXISTS = "already_exists"
    UNAUTHENTICATED = "unauthenticated"
    FAILED_PRECONDITION = "failed_precondition"


class Status(BaseModel):
    """Outcome of a call"""
    code: StatusCode = Field(default=StatusCode.OK, description="Outcome category")
    message: str = Field(default="", description="Human readable detail")

    @property
    def ok(self) -> bool:
        return self.code is StatusCode.OK

    def __bool__(self) -> bool:
        return self.ok


COUNT_FIELD = "count(*)"


class WireModel(BaseModel):
    """Base for messages exchanged with the server"""
    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Envelope(WireModel):
    """Response envelope"""
    code: int = Field(..., description="0 on success, an ErrorCode otherwise")
    message: str = Field(default="", description="Error message")
    data: Any = Field(default=None, description="Operation payload")


class DatabaseRequest(WireModel):
    """Request scoped to a database"""
    db_name: Optional[str] = Field(default=None, alias="dbName")


class CollectionRequest(DatabaseRequest):
    """Request naming a single collection"""
    collection_name: str = Field(..., alias="collectionName")


class CreateCollectionRequest(CollectionRequest):
    """Collection creation request"""
    schema_: Dict[str, Any] = Field(..., alias="schema")
    description: Optional[str] = Field(default=None)
    consistency_level: ConsistencyLevel = Field(
        default=ConsistencyLevel.BOUNDED, alias="consistencyLevel"
    )


class LoadRequest(CollectionRequest):
    """Collection load request"""
    replica_number: int = Field(default=1, alias="replicaNumber")


class IndexParam(WireModel):
    """One index to build"""
    field_name: str = Field(..., alias="fieldName")
    index_name: str = Field(..., alias="indexName")
    index_type: IndexType = Field(..., alias="indexType")
    metric_type: Optional[MetricType] = Field(default=None, alias="metricType")
    params: Dict[str, str] = Field(default_factory=dict)


class CreateIndexRequest(CollectionRequest):
    """Index creation request"""
    index_params: List[IndexParam] = Field(..., alias="indexParams")


class IndexRequest(CollectionRequest):
    """Request naming an index"""
    index_name: str = Field(..., alias="indexName")


class InsertRequest(CollectionRequest):
    """Row insertion request"""
    data: List[Dict[str, Any]] = Field(..., description="Rows to insert")


class DeleteRequest(CollectionRequest):
    """Delete by filter request"""
    filter: str = Field(..., description="Boolean filter expression")


class QueryRequest(CollectionRequest):
    """Scalar query request"""
    filter: str = Field(default="", description="Boolean filter expression")
    output_fields: List[str] = Field(default_factory=list, alias="outputFields")
    limit: Optional[int] = Field(default=None)
    offset: Optional[int] = Field(default=None)
    consistency_level: Optional[ConsistencyLevel] = Field(default=None, alias="consistencyLevel")


class SearchParams(WireModel):
    """Search tuning"""
    metric_type: Optional[MetricType] = Field(default=None, alias="metricType")
    params: Dict[str, Any] = Field(default_factory=dict)


class SearchRequest(CollectionRequest):
    """Similarity search request"""
    data: List[List[float]] = Field(..., description="Query vectors")
    anns_field: str = Field(..., alias="annsField")
    limit: int = Field(default=10)
    filter: str = Field(default="")
    output_fields: List[str] = Field(default_factory=list, alias="outputFields")
    consistency_level: Optional[ConsistencyLevel] = Field(default=None, alias="consistencyLevel")
    search_params: SearchParams = Field(default_factory=SearchParams, alias="searchParams")


class VersionInfo(WireModel):
    """Server version response"""
    version: str = Field(..., description="Server version")
    api_version: str = Field(..., alias="apiVersion")


class HealthStatus(WireModel):
    """Health check response"""
    is_healthy: bool = Field(..., alias="isHealthy")
    reasons: List[str] = Field(default_factory=list)


class CollectionPresence(WireModel):
    """Collection existence response"""
    has: bool = Field(...)


class CollectionStats(WireModel):
    """Collection statistics"""
    row_count: int = Field(..., alias="rowCount")


class LoadStateInfo(WireModel):
    """Load state response"""
    load_state: LoadState = Field(..., alias="loadState")
    load_progress: Optional[int] = Field(default=None, alias="loadProgress")


class IndexInfo(WireModel):
    """Index description"""
    field_name: str = Field(..., alias="fieldName")
    index_name: str = Field(..., alias="indexName")
    index_type: IndexType = Field(..., alias="indexType")
    metric_type: Optional[MetricType] = Field(default=None, alias="metricType")
    params: Dict[str, str] = Field(default_factory=dict)


class InsertInfo(WireModel):
    """Insert response"""
    insert_count: int = Field(..., alias="insertCount")
    insert_ids: List[Any] = Field(default_factory=list, alias="insertIds")


class DeleteInfo(WireModel):
    """Delete response"""
    delete_count: int = Field(default=0, alias="deleteCount")
