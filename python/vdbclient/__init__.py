# vdbclient Python Package
# A client SDK for a remote vector database service

"""
vdbclient Python package
======================

A client for a remote vector database, providing:
- Connection lifecycle management
- Collection schema and index management
- Row insertion and deletion
- Scalar queries and vector similarity search

Example usage:
--------------
import numpy as np
from vdbclient import (
    VectorDBClient, CollectionSchema, FieldSchema, IndexDesc,
    DataType, IndexType, MetricType, ConsistencyLevel,
)

schema = CollectionSchema(name="users")
schema.add_field(FieldSchema(name="user_id", data_type=DataType.INT64, is_primary=True))
schema.add_field(FieldSchema(name="user_face", data_type=DataType.FLOAT_VECTOR, dim=4))

with VectorDBClient("localhost", 19530, user="root", password="secret") as client:
    client.drop_collection_if_exists("users")
    client.create_collection(schema)
    client.create_index("users", IndexDesc(
        field_name="user_face", index_type=IndexType.IVF_FLAT,
        metric_type=MetricType.COSINE, params={"nlist": "100"},
    ))
    client.load_collection("users")
    client.insert("users", [{"user_id": 1, "user_face": np.random.rand(4)}])
    count = client.query("users", output_fields=["count(*)"],
                         consistency_level=ConsistencyLevel.STRONG).count
    results = client.search("users", np.random.rand(4), limit=5)
    print(count, results[0].ids)
"""

from .client import VectorDBClient, AsyncVectorDBClient
from .config import ConnectParams
from .exceptions import (
    VectorDBError,
    ConnectionError,
    AuthenticationError,
    TransientError,
    RequestTimeoutError,
    ParamError,
    SchemaError,
    SchemaMismatchError,
    DimensionMismatchError,
    InvalidFilterError,
    UnsupportedIndexTypeError,
    NotFoundError,
    FieldNotFoundError,
    AlreadyExistsError,
    NotLoadedError,
)
from .protocol import (
    DataType,
    IndexType,
    MetricType,
    ConsistencyLevel,
    LoadState,
    Status,
    StatusCode,
    HealthStatus,
    IndexInfo,
    CollectionStats,
)
from .results import InsertResult, QueryResults, SearchResult, SearchResults, Hit
from .schema import CollectionSchema, FieldSchema, IndexDesc
from .version import __version__
from . import protocol

__all__ = [
    "VectorDBClient",
    "AsyncVectorDBClient",
    "ConnectParams",
    "CollectionSchema",
    "FieldSchema",
    "IndexDesc",
    "DataType",
    "IndexType",
    "MetricType",
    "ConsistencyLevel",
    "LoadState",
    "Status",
    "StatusCode",
    "HealthStatus",
    "IndexInfo",
    "CollectionStats",
    "InsertResult",
    "QueryResults",
    "SearchResult",
    "SearchResults",
    "Hit",
    "VectorDBError",
    "ConnectionError",
    "AuthenticationError",
    "TransientError",
    "RequestTimeoutError",
    "ParamError",
    "SchemaError",
    "SchemaMismatchError",
    "DimensionMismatchError",
    "InvalidFilterError",
    "UnsupportedIndexTypeError",
    "NotFoundError",
    "FieldNotFoundError",
    "AlreadyExistsError",
    "NotLoadedError",
    "protocol",
    "__version__",
]
