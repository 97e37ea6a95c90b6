"""
vdbclient Python Client
"""

import asyncio
import logging
import threading
import time
from typing import Any, Dict, List, Optional, Sequence, Union

import aiohttp
import numpy as np
import requests
from pydantic import ValidationError
from requests.adapters import BaseAdapter

from vdbclient.config import ConnectParams
from vdbclient.exceptions import (
    ConnectionError,
    DimensionMismatchError,
    NotFoundError,
    ParamError,
    RequestTimeoutError,
    TransientError,
    VectorDBError,
    error_from_code,
    error_from_http_status,
)
from vdbclient.protocol import (
    CollectionPresence,
    CollectionRequest,
    CollectionStats,
    ConsistencyLevel,
    CreateCollectionRequest,
    CreateIndexRequest,
    DatabaseRequest,
    DeleteInfo,
    DeleteRequest,
    Envelope,
    ErrorCode,
    HealthStatus,
    IndexInfo,
    IndexRequest,
    InsertInfo,
    InsertRequest,
    LoadRequest,
    LoadState,
    LoadStateInfo,
    MetricType,
    QueryRequest,
    SearchParams,
    SearchRequest,
    Status,
    VersionInfo,
    WireModel,
)
from vdbclient.results import InsertResult, QueryResults, SearchResults
from vdbclient.schema import CollectionSchema, FieldSchema, IndexDesc
from vdbclient.version import API_VERSION

logger = logging.getLogger(__name__)

VectorLike = Union[Sequence[float], np.ndarray]
VectorsLike = Union[VectorLike, Sequence[VectorLike]]
IndexesLike = Union[IndexDesc, Sequence[IndexDesc]]

DEFAULT_POLL_INTERVAL = 0.5


def _unwrap(http_status: int, reason: str, payload: Any) -> Any:
    """Return the envelope data or raise the matching VectorDBError"""
    if not isinstance(payload, dict):
        if http_status >= 400:
            raise error_from_http_status(http_status, reason)
        raise TransientError(f"malformed response from server: {payload!r}")

    try:
        envelope = Envelope.model_validate(payload)
    except ValidationError as e:
        if http_status >= 400:
            raise error_from_http_status(http_status, reason) from e
        raise TransientError(f"malformed response from server: {payload!r}") from e

    if envelope.code != ErrorCode.SUCCESS:
        raise error_from_code(envelope.code, envelope.message)
    if http_status >= 400:
        raise error_from_http_status(http_status, reason)
    return envelope.data


def _decode(model: type, data: Any) -> Any:
    """Validate an envelope payload against its response model"""
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise TransientError(f"malformed {model.__name__} response from server: {data!r}") from e


def _collection_names(data: Any) -> List[str]:
    if data is None:
        return []
    if not isinstance(data, list) or not all(isinstance(name, str) for name in data):
        raise TransientError(f"malformed collection list from server: {data!r}")
    return list(data)


def _as_vector_batch(vectors: VectorsLike) -> List[np.ndarray]:
    """Normalize one vector or a batch of vectors to a list of 1-D arrays"""
    if isinstance(vectors, np.ndarray):
        if vectors.ndim == 1:
            batch = [vectors.astype(np.float64)]
        elif vectors.ndim == 2:
            batch = [row.astype(np.float64) for row in vectors]
        else:
            raise ParamError(f"query vectors must be 1-D or 2-D, got shape {vectors.shape}")
    else:
        vectors = list(vectors)
        if vectors and isinstance(vectors[0], (int, float, np.integer, np.floating)):
            vectors = [vectors]

        batch = []
        for vector in vectors:
            try:
                array = np.asarray(vector, dtype=np.float64)
            except (TypeError, ValueError) as e:
                raise ParamError(f"query vector is not numeric: {vector!r}") from e
            if array.ndim != 1:
                raise ParamError(f"query vector must be 1-D, got shape {array.shape}")
            batch.append(array)

    for position, vector in enumerate(batch):
        if not np.isfinite(vector).all():
            raise ParamError(f"query vector {position} holds NaN or infinite values")
    return batch


def _as_index_list(indexes: IndexesLike) -> List[IndexDesc]:
    if isinstance(indexes, IndexDesc):
        return [indexes]
    return list(indexes)


class _BaseClient:
    """
    Request building and response decoding shared by both clients

    Subclasses supply the transport (``_post``) and the session lifecycle.
    """

    def __init__(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        user: Optional[str] = None,
        password: Optional[str] = None,
        token: Optional[str] = None,
        db_name: Optional[str] = None,
        timeout: Optional[float] = None,
        secure: Optional[bool] = None,
    ):
        self.params = ConnectParams.resolve(
            host=host,
            port=port,
            user=user,
            password=password,
            token=token,
            db_name=db_name,
            timeout=timeout,
            secure=secure,
        )

    @property
    def address(self) -> str:
        return f"{self.params.host}:{self.params.port}"

    def _request(self, model: type, collection_name: str, **kwargs: Any) -> WireModel:
        return model(db_name=self.params.db_name, collection_name=collection_name, **kwargs)

    @staticmethod
    def _check_api_version(info: VersionInfo) -> None:
        if info.api_version != API_VERSION:
            raise ConnectionError(
                f"server speaks API {info.api_version}, this client requires {API_VERSION}"
            )

    def _create_collection_request(
        self, schema: CollectionSchema, consistency_level: ConsistencyLevel
    ) -> CreateCollectionRequest:
        schema.check()
        return self._request(
            CreateCollectionRequest,
            schema.name,
            schema_=schema.to_wire(),
            description=schema.description or None,
            consistency_level=consistency_level,
        )

    def _create_index_request(
        self, schema: CollectionSchema, indexes: IndexesLike
    ) -> CreateIndexRequest:
        indexes = _as_index_list(indexes)
        if not indexes:
            raise ParamError("create_index needs at least one index descriptor")
        fields = [index.field_name for index in indexes]
        if len(set(fields)) != len(fields):
            raise ParamError(f"more than one index requested for the same field: {fields}")
        for index in indexes:
            schema.check_index(index)
        return self._request(
            CreateIndexRequest,
            schema.name,
            index_params=[index.to_param() for index in indexes],
        )

    @staticmethod
    def _find_index(collection_name: str, indexes: List[IndexInfo], field_name: str) -> IndexInfo:
        for index in indexes:
            if index.field_name == field_name:
                return index
        raise NotFoundError(
            f"field '{field_name}' of collection '{collection_name}' has no index"
        )

    def _insert_request(
        self, schema: CollectionSchema, rows: Sequence[Dict[str, Any]]
    ) -> InsertRequest:
        rows = list(rows)
        if not rows:
            raise ParamError("insert needs at least one row")
        return self._request(InsertRequest, schema.name, data=schema.encode_rows(rows))

    def _query_request(
        self,
        collection_name: str,
        filter: str,
        output_fields: Optional[Sequence[str]],
        consistency_level: Optional[ConsistencyLevel],
        limit: Optional[int],
        offset: Optional[int],
    ) -> QueryRequest:
        if limit is not None and limit <= 0:
            raise ParamError(f"limit must be positive, got {limit}")
        if offset is not None and offset < 0:
            raise ParamError(f"offset must not be negative, got {offset}")
        return self._request(
            QueryRequest,
            collection_name,
            filter=filter or "",
            output_fields=list(output_fields or []),
            limit=limit,
            offset=offset,
            consistency_level=consistency_level,
        )

    @staticmethod
    def _resolve_anns_field(schema: CollectionSchema, anns_field: Optional[str]) -> FieldSchema:
        if anns_field is None:
            vector_fields = schema.vector_fields
            if len(vector_fields) != 1:
                raise ParamError(
                    f"collection '{schema.name}' has {len(vector_fields)} vector fields, "
                    f"pass anns_field to choose one"
                )
            return vector_fields[0]

        field = schema.get_field(anns_field)
        if field is None or not field.data_type.is_vector:
            raise ParamError(f"'{anns_field}' is not a vector field of collection '{schema.name}'")
        return field

    def _search_request(
        self,
        schema: CollectionSchema,
        vectors: VectorsLike,
        anns_field: Optional[str],
        limit: int,
        filter: str,
        output_fields: Optional[Sequence[str]],
        metric_type: Optional[MetricType],
        consistency_level: Optional[ConsistencyLevel],
        search_params: Optional[Dict[str, Any]],
    ) -> SearchRequest:
        if limit <= 0:
            raise ParamError(f"limit must be positive, got {limit}")
        field = self._resolve_anns_field(schema, anns_field)
        batch = _as_vector_batch(vectors)
        if not batch:
            raise ParamError("search needs at least one query vector")
        for position, vector in enumerate(batch):
            if vector.shape[0] != field.dim:
                raise DimensionMismatchError(
                    f"query vector {position} has dimension {vector.shape[0]}, "
                    f"field '{field.name}' expects {field.dim}"
                )
        return self._request(
            SearchRequest,
            schema.name,
            data=[vector.tolist() for vector in batch],
            anns_field=field.name,
            limit=limit,
            filter=filter or "",
            output_fields=list(output_fields or []),
            consistency_level=consistency_level,
            search_params=SearchParams(metric_type=metric_type, params=search_params or {}),
        )

    @staticmethod
    def _search_results(request: SearchRequest, data: Any) -> SearchResults:
        results = SearchResults.from_wire(data)
        if len(results) != len(request.data):
            raise TransientError(
                f"server returned {len(results)} result groups for {len(request.data)} query vectors"
            )
        return results


class VectorDBClient(_BaseClient):
    """
    Synchronous client for the vector database

    Calls on one client are serialized: a single request is in flight per
    connection at any time, so one instance may be shared between threads.
    """

    def __init__(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        user: Optional[str] = None,
        password: Optional[str] = None,
        token: Optional[str] = None,
        db_name: Optional[str] = None,
        timeout: Optional[float] = None,
        secure: Optional[bool] = None,
        adapter: Optional[BaseAdapter] = None,
    ):
        """
        Initialize the client; no connection is made until ``connect()``

        Args:
            host: Hostname of the server (VDB_HOST)
            port: Port of the server (VDB_PORT)
            user: User name for authentication (VDB_USER)
            password: Password for authentication (VDB_PASSWORD)
            token: API token, overrides user/password (VDB_TOKEN)
            db_name: Database to operate on (VDB_DB_NAME)
            timeout: Request timeout in seconds (VDB_TIMEOUT)
            secure: Connect over https (VDB_SECURE)
            adapter: Optional requests transport adapter mounted on the
                session, e.g. an ``HTTPAdapter`` with ``max_retries``
        """
        super().__init__(host, port, user, password, token, db_name, timeout, secure)
        self._adapter = adapter
        self._session: Optional[requests.Session] = None
        self._lock = threading.Lock()

    def __enter__(self) -> "VectorDBClient":
        if not self.is_connected:
            self.connect()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.disconnect()

    @property
    def is_connected(self) -> bool:
        return self._session is not None

    def connect(self) -> Status:
        """
        Open a session and verify the server

        Reachability, credentials and API version are checked with a
        version request. Calling ``connect()`` on a connected client
        replaces the session.

        Returns:
            OK status

        Raises:
            ConnectionError: If the server is unreachable or speaks another
                API version
            AuthenticationError: If the credentials are rejected
        """
        if self._session is not None:
            logger.warning("client already connected to %s, replacing the session", self.address)
            self._close_session()

        session = requests.Session()
        session.headers.update(self.params.headers())
        if self._adapter is not None:
            session.mount(self.params.base_url, self._adapter)
        self._session = session

        try:
            info = self._version_info()
            self._check_api_version(info)
        except VectorDBError:
            self._close_session()
            raise

        logger.info("connected to %s, server version %s", self.address, info.version)
        return Status()

    def disconnect(self) -> Status:
        """Close the session; a no-op on a disconnected client"""
        if self._session is None:
            return Status()
        self._close_session()
        logger.info("disconnected from %s", self.address)
        return Status()

    def _close_session(self) -> None:
        session, self._session = self._session, None
        if session is not None:
            session.close()

    def _post(self, path: str, request: Optional[WireModel] = None) -> Any:
        """
        Make a request to the server

        Args:
            path: Endpoint path below the API root
            request: Request message

        Returns:
            Envelope data

        Raises:
            VectorDBError: If the request fails
        """
        session = self._session
        if session is None:
            raise ConnectionError("client is not connected, call connect() first")

        url = f"{self.params.base_url}{path}"
        body = request.to_wire() if request is not None else {}
        started = time.perf_counter()
        with self._lock:
            try:
                response = session.post(url, json=body, timeout=self.params.timeout)
            except requests.Timeout as e:
                raise RequestTimeoutError(
                    f"request {path} timed out after {self.params.timeout}s"
                ) from e
            except requests.ConnectionError as e:
                raise ConnectionError(f"cannot reach server at {self.address}: {e}") from e
            except requests.RequestException as e:
                raise TransientError(f"API request failed: {e}") from e

        logger.debug(
            "POST %s -> %s in %.1f ms",
            path,
            response.status_code,
            (time.perf_counter() - started) * 1000,
        )
        try:
            payload = response.json()
        except ValueError:
            payload = None
        return _unwrap(response.status_code, response.reason, payload)

    def _version_info(self) -> VersionInfo:
        return _decode(VersionInfo, self._post("/server/version"))

    def get_server_version(self) -> str:
        """
        Get the server version

        Returns:
            Version string reported by the server
        """
        return self._version_info().version

    def check_health(self) -> HealthStatus:
        """
        Check server health

        Returns:
            Health flag and, when unhealthy, the reasons
        """
        return _decode(HealthStatus, self._post("/server/health"))

    def create_collection(
        self,
        schema: CollectionSchema,
        consistency_level: ConsistencyLevel = ConsistencyLevel.BOUNDED,
    ) -> Status:
        """
        Create a new collection

        Args:
            schema: Collection schema, validated before it is sent
            consistency_level: Default read guarantee of the collection

        Returns:
            OK status

        Raises:
            SchemaError: If the schema is invalid
            AlreadyExistsError: If the collection name is taken
        """
        request = self._create_collection_request(schema, consistency_level)
        self._post("/collections/create", request)
        logger.info("created collection %s", schema.name)
        return Status()

    def has_collection(self, collection_name: str) -> bool:
        """
        Check whether a collection exists

        Args:
            collection_name: Collection name

        Returns:
            True if the collection exists
        """
        data = self._post("/collections/has", self._request(CollectionRequest, collection_name))
        return _decode(CollectionPresence, data).has

    def list_collections(self) -> List[str]:
        """
        List all collections

        Returns:
            List of collection names
        """
        data = self._post("/collections/list", DatabaseRequest(db_name=self.params.db_name))
        return _collection_names(data)

    def describe_collection(self, collection_name: str) -> CollectionSchema:
        """
        Get the schema of a collection

        Raises:
            NotFoundError: If the collection does not exist
        """
        data = self._post("/collections/describe", self._request(CollectionRequest, collection_name))
        return CollectionSchema.from_wire(data)

    def get_collection_stats(self, collection_name: str) -> CollectionStats:
        """
        Get collection statistics

        Returns:
            Row count of the collection

        Raises:
            NotFoundError: If the collection does not exist
        """
        data = self._post("/collections/get_stats", self._request(CollectionRequest, collection_name))
        return _decode(CollectionStats, data)

    def drop_collection(self, collection_name: str) -> Status:
        """
        Drop a collection

        Args:
            collection_name: Collection name

        Returns:
            OK status

        Raises:
            NotFoundError: If the collection does not exist
        """
        self._post("/collections/drop", self._request(CollectionRequest, collection_name))
        logger.info("dropped collection %s", collection_name)
        return Status()

    def drop_collection_if_exists(self, collection_name: str) -> bool:
        """
        Drop a collection that may be absent

        Args:
            collection_name: Collection name

        Returns:
            True if the collection was dropped, False if it did not exist
        """
        try:
            self.drop_collection(collection_name)
        except NotFoundError:
            logger.info("collection %s does not exist, nothing to drop", collection_name)
            return False
        return True

    def create_index(self, collection_name: str, indexes: IndexesLike) -> Status:
        """
        Build one or more indexes

        Args:
            collection_name: Collection name
            indexes: Index descriptor or list of descriptors

        Returns:
            OK status

        Raises:
            FieldNotFoundError: If a target field does not exist
            UnsupportedIndexTypeError: If an index family does not fit the
                target field's data type
        """
        schema = self.describe_collection(collection_name)
        request = self._create_index_request(schema, indexes)
        self._post("/indexes/create", request)
        logger.info(
            "created index on %s.%s",
            collection_name,
            ",".join(param.field_name for param in request.index_params),
        )
        return Status()

    def list_indexes(self, collection_name: str) -> List[IndexInfo]:
        """
        List the indexes of a collection

        Returns:
            One description per indexed field
        """
        data = self._post("/indexes/list", self._request(CollectionRequest, collection_name))
        return [_decode(IndexInfo, item) for item in data or []]

    def describe_index(self, collection_name: str, field_name: str) -> IndexInfo:
        """
        Get the index built on a field

        Raises:
            NotFoundError: If the field has no index
        """
        return self._find_index(collection_name, self.list_indexes(collection_name), field_name)

    def drop_index(self, collection_name: str, field_name: str) -> Status:
        """
        Drop the index built on a field

        Args:
            collection_name: Collection name
            field_name: Indexed field

        Returns:
            OK status

        Raises:
            NotFoundError: If the field has no index
        """
        index = self.describe_index(collection_name, field_name)
        self._post(
            "/indexes/drop",
            self._request(IndexRequest, collection_name, index_name=index.index_name),
        )
        logger.info("dropped index %s on %s.%s", index.index_name, collection_name, field_name)
        return Status()

    def get_load_state(self, collection_name: str) -> LoadState:
        """
        Get the serving state of a collection

        Returns:
            Load state; ``NOT_EXIST`` for an unknown collection
        """
        data = self._post(
            "/collections/get_load_state", self._request(CollectionRequest, collection_name)
        )
        return _decode(LoadStateInfo, data).load_state

    def load_collection(
        self,
        collection_name: str,
        replica_number: int = 1,
        wait: bool = True,
        timeout: Optional[float] = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> Status:
        """
        Make a collection servable for query and search

        Args:
            collection_name: Collection name
            replica_number: Number of in-memory replicas
            wait: Block until the collection reports LOADED
            timeout: Seconds to wait, defaults to the client timeout
            poll_interval: Seconds between load state checks

        Returns:
            OK status

        Raises:
            NotFoundError: If the collection does not exist
            RequestTimeoutError: If loading does not finish in time
        """
        if replica_number < 1:
            raise ParamError(f"replica_number must be at least 1, got {replica_number}")
        self._post(
            "/collections/load",
            self._request(LoadRequest, collection_name, replica_number=replica_number),
        )
        if not wait:
            return Status()

        deadline = time.monotonic() + (timeout or self.params.timeout)
        while True:
            state = self.get_load_state(collection_name)
            if state is LoadState.LOADED:
                break
            if state is LoadState.NOT_EXIST:
                raise NotFoundError(f"collection '{collection_name}' does not exist")
            if time.monotonic() >= deadline:
                raise RequestTimeoutError(
                    f"collection '{collection_name}' not loaded in time, state {state.value}"
                )
            time.sleep(poll_interval)

        logger.info("loaded collection %s", collection_name)
        return Status()

    def release_collection(self, collection_name: str) -> Status:
        """
        Free the memory of a loaded collection

        Query and search fail with ``NotLoadedError`` until the next load.

        Returns:
            OK status
        """
        self._post("/collections/release", self._request(CollectionRequest, collection_name))
        logger.info("released collection %s", collection_name)
        return Status()

    def insert(self, collection_name: str, rows: Sequence[Dict[str, Any]]) -> InsertResult:
        """
        Insert rows into a collection

        Every row is checked against the collection schema before anything
        is sent, so a call inserts all rows or none.

        Args:
            collection_name: Collection name
            rows: Mappings from field name to value; vectors may be lists
                or numpy arrays

        Returns:
            Inserted row count and primary keys

        Raises:
            SchemaMismatchError: If a row does not match the schema
            DimensionMismatchError: If a vector has the wrong length
        """
        schema = self.describe_collection(collection_name)
        data = self._post("/entities/insert", self._insert_request(schema, rows))
        info = _decode(InsertInfo, data)
        return InsertResult(insert_count=info.insert_count, ids=info.insert_ids)

    def delete(self, collection_name: str, filter: str) -> int:
        """
        Delete the rows matching a filter expression

        Returns:
            Number of deleted rows
        """
        if not filter:
            raise ParamError("delete needs a filter expression")
        data = self._post(
            "/entities/delete", self._request(DeleteRequest, collection_name, filter=filter)
        )
        return _decode(DeleteInfo, data or {}).delete_count

    def query(
        self,
        collection_name: str,
        filter: str = "",
        output_fields: Optional[Sequence[str]] = None,
        consistency_level: Optional[ConsistencyLevel] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> QueryResults:
        """
        Fetch rows matching a filter expression

        Args:
            collection_name: Collection name
            filter: Boolean expression over scalar fields, e.g. ``id in [5, 10]``
            output_fields: Field names, ``*`` for all scalar fields, or
                ``count(*)`` for a single aggregate row
            consistency_level: Read guarantee, defaults to the collection's
            limit: Maximum number of rows
            offset: Rows to skip

        Returns:
            Query results

        Raises:
            NotLoadedError: If the collection is not loaded
            InvalidFilterError: If the filter is malformed
        """
        request = self._query_request(
            collection_name, filter, output_fields, consistency_level, limit, offset
        )
        return _decode(QueryResults, {"rows": self._post("/entities/query", request) or []})

    def search(
        self,
        collection_name: str,
        vectors: VectorsLike,
        anns_field: Optional[str] = None,
        limit: int = 10,
        filter: str = "",
        output_fields: Optional[Sequence[str]] = None,
        metric_type: Optional[MetricType] = None,
        consistency_level: Optional[ConsistencyLevel] = None,
        search_params: Optional[Dict[str, Any]] = None,
    ) -> SearchResults:
        """
        Search for similar vectors

        Args:
            collection_name: Collection name
            vectors: One query vector or a batch (list or numpy array)
            anns_field: Vector field to search, optional when the
                collection has a single vector field
            limit: Number of results per query vector
            filter: Boolean expression over scalar fields
            output_fields: Fields returned with each hit
            metric_type: Similarity metric, defaults to the index metric
            consistency_level: Read guarantee, defaults to the collection's
            search_params: Index-specific tuning, e.g. ``{"nprobe": 10}``

        Returns:
            One result group per query vector

        Raises:
            DimensionMismatchError: If a query vector has the wrong length;
                raised before any request is sent
            NotLoadedError: If the collection is not loaded
            InvalidFilterError: If the filter is malformed
        """
        schema = self.describe_collection(collection_name)
        request = self._search_request(
            schema,
            vectors,
            anns_field,
            limit,
            filter,
            output_fields,
            metric_type,
            consistency_level,
            search_params,
        )
        return self._search_results(request, self._post("/entities/search", request))


class AsyncVectorDBClient(_BaseClient):
    """
    Asynchronous client for the vector database

    Same operations as ``VectorDBClient``, as coroutines. Calls on one
    client are serialized with an ``asyncio.Lock``.
    """

    def __init__(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        user: Optional[str] = None,
        password: Optional[str] = None,
        token: Optional[str] = None,
        db_name: Optional[str] = None,
        timeout: Optional[float] = None,
        secure: Optional[bool] = None,
    ):
        super().__init__(host, port, user, password, token, db_name, timeout, secure)
        self._session: Optional[aiohttp.ClientSession] = None
        self._lock: Optional[asyncio.Lock] = None

    async def __aenter__(self) -> "AsyncVectorDBClient":
        if not self.is_connected:
            await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.disconnect()

    @property
    def is_connected(self) -> bool:
        return self._session is not None

    async def connect(self) -> Status:
        """
        Open a session and verify the server

        Returns:
            OK status

        Raises:
            ConnectionError: If the server is unreachable or speaks another
                API version
            AuthenticationError: If the credentials are rejected
        """
        if self._session is not None:
            logger.warning("client already connected to %s, replacing the session", self.address)
            await self._close_session()

        # one lock per session, on the loop that owns the session
        self._lock = asyncio.Lock()
        timeout = aiohttp.ClientTimeout(total=self.params.timeout)
        self._session = aiohttp.ClientSession(timeout=timeout, headers=self.params.headers())

        try:
            info = await self._version_info()
            self._check_api_version(info)
        except VectorDBError:
            await self._close_session()
            raise

        logger.info("connected to %s, server version %s", self.address, info.version)
        return Status()

    async def disconnect(self) -> Status:
        """Close the session; a no-op on a disconnected client"""
        if self._session is None:
            return Status()
        await self._close_session()
        logger.info("disconnected from %s", self.address)
        return Status()

    async def _close_session(self) -> None:
        session, self._session = self._session, None
        if session is not None:
            await session.close()

    async def _post(self, path: str, request: Optional[WireModel] = None) -> Any:
        """
        Make an asynchronous request to the server

        Raises:
            VectorDBError: If the request fails
        """
        session = self._session
        if session is None:
            raise ConnectionError("client is not connected, call connect() first")

        url = f"{self.params.base_url}{path}"
        body = request.to_wire() if request is not None else {}
        started = time.perf_counter()
        async with self._lock:
            try:
                async with session.post(url, json=body) as response:
                    try:
                        payload = await response.json(content_type=None)
                    except ValueError:
                        payload = None
                    http_status, reason = response.status, response.reason or ""
            except asyncio.TimeoutError as e:
                raise RequestTimeoutError(
                    f"request {path} timed out after {self.params.timeout}s"
                ) from e
            except aiohttp.ClientConnectionError as e:
                raise ConnectionError(f"cannot reach server at {self.address}: {e}") from e
            except aiohttp.ClientError as e:
                raise TransientError(f"API request failed: {e}") from e

        logger.debug(
            "POST %s -> %s in %.1f ms", path, http_status, (time.perf_counter() - started) * 1000
        )
        return _unwrap(http_status, reason, payload)

    async def _version_info(self) -> VersionInfo:
        return _decode(VersionInfo, await self._post("/server/version"))

    async def get_server_version(self) -> str:
        """
        Get the server version

        Returns:
            Version string reported by the server
        """
        return (await self._version_info()).version

    async def check_health(self) -> HealthStatus:
        """
        Check server health

        Returns:
            Health flag and, when unhealthy, the reasons
        """
        return _decode(HealthStatus, await self._post("/server/health"))

    async def create_collection(
        self,
        schema: CollectionSchema,
        consistency_level: ConsistencyLevel = ConsistencyLevel.BOUNDED,
    ) -> Status:
        """
        Create a new collection

        Args:
            schema: Collection schema, validated before it is sent
            consistency_level: Default read guarantee of the collection

        Returns:
            OK status

        Raises:
            SchemaError: If the schema is invalid
            AlreadyExistsError: If the collection name is taken
        """
        request = self._create_collection_request(schema, consistency_level)
        await self._post("/collections/create", request)
        logger.info("created collection %s", schema.name)
        return Status()

    async def has_collection(self, collection_name: str) -> bool:
        """
        Check whether a collection exists

        Args:
            collection_name: Collection name

        Returns:
            True if the collection exists
        """
        data = await self._post(
            "/collections/has", self._request(CollectionRequest, collection_name)
        )
        return _decode(CollectionPresence, data).has

    async def list_collections(self) -> List[str]:
        """
        List all collections

        Returns:
            List of collection names
        """
        data = await self._post("/collections/list", DatabaseRequest(db_name=self.params.db_name))
        return _collection_names(data)

    async def describe_collection(self, collection_name: str) -> CollectionSchema:
        """
        Get the schema of a collection

        Raises:
            NotFoundError: If the collection does not exist
        """
        data = await self._post(
            "/collections/describe", self._request(CollectionRequest, collection_name)
        )
        return CollectionSchema.from_wire(data)

    async def get_collection_stats(self, collection_name: str) -> CollectionStats:
        """
        Get collection statistics

        Returns:
            Row count of the collection
        """
        data = await self._post(
            "/collections/get_stats", self._request(CollectionRequest, collection_name)
        )
        return _decode(CollectionStats, data)

    async def drop_collection(self, collection_name: str) -> Status:
        """
        Drop a collection

        Args:
            collection_name: Collection name

        Returns:
            OK status

        Raises:
            NotFoundError: If the collection does not exist
        """
        await self._post("/collections/drop", self._request(CollectionRequest, collection_name))
        logger.info("dropped collection %s", collection_name)
        return Status()

    async def drop_collection_if_exists(self, collection_name: str) -> bool:
        """
        Drop a collection that may be absent

        Returns:
            True if the collection was dropped, False if it did not exist
        """
        try:
            await self.drop_collection(collection_name)
        except NotFoundError:
            logger.info("collection %s does not exist, nothing to drop", collection_name)
            return False
        return True

    async def create_index(self, collection_name: str, indexes: IndexesLike) -> Status:
        """
        Build one or more indexes

        Args:
            collection_name: Collection name
            indexes: Index descriptor or list of descriptors

        Returns:
            OK status

        Raises:
            FieldNotFoundError: If a target field does not exist
            UnsupportedIndexTypeError: If an index family does not fit the
                target field's data type
        """
        schema = await self.describe_collection(collection_name)
        request = self._create_index_request(schema, indexes)
        await self._post("/indexes/create", request)
        logger.info(
            "created index on %s.%s",
            collection_name,
            ",".join(param.field_name for param in request.index_params),
        )
        return Status()

    async def list_indexes(self, collection_name: str) -> List[IndexInfo]:
        """
        List the indexes of a collection

        Returns:
            One description per indexed field
        """
        data = await self._post("/indexes/list", self._request(CollectionRequest, collection_name))
        return [_decode(IndexInfo, item) for item in data or []]

    async def describe_index(self, collection_name: str, field_name: str) -> IndexInfo:
        """
        Get the index built on a field

        Raises:
            NotFoundError: If the field has no index
        """
        indexes = await self.list_indexes(collection_name)
        return self._find_index(collection_name, indexes, field_name)

    async def drop_index(self, collection_name: str, field_name: str) -> Status:
        """
        Drop the index built on a field

        Args:
            collection_name: Collection name
            field_name: Indexed field

        Returns:
            OK status
        """
        index = await self.describe_index(collection_name, field_name)
        await self._post(
            "/indexes/drop",
            self._request(IndexRequest, collection_name, index_name=index.index_name),
        )
        logger.info("dropped index %s on %s.%s", index.index_name, collection_name, field_name)
        return Status()

    async def get_load_state(self, collection_name: str) -> LoadState:
        """
        Get the serving state of a collection

        Returns:
            Load state; ``NOT_EXIST`` for an unknown collection
        """
        data = await self._post(
            "/collections/get_load_state", self._request(CollectionRequest, collection_name)
        )
        return _decode(LoadStateInfo, data).load_state

    async def load_collection(
        self,
        collection_name: str,
        replica_number: int = 1,
        wait: bool = True,
        timeout: Optional[float] = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> Status:
        """
        Make a collection servable for query and search

        Args:
            collection_name: Collection name
            replica_number: Number of in-memory replicas
            wait: Wait until the collection reports LOADED
            timeout: Seconds to wait, defaults to the client timeout
            poll_interval: Seconds between load state checks

        Returns:
            OK status

        Raises:
            NotFoundError: If the collection does not exist
            RequestTimeoutError: If loading does not finish in time
        """
        if replica_number < 1:
            raise ParamError(f"replica_number must be at least 1, got {replica_number}")
        await self._post(
            "/collections/load",
            self._request(LoadRequest, collection_name, replica_number=replica_number),
        )
        if not wait:
            return Status()

        loop = asyncio.get_running_loop()
        deadline = loop.time() + (timeout or self.params.timeout)
        while True:
            state = await self.get_load_state(collection_name)
            if state is LoadState.LOADED:
                break
            if state is LoadState.NOT_EXIST:
                raise NotFoundError(f"collection '{collection_name}' does not exist")
            if loop.time() >= deadline:
                raise RequestTimeoutError(
                    f"collection '{collection_name}' not loaded in time, state {state.value}"
                )
            await asyncio.sleep(poll_interval)

        logger.info("loaded collection %s", collection_name)
        return Status()

    async def release_collection(self, collection_name: str) -> Status:
        """
        Free the memory of a loaded collection

        Returns:
            OK status
        """
        await self._post("/collections/release", self._request(CollectionRequest, collection_name))
        logger.info("released collection %s", collection_name)
        return Status()

    async def insert(self, collection_name: str, rows: Sequence[Dict[str, Any]]) -> InsertResult:
        """
        Insert rows into a collection, all or none

        Args:
            collection_name: Collection name
            rows: Mappings from field name to value

        Returns:
            Inserted row count and primary keys

        Raises:
            SchemaMismatchError: If a row does not match the schema
            DimensionMismatchError: If a vector has the wrong length
        """
        schema = await self.describe_collection(collection_name)
        data = await self._post("/entities/insert", self._insert_request(schema, rows))
        info = _decode(InsertInfo, data)
        return InsertResult(insert_count=info.insert_count, ids=info.insert_ids)

    async def delete(self, collection_name: str, filter: str) -> int:
        """
        Delete the rows matching a filter expression

        Returns:
            Number of deleted rows
        """
        if not filter:
            raise ParamError("delete needs a filter expression")
        data = await self._post(
            "/entities/delete", self._request(DeleteRequest, collection_name, filter=filter)
        )
        return _decode(DeleteInfo, data or {}).delete_count

    async def query(
        self,
        collection_name: str,
        filter: str = "",
        output_fields: Optional[Sequence[str]] = None,
        consistency_level: Optional[ConsistencyLevel] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> QueryResults:
        """
        Fetch rows matching a filter expression

        Args:
            collection_name: Collection name
            filter: Boolean expression over scalar fields
            output_fields: Field names, ``*`` or ``count(*)``
            consistency_level: Read guarantee, defaults to the collection's
            limit: Maximum number of rows
            offset: Rows to skip

        Returns:
            Query results

        Raises:
            NotLoadedError: If the collection is not loaded
            InvalidFilterError: If the filter is malformed
        """
        request = self._query_request(
            collection_name, filter, output_fields, consistency_level, limit, offset
        )
        rows = await self._post("/entities/query", request)
        return _decode(QueryResults, {"rows": rows or []})

    async def search(
        self,
        collection_name: str,
        vectors: VectorsLike,
        anns_field: Optional[str] = None,
        limit: int = 10,
        filter: str = "",
        output_fields: Optional[Sequence[str]] = None,
        metric_type: Optional[MetricType] = None,
        consistency_level: Optional[ConsistencyLevel] = None,
        search_params: Optional[Dict[str, Any]] = None,
    ) -> SearchResults:
        """
        Search for similar vectors

        Args:
            collection_name: Collection name
            vectors: One query vector or a batch
            anns_field: Vector field to search
            limit: Number of results per query vector
            filter: Boolean expression over scalar fields
            output_fields: Fields returned with each hit
            metric_type: Similarity metric, defaults to the index metric
            consistency_level: Read guarantee, defaults to the collection's
            search_params: Index-specific tuning

        Returns:
            One result group per query vector

        Raises:
            DimensionMismatchError: If a query vector has the wrong length
            NotLoadedError: If the collection is not loaded
        """
        schema = await self.describe_collection(collection_name)
        request = self._search_request(
            schema,
            vectors,
            anns_field,
            limit,
            filter,
            output_fields,
            metric_type,
            consistency_level,
            search_params,
        )
        return self._search_results(request, await self._post("/entities/search", request))
