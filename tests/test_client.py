import numpy as np
import pytest
import requests

from conftest import (
    COLLECTION,
    DIM,
    HOST,
    PASSWORD,
    PORT,
    USER,
    make_rows,
    users_indexes,
    users_schema,
)
from fake_server import FailingTransport, FakeTransport, FakeVectorDBServer
from vdbclient import (
    AlreadyExistsError,
    AuthenticationError,
    CollectionSchema,
    ConnectionError,
    ConsistencyLevel,
    DataType,
    DimensionMismatchError,
    FieldNotFoundError,
    FieldSchema,
    IndexDesc,
    IndexType,
    InvalidFilterError,
    LoadState,
    MetricType,
    NotFoundError,
    NotLoadedError,
    ParamError,
    RequestTimeoutError,
    SchemaError,
    SchemaMismatchError,
    StatusCode,
    TransientError,
    UnsupportedIndexTypeError,
    VectorDBClient,
)


def make_client(transport, **kwargs):
    options = dict(host=HOST, port=PORT, user=USER, password=PASSWORD, adapter=transport)
    options.update(kwargs)
    return VectorDBClient(**options)


# connection lifecycle

def test_connect_reports_server_version(client, server):
    assert client.is_connected
    assert client.get_server_version() == server.VERSION


def test_disconnect_is_idempotent(client):
    assert client.disconnect().ok
    assert not client.is_connected
    assert client.disconnect().ok


def test_calls_require_connection(transport):
    client = make_client(transport)
    with pytest.raises(ConnectionError):
        client.list_collections()


def test_reconnect_replaces_session(client):
    assert client.connect().ok
    assert client.is_connected
    assert client.list_collections() == []


def test_context_manager_connects_and_disconnects(transport):
    with make_client(transport) as client:
        assert client.is_connected
        assert client.check_health().is_healthy
    assert not client.is_connected


def test_connect_rejects_bad_credentials(transport):
    client = make_client(transport, password="wrong")
    with pytest.raises(AuthenticationError) as exc_info:
        client.connect()
    assert exc_info.value.status.code is StatusCode.UNAUTHENTICATED
    assert not client.is_connected


def test_connect_unreachable_server():
    client = make_client(FailingTransport(requests.ConnectionError("connection refused")))
    with pytest.raises(ConnectionError) as exc_info:
        client.connect()
    assert exc_info.value.retryable
    assert not client.is_connected


def test_timeout_is_transient():
    client = make_client(FailingTransport(requests.ReadTimeout("read timed out")))
    with pytest.raises(RequestTimeoutError) as exc_info:
        client.connect()
    assert exc_info.value.status.code is StatusCode.TRANSIENT


def test_connect_rejects_other_api_version():
    server = FakeVectorDBServer(reported_api_version="v1")
    with pytest.raises(ConnectionError):
        make_client(FakeTransport(server)).connect()


def test_connect_fails_when_endpoint_missing():
    server = FakeVectorDBServer(api_version="v3")
    with pytest.raises(ConnectionError):
        make_client(FakeTransport(server)).connect()


def test_check_health_reports_reasons(client, server):
    server.healthy = False
    health = client.check_health()
    assert not health.is_healthy
    assert health.reasons == ["query node offline"]


def test_db_name_is_sent_with_requests(transport, server):
    with make_client(transport, db_name="analytics") as client:
        client.has_collection(COLLECTION)
    assert server.bodies[-1]["dbName"] == "analytics"


# collections

def test_create_and_describe_collection(client):
    assert client.create_collection(users_schema()).ok
    assert client.has_collection(COLLECTION)
    assert client.list_collections() == [COLLECTION]
    assert client.describe_collection(COLLECTION) == users_schema()
    assert client.get_collection_stats(COLLECTION).row_count == 0
    assert client.get_load_state(COLLECTION) is LoadState.NOT_LOADED


def test_create_existing_collection(client):
    client.create_collection(users_schema())
    with pytest.raises(AlreadyExistsError) as exc_info:
        client.create_collection(users_schema())
    assert exc_info.value.status.code is StatusCode.ALREADY_EXISTS


@pytest.mark.parametrize("primaries", [0, 2])
def test_create_collection_needs_one_primary_key(client, server, primaries):
    schema = CollectionSchema(name="bad")
    schema.add_field(FieldSchema(name="a", data_type=DataType.INT64, is_primary=primaries >= 1))
    schema.add_field(FieldSchema(name="b", data_type=DataType.INT64, is_primary=primaries >= 2))
    schema.add_field(FieldSchema(name="v", data_type=DataType.FLOAT_VECTOR, dim=4))
    with pytest.raises(SchemaError):
        client.create_collection(schema)
    assert "/collections/create" not in server.calls


def test_drop_missing_collection_is_not_found(client):
    for _ in range(2):
        with pytest.raises(NotFoundError):
            client.drop_collection("missing")


def test_drop_collection_if_exists(client):
    assert client.drop_collection_if_exists(COLLECTION) is False
    client.create_collection(users_schema())
    assert client.drop_collection_if_exists(COLLECTION) is True
    assert not client.has_collection(COLLECTION)


# indexes

def test_create_and_describe_indexes(client):
    client.create_collection(users_schema())
    assert client.create_index(COLLECTION, users_indexes()).ok
    index = client.describe_index(COLLECTION, "user_face")
    assert index.index_type is IndexType.IVF_FLAT
    assert index.metric_type is MetricType.COSINE
    assert index.params == {"nlist": "100"}
    assert {i.field_name for i in client.list_indexes(COLLECTION)} == {
        "user_face",
        "user_name",
        "user_age",
    }


@pytest.mark.parametrize(
    "index, error",
    [
        (IndexDesc(field_name="nope", index_type=IndexType.HNSW), FieldNotFoundError),
        (IndexDesc(field_name="user_name", index_type=IndexType.IVF_FLAT), UnsupportedIndexTypeError),
        (IndexDesc(field_name="user_age", index_type=IndexType.TRIE), UnsupportedIndexTypeError),
        (IndexDesc(field_name="user_face", index_type=IndexType.STL_SORT), UnsupportedIndexTypeError),
    ],
)
def test_create_index_checks_field(client, server, index, error):
    client.create_collection(users_schema())
    with pytest.raises(error):
        client.create_index(COLLECTION, index)
    assert "/indexes/create" not in server.calls


def test_drop_index(users, client):
    client.release_collection(users)
    assert client.drop_index(users, "user_face").ok
    assert "user_face" not in {i.field_name for i in client.list_indexes(users)}
    with pytest.raises(NotFoundError):
        client.drop_index(users, "user_face")


# load / release

def test_load_waits_until_loaded(client, server):
    server.load_polls = 3
    client.create_collection(users_schema())
    client.create_index(COLLECTION, users_indexes())
    client.load_collection(COLLECTION, poll_interval=0)
    assert client.get_load_state(COLLECTION) is LoadState.LOADED
    assert server.calls.count("/collections/get_load_state") >= 4


def test_load_without_wait_returns_while_loading(client, server):
    server.load_polls = 3
    client.create_collection(users_schema())
    client.create_index(COLLECTION, users_indexes())
    client.load_collection(COLLECTION, wait=False)
    assert server.collections[COLLECTION].load_state == "LoadStateLoading"


def test_load_times_out(client, server):
    server.load_polls = 10 ** 9
    client.create_collection(users_schema())
    client.create_index(COLLECTION, users_indexes())
    with pytest.raises(RequestTimeoutError):
        client.load_collection(COLLECTION, timeout=0.05, poll_interval=0.01)


def test_load_needs_vector_index(client):
    client.create_collection(users_schema())
    with pytest.raises(NotFoundError):
        client.load_collection(COLLECTION, poll_interval=0)


def test_query_after_release_is_not_loaded(users, client):
    client.release_collection(users)
    assert client.get_load_state(users) is LoadState.NOT_LOADED
    with pytest.raises(NotLoadedError) as exc_info:
        client.query(users, output_fields=["count(*)"])
    assert exc_info.value.status.code is StatusCode.FAILED_PRECONDITION


# insert / query

def test_insert_then_query_by_primary_key(users, client):
    rows = make_rows(20)
    result = client.insert(users, rows)
    assert result.insert_count == 20
    assert result.ids == list(range(20))

    found = client.query(
        users,
        filter="user_id == 7",
        output_fields=["user_id", "user_name", "user_age", "user_face"],
        consistency_level=ConsistencyLevel.STRONG,
    )
    assert len(found) == 1
    expected = dict(rows[7], user_face=rows[7]["user_face"].tolist())
    assert found.rows[0] == expected


def test_count_on_empty_then_filled_collection(users, client):
    empty = client.query(users, output_fields=["count(*)"], consistency_level=ConsistencyLevel.STRONG)
    assert empty.is_count
    assert len(empty.rows) == 1
    assert empty.count == 0

    client.insert(users, make_rows(25))
    filled = client.query(users, output_fields=["count(*)"], consistency_level=ConsistencyLevel.STRONG)
    assert filled.count == 25
    assert filled.row_count == 25


def test_query_with_membership_filter(users, client):
    client.insert(users, make_rows(20))
    results = client.query(
        users,
        filter="user_id in [5, 10]",
        output_fields=["user_id", "user_name", "user_age"],
        consistency_level=ConsistencyLevel.EVENTUALLY,
    )
    assert not results.is_count
    assert results.rows == [
        {"user_id": 5, "user_name": "user_5", "user_age": 5},
        {"user_id": 10, "user_name": "user_10", "user_age": 10},
    ]


def test_query_wildcard_excludes_vectors(users, client):
    client.insert(users, make_rows(3))
    results = client.query(users, filter="user_id >= 0", output_fields=["*"], limit=2)
    assert len(results) == 2
    assert all(set(row) == {"user_id", "user_name", "user_age"} for row in results)


def test_query_rejects_malformed_filter(users, client):
    with pytest.raises(InvalidFilterError):
        client.query(users, filter="user_age >", output_fields=["user_id"])


def test_insert_is_all_or_nothing(users, client, server):
    rows = make_rows(3)
    rows[2]["user_face"] = np.zeros(DIM + 1)
    with pytest.raises(DimensionMismatchError) as exc_info:
        client.insert(users, rows)
    assert "row 2" in exc_info.value.message
    assert "/entities/insert" not in server.calls
    assert client.get_collection_stats(users).row_count == 0


@pytest.mark.parametrize(
    "patch",
    [
        {"user_age": 300},
        {"user_age": "old"},
        {"user_name": "x" * 101},
        {"unknown": 1},
    ],
)
def test_insert_rejects_rows_not_matching_schema(users, client, patch):
    row = make_rows(1)[0]
    row.update(patch)
    with pytest.raises(SchemaMismatchError):
        client.insert(users, [row])


def test_insert_rejects_missing_field(users, client):
    row = make_rows(1)[0]
    del row["user_name"]
    with pytest.raises(SchemaMismatchError):
        client.insert(users, [row])


def test_insert_empty_batch(users, client):
    with pytest.raises(ParamError):
        client.insert(users, [])


def test_insert_with_auto_id(client):
    client.create_collection(users_schema(name="auto", auto_id=True))
    rows = make_rows(3)
    for row in rows:
        del row["user_id"]
    assert client.insert("auto", rows).ids == [1, 2, 3]

    with pytest.raises(SchemaMismatchError):
        client.insert("auto", make_rows(1))


def test_delete_by_filter(users, client):
    client.insert(users, make_rows(10))
    assert client.delete(users, "user_age < 3") == 3
    count = client.query(users, output_fields=["count(*)"], consistency_level=ConsistencyLevel.STRONG)
    assert count.count == 7


# search

def test_search_returns_identical_vector_first(users, client):
    rows = make_rows(100)
    client.insert(users, rows)
    results = client.search(
        users,
        [rows[5]["user_face"], rows[10]["user_face"]],
        limit=5,
        output_fields=["user_name"],
        metric_type=MetricType.COSINE,
    )
    assert len(results) == 2
    assert results[0].ids[0] == 5
    assert results[1].ids[0] == 10
    assert results[0].scores[0] == pytest.approx(1.0)
    assert results[0].hits[0].fields == {"user_name": "user_5"}
    for group in results:
        assert len(group) == 5
        assert group.scores == sorted(group.scores, reverse=True)


def test_search_accepts_numpy_batch_and_filter(users, client):
    rows = make_rows(100)
    client.insert(users, rows)
    batch = np.stack([rows[1]["user_face"], rows[2]["user_face"], rows[3]["user_face"]])
    results = client.search(
        users,
        batch,
        anns_field="user_face",
        limit=10,
        filter="user_age > 40",
        output_fields=["user_age"],
        consistency_level=ConsistencyLevel.BOUNDED,
    )
    assert len(results) == 3
    for group in results:
        assert len(group) == 10
        assert all(row["user_age"] > 40 for row in group.output_rows())


def test_search_dimension_mismatch_sends_nothing(users, client, server):
    client.insert(users, make_rows(5))
    with pytest.raises(DimensionMismatchError):
        client.search(users, [np.ones(DIM), np.ones(DIM + 1)])
    assert "/entities/search" not in server.calls


def test_search_rejects_malformed_filter(users, client):
    client.insert(users, make_rows(5))
    with pytest.raises(InvalidFilterError):
        client.search(users, np.ones(DIM), filter="missing_field > 1")


def test_search_before_load(client):
    client.create_collection(users_schema())
    with pytest.raises(NotLoadedError):
        client.search(COLLECTION, np.ones(DIM))


@pytest.mark.parametrize("kwargs", [{"limit": 0}, {"anns_field": "user_age"}])
def test_search_rejects_bad_arguments(users, client, kwargs):
    with pytest.raises(ParamError):
        client.search(users, np.ones(DIM), **kwargs)


def test_search_rejects_non_finite_query_vector(users, client, server):
    vector = np.ones(DIM)
    vector[3] = np.inf
    with pytest.raises(ParamError):
        client.search(users, [np.ones(DIM), vector])
    assert "/entities/search" not in server.calls


def test_insert_rejects_non_finite_vector(users, client, server):
    rows = make_rows(2)
    rows[1]["user_face"][0] = np.nan
    with pytest.raises(SchemaMismatchError) as exc_info:
        client.insert(users, rows)
    assert "row 1" in exc_info.value.message
    assert "/entities/insert" not in server.calls


# unreadable server payloads

def test_unknown_field_type_is_transient(users, client, server):
    server.collections[users].fields.append(
        {"fieldName": "tags", "dataType": "Array", "elementTypeParams": {}}
    )
    with pytest.raises(TransientError):
        client.describe_collection(users)
    with pytest.raises(TransientError):
        client.insert(users, make_rows(1))
    assert "/entities/insert" not in server.calls


def test_search_hits_without_distance_are_transient(users, client, server):
    client.insert(users, make_rows(5))
    server.routes["/entities/search"] = lambda body: [[{"id": 1, "user_name": "user_1"}]]
    with pytest.raises(TransientError) as exc_info:
        client.search(users, np.ones(DIM))
    assert exc_info.value.retryable


@pytest.mark.parametrize(
    "route, data, call",
    [
        ("/collections/has", {}, lambda c: c.has_collection(COLLECTION)),
        ("/collections/has", None, lambda c: c.has_collection(COLLECTION)),
        ("/collections/list", {"names": []}, lambda c: c.list_collections()),
        ("/entities/query", "rows", lambda c: c.query(COLLECTION, output_fields=["user_id"])),
    ],
)
def test_malformed_payloads_are_transient(client, server, route, data, call):
    server.routes[route] = lambda body: data
    with pytest.raises(TransientError):
        call(client)
