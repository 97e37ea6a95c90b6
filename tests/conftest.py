import numpy as np
import pytest
from aiohttp.test_utils import TestServer

from fake_server import FakeTransport, FakeVectorDBServer, make_app
from vdbclient import (
    AsyncVectorDBClient,
    CollectionSchema,
    DataType,
    FieldSchema,
    IndexDesc,
    IndexType,
    MetricType,
    VectorDBClient,
)

HOST = "vdb.test"
PORT = 19530
USER = "root"
PASSWORD = "secret"
DIM = 8
COLLECTION = "users"


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("HOST", "PORT", "USER", "PASSWORD", "TOKEN", "DB_NAME", "TIMEOUT", "SECURE"):
        monkeypatch.delenv(f"VDB_{name}", raising=False)


@pytest.fixture
def server():
    return FakeVectorDBServer(token=f"{USER}:{PASSWORD}")


@pytest.fixture
def transport(server):
    return FakeTransport(server)


@pytest.fixture
def client(transport):
    client = VectorDBClient(host=HOST, port=PORT, user=USER, password=PASSWORD, adapter=transport)
    client.connect()
    yield client
    client.disconnect()


def users_schema(name=COLLECTION, dim=DIM, auto_id=False):
    schema = CollectionSchema(name=name, description="demo users")
    schema.add_field(FieldSchema(name="user_id", data_type=DataType.INT64, is_primary=True, auto_id=auto_id))
    schema.add_field(FieldSchema(name="user_name", data_type=DataType.VARCHAR, max_length=100))
    schema.add_field(FieldSchema(name="user_age", data_type=DataType.INT8))
    schema.add_field(FieldSchema(name="user_face", data_type=DataType.FLOAT_VECTOR, dim=dim))
    return schema


def users_indexes():
    return [
        IndexDesc(
            field_name="user_face",
            index_type=IndexType.IVF_FLAT,
            metric_type=MetricType.COSINE,
            params={"nlist": "100"},
        ),
        IndexDesc(field_name="user_name", index_type=IndexType.TRIE),
        IndexDesc(field_name="user_age", index_type=IndexType.STL_SORT),
    ]


def make_rows(count, dim=DIM, seed=7, start=0):
    rng = np.random.default_rng(seed)
    return [
        {
            "user_id": i,
            "user_name": f"user_{i}",
            "user_age": i % 100,
            "user_face": rng.random(dim),
        }
        for i in range(start, start + count)
    ]


@pytest.fixture
def users(client):
    client.create_collection(users_schema())
    client.create_index(COLLECTION, users_indexes())
    client.load_collection(COLLECTION, poll_interval=0)
    return COLLECTION


@pytest.fixture
async def aio_server(server):
    async with TestServer(make_app(server)) as test_server:
        yield test_server


@pytest.fixture
async def aclient(aio_server):
    client = AsyncVectorDBClient(
        host=aio_server.host, port=aio_server.port, user=USER, password=PASSWORD
    )
    await client.connect()
    yield client
    await client.disconnect()
