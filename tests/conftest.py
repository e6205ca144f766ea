import io
import os

os.environ.setdefault("SECRET_KEY", "test-secret")

import pytest
from fastapi.testclient import TestClient
from PIL import Image
from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool
from urllib3.exceptions import ProtocolError

import imagemax.models  # noqa: F401  registers every table on Base
from imagemax.core.database import Base, get_db
from imagemax.core.ratelimit import rate_limiter
from imagemax.core.storage import ObjectStorage, get_storage
from imagemax.main import app


class FakeMinio:
    """Keeps objects in a dict; enough of the Minio client for ObjectStorage."""

    def __init__(self):
        self.objects = {}
        self.removed = []
        self.fail_keys = set()

    def bucket_exists(self, bucket):
        return True

    def make_bucket(self, bucket):
        pass

    def put_object(self, bucket, key, data, length, content_type=None, metadata=None):
        self.objects[key] = (data.read(), content_type)

    def remove_object(self, bucket, key):
        if key in self.fail_keys:
            raise ProtocolError("Connection aborted.", ConnectionResetError("connection reset"))
        self.removed.append(key)
        self.objects.pop(key, None)


def make_image_bytes(width=64, height=48, color=(128, 64, 32), fmt="PNG", mode="RGB"):
    """Return raw bytes of a solid-colour image."""
    if mode == "RGBA" and len(color) == 3:
        color = color + (255,)
    img = Image.new(mode, (width, height), color)
    buf = io.BytesIO()
    img.save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture
def image_bytes():
    return make_image_bytes


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "imagemax-test.db"


@pytest.fixture
def db(db_path):
    engine = create_engine(f"sqlite:///{db_path}")
    Base.metadata.create_all(engine)
    factory = sessionmaker(engine, expire_on_commit=False)
    yield factory
    engine.dispose()


@pytest.fixture
def fake_minio():
    return FakeMinio()


@pytest.fixture
def storage(fake_minio):
    return ObjectStorage(fake_minio, "images", "http://storage.test")


@pytest.fixture
def client(db, db_path, storage):
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}", poolclass=NullPool)
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_storage] = lambda: storage
    rate_limiter.reset()

    # no context manager: the lifespan would reach for MinIO and Postgres
    yield TestClient(app, raise_server_exceptions=False)

    app.dependency_overrides.clear()
    rate_limiter.reset()


@pytest.fixture
def auth_headers(client):
    resp = client.post("/auth/register", json={
        "email": "user@example.com",
        "password": "secret123",
        "full_name": "Test User",
    })
    assert resp.status_code == 200
    resp = client.post("/auth/login", data={"username": "user@example.com", "password": "secret123"})
    assert resp.status_code == 200
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}


@pytest.fixture
def user_id(client, auth_headers):
    return client.get("/auth/me", headers=auth_headers).json()["id"]
