import uuid

import pytest
from fastapi.testclient import TestClient
from mongita import MongitaClientMemory

from database import DocumentStore
from main import create_app


@pytest.fixture
def store():
    return DocumentStore(None, f"trailtalk{uuid.uuid4().hex}", client=MongitaClientMemory())


@pytest.fixture
def upload_dir(tmp_path):
    return tmp_path / "uploads"


@pytest.fixture
def client(store, upload_dir):
    app = create_app(store=store, upload_dir=str(upload_dir))
    with TestClient(app) as c:
        yield c


@pytest.fixture
def make_post(client):
    def _make(**overrides):
        body = {"title": "Ridge Trail", "userId": "u1", "secretKey": "s1", "tags": ["Adventure"]}
        body.update(overrides)
        res = client.post("/api/posts", json=body)
        assert res.status_code == 201, res.text
        return res.json()["data"]

    return _make
