import pytest
from fastapi.testclient import TestClient
from mongita import MongitaClientMemory
from pymongo.errors import ServerSelectionTimeoutError

import database
from database import DatabaseNotConnected, DocumentStore, connect_or_exit
from main import create_app


def test_db_before_connect_raises():
    store = DocumentStore(None, "trailtalk")
    assert not store.connected
    with pytest.raises(DatabaseNotConnected, match="Database not connected"):
        store.posts


def test_connect_and_close():
    store = DocumentStore(None, "trailtalkstore", client=MongitaClientMemory())
    store.connect()
    assert store.connected
    assert store.posts.name == "posts"
    store.close()
    assert not store.connected


def test_unreachable_server_is_fatal(monkeypatch):
    class DownClient:
        def __init__(self, *args, **kwargs):
            self.admin = self

        def command(self, name):
            raise ServerSelectionTimeoutError("no servers")

    monkeypatch.setattr(database, "MongoClient", DownClient)
    with pytest.raises(SystemExit) as exc:
        connect_or_exit(DocumentStore("mongodb://db.invalid:27017", "trailtalk"))
    assert exc.value.code == 1


def test_requests_before_connect_fail_with_envelope(tmp_path):
    app = create_app(store=DocumentStore(None, "trailtalk"), upload_dir=str(tmp_path))
    client = TestClient(app)  # no lifespan: store stays disconnected
    res = client.get("/api/posts")
    assert res.status_code == 500
    assert res.json() == {"success": False, "error": "Database not connected"}
    assert client.get("/test").json()["database"] == "Not Connected"
