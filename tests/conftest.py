import os
import tempfile

os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="store-uploads-"))
os.environ.setdefault("ENVIRONMENT", "test")

import mongomock
import pytest
from fastapi.testclient import TestClient

import database
import main

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "admin-secret"


@pytest.fixture
def db(monkeypatch):
    mock_db = mongomock.MongoClient().db
    monkeypatch.setattr(database, "db", mock_db)
    return mock_db


@pytest.fixture
def client(db, monkeypatch):
    monkeypatch.setenv("ADMIN_EMAIL", ADMIN_EMAIL)
    monkeypatch.setenv("ADMIN_PASSWORD", ADMIN_PASSWORD)
    with TestClient(main.app) as c:
        yield c


def login(client, email, password):
    r = client.post("/api/user/login", data={"username": email, "password": password})
    assert r.status_code == 200, r.text
    body = r.json()
    return body, {"Authorization": f"Bearer {body['access_token']}"}


@pytest.fixture
def signup(client):
    def _signup(email, role="user", name="Test User", password="secret123"):
        r = client.post("/api/user/register", json={"name": name, "email": email, "password": password, "role": role})
        assert r.status_code == 201, r.text
        return login(client, email, password)
    return _signup


@pytest.fixture
def admin(client):
    return login(client, ADMIN_EMAIL, ADMIN_PASSWORD)


@pytest.fixture
def vendor(signup):
    return signup("vendor@example.com", role="vendor", name="Oak & Co")


@pytest.fixture
def customer(signup):
    return signup("customer@example.com", name="Jane Buyer")


@pytest.fixture
def make_product(client, vendor):
    def _make(headers=None, **fields):
        payload = {"name": "Oak Sofa", "main_category": "Living Room", "sub_category": "Sofas", "price": 500, "stock": 10}
        payload.update(fields)
        r = client.post("/api/products", json=payload, headers=headers or vendor[1])
        assert r.status_code == 201, r.text
        return r.json()
    return _make
