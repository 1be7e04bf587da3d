import asyncio
import os
import tempfile

os.environ["ENVIRONMENT"] = "test"
os.environ["CRON_ENABLED"] = "false"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["LOG_LEVEL"] = "warning"
os.environ["LOG_FILE_ENABLED"] = "false"
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="bikerhub-uploads-")

import pytest
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

from bikerhub import database
from bikerhub.auth import issue_tokens
from bikerhub.main import app
from bikerhub.services import users as user_service

ADDRESS = {
    "first_name": "Ada",
    "last_name": "Rider",
    "email": "ada@bikerhub.com",
    "phone": "+15551234567",
    "address": {
        "street": "1 Main St",
        "city": "Austin",
        "state": "TX",
        "zip_code": "73301",
        "country": "US",
    },
}

BIKE = {
    "name": "Trail Blazer 29",
    "description": "Hardtail mountain bike built for trail riding.",
    "price": 1000.0,
    "category": "mountain",
    "brand": "Trek",
    "features": ["Hydraulic Disc Brakes", "29\" Wheels"],
    "stock": {"quantity": 10, "low_stock_threshold": 3},
    "shipping": {"shipping_cost": 25.0},
}


def run(coro):
    return asyncio.run(coro)


def auth_headers(token):
    return {"Authorization": f"Bearer {token}"}


def register(client, username="rider", email="rider@bikerhub.com", password="secret123"):
    resp = client.post(
        "/api/auth/register",
        json={"username": username, "email": email, "password": password},
    )
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]


@pytest.fixture
def db(monkeypatch):
    mock_db = AsyncMongoMockClient()["bikerhub_test"]
    monkeypatch.setattr(database, "_db", mock_db)
    return mock_db


@pytest.fixture
def client(db):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def user(client):
    data = register(client)
    data["headers"] = auth_headers(data["token"])
    return data


@pytest.fixture
def admin(client):
    account = run(
        user_service.create_user("boss", "boss@bikerhub.com", "admin123", role="admin", is_verified=True)
    )
    tokens = issue_tokens(account)
    return {"user": account.public(), "headers": auth_headers(tokens["token"]), **tokens}


@pytest.fixture
def product(client, user):
    resp = client.post("/api/products", json=BIKE, headers=user["headers"])
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]
