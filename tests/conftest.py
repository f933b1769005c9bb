from __future__ import annotations

import sys
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path


# Ensure project root is importable for tests
ROOT = str(Path(__file__).resolve().parent.parent)
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

import mongomock
import pytest

from config import Settings
from errors import DeliveryError


ADMIN_PASSWORD = "correct"


class FakeClock:
    def __init__(self, start=None):
        self.now = start or datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class RecordingNotifier:
    def __init__(self):
        self.sent = []

    async def notify_contact(self, message):
        self.sent.append(message)


class FailingNotifier:
    async def notify_contact(self, message):
        raise DeliveryError("relay refused the connection")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def data_dir(tmp_path):
    d = tmp_path / "data"
    d.mkdir()
    return d


@pytest.fixture
def settings(data_dir, tmp_path):
    return Settings(
        jwt_secret="test-jwt-secret",
        database_url="mongodb://localhost:27017",
        database_name=f"test_{uuid.uuid4().hex[:8]}",
        admin_password=ADMIN_PASSWORD,
        data_dir=data_dir,
        templates_dir=tmp_path / "templates",
        email_user="site@bndlabs.dev",
        email_pass="smtp-pass",
        admin_email="owner@bndlabs.dev",
    )


@pytest.fixture
def mongo_client():
    return mongomock.MongoClient()


@pytest.fixture
def db(mongo_client, settings):
    return mongo_client[settings.database_name]


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def client(settings, mongo_client, notifier, clock):
    from fastapi.testclient import TestClient
    from main import create_app

    app = create_app(settings, client=mongo_client, notifier=notifier, clock=clock)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def admin_headers(client):
    r = client.post("/auth/login", json={"password": ADMIN_PASSWORD})
    assert r.status_code == 200
    return {"Authorization": f"Bearer {r.json()['token']}"}
