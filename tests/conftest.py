import pytest
from alerts import AlertBook
from api import create_app
from fastapi.testclient import TestClient
from helpers import make_engine
from sqlalchemy.pool import StaticPool
from store import Store

TEST_CFG = {
    "app": {"cors_origins": ["http://localhost:3000"]},
    "alerts": {"max_active": 3, "history_limit": 50},
}


@pytest.fixture
def engine():
    eng = make_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    yield eng
    eng.dispose()


@pytest.fixture
def store(engine):
    return Store(engine)


@pytest.fixture
def alerts(engine):
    return AlertBook(engine, max_active=3)


@pytest.fixture
def client(store, alerts):
    app = create_app(dict(TEST_CFG), store=store, alerts=alerts)
    with TestClient(app) as c:
        yield c
