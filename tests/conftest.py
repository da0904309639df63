import pytest
from fastapi.testclient import TestClient

from app.database import get_db
from app.main import app
from tests.fakes import FakeSession


@pytest.fixture
def session():
    return FakeSession()


@pytest.fixture
def client(session):
    async def override_get_db():
        yield session

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()
