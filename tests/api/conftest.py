import pytest
from fastapi.testclient import TestClient

from server.main import app
from server.dependencies import get_clock, get_deliver


@pytest.fixture
def api_client(db, clock, mailer):
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_deliver] = lambda: mailer
    client = TestClient(app)
    try:
        yield client
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def register(api_client, mailer):
    def _register(email="ann@x.com", password="secret1", name="Ann"):
        response = api_client.post("/auth/signup", json={"name": name, "email": email, "password": password})
        assert response.status_code == 201
        response = api_client.post("/auth/verify-otp", json={"email": email, "otp": mailer.last_code(email)})
        assert response.status_code == 200
        return {"Authorization": f"Bearer {response.json()['access_token']}"}
    return _register


@pytest.fixture
def auth_headers(register):
    return register()
