import os

os.environ.setdefault("DATABASE_URL", "sqlite:///./test_gastos.db")
os.environ.setdefault("SECRET_KEY", "test-secret")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from uuid import UUID  # noqa: E402

from fastapi.testclient import TestClient  # noqa: E402
import pytest  # noqa: E402
from sqlmodel import Session  # noqa: E402

from app.database import create_db_and_tables, drop_db_and_tables, engine  # noqa: E402
from app.main import app  # noqa: E402
from app.models.connection import ConnectionStatus, UserConnection  # noqa: E402


@pytest.fixture(autouse=True)
def reset_db():
    drop_db_and_tables()
    create_db_and_tables()
    yield


@pytest.fixture()
def client() -> TestClient:
    return TestClient(app)


@pytest.fixture()
def session():
    with Session(engine) as s:
        yield s


@pytest.fixture()
def make_user(client):
    """Registra un usuario y devuelve (id, headers)."""

    def _make(email: str, display_name=None, password: str = "secreto123"):
        r = client.post(
            "/auth/register",
            json={"email": email, "password": password, "display_name": display_name},
        )
        assert r.status_code == 200, r.text
        user_id = UUID(r.json()["id"])
        login = client.post("/auth/login", data={"username": email, "password": password})
        assert login.status_code == 200, login.text
        headers = {"Authorization": f"Bearer {login.json()['access_token']}"}
        return user_id, headers

    return _make


@pytest.fixture()
def connect():
    def _connect(a: UUID, b: UUID, status: ConnectionStatus = ConnectionStatus.accepted):
        with Session(engine) as s:
            s.add(UserConnection(user_id_1=a, user_id_2=b, status=status))
            s.commit()

    return _connect
