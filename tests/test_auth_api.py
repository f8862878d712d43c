import asyncio

from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from backoffice.core import metrics
from backoffice.db.base import Base
from backoffice.db.session import get_session
from backoffice.main import app
from backoffice.services import auth as auth_service


def make_test_client() -> tuple[TestClient, async_sessionmaker]:
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", future=True)
    SessionLocal = async_sessionmaker(engine, expire_on_commit=False, autoflush=False)

    async def init_models() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    asyncio.run(init_models())

    async def override_get_session():
        async with SessionLocal() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    return TestClient(app), SessionLocal


def seed_admin(session_factory: async_sessionmaker, *, username: str = "admin", password: str = "secret123") -> None:
    async def _seed() -> None:
        async with session_factory() as session:
            await auth_service.bootstrap_admin(session, username=username, password=password)

    asyncio.run(_seed())


def _login(client: TestClient, username: str, password: str):
    return client.post("/api/v1/auth/login", json={"username": username, "password": password})


def test_login_and_verify() -> None:
    client, SessionLocal = make_test_client()
    try:
        seed_admin(SessionLocal)
        res = _login(client, "admin", "secret123")
        assert res.status_code == 200, res.text
        body = res.json()
        assert body["token_type"] == "bearer"
        assert body["admin"]["username"] == "admin"

        verify = client.get("/api/v1/auth/verify", headers={"Authorization": f"Bearer {body['access_token']}"})
        assert verify.status_code == 200
        assert verify.json()["id"] == body["admin"]["id"]
        assert metrics.snapshot()["logins"] == 1
    finally:
        client.close()
        app.dependency_overrides.clear()


def test_login_rejects_bad_credentials() -> None:
    client, SessionLocal = make_test_client()
    try:
        seed_admin(SessionLocal)
        wrong_password = _login(client, "admin", "nope")
        assert wrong_password.status_code == 401
        assert wrong_password.json() == {"detail": "Invalid credentials", "code": None}

        unknown = _login(client, "someone", "secret123")
        assert unknown.status_code == 401
        assert metrics.snapshot()["login_failures"] == 2
    finally:
        client.close()
        app.dependency_overrides.clear()


def test_verify_without_token() -> None:
    client, _ = make_test_client()
    try:
        res = client.get("/api/v1/auth/verify")
        assert res.status_code == 401
    finally:
        client.close()
        app.dependency_overrides.clear()


def test_change_password() -> None:
    client, SessionLocal = make_test_client()
    try:
        seed_admin(SessionLocal)
        token = _login(client, "admin", "secret123").json()["access_token"]
        headers = {"Authorization": f"Bearer {token}"}

        too_short = client.post(
            "/api/v1/auth/change-password",
            json={"current_password": "secret123", "new_password": "abc"},
            headers=headers,
        )
        assert too_short.status_code == 400

        wrong_current = client.post(
            "/api/v1/auth/change-password",
            json={"current_password": "wrong", "new_password": "another1"},
            headers=headers,
        )
        assert wrong_current.status_code == 401

        ok = client.post(
            "/api/v1/auth/change-password",
            json={"current_password": "secret123", "new_password": "another1"},
            headers=headers,
        )
        assert ok.status_code == 200, ok.text
        assert ok.json() == {"detail": "Password updated"}

        assert _login(client, "admin", "secret123").status_code == 401
        assert _login(client, "admin", "another1").status_code == 200
    finally:
        client.close()
        app.dependency_overrides.clear()
