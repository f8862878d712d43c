
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from backoffice.core import metrics
from backoffice.db.session import get_session
from backoffice.main import app

client = TestClient(app)


def test_http_error_shape():
    res = client.get("/api/v1/does-not-exist")
    assert res.status_code == 404
    body = res.json()
    assert set(body.keys()) == {"detail", "code"}
    assert body["detail"] == "Not Found"


def test_validation_error_shape():
    res = client.post("/api/v1/coupons/apply", json={"code": "SAVE20"})
    assert res.status_code == 422
    body = res.json()
    assert body["code"] == "validation_error"
    assert isinstance(body["detail"], list)


class _BrokenSession:
    """Session stand-in whose reads fail like a dropped connection."""

    def __init__(self) -> None:
        self.rolled_back = False

    async def execute(self, *args, **kwargs):
        raise OperationalError("SELECT 1", {}, Exception("connection lost"))

    async def rollback(self) -> None:
        self.rolled_back = True


def test_storage_failure_maps_to_503():
    broken = _BrokenSession()

    async def override_get_session():
        yield broken

    app.dependency_overrides[get_session] = override_get_session
    try:
        res = client.post(
            "/api/v1/coupons/validate",
            json={"code": "SAVE20", "user_id": "8f14e45f-ceea-467f-a0e6-3f1f2d7c9a10", "order_amount": "10"},
        )
    finally:
        app.dependency_overrides.clear()
    assert res.status_code == 503
    assert res.json() == {"detail": "Temporary storage failure, please retry", "code": "storage_error"}
    assert broken.rolled_back is True
    assert metrics.snapshot()["storage_failures"] == 1
