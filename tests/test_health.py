from fastapi.testclient import TestClient
from app.main import app


def test_health():
    c = TestClient(app)
    r = c.get("/api/health")
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "ok"
    assert body["uptime"] >= 0
    assert "timestamp" in body


def test_root():
    c = TestClient(app)
    r = c.get("/")
    assert r.status_code == 200
