from fastapi.testclient import TestClient

from bello import __version__
from bello.main import app


def test_health():
    client = TestClient(app)
    assert client.get("/v1/health").json() == {"status": "ok"}


def test_version_is_published_in_openapi():
    client = TestClient(app)
    info = client.get("/openapi.json").json()["info"]
    assert info == {"title": "Bello API", "version": __version__}


def test_unknown_routes_use_error_envelope():
    client = TestClient(app)
    resp = client.get("/v1/nowhere")
    assert resp.status_code == 404
    assert resp.json() == {"error": {"code": "not_found", "message": "Not Found", "details": None}}

    resp = client.put("/v1/health")
    assert resp.status_code == 405
    assert resp.json()["error"]["code"] == "method_not_allowed"
