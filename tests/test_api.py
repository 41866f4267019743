from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from lookmax import database
from lookmax.config import settings
from lookmax.main import app, limiter

CORS = {
    "access-control-allow-origin": "*",
    "access-control-allow-methods": "GET, POST, OPTIONS",
    "access-control-allow-headers": "Content-Type",
}


def assert_cors(response):
    for header, value in CORS.items():
        assert response.headers[header] == value


def assert_text(response, status: int, body: str):
    assert response.status_code == status
    assert response.headers["content-type"].startswith("text/plain")
    assert response.text == body
    assert_cors(response)


def test_health_check(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_preflight_returns_empty_ok(client):
    response = client.options("/")
    assert response.status_code == 200
    assert response.content == b""
    assert_cors(response)


def test_preflight_on_any_path(client):
    response = client.options("/anything/else")
    assert response.status_code == 200
    assert_cors(response)


def test_empty_snapshot(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/json")
    assert response.json() == {"candidates": [], "votes": [], "comments": []}
    assert_cors(response)


def test_method_not_allowed(client):
    for method in ("PUT", "DELETE", "PATCH"):
        response = client.request(method, "/")
        assert_text(response, 405, "Method not allowed")


def test_invalid_json(client):
    response = client.post(
        "/", content="{not json", headers={"Content-Type": "application/json"}
    )
    assert_text(response, 400, "Invalid JSON")
    assert "x-correlation-id" in response.headers


def test_empty_body_is_invalid_json(client):
    response = client.post("/", content=b"")
    assert_text(response, 400, "Invalid JSON")


def test_unknown_type(client):
    response = client.post("/", json={"type": "delete_everything"})
    assert_text(response, 400, "Unknown type")


def test_missing_type(client):
    response = client.post("/", json={"targetId": "c1", "rating": 5})
    assert_text(response, 400, "Unknown type")


def test_non_object_body(client):
    for body in ([1, 2, 3], "vote", 42):
        response = client.post("/", json=body)
        assert_text(response, 400, "Unknown type")


def test_unhashable_type_field(client):
    response = client.post("/", json={"type": ["vote"]})
    assert_text(response, 400, "Unknown type")


def test_store_error_returns_json_500(client):
    # База без таблиц: любой запрос падает с OperationalError
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    BrokenSession = sessionmaker(bind=engine)

    def broken_get_db():
        db = BrokenSession()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[database.get_db] = broken_get_db
    try:
        response = client.get("/")
        assert response.status_code == 500
        assert response.headers["content-type"].startswith("application/json")
        # только сообщение драйвера, без текста запроса
        assert response.json()["error"] == "no such table: candidates"
        assert_cors(response)

        response = client.post(
            "/", json={"type": "vote", "targetId": "c1", "rating": 4}
        )
        assert response.status_code == 500
        assert "no such table" in response.json()["error"]
    finally:
        engine.dispose()


def test_unknown_path_is_not_found(client):
    response = client.get("/nope")
    assert response.status_code == 404


def test_post_rate_limit(client, monkeypatch):
    # в тестах ограничитель выключен, включаем его явно
    limit = int(settings.post_rate_limit.split("/")[0])
    limiter.reset()
    monkeypatch.setattr(limiter, "enabled", True)
    try:
        for _ in range(limit):
            response = client.post("/", json={"type": "ping"})
            assert response.status_code == 400
        response = client.post("/", json={"type": "ping"})
    finally:
        limiter.reset()

    assert response.status_code == 429
    assert "Rate limit exceeded" in response.json()["error"]
    assert_cors(response)

    # GET не ограничивается
    assert client.get("/").status_code == 200
