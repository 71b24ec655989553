"""Проверяет поведение admin middleware для /admin и /admin/."""

from fastapi.testclient import TestClient

from app.main import app


def test_admin_key_auth_works_for_admin_path_without_trailing_slash() -> None:
    client = TestClient(app)

    response = client.get("/admin?admin_key=test_admin", follow_redirects=False)

    assert response.status_code == 303
    assert response.headers["location"] == "/admin"
    assert "session=" in response.headers.get("set-cookie", "")


def test_admin_key_auth_works_for_admin_path_with_trailing_slash() -> None:
    client = TestClient(app)

    response = client.get("/admin/?admin_key=test_admin", follow_redirects=False)

    assert response.status_code == 303
    assert response.headers["location"] == "/admin"


def test_wrong_admin_key_is_forbidden() -> None:
    client = TestClient(app)

    response = client.get("/admin?admin_key=wrong", follow_redirects=False)

    assert response.status_code == 403
    assert response.json() == {"ok": False, "error": "Forbidden"}


def test_admin_routes_require_admin_session() -> None:
    client = TestClient(app)

    assert client.post("/admin/tournaments/1/force-advance").status_code == 403
    assert client.get("/admin/users").status_code == 403


def test_admin_login_sets_session_cookie() -> None:
    client = TestClient(app)

    assert client.post("/admin/login", data={"admin_key": "wrong"}).status_code == 403
    response = client.post("/admin/login", data={"admin_key": "test_admin"})

    assert response.status_code == 200
    assert response.json() == {"ok": True}
    assert "session=" in response.headers.get("set-cookie", "")
