"""Сквозной сценарий через HTTP: регистрация, турнир, голосование и продвижение раунда."""

import pytest
from fastapi.testclient import TestClient

from app.core.session import SESSION_COOKIE
from app.db.session import get_db
from app.main import app
from contest_factory import create_test_engine, make_sessionmaker


@pytest.fixture
def client():
    state = {}

    async def override_get_db():
        # Движок создается внутри цикла событий TestClient.
        if "sessionmaker" not in state:
            state["sessionmaker"] = make_sessionmaker(await create_test_engine())
        async with state["sessionmaker"]() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def register(client: TestClient, username: str) -> dict:
    response = client.post("/auth/register", data={"username": username, "email": f"{username}@example.com"})
    assert response.status_code == 200
    return response.json()


def test_full_round_flow(client: TestClient) -> None:
    registered = register(client, "alice")
    assert registered["user"]["username"] == "alice"
    token = registered["access_token"]

    created = client.post("/tournaments", data={"name": "Snacks", "size": 4}).json()
    assert created["ok"] is True
    tournament_id = created["tournament"]["id"]
    assert client.get("/tournaments/snacks").json()["tournament"]["id"] == tournament_id

    placeholders = client.post(f"/tournaments/{tournament_id}/contestants/placeholders").json()
    names = {c["name"]: c["id"] for c in placeholders["contestants"]}
    assert sorted(names) == ["A1", "B1", "C1", "D1"]

    assert client.post(f"/tournaments/{tournament_id}/status", data={"status": "registration"}).status_code == 200
    started = client.post(f"/tournaments/{tournament_id}/start").json()
    assert [r["name"] for r in started["rounds"]] == ["Semifinals", "Final"]
    assert started["tournament"]["status"] == "active"

    bracket = client.get(f"/tournaments/{tournament_id}/bracket").json()
    first_matchup = bracket["rounds"][0]["matchups"][0]
    assert (first_matchup["contestant1_name"], first_matchup["contestant2_name"]) == ("A1", "D1")

    vote = client.post(f"/matchups/{first_matchup['id']}/vote", data={"contestant_id": names["D1"]})
    assert vote.status_code == 200
    results = client.get(f"/matchups/{first_matchup['id']}/results").json()
    assert (results["contestant1_votes"], results["contestant2_votes"]) == (0, 1)

    status = client.get(f"/tournaments/{tournament_id}/voting-status").json()
    assert status["voted_matchups"] == 1

    client.post("/auth/logout")
    assert client.get("/me").status_code == 401
    assert client.post("/auth/login", data={"username": "alice", "access_token": "nope"}).status_code == 401
    assert client.post("/auth/login", data={"username": "alice", "access_token": token}).status_code == 200
    assert client.get("/me").json()["user"]["username"] == "alice"

    assert client.post(f"/admin/tournaments/{tournament_id}/force-advance").status_code == 403
    assert client.post("/admin/login", data={"admin_key": "test_admin"}).status_code == 200
    advanced = client.post(f"/admin/tournaments/{tournament_id}/force-advance").json()
    assert advanced["winners_declared"] == 2
    assert advanced["ties_resolved"] == 1

    final = client.get(f"/tournaments/{tournament_id}/bracket").json()["rounds"][1]["matchups"][0]
    assert (final["contestant1_name"], final["contestant2_name"]) == ("D1", "B1")
    assert final["status"] == "active"

    dashboard = client.get("/admin").json()
    assert dashboard["tournaments_by_status"] == {"active": 1}
    assert dashboard["users"] == 1


def test_permissions_and_errors(client: TestClient) -> None:
    assert client.post("/tournaments", data={"name": "Nope", "size": 4}).status_code == 401

    register(client, "owner")
    tournament_id = client.post("/tournaments", data={"name": "Owned", "size": 4}).json()["tournament"]["id"]
    bad_size = client.post("/tournaments", data={"name": "Odd", "size": 6})
    assert bad_size.status_code == 400
    assert bad_size.json()["ok"] is False

    register(client, "stranger")
    response = client.post(f"/tournaments/{tournament_id}/contestants", data={"name": "Intruder"})
    assert response.status_code == 403
    assert client.get("/tournaments/999").status_code == 404
    assert client.post("/auth/register", data={"username": "owner", "email": "x@example.com"}).status_code == 409

    suggestion = client.post(f"/tournaments/{tournament_id}/suggestions", data={"name": "Tea"}).json()
    assert suggestion["ok"] is True
    assert client.post(f"/suggestions/{suggestion['suggestion']['id']}/vote").status_code == 200
    assert client.post(f"/suggestions/{suggestion['suggestion']['id']}/vote").status_code == 409
    listed = client.get(f"/tournaments/{tournament_id}/suggestions").json()["suggestions"]
    assert listed[0]["vote_count"] == 1
    assert listed[0]["user_has_voted"] is True


def use_session(client: TestClient, cookie: str) -> None:
    client.cookies.clear()
    client.cookies.set(SESSION_COOKIE, cookie)


def test_admin_rights_follow_user_record(client: TestClient) -> None:
    bob = register(client, "bob")
    bob_id = bob["user"]["id"]

    admin_cookie = client.post("/admin/login", data={"admin_key": "test_admin"}).cookies[SESSION_COOKIE]
    use_session(client, admin_cookie)
    assert client.post(f"/admin/users/{bob_id}/admin", data={"is_admin": "true"}).status_code == 200

    login = client.post("/auth/login", data={"username": "bob", "access_token": bob["access_token"]})
    bob_cookie = login.cookies[SESSION_COOKIE]
    use_session(client, bob_cookie)
    assert client.get("/admin/users").status_code == 200
    owned = client.post("/tournaments", data={"name": "Bob Cup", "size": 4}).json()["tournament"]["id"]

    use_session(client, admin_cookie)
    assert client.post(f"/admin/users/{bob_id}/admin", data={"is_admin": "false"}).status_code == 200

    use_session(client, bob_cookie)
    demoted = client.get("/admin/users")
    assert demoted.status_code == 403
    assert demoted.json() == {"ok": False, "error": "Admin access required"}
    assert client.get(f"/tournaments/{owned}").status_code == 200

    use_session(client, admin_cookie)
    assert client.post(f"/admin/users/{bob_id}/delete").status_code == 200

    use_session(client, bob_cookie)
    assert client.get("/admin/users").status_code == 403
    assert client.get("/me").status_code == 401


def test_private_tournament_reads_are_hidden_from_strangers(client: TestClient) -> None:
    owner = register(client, "owner")
    owner_cookie = client.post(
        "/auth/login", data={"username": "owner", "access_token": owner["access_token"]}
    ).cookies[SESSION_COOKIE]
    use_session(client, owner_cookie)
    created = client.post("/tournaments", data={"name": "Secret", "size": 4, "is_public": "false"}).json()
    tournament_id = created["tournament"]["id"]
    assert client.post(f"/tournaments/{tournament_id}/suggestions", data={"name": "Tea"}).status_code == 200
    assert client.post(f"/tournaments/{tournament_id}/contestants/placeholders").status_code == 200
    assert client.post(f"/tournaments/{tournament_id}/start").status_code == 200
    matchup_id = client.get(f"/tournaments/{tournament_id}/bracket").json()["rounds"][0]["matchups"][0]["id"]
    assert client.get(f"/matchups/{matchup_id}/results").status_code == 200
    assert client.get(f"/tournaments/{tournament_id}/suggestions").status_code == 200

    stranger = register(client, "stranger")
    stranger_cookie = client.post(
        "/auth/login", data={"username": "stranger", "access_token": stranger["access_token"]}
    ).cookies[SESSION_COOKIE]
    use_session(client, stranger_cookie)
    assert client.get(f"/tournaments/{tournament_id}/suggestions").status_code == 403
    assert client.get(f"/matchups/{matchup_id}/results").status_code == 403
    assert client.get(f"/tournaments/{tournament_id}/voting-status").status_code == 403

    client.cookies.clear()
    assert client.get(f"/tournaments/{tournament_id}/suggestions").status_code == 403
    assert client.get(f"/matchups/{matchup_id}/results").status_code == 403
