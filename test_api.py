"""HTTP-level tests: authentication, error mapping and the main flows through the routers."""
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from app.config import settings
from app.crud import challenges
from app.database import get_db
from app.main import app
from app.security.rules import AuthContext


@pytest.fixture
def client(db, users):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def as_user(uid):
    return {"X-User-ID": uid}


def test_health(client):
    assert client.get("/health").json()["status"] == "healthy"


def test_requires_authentication(client):
    response = client.get("/users/me")
    assert response.status_code == 401


def test_unknown_x_user_id_rejected(client):
    assert client.get("/users/me", headers=as_user("mallory")).status_code == 401


def test_x_user_id_refused_when_header_auth_disabled(client, monkeypatch, make_user):
    make_user("root", is_admin=True)
    monkeypatch.setattr(settings, "ALLOW_HEADER_AUTH", False)

    assert client.get("/users/me", headers=as_user("alice")).status_code == 401
    assert client.get("/admin/outbox", headers=as_user("root")).status_code == 401


def test_connection_flow(client):
    response = client.post("/connections", json={"counterpart_user_id": "bob", "message": "hi"}, headers=as_user("alice"))
    assert response.status_code == 201
    assert response.json()["id"] == "alice_bob"

    response = client.patch("/connections/bob", json={"status": "accepted"}, headers=as_user("alice"))
    assert response.status_code == 403
    assert response.json()["error"]["code"] == "ERR_PERMISSION_DENIED"

    response = client.patch("/connections/alice", json={"status": "accepted"}, headers=as_user("bob"))
    assert response.status_code == 200
    body = response.json()
    assert body["mirror_updated"] is True
    assert body["connection"]["status"] == "accepted"

    listing = client.get("/connections", headers=as_user("alice")).json()
    assert listing["total_count"] == 1
    assert listing["connections"][0]["status"] == "accepted"


def test_remove_connection_over_http(client):
    client.post("/connections", json={"counterpart_user_id": "bob"}, headers=as_user("alice"))

    response = client.delete("/connections/alice", headers=as_user("bob"))
    assert response.status_code == 200
    assert response.json()["mirror_removed"] is True
    assert client.get("/connections", headers=as_user("alice")).json()["total_count"] == 0

    response = client.delete("/connections/alice", headers=as_user("bob"))
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "ERR_NOT_FOUND"


def test_remove_connection_unexpected_error_is_500(client):
    with patch("app.routers.connections.ConnectionsCRUD.remove_connection", side_effect=RuntimeError("db gone")):
        response = client.delete("/connections/alice", headers=as_user("bob"))
    assert response.status_code == 500
    assert response.json()["detail"] == "Internal server error"


def test_duplicate_connection_is_conflict(client):
    client.post("/connections", json={"counterpart_user_id": "bob"}, headers=as_user("alice"))
    response = client.post("/connections", json={"counterpart_user_id": "alice"}, headers=as_user("bob"))
    assert response.status_code == 409
    assert response.json()["error"]["code"] == "ERR_CONFLICT"


def test_trade_completion_over_http(client):
    trade = client.post(
        "/trades",
        json={"title": "Logo for lessons", "skills_offered": [{"name": "Logo Design"}]},
        headers=as_user("alice"),
    ).json()
    proposal = client.post(f"/trades/{trade['id']}/proposals", json={"message": "Deal"}, headers=as_user("bob"))
    assert proposal.status_code == 201

    response = client.post(
        f"/trades/{trade['id']}/proposals/{proposal.json()['id']}/respond",
        json={"accept": True},
        headers=as_user("alice"),
    )
    assert response.json()["status"] == "accepted"
    assert client.post(f"/trades/{trade['id']}/start", headers=as_user("alice")).json()["status"] == "in-progress"
    response = client.post(f"/trades/{trade['id']}/request-completion", json={"notes": "done"}, headers=as_user("alice"))
    assert response.json()["status"] == "pending-confirmation"

    response = client.post(f"/trades/{trade['id']}/confirm", headers=as_user("alice"))
    assert response.status_code == 403

    response = client.post(f"/trades/{trade['id']}/confirm", headers=as_user("bob"))
    assert response.status_code == 200
    assert response.json()["status"] == "completed"

    # Side effects were dispatched as a background task after the response
    xp = client.get("/users/me/xp", headers=as_user("bob")).json()
    assert xp["total_xp"] == 250
    assert xp["current_level"] == 2
    portfolio = client.get("/users/alice/portfolio", headers=as_user("bob")).json()
    assert [item["title"] for item in portfolio] == ["Logo for lessons"]


def test_invalid_transition_maps_to_409(client):
    trade = client.post("/trades", json={"title": "Lessons"}, headers=as_user("alice")).json()

    response = client.post(f"/trades/{trade['id']}/confirm", headers=as_user("alice"))

    assert response.status_code == 409
    assert response.json()["error"]["code"] == "ERR_INVALID_TRANSITION"


def test_missing_trade_is_404(client):
    assert client.get("/trades/nope", headers=as_user("alice")).status_code == 404


def test_empty_change_reason_rejected(client):
    response = client.post("/trades/any/request-changes", json={"reason": ""}, headers=as_user("bob"))
    assert response.status_code == 422


def test_challenge_join_twice(client, db, make_user):
    make_user("root", is_admin=True)
    challenge = challenges.create_challenge(db, AuthContext(uid="root", is_admin=True), "Thirty days of sketching")

    first = client.post(f"/challenges/{challenge.id}/join", headers=as_user("alice"))
    assert first.status_code == 201
    assert first.json()["id"] == f"alice_{challenge.id}"

    second = client.post(f"/challenges/{challenge.id}/join", headers=as_user("alice"))
    assert second.status_code == 409


def test_admin_routes_require_admin(client):
    assert client.get("/admin/outbox", headers=as_user("alice")).status_code == 403


def test_firebase_token_with_admin_claim(client):
    claims = {"uid": "dana", "email": "dana@tradeya.io", "name": "Dana", "admin": True}
    with patch("app.auth.auth.verify_id_token", return_value=claims) as verify:
        response = client.get("/users/me", headers={"Authorization": "Bearer token-123"})
        assert response.status_code == 200
        assert response.json()["id"] == "dana"
        verify.assert_called_with("token-123")

        assert client.get("/admin/outbox", headers={"Authorization": "Bearer token-123"}).status_code == 200


def test_invalid_firebase_token(client):
    with patch("app.auth.auth.verify_id_token", side_effect=ValueError("expired")):
        response = client.get("/users/me", headers={"Authorization": "Bearer bad"})
    assert response.status_code == 401
