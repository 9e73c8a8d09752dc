"""
auth 相关 API 测试
"""

import pytest
from roleplay import create_app
from roleplay.core.extensions import db


@pytest.fixture
def client():
    app = create_app("testing")
    with app.app_context():
        db.create_all()
        yield app.test_client()
        db.session.remove()
        db.drop_all()


def auth_headers(client, principal):
    resp = client.post("/api/auth/token", json={"principal": principal})
    return {"Authorization": f"Bearer {resp.get_json()['access_token']}"}


def test_issue_token(client):
    resp = client.post("/api/auth/token", json={"principal": "alice"})
    assert resp.status_code == 200
    data = resp.get_json()
    assert data["principal"] == "alice"
    assert isinstance(data["access_token"], str) and len(data["access_token"]) > 10


def test_issue_token_missing_principal(client):
    resp = client.post("/api/auth/token", json={"principal": "  "})
    assert resp.status_code == 400
    assert "必填" in resp.get_json()["error"]


def test_issue_token_disabled():
    app = create_app("testing")
    app.config["DEV_TOKEN_ENABLED"] = False
    resp = app.test_client().post("/api/auth/token", json={"principal": "alice"})
    assert resp.status_code == 404


def test_me_anonymous(client):
    resp = client.get("/api/auth/me")
    assert resp.status_code == 200
    data = resp.get_json()
    assert data["principal"] is None
    assert data["authenticated"] is False
    assert data["profile"] is None


def test_me_signed_in(client):
    resp = client.get("/api/auth/me", headers=auth_headers(client, "alice"))
    data = resp.get_json()
    assert data["principal"] == "alice"
    assert data["authenticated"] is True


def test_invalid_token_rejected(client):
    resp = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert resp.status_code in (401, 422)


def test_roles(client):
    assert client.get("/api/auth/role").get_json()["role"] == "guest"
    headers = auth_headers(client, "alice")
    assert client.get("/api/auth/role", headers=headers).get_json()["role"] == "user"
    assert client.get("/api/auth/is_admin", headers=headers).get_json() == {
        "is_admin": False
    }


def test_assign_role_by_admin(client):
    admin = auth_headers(client, "root-admin")
    assert client.get("/api/auth/is_admin", headers=admin).get_json()["is_admin"]
    resp = client.post(
        "/api/auth/roles", json={"user_id": "alice", "role": "admin"}, headers=admin
    )
    assert resp.status_code == 200
    alice = auth_headers(client, "alice")
    assert client.get("/api/auth/role", headers=alice).get_json()["role"] == "admin"


def test_assign_role_rejected_for_non_admin(client):
    resp = client.post(
        "/api/auth/roles",
        json={"user_id": "bob", "role": "admin"},
        headers=auth_headers(client, "alice"),
    )
    assert resp.status_code == 502
    data = resp.get_json()
    assert data["kind"] == "remote_failure"
    assert data["remote_status"] == 403


def test_assign_role_requires_sign_in(client):
    resp = client.post("/api/auth/roles", json={"user_id": "bob", "role": "user"})
    assert resp.status_code == 401
    assert resp.get_json()["kind"] == "unauthorized"


def test_assign_unknown_role(client):
    resp = client.post(
        "/api/auth/roles",
        json={"user_id": "bob", "role": "root"},
        headers=auth_headers(client, "root-admin"),
    )
    assert resp.status_code == 400
