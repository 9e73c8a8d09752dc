"""
房间与帖子 API 测试
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


@pytest.fixture
def owner(client):
    return auth_headers(client, "owner-1")


@pytest.fixture
def member(client):
    return auth_headers(client, "member-1")


@pytest.fixture
def server_id(client, owner, member):
    resp = client.post("/api/servers", json={"name": "测试星球"}, headers=owner)
    server_id = resp.get_json()["server_id"]
    client.post(f"/api/servers/{server_id}/members", headers=member)
    return server_id


@pytest.fixture
def room_id(client, owner, server_id):
    resp = client.post(
        f"/api/servers/{server_id}/rooms",
        json={"name": "酒馆", "description": "热闹的酒馆"},
        headers=owner,
    )
    assert resp.status_code == 201
    return resp.get_json()["room_id"]


def posts_url(server_id, room_id):
    return f"/api/servers/{server_id}/rooms/{room_id}/posts"


def test_list_rooms(client, server_id, room_id):
    rooms = client.get(f"/api/servers/{server_id}/rooms").get_json()["rooms"]
    assert [r["id"] for r in rooms] == [room_id]
    assert rooms[0]["post_count"] == 0
    assert room_id.startswith("room-")


def test_member_cannot_create_room(client, member, server_id):
    resp = client.post(
        f"/api/servers/{server_id}/rooms", json={"name": "私房"}, headers=member
    )
    assert resp.status_code == 403


def test_room_validation(client, owner, server_id):
    resp = client.post(
        f"/api/servers/{server_id}/rooms",
        json={"name": "酒馆", "description": "d" * 301},
        headers=owner,
    )
    assert resp.status_code == 400
    assert resp.get_json()["field"] == "description"


def test_room_detail_viewer(client, member, server_id, room_id):
    data = client.get(
        f"/api/servers/{server_id}/rooms/{room_id}", headers=member
    ).get_json()
    assert data["room"]["name"] == "酒馆"
    assert data["room"]["members"] == ["owner-1"]
    assert data["viewer"]["show_compose_form"] is True

    anonymous = client.get(f"/api/servers/{server_id}/rooms/{room_id}").get_json()
    assert anonymous["viewer"]["show_compose_form"] is False


def test_unknown_room(client, server_id):
    resp = client.get(f"/api/servers/{server_id}/rooms/room-missing")
    assert resp.status_code == 404


def test_post_flow(client, owner, member, server_id, room_id):
    resp = client.post(
        posts_url(server_id, room_id), json={"content": " 推门而入 "}, headers=member
    )
    assert resp.status_code == 201
    first = resp.get_json()["post_id"]
    second = client.post(
        posts_url(server_id, room_id), json={"content": "坐下点酒"}, headers=member
    ).get_json()["post_id"]

    posts = client.get(posts_url(server_id, room_id), headers=member).get_json()["posts"]
    assert [p["id"] for p in posts] == [first, second]
    assert posts[0]["content"] == "推门而入"
    assert posts[0]["author"] == "member-1"
    assert posts[0]["can_delete"] is False

    owner_view = client.get(posts_url(server_id, room_id), headers=owner).get_json()
    assert all(p["can_delete"] for p in owner_view["posts"])

    post = client.get(f"{posts_url(server_id, room_id)}/{first}").get_json()["post"]
    assert post["room_id"] == room_id


def test_post_requires_membership(client, server_id, room_id):
    stranger = auth_headers(client, "stranger")
    resp = client.post(
        posts_url(server_id, room_id), json={"content": "你好"}, headers=stranger
    )
    assert resp.status_code == 403


def test_post_requires_sign_in(client, server_id, room_id):
    resp = client.post(posts_url(server_id, room_id), json={"content": "你好"})
    assert resp.status_code == 401


def test_empty_post_rejected(client, member, server_id, room_id):
    resp = client.post(
        posts_url(server_id, room_id), json={"content": "   "}, headers=member
    )
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "帖子内容必填"


def test_delete_post(client, owner, member, server_id, room_id):
    post_id = client.post(
        posts_url(server_id, room_id), json={"content": "一"}, headers=member
    ).get_json()["post_id"]

    resp = client.delete(f"{posts_url(server_id, room_id)}/{post_id}", headers=member)
    assert resp.status_code == 403

    resp = client.delete(f"{posts_url(server_id, room_id)}/{post_id}", headers=owner)
    assert resp.status_code == 200
    assert client.get(posts_url(server_id, room_id)).get_json()["posts"] == []

    resp = client.get(f"{posts_url(server_id, room_id)}/{post_id}")
    assert resp.status_code == 404

    next_id = client.post(
        posts_url(server_id, room_id), json={"content": "二"}, headers=member
    ).get_json()["post_id"]
    assert next_id > post_id
