"""
本地权威服务测试
通过实体访问客户端调用进程内权威服务，验证权威规则与读己之写
"""

import pytest
from roleplay import create_app
from roleplay.core.entity_access import get_entity_access
from roleplay.core.errors import NotFound, RemoteFailure
from roleplay.core.extensions import db
from roleplay.core.identity import CallerContext
from roleplay.core.schemas import ServerRole, UserRole
from roleplay.models.servers import ServerMembershipRecord

OWNER = CallerContext(principal="owner-1")
ADMIN = CallerContext(principal="admin-1")
MEMBER = CallerContext(principal="member-1")
STRANGER = CallerContext(principal="stranger")
ROOT = CallerContext(principal="root-admin")


@pytest.fixture
def app():
    app = create_app("testing")
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return get_entity_access()


@pytest.fixture
def server_id(client):
    """所有者创建的星球，含一名管理员和一名普通成员"""
    server_id = client.create_server(OWNER, name="测试星球", description="简介")
    db.session.add(
        ServerMembershipRecord(
            server_id=server_id, user_id="admin-1", role=ServerRole.ADMIN.value
        )
    )
    db.session.commit()
    client.cache.clear()
    client.join_server(MEMBER, server_id)
    return server_id


def roles(server):
    return {m.user_id: m.role for m in server.memberships}


class TestServers:
    """测试星球与成员"""

    def test_create_seeds_owner_membership(self, client):
        server_id = client.create_server(OWNER, name="星球A")
        server = client.get_server(OWNER, server_id)
        assert server.owner == "owner-1"
        assert roles(server) == {"owner-1": ServerRole.OWNER}
        assert [s.id for s in client.list_servers(None)] == [server_id]

    def test_duplicate_id_rejected(self, client):
        client.create_server(OWNER, name="星球A", server_id="server-fixed")
        with pytest.raises(RemoteFailure) as exc_info:
            client.create_server(STRANGER, name="星球B", server_id="server-fixed")
        assert exc_info.value.remote_status == 409

    def test_missing_server(self, client):
        with pytest.raises(NotFound):
            client.get_server(None, "server-missing")

    def test_join_is_idempotent(self, client, server_id):
        client.join_server(MEMBER, server_id)
        server = client.get_server(MEMBER, server_id)
        assert [m.user_id for m in server.memberships].count("member-1") == 1

    def test_update_requires_moderator(self, client, server_id):
        with pytest.raises(RemoteFailure) as exc_info:
            client.update_server(MEMBER, server_id, name="改名")
        assert exc_info.value.remote_status == 403
        client.update_server(ADMIN, server_id, name="新名字", description="新简介")
        assert client.get_server(None, server_id).name == "新名字"

    def test_owner_cannot_leave(self, client, server_id):
        with pytest.raises(RemoteFailure) as exc_info:
            client.leave_server(OWNER, server_id)
        assert exc_info.value.remote_status == 403

    def test_member_leaves(self, client, server_id):
        client.leave_server(MEMBER, server_id)
        assert "member-1" not in roles(client.get_server(None, server_id))

    def test_non_member_leave_is_noop(self, client, server_id):
        client.leave_server(STRANGER, server_id)
        assert len(client.get_server(None, server_id).memberships) == 3

    def test_admin_removes_member_not_owner(self, client, server_id):
        """管理员可以移除普通成员，但不能移除所有者"""
        with pytest.raises(RemoteFailure) as exc_info:
            client.remove_member(ADMIN, server_id, "owner-1")
        assert exc_info.value.remote_status == 403
        client.remove_member(ADMIN, server_id, "member-1")
        assert set(roles(client.get_server(None, server_id))) == {"owner-1", "admin-1"}

    def test_member_cannot_remove(self, client, server_id):
        with pytest.raises(RemoteFailure) as exc_info:
            client.remove_member(MEMBER, server_id, "admin-1")
        assert exc_info.value.remote_status == 403

    def test_remove_unknown_member(self, client, server_id):
        with pytest.raises(NotFound):
            client.remove_member(OWNER, server_id, "stranger")


class TestRoomsAndPosts:
    """测试房间与帖子"""

    @pytest.fixture
    def room_id(self, client, server_id):
        return client.create_room(OWNER, server_id, name="酒馆", description="热闹")

    def test_room_created_with_creator_member(self, client, server_id, room_id):
        room = client.get_room(None, server_id, room_id)
        assert room.creator == "owner-1"
        assert room.members == ["owner-1"]
        assert [r.id for r in client.list_rooms(None, server_id)] == [room_id]
        assert [r.id for r in client.get_server(None, server_id).rooms] == [room_id]

    def test_member_cannot_create_room(self, client, server_id):
        with pytest.raises(RemoteFailure) as exc_info:
            client.create_room(MEMBER, server_id, name="私房")
        assert exc_info.value.remote_status == 403

    def test_post_read_your_writes(self, client, server_id, room_id):
        assert client.list_roleplay_posts(MEMBER, server_id, room_id) == []
        post_id = client.create_roleplay_post(MEMBER, server_id, room_id, "推门而入")
        posts = client.list_roleplay_posts(MEMBER, server_id, room_id)
        assert [(p.id, p.author, p.content) for p in posts] == [
            (post_id, "member-1", "推门而入")
        ]
        room = client.get_room(MEMBER, server_id, room_id)
        assert room.members == ["owner-1", "member-1"]

    def test_non_member_cannot_post(self, client, server_id, room_id):
        with pytest.raises(RemoteFailure) as exc_info:
            client.create_roleplay_post(STRANGER, server_id, room_id, "你好")
        assert exc_info.value.remote_status == 403

    def test_post_ids_increase_and_are_not_reused(self, client, server_id, room_id):
        first = client.create_roleplay_post(MEMBER, server_id, room_id, "一")
        second = client.create_roleplay_post(MEMBER, server_id, room_id, "二")
        assert second > first
        client.delete_roleplay_post(OWNER, server_id, room_id, second)
        third = client.create_roleplay_post(MEMBER, server_id, room_id, "三")
        assert third > second
        ids = [p.id for p in client.list_roleplay_posts(MEMBER, server_id, room_id)]
        assert ids == [first, third]

    def test_author_cannot_delete_own_post(self, client, server_id, room_id):
        post_id = client.create_roleplay_post(MEMBER, server_id, room_id, "一")
        with pytest.raises(RemoteFailure) as exc_info:
            client.delete_roleplay_post(MEMBER, server_id, room_id, post_id)
        assert exc_info.value.remote_status == 403
        client.delete_roleplay_post(ADMIN, server_id, room_id, post_id)
        with pytest.raises(NotFound):
            client.get_roleplay_post(ADMIN, server_id, room_id, post_id)

    def test_post_in_other_room_not_found(self, client, server_id, room_id):
        other = client.create_room(OWNER, server_id, name="后院")
        post_id = client.create_roleplay_post(MEMBER, server_id, room_id, "一")
        with pytest.raises(NotFound):
            client.get_roleplay_post(MEMBER, server_id, other, post_id)


class TestCharacters:
    """测试角色卡作用域"""

    def test_scope_filtering(self, client, server_id):
        other_id = client.create_server(OWNER, name="另一个星球")
        unscoped = client.create_character_profile(
            MEMBER, name="旅人", character_id="char-1700000000000-ab12cd3ef"
        )
        scoped = client.create_character_profile(
            MEMBER, name="骑士", server_id=server_id
        )

        all_ids = {c.id for c in client.list_character_profiles(MEMBER, "member-1")}
        assert all_ids == {unscoped.id, scoped.id}
        here = client.list_character_profiles(MEMBER, "member-1", server_id=server_id)
        assert {c.id for c in here} == {unscoped.id, scoped.id}
        there = client.list_character_profiles(MEMBER, "member-1", server_id=other_id)
        assert [c.id for c in there] == [unscoped.id]

    def test_edit_visible_in_cached_lists(self, client, server_id):
        profile = client.create_character_profile(MEMBER, name="旅人")
        client.list_character_profiles(MEMBER, "member-1", server_id=server_id)
        client.edit_character_profile(
            MEMBER, profile.id, name="老旅人", appearance="灰色斗篷"
        )
        listed = client.list_character_profiles(MEMBER, "member-1", server_id=server_id)
        assert [c.name for c in listed] == ["老旅人"]
        assert client.get_character_profile(None, profile.id).appearance == "灰色斗篷"

    def test_only_owner_edits(self, client):
        profile = client.create_character_profile(MEMBER, name="旅人")
        with pytest.raises(RemoteFailure) as exc_info:
            client.edit_character_profile(STRANGER, profile.id, name="冒名")
        assert exc_info.value.remote_status == 403

    def test_scope_to_unknown_server(self, client):
        with pytest.raises(NotFound):
            client.create_character_profile(MEMBER, name="旅人", server_id="server-x")


class TestProfilesAndRoles:
    """测试用户资料与全局角色"""

    def test_save_profile_replaces_whole_record(self, client):
        assert client.get_caller_user_profile(MEMBER) is None
        client.save_caller_user_profile(MEMBER, name="旅人", bio="来自远方")
        assert client.get_caller_user_profile(MEMBER).bio == "来自远方"
        client.save_caller_user_profile(MEMBER, name="旅人")
        profile = client.get_user_profile(None, "member-1")
        assert profile.name == "旅人"
        assert profile.bio is None

    def test_save_profile_idempotent(self, client):
        client.save_caller_user_profile(MEMBER, name="旅人", bio="简介")
        first = client.get_caller_user_profile(MEMBER)
        client.save_caller_user_profile(MEMBER, name="旅人", bio="简介")
        assert client.get_caller_user_profile(MEMBER) == first

    def test_global_roles(self, client):
        assert client.get_caller_user_role(None) == UserRole.GUEST
        assert client.get_caller_user_role(MEMBER) == UserRole.USER
        assert client.is_caller_admin(ROOT)
        assert not client.is_caller_admin(MEMBER)

    def test_only_admin_assigns_roles(self, client):
        with pytest.raises(RemoteFailure) as exc_info:
            client.assign_caller_user_role(MEMBER, "stranger", "admin")
        assert exc_info.value.remote_status == 403
        client.assign_caller_user_role(ROOT, "member-1", UserRole.ADMIN)
        assert client.is_caller_admin(MEMBER)
        assert client.get_caller_user_role(MEMBER) == UserRole.ADMIN

    def test_global_admin_gets_no_server_capability(self, client, server_id):
        with pytest.raises(RemoteFailure) as exc_info:
            client.update_server(ROOT, server_id, name="越权")
        assert exc_info.value.remote_status == 403
