"""
实体访问层

为每种实体（星球、房间、帖子、角色卡、用户资料）提供类型化的请求/响应契约：
- 读操作经过查询缓存（读穿透）
- 变更操作先在本地完成身份与输入校验，再发起单次原子请求
- 变更成功后失效受影响的缓存键，保证读己之写；失败时不失效任何缓存
"""

import logging
from typing import Any, List, Optional

from .errors import NotFound, RemoteFailure
from .identity import CallerContext, principal_of, require_caller
from .query_cache import QueryCache, normalize_key
from .schemas import (
    CharacterProfile,
    RoleplayPost,
    Room,
    Server,
    UserProfile,
    UserRole,
    sort_posts,
)
from .transport import HttpTransport, Transport, TransportError
from .validation import (
    CharacterForm,
    PostForm,
    RoomForm,
    ServerForm,
    UserProfileForm,
    generate_entity_id,
    validate_form,
)

logger = logging.getLogger(__name__)


# ==================== 缓存键 ====================
#
# 实体键是失效用的前缀；实际缓存键在末尾追加查看者身份（匿名为 "~"），
# 因为权威服务对不同调用者可能返回不同结果（包括不可见时的 404）。
# caller_* 键本身已含调用者身份，直接作为缓存键使用。


def caller_profile_key(principal):
    return normalize_key("caller_profile", principal)


def user_profile_key(user_id):
    return normalize_key("user_profile", user_id)


def servers_key():
    return normalize_key("servers")


def server_key(server_id):
    return normalize_key("server", server_id)


def rooms_key(server_id):
    return normalize_key("rooms", server_id)


def room_key(server_id, room_id):
    return normalize_key("room", server_id, room_id)


def posts_key(server_id, room_id):
    return normalize_key("posts", server_id, room_id)


def post_key(server_id, room_id, post_id):
    return normalize_key("post", server_id, room_id, post_id)


def characters_key(owner, server_id=None):
    return normalize_key("characters", owner, server_id)


def characters_prefix(owner):
    return normalize_key("characters", owner)


def character_key(character_id):
    return normalize_key("character", character_id)


def caller_role_key(principal):
    return normalize_key("caller_role", principal)


def caller_admin_key(principal):
    return normalize_key("caller_admin", principal)


def viewer_key(prefix, principal):
    return normalize_key(*prefix, principal)


def _with_sorted_posts(room: Room) -> Room:
    return room.model_copy(update={"roleplay_posts": sort_posts(room.roleplay_posts)})


def _with_sorted_rooms(server: Server) -> Server:
    return server.model_copy(
        update={"rooms": [_with_sorted_posts(room) for room in server.rooms]}
    )


class EntityAccessClient:
    """实体访问客户端，调用者身份在每次调用时显式传入"""

    def __init__(self, transport: Transport, cache: Optional[QueryCache] = None):
        self.transport = transport
        self.cache = cache or QueryCache()

    # ==================== 传输与缓存 ====================

    def _call(self, method: str, caller: Optional[CallerContext], **params) -> Any:
        try:
            return self.transport.call(method, caller, **params)
        except TransportError as e:
            if e.status == 404:
                raise NotFound(e.message) from e
            raise RemoteFailure(e.message, remote_status=e.status) from e

    def _read(self, key, method: str, caller, **params) -> Any:
        return self.cache.get_or_load(
            key, lambda: self._call(method, caller, **params)
        )

    def _read_visible(self, prefix, method: str, caller, **params) -> Any:
        """按查看者分区的读穿透，一个调用者的快照不会返回给另一个调用者"""
        return self._read(
            viewer_key(prefix, principal_of(caller)), method, caller, **params
        )

    def _invalidate(self, *prefixes):
        """失效实体键下所有查看者的缓存"""
        for prefix in prefixes:
            self.cache.invalidate_prefix(prefix)

    # ==================== 用户资料 ====================

    def get_caller_user_profile(
        self, caller: Optional[CallerContext]
    ) -> Optional[UserProfile]:
        if caller is None:
            return None
        data = self._read(
            caller_profile_key(caller.principal), "get_caller_user_profile", caller
        )
        return UserProfile.model_validate(data) if data else None

    def get_user_profile(
        self, caller: Optional[CallerContext], user_id: str
    ) -> Optional[UserProfile]:
        data = self._read_visible(
            user_profile_key(user_id), "get_user_profile", caller, user=user_id
        )
        return UserProfile.model_validate(data) if data else None

    def save_caller_user_profile(
        self,
        caller: Optional[CallerContext],
        name: str,
        bio: Optional[str] = None,
        avatar_url: Optional[str] = None,
    ) -> UserProfile:
        """整体覆盖保存当前用户资料，未提供的可选字段视为空"""
        caller = require_caller(caller)
        form = validate_form(
            UserProfileForm, {"name": name, "bio": bio, "avatar_url": avatar_url}
        )
        profile = UserProfile(**form.model_dump())
        self._call(
            "save_caller_user_profile", caller, profile=profile.model_dump(mode="json")
        )
        self.cache.invalidate(caller_profile_key(caller.principal))
        self._invalidate(user_profile_key(caller.principal))
        logger.info(f"用户资料已保存: {caller.principal}")
        return profile

    # ==================== 星球 ====================

    def list_servers(self, caller: Optional[CallerContext]) -> List[Server]:
        data = self._read_visible(servers_key(), "list_servers", caller)
        return [_with_sorted_rooms(Server.model_validate(item)) for item in data or []]

    def get_server(self, caller: Optional[CallerContext], server_id: str) -> Server:
        data = self._read_visible(
            server_key(server_id), "get_server", caller, server_id=server_id
        )
        if data is None:
            raise NotFound("星球不存在")
        return _with_sorted_rooms(Server.model_validate(data))

    def create_server(
        self,
        caller: Optional[CallerContext],
        name: str,
        description: str = "",
        banner_image_url: Optional[str] = None,
        server_id: Optional[str] = None,
    ) -> str:
        """
        创建星球

        返回:
            str: 客户端生成的星球ID
        """
        caller = require_caller(caller)
        form = validate_form(
            ServerForm,
            {
                "name": name,
                "description": description,
                "banner_image_url": banner_image_url,
            },
        )
        server_id = server_id or generate_entity_id("server")
        self._call("create_server", caller, id=server_id, **form.model_dump())
        self._invalidate(servers_key())
        logger.info(f"星球创建成功: {server_id}")
        return server_id

    def update_server(
        self,
        caller: Optional[CallerContext],
        server_id: str,
        name: str,
        description: str = "",
        banner_image_url: Optional[str] = None,
    ):
        caller = require_caller(caller)
        form = validate_form(
            ServerForm,
            {
                "name": name,
                "description": description,
                "banner_image_url": banner_image_url,
            },
        )
        self._call("update_server", caller, server_id=server_id, **form.model_dump())
        self._invalidate(server_key(server_id), servers_key())

    def join_server(self, caller: Optional[CallerContext], server_id: str):
        caller = require_caller(caller)
        self._call("join_server", caller, server_id=server_id)
        self._invalidate(server_key(server_id), servers_key())
        logger.info(f"用户 {caller.principal} 加入星球 {server_id}")

    def leave_server(self, caller: Optional[CallerContext], server_id: str):
        caller = require_caller(caller)
        self._call("leave_server", caller, server_id=server_id)
        self._invalidate(server_key(server_id), servers_key())
        logger.info(f"用户 {caller.principal} 退出星球 {server_id}")

    def remove_member(
        self, caller: Optional[CallerContext], server_id: str, member_id: str
    ):
        caller = require_caller(caller)
        self._call("remove_member", caller, server_id=server_id, member_id=member_id)
        self._invalidate(server_key(server_id), servers_key())

    # ==================== 房间 ====================

    def list_rooms(self, caller: Optional[CallerContext], server_id: str) -> List[Room]:
        data = self._read_visible(
            rooms_key(server_id), "list_rooms", caller, server_id=server_id
        )
        return [_with_sorted_posts(Room.model_validate(item)) for item in data or []]

    def get_room(
        self, caller: Optional[CallerContext], server_id: str, room_id: str
    ) -> Room:
        data = self._read_visible(
            room_key(server_id, room_id),
            "get_room",
            caller,
            server_id=server_id,
            room_id=room_id,
        )
        if data is None:
            raise NotFound("房间不存在")
        return _with_sorted_posts(Room.model_validate(data))

    def create_room(
        self,
        caller: Optional[CallerContext],
        server_id: str,
        name: str,
        description: str = "",
        room_id: Optional[str] = None,
    ) -> str:
        caller = require_caller(caller)
        form = validate_form(RoomForm, {"name": name, "description": description})
        room_id = room_id or generate_entity_id("room")
        self._call(
            "create_room",
            caller,
            server_id=server_id,
            room_id=room_id,
            **form.model_dump(),
        )
        self._invalidate(rooms_key(server_id), server_key(server_id), servers_key())
        return room_id

    # ==================== 帖子 ====================

    def list_roleplay_posts(
        self, caller: Optional[CallerContext], server_id: str, room_id: str
    ) -> List[RoleplayPost]:
        """按ID升序返回帖子，与传输层的到达顺序无关"""
        data = self._read_visible(
            posts_key(server_id, room_id),
            "list_roleplay_posts",
            caller,
            server_id=server_id,
            room_id=room_id,
        )
        return sort_posts(RoleplayPost.model_validate(item) for item in data or [])

    def get_roleplay_post(
        self, caller: Optional[CallerContext], server_id: str, room_id: str, post_id
    ) -> RoleplayPost:
        data = self._read_visible(
            post_key(server_id, room_id, post_id),
            "get_roleplay_post",
            caller,
            server_id=server_id,
            room_id=room_id,
            post_id=int(post_id),
        )
        if data is None:
            raise NotFound("帖子不存在")
        return RoleplayPost.model_validate(data)

    def _invalidate_room_posts(self, server_id: str, room_id: str):
        # 星球快照与星球列表都内嵌房间和帖子
        self._invalidate(
            posts_key(server_id, room_id),
            room_key(server_id, room_id),
            rooms_key(server_id),
            server_key(server_id),
            servers_key(),
        )

    def create_roleplay_post(
        self, caller: Optional[CallerContext], server_id: str, room_id: str, content: str
    ) -> Optional[int]:
        """
        发布帖子

        返回:
            Optional[int]: 权威服务分配的帖子ID（权威服务未返回时为 None）
        """
        caller = require_caller(caller)
        form = validate_form(PostForm, {"content": content})
        post_id = self._call(
            "create_roleplay_post",
            caller,
            server_id=server_id,
            room_id=room_id,
            content=form.content,
        )
        self._invalidate_room_posts(server_id, room_id)
        return int(post_id) if post_id is not None else None

    def delete_roleplay_post(
        self, caller: Optional[CallerContext], server_id: str, room_id: str, post_id
    ):
        caller = require_caller(caller)
        self._call(
            "delete_roleplay_post",
            caller,
            server_id=server_id,
            room_id=room_id,
            post_id=int(post_id),
        )
        self._invalidate_room_posts(server_id, room_id)
        self._invalidate(post_key(server_id, room_id, post_id))
        logger.info(f"帖子已删除: {server_id}/{room_id}/{post_id}")

    # ==================== 角色卡 ====================

    def list_character_profiles(
        self,
        caller: Optional[CallerContext],
        owner: str,
        server_id: Optional[str] = None,
    ) -> List[CharacterProfile]:
        """作用域过滤由权威服务执行：未限定星球的角色卡在所有星球可见"""
        data = self._read_visible(
            characters_key(owner, server_id),
            "list_character_profiles",
            caller,
            user_id=owner,
            server_id=server_id,
        )
        return [CharacterProfile.model_validate(item) for item in data or []]

    def get_character_profile(
        self, caller: Optional[CallerContext], character_id: str
    ) -> CharacterProfile:
        data = self._read_visible(
            character_key(character_id),
            "get_character_profile",
            caller,
            profile_id=character_id,
        )
        if data is None:
            raise NotFound("角色卡不存在")
        return CharacterProfile.model_validate(data)

    def _character_payload(self, caller, character_id, values: dict) -> CharacterProfile:
        form = validate_form(CharacterForm, values)
        return CharacterProfile(
            id=character_id, owner=caller.principal, **form.model_dump()
        )

    def _invalidate_characters(self, profile: CharacterProfile):
        self._invalidate(character_key(profile.id), characters_prefix(profile.owner))

    def create_character_profile(
        self,
        caller: Optional[CallerContext],
        name: str,
        description: str = "",
        appearance: str = "",
        avatar_image_url: Optional[str] = None,
        server_id: Optional[str] = None,
        character_id: Optional[str] = None,
    ) -> CharacterProfile:
        caller = require_caller(caller)
        profile = self._character_payload(
            caller,
            character_id or generate_entity_id("char"),
            {
                "name": name,
                "description": description,
                "appearance": appearance,
                "avatar_image_url": avatar_image_url,
                "server_id": server_id,
            },
        )
        self._call(
            "create_character_profile", caller, profile=profile.model_dump(mode="json")
        )
        self._invalidate_characters(profile)
        return profile

    def edit_character_profile(
        self,
        caller: Optional[CallerContext],
        character_id: str,
        name: str,
        description: str = "",
        appearance: str = "",
        avatar_image_url: Optional[str] = None,
        server_id: Optional[str] = None,
    ) -> CharacterProfile:
        caller = require_caller(caller)
        profile = self._character_payload(
            caller,
            character_id,
            {
                "name": name,
                "description": description,
                "appearance": appearance,
                "avatar_image_url": avatar_image_url,
                "server_id": server_id,
            },
        )
        self._call(
            "edit_character_profile", caller, profile=profile.model_dump(mode="json")
        )
        self._invalidate_characters(profile)
        return profile

    # ==================== 全局角色 ====================

    def get_caller_user_role(self, caller: Optional[CallerContext]) -> UserRole:
        data = self._read(
            caller_role_key(principal_of(caller)), "get_caller_user_role", caller
        )
        return UserRole(data)

    def is_caller_admin(self, caller: Optional[CallerContext]) -> bool:
        if caller is None:
            return False
        data = self._read(caller_admin_key(caller.principal), "is_caller_admin", caller)
        return bool(data)

    def assign_caller_user_role(
        self, caller: Optional[CallerContext], user_id: str, role
    ):
        caller = require_caller(caller)
        role = UserRole(role)
        self._call("assign_caller_user_role", caller, user=user_id, role=role.value)
        self.cache.invalidate(caller_role_key(user_id), caller_admin_key(user_id))


class EntityAccess:
    """Flask 扩展：根据配置装配传输层与查询缓存"""

    def __init__(self, app=None):
        self.client: Optional[EntityAccessClient] = None
        if app is not None:
            self.init_app(app)

    def init_app(self, app):
        cache = QueryCache(app=app)
        transport_name = app.config.get("ENTITY_TRANSPORT", "local")
        if transport_name == "http":
            transport = HttpTransport(
                app.config["AUTHORITY_BASE_URL"],
                timeout=app.config.get("AUTHORITY_TIMEOUT", 10.0),
            )
        elif transport_name == "local":
            from .local_authority import LocalAuthority

            transport = LocalAuthority(
                admin_principals=app.config.get("AUTHORITY_ADMIN_PRINCIPALS", [])
            )
        else:
            raise RuntimeError(f"未知的实体访问传输方式: {transport_name}")

        self.client = EntityAccessClient(transport, cache)
        app.extensions["entity_access"] = self.client
        logger.info(f"实体访问层初始化完成: transport={transport_name}")


def get_entity_access() -> EntityAccessClient:
    """获取当前应用的实体访问客户端"""
    from flask import current_app

    return current_app.extensions["entity_access"]
