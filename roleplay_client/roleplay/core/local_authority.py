"""
本地权威服务

进程内实现的权威服务，基于 SQLAlchemy 持久化，用于开发和测试环境，
与远程权威服务遵循相同的操作契约：
- 帖子ID由权威服务分配，严格递增且不复用
- 创建星球时写入所有者成员记录
- 所有权限规则在此处再次执行（客户端检查只是建议性的）
- 角色卡的星球作用域过滤在此处执行
"""

import logging
import time
from typing import Any, Dict, List, Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from roleplay.core.extensions import db
from roleplay.models.profiles import (
    CharacterProfileRecord,
    UserProfileRecord,
    UserRoleRecord,
)
from roleplay.models.servers import (
    RoleplayPostRecord,
    RoomMemberRecord,
    RoomRecord,
    ServerMembershipRecord,
    ServerRecord,
)

from . import authorization
from .errors import ValidationFailed
from .schemas import (
    CharacterProfile,
    RoleplayPost,
    Room,
    Server,
    ServerMembership,
    ServerRole,
    UserProfile,
    UserRole,
)
from .transport import Transport, TransportError
from .validation import (
    CharacterForm,
    PostForm,
    RoomForm,
    ServerForm,
    UserProfileForm,
    validate_form,
)

logger = logging.getLogger(__name__)


def _reject(status: int, message: str):
    raise TransportError(status, message)


def _not_found(message: str = "资源不存在或无权访问"):
    _reject(404, message)


def _dump(snapshot) -> Dict[str, Any]:
    return snapshot.model_dump(mode="json")


class LocalAuthority(Transport):
    """进程内权威服务"""

    OPERATIONS = frozenset(
        {
            "get_caller_user_profile",
            "get_user_profile",
            "save_caller_user_profile",
            "list_servers",
            "get_server",
            "create_server",
            "update_server",
            "join_server",
            "leave_server",
            "remove_member",
            "list_rooms",
            "get_room",
            "create_room",
            "list_roleplay_posts",
            "get_roleplay_post",
            "create_roleplay_post",
            "delete_roleplay_post",
            "list_character_profiles",
            "get_character_profile",
            "create_character_profile",
            "edit_character_profile",
            "get_caller_user_role",
            "is_caller_admin",
            "assign_caller_user_role",
        }
    )

    def __init__(self, admin_principals: Optional[List[str]] = None, clock=None):
        self.admin_principals = set(admin_principals or [])
        self.clock = clock or time.time_ns

    def call(self, method: str, caller=None, **params) -> Any:
        if method not in self.OPERATIONS:
            _reject(400, f"未知操作: {method}")
        principal = authorization.canonical_identity(
            getattr(caller, "principal", caller)
        )
        try:
            return getattr(self, method)(principal, **params)
        except ValidationFailed as e:
            db.session.rollback()
            raise TransportError(400, e.message) from e
        except IntegrityError as e:
            db.session.rollback()
            raise TransportError(409, "数据冲突") from e
        except TransportError:
            db.session.rollback()
            raise

    # ==================== 快照构建 ====================

    @staticmethod
    def _post_snapshot(record: RoleplayPostRecord) -> RoleplayPost:
        return RoleplayPost(
            id=record.id,
            content=record.content,
            author=record.author,
            timestamp=record.timestamp,
            room_id=record.room.room_id,
        )

    def _room_snapshot(self, record: RoomRecord) -> Room:
        return Room(
            id=record.room_id,
            creator=record.creator,
            members=[m.user_id for m in record.members],
            name=record.name,
            description=record.description,
            roleplay_posts=[self._post_snapshot(p) for p in record.posts],
            server_id=record.server_id,
        )

    def _server_snapshot(self, record: ServerRecord) -> Server:
        return Server(
            id=record.id,
            owner=record.owner,
            name=record.name,
            description=record.description,
            banner_image_url=record.banner_image_url,
            memberships=[
                ServerMembership(user_id=m.user_id, role=ServerRole(m.role))
                for m in record.memberships
            ],
            rooms=[self._room_snapshot(r) for r in record.rooms],
        )

    # ==================== 查找与授权 ====================

    @staticmethod
    def _require_principal(principal: Optional[str]) -> str:
        if principal is None:
            _reject(401, "需要登录")
        return principal

    @staticmethod
    def _load_server(server_id: str) -> ServerRecord:
        record = db.session.get(ServerRecord, server_id)
        if record is None:
            _not_found("星球不存在")
        return record

    def _load_room(self, server_id: str, room_id: str) -> RoomRecord:
        self._load_server(server_id)
        record = RoomRecord.query.filter_by(
            server_id=server_id, room_id=room_id
        ).first()
        if record is None:
            _not_found("房间不存在")
        return record

    def _load_post(self, server_id: str, room_id: str, post_id) -> RoleplayPostRecord:
        room = self._load_room(server_id, room_id)
        try:
            post_id = int(post_id)
        except (TypeError, ValueError):
            _not_found("帖子不存在")
        record = db.session.get(RoleplayPostRecord, post_id)
        if record is None or record.room_pk != room.pk:
            _not_found("帖子不存在")
        return record

    def _require(self, allowed: bool, message: str):
        if not allowed:
            _reject(403, message)

    # ==================== 用户资料 ====================

    def get_caller_user_profile(self, principal):
        if principal is None:
            return None
        return self.get_user_profile(principal, user=principal)

    def get_user_profile(self, principal, user):
        record = db.session.get(UserProfileRecord, str(user))
        if record is None:
            return None
        return _dump(UserProfile.model_validate(record))

    def save_caller_user_profile(self, principal, profile: dict):
        principal = self._require_principal(principal)
        form = validate_form(UserProfileForm, profile)
        record = db.session.get(UserProfileRecord, principal)
        if record is None:
            record = UserProfileRecord(principal=principal)
            db.session.add(record)
        # 整体覆盖，未提供的可选字段视为空
        record.name = form.name
        record.bio = form.bio
        record.avatar_url = form.avatar_url
        db.session.commit()
        return None

    # ==================== 星球 ====================

    def list_servers(self, principal):
        records = ServerRecord.query.order_by(ServerRecord.created_at).all()
        return [_dump(self._server_snapshot(r)) for r in records]

    def get_server(self, principal, server_id):
        return _dump(self._server_snapshot(self._load_server(server_id)))

    def create_server(
        self, principal, id, name, description="", banner_image_url=None
    ):
        principal = self._require_principal(principal)
        form = validate_form(
            ServerForm,
            {
                "name": name,
                "description": description,
                "banner_image_url": banner_image_url,
            },
        )
        if db.session.get(ServerRecord, id) is not None:
            _reject(409, "星球ID已存在")
        server = ServerRecord(
            id=id,
            owner=principal,
            name=form.name,
            description=form.description,
            banner_image_url=form.banner_image_url,
        )
        server.memberships.append(
            ServerMembershipRecord(user_id=principal, role=ServerRole.OWNER.value)
        )
        db.session.add(server)
        db.session.commit()
        logger.info(f"星球创建成功: {id}, 所有者: {principal}")
        return None

    def update_server(
        self, principal, server_id, name, description="", banner_image_url=None
    ):
        principal = self._require_principal(principal)
        record = self._load_server(server_id)
        self._require(
            authorization.can_edit_server(self._server_snapshot(record), principal),
            "无权编辑星球",
        )
        form = validate_form(
            ServerForm,
            {
                "name": name,
                "description": description,
                "banner_image_url": banner_image_url,
            },
        )
        record.name = form.name
        record.description = form.description
        record.banner_image_url = form.banner_image_url
        db.session.commit()
        return None

    def join_server(self, principal, server_id):
        principal = self._require_principal(principal)
        record = self._load_server(server_id)
        if authorization.is_member(self._server_snapshot(record), principal):
            # 重复加入是幂等的
            return None
        db.session.add(
            ServerMembershipRecord(
                server_id=server_id, user_id=principal, role=ServerRole.MEMBER.value
            )
        )
        try:
            db.session.commit()
        except IntegrityError:
            # 并发加入时唯一约束冲突，视为已加入
            db.session.rollback()
        return None

    def leave_server(self, principal, server_id):
        principal = self._require_principal(principal)
        record = self._load_server(server_id)
        snapshot = self._server_snapshot(record)
        role = authorization.role_of(snapshot, principal)
        if role is None:
            return None
        self._require(role != ServerRole.OWNER, "星球所有者不能退出星球")
        ServerMembershipRecord.query.filter_by(
            server_id=server_id, user_id=principal
        ).delete()
        db.session.commit()
        return None

    def remove_member(self, principal, server_id, member_id):
        principal = self._require_principal(principal)
        record = self._load_server(server_id)
        snapshot = self._server_snapshot(record)
        self._require(
            authorization.can_remove_members(snapshot, principal), "无权移除成员"
        )
        target = authorization.find_membership(snapshot, member_id)
        if target is None:
            _not_found("成员不存在")
        self._require(
            authorization.can_remove_member(snapshot, principal, member_id),
            "不能移除星球所有者或自己",
        )
        ServerMembershipRecord.query.filter_by(
            server_id=server_id, user_id=target.user_id
        ).delete()
        db.session.commit()
        logger.info(f"成员已移除: 星球 {server_id}, 成员 {target.user_id}")
        return None

    # ==================== 房间 ====================

    def list_rooms(self, principal, server_id):
        record = self._load_server(server_id)
        return [_dump(self._room_snapshot(r)) for r in record.rooms]

    def get_room(self, principal, server_id, room_id):
        return _dump(self._room_snapshot(self._load_room(server_id, room_id)))

    def create_room(self, principal, server_id, room_id, name, description=""):
        principal = self._require_principal(principal)
        record = self._load_server(server_id)
        self._require(
            authorization.can_edit_server(self._server_snapshot(record), principal),
            "无权创建房间",
        )
        form = validate_form(RoomForm, {"name": name, "description": description})
        exists = RoomRecord.query.filter_by(
            server_id=server_id, room_id=room_id
        ).first()
        if exists is not None:
            _reject(409, "房间ID已存在")
        room = RoomRecord(
            room_id=room_id,
            server_id=server_id,
            creator=principal,
            name=form.name,
            description=form.description,
        )
        room.members.append(RoomMemberRecord(user_id=principal))
        db.session.add(room)
        db.session.commit()
        return None

    # ==================== 帖子 ====================

    def list_roleplay_posts(self, principal, server_id, room_id):
        room = self._load_room(server_id, room_id)
        return [_dump(self._post_snapshot(p)) for p in room.posts]

    def get_roleplay_post(self, principal, server_id, room_id, post_id):
        return _dump(self._post_snapshot(self._load_post(server_id, room_id, post_id)))

    def create_roleplay_post(self, principal, server_id, room_id, content):
        principal = self._require_principal(principal)
        room = self._load_room(server_id, room_id)
        self._require(
            authorization.can_post(self._server_snapshot(room.server), principal),
            "只有星球成员可以发帖",
        )
        form = validate_form(PostForm, {"content": content})
        post = RoleplayPostRecord(
            room_pk=room.pk,
            content=form.content,
            author=principal,
            timestamp=self.clock(),
        )
        db.session.add(post)
        if principal not in {m.user_id for m in room.members}:
            room.members.append(RoomMemberRecord(user_id=principal))
        db.session.commit()
        return post.id

    def delete_roleplay_post(self, principal, server_id, room_id, post_id):
        principal = self._require_principal(principal)
        post = self._load_post(server_id, room_id, post_id)
        self._require(
            authorization.can_moderate_posts(
                self._server_snapshot(post.room.server), principal
            ),
            "无权删除帖子",
        )
        db.session.delete(post)
        db.session.commit()
        return None

    # ==================== 角色卡 ====================

    def list_character_profiles(self, principal, user_id, server_id=None):
        query = CharacterProfileRecord.query.filter_by(owner=str(user_id))
        if server_id is not None:
            query = query.filter(
                or_(
                    CharacterProfileRecord.server_id.is_(None),
                    CharacterProfileRecord.server_id == server_id,
                )
            )
        records = query.order_by(CharacterProfileRecord.created_at).all()
        return [_dump(CharacterProfile.model_validate(r)) for r in records]

    def get_character_profile(self, principal, profile_id):
        record = db.session.get(CharacterProfileRecord, profile_id)
        if record is None:
            _not_found("角色卡不存在")
        return _dump(CharacterProfile.model_validate(record))

    def _character_form(self, profile: dict) -> CharacterForm:
        form = validate_form(CharacterForm, profile)
        if form.server_id is not None:
            self._load_server(form.server_id)
        return form

    def create_character_profile(self, principal, profile: dict):
        principal = self._require_principal(principal)
        self._require(
            str(profile.get("owner", principal)) == principal, "只能为自己创建角色卡"
        )
        profile_id = profile.get("id")
        if not profile_id:
            _reject(400, "角色卡ID必填")
        if db.session.get(CharacterProfileRecord, profile_id) is not None:
            _reject(409, "角色卡ID已存在")
        form = self._character_form(profile)
        db.session.add(
            CharacterProfileRecord(
                id=profile_id,
                owner=principal,
                name=form.name,
                description=form.description,
                appearance=form.appearance,
                avatar_image_url=form.avatar_image_url,
                server_id=form.server_id,
            )
        )
        db.session.commit()
        return None

    def edit_character_profile(self, principal, profile: dict):
        principal = self._require_principal(principal)
        record = db.session.get(CharacterProfileRecord, profile.get("id"))
        if record is None:
            _not_found("角色卡不存在")
        self._require(record.owner == principal, "只能编辑自己的角色卡")
        form = self._character_form(profile)
        record.name = form.name
        record.description = form.description
        record.appearance = form.appearance
        record.avatar_image_url = form.avatar_image_url
        record.server_id = form.server_id
        db.session.commit()
        return None

    # ==================== 全局角色 ====================

    def _global_role(self, principal) -> UserRole:
        if principal is None:
            return UserRole.GUEST
        if principal in self.admin_principals:
            return UserRole.ADMIN
        record = db.session.get(UserRoleRecord, principal)
        return UserRole(record.role) if record else UserRole.USER

    def get_caller_user_role(self, principal):
        return self._global_role(principal).value

    def is_caller_admin(self, principal):
        return self._global_role(principal) == UserRole.ADMIN

    def assign_caller_user_role(self, principal, user, role):
        principal = self._require_principal(principal)
        self._require(
            self._global_role(principal) == UserRole.ADMIN, "只有管理员可以分配角色"
        )
        try:
            role = UserRole(role)
        except ValueError:
            _reject(400, f"未知角色: {role}")
        record = db.session.get(UserRoleRecord, str(user))
        if record is None:
            record = UserRoleRecord(principal=str(user))
            db.session.add(record)
        record.role = role.value
        db.session.commit()
        return None
