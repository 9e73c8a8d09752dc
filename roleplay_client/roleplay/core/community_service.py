"""
社区服务层

在发起变更请求之前，先完成输入校验，再用授权引擎对星球快照做客户端检查，
检查通过后才调用实体访问层。客户端检查只是建议性的，权威服务仍会再次执行。
"""

import logging
from typing import Optional

from . import authorization
from .entity_access import EntityAccessClient, get_entity_access
from .errors import PermissionDenied, Unauthorized
from .identity import CallerContext, principal_of
from .schemas import Server
from .validation import PostForm, RoomForm, ServerForm, validate_form

logger = logging.getLogger(__name__)


class CommunityService:
    """社区服务类"""

    def __init__(self, entity_access: EntityAccessClient):
        self.entity_access = entity_access

    def _server(self, caller: Optional[CallerContext], server_id: str) -> Server:
        # 缓存中的快照可能已过期，权威服务会再次检查
        return self.entity_access.get_server(caller, server_id)

    def _deny(self, caller, action: str, server_id: str):
        logger.warning(
            f"客户端授权检查未通过: 用户 {principal_of(caller)}, 操作 {action}, 星球 {server_id}"
        )
        raise PermissionDenied()

    def update_server(self, caller, server_id: str, **fields):
        if caller is None:
            raise Unauthorized()
        validate_form(ServerForm, fields)
        server = self._server(caller, server_id)
        if not authorization.can_edit_server(server, caller.principal):
            self._deny(caller, "update_server", server_id)
        self.entity_access.update_server(caller, server_id, **fields)

    def join_server(self, caller, server_id: str):
        if caller is None:
            # 匿名用户的加入操作需要先登录
            raise Unauthorized("请先登录后再加入星球")
        server = self._server(caller, server_id)
        if authorization.is_member(server, caller.principal):
            return
        self.entity_access.join_server(caller, server_id)

    def leave_server(self, caller, server_id: str):
        if caller is None:
            raise Unauthorized()
        server = self._server(caller, server_id)
        if not authorization.can_leave_server(server, caller.principal):
            self._deny(caller, "leave_server", server_id)
        self.entity_access.leave_server(caller, server_id)

    def remove_member(self, caller, server_id: str, member_id: str):
        if caller is None:
            raise Unauthorized()
        server = self._server(caller, server_id)
        if not authorization.can_remove_member(server, caller.principal, member_id):
            self._deny(caller, "remove_member", server_id)
        self.entity_access.remove_member(caller, server_id, member_id)

    def create_room(self, caller, server_id: str, **fields) -> str:
        if caller is None:
            raise Unauthorized()
        validate_form(RoomForm, fields)
        server = self._server(caller, server_id)
        if not authorization.can_edit_server(server, caller.principal):
            self._deny(caller, "create_room", server_id)
        return self.entity_access.create_room(caller, server_id, **fields)

    def create_post(self, caller, server_id: str, room_id: str, content: str):
        if caller is None:
            raise Unauthorized()
        validate_form(PostForm, {"content": content})
        server = self._server(caller, server_id)
        if not authorization.can_post(server, caller.principal):
            self._deny(caller, "create_post", server_id)
        return self.entity_access.create_roleplay_post(
            caller, server_id, room_id, content
        )

    def delete_post(self, caller, server_id: str, room_id: str, post_id: int):
        if caller is None:
            raise Unauthorized()
        server = self._server(caller, server_id)
        post = self.entity_access.get_roleplay_post(caller, server_id, room_id, post_id)
        if not authorization.can_delete_post(server, caller.principal, post):
            self._deny(caller, "delete_post", server_id)
        self.entity_access.delete_roleplay_post(caller, server_id, room_id, post_id)


def get_community_service() -> CommunityService:
    """获取绑定当前应用实体访问层的社区服务"""
    return CommunityService(get_entity_access())
