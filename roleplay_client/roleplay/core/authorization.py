"""
星球授权引擎 - 纯函数层

根据星球快照的成员列表和调用者身份计算角色与派生权限。
无状态、无I/O，可在任何位置同步调用（包括视图渲染期间）。

所有权限判断只有两个能力层级：
- 是否为成员（任意角色）
- 是否为所有者或管理员
授权判断是对 MODERATOR_ROLES 的集合成员测试，不做数值比较。
"""

from dataclasses import dataclass, field
from typing import Any, List, Optional

from .schemas import RoleplayPost, Server, ServerMembership, ServerRole

# 拥有编辑、管理帖子、移除成员能力的角色
MODERATOR_ROLES = frozenset({ServerRole.OWNER, ServerRole.ADMIN})


def canonical_identity(identity: Any) -> Optional[str]:
    """
    将身份标识转换为规范字符串形式

    身份可能以不同形式传入（字符串、带 __str__ 的对象），
    比较时一律使用规范字符串，而不是对象本身。
    """
    if identity is None:
        return None
    text = str(identity).strip()
    return text or None


def find_membership(server: Server, caller_id: Any) -> Optional[ServerMembership]:
    """返回调用者在星球中的第一条成员记录（重复记录属于数据完整性问题，取第一条）"""
    principal = canonical_identity(caller_id)
    if principal is None:
        return None
    for membership in server.memberships:
        if canonical_identity(membership.user_id) == principal:
            return membership
    return None


def role_of(server: Server, caller_id: Any) -> Optional[ServerRole]:
    """
    获取调用者在星球中的角色

    参数:
        server (Server): 星球快照
        caller_id: 调用者身份，None 表示匿名

    返回:
        Optional[ServerRole]: 角色，非成员或匿名时为 None
    """
    membership = find_membership(server, caller_id)
    return membership.role if membership else None


def is_member(server: Server, caller_id: Any) -> bool:
    return role_of(server, caller_id) is not None


def _is_moderator(server: Server, caller_id: Any) -> bool:
    return role_of(server, caller_id) in MODERATOR_ROLES


def can_edit_server(server: Server, caller_id: Any) -> bool:
    """编辑星球名称/简介/横幅、创建房间"""
    return _is_moderator(server, caller_id)


def can_moderate_posts(server: Server, caller_id: Any) -> bool:
    """删除帖子"""
    return _is_moderator(server, caller_id)


def can_remove_members(server: Server, caller_id: Any) -> bool:
    """移除成员（目标是否合法见 can_remove_member）"""
    return _is_moderator(server, caller_id)


def can_remove_member(server: Server, caller_id: Any, member_id: Any) -> bool:
    """
    判断某个成员是否为合法的移除目标

    所有者的成员记录永远不能被移除；调用者不能通过此途径移除自己（应使用退出流程）。
    """
    if not can_remove_members(server, caller_id):
        return False
    target = find_membership(server, member_id)
    if target is None or target.role == ServerRole.OWNER:
        return False
    return canonical_identity(target.user_id) != canonical_identity(caller_id)


def removable_members(server: Server, caller_id: Any) -> List[ServerMembership]:
    if not can_remove_members(server, caller_id):
        return []
    return [
        membership
        for membership in server.memberships
        if can_remove_member(server, caller_id, membership.user_id)
    ]


def can_delete_post(
    server: Server, caller_id: Any, post: Optional[RoleplayPost] = None
) -> bool:
    # 作者本人不能删除自己的帖子，只有所有者/管理员可以
    return can_moderate_posts(server, caller_id)


def can_join_server(server: Server, caller_id: Any) -> bool:
    return canonical_identity(caller_id) is not None and not is_member(
        server, caller_id
    )


def can_leave_server(server: Server, caller_id: Any) -> bool:
    role = role_of(server, caller_id)
    return role is not None and role != ServerRole.OWNER


def can_post(server: Server, caller_id: Any) -> bool:
    return is_member(server, caller_id)


@dataclass(frozen=True)
class ServerAccess:
    """调用者对某个星球的全部授权结论，供视图层决定渲染哪些操作入口"""

    role: Optional[ServerRole]
    is_member: bool
    can_edit: bool
    can_moderate: bool
    can_remove_members: bool
    can_join: bool
    can_leave: bool
    requires_sign_in: bool
    removable_members: List[str] = field(default_factory=list)

    @property
    def show_compose_form(self) -> bool:
        return self.is_member

    def to_dict(self) -> dict:
        return {
            "role": self.role.value if self.role else None,
            "is_member": self.is_member,
            "can_edit": self.can_edit,
            "can_moderate": self.can_moderate,
            "can_remove_members": self.can_remove_members,
            "can_join": self.can_join,
            "can_leave": self.can_leave,
            "requires_sign_in": self.requires_sign_in,
            "show_compose_form": self.show_compose_form,
            "removable_members": list(self.removable_members),
        }


def evaluate_access(server: Server, caller_id: Any) -> ServerAccess:
    """一次性计算调用者对星球的授权结论"""
    role = role_of(server, caller_id)
    moderator = role in MODERATOR_ROLES
    return ServerAccess(
        role=role,
        is_member=role is not None,
        can_edit=moderator,
        can_moderate=moderator,
        can_remove_members=moderator,
        can_join=can_join_server(server, caller_id),
        can_leave=role is not None and role != ServerRole.OWNER,
        requires_sign_in=canonical_identity(caller_id) is None,
        removable_members=[m.user_id for m in removable_members(server, caller_id)],
    )
