"""
Pydantic 实体快照定义。
所有查询返回的实体都是不可变快照，修改只能通过实体访问层整体或部分替换。
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ServerRole(str, Enum):
    """星球内角色，仅用于展示时排序 member < admin < owner"""

    MEMBER = "member"
    ADMIN = "admin"
    OWNER = "owner"

    @property
    def display_rank(self) -> int:
        return _ROLE_DISPLAY_RANK[self]


_ROLE_DISPLAY_RANK = {
    ServerRole.MEMBER: 0,
    ServerRole.ADMIN: 1,
    ServerRole.OWNER: 2,
}


class UserRole(str, Enum):
    """全局用户角色，与星球内角色相互独立"""

    ADMIN = "admin"
    USER = "user"
    GUEST = "guest"


class Snapshot(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)


class UserProfile(Snapshot):
    name: str
    bio: Optional[str] = None
    avatar_url: Optional[str] = None


class CharacterProfile(Snapshot):
    id: str
    owner: str
    name: str
    description: str = ""
    appearance: str = ""
    avatar_image_url: Optional[str] = None
    server_id: Optional[str] = None


class ServerMembership(Snapshot):
    user_id: str
    role: ServerRole


class RoleplayPost(Snapshot):
    id: int
    content: str
    author: str
    timestamp: int
    room_id: str


class Room(Snapshot):
    id: str
    creator: str
    members: List[str] = Field(default_factory=list)
    name: str
    description: str = ""
    roleplay_posts: List[RoleplayPost] = Field(default_factory=list)
    server_id: str


class Server(Snapshot):
    id: str
    owner: str
    name: str
    description: str = ""
    banner_image_url: Optional[str] = None
    memberships: List[ServerMembership] = Field(default_factory=list)
    rooms: List[Room] = Field(default_factory=list)


def sort_posts(posts) -> List[RoleplayPost]:
    """帖子只按权威服务分配的ID升序排列，不依赖到达顺序或时间戳"""
    return sorted(posts, key=lambda post: post.id)
