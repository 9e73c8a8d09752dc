from roleplay.core.extensions import db
from roleplay.models.base import BaseModel


class ServerRecord(BaseModel):
    __tablename__ = "servers"
    id = db.Column(db.String(64), primary_key=True)
    owner = db.Column(db.String(128), nullable=False, index=True)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.String(500), nullable=False, default="")
    banner_image_url = db.Column(db.String(1024))

    memberships = db.relationship(
        "ServerMembershipRecord",
        backref="server",
        lazy=True,
        order_by="ServerMembershipRecord.id",
        cascade="all, delete-orphan",
    )
    rooms = db.relationship(
        "RoomRecord",
        backref="server",
        lazy=True,
        order_by="RoomRecord.pk",
        cascade="all, delete-orphan",
    )


class ServerMembershipRecord(BaseModel):
    __tablename__ = "server_memberships"
    id = db.Column(db.Integer, primary_key=True)
    server_id = db.Column(
        db.String(64), db.ForeignKey("servers.id"), nullable=False, index=True
    )
    user_id = db.Column(db.String(128), nullable=False, index=True)
    role = db.Column(
        db.Enum("owner", "admin", "member", name="server_member_role"),
        nullable=False,
        default="member",
    )
    __table_args__ = (
        db.UniqueConstraint("server_id", "user_id", name="uq_server_user"),
    )


class RoomRecord(BaseModel):
    __tablename__ = "rooms"
    pk = db.Column(db.Integer, primary_key=True)
    # 房间ID由客户端生成，只在所属星球内唯一
    room_id = db.Column(db.String(64), nullable=False)
    server_id = db.Column(
        db.String(64), db.ForeignKey("servers.id"), nullable=False, index=True
    )
    creator = db.Column(db.String(128), nullable=False)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.String(300), nullable=False, default="")

    members = db.relationship(
        "RoomMemberRecord",
        backref="room",
        lazy=True,
        order_by="RoomMemberRecord.id",
        cascade="all, delete-orphan",
    )
    posts = db.relationship(
        "RoleplayPostRecord",
        backref="room",
        lazy=True,
        order_by="RoleplayPostRecord.id",
        cascade="all, delete-orphan",
    )
    __table_args__ = (
        db.UniqueConstraint("server_id", "room_id", name="uq_server_room"),
    )


class RoomMemberRecord(db.Model):
    __tablename__ = "room_members"
    id = db.Column(db.Integer, primary_key=True)
    room_pk = db.Column(db.Integer, db.ForeignKey("rooms.pk"), nullable=False)
    user_id = db.Column(db.String(128), nullable=False)
    __table_args__ = (db.UniqueConstraint("room_pk", "user_id", name="uq_room_user"),)


class RoleplayPostRecord(db.Model):
    __tablename__ = "roleplay_posts"
    # AUTOINCREMENT 保证ID单调递增且删除后不复用
    id = db.Column(
        db.BigInteger().with_variant(db.Integer, "sqlite"),
        primary_key=True,
        autoincrement=True,
    )
    room_pk = db.Column(
        db.Integer, db.ForeignKey("rooms.pk"), nullable=False, index=True
    )
    content = db.Column(db.Text, nullable=False)
    author = db.Column(db.String(128), nullable=False, index=True)
    # 纳秒级时间戳
    timestamp = db.Column(db.BigInteger, nullable=False)
    __table_args__ = {"sqlite_autoincrement": True}
