from roleplay.core.extensions import db
from roleplay.models.base import BaseModel


class UserProfileRecord(BaseModel):
    __tablename__ = "user_profiles"
    principal = db.Column(db.String(128), primary_key=True)
    name = db.Column(db.String(50), nullable=False)
    bio = db.Column(db.String(500))
    avatar_url = db.Column(db.String(1024))


class UserRoleRecord(BaseModel):
    """全局用户角色，与星球内角色无关"""

    __tablename__ = "user_roles"
    principal = db.Column(db.String(128), primary_key=True)
    role = db.Column(
        db.Enum("admin", "user", "guest", name="global_user_role"),
        nullable=False,
        default="user",
    )


class CharacterProfileRecord(BaseModel):
    __tablename__ = "character_profiles"
    id = db.Column(db.String(64), primary_key=True)
    owner = db.Column(db.String(128), nullable=False, index=True)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.String(1000), nullable=False, default="")
    appearance = db.Column(db.String(500), nullable=False, default="")
    avatar_image_url = db.Column(db.String(1024))
    # 为空表示可在所有星球使用
    server_id = db.Column(db.String(64), nullable=True, index=True)
