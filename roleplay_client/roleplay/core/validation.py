"""
客户端输入校验

在任何远程调用之前执行，属于用户体验层面的约束而不是安全边界，
权威服务会再次执行同样的限制。
"""

import random
import string
import time
from typing import Optional, Type, TypeVar

from flask import request
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import ValidationFailed

# 字段长度上限
PROFILE_NAME_MAX = 50
PROFILE_BIO_MAX = 500
SERVER_NAME_MAX = 100
SERVER_DESCRIPTION_MAX = 500
ROOM_NAME_MAX = 100
ROOM_DESCRIPTION_MAX = 300
CHARACTER_NAME_MAX = 100
CHARACTER_DESCRIPTION_MAX = 1000
CHARACTER_APPEARANCE_MAX = 500
POST_CONTENT_MAX = 2000

FIELD_LABELS = {
    "name": "名称",
    "description": "简介",
    "bio": "个人简介",
    "appearance": "外貌描述",
    "content": "帖子内容",
}


def _strip(value):
    if isinstance(value, str):
        return value.strip()
    return value


def _blank_to_none(value):
    value = _strip(value)
    return value or None


class _Form(BaseModel):
    model_config = ConfigDict(extra="ignore")


class UserProfileForm(_Form):
    name: str = Field(min_length=1, max_length=PROFILE_NAME_MAX)
    bio: Optional[str] = Field(default=None, max_length=PROFILE_BIO_MAX)
    avatar_url: Optional[str] = None

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, value):
        return _strip(value)

    @field_validator("bio", "avatar_url", mode="before")
    @classmethod
    def clean_optional(cls, value):
        return _blank_to_none(value)


class ServerForm(_Form):
    name: str = Field(min_length=1, max_length=SERVER_NAME_MAX)
    description: str = Field(default="", max_length=SERVER_DESCRIPTION_MAX)
    banner_image_url: Optional[str] = None

    @field_validator("name", "description", mode="before")
    @classmethod
    def strip_text(cls, value):
        return _strip(value)

    @field_validator("banner_image_url", mode="before")
    @classmethod
    def clean_banner(cls, value):
        return _blank_to_none(value)


class RoomForm(_Form):
    name: str = Field(min_length=1, max_length=ROOM_NAME_MAX)
    description: str = Field(default="", max_length=ROOM_DESCRIPTION_MAX)

    @field_validator("name", "description", mode="before")
    @classmethod
    def strip_text(cls, value):
        return _strip(value)


class PostForm(_Form):
    content: str = Field(min_length=1, max_length=POST_CONTENT_MAX)

    @field_validator("content", mode="before")
    @classmethod
    def strip_content(cls, value):
        return _strip(value)


class CharacterForm(_Form):
    name: str = Field(min_length=1, max_length=CHARACTER_NAME_MAX)
    description: str = Field(default="", max_length=CHARACTER_DESCRIPTION_MAX)
    appearance: str = Field(default="", max_length=CHARACTER_APPEARANCE_MAX)
    avatar_image_url: Optional[str] = None
    server_id: Optional[str] = None

    @field_validator("name", "description", "appearance", mode="before")
    @classmethod
    def strip_text(cls, value):
        return _strip(value)

    @field_validator("avatar_image_url", "server_id", mode="before")
    @classmethod
    def clean_optional(cls, value):
        return _blank_to_none(value)


FormT = TypeVar("FormT", bound=_Form)


def validate_form(form_cls: Type[FormT], data: dict) -> FormT:
    """
    校验并规范化表单数据

    参数:
        form_cls: 表单模型类
        data (dict): 原始输入（None 值视为缺省）

    返回:
        规范化后的表单实例

    异常:
        ValidationFailed: 字段为空、超长或类型错误
    """
    cleaned = {key: value for key, value in (data or {}).items() if value is not None}
    try:
        return form_cls(**cleaned)
    except ValidationError as e:
        first = e.errors()[0]
        field = str(first["loc"][0]) if first.get("loc") else None
        raise ValidationFailed(_describe_error(field, first), field=field) from e


def _describe_error(field: Optional[str], error: dict) -> str:
    label = FIELD_LABELS.get(field, field or "输入")
    error_type = error.get("type", "")
    if error_type == "missing" or error_type == "string_too_short":
        return f"{label}必填"
    if error_type == "string_too_long":
        limit = (error.get("ctx") or {}).get("max_length")
        return f"{label}长度不能超过 {limit} 个字符"
    return f"{label}格式错误"


_ID_ALPHABET = string.digits + string.ascii_lowercase


def generate_entity_id(prefix: str, now_ms: int = None) -> str:
    """
    生成客户端实体ID：<前缀>-<毫秒时间戳>-<9位base36随机串>

    唯一性只是建议性的，最终由权威服务裁决冲突。
    """
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    suffix = "".join(random.choice(_ID_ALPHABET) for _ in range(9))
    return f"{prefix}-{now_ms}-{suffix}"


def json_body() -> dict:
    """读取请求体 JSON，缺省为空对象，非对象（如数组）视为参数错误"""
    data = request.get_json()
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationFailed("请求体必须是 JSON 对象")
    return data
