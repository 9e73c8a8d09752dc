"""
调用者身份解析

身份由外部身份提供方签发的 JWT 表示（subject 即身份标识字符串）。
每次调用都重新解析，不在应用生命周期内缓存，因为登录/登出属于外部事件。
"""

import logging
from dataclasses import dataclass
from typing import Optional

from flask import has_request_context, request
from flask_jwt_extended import get_jwt_identity, verify_jwt_in_request

from .authorization import canonical_identity
from .errors import Unauthorized

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CallerContext:
    """显式传入授权引擎与实体访问层的调用者上下文"""

    principal: str
    token: Optional[str] = None

    def __str__(self) -> str:
        return self.principal


def principal_of(caller: Optional[CallerContext]) -> Optional[str]:
    return caller.principal if caller else None


def _bearer_token() -> Optional[str]:
    header = request.headers.get("Authorization", "")
    if header.startswith("Bearer "):
        return header[len("Bearer ") :].strip() or None
    return None


def resolve_caller() -> Optional[CallerContext]:
    """
    解析当前请求的调用者

    返回:
        Optional[CallerContext]: 已认证时返回调用者上下文，匿名访问返回 None
    """
    if not has_request_context():
        return None
    # 无令牌时返回 None；令牌无效时由 flask_jwt_extended 抛出并处理
    verify_jwt_in_request(optional=True)
    principal = canonical_identity(get_jwt_identity())
    if principal is None:
        return None
    return CallerContext(principal=principal, token=_bearer_token())


def require_caller(caller: Optional[CallerContext]) -> CallerContext:
    if caller is None:
        logger.warning("需要登录的操作缺少调用者身份")
        raise Unauthorized()
    return caller
