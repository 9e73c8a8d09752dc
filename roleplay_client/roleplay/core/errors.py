"""
错误类型定义

- NotFound: 实体不存在或调用者不可见（两者对客户端不可区分）
- Unauthorized: 需要调用者身份的操作缺少身份
- ValidationFailed: 输入校验失败，在任何远程调用之前就地处理
- PermissionDenied: 客户端授权检查未通过
- RemoteFailure: 实体访问调用失败（网络错误或权威服务拒绝）
"""

import logging
from typing import Optional

from flask import jsonify

logger = logging.getLogger(__name__)


class RoleplayError(Exception):
    """所有业务错误的基类"""

    kind = "error"
    status_code = 500
    default_message = "内部错误"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"error": self.message, "kind": self.kind}


class NotFound(RoleplayError):
    kind = "not_found"
    status_code = 404
    default_message = "资源不存在或无权访问"


class Unauthorized(RoleplayError):
    kind = "unauthorized"
    status_code = 401
    default_message = "请先登录"


class ValidationFailed(RoleplayError):
    kind = "validation"
    status_code = 400
    default_message = "参数错误"

    def __init__(self, message: Optional[str] = None, field: Optional[str] = None):
        super().__init__(message)
        self.field = field

    def to_dict(self) -> dict:
        data = super().to_dict()
        if self.field:
            data["field"] = self.field
        return data


class PermissionDenied(RoleplayError):
    kind = "forbidden"
    status_code = 403
    default_message = "权限不足"


class RemoteFailure(RoleplayError):
    kind = "remote_failure"
    status_code = 502
    default_message = "远程服务调用失败"

    def __init__(
        self, message: Optional[str] = None, remote_status: Optional[int] = None
    ):
        super().__init__(message)
        self.remote_status = remote_status

    def to_dict(self) -> dict:
        data = super().to_dict()
        if self.remote_status is not None:
            data["remote_status"] = self.remote_status
        return data


def register_error_handlers(app):
    """注册统一的错误响应"""

    @app.errorhandler(RoleplayError)
    def handle_roleplay_error(error: RoleplayError):
        if isinstance(error, RemoteFailure):
            logger.error(f"远程调用失败: {error.message} (status={error.remote_status})")
        return jsonify(error.to_dict()), error.status_code
