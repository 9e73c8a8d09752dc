"""
实体访问层传输

每次调用都是一个单独的原子请求；超时由传输层负责，不做自动重试。
"""

import logging
from typing import Any, Optional

import requests

logger = logging.getLogger(__name__)


class TransportError(Exception):
    """传输层错误，status 采用HTTP语义（404 表示不存在或不可见）"""

    def __init__(self, status: int, message: str = ""):
        self.status = status
        self.message = message or f"远程调用失败 (status={status})"
        super().__init__(self.message)


class Transport:
    """传输层抽象接口"""

    def call(self, method: str, caller=None, **params) -> Any:
        """
        调用权威服务的某个操作

        参数:
            method (str): 操作名，例如 get_server
            caller (CallerContext): 调用者上下文，匿名调用为 None
            **params: 操作参数（需可JSON序列化）

        返回:
            Any: JSON 结构的结果
        """
        raise NotImplementedError


class HttpTransport(Transport):
    """
    基于 requests 的远程权威服务传输

    请求: POST {base_url}/{method}，JSON 请求体为参数
    响应: {"result": ...}；失败时 {"error": "..."} 及非2xx状态码
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def _headers(self, caller) -> dict:
        headers = {"Content-Type": "application/json"}
        token = getattr(caller, "token", None)
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def call(self, method: str, caller=None, **params) -> Any:
        url = f"{self.base_url}/{method}"
        try:
            resp = self.session.post(
                url, json=params, headers=self._headers(caller), timeout=self.timeout
            )
        except requests.RequestException as e:
            raise TransportError(503, f"远程服务不可用: {e}") from e

        if resp.status_code >= 400:
            raise TransportError(resp.status_code, self._error_message(resp))

        try:
            payload = resp.json()
        except ValueError as e:
            raise TransportError(502, "远程服务响应格式错误") from e
        if not isinstance(payload, dict):
            raise TransportError(502, "远程服务响应格式错误")
        return payload.get("result")

    @staticmethod
    def _error_message(resp) -> str:
        try:
            data = resp.json()
        except ValueError:
            return resp.text or f"远程调用失败 (status={resp.status_code})"
        if isinstance(data, dict) and data.get("error"):
            return str(data["error"])
        return f"远程调用失败 (status={resp.status_code})"
