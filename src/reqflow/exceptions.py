"""
请求编排异常模块

定义编排器相关的异常类。注意：公开调用入口不会向调用方抛出异常，
所有失败都通过 future 的异常或 fail 回调传递。
"""

from __future__ import annotations

from typing import Any


class RequestClientError(Exception):
    """
    编排器异常基类

    所有自定义异常的基类，用于统一捕获和处理编排相关错误
    """


class RequestValidationError(RequestClientError):
    """
    请求参数验证异常

    当请求选项缺失必填项（如 url），或请求数据不符合序列化器定义的规则时抛出

    参数:
        message: 错误描述信息
        errors: 验证错误详情字典（可选）

    属性:
        errors: 验证失败的详细错误信息，格式为 {field_name: [error_messages]}
    """

    def __init__(self, message: str, errors: dict | None = None):
        super().__init__(message)
        self.errors = errors or {}


class TransportError(RequestClientError):
    """
    传输层异常

    传输原语内部发生网络错误、超时等问题时使用，err_msg 为回调给编排器的错误信息

    参数:
        message: 错误描述信息
        err_msg: 传输层约定格式的错误信息，如 "request:fail timeout"
    """

    def __init__(self, message: str, err_msg: str | None = None):
        super().__init__(message)
        self.err_msg = err_msg or message


class RequestFailure(RequestClientError):
    """
    请求失败异常

    promise 模式下的拒绝原因包装。fail 拦截器的返回值或原始失败响应保存在 reason 中

    属性:
        reason: 拒绝原因（原始失败响应字典或拦截器返回值）
        status_code: HTTP 状态码（如果 reason 中包含）
    """

    def __init__(self, reason: Any):
        self.reason = reason
        self.status_code = reason.get("status_code") if isinstance(reason, dict) else None
        super().__init__(self._describe(reason))

    @staticmethod
    def _describe(reason: Any) -> str:
        if isinstance(reason, dict):
            message = reason.get("msg") or reason.get("message")
            if message:
                return str(message)
            # 非成功状态码的响应也带有 err_msg="request:ok"，优先使用状态码
            if reason.get("status_code") is not None:
                return f"HTTP {reason['status_code']}"
            if reason.get("err_msg"):
                return str(reason["err_msg"])
        return f"Request failed: {reason!r}"
