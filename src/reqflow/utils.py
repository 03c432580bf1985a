"""工具函数模块

提供 URL 拼接、查询字符串追加、调试日志和敏感信息脱敏等实用功能
"""

from __future__ import annotations

import logging
import re
import time
import uuid
from typing import Any
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

# 绝对地址：带协议头（http://、https://、ws:// 等）或协议相对地址（//host）
ABSOLUTE_URL_PATTERN = re.compile(r"^(?:[a-z][a-z\d+\-.]*:)?//", re.IGNORECASE)

# 默认敏感请求头名称集合
DEFAULT_SENSITIVE_HEADERS = {
    "Authorization",
    "Cookie",
    "Token",
    "X-API-Key",
    "X-Auth-Token",
    "X-Access-Token",
}

# 默认敏感URL参数名称集合
DEFAULT_SENSITIVE_PARAMS = {
    "token",
    "password",
    "secret",
    "api_key",
    "access_token",
    "pwd",
}


def is_absolute_url(url: str, slash_absolute_url: bool = False) -> bool:
    """
    判断 url 是否为绝对地址

    参数:
        url: 请求地址
        slash_absolute_url: 是否把以 "/" 开头的地址也视为绝对地址（不拼接 base_url）
    """
    if ABSOLUTE_URL_PATTERN.match(url):
        return True
    return bool(slash_absolute_url and url.startswith("/"))


def join_url(base_url: str, url: str) -> str:
    """
    拼接基地址与相对地址，保证接缝处恰好一个 "/"

    示例:
        >>> join_url("https://x/", "/y")
        'https://x/y'
        >>> join_url("https://x", "y")
        'https://x/y'
    """
    if not url:
        return base_url
    return f"{base_url.rstrip('/')}/{url.lstrip('/')}"


def append_query(url: str, data: dict[str, Any]) -> str:
    """把字典编码为查询字符串追加到 url，已有 "?" 时使用 "&" 连接"""
    query = urlencode(data, doseq=True)
    if not query:
        return url
    return f"{url}{'&' if '?' in url else '?'}{query}"


def generate_request_id() -> str:
    """生成全局唯一的请求 ID"""
    timestamp = int(time.time() * 1000)  # 毫秒级时间戳
    return f"REQ-{timestamp}-{uuid.uuid4().hex[:8]}"


def debug_log(logger: logging.Logger, options: dict, message: str, level: int = logging.INFO) -> None:
    """
    输出调试日志

    options["debug"] 为真时按 level 输出（便于在生产日志级别下排查单个请求），
    否则降级为 DEBUG 级别
    """
    logger.log(level if options.get("debug") else logging.DEBUG, message)


def sanitize_headers(
    headers: dict[str, Any],
    sensitive_keys: set[str] | None = None,
    mask: str = "***",
) -> dict[str, Any]:
    """
    脱敏请求头中的敏感信息（大小写不敏感），返回新字典

    示例:
        >>> sanitize_headers({"Authorization": "Bearer abc", "Accept": "*/*"})
        {'Authorization': '***', 'Accept': '*/*'}
    """
    sensitive_lower = {k.lower() for k in (sensitive_keys or DEFAULT_SENSITIVE_HEADERS)}
    return {k: mask if k.lower() in sensitive_lower else v for k, v in (headers or {}).items()}


def sanitize_url(
    url: str,
    sensitive_params: set[str] | None = None,
    mask: str = "***",
) -> str:
    """
    脱敏 URL 查询字符串中的敏感参数

    示例:
        >>> sanitize_url("https://api.example.com/user?token=abc123&page=1")
        'https://api.example.com/user?token=%2A%2A%2A&page=1'
    """
    parsed = urlparse(url)
    if not parsed.query:
        return url

    sensitive_lower = {p.lower() for p in (sensitive_params or DEFAULT_SENSITIVE_PARAMS)}
    params = parse_qs(parsed.query, keep_blank_values=True)
    masked = {key: [mask] * len(values) if key.lower() in sensitive_lower else values for key, values in params.items()}
    return urlunparse(parsed._replace(query=urlencode(masked, doseq=True)))
