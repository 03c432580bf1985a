"""
测试 reqflow.utils 模块

- is_absolute_url / join_url / append_query: URL 处理
- generate_request_id: 请求 ID
- debug_log: 调试日志级别
- sanitize_headers / sanitize_url: 敏感信息脱敏
"""

import logging
import re

import pytest

from reqflow.utils import (
    append_query,
    debug_log,
    generate_request_id,
    is_absolute_url,
    join_url,
    sanitize_headers,
    sanitize_url,
)


class TestIsAbsoluteUrl:
    """测试 is_absolute_url 函数"""

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "url",
        ["http://x.com/a", "https://x.com", "HTTPS://X.COM", "ws://socket", "//cdn.example.com/a.js", "git+ssh://host"],
    )
    def test_absolute_urls(self, url):
        assert is_absolute_url(url) is True

    @pytest.mark.unit
    @pytest.mark.parametrize("url", ["/users", "users", "", "1http://x", "http:/x"])
    def test_relative_urls(self, url):
        assert is_absolute_url(url) is False

    @pytest.mark.unit
    def test_slash_absolute_url(self):
        """开启 slash_absolute_url 时以 "/" 开头的地址视为绝对地址"""
        assert is_absolute_url("/users", slash_absolute_url=True) is True
        assert is_absolute_url("users", slash_absolute_url=True) is False


class TestJoinUrl:
    """测试 join_url 函数"""

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "base_url, url, expected",
        [
            ("https://x/", "/y", "https://x/y"),
            ("https://x", "y", "https://x/y"),
            ("https://x/", "y", "https://x/y"),
            ("https://x", "/y", "https://x/y"),
            ("https://x/api/", "v1/users", "https://x/api/v1/users"),
        ],
    )
    def test_exactly_one_slash(self, base_url, url, expected):
        """接缝处恰好一个 "/" """
        assert join_url(base_url, url) == expected

    @pytest.mark.unit
    def test_empty_url_returns_base(self):
        assert join_url("https://x/", "") == "https://x/"


class TestAppendQuery:
    """测试 append_query 函数"""

    @pytest.mark.unit
    def test_append_to_url_without_query(self):
        assert append_query("https://x/y", {"a": 1, "b": "two"}) == "https://x/y?a=1&b=two"

    @pytest.mark.unit
    def test_append_to_url_with_query(self):
        """已有查询字符串时使用 & 连接"""
        assert append_query("https://x/y?page=1", {"size": 10}) == "https://x/y?page=1&size=10"

    @pytest.mark.unit
    def test_list_values_are_repeated(self):
        assert append_query("/y", {"id": [1, 2]}) == "/y?id=1&id=2"

    @pytest.mark.unit
    def test_empty_data_keeps_url(self):
        assert append_query("/y", {}) == "/y"

    @pytest.mark.unit
    def test_values_are_encoded(self):
        assert append_query("/y", {"q": "a b&c"}) == "/y?q=a+b%26c"


class TestGenerateRequestId:
    """测试 generate_request_id 函数"""

    @pytest.mark.unit
    def test_format(self):
        request_id = generate_request_id()

        assert re.fullmatch(r"REQ-\d{13}-[0-9a-f]{8}", request_id)

    @pytest.mark.unit
    def test_unique(self):
        ids = {generate_request_id() for _ in range(100)}

        assert len(ids) == 100


class TestDebugLog:
    """测试 debug_log 函数"""

    @pytest.mark.unit
    def test_debug_option_uses_given_level(self, caplog):
        """debug 开启时按指定级别输出"""
        logger = logging.getLogger("reqflow.test")

        with caplog.at_level(logging.DEBUG, logger="reqflow.test"):
            debug_log(logger, {"debug": True}, "visible", logging.WARNING)

        assert caplog.records[-1].levelno == logging.WARNING
        assert caplog.records[-1].getMessage() == "visible"

    @pytest.mark.unit
    def test_without_debug_option_downgrades_to_debug(self, caplog):
        """debug 关闭时降级为 DEBUG 级别"""
        logger = logging.getLogger("reqflow.test")

        with caplog.at_level(logging.DEBUG, logger="reqflow.test"):
            debug_log(logger, {}, "hidden", logging.WARNING)

        assert caplog.records[-1].levelno == logging.DEBUG


class TestSanitize:
    """测试脱敏函数"""

    @pytest.mark.unit
    def test_sanitize_default_sensitive_headers(self):
        """脱敏默认敏感头，大小写不敏感"""
        headers = {"Authorization": "Bearer token123", "cookie": "session=abc", "Accept": "*/*"}

        result = sanitize_headers(headers)

        assert result == {"Authorization": "***", "cookie": "***", "Accept": "*/*"}
        assert headers["Authorization"] == "Bearer token123"

    @pytest.mark.unit
    def test_sanitize_custom_sensitive_headers(self):
        result = sanitize_headers({"X-Custom-Token": "secret", "Token": "abc"}, sensitive_keys={"X-Custom-Token"})

        assert result == {"X-Custom-Token": "***", "Token": "abc"}

    @pytest.mark.unit
    def test_sanitize_url_params(self):
        result = sanitize_url("https://api.example.com/user?token=abc123&page=1")

        assert "abc123" not in result
        assert "page=1" in result

    @pytest.mark.unit
    def test_sanitize_url_without_query(self):
        assert sanitize_url("https://api.example.com/user") == "https://api.example.com/user"
