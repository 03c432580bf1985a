"""请求选项规范化模块

在调用传输层之前，把合并后的请求选项整理为传输层可以直接使用的最终形态
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

from reqflow.constants import (
    CONTENT_TYPE_FILE,
    CONTENT_TYPE_MAPPING,
    DATA_TYPE_ARRAYBUFFER,
    HTTP_METHOD_DELETE,
    HTTP_METHOD_GET,
    HTTP_METHOD_POST,
    RESPONSE_TYPE_ARRAYBUFFER,
)
from reqflow.loading import LoadingController
from reqflow.utils import append_query, debug_log, is_absolute_url, join_url

logger = logging.getLogger(__name__)


class BaseOptionNormalizer(ABC):
    """请求选项规范化器基类"""

    @abstractmethod
    def normalize(self, options: dict[str, Any], loading: LoadingController | None = None) -> dict[str, Any]:
        """
        原地规范化请求选项并返回同一个字典

        参数:
            options: 合并后的请求选项
            loading: loading 提示控制器，设置了 loading_tip 时用于显示提示
        """


class OptionNormalizer(BaseOptionNormalizer):
    """
    默认规范化器

    按顺序执行:
        1. responseType 为 arraybuffer 时强制 data_type = arraybuffer
        2. 根据 content_type 设置 Content-Type 请求头；文件上传强制 POST 并把 data 合并进 form_data
        3. 删除 Referer 请求头
        4. 相对地址拼接 base_url
        5. 显示 loading 提示
        6. GET（以及开启 delete_data_to_url 的 DELETE）请求把 data 编码到查询字符串

    不支持的 content_type 只记录警告，不设置 Content-Type，不中断请求。
    """

    def normalize(self, options: dict[str, Any], loading: LoadingController | None = None) -> dict[str, Any]:
        options["header"] = dict(options.get("header") or {})
        options["method"] = (options.get("method") or HTTP_METHOD_GET).upper()

        self.resolve_data_type(options)
        self.resolve_content_type(options)
        self.strip_referer(options)
        self.compose_url(options)
        self.show_loading(options, loading)
        self.move_data_to_query(options)
        return options

    def resolve_data_type(self, options: dict[str, Any]) -> None:
        if options.get("response_type") == RESPONSE_TYPE_ARRAYBUFFER:
            debug_log(logger, options, "response_type is arraybuffer, data_type forced to arraybuffer", logging.DEBUG)
            options["data_type"] = DATA_TYPE_ARRAYBUFFER

    def resolve_content_type(self, options: dict[str, Any]) -> None:
        content_type = options.get("content_type")
        mime_type = CONTENT_TYPE_MAPPING.get(content_type)
        if mime_type is None:
            debug_log(logger, options, f"Unsupported content type: {content_type}", logging.WARNING)
            return

        if content_type == CONTENT_TYPE_FILE:
            self._prepare_upload(options)

        encoding = options.get("encoding")
        options["header"]["Content-Type"] = f"{mime_type};charset={encoding}" if encoding else mime_type

    def _prepare_upload(self, options: dict[str, Any]) -> None:
        """文件上传：强制 POST，data 合并进 form_data（同名键以 data 为准）"""
        if options["method"] != HTTP_METHOD_POST:
            debug_log(logger, options, f"Upload method {options['method']} corrected to POST", logging.WARNING)
            options["method"] = HTTP_METHOD_POST

        data = options.get("data")
        if isinstance(data, dict):
            debug_log(logger, options, "Upload data moved into form_data", logging.WARNING)
            options["form_data"] = {**(options.get("form_data") or {}), **data}
            del options["data"]

    def strip_referer(self, options: dict[str, Any]) -> None:
        if "Referer" in options["header"]:
            debug_log(logger, options, "Referer header is not allowed and has been removed", logging.WARNING)
            del options["header"]["Referer"]

    def compose_url(self, options: dict[str, Any]) -> None:
        url = options.get("url") or ""
        base_url = options.get("base_url")
        if base_url and not is_absolute_url(url, options.get("slash_absolute_url", False)):
            options["url"] = join_url(base_url, url)

    def show_loading(self, options: dict[str, Any], loading: LoadingController | None) -> None:
        if options.get("loading_tip") and loading is not None:
            loading.show(options["loading_tip"])

    def move_data_to_query(self, options: dict[str, Any]) -> None:
        data = options.get("data")
        if not isinstance(data, dict):
            return
        method = options["method"]
        if method == HTTP_METHOD_GET or (method == HTTP_METHOD_DELETE and options.get("delete_data_to_url")):
            options["url"] = append_query(options.get("url") or "", data)
            del options["data"]
