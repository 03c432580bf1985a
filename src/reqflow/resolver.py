"""业务数据路径解析模块

从响应信封中按 "a.b.c" / "a[0].b" 形式的路径提取业务数据
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

_BRACKET_PATTERN = re.compile(r"\[(\w+)\]")


def resolve_path(obj: Any, path: str | None, default: Any = None) -> Any:
    """
    按点号路径逐级取值

    参数:
        obj: 响应对象（通常为字典）
        path: 路径字符串，支持 "data.list" 和 "data[list]" / "items[0]" 写法；为空时返回 obj 本身
        default: 任一层级缺失时返回的默认值

    返回:
        路径对应的值，或 default

    示例:
        >>> resolve_path({"data": {"list": [1, 2]}}, "data.list")
        [1, 2]
        >>> resolve_path({"data": {}}, "data.list", [])
        []
    """
    if not path:
        return obj

    normalized = _BRACKET_PATTERN.sub(r".\1", path).lstrip(".")
    current = obj
    for key in normalized.split("."):
        current = _lookup(current, key)
        if current is None:
            return default
    return current


def _lookup(container: Any, key: str) -> Any:
    """单级取值，任何失败都返回 None"""
    if isinstance(container, Mapping):
        return container.get(key)
    if isinstance(container, (list, tuple)):
        try:
            return container[int(key)]
        except (ValueError, IndexError):
            return None
    return None


def is_empty(value: Any) -> bool:
    """判断业务数据是否为空：None、空列表、空字典等"""
    if value is None:
        return True
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) == 0
    return False
