"""
拦截器模块

InterceptorSet 保存五个可选钩子，在固定的编排节点被调用:

    request(config)            发送前，规范化之前，可原地修改 config
    prepare(config)            发送前，规范化之后，可原地修改 config
    response(result, state)    HTTP 成功且结果为对象时，负责设置 state.is_success / state.is_error
    fail(res, state)           任何失败（调用方取消除外），非 None 返回值替换拒绝原因
    complete(res, state)       成功或失败分支之后、结算之前，总是调用

钩子返回 ShortCircuit 可以提前结束流程（见 ShortCircuit 说明），
返回 None 或 CONTINUE 表示继续。

使用示例:
    >>> def on_request(config):
    ...     config["header"]["token"] = "my_token"
    >>>
    >>> def on_response(result, state):
    ...     state.is_success = result.get("code") == 0
    >>>
    >>> orchestrator.set_config({"interceptor": {"request": on_request, "response": on_response}})
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from reqflow.constants import INTERCEPTOR_HOOK_ALIASES, INTERCEPTOR_HOOKS

logger = logging.getLogger(__name__)


class _Continue:
    """继续执行后续阶段的标记"""

    def __repr__(self) -> str:
        return "CONTINUE"


CONTINUE = _Continue()


class ShortCircuit:
    """
    提前结束流程的拦截器结果

    参数:
        value: 交付给调用方的值
        is_error: True 时通过失败通道交付，否则通过成功通道交付

    不同钩子中的含义:
        - request/prepare: 跳过传输层，直接以 value 结算
        - response: 跳过业务数据提取，直接以 value 结算
        - fail: is_error=False 时把失败恢复为成功
    """

    __slots__ = ("value", "is_error")

    def __init__(self, value: Any = None, is_error: bool = False):
        self.value = value
        self.is_error = is_error

    def __repr__(self) -> str:
        return f"ShortCircuit(value={self.value!r}, is_error={self.is_error})"


def envelope_code_response(result: Any, state) -> None:
    """默认 response 拦截器：信封 {"code": 0, ...} 视为业务成功"""
    state.is_success = isinstance(result, dict) and result.get("code") == 0
    state.is_error = not state.is_success


class InterceptorSet:
    """
    拦截器集合

    所有钩子均可选，缺失的钩子为空操作。集合整体替换，不按钩子合并：
    set_config 传入新的 interceptor 时，旧集合中未出现的钩子也会被丢弃。
    """

    def __init__(
        self,
        request: Callable | None = None,
        prepare: Callable | None = None,
        response: Callable | None = None,
        fail: Callable | None = None,
        complete: Callable | None = None,
    ):
        self.request = request
        self.prepare = prepare
        self.response = response
        self.fail = fail
        self.complete = complete

    @classmethod
    def from_value(cls, value: InterceptorSet | dict | None) -> InterceptorSet:
        """
        从 InterceptorSet 实例或钩子字典构建拦截器集合

        字典中的 error 视为 fail 的别名；未知钩子名和不可调用的值会记录警告后忽略
        """
        if isinstance(value, InterceptorSet):
            return value
        if value is None:
            return cls()
        if not isinstance(value, dict):
            logger.warning(f"Invalid interceptor: {value!r}. Using empty interceptor set.")
            return cls()

        hooks = {}
        for name, hook in value.items():
            hook_name = INTERCEPTOR_HOOK_ALIASES.get(name, name)
            if hook_name not in INTERCEPTOR_HOOKS:
                logger.warning(f"Unknown interceptor hook: {name}. Must be one of: {list(INTERCEPTOR_HOOKS)}")
                continue
            if hook is not None and not callable(hook):
                logger.warning(f"Interceptor hook {name} is not callable, ignored")
                continue
            hooks[hook_name] = hook
        return cls(**hooks)

    def run(self, hook_name: str, *args) -> Any:
        """调用指定钩子并返回其返回值，钩子不存在时返回 CONTINUE"""
        hook = getattr(self, hook_name, None)
        if hook is None:
            return CONTINUE
        return hook(*args)

    def has(self, hook_name: str) -> bool:
        return getattr(self, hook_name, None) is not None

    def as_dict(self) -> dict[str, Callable]:
        return {name: getattr(self, name) for name in INTERCEPTOR_HOOKS if self.has(name)}

    def __repr__(self) -> str:
        return f"<InterceptorSet hooks={list(self.as_dict())}>"
