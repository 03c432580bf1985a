"""编排器配置模块

OrchestratorConfig 保存一个编排器实例的默认请求选项和拦截器集合。
每个 RequestOrchestrator 持有自己的配置，不同后端可以使用相互独立的编排器。
"""

from __future__ import annotations

import copy
import logging
import threading
from typing import Any

from reqflow.constants import DEFAULT_OPTIONS, MP_CONFIG_KEYS
from reqflow.interceptor import InterceptorSet, envelope_code_response

logger = logging.getLogger(__name__)


class OrchestratorConfig:
    """
    编排器默认配置

    默认值:
        encoding="UTF-8", business="data", content_type="json", data_type="json", header={}
        拦截器集合默认只有 response 钩子 envelope_code_response

    使用示例:
        >>> config = OrchestratorConfig(base_url="https://api.example.com/", debug=True)
        >>> config.set_config({"interceptor": {"response": my_response_hook}})
        >>> config.set_mp_config({"enable_http2": True})
    """

    def __init__(self, interceptor: InterceptorSet | dict | None = None, **options):
        self._lock = threading.RLock()
        self._options: dict[str, Any] = copy.deepcopy(DEFAULT_OPTIONS)
        self._interceptor = InterceptorSet(response=envelope_code_response)
        if interceptor is not None:
            options["interceptor"] = interceptor
        self.set_config(options)

    @property
    def options(self) -> dict[str, Any]:
        """当前默认选项的浅拷贝"""
        with self._lock:
            return dict(self._options)

    @property
    def interceptor(self) -> InterceptorSet:
        with self._lock:
            return self._interceptor

    def set_config(self, config: dict[str, Any] | None) -> None:
        """
        浅合并默认选项

        参数:
            config: 部分配置字典，传入的键覆盖旧值，未传入的键保留；
                    如果包含 interceptor，则整体替换拦截器集合（None 表示清空）

        执行步骤:
            1. 取出 interceptor 并构建新的拦截器集合
            2. 其余键浅合并到默认选项
        """
        partial = dict(config or {})
        with self._lock:
            if "interceptor" in partial:
                self._interceptor = InterceptorSet.from_value(partial.pop("interceptor"))
                logger.debug(f"Interceptor replaced: {self._interceptor}")
            self._options.update(partial)

    def set_mp_config(self, config: dict[str, Any] | None) -> None:
        """
        合并平台相关的传输调优选项（HTTP/2、DNS、缓存等开关）

        只接受 MP_CONFIG_KEYS 中的键，其它键（包括 interceptor）记录警告后忽略
        """
        accepted = {}
        for key, value in (config or {}).items():
            if key in MP_CONFIG_KEYS:
                accepted[key] = value
            else:
                logger.warning(f"Ignored non-platform option in set_mp_config: {key}")
        with self._lock:
            self._options.update(accepted)

    def snapshot(self) -> tuple[dict[str, Any], InterceptorSet]:
        """
        读取一份配置快照供单次请求使用

        返回:
            (默认选项的浅拷贝, 当前拦截器集合)

        注意:
            拦截器集合按引用返回，请求开始后 set_config 的修改只影响之后发起的请求
        """
        with self._lock:
            return dict(self._options), self._interceptor

    def __repr__(self) -> str:
        return f"<OrchestratorConfig options={sorted(self._options)} interceptor={self._interceptor}>"
