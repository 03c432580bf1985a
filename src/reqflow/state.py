"""请求状态模块

RequestState 是单次请求的可变记录，按引用在整个编排流程中传递，
拦截器可以读取之前阶段设置的标志，也可以设置后续阶段使用的标志
（例如 response 拦截器设置 is_success，业务数据提取阶段据此判断）。
"""

from __future__ import annotations

import enum
from typing import Any, Callable


class RequestPhase(str, enum.Enum):
    """请求生命周期阶段"""

    CREATED = "created"
    NORMALIZING = "normalizing"
    IN_FLIGHT = "in_flight"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    ABORTED = "aborted"
    COMPLETED = "completed"


class _AbortedSentinel:
    """请求被取消时的结果标记（仅在 resolve_on_abort 开启时用于 future 结果）"""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "ABORTED"

    def __bool__(self) -> bool:
        return False


ABORTED = _AbortedSentinel()


class RequestState:
    """
    单次请求的状态记录

    属性:
        request_id: 请求唯一标识符，用于日志追踪
        config: 合并并规范化后的请求选项
        phase: 当前生命周期阶段
        start_time / end_time: 开始、结束时间（时钟秒数）
        data: 提取出的业务数据，或业务失败时的原始响应数据
        response: 失败时的原始响应
        error: 失败原因（通常为 err_msg）
        status_code: HTTP 状态码
        is_loading / is_success / is_error / is_empty / is_finished: 状态标志
        abort: 取消函数，由传输任务提供
        outcome: 结算结果，("resolve", value) 或 ("reject", reason)，None 表示未结算
        complete_response: 传给 complete 回调的原始响应
        is_aborted: 是否被调用方取消
        callback_mode: 调用方是否传入了 success/fail/complete 回调
        loading_shown: 是否已显示 loading 提示
    """

    def __init__(self, request_id: str, config: dict[str, Any], start_time: float):
        self.request_id = request_id
        self.config = config
        self.phase = RequestPhase.CREATED
        self.start_time = start_time
        self.end_time: float | None = None
        self.data: Any = None
        self.response: Any = None
        self.error: Any = None
        self.status_code: int | None = None
        self.is_loading = True
        self.is_success = False
        self.is_error = False
        self.is_empty = False
        self.is_finished = False
        self.abort: Callable[[], None] | None = None
        self.outcome: tuple[str, Any] | None = None
        self.complete_response: Any = None
        self.is_aborted = False
        self.callback_mode = False
        self.loading_shown = False

    @property
    def elapsed_ms(self) -> float:
        """请求耗时（毫秒），未结束时返回 0"""
        if self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time) * 1000

    @property
    def is_settled(self) -> bool:
        return self.outcome is not None

    def resolve(self, value: Any) -> None:
        """记录成功结果，只记录第一次"""
        if self.outcome is None:
            self.outcome = ("resolve", value)

    def reject(self, reason: Any) -> None:
        """记录失败结果，只记录第一次"""
        if self.outcome is None:
            self.outcome = ("reject", reason)

    def __repr__(self) -> str:
        return f"<RequestState {self.request_id} phase={self.phase.value} success={self.is_success}>"
