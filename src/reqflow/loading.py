"""
Loading 提示模块

loading 提示是外部 UI 协作者，编排器只负责调用时机：
请求前显示，请求结束后隐藏，并保证至少显示 loading_duration 毫秒。
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from typing import Callable

logger = logging.getLogger(__name__)

# 调度函数签名：(延迟秒数, 回调) -> None
Scheduler = Callable[[float, Callable[[], None]], None]


class BaseLoadingIndicator(ABC):
    """loading 提示基类，定义显示和隐藏接口"""

    @abstractmethod
    def show(self, title: str) -> None:
        """显示 loading 提示"""

    @abstractmethod
    def hide(self) -> None:
        """隐藏 loading 提示"""


class LoggingLoadingIndicator(BaseLoadingIndicator):
    """只记录日志的 loading 提示，适用于无界面的运行环境"""

    def show(self, title: str) -> None:
        logger.info(f"Loading: {title}")

    def hide(self) -> None:
        logger.info("Loading hidden")


class NullLoadingIndicator(BaseLoadingIndicator):
    """空实现"""

    def show(self, title: str) -> None:
        pass

    def hide(self) -> None:
        pass


def timer_scheduler(delay: float, callback: Callable[[], None]) -> None:
    """默认调度函数，使用守护线程定时器，delay 为 0 时立即执行"""
    if delay <= 0:
        callback()
        return
    timer = threading.Timer(delay, callback)
    timer.daemon = True
    timer.start()


class LoadingController:
    """
    loading 提示控制器

    参数:
        indicator: loading 提示实现
        scheduler: 延迟调度函数，默认 timer_scheduler

    执行流程:
        1. show(title) 立即显示
        2. release(elapsed_ms, duration_ms) 计算剩余显示时间 max(0, duration - elapsed)，
           到期后调用 hide；请求比 duration 慢时立即隐藏
    """

    def __init__(self, indicator: BaseLoadingIndicator, scheduler: Scheduler | None = None):
        self.indicator = indicator
        self.scheduler = scheduler or timer_scheduler

    def show(self, title: str) -> None:
        try:
            self.indicator.show(title)
        except Exception:
            logger.exception("Failed to show loading indicator")

    def release(self, elapsed_ms: float, duration_ms: float) -> float:
        """
        安排隐藏 loading 提示

        返回:
            距离现在的隐藏延迟（毫秒）
        """
        delay_ms = max(0.0, duration_ms - elapsed_ms)
        self.scheduler(delay_ms / 1000, self._hide)
        return delay_ms

    def _hide(self) -> None:
        try:
            self.indicator.hide()
        except Exception:
            logger.exception("Failed to hide loading indicator")
