"""
reqflow 请求编排模块

位于应用调用方和 HTTP 传输原语之间的请求编排层

主要组件:
    - RequestOrchestrator: 请求编排器，提供 promise 模式和回调模式两种调用方式
    - OrchestratorConfig: 编排器默认选项和拦截器配置
    - InterceptorSet: request/prepare/response/fail/complete 拦截器集合
    - 传输层: RequestsTransport, CeleryTransport
    - loading 提示: LoggingLoadingIndicator, NullLoadingIndicator
    - 异常类: RequestClientError 及其子类

使用示例:
    >>> from reqflow import RequestOrchestrator
    >>>
    >>> api = RequestOrchestrator(base_url="https://api.example.com/")
    >>> future = api.get(url="/users", data={"page": 1}, business="data.list")
    >>> users = future.result(timeout=10)
"""

# 编排器
from reqflow.orchestrator import RequestFuture, RequestOrchestrator

# 配置
from reqflow.config import OrchestratorConfig

# 拦截器
from reqflow.interceptor import CONTINUE, InterceptorSet, ShortCircuit, envelope_code_response

# 请求状态
from reqflow.state import ABORTED, RequestPhase, RequestState

# 异常类
from reqflow.exceptions import (
    RequestClientError,
    RequestFailure,
    RequestValidationError,
    TransportError,
)

# 选项规范化
from reqflow.normalizer import BaseOptionNormalizer, OptionNormalizer

# 传输层
from reqflow.transport import (
    BaseTransport,
    BaseTransportTask,
    CeleryTransport,
    RequestsTransport,
    perform_http_call,
    perform_http_call_task,
)

# loading 提示
from reqflow.loading import (
    BaseLoadingIndicator,
    LoadingController,
    LoggingLoadingIndicator,
    NullLoadingIndicator,
)

# 请求数据序列化器
from reqflow.serializer import BaseRequestSerializer, DRFRequestSerializer

# 工具函数
from reqflow.resolver import is_empty, resolve_path
from reqflow.utils import sanitize_headers, sanitize_url

__version__ = "0.1.0"

__all__ = [
    # 编排器
    "RequestOrchestrator",
    "RequestFuture",
    # 配置
    "OrchestratorConfig",
    # 拦截器
    "InterceptorSet",
    "ShortCircuit",
    "CONTINUE",
    "envelope_code_response",
    # 请求状态
    "RequestState",
    "RequestPhase",
    "ABORTED",
    # 异常
    "RequestClientError",
    "RequestValidationError",
    "TransportError",
    "RequestFailure",
    # 选项规范化
    "BaseOptionNormalizer",
    "OptionNormalizer",
    # 传输层
    "BaseTransport",
    "BaseTransportTask",
    "RequestsTransport",
    "CeleryTransport",
    "perform_http_call",
    "perform_http_call_task",
    # loading 提示
    "BaseLoadingIndicator",
    "LoggingLoadingIndicator",
    "NullLoadingIndicator",
    "LoadingController",
    # 序列化器
    "BaseRequestSerializer",
    "DRFRequestSerializer",
    # 工具函数
    "resolve_path",
    "is_empty",
    "sanitize_headers",
    "sanitize_url",
]
