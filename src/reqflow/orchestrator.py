"""请求编排核心模块

RequestOrchestrator 位于调用方和传输原语之间，负责:
- 合并实例配置与单次请求选项
- 规范化 URL、请求头和请求数据
- 在传输调用前后执行拦截器
- 从响应信封中提取业务数据
- 以 future（promise 模式）或 success/fail/complete 回调（回调模式）交付结果
"""

from __future__ import annotations

import functools
import json
import logging
import time
from collections.abc import Mapping
from concurrent.futures import Future, InvalidStateError
from typing import Any, Callable

from reqflow.config import OrchestratorConfig
from reqflow.constants import (
    CALLBACK_KEYS,
    CONTENT_TYPE_FILE,
    DATA_TYPE_JSON,
    DEFAULT_LOADING_DURATION,
    ERR_MSG_ABORT,
    ERR_MSG_FAIL_PREFIX,
    HTTP_METHOD_DELETE,
    HTTP_METHOD_GET,
    HTTP_METHOD_POST,
    HTTP_METHOD_PUT,
    RESPONSE_TYPE_ARRAYBUFFER,
    SUCCESS_STATUS_MAX,
    SUCCESS_STATUS_MIN,
    TRANSPORT_EXCLUDED_KEYS,
)
from reqflow.exceptions import RequestFailure, RequestValidationError, TransportError
from reqflow.interceptor import CONTINUE, InterceptorSet, ShortCircuit
from reqflow.loading import BaseLoadingIndicator, LoadingController, LoggingLoadingIndicator, Scheduler
from reqflow.normalizer import BaseOptionNormalizer, OptionNormalizer
from reqflow.resolver import is_empty, resolve_path
from reqflow.serializer import BaseRequestSerializer
from reqflow.state import ABORTED, RequestPhase, RequestState
from reqflow.transport import BaseTransport, BaseTransportTask, RequestsTransport
from reqflow.utils import debug_log, generate_request_id, sanitize_headers, sanitize_url

logger = logging.getLogger(__name__)

# 类型别名定义
RequestOptions = dict[str, Any]


class RequestFuture(Future):
    """
    promise 模式下返回的 future

    属性:
        state: 本次请求的 RequestState

    注意:
        abort() 之后 future 默认永远不会结算（与调用方已知取消的约定一致），
        需要结算时请开启 resolve_on_abort 选项，此时结果为 ABORTED
    """

    def __init__(self, state: RequestState):
        super().__init__()
        self.state = state

    def abort(self) -> None:
        if self.state.abort is not None:
            self.state.abort()

    def cancel(self) -> bool:
        self.abort()
        return super().cancel()


class RequestOrchestrator:
    """
    请求编排器

    类属性:
        transport_class: 传输层类或实例
        option_normalizer_class: 请求选项规范化器类或实例
        loading_indicator_class: loading 提示类或实例
        request_serializer_class: 请求数据序列化器类或实例，None 表示不验证

    使用示例:
        >>> api = RequestOrchestrator(base_url="https://api.example.com/", debug=True)
        >>> api.set_config({"interceptor": {"response": lambda res, state: setattr(state, "is_success", res["code"] == 0)}})
        >>>
        >>> # promise 模式：返回 RequestFuture
        >>> users = api.get(url="/users", data={"page": 1}).result(timeout=10)
        >>>
        >>> # 回调模式：返回传输任务句柄
        >>> task = api.post(url="/users", data={"name": "john"}, success=print, fail=print)
        >>> task.abort()
    """

    # ========== 可插拔组件配置 ==========
    # 传输层，默认使用基于 requests 的线程池实现
    transport_class: type[BaseTransport] | BaseTransport = RequestsTransport

    # 请求选项规范化器
    option_normalizer_class: type[BaseOptionNormalizer] | BaseOptionNormalizer = OptionNormalizer

    # loading 提示，默认只记录日志
    loading_indicator_class: type[BaseLoadingIndicator] | BaseLoadingIndicator = LoggingLoadingIndicator

    # 请求数据序列化器，None 表示不验证请求 data
    request_serializer_class: type[BaseRequestSerializer] | BaseRequestSerializer | None = None

    def __init__(
        self,
        config: OrchestratorConfig | dict[str, Any] | None = None,
        transport: BaseTransport | type[BaseTransport] | None = None,
        option_normalizer: BaseOptionNormalizer | type[BaseOptionNormalizer] | None = None,
        loading_indicator: BaseLoadingIndicator | type[BaseLoadingIndicator] | None = None,
        request_serializer: BaseRequestSerializer | type[BaseRequestSerializer] | None = None,
        scheduler: Scheduler | None = None,
        clock: Callable[[], float] | None = None,
        **options,
    ):
        """
        初始化编排器

        参数:
            config: OrchestratorConfig 实例或默认选项字典
            transport: 传输层类或实例
            option_normalizer: 规范化器类或实例
            loading_indicator: loading 提示类或实例
            request_serializer: 请求数据序列化器类或实例
            scheduler: loading 隐藏的延迟调度函数
            clock: 计时函数（秒），默认 time.monotonic
            **options: 额外的默认选项，如 base_url、debug、interceptor

        执行步骤:
            1. 构建或复用 OrchestratorConfig
            2. 解析并初始化传输层、规范化器、loading 提示、序列化器
        """
        if isinstance(config, OrchestratorConfig):
            self.config = config
            if options:
                self.config.set_config(options)
        else:
            self.config = OrchestratorConfig(**{**(config or {}), **options})

        self.transport = self._resolve_component(transport, "transport_class", BaseTransport, RequestsTransport)
        self.option_normalizer = self._resolve_component(
            option_normalizer, "option_normalizer_class", BaseOptionNormalizer, OptionNormalizer
        )
        indicator = self._resolve_component(
            loading_indicator, "loading_indicator_class", BaseLoadingIndicator, LoggingLoadingIndicator
        )
        self.loading = LoadingController(indicator, scheduler)
        self.request_serializer = self._resolve_component(
            request_serializer, "request_serializer_class", BaseRequestSerializer, None
        )
        self.clock = clock or time.monotonic

    def _resolve_component(self, component, class_attr_name, base_class, fallback_class):
        """
        统一的组件解析方法

        参数:
            component: 传入的组件配置（类或实例）
            class_attr_name: 类属性名称
            base_class: 基类类型
            fallback_class: 配置无效时的降级类

        返回:
            组件实例或 None
        """
        source = component if component is not None else getattr(self, class_attr_name, fallback_class)
        if source is None:
            return None

        if isinstance(source, type) and issubclass(source, base_class):
            return source()

        if isinstance(source, base_class):
            return source

        if fallback_class:
            logger.warning(f"Invalid {class_attr_name}: {source}. Using {fallback_class.__name__}.")
            return fallback_class()

        raise RequestValidationError(f"{class_attr_name} must be a {base_class.__name__} subclass or instance")

    # ========== 配置 ==========

    def set_config(self, config: dict[str, Any]) -> None:
        """浅合并默认选项；包含 interceptor 时整体替换拦截器集合"""
        self.config.set_config(config)

    def set_mp_config(self, config: dict[str, Any]) -> None:
        """合并平台相关的传输调优选项，不影响拦截器"""
        self.config.set_mp_config(config)

    # ========== 公开入口 ==========

    def request(self, options: RequestOptions | None = None, **kwargs) -> RequestFuture | BaseTransportTask:
        """
        发起请求

        参数:
            options: 请求选项字典
            **kwargs: 额外的请求选项，与 options 合并（kwargs 优先）

        返回:
            回调模式（传入 success/fail/complete 任一回调）返回传输任务句柄，否则返回 RequestFuture
        """
        return self._send(self._collect(options, kwargs), upload=False)

    def get(self, options: RequestOptions | None = None, **kwargs) -> RequestFuture | BaseTransportTask:
        """发起 GET 请求，data 会转换为查询字符串"""
        return self._send({**self._collect(options, kwargs), "method": HTTP_METHOD_GET}, upload=False)

    def post(self, options: RequestOptions | None = None, **kwargs) -> RequestFuture | BaseTransportTask:
        return self._send({**self._collect(options, kwargs), "method": HTTP_METHOD_POST}, upload=False)

    def put(self, options: RequestOptions | None = None, **kwargs) -> RequestFuture | BaseTransportTask:
        return self._send({**self._collect(options, kwargs), "method": HTTP_METHOD_PUT}, upload=False)

    def delete(self, options: RequestOptions | None = None, **kwargs) -> RequestFuture | BaseTransportTask:
        """发起 DELETE 请求，开启 delete_data_to_url 时 data 会转换为查询字符串"""
        return self._send({**self._collect(options, kwargs), "method": HTTP_METHOD_DELETE}, upload=False)

    def upload(self, options: RequestOptions | None = None, **kwargs) -> RequestFuture | BaseTransportTask:
        """
        上传文件

        content_type 强制为 file，method 强制为 POST；可传入 progress(info, task) 订阅上传进度
        """
        call_options = self._collect(options, kwargs)
        if call_options.get("content_type") != CONTENT_TYPE_FILE:
            debug_log(logger, call_options, "Upload content_type corrected to file", logging.WARNING)
            call_options["content_type"] = CONTENT_TYPE_FILE
        if str(call_options.get("method") or HTTP_METHOD_POST).upper() != HTTP_METHOD_POST:
            debug_log(logger, call_options, "Upload method corrected to POST", logging.WARNING)
        call_options["method"] = HTTP_METHOD_POST
        return self._send(call_options, upload=True)

    @staticmethod
    def _collect(options: RequestOptions | None, kwargs: dict[str, Any]) -> RequestOptions:
        return {**(options or {}), **kwargs}

    def _send(self, call_options: RequestOptions, upload: bool) -> RequestFuture | BaseTransportTask:
        future, task, state = self._execute(call_options, upload)
        if state.callback_mode:
            future.add_done_callback(functools.partial(self._dispatch_callbacks, state))
            return task
        return future

    # ========== 编排核心 ==========

    def _execute(self, call_options: RequestOptions, upload: bool) -> tuple[RequestFuture, BaseTransportTask, RequestState]:
        """
        执行一次请求的完整流程，总是返回 future

        返回:
            (future, 传输任务句柄, 请求状态)

        执行步骤:
            1. 读取配置快照并与请求选项合并，创建 RequestState
            2. 执行 request 拦截器、参数验证、规范化、prepare 拦截器
            3. 调用传输层，后续由 success/fail/complete 回调推进
            4. 合并失败或发送前任何阶段出现异常，都通过失败通道交付
        """
        defaults, interceptor = self.config.snapshot()
        merge_error = None
        try:
            options = self._merge_options(defaults, call_options)
        except RequestValidationError as e:
            options, merge_error = {**defaults, **call_options}, e
        state = RequestState(generate_request_id(), options, self.clock())
        state.callback_mode = any(callable(options.get(key)) for key in CALLBACK_KEYS)
        future = RequestFuture(state)

        task = None
        try:
            if merge_error is not None:
                raise merge_error
            task = self._prepare_and_send(state, interceptor, future, upload)
        except Exception as e:
            logger.error(f"[{state.request_id}] Request preparation failed: {e}")
            self._fail_before_send(state, interceptor, future, e)

        if task is None:
            task = BaseTransportTask()
        state.abort = task.abort
        return future, task, state

    @staticmethod
    def _merge_options(defaults: RequestOptions, call_options: RequestOptions) -> RequestOptions:
        """合并默认选项和请求选项（请求选项优先），header/data/form_data 复制后再合并，避免修改原字典"""
        for source in (defaults, call_options):
            header = source.get("header")
            if header is not None and not isinstance(header, Mapping):
                raise RequestValidationError(
                    f"header must be a mapping, got {type(header).__name__}",
                    errors={"header": ["Expected a mapping of header names to values."]},
                )
        options = {**defaults, **call_options}
        options["header"] = {**(defaults.get("header") or {}), **(call_options.get("header") or {})}
        for key in ("data", "form_data"):
            if isinstance(options.get(key), dict):
                options[key] = dict(options[key])
        return options

    def _prepare_and_send(
        self, state: RequestState, interceptor: InterceptorSet, future: RequestFuture, upload: bool
    ) -> BaseTransportTask | None:
        options = state.config
        state.phase = RequestPhase.NORMALIZING

        outcome = interceptor.run("request", options)
        if isinstance(outcome, ShortCircuit):
            self._short_circuit(state, interceptor, future, outcome, "request")
            return None

        self._validate_options(options)
        self.option_normalizer.normalize(options, self.loading)
        state.loading_shown = bool(options.get("loading_tip"))

        outcome = interceptor.run("prepare", options)
        if isinstance(outcome, ShortCircuit):
            self._short_circuit(state, interceptor, future, outcome, "prepare")
            return None

        state.phase = RequestPhase.IN_FLIGHT
        upload = upload or options.get("content_type") == CONTENT_TYPE_FILE
        debug_log(
            logger,
            options,
            f"[{state.request_id}] Starting {options['method']} request to {sanitize_url(options['url'])}, "
            f"header: {sanitize_headers(options['header'])}",
        )

        transport_options = {key: value for key, value in options.items() if key not in TRANSPORT_EXCLUDED_KEYS}
        success = functools.partial(self._handle_success, state, interceptor, future)
        fail = functools.partial(self._handle_fail, state, interceptor, future)
        complete = functools.partial(self._handle_complete, state, interceptor, future)
        send = self.transport.upload_file if upload else self.transport.request

        try:
            task = send(transport_options, success, fail, complete)
        except TransportError as e:
            logger.error(f"[{state.request_id}] Transport rejected the call: {e}")
            res = {"err_msg": e.err_msg}
        except Exception as e:
            logger.exception(f"[{state.request_id}] Transport call failed")
            res = {"err_msg": f"{ERR_MSG_FAIL_PREFIX} {e}"}
        else:
            progress = options.get("progress")
            if upload and callable(progress):
                task.on_progress_update(lambda info: progress(info, task))
            return task

        self._handle_fail(state, interceptor, future, res)
        self._handle_complete(state, interceptor, future, res)
        return None

    def _validate_options(self, options: RequestOptions) -> None:
        """校验 url 必填，并在配置了序列化器时验证请求 data"""
        if not options.get("url"):
            raise RequestValidationError("url is required", errors={"url": ["This field is required."]})
        if self.request_serializer is not None and isinstance(options.get("data"), dict):
            options["data"] = self.request_serializer.validate(options["data"])

    def _short_circuit(
        self, state: RequestState, interceptor: InterceptorSet, future: RequestFuture, outcome: ShortCircuit, stage: str
    ) -> None:
        """拦截器在发送前提前结束流程：不调用传输层，直接结算并执行 complete 阶段"""
        debug_log(logger, state.config, f"[{state.request_id}] {stage} interceptor short-circuited the request")
        self._settle_short_circuit(state, outcome)
        self._handle_complete(state, interceptor, future, outcome.value)

    @staticmethod
    def _settle_short_circuit(state: RequestState, outcome: ShortCircuit) -> None:
        state.data = outcome.value
        state.is_error = outcome.is_error
        state.is_success = not outcome.is_error
        if outcome.is_error:
            state.phase = RequestPhase.FAILED
            state.reject(outcome.value)
        else:
            state.phase = RequestPhase.SUCCEEDED
            state.resolve(outcome.value)

    def _fail_before_send(
        self, state: RequestState, interceptor: InterceptorSet, future: RequestFuture, error: Exception
    ) -> None:
        res = {"err_msg": f"{ERR_MSG_FAIL_PREFIX} {error}", "error": error}
        self._handle_fail(state, interceptor, future, res, reason=error)
        self._handle_complete(state, interceptor, future, res)

    # ========== 传输层回调 ==========

    def _handle_success(self, state: RequestState, interceptor: InterceptorSet, future: RequestFuture, res: dict) -> None:
        """传输层 success 回调，response 拦截器或数据处理中的异常转入失败通道"""
        try:
            self._process_success(state, interceptor, future, res)
        except Exception as e:
            logger.exception(f"[{state.request_id}] Response handling failed")
            self._handle_fail(state, interceptor, future, {**res, "err_msg": f"{ERR_MSG_FAIL_PREFIX} {e}"}, reason=e)

    def _process_success(self, state: RequestState, interceptor: InterceptorSet, future: RequestFuture, res: dict) -> None:
        """
        处理 HTTP 响应

        执行步骤:
            1. 状态码不在成功范围内，转入失败通道
            2. arraybuffer 二进制响应直接交付
            3. 文件上传的字符串响应尝试 JSON 解析，失败时保留原字符串
            4. 未跳过且结果为对象时执行 response 拦截器
            5. 跳过拦截或 state.is_success 为真时，按 business 路径提取业务数据并交付
            6. 否则视为业务失败，原始结果转入失败通道
        """
        options = state.config
        state.status_code = res.get("status_code")
        if not self._is_success_status(state.status_code):
            self._handle_fail(state, interceptor, future, res)
            return

        result = res.get("data")
        if options.get("response_type") == RESPONSE_TYPE_ARRAYBUFFER and isinstance(result, (bytes, bytearray)):
            debug_log(logger, options, f"[{state.request_id}] Binary response, skipping interceptors", logging.DEBUG)
            state.data = result
            self._resolve(state, result)
            return

        if (
            options.get("content_type") == CONTENT_TYPE_FILE
            and isinstance(result, str)
            and options.get("data_type") in (None, DATA_TYPE_JSON)
        ):
            result = self._parse_upload_body(state, result)

        skip = options.get("skip_interceptor_response")
        if not skip and isinstance(result, (dict, list)):
            outcome = interceptor.run("response", result, state)
            if isinstance(outcome, ShortCircuit):
                self._settle_short_circuit(state, outcome)
                return
        else:
            debug_log(logger, options, f"[{state.request_id}] Response interceptor skipped (skip={skip})", logging.DEBUG)

        if skip or state.is_success:
            data = resolve_path(result, options.get("business"))
            state.data = data
            state.is_empty = is_empty(data)
            state.is_success = True
            self._resolve(state, data)
            return

        debug_log(logger, options, f"[{state.request_id}] Response not marked as success", logging.WARNING)
        state.data = result
        self._handle_fail(state, interceptor, future, result)

    @staticmethod
    def _is_success_status(status_code: Any) -> bool:
        return isinstance(status_code, int) and SUCCESS_STATUS_MIN <= status_code <= SUCCESS_STATUS_MAX

    @staticmethod
    def _parse_upload_body(state: RequestState, body: str) -> Any:
        try:
            return json.loads(body)
        except ValueError as e:
            debug_log(logger, state.config, f"[{state.request_id}] Upload response is not JSON: {e}", logging.WARNING)
            return body

    def _resolve(self, state: RequestState, value: Any) -> None:
        state.phase = RequestPhase.SUCCEEDED
        state.resolve(value)
        debug_log(logger, state.config, f"[{state.request_id}] Request succeeded, data: {value!r}")

    def _handle_fail(
        self, state: RequestState, interceptor: InterceptorSet, future: RequestFuture, res: Any, reason: Any = None
    ) -> None:
        """
        失败处理

        参数:
            res: 失败响应（传输层 fail 数据、非成功状态码响应或业务失败的响应数据）
            reason: 默认的拒绝原因，None 时使用 res

        执行步骤:
            1. 记录 response/error
            2. 调用方取消（request:fail abort）静默结束，不调用拦截器、不结算
            3. 调用 fail 拦截器：ShortCircuit 可恢复为成功或替换原因，非 None 返回值替换原因
            4. 记录拒绝结果
        """
        state.response = res
        state.error = res.get("err_msg") if isinstance(res, dict) else res
        if isinstance(res, dict) and res.get("err_msg") == ERR_MSG_ABORT:
            state.phase = RequestPhase.ABORTED
            state.is_aborted = True
            debug_log(logger, state.config, f"[{state.request_id}] Request aborted by caller")
            return

        state.phase = RequestPhase.FAILED
        state.is_success = False
        state.is_error = True
        debug_log(logger, state.config, f"[{state.request_id}] Request failed: {res!r}", logging.WARNING)

        reason = res if reason is None else reason
        try:
            outcome = interceptor.run("fail", res, state)
        except Exception:
            logger.exception(f"[{state.request_id}] fail interceptor raised")
            outcome = CONTINUE

        if isinstance(outcome, ShortCircuit):
            if not outcome.is_error:
                state.is_success, state.is_error = True, False
                state.data = outcome.value
                self._resolve(state, outcome.value)
                return
            reason = outcome.value
        elif outcome is not None and outcome is not CONTINUE:
            reason = outcome
        state.reject(reason)

    def _handle_complete(
        self, state: RequestState, interceptor: InterceptorSet, future: RequestFuture, res: Any
    ) -> None:
        """
        complete 阶段，每次请求只执行一次

        执行步骤:
            1. 记录结束时间，调用 complete 拦截器
            2. 记录耗时，释放 loading 提示
            3. 结算 future
        """
        if state.is_finished:
            logger.warning(f"[{state.request_id}] complete called more than once, ignored")
            return
        state.end_time = self.clock()
        state.is_finished = True
        state.is_loading = False
        state.complete_response = res

        try:
            interceptor.run("complete", res, state)
        except Exception:
            logger.exception(f"[{state.request_id}] complete interceptor raised")

        options = state.config
        debug_log(logger, options, f"[{state.request_id}] Request completed in {state.elapsed_ms:.0f} ms")
        if state.loading_shown:
            self.loading.release(state.elapsed_ms, options.get("loading_duration") or DEFAULT_LOADING_DURATION)

        state.phase = RequestPhase.COMPLETED
        self._settle(state, future)

    def _settle(self, state: RequestState, future: RequestFuture) -> None:
        if future.cancelled():
            return

        if state.outcome is None:
            if state.config.get("resolve_on_abort"):
                self._set_future(state, future, future.set_result, ABORTED)
            elif state.callback_mode:
                self._call(state, "complete", state.complete_response)
            return

        kind, value = state.outcome
        if kind == "resolve":
            self._set_future(state, future, future.set_result, value)
        else:
            error = value if isinstance(value, BaseException) else RequestFailure(value)
            self._set_future(state, future, future.set_exception, error)

    @staticmethod
    def _set_future(state: RequestState, future: RequestFuture, setter: Callable[[Any], None], value: Any) -> None:
        # 调用方线程可能在 cancelled() 检查之后取消 future
        try:
            setter(value)
        except InvalidStateError:
            logger.debug(f"[{state.request_id}] Future already settled or cancelled, result dropped")

    # ========== 回调模式 ==========

    def _dispatch_callbacks(self, state: RequestState, future: Future) -> None:
        """回调模式：future 结算后依次调用 success 或 fail，然后 complete"""
        if future.cancelled():
            return
        error = future.exception()
        if error is None:
            value = future.result()
            if value is not ABORTED:
                self._call(state, "success", value)
        else:
            self._call(state, "fail", error.reason if isinstance(error, RequestFailure) else error)
        self._call(state, "complete", state.complete_response)

    @staticmethod
    def _call(state: RequestState, name: str, arg: Any) -> None:
        callback = state.config.get(name)
        if not callable(callback):
            return
        try:
            callback(arg)
        except Exception:
            logger.exception(f"[{state.request_id}] {name} callback raised")

    # ========== 生命周期 ==========

    def close(self) -> None:
        """关闭传输层，释放连接池和线程池资源"""
        self.transport.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
