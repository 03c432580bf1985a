"""传输层模块

传输原语是编排器之外的协作者：接收规范化后的选项，执行真正的网络 I/O，
并且必须先调用 success 或 fail 之一（各至多一次），再调用一次 complete。

    success(res): res = {"status_code", "data", "header", "err_msg"}
    fail(res):    res = {"err_msg"}

当前提供两种实现:
    - RequestsTransport: 基于 requests.Session + 线程池
    - CeleryTransport: 通过 Celery 任务在 worker 中执行请求
"""

from __future__ import annotations

import contextlib
import logging
import os
import threading
from abc import ABC, abstractmethod
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable

import requests
from celery import Celery, current_app, shared_task
from celery.exceptions import TimeoutError as CeleryTimeoutError
from celery.result import AsyncResult
from requests.adapters import HTTPAdapter

from reqflow.constants import (
    CELERY_TRANSPORT_TASK_NAME,
    CONTENT_TYPE_FORM,
    CONTENT_TYPE_JSON,
    DATA_TYPE_ARRAYBUFFER,
    DATA_TYPE_JSON,
    DEFAULT_FILE_FIELD,
    DEFAULT_MAX_WORKERS,
    DEFAULT_POOL_CONFIG,
    DEFAULT_TIMEOUT,
    ERR_MSG_ABORT,
    ERR_MSG_FAIL_PREFIX,
    ERR_MSG_OK,
    ERR_MSG_TIMEOUT,
    RESPONSE_TYPE_ARRAYBUFFER,
)
from reqflow.exceptions import TransportError
from reqflow.utils import sanitize_url

logger = logging.getLogger(__name__)

Callback = Callable[[dict[str, Any]], None]


class BaseTransportTask:
    """
    传输任务句柄

    调用方通过 abort() 取消请求；传输层发现任务已取消时，
    会以 {"err_msg": "request:fail abort"} 调用 fail 回调
    """

    def __init__(self):
        self._aborted = threading.Event()
        self._progress_callbacks: list[Callable[[dict], None]] = []

    @property
    def aborted(self) -> bool:
        return self._aborted.is_set()

    def abort(self) -> None:
        self._aborted.set()
        logger.debug(f"{self!r} aborted")

    def on_progress_update(self, callback: Callable[[dict], None]) -> None:
        """订阅上传进度，回调参数为 {"progress", "total_bytes_sent", "total_bytes_expected_to_send"}"""
        self._progress_callbacks.append(callback)

    def emit_progress(self, info: dict[str, Any]) -> None:
        for callback in self._progress_callbacks:
            try:
                callback(info)
            except Exception:
                logger.exception("Progress callback failed")


class BaseTransport(ABC):
    """传输层基类"""

    @abstractmethod
    def request(self, options: dict[str, Any], success: Callback, fail: Callback, complete: Callback) -> BaseTransportTask:
        """发起普通请求"""

    @abstractmethod
    def upload_file(
        self, options: dict[str, Any], success: Callback, fail: Callback, complete: Callback
    ) -> BaseTransportTask:
        """发起文件上传请求，options 中包含 file_path、name、form_data"""

    def close(self) -> None:
        """释放传输层资源"""

    @staticmethod
    def deliver(
        task: BaseTransportTask, ok: bool, res: dict[str, Any], success: Callback, fail: Callback, complete: Callback
    ) -> None:
        """
        按传输约定调用回调：success/fail 二选一，然后 complete

        任务已取消时，无论实际结果如何都以取消信息调用 fail
        """
        if task.aborted:
            ok, res = False, {"err_msg": ERR_MSG_ABORT}
        try:
            (success if ok else fail)(res)
        finally:
            complete(res)


def build_request_kwargs(
    options: dict[str, Any], upload: bool = False, timeout: float = DEFAULT_TIMEOUT, verify: bool = True
) -> dict[str, Any]:
    """
    把规范化后的选项转换为 requests.Session.request 的参数

    执行步骤:
        1. 基础参数：method、url、headers、timeout（选项中的 timeout 单位为毫秒）
        2. 上传请求：form_data 作为表单字段，去掉 multipart Content-Type 让 requests 生成 boundary
        3. 普通请求：json 类型使用 json=，其它类型使用 data=
    """
    headers = dict(options.get("header") or {})
    request_timeout = options["timeout"] / 1000 if options.get("timeout") else timeout
    request_kwargs: dict[str, Any] = {
        "method": options.get("method") or "GET",
        "url": options["url"],
        "timeout": request_timeout,
        "verify": verify,
    }

    if upload:
        headers.pop("Content-Type", None)
        if options.get("form_data"):
            request_kwargs["data"] = options["form_data"]
    elif "data" in options and options["data"] is not None:
        data = options["data"]
        content_type = options.get("content_type")
        if content_type == CONTENT_TYPE_JSON and isinstance(data, (dict, list)):
            request_kwargs["json"] = data
        elif content_type == CONTENT_TYPE_FORM or isinstance(data, (str, bytes, dict)):
            request_kwargs["data"] = data

    request_kwargs["headers"] = headers
    return request_kwargs


def decode_body(response: requests.Response, options: dict[str, Any], upload: bool = False) -> Any:
    """
    解码响应体

    - arraybuffer: 原始字节
    - 上传请求: 文本（由编排器按需 JSON 解析）
    - data_type 为 json: 尝试 JSON 解析，失败时返回文本
    """
    if options.get("data_type") == DATA_TYPE_ARRAYBUFFER or options.get("response_type") == RESPONSE_TYPE_ARRAYBUFFER:
        return response.content
    if upload:
        return response.text
    if options.get("data_type", DATA_TYPE_JSON) == DATA_TYPE_JSON:
        try:
            return response.json()
        except ValueError:
            logger.debug("Response body is not JSON, returning text")
    return response.text


def perform_http_call(
    session: requests.Session,
    options: dict[str, Any],
    upload: bool = False,
    timeout: float = DEFAULT_TIMEOUT,
    verify: bool = True,
) -> tuple[bool, dict[str, Any]]:
    """
    同步执行一次 HTTP 调用

    返回:
        (是否到达服务器并获得响应, 回调数据)。HTTP 4xx/5xx 也视为 True，由编排器判断状态码
    """
    request_kwargs = build_request_kwargs(options, upload, timeout, verify)
    safe_url = sanitize_url(request_kwargs["url"])
    logger.debug(f"Sending {request_kwargs['method']} request to {safe_url}")

    try:
        with contextlib.ExitStack() as stack:
            if upload:
                file_path = options["file_path"]
                field_name = options.get("name") or DEFAULT_FILE_FIELD
                file_handle = stack.enter_context(open(file_path, "rb"))
                request_kwargs["files"] = {field_name: (os.path.basename(file_path), file_handle)}
            response = session.request(**request_kwargs)
    except requests.exceptions.Timeout:
        logger.error(f"Request to {safe_url} timed out after {request_kwargs['timeout']}s")
        return False, {"err_msg": ERR_MSG_TIMEOUT}
    except requests.exceptions.RequestException as e:
        logger.error(f"Request to {safe_url} failed: {e}")
        return False, {"err_msg": f"{ERR_MSG_FAIL_PREFIX} {e}"}
    except (KeyError, OSError) as e:
        logger.error(f"Upload to {safe_url} failed: {e}")
        return False, {"err_msg": f"uploadFile:fail {e}"}

    logger.debug(f"Received {response.status_code} response from {safe_url}")
    return True, {
        "status_code": response.status_code,
        "data": decode_body(response, options, upload),
        "header": dict(response.headers),
        "err_msg": ERR_MSG_OK,
    }


class RequestsTransportTask(BaseTransportTask):
    """RequestsTransport 的任务句柄，future 为线程池中的执行结果"""

    def __init__(self):
        super().__init__()
        self.future: Future | None = None


class RequestsTransport(BaseTransport):
    """
    基于 requests 的传输层

    每次调用提交到线程池执行，在工作线程中回调编排器。
    已发出的请求无法中断，abort 之后到达的响应会被丢弃并按取消处理。

    参数:
        session: 自定义 requests.Session，默认创建带连接池的会话
        timeout: 默认超时时间（秒）
        verify: SSL 证书验证开关
        max_workers: 线程池最大工作线程数
        pool_config: 连接池配置，见 DEFAULT_POOL_CONFIG
    """

    timeout: float = DEFAULT_TIMEOUT
    verify: bool = True
    max_workers: int = DEFAULT_MAX_WORKERS
    pool_config: dict[str, Any] = DEFAULT_POOL_CONFIG

    def __init__(
        self,
        session: requests.Session | None = None,
        timeout: float | None = None,
        verify: bool | None = None,
        max_workers: int | None = None,
        pool_config: dict[str, Any] | None = None,
    ):
        self.timeout = timeout if timeout is not None else self.timeout
        self.verify = verify if verify is not None else self.verify
        self.max_workers = max_workers if max_workers is not None else self.max_workers
        self.pool_config = {**self.pool_config, **(pool_config or {})}
        self.session = session or self._create_session()
        self._executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="reqflow")

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        adapter = HTTPAdapter(**self.pool_config)
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        return session

    def request(self, options, success, fail, complete) -> RequestsTransportTask:
        return self._submit(options, False, success, fail, complete)

    def upload_file(self, options, success, fail, complete) -> RequestsTransportTask:
        return self._submit(options, True, success, fail, complete)

    def _submit(self, options, upload, success, fail, complete) -> RequestsTransportTask:
        task = RequestsTransportTask()
        try:
            task.future = self._executor.submit(self._run, task, options, upload, success, fail, complete)
        except RuntimeError as e:
            raise TransportError(f"RequestsTransport is closed: {e}", err_msg=f"{ERR_MSG_FAIL_PREFIX} transport closed") from e
        return task

    def _run(self, task, options, upload, success, fail, complete) -> None:
        if task.aborted:
            self.deliver(task, False, {"err_msg": ERR_MSG_ABORT}, success, fail, complete)
            return

        try:
            ok, res = perform_http_call(self.session, options, upload, self.timeout, self.verify)
            if ok and upload:
                size = os.path.getsize(options["file_path"])
                task.emit_progress({"progress": 100, "total_bytes_sent": size, "total_bytes_expected_to_send": size})
        except Exception as e:
            logger.exception(f"HTTP call to {sanitize_url(str(options.get('url')))} raised unexpectedly")
            ok, res = False, {"err_msg": f"{ERR_MSG_FAIL_PREFIX} {e}"}
        self.deliver(task, ok, res, success, fail, complete)

    def close(self) -> None:
        self._executor.shutdown(wait=False)
        self.session.close()
        logger.info("RequestsTransport closed")


@shared_task(name=CELERY_TRANSPORT_TASK_NAME)
def perform_http_call_task(
    options: dict[str, Any], upload: bool = False, timeout: float = DEFAULT_TIMEOUT, verify: bool = True
) -> dict[str, Any]:
    """
    在 Celery worker 中执行一次 HTTP 调用

    返回:
        {"ok": bool, "result": 回调数据}。arraybuffer 响应需要 worker 使用 pickle 序列化器
    """
    with requests.Session() as session:
        ok, res = perform_http_call(session, options, upload, timeout, verify)
    return {"ok": ok, "result": res}


class CeleryTransportTask(BaseTransportTask):
    """CeleryTransport 的任务句柄，abort 时撤销尚未完成的 Celery 任务"""

    def __init__(self, async_result: AsyncResult):
        super().__init__()
        self.async_result = async_result

    def abort(self) -> None:
        super().abort()
        if not self.async_result.ready():
            self.async_result.revoke(terminate=True)
            logger.info(f"Revoked celery task {self.async_result.id}")


class CeleryTransport(BaseTransport):
    """
    基于 Celery 的传输层

    请求通过 send_task 分发到 worker 执行，本地的等待线程收集结果后回调编排器。
    上传请求要求 worker 能访问 file_path 指向的文件。

    参数:
        celery_app: Celery 实例，默认使用 current_app
        task_name: Celery 任务名称，默认 reqflow.perform_http_call_task
        wait_timeout: 等待单个任务结果的超时时间（秒），None 表示不限制
        timeout: worker 中 HTTP 请求的默认超时时间（秒）
        verify: SSL 证书验证开关
    """

    def __init__(
        self,
        celery_app: Celery | None = None,
        task_name: str | None = None,
        wait_timeout: float | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        verify: bool = True,
    ):
        self.celery_app = celery_app or current_app
        self.task_name = task_name or CELERY_TRANSPORT_TASK_NAME
        self.wait_timeout = wait_timeout
        self.timeout = timeout
        self.verify = verify

    def request(self, options, success, fail, complete) -> CeleryTransportTask:
        return self._submit(options, False, success, fail, complete)

    def upload_file(self, options, success, fail, complete) -> CeleryTransportTask:
        return self._submit(options, True, success, fail, complete)

    def _submit(self, options, upload, success, fail, complete) -> CeleryTransportTask:
        async_result = self.celery_app.send_task(self.task_name, args=[dict(options), upload, self.timeout, self.verify])
        task = CeleryTransportTask(async_result)
        waiter = threading.Thread(
            target=self._wait, args=(task, success, fail, complete), name=f"reqflow-celery-{async_result.id}", daemon=True
        )
        waiter.start()
        return task

    def _wait(self, task: CeleryTransportTask, success, fail, complete) -> None:
        try:
            payload = task.async_result.get(timeout=self.wait_timeout, propagate=False)
        except CeleryTimeoutError:
            logger.warning(f"Celery task {task.async_result.id} timeout after {self.wait_timeout}s")
            task.async_result.revoke(terminate=True)
            self.deliver(task, False, {"err_msg": ERR_MSG_TIMEOUT}, success, fail, complete)
            return
        except Exception as e:
            logger.exception(f"Failed to collect result of celery task {task.async_result.id}")
            self.deliver(task, False, {"err_msg": f"{ERR_MSG_FAIL_PREFIX} {e}"}, success, fail, complete)
            return

        if isinstance(payload, BaseException) or not isinstance(payload, dict):
            logger.error(f"Celery task {task.async_result.id} failed: {payload}")
            self.deliver(task, False, {"err_msg": f"{ERR_MSG_FAIL_PREFIX} {payload}"}, success, fail, complete)
            return

        self.deliver(task, bool(payload.get("ok")), payload.get("result") or {}, success, fail, complete)
