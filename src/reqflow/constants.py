"""
请求编排常量配置模块

定义编排器使用的常量、默认配置、内容类型映射等
"""

# HTTP 方法常量
HTTP_METHOD_GET = "GET"
HTTP_METHOD_POST = "POST"
HTTP_METHOD_PUT = "PUT"
HTTP_METHOD_DELETE = "DELETE"

# 内容类型常量
CONTENT_TYPE_JSON = "json"
CONTENT_TYPE_FORM = "form"
CONTENT_TYPE_FILE = "file"
CONTENT_TYPE_TEXT = "text"
CONTENT_TYPE_HTML = "html"

# contentType 简写到 MIME 类型的映射，未出现在映射中的类型视为不支持
CONTENT_TYPE_MAPPING = {
    CONTENT_TYPE_JSON: "application/json",
    CONTENT_TYPE_FORM: "application/x-www-form-urlencoded",
    CONTENT_TYPE_FILE: "multipart/form-data",
    CONTENT_TYPE_TEXT: "text/plain",
    CONTENT_TYPE_HTML: "text/html",
}

# 响应数据类型
DATA_TYPE_JSON = "json"
DATA_TYPE_ARRAYBUFFER = "arraybuffer"
RESPONSE_TYPE_ARRAYBUFFER = "arraybuffer"

# 默认配置
DEFAULT_ENCODING = "UTF-8"  # 默认请求编码
DEFAULT_BUSINESS = "data"  # 默认业务数据路径
DEFAULT_CONTENT_TYPE = CONTENT_TYPE_JSON  # 默认请求内容类型
DEFAULT_LOADING_DURATION = 500  # loading 提示最短显示时间（毫秒）
DEFAULT_TIMEOUT = 30  # 传输层默认超时时间（秒）
DEFAULT_MAX_WORKERS = 10  # 传输层默认最大工作线程数
DEFAULT_FILE_FIELD = "file"  # 上传文件默认表单字段名

# 默认全局配置（每个 OrchestratorConfig 以此为起点）
DEFAULT_OPTIONS = {
    "encoding": DEFAULT_ENCODING,
    "business": DEFAULT_BUSINESS,
    "content_type": DEFAULT_CONTENT_TYPE,
    "data_type": DATA_TYPE_JSON,
    "header": {},
}

# HTTP 成功状态码范围（闭区间）
SUCCESS_STATUS_MIN = 200
SUCCESS_STATUS_MAX = 305

# 传输层回调的错误信息
ERR_MSG_OK = "request:ok"
ERR_MSG_ABORT = "request:fail abort"  # 调用方主动取消，编排器静默处理
ERR_MSG_TIMEOUT = "request:fail timeout"
ERR_MSG_FAIL_PREFIX = "request:fail"

# 平台相关的传输调优选项，仅允许通过 set_mp_config 设置
MP_CONFIG_KEYS = frozenset(
    {
        "enable_http2",
        "enable_http_dns",
        "enable_quic",
        "enable_cache",
        "http_dns_service_id",
        "force_cellular_network",
        "enable_cookie",
        "cloud_cache",
        "defer",
    }
)

# 调用方回调选项，不会传递给传输层
CALLBACK_KEYS = ("success", "fail", "complete")
TRANSPORT_EXCLUDED_KEYS = frozenset({*CALLBACK_KEYS, "progress", "interceptor"})

# 拦截器钩子名称，error 为 fail 的别名
INTERCEPTOR_HOOKS = ("request", "prepare", "response", "fail", "complete")
INTERCEPTOR_HOOK_ALIASES = {"error": "fail"}

# 连接池配置
POOL_CONNECTIONS = 100  # 连接池大小
POOL_MAXSIZE = 100  # 连接池最大连接数

DEFAULT_POOL_CONFIG = {
    "pool_connections": POOL_CONNECTIONS,  # 连接池大小
    "pool_maxsize": POOL_MAXSIZE,  # 连接池最大连接数
}

# Celery 传输配置
CELERY_TRANSPORT_TASK_NAME = "reqflow.perform_http_call_task"
