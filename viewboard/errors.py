"""
数据源异常定义。
适配器抛出，编排器捕获并转换为 ERROR 状态（消息原样透传）。
"""


class SourceError(Exception):
    """上游调用失败、不可达或返回失败信封。"""

    def __init__(self, message: str, source_id: str | None = None):
        self.message = message
        self.source_id = source_id
        super().__init__(message)


class SchemaNotFoundError(SourceError):
    """Entity 适配器收到了 schema 注册表中不存在的 ID。"""


class InvalidResponseError(SourceError):
    """API 响应体是字符串但无法解析为 JSON。"""


class ExecutionError(SourceError):
    """执行服务返回 success: false，携带服务自身的错误信息。"""


class ServiceCallError(Exception):
    """远程函数调用失败（网络错误或非 2xx 响应）。"""

    def __init__(self, message: str, status_code: int | None = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)
