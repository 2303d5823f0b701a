"""
异常定义
"""
from typing import Optional


class TopicalError(Exception):
    """消息总线异常基类"""


class InvalidArgumentError(TopicalError, ValueError):
    """参数格式错误（主题名、回调、TTL、监听值等）"""


class InvalidTopicError(TopicalError, TypeError):
    """主题参数无法解析为已注册的主题"""

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(
            f'The "topic" parameter for "{operation}()" is required and must be a value from "topics".'
        )


class RequestTimeoutError(TopicalError, TimeoutError):
    """请求在TTL内未收到响应"""

    def __init__(self, tracking_no: str, ttl: Optional[float] = None):
        self.tracking_no = tracking_no
        self.ttl = ttl
        super().__init__("No response received within the required time limit.")
