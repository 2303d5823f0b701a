"""
topical - 主题受限的进程内发布/订阅总线，附带请求/响应
"""
from topical.core import (
    TopicalError,
    InvalidArgumentError,
    InvalidTopicError,
    RequestTimeoutError,
    Disposition,
    TopicalPubSub,
    get_pubsub,
    reset_pubsub,
)
from topical.core.topics import TopicToken, TopicEnumeration, TopicRegistry

__version__ = "1.0.0"

__all__ = [
    "TopicalError",
    "InvalidArgumentError",
    "InvalidTopicError",
    "RequestTimeoutError",
    "Disposition",
    "TopicalPubSub",
    "get_pubsub",
    "reset_pubsub",
    "TopicToken",
    "TopicEnumeration",
    "TopicRegistry",
]
