"""
主题校验
所有接收主题参数的公开操作都先经过这里
"""
from typing import Optional

from topical.core.exceptions import InvalidTopicError
from topical.core.topics.registry import TopicRegistry


def resolve_topic(registry: TopicRegistry, token: object) -> Optional[str]:
    """返回令牌对应的主题名，无法解析时返回None"""
    return registry.resolve(token)


def require_topic(registry: TopicRegistry, token: object, operation: str) -> str:
    """
    解析主题令牌，失败时抛出异常

    Args:
        registry: 主题注册表
        token: 待校验的值
        operation: 调用方操作名，用于错误信息

    Returns:
        主题名

    Raises:
        InvalidTopicError: 无法解析为已注册主题
    """
    topic_name = registry.resolve(token)
    if topic_name is None:
        raise InvalidTopicError(operation)
    return topic_name
