# 主题注册与校验模块

from .registry import (
    DEFAULT_TOPICS,
    TopicToken,
    TopicEnumeration,
    TopicRegistry,
)

from .validator import (
    resolve_topic,
    require_topic,
)

__all__ = [
    # Registry
    "DEFAULT_TOPICS",
    "TopicToken",
    "TopicEnumeration",
    "TopicRegistry",

    # Validator
    "resolve_topic",
    "require_topic",
]
