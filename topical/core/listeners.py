"""
监听记录
每次注册都包装成一条带处置方式的记录存入订阅表，回调对象本身不会被修改
"""
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Hashable, Optional

from topical.core.topics.registry import TopicToken

PRIMITIVE_TYPES = (bool, int, float, str, TopicToken)


class Disposition(str, Enum):
    """监听处置方式"""
    PERSISTENT = "persistent"    # 常驻，直到被cancel
    ONCE = "once"                # 首次投递后移除
    UNTIL_VALUE = "until_value"  # 收到指定值后移除


def is_primitive(value: Any) -> bool:
    """listen_for可监听的值类型"""
    return isinstance(value, PRIMITIVE_TYPES)


def matches_value(payload: Any, expected: Any) -> bool:
    """
    原始值相等判断

    - 主题令牌按对象身份比较
    - bool只与bool相等
    - 数值之间按值比较，字符串按值比较
    """
    if isinstance(expected, TopicToken):
        return payload is expected

    if isinstance(expected, bool) or isinstance(payload, bool):
        return isinstance(expected, bool) and isinstance(payload, bool) and payload is expected

    if isinstance(expected, (int, float)):
        return isinstance(payload, (int, float)) and payload == expected

    if isinstance(expected, str):
        return isinstance(payload, str) and payload == expected

    return False


@dataclass(eq=False)
class ListenerEntry:
    """
    订阅表中的一条监听记录

    作为EventBus订阅回调使用：被调用时只负责调度投递，
    是否移除由发布方在同一次say调用中同步决定

    UNTIL_VALUE的回调不带参数调用，等待的值在注册时已经确定
    """
    callback: Callable[[Any], Any]
    schedule: Callable[..., None] = field(repr=False)
    disposition: Disposition = Disposition.PERSISTENT
    value: Any = None
    spent: bool = field(default=False, init=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def __call__(self, data: Any, key: Hashable = None, source: Optional[str] = None) -> bool:
        """
        处理一次发布

        Returns:
            bool: 是否调度了投递
        """
        if self.disposition is Disposition.PERSISTENT:
            self.schedule(self.callback, data)
            return True

        if self.disposition is Disposition.UNTIL_VALUE and not matches_value(data, self.value):
            return False

        with self._lock:
            if self.spent:
                return False
            self.spent = True

        if self.disposition is Disposition.UNTIL_VALUE:
            self.schedule(self.callback)
        else:
            self.schedule(self.callback, data)
        return True
