"""
EventBus广播原语
纯内存的按键订阅/发布，publish在调用线程中同步执行回调
上层的主题校验、一次性监听与请求/响应均构建在此之上
"""
import threading
import uuid
import logging
from typing import Dict, List, Callable, Any, Hashable, Optional
from collections import defaultdict

logger = logging.getLogger(__name__)


class SimpleEventBus:
    """
    EventBus实现

    特性：
    - 纯内存操作
    - 线程安全：使用RLock保护订阅表
    - 键不做任何规范化：主题名与请求跟踪号共用同一张表
    - 回调在锁外执行，回调中可以安全地订阅或取消订阅
    """

    def __init__(self):
        self._subscribers: Dict[Hashable, List[Dict]] = defaultdict(list)
        self._lock = threading.RLock()
        self._subscriber_index: Dict[str, Dict] = {}

    def subscribe(self, key: Hashable, callback: Callable) -> str:
        """
        订阅

        Args:
            key: 订阅键（主题名或请求跟踪号）
            callback: 回调函数，签名为 callback(data, key, source)

        Returns:
            str: 订阅ID，用于取消订阅
        """
        subscriber_id = str(uuid.uuid4())

        subscriber_info = {
            'id': subscriber_id,
            'callback': callback,
            'key': key
        }

        with self._lock:
            self._subscribers[key].append(subscriber_info)
            self._subscriber_index[subscriber_id] = {
                'key': key,
                'info': subscriber_info
            }

        logger.debug(f"订阅: {key}, ID: {subscriber_id}")
        return subscriber_id

    def unsubscribe(self, subscriber_id: str) -> bool:
        """
        取消订阅

        Args:
            subscriber_id: 订阅ID

        Returns:
            bool: 是否成功取消订阅
        """
        with self._lock:
            if subscriber_id not in self._subscriber_index:
                return False

            subscriber_data = self._subscriber_index[subscriber_id]
            key = subscriber_data['key']
            subscriber_info = subscriber_data['info']

            if key in self._subscribers:
                try:
                    self._subscribers[key].remove(subscriber_info)
                    if not self._subscribers[key]:
                        del self._subscribers[key]
                except ValueError:
                    pass

            del self._subscriber_index[subscriber_id]

        logger.debug(f"取消订阅: {subscriber_id}")
        return True

    def publish(self, key: Hashable, data: Any = None, source: Optional[str] = None) -> int:
        """
        发布消息

        只通知调用时刻已存在的订阅者

        Args:
            key: 订阅键
            data: 消息数据
            source: 消息来源（可选）

        Returns:
            int: 调用的回调数量
        """
        with self._lock:
            matched_subscribers = list(self._subscribers.get(key, []))

        for subscriber in matched_subscribers:
            subscriber['callback'](data, key, source)

        return len(matched_subscribers)

    def get_subscribers(self, key: Hashable) -> List[Dict]:
        """
        获取某个键当前的订阅者快照

        Returns:
            订阅信息列表，每项包含 id / callback / key
        """
        with self._lock:
            return list(self._subscribers.get(key, []))

    def get_subscribers_count(self, key: Optional[Hashable] = None) -> int:
        """
        获取订阅者数量

        Args:
            key: 指定键，None表示所有键

        Returns:
            int: 订阅者数量
        """
        with self._lock:
            if key is None:
                return sum(len(subscribers) for subscribers in self._subscribers.values())
            return len(self._subscribers.get(key, []))

    def get_keys(self) -> List[Hashable]:
        """获取所有存在订阅者的键"""
        with self._lock:
            return list(self._subscribers.keys())

    def clear(self, key: Optional[Hashable] = None) -> int:
        """
        清空订阅

        Args:
            key: 指定键，None表示清空全部

        Returns:
            int: 被移除的订阅数量
        """
        with self._lock:
            if key is None:
                removed = len(self._subscriber_index)
                self._subscribers.clear()
                self._subscriber_index.clear()
            else:
                dropped = self._subscribers.pop(key, [])
                for info in dropped:
                    self._subscriber_index.pop(info['id'], None)
                removed = len(dropped)

        if key is None:
            logger.debug(f"已清空所有订阅: {removed}")
        else:
            logger.debug(f"已清空订阅: {key}, 数量: {removed}")
        return removed
