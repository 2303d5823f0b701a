"""
主题化发布/订阅总线
只允许通过注册表签发的主题令牌发布和订阅，并在其上提供请求/响应
"""
import asyncio
import concurrent.futures
import inspect
import logging
import threading
from typing import Any, Callable, Iterable, Optional, Sequence, Union

from topical.config.settings import get_settings
from topical.core.correlator import RequestCorrelator, running_loop
from topical.core.eventbus import SimpleEventBus
from topical.core.exceptions import InvalidArgumentError, InvalidTopicError
from topical.core.ids import new_tracking_no
from topical.core.listeners import Disposition, ListenerEntry, is_primitive
from topical.core.topics import TopicEnumeration, TopicRegistry, require_topic

logger = logging.getLogger(__name__)


def _callback_error(operation: str) -> InvalidArgumentError:
    return InvalidArgumentError(
        f'The "callback" parameter for "{operation}()" is required and must be a function.'
    )


class TopicalPubSub:
    """
    主题化消息总线

    功能：
    - 主题注册（只增不减）与令牌校验
    - listen / listen_once / listen_for 三种监听方式
    - say 异步投递，一次性监听在say内同步移除
    - request / respond 请求响应，带TTL超时
    """

    def __init__(
        self,
        registry: Optional[TopicRegistry] = None,
        eventbus: Optional[SimpleEventBus] = None,
        request_ttl: Optional[float] = None,
        default_topics: Optional[Iterable[str]] = None,
        id_generator: Callable[[], str] = new_tracking_no,
        loop: Optional[asyncio.AbstractEventLoop] = None
    ):
        """
        初始化消息总线

        Args:
            registry: 主题注册表，不提供时按配置创建
            eventbus: EventBus实例，不提供时新建
            request_ttl: 请求默认等待时间（毫秒），不提供时取配置
            default_topics: 新建注册表时的初始主题，不提供时取配置
            id_generator: 请求跟踪号生成器
            loop: 在没有运行中事件循环的线程里调用时使用的循环
        """
        if registry is None or request_ttl is None:
            settings = get_settings()
            if registry is None:
                topics = settings.DEFAULT_TOPICS if default_topics is None else default_topics
                registry = TopicRegistry(topics)
            if request_ttl is None:
                request_ttl = settings.REQUEST_TTL_MS

        self.registry = registry
        self.eventbus = eventbus or SimpleEventBus()
        self._loop = loop
        self._correlator = RequestCorrelator(
            eventbus=self.eventbus,
            publish=self.say,
            get_loop=self._get_loop,
            request_ttl=request_ttl,
            id_generator=id_generator
        )

        logger.debug(f"消息总线已初始化，主题: {', '.join(self.registry.names)}")

    # ==================== 属性 ====================

    @property
    def topics(self) -> TopicEnumeration:
        """当前主题枚举快照"""
        return self.registry.topics

    @property
    def request_ttl(self) -> float:
        """请求默认等待时间（毫秒）"""
        return self._correlator.request_ttl

    @request_ttl.setter
    def request_ttl(self, value: float):
        self._correlator.request_ttl = value

    @property
    def pending_count(self) -> int:
        """尚未结束的请求数量"""
        return self._correlator.pending_count

    # ==================== 主题管理 ====================

    def add_topic(self, names: Union[str, Sequence[str]]) -> TopicEnumeration:
        """
        注册一个或多个主题

        Args:
            names: 主题名或主题名列表，转为大写后去重

        Returns:
            新的主题枚举快照
        """
        return self.registry.add_topics(names)

    # ==================== 监听 ====================

    def listen(self, topic, callback: Callable[[Any], Any]) -> str:
        """
        常驻监听

        Args:
            topic: topics中的主题令牌
            callback: 回调函数，签名为 callback(payload)，可以是协程函数

        Returns:
            str: 订阅ID
        """
        topic_name = require_topic(self.registry, topic, "listen")
        if not callable(callback):
            raise _callback_error("listen")

        subscriber_id = self._register(topic_name, callback, Disposition.PERSISTENT)
        logger.debug(f'Registered listener on topic "{topic_name}"')
        return subscriber_id

    def listen_once(self, topic, callback: Callable[[Any], Any]) -> str:
        """一次性监听：首次投递后自动移除"""
        topic_name = require_topic(self.registry, topic, "listenOnce")
        if not callable(callback):
            raise _callback_error("listenOnce")

        subscriber_id = self._register(topic_name, callback, Disposition.ONCE)
        logger.debug(f'Registered one-time listener on topic "{topic_name}"')
        return subscriber_id

    def listen_for(self, topic, value: Any, callback: Callable[[], Any]) -> str:
        """
        等值监听：收到与value相等的消息时投递一次，随后自动移除

        Args:
            topic: topics中的主题令牌
            value: 要等待的原始值（bool / int / float / str / 主题令牌）
            callback: 无参数的回调函数

        Raises:
            InvalidArgumentError: value不是原始值或callback不可调用
        """
        topic_name = require_topic(self.registry, topic, "listenFor")
        if not is_primitive(value):
            raise InvalidArgumentError(
                'The "value" parameter for "listenFor()" is required and must be a primitive value.'
            )
        if not callable(callback):
            raise _callback_error("listenFor")

        subscriber_id = self._register(topic_name, callback, Disposition.UNTIL_VALUE, value)
        logger.debug(f'Registered listener for {value!r} on topic "{topic_name}"')
        return subscriber_id

    # ==================== 发布 ====================

    def say(self, topic, payload: Any = None) -> int:
        """
        向主题发布消息

        投递是异步的：回调在事件循环的后续迭代中执行。
        已投递的一次性监听在本次调用返回前移除。

        Returns:
            int: 被通知的监听数量
        """
        topic_name = require_topic(self.registry, topic, "say")

        # 先确定投递用的事件循环，失败时不改动任何监听
        if self.eventbus.get_subscribers_count(topic_name):
            self._get_loop()

        logger.debug(f'Saying {payload!r} on topic "{topic_name}"')
        try:
            return self.eventbus.publish(topic_name, payload, source="say")
        finally:
            self._drop_spent(topic_name)

    # ==================== 取消 ====================

    def cancel(self, topic) -> int:
        """移除主题上的全部监听"""
        topic_name = require_topic(self.registry, topic, "cancel")
        logger.debug(f'Dropping all listeners on topic "{topic_name}"')
        return self.eventbus.clear(topic_name)

    def cancel_all(self) -> int:
        """移除所有主题上的全部监听（包括未完成请求的内部监听）"""
        logger.debug("Dropping all listeners on all topics")
        return self.eventbus.clear()

    def listener_count(self, topic=None) -> int:
        """
        监听数量

        Args:
            topic: 主题令牌，None表示所有主题
        """
        if topic is None:
            return sum(
                self.eventbus.get_subscribers_count(name) for name in self.registry.names
            )
        topic_name = require_topic(self.registry, topic, "listenerCount")
        return self.eventbus.get_subscribers_count(topic_name)

    # ==================== 请求/响应 ====================

    def request(self, topic, query: Any = None) -> Union[asyncio.Future, concurrent.futures.Future]:
        """
        请求信息

        订阅方必须用respond回复（而不是say），future以回复值完成。
        主题无效时返回已失败的future，而不是直接抛出。

        Args:
            topic: topics中的主题令牌
            query: 描述所需信息的值

        Returns:
            在事件循环线程中调用时为asyncio.Future；
            在其他线程中调用时为concurrent.futures.Future，可用result(timeout)等待
        """
        try:
            topic_name = require_topic(self.registry, topic, "request")
        except InvalidTopicError as e:
            loop = self._get_loop()
            future = loop.create_future() if running_loop() is loop else concurrent.futures.Future()
            future.set_exception(e)
            return future

        return self._correlator.submit(topic, topic_name, query)

    def respond(self, tracking_no: Any, answer: Any = None) -> int:
        """
        响应请求

        Args:
            tracking_no: 请求消息中的trackingNo
            answer: 请求的信息

        Returns:
            int: 1表示送达了等待中的请求，0表示未知或已结束（不报错）
        """
        return self._correlator.respond(tracking_no, answer)

    # ==================== 内部方法 ====================

    def _register(self, topic_name: str, callback, disposition: Disposition, value: Any = None) -> str:
        entry = ListenerEntry(
            callback=callback,
            schedule=self._schedule,
            disposition=disposition,
            value=value
        )
        return self.eventbus.subscribe(topic_name, entry)

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            if self._loop is None:
                raise RuntimeError(
                    "TopicalPubSub needs a running event loop; pass loop= when calling from other threads"
                ) from None
            return self._loop

        if self._loop is None or self._loop.is_closed():
            self._loop = loop
        return loop

    def _drop_spent(self, topic_name: str):
        for info in self.eventbus.get_subscribers(topic_name):
            entry = info["callback"]
            if isinstance(entry, ListenerEntry) and entry.spent:
                self.eventbus.unsubscribe(info["id"])

    def _schedule(self, callback: Callable[..., Any], *args: Any):
        self._get_loop().call_soon_threadsafe(_deliver, callback, *args)


def _deliver(callback: Callable[..., Any], *args: Any):
    """在事件循环中执行一次投递，协程回调包装为任务"""
    result = callback(*args)
    if inspect.isawaitable(result):
        asyncio.ensure_future(result)


# 全局消息总线实例
_global_pubsub: Optional[TopicalPubSub] = None
_pubsub_lock = threading.Lock()


def get_pubsub() -> TopicalPubSub:
    """获取全局消息总线实例（单例模式）"""
    global _global_pubsub

    if _global_pubsub is None:
        with _pubsub_lock:
            if _global_pubsub is None:
                _global_pubsub = TopicalPubSub()
                logger.info("创建全局消息总线实例")

    return _global_pubsub


def reset_pubsub():
    """
    重置全局消息总线实例

    警告：仅用于测试！会丢弃所有主题、监听和未完成的请求
    """
    global _global_pubsub

    with _pubsub_lock:
        if _global_pubsub is not None:
            _global_pubsub.cancel_all()
        _global_pubsub = None
        logger.info("全局消息总线已重置")
