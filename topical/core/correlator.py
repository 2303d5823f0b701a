"""
请求/响应关联器
在发布/订阅之上实现带跟踪号、带超时的双向交互

每个请求的生命周期: PENDING -> FULFILLED | TIMED_OUT | CANCELLED，终态不可再迁移
"""
import asyncio
import concurrent.futures
import logging
import math
import time
from dataclasses import dataclass, field
from enum import Enum
from functools import partial
from typing import Any, Callable, Dict, Hashable, Optional, Union

from topical.core.eventbus import SimpleEventBus
from topical.core.exceptions import InvalidArgumentError, RequestTimeoutError
from topical.core.ids import new_tracking_no
from topical.schemas.request import RequestEnvelope

logger = logging.getLogger(__name__)

DEFAULT_REQUEST_TTL_MS = 4200

ERR_INVALID_TTL = 'The new value for "requestTTL" must be numeric.'


class RequestState(str, Enum):
    """请求状态枚举"""
    PENDING = "PENDING"        # 等待响应
    FULFILLED = "FULFILLED"    # 已收到响应
    TIMED_OUT = "TIMED_OUT"    # 超时
    CANCELLED = "CANCELLED"    # 调用方取消了future


@dataclass(eq=False)
class PendingRequest:
    """一个尚未结束的请求"""
    tracking_no: str
    topic: str
    future: asyncio.Future
    loop: asyncio.AbstractEventLoop
    ttl: float
    created_at: float = field(default_factory=time.monotonic)
    timer: Optional[asyncio.TimerHandle] = None
    subscriber_id: Optional[str] = None
    state: RequestState = RequestState.PENDING

    def transition(self, new_state: RequestState) -> bool:
        """从PENDING迁移到终态，已结束时返回False"""
        if self.state is not RequestState.PENDING:
            return False
        self.state = new_state
        return True

    def elapsed(self) -> str:
        seconds = time.monotonic() - self.created_at
        if seconds < 1:
            return "less than 1 sec"
        return f"{seconds:.3f} sec"


def running_loop() -> Optional[asyncio.AbstractEventLoop]:
    """当前线程正在运行的事件循环，没有时返回None"""
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


def reply_key(tracking_no: Hashable) -> tuple:
    """内部响应通道的订阅键，与主题名不会冲突"""
    return ("reply", tracking_no)


def validate_ttl(value: Any) -> float:
    """TTL必须是非负数值（bool不算数值）"""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidArgumentError(ERR_INVALID_TTL)
    if math.isnan(value) or value < 0:
        raise InvalidArgumentError(ERR_INVALID_TTL)
    return value


class RequestCorrelator:
    """
    请求/响应关联器

    功能：
    - 为每个请求生成唯一跟踪号
    - 在发布请求之前按跟踪号注册一次性内部监听
    - 收到匹配响应或TTL到期，二者只会发生其一
    """

    def __init__(
        self,
        eventbus: SimpleEventBus,
        publish: Callable[[Any, Any], Any],
        get_loop: Callable[[], asyncio.AbstractEventLoop],
        request_ttl: float = DEFAULT_REQUEST_TTL_MS,
        id_generator: Callable[[], str] = new_tracking_no
    ):
        """
        初始化关联器

        Args:
            eventbus: 与主题共用的EventBus实例
            publish: 发布请求消息的函数，签名为 publish(topic, payload)
            get_loop: 返回当前事件循环
            request_ttl: 默认等待时间（毫秒）
            id_generator: 跟踪号生成器
        """
        self.eventbus = eventbus
        self._publish = publish
        self._get_loop = get_loop
        self._request_ttl = validate_ttl(request_ttl)
        self._id_generator = id_generator
        self._pending: Dict[str, PendingRequest] = {}

    @property
    def request_ttl(self) -> float:
        return self._request_ttl

    @request_ttl.setter
    def request_ttl(self, value: float):
        self._request_ttl = validate_ttl(value)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def is_pending(self, tracking_no: str) -> bool:
        return tracking_no in self._pending

    def submit(
        self, topic: Any, topic_name: str, query: Any = None
    ) -> Union[asyncio.Future, concurrent.futures.Future]:
        """
        发出请求

        定时器、future和内部监听只在事件循环线程中创建；
        从其他线程调用时整个请求交给事件循环执行

        Args:
            topic: 已校验的主题令牌
            topic_name: 主题名
            query: 请求内容

        Returns:
            以响应值完成的future，超时则以RequestTimeoutError失败。
            其他线程中调用时返回concurrent.futures.Future
        """
        loop = self._get_loop()
        if running_loop() is not loop:
            return asyncio.run_coroutine_threadsafe(self._submit_on_loop(topic, topic_name, query), loop)
        return self._arm(loop, topic, topic_name, query)

    async def _submit_on_loop(self, topic: Any, topic_name: str, query: Any = None) -> Any:
        return await self._arm(asyncio.get_running_loop(), topic, topic_name, query)

    def _arm(
        self, loop: asyncio.AbstractEventLoop, topic: Any, topic_name: str, query: Any = None
    ) -> asyncio.Future:
        tracking_no = self._id_generator()
        ttl = self._request_ttl

        future = loop.create_future()
        pending = PendingRequest(
            tracking_no=tracking_no,
            topic=topic_name,
            future=future,
            loop=loop,
            ttl=ttl
        )
        self._pending[tracking_no] = pending

        pending.timer = loop.call_later(ttl / 1000, self._expire, pending)

        # 必须在发布之前注册，否则同一轮内的响应会丢失
        pending.subscriber_id = self.eventbus.subscribe(
            reply_key(tracking_no), partial(self._on_response, pending)
        )
        future.add_done_callback(partial(self._on_future_done, pending))

        logger.debug(f"Submitting request for {query!r} with tracking number {tracking_no}")

        envelope = RequestEnvelope(tracking_no=tracking_no, query=query)
        self._publish(topic, envelope.to_payload())

        return future

    def respond(self, tracking_no: Hashable, answer: Any = None) -> int:
        """
        响应请求

        未知或已结束的跟踪号不会产生任何效果

        Returns:
            int: 收到响应的内部监听数量
        """
        logger.debug(f"Received response for {tracking_no}: {answer!r}")
        try:
            key = reply_key(tracking_no)
            hash(key)
        except TypeError:
            return 0
        if not self.is_pending(tracking_no):
            return 0
        return self.eventbus.publish(key, answer, source="respond")

    # ==================== 内部状态迁移 ====================

    def _on_response(self, pending: PendingRequest, answer: Any, key: Hashable, source: Optional[str]):
        if running_loop() is pending.loop:
            self._fulfill(pending, answer)
        else:
            pending.loop.call_soon_threadsafe(self._fulfill, pending, answer)

    def _fulfill(self, pending: PendingRequest, answer: Any):
        if not pending.transition(RequestState.FULFILLED):
            return

        if pending.timer is not None:
            pending.timer.cancel()
        self._pending.pop(pending.tracking_no, None)

        logger.debug(f"{pending.tracking_no} had a cycle time of {pending.elapsed()}")

        if not pending.future.done():
            pending.future.set_result(answer)

        # 先完成future，再在下一轮移除内部监听
        pending.loop.call_soon(self._release, pending)

    def _expire(self, pending: PendingRequest):
        if not pending.transition(RequestState.TIMED_OUT):
            return

        self._pending.pop(pending.tracking_no, None)
        self._release(pending)

        logger.debug(
            f"Failed to receive response to {pending.tracking_no} within {pending.ttl / 1000} sec"
        )

        if not pending.future.done():
            pending.future.set_exception(RequestTimeoutError(pending.tracking_no, pending.ttl))

    def _on_future_done(self, pending: PendingRequest, future: asyncio.Future):
        if not future.cancelled():
            return
        if not pending.transition(RequestState.CANCELLED):
            return

        if pending.timer is not None:
            pending.timer.cancel()
        self._pending.pop(pending.tracking_no, None)
        self._release(pending)
        logger.debug(f"Request {pending.tracking_no} cancelled by caller")

    def _release(self, pending: PendingRequest):
        if pending.subscriber_id is not None:
            self.eventbus.unsubscribe(pending.subscriber_id)
