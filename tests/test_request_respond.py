"""
请求/响应测试
"""
import asyncio
import concurrent.futures
import threading

import pytest

from topical.core import (
    InvalidArgumentError,
    InvalidTopicError,
    RequestTimeoutError,
    TopicalPubSub,
)
from topical.core.correlator import DEFAULT_REQUEST_TTL_MS, RequestState, reply_key
from topical.core.topics import TopicRegistry

from conftest import FAST_TTL_MS


class TestRequestTTL:
    """request_ttl属性测试"""

    def test_default_value(self):
        """测试默认值为4200毫秒"""
        bus = TopicalPubSub(registry=TopicRegistry(), request_ttl=DEFAULT_REQUEST_TTL_MS)
        assert bus.request_ttl == 4200

    def test_read_write(self, bus):
        """测试可读写"""
        bus.request_ttl = 1
        assert bus.request_ttl == 1

        bus.request_ttl = 2.5
        assert bus.request_ttl == 2.5

    @pytest.mark.parametrize("value", ["never", None, True, [100], float("nan"), -1])
    def test_rejects_invalid_values(self, bus, value):
        """测试拒绝非数值"""
        with pytest.raises(InvalidArgumentError, match="requestTTL"):
            bus.request_ttl = value
        assert bus.request_ttl == FAST_TTL_MS

    def test_rejects_invalid_constructor_value(self):
        """测试构造时校验TTL"""
        with pytest.raises(InvalidArgumentError):
            TopicalPubSub(registry=TopicRegistry(), request_ttl="soon")


class TestRequest:
    """request方法测试"""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("topic", [None, "TEST", "topic"])
    async def test_invalid_topic_is_rejected_future(self, bus, topic):
        """测试主题无效时返回失败的future而不是抛出"""
        future = bus.request(topic)

        assert isinstance(future, asyncio.Future)
        with pytest.raises(InvalidTopicError, match='"request\\(\\)"'):
            await future
        assert bus.pending_count == 0

    @pytest.mark.asyncio
    async def test_publishes_plain_dict_payload(self, bus, drain):
        """测试发布的消息体包含trackingNo与query"""
        received = []
        query = {"need": ["a", "b"]}
        bus.listen_once(bus.topics.TEST, received.append)

        future = bus.request(bus.topics.TEST, query)
        await drain()

        assert len(received) == 1
        payload = received[0]
        assert type(payload) is dict
        assert set(payload) == {"trackingNo", "query"}
        assert isinstance(payload["trackingNo"], str)
        assert payload["query"] is query

        bus.respond(payload["trackingNo"], "done")
        assert await future == "done"

    @pytest.mark.asyncio
    async def test_query_defaults_to_none(self, bus, drain):
        """测试不带query的请求"""
        received = []
        bus.listen_once(bus.topics.TEST, received.append)

        future = bus.request(bus.topics.TEST)
        await drain()

        assert received[0]["query"] is None
        bus.respond(received[0]["trackingNo"])
        assert await future is None

    @pytest.mark.asyncio
    async def test_tracking_numbers_are_unique(self, bus, drain):
        """测试多个并发请求的跟踪号互不相同且按创建顺序排序"""
        tracking_numbers = []
        bus.listen(bus.topics.TEST, lambda p: tracking_numbers.append(p["trackingNo"]))

        futures = [bus.request(bus.topics.TEST, i) for i in range(3)]
        await drain()

        assert len(tracking_numbers) == 3
        assert len(set(tracking_numbers)) == 3
        assert sorted(tracking_numbers) == tracking_numbers

        for number, answer in zip(tracking_numbers, "abc"):
            bus.respond(number, answer)
        assert await asyncio.gather(*futures) == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_request_on_default_topic(self, bus):
        """测试在默认主题上请求"""
        bus.listen_once(bus.topics.INFO, lambda p: bus.respond(p["trackingNo"], p["query"] * 2))

        assert await bus.request(bus.topics.INFO, 21) == 42


class TestRequestRespond:
    """request与respond交互测试"""

    @pytest.mark.asyncio
    async def test_response_resolves_request(self, bus):
        """测试收到响应后future完成"""
        bus.listen_once(bus.topics.TEST, lambda p: bus.respond(p["trackingNo"], "world"))

        answer = await asyncio.wait_for(bus.request(bus.topics.TEST, "hello"), timeout=1)

        assert answer == "world"

    @pytest.mark.asyncio
    async def test_async_responder(self, bus):
        """测试协程应答方"""
        async def responder(payload):
            await asyncio.sleep(0.001)
            bus.respond(payload["trackingNo"], payload["query"].upper())

        bus.listen(bus.topics.TEST, responder)

        assert await bus.request(bus.topics.TEST, "hello") == "HELLO"

    @pytest.mark.asyncio
    async def test_timeout_without_responder(self, bus, drain):
        """测试没有响应时超时，且不残留监听"""
        bus.request_ttl = 20
        future = bus.request(bus.topics.TEST, "hello")

        with pytest.raises(RequestTimeoutError) as exc_info:
            await asyncio.wait_for(future, timeout=1)

        assert isinstance(exc_info.value, TimeoutError)
        assert exc_info.value.ttl == 20
        assert bus.pending_count == 0
        assert bus.eventbus.get_subscribers_count(reply_key(exc_info.value.tracking_no)) == 0
        assert bus.eventbus.get_subscribers_count() == 0

    @pytest.mark.asyncio
    async def test_listener_released_after_response(self, bus, drain):
        """测试响应后内部监听被移除"""
        bus.listen_once(bus.topics.TEST, lambda p: bus.respond(p["trackingNo"], "ok"))

        assert await bus.request(bus.topics.TEST) == "ok"
        await drain()

        assert bus.pending_count == 0
        assert bus.eventbus.get_subscribers_count() == 0

    @pytest.mark.asyncio
    async def test_late_response_is_ignored(self, bus, drain):
        """测试超时后的响应不产生任何效果"""
        received = []
        bus.listen_once(bus.topics.TEST, received.append)
        bus.request_ttl = 10

        future = bus.request(bus.topics.TEST)
        with pytest.raises(RequestTimeoutError):
            await future

        assert bus.respond(received[0]["trackingNo"], "too late") == 0
        assert isinstance(future.exception(), RequestTimeoutError)

    @pytest.mark.asyncio
    async def test_second_response_is_ignored(self, bus, drain):
        """测试重复响应只有第一次生效"""
        delivered = []

        def respond_twice(payload):
            delivered.append(bus.respond(payload["trackingNo"], "first"))
            delivered.append(bus.respond(payload["trackingNo"], "second"))

        bus.listen_once(bus.topics.TEST, respond_twice)

        assert await bus.request(bus.topics.TEST) == "first"
        assert delivered == [1, 0]
        await drain()
        assert bus.eventbus.get_subscribers_count() == 0

    def test_unknown_tracking_number(self, bus):
        """测试未知跟踪号的响应是空操作"""
        assert bus.respond("no-such-request", "answer") == 0
        assert bus.respond(None) == 0
        assert bus.respond(["unhashable"], "answer") == 0

    @pytest.mark.asyncio
    async def test_respond_cannot_reach_topic_listeners(self, bus, recorder, drain):
        """测试respond不会把主题名当作跟踪号投递"""
        bus.listen(bus.topics.TEST, recorder)

        assert bus.respond("TEST", "sneaky") == 0
        await drain()
        assert recorder.calls == []

    @pytest.mark.asyncio
    async def test_ttl_change_does_not_affect_armed_requests(self, bus, drain):
        """测试修改TTL只影响之后的请求"""
        tracking_numbers = []
        bus.listen(bus.topics.TEST, lambda p: tracking_numbers.append(p["trackingNo"]))

        bus.request_ttl = 20
        short = bus.request(bus.topics.TEST, "short")
        bus.request_ttl = 5000
        long = bus.request(bus.topics.TEST, "long")

        with pytest.raises(RequestTimeoutError):
            await asyncio.wait_for(short, timeout=1)
        assert not long.done()

        await drain()
        bus.respond(tracking_numbers[1], "still waiting")
        assert await long == "still waiting"

    @pytest.mark.asyncio
    async def test_cancel_all_drops_pending_listener(self, bus, drain):
        """测试cancel_all后未完成的请求以超时结束"""
        received = []
        bus.listen_once(bus.topics.TEST, received.append)
        bus.request_ttl = 20

        future = bus.request(bus.topics.TEST)
        await drain()
        bus.cancel_all()

        assert bus.respond(received[0]["trackingNo"], "lost") == 0
        with pytest.raises(RequestTimeoutError):
            await asyncio.wait_for(future, timeout=1)

    @pytest.mark.asyncio
    async def test_caller_cancellation_releases_resources(self, bus, drain):
        """测试调用方取消future后释放定时器与内部监听"""
        future = bus.request(bus.topics.TEST)
        assert bus.pending_count == 1

        future.cancel()
        await drain()

        assert bus.pending_count == 0
        assert bus.eventbus.get_subscribers_count() == 0

    @pytest.mark.asyncio
    async def test_respond_from_other_thread(self, bus, drain):
        """测试在其他线程中响应"""
        received = []
        bus.listen_once(bus.topics.TEST, received.append)
        bus.request_ttl = 2000

        future = bus.request(bus.topics.TEST, "threaded")
        await drain()

        thread = threading.Thread(target=bus.respond, args=(received[0]["trackingNo"], "ok"))
        thread.start()
        thread.join()

        assert await asyncio.wait_for(future, timeout=1) == "ok"


class TestRequestFromOtherThread:
    """在事件循环线程之外发起请求"""

    @pytest.fixture
    def threaded_bus(self, background_loop):
        bus = TopicalPubSub(registry=TopicRegistry(), request_ttl=FAST_TTL_MS, loop=background_loop)
        bus.add_topic("TEST")
        return bus

    def test_times_out_on_idle_loop(self, threaded_bus):
        """测试事件循环空闲时请求仍按TTL超时"""
        future = threaded_bus.request(threaded_bus.topics.TEST, "hello")

        assert isinstance(future, concurrent.futures.Future)
        with pytest.raises(RequestTimeoutError):
            future.result(timeout=2)

        assert threaded_bus.pending_count == 0
        assert threaded_bus.eventbus.get_subscribers_count() == 0

    def test_answered_on_loop(self, threaded_bus):
        """测试应答方在事件循环中响应"""
        threaded_bus.listen_once(
            threaded_bus.topics.TEST,
            lambda p: threaded_bus.respond(p["trackingNo"], f"{p['query']}, world")
        )

        future = threaded_bus.request(threaded_bus.topics.TEST, "hello")

        assert future.result(timeout=2) == "hello, world"

    def test_invalid_topic(self, threaded_bus):
        """测试主题无效时返回已失败的future"""
        future = threaded_bus.request("TEST")

        assert isinstance(future, concurrent.futures.Future)
        with pytest.raises(InvalidTopicError):
            future.result(timeout=1)

    def test_cancel_releases_resources(self, threaded_bus, background_loop):
        """测试取消后释放定时器与内部监听"""
        threaded_bus.request_ttl = 5000
        future = threaded_bus.request(threaded_bus.topics.TEST)

        future.cancel()
        asyncio.run_coroutine_threadsafe(asyncio.sleep(0.05), background_loop).result(timeout=2)

        assert threaded_bus.pending_count == 0
        assert threaded_bus.eventbus.get_subscribers_count() == 0


class TestPendingRequestState:
    """请求状态机测试"""

    @pytest.mark.asyncio
    async def test_single_transition(self, bus):
        """测试终态不可再迁移"""
        captured = []
        bus.listen_once(bus.topics.TEST, captured.append)
        future = bus.request(bus.topics.TEST)
        await asyncio.sleep(0)

        pending = bus._correlator._pending[captured[0]["trackingNo"]]
        assert bus._correlator.is_pending(pending.tracking_no)
        assert pending.state is RequestState.PENDING
        assert pending.transition(RequestState.FULFILLED) is True
        assert pending.transition(RequestState.TIMED_OUT) is False
        assert pending.state is RequestState.FULFILLED

        pending.timer.cancel()
        future.cancel()
