"""Pytest配置文件 - 提供统一的消息总线测试依赖"""
from __future__ import annotations

import asyncio
import threading
from typing import Any, List

import pytest

from topical.config.settings import reset_settings
from topical.core import TopicalPubSub, reset_pubsub
from topical.core.topics import TopicRegistry

# 测试中使用较短的TTL，避免等待4.2秒
FAST_TTL_MS = 50


class Recorder:
    """记录回调收到的消息"""

    def __init__(self):
        self.calls: List[Any] = []

    def __call__(self, payload=None):
        self.calls.append(payload)

    @property
    def call_count(self) -> int:
        return len(self.calls)


@pytest.fixture
def registry():
    """创建只含默认主题的注册表"""
    return TopicRegistry()


@pytest.fixture
def bus(registry):
    """创建带TEST主题的消息总线"""
    pubsub = TopicalPubSub(registry=registry, request_ttl=FAST_TTL_MS)
    pubsub.add_topic("TEST")
    yield pubsub
    pubsub.cancel_all()


@pytest.fixture
def recorder():
    return Recorder()


@pytest.fixture
def drain():
    """让事件循环跑几轮，使已调度的投递全部执行"""

    async def _drain(rounds: int = 3):
        for _ in range(rounds):
            await asyncio.sleep(0)

    return _drain


@pytest.fixture
def background_loop():
    """在后台线程中空转的事件循环"""
    loop = asyncio.new_event_loop()
    thread = threading.Thread(target=loop.run_forever, daemon=True)
    thread.start()
    yield loop
    loop.call_soon_threadsafe(loop.stop)
    thread.join(timeout=5)
    loop.close()


@pytest.fixture
def clean_pubsub():
    """测试前后重置全局消息总线和配置"""

    reset_pubsub()
    reset_settings()
    yield
    reset_pubsub()
    reset_settings()
