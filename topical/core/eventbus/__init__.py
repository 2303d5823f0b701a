# EventBus广播原语模块

from .eventbus import SimpleEventBus

__all__ = [
    "SimpleEventBus",
]
