# 消息总线核心模块

from .exceptions import (
    TopicalError,
    InvalidArgumentError,
    InvalidTopicError,
    RequestTimeoutError,
)

from .listeners import Disposition, ListenerEntry

from .correlator import (
    DEFAULT_REQUEST_TTL_MS,
    RequestCorrelator,
    RequestState,
    PendingRequest,
)

from .pubsub import (
    TopicalPubSub,
    get_pubsub,
    reset_pubsub,
)

__all__ = [
    # Exceptions
    "TopicalError",
    "InvalidArgumentError",
    "InvalidTopicError",
    "RequestTimeoutError",

    # Listeners
    "Disposition",
    "ListenerEntry",

    # Request/Response
    "DEFAULT_REQUEST_TTL_MS",
    "RequestCorrelator",
    "RequestState",
    "PendingRequest",

    # PubSub
    "TopicalPubSub",
    "get_pubsub",
    "reset_pubsub",
]
