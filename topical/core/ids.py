"""
请求跟踪号生成器
生成按创建顺序可字典序排序、进程内永不重复的字符串
"""
import threading
import time
import uuid
from typing import Callable


class TrackingNumberGenerator:
    """
    跟踪号生成器

    格式: <20位纳秒时间戳>-<12位随机十六进制>
    时间戳部分严格递增（时钟回拨时在上一个值上加一）
    """

    def __init__(self, clock: Callable[[], int] = time.time_ns):
        self._clock = clock
        self._lock = threading.Lock()
        self._last_stamp = 0

    def __call__(self) -> str:
        with self._lock:
            now = self._clock()
            self._last_stamp = now if now > self._last_stamp else self._last_stamp + 1
            stamp = self._last_stamp

        return f"{stamp:020d}-{uuid.uuid4().hex[:12]}"


new_tracking_no = TrackingNumberGenerator()
