"""协作式取消令牌。"""

from __future__ import annotations

import logging
import threading
from typing import Callable

from image_reformat.utils.best_effort import attempt

LOGGER = logging.getLogger(__name__)


class CancellationToken:
    """只能置位一次的取消标记，附带取消监听回调。

    ``cancel()`` 幂等；回调在首次取消时于调用线程内同步执行，回调自身的异常
    会被记录并忽略。
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._cancelled = False
        self._callbacks: list[Callable[[], None]] = []

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        with self._lock:
            if self._cancelled:
                return
            self._cancelled = True
            callbacks = list(self._callbacks)
            self._callbacks.clear()

        LOGGER.info("收到取消请求")
        for callback in callbacks:
            attempt(callback, description="执行取消回调")

    def on_cancel(self, callback: Callable[[], None]) -> None:
        """注册取消回调；若已取消则立即执行。"""

        with self._lock:
            if not self._cancelled:
                self._callbacks.append(callback)
                return
        attempt(callback, description="执行取消回调")
