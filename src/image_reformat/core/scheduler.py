"""固定并发上限的任务调度器。

调度器只认识“无参可调用对象”，不关心图片。任务在线程池中执行，
调度、计数与进度回调全部发生在调用 ``run_tasks`` 的协调线程内。
"""

from __future__ import annotations

import logging
from collections import deque
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Deque, Dict, Generic, Optional, Sequence, TypeVar

from image_reformat.core.cancellation import CancellationToken
from image_reformat.core.exceptions import InvalidConfigurationError, ProcessingAborted
from image_reformat.core.progress import ProgressCallback, ProgressUpdate

LOGGER = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 4

T = TypeVar("T")


class TaskStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"


@dataclass(slots=True)
class TaskResult(Generic[T]):
    """单个任务的结果，index 为提交顺序。"""

    index: int
    status: TaskStatus
    value: Optional[T] = None
    error: Optional[BaseException] = None


class _Tally:
    """运行中的计数，只在协调线程内修改。"""

    def __init__(self, total: int, callback: ProgressCallback) -> None:
        self.total = total
        self.callback = callback
        self.counts = {status: 0 for status in TaskStatus}

    def record(self, result: TaskResult) -> None:
        self.counts[result.status] += 1
        if not self.callback:
            return
        self.callback(
            ProgressUpdate(
                total=self.total,
                completed=sum(self.counts.values()),
                succeeded=self.counts[TaskStatus.SUCCEEDED],
                failed=self.counts[TaskStatus.FAILED],
                canceled=self.counts[TaskStatus.CANCELED],
                latest=result,
            )
        )


def run_tasks(
    tasks: Sequence[Callable[[], T]],
    concurrency: int = DEFAULT_CONCURRENCY,
    cancellation_token: Optional[CancellationToken] = None,
    progress_callback: ProgressCallback = None,
) -> list[TaskResult[T]]:
    """以最多 ``concurrency`` 个并发执行任务，按提交顺序返回结果。

    - 任务抛出异常记为 FAILED，不影响其他任务；
    - 任务抛出 ``ProcessingAborted`` 记为 CANCELED；
    - 观察到取消后，所有尚未开始的任务直接记为 CANCELED 且不会被调用，
      已在执行的任务允许正常结束。
    """

    if concurrency < 1:
        raise InvalidConfigurationError(f"并发数必须大于 0: {concurrency}")

    total = len(tasks)
    results: list[Optional[TaskResult[T]]] = [None] * total
    if total == 0:
        return []

    tally = _Tally(total, progress_callback)
    pending: Deque[int] = deque(range(total))
    in_flight: Dict[Future, int] = {}

    def is_cancelled() -> bool:
        return cancellation_token is not None and cancellation_token.is_cancelled

    def resolve(result: TaskResult[T]) -> None:
        results[result.index] = result
        tally.record(result)

    def cancel_pending() -> None:
        if pending:
            LOGGER.info("取消剩余 %d 个未开始的任务", len(pending))
        while pending:
            index = pending.popleft()
            resolve(TaskResult(index=index, status=TaskStatus.CANCELED))

    with ThreadPoolExecutor(max_workers=min(concurrency, total)) as executor:

        def fill_slots() -> None:
            while pending and len(in_flight) < concurrency:
                if is_cancelled():
                    cancel_pending()
                    return
                index = pending.popleft()
                in_flight[executor.submit(tasks[index])] = index

        fill_slots()
        while in_flight:
            done, _ = wait(in_flight, return_when=FIRST_COMPLETED)
            for future in done:
                index = in_flight.pop(future)
                resolve(_collect(index, future))
            if is_cancelled():
                cancel_pending()
            else:
                fill_slots()

    return [result for result in results if result is not None]


def _collect(index: int, future: Future) -> TaskResult:
    try:
        value = future.result()
    except ProcessingAborted:
        return TaskResult(index=index, status=TaskStatus.CANCELED)
    except Exception as exc:  # noqa: BLE001
        LOGGER.debug("任务 %d 执行失败：%s", index, exc)
        return TaskResult(index=index, status=TaskStatus.FAILED, error=exc)
    return TaskResult(index=index, status=TaskStatus.SUCCEEDED, value=value)
