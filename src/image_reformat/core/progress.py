"""进度更新的数据模型。"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Optional


@dataclass(slots=True)
class ProgressUpdate:
    """批处理过程中的进度信息，每完成（或取消）一个任务推送一次。"""

    total: int
    completed: int
    succeeded: int = 0
    failed: int = 0
    canceled: int = 0
    latest: Any = None
    run_id: Optional[str] = None
    message: Optional[str] = None


ProgressCallback = Optional[Callable[[ProgressUpdate], None]]
