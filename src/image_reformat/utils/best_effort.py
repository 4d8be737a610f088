"""“尝试、记录、继续”的尽力而为操作封装。"""

from __future__ import annotations

import logging
from typing import Any, Callable, Tuple, Type

LOGGER = logging.getLogger(__name__)


def attempt(
    action: Callable[..., Any],
    *args: Any,
    description: str,
    exceptions: Tuple[Type[BaseException], ...] = (Exception,),
    **kwargs: Any,
) -> bool:
    """执行 action；失败时记录警告并返回 False，不向上抛出。"""

    try:
        action(*args, **kwargs)
    except exceptions as exc:
        LOGGER.warning("%s 失败（已忽略）：%s", description, exc)
        return False
    return True
