"""输出目录判定规则（纯函数）。

- 指定了目标目录（例如追加到正在运行的批次）时直接使用；
- 全部来自剪贴板时使用 ``Reformat_{YYYY-MM-DD}``；
- 所有文件来自同一目录时使用 ``{目录名}_reformat``；
- 来源目录混杂时退回到日期目录。
"""

from __future__ import annotations

import re
from datetime import date
from pathlib import Path, PureWindowsPath
from typing import Iterable, Optional, Union

from image_reformat.core.models import Item
from image_reformat.core.naming import REFORMAT_SUFFIX

_MULTI_SLASH_RE = re.compile(r"(?<!^)/{2,}")


def date_folder_name(today: Optional[date] = None) -> str:
    """生成日期目录名，格式 ``Reformat_YYYY-MM-DD``。"""

    today = today or date.today()
    return f"Reformat_{today:%Y-%m-%d}"


def canonicalize_path(path: Union[str, Path]) -> str:
    """统一分隔符与大小写，用于比较路径是否相同。"""

    text = str(path).replace("\\", "/")
    text = _MULTI_SLASH_RE.sub("/", text)
    if len(text) > 1:
        text = text.rstrip("/")
    return text.lower()


def parent_folder_name(path: Union[str, Path]) -> str:
    """返回文件所在目录的名称，兼容 Windows 与 POSIX 分隔符。"""

    return PureWindowsPath(str(path)).parent.name


def _parent_key(path: Union[str, Path]) -> str:
    return canonicalize_path(PureWindowsPath(str(path)).parent)


def resolve_output_subfolder(
    items: Iterable[Item],
    today: Optional[date] = None,
) -> str:
    """根据图片来源决定输出子目录名。"""

    file_paths = [item.source_path for item in items if item.is_file and item.source_path]
    if not file_paths:
        return date_folder_name(today)

    parents = {_parent_key(path) for path in file_paths}
    if len(parents) == 1:
        folder_name = parent_folder_name(file_paths[0])
        if folder_name:
            return f"{folder_name}{REFORMAT_SUFFIX}"

    return date_folder_name(today)


def resolve_output_folder(
    items: Iterable[Item],
    output_root: Path,
    destination_override: Optional[Path] = None,
    today: Optional[date] = None,
) -> Path:
    """返回本次导出的完整输出目录。"""

    if destination_override is not None:
        return Path(destination_override)
    return Path(output_root) / resolve_output_subfolder(items, today)


def default_output_root() -> Path:
    """默认输出根目录：用户的下载目录。"""

    return Path.home() / "Downloads"
