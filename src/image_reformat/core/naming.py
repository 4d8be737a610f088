"""输出文件命名与冲突处理模块。"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Callable, Optional, Set

from image_reformat.core.exceptions import OutputPathError

LOGGER = logging.getLogger(__name__)

REFORMAT_SUFFIX = "_reformat"
CLIPBOARD_BASENAME = "clipboard"
MAX_COLLISION_ATTEMPTS = 10000

_ILLEGAL_CHARS_RE = re.compile(r'[<>:"/\\|?*\x00-\x1f]')
_TRAILING_RE = re.compile(r"[\s.]+$")
_RESERVED_NAMES = {
    "CON",
    "PRN",
    "AUX",
    "NUL",
    *(f"COM{i}" for i in range(1, 10)),
    *(f"LPT{i}" for i in range(1, 10)),
}


def split_filename(filename: str) -> tuple[str, str]:
    """拆分文件名为 (主干, 扩展名)；隐藏文件如 ``.gitignore`` 视为无扩展名。"""

    dot = filename.rfind(".")
    if dot <= 0:
        return filename, ""
    return filename[:dot], filename[dot:]


def sanitize_filename(filename: str) -> str:
    """按 Windows 规则（最严格）替换非法字符。"""

    if not filename:
        return "unnamed"

    sanitized = _ILLEGAL_CHARS_RE.sub("_", filename)
    sanitized = _TRAILING_RE.sub("", sanitized)
    if not sanitized:
        return "unnamed"

    stem, ext = split_filename(sanitized)
    if stem.upper() in _RESERVED_NAMES:
        sanitized = f"_{stem}{ext}"
    return sanitized


def build_output_filename(original_name: str, extension: Optional[str] = None) -> str:
    """生成带 ``_reformat`` 后缀的输出文件名；extension 为空时沿用原扩展名。"""

    stem, original_ext = split_filename(sanitize_filename(original_name))
    ext = original_ext if extension is None else extension
    return f"{stem}{REFORMAT_SUFFIX}{ext}"


class OutputNamer:
    """为同一批次的输出文件分配互不冲突的路径。

    必须在并发处理开始前顺序调用 ``reserve``：每个候选名同时检查本批次已占用
    的集合与磁盘，冲突时依次追加 ``-1``、``-2`` ……
    """

    def __init__(
        self,
        output_dir: Path,
        exists: Optional[Callable[[Path], bool]] = None,
    ) -> None:
        self.output_dir = Path(output_dir)
        self._exists = exists or (lambda path: path.exists())
        self._reserved: Set[str] = set()

    def is_taken(self, candidate: Path) -> bool:
        return candidate.name.lower() in self._reserved or self._exists(candidate)

    def reserve(self, original_name: str, extension: Optional[str] = None) -> Path:
        """返回一个未被占用的输出路径并登记到本批次集合中。"""

        filename = build_output_filename(original_name, extension)
        destination = self._generate_unique_path(self.output_dir / filename)
        self._reserved.add(destination.name.lower())
        return destination

    def _generate_unique_path(self, destination: Path) -> Path:
        if not self.is_taken(destination):
            return destination

        stem, suffix = split_filename(destination.name)
        for idx in range(1, MAX_COLLISION_ATTEMPTS):
            candidate = destination.with_name(f"{stem}-{idx}{suffix}")
            if not self.is_taken(candidate):
                LOGGER.debug("输出重名，改用 %s", candidate.name)
                return candidate

        raise OutputPathError(f"尝试 {MAX_COLLISION_ATTEMPTS} 次后仍无法找到可用文件名: {destination.name}")
