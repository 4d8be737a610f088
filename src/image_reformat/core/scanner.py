"""文件扫描与导入逻辑：把命令行给出的路径转换为 ``Item`` 列表。"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Iterator

from PIL import Image, UnidentifiedImageError

from image_reformat.core.models import Item, ItemOrigin
from image_reformat.core.paths import canonicalize_path
from image_reformat.processing.image_loader import ALPHA_MODES

LOGGER = logging.getLogger(__name__)

IMAGE_EXTENSIONS = {
    ".jpg",
    ".jpeg",
    ".png",
    ".heic",
    ".heif",
    ".webp",
    ".tiff",
    ".tif",
    ".bmp",
    ".gif",
}

EXIF_ORIENTATION_TAG = 0x0112
_SWAPPING_ORIENTATIONS = {5, 6, 7, 8}


@dataclass(slots=True)
class SkippedSource:
    path: Path
    reason: str


@dataclass(slots=True)
class ScanResult:
    """扫描结果：可导入的图片与被跳过的文件。"""

    items: list[Item] = field(default_factory=list)
    skipped: list[SkippedSource] = field(default_factory=list)


def _iter_candidate_files(path: Path, recursive: bool) -> Iterator[Path]:
    """遍历路径下的所有文件。"""

    if path.is_file():
        yield path
        return

    if not path.is_dir():
        return

    iterator = path.rglob("*") if recursive else path.glob("*")
    for candidate in sorted(iterator, key=lambda p: str(p).lower()):
        if candidate.is_file():
            yield candidate


def collect_items(sources: Iterable[Path], recursive: bool = True) -> ScanResult:
    """扫描文件和目录，返回支持格式的图片（按规范化路径去重）。"""

    result = ScanResult()
    seen: set[str] = set()

    for root in sources:
        root = Path(root).expanduser()
        if not root.exists():
            result.skipped.append(SkippedSource(root, "File not found"))
            continue

        for candidate in _iter_candidate_files(root.resolve(), recursive):
            if candidate.suffix.lower() not in IMAGE_EXTENSIONS:
                continue

            key = canonicalize_path(candidate)
            if key in seen:
                continue
            seen.add(key)

            item = read_item(candidate)
            if isinstance(item, str):
                LOGGER.debug("跳过 %s：%s", candidate, item)
                result.skipped.append(SkippedSource(candidate, item))
                continue
            result.items.append(item)

    return result


def read_item(path: Path) -> Item | str:
    """读取图片元数据并构建 ``Item``；无法导入时返回原因。"""

    try:
        byte_size = path.stat().st_size
        with Image.open(path) as img:
            if getattr(img, "is_animated", False) and getattr(img, "n_frames", 1) > 1:
                return "Animated images are not supported"
            width, height = img.size
            orientation = img.getexif().get(EXIF_ORIENTATION_TAG)
            if orientation in _SWAPPING_ORIENTATIONS:
                width, height = height, width
            return Item(
                id=uuid.uuid4().hex,
                origin=ItemOrigin.FILE,
                original_name=path.name,
                width=width,
                height=height,
                byte_size=byte_size,
                source_path=path,
                format=img.format,
                has_alpha=img.mode in ALPHA_MODES or "transparency" in img.info,
            )
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        LOGGER.debug("无法读取图片 %s: %s", path, exc)
        return "Unsupported or corrupted image"
