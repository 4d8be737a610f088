"""单张图片处理流水线。

固定顺序：EXIF 方向校正 -> 旋转/翻转与裁剪 -> 缩放 -> sRGB 归一化 -> 编码 -> 写入。
任何失败都以 ``ProcessResult`` 返回，不会越过流水线边界抛出。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from PIL import Image

from image_reformat.core.config import (
    KEEP_ORIGINAL_SIZE,
    Crop,
    OutputFormat,
    QualitySpec,
    ResizeSpec,
    TargetSizeResize,
    Transform,
)
from image_reformat.core.exceptions import ImageReformatError
from image_reformat.processing.encoder import (
    FORMAT_SPECS,
    encode_image,
    normalize_color,
    quality_for,
    resolve_output_format,
)
from image_reformat.processing.geometry import apply_geometry
from image_reformat.processing.image_loader import ImageSource, has_alpha, load_image
from image_reformat.processing.resize import Size, compute_resize_target, resize_image
from image_reformat.processing.target_size import find_target_size

LOGGER = logging.getLogger(__name__)


class ImageWriteError(ImageReformatError):
    """输出写入失败。"""


class ProcessStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    ABORTED = "aborted"


@dataclass(slots=True)
class ProcessResult:
    """单张图片的处理结果。"""

    status: ProcessStatus
    output_path: Optional[Path] = None
    output_bytes: Optional[int] = None
    width: Optional[int] = None
    height: Optional[int] = None
    format: Optional[OutputFormat] = None
    warnings: list[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == ProcessStatus.SUCCEEDED


def process_image(
    source: ImageSource,
    destination: Path,
    *,
    transform: Optional[Transform] = None,
    crop: Optional[Crop] = None,
    resize: ResizeSpec = KEEP_ORIGINAL_SIZE,
    output_format: OutputFormat = OutputFormat.SAME,
    quality: Optional[QualitySpec] = None,
    source_format: Optional[str] = None,
    should_abort: Optional[Callable[[], bool]] = None,
    alpha_destination: Optional[Path] = None,
) -> ProcessResult:
    """处理一张图片并写入 ``destination``。

    ``should_abort`` 在写入前被调用一次；返回 True 时不写文件，结果状态为
    ``ABORTED``。若实际格式因透明通道被切换为 PNG，改写到预先分配的
    ``alpha_destination``；未提供时才就地调整扩展名。
    """

    quality = quality or QualitySpec()
    warnings: list[str] = []
    image: Optional[Image.Image] = None
    shaped: Optional[Image.Image] = None

    try:
        image = load_image(source)
        decision = resolve_output_format(
            output_format,
            source_format or image.info.get("source_format"),
            has_alpha(image),
        )
        warnings.extend(decision.warnings)
        fmt = decision.format

        shaped = apply_geometry(image, transform, crop)

        if isinstance(resize, TargetSizeResize):
            data, size = _render_for_target_size(shaped, resize, fmt, quality, warnings)
        else:
            size = compute_resize_target(shaped.width, shaped.height, resize) or shaped.size
            data = _render(shaped, size, fmt, quality)

        if should_abort is not None and should_abort():
            LOGGER.info("写入前检测到取消：%s", destination)
            return ProcessResult(status=ProcessStatus.ABORTED, warnings=warnings)

        output_path = _matching_destination(Path(destination), fmt, alpha_destination)
        _write_bytes(output_path, data)
    except ImageReformatError as exc:
        LOGGER.debug("处理失败 %s: %s", destination, exc)
        return ProcessResult(status=ProcessStatus.FAILED, warnings=warnings, error=str(exc))
    except Exception as exc:  # noqa: BLE001
        LOGGER.exception("处理时发生未预期的错误：%s", destination)
        return ProcessResult(status=ProcessStatus.FAILED, warnings=warnings, error=str(exc))
    finally:
        _close_if_needed(image, shaped)

    return ProcessResult(
        status=ProcessStatus.SUCCEEDED,
        output_path=output_path,
        output_bytes=len(data),
        width=size[0],
        height=size[1],
        format=fmt,
        warnings=warnings,
    )


def _render(image: Image.Image, size: Size, fmt: OutputFormat, quality: QualitySpec) -> bytes:
    """缩放 -> 色彩归一化 -> 编码。"""

    resized = resize_image(image, size)
    normalized = normalize_color(resized)
    try:
        return encode_image(normalized, fmt, quality)
    finally:
        if resized is not image:
            _close_if_needed(resized)
        if normalized is not resized:
            _close_if_needed(normalized)


def _render_for_target_size(
    image: Image.Image,
    spec: TargetSizeResize,
    fmt: OutputFormat,
    quality: QualitySpec,
    warnings: list[str],
) -> tuple[bytes, Size]:
    """用真实编码结果作为大小估算，搜索满足目标大小的尺寸。"""

    last: dict[Size, bytes] = {}

    def encode_size(width: int, height: int, _quality: int) -> int:
        size = (width, height)
        data = _render(image, size, fmt, quality)
        last.clear()
        last[size] = data
        return len(data)

    result = find_target_size(
        image.width,
        image.height,
        spec.megabytes,
        quality_for(fmt, quality) or 0,
        encode_size,
    )
    if result.warning:
        warnings.append(result.warning)

    size = (result.width, result.height)
    data = last.get(size)
    if data is None:
        data = _render(image, size, fmt, quality)
    return data, size


def _matching_destination(destination: Path, fmt: OutputFormat, alternate: Optional[Path]) -> Path:
    spec = FORMAT_SPECS[fmt]
    if destination.suffix.lower() in spec.extensions:
        return destination
    if alternate is not None and alternate.suffix.lower() in spec.extensions:
        LOGGER.info("输出格式为 %s，改用预留路径：%s", spec.pillow_format, alternate.name)
        return alternate
    LOGGER.info("输出格式为 %s，调整扩展名：%s", spec.pillow_format, destination.name)
    return destination.with_suffix(spec.extension)


def _write_bytes(destination: Path, data: bytes) -> None:
    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_bytes(data)
    except OSError as exc:
        raise ImageWriteError(f"写入文件失败: {destination}") from exc


def _close_if_needed(*images: Optional[Image.Image]) -> None:
    for img in images:
        if img is not None:
            img.close()
