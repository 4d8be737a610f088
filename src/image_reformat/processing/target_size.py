"""目标文件大小（MiB）搜索算法。

对缩放比例做二分搜索，反复调用编码大小估算函数，直到结果落在目标 ±10%
以内，或宽高已缩到最小 48 像素。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

LOGGER = logging.getLogger(__name__)

BYTES_PER_MIB = 1_048_576
MIN_DIMENSION = 48
SIZE_TOLERANCE = 0.10
MIN_SCALE = 0.01
MAX_ITERATIONS = 20
SCALE_EPSILON = 0.001

EncodeSizeFunction = Callable[[int, int, int], int]


@dataclass(slots=True)
class TargetSizeResult:
    """目标大小搜索结果。"""

    success: bool
    width: int
    height: int
    bytes: int
    scale: float
    iterations: int
    warning: Optional[str] = None


def mib_to_bytes(mib: float) -> int:
    if mib < 0:
        raise ValueError("MiB 不能为负数")
    return round(mib * BYTES_PER_MIB)


def format_mib(num_bytes: int) -> str:
    return f"{num_bytes / BYTES_PER_MIB:.2f} MiB"


def is_within_tolerance(actual_bytes: int, target_bytes: int) -> bool:
    return target_bytes * (1 - SIZE_TOLERANCE) <= actual_bytes <= target_bytes * (1 + SIZE_TOLERANCE)


def is_at_min_dimension(width: int, height: int) -> bool:
    return width <= MIN_DIMENSION or height <= MIN_DIMENSION


def scaled_dimensions(source_width: int, source_height: int, scale: float) -> tuple[int, int]:
    """按比例缩放并保证每条边不小于 MIN_DIMENSION（原图更小时不放大）。"""

    return (
        max(min(MIN_DIMENSION, source_width), round(source_width * scale)),
        max(min(MIN_DIMENSION, source_height), round(source_height * scale)),
    )


def find_target_size(
    source_width: int,
    source_height: int,
    target_megabytes: float,
    quality: int,
    encode_size: EncodeSizeFunction,
) -> TargetSizeResult:
    """搜索使编码结果接近目标大小的尺寸。

    ``encode_size(width, height, quality)`` 返回以该尺寸编码后的字节数，
    调用方保证它随尺寸减小而单调不增。
    """

    if target_megabytes <= 0:
        return TargetSizeResult(
            success=False,
            width=source_width,
            height=source_height,
            bytes=0,
            scale=1.0,
            iterations=0,
            warning="Target size must be greater than 0",
        )

    target_bytes = mib_to_bytes(target_megabytes)
    upper_bound = target_bytes * (1 + SIZE_TOLERANCE)

    original_bytes = encode_size(source_width, source_height, quality)
    iterations = 1
    if is_within_tolerance(original_bytes, target_bytes):
        return TargetSizeResult(True, source_width, source_height, original_bytes, 1.0, iterations)

    if original_bytes < target_bytes * (1 - SIZE_TOLERANCE):
        return TargetSizeResult(
            True,
            source_width,
            source_height,
            original_bytes,
            1.0,
            iterations,
            warning=f"Original size ({format_mib(original_bytes)}) is already smaller than the target",
        )

    low_scale, high_scale = MIN_SCALE, 1.0
    best: Optional[TargetSizeResult] = None

    while iterations < MAX_ITERATIONS:
        scale = (low_scale + high_scale) / 2
        width, height = scaled_dimensions(source_width, source_height, scale)
        num_bytes = encode_size(width, height, quality)
        iterations += 1
        LOGGER.debug("目标大小搜索 #%d: scale=%.4f %dx%d -> %d 字节", iterations, scale, width, height, num_bytes)

        if num_bytes <= upper_bound and (best is None or num_bytes > best.bytes):
            best = TargetSizeResult(True, width, height, num_bytes, scale, iterations)

        if is_within_tolerance(num_bytes, target_bytes):
            return TargetSizeResult(True, width, height, num_bytes, scale, iterations)

        if is_at_min_dimension(width, height) and num_bytes > upper_bound:
            return TargetSizeResult(
                False,
                width,
                height,
                num_bytes,
                scale,
                iterations,
                warning=(
                    f"Target size unreachable, used minimum dimensions {width}x{height} "
                    f"(closest achievable: {format_mib(num_bytes)})"
                ),
            )

        if num_bytes > target_bytes:
            high_scale = scale
        else:
            low_scale = scale

        if high_scale - low_scale < SCALE_EPSILON:
            break

    if best is not None:
        best.iterations = iterations
        best.warning = f"Closest achievable: {format_mib(best.bytes)}"
        best.success = False
        return best

    return TargetSizeResult(
        False,
        source_width,
        source_height,
        original_bytes,
        1.0,
        iterations,
        warning="Could not find suitable dimensions for target size",
    )
