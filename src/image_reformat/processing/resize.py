"""缩放尺寸计算模块。

所有模式都遵循“只缩小、不放大”：计算出的目标尺寸在决定性的边上不小于
当前尺寸时，直接跳过缩放。
"""

from __future__ import annotations

import logging
import math
from typing import Optional

from PIL import Image

from image_reformat.core.config import (
    DrivingDimension,
    PercentResize,
    PixelResize,
    ResizeSpec,
    TargetSizeResize,
)
from image_reformat.core.exceptions import InvalidConfigurationError

LOGGER = logging.getLogger(__name__)

Size = tuple[int, int]


def compute_resize_target(width: int, height: int, spec: ResizeSpec) -> Optional[Size]:
    """根据缩放设置计算目标尺寸；无需缩放时返回 None。

    ``TargetSizeResize`` 需要反复编码搜索，这里同样返回 None，由流水线单独处理。
    """

    if isinstance(spec, PercentResize):
        return _percent_target(width, height, spec)
    if isinstance(spec, PixelResize):
        return _pixel_target(width, height, spec)
    if isinstance(spec, TargetSizeResize):
        return None
    raise InvalidConfigurationError(f"未知的缩放设置: {spec!r}")


def fit_inside(width: int, height: int, box_width: Optional[int], box_height: Optional[int]) -> Size:
    """等比缩放到框内，不放大。"""

    ratio = min(
        box_width / width if box_width else math.inf,
        box_height / height if box_height else math.inf,
        1.0,
    )
    return max(1, round(width * ratio)), max(1, round(height * ratio))


def resize_image(image: Image.Image, size: Size) -> Image.Image:
    if image.size == size:
        return image
    LOGGER.debug("缩放 %dx%d -> %dx%d", image.width, image.height, *size)
    return image.resize(size, Image.LANCZOS)


def _percent_target(width: int, height: int, spec: PercentResize) -> Optional[Size]:
    scale = spec.percent / 100
    if scale >= 1:
        return None
    return max(1, round(width * scale)), max(1, round(height * scale))


def _pixel_target(width: int, height: int, spec: PixelResize) -> Optional[Size]:
    if not spec.keep_ratio:
        target_w = min(spec.width, width) if spec.width else width
        target_h = min(spec.height, height) if spec.height else height
        if (target_w, target_h) == (width, height):
            return None
        return target_w, target_h

    box_w: Optional[int] = None
    box_h: Optional[int] = None
    if spec.driving == DrivingDimension.WIDTH:
        box_w = spec.width
    elif spec.driving == DrivingDimension.HEIGHT:
        box_h = spec.height
    elif spec.driving == DrivingDimension.MAX_SIDE:
        if width >= height:
            box_w = spec.max_side
        else:
            box_h = spec.max_side
    else:
        raise InvalidConfigurationError(f"未知的决定边: {spec.driving}")

    should_resize = (box_w is not None and box_w < width) or (box_h is not None and box_h < height)
    if not should_resize:
        return None
    return fit_inside(width, height, box_w, box_h)
