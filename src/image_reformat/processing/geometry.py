"""旋转 / 翻转 / 裁剪的几何计算。

裁剪矩形以用户看到的（已变换）视图为基准归一化；导出时需要把它映射回
未变换源图的像素坐标。变换的前向顺序是“先旋转、后翻转”，因此逆向时先撤销
翻转，再逐步逆时针旋转撤销顺时针旋转。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from PIL import Image

from image_reformat.core.config import Crop, CropRect, Transform

FULL_IMAGE_EPSILON = 0.001
MIN_NORMALIZED_SIZE = 0.01

RATIO_PRESETS = ("original", "free", "1:1", "4:5", "3:4", "9:16", "16:9", "2:3", "3:2")


@dataclass(frozen=True, slots=True)
class PixelRect:
    """像素矩形（左上角 + 宽高）。"""

    left: int
    top: int
    width: int
    height: int

    @property
    def box(self) -> tuple[int, int, int, int]:
        """Pillow ``crop`` 使用的 (left, upper, right, lower)。"""

        return self.left, self.top, self.left + self.width, self.top + self.height


def effective_dimensions(width: int, height: int, transform: Optional[Transform]) -> tuple[int, int]:
    """变换后的尺寸：仅 90° / 270° 旋转交换宽高。"""

    if transform is not None and transform.rotate_steps in (1, 3):
        return height, width
    return width, height


def clamp_crop_rect(rect: CropRect) -> CropRect:
    x = min(max(rect.x, 0.0), 1.0)
    y = min(max(rect.y, 0.0), 1.0)
    width = max(MIN_NORMALIZED_SIZE, min(1.0 - x, rect.width))
    height = max(MIN_NORMALIZED_SIZE, min(1.0 - y, rect.height))
    return CropRect(x, y, width, height)


def is_full_image(rect: CropRect) -> bool:
    return (
        abs(rect.x) < FULL_IMAGE_EPSILON
        and abs(rect.y) < FULL_IMAGE_EPSILON
        and abs(rect.width - 1.0) < FULL_IMAGE_EPSILON
        and abs(rect.height - 1.0) < FULL_IMAGE_EPSILON
    )


def is_crop_active(crop: Optional[Crop]) -> bool:
    return crop is not None and crop.active and not is_full_image(crop.rect)


def _clamp_to_source(
    left: float, top: float, width: float, height: float, source_width: int, source_height: int
) -> PixelRect:
    px_left = min(max(0, round(left)), source_width - 1)
    px_top = min(max(0, round(top)), source_height - 1)
    px_width = max(1, min(round(width), source_width - px_left))
    px_height = max(1, min(round(height), source_height - px_top))
    return PixelRect(px_left, px_top, px_width, px_height)


def normalized_to_pixel(rect: CropRect, width: int, height: int) -> PixelRect:
    """无变换时把归一化矩形换算为像素矩形。"""

    rect = clamp_crop_rect(rect)
    return _clamp_to_source(
        rect.x * width, rect.y * height, rect.width * width, rect.height * height, width, height
    )


def invert_crop(
    rect: CropRect,
    transform: Optional[Transform],
    source_width: int,
    source_height: int,
) -> PixelRect:
    """把视图坐标中的归一化裁剪矩形映射回源图像素坐标。

    1. 乘以视图尺寸得到视图像素矩形；
    2. 撤销翻转（flip_h: left = W - left - width，flip_v 同理）；
    3. 每次逆时针 90° 把空间 (W, H) 中的 (l, t, w, h) 变为空间 (H, W) 中的
       (t, W - l - w, h, w)，共执行 rotate_steps 次；
    4. 取整并限制在源图范围内。

    注意第 3 步执行 rotate_steps 次逆时针旋转，而不是 (4 - rotate_steps) % 4 次：
    撤销 k 次顺时针旋转需要 k 次逆时针旋转。两者在 rotate_steps 为 1 或 3 时
    结果不同，只有前者与“先变换、再在视图中裁剪”的像素一致。
    """

    rect = clamp_crop_rect(rect)
    if transform is None or transform.is_identity:
        return normalized_to_pixel(rect, source_width, source_height)

    eff_width, eff_height = effective_dimensions(source_width, source_height, transform)

    left = rect.x * eff_width
    top = rect.y * eff_height
    width = rect.width * eff_width
    height = rect.height * eff_height

    if transform.flip_h:
        left = eff_width - left - width
    if transform.flip_v:
        top = eff_height - top - height

    space_width, space_height = eff_width, eff_height
    for _ in range(transform.rotate_steps):
        left, top, width, height = top, space_width - left - width, height, width
        space_width, space_height = space_height, space_width

    return _clamp_to_source(left, top, width, height, source_width, source_height)


def apply_transform(image: Image.Image, transform: Optional[Transform]) -> Image.Image:
    """按“先顺时针旋转、后水平翻转、再垂直翻转”的顺序执行变换。"""

    if transform is None or transform.is_identity:
        return image

    result = image
    if transform.rotate_steps == 1:
        result = result.transpose(Image.Transpose.ROTATE_270)
    elif transform.rotate_steps == 2:
        result = result.transpose(Image.Transpose.ROTATE_180)
    elif transform.rotate_steps == 3:
        result = result.transpose(Image.Transpose.ROTATE_90)

    if transform.flip_h:
        result = result.transpose(Image.Transpose.FLIP_LEFT_RIGHT)
    if transform.flip_v:
        result = result.transpose(Image.Transpose.FLIP_TOP_BOTTOM)
    return result


def apply_geometry(
    image: Image.Image,
    transform: Optional[Transform],
    crop: Optional[Crop],
) -> Image.Image:
    """对源图执行变换与裁剪，结果等价于“先变换，再在视图中裁剪”。

    裁剪区域先映射回源图坐标并在源图上提取，再对提取结果执行变换，
    这样只需对较小的区域做旋转/翻转。
    """

    if is_crop_active(crop):
        region = invert_crop(crop.rect, transform, image.width, image.height)
        image = image.crop(region.box)
    return apply_transform(image, transform)


def ratio_for_preset(
    preset: str,
    original_width: Optional[int] = None,
    original_height: Optional[int] = None,
) -> Optional[float]:
    """返回比例预设对应的宽高比；``free`` 与未知预设返回 None。"""

    if preset == "original":
        if original_width and original_height:
            return original_width / original_height
        return None
    if preset == "free" or ":" not in preset:
        return None
    ratio_w, _, ratio_h = preset.partition(":")
    try:
        return int(ratio_w) / int(ratio_h)
    except (ValueError, ZeroDivisionError):
        return None


def centered_crop_rect(target_ratio: Optional[float], image_width: int, image_height: int) -> CropRect:
    """生成指定宽高比、尽可能大的居中裁剪矩形。"""

    if target_ratio is None or target_ratio <= 0:
        return CropRect()

    image_ratio = image_width / image_height
    if target_ratio > image_ratio:
        width, height = 1.0, image_ratio / target_ratio
    else:
        width, height = target_ratio / image_ratio, 1.0
    return CropRect((1.0 - width) / 2, (1.0 - height) / 2, width, height)
