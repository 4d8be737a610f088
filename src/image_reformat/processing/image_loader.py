"""图片加载与 EXIF 方向校正。"""

from __future__ import annotations

import io
import logging
from pathlib import Path
from typing import Union

import pillow_heif
from PIL import Image, ImageOps, UnidentifiedImageError

from image_reformat.core.exceptions import ImageReformatError

LOGGER = logging.getLogger(__name__)

pillow_heif.register_heif_opener()

ImageSource = Union[Path, bytes]

ALPHA_MODES = {"RGBA", "LA", "PA", "RGBa", "La"}


class ImageLoadingError(ImageReformatError):
    """图片加载失败。"""


def load_image(source: ImageSource) -> Image.Image:
    """加载单张图片（路径或内存字节）并执行 EXIF 旋转校正。

    返回值为新的 Image 对象，调用者负责关闭；源格式记录在
    ``info["source_format"]`` 中。
    """

    if isinstance(source, (bytes, bytearray)):
        label = f"<{len(source)} bytes>"
        handle = io.BytesIO(source)
    else:
        label = str(source)
        handle = Path(source)

    try:
        with Image.open(handle) as img:
            img.load()
            source_format = img.format

            # EXIF Orientation 校正
            oriented = ImageOps.exif_transpose(img)
            if oriented is img:
                oriented = img.copy()
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        LOGGER.debug("无法识别图像 %s: %s", label, exc)
        raise ImageLoadingError(f"无法加载图像: {label}") from exc

    oriented.info["source_format"] = source_format
    return oriented


def has_alpha(image: Image.Image) -> bool:
    """判断图像是否带透明通道（含调色板透明色）。"""

    return image.mode in ALPHA_MODES or "transparency" in image.info
