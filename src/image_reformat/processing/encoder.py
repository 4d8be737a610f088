"""输出格式判定、色彩空间归一化与编码。"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from PIL import Image, ImageCms

from image_reformat.core.config import OutputFormat, QualitySpec
from image_reformat.core.exceptions import ImageReformatError
from image_reformat.processing.image_loader import has_alpha

LOGGER = logging.getLogger(__name__)

TRANSPARENCY_SWITCH_WARNING = "Auto-switched to PNG to preserve transparency"

SRGB_PROFILE = ImageCms.createProfile("sRGB")
SRGB_ICC_BYTES = ImageCms.ImageCmsProfile(SRGB_PROFILE).tobytes()


class ImageEncodeError(ImageReformatError):
    """编码失败。"""


@dataclass(frozen=True, slots=True)
class FormatSpec:
    pillow_format: str
    extensions: tuple[str, ...]
    supports_alpha: bool
    embeds_icc: bool

    @property
    def extension(self) -> str:
        return self.extensions[0]


FORMAT_SPECS: Dict[OutputFormat, FormatSpec] = {
    OutputFormat.JPG: FormatSpec("JPEG", (".jpg", ".jpeg"), supports_alpha=False, embeds_icc=True),
    OutputFormat.PNG: FormatSpec("PNG", (".png",), supports_alpha=True, embeds_icc=True),
    OutputFormat.WEBP: FormatSpec("WEBP", (".webp",), supports_alpha=True, embeds_icc=True),
    OutputFormat.TIFF: FormatSpec("TIFF", (".tiff", ".tif"), supports_alpha=True, embeds_icc=True),
    OutputFormat.HEIC: FormatSpec("HEIF", (".heic", ".heif"), supports_alpha=True, embeds_icc=False),
    OutputFormat.BMP: FormatSpec("BMP", (".bmp",), supports_alpha=False, embeds_icc=False),
}

# Pillow 识别出的源格式 -> 输出格式；GIF/BMP 在“保持原格式”时转为 PNG。
_SOURCE_FORMATS = {
    "JPEG": OutputFormat.JPG,
    "JPG": OutputFormat.JPG,
    "MPO": OutputFormat.JPG,
    "PNG": OutputFormat.PNG,
    "WEBP": OutputFormat.WEBP,
    "TIFF": OutputFormat.TIFF,
    "TIF": OutputFormat.TIFF,
    "HEIF": OutputFormat.HEIC,
    "HEIC": OutputFormat.HEIC,
}
_CONVERTED_SOURCE_FORMATS = {"GIF", "BMP"}


@dataclass(slots=True)
class FormatDecision:
    """某张图片实际使用的输出格式及相关提示。"""

    format: OutputFormat
    switched_for_alpha: bool = False
    warnings: list[str] = field(default_factory=list)

    @property
    def extension(self) -> str:
        return FORMAT_SPECS[self.format].extension


def resolve_output_format(
    requested: OutputFormat,
    source_format: Optional[str],
    image_has_alpha: bool,
) -> FormatDecision:
    """确定实际输出格式。

    ``SAME`` 沿用源格式（GIF/BMP 转为 PNG 并给出提示）；不支持透明的格式
    （JPG、BMP）遇到带透明通道的图片时自动改为 PNG。
    """

    warnings: list[str] = []
    fmt = OutputFormat(requested)

    if fmt == OutputFormat.SAME:
        normalized = (source_format or "").upper()
        if normalized in _CONVERTED_SOURCE_FORMATS:
            fmt = OutputFormat.PNG
            warnings.append(f"Converted {normalized} source to PNG")
        else:
            fmt = _SOURCE_FORMATS.get(normalized, OutputFormat.PNG)

    switched = False
    if image_has_alpha and not FORMAT_SPECS[fmt].supports_alpha:
        fmt = OutputFormat.PNG
        switched = True
        warnings.append(TRANSPARENCY_SWITCH_WARNING)

    return FormatDecision(format=fmt, switched_for_alpha=switched, warnings=warnings)


def quality_for(fmt: OutputFormat, quality: QualitySpec) -> Optional[int]:
    """返回该格式使用的质量值；无质量概念的格式返回 None。"""

    if fmt == OutputFormat.JPG:
        return quality.jpg
    if fmt == OutputFormat.WEBP:
        return quality.webp
    if fmt == OutputFormat.HEIC:
        return quality.heic
    return None


def normalize_color(image: Image.Image) -> Image.Image:
    """转换到 sRGB：带 ICC 配置文件时做色彩管理，其余模式统一为 RGB/RGBA。"""

    original = image
    keep_alpha = has_alpha(image)
    icc_profile = image.info.get("icc_profile")

    if icc_profile and image.mode in {"RGB", "RGBA", "CMYK"}:
        output_mode = "RGBA" if image.mode == "RGBA" else "RGB"
        try:
            source_profile = ImageCms.ImageCmsProfile(io.BytesIO(icc_profile))
            image = ImageCms.profileToProfile(image, source_profile, SRGB_PROFILE, outputMode=output_mode)
        except (ImageCms.PyCMSError, OSError) as exc:
            LOGGER.debug("ICC 转换失败，改用直接转换：%s", exc)

    target_mode = "RGBA" if keep_alpha else "RGB"
    if image.mode != target_mode:
        image = image.convert(target_mode)
    if "icc_profile" in image.info:
        # 输入图像可能被多次编码（目标大小搜索），不能修改它。
        if image is original:
            image = image.copy()
        image.info.pop("icc_profile", None)
    return image


def encode_image(image: Image.Image, fmt: OutputFormat, quality: QualitySpec) -> bytes:
    """按格式与质量把图像编码为字节串。"""

    spec = FORMAT_SPECS[fmt]
    save_params: Dict[str, Any] = {}
    image_to_save = image

    if fmt == OutputFormat.JPG:
        save_params.update(quality=quality.jpg, optimize=True)
    elif fmt == OutputFormat.PNG:
        save_params.update(optimize=True, compress_level=9)
    elif fmt == OutputFormat.WEBP:
        save_params.update(quality=quality.webp, method=4)
    elif fmt == OutputFormat.TIFF:
        save_params.update(compression="tiff_lzw")
    elif fmt == OutputFormat.HEIC:
        save_params.update(quality=quality.heic)

    if not spec.supports_alpha and image_to_save.mode != "RGB":
        image_to_save = image_to_save.convert("RGB")
    if spec.embeds_icc:
        save_params["icc_profile"] = SRGB_ICC_BYTES

    buffer = io.BytesIO()
    try:
        image_to_save.save(buffer, format=spec.pillow_format, **save_params)
    except (OSError, ValueError, KeyError) as exc:
        raise ImageEncodeError(f"编码 {spec.pillow_format} 失败: {exc}") from exc
    return buffer.getvalue()
