"""单次导出任务的配置模型。

所有配置对象均为不可变 dataclass；``RunConfig`` 在构造时复制逐项设置，
导出过程中调用方对原字典的修改不会影响正在执行的批次。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional, Union

from image_reformat.core.exceptions import InvalidConfigurationError

QUALITY_MIN = 40
QUALITY_MAX = 100
DEFAULT_QUALITY = 85


class OutputFormat(str, Enum):
    """输出格式。``SAME`` 表示沿用源文件格式。"""

    SAME = "same"
    JPG = "jpg"
    PNG = "png"
    WEBP = "webp"
    TIFF = "tiff"
    HEIC = "heic"
    BMP = "bmp"


class DrivingDimension(str, Enum):
    """保持比例缩放时决定尺寸的边。"""

    WIDTH = "width"
    HEIGHT = "height"
    MAX_SIDE = "maxSide"


@dataclass(frozen=True, slots=True)
class Transform:
    """旋转 / 翻转变换，rotate_steps 以顺时针 90° 为单位。"""

    rotate_steps: int = 0
    flip_h: bool = False
    flip_v: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "rotate_steps", self.rotate_steps % 4)

    @property
    def is_identity(self) -> bool:
        return self.rotate_steps == 0 and not self.flip_h and not self.flip_v

    def rotated_cw(self) -> "Transform":
        return Transform(self.rotate_steps + 1, self.flip_h, self.flip_v)

    def rotated_ccw(self) -> "Transform":
        return Transform(self.rotate_steps + 3, self.flip_h, self.flip_v)

    def flipped_h(self) -> "Transform":
        return Transform(self.rotate_steps, not self.flip_h, self.flip_v)

    def flipped_v(self) -> "Transform":
        return Transform(self.rotate_steps, self.flip_h, not self.flip_v)

    def combine(self, second: "Transform") -> "Transform":
        """返回先执行 self、再执行 second 的等效变换。

        second 的旋转会让已有翻转轴互换（奇数步）；180° 时水平与垂直翻转
        同时取反，与交换前的结果一致，因此只需处理奇数步。
        """

        flip_h, flip_v = self.flip_h, self.flip_v
        if second.rotate_steps % 2 == 1:
            flip_h, flip_v = flip_v, flip_h
        return Transform(
            self.rotate_steps + second.rotate_steps,
            flip_h != second.flip_h,
            flip_v != second.flip_v,
        )


IDENTITY_TRANSFORM = Transform()


@dataclass(frozen=True, slots=True)
class CropRect:
    """归一化裁剪矩形，坐标相对于变换后的（用户可见的）图像。"""

    x: float = 0.0
    y: float = 0.0
    width: float = 1.0
    height: float = 1.0


FULL_CROP_RECT = CropRect()


@dataclass(frozen=True, slots=True)
class Crop:
    """裁剪设置。active=False 或矩形覆盖整图时视为不裁剪。"""

    active: bool = False
    rect: CropRect = FULL_CROP_RECT
    ratio_preset: str = "original"


NO_CROP = Crop()


@dataclass(frozen=True, slots=True)
class PercentResize:
    """按百分比缩放（50 表示缩小一半）。"""

    percent: float

    def validate(self) -> None:
        if self.percent <= 0:
            raise InvalidConfigurationError("percent 必须大于 0")


@dataclass(frozen=True, slots=True)
class PixelResize:
    """按像素缩放；所有目标字段为空时表示保持原尺寸。"""

    keep_ratio: bool = True
    driving: DrivingDimension = DrivingDimension.MAX_SIDE
    width: Optional[int] = None
    height: Optional[int] = None
    max_side: Optional[int] = None

    def validate(self) -> None:
        for name in ("width", "height", "max_side"):
            value = getattr(self, name)
            if value is not None and value <= 0:
                raise InvalidConfigurationError(f"{name} 必须大于 0")


@dataclass(frozen=True, slots=True)
class TargetSizeResize:
    """按目标文件大小（MiB）搜索缩放比例。"""

    megabytes: float

    def validate(self) -> None:
        if self.megabytes <= 0:
            raise InvalidConfigurationError("目标大小必须大于 0 MiB")


ResizeSpec = Union[PercentResize, PixelResize, TargetSizeResize]

KEEP_ORIGINAL_SIZE = PixelResize()


@dataclass(frozen=True, slots=True)
class QualitySpec:
    """各有损格式的编码质量（40-100）。"""

    jpg: int = DEFAULT_QUALITY
    webp: int = DEFAULT_QUALITY
    heic: int = DEFAULT_QUALITY

    def validate(self) -> None:
        for name in ("jpg", "webp", "heic"):
            value = getattr(self, name)
            if not QUALITY_MIN <= value <= QUALITY_MAX:
                raise InvalidConfigurationError(
                    f"{name} 质量必须在 {QUALITY_MIN}-{QUALITY_MAX} 之间: {value}"
                )


@dataclass(frozen=True, slots=True)
class ItemSettings:
    """单张图片的变换与裁剪设置。"""

    transform: Transform = IDENTITY_TRANSFORM
    crop: Crop = NO_CROP


DEFAULT_ITEM_SETTINGS = ItemSettings()


@dataclass(frozen=True, slots=True)
class RunConfig:
    """一次导出的锁定配置。"""

    output_format: OutputFormat = OutputFormat.SAME
    resize: ResizeSpec = KEEP_ORIGINAL_SIZE
    quality: QualitySpec = field(default_factory=QualitySpec)
    items: Mapping[str, ItemSettings] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "output_format", OutputFormat(self.output_format))
        # 复制一份只读映射，调用方之后修改原字典不会影响本次运行。
        object.__setattr__(self, "items", MappingProxyType(dict(self.items)))
        self.validate()

    def validate(self) -> None:
        if not isinstance(self.resize, (PercentResize, PixelResize, TargetSizeResize)):
            raise InvalidConfigurationError(f"未知的缩放设置: {self.resize!r}")
        self.resize.validate()
        self.quality.validate()

    def settings_for(self, item_id: str) -> ItemSettings:
        """返回指定图片的设置，未配置时返回恒等变换且不裁剪。"""

        return self.items.get(item_id, DEFAULT_ITEM_SETTINGS)
