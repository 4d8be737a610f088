"""目标文件大小搜索算法测试（使用可控的编码大小模型）。"""

from __future__ import annotations

import pytest

from image_reformat.processing.target_size import (
    BYTES_PER_MIB,
    MAX_ITERATIONS,
    MIN_DIMENSION,
    find_target_size,
    is_within_tolerance,
    mib_to_bytes,
)


class AreaModel:
    """编码大小与像素面积成正比的模拟编码器。"""

    def __init__(self, bytes_per_pixel: float, overhead: int = 0) -> None:
        self.bytes_per_pixel = bytes_per_pixel
        self.overhead = overhead
        self.calls: list[tuple[int, int]] = []

    def __call__(self, width: int, height: int, quality: int) -> int:
        self.calls.append((width, height))
        return self.overhead + int(width * height * self.bytes_per_pixel)


def test_converges_within_tolerance() -> None:
    model = AreaModel(bytes_per_pixel=1.0)  # 4000x3000 -> 约 11.4 MiB

    result = find_target_size(4000, 3000, 2.0, 85, model)

    assert result.success
    assert result.warning is None
    assert is_within_tolerance(result.bytes, mib_to_bytes(2.0))
    assert result.width < 4000 and result.height < 3000
    assert len(model.calls) <= MAX_ITERATIONS


def test_original_within_tolerance_keeps_size() -> None:
    model = AreaModel(bytes_per_pixel=BYTES_PER_MIB / (1000 * 1000))

    result = find_target_size(1000, 1000, 1.0, 85, model)

    assert result.success
    assert (result.width, result.height) == (1000, 1000)
    assert result.scale == 1.0
    assert len(model.calls) == 1


def test_original_smaller_than_target_warns() -> None:
    model = AreaModel(bytes_per_pixel=0.1)

    result = find_target_size(500, 500, 5.0, 85, model)

    assert result.success
    assert (result.width, result.height) == (500, 500)
    assert "already smaller than the target" in (result.warning or "")


def test_unreachable_target_stops_at_min_dimension() -> None:
    model = AreaModel(bytes_per_pixel=1.0, overhead=2 * BYTES_PER_MIB)

    result = find_target_size(4000, 3000, 0.5, 85, model)

    assert not result.success
    assert min(result.width, result.height) == MIN_DIMENSION
    assert result.warning is not None
    assert result.warning.startswith("Target size unreachable, used minimum dimensions")
    assert len(model.calls) <= MAX_ITERATIONS


def test_non_positive_target_does_not_call_encoder() -> None:
    model = AreaModel(bytes_per_pixel=1.0)

    result = find_target_size(100, 100, 0, 85, model)

    assert not result.success
    assert model.calls == []
    assert result.warning == "Target size must be greater than 0"


def test_step_function_returns_closest_under_target() -> None:
    # 大小只在两个台阶之间跳变，无法落入 ±10% 区间。
    def steps(width: int, height: int, quality: int) -> int:
        return 4 * BYTES_PER_MIB if width > 1000 else BYTES_PER_MIB // 2

    result = find_target_size(4000, 3000, 2.0, 85, steps)

    assert not result.success
    assert result.bytes == BYTES_PER_MIB // 2
    assert result.warning is not None and result.warning.startswith("Closest achievable")


def test_mib_conversion() -> None:
    assert mib_to_bytes(1) == 1_048_576
    with pytest.raises(ValueError):
        mib_to_bytes(-1)
