"""核心数据模型定义。"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional


class ItemOrigin(str, Enum):
    """图片来源：磁盘文件或内存中的剪贴板截图。"""

    FILE = "file"
    CLIPBOARD = "clipboard"


class ItemStatus(str, Enum):
    """单张图片的最终状态。"""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"


@dataclass(frozen=True, slots=True)
class Item:
    """导入阶段得到的源图片信息，导出过程中只读。"""

    id: str
    origin: ItemOrigin
    original_name: str
    width: int
    height: int
    byte_size: int = 0
    source_path: Optional[Path] = None
    format: Optional[str] = None
    has_alpha: bool = False

    @property
    def is_file(self) -> bool:
        return self.origin == ItemOrigin.FILE


@dataclass(slots=True)
class ItemResult:
    """记录单张图片的导出结果（用于汇总/报告）。"""

    item_id: str
    status: ItemStatus
    source_path: Optional[Path] = None
    output_path: Optional[Path] = None
    output_bytes: Optional[int] = None
    width: Optional[int] = None
    height: Optional[int] = None
    warnings: list[str] = field(default_factory=list)
    error: Optional[str] = None


@dataclass(slots=True)
class RunSummary:
    """一次导出的汇总结果。"""

    run_id: str
    output_folder: Path
    results: list[ItemResult]
    succeeded: int = 0
    failed: int = 0
    canceled: int = 0
    auto_switched: int = 0

    @property
    def total(self) -> int:
        return len(self.results)

    @classmethod
    def from_results(
        cls,
        run_id: str,
        output_folder: Path,
        results: list[ItemResult],
        auto_switched: int = 0,
    ) -> "RunSummary":
        """单次遍历结果列表并统计各状态数量。"""

        counts = {status: 0 for status in ItemStatus}
        for result in results:
            counts[result.status] += 1
        return cls(
            run_id=run_id,
            output_folder=output_folder,
            results=results,
            succeeded=counts[ItemStatus.SUCCEEDED],
            failed=counts[ItemStatus.FAILED],
            canceled=counts[ItemStatus.CANCELED],
            auto_switched=auto_switched,
        )
