"""并发处理的工作单元。"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

from image_reformat.core.config import ItemSettings, OutputFormat, RunConfig
from image_reformat.core.exceptions import ProcessingAborted
from image_reformat.core.models import Item, ItemResult, ItemStatus
from image_reformat.processing.image_loader import ImageSource
from image_reformat.processing.pipeline import ProcessStatus, process_image
from image_reformat.utils.best_effort import attempt

LOGGER = logging.getLogger(__name__)

BufferProvider = Callable[[str], Optional[bytes]]


@dataclass(slots=True)
class ExportTask:
    """描述单个图片导出任务，路径与格式已在预处理阶段确定。"""

    item: Item
    destination: Path
    settings: ItemSettings
    config: RunConfig
    output_format: OutputFormat
    warnings: list[str] = field(default_factory=list)
    alpha_destination: Optional[Path] = None


def run_export_task(
    task: ExportTask,
    buffer_provider: Optional[BufferProvider] = None,
    should_abort: Optional[Callable[[], bool]] = None,
) -> ItemResult:
    """在工作线程中执行完整的导出流程。

    写入前检测到取消时抛出 ``ProcessingAborted``，由调度器记为已取消。
    """

    item = task.item
    source = _resolve_source(item, buffer_provider)
    if isinstance(source, str):
        return _failed(task, source)

    outcome = process_image(
        source,
        task.destination,
        transform=task.settings.transform,
        crop=task.settings.crop,
        resize=task.config.resize,
        output_format=task.output_format,
        quality=task.config.quality,
        source_format=item.format,
        should_abort=should_abort,
        alpha_destination=task.alpha_destination,
    )

    warnings = _merge_warnings(task.warnings, outcome.warnings)
    if outcome.status == ProcessStatus.ABORTED:
        raise ProcessingAborted(f"导出已取消: {item.original_name}")
    if outcome.status == ProcessStatus.FAILED:
        LOGGER.warning("处理失败 %s：%s", item.original_name, outcome.error)
        return _failed(task, outcome.error or "Unknown error", warnings)

    if item.is_file and item.source_path is not None and outcome.output_path is not None:
        attempt(
            _copy_timestamps,
            item.source_path,
            outcome.output_path,
            description=f"复制文件时间 {item.original_name}",
        )

    return ItemResult(
        item_id=item.id,
        status=ItemStatus.SUCCEEDED,
        source_path=item.source_path,
        output_path=outcome.output_path,
        output_bytes=outcome.output_bytes,
        width=outcome.width,
        height=outcome.height,
        warnings=warnings,
    )


def _resolve_source(item: Item, buffer_provider: Optional[BufferProvider]) -> ImageSource | str:
    """返回图片来源；找不到时返回错误信息字符串。"""

    if item.is_file:
        if item.source_path is None:
            return "Source path not found"
        return Path(item.source_path)

    data = buffer_provider(item.id) if buffer_provider is not None else None
    if not data:
        return "Clipboard buffer not found"
    return bytes(data)


def _failed(task: ExportTask, error: str, warnings: Optional[list[str]] = None) -> ItemResult:
    return ItemResult(
        item_id=task.item.id,
        status=ItemStatus.FAILED,
        source_path=task.item.source_path,
        warnings=list(task.warnings if warnings is None else warnings),
        error=error,
    )


def _merge_warnings(first: list[str], second: list[str]) -> list[str]:
    merged: list[str] = []
    for warning in (*first, *second):
        if warning not in merged:
            merged.append(warning)
    return merged


def _copy_timestamps(source: Path, destination: Path) -> None:
    stat = os.stat(source)
    os.utime(destination, (stat.st_atime, stat.st_mtime))
