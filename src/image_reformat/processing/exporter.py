"""批量导出的调度入口。

流程：确定输出目录 -> 顺序预分配不冲突的输出路径 -> 为每张图片构建任务 ->
交给调度器并发执行 -> 把调度结果投影为 ``ItemResult`` 并汇总。
"""

from __future__ import annotations

import itertools
import logging
import uuid
from datetime import date
from functools import partial
from pathlib import Path
from typing import Callable, Optional, Sequence

from image_reformat.core.cancellation import CancellationToken
from image_reformat.core.config import OutputFormat, RunConfig
from image_reformat.core.exceptions import OutputFolderError
from image_reformat.core.models import Item, ItemResult, ItemStatus, RunSummary
from image_reformat.core.naming import CLIPBOARD_BASENAME, OutputNamer
from image_reformat.core.paths import resolve_output_folder
from image_reformat.core.progress import ProgressCallback, ProgressUpdate
from image_reformat.core.scheduler import DEFAULT_CONCURRENCY, TaskResult, TaskStatus, run_tasks
from image_reformat.processing.encoder import FORMAT_SPECS, TRANSPARENCY_SWITCH_WARNING, resolve_output_format
from image_reformat.processing.worker import BufferProvider, ExportTask, run_export_task

LOGGER = logging.getLogger(__name__)

RunIdFactory = Callable[[], str]


def default_run_id() -> str:
    return uuid.uuid4().hex


def sequential_run_ids(prefix: str = "run") -> RunIdFactory:
    """返回单调递增的运行 ID 生成器：``run-1``、``run-2`` ……"""

    counter = itertools.count(1)
    return lambda: f"{prefix}-{next(counter)}"


def export_batch(
    items: Sequence[Item],
    config: RunConfig,
    *,
    output_root: Path,
    destination_override: Optional[Path] = None,
    buffer_provider: Optional[BufferProvider] = None,
    cancellation_token: Optional[CancellationToken] = None,
    progress_callback: ProgressCallback = None,
    concurrency: int = DEFAULT_CONCURRENCY,
    run_id_factory: Optional[RunIdFactory] = None,
    today: Optional[date] = None,
) -> RunSummary:
    """导出一批图片并返回汇总结果。

    输出目录无法创建或无法分配文件名时直接抛出异常，此时不会启动任何任务；
    单张图片的失败与取消记录在对应的 ``ItemResult`` 中。
    """

    items = list(items)
    run_id = (run_id_factory or default_run_id)()
    output_folder = resolve_output_folder(items, output_root, destination_override, today)
    LOGGER.info("导出批次 %s：%d 张图片 -> %s", run_id, len(items), output_folder)

    try:
        output_folder.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise OutputFolderError(f"无法创建输出目录: {output_folder}") from exc

    tasks = _plan_tasks(items, config, output_folder)
    token = cancellation_token or CancellationToken()

    def should_abort() -> bool:
        return token.is_cancelled

    # 任务内的失败以返回值形式出现，调度器会记为成功；按图片状态重新计数。
    counts = {status: 0 for status in ItemStatus}

    def on_progress(update: ProgressUpdate) -> None:
        if progress_callback is None:
            return
        latest = update.latest
        if isinstance(latest, TaskResult):
            latest = _project(tasks[latest.index], latest)
            counts[latest.status] += 1
        progress_callback(
            ProgressUpdate(
                total=update.total,
                completed=update.completed,
                succeeded=counts[ItemStatus.SUCCEEDED],
                failed=counts[ItemStatus.FAILED],
                canceled=counts[ItemStatus.CANCELED],
                latest=latest,
                run_id=run_id,
                message=update.message,
            )
        )

    task_results = run_tasks(
        [partial(run_export_task, task, buffer_provider, should_abort) for task in tasks],
        concurrency=concurrency,
        cancellation_token=token,
        progress_callback=on_progress,
    )

    results = [_project(tasks[result.index], result) for result in task_results]
    auto_switched = sum(1 for result in results if TRANSPARENCY_SWITCH_WARNING in result.warnings)
    summary = RunSummary.from_results(run_id, output_folder, results, auto_switched=auto_switched)

    LOGGER.info(
        "导出批次 %s 完成：成功 %d，失败 %d，取消 %d",
        run_id,
        summary.succeeded,
        summary.failed,
        summary.canceled,
    )
    return summary


def _plan_tasks(items: Sequence[Item], config: RunConfig, output_folder: Path) -> list[ExportTask]:
    """顺序为每张图片确定输出格式与路径，必须在并发开始前完成。"""

    namer = OutputNamer(output_folder)
    tasks: list[ExportTask] = []
    for item in items:
        decision = resolve_output_format(config.output_format, item.format, item.has_alpha)
        base_name = item.original_name if item.is_file else CLIPBOARD_BASENAME
        destination = namer.reserve(base_name, decision.extension)
        # 导入时可能漏判透明通道；为不支持透明的格式同时预留 PNG 路径。
        alpha_destination = None
        if not FORMAT_SPECS[decision.format].supports_alpha:
            alpha_destination = namer.reserve(base_name, FORMAT_SPECS[OutputFormat.PNG].extension)
        tasks.append(
            ExportTask(
                item=item,
                destination=destination,
                settings=config.settings_for(item.id),
                config=config,
                output_format=decision.format,
                warnings=list(decision.warnings),
                alpha_destination=alpha_destination,
            )
        )
    return tasks


def _project(task: ExportTask, result: TaskResult) -> ItemResult:
    """把调度器的任务结果转换为图片结果。"""

    if result.status == TaskStatus.SUCCEEDED and isinstance(result.value, ItemResult):
        return result.value

    item = task.item
    if result.status == TaskStatus.CANCELED:
        return ItemResult(
            item_id=item.id,
            status=ItemStatus.CANCELED,
            source_path=item.source_path,
            warnings=list(task.warnings),
        )

    return ItemResult(
        item_id=item.id,
        status=ItemStatus.FAILED,
        source_path=item.source_path,
        warnings=list(task.warnings),
        error=str(result.error) if result.error is not None else "Unknown error",
    )
