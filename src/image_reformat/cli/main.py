"""命令行入口。"""

from __future__ import annotations

import logging
import signal
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
    TimeRemainingColumn,
)

from image_reformat.core.cancellation import CancellationToken
from image_reformat.core.config import (
    KEEP_ORIGINAL_SIZE,
    Crop,
    CropRect,
    DrivingDimension,
    ItemSettings,
    OutputFormat,
    PercentResize,
    PixelResize,
    QualitySpec,
    ResizeSpec,
    RunConfig,
    TargetSizeResize,
    Transform,
)
from image_reformat.core.exceptions import ImageReformatError
from image_reformat.core.models import Item, ItemStatus, RunSummary
from image_reformat.core.paths import default_output_root
from image_reformat.core.progress import ProgressUpdate
from image_reformat.core.report import write_csv_report
from image_reformat.core.scanner import collect_items
from image_reformat.processing.exporter import export_batch
from image_reformat.processing.geometry import (
    RATIO_PRESETS,
    centered_crop_rect,
    effective_dimensions,
    ratio_for_preset,
)
from image_reformat.utils.logging import setup_logging

app = typer.Typer(help="批量图片格式转换、缩放与裁剪工具。")
console = Console()


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="输出调试日志")) -> None:
    setup_logging(logging.DEBUG if verbose else logging.WARNING)


def _parse_crop(value: str) -> CropRect:
    parts = value.split(",")
    if len(parts) != 4:
        raise typer.BadParameter("裁剪区域必须形如 X,Y,W,H（0~1 的归一化坐标）")
    try:
        x, y, w, h = (float(part) for part in parts)
    except ValueError as exc:
        raise typer.BadParameter("裁剪区域必须为数字") from exc
    if w <= 0 or h <= 0 or min(x, y) < 0 or x + w > 1 or y + h > 1:
        raise typer.BadParameter("裁剪区域必须位于 0~1 范围内且宽高大于 0")
    return CropRect(x, y, w, h)


def _build_resize(
    percent: Optional[float],
    width: Optional[int],
    height: Optional[int],
    max_side: Optional[int],
    target_mib: Optional[float],
    exact: bool,
) -> ResizeSpec:
    pixel_given = any(value is not None for value in (width, height, max_side))
    modes = sum((percent is not None, target_mib is not None, pixel_given))
    if modes > 1:
        raise typer.BadParameter("--percent、--target-mib 与像素尺寸选项只能选择一种")

    if percent is not None:
        return PercentResize(percent)
    if target_mib is not None:
        return TargetSizeResize(target_mib)
    if not pixel_given:
        if exact:
            raise typer.BadParameter("--exact 需要同时指定 --width 或 --height")
        return KEEP_ORIGINAL_SIZE

    if exact:
        if max_side is not None or (width is None and height is None):
            raise typer.BadParameter("--exact 只能与 --width/--height 一起使用")
        return PixelResize(keep_ratio=False, width=width, height=height)

    if sum(value is not None for value in (width, height, max_side)) > 1:
        raise typer.BadParameter("保持比例时只能指定 --width、--height、--max-side 之一")
    if width is not None:
        return PixelResize(driving=DrivingDimension.WIDTH, width=width)
    if height is not None:
        return PixelResize(driving=DrivingDimension.HEIGHT, height=height)
    return PixelResize(driving=DrivingDimension.MAX_SIDE, max_side=max_side)


def _build_item_settings(
    items: List[Item],
    transform: Transform,
    crop_rect: Optional[CropRect],
    crop_ratio: Optional[str],
) -> dict[str, ItemSettings]:
    settings: dict[str, ItemSettings] = {}
    for item in items:
        crop = Crop()
        if crop_rect is not None:
            crop = Crop(active=True, rect=crop_rect, ratio_preset="free")
        elif crop_ratio is not None:
            view_w, view_h = effective_dimensions(item.width, item.height, transform)
            ratio = ratio_for_preset(crop_ratio, view_w, view_h)
            crop = Crop(active=True, rect=centered_crop_rect(ratio, view_w, view_h), ratio_preset=crop_ratio)
        settings[item.id] = ItemSettings(transform=transform, crop=crop)
    return settings


def _build_progress_callback(progress: Progress):
    task_id: Optional[int] = None

    def callback(update: ProgressUpdate) -> None:
        nonlocal task_id
        if update.total == 0:
            return
        if task_id is None:
            task_id = progress.add_task("导出图片", total=update.total)
        progress.update(task_id, completed=update.completed)
        latest = update.latest
        if latest is not None and latest.status == ItemStatus.FAILED:
            progress.log(f"[red]失败[/red] {latest.source_path or latest.item_id}: {latest.error}")

    return callback


def _print_summary(summary: RunSummary, items: List[Item]) -> None:
    names = {item.id: item.original_name for item in items}
    for result in summary.results:
        for warning in result.warnings:
            console.print(f"[yellow]提示[/yellow] {names.get(result.item_id, result.item_id)}: {warning}")

    typer.echo(
        f"导出完成：成功 {summary.succeeded} 张，失败 {summary.failed} 张，取消 {summary.canceled} 张。"
    )
    if summary.auto_switched:
        typer.echo(f"其中 {summary.auto_switched} 张为保留透明度自动改为 PNG。")
    typer.echo(f"输出目录：{summary.output_folder}")


@app.command("run")
def run_cli(  # noqa: PLR0913
    source: List[Path] = typer.Argument(..., help="源图片文件或目录，可指定多个"),
    output_format: OutputFormat = typer.Option(
        OutputFormat.SAME, "--format", "-f", case_sensitive=False, help="输出格式"
    ),
    percent: Optional[float] = typer.Option(None, "--percent", help="按百分比缩小，例如 50"),
    width: Optional[int] = typer.Option(None, "--width", help="目标宽度（像素）"),
    height: Optional[int] = typer.Option(None, "--height", help="目标高度（像素）"),
    max_side: Optional[int] = typer.Option(None, "--max-side", help="最长边（像素）"),
    target_mib: Optional[float] = typer.Option(None, "--target-mib", help="目标文件大小（MiB）"),
    exact: bool = typer.Option(False, "--exact", help="不保持比例，按 --width/--height 精确缩放"),
    quality_jpg: int = typer.Option(85, "--quality-jpg", help="JPG 质量 40~100"),
    quality_webp: int = typer.Option(85, "--quality-webp", help="WebP 质量 40~100"),
    quality_heic: int = typer.Option(85, "--quality-heic", help="HEIC 质量 40~100"),
    rotate: int = typer.Option(0, "--rotate", help="顺时针旋转 90° 的次数"),
    flip_h: bool = typer.Option(False, "--flip-h", help="水平翻转"),
    flip_v: bool = typer.Option(False, "--flip-v", help="垂直翻转"),
    crop: Optional[str] = typer.Option(None, "--crop", help="归一化裁剪区域 X,Y,W,H"),
    crop_ratio: Optional[str] = typer.Option(
        None, "--crop-ratio", help=f"居中裁剪比例：{', '.join(RATIO_PRESETS)}"
    ),
    output_root: Optional[Path] = typer.Option(None, "--output-root", help="输出根目录，默认 ~/Downloads"),
    destination: Optional[Path] = typer.Option(None, "--destination", help="直接指定输出目录"),
    max_workers: int = typer.Option(4, "--workers", "-w", min=1, help="并发线程数量"),
    allow_recursive: bool = typer.Option(True, "--recursive/--no-recursive", help="是否递归扫描目录"),
    report: Optional[Path] = typer.Option(None, "--report", help="CSV 报告输出路径"),
) -> None:
    """执行批量导出。"""

    if crop is not None and crop_ratio is not None:
        raise typer.BadParameter("--crop 与 --crop-ratio 只能选择一种")
    if crop_ratio is not None and crop_ratio not in RATIO_PRESETS:
        raise typer.BadParameter(f"未知的裁剪比例: {crop_ratio}")

    crop_rect = _parse_crop(crop) if crop is not None else None
    resize = _build_resize(percent, width, height, max_side, target_mib, exact)
    transform = Transform(rotate, flip_h, flip_v)

    scan = collect_items([p.expanduser() for p in source], recursive=allow_recursive)
    for skipped in scan.skipped:
        console.print(f"[yellow]跳过[/yellow] {skipped.path}: {skipped.reason}")
    if not scan.items:
        typer.echo("未找到可处理的图片。")
        raise typer.Exit(code=1)

    try:
        config = RunConfig(
            output_format=output_format,
            resize=resize,
            quality=QualitySpec(jpg=quality_jpg, webp=quality_webp, heic=quality_heic),
            items=_build_item_settings(scan.items, transform, crop_rect, crop_ratio),
        )
    except ImageReformatError as exc:
        raise typer.BadParameter(str(exc)) from exc

    token = CancellationToken()
    progress = Progress(
        SpinnerColumn(),
        TextColumn("[bold blue]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TimeElapsedColumn(),
        TimeRemainingColumn(),
        console=console,
    )

    previous_handler = signal.signal(signal.SIGINT, lambda *_: token.cancel())
    try:
        with progress:
            summary = export_batch(
                scan.items,
                config,
                output_root=(output_root or default_output_root()).expanduser(),
                destination_override=destination.expanduser() if destination else None,
                cancellation_token=token,
                progress_callback=_build_progress_callback(progress),
                concurrency=max_workers,
            )
    except ImageReformatError as exc:
        typer.echo(f"导出失败：{exc}", err=True)
        raise typer.Exit(code=1) from exc
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    _print_summary(summary, scan.items)
    if report is not None:
        written = write_csv_report(summary.results, report.expanduser())
        if written is not None:
            typer.echo(f"报告文件：{written}")

    if summary.failed:
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
