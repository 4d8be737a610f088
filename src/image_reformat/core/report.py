"""报告生成工具。"""

from __future__ import annotations

import csv
import logging
from pathlib import Path
from typing import Iterable, Optional

from image_reformat.core.models import ItemResult

LOGGER = logging.getLogger(__name__)

HEADER = ["item_id", "source_path", "output_path", "status", "width", "height", "output_bytes", "warnings", "error"]


def write_csv_report(results: Iterable[ItemResult], report_path: Path) -> Optional[Path]:
    """将导出结果写入 CSV 报告；写入失败时记录日志并返回 None。"""

    report_path = Path(report_path)
    try:
        report_path.parent.mkdir(parents=True, exist_ok=True)
        with report_path.open("w", newline="", encoding="utf-8") as handle:
            writer = csv.writer(handle)
            writer.writerow(HEADER)
            for record in results:
                writer.writerow(
                    [
                        record.item_id,
                        _format_path(record.source_path),
                        _format_path(record.output_path),
                        record.status.value,
                        _format_int(record.width),
                        _format_int(record.height),
                        _format_int(record.output_bytes),
                        "; ".join(record.warnings),
                        record.error or "",
                    ]
                )
    except OSError as exc:
        LOGGER.warning("写入报告失败 %s：%s", report_path, exc)
        return None
    return report_path


def _format_path(value: Optional[Path]) -> str:
    if value is None:
        return ""
    return str(value)


def _format_int(value: Optional[int]) -> str:
    if value is None:
        return ""
    return str(value)
