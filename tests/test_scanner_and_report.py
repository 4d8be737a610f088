"""测试文件扫描与报告输出。"""

from __future__ import annotations

import csv
from pathlib import Path

from PIL import Image

from image_reformat.core.models import ItemOrigin, ItemResult, ItemStatus
from image_reformat.core.report import write_csv_report
from image_reformat.core.scanner import collect_items


def test_collect_items_filters_and_reads_metadata(tmp_path: Path) -> None:
    source = tmp_path / "input"
    nested = source / "nested"
    nested.mkdir(parents=True)

    Image.new("RGBA", (30, 20), (0, 0, 0, 0)).save(source / "alpha.png")
    Image.new("RGB", (40, 10), "red").save(nested / "deep.jpg")
    (source / "corrupted.png").write_text("not an image")
    (source / "notes.txt").write_text("hello")

    frames = [Image.new("RGB", (8, 8), color) for color in ("red", "green", "blue")]
    frames[0].save(source / "anim.gif", save_all=True, append_images=frames[1:])

    result = collect_items([source, source / "alpha.png"], recursive=True)

    names = [item.original_name for item in result.items]
    assert names == ["alpha.png", "deep.jpg"]
    alpha = result.items[0]
    assert alpha.origin == ItemOrigin.FILE
    assert (alpha.width, alpha.height) == (30, 20)
    assert alpha.has_alpha
    assert alpha.format == "PNG"
    assert len({item.id for item in result.items}) == 2

    reasons = {skipped.path.name: skipped.reason for skipped in result.skipped}
    assert reasons["anim.gif"] == "Animated images are not supported"
    assert reasons["corrupted.png"] == "Unsupported or corrupted image"
    assert "notes.txt" not in reasons


def test_collect_items_without_recursion(tmp_path: Path) -> None:
    source = tmp_path / "input"
    (source / "nested").mkdir(parents=True)
    Image.new("RGB", (10, 10)).save(source / "top.png")
    Image.new("RGB", (10, 10)).save(source / "nested" / "deep.png")

    result = collect_items([source, tmp_path / "missing"], recursive=False)

    assert [item.original_name for item in result.items] == ["top.png"]
    assert [skipped.reason for skipped in result.skipped] == ["File not found"]


def test_write_csv_report(tmp_path: Path) -> None:
    results = [
        ItemResult(
            item_id="a",
            status=ItemStatus.SUCCEEDED,
            source_path=Path("/in/a.png"),
            output_path=Path("/out/a_reformat.png"),
            output_bytes=123,
            width=10,
            height=5,
            warnings=["w1", "w2"],
        ),
        ItemResult(item_id="b", status=ItemStatus.FAILED, error="boom"),
    ]

    report = write_csv_report(results, tmp_path / "reports" / "run.csv")

    assert report == tmp_path / "reports" / "run.csv"
    with report.open(newline="", encoding="utf-8") as handle:
        rows = list(csv.DictReader(handle))
    assert rows[0]["status"] == "succeeded"
    assert rows[0]["warnings"] == "w1; w2"
    assert rows[0]["output_bytes"] == "123"
    assert rows[1]["error"] == "boom"
    assert rows[1]["output_path"] == ""


def test_report_write_failure_is_not_raised(tmp_path: Path) -> None:
    blocker = tmp_path / "file"
    blocker.write_text("x")

    assert write_csv_report([], blocker / "run.csv") is None
