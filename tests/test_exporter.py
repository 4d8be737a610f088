"""批量导出流程测试。"""

from __future__ import annotations

import io
import os
import threading
from datetime import date
from pathlib import Path

import pytest
from PIL import Image

from image_reformat.core.cancellation import CancellationToken
from image_reformat.core.config import (
    Crop,
    CropRect,
    ItemSettings,
    OutputFormat,
    PixelResize,
    RunConfig,
    Transform,
)
from image_reformat.core.exceptions import OutputFolderError
from image_reformat.core.models import Item, ItemOrigin, ItemStatus
from image_reformat.core.progress import ProgressUpdate
from image_reformat.core.scanner import read_item
from image_reformat.processing import worker
from image_reformat.processing.encoder import TRANSPARENCY_SWITCH_WARNING
from image_reformat.processing.exporter import export_batch, sequential_run_ids

TODAY = date(2024, 5, 1)


def make_file_item(path: Path, size=(64, 48), color="red", mode="RGB") -> Item:
    Image.new(mode, size, color).save(path)
    item = read_item(path)
    assert isinstance(item, Item)
    return item


def png_bytes(size=(20, 10)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, "blue").save(buffer, format="PNG")
    return buffer.getvalue()


def clipboard_item(item_id: str, size=(20, 10)) -> Item:
    return Item(
        id=item_id,
        origin=ItemOrigin.CLIPBOARD,
        original_name="clipboard",
        width=size[0],
        height=size[1],
        format="PNG",
    )


def test_export_batch_end_to_end(tmp_path: Path) -> None:
    source = tmp_path / "Holiday"
    source.mkdir()
    first = make_file_item(source / "a.png", size=(200, 100))
    second = make_file_item(source / "b.jpg", size=(100, 200), color="white")
    output_root = tmp_path / "downloads"

    config = RunConfig(
        output_format=OutputFormat.JPG,
        resize=PixelResize(max_side=100),
        items={first.id: ItemSettings(transform=Transform(rotate_steps=1))},
    )
    updates: list[ProgressUpdate] = []

    summary = export_batch(
        [first, second],
        config,
        output_root=output_root,
        progress_callback=updates.append,
        run_id_factory=sequential_run_ids("batch"),
        today=TODAY,
    )

    assert summary.run_id == "batch-1"
    assert summary.output_folder == output_root / "Holiday_reformat"
    assert (summary.total, summary.succeeded, summary.failed, summary.canceled) == (2, 2, 0, 0)
    assert [r.item_id for r in summary.results] == [first.id, second.id]

    first_result, second_result = summary.results
    assert first_result.output_path == output_root / "Holiday_reformat" / "a_reformat.jpg"
    assert (first_result.width, first_result.height) == (50, 100)
    assert second_result.output_path.name == "b_reformat.jpg"
    assert (second_result.width, second_result.height) == (50, 100)

    assert [u.completed for u in updates] == [1, 2]
    assert all(u.run_id == "batch-1" for u in updates)
    assert {u.latest.item_id for u in updates} == {first.id, second.id}


def test_clipboard_items_use_date_folder_and_unique_names(tmp_path: Path) -> None:
    items = [clipboard_item("c1"), clipboard_item("c2"), clipboard_item("missing")]
    buffers = {"c1": png_bytes(), "c2": png_bytes()}

    summary = export_batch(
        items,
        RunConfig(),
        output_root=tmp_path,
        buffer_provider=buffers.get,
        today=TODAY,
    )

    folder = tmp_path / "Reformat_2024-05-01"
    assert summary.output_folder == folder
    assert [r.status for r in summary.results] == [ItemStatus.SUCCEEDED, ItemStatus.SUCCEEDED, ItemStatus.FAILED]
    assert summary.results[0].output_path == folder / "clipboard_reformat.png"
    assert summary.results[1].output_path == folder / "clipboard_reformat-1.png"
    assert summary.results[2].error == "Clipboard buffer not found"


def test_missing_source_path_is_a_failed_item(tmp_path: Path) -> None:
    item = Item(id="x", origin=ItemOrigin.FILE, original_name="x.png", width=1, height=1)

    summary = export_batch([item], RunConfig(), output_root=tmp_path, today=TODAY)

    assert summary.failed == 1
    assert summary.results[0].error == "Source path not found"


def test_destination_override_and_existing_files(tmp_path: Path) -> None:
    source = make_file_item(tmp_path / "photo.png")
    destination = tmp_path / "previous_run"
    destination.mkdir()
    (destination / "photo_reformat.png").write_bytes(b"keep me")

    summary = export_batch([source], RunConfig(), output_root=tmp_path / "root", destination_override=destination)

    assert summary.output_folder == destination
    assert summary.results[0].output_path == destination / "photo_reformat-1.png"
    assert (destination / "photo_reformat.png").read_bytes() == b"keep me"


def test_transparency_switch_is_counted(tmp_path: Path) -> None:
    item = make_file_item(tmp_path / "logo.png", color=(0, 0, 0, 0), mode="RGBA")

    summary = export_batch([item], RunConfig(output_format=OutputFormat.JPG), output_root=tmp_path, today=TODAY)

    result = summary.results[0]
    assert result.output_path.suffix == ".png"
    assert TRANSPARENCY_SWITCH_WARNING in result.warnings
    assert summary.auto_switched == 1


def test_source_timestamps_are_copied(tmp_path: Path) -> None:
    item = make_file_item(tmp_path / "old.png")
    os.utime(item.source_path, (1_600_000_000, 1_600_000_000))

    summary = export_batch([item], RunConfig(), output_root=tmp_path, today=TODAY)

    output = summary.results[0].output_path
    assert int(output.stat().st_mtime) == 1_600_000_000


def test_output_folder_failure_is_fatal(tmp_path: Path) -> None:
    blocker = tmp_path / "not_a_dir"
    blocker.write_text("file")
    item = make_file_item(tmp_path / "a.png")

    with pytest.raises(OutputFolderError):
        export_batch([item], RunConfig(), output_root=tmp_path, destination_override=blocker / "out")


def test_config_is_copied_on_submit() -> None:
    settings = {"a": ItemSettings(crop=Crop(active=True, rect=CropRect(0.0, 0.0, 0.5, 0.5)))}
    config = RunConfig(items=settings)

    settings["a"] = ItemSettings()
    settings["b"] = ItemSettings(transform=Transform(rotate_steps=2))

    assert config.settings_for("a").crop.active
    assert config.settings_for("b") == ItemSettings()


def test_cancel_mid_run_keeps_finished_outputs(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    source = tmp_path / "src"
    source.mkdir()
    items = [make_file_item(source / f"img{i}.png") for i in range(6)]
    token = CancellationToken()
    original = worker.process_image
    lock = threading.Lock()
    calls: list[int] = []

    def cancelling_process_image(*args, **kwargs):
        with lock:
            calls.append(1)
            if len(calls) == 2:
                token.cancel()
        return original(*args, **kwargs)

    monkeypatch.setattr(worker, "process_image", cancelling_process_image)

    summary = export_batch(
        items,
        RunConfig(),
        output_root=tmp_path,
        cancellation_token=token,
        concurrency=1,
        today=TODAY,
    )

    assert summary.total == 6
    assert summary.succeeded == 1
    assert summary.canceled == 5
    assert summary.results[0].status == ItemStatus.SUCCEEDED
    assert summary.results[0].output_path.exists()
    assert summary.results[1].status == ItemStatus.CANCELED
    assert not (summary.output_folder / "img1_reformat.png").exists()
    assert len(calls) == 2


def rgba_png_bytes(size=(16, 16)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGBA", size, (255, 0, 0, 64)).save(buffer, format="PNG")
    return buffer.getvalue()


def test_undeclared_alpha_switch_never_overwrites_existing_file(tmp_path: Path) -> None:
    folder = tmp_path / "out"
    folder.mkdir()
    (folder / "clipboard_reformat.png").write_bytes(b"keep me")
    item = clipboard_item("c1", size=(16, 16))
    buffers = {"c1": rgba_png_bytes()}

    summary = export_batch(
        [item],
        RunConfig(output_format=OutputFormat.JPG),
        output_root=tmp_path,
        destination_override=folder,
        buffer_provider=buffers.get,
    )

    result = summary.results[0]
    assert result.status == ItemStatus.SUCCEEDED
    assert TRANSPARENCY_SWITCH_WARNING in result.warnings
    assert result.output_path == folder / "clipboard_reformat-1.png"
    assert (folder / "clipboard_reformat.png").read_bytes() == b"keep me"
    with Image.open(result.output_path) as output:
        assert output.mode == "RGBA"


def test_alpha_fallback_paths_stay_distinct_within_batch(tmp_path: Path) -> None:
    items = [clipboard_item("c1", size=(16, 16)), clipboard_item("c2", size=(16, 16))]
    buffers = {"c1": rgba_png_bytes(), "c2": rgba_png_bytes()}

    summary = export_batch(
        items,
        RunConfig(output_format=OutputFormat.JPG),
        output_root=tmp_path,
        buffer_provider=buffers.get,
        today=TODAY,
    )

    paths = [result.output_path for result in summary.results]
    assert summary.succeeded == 2
    assert len(set(paths)) == 2
    assert all(path.suffix == ".png" and path.exists() for path in paths)


def test_progress_counts_follow_item_status(tmp_path: Path) -> None:
    good = make_file_item(tmp_path / "good.png")
    broken_path = tmp_path / "broken.png"
    broken_path.write_text("not an image")
    broken = Item(
        id="broken",
        origin=ItemOrigin.FILE,
        original_name="broken.png",
        width=1,
        height=1,
        source_path=broken_path,
        format="PNG",
    )
    updates: list[ProgressUpdate] = []

    summary = export_batch(
        [broken, good],
        RunConfig(),
        output_root=tmp_path,
        progress_callback=updates.append,
        concurrency=1,
        today=TODAY,
    )

    assert summary.failed == 1
    assert [(u.succeeded, u.failed, u.canceled) for u in updates] == [(0, 1, 0), (1, 1, 0)]
    assert updates[0].latest.status == ItemStatus.FAILED
    assert updates[0].latest.item_id == "broken"
