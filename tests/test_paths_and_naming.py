"""输出目录判定与输出文件命名测试。"""

from __future__ import annotations

from datetime import date
from pathlib import Path

import pytest

from image_reformat.core.exceptions import OutputPathError
from image_reformat.core.models import Item, ItemOrigin
from image_reformat.core.naming import (
    OutputNamer,
    build_output_filename,
    sanitize_filename,
    split_filename,
)
from image_reformat.core.paths import (
    canonicalize_path,
    date_folder_name,
    parent_folder_name,
    resolve_output_folder,
    resolve_output_subfolder,
)

TODAY = date(2024, 3, 9)


def file_item(path: str, item_id: str = "a") -> Item:
    return Item(
        id=item_id,
        origin=ItemOrigin.FILE,
        original_name=path.replace("\\", "/").rsplit("/", 1)[-1],
        width=10,
        height=10,
        source_path=Path(path),
    )


def clipboard_item(item_id: str = "c") -> Item:
    return Item(id=item_id, origin=ItemOrigin.CLIPBOARD, original_name="clipboard", width=10, height=10)


def test_date_folder_name() -> None:
    assert date_folder_name(TODAY) == "Reformat_2024-03-09"


def test_clipboard_only_uses_date_folder() -> None:
    assert resolve_output_subfolder([clipboard_item(), clipboard_item("d")], TODAY) == "Reformat_2024-03-09"


def test_single_parent_uses_folder_name() -> None:
    items = [file_item("/photos/Trip/a.jpg"), file_item("/photos/trip/B.png", "b"), clipboard_item()]
    assert resolve_output_subfolder(items, TODAY) == "Trip_reformat"


def test_windows_style_paths_compare_case_insensitively() -> None:
    items = [file_item("C:\\Users\\me\\Pics\\a.jpg"), file_item("c:/users/me/pics/b.jpg", "b")]
    assert resolve_output_subfolder(items, TODAY) == "Pics_reformat"


def test_mixed_parents_fall_back_to_date_folder() -> None:
    items = [file_item("/photos/a/1.jpg"), file_item("/photos/b/2.jpg", "b")]
    assert resolve_output_subfolder(items, TODAY) == "Reformat_2024-03-09"


def test_override_is_used_verbatim(tmp_path: Path) -> None:
    override = tmp_path / "existing_run"
    items = [file_item("/photos/a/1.jpg")]
    assert resolve_output_folder(items, tmp_path, destination_override=override, today=TODAY) == override
    assert resolve_output_folder(items, tmp_path, today=TODAY) == tmp_path / "a_reformat"


def test_path_helpers() -> None:
    assert canonicalize_path("C:\\Photos\\Trip\\") == "c:/photos/trip"
    assert parent_folder_name("C:\\Photos\\Trip\\img.jpg") == "Trip"
    assert parent_folder_name("/home/me/img.jpg") == "me"


def test_split_and_sanitize() -> None:
    assert split_filename("photo.final.jpg") == ("photo.final", ".jpg")
    assert split_filename(".hidden") == (".hidden", "")
    assert sanitize_filename('a<b>:c?.png') == "a_b__c_.png"
    assert sanitize_filename("con.jpg") == "_con.jpg"
    assert sanitize_filename("name. ") == "name"
    assert sanitize_filename("") == "unnamed"


def test_build_output_filename() -> None:
    assert build_output_filename("photo.jpg") == "photo_reformat.jpg"
    assert build_output_filename("photo.jpg", ".png") == "photo_reformat.png"


def test_namer_resolves_collisions_in_batch_and_on_disk(tmp_path: Path) -> None:
    (tmp_path / "photo_reformat.jpg").write_bytes(b"existing")
    namer = OutputNamer(tmp_path)

    first = namer.reserve("photo.jpg")
    second = namer.reserve("photo.jpg")
    third = namer.reserve("photo.jpg", ".png")
    upper = namer.reserve("PHOTO.png")

    assert first.name == "photo_reformat-1.jpg"
    assert second.name == "photo_reformat-2.jpg"
    assert third.name == "photo_reformat.png"
    assert upper.name == "PHOTO_reformat-1.png"
    assert len({p.name.lower() for p in (first, second, third, upper)}) == 4


def test_namer_gives_up_after_too_many_attempts(tmp_path: Path) -> None:
    namer = OutputNamer(tmp_path, exists=lambda path: True)
    with pytest.raises(OutputPathError):
        namer.reserve("photo.jpg")
