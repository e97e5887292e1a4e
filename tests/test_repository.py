from __future__ import annotations

from pathlib import Path

import pytest

from pak_builder.errors import UnitsNotFoundError
from pak_builder.repository import Unit, discover, format_display_name


@pytest.mark.parametrize(
    "folder, expected",
    [
        ("z_MyMod_0007_P", "MyMod"),
        ("Z_MyMod_0007_P", "MyMod"),
        ("z_MyMod", "MyMod"),
        ("Already_Clean", "Already Clean"),
        ("z_Better_Backpacks_0001_P", "Better Backpacks"),
        ("MyMod_P", "MyMod P"),
        ("MyMod_12345_P", "MyMod 12345 P"),
        ("MyMod_00a1_P", "MyMod 00a1 P"),
        ("MyMod_0001_p", "MyMod 0001 p"),
        ("", ""),
    ],
)
def test_format_display_name(folder: str, expected: str) -> None:
    assert format_display_name(folder) == expected


@pytest.mark.parametrize("folder", ["z_MyMod_0007_P", "Already_Clean", "z_A_B_1234_P", "plain"])
def test_format_display_name_is_idempotent(folder: str) -> None:
    once = format_display_name(folder)
    assert format_display_name(once) == once


def test_discover_lists_subdirectories_in_name_order(tmp_path: Path) -> None:
    for name in ["z_Zeta_0002_P", "Alpha", "Beta_Mod", ".git", ".hidden_mod"]:
        (tmp_path / name).mkdir()
    (tmp_path / "readme.txt").write_text("not a mod", encoding="utf-8")
    (tmp_path / "Alpha.utoc").write_text("leftover", encoding="utf-8")

    units = discover(tmp_path)

    assert [u.id for u in units] == ["Alpha", "Beta_Mod", "z_Zeta_0002_P"]
    assert [u.display_name for u in units] == ["Alpha", "Beta Mod", "Zeta"]
    assert all(u.source_path.is_absolute() and u.source_path.is_dir() for u in units)
    assert units[0] == Unit("Alpha", "Alpha", (tmp_path / "Alpha").resolve())


def test_discover_returns_fresh_units_each_scan(tmp_path: Path) -> None:
    (tmp_path / "One").mkdir()
    first = discover(tmp_path)
    (tmp_path / "Two").mkdir()
    second = discover(tmp_path)
    assert [u.id for u in first] == ["One"]
    assert [u.id for u in second] == ["One", "Two"]


def test_units_are_immutable(tmp_path: Path) -> None:
    (tmp_path / "One").mkdir()
    unit = discover(tmp_path)[0]
    with pytest.raises(AttributeError):
        unit.id = "Other"  # type: ignore[misc]


def test_discover_missing_directory_raises(tmp_path: Path) -> None:
    with pytest.raises(UnitsNotFoundError):
        discover(tmp_path / "missing")


def test_discover_without_mod_folders_raises(tmp_path: Path) -> None:
    (tmp_path / ".cache").mkdir()
    (tmp_path / "notes.txt").write_text("x", encoding="utf-8")
    with pytest.raises(UnitsNotFoundError, match="no mods found"):
        discover(tmp_path)
