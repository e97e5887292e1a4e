from __future__ import annotations

import stat
from pathlib import Path
from typing import Callable, List, Tuple

import pytest

from pak_builder.config_service import BuildConfig

# Stand-in for ``retoc to-zen --version UE5_4 -- <src> <out>``.  Marker files
# inside a mod folder pick the behaviour: FAIL exits non-zero, SLOW blocks
# until terminated, NOOUT succeeds without writing anything.
FAKE_RETOC = """#!/bin/sh
src="$5"
out="$6"
base="${out%.*}"
echo "$(basename "$src") $(pwd)" >> calls.log
echo "packing $(basename "$src") with $1 $2 $3"
if [ -f "$src/FAIL" ]; then
  echo "error: broken asset in $(basename "$src")" >&2
  exit 3
fi
if [ -f "$src/SLOW" ]; then
  exec sleep 30
fi
if [ -f "$src/NOOUT" ]; then
  exit 0
fi
if [ ! -d "$src" ]; then
  echo "error: $src does not exist" >&2
  exit 2
fi
printf 'utoc' > "$base.utoc"
printf 'ucas' > "$base.ucas"
printf 'pak' > "$base.pak"
"""


@pytest.fixture
def build_config(tmp_path: Path) -> BuildConfig:
    tool_dir = tmp_path / "retoc"
    tool_dir.mkdir()
    tool = tool_dir / "retoc"
    tool.write_text(FAKE_RETOC, encoding="utf-8")
    tool.chmod(tool.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    mods = tmp_path / "Mods"
    mods.mkdir()
    return BuildConfig(
        tool_dir=tool_dir,
        source_dir=mods,
        destination_dir=tmp_path / "Game" / "Paks",
        tool_name="retoc",
    )


@pytest.fixture
def make_mod(build_config: BuildConfig) -> Callable[..., Path]:
    def _make(name: str, *markers: str) -> Path:
        folder = build_config.source_dir / name
        (folder / "Content").mkdir(parents=True)
        (folder / "Content" / "Asset.uasset").write_bytes(b"\x00asset")
        for marker in markers:
            (folder / marker).write_text("", encoding="utf-8")
        return folder

    return _make


@pytest.fixture
def tool_calls(build_config: BuildConfig) -> Callable[[], List[Tuple[str, str]]]:
    """Return the (mod folder, working directory) pairs the fake tool was run with."""

    def _calls() -> List[Tuple[str, str]]:
        log = build_config.tool_dir / "calls.log"
        if not log.exists():
            return []
        return [tuple(line.split(" ", 1)) for line in log.read_text(encoding="utf-8").splitlines()]

    return _calls
