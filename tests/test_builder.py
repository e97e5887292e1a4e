from __future__ import annotations

import os
import shutil
import threading
import time
from pathlib import Path

import pytest

from pak_builder.builder import BuildOutcome, FailureReason, UnitBuilder
from pak_builder.errors import RelocationError
from pak_builder.relocator import Relocator
from pak_builder.repository import discover

pytestmark = pytest.mark.skipif(os.name == "nt", reason="fake retoc is a POSIX shell script")


def _unit(build_config, name):
    return next(u for u in discover(build_config.source_dir) if u.id == name)


def test_successful_build_relocates_every_artifact(build_config, make_mod, tool_calls) -> None:
    source = make_mod("z_MyMod_0007_P")
    unit = _unit(build_config, "z_MyMod_0007_P")

    outcome = UnitBuilder(build_config).build(threading.Event(), unit)

    assert outcome.succeeded
    assert outcome.failure_reason is None
    paks = build_config.destination_dir
    assert sorted(p.name for p in paks.iterdir()) == [
        "z_MyMod_0007_P.pak", "z_MyMod_0007_P.ucas", "z_MyMod_0007_P.utoc",
    ]
    assert sorted(p.name for p in outcome.relocated) == sorted(p.name for p in paks.iterdir())
    assert not list(build_config.source_dir.glob("z_MyMod_0007_P.*"))
    assert (source / "Content" / "Asset.uasset").read_bytes() == b"\x00asset"
    assert "Found 3 file(s) to copy" in outcome.diagnostic_text
    assert "packing z_MyMod_0007_P with to-zen --version UE5_4" in outcome.diagnostic_text
    folder, cwd = tool_calls()[0]
    assert folder == "z_MyMod_0007_P"
    assert Path(cwd).resolve() == build_config.tool_dir.resolve()


def test_command_line_shape(build_config, make_mod) -> None:
    make_mod("Alpha")
    unit = _unit(build_config, "Alpha")
    builder = UnitBuilder(build_config)

    assert builder.command(unit) == [
        str(build_config.tool_dir / "retoc"), "to-zen", "--version", "UE5_4", "--",
        str(unit.source_path), str(unit.source_path.parent / "Alpha.utoc"),
    ]


def test_tool_failure_keeps_diagnostics(build_config, make_mod) -> None:
    make_mod("Broken", "FAIL")
    outcome = UnitBuilder(build_config).build(threading.Event(), _unit(build_config, "Broken"))

    assert not outcome.succeeded
    assert outcome.failure_reason is FailureReason.TOOL_FAILURE
    assert "error: broken asset in Broken" in outcome.diagnostic_text
    assert "exit status 3" in outcome.diagnostic_text
    assert not build_config.destination_dir.exists()


def test_success_without_artifacts_is_no_output(build_config, make_mod) -> None:
    make_mod("Empty", "NOOUT")
    outcome = UnitBuilder(build_config).build(threading.Event(), _unit(build_config, "Empty"))

    assert outcome.failure_reason is FailureReason.NO_OUTPUT
    assert "no output files found" in outcome.diagnostic_text


def test_artifacts_of_other_mods_are_not_collected(build_config, make_mod) -> None:
    make_mod("Mod")
    (build_config.source_dir / "Mod2.utoc").write_text("other", encoding="utf-8")
    (build_config.source_dir / "ModExtra.pak").write_text("other", encoding="utf-8")

    outcome = UnitBuilder(build_config).build(threading.Event(), _unit(build_config, "Mod"))

    assert outcome.succeeded
    assert sorted(p.name for p in outcome.relocated) == ["Mod.pak", "Mod.ucas", "Mod.utoc"]
    assert (build_config.source_dir / "Mod2.utoc").exists()
    assert (build_config.source_dir / "ModExtra.pak").exists()


def test_dotted_sibling_artifacts_are_not_collected(build_config, make_mod) -> None:
    make_mod("My")
    make_mod("My.Mod")
    (build_config.source_dir / "My.Mod.utoc").write_text("stale", encoding="utf-8")

    outcome = UnitBuilder(build_config).build(threading.Event(), _unit(build_config, "My"))

    assert outcome.succeeded
    assert sorted(p.name for p in outcome.relocated) == ["My.pak", "My.ucas", "My.utoc"]
    assert (build_config.source_dir / "My.Mod.utoc").read_text(encoding="utf-8") == "stale"
    assert not (build_config.destination_dir / "My.Mod.utoc").exists()


def test_vanished_source_is_a_tool_failure(build_config, make_mod) -> None:
    folder = make_mod("Gone")
    unit = _unit(build_config, "Gone")
    shutil.rmtree(folder)

    outcome = UnitBuilder(build_config).build(threading.Event(), unit)

    assert outcome.failure_reason is FailureReason.TOOL_FAILURE


def test_missing_tool_is_a_tool_failure(build_config, make_mod) -> None:
    make_mod("Alpha")
    (build_config.tool_dir / "retoc").unlink()

    outcome = UnitBuilder(build_config).build(threading.Event(), _unit(build_config, "Alpha"))

    assert outcome.failure_reason is FailureReason.TOOL_FAILURE
    assert "could not be started" in outcome.diagnostic_text


def test_relocation_failure_stops_remaining_artifacts(build_config, make_mod) -> None:
    make_mod("Alpha")
    real = Relocator(build_config.destination_dir)

    class FlakyRelocator:
        def relocate(self, src_path):
            if src_path.suffix == ".ucas":
                raise RelocationError(f"copy {src_path.name}: disk full")
            return real.relocate(src_path)

    builder = UnitBuilder(build_config, relocator=FlakyRelocator())
    outcome = builder.build(threading.Event(), _unit(build_config, "Alpha"))

    assert outcome.failure_reason is FailureReason.RELOCATION_FAILURE
    # Artifacts are handled in name order: .pak, .ucas, .utoc
    assert [p.name for p in outcome.relocated] == ["Alpha.pak"]
    assert (build_config.destination_dir / "Alpha.pak").exists()
    assert (build_config.source_dir / "Alpha.ucas").exists()
    assert (build_config.source_dir / "Alpha.utoc").exists()
    assert "disk full" in outcome.diagnostic_text


def test_cancel_before_start_skips_tool(build_config, make_mod, tool_calls) -> None:
    make_mod("Alpha")
    event = threading.Event()
    event.set()

    outcome = UnitBuilder(build_config).build(event, _unit(build_config, "Alpha"))

    assert outcome.failure_reason is FailureReason.CANCELLED
    assert tool_calls() == []


def test_cancel_terminates_running_tool(build_config, make_mod, tool_calls) -> None:
    make_mod("Slow", "SLOW")
    unit = _unit(build_config, "Slow")
    event = threading.Event()
    outcomes = []
    worker = threading.Thread(target=lambda: outcomes.append(UnitBuilder(build_config).build(event, unit)))
    started = time.monotonic()
    worker.start()
    while not tool_calls() and time.monotonic() - started < 10:
        time.sleep(0.05)

    event.set()
    worker.join(timeout=15)

    assert not worker.is_alive()
    assert time.monotonic() - started < 20
    assert outcomes[0].failure_reason is FailureReason.CANCELLED


def test_outcome_rejects_inconsistent_reason() -> None:
    with pytest.raises(ValueError):
        BuildOutcome("x", True, "", FailureReason.TOOL_FAILURE)
    with pytest.raises(ValueError):
        BuildOutcome("x", False, "", None)
