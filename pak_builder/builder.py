"""Single mod build.

:class:`UnitBuilder` packs exactly one mod folder.  It runs the external
packaging tool as a subprocess, waits for it while watching a shared
cancellation event, finds every file the tool produced for the mod and
hands each one to the :class:`pak_builder.relocator.Relocator`.

Nothing in here raises for an individual mod going wrong.  Every path,
including a tool that cannot be started at all, ends in a
:class:`BuildOutcome` so the orchestrator can keep building the other
mods and report a complete success/failure partition.
"""

from __future__ import annotations

import enum
import glob
import logging
import os
import subprocess
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

from .config_service import BuildConfig
from .errors import RelocationError
from .relocator import Relocator
from .repository import Unit

logger = logging.getLogger(__name__)


class FailureReason(enum.Enum):
    TOOL_FAILURE = "tool_failure"
    CANCELLED = "cancelled"
    NO_OUTPUT = "no_output"
    RELOCATION_FAILURE = "relocation_failure"


@dataclass(frozen=True)
class BuildOutcome:
    """Result of one :meth:`UnitBuilder.build` call."""

    unit_id: str
    succeeded: bool
    diagnostic_text: str = ""
    failure_reason: Optional[FailureReason] = None
    relocated: Tuple[Path, ...] = ()

    def __post_init__(self) -> None:
        if self.succeeded == (self.failure_reason is not None):
            raise ValueError("failure_reason must be set exactly when the build failed")

    @classmethod
    def success(cls, unit_id: str, diagnostic_text: str, relocated: Tuple[Path, ...]) -> "BuildOutcome":
        return cls(unit_id, True, diagnostic_text, None, tuple(relocated))

    @classmethod
    def failure(cls, unit_id: str, reason: FailureReason, diagnostic_text: str,
                relocated: Tuple[Path, ...] = ()) -> "BuildOutcome":
        return cls(unit_id, False, diagnostic_text, reason, tuple(relocated))


@dataclass(frozen=True)
class ToolResult:
    returncode: int
    output: str
    cancelled: bool


class UnitBuilder:
    """Run the packaging tool for one unit and relocate its artifacts."""

    # Seconds between cancellation checks while the tool runs.
    poll_interval = 0.1
    # Seconds to wait after terminate() before falling back to kill().
    terminate_grace = 5.0

    def __init__(self, config: BuildConfig, relocator: Optional[Relocator] = None) -> None:
        self.config = config
        self.relocator = relocator or Relocator(config.destination_dir)

    def output_path(self, unit: Unit) -> Path:
        return unit.source_path.parent / f"{unit.id}{self.config.output_extension}"

    def command(self, unit: Unit) -> List[str]:
        return [
            str(self.config.tool_path),
            self.config.subcommand,
            self.config.format_flag,
            self.config.format_value,
            "--",
            str(unit.source_path),
            str(self.output_path(unit)),
        ]

    def find_artifacts(self, unit: Unit) -> List[Path]:
        """Return every file named ``<unit id>.<ext>`` next to the mod folder.

        ``<ext>`` holds no further dot, so ``My.Mod.utoc`` belongs to the
        ``My.Mod`` folder and never to ``My``.
        """
        pattern = str(unit.source_path.parent / f"{glob.escape(unit.id)}.*")
        artifacts = []
        for match in glob.glob(pattern):
            path = Path(match)
            if "." in path.name[len(unit.id) + 1:] or not path.is_file():
                continue
            artifacts.append(path)
        return sorted(artifacts)

    def _run_tool(self, cancel_event: threading.Event, unit: Unit) -> ToolResult:
        # The tool gets its own process group; only cancel_event stops it.
        if os.name == "nt":
            isolation = {"creationflags": subprocess.CREATE_NEW_PROCESS_GROUP}
        else:
            isolation = {"start_new_session": True}
        process = subprocess.Popen(
            self.command(unit),
            cwd=str(self.config.tool_dir),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            errors="replace",
            **isolation,
        )
        cancelled = False
        while True:
            try:
                output, _ = process.communicate(timeout=self.poll_interval)
                break
            except subprocess.TimeoutExpired:
                if cancel_event.is_set() and not cancelled:
                    cancelled = True
                    logger.debug("Terminating packaging tool for %s", unit.id)
                    process.terminate()
                    try:
                        output, _ = process.communicate(timeout=self.terminate_grace)
                    except subprocess.TimeoutExpired:
                        process.kill()
                        output, _ = process.communicate()
                    break
        return ToolResult(process.returncode, output or "", cancelled)

    def build(self, cancel_event: threading.Event, unit: Unit) -> BuildOutcome:
        """Build ``unit`` and return its outcome.

        A cancellation that is already requested when this is called
        skips the tool entirely.
        """
        log: List[str] = [
            f"  Folder: {unit.id}",
            f"  Output: {self.output_path(unit).name}",
        ]

        def fail(reason: FailureReason, line: str, relocated: Tuple[Path, ...] = ()) -> BuildOutcome:
            log.append(f"  {line}")
            logger.info("Build of %s failed (%s): %s", unit.id, reason.value, line)
            return BuildOutcome.failure(unit.id, reason, "\n".join(log), relocated)

        if cancel_event.is_set():
            return fail(FailureReason.CANCELLED, "build cancelled")

        try:
            result = self._run_tool(cancel_event, unit)
        except OSError as exc:
            return fail(FailureReason.TOOL_FAILURE, f"retoc could not be started: {exc}")

        output = result.output.strip()
        if result.returncode != 0:
            if result.cancelled:
                if output:
                    log.append(f"  retoc: {output}")
                return fail(FailureReason.CANCELLED, "build cancelled")
            log.append(f"  retoc error: {output}")
            return fail(FailureReason.TOOL_FAILURE, f"retoc failed with exit status {result.returncode}")
        if output:
            log.append(f"  retoc: {output}")

        artifacts = self.find_artifacts(unit)
        if not artifacts:
            return fail(FailureReason.NO_OUTPUT, "no output files found")
        log.append(f"  Found {len(artifacts)} file(s) to copy")

        relocated: List[Path] = []
        for artifact in artifacts:
            try:
                relocated.append(self.relocator.relocate(artifact))
            except RelocationError as exc:
                return fail(FailureReason.RELOCATION_FAILURE, str(exc), tuple(relocated))
            log.append(f"  ✓ Copied {artifact.name} → {self.config.destination_dir.name}/")

        logger.info("Built %s (%d artifact(s))", unit.id, len(relocated))
        return BuildOutcome.success(unit.id, "\n".join(log), tuple(relocated))
