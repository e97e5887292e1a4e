"""Interactive terminal menu.

The menu is a thin presentation layer.  It lists the discovered mods,
turns what the user types into a :class:`pak_builder.orchestrator.Selection`
and sends it to a :class:`pak_builder.orchestrator.BuildSession`.  While
the batch runs it only waits for the session's completion event; pressing
Ctrl+C cancels the batch.

Commands (one per line)::

    0          build ALL mods, one after another
    3          build mod number 3
    s 1 3 4    toggle mods 1, 3 and 4 in the selection
    <Enter>    build the selected mods (several run in parallel)
    r          rescan the mods folder
    l          show the full log of the last batch
    q          quit
"""

from __future__ import annotations

import sys
import time
from typing import Callable, List, Optional, Set, TextIO

from .errors import EmptySelectionError, UnitsNotFoundError
from .orchestrator import (
    BatchCancelled,
    BatchCompleted,
    BatchFailed,
    BuildSession,
    Selection,
    StartBuild,
)
from .reports import RunRecorder
from .repository import Unit

HELP_LINE = "s N..: toggle selection • Enter: build selection • 0-N: build • r: rescan • l: log • q: quit"


class BuildMenu:
    """Line driven mod picker."""

    def __init__(
        self,
        session: BuildSession,
        load_units: Callable[[], List[Unit]],
        recorder: Optional[RunRecorder] = None,
        input_func: Callable[[str], str] = input,
        stream: Optional[TextIO] = None,
        progress_interval: float = 1.0,
    ) -> None:
        self.session = session
        self.load_units = load_units
        self.recorder = recorder
        self.input_func = input_func
        self.stream = stream or sys.stdout
        self.progress_interval = progress_interval
        self.units: List[Unit] = []
        self.selected: Set[int] = set()
        self.summary: List[str] = []
        self.error: Optional[str] = None
        self.last_log = ""

    def _print(self, text: str = "") -> None:
        print(text, file=self.stream)

    def rescan(self) -> None:
        self.units = self.load_units()
        self.selected.clear()

    def render(self) -> str:
        lines = ["Pak Builder", "", "[ - ] 0. Build ALL"]
        for index, unit in enumerate(self.units):
            mark = "X" if index in self.selected else " "
            lines.append(f"[ {mark} ] {index + 1}. {unit.display_name}")
        lines.append("")
        if self.selected:
            lines.append(f"{len(self.selected)} mod(s) selected")
        if self.error:
            lines.append(f"Error: {self.error}")
        lines.extend(self.summary)
        lines.append("")
        lines.append(HELP_LINE)
        return "\n".join(lines)

    def _unit_at(self, token: str) -> Optional[Unit]:
        if not token.isdigit():
            return None
        number = int(token)
        if 1 <= number <= len(self.units):
            return self.units[number - 1]
        return None

    def _toggle(self, tokens: List[str]) -> None:
        for token in tokens:
            if self._unit_at(token) is None:
                self.error = f"no mod numbered {token}"
                continue
            index = int(token) - 1
            if index in self.selected:
                self.selected.discard(index)
            else:
                self.selected.add(index)

    def _selected_units(self) -> List[Unit]:
        return [self.units[i] for i in sorted(self.selected)]

    def handle(self, line: str) -> bool:
        """Apply one input line; return ``False`` when the user quits."""
        command = line.strip()
        self.error = None
        if command.lower() in {"q", "quit", "exit"}:
            return False
        if command == "":
            try:
                self.build(Selection.of(self._selected_units()))
            except EmptySelectionError:
                self.error = "nothing selected"
        elif command == "0":
            self.build(Selection.all_units(self.units))
        elif command.lower() == "r":
            try:
                self.rescan()
            except UnitsNotFoundError as exc:
                self.error = str(exc)
        elif command.lower() == "l":
            self._print(self.last_log or "No build has run yet.")
        elif command.lower().startswith("s"):
            self._toggle(command[1:].split())
        else:
            unit = self._unit_at(command)
            if unit is None:
                self.error = f"unknown command: {command}"
            else:
                self.build(Selection.of([unit]))
        return True

    def build(self, selection: Selection) -> None:
        """Start ``selection`` and block until the session reports back."""
        self.summary = []
        self.session.send(StartBuild(selection))
        self._print(f"Building: {selection.describe()} (Ctrl+C to cancel)")
        started = time.monotonic()
        event = None
        while event is None:
            try:
                event = self.session.wait(timeout=self.progress_interval)
            except KeyboardInterrupt:
                self._print("Cancelling...")
                self.session.cancel()
                continue
            if event is None:
                self._print(f"Elapsed: {int(time.monotonic() - started)}s")

        if isinstance(event, BatchCompleted):
            result = event.result
            self.summary = result.summary_lines()
            self.last_log = result.log
            self.error = result.overall_error
            if result.ok:
                self.selected.clear()
            if self.recorder is not None:
                self.recorder.record(selection, result)
        elif isinstance(event, BatchCancelled):
            self.error = "Build cancelled"
            if self.recorder is not None:
                self.recorder.record_cancelled(selection)
        elif isinstance(event, BatchFailed):
            self.error = str(event.error)

    def loop(self) -> int:
        self.rescan()
        while True:
            self._print(self.render())
            try:
                line = self.input_func("> ")
            except (EOFError, KeyboardInterrupt):
                self._print()
                return 0
            if not self.handle(line):
                return 0
