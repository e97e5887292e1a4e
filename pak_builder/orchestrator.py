"""Batch build orchestration.

The orchestrator turns a selection of units into one
:class:`BatchResult`.  How the units are built depends on the shape of
the selection:

=================  ==========================================
Selection          Policy
=================  ==========================================
single unit        one build in the calling thread
explicit subset    one worker thread per unit, completion order
all units          one build at a time, discovery order
=================  ==========================================

An explicit multi-select is a deliberate batch the user wants finished
quickly, so it runs in parallel.  "Build ALL" is the common unattended
path; it stays sequential so several heavy packaging processes do not
fight over CPU and disk, and so the log reads top to bottom.

Every selected unit is always attempted.  One failure never stops the
others and the concurrent path joins every worker before reporting.

Each call to :meth:`Orchestrator.start` returns a :class:`BuildRun`
which walks ``IDLE -> RUNNING -> COMPLETED | CANCELLED`` exactly once.
All builds of a run share a single :class:`threading.Event`; setting it
through :meth:`BuildRun.cancel` makes every in-flight tool process
terminate, and the run then raises :class:`BuildCancelled` instead of
returning a partial result.

User interfaces talk to the orchestrator through :class:`BuildSession`:
they send a :class:`StartBuild` command and later receive a
:class:`BatchCompleted`, :class:`BatchCancelled` or :class:`BatchFailed`
event from :attr:`BuildSession.events`.
"""

from __future__ import annotations

import enum
import logging
import queue
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

from .builder import BuildOutcome, UnitBuilder
from .errors import BuildCancelled, EmptySelectionError
from .repository import Unit

logger = logging.getLogger(__name__)


class SelectionShape(enum.Enum):
    SINGLE = "single"
    SUBSET = "subset"
    ALL = "all"


class ExecutionPolicy(enum.Enum):
    SINGLE = "single"
    CONCURRENT = "concurrent"
    SEQUENTIAL = "sequential"


POLICY_BY_SHAPE = {
    SelectionShape.SINGLE: ExecutionPolicy.SINGLE,
    SelectionShape.SUBSET: ExecutionPolicy.CONCURRENT,
    SelectionShape.ALL: ExecutionPolicy.SEQUENTIAL,
}


class RunState(enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class Selection:
    """Units chosen for one batch plus how they were chosen."""

    units: Tuple[Unit, ...]
    shape: SelectionShape

    def __post_init__(self) -> None:
        if not self.units:
            raise EmptySelectionError("select at least one mod to build")
        ids = [unit.id for unit in self.units]
        if len(set(ids)) != len(ids):
            raise ValueError("a selection cannot contain the same mod twice")

    @classmethod
    def all_units(cls, units: Iterable[Unit]) -> "Selection":
        return cls(tuple(units), SelectionShape.ALL)

    @classmethod
    def of(cls, units: Iterable[Unit]) -> "Selection":
        units = tuple(units)
        shape = SelectionShape.SINGLE if len(units) == 1 else SelectionShape.SUBSET
        return cls(units, shape)

    @property
    def policy(self) -> ExecutionPolicy:
        return POLICY_BY_SHAPE[self.shape]

    @property
    def unit_ids(self) -> Tuple[str, ...]:
        return tuple(unit.id for unit in self.units)

    def describe(self) -> str:
        if self.shape is SelectionShape.ALL:
            return "Build ALL"
        if self.shape is SelectionShape.SINGLE:
            return self.units[0].display_name
        return f"{len(self.units)} Mods Selected"


@dataclass(frozen=True)
class BatchResult:
    """Aggregate of one completed batch."""

    succeeded_units: Tuple[str, ...]
    failed_units: Tuple[str, ...]
    overall_error: Optional[str]
    outcomes: Dict[str, BuildOutcome]
    log: str
    policy: ExecutionPolicy
    display_names: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        succeeded, failed = set(self.succeeded_units), set(self.failed_units)
        if len(succeeded) != len(self.succeeded_units) or len(failed) != len(self.failed_units):
            raise ValueError("duplicate unit in batch result")
        if succeeded & failed:
            raise ValueError("unit reported as both succeeded and failed")
        if succeeded | failed != set(self.outcomes):
            raise ValueError("batch result does not cover every built unit")
        if bool(self.failed_units) != (self.overall_error is not None):
            raise ValueError("overall_error must be set exactly when a unit failed")

    @property
    def ok(self) -> bool:
        return not self.failed_units

    @classmethod
    def from_outcomes(cls, outcomes: Sequence[BuildOutcome], logs: Sequence[str],
                      policy: ExecutionPolicy, display_names: Dict[str, str]) -> "BatchResult":
        succeeded = tuple(o.unit_id for o in outcomes if o.succeeded)
        failed = tuple(o.unit_id for o in outcomes if not o.succeeded)
        overall_error = f"{len(failed)} mod(s) failed to build" if failed else None
        return cls(
            succeeded_units=succeeded,
            failed_units=failed,
            overall_error=overall_error,
            outcomes={o.unit_id: o for o in outcomes},
            log="\n".join(logs),
            policy=policy,
            display_names=dict(display_names),
        )

    def summary_lines(self) -> List[str]:
        lines = [f"✓ {self.display_names.get(uid, uid)}" for uid in self.succeeded_units]
        lines += [f"✗ {self.display_names.get(uid, uid)}" for uid in self.failed_units]
        return lines


class BuildRun:
    """One orchestration episode over a fixed selection."""

    def __init__(self, builder: UnitBuilder, selection: Selection) -> None:
        self.builder = builder
        self.selection = selection
        self.cancel_event = threading.Event()
        self._state = RunState.IDLE
        self._state_lock = threading.Lock()

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def policy(self) -> ExecutionPolicy:
        return self.selection.policy

    def cancel(self) -> None:
        """Request cancellation; safe to call from any thread."""
        if not self.cancel_event.is_set():
            logger.info("Cancellation requested for %s", self.selection.describe())
        self.cancel_event.set()

    def _build_one(self, unit: Unit, header: str) -> Tuple[BuildOutcome, str]:
        outcome = self.builder.build(self.cancel_event, unit)
        block = f"{header}\n{outcome.diagnostic_text}\n" if outcome.diagnostic_text else f"{header}\n"
        return outcome, block

    def _run_single(self) -> List[Tuple[BuildOutcome, str]]:
        unit = self.selection.units[0]
        return [self._build_one(unit, f"==== Building {unit.display_name} ====")]

    def _run_sequential(self) -> List[Tuple[BuildOutcome, str]]:
        total = len(self.selection.units)
        results = []
        for index, unit in enumerate(self.selection.units, start=1):
            header = f"==== [{index}/{total}] Building {unit.display_name} ===="
            results.append(self._build_one(unit, header))
        return results

    def _run_concurrent(self) -> List[Tuple[BuildOutcome, str]]:
        units = self.selection.units
        results = []
        with ThreadPoolExecutor(max_workers=len(units), thread_name_prefix="pak-build") as pool:
            futures = [
                pool.submit(self._build_one, unit, f"==== {unit.display_name} ====")
                for unit in units
            ]
            for future in as_completed(futures):
                results.append(future.result())
        return results

    def run(self) -> BatchResult:
        """Build the selection and return the aggregate result.

        Raises :class:`BuildCancelled` if :meth:`cancel` was called
        while the run was in progress.
        """
        with self._state_lock:
            if self._state is not RunState.IDLE:
                raise RuntimeError("a build run can only be started once")
            self._state = RunState.RUNNING

        policy = self.policy
        logger.info("Starting %s (%d mod(s), %s)", self.selection.describe(),
                    len(self.selection.units), policy.value)
        if policy is ExecutionPolicy.SINGLE:
            results = self._run_single()
        elif policy is ExecutionPolicy.CONCURRENT:
            results = self._run_concurrent()
        else:
            results = self._run_sequential()

        if self.cancel_event.is_set():
            with self._state_lock:
                self._state = RunState.CANCELLED
            raise BuildCancelled(f"{self.selection.describe()} was cancelled")

        display_names = {unit.id: unit.display_name for unit in self.selection.units}
        result = BatchResult.from_outcomes(
            [outcome for outcome, _ in results],
            [block for _, block in results],
            policy,
            display_names,
        )
        with self._state_lock:
            self._state = RunState.COMPLETED
        if result.overall_error:
            logger.warning("%s: %s", self.selection.describe(), result.overall_error)
        return result


class Orchestrator:
    """Entry point for batch builds."""

    def __init__(self, builder: UnitBuilder) -> None:
        self.builder = builder

    def start(self, selection: Selection) -> BuildRun:
        return BuildRun(self.builder, selection)

    def run(self, selection: Selection) -> BatchResult:
        return self.start(selection).run()


# Messages exchanged with user interfaces.

@dataclass(frozen=True)
class StartBuild:
    selection: Selection


@dataclass(frozen=True)
class BatchCompleted:
    selection: Selection
    result: BatchResult


@dataclass(frozen=True)
class BatchCancelled:
    selection: Selection


@dataclass(frozen=True)
class BatchFailed:
    selection: Selection
    error: BaseException


BuildEvent = Union[BatchCompleted, BatchCancelled, BatchFailed]


class BuildSession:
    """Run batches in the background and report them as events.

    Only one batch may be active at a time.
    """

    def __init__(self, orchestrator: Orchestrator) -> None:
        self.orchestrator = orchestrator
        self.events: "queue.Queue[BuildEvent]" = queue.Queue()
        self._lock = threading.Lock()
        self._active: Optional[BuildRun] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def busy(self) -> bool:
        with self._lock:
            return self._active is not None

    def send(self, command: StartBuild) -> BuildRun:
        with self._lock:
            if self._active is not None:
                raise RuntimeError("a build is already running")
            run = self.orchestrator.start(command.selection)
            self._active = run
            self._thread = threading.Thread(
                target=self._drive, args=(run,), name="pak-build-session", daemon=True
            )
            self._thread.start()
        return run

    def cancel(self) -> None:
        with self._lock:
            run = self._active
        if run is not None:
            run.cancel()

    def wait(self, timeout: Optional[float] = None) -> Optional[BuildEvent]:
        """Return the next event, or ``None`` if none arrived in ``timeout`` seconds."""
        try:
            return self.events.get(timeout=timeout)
        except queue.Empty:
            return None

    def _drive(self, run: BuildRun) -> None:
        try:
            result = run.run()
        except BuildCancelled:
            event: BuildEvent = BatchCancelled(run.selection)
        except Exception as exc:
            logger.exception("Build session failed")
            event = BatchFailed(run.selection, exc)
        else:
            event = BatchCompleted(run.selection, result)
        with self._lock:
            self._active = None
        self.events.put(event)
