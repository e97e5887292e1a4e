"""Per-batch run logs and reports.

Every batch gets its own folder under ``<config dir>/logs/<run_id>``
holding the full diagnostic log (``run_log.txt``) and a JSON summary
(``run_report.json``).  The menu only shows ✓/✗ lines; the files keep
the packaging tool's output for later inspection.
"""

from __future__ import annotations

import datetime
import json
import logging
import os
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from .orchestrator import BatchResult, Selection

logger = logging.getLogger(__name__)

RUN_LOG_NAME = "run_log.txt"
RUN_REPORT_NAME = "run_report.json"


def new_run_id() -> str:
    return datetime.datetime.now().strftime("%Y%m%d_%H%M%S_") + uuid.uuid4().hex[:8]


@dataclass
class RunRecorder:
    """Write run logs and reports below ``logs_dir``."""

    logs_dir: Path

    def _base_report(self, run_id: str, selection: Selection) -> Dict[str, Any]:
        return {
            "run_id": run_id,
            "timestamp": datetime.datetime.now().isoformat(),
            "selection": selection.shape.value,
            "policy": selection.policy.value,
            "units": list(selection.unit_ids),
        }

    def _write(self, run_id: str, report: Dict[str, Any], log_text: str) -> Path:
        run_dir = self.logs_dir / run_id
        run_dir.mkdir(parents=True, exist_ok=True)
        (run_dir / RUN_LOG_NAME).write_text(log_text, encoding="utf-8")
        report_path = run_dir / RUN_REPORT_NAME
        with open(report_path, "w", encoding="utf-8") as f:
            json.dump(report, f, indent=2)
        logger.debug("Wrote run report %s", report_path)
        return report_path

    def record(self, selection: Selection, result: BatchResult, run_id: Optional[str] = None) -> Path:
        """Persist a completed batch and return the report path."""
        run_id = run_id or new_run_id()
        report = self._base_report(run_id, selection)
        report.update({
            "cancelled": False,
            "succeeded": list(result.succeeded_units),
            "failed": list(result.failed_units),
            "error": result.overall_error,
            "outcomes": [
                {
                    "unit": outcome.unit_id,
                    "succeeded": outcome.succeeded,
                    "reason": outcome.failure_reason.value if outcome.failure_reason else None,
                    "relocated": [str(p) for p in outcome.relocated],
                }
                for outcome in result.outcomes.values()
            ],
        })
        return self._write(run_id, report, result.log)

    def record_cancelled(self, selection: Selection, run_id: Optional[str] = None) -> Path:
        run_id = run_id or new_run_id()
        report = self._base_report(run_id, selection)
        report["cancelled"] = True
        return self._write(run_id, report, "Build cancelled\n")

    def latest_report(self) -> Optional[Dict[str, Any]]:
        """Return the most recently written report, or ``None``."""
        if not self.logs_dir.exists():
            return None
        reports = sorted(self.logs_dir.rglob(RUN_REPORT_NAME), key=os.path.getmtime, reverse=True)
        if not reports:
            return None
        with open(reports[0], "r", encoding="utf-8") as f:
            return json.load(f)
