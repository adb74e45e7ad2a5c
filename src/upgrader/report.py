"""Run report export: one JSON object per finished step."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from upgrader.defaults import REPORT_FILE_NAME
from upgrader.models import StepResult, now_iso

log = logging.getLogger("upgrader.report")


def write_report(results: list[StepResult], state_dir: str | Path) -> dict[str, Any] | None:
    """Append step results to the JSONL report; returns a summary or None if nothing was written."""
    if not results:
        return None
    path = Path(state_dir) / REPORT_FILE_NAME
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        _append_jsonl([r.to_dict() for r in results], path)
    except OSError as e:
        log.warning("Could not write report to %s: %s", path, e)
        return None
    summary = {
        "records": len(results),
        "output_path": str(path),
        "timestamp": now_iso(),
    }
    log.info("Wrote %d step result(s) to %s", len(results), path)
    return summary


def _append_jsonl(records: list[dict[str, Any]], path: Path) -> None:
    """Write records as JSONL (one JSON object per line)."""
    with open(path, "a", encoding="utf-8") as f:
        for r in records:
            f.write(json.dumps(r, default=str) + "\n")
