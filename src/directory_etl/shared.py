"""directory_etl.shared

Run bookkeeping shared by every mode: RejectWriter, run counters, and
report writing.
"""

from __future__ import annotations

import csv
import json
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any


# ---------------------------------------------------------------------------
# RejectWriter
# ---------------------------------------------------------------------------

class RejectWriter:
    """Lazy-open CSV writer for rejected responses."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._fh = None
        self._writer = None

    def write(self, row: dict[str, str], reason: str) -> None:
        if self._fh is None:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._fh = open(self._path, "w", newline="", encoding="utf-8")
            fieldnames = list(row.keys()) + ["_reject_reason"]
            self._writer = csv.DictWriter(
                self._fh, fieldnames=fieldnames, extrasaction="ignore"
            )
            self._writer.writeheader()
        out = dict(row)
        out["_reject_reason"] = reason
        self._writer.writerow(out)
        self._fh.flush()

    def close(self) -> None:
        if self._fh:
            self._fh.close()


# ---------------------------------------------------------------------------
# Counters
# ---------------------------------------------------------------------------

@dataclass
class DirectoryRunCounters:
    responses_read: int = 0
    responses_rejected: int = 0
    # Directory placement
    members_updated: int = 0
    members_appended: int = 0
    members_inserted: int = 0
    cells_written: int = 0
    missing_fields_flagged: int = 0
    unmatched_chapters: int = 0
    # Contact mirroring
    contacts_created: int = 0
    contacts_skipped_no_email: int = 0
    contact_errors: int = 0
    contact_auth_errors: int = 0
    # Storage
    db_errors: int = 0
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        d = {k: v for k, v in self.__dict__.items() if k != "warnings"}
        d["warnings"] = self.warnings[:50]
        return d


def build_run_report(counters: DirectoryRunCounters, dry_run: bool) -> str:
    lines = [
        "=== Member Directory Run Report ===",
        f"dry_run            : {dry_run}",
        "",
        "--- Responses ---",
        f"responses_read     : {counters.responses_read}",
        f"responses_rejected : {counters.responses_rejected}",
        "",
        "--- Directory ---",
        f"members_updated        : {counters.members_updated}",
        f"members_appended       : {counters.members_appended}",
        f"members_inserted       : {counters.members_inserted}",
        f"cells_written          : {counters.cells_written}",
        f"missing_fields_flagged : {counters.missing_fields_flagged}",
        f"unmatched_chapters     : {counters.unmatched_chapters}",
        "",
        "--- Contacts ---",
        f"contacts_created         : {counters.contacts_created}",
        f"contacts_skipped_no_email: {counters.contacts_skipped_no_email}",
        f"contact_errors           : {counters.contact_errors}",
        f"contact_auth_errors      : {counters.contact_auth_errors}",
        "",
        "--- Errors ---",
        f"db_errors          : {counters.db_errors}",
    ]
    if counters.warnings:
        lines += ["", "--- Warnings (first 10) ---"]
        lines += [f"  {w}" for w in counters.warnings[:10]]
    return "\n".join(lines)


def write_run_report(
    run_id: str,
    started_at: str,
    mode: str,
    dry_run: bool,
    source_paths: dict[str, str],
    counters: DirectoryRunCounters,
    reports_dir: Path = Path("./artifacts/reports"),
) -> Path:
    report = {
        "run_id": run_id,
        "mode": mode,
        "started_at": started_at,
        "finished_at": datetime.utcnow().isoformat(),
        "dry_run": dry_run,
        **source_paths,
        "counters": counters.to_dict(),
    }
    report_path = reports_dir / f"{run_id}.json"
    report_path.parent.mkdir(parents=True, exist_ok=True)
    report_path.write_text(json.dumps(report, indent=2, default=str))
    return report_path
