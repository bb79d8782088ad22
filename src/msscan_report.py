"""
MsScan Report

Maps scan results to flat records and writes them as a CSV report.
"""

import csv
import os
import tempfile
from dataclasses import dataclass
from typing import Dict, Iterable, List

from msscan_errors import ReportWriteError


# ============================================================
# REPORT LAYOUT
# ============================================================

REPORT_HEADER = ["Title", "Severity", "Description", "URL"]
REPORT_FILE_NAME = "MsScanReport.csv"


# ============================================================
# MODELS
# ============================================================

# Data class for one update the scan reported as not installed
@dataclass(frozen=True)
class MissingUpdate:
    title: str
    severity: str
    description: str
    url: str

    def as_row(self) -> List[str]:
        return [self.title, self.severity, self.description, self.url]


def to_record(raw) -> MissingUpdate:
# Copy the four report fields from a raw scan item, ignoring anything else it carries

    def text(name: str) -> str:
        value = getattr(raw, name, None)
        return "" if value is None else str(value)

    return MissingUpdate(
        title=text("title"),
        severity=text("severity"),
        description=text("description"),
        url=text("url"),
    )


# ============================================================
# CSV OUTPUT
# ============================================================

def current_umask() -> int:
# mkstemp creates owner-only files, reports get the mode a plain open() would give

    mask = os.umask(0)
    os.umask(mask)
    return mask


def write_report(records: List[MissingUpdate], output_path: str) -> bool:
# Write records to output_path, or report that nothing applies and leave the path untouched

    if not records:
        print("[-] No applicable updates found. No report written.")
        return False

    out_dir = os.path.dirname(os.path.abspath(output_path))
    tmp_path = None

    try:
        # Stage rows next to the target so the final replace stays on one volume
        fd, tmp_path = tempfile.mkstemp(prefix=".msscan-", suffix=".csv", dir=out_dir)
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as handle:
            writer = csv.writer(handle)
            writer.writerow(REPORT_HEADER)
            for record in records:
                writer.writerow(record.as_row())

        os.chmod(tmp_path, 0o666 & ~current_umask())
        os.replace(tmp_path, output_path)
        tmp_path = None
    except OSError as exc:
        raise ReportWriteError(f"Cannot write report to {output_path}: {exc}") from exc
    finally:
        if tmp_path is not None and os.path.exists(tmp_path):
            os.remove(tmp_path)

    print(f"[+] Saved report with {len(records)} update(s) to {output_path}")
    return True


# ============================================================
# CONSOLE SUMMARY
# ============================================================

def count_by_severity(records: Iterable[MissingUpdate]) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for record in records:
        key = record.severity or "Unspecified"
        counts[key] = counts.get(key, 0) + 1
    return counts


def print_update_table(records: List[MissingUpdate]) -> None:
# Print a fixed-width table of missing updates in scan order

    col_severity_width = 12
    col_title_width = 80

    print("=== Missing ===")
    if not records:
        print("None")
        return

    print(f"{'Severity':<{col_severity_width}} {'Title':<{col_title_width}}")
    print("-" * 110)

    for record in records:
        severity = record.severity or "Unspecified"
        print(f"{severity:<{col_severity_width}} {record.title:<{col_title_width}}")

    print("-" * 110)

    breakdown = " | ".join(f"{count} {name}" for name, count in count_by_severity(records).items())
    print(f"Missing updates: {len(records)}")
    print(f"Breakdown: {breakdown}")
