"""
MsScan Master

Runs the offline missing-update scan end to end: privilege check, catalog registration,
update query, CSV report and scan cache cleanup.
"""

import argparse
import os
import shutil
import sys
from typing import Callable, List, Optional

from msscan_errors import CleanupWarning, MsScanError
from msscan_privilege import is_admin, require_admin
from msscan_report import REPORT_FILE_NAME, MissingUpdate, print_update_table, write_report
from msscan_scanner import (
    DEFAULT_SOURCE_NAME,
    UpdateScanner,
    WuaOfflineScanner,
    query_catalog,
    register_catalog,
)


# ============================================================
# PATHS
# ============================================================

def default_report_path() -> str:
    profile_dir = os.environ.get("USERPROFILE") or os.path.expanduser("~")
    return os.path.join(profile_dir, "Desktop", REPORT_FILE_NAME)


# ============================================================
# STAGE RUNNER
# ============================================================

def run_stage(name: str, func: Callable, *args):

    print()
    print(f"[*] Running: {name}")
    print("=" * 60)

    try:
        result = func(*args)
    except MsScanError:
        print("=" * 60)
        print(f"[!] Aborted: {name}")
        raise

    print("=" * 60)
    print(f"[+] Finished: {name}")

    return result


# ============================================================
# STAGES
# ============================================================

def report_results(records: List[MissingUpdate], output_path: str) -> bool:
    print_update_table(records)
    print()
    return write_report(records, output_path)


def release_source(scanner: UpdateScanner, source_handle: str) -> None:
# Unregister the scan source, a failure here only warns

    try:
        scanner.unregister_source(source_handle)
        print(f"[+] Unregistered scan source (ServiceID: {source_handle})")
    except CleanupWarning as exc:
        print(f"[!] {exc}")


def remove_cache_entry(path: str) -> None:
    try:
        if os.path.isdir(path) and not os.path.islink(path):
            shutil.rmtree(path)
        else:
            os.remove(path)
    except OSError as exc:
        raise CleanupWarning(f"Could not remove {path}: {exc}") from exc


def clear_scan_cache(cache_dir: str) -> bool:
# Best-effort removal of everything under the scan cache directory

    if not os.path.isdir(cache_dir):
        print(f"[-] No scan cache at {cache_dir}")
        return False

    print(f"[*] Clearing scan cache: {cache_dir}")

    failures = 0
    try:
        entries = list(os.scandir(cache_dir))
    except OSError as exc:
        print(f"[!] Could not read scan cache {cache_dir}: {exc}")
        return False

    for entry in entries:
        try:
            remove_cache_entry(entry.path)
        except CleanupWarning as exc:
            failures += 1
            print(f"[!] {exc}")

    if failures:
        print(f"[!] Scan cache partially cleared ({failures} entries left)")
        return False

    print(f"[+] Removed {len(entries)} cache entries")
    return True


# ============================================================
# CLI
# ============================================================

def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="msscan",
        description="List updates missing from this Windows host using an offline catalog (wsusscn2.cab).",
    )
    parser.add_argument(
        "--catalog",
        required=True,
        help="Path to the offline update catalog file.",
    )
    parser.add_argument(
        "--output",
        default=None,
        help=f"CSV report path (default: Desktop\\{REPORT_FILE_NAME} in the user profile).",
    )
    parser.add_argument(
        "--source-name",
        default=DEFAULT_SOURCE_NAME,
        help="Name to register the catalog under with the Windows Update Agent.",
    )
    parser.add_argument(
        "--keep-cache",
        action="store_true",
        help="Leave the scan cache directory in place after the scan.",
    )
    return parser.parse_args(argv)


# ============================================================
# MAIN
# ============================================================

def main(
    argv: Optional[List[str]] = None,
    scanner: Optional[UpdateScanner] = None,
    is_elevated: Callable[[], bool] = is_admin,
) -> int:

    args = parse_args(argv)
    output_path = args.output or default_report_path()

    try:
        run_stage("Privilege check", require_admin, is_elevated)

        if scanner is None:
            scanner = WuaOfflineScanner()

        source_handle = run_stage("Catalog registration", register_catalog, scanner, args.catalog, args.source_name)

        try:
            records = run_stage("Update query", query_catalog, scanner, source_handle)
            run_stage("Report", report_results, records, output_path)
        finally:
            release_source(scanner, source_handle)

        if not args.keep_cache:
            run_stage("Cache cleanup", clear_scan_cache, scanner.scan_cache_location())

    except MsScanError as exc:
        print(f"[X] {exc.stage} failed: {exc}")
        return exc.exit_code
    except KeyboardInterrupt:
        print("\n[!] Cancelled by user.")
        return 130

    return 0


if __name__ == "__main__":
    sys.exit(main())
