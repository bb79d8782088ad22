"""Report mapping and CSV output."""

from __future__ import annotations

import os
import stat
from pathlib import Path

import pytest

from msscan_errors import ReportWriteError
from msscan_report import (
    MissingUpdate,
    count_by_severity,
    current_umask,
    print_update_table,
    to_record,
    write_report,
)
from msscan_scanner import RawUpdateItem


def _records() -> list[MissingUpdate]:
    return [
        MissingUpdate("Update A", "Critical", "Fixes X", "http://example/a"),
        MissingUpdate("Update B", "Important", "Fixes Y", "http://example/b"),
    ]


def test_write_report_matches_expected_csv(tmp_path: Path) -> None:
    out = tmp_path / "MsScanReport.csv"

    assert write_report(_records(), str(out)) is True

    assert out.read_text(encoding="utf-8") == (
        "Title,Severity,Description,URL\n"
        "Update A,Critical,Fixes X,http://example/a\n"
        "Update B,Important,Fixes Y,http://example/b\n"
    )


def test_empty_result_leaves_existing_file_untouched(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    out = tmp_path / "MsScanReport.csv"
    out.write_text("previous run", encoding="utf-8")

    assert write_report([], str(out)) is False

    assert out.read_text(encoding="utf-8") == "previous run"
    assert "No applicable updates found" in capsys.readouterr().out


def test_empty_result_creates_no_file(tmp_path: Path) -> None:
    out = tmp_path / "MsScanReport.csv"

    write_report([], str(out))

    assert not out.exists()
    assert list(tmp_path.iterdir()) == []


def test_second_run_overwrites_first(tmp_path: Path) -> None:
    out = tmp_path / "MsScanReport.csv"
    write_report(_records(), str(out))

    second = [MissingUpdate("Update C", "Low", "Fixes Z", "http://example/c")]
    write_report(second, str(out))

    lines = out.read_text(encoding="utf-8").splitlines()
    assert lines == ["Title,Severity,Description,URL", "Update C,Low,Fixes Z,http://example/c"]


def test_row_order_follows_input_order(tmp_path: Path) -> None:
    out = tmp_path / "MsScanReport.csv"
    records = [MissingUpdate(f"Update {n}", "Moderate", "", "") for n in ("Z", "A", "M")]

    write_report(records, str(out))

    titles = [line.split(",")[0] for line in out.read_text(encoding="utf-8").splitlines()[1:]]
    assert titles == ["Update Z", "Update A", "Update M"]


def test_fields_with_commas_and_quotes_are_quoted(tmp_path: Path) -> None:
    out = tmp_path / "MsScanReport.csv"
    record = MissingUpdate('Cumulative Update, "2024-05"', "Critical", "Line one, line two", "http://example/x")

    write_report([record], str(out))

    row = out.read_text(encoding="utf-8").splitlines()[1]
    assert row == '"Cumulative Update, ""2024-05""",Critical,"Line one, line two",http://example/x'


def test_unwritable_destination_raises_report_write_error(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("", encoding="utf-8")

    with pytest.raises(ReportWriteError):
        write_report(_records(), str(blocker / "MsScanReport.csv"))


def test_failed_replace_leaves_no_partial_file(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    out = tmp_path / "MsScanReport.csv"

    def fail_replace(src: str, dst: str) -> None:
        raise OSError("disk full")

    monkeypatch.setattr(os, "replace", fail_replace)

    with pytest.raises(ReportWriteError, match="disk full"):
        write_report(_records(), str(out))

    assert list(tmp_path.iterdir()) == []


def test_to_record_copies_fields_verbatim() -> None:
    raw = RawUpdateItem(
        title="  Security Update (KB5034441)  ",
        severity="Important",
        description="Résumé, with accents",
        url="https://support.microsoft.com/help/5034441",
    )

    record = to_record(raw)

    assert record == MissingUpdate(
        "  Security Update (KB5034441)  ",
        "Important",
        "Résumé, with accents",
        "https://support.microsoft.com/help/5034441",
    )


def test_to_record_ignores_extra_attributes_and_blanks_none() -> None:
    class PlatformItem:
        title = "Update A"
        severity = None
        description = "Fixes X"
        url = "http://example/a"
        kb_article_ids = ["5034441"]

    record = to_record(PlatformItem())

    assert record == MissingUpdate("Update A", "", "Fixes X", "http://example/a")
    assert not hasattr(record, "kb_article_ids")


def test_count_by_severity_labels_blank_as_unspecified() -> None:
    records = _records() + [MissingUpdate("Update C", "", "", ""), MissingUpdate("Update D", "Critical", "", "")]

    assert count_by_severity(records) == {"Critical": 2, "Important": 1, "Unspecified": 1}


def test_print_update_table_lists_titles(capsys: pytest.CaptureFixture[str]) -> None:
    print_update_table(_records())

    out = capsys.readouterr().out
    assert "Update A" in out
    assert "Update B" in out
    assert "Missing updates: 2" in out
    assert "1 Critical | 1 Important" in out


def test_report_is_utf8_encoded(tmp_path: Path) -> None:
    out = tmp_path / "MsScanReport.csv"
    record = MissingUpdate("Mise à jour de sécurité", "Critique", "Corrige l'exécution", "http://example/fr")

    write_report([record], str(out))

    data = out.read_bytes()
    assert "Mise à jour de sécurité".encode("utf-8") in data
    assert "Corrige l'exécution".encode("utf-8") in data


@pytest.mark.skipif(os.name == "nt", reason="POSIX permission bits")
def test_report_mode_follows_umask(tmp_path: Path) -> None:
    out = tmp_path / "MsScanReport.csv"

    write_report(_records(), str(out))

    assert stat.S_IMODE(out.stat().st_mode) == 0o666 & ~current_umask()


def test_missing_parent_directory_is_not_created(tmp_path: Path) -> None:
    missing = tmp_path / "no-such-dir"

    with pytest.raises(ReportWriteError):
        write_report(_records(), str(missing / "MsScanReport.csv"))

    assert not missing.exists()
