from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any

import pytest

from billing_recon.cli.__main__ import main as cli_main
from conftest import block, sheet, xlsx_bytes

"""End-to-end CLI run over a directory holding one valid workbook and one
malformed file: the valid file is analysed and exported, the malformed one is
logged to the error log and the run ends with exit code 2."""

SUMMARY_RE = re.compile(
    r"^SUMMARY files=(\d+)/(\d+) failed=(\d+) records=(\d+) invalid_rows=(\d+) elapsed_sec=(\d+\.?\d*)$",
    re.MULTILINE,
)


@pytest.fixture
def partial_failure_setup(temp_workdir: Path, write_config: Any) -> dict[str, Any]:
    data_dir = temp_workdir / "data"
    good = data_dir / "dobry.xlsx"
    good.write_bytes(
        xlsx_bytes(
            sheet(
                ["Woda", "Opłata stała"],
                block("Kwiatowa 5/3", "2023-01-01", "2023-06-30", [(100, 110, 10, 5, 50), (0, 1, 1, 45, 45)]),
                block("Kwiatowa 5/3", "2023-07-01", "2023-12-31", [(110, 125, 15, 5, 80), (0, 1, 1, 45, 45)]),
            )
        )
    )
    bad = data_dir / "zly.xlsx"
    bad.write_bytes(b"this is not a workbook")
    return {"good": good, "bad": bad}


def test_partial_failure_run(temp_workdir: Path, partial_failure_setup, clean_logging, capsys) -> None:
    code = cli_main([])
    out = capsys.readouterr().out

    assert code == 2
    match = SUMMARY_RE.search(out)
    assert match is not None, out
    parsed, total, failed, records, invalid_rows, _ = match.groups()
    assert (int(parsed), int(total), int(failed)) == (1, 2, 1)
    assert int(records) == 2
    assert int(invalid_rows) == 1  # second half: 80 reported vs 75 computed

    assert "WARN Skipping zly.xlsx: Unsupported Excel shape." in out
    assert "ERROR config:" not in out

    exports = list((temp_workdir / "out").glob("podsumowanie-*.xlsx"))
    assert len(exports) == 1

    (log_file,) = (temp_workdir / "logs").glob("recon-errors-*.log")
    (record,) = [json.loads(line) for line in log_file.read_text(encoding="utf-8").splitlines()]
    assert record["file"] == "zly.xlsx"
    assert record["error_type"] == "MALFORMED_WORKBOOK"


def test_only_malformed_files_is_fatal(temp_workdir: Path, write_config, clean_logging, capsys) -> None:
    (temp_workdir / "data" / "zly.csv").write_bytes(b"")
    code = cli_main([])
    out = capsys.readouterr().out
    assert code == 1
    assert "ERROR no file could be parsed: zly.csv:" in out
    assert "SUMMARY files=0/1 failed=1" in out
