from __future__ import annotations

import json
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(REPO_ROOT / "src"))

from paramsniff.cli import EXIT_CLEAN, EXIT_FAILURE, EXIT_FIXED_WITH_WARNINGS, EXIT_WARNINGS, main


def _php_file(tmp_path: Path, body: str, name: str = "plugin.php") -> Path:
    path = tmp_path / name
    path.write_text("<?php\n" + body + "\n", encoding="utf-8")
    return path


def test_text_report_and_exit_code(tmp_path, capsys) -> None:
    path = _php_file(tmp_path, "update_option('a', 'b', 'yes');")
    assert main([str(path)]) == EXIT_WARNINGS

    out = capsys.readouterr().out
    assert f"{path.as_posix()}:2:25: warning OptionAutoload.Deprecated" in out
    assert "[fixable]" in out
    assert "1 warning(s) in 1 file(s) (1 fixable, 0 fixed)" in out


def test_clean_file_exits_zero(tmp_path, capsys) -> None:
    path = _php_file(tmp_path, "update_option('a', 'b', false);")
    assert main([str(path)]) == EXIT_CLEAN
    assert "0 warning(s)" in capsys.readouterr().out


def test_json_report_with_metrics(tmp_path, capsys) -> None:
    path = _php_file(tmp_path, "add_option('a', 'b', '', 'auto');\nadd_option('c', 'd', '', true);")
    assert main([str(tmp_path), "--format", "json"]) == EXIT_WARNINGS

    payload = json.loads(capsys.readouterr().out)
    assert payload["summary"]["warnings"] == 1
    assert payload["files"][0]["path"] == path.name
    assert payload["files"][0]["diagnostics"][0]["code"] == "OptionAutoload.InternalUseOnly"
    (values,) = payload["summary"]["metrics"].values()
    assert values == {"auto": 1, "true": 1}


def test_metrics_histogram_in_text_mode(tmp_path, capsys) -> None:
    _php_file(tmp_path, "add_option('a', 'b', '', true);\nadd_option('c', 'd', '', $x);")
    main([str(tmp_path), "--metrics"])
    out = capsys.readouterr().out
    assert "Value of the `$autoload` parameter in the option functions:" in out
    assert "undetermined value" in out


def test_fix_mode_exit_codes(tmp_path) -> None:
    fixed_clean = _php_file(tmp_path, "update_option('a', 'b', 'no');", name="one.php")
    assert main([str(fixed_clean), "--fix"]) == EXIT_CLEAN
    assert "update_option('a', 'b', false);" in fixed_clean.read_text(encoding="utf-8")

    remaining = _php_file(tmp_path, "update_option('a', 'b', 'on');\nadd_option('c', 'd');", name="two.php")
    assert main([str(remaining), "--fix"]) == EXIT_FIXED_WITH_WARNINGS


def test_missing_path_is_a_usage_failure(tmp_path) -> None:
    assert main([str(tmp_path / "absent.php")]) == EXIT_FAILURE


def test_parquet_output(tmp_path) -> None:
    src = tmp_path / "src"
    src.mkdir()
    _php_file(src, "update_option('a', 'b', 'yes');")
    out = tmp_path / "out"
    assert main([str(src), "--parquet", str(out), "--workers", "2"]) == EXIT_WARNINGS
    assert (out / "diagnostics.parquet").exists()
    assert (out / "run_receipt.json").exists()
