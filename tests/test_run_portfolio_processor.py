import json
import os

import pandas as pd
import pytest

import run_portfolio_processor as runner

from conftest import build_statement

TS = "20250101_000000"


@pytest.fixture
def outdir(tmp_path, monkeypatch):
    path = tmp_path / "out"
    monkeypatch.setenv("OUTPUT_DIR", str(path))
    return path


def _run(*args, config="does-not-exist.json"):
    return runner.main([*args, "--config", config, "--timestamp", TS])


def test_single_file_writes_combined_report_only(write_statement, outdir, capsys):
    path = write_statement("夫.csv")
    assert _run(path) == 0
    names = sorted(os.listdir(outdir))
    assert len(names) == 6
    assert all(n.startswith(f"portfolio-combined-{TS}-") for n in names)
    out = capsys.readouterr().out
    assert "ポートフォリオ 1: 2,050,000円" in out
    assert "6 file(s) written" in out


def test_named_portfolios_and_combined(write_statement, outdir):
    wife = write_statement("b.csv", encoding="cp932")
    other = write_statement("c.csv")
    assert _run(f"妻={wife}", other, "--excel") == 0

    names = set(os.listdir(outdir))
    assert f"portfolio-妻-{TS}-summary.csv" in names
    assert f"portfolio-ポートフォリオ_2-{TS}-by_account.csv" in names
    assert f"portfolio-combined-{TS}.xlsx" in names
    combined = pd.read_csv(outdir / f"portfolio-combined-{TS}-by_holding.csv", encoding="utf-8-sig")
    toyota = combined[combined["name"] == "トヨタ自動車"]
    assert toyota.iloc[0]["value"] == 500000
    assert toyota.iloc[1]["id"] == "aggregated_トヨタ自動車_特定"


def test_inputs_from_config(write_statement, outdir, tmp_path):
    path = write_statement()
    config = tmp_path / "settings.json"
    config.write_text(
        json.dumps({"INPUT_FILES": [{"path": path, "name": "家族"}], "DEBUG": False}, ensure_ascii=False),
        encoding="utf-8",
    )
    assert _run(config=str(config)) == 0
    assert any(n.startswith("portfolio-combined-") for n in os.listdir(outdir))


def test_no_inputs(outdir, capsys):
    assert _run() == 2
    assert "No input files" in capsys.readouterr().err


def test_batch_failure_writes_nothing(write_statement, outdir, capsys):
    good = write_statement("good.csv")
    bad = write_statement("bad.csv", text="not a statement\n")
    assert _run(good, bad) == 3
    assert "Error (bad.csv)" in capsys.readouterr().err
    assert not outdir.exists()


def test_show_audit(write_statement, outdir, capsys):
    assert _run(write_statement(), "--show-audit") == 0
    assert "Extracted 3 holding(s)" in capsys.readouterr().out
