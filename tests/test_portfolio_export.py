import os

import pandas as pd
import pytest

from portfolio_aggregation import compose
from portfolio_export import (
    AGGREGATED_COLUMNS,
    GROUP_COLUMNS,
    aggregated_frame,
    groups_frame,
    report_frames,
    summary_frame,
    write_report,
)
from portfolio_models import MANUAL_ACCOUNT


@pytest.fixture
def data(make_holding):
    return compose([
        make_holding("トヨタ", "特定", 150, 50, id="csv_s.csv_4"),
        make_holding("トヨタ", "特定", 50, 0, id="csv_s.csv_5"),
        make_holding("オルカン", "NISA", 300, 100, type="投資信託", id="csv_s.csv_6"),
        make_holding("預金", MANUAL_ACCOUNT, 500, 0, type="現金", id="manual_1_abcd"),
    ])


def test_summary_frame(data):
    row = summary_frame(data).iloc[0]
    assert row["total_value"] == 1000
    assert row["total_gain_loss"] == 150
    assert row["gain_loss_rate"] == pytest.approx(17.65)
    assert row["securities"] == 3


def test_aggregated_frame_lists_security_then_accounts(data):
    frame = aggregated_frame(data.aggregated_holdings, data.total_value)
    assert list(frame.columns) == AGGREGATED_COLUMNS
    assert list(frame["name"]) == ["トヨタ", "トヨタ", "オルカン", "オルカン", "預金", "預金"]
    toyota_sub = frame.iloc[1]
    assert toyota_sub["id"] == "aggregated_トヨタ_特定"
    assert not toyota_sub["editable"]
    assert toyota_sub["gain_loss_rate"] == pytest.approx(33.33)
    assert frame.iloc[3]["editable"]
    assert frame.iloc[0]["share"] == pytest.approx(20.0)


def test_groups_frame_colours(data):
    by_type = groups_frame(data.by_asset_class, data.total_value, by_type=True)
    assert list(by_type.columns) == GROUP_COLUMNS
    assert by_type.iloc[0]["group"] == "現金"
    assert by_type.iloc[0]["color"] == "#6b7280"

    by_account = groups_frame(data.by_account, data.total_value, by_type=False)
    assert list(by_account["group"]) == ["現金", "NISA", "特定"]
    assert by_account["share"].sum() == pytest.approx(100.0)


def test_report_frames_views(data):
    assert list(report_frames(data)) == [
        "summary", "by_holding", "by_asset_class", "by_account", "pie", "holdings",
    ]


def test_write_report_csv_and_xlsx(data, tmp_path, monkeypatch):
    monkeypatch.delenv("OUTPUT_DIR", raising=False)
    out = tmp_path / "reports"
    paths = write_report(data, str(out), "20250101_000000", label="家計 全体", excel=True)

    assert sorted(paths) == sorted(
        ["summary", "by_holding", "by_asset_class", "by_account", "pie", "holdings", "xlsx"]
    )
    assert os.path.basename(paths["summary"]) == "portfolio-家計_全体-20250101_000000-summary.csv"
    holdings = pd.read_csv(paths["holdings"], encoding="utf-8-sig")
    assert list(holdings["id"]) == ["csv_s.csv_4", "csv_s.csv_5", "csv_s.csv_6", "manual_1_abcd"]

    sheets = pd.read_excel(paths["xlsx"], sheet_name=None, engine="openpyxl")
    assert list(sheets) == list(report_frames(data))


def test_write_report_env_overrides_output_dir(data, tmp_path, monkeypatch):
    monkeypatch.setenv("OUTPUT_DIR", str(tmp_path / "env"))
    paths = write_report(data, str(tmp_path / "ignored"), "ts")
    assert os.path.dirname(paths["pie"]) == str(tmp_path / "env")
    assert "xlsx" not in paths
    assert not (tmp_path / "ignored").exists()
