"""
portfolio_export.py

Conversion of composed portfolio views into pandas DataFrames, and the
writer that saves them as timestamped CSV files (and, on request, as a
single Excel workbook with one sheet per view).  The frames add the
display columns the views need: gain/loss rate, share of the portfolio
total and chart colour.

Output files follow the ``portfolio-<label>-<timestamp>-<view>.csv``
naming convention inside the output directory, which is created if it
does not exist.  ``OUTPUT_DIR`` in the environment overrides the
directory given by the caller.
"""

###############################################################################
# Metadata
#
# @file        portfolio_export.py
# @brief       DataFrame views and CSV/XLSX report writer
# @created     2025-10-07
# @modified    2025-11-02
###############################################################################

from __future__ import annotations

import datetime as _dt
import os
import re
from typing import Dict, Iterable, Optional

import pandas as pd

from palette import color_for, general_color
from portfolio_aggregation import gain_loss_rate, share_of_total
from portfolio_logging import audit, get_logger
from portfolio_models import AggregatedHolding, GroupedData, PortfolioData

logger = get_logger(__name__)

HOLDING_COLUMNS = ["id", "type", "name", "account", "value", "gain_loss"]
AGGREGATED_COLUMNS = [
    "name", "type", "account", "value", "gain_loss", "gain_loss_rate", "share", "editable", "id",
]
GROUP_COLUMNS = ["group", "value", "gain_loss", "gain_loss_rate", "share", "color", "securities"]
PIE_COLUMNS = ["name", "type", "value", "share", "color"]


def holdings_frame(data: PortfolioData) -> pd.DataFrame:
    """The raw, ungrouped holdings of a portfolio."""
    rows = [[getattr(h, col) for col in HOLDING_COLUMNS] for h in data.holdings]
    return pd.DataFrame(rows, columns=HOLDING_COLUMNS)


def aggregated_frame(aggregated: Iterable[AggregatedHolding], total_value: int) -> pd.DataFrame:
    """One row per security followed by one row per account sub-holding.

    Security rows have an empty ``account``; sub-holding rows carry the
    account, the holding id and whether that id can be edited.
    """
    rows = []
    for agg in aggregated:
        rows.append([
            agg.name,
            agg.type,
            "",
            agg.total_value,
            agg.total_gain_loss,
            round(gain_loss_rate(agg.total_value, agg.total_gain_loss), 2),
            round(share_of_total(agg.total_value, total_value), 1),
            False,
            "",
        ])
        for entry in agg.entries:
            sub = entry.to_holding()
            rows.append([
                sub.name,
                sub.type,
                sub.account,
                sub.value,
                sub.gain_loss,
                round(gain_loss_rate(sub.value, sub.gain_loss), 2),
                round(share_of_total(sub.value, total_value), 1),
                entry.editable,
                sub.id,
            ])
    return pd.DataFrame(rows, columns=AGGREGATED_COLUMNS)


def groups_frame(groups: Iterable[GroupedData], total_value: int, *, by_type: bool) -> pd.DataFrame:
    """One row per asset-class or account group.

    Asset-class groups use the fixed type colours; account groups are
    coloured from the general palette unless the key is itself a type
    (manual entries are bucketed by type).
    """
    rows = []
    for group in groups:
        rows.append([
            group.name,
            group.value,
            group.gain_loss,
            round(gain_loss_rate(group.value, group.gain_loss), 2),
            round(share_of_total(group.value, total_value), 1),
            color_for(group.name) if by_type else general_color(group.name),
            len(group.aggregated_holdings),
        ])
    return pd.DataFrame(rows, columns=GROUP_COLUMNS)


def pie_frame(data: PortfolioData) -> pd.DataFrame:
    rows = [
        [s.name, s.type, s.value, round(share_of_total(s.value, data.total_value), 1), color_for(s.type)]
        for s in data.by_holding_for_pie
    ]
    return pd.DataFrame(rows, columns=PIE_COLUMNS)


def summary_frame(data: PortfolioData) -> pd.DataFrame:
    return pd.DataFrame([{
        "total_value": data.total_value,
        "total_gain_loss": data.total_gain_loss,
        "gain_loss_rate": round(gain_loss_rate(data.total_value, data.total_gain_loss), 2),
        "holdings": len(data.holdings),
        "securities": len(data.aggregated_holdings),
    }])


def report_frames(data: PortfolioData) -> Dict[str, pd.DataFrame]:
    """All views of one portfolio keyed by view name, in sheet order."""
    return {
        "summary": summary_frame(data),
        "by_holding": aggregated_frame(data.aggregated_holdings, data.total_value),
        "by_asset_class": groups_frame(data.by_asset_class, data.total_value, by_type=True),
        "by_account": groups_frame(data.by_account, data.total_value, by_type=False),
        "pie": pie_frame(data),
        "holdings": holdings_frame(data),
    }


def _safe_label(label: str) -> str:
    return re.sub(r"[\\/:*?\"<>|\s]+", "_", label.strip()) or "portfolio"


def write_report(
    data: PortfolioData,
    output_dir: str = "./out",
    timestamp: Optional[str] = None,
    *,
    label: str = "combined",
    excel: bool = False,
) -> Dict[str, str]:
    """Write every view of ``data`` to disk.

    Args:
        data: The composed portfolio.
        output_dir: Directory for the report files.
        timestamp: Optional timestamp string.  If omitted the current
            local time is used in YYYYMMDD_HHMMSS format.

    Keyword Args:
        label: Portfolio label used in file names.
        excel: Also write an ``.xlsx`` workbook with one sheet per view.

    Returns:
        View name to written path; the workbook is keyed ``xlsx``.
    """
    out_dir_env = os.getenv("OUTPUT_DIR")
    if out_dir_env:
        output_dir = out_dir_env
    try:
        os.makedirs(output_dir, exist_ok=True)
    except OSError as exc:
        logger.error(f"Failed to create output directory {output_dir}: {exc}")
        raise
    if timestamp is None:
        timestamp = _dt.datetime.now().strftime("%Y%m%d_%H%M%S")
    prefix = os.path.join(output_dir, f"portfolio-{_safe_label(label)}-{timestamp}")
    frames = report_frames(data)
    paths: Dict[str, str] = {}
    try:
        for view, frame in frames.items():
            path = f"{prefix}-{view}.csv"
            # utf-8-sig so spreadsheet tools detect the Japanese text
            frame.to_csv(path, index=False, encoding="utf-8-sig")
            paths[view] = path
        if excel:
            xlsx_path = f"{prefix}.xlsx"
            with pd.ExcelWriter(xlsx_path, engine="openpyxl") as writer:
                for view, frame in frames.items():
                    frame.to_excel(writer, sheet_name=view, index=False)
            paths["xlsx"] = xlsx_path
    except OSError as exc:
        logger.error(f"Failed to write report for {label}: {exc}")
        raise
    audit(f"Wrote {len(paths)} report file(s) for {label} to {output_dir}")
    return paths


__all__ = [
    "holdings_frame",
    "aggregated_frame",
    "groups_frame",
    "pie_frame",
    "summary_frame",
    "report_frames",
    "write_report",
]
