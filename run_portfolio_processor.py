#!/usr/bin/env python3
"""
run_portfolio_processor.py

Caller/orchestrator for the statement parser and the portfolio views.

- Loads one or more holdings statements as a sequential, fail-fast batch
- Names each portfolio (``name=path`` on the command line, ``name`` in the
  config, or ``ポートフォリオ N`` by position)
- Composes every portfolio and the combined view of all of them
- Writes the views as timestamped CSV files (optionally one XLSX workbook
  per portfolio), one timestamp for the whole run
- Prints a short summary with totals and gain/loss rates

Usage::

    python run_portfolio_processor.py [<name>=]<input-file> [...] [--config CONFIG] [--outdir OUTDIR]
                                      [--timestamp TIMESTAMP] [--excel] [--debug] [--show-audit]

If no <input-file> arguments are provided, the script uses INPUT_FILES from the config.

Configuration keys considered (default_settings.json):
- OUTPUT_DIR
- DEBUG
- COLUMN_MAPPING: path to the header synonym JSON
- ENCODINGS: candidate encodings, in order
- EXCEL_REPORT
- INPUT_FILES: list of {"path": str, "name": str|null} or plain paths
"""
from __future__ import annotations

import argparse
import asyncio
import datetime as _dt
import json
import os
import sys
from typing import Any, Dict, List, Optional, Tuple

from portfolio_aggregation import gain_loss_rate
from portfolio_export import write_report
from portfolio_logging import configure_logging, get_audit_log
from portfolio_state import BatchLoadError, PortfolioState, build_state, load_portfolios
from statement_parser import load_statement_format

DEFAULT_CONFIG = "config/default_settings.json"
DEFAULT_COLUMN_MAPPING = "config/column_mapping.json"


# -------------------------- helpers --------------------------

def _load_settings(path: str) -> Dict[str, Any]:
    if not os.path.isfile(path):
        return {}
    with open(path, "r", encoding="utf-8") as fh:
        return json.load(fh)


def _apply_env_from_settings(settings: Dict[str, Any]) -> None:
    # Flatten a few top-level values into env for the library modules
    for k in ("OUTPUT_DIR", "DEBUG"):
        if k in settings and settings[k] is not None:
            os.environ[k] = str(settings[k]).lower() if isinstance(settings[k], bool) else str(settings[k])


def _split_arg(arg: str) -> Tuple[Optional[str], str]:
    # "name=path"; a bare path may itself contain "=" only if it exists as given
    if "=" in arg and not os.path.exists(arg):
        name, path = arg.split("=", 1)
        return (name.strip() or None), path
    return None, arg


def _normalize_input_entries(args_files: List[str] | None, settings: Dict[str, Any]) -> List[Tuple[Optional[str], str]]:
    raw: List[Tuple[Optional[str], Any]] = []
    if args_files:
        raw = [_split_arg(f) for f in args_files]
    else:
        cfg_files = settings.get("INPUT_FILES", [])
        if isinstance(cfg_files, list):
            for entry in cfg_files:
                if isinstance(entry, dict):
                    raw.append((entry.get("name"), entry.get("path")))
                else:
                    raw.append((None, entry))
    entries: List[Tuple[Optional[str], str]] = []
    for name, path in raw:
        # Filter out invalid
        if not isinstance(path, str) or not path:
            continue
        # unnamed entries are numbered by load_portfolios
        entries.append((name, path))
    return entries


def _summary_line(label: str, total_value: int, total_gain_loss: int) -> str:
    rate = gain_loss_rate(total_value, total_gain_loss)
    return f"{label}: {total_value:,}円  {total_gain_loss:+,}円 ({rate:.2f}%)"


def _print_summary(state: PortfolioState) -> None:
    for portfolio in state.individual:
        print(_summary_line(portfolio.name, portfolio.data.total_value, portfolio.data.total_gain_loss))
    print(_summary_line("合計", state.combined.total_value, state.combined.total_gain_loss))
    for group in state.combined.by_asset_class:
        print(f"  {group.name}: {group.value:,}円 ({gain_loss_rate(group.value, group.gain_loss):.2f}%)")


# -------------------------- main --------------------------

def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Asset Palette portfolio processor")
    parser.add_argument("input_files", nargs="*", help="Statement CSV files as PATH or NAME=PATH. If omitted, uses INPUT_FILES from config.")
    parser.add_argument("--config", default=DEFAULT_CONFIG, help="Path to settings JSON")
    parser.add_argument("--outdir", default=None, help="Override output directory")
    parser.add_argument("--timestamp", default=None, help="Override timestamp for output file names")
    parser.add_argument("--excel", action="store_true", help="Also write an XLSX workbook per portfolio")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--show-audit", action="store_true", help="Print audit log at the end")

    args = parser.parse_args(argv)

    # Load and apply settings
    settings = _load_settings(args.config)
    if args.outdir:
        settings["OUTPUT_DIR"] = args.outdir
    if args.debug:
        settings["DEBUG"] = True
    _apply_env_from_settings(settings)
    configure_logging(debug=bool(settings.get("DEBUG")))

    file_entries = _normalize_input_entries(args.input_files, settings)
    if not file_entries:
        sys.stderr.write("No input files provided or configured.\n")
        return 2

    fmt = load_statement_format(
        settings.get("COLUMN_MAPPING", DEFAULT_COLUMN_MAPPING),
        encodings=settings.get("ENCODINGS"),
    )
    try:
        portfolios = asyncio.run(load_portfolios(file_entries, fmt=fmt))
    except BatchLoadError as exc:
        sys.stderr.write(f"{exc}\n")
        return 3

    state = build_state(portfolios)

    output_dir = settings.get("OUTPUT_DIR") or os.environ.get("OUTPUT_DIR") or "./out"
    ts = args.timestamp or _dt.datetime.now().strftime("%Y%m%d_%H%M%S")  # single timestamp across files
    excel = args.excel or bool(settings.get("EXCEL_REPORT", False))

    written: List[str] = []
    if len(state.individual) > 1:
        for portfolio in state.individual:
            paths = write_report(portfolio.data, output_dir, ts, label=portfolio.name, excel=excel)
            written.extend(paths.values())
    paths = write_report(state.combined, output_dir, ts, label="combined", excel=excel)
    written.extend(paths.values())

    _print_summary(state)

    if args.show_audit:
        for ts, msg in get_audit_log():
            print(f"[{ts}] {msg}")

    print(f"Portfolio processed. {len(written)} file(s) written to {output_dir}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
