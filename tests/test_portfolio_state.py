"""Tests for batch loading and the state transitions."""

import asyncio

import pytest

from portfolio_logging import get_audit_log
from portfolio_models import MANUAL_ACCOUNT, Holding, NamedPortfolioData
from portfolio_aggregation import compose
from portfolio_state import (
    BatchLoadError,
    ManualEntryError,
    PortfolioState,
    add_holding,
    add_manual_holding,
    build_state,
    delete_holding,
    load_portfolios,
    new_manual_holding,
    update_holding,
)
from statement_parser import ColumnsMissing

from conftest import build_statement


@pytest.fixture
def state(make_holding):
    husband = NamedPortfolioData("夫", compose([
        make_holding("トヨタ", "特定", 200, 20, id="csv_a.csv_4"),
        make_holding("オルカン", "NISA", 300, 30, type="投資信託", id="csv_a.csv_5"),
    ]))
    wife = NamedPortfolioData("妻", compose([
        make_holding("トヨタ", "特定", 100, 10, id="csv_b.csv_4"),
    ]))
    return build_state([husband, wife])


# -------------------------- build_state --------------------------

def test_build_state_combines_all_portfolios(state):
    assert [p.name for p in state.individual] == ["夫", "妻"]
    assert state.combined.total_value == 600
    assert state.combined.total_gain_loss == 60
    toyota = state.combined.aggregated_holdings[0]
    assert toyota.name == "トヨタ"
    [entry] = toyota.entries
    assert entry.to_holding().id == "aggregated_トヨタ_特定"
    assert len(state.all_holdings) == 3


def test_empty_state():
    state = PortfolioState()
    assert state.individual == ()
    assert state.combined.total_value == 0


# -------------------------- manual entry --------------------------

def test_new_manual_holding():
    holding = new_manual_holding(" 普通預金 ", "現金", "1,200,000", "")
    assert holding.name == "普通預金"
    assert holding.account == MANUAL_ACCOUNT
    assert (holding.value, holding.gain_loss) == (1200000, 0)
    assert holding.id.startswith("manual_")


def test_manual_ids_are_unique():
    a = new_manual_holding("x", "現金", "1")
    b = new_manual_holding("x", "現金", "1")
    assert a.id != b.id


@pytest.mark.parametrize(
    "name, asset_type, value, gain_loss",
    [
        ("", "現金", "1", "0"),
        ("x", "", "1", "0"),
        ("x", "現金", "", "0"),
        ("x", "現金", "abc", "0"),
        ("x", "現金", "1", "abc"),
    ],
)
def test_new_manual_holding_rejects_bad_input(name, asset_type, value, gain_loss):
    with pytest.raises(ManualEntryError):
        new_manual_holding(name, asset_type, value, gain_loss)


def test_add_manual_holding_recomputes_portfolio_and_combined(state):
    new_state = add_manual_holding(state, 1, name="普通預金", type="現金", value=500)
    wife = new_state.individual[1]
    assert wife.data.total_value == 600
    assert [g.name for g in wife.data.by_account] == ["現金", "特定"]
    assert new_state.combined.total_value == 1100
    # the previous state is untouched
    assert state.individual[1].data.total_value == 100
    assert state.combined.total_value == 600


def test_add_holding_out_of_range(state, make_holding):
    with pytest.raises(IndexError):
        add_holding(state, 5, make_holding())


# -------------------------- update and delete --------------------------

def test_update_holding_replaces_by_id(state):
    edited = Holding("csv_a.csv_4", "国内株式", "トヨタ", "特定", 250, 70)
    new_state = update_holding(state, 0, edited)
    husband = new_state.individual[0]
    assert husband.data.total_value == 550
    assert husband.data.holdings[0] is edited
    assert new_state.combined.total_value == 650


def test_update_with_synthesized_id_is_a_no_op(state):
    synthesized = state.combined.aggregated_holdings[0].entries[0].to_holding()
    new_state = update_holding(state, 0, synthesized)
    assert new_state.individual == state.individual
    assert new_state.combined == state.combined


def test_delete_holding(state):
    new_state = delete_holding(state, 0, "csv_a.csv_5")
    assert [h.id for h in new_state.individual[0].data.holdings] == ["csv_a.csv_4"]
    assert new_state.combined.total_value == 300
    assert delete_holding(state, 0, "missing").combined == state.combined


def test_delete_holding_out_of_range(state):
    with pytest.raises(IndexError):
        delete_holding(state, -1, "csv_a.csv_4")


# -------------------------- load_portfolios --------------------------

def test_load_portfolios_in_order(write_statement):
    first = write_statement("夫.csv")
    second = write_statement("妻.csv", encoding="cp932")
    portfolios = asyncio.run(load_portfolios([("夫", first), second]))
    assert [p.name for p in portfolios] == ["夫", "ポートフォリオ 2"]
    assert portfolios[0].data.total_value == 2050000
    assert portfolios[1].data.holdings[0].id == "csv_妻.csv_4"
    assert any("Loaded 2 portfolio(s)" in msg for _, msg in get_audit_log())


def test_load_portfolios_fails_fast(write_statement):
    good = write_statement("good.csv")
    bad = write_statement("bad.csv", text=build_statement(header='"種別","銘柄"', rows=[]))
    never = write_statement("never.csv")
    with pytest.raises(BatchLoadError) as info:
        asyncio.run(load_portfolios([good, bad, never]))
    err = info.value
    assert err.file_name == "bad.csv"
    assert isinstance(err.cause, ColumnsMissing)
    assert str(err).startswith("Error (bad.csv): Required columns not found")
    messages = [msg for _, msg in get_audit_log()]
    assert any("good.csv" in m for m in messages)
    assert not any("never.csv" in m for m in messages)
    assert not any(m.startswith("Loaded") for m in messages)


def test_load_portfolios_missing_file(tmp_path):
    with pytest.raises(BatchLoadError) as info:
        asyncio.run(load_portfolios([str(tmp_path / "gone.csv")]))
    assert isinstance(info.value.cause, FileNotFoundError)


def test_load_portfolios_requires_entries():
    with pytest.raises(ValueError):
        asyncio.run(load_portfolios([]))


def test_load_portfolios_names_unnamed_pairs_by_position(write_statement):
    first = write_statement("a.csv")
    second = write_statement("b.csv")
    portfolios = asyncio.run(load_portfolios([(None, first), ("", second)]))
    assert [p.name for p in portfolios] == ["ポートフォリオ 1", "ポートフォリオ 2"]
