"""
portfolio_aggregation.py

Pure functions that compose a flat holdings list into the views shown
to the user: by security, by asset class and by account, plus totals
and the flat list used for the pie chart.  Nothing here performs I/O
or keeps state; ``compose`` is total over any list of ``Holding``
records, including the empty list, and calling it twice on the same
list yields equal results.

Aggregation is two-level.  Holdings are grouped by security name, and
each name group is re-split by account.  An account sub-group with a
single source holding keeps that holding (and its id, so it stays
editable); a sub-group with several is replaced by a synthesized
record whose id is derived from the name and account.

The module also carries the small percentage helpers the views need,
``gain_loss_rate`` and ``share_of_total``.
"""

###############################################################################
# Metadata
#
# @file        portfolio_aggregation.py
# @brief       Aggregation by name and composition of portfolio views
# @created     2025-10-07
# @modified    2025-11-02
###############################################################################

from __future__ import annotations

import logging
from typing import Callable, Dict, Iterable, List, Sequence

from portfolio_logging import get_logger
from portfolio_models import (
    AggregatedHolding,
    GroupedData,
    Holding,
    OriginalSubHolding,
    PieSlice,
    PortfolioData,
    SubHolding,
    SynthesizedSubHolding,
)

__all__ = [
    "ASSET_TYPE_ORDER",
    "UNKNOWN_TYPE_PRIORITY",
    "asset_type_priority",
    "effective_account_key",
    "aggregate_by_name",
    "group_holdings",
    "compose",
    "recompute",
    "gain_loss_rate",
    "share_of_total",
]

logger = get_logger(__name__)

# Display order of asset classes.  Types not listed here sort after the
# securities and before cash and crypto.
ASSET_TYPE_ORDER: Dict[str, int] = {
    "国内株式": 1,
    "米国株式": 2,
    "中国株式": 3,
    "アセアン株式": 4,
    "投資信託": 5,
    "金・プラチナ": 6,
    "国内債券": 7,
    "外国債券": 8,
    "現金": 98,
    "仮想通貨": 99,
}
UNKNOWN_TYPE_PRIORITY = 90


def asset_type_priority(asset_type: str) -> int:
    return ASSET_TYPE_ORDER.get(asset_type, UNKNOWN_TYPE_PRIORITY)


def effective_account_key(holding: Holding) -> str:
    """Bucket key for the by-account view.

    Manually entered holdings carry the manual-entry account label;
    they are bucketed under their asset type instead.
    """
    return holding.type if holding.is_manual else holding.account


def _partition(holdings: Iterable[Holding], key: Callable[[Holding], str]) -> Dict[str, List[Holding]]:
    # dicts keep insertion order, so groups come out in first-seen order
    groups: Dict[str, List[Holding]] = {}
    for holding in holdings:
        groups.setdefault(key(holding), []).append(holding)
    return groups


def _merge_account_group(name: str, asset_type: str, account: str, members: Sequence[Holding]) -> SubHolding:
    if len(members) == 1:
        return OriginalSubHolding(members[0])
    return SynthesizedSubHolding(
        name=name,
        type=asset_type,
        account=account,
        value=sum(h.value for h in members),
        gain_loss=sum(h.gain_loss for h in members),
    )


def aggregate_by_name(holdings: Sequence[Holding]) -> List[AggregatedHolding]:
    """Group holdings by security name and re-split each group by account.

    The group's type is taken from its first holding; other members are
    not checked against it.  Sub-holdings are sorted by value,
    descending.  Groups are sorted by asset type priority and then by
    total value, descending.  Both sorts are stable, so equal keys keep
    their first-appearance order.

    Args:
        holdings: Any list of holdings.

    Returns:
        One ``AggregatedHolding`` per distinct name.
    """
    result: List[AggregatedHolding] = []
    for name, members in _partition(holdings, lambda h: h.name).items():
        asset_type = members[0].type
        entries = [
            _merge_account_group(name, asset_type, account, account_members)
            for account, account_members in _partition(members, lambda h: h.account).items()
        ]
        entries.sort(key=lambda e: e.value, reverse=True)
        result.append(
            AggregatedHolding(
                name=name,
                type=asset_type,
                total_value=sum(h.value for h in members),
                total_gain_loss=sum(h.gain_loss for h in members),
                entries=tuple(entries),
            )
        )
    result.sort(key=lambda a: (asset_type_priority(a.type), -a.total_value))
    return result


def group_holdings(holdings: Sequence[Holding], key: Callable[[Holding], str]) -> List[GroupedData]:
    """Partition holdings by ``key`` and aggregate each partition by name.

    Groups are sorted by their total value, descending.
    """
    grouped = [
        GroupedData(
            name=group_name,
            value=sum(h.value for h in members),
            gain_loss=sum(h.gain_loss for h in members),
            aggregated_holdings=tuple(aggregate_by_name(members)),
        )
        for group_name, members in _partition(holdings, key).items()
    ]
    grouped.sort(key=lambda g: g.value, reverse=True)
    return grouped


def compose(holdings: Sequence[Holding]) -> PortfolioData:
    """Compose every view of a portfolio from its holdings.

    Args:
        holdings: The complete, ungrouped holdings list of one portfolio
            (or the union of several).  It is kept on the result so the
            caller can recompute after a mutation.

    Returns:
        A new ``PortfolioData``.
    """
    holdings = tuple(holdings)
    aggregated = aggregate_by_name(holdings)
    by_asset_class = group_holdings(holdings, lambda h: h.type)
    by_account = group_holdings(holdings, effective_account_key)
    pie = sorted(
        (PieSlice(name=a.name, value=a.total_value, type=a.type) for a in aggregated),
        key=lambda s: s.value,
        reverse=True,
    )
    data = PortfolioData(
        total_value=sum(h.value for h in holdings),
        total_gain_loss=sum(h.gain_loss for h in holdings),
        aggregated_holdings=tuple(aggregated),
        by_account=tuple(by_account),
        by_asset_class=tuple(by_asset_class),
        by_holding_for_pie=tuple(pie),
        holdings=holdings,
    )
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(
            f"Composed portfolio: {len(holdings)} holding(s), {len(aggregated)} security(ies), "
            f"{len(by_asset_class)} asset class(es), {len(by_account)} account(s), total={data.total_value}"
        )
    return data


def recompute(holdings: Sequence[Holding]) -> PortfolioData:
    """Recompute a portfolio from scratch after any mutation.

    There is no incremental path: the full list is composed again.
    """
    return compose(holdings)


def gain_loss_rate(value: int, gain_loss: int) -> float:
    """Return gain/loss as a percentage of the principal.

    The principal is ``value - gain_loss``.  When it is zero the rate is
    100.0 for a gain and 0.0 otherwise.

    Example:
        >>> gain_loss_rate(150, 50)
        50.0
    """
    principal = value - gain_loss
    if principal == 0:
        return 100.0 if gain_loss > 0 else 0.0
    return gain_loss / principal * 100


def share_of_total(value: int, total: int) -> float:
    """Return ``value`` as a percentage of ``total`` (0.0 for a zero total)."""
    if total == 0:
        return 0.0
    return value / total * 100
