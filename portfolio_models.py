"""
portfolio_models.py

Immutable record types shared by the statement parser, the aggregation
engine and the portfolio state.  Amounts are signed integers in yen;
there are no fractional minor units in the source statements.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Tuple, Union

# Account label given to holdings entered by hand rather than read from a
# statement.  In the by-account view such holdings are bucketed by type.
MANUAL_ACCOUNT = "手入力"


@dataclass(frozen=True)
class Holding:
    """One position in one account.

    ``id`` is the identity used by edit and delete.  Statement rows get
    ``csv_<file name>_<line index>``; manual entries get ``manual_...``.
    """

    id: str
    type: str
    name: str
    account: str
    value: int
    gain_loss: int

    @property
    def is_manual(self) -> bool:
        return self.account == MANUAL_ACCOUNT


@dataclass(frozen=True)
class OriginalSubHolding:
    """An account sub-group that holds exactly one source holding.

    The source record is kept as-is so that its id can be targeted by a
    later edit or delete.
    """

    holding: Holding

    @property
    def editable(self) -> bool:
        return True

    @property
    def account(self) -> str:
        return self.holding.account

    @property
    def value(self) -> int:
        return self.holding.value

    def to_holding(self) -> Holding:
        return self.holding


@dataclass(frozen=True)
class SynthesizedSubHolding:
    """An account sub-group merged from two or more source holdings."""

    name: str
    type: str
    account: str
    value: int
    gain_loss: int

    @property
    def editable(self) -> bool:
        return False

    @property
    def id(self) -> str:
        return f"aggregated_{self.name}_{self.account}"

    def to_holding(self) -> Holding:
        return Holding(
            id=self.id,
            type=self.type,
            name=self.name,
            account=self.account,
            value=self.value,
            gain_loss=self.gain_loss,
        )


SubHolding = Union[OriginalSubHolding, SynthesizedSubHolding]


@dataclass(frozen=True)
class AggregatedHolding:
    """All holdings sharing a security name, re-split by account."""

    name: str
    type: str
    total_value: int
    total_gain_loss: int
    entries: Tuple[SubHolding, ...] = ()

    @property
    def sub_holdings(self) -> Tuple[Holding, ...]:
        return tuple(entry.to_holding() for entry in self.entries)


@dataclass(frozen=True)
class GroupedData:
    """A top-level bucket (asset class or effective account)."""

    name: str
    value: int
    gain_loss: int
    aggregated_holdings: Tuple[AggregatedHolding, ...] = ()


@dataclass(frozen=True)
class PieSlice:
    name: str
    value: int
    type: str


@dataclass(frozen=True)
class PortfolioData:
    """The composed view of one portfolio, or of several combined."""

    total_value: int = 0
    total_gain_loss: int = 0
    aggregated_holdings: Tuple[AggregatedHolding, ...] = ()
    by_account: Tuple[GroupedData, ...] = ()
    by_asset_class: Tuple[GroupedData, ...] = ()
    by_holding_for_pie: Tuple[PieSlice, ...] = ()
    holdings: Tuple[Holding, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class NamedPortfolioData:
    name: str
    data: PortfolioData


__all__ = [
    "MANUAL_ACCOUNT",
    "Holding",
    "OriginalSubHolding",
    "SynthesizedSubHolding",
    "SubHolding",
    "AggregatedHolding",
    "GroupedData",
    "PieSlice",
    "PortfolioData",
    "NamedPortfolioData",
]
