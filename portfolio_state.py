"""
portfolio_state.py

The portfolio state held by a front end, and the transitions that
replace it.  ``PortfolioState`` is owned by the caller; every function
here takes the current state and returns a new one, recomputing the
affected portfolio and then the combined view from the union of all
portfolios' holdings.  Nothing is updated in place.

Loading is a sequential, fail-fast batch: statements are parsed one at
a time in the order given, and the first failure aborts the batch
without returning any of the portfolios parsed before it.
"""

###############################################################################
# Metadata
#
# @file        portfolio_state.py
# @brief       Batch loading, manual entry and edit/delete transitions
# @created     2025-10-07
# @modified    2025-11-02
###############################################################################

from __future__ import annotations

import os
import time
import uuid
from dataclasses import dataclass, field, replace
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from portfolio_aggregation import recompute
from portfolio_logging import audit, get_logger
from portfolio_models import MANUAL_ACCOUNT, Holding, NamedPortfolioData, PortfolioData
from statement_parser import StatementFormat, StatementParseError, parse_amount, parse_file

logger = get_logger(__name__)

DEFAULT_PORTFOLIO_NAME = "ポートフォリオ {n}"

# (portfolio name or None, path) or a bare path
BatchEntry = Union[Tuple[Optional[str], str], str]


class BatchLoadError(Exception):
    """The first statement of a batch that could not be loaded.

    Attributes:
        file_name: Base name of the failing file.
        cause: The underlying error (usually a ``StatementParseError``).
    """

    def __init__(self, file_name: str, cause: Exception) -> None:
        super().__init__(f"Error ({file_name}): {cause}")
        self.file_name = file_name
        self.cause = cause


class ManualEntryError(ValueError):
    """Manual entry input was incomplete or not numeric."""


@dataclass(frozen=True)
class PortfolioState:
    individual: Tuple[NamedPortfolioData, ...] = ()
    combined: PortfolioData = field(default_factory=PortfolioData)

    @property
    def all_holdings(self) -> Tuple[Holding, ...]:
        return tuple(h for p in self.individual for h in p.data.holdings)


def build_state(portfolios: Iterable[NamedPortfolioData]) -> PortfolioState:
    """Wrap loaded portfolios and compose their combined view."""
    state = PortfolioState(individual=tuple(portfolios))
    return replace(state, combined=recompute(state.all_holdings))


def _replace_holdings(state: PortfolioState, index: int, holdings: Sequence[Holding]) -> PortfolioState:
    if not 0 <= index < len(state.individual):
        raise IndexError(f"No portfolio at index {index}")
    individual = list(state.individual)
    target = individual[index]
    individual[index] = replace(target, data=recompute(holdings))
    return build_state(individual)


def new_manual_holding(
    name: str,
    asset_type: str,
    value_text: str,
    gain_loss_text: Optional[str] = "0",
) -> Holding:
    """Validate manual-entry form input and build a holding from it.

    Name, type and value are required.  Amounts accept ``,`` grouping;
    an empty gain/loss counts as zero.

    Raises:
        ManualEntryError: On a missing field or a non-numeric amount.
    """
    name = (name or "").strip()
    asset_type = (asset_type or "").strip()
    if not name or not asset_type or not (value_text or "").strip():
        raise ManualEntryError("Name, type and value are required")
    value = parse_amount(value_text)
    gain_loss = parse_amount(gain_loss_text or "0")
    if value is None or gain_loss is None:
        raise ManualEntryError("Value and gain/loss must be numbers")
    return Holding(
        id=f"manual_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}",
        type=asset_type,
        name=name,
        account=MANUAL_ACCOUNT,
        value=value,
        gain_loss=gain_loss,
    )


def add_holding(state: PortfolioState, index: int, holding: Holding) -> PortfolioState:
    if not 0 <= index < len(state.individual):
        raise IndexError(f"No portfolio at index {index}")
    target = state.individual[index]
    logger.info(f"Adding {holding.name} ({holding.id}) to portfolio '{target.name}'")
    return _replace_holdings(state, index, list(target.data.holdings) + [holding])


def add_manual_holding(
    state: PortfolioState,
    index: int,
    *,
    name: str,
    type: str,
    value: int,
    gain_loss: int = 0,
) -> PortfolioState:
    """Append a manually entered holding to portfolio ``index``.

    The holding gets the manual-entry account and a fresh id.
    """
    holding = new_manual_holding(name, type, str(value), str(gain_loss))
    return add_holding(state, index, holding)


def update_holding(state: PortfolioState, index: int, holding: Holding) -> PortfolioState:
    """Replace the holding whose id matches ``holding.id``.

    Ids of synthesized sub-holdings never match a stored holding, so
    editing one leaves the portfolio unchanged.
    """
    if not 0 <= index < len(state.individual):
        raise IndexError(f"No portfolio at index {index}")
    current = state.individual[index].data.holdings
    if not any(h.id == holding.id for h in current):
        logger.warning(f"Holding {holding.id} not found in portfolio {index}; nothing updated")
    updated = [holding if h.id == holding.id else h for h in current]
    return _replace_holdings(state, index, updated)


def delete_holding(state: PortfolioState, index: int, holding_id: str) -> PortfolioState:
    if not 0 <= index < len(state.individual):
        raise IndexError(f"No portfolio at index {index}")
    current = state.individual[index].data.holdings
    return _replace_holdings(state, index, [h for h in current if h.id != holding_id])


def _normalise_entries(entries: Iterable[BatchEntry]) -> List[Tuple[str, str]]:
    normalised: List[Tuple[str, str]] = []
    for n, entry in enumerate(entries, start=1):
        if isinstance(entry, str):
            normalised.append((DEFAULT_PORTFOLIO_NAME.format(n=n), entry))
        else:
            name, path = entry
            normalised.append((name or DEFAULT_PORTFOLIO_NAME.format(n=n), path))
    return normalised


async def load_portfolios(
    entries: Iterable[BatchEntry],
    fmt: Optional[StatementFormat] = None,
) -> List[NamedPortfolioData]:
    """Parse a batch of statements, strictly in order, failing fast.

    Args:
        entries: ``(portfolio name, path)`` pairs or bare paths.  Bare
            paths and pairs without a name are named ``ポートフォリオ N``
            by position.
        fmt: Statement layout passed to the parser.

    Returns:
        One composed portfolio per entry.

    Raises:
        ValueError: If ``entries`` is empty.
        BatchLoadError: On the first file that cannot be read or parsed.
            Portfolios parsed before it are discarded.
    """
    batch = _normalise_entries(entries)
    if not batch:
        raise ValueError("No statement files given")
    results: List[NamedPortfolioData] = []
    for name, path in batch:
        file_name = os.path.basename(path)
        try:
            holdings = await parse_file(path, fmt=fmt)
        except (StatementParseError, OSError, ValueError) as exc:
            logger.error(f"Batch aborted at {file_name}: {exc}")
            raise BatchLoadError(file_name, exc) from exc
        results.append(NamedPortfolioData(name=name, data=recompute(holdings)))
    audit(f"Loaded {len(results)} portfolio(s): {', '.join(p.name for p in results)}")
    return results


__all__ = [
    "DEFAULT_PORTFOLIO_NAME",
    "BatchLoadError",
    "ManualEntryError",
    "PortfolioState",
    "build_state",
    "new_manual_holding",
    "add_holding",
    "add_manual_holding",
    "update_holding",
    "delete_holding",
    "load_portfolios",
]
