"""
cashflows.py — Cash-flow normalization, NAV resolution and date-based IRR.

Sign conventions
----------------
IRR flows are seen from the LP: contributions are negative, distributions
positive. NAV roll-forward is seen from the fund's assets: a contribution
after the last mark adds to NAV, a distribution subtracts from it. Both
describe the same movement of capital, so the terminal NAV flow and the
individual flows agree.

Depends only on: config.py, dates.py, fund.py, metrics.py
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Iterable, Mapping, NamedTuple, Optional, Union

import numpy as np

from pe_metrics.config import DEFAULT_CONFIG, EngineConfig
from pe_metrics.dates import on_or_before, parse_date
from pe_metrics.fund import CashFlowKind, FundSnapshot
from pe_metrics.metrics import calc_irr, calc_moic

logger = logging.getLogger(__name__)


class DatedFlow(NamedTuple):
    """A signed cash flow on a calendar date."""

    date: date
    amount: float


FlowLike = Union[DatedFlow, Mapping[str, Any], tuple]


@dataclass
class NormalizedFlows:
    flows: list[DatedFlow] = field(default_factory=list)
    skipped: int = 0  # records dropped for malformed dates


@dataclass(frozen=True)
class ResolvedNav:
    amount: float
    nav_date: Optional[date]
    adjusted: bool = False
    skipped: int = 0


# ---------------------------------------------------------------------------
# Normalizer
# ---------------------------------------------------------------------------

def normalize_cash_flows(
    fund: FundSnapshot,
    cutoff: Optional[date] = None,
) -> NormalizedFlows:
    """
    Signed, chronologically sorted flows dated on or before ``cutoff``.

    Contributions become negative, distributions positive, adjustments are
    dropped. Records with malformed dates are counted in ``skipped``.
    """
    result = NormalizedFlows()
    for cf in fund.cash_flows:
        cf_date = parse_date(cf.date)
        if cf_date is None:
            result.skipped += 1
            continue
        if not on_or_before(cf_date, cutoff) or cf.kind is CashFlowKind.ADJUSTMENT:
            continue
        magnitude = abs(cf.amount)
        signed = -magnitude if cf.kind is CashFlowKind.CONTRIBUTION else magnitude
        result.flows.append(DatedFlow(cf_date, signed))
    result.flows.sort(key=lambda f: f.date)
    return result


def total_by_kind(
    fund: FundSnapshot,
    kind: CashFlowKind,
    cutoff: Optional[date] = None,
) -> float:
    """Sum of magnitudes of one kind of flow with a valid date on or before cutoff."""
    total = 0.0
    for cf in fund.cash_flows:
        if cf.kind is not kind:
            continue
        cf_date = parse_date(cf.date)
        if cf_date is not None and on_or_before(cf_date, cutoff):
            total += abs(cf.amount)
    return total


def outstanding_commitment(fund: FundSnapshot, cutoff: Optional[date] = None) -> float:
    """
    Unfunded commitment, floored at zero.

    Contributions flagged ``affects_commitment`` consume capacity; flagged
    distributions are recallable and restore it. Adjustments always reduce
    it by their magnitude, whatever their flag.
    """
    outstanding = float(fund.commitment)
    for cf in fund.cash_flows:
        cf_date = parse_date(cf.date)
        if cf_date is None or not on_or_before(cf_date, cutoff):
            continue
        magnitude = abs(cf.amount)
        if cf.kind is CashFlowKind.ADJUSTMENT:
            outstanding -= magnitude
        elif not cf.affects_commitment:
            continue
        elif cf.kind is CashFlowKind.CONTRIBUTION:
            outstanding -= magnitude
        else:
            outstanding += magnitude
    return max(0.0, outstanding)


def vintage_year(fund: FundSnapshot) -> Optional[int]:
    """Calendar year of the earliest validly dated contribution."""
    dates = [
        d
        for d in (
            parse_date(cf.date)
            for cf in fund.cash_flows
            if cf.kind is CashFlowKind.CONTRIBUTION
        )
        if d is not None
    ]
    return min(dates).year if dates else None


# ---------------------------------------------------------------------------
# NAV resolver
# ---------------------------------------------------------------------------

def resolve_nav(fund: FundSnapshot, cutoff: Optional[date] = None) -> ResolvedNav:
    """
    Latest valuation on or before ``cutoff``, rolled forward.

    Flows dated strictly after the valuation and on or before the cutoff
    adjust it: contributions add, distributions subtract, adjustments are
    ignored. Negative results are returned as-is.
    """
    latest: Optional[tuple[date, float]] = None
    skipped = 0
    for nav in fund.valuations:
        nav_date = parse_date(nav.date)
        if nav_date is None:
            skipped += 1
            continue
        if not on_or_before(nav_date, cutoff):
            continue
        # strict comparison keeps the first-encountered mark on ties
        if latest is None or nav_date > latest[0]:
            latest = (nav_date, float(nav.amount))

    if latest is None:
        return ResolvedNav(amount=0.0, nav_date=None, skipped=skipped)

    nav_date, amount = latest
    adjusted = False
    for cf in fund.cash_flows:
        if cf.kind is CashFlowKind.ADJUSTMENT:
            continue
        cf_date = parse_date(cf.date)
        if cf_date is None or cf_date <= nav_date or not on_or_before(cf_date, cutoff):
            continue
        if cf.kind is CashFlowKind.CONTRIBUTION:
            amount += abs(cf.amount)
        else:
            amount -= abs(cf.amount)
        adjusted = True

    return ResolvedNav(amount=amount, nav_date=nav_date, adjusted=adjusted, skipped=skipped)


def with_terminal_nav(flows: Iterable[DatedFlow], nav: ResolvedNav) -> list[DatedFlow]:
    """Append the resolved NAV as a terminal flow (zero included) and sort."""
    result = list(flows)
    if nav.nav_date is not None:
        result.append(DatedFlow(nav.nav_date, nav.amount))
    result.sort(key=lambda f: f.date)
    return result


def flows_for_irr(fund: FundSnapshot, cutoff: Optional[date] = None) -> list[DatedFlow]:
    """Normalized flows plus the terminal NAV entry, chronologically."""
    normalized = normalize_cash_flows(fund, cutoff)
    return with_terminal_nav(normalized.flows, resolve_nav(fund, cutoff))


# ---------------------------------------------------------------------------
# Date-based primitives
# ---------------------------------------------------------------------------

def _coerce_flows(flows: Iterable[FlowLike]) -> list[DatedFlow]:
    result = []
    for flow in flows:
        if isinstance(flow, Mapping):
            raw_date, amount = flow.get("date"), flow.get("amount")
        else:
            raw_date, amount = flow[0], flow[1]
        flow_date = parse_date(raw_date)
        if flow_date is None or amount is None:
            logger.debug("Skipping flow with unusable date or amount: %r", flow)
            continue
        result.append(DatedFlow(flow_date, float(amount)))
    result.sort(key=lambda f: f.date)
    return result


def calculate_irr(
    flows: Iterable[FlowLike],
    config: Optional[EngineConfig] = None,
) -> Optional[float]:
    """
    Annualized IRR of dated flows, or None when undefined or unreliable.

    Accepts ``{"date", "amount"}`` mappings or ``(date, amount)`` pairs in any
    order. Time is measured in days from the first flow over
    ``config.days_per_year``. Returns None with fewer than two flows, no sign
    change, a span shorter than ``config.irr_min_days``, no convergence, or a
    rate outside the plausibility bounds.
    """
    config = config or DEFAULT_CONFIG
    dated = _coerce_flows(flows)
    if len(dated) < 2:
        return None

    span = (dated[-1].date - dated[0].date).days
    if span < config.irr_min_days:
        logger.debug("IRR undefined: span of %d days is below %d", span, config.irr_min_days)
        return None

    first = dated[0].date
    cashflows = np.array([f.amount for f in dated], dtype=np.float64)
    periods = np.array(
        [(f.date - first).days / config.days_per_year for f in dated], dtype=np.float64
    )
    irr = calc_irr(
        cashflows,
        periods=periods,
        guess=config.irr_guess,
        tol=config.irr_precision,
        maxiter=config.irr_max_iterations,
        min_rate=config.irr_min_rate,
        max_rate=config.irr_max_rate,
    )
    if irr is None:
        logger.debug("IRR undefined for %d flows spanning %d days", len(dated), span)
    return irr


def calculate_moic(flows: Iterable[FlowLike]) -> Optional[float]:
    """
    Flow-based multiple: positive inflows over the magnitude of outflows.

    None when there are no outflows. A negative terminal NAV in ``flows``
    counts as an outflow; the engine's MOIC comes from
    :func:`~pe_metrics.metrics.calc_multiples`, which keeps it as negative value.
    """
    dated = _coerce_flows(flows)
    if not dated:
        return None
    contributions = sum(-f.amount for f in dated if f.amount < 0)
    distributions = sum(f.amount for f in dated if f.amount > 0)
    return calc_moic(contributions, distributions)
