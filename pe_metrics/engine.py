"""
engine.py — Metrics aggregation and the cached entry points.

A :class:`MetricsEngine` is constructed once by the host and owns the data
version clock and every cache tier; nothing here is process-global.

    engine = MetricsEngine()
    metrics = engine.compute_metrics_cached(fund, cutoff="2024-06-30")
    ...
    engine.bump_data_version()   # after every create/update/delete/import

Depends on: cache.py, cashflows.py, config.py, dates.py, fund.py, metrics.py
"""
from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass
from datetime import date
from typing import Any, Callable, Iterable, Optional

import pandas as pd

from pe_metrics.cache import MetricsCacheLayer
from pe_metrics.cashflows import (
    DatedFlow,
    NormalizedFlows,
    ResolvedNav,
    calculate_irr,
    flows_for_irr,
    normalize_cash_flows,
    outstanding_commitment,
    resolve_nav,
    total_by_kind,
    vintage_year,
    with_terminal_nav,
)
from pe_metrics.config import DEFAULT_CONFIG, EngineConfig
from pe_metrics.dates import DateLike, coerce_cutoff
from pe_metrics.fund import (
    CashFlowKind,
    FundSnapshot,
    InvalidFundError,
    consolidate,
    constituent_ids,
    validate_snapshot,
)
from pe_metrics.metrics import calc_multiples

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FundMetrics:
    """Point-in-time metrics for one fund. Undefined ratios are None."""

    commitment: float
    called_capital: float
    distributions: float
    nav: float
    nav_date: Optional[date]
    irr: Optional[float]
    moic: Optional[float]
    dpi: Optional[float]
    rvpi: Optional[float]
    tvpi: Optional[float]
    outstanding_commitment: float
    vintage_year: Optional[int]
    nav_adjusted: bool = False
    skipped_cash_flows: int = 0
    skipped_valuations: int = 0

    @property
    def investment_return(self) -> float:
        return self.distributions + self.nav - self.called_capital

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["investment_return"] = self.investment_return
        return data


@dataclass(frozen=True)
class PortfolioTotals:
    """Summed figures across funds with IRR/MOIC over their combined flows."""

    fund_count: int
    commitment: float
    called_capital: float
    distributions: float
    nav: float
    outstanding_commitment: float
    irr: Optional[float]
    moic: Optional[float]
    dpi: Optional[float]
    rvpi: Optional[float]
    tvpi: Optional[float]

    @property
    def investment_return(self) -> float:
        return self.distributions + self.nav - self.called_capital


class MetricsEngine:
    """
    Computes :class:`FundMetrics` and memoizes them across four cache tiers.

    Parameters
    ----------
    config:
        Numeric settings; defaults to :data:`~pe_metrics.config.DEFAULT_CONFIG`.
    clock:
        Seconds source for cache TTLs. Injectable for tests.
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config or DEFAULT_CONFIG
        self.cache = MetricsCacheLayer(
            ttl=self.config.metrics_cache_ttl,
            max_size=self.config.max_metrics_cache_size,
            clock=clock,
        )

    # ------------------------------------------------------------------
    # Host hooks
    # ------------------------------------------------------------------

    @property
    def data_version(self) -> int:
        return self.cache.version.value

    def bump_data_version(self) -> int:
        """Record one external mutation; every cached figure becomes stale."""
        return self.cache.bump_data_version()

    def clear_metrics_cache(self) -> None:
        """Empty every tier, forcing full recomputation."""
        self.cache.clear_all()

    def get_cached(self, fund_id: int, cutoff: Optional[DateLike] = None) -> Optional[FundMetrics]:
        return self.cache.fund_metrics.get(fund_id, cutoff)

    def set_cached(
        self,
        fund_id: int,
        cutoff: Optional[DateLike],
        metrics: FundMetrics,
    ) -> None:
        self.cache.fund_metrics.set(fund_id, cutoff, metrics)

    # ------------------------------------------------------------------
    # Computation
    # ------------------------------------------------------------------

    def compute_metrics(
        self,
        fund: FundSnapshot,
        cutoff: Optional[DateLike] = None,
    ) -> FundMetrics:
        """
        Compute metrics for ``fund`` as of ``cutoff`` (all history if None).

        Pure: no caching, no mutation of ``fund``. Records with malformed
        dates are skipped and counted.

        Raises
        ------
        InvalidFundError
            If the snapshot is structurally invalid.
        ValueError
            If ``cutoff`` is not a valid date.
        """
        fund = validate_snapshot(fund)
        cutoff_date = coerce_cutoff(cutoff)
        normalized = normalize_cash_flows(fund, cutoff_date)
        nav = resolve_nav(fund, cutoff_date)
        return self._assemble(fund, cutoff_date, normalized, nav)

    def compute_metrics_cached(
        self,
        fund: FundSnapshot,
        cutoff: Optional[DateLike] = None,
    ) -> FundMetrics:
        """Per-fund cached :meth:`compute_metrics`. Funds without an id bypass the cache."""
        if not isinstance(fund, FundSnapshot) or fund.fund_id is None:
            return self.compute_metrics(fund, cutoff)

        cached = self.cache.fund_metrics.get(fund.fund_id, cutoff)
        if cached is not None:
            return cached

        metrics = self.compute_metrics(fund, cutoff)
        self.cache.fund_metrics.set(fund.fund_id, cutoff, metrics)
        return metrics

    def compute_consolidated(
        self,
        fund_name: str,
        funds: Iterable[FundSnapshot],
        cutoff: Optional[DateLike] = None,
    ) -> FundMetrics:
        """
        Metrics for several accounts of one fund, treated as a single fund.

        Cash flows are merged and commitments summed. NAV is the sum of each
        account's resolved NAV, dated at the latest of their NAV dates.
        Cached per (name, cutoff, constituent ids) when every account has an id.
        """
        funds = [validate_snapshot(f) for f in funds]
        if not funds:
            raise InvalidFundError([f"no accounts to consolidate for {fund_name!r}"])

        ids = constituent_ids(funds)
        cacheable = len(ids) == len(funds)
        if cacheable:
            cached = self.cache.consolidated.get(fund_name, cutoff, ids)
            if cached is not None:
                return cached

        cutoff_date = coerce_cutoff(cutoff)
        navs = [resolve_nav(f, cutoff_date) for f in funds]
        nav_dates = [n.nav_date for n in navs if n.nav_date is not None]
        combined_nav = ResolvedNav(
            amount=sum(n.amount for n in navs),
            nav_date=max(nav_dates) if nav_dates else None,
            adjusted=any(n.adjusted for n in navs),
            skipped=sum(n.skipped for n in navs),
        )
        merged = consolidate(fund_name, funds)
        metrics = self._assemble(
            merged, cutoff_date, normalize_cash_flows(merged, cutoff_date), combined_nav
        )

        if cacheable:
            self.cache.consolidated.set(fund_name, cutoff, ids, metrics)
        return metrics

    def compute_portfolio_totals(
        self,
        funds: Iterable[FundSnapshot],
        cutoff: Optional[DateLike] = None,
    ) -> PortfolioTotals:
        """
        Totals row across ``funds``.

        IRR comes from the concatenation of every fund's IRR flows (terminal
        NAVs included); MOIC, DPI, RVPI and TVPI from the summed figures, so a
        negative NAV lowers MOIC exactly as it lowers TVPI.
        """
        cutoff_date = coerce_cutoff(cutoff)
        count = 0
        commitment = called = distributions = nav = outstanding = 0.0
        flows: list[DatedFlow] = []
        for fund in funds:
            m = self.compute_metrics_cached(fund, cutoff_date)
            count += 1
            commitment += m.commitment
            called += m.called_capital
            distributions += m.distributions
            nav += m.nav
            outstanding += m.outstanding_commitment
            flows.extend(flows_for_irr(fund, cutoff_date))

        multiples = calc_multiples(called, distributions, nav)
        return PortfolioTotals(
            fund_count=count,
            commitment=commitment,
            called_capital=called,
            distributions=distributions,
            nav=nav,
            outstanding_commitment=outstanding,
            irr=calculate_irr(flows, self.config),
            moic=multiples.moic,
            dpi=multiples.dpi,
            rvpi=multiples.rvpi,
            tvpi=multiples.tvpi,
        )

    def metrics_frame(
        self,
        funds: Iterable[FundSnapshot],
        cutoff: Optional[DateLike] = None,
    ) -> pd.DataFrame:
        """
        Return a fund-by-fund metrics DataFrame.

        Columns:
            fund_id, fund_name, account_number, followed by every
            :class:`FundMetrics` field and investment_return
        """
        rows = []
        for fund in funds:
            m = self.compute_metrics_cached(fund, cutoff)
            rows.append(
                {
                    "fund_id": fund.fund_id,
                    "fund_name": fund.fund_name,
                    "account_number": fund.account_number,
                    **m.to_dict(),
                }
            )
        columns = [
            "fund_id",
            "fund_name",
            "account_number",
            *FundMetrics.__dataclass_fields__,
            "investment_return",
        ]
        return pd.DataFrame(rows, columns=columns)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _assemble(
        self,
        fund: FundSnapshot,
        cutoff: Optional[date],
        normalized: NormalizedFlows,
        nav: ResolvedNav,
    ) -> FundMetrics:
        called = total_by_kind(fund, CashFlowKind.CONTRIBUTION, cutoff)
        distributions = total_by_kind(fund, CashFlowKind.DISTRIBUTION, cutoff)
        multiples = calc_multiples(called, distributions, nav.amount)
        irr = calculate_irr(with_terminal_nav(normalized.flows, nav), self.config)

        if normalized.skipped or nav.skipped:
            logger.warning(
                "Skipped %d cash flow(s) and %d valuation(s) with malformed dates (fund %s)",
                normalized.skipped,
                nav.skipped,
                fund.fund_id if fund.fund_id is not None else fund.fund_name or "<unnamed>",
            )

        return FundMetrics(
            commitment=float(fund.commitment),
            called_capital=called,
            distributions=distributions,
            nav=nav.amount,
            nav_date=nav.nav_date,
            irr=irr,
            moic=multiples.moic,
            dpi=multiples.dpi,
            rvpi=multiples.rvpi,
            tvpi=multiples.tvpi,
            outstanding_commitment=outstanding_commitment(fund, cutoff),
            vintage_year=vintage_year(fund),
            nav_adjusted=nav.adjusted,
            skipped_cash_flows=normalized.skipped,
            skipped_valuations=nav.skipped,
        )
