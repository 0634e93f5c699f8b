"""
pe_metrics — Performance metrics and result caching for private-equity funds.

Public API surface:

    from pe_metrics import MetricsEngine, EngineConfig
    from pe_metrics import FundSnapshot, CashFlowRecord, ValuationRecord, CashFlowKind
    from pe_metrics import FundMetrics, PortfolioTotals
    from pe_metrics import calculate_irr, calculate_moic
    from pe_metrics import metrics
"""
from __future__ import annotations

# Data model
from pe_metrics.fund import (
    CashFlowKind,
    CashFlowRecord,
    FundSnapshot,
    InvalidFundError,
    ValuationRecord,
    consolidate,
    validate_snapshot,
)

# Computation
from pe_metrics.cashflows import (
    DatedFlow,
    calculate_irr,
    calculate_moic,
    flows_for_irr,
    normalize_cash_flows,
    resolve_nav,
)
from pe_metrics.config import EngineConfig
from pe_metrics.engine import FundMetrics, MetricsEngine, PortfolioTotals

# Caching
from pe_metrics.cache import (
    CacheEntry,
    CacheStats,
    ConsolidatedMetricsCache,
    DataVersion,
    FilterResultCache,
    FundMetricsCache,
    GroupTreeCache,
    MetricsCacheLayer,
)

# Submodules available for direct import
from pe_metrics import metrics

__version__ = "0.1.0"

__all__ = [
    # Data model
    "CashFlowKind",
    "CashFlowRecord",
    "FundSnapshot",
    "InvalidFundError",
    "ValuationRecord",
    "consolidate",
    "validate_snapshot",
    # Computation
    "DatedFlow",
    "EngineConfig",
    "FundMetrics",
    "MetricsEngine",
    "PortfolioTotals",
    "calculate_irr",
    "calculate_moic",
    "flows_for_irr",
    "normalize_cash_flows",
    "resolve_nav",
    # Caching
    "CacheEntry",
    "CacheStats",
    "ConsolidatedMetricsCache",
    "DataVersion",
    "FilterResultCache",
    "FundMetricsCache",
    "GroupTreeCache",
    "MetricsCacheLayer",
    # Submodules
    "metrics",
    # Version
    "__version__",
]
