"""
portfolio_metrics.py — Computes fund, consolidated and portfolio metrics from stored records.

Run:
    python examples/portfolio_metrics.py
"""
from __future__ import annotations

import logging

from pe_metrics import FundSnapshot, MetricsEngine

RECORDS = [
    {
        "id": 1,
        "fundName": "Summit Partners IX",
        "accountNumber": "ACC-001",
        "commitment": "$1,000,000",
        "cashFlows": [
            {"date": "2020-01-15", "type": "Contribution", "amount": 400_000},
            {"date": "2021-03-01", "type": "Contribution", "amount": 200_000},
            {"date": "2022-06-30", "type": "Distribution", "amount": 100_000},
        ],
        "monthlyNav": [
            {"date": "2021-12-31", "amount": 500_000},
            {"date": "2022-12-31", "amount": 650_000},
        ],
    },
    {
        "id": 2,
        "fundName": "Summit Partners IX",
        "accountNumber": "ACC-002",
        "commitment": 500_000,
        "cashFlows": [
            {"date": "2020-06-30", "type": "Contribution", "amount": 250_000},
            {"date": "2023-02-15", "type": "Distribution", "amount": 50_000},
        ],
        "monthlyNav": [{"date": "2022-09-30", "amount": 300_000}],
    },
    {
        "id": 3,
        "fundName": "Harbor Credit II",
        "accountNumber": "HC-77",
        "commitment": "2,000,000",
        "cashFlows": [
            {"date": "2021-01-10", "type": "Contribution", "amount": 500_000},
            {"date": "2022-01-10", "type": "Distribution", "amount": 120_000},
            {"date": "2022-02-01", "type": "Adjustment", "amount": 1_000, "affectsCommitment": False},
        ],
        "monthlyNav": [{"date": "2022-12-31", "amount": 410_000}],
    },
]


def _fmt(value, fmt: str) -> str:
    return "n/a" if value is None else format(value, fmt)


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    engine = MetricsEngine()
    funds = [FundSnapshot.from_record(r) for r in RECORDS]

    # -------------------------------------------------------------------
    # 1. Per-fund table
    # -------------------------------------------------------------------
    df = engine.metrics_frame(funds)
    print("Fund metrics:")
    print(
        df[["fund_name", "account_number", "called_capital", "distributions", "nav", "irr", "tvpi"]]
        .to_string(index=False)
    )

    # -------------------------------------------------------------------
    # 2. Point-in-time view
    # -------------------------------------------------------------------
    historical = engine.compute_metrics_cached(funds[0], cutoff="2021-12-31")
    print(f"\n{funds[0].fund_name} as of 2021-12-31:")
    print(f"  NAV:   ${historical.nav:>12,.0f}")
    print(f"  TVPI:  {_fmt(historical.tvpi, '.2f')}x")
    print(f"  IRR:   {_fmt(historical.irr, '.1%')}")

    # -------------------------------------------------------------------
    # 3. Consolidated accounts
    # -------------------------------------------------------------------
    summit = [f for f in funds if f.fund_name == "Summit Partners IX"]
    consolidated = engine.compute_consolidated("Summit Partners IX", summit)
    print(f"\nSummit Partners IX ({len(summit)} investors):")
    print(f"  Commitment:  ${consolidated.commitment:>12,.0f}")
    print(f"  NAV:         ${consolidated.nav:>12,.0f}")
    print(f"  IRR:         {_fmt(consolidated.irr, '.1%')}")

    # -------------------------------------------------------------------
    # 4. Portfolio totals
    # -------------------------------------------------------------------
    totals = engine.compute_portfolio_totals(funds)
    print(f"\nPortfolio ({totals.fund_count} funds):")
    print(f"  Called:      ${totals.called_capital:>12,.0f}")
    print(f"  Return:      ${totals.investment_return:>12,.0f}")
    print(f"  IRR:         {_fmt(totals.irr, '.1%')}")
    print(f"  TVPI:        {_fmt(totals.tvpi, '.2f')}x")

    # -------------------------------------------------------------------
    # 5. Mutation: bump the data version so cached figures are recomputed
    # -------------------------------------------------------------------
    engine.bump_data_version()
    engine.compute_metrics_cached(funds[0])
    print("\nCache statistics:")
    for tier, stats in engine.cache.statistics().items():
        print(f"  {tier:<15} hits={stats['hits']} misses={stats['misses']} stale={stats['stale']}")


if __name__ == "__main__":
    main()
