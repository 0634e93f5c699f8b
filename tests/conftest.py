"""
conftest.py — Shared pytest fixtures for pe_metrics test suite.
"""
from __future__ import annotations

import pytest

from pe_metrics.engine import MetricsEngine
from pe_metrics.fund import CashFlowKind, CashFlowRecord, FundSnapshot, ValuationRecord

C = CashFlowKind.CONTRIBUTION
D = CashFlowKind.DISTRIBUTION
A = CashFlowKind.ADJUSTMENT


class FakeClock:
    """Manually advanced seconds source for TTL tests."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def engine(clock: FakeClock) -> MetricsEngine:
    """Fresh engine per test so cache state never leaks between tests."""
    return MetricsEngine(clock=clock)


@pytest.fixture
def growth_fund() -> FundSnapshot:
    """Two calls, one distribution, one NAV mark."""
    return FundSnapshot(
        commitment=1_000_000,
        cash_flows=(
            CashFlowRecord("2020-01-15", 400_000, C),
            CashFlowRecord("2021-03-01", 200_000, C),
            CashFlowRecord("2022-06-30", 100_000, D),
        ),
        valuations=(
            ValuationRecord("2021-12-31", 500_000),
            ValuationRecord("2022-12-31", 650_000),
        ),
        fund_id=1,
        fund_name="Summit Partners IX",
        account_number="ACC-001",
    )


@pytest.fixture
def second_account() -> FundSnapshot:
    """Another investor account in the same fund as ``growth_fund``."""
    return FundSnapshot(
        commitment=500_000,
        cash_flows=(
            CashFlowRecord("2020-06-30", 250_000, C),
            CashFlowRecord("2023-02-15", 50_000, D),
        ),
        valuations=(ValuationRecord("2022-09-30", 300_000),),
        fund_id=2,
        fund_name="Summit Partners IX",
        account_number="ACC-002",
    )


@pytest.fixture
def stored_record() -> dict:
    """A fund as the persistence layer stores it."""
    return {
        "id": 7,
        "fundName": "Harbor Credit II",
        "accountNumber": "HC-77",
        "commitment": "$2,000,000",
        "groupId": 3,
        "cashFlows": [
            {"date": "2021-01-10", "type": "Contribution", "amount": 500_000, "affectsCommitment": True},
            {"date": "2022-01-10", "type": "Distribution", "amount": -120_000},
            {"date": "2022-02-01", "type": "Adjustment", "amount": "1,000", "affectsCommitment": False},
        ],
        "monthlyNav": [{"date": "2022-12-31", "amount": "(25,000)"}],
    }
