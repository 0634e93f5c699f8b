"""Tests for pe_metrics.fund — data model, persistence adapter, validation."""
from __future__ import annotations

import math

import pytest

from pe_metrics.fund import (
    CashFlowKind,
    CashFlowRecord,
    FundSnapshot,
    InvalidFundError,
    ValuationRecord,
    consolidate,
    constituent_ids,
    parse_amount,
    validate_snapshot,
)


class TestParseAmount:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            (1500, 1500.0),
            (-12.5, -12.5),
            ("1000", 1000.0),
            ("$1,234.50", 1234.5),
            ("(1,000)", -1000.0),
            (" 42 ", 42.0),
        ],
    )
    def test_parses(self, raw, expected):
        assert parse_amount(raw) == pytest.approx(expected)

    @pytest.mark.parametrize("raw", [None, "", "abc", math.nan, math.inf, True, [1]])
    def test_rejects(self, raw):
        assert parse_amount(raw) is None


class TestFromRecord:
    def test_adapts_stored_shape(self, stored_record):
        fund = FundSnapshot.from_record(stored_record)
        assert fund.fund_id == 7
        assert fund.fund_name == "Harbor Credit II"
        assert fund.account_number == "HC-77"
        assert fund.group_id == 3
        assert fund.commitment == pytest.approx(2_000_000)
        assert [cf.kind for cf in fund.cash_flows] == [
            CashFlowKind.CONTRIBUTION,
            CashFlowKind.DISTRIBUTION,
            CashFlowKind.ADJUSTMENT,
        ]

    def test_cash_flow_amounts_become_magnitudes(self, stored_record):
        fund = FundSnapshot.from_record(stored_record)
        assert fund.cash_flows[1].amount == pytest.approx(120_000)
        assert fund.cash_flows[2].amount == pytest.approx(1_000)

    def test_valuation_sign_is_kept(self, stored_record):
        fund = FundSnapshot.from_record(stored_record)
        assert fund.valuations[0].amount == pytest.approx(-25_000)

    def test_affects_commitment_defaults_true(self, stored_record):
        fund = FundSnapshot.from_record(stored_record)
        assert fund.cash_flows[1].affects_commitment is True
        assert fund.cash_flows[2].affects_commitment is False

    def test_numeric_string_id_converted(self):
        assert FundSnapshot.from_record({"commitment": 1, "id": "12"}).fund_id == 12

    @pytest.mark.parametrize("raw_id", ["abc", 1.5, True, [1]])
    def test_non_integer_id_rejected(self, raw_id):
        with pytest.raises(InvalidFundError, match="fund id"):
            FundSnapshot.from_record({"commitment": 1, "id": raw_id})

    def test_missing_collections_become_empty(self):
        fund = FundSnapshot.from_record({"commitment": 100})
        assert fund.cash_flows == ()
        assert fund.valuations == ()
        assert fund.fund_id is None

    def test_malformed_dates_are_kept_for_the_engine_to_skip(self):
        fund = FundSnapshot.from_record(
            {"commitment": 1, "cashFlows": [{"date": "2020-02-30", "type": "Contribution", "amount": 5}]}
        )
        assert fund.cash_flows[0].date == "2020-02-30"

    def test_collects_every_problem(self):
        with pytest.raises(InvalidFundError) as excinfo:
            FundSnapshot.from_record(
                {
                    "commitment": "lots",
                    "cashFlows": [
                        {"date": "2020-01-01", "type": "Fee", "amount": 1},
                        {"date": "2020-01-01", "type": "Contribution", "amount": "n/a"},
                    ],
                    "monthlyNav": [{"date": "2020-12-31", "amount": None}],
                }
            )
        errors = excinfo.value.errors
        assert len(errors) == 4
        assert any("commitment" in e for e in errors)
        assert any("cash flow 0" in e and "type" in e for e in errors)
        assert any("cash flow 1" in e and "amount" in e for e in errors)
        assert any("NAV 0" in e for e in errors)


class TestValidateSnapshot:
    def test_valid_snapshot_is_returned(self, growth_fund):
        assert validate_snapshot(growth_fund) is growth_fund

    def test_none_rejected(self):
        with pytest.raises(InvalidFundError, match="required"):
            validate_snapshot(None)

    def test_wrong_type_rejected(self):
        with pytest.raises(InvalidFundError, match="FundSnapshot"):
            validate_snapshot({"commitment": 1, "cashFlows": []})

    @pytest.mark.parametrize("commitment", [math.nan, math.inf, "100", None, True])
    def test_non_numeric_commitment_rejected(self, commitment):
        with pytest.raises(InvalidFundError, match="commitment"):
            validate_snapshot(FundSnapshot(commitment=commitment))

    @pytest.mark.parametrize("fund_id", ["7", 7.0, False])
    def test_non_integer_fund_id_rejected(self, fund_id):
        with pytest.raises(InvalidFundError, match="fund_id"):
            validate_snapshot(FundSnapshot(commitment=1, fund_id=fund_id))

    def test_missing_arrays_rejected(self):
        with pytest.raises(InvalidFundError) as excinfo:
            validate_snapshot(FundSnapshot(commitment=1, cash_flows=None, valuations=None))
        assert len(excinfo.value.errors) == 2

    def test_negative_cash_flow_amount_rejected(self):
        fund = FundSnapshot(
            commitment=1,
            cash_flows=[CashFlowRecord("2020-01-01", -5, CashFlowKind.CONTRIBUTION)],
        )
        with pytest.raises(InvalidFundError, match="non-negative"):
            validate_snapshot(fund)

    def test_negative_valuation_accepted(self):
        fund = FundSnapshot(commitment=1, valuations=[ValuationRecord("2020-01-01", -5)])
        assert validate_snapshot(fund) is fund

    def test_is_a_value_error(self):
        assert issubclass(InvalidFundError, ValueError)


class TestConsolidate:
    def test_merges_accounts(self, growth_fund, second_account):
        merged = consolidate("Summit Partners IX", [growth_fund, second_account])
        assert merged.commitment == pytest.approx(1_500_000)
        assert len(merged.cash_flows) == 5
        assert merged.valuations == ()
        assert merged.fund_id is None
        assert merged.account_number == "2 investors"

    def test_single_investor_label(self, growth_fund):
        assert consolidate("X", [growth_fund]).account_number == "1 investor"

    def test_inputs_are_not_mutated(self, growth_fund, second_account):
        before = (growth_fund.cash_flows, second_account.cash_flows)
        consolidate("Summit Partners IX", [growth_fund, second_account])
        assert (growth_fund.cash_flows, second_account.cash_flows) == before

    def test_constituent_ids_sorted_and_skip_missing(self, growth_fund, second_account):
        anonymous = FundSnapshot(commitment=0)
        assert constituent_ids([second_account, anonymous, growth_fund]) == [1, 2]
