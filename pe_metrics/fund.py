"""
fund.py — Fund records as consumed by the metrics engine.

The dataclasses here are the strict data model. ``from_record`` constructors
form the adapter at the persistence boundary: they accept the stored record
shape (camelCase keys, optional fields) and fill defaults, so the computation
modules never branch on missing fields.

Depends only on: dates.py
"""
from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Mapping, Optional, Sequence

from pe_metrics.dates import DateLike


class InvalidFundError(ValueError):
    """A fund snapshot is structurally unusable; carries every problem found."""

    def __init__(self, errors: Sequence[str]) -> None:
        self.errors = list(errors)
        super().__init__("Invalid fund snapshot: " + "; ".join(self.errors))


class CashFlowKind(str, Enum):
    """
    Direction of a cash flow.

    Contribution: capital called from the LP.
    Distribution: capital returned to the LP.
    Adjustment: accounting correction, excluded from IRR/MOIC and NAV.
    """

    CONTRIBUTION = "Contribution"
    DISTRIBUTION = "Distribution"
    ADJUSTMENT = "Adjustment"


@dataclass(frozen=True)
class CashFlowRecord:
    """A single transaction. ``amount`` is a non-negative magnitude."""

    date: DateLike
    amount: float
    kind: CashFlowKind
    affects_commitment: bool = True

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "CashFlowRecord":
        raw_kind = record.get("type", record.get("kind"))
        try:
            kind = CashFlowKind(raw_kind)
        except ValueError:
            raise InvalidFundError([f"Invalid cash flow type: {raw_kind!r}"]) from None
        amount = parse_amount(record.get("amount"))
        if amount is None:
            raise InvalidFundError([f"Invalid cash flow amount: {record.get('amount')!r}"])
        affects = record.get("affectsCommitment", record.get("affects_commitment"))
        return cls(
            date=record.get("date", ""),
            amount=abs(amount),
            kind=kind,
            affects_commitment=True if affects is None else bool(affects),
        )


@dataclass(frozen=True)
class ValuationRecord:
    """A NAV mark. Negative amounts (impairment) are valid."""

    date: DateLike
    amount: float

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "ValuationRecord":
        amount = parse_amount(record.get("amount"))
        if amount is None:
            raise InvalidFundError([f"Invalid NAV amount: {record.get('amount')!r}"])
        return cls(date=record.get("date", ""), amount=amount)


@dataclass(frozen=True)
class FundSnapshot:
    """
    Read-only view of one fund (or one synthetic consolidated fund).

    ``fund_id`` keys the per-fund cache; funds without an id are computed
    but never cached.
    """

    commitment: float
    cash_flows: Sequence[CashFlowRecord] = field(default_factory=tuple)
    valuations: Sequence[ValuationRecord] = field(default_factory=tuple)
    fund_id: Optional[int] = None
    fund_name: str = ""
    account_number: str = ""
    group_id: Optional[int] = None

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "FundSnapshot":
        """
        Adapt a stored fund record.

        Missing ``cashFlows``/``monthlyNav`` become empty, a missing
        ``affectsCommitment`` defaults to True. Amount and type problems are
        collected and raised together as :class:`InvalidFundError`.
        """
        errors: list[str] = []
        commitment = parse_amount(record.get("commitment"))
        if commitment is None:
            errors.append(f"Invalid commitment: {record.get('commitment')!r}")

        fund_id = parse_id(record.get("id"))
        if record.get("id") is not None and fund_id is None:
            errors.append(f"Invalid fund id: {record.get('id')!r}")

        cash_flows: list[CashFlowRecord] = []
        for i, raw in enumerate(record.get("cashFlows") or []):
            try:
                cash_flows.append(CashFlowRecord.from_record(raw))
            except InvalidFundError as exc:
                errors.extend(f"cash flow {i}: {e}" for e in exc.errors)

        valuations: list[ValuationRecord] = []
        for i, raw in enumerate(record.get("monthlyNav") or record.get("valuations") or []):
            try:
                valuations.append(ValuationRecord.from_record(raw))
            except InvalidFundError as exc:
                errors.extend(f"NAV {i}: {e}" for e in exc.errors)

        if errors:
            raise InvalidFundError(errors)

        return cls(
            commitment=float(commitment),  # type: ignore[arg-type]
            cash_flows=tuple(cash_flows),
            valuations=tuple(valuations),
            fund_id=fund_id,
            fund_name=record.get("fundName", ""),
            account_number=record.get("accountNumber", ""),
            group_id=record.get("groupId"),
        )


# ---------------------------------------------------------------------------
# Amount parsing
# ---------------------------------------------------------------------------

_PARENS = re.compile(r"^\((.*)\)$")


def parse_amount(value: object) -> Optional[float]:
    """
    Parse a stored monetary amount.

    Numbers pass through when finite. Strings may carry ``$``, thousands
    separators and accounting parentheses for negatives (``"(1,000)"``).
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if isinstance(value, str):
        cleaned = value.replace("$", "").replace(",", "").strip()
        cleaned = _PARENS.sub(r"-\1", cleaned).strip()
        if not cleaned:
            return None
        try:
            parsed = float(cleaned)
        except ValueError:
            return None
        return parsed if math.isfinite(parsed) else None
    return None


def parse_id(value: object) -> Optional[int]:
    """Integer record id; numeric strings are converted, anything else is None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value)
    return None


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def _is_finite_number(value: object) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def validate_snapshot(fund: object) -> FundSnapshot:
    """
    Check the structural contract of a snapshot and return it.

    Raises
    ------
    InvalidFundError
        If the snapshot is missing, its collections are not sequences, the
        commitment is not a finite number, or any record has the wrong type
        or a non-finite amount.
    """
    if fund is None:
        raise InvalidFundError(["fund is required"])
    if not isinstance(fund, FundSnapshot):
        raise InvalidFundError([f"expected FundSnapshot, got {type(fund).__name__}"])

    errors: list[str] = []
    if not _is_finite_number(fund.commitment):
        errors.append(f"commitment must be a finite number, got {fund.commitment!r}")
    if fund.fund_id is not None and (
        isinstance(fund.fund_id, bool) or not isinstance(fund.fund_id, int)
    ):
        errors.append(f"fund_id must be an integer, got {fund.fund_id!r}")

    if not isinstance(fund.cash_flows, (list, tuple)):
        errors.append("cash_flows must be a list")
    else:
        for i, cf in enumerate(fund.cash_flows):
            if not isinstance(cf, CashFlowRecord):
                errors.append(f"cash flow {i} is not a CashFlowRecord")
            elif not isinstance(cf.kind, CashFlowKind):
                errors.append(f"cash flow {i} has invalid kind {cf.kind!r}")
            elif not _is_finite_number(cf.amount) or cf.amount < 0:
                errors.append(f"cash flow {i} amount must be a non-negative number")

    if not isinstance(fund.valuations, (list, tuple)):
        errors.append("valuations must be a list")
    else:
        for i, nav in enumerate(fund.valuations):
            if not isinstance(nav, ValuationRecord):
                errors.append(f"valuation {i} is not a ValuationRecord")
            elif not _is_finite_number(nav.amount):
                errors.append(f"valuation {i} amount must be a finite number")

    if errors:
        raise InvalidFundError(errors)
    return fund


# ---------------------------------------------------------------------------
# Consolidation
# ---------------------------------------------------------------------------

def consolidate(fund_name: str, funds: Iterable[FundSnapshot]) -> FundSnapshot:
    """
    Merge several accounts of one fund into a synthetic snapshot.

    Cash flows are concatenated and commitments summed. Valuations are not
    merged: each account's NAV is resolved on its own and summed by the
    engine, since marks from different accounts are not comparable in time.
    """
    funds = list(funds)
    cash_flows: list[CashFlowRecord] = []
    commitment = 0.0
    for fund in funds:
        cash_flows.extend(fund.cash_flows)
        commitment += fund.commitment
    investors = len(funds)
    return FundSnapshot(
        commitment=commitment,
        cash_flows=tuple(cash_flows),
        valuations=(),
        fund_name=fund_name,
        account_number=f"{investors} investor{'s' if investors != 1 else ''}",
    )


def constituent_ids(funds: Iterable[FundSnapshot]) -> list[int]:
    return sorted(f.fund_id for f in funds if f.fund_id is not None)
