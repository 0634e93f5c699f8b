"""
metrics.py — Pure mathematical functions for fund performance metrics.

No imports from within this library. All functions are stateless and
have no side effects. Safe to import from any module.
"""
from __future__ import annotations

import warnings
from dataclasses import dataclass
from typing import Optional

import numpy as np
import numpy.typing as npt
from scipy import optimize


# ---------------------------------------------------------------------------
# NPV / IRR
# ---------------------------------------------------------------------------

def calc_npv(
    cashflows: npt.ArrayLike,
    rate: float,
    periods: Optional[npt.ArrayLike] = None,
) -> float:
    """
    Net Present Value of ``cashflows`` discounted at ``rate``.

    ``periods`` are year fractions from the first flow; None means
    [0, 1, 2, ...]. NaN for rates at or below -100%.
    """
    if rate <= -1:
        return float("nan")
    cashflows = np.asarray(cashflows, dtype=np.float64)
    if periods is None:
        periods = np.arange(len(cashflows), dtype=np.float64)
    else:
        periods = np.asarray(periods, dtype=np.float64)
    return float(np.sum(cashflows / (1 + rate) ** periods))


def calc_irr(
    cashflows: npt.ArrayLike,
    periods: Optional[npt.ArrayLike] = None,
    guess: float = 0.10,
    tol: float = 1e-6,
    maxiter: int = 1000,
    min_rate: float = -0.99,
    max_rate: float = 10.0,
) -> Optional[float]:
    """
    Compute Internal Rate of Return using Newton-Raphson.

    Parameters
    ----------
    cashflows:
        Array of cash flows. Negative = outflows, positive = inflows.
    periods:
        Time of each flow in years from the first flow. If None, assumes
        [0, 1, 2, ...].
    guess:
        Initial guess for Newton-Raphson.
    tol:
        Convergence tolerance. A Newton root is accepted when either the
        last step or the absolute NPV at the root (in currency units) is
        below it.
    maxiter:
        Iteration budget for each solver; exhausting it yields None.
    min_rate, max_rate:
        Plausibility bounds. A root outside them yields None.

    Returns
    -------
    float or None
        IRR as a decimal (e.g. 0.25 = 25%). None when no sign change exists,
        the search does not converge, or the root is implausible.

    Notes
    -----
    Newton steps from the guess can overshoot below -100% on heavy losses.
    When Newton fails, Brent's method is tried on [min_rate, max_rate] if
    the NPV changes sign across that bracket.
    """
    cashflows = np.asarray(cashflows, dtype=np.float64)
    if periods is None:
        periods = np.arange(len(cashflows), dtype=np.float64)
    else:
        periods = np.asarray(periods, dtype=np.float64)

    if len(cashflows) != len(periods):
        raise ValueError("cashflows and periods must have the same length")

    if len(cashflows) < 2:
        return None

    # Need at least one sign change
    if not (np.any(cashflows > 0) and np.any(cashflows < 0)):
        return None

    def npv_func(r: float) -> float:
        return calc_npv(cashflows, r, periods)

    def dnpv_func(r: float) -> float:
        if r <= -1:
            return float("nan")
        return float(np.sum(-periods * cashflows / (1 + r) ** (periods + 1)))

    with np.errstate(all="ignore"), warnings.catch_warnings():
        # newton warns instead of raising on a zero derivative when disp=False
        warnings.simplefilter("ignore", RuntimeWarning)
        root = _newton_root(npv_func, dnpv_func, guess, tol, maxiter)
        if root is None:
            root = _brent_root(npv_func, min_rate, max_rate, tol, maxiter)

    if root is None or root < min_rate or root > max_rate:
        return None
    return root


def _newton_root(npv_func, dnpv_func, guess, tol, maxiter) -> Optional[float]:
    try:
        root, status = optimize.newton(
            npv_func,
            x0=guess,
            fprime=dnpv_func,
            tol=tol,
            maxiter=maxiter,
            full_output=True,
            disp=False,
        )
    except (ArithmeticError, RuntimeError, ValueError):
        return None

    root = float(root)
    if not np.isfinite(root) or root <= -1:
        return None
    residual = npv_func(root)
    if not np.isfinite(residual):
        return None
    if status.converged or abs(residual) < tol:
        return root
    return None


def _brent_root(npv_func, lo, hi, tol, maxiter) -> Optional[float]:
    f_lo, f_hi = npv_func(lo), npv_func(hi)
    if not (np.isfinite(f_lo) and np.isfinite(f_hi)) or f_lo * f_hi > 0:
        return None
    try:
        root, status = optimize.brentq(
            npv_func, lo, hi, xtol=tol, maxiter=maxiter, full_output=True, disp=False
        )
    except (RuntimeError, ValueError):
        return None
    return float(root) if status.converged else None


# ---------------------------------------------------------------------------
# Multiples
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Multiples:
    """MOIC, DPI, RVPI and TVPI. All four are None together."""

    moic: Optional[float]
    dpi: Optional[float]
    rvpi: Optional[float]
    tvpi: Optional[float]


def calc_tvpi(invested: float, nav: float, distributions: float) -> Optional[float]:
    """
    Total Value to Paid-In capital (TVPI).

    TVPI = (NAV + cumulative distributions) / total invested
    """
    if invested <= 0:
        return None
    return (nav + distributions) / invested


def calc_dpi(invested: float, distributions: float) -> Optional[float]:
    """Distributions to Paid-In capital (DPI)."""
    if invested <= 0:
        return None
    return distributions / invested


def calc_rvpi(invested: float, nav: float) -> Optional[float]:
    """Residual Value to Paid-In capital (RVPI)."""
    if invested <= 0:
        return None
    return nav / invested


def calc_moic(invested: float, total_value: float) -> Optional[float]:
    """Multiple on Invested Capital."""
    if invested <= 0:
        return None
    return total_value / invested


def calc_multiples(contributions: float, distributions: float, nav: float) -> Multiples:
    """
    All four multiples over aggregated contributions, distributions and NAV.

    MOIC and TVPI are the same quantity computed by one expression, so they
    are always numerically identical.
    """
    tvpi = calc_tvpi(contributions, nav, distributions)
    return Multiples(
        moic=tvpi,
        dpi=calc_dpi(contributions, distributions),
        rvpi=calc_rvpi(contributions, nav),
        tvpi=tvpi,
    )
