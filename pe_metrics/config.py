"""
config.py — Numeric settings for the metrics engine.

Defaults can be overridden per engine instance or through ``PE_METRICS_*``
environment variables via :meth:`EngineConfig.from_env`.
"""
from __future__ import annotations

import os
from dataclasses import dataclass


# IRR calculation
IRR_GUESS = 0.1
IRR_MAX_ITERATIONS = 1000
IRR_PRECISION = 1e-6
IRR_MIN_RATE = -0.99
IRR_MAX_RATE = 10.0
IRR_MIN_DAYS = 30  # minimum span between first and last flow
DAYS_PER_YEAR = 365

# Caching
METRICS_CACHE_TTL = 5.0  # seconds
MAX_METRICS_CACHE_SIZE = 1000

ENV_PREFIX = "PE_METRICS_"


@dataclass(frozen=True)
class EngineConfig:
    """Configuration for a :class:`~pe_metrics.engine.MetricsEngine`."""

    irr_guess: float = IRR_GUESS
    irr_max_iterations: int = IRR_MAX_ITERATIONS
    irr_precision: float = IRR_PRECISION
    irr_min_rate: float = IRR_MIN_RATE
    irr_max_rate: float = IRR_MAX_RATE
    irr_min_days: int = IRR_MIN_DAYS
    days_per_year: int = DAYS_PER_YEAR
    metrics_cache_ttl: float = METRICS_CACHE_TTL
    max_metrics_cache_size: int = MAX_METRICS_CACHE_SIZE

    def __post_init__(self) -> None:
        if self.irr_max_iterations <= 0:
            raise ValueError("irr_max_iterations must be positive")
        if self.irr_precision <= 0:
            raise ValueError("irr_precision must be positive")
        if self.irr_min_rate >= self.irr_max_rate:
            raise ValueError("irr_min_rate must be below irr_max_rate")
        if self.irr_min_rate <= -1:
            raise ValueError("irr_min_rate must be above -1")
        if self.days_per_year <= 0:
            raise ValueError("days_per_year must be positive")
        if self.metrics_cache_ttl <= 0:
            raise ValueError("metrics_cache_ttl must be positive")
        if self.max_metrics_cache_size <= 0:
            raise ValueError("max_metrics_cache_size must be positive")

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Build a config from ``PE_METRICS_<FIELD>`` environment variables."""
        return cls(
            irr_guess=float(os.getenv(ENV_PREFIX + "IRR_GUESS", IRR_GUESS)),
            irr_max_iterations=int(
                os.getenv(ENV_PREFIX + "IRR_MAX_ITERATIONS", IRR_MAX_ITERATIONS)
            ),
            irr_precision=float(os.getenv(ENV_PREFIX + "IRR_PRECISION", IRR_PRECISION)),
            irr_min_rate=float(os.getenv(ENV_PREFIX + "IRR_MIN_RATE", IRR_MIN_RATE)),
            irr_max_rate=float(os.getenv(ENV_PREFIX + "IRR_MAX_RATE", IRR_MAX_RATE)),
            irr_min_days=int(os.getenv(ENV_PREFIX + "IRR_MIN_DAYS", IRR_MIN_DAYS)),
            days_per_year=int(os.getenv(ENV_PREFIX + "DAYS_PER_YEAR", DAYS_PER_YEAR)),
            metrics_cache_ttl=float(
                os.getenv(ENV_PREFIX + "METRICS_CACHE_TTL", METRICS_CACHE_TTL)
            ),
            max_metrics_cache_size=int(
                os.getenv(ENV_PREFIX + "MAX_METRICS_CACHE_SIZE", MAX_METRICS_CACHE_SIZE)
            ),
        )


DEFAULT_CONFIG = EngineConfig()
