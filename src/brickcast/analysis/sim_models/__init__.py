"""Valuation simulation models package.

All variants run on one parameterised path engine (``engine.PathSpec``):
- MONTE_CARLO: fat-tailed jump-diffusion with regimes, seasonality, mean reversion
- SCENARIO: bull/base/bear branch drawn once per trial
- STRESS: rare crash/boom events followed by linear recovery
- BOOTSTRAP: resampled monthly returns
- GARCH: volatility clustering via recursive per-trial variance
- BAYESIAN: per-trial drift drawn from a prior/evidence posterior
- MEAN_REVERSION: strong pull toward the fair-value trajectory
"""

import math
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, TypedDict

import numpy as np


class SimModel(str, Enum):
    MONTE_CARLO = "monte_carlo"
    SCENARIO = "scenario"
    STRESS = "stress"
    BOOTSTRAP = "bootstrap"
    GARCH = "garch"
    BAYESIAN = "bayesian"
    MEAN_REVERSION = "mean_reversion"


@dataclass(frozen=True)
class ItemState:
    """Immutable input describing one collectible item."""

    item_id: str
    current_value: float
    history: tuple[tuple[date, float], ...] = ()
    theme: str | None = None
    age_years: float = 1.0  # years since release
    is_licensed: bool = False
    months_until_retirement: float | None = None  # from the retirement estimator
    historical_growth: float | None = None  # annual, e.g. 0.08
    external_growth: float | None = None  # qualitative prediction, annual

    def __post_init__(self):
        if not math.isfinite(self.current_value) or self.current_value <= 0:
            raise ValueError(
                f"current_value must be positive, got {self.current_value} for {self.item_id}"
            )
        object.__setattr__(self, "history", tuple((d, v) for d, v in self.history))


@dataclass(frozen=True)
class GarchParams:
    omega: float
    alpha: float
    beta: float


@dataclass(frozen=True)
class CalibratedParameters:
    drift: float  # annualised, clamped
    volatility: float  # annualised, clamped
    source: str = "default"  # "history" | "default"
    observations: int = 0
    raw_drift: float | None = None  # before clamping
    raw_volatility: float | None = None
    historical_growth: float | None = None  # annual CAGR of the dated history
    garch: GarchParams | None = None
    monthly_returns: tuple[float, ...] = field(default=(), repr=False)


class GrowthStats(TypedDict):
    mean_pct: float
    median_pct: float
    bear_pct: float  # p10
    bull_pct: float  # p90
    worst_pct: float  # p5
    best_pct: float  # p95


class RiskMetrics(TypedDict):
    var_95: float
    var_99: float
    cvar_95: float
    cvar_99: float
    expected_shortfall_95: float
    prob_loss: float
    prob_breakeven: float
    prob_gain: float
    gain_probs: dict[str, float]  # threshold label -> probability


class TrialStatistics(TypedDict):
    current_value: float
    num_trials: int
    mean: float
    median: float
    std: float
    min: float
    max: float
    percentiles: dict[str, float]  # "p5" -> value
    confidence_intervals: dict[str, tuple[float, float]]  # "90%" -> (low, high)
    growth: GrowthStats
    risk: RiskMetrics


class ModelResult(TypedDict):
    """Trial outcomes of one model variant at one horizon."""
    model: str
    horizon_years: float
    trials: np.ndarray
    statistics: TrialStatistics


class Recommendations(TypedDict):
    risk_level: str  # LOW | MODERATE | ELEVATED | HIGH
    return_level: str  # EXCELLENT | GOOD | MODERATE | LOW
    risk_adjusted_score: float
    summary: str


class EnsembleResult(TypedDict):
    item_id: str
    theme: str | None
    horizon_years: float
    current_value: float
    trials: np.ndarray
    statistics: TrialStatistics
    model_results: dict[str, ModelResult]
    weights: dict[str, float]
    model_agreement: float | None
    calibration: dict[str, Any]
    recommendations: Recommendations


class PortfolioProjection(TypedDict):
    horizon_years: float
    current_value: float
    trials: np.ndarray
    statistics: TrialStatistics
    items: dict[str, EnsembleResult]
    recommendations: Recommendations


__all__ = [
    "SimModel",
    "ItemState",
    "GarchParams",
    "CalibratedParameters",
    "GrowthStats",
    "RiskMetrics",
    "TrialStatistics",
    "Recommendations",
    "ModelResult",
    "EnsembleResult",
    "PortfolioProjection",
]
