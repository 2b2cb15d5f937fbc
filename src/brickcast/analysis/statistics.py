"""Distribution statistics for simulated terminal values.

Percentiles use linear interpolation between order statistics: for ``n``
sorted trials the p-th percentile sits at index ``p / 100 * (n - 1)``
(numpy's default ``method="linear"``). Every statistic in this module goes
through :func:`percentile`, so ``median == percentile(trials, 50)`` exactly.
"""

import logging

import numpy as np

from brickcast.analysis.sim_models import GrowthStats, RiskMetrics, TrialStatistics

logger = logging.getLogger(__name__)

DEFAULT_PERCENTILES = (1, 5, 10, 25, 50, 75, 90, 95, 99)
DEFAULT_CONFIDENCE_INTERVALS = (50, 80, 90, 95, 99)
DEFAULT_GAIN_THRESHOLDS = (0.20, 0.50, 1.00)


def _as_trials(trials) -> np.ndarray:
    arr = np.asarray(trials, dtype=float)
    if arr.ndim != 1:
        raise ValueError(f"trials must be one-dimensional, got shape {arr.shape}")
    if arr.size == 0:
        raise ValueError("cannot compute statistics on an empty trial array")
    if not np.all(np.isfinite(arr)):
        raise ValueError("trial array contains non-finite values")
    return arr


def _check_current_value(current_value: float) -> float:
    current_value = float(current_value)
    if not np.isfinite(current_value) or current_value <= 0:
        raise ValueError(f"current_value must be positive, got {current_value}")
    return current_value


def percentile(trials, p: float) -> float:
    """Linear-interpolated percentile ``p`` in [0, 100].

    Works on a sorted copy; the caller's array is left untouched.
    """
    if not 0.0 <= p <= 100.0:
        raise ValueError(f"percentile must lie in [0, 100], got {p}")
    arr = np.sort(_as_trials(trials))
    return float(np.percentile(arr, p, method="linear"))


def median(trials) -> float:
    return percentile(trials, 50)


def growth_pct(value: float, current_value: float) -> float:
    """Percentage change from ``current_value`` to ``value``."""
    return (value / _check_current_value(current_value) - 1.0) * 100.0


def percentile_label(p: float) -> str:
    return f"p{p:g}".replace(".", "_")


def value_at_risk(trials, current_value: float, confidence: float = 0.95) -> float:
    """Loss at the lower tail: current value minus the (1 - confidence) percentile."""
    if not 0.0 < confidence < 1.0:
        raise ValueError(f"confidence must lie in (0, 1), got {confidence}")
    return _check_current_value(current_value) - percentile(trials, (1.0 - confidence) * 100.0)


def expected_shortfall(trials, confidence: float = 0.95) -> float:
    """Mean of all trials at or below the VaR percentile."""
    arr = _as_trials(trials)
    cutoff = percentile(arr, (1.0 - confidence) * 100.0)
    tail = arr[arr <= cutoff]
    # The minimum always satisfies the cutoff, so the tail is never empty
    return float(np.mean(tail))


def conditional_value_at_risk(trials, current_value: float, confidence: float = 0.95) -> float:
    """Expected loss beyond the VaR percentile."""
    return _check_current_value(current_value) - expected_shortfall(trials, confidence)


def probability_below(trials, threshold: float) -> float:
    arr = _as_trials(trials)
    return float(np.mean(arr < threshold))


def probability_above(trials, threshold: float) -> float:
    arr = _as_trials(trials)
    return float(np.mean(arr > threshold))


def gain_label(threshold: float) -> str:
    return f"gain_{round(threshold * 100):d}pct"


def compute_statistics(
    trials,
    current_value: float,
    percentiles: tuple[float, ...] = DEFAULT_PERCENTILES,
    confidence_intervals: tuple[float, ...] = DEFAULT_CONFIDENCE_INTERVALS,
    gain_thresholds: tuple[float, ...] = DEFAULT_GAIN_THRESHOLDS,
) -> TrialStatistics:
    """Summarise a trial array relative to the pre-simulation value.

    Args:
        trials: Simulated terminal values.
        current_value: Value at the start of the simulation (> 0).
        percentiles: Percentile levels in [0, 100] to report.
        confidence_intervals: Central interval widths in percent.
        gain_thresholds: Fractional gains for exceedance probabilities.

    Returns:
        TrialStatistics with percentiles, growth and risk metrics.

    Raises:
        ValueError: On empty or non-finite trials or a non-positive current value.
    """
    arr = _as_trials(trials)
    current_value = _check_current_value(current_value)
    ordered = np.sort(arr)

    required = {1, 5, 10, 50, 90, 95}
    levels = sorted(set(percentiles) | required)
    pct_values = {percentile_label(p): percentile(ordered, p) for p in levels}

    intervals: dict[str, tuple[float, float]] = {}
    for width in confidence_intervals:
        tail = (100.0 - width) / 2.0
        intervals[f"{width:g}%"] = (percentile(ordered, tail), percentile(ordered, 100.0 - tail))

    mean = float(np.mean(arr))
    med = pct_values["p50"]

    growth = GrowthStats(
        mean_pct=growth_pct(mean, current_value),
        median_pct=growth_pct(med, current_value),
        bear_pct=growth_pct(pct_values["p10"], current_value),
        bull_pct=growth_pct(pct_values["p90"], current_value),
        worst_pct=growth_pct(pct_values["p5"], current_value),
        best_pct=growth_pct(pct_values["p95"], current_value),
    )

    prob_loss = float(np.mean(arr < current_value))
    prob_gain = float(np.mean(arr > current_value))
    es_95 = expected_shortfall(ordered, 0.95)
    risk = RiskMetrics(
        var_95=current_value - pct_values["p5"],
        var_99=current_value - pct_values["p1"],
        cvar_95=current_value - es_95,
        cvar_99=conditional_value_at_risk(ordered, current_value, 0.99),
        expected_shortfall_95=es_95,
        prob_loss=prob_loss,
        prob_breakeven=float(np.mean(arr == current_value)),
        prob_gain=prob_gain,
        gain_probs={
            gain_label(t): probability_above(ordered, current_value * (1.0 + t))
            for t in gain_thresholds
        },
    )

    return TrialStatistics(
        current_value=current_value,
        num_trials=int(arr.size),
        mean=mean,
        median=med,
        std=float(np.std(arr, ddof=1)) if arr.size > 1 else 0.0,
        min=float(ordered[0]),
        max=float(ordered[-1]),
        percentiles=pct_values,
        confidence_intervals=intervals,
        growth=growth,
        risk=risk,
    )
