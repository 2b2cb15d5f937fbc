"""Ensemble combiner for model variants.

Weighted linear blend: ``combined[i] = sum(w[m] * trials[m][i])``. Trial
``i`` of every model belongs to the same simulation run (shared market
factor), so the arrays must be index-aligned and of equal length.
"""

import logging
from typing import Mapping

import numpy as np

from . import ModelResult, Recommendations, SimModel, TrialStatistics

logger = logging.getLogger(__name__)

WEIGHT_TOLERANCE = 1e-6


def validate_weights(weights: Mapping[str, float]) -> dict[str, float]:
    """Check a weighting scheme and return its active (non-zero) entries.

    Raises:
        ValueError: On unknown models, negative weights, or a sum other than 1.
    """
    # SimModel members hash by name, so compare on plain string values
    weights = {getattr(k, "value", k): v for k, v in weights.items()}
    known = {m.value for m in SimModel}
    unknown = sorted(str(k) for k in set(weights) - known)
    if unknown:
        raise ValueError(f"unknown models in weights: {unknown}")

    negative = {k: v for k, v in weights.items() if v < 0}
    if negative:
        raise ValueError(f"weights must be non-negative, got {negative}")

    total = float(sum(weights.values()))
    if abs(total - 1.0) > WEIGHT_TOLERANCE:
        raise ValueError(f"weights must sum to 1.0, got {total:.6f}")

    return {str(k): float(v) for k, v in weights.items() if v > 0}


def _trials_of(result: ModelResult | np.ndarray) -> np.ndarray:
    if isinstance(result, dict):
        return np.asarray(result["trials"], dtype=float)
    return np.asarray(result, dtype=float)


def combine_ensemble(
    model_results: Mapping[str, ModelResult | np.ndarray],
    weights: Mapping[str, float],
) -> np.ndarray:
    """Combine index-aligned trial arrays into one weighted array.

    Args:
        model_results: {model_name: ModelResult or trial array}.
        weights: {model_name: weight}, summing to 1.

    Returns:
        Combined trial array.

    Raises:
        ValueError: On invalid weights, a weighted model without results,
            or trial arrays of different lengths.
    """
    active = validate_weights(weights)
    if not active:
        raise ValueError("no model carries a positive weight")

    model_results = {getattr(k, "value", k): v for k, v in model_results.items()}
    missing = sorted(m for m in active if m not in model_results)
    if missing:
        raise ValueError(f"weighted models without results: {missing}")

    arrays = {m: _trials_of(model_results[m]) for m in active}
    lengths = {m: a.shape for m, a in arrays.items()}
    if len(set(lengths.values())) > 1:
        raise ValueError(f"trial arrays must have equal length, got {lengths}")

    first = next(iter(arrays.values()))
    if first.ndim != 1:
        raise ValueError(f"trial arrays must be one-dimensional, got shape {first.shape}")

    combined = np.zeros_like(first)
    for model_name, w in active.items():
        combined += w * arrays[model_name]
    return combined


def model_agreement(model_results: Mapping[str, ModelResult]) -> float | None:
    """Agreement score (0-100) across models' median growth.

    ``100 - stdev(growths) / mean(|growths|) * 100``, floored at 0. None when
    fewer than two models ran or every model projects zero growth.
    """
    growths = np.array(
        [r["statistics"]["growth"]["median_pct"] for r in model_results.values()],
        dtype=float,
    )
    if growths.size < 2:
        return None

    scale = float(np.mean(np.abs(growths)))
    if scale == 0.0:
        return None

    score = 100.0 - float(np.std(growths)) / scale * 100.0
    return max(0.0, score)


# Upper bounds on P(loss) in percent, checked in order
RISK_LEVELS = ((1.0, "LOW"), (5.0, "MODERATE"), (10.0, "ELEVATED"))
# Lower bounds on median growth in percent, checked in order
RETURN_LEVELS = ((30.0, "EXCELLENT"), (20.0, "GOOD"), (10.0, "MODERATE"))


def recommendations(statistics: TrialStatistics, agreement: float | None = None) -> Recommendations:
    """Qualitative ratings and a one-line summary for an ensemble's statistics.

    Ratings work in percent: ``prob_loss`` is stored as a fraction and
    scaled by 100 here. The risk-adjusted score is median growth % over
    P(loss) %, with P(loss) floored at 0.1 %.
    """
    loss_pct = statistics["risk"]["prob_loss"] * 100.0
    median_pct = statistics["growth"]["median_pct"]

    risk_level = next((label for bound, label in RISK_LEVELS if loss_pct < bound), "HIGH")
    return_level = next((label for bound, label in RETURN_LEVELS if median_pct > bound), "LOW")

    if median_pct > 20:
        parts = ["Strong growth expected"]
    elif median_pct > 10:
        parts = ["Moderate growth expected"]
    else:
        parts = ["Conservative growth expected"]

    if loss_pct < 1:
        parts.append("with very low downside risk")
    elif loss_pct < 5:
        parts.append("with acceptable risk levels")
    else:
        parts.append("but with notable risk exposure")

    if agreement is not None:
        if agreement > 80:
            parts.append("(high model confidence)")
        elif agreement < 60:
            parts.append("(models show uncertainty)")

    return Recommendations(
        risk_level=risk_level,
        return_level=return_level,
        risk_adjusted_score=median_pct / max(loss_pct, 0.1),
        summary=" ".join(parts),
    )
