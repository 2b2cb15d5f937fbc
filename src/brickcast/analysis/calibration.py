"""Historical calibration of per-item drift and volatility.

Pure computation on a valuation series passed in by the caller; fetching the
history is someone else's job. Native cadence is assumed monthly.
"""

import dataclasses
import logging
import warnings
from typing import Any, Iterable

import numpy as np
import pandas as pd

from brickcast.analysis.sim_models import CalibratedParameters, GarchParams, ItemState
from brickcast.config import Settings

logger = logging.getLogger(__name__)


def history_to_series(history: Iterable[Any] | pd.Series | None) -> pd.Series:
    """Normalise a history into a chronologically ordered series of valid values.

    Accepts ``(date, value)`` pairs, bare values, or a ``pandas.Series``.
    Missing, non-finite and non-positive observations are dropped.
    """
    if history is None:
        return pd.Series(dtype=float)

    if isinstance(history, pd.Series):
        series = history.astype(float)
        if isinstance(series.index, pd.DatetimeIndex):
            series = series.sort_index()
    else:
        rows = list(history)
        if not rows:
            return pd.Series(dtype=float)
        if isinstance(rows[0], (tuple, list)):
            dates = pd.to_datetime([r[0] for r in rows])
            values = pd.to_numeric([r[1] for r in rows], errors="coerce")
            series = pd.Series(values, index=dates, dtype=float).sort_index()
        else:
            series = pd.Series(pd.to_numeric(rows, errors="coerce"), dtype=float)

    series = series.replace([np.inf, -np.inf], np.nan).dropna()
    return series[series > 0]


def monthly_returns(history: Iterable[Any] | pd.Series | None) -> np.ndarray:
    """Simple period-over-period returns used as a bootstrap pool."""
    values = history_to_series(history).to_numpy()
    if len(values) < 2:
        return np.array([], dtype=float)
    return values[1:] / values[:-1] - 1.0


def historical_cagr(
    history: Iterable[Any] | pd.Series | None,
    settings: Settings | None = None,
) -> float:
    """Compound annual growth between the first and last valid observation.

    Dated histories measure the span in 365.25-day years; undated ones assume
    the calibration cadence. Fewer than two points or a span shorter than
    ``calibration_min_growth_years`` returns ``calibration_default_growth``.
    """
    settings = settings or Settings()
    series = history_to_series(history)
    if len(series) < 2:
        return settings.calibration_default_growth

    if isinstance(series.index, pd.DatetimeIndex):
        years = (series.index[-1] - series.index[0]) / pd.Timedelta(days=365.25)
    else:
        years = (len(series) - 1) / settings.calibration_periods_per_year
    if years < settings.calibration_min_growth_years:
        return settings.calibration_default_growth

    return float((series.iloc[-1] / series.iloc[0]) ** (1.0 / years) - 1.0)


def default_parameters(settings: Settings) -> CalibratedParameters:
    return CalibratedParameters(
        drift=settings.calibration_default_drift,
        volatility=settings.calibration_default_volatility,
        source="default",
    )


def calibrate(
    history: Iterable[Any] | pd.Series | None,
    settings: Settings | None = None,
) -> CalibratedParameters:
    """Derive annualised drift and volatility from a monthly valuation series.

    Fewer than ``calibration_min_observations`` valid points returns the
    configured defaults (drift 0.05, volatility 0.20).
    """
    settings = settings or Settings()
    series = history_to_series(history)

    if len(series) < settings.calibration_min_observations:
        logger.debug(
            "Insufficient history: %d observations (need %d), using defaults",
            len(series), settings.calibration_min_observations,
        )
        return default_parameters(settings)

    values = series.to_numpy()
    rets = np.diff(np.log(values))
    periods = settings.calibration_periods_per_year

    raw_drift = float(np.mean(rets)) * periods
    raw_vol = float(np.std(rets, ddof=1)) * np.sqrt(periods)

    drift = float(np.clip(raw_drift, settings.calibration_drift_floor, settings.calibration_drift_cap))
    volatility = float(np.clip(
        raw_vol, settings.calibration_volatility_floor, settings.calibration_volatility_cap
    ))
    if drift != raw_drift or volatility != raw_vol:
        logger.debug(
            "Clamped calibration: drift %.4f -> %.4f, vol %.4f -> %.4f",
            raw_drift, drift, raw_vol, volatility,
        )

    garch = fit_garch(rets, settings) if settings.garch_fit_enabled else None

    return CalibratedParameters(
        drift=drift,
        volatility=volatility,
        source="history",
        observations=len(values),
        raw_drift=raw_drift,
        raw_volatility=float(raw_vol),
        garch=garch,
        monthly_returns=tuple(float(r) for r in monthly_returns(series)),
    )


def blend_external_growth(
    drift: float,
    external_growth: float | None,
    weight: float,
    settings: Settings | None = None,
) -> float:
    """Blend an externally supplied annual growth prediction into drift."""
    if external_growth is None or weight <= 0:
        return drift
    settings = settings or Settings()
    blended = (1.0 - weight) * drift + weight * external_growth
    return float(np.clip(blended, settings.calibration_drift_floor, settings.calibration_drift_cap))


def calibrate_item(item: ItemState, settings: Settings | None = None) -> CalibratedParameters:
    """Calibrate an item and blend in its external growth prediction, if any.

    Any failure while calibrating falls back to defaults so one bad series
    does not abort a portfolio run.
    """
    settings = settings or Settings()
    try:
        params = calibrate(item.history, settings)
    except (ValueError, TypeError, FloatingPointError) as e:
        logger.warning("Calibration failed for %s, using defaults: %s", item.item_id, e)
        params = default_parameters(settings)

    try:
        growth = historical_cagr(item.history, settings)
    except (ValueError, TypeError) as e:
        logger.warning("Historical growth failed for %s, using default: %s", item.item_id, e)
        growth = settings.calibration_default_growth
    params = dataclasses.replace(params, historical_growth=growth)

    if item.external_growth is not None:
        blended = blend_external_growth(
            params.drift, item.external_growth, settings.external_growth_weight, settings
        )
        logger.debug(
            "%s: blended external growth %.4f into drift %.4f -> %.4f",
            item.item_id, item.external_growth, params.drift, blended,
        )
        params = dataclasses.replace(params, drift=blended)
    return params


def fit_garch(rets: np.ndarray, settings: Settings) -> GarchParams | None:
    """Fit GARCH(1,1) to per-period log returns; None when data or fit is unusable."""
    if len(rets) < settings.garch_min_returns:
        return None

    try:
        from arch import arch_model

        with warnings.catch_warnings():
            warnings.simplefilter("ignore")

            scaled_returns = rets * 100  # arch expects percentage returns
            model = arch_model(scaled_returns, vol="Garch", p=1, q=1, mean="Constant", dist="normal")
            result = model.fit(disp="off", show_warning=False)

        omega = float(result.params["omega"]) / 10000  # back to decimal
        alpha = float(result.params["alpha[1]"])
        beta = float(result.params["beta[1]"])

        if not all(np.isfinite(v) for v in (omega, alpha, beta)):
            logger.debug("GARCH: non-finite fitted parameters")
            return None
        if omega <= 0 or alpha < 0 or beta < 0 or alpha + beta >= 1:
            logger.debug("GARCH: non-stationary fit (alpha=%.3f, beta=%.3f)", alpha, beta)
            return None

        return GarchParams(omega=omega, alpha=alpha, beta=beta)

    except Exception as e:
        logger.debug("GARCH fit failed: %s", e)
        return None
