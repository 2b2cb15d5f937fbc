"""Model variants as path-engine configurations.

Each factory turns an item and its calibrated parameters into a
:class:`PathSpec`. The engine does the rest, so variants differ only in the
mechanisms they switch on and the constants they feed in.
"""

import logging
from typing import Callable

import numpy as np

from brickcast.analysis.random_variates import standard_normal
from brickcast.analysis.regime import RegimeSchedule, SeasonalTable
from brickcast.analysis.sim_models import CalibratedParameters, ItemState, SimModel
from brickcast.analysis.sim_models.engine import (
    GarchSpec,
    JumpSpec,
    PathSpec,
    ShockKind,
    StressSpec,
)
from brickcast.config import ScenarioBranch, Settings

logger = logging.getLogger(__name__)

SpecFactory = Callable[
    [ItemState, CalibratedParameters, Settings, int, np.random.Generator], PathSpec
]


def _observed_growth(item: ItemState, params: CalibratedParameters, settings: Settings) -> float:
    """Caller-supplied growth, else the history CAGR, else the configured default."""
    if item.historical_growth is not None:
        return float(item.historical_growth)
    if params.historical_growth is not None:
        return params.historical_growth
    return settings.calibration_default_growth


def _is_retired(item: ItemState, settings: Settings) -> bool:
    return item.age_years >= settings.retired_age_years


def monte_carlo_spec(item, params, settings, start_month, rng) -> PathSpec:
    """Full stack: regimes, seasonality, mean reversion, retiring-phase jumps, fat tails."""
    floor, cap = settings.bounds_for(SimModel.MONTE_CARLO.value)
    fair_growth = float(np.clip(
        _observed_growth(item, params, settings),
        settings.monte_carlo_fair_growth_floor,
        settings.monte_carlo_fair_growth_cap,
    ))
    return PathSpec(
        model=SimModel.MONTE_CARLO.value,
        drift=params.drift,
        volatility=params.volatility,
        steps_per_year=settings.simulation_steps_per_year,
        shock=ShockKind.STUDENT_T,
        degrees_of_freedom=settings.monte_carlo_degrees_of_freedom,
        mean_reversion_speed=settings.monte_carlo_mean_reversion_speed,
        fair_growth=fair_growth,
        jump=JumpSpec(
            intensity=settings.monte_carlo_jump_intensity,
            mean=settings.monte_carlo_jump_mean,
            volatility=settings.monte_carlo_jump_volatility,
        ),
        regime=RegimeSchedule.from_settings(item.months_until_retirement, settings),
        seasonal=SeasonalTable(settings.seasonal_factors),
        start_month=start_month,
        market_correlation=settings.market_correlation,
        max_step_log_return=settings.max_step_log_return,
        floor=floor,
        cap=cap,
    )


def scenario_spec(item, params, settings, start_month, rng) -> PathSpec:
    """Bull/base/bear branch per trial; no jumps or mean reversion.

    Items past the retirement age get a drift bonus and dampened volatility
    in every branch.
    """
    floor, cap = settings.bounds_for(SimModel.SCENARIO.value)
    branches = tuple(settings.scenarios.values())
    if _is_retired(item, settings):
        branches = tuple(
            ScenarioBranch(
                probability=b.probability,
                drift=b.drift + settings.scenario_retired_drift_bonus,
                volatility=b.volatility * settings.scenario_retired_vol_multiplier,
            )
            for b in branches
        )
    return PathSpec(
        model=SimModel.SCENARIO.value,
        steps_per_year=settings.simulation_steps_per_year,
        scenarios=branches,
        market_correlation=settings.market_correlation,
        max_step_log_return=settings.max_step_log_return,
        floor=floor,
        cap=cap,
    )


def stress_spec(item, params, settings, start_month, rng) -> PathSpec:
    """Diffusion punctuated by rare crash/boom events and linear recovery."""
    floor, cap = settings.bounds_for(SimModel.STRESS.value)
    multiplier = (
        settings.stress_licensed_impact_multiplier
        if item.is_licensed
        else settings.stress_unlicensed_impact_multiplier
    )
    return PathSpec(
        model=SimModel.STRESS.value,
        drift=params.drift,
        volatility=params.volatility,
        steps_per_year=settings.simulation_steps_per_year,
        stress=StressSpec(
            events=tuple(settings.stress_events.items()),
            impact_multiplier=multiplier,
            recovery_drift=params.drift,
            recovery_noise=settings.stress_recovery_noise,
        ),
        market_correlation=settings.market_correlation,
        max_step_log_return=settings.max_step_log_return,
        floor=floor,
        cap=cap,
    )


def synthetic_monthly_returns(
    annual_growth: float, settings: Settings, rng: np.random.Generator
) -> np.ndarray:
    """Synthetic monthly return history used when an item lacks real history."""
    growth = float(np.clip(
        annual_growth,
        settings.bootstrap_synthetic_growth_floor,
        settings.bootstrap_synthetic_growth_cap,
    ))
    months = settings.bootstrap_synthetic_months
    rets = growth / 12.0 + settings.bootstrap_synthetic_volatility * standard_normal(rng, months)
    return np.clip(rets, -settings.bootstrap_synthetic_clip, settings.bootstrap_synthetic_clip)


def bootstrap_spec(item, params, settings, start_month, rng) -> PathSpec:
    """Resample monthly returns with replacement instead of drawing parametric shocks."""
    floor, cap = settings.bounds_for(SimModel.BOOTSTRAP.value)
    if len(params.monthly_returns) >= settings.bootstrap_min_history_returns:
        pool = np.asarray(params.monthly_returns, dtype=float)
        source = "history"
    else:
        pool = synthetic_monthly_returns(_observed_growth(item, params, settings), settings, rng)
        source = "synthetic"
    logger.debug("%s: bootstrap pool of %d %s returns", item.item_id, len(pool), source)

    return PathSpec(
        model=SimModel.BOOTSTRAP.value,
        drift=0.0,
        volatility=0.0,
        steps_per_year=12,  # pool is monthly
        shock=ShockKind.BOOTSTRAP,
        bootstrap_returns=tuple(float(r) for r in pool),
        bootstrap_clip=settings.bootstrap_return_clip,
        max_step_log_return=None,
        floor=floor,
        cap=cap,
    )


def garch_spec(item, params, settings, start_month, rng) -> PathSpec:
    """Per-trial recursive variance; uses the fitted GARCH(1,1) when calibration produced one."""
    floor, cap = settings.bounds_for(SimModel.GARCH.value)
    spy = settings.simulation_steps_per_year
    dt = 1.0 / spy

    if params.garch is not None:
        # Fitted on calibration-cadence returns; rescale omega to the step size
        omega = params.garch.omega * settings.calibration_periods_per_year / spy
        alpha, beta = params.garch.alpha, params.garch.beta
    else:
        alpha, beta = settings.garch_alpha, settings.garch_beta
        if alpha + beta >= 1.0:
            raise ValueError(f"garch_alpha + garch_beta must be < 1, got {alpha + beta:.4f}")
        if settings.garch_omega is not None:
            omega = settings.garch_omega
        else:
            # Long-run per-step variance matches the calibrated volatility
            omega = params.volatility**2 * dt * (1.0 - alpha - beta)

    drift = params.drift
    if _is_retired(item, settings):
        drift += settings.garch_retired_drift_bonus

    return PathSpec(
        model=SimModel.GARCH.value,
        drift=drift,
        volatility=params.volatility,
        steps_per_year=spy,
        garch=GarchSpec(
            omega=omega,
            alpha=alpha,
            beta=beta,
            initial_variance=params.volatility**2 * dt,
        ),
        market_correlation=settings.market_correlation,
        max_step_log_return=settings.max_step_log_return,
        floor=floor,
        cap=cap,
    )


def bayesian_posterior(item: ItemState, params: CalibratedParameters, settings: Settings) -> tuple[float, float]:
    """Posterior (mean, std) of annual drift from the prior and observed growth."""
    w = settings.bayesian_likelihood_weight
    observed = float(np.clip(
        _observed_growth(item, params, settings), settings.bayesian_growth_floor, settings.bayesian_growth_cap
    ))
    mean = (1.0 - w) * settings.bayesian_prior_mean + w * observed
    variance = (1.0 - w) * settings.bayesian_prior_variance + w * settings.bayesian_observed_variance

    if _is_retired(item, settings):
        mean += settings.bayesian_retired_bonus
    if item.is_licensed:
        mean += settings.bayesian_licensed_bonus

    mean = float(np.clip(mean, settings.bayesian_mean_floor, settings.bayesian_mean_cap))
    return mean, float(np.sqrt(variance))


def bayesian_spec(item, params, settings, start_month, rng) -> PathSpec:
    """Drift drawn once per trial from the posterior, then held fixed."""
    floor, cap = settings.bounds_for(SimModel.BAYESIAN.value)
    mean, std = bayesian_posterior(item, params, settings)
    return PathSpec(
        model=SimModel.BAYESIAN.value,
        drift=mean,
        volatility=params.volatility,
        steps_per_year=settings.simulation_steps_per_year,
        drift_std=std,
        drift_bounds=(settings.bayesian_drift_floor, settings.bayesian_drift_cap),
        market_correlation=settings.market_correlation,
        max_step_log_return=settings.max_step_log_return,
        floor=floor,
        cap=cap,
    )


def mean_reversion_spec(item, params, settings, start_month, rng) -> PathSpec:
    """Gaussian diffusion with a strong pull toward the fair-value trajectory."""
    floor, cap = settings.bounds_for(SimModel.MEAN_REVERSION.value)
    fair_growth = float(np.clip(
        _observed_growth(item, params, settings),
        settings.monte_carlo_fair_growth_floor,
        settings.monte_carlo_fair_growth_cap,
    ))
    return PathSpec(
        model=SimModel.MEAN_REVERSION.value,
        drift=params.drift,
        volatility=params.volatility,
        steps_per_year=settings.simulation_steps_per_year,
        mean_reversion_speed=settings.mean_reversion_speed,
        fair_growth=fair_growth,
        market_correlation=settings.market_correlation,
        max_step_log_return=settings.max_step_log_return,
        floor=floor,
        cap=cap,
    )


SPEC_FACTORIES: dict[SimModel, SpecFactory] = {
    SimModel.MONTE_CARLO: monte_carlo_spec,
    SimModel.SCENARIO: scenario_spec,
    SimModel.STRESS: stress_spec,
    SimModel.BOOTSTRAP: bootstrap_spec,
    SimModel.GARCH: garch_spec,
    SimModel.BAYESIAN: bayesian_spec,
    SimModel.MEAN_REVERSION: mean_reversion_spec,
}


def build_spec(
    model: SimModel | str,
    item: ItemState,
    params: CalibratedParameters,
    settings: Settings,
    start_month: int,
    rng: np.random.Generator,
) -> PathSpec:
    """Build the path spec of ``model`` for one item.

    Raises:
        ValueError: If ``model`` is not a known variant.
    """
    return SPEC_FACTORIES[SimModel(model)](item, params, settings, start_month, rng)
