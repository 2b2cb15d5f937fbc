"""Valuation simulation orchestrator.

Calibrates each item, runs every weighted model variant on the shared path
engine, blends the index-aligned trials into an ensemble and sums item
ensembles into portfolio projections per horizon.
"""

import hashlib
import logging
from concurrent.futures import ProcessPoolExecutor, as_completed
from datetime import date
from typing import Any, Mapping, Sequence

import numpy as np

from brickcast.analysis.calibration import calibrate_item
from brickcast.analysis.random_variates import make_rng, standard_normal
from brickcast.analysis.sim_models import (
    CalibratedParameters,
    EnsembleResult,
    ItemState,
    ModelResult,
    PortfolioProjection,
)
from brickcast.analysis.sim_models.engine import num_steps_for, simulate_paths
from brickcast.analysis.sim_models.ensemble import (
    combine_ensemble,
    model_agreement,
    recommendations,
    validate_weights,
)
from brickcast.analysis.sim_models.variants import build_spec
from brickcast.analysis.statistics import compute_statistics
from brickcast.config import Settings

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Seeding
# ---------------------------------------------------------------------------


def derive_seed(seed: int, *parts: Any) -> int:
    """Stable child seed for ``parts`` (hashlib-based, not session-dependent hash())."""
    key = ":".join(str(p) for p in (seed, *parts))
    return int(hashlib.sha256(key.encode()).hexdigest(), 16) % (2**63)


def market_factor_for(
    num_trials: int,
    horizon_years: float,
    settings: Settings,
    seed: int | None = None,
) -> np.ndarray:
    """Shared standard-normal market shocks for one horizon, (num_trials, steps)."""
    steps = num_steps_for(horizon_years, settings.simulation_steps_per_year)
    rng = make_rng(derive_seed(seed, "market", horizon_years) if seed is not None else None)
    return standard_normal(rng, (num_trials, steps))


def _calibration_summary(params: CalibratedParameters) -> dict[str, Any]:
    return {
        "drift": params.drift,
        "volatility": params.volatility,
        "source": params.source,
        "observations": params.observations,
        "historical_growth": params.historical_growth,
        "garch_fitted": params.garch is not None,
    }


# ---------------------------------------------------------------------------
# Single item
# ---------------------------------------------------------------------------


def simulate(
    item: ItemState,
    horizon_years: float,
    num_trials: int | None = None,
    weights: Mapping[str, float] | None = None,
    settings: Settings | None = None,
    seed: int | None = None,
    rng: np.random.Generator | None = None,
    market_factor: np.ndarray | None = None,
    params: CalibratedParameters | None = None,
) -> EnsembleResult:
    """Run the weighted model ensemble for one item at one horizon.

    Args:
        item: Item to project.
        horizon_years: Projection horizon in years.
        num_trials: Trials per model (default: settings).
        weights: {model_name: weight} summing to 1 (default: settings).
        settings: Immutable configuration (default: ``Settings()``).
        seed: Explicit seed; child seeds are derived per (item, model,
            horizon). Unseeded runs are not reproducible.
        rng: Parent generator for the market factor and child seeds when
            ``seed`` is None; a seeded generator makes the run reproducible.
        market_factor: Shared market shocks (num_trials, >= steps); drawn
            here when omitted.
        params: Pre-computed calibration (default: calibrate the item).

    Returns:
        EnsembleResult with combined trials, statistics and per-model results.

    Raises:
        ValueError: On invalid weights, trial counts or horizons.
    """
    settings = settings or Settings()
    num_trials = num_trials if num_trials is not None else settings.simulation_num_trials
    if num_trials < 1:
        raise ValueError(f"num_trials must be at least 1, got {num_trials}")
    active = validate_weights(weights if weights is not None else settings.model_weights)
    if not active:
        raise ValueError("no model carries a positive weight")

    if params is None:
        params = calibrate_item(item, settings)
    if market_factor is None:
        if seed is None and rng is not None:
            # Caller-owned generator drives the shared shocks too
            steps = num_steps_for(horizon_years, settings.simulation_steps_per_year)
            market_factor = standard_normal(rng, (num_trials, steps))
        else:
            market_factor = market_factor_for(num_trials, horizon_years, settings, seed)
    if rng is None:
        rng = make_rng(derive_seed(seed, item.item_id, horizon_years) if seed is not None else None)

    start_month = settings.simulation_start_month or date.today().month

    model_results: dict[str, ModelResult] = {}
    for model_name in active:
        # Model-keyed seed: deterministic per (item, model) regardless of
        # which other models are in the set
        if seed is not None:
            model_seed = derive_seed(seed, item.item_id, model_name, horizon_years)
        else:
            model_seed = int(rng.integers(2**63))
        child_rng = make_rng(model_seed)

        spec = build_spec(model_name, item, params, settings, start_month, child_rng)
        trials = simulate_paths(
            spec, item.current_value, horizon_years, num_trials, child_rng,
            market_factor=market_factor,
        )
        model_results[model_name] = ModelResult(
            model=model_name,
            horizon_years=horizon_years,
            trials=trials,
            statistics=compute_statistics(
                trials, item.current_value, gain_thresholds=settings.gain_thresholds
            ),
        )

    combined = combine_ensemble(model_results, active)
    statistics = compute_statistics(
        combined, item.current_value, gain_thresholds=settings.gain_thresholds
    )
    agreement = model_agreement(model_results)

    logger.debug(
        "%s @ %gy: median %.2f (%+.1f%%), agreement %s",
        item.item_id, horizon_years, statistics["median"],
        statistics["growth"]["median_pct"],
        f"{agreement:.1f}" if agreement is not None else "n/a",
    )

    return EnsembleResult(
        item_id=item.item_id,
        theme=item.theme,
        horizon_years=horizon_years,
        current_value=item.current_value,
        trials=combined,
        statistics=statistics,
        model_results=model_results,
        weights=active,
        model_agreement=agreement,
        calibration=_calibration_summary(params),
        recommendations=recommendations(statistics, agreement),
    )


# ---------------------------------------------------------------------------
# Portfolio
# ---------------------------------------------------------------------------


def _simulate_worker(
    item: ItemState,
    horizon_years: float,
    num_trials: int,
    weights: dict[str, float],
    settings: Settings,
    seed: int,
    market_factor: np.ndarray,
    params: CalibratedParameters,
) -> tuple[str, EnsembleResult]:
    """Picklable worker for ProcessPoolExecutor."""
    result = simulate(
        item, horizon_years, num_trials, weights, settings,
        seed=seed, market_factor=market_factor, params=params,
    )
    return item.item_id, result


def simulate_portfolio(
    items: Sequence[ItemState],
    horizons: Sequence[float] | None = None,
    num_trials: int | None = None,
    weights: Mapping[str, float] | None = None,
    settings: Settings | None = None,
    seed: int | None = None,
    max_workers: int | None = None,
) -> dict[float, PortfolioProjection]:
    """Project every item at every horizon and aggregate per horizon.

    Items share one market-factor matrix per horizon, so summing their
    trials index-wise keeps the cross-item correlation.

    Args:
        items: Portfolio items (unique ``item_id``).
        horizons: Horizons in years (default: settings).
        num_trials: Trials per model (default: settings).
        weights: Ensemble weights (default: settings).
        settings: Immutable configuration (default: ``Settings()``).
        seed: Explicit seed for a reproducible run (default: settings).
        max_workers: Process count; 1 runs in-process (default: settings).

    Returns:
        {horizon: PortfolioProjection} in the order of ``horizons``.

    Raises:
        ValueError: On an empty portfolio, duplicate ids, or any contract
            violation raised while simulating.
    """
    settings = settings or Settings()
    items = list(items)
    if not items:
        raise ValueError("portfolio must contain at least one item")
    ids = [item.item_id for item in items]
    duplicates = sorted({i for i in ids if ids.count(i) > 1})
    if duplicates:
        raise ValueError(f"duplicate item ids in portfolio: {duplicates}")

    horizons = tuple(horizons) if horizons is not None else settings.simulation_horizons
    if not horizons:
        raise ValueError("at least one horizon is required")
    num_trials = num_trials if num_trials is not None else settings.simulation_num_trials
    active = validate_weights(weights if weights is not None else settings.model_weights)
    seed = seed if seed is not None else settings.simulation_seed
    max_workers = max_workers or settings.simulation_max_workers

    # A run seed lets every worker derive its own stream; unseeded runs draw one fresh
    run_seed = seed if seed is not None else int(make_rng().integers(2**63))

    # Calibrate once per item per run
    params_by_item = {item.item_id: calibrate_item(item, settings) for item in items}
    total_current = float(sum(item.current_value for item in items))

    logger.info(
        "Simulating %d items x %d horizons (%d trials, %d models, %d workers)",
        len(items), len(horizons), num_trials, len(active), max_workers,
    )

    projections: dict[float, PortfolioProjection] = {}
    for horizon in horizons:
        market_factor = market_factor_for(num_trials, horizon, settings, run_seed)
        item_results = _run_items(
            items, horizon, num_trials, active, settings, run_seed,
            market_factor, params_by_item, max_workers,
        )

        trials = np.zeros(num_trials)
        for item in items:
            trials += item_results[item.item_id]["trials"]

        statistics = compute_statistics(
            trials, total_current, gain_thresholds=settings.gain_thresholds
        )
        projections[horizon] = PortfolioProjection(
            horizon_years=horizon,
            current_value=total_current,
            trials=trials,
            statistics=statistics,
            items={item.item_id: item_results[item.item_id] for item in items},
            recommendations=recommendations(statistics),
        )
        logger.info(
            "Portfolio @ %gy: median %.2f (%+.1f%%), P(loss) %.3f",
            horizon, statistics["median"], statistics["growth"]["median_pct"],
            statistics["risk"]["prob_loss"],
        )

    return projections


def _run_items(
    items: list[ItemState],
    horizon: float,
    num_trials: int,
    weights: dict[str, float],
    settings: Settings,
    run_seed: int,
    market_factor: np.ndarray,
    params_by_item: dict[str, CalibratedParameters],
    max_workers: int,
) -> dict[str, EnsembleResult]:
    if max_workers <= 1 or len(items) == 1:
        return dict(
            _simulate_worker(
                item, horizon, num_trials, weights, settings, run_seed,
                market_factor, params_by_item[item.item_id],
            )
            for item in items
        )

    results: dict[str, EnsembleResult] = {}
    workers = min(max_workers, len(items))
    with ProcessPoolExecutor(max_workers=workers) as executor:
        futures = {
            executor.submit(
                _simulate_worker, item, horizon, num_trials, weights, settings,
                run_seed, market_factor, params_by_item[item.item_id],
            ): item.item_id
            for item in items
        }
        for future in as_completed(futures):
            item_id = futures[future]
            try:
                _, result = future.result()
            except Exception:
                logger.error("Simulation failed for %s at %gy", item_id, horizon)
                raise
            results[item_id] = result
    return results
