"""Parameterised path simulator shared by every model variant.

A variant is a :class:`PathSpec`; the engine advances all trials of a spec
together, one time step at a time:

  log_ret = drift·m_regime·dt + seasonal + κ·dt·(ln F_t − ln S) + shock + jump
  S ← clip(S · exp(clip(log_ret)), floor·S₀, cap·S₀)

where the shock is Gaussian, unit-variance Student-t, a bootstrap draw, or a
GARCH-scaled Gaussian, optionally correlated with a shared market factor.
Drift is the expected annual log-return, so no Itô correction is applied.
"""

import logging
from dataclasses import dataclass
from enum import Enum

import numpy as np

from brickcast.analysis.random_variates import (
    correlated_shock,
    standard_normal,
    unit_student_t,
)
from brickcast.analysis.regime import RegimeSchedule, SeasonalTable
from brickcast.config import ScenarioBranch, StressEvent

logger = logging.getLogger(__name__)


class ShockKind(str, Enum):
    NORMAL = "normal"
    STUDENT_T = "student_t"
    BOOTSTRAP = "bootstrap"


@dataclass(frozen=True)
class JumpSpec:
    """Jumps fire only while the item is retiring."""
    intensity: float  # expected jumps per year
    mean: float  # mean log jump size
    volatility: float


@dataclass(frozen=True)
class GarchSpec:
    """Per-step GARCH(1,1): var_t = omega + alpha·eps_{t-1}² + beta·var_{t-1}."""
    omega: float
    alpha: float
    beta: float
    initial_variance: float


@dataclass(frozen=True)
class StressSpec:
    events: tuple[tuple[str, StressEvent], ...]
    impact_multiplier: float = 1.0
    recovery_drift: float = 0.05  # annual growth of the recovery target
    recovery_noise: float = 0.02


@dataclass(frozen=True)
class PathSpec:
    model: str
    drift: float = 0.05
    volatility: float = 0.20
    steps_per_year: int = 12
    shock: ShockKind = ShockKind.NORMAL
    degrees_of_freedom: float = 5.0
    scenarios: tuple[ScenarioBranch, ...] = ()
    drift_std: float = 0.0  # per-trial drift dispersion, held fixed along the path
    drift_bounds: tuple[float, float] | None = None
    mean_reversion_speed: float = 0.0
    fair_growth: float = 0.0  # annual growth of the fair-value trajectory
    jump: JumpSpec | None = None
    regime: RegimeSchedule | None = None
    seasonal: SeasonalTable | None = None
    start_month: int = 1
    market_correlation: float = 0.0
    bootstrap_returns: tuple[float, ...] = ()
    bootstrap_clip: float = 0.15
    garch: GarchSpec | None = None
    stress: StressSpec | None = None
    max_step_log_return: float | None = 0.5
    floor: float = 0.05  # multiple of the current value
    cap: float = 10.0


def num_steps_for(horizon_years: float, steps_per_year: int) -> int:
    if horizon_years <= 0:
        raise ValueError(f"horizon_years must be positive, got {horizon_years}")
    return max(1, int(round(horizon_years * steps_per_year)))


def simulate_paths(
    spec: PathSpec,
    current_value: float,
    horizon_years: float,
    num_trials: int,
    rng: np.random.Generator,
    market_factor: np.ndarray | None = None,
    full_paths: bool = False,
) -> np.ndarray:
    """Simulate ``num_trials`` value paths for one spec.

    Args:
        spec: Variant configuration.
        current_value: Starting value (> 0).
        horizon_years: Projection horizon in years.
        num_trials: Number of independent trials.
        rng: Random generator for all idiosyncratic draws.
        market_factor: Shared standard-normal shocks of shape
            (num_trials, >= steps); drawn from ``rng`` when omitted.
        full_paths: Return the (num_trials, steps + 1) path matrix instead
            of terminal values.

    Returns:
        Terminal values (num_trials,) or full paths.
    """
    if not np.isfinite(current_value) or current_value <= 0:
        raise ValueError(f"current_value must be positive, got {current_value}")
    if num_trials < 1:
        raise ValueError(f"num_trials must be at least 1, got {num_trials}")

    spy = spec.steps_per_year
    num_steps = num_steps_for(horizon_years, spy)
    dt = 1.0 / spy
    sqrt_dt = np.sqrt(dt)
    floor_value = current_value * spec.floor
    cap_value = current_value * spec.cap
    log_current = np.log(current_value)

    drift, vol = _trial_drift_and_vol(spec, num_trials, rng)

    if spec.regime is not None:
        drift_mult, vol_mult, retiring = spec.regime.step_arrays(num_steps, spy)
    else:
        drift_mult = np.ones(num_steps)
        vol_mult = np.ones(num_steps)
        retiring = np.zeros(num_steps, dtype=bool)

    if spec.seasonal is not None:
        seasonal = spec.seasonal.step_log_adjustments(num_steps, spy, spec.start_month)
    else:
        seasonal = np.zeros(num_steps)

    if spec.market_correlation != 0.0 and spec.shock is not ShockKind.BOOTSTRAP:
        if market_factor is None:
            market_factor = standard_normal(rng, (num_trials, num_steps))
        elif market_factor.shape[0] != num_trials or market_factor.shape[1] < num_steps:
            raise ValueError(
                f"market_factor shape {market_factor.shape} does not cover "
                f"{num_trials} trials x {num_steps} steps"
            )
    else:
        market_factor = None

    pool = np.asarray(spec.bootstrap_returns, dtype=float)
    if spec.shock is ShockKind.BOOTSTRAP:
        if pool.size == 0:
            raise ValueError(f"{spec.model}: bootstrap shock requires a non-empty return pool")
        pool = np.log1p(np.clip(pool, -spec.bootstrap_clip, spec.bootstrap_clip))

    value = np.full(num_trials, float(current_value))
    paths = None
    if full_paths:
        paths = np.empty((num_trials, num_steps + 1))
        paths[:, 0] = value

    if spec.garch is not None:
        variance = np.full(num_trials, spec.garch.initial_variance)
        prev_eps = np.zeros(num_trials)

    if spec.stress is not None:
        in_recovery = np.zeros(num_trials, dtype=bool)
        steps_left = np.zeros(num_trials, dtype=int)
        target = np.zeros(num_trials)

    resets = 0

    for t in range(num_steps):
        elapsed = t * dt

        if spec.shock is ShockKind.BOOTSTRAP:
            diffusion = pool[rng.integers(0, pool.size, num_trials)]
        else:
            if spec.shock is ShockKind.STUDENT_T:
                z = unit_student_t(rng, spec.degrees_of_freedom, num_trials)
            else:
                z = standard_normal(rng, num_trials)
            if market_factor is not None:
                z = correlated_shock(market_factor[:, t], z, spec.market_correlation)

            if spec.garch is not None:
                g = spec.garch
                variance = g.omega + g.alpha * prev_eps**2 + g.beta * variance
                diffusion = np.sqrt(variance) * z
                prev_eps = diffusion
            else:
                diffusion = vol * vol_mult[t] * sqrt_dt * z

        log_ret = drift * drift_mult[t] * dt + seasonal[t] + diffusion

        if spec.mean_reversion_speed > 0:
            log_fair = log_current + elapsed * np.log1p(spec.fair_growth)
            log_ret = log_ret + spec.mean_reversion_speed * dt * (log_fair - np.log(value))

        if spec.jump is not None and retiring[t]:
            fires = rng.random(num_trials) < spec.jump.intensity * dt
            n_jumps = int(fires.sum())
            if n_jumps:
                log_ret[fires] += spec.jump.mean + spec.jump.volatility * standard_normal(rng, n_jumps)

        if spec.max_step_log_return is not None:
            log_ret = np.clip(log_ret, -spec.max_step_log_return, spec.max_step_log_return)

        with np.errstate(over="ignore", invalid="ignore"):
            new_value = value * np.exp(log_ret)

        if spec.stress is not None:
            new_value = _stress_step(
                spec.stress, value, new_value, in_recovery, steps_left, target,
                current_value, elapsed, dt, rng,
            )

        bad = ~np.isfinite(new_value)
        if bad.any():
            resets += int(bad.sum())
            new_value[bad] = current_value

        value = np.clip(new_value, floor_value, cap_value)
        if paths is not None:
            paths[:, t + 1] = value

    if resets:
        logger.warning(
            "%s: reset %d non-finite values to the current value over %d steps",
            spec.model, resets, num_steps,
        )

    return paths if paths is not None else value


def _trial_drift_and_vol(
    spec: PathSpec, num_trials: int, rng: np.random.Generator
) -> tuple[np.ndarray, np.ndarray]:
    """Per-trial drift and volatility, fixed for the whole path."""
    if spec.scenarios:
        probs = np.array([s.probability for s in spec.scenarios], dtype=float)
        idx = rng.choice(len(spec.scenarios), size=num_trials, p=probs / probs.sum())
        drift = np.array([s.drift for s in spec.scenarios])[idx]
        vol = np.array([s.volatility for s in spec.scenarios])[idx]
    else:
        drift = np.full(num_trials, spec.drift)
        vol = np.full(num_trials, spec.volatility)

    if spec.drift_std > 0:
        drift = drift + spec.drift_std * standard_normal(rng, num_trials)
    if spec.drift_bounds is not None:
        drift = np.clip(drift, *spec.drift_bounds)

    return drift, vol


def _stress_step(
    stress: StressSpec,
    value: np.ndarray,
    new_value: np.ndarray,
    in_recovery: np.ndarray,
    steps_left: np.ndarray,
    target: np.ndarray,
    current_value: float,
    elapsed: float,
    dt: float,
    rng: np.random.Generator,
) -> np.ndarray:
    """Apply shock events and linear recovery; mutates the recovery state in place.

    Trials hit by an event (or already recovering) skip the diffusion step
    and instead close a 1/steps_left share of the gap to a target that grows
    with the configured recovery drift, plus proportional noise.
    """
    n = value.size
    idle = ~in_recovery
    hit = np.zeros(n, dtype=bool)
    impact = np.zeros(n)
    duration = np.zeros(n, dtype=int)

    for _name, event in stress.events:
        fires = (rng.random(n) < event.probability * dt) & idle & ~hit
        impact[fires] = event.impact * stress.impact_multiplier
        duration[fires] = max(1, int(round(event.recovery_years / dt)))
        hit |= fires

    shocked = value.copy()
    if hit.any():
        shocked[hit] = value[hit] * (1.0 + impact[hit])
        in_recovery[hit] = True
        steps_left[hit] = duration[hit]
        target[hit] = current_value * (1.0 + stress.recovery_drift * elapsed)

    recovering = in_recovery & (steps_left > 0)
    if not recovering.any():
        return new_value

    noise = standard_normal(rng, n)
    gap = (target - shocked) / np.maximum(steps_left, 1)
    recovered = shocked + gap + noise * shocked * stress.recovery_noise

    out = np.where(recovering, recovered, new_value)
    steps_left[recovering] -= 1
    in_recovery[recovering & (steps_left == 0)] = False
    return out
