from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ScenarioBranch(BaseModel):
    model_config = ConfigDict(frozen=True)

    probability: float = Field(ge=0.0, le=1.0)
    drift: float
    volatility: float = Field(gt=0.0)


class StressEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    probability: float = Field(ge=0.0, le=1.0, description="Annual event probability")
    impact: float = Field(gt=-1.0, description="Fractional value shock, e.g. -0.40")
    recovery_years: float = Field(gt=0.0)


class RegimeMultipliers(BaseModel):
    model_config = ConfigDict(frozen=True)

    drift: float = 1.0
    volatility: float = Field(1.0, gt=0.0)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="BC_",
        frozen=True,
    )

    # Simulation size
    simulation_num_trials: int = Field(10000, ge=1)
    simulation_horizons: tuple[float, ...] = (1.0, 3.0, 5.0, 10.0)
    simulation_steps_per_year: int = Field(12, ge=1)
    simulation_start_month: int | None = Field(None, ge=1, le=12)  # None -> current month
    simulation_seed: int | None = None

    # Parallelization
    simulation_max_workers: int = Field(1, ge=1)

    # Ensemble weights (sum = 1.0)
    simulation_weight_monte_carlo: float = Field(0.35, ge=0.0)
    simulation_weight_scenario: float = Field(0.15, ge=0.0)
    simulation_weight_stress: float = Field(0.10, ge=0.0)
    simulation_weight_bootstrap: float = Field(0.15, ge=0.0)
    simulation_weight_garch: float = Field(0.15, ge=0.0)
    simulation_weight_bayesian: float = Field(0.10, ge=0.0)
    simulation_weight_mean_reversion: float = Field(0.0, ge=0.0)

    # Calibration (monthly history)
    calibration_min_observations: int = Field(6, ge=2)
    calibration_periods_per_year: int = 12
    calibration_default_drift: float = 0.05
    calibration_default_volatility: float = 0.20
    calibration_default_growth: float = 0.05
    calibration_min_growth_years: float = Field(0.1, gt=0.0)
    calibration_drift_floor: float = -0.30
    calibration_drift_cap: float = 0.50
    calibration_volatility_floor: float = 0.10
    calibration_volatility_cap: float = 0.80

    # External qualitative predictions blended into drift
    external_growth_weight: float = Field(0.4, ge=0.0, le=1.0)

    # Shared path mechanics
    max_step_log_return: float = Field(0.5, gt=0.0)
    market_correlation: float = Field(0.40, ge=-1.0, le=1.0)
    retired_age_years: float = 2.0

    # Monte Carlo parameters
    monte_carlo_degrees_of_freedom: float = Field(5.0, gt=2.0)
    monte_carlo_mean_reversion_speed: float = Field(0.20, ge=0.0)
    monte_carlo_fair_growth_floor: float = 0.0
    monte_carlo_fair_growth_cap: float = 0.30
    monte_carlo_jump_intensity: float = Field(0.15, ge=0.0)
    monte_carlo_jump_mean: float = 0.30
    monte_carlo_jump_volatility: float = Field(0.15, ge=0.0)

    # Scenario parameters
    scenarios: dict[str, ScenarioBranch] = {
        "bull": ScenarioBranch(probability=0.25, drift=0.12, volatility=0.15),
        "base": ScenarioBranch(probability=0.50, drift=0.05, volatility=0.20),
        "bear": ScenarioBranch(probability=0.25, drift=-0.02, volatility=0.30),
    }
    scenario_retired_drift_bonus: float = 0.03
    scenario_retired_vol_multiplier: float = 0.8

    # Stress test parameters
    stress_events: dict[str, StressEvent] = {
        "market_crash": StressEvent(probability=0.05, impact=-0.40, recovery_years=2.0),
        "theme_collapse": StressEvent(probability=0.03, impact=-0.60, recovery_years=5.0),
        "liquidity_crisis": StressEvent(probability=0.02, impact=-0.25, recovery_years=1.0),
        "ipo_boom": StressEvent(probability=0.05, impact=0.50, recovery_years=3.0),
    }
    stress_licensed_impact_multiplier: float = 0.8
    stress_unlicensed_impact_multiplier: float = 1.2
    stress_recovery_noise: float = Field(0.02, ge=0.0)

    # Bootstrap parameters
    bootstrap_min_history_returns: int = Field(12, ge=1)
    bootstrap_synthetic_months: int = Field(60, ge=1)
    bootstrap_synthetic_growth_floor: float = 0.02
    bootstrap_synthetic_growth_cap: float = 0.10
    bootstrap_synthetic_volatility: float = 0.04
    bootstrap_synthetic_clip: float = 0.08
    bootstrap_return_clip: float = 0.15

    # GARCH parameters (per step)
    garch_omega: float | None = None  # None -> derived from calibrated volatility
    garch_alpha: float = Field(0.10, ge=0.0)
    garch_beta: float = Field(0.85, ge=0.0)
    garch_min_returns: int = Field(24, ge=5)
    garch_fit_enabled: bool = True
    garch_retired_drift_bonus: float = 0.03

    # Bayesian parameters
    bayesian_prior_mean: float = 0.05
    bayesian_prior_variance: float = Field(0.01, ge=0.0)
    bayesian_observed_variance: float = Field(0.02, ge=0.0)
    bayesian_likelihood_weight: float = Field(0.7, ge=0.0, le=1.0)
    bayesian_growth_floor: float = -0.10
    bayesian_growth_cap: float = 0.15
    bayesian_retired_bonus: float = 0.02
    bayesian_licensed_bonus: float = 0.01
    bayesian_mean_floor: float = 0.0
    bayesian_mean_cap: float = 0.12
    bayesian_drift_floor: float = -0.05
    bayesian_drift_cap: float = 0.15

    # Mean reversion parameters
    mean_reversion_speed: float = Field(0.50, ge=0.0)

    # Value bounds as multiples of the current value (floor, cap)
    monte_carlo_bounds: tuple[float, float] = (0.05, 10.0)
    scenario_bounds: tuple[float, float] = (0.05, 10.0)
    stress_bounds: tuple[float, float] = (0.10, 10.0)
    bootstrap_bounds: tuple[float, float] = (0.50, 3.0)
    garch_bounds: tuple[float, float] = (0.05, 10.0)
    bayesian_bounds: tuple[float, float] = (0.30, 5.0)
    mean_reversion_bounds: tuple[float, float] = (0.05, 10.0)

    # Regimes and seasonality
    regime_multipliers: dict[str, RegimeMultipliers] = {
        "active": RegimeMultipliers(drift=1.0, volatility=1.0),
        "retiring": RegimeMultipliers(drift=1.5, volatility=1.3),
        "retired": RegimeMultipliers(drift=0.8, volatility=0.7),
    }
    regime_retiring_lead_months: float = 6.0
    regime_retired_lag_months: float = 12.0
    seasonal_factors: dict[int, float] = {
        1: 0.92,  # post-holiday discounts
        2: 0.94,
        3: 0.97,
        4: 1.00,
        5: 0.98,
        6: 1.00,
        7: 0.96,  # summer clearance
        8: 0.95,
        9: 1.00,
        10: 1.03,
        11: 1.05,
        12: 1.08,  # peak pricing
    }

    # Statistics
    gain_thresholds: tuple[float, ...] = (0.20, 0.50, 1.00)

    @field_validator("seasonal_factors")
    @classmethod
    def _check_seasonal_months(cls, v: dict[int, float]) -> dict[int, float]:
        if set(v) != set(range(1, 13)):
            raise ValueError("seasonal_factors must define months 1-12")
        if any(f <= 0 for f in v.values()):
            raise ValueError("seasonal factors must be positive")
        return v

    @field_validator(
        "monte_carlo_bounds", "scenario_bounds", "stress_bounds", "bootstrap_bounds",
        "garch_bounds", "bayesian_bounds", "mean_reversion_bounds",
    )
    @classmethod
    def _check_bounds(cls, v: tuple[float, float]) -> tuple[float, float]:
        floor, cap = v
        if not 0 < floor < 1 < cap:
            raise ValueError(f"bounds must satisfy 0 < floor < 1 < cap, got {v}")
        return v

    @model_validator(mode="after")
    def _check_weights(self) -> "Settings":
        total = sum(self.model_weights.values())
        if abs(total - 1.0) > 1e-6:
            raise ValueError(f"ensemble weights must sum to 1.0, got {total:.6f}")
        total_prob = sum(s.probability for s in self.scenarios.values())
        if abs(total_prob - 1.0) > 1e-6:
            raise ValueError(f"scenario probabilities must sum to 1.0, got {total_prob:.6f}")
        return self

    @property
    def model_weights(self) -> dict[str, float]:
        return {
            "monte_carlo": self.simulation_weight_monte_carlo,
            "scenario": self.simulation_weight_scenario,
            "stress": self.simulation_weight_stress,
            "bootstrap": self.simulation_weight_bootstrap,
            "garch": self.simulation_weight_garch,
            "bayesian": self.simulation_weight_bayesian,
            "mean_reversion": self.simulation_weight_mean_reversion,
        }

    def bounds_for(self, model: str) -> tuple[float, float]:
        return getattr(self, f"{model}_bounds")
